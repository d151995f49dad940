"""Retail Pulse – derived sustainability metrics for retail supply chains."""

__version__ = "1.0.0"
