"""
db.py – Connection handling for the Retail Pulse API.

Settings come from retail_pulse.config (DATABASE_URL, RETAIL_PULSE_SECRET, …),
read once per process.  Call with_connection(fn) to run fn against a
short-lived connection that is always closed.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Callable, TypeVar

from retail_pulse.config import Config, get_config
from retail_pulse.db import get_connection

T = TypeVar("T")


@lru_cache(maxsize=1)
def get_settings() -> Config:
    return get_config()


def get_conn():
    """Return a new psycopg2 connection (caller must close)."""
    return get_connection(get_settings().database_url)


def with_connection(fn: Callable[..., T]) -> T:
    """Run fn(conn) on a fresh connection and close it afterwards."""
    conn = get_conn()
    try:
        return fn(conn)
    finally:
        conn.close()
