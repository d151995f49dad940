"""
emission_factors.py – Transport emission factors used in shipment carbon calculations.

All factors are kg CO₂ per km per metric ton of transported weight.
Road modes (diesel / electric / hybrid) are broken down by vehicle type;
rail, ship and air carry a single mode-level factor.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

# ─────────────────────────────────────────────────────────────
# Road transport – keyed by powertrain, then vehicle type
# ─────────────────────────────────────────────────────────────
ROAD_EMISSION_FACTORS: Mapping[str, Mapping[str, float]] = MappingProxyType({
    "diesel": MappingProxyType({
        "truck": 0.15,
        "van":   0.12,
        "car":   0.08,
    }),
    "electric": MappingProxyType({
        "truck": 0.05,
        "van":   0.04,
        "car":   0.02,
    }),
    "hybrid": MappingProxyType({
        "truck": 0.10,
        "van":   0.08,
        "car":   0.05,
    }),
})

# ─────────────────────────────────────────────────────────────
# Mode-level factors (no vehicle breakdown)
# ─────────────────────────────────────────────────────────────
MODE_EMISSION_FACTORS: Mapping[str, float] = MappingProxyType({
    "rail": 0.03,
    "ship": 0.02,
    "air":  0.50,
})

# Fallback when the mode or vehicle type is unknown: diesel truck.
DEFAULT_EMISSION_FACTOR: float = ROAD_EMISSION_FACTORS["diesel"]["truck"]
DEFAULT_VEHICLE_TYPE: str = "truck"

# Vehicle implied by a mode-level transport choice when the caller gives none.
MODE_DEFAULT_VEHICLE: Mapping[str, str] = MappingProxyType({
    "rail": "train",
    "ship": "ship",
    "air":  "plane",
})

# Typical efficiency per mode (kg CO₂ / ton-km) used for comparisons.
MODE_BENCHMARKS: Mapping[str, float] = MappingProxyType({
    "electric": 0.04,
    "hybrid":   0.08,
    "rail":     0.03,
    "ship":     0.02,
    "diesel":   0.15,
    "air":      0.50,
})

# Average cruising speed (km/h) used for route time estimates.
AVERAGE_SPEED_KMH: Mapping[str, float] = MappingProxyType({
    "diesel":   60,
    "electric": 50,
    "hybrid":   55,
    "rail":     80,
    "ship":     25,
    "air":      800,
})
DEFAULT_SPEED_KMH: float = 60

# Supply-chain benchmarks (kg CO₂ per km) for performance comparison.
INDUSTRY_BENCHMARKS: Mapping[str, Mapping[str, object]] = MappingProxyType({
    "retail": MappingProxyType({
        "carbon_per_km": 0.15,
        "description": "Average retail supply chain",
    }),
    "sustainable": MappingProxyType({
        "carbon_per_km": 0.08,
        "description": "Sustainable retail leaders",
    }),
    "green": MappingProxyType({
        "carbon_per_km": 0.05,
        "description": "Green retail innovators",
    }),
})

# Share of diesel emissions left after switching the same shipment to electric.
ELECTRIC_CARBON_RATIO: float = 0.33


def get_emission_factor(transport_mode: str | None, vehicle_type: str | None = None) -> float:
    """
    Return kg CO₂ / km / ton for a transport mode and vehicle type.

    rail / ship / air use the mode-level factor regardless of vehicle.
    Road modes index by vehicle type; an unknown mode or vehicle falls back
    to the diesel truck factor.
    """
    mode = (transport_mode or "").strip().lower()
    if mode in MODE_EMISSION_FACTORS:
        return MODE_EMISSION_FACTORS[mode]
    vehicle = (vehicle_type or DEFAULT_VEHICLE_TYPE).strip().lower()
    return ROAD_EMISSION_FACTORS.get(mode, {}).get(vehicle, DEFAULT_EMISSION_FACTOR)


def default_vehicle_type(transport_mode: str | None) -> str:
    """Vehicle recorded for a shipment when the caller omits one."""
    return MODE_DEFAULT_VEHICLE.get((transport_mode or "").lower(), DEFAULT_VEHICLE_TYPE)


def average_speed(transport_mode: str | None) -> float:
    return AVERAGE_SPEED_KMH.get((transport_mode or "").lower(), DEFAULT_SPEED_KMH)
