"""
routing.py – Green route planning between two coordinates.

Distances use the haversine great-circle formula; emissions reuse the
shipment emission factor table, so a route and a shipment with the same
inputs always report the same carbon.
"""
from __future__ import annotations

import math
from typing import Any

from retail_pulse.emission_factors import (
    MODE_BENCHMARKS,
    average_speed,
    get_emission_factor,
)
from retail_pulse.validators import to_non_negative

EARTH_RADIUS_KM = 6371.0
DEFAULT_ROUTE_WEIGHT_KG = 1000.0

GREEN_DETOUR = 1.1
MULTIMODAL_DETOUR = 1.2
MULTIMODAL_MIN_DISTANCE_KM = 100


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def parse_coordinates(raw: str) -> tuple[float, float]:
    """Parse ``"lat,lng"``; raises ValueError on anything else."""
    parts = [p.strip() for p in (raw or "").split(",")]
    if len(parts) != 2:
        raise ValueError('Invalid coordinates format. Use "lat,lng"')
    try:
        lat, lng = float(parts[0]), float(parts[1])
    except ValueError as exc:
        raise ValueError('Invalid coordinates format. Use "lat,lng"') from exc
    if math.isnan(lat) or math.isnan(lng):
        raise ValueError('Invalid coordinates format. Use "lat,lng"')
    return lat, lng


def route_carbon(distance_km: float, weight_kg: float, transport_mode: str, vehicle_type: str | None) -> float:
    """kg CO₂ for moving *weight_kg* over *distance_km*, rounded to 2 decimals."""
    factor = get_emission_factor(transport_mode, vehicle_type)
    return round(distance_km * factor * (weight_kg / 1000), 2)


def efficiency_rating(carbon_per_ton_km: float) -> str:
    if carbon_per_ton_km < 0.05:
        return "excellent"
    if carbon_per_ton_km < 0.1:
        return "good"
    if carbon_per_ton_km < 0.2:
        return "fair"
    return "poor"


def efficiency_comparison(transport_mode: str, carbon_per_ton_km: float) -> str:
    benchmark = MODE_BENCHMARKS.get(transport_mode, MODE_BENCHMARKS["diesel"])
    percentage = round(carbon_per_ton_km / benchmark * 100)
    if percentage <= 100:
        return f"{percentage}% of typical {transport_mode} emissions"
    return f"{percentage}% of typical {transport_mode} emissions (above average)"


def _minutes(distance_km: float, transport_mode: str) -> int:
    return round(distance_km / average_speed(transport_mode) * 60)


def generate_route_options(
    origin: tuple[float, float],
    destination: tuple[float, float],
    weight_kg: Any = DEFAULT_ROUTE_WEIGHT_KG,
    transport_mode: str = "diesel",
    vehicle_type: str = "truck",
) -> list[dict[str, Any]]:
    """
    Candidate routes for a delivery, lowest carbon first.

    Always offers the direct route in the requested mode.  Adds an electric
    truck alternative unless the mode is already electric or rail, and a
    rail-based multi-modal route for trips over 100 km.
    """
    from_lat, from_lng = origin
    to_lat, to_lng = destination
    weight = to_non_negative(weight_kg, DEFAULT_ROUTE_WEIGHT_KG) or DEFAULT_ROUTE_WEIGHT_KG
    distance = haversine_km(from_lat, from_lng, to_lat, to_lng)
    direct_carbon = route_carbon(distance, weight, transport_mode, vehicle_type)
    tons = weight / 1000

    direct_per_ton_km = direct_carbon / tons / distance if distance > 0 else 0.0
    routes = [{
        "id": 1,
        "name": "Direct Route",
        "description": "Most direct path using current transport mode",
        "waypoints": [
            {"lat": from_lat, "lng": from_lng, "name": "Origin"},
            {"lat": to_lat, "lng": to_lng, "name": "Destination"},
        ],
        "distance": round(distance, 2),
        "estimated_time": _minutes(distance, transport_mode),
        "carbon_footprint": direct_carbon,
        "transport_mode": transport_mode,
        "vehicle_type": vehicle_type,
        "efficiency": efficiency_rating(direct_per_ton_km),
        "savings": 0,
    }]

    if transport_mode not in ("electric", "rail"):
        green_distance = distance * GREEN_DETOUR
        green_carbon = route_carbon(green_distance, weight, "electric", "truck")
        routes.append({
            "id": 2,
            "name": "Green Alternative",
            "description": "Route optimized for lower emissions",
            "waypoints": [
                {"lat": from_lat, "lng": from_lng, "name": "Origin"},
                {"lat": to_lat, "lng": to_lng, "name": "Destination"},
            ],
            "distance": round(green_distance, 2),
            "estimated_time": _minutes(green_distance, "electric"),
            "carbon_footprint": green_carbon,
            "transport_mode": "electric",
            "vehicle_type": "truck",
            "efficiency": "excellent",
            "savings": round(direct_carbon - green_carbon, 2),
        })

    if distance > MULTIMODAL_MIN_DISTANCE_KM:
        rail_distance = distance * MULTIMODAL_DETOUR
        rail_carbon = route_carbon(rail_distance, weight, "rail", "train")
        routes.append({
            "id": 3,
            "name": "Multi-modal Route",
            "description": "Combines rail and road transport for efficiency",
            "waypoints": [
                {"lat": from_lat, "lng": from_lng, "name": "Origin (Road)"},
                {"lat": (from_lat + to_lat) / 2, "lng": (from_lng + to_lng) / 2, "name": "Rail Transfer"},
                {"lat": to_lat, "lng": to_lng, "name": "Destination (Road)"},
            ],
            "distance": round(rail_distance, 2),
            "estimated_time": _minutes(rail_distance, "rail"),
            "carbon_footprint": rail_carbon,
            "transport_mode": "rail",
            "vehicle_type": "train",
            "efficiency": "excellent",
            "savings": round(direct_carbon - rail_carbon, 2),
        })

    return sorted(routes, key=lambda r: r["carbon_footprint"])


def calculate_route_carbon(
    distance_km: Any,
    transport_mode: str,
    vehicle_type: str | None = "truck",
    weight_kg: Any = DEFAULT_ROUTE_WEIGHT_KG,
) -> dict[str, Any]:
    """Carbon totals for a single leg, with per-km and per-ton-km ratios."""
    distance = to_non_negative(distance_km)
    weight = to_non_negative(weight_kg, DEFAULT_ROUTE_WEIGHT_KG)
    carbon = distance * get_emission_factor(transport_mode, vehicle_type) * (weight / 1000)
    per_km = carbon / distance if distance > 0 else 0.0
    per_ton_km = carbon / (weight / 1000) / distance if distance > 0 and weight > 0 else 0.0
    return {
        "carbon_footprint": {
            "total_kg": round(carbon, 2),
            "per_km": round(per_km, 3),
            "per_ton_km": round(per_ton_km, 3),
        },
        "efficiency": {
            "rating": efficiency_rating(per_ton_km),
            "comparison": efficiency_comparison(transport_mode, per_ton_km),
        },
    }


TRANSPORT_MODE_CATALOGUE: tuple[dict[str, Any], ...] = (
    {
        "mode": "electric",
        "vehicles": ["truck", "van", "car"],
        "avg_efficiency": 0.04,
        "pros": ["Zero direct emissions", "Lower operating costs", "Quieter operation"],
        "cons": ["Limited range", "Charging infrastructure", "Higher upfront cost"],
        "best_for": ["Urban deliveries", "Short distances", "Last-mile delivery"],
    },
    {
        "mode": "hybrid",
        "vehicles": ["truck", "van", "car"],
        "avg_efficiency": 0.08,
        "pros": ["Reduced emissions", "Better fuel economy", "Flexible operation"],
        "cons": ["Higher cost", "Complex maintenance", "Limited electric range"],
        "best_for": ["Mixed urban/rural routes", "Medium distances", "Variable loads"],
    },
    {
        "mode": "rail",
        "vehicles": ["train"],
        "avg_efficiency": 0.03,
        "pros": ["Very efficient", "High capacity", "Low emissions"],
        "cons": ["Limited routes", "Fixed schedules", "Last-mile challenges"],
        "best_for": ["Long distances", "Bulk cargo", "Intercity transport"],
    },
    {
        "mode": "ship",
        "vehicles": ["ship"],
        "avg_efficiency": 0.02,
        "pros": ["Lowest emissions", "High capacity", "Global reach"],
        "cons": ["Slow speed", "Port limitations", "Weather dependent"],
        "best_for": ["International shipping", "Bulk commodities", "Non-urgent cargo"],
    },
    {
        "mode": "diesel",
        "vehicles": ["truck", "van", "car"],
        "avg_efficiency": 0.15,
        "pros": ["Wide availability", "Proven technology", "Long range"],
        "cons": ["High emissions", "Fuel costs", "Environmental impact"],
        "best_for": ["Rural areas", "Heavy loads", "Long distances without alternatives"],
    },
    {
        "mode": "air",
        "vehicles": ["plane"],
        "avg_efficiency": 0.50,
        "pros": ["Fastest delivery", "Global reach", "Reliable schedules"],
        "cons": ["Highest emissions", "High cost", "Limited capacity"],
        "best_for": ["Urgent deliveries", "High-value goods", "International express"],
    },
)


def transport_modes() -> list[dict[str, Any]]:
    return [dict(m) for m in TRANSPORT_MODE_CATALOGUE]
