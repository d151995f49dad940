"""
analytics.py – Read-only aggregations over windowed entity populations.

The functions receive lists of stored records (dicts as returned by
retail_pulse.db) and never query anything themselves.  Money and carbon
totals are rounded to 2 decimals, per-unit and per-km ratios to 3.
"""
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from retail_pulse.calculations import alert_potential_savings, green_score_of
from retail_pulse.constants import ALERT_ACTIVE, ALERT_DISMISSED, ALERT_RESOLVED, DEFAULT_PERIOD, PERIOD_DAYS
from retail_pulse.emission_factors import ELECTRIC_CARBON_RATIO, INDUSTRY_BENCHMARKS
from retail_pulse.validators import to_datetime, to_number

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]

WASTE_UNIT_COST = 10
LOW_GREEN_SCORE = 50
LOW_GREEN_SAVINGS_RATE = 0.05
TOP_N = 10


def _r2(value: float) -> float:
    return round(value, 2)


def _r3(value: float) -> float:
    return round(value, 3)


def window_start(period: str | None, now: datetime | None = None) -> datetime:
    """Start of the analytics window; unknown periods fall back to 30 days."""
    now = now or datetime.now(timezone.utc)
    days = PERIOD_DAYS.get(period or DEFAULT_PERIOD, PERIOD_DAYS[DEFAULT_PERIOD])
    return now - timedelta(days=days)


def _day(value: Any) -> str | None:
    dt = to_datetime(value)
    return dt.strftime("%Y-%m-%d") if dt else None


def _carbon(shipment: Record) -> float:
    return to_number(shipment.get("carbon_kg"))


def _daily_sum(records: list[Record], date_key: str, value=None) -> list[dict[str, Any]]:
    totals: dict[str, float] = defaultdict(float)
    for record in records:
        day = _day(record.get(date_key))
        if day is None:
            continue
        totals[day] += value(record) if value else 1
    return [{"date": day, "value": total} for day, total in sorted(totals.items())]


def daily_carbon(shipments: list[Record]) -> list[dict[str, Any]]:
    return [
        {"date": row["date"], "carbon": _r2(row["value"])}
        for row in _daily_sum(shipments, "timestamp", _carbon)
    ]


def daily_alerts(alerts: list[Record]) -> list[dict[str, Any]]:
    return [
        {"date": row["date"], "count": int(row["value"])}
        for row in _daily_sum(alerts, "alert_date")
    ]


def _group_carbon(shipments: list[Record], key) -> dict[str, dict[str, float]]:
    groups: dict[str, dict[str, float]] = {}
    for shipment in shipments:
        bucket = groups.setdefault(key(shipment), {"total": 0.0, "count": 0, "avg": 0.0})
        bucket["total"] += _carbon(shipment)
        bucket["count"] += 1
    for bucket in groups.values():
        bucket["avg"] = _r2(bucket["total"] / bucket["count"])
        bucket["total"] = _r2(bucket["total"])
    return groups


def carbon_by_mode(shipments: list[Record]) -> dict[str, dict[str, float]]:
    return _group_carbon(shipments, lambda s: s.get("transport_mode") or "unknown")


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


# ─────────────────────────────────────────────────────────────────────────────
# Dashboard
# ─────────────────────────────────────────────────────────────────────────────

def calc_potential_savings(shipments: list[Record], products: list[Record], alerts: list[Record]) -> dict[str, float]:
    """
    Savings available from the current population.

    * carbon: diesel shipments re-run on electric (a third of the carbon)
    * waste:  predicted waste on active alerts, valued at $10 per unit
    * cost:   5 % of the price of every product scoring below 50
    """
    carbon = sum(
        _carbon(s) * (1 - ELECTRIC_CARBON_RATIO)
        for s in shipments if s.get("transport_mode") == "diesel"
    )
    waste = cost = 0.0
    for alert in alerts:
        qty = to_number(alert.get("predicted_waste_qty"))
        if alert.get("status") == ALERT_ACTIVE and qty > 0:
            waste += qty
            cost += qty * WASTE_UNIT_COST
    for product in products:
        if green_score_of(product) < LOW_GREEN_SCORE:
            cost += to_number(product.get("price")) * LOW_GREEN_SAVINGS_RATE
    return {
        "carbon_savings": _r2(carbon),
        "waste_savings": _r2(waste),
        "cost_savings": _r2(cost),
        "total_savings": _r2(carbon + waste + cost),
    }


def dashboard_summary(
    shipments: list[Record],
    suppliers: list[Record],
    products: list[Record],
    alerts: list[Record],
) -> dict[str, Any]:
    total_carbon = sum(_carbon(s) for s in shipments)
    return {
        "summary": {
            "total_carbon": _r2(total_carbon),
            "total_shipments": len(shipments),
            "avg_carbon_per_shipment": _r2(total_carbon / len(shipments)) if shipments else 0,
            "total_suppliers": len(suppliers),
            "avg_esg_score": _r2(_mean([to_number(s.get("esg_score")) for s in suppliers])),
            "total_products": len(products),
            "avg_green_score": _r2(_mean([green_score_of(p) for p in products])),
            "active_alerts": sum(1 for a in alerts if a.get("status") == ALERT_ACTIVE),
            "critical_alerts": sum(1 for a in alerts if a.get("risk_level") == "critical"),
        },
        "trends": {
            "daily_carbon": daily_carbon(shipments),
            "daily_alerts": daily_alerts(alerts),
        },
        "efficiency": {
            "transport_modes": dict(Counter(s.get("transport_mode") or "unknown" for s in shipments)),
            "carbon_by_mode": carbon_by_mode(shipments),
            "potential_savings": calc_potential_savings(shipments, products, alerts),
        },
    }


# ─────────────────────────────────────────────────────────────────────────────
# Shipment carbon and efficiency
# ─────────────────────────────────────────────────────────────────────────────

def carbon_analytics(shipments: list[Record]) -> dict[str, Any]:
    total_carbon = sum(_carbon(s) for s in shipments)
    return {
        "summary": {
            "total_carbon": _r2(total_carbon),
            "total_shipments": len(shipments),
            "avg_carbon_per_shipment": _r2(total_carbon / len(shipments)) if shipments else 0,
        },
        "carbon_by_transport": carbon_by_mode(shipments),
        "carbon_by_supplier": _group_carbon(shipments, lambda s: s.get("supplier_name") or "Unknown"),
        "daily_carbon": daily_carbon(shipments),
    }


def _efficiency_rows(shipments: list[Record]) -> list[dict[str, Any]]:
    """Per-shipment ratios; shipments without distance or quantity have none."""
    rows = []
    for s in shipments:
        distance = to_number(s.get("distance_km"))
        quantity = to_number(s.get("quantity"))
        if distance <= 0 or quantity <= 0:
            continue
        carbon = _carbon(s)
        rows.append({
            "id": s.get("id"),
            "carbon_per_unit": carbon / quantity,
            "carbon_per_km": carbon / distance,
            "carbon_kg": carbon,
            "transport_mode": s.get("transport_mode"),
            "vehicle_type": s.get("vehicle_type"),
            "distance": distance,
            "quantity": quantity,
        })
    return rows


def efficiency_analytics(shipments: list[Record]) -> dict[str, Any]:
    rows = _efficiency_rows(shipments)
    skipped = len(shipments) - len(rows)
    if skipped:
        logger.debug("Efficiency | %d shipment(s) without distance or quantity skipped", skipped)

    by_mode: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for row in rows:
        by_mode[row["transport_mode"] or "unknown"].append(row)

    mode_averages = {
        mode: {
            "avg_carbon_per_unit": _r3(_mean([r["carbon_per_unit"] for r in items])),
            "avg_carbon_per_km": _r3(_mean([r["carbon_per_km"] for r in items])),
            "count": len(items),
            "total_distance": _r2(sum(r["distance"] for r in items)),
            "total_carbon": _r2(sum(r["carbon_kg"] for r in items)),
        }
        for mode, items in by_mode.items()
    }

    most_efficient = [
        {**r, "carbon_per_unit": _r3(r["carbon_per_unit"]), "carbon_per_km": _r3(r["carbon_per_km"])}
        for r in sorted(rows, key=lambda r: r["carbon_per_unit"])[:TOP_N]
    ]

    total_carbon = sum(r["carbon_kg"] for r in rows)
    total_quantity = sum(r["quantity"] for r in rows)
    savings = sum(
        r["carbon_kg"] * (1 - ELECTRIC_CARBON_RATIO)
        for r in rows if r["transport_mode"] == "diesel"
    )

    return {
        "summary": {
            "total_shipments": len(shipments),
            "total_distance": _r2(sum(r["distance"] for r in rows)),
            "total_carbon": _r2(total_carbon),
            "avg_carbon_per_unit": _r3(total_carbon / total_quantity) if total_quantity else 0,
            "potential_savings": _r2(savings),
        },
        "mode_averages": mode_averages,
        "most_efficient": most_efficient,
    }


def performance_comparison(shipments: list[Record]) -> dict[str, Any]:
    """Carbon per km against the industry benchmarks."""
    total_carbon = sum(_carbon(s) for s in shipments)
    total_distance = sum(to_number(s.get("distance_km")) for s in shipments)
    per_km = total_carbon / total_distance if total_distance > 0 else 0.0

    comparison = {
        name: {
            "benchmark": bench["carbon_per_km"],
            "percentage": round(per_km / bench["carbon_per_km"] * 100),
            "status": "better" if per_km <= bench["carbon_per_km"] else "worse",
        }
        for name, bench in INDUSTRY_BENCHMARKS.items()
    }
    return {
        "performance": {
            "current": {
                "carbon_per_km": _r3(per_km),
                "total_carbon": _r2(total_carbon),
                "total_distance": _r2(total_distance),
            },
            "comparison": comparison,
        },
        "improvement_potential": {
            "to_sustainable": _r2((per_km - INDUSTRY_BENCHMARKS["sustainable"]["carbon_per_km"]) * total_distance),
            "to_green": _r2((per_km - INDUSTRY_BENCHMARKS["green"]["carbon_per_km"]) * total_distance),
        },
        "benchmarks": {name: dict(bench) for name, bench in INDUSTRY_BENCHMARKS.items()},
    }


# ─────────────────────────────────────────────────────────────────────────────
# Products
# ─────────────────────────────────────────────────────────────────────────────

def _score_groups(products: list[Record], key: str) -> dict[str, dict[str, Any]]:
    groups: dict[str, list[float]] = defaultdict(list)
    for product in products:
        groups[product.get(key) or "Unknown"].append(green_score_of(product))
    return {
        name: {"avg_score": _r2(_mean(scores)), "count": len(scores)}
        for name, scores in groups.items()
    }


def green_score_analytics(products: list[Record]) -> dict[str, Any]:
    scores = [green_score_of(p) for p in products]
    ranked = sorted(products, key=green_score_of, reverse=True)
    return {
        "summary": {
            "total_products": len(products),
            "avg_green_score": _r2(_mean(scores)),
        },
        "score_by_category": _score_groups(products, "category"),
        "score_by_packaging": _score_groups(products, "packaging_type"),
        "top_products": [
            {
                "id": p.get("id"),
                "name": p.get("name"),
                "category": p.get("category"),
                "green_score": green_score_of(p),
            }
            for p in ranked[:TOP_N]
        ],
        "distribution": {
            "excellent": sum(1 for s in scores if s >= 80),
            "good": sum(1 for s in scores if 60 <= s < 80),
            "fair": sum(1 for s in scores if 40 <= s < 60),
            "poor": sum(1 for s in scores if s < 40),
        },
    }


# ─────────────────────────────────────────────────────────────────────────────
# Waste alerts
# ─────────────────────────────────────────────────────────────────────────────

def _accuracy_values(alerts: list[Record]) -> list[float]:
    return [to_number(a["accuracy"]) for a in alerts if a.get("accuracy") is not None]


def alert_summary(alerts: list[Record]) -> dict[str, Any]:
    statuses = Counter(a.get("status") for a in alerts)
    return {
        "summary": {
            "total_alerts": len(alerts),
            "active_alerts": statuses.get(ALERT_ACTIVE, 0),
            "resolved_alerts": statuses.get(ALERT_RESOLVED, 0),
            "dismissed_alerts": statuses.get(ALERT_DISMISSED, 0),
            "total_potential_savings": _r2(
                sum(alert_potential_savings(a.get("predicted_waste_qty")) for a in alerts)
            ),
            "avg_accuracy": _r2(_mean(_accuracy_values(alerts))),
        },
        "alerts_by_risk": dict(Counter(a.get("risk_level") for a in alerts)),
        "alerts_by_status": dict(statuses),
        "daily_alerts": daily_alerts(alerts),
    }


def _accuracy_groups(alerts: list[Record], key) -> dict[str, dict[str, Any]]:
    groups: dict[str, list[float]] = defaultdict(list)
    for alert in alerts:
        groups[key(alert)].append(to_number(alert["accuracy"]))
    return {
        name: {"avg_accuracy": _r2(_mean(values)), "count": len(values)}
        for name, values in groups.items()
    }


def accuracy_analytics(alerts: list[Record]) -> dict[str, Any]:
    """Accuracy of resolved predictions; alerts without an accuracy are ignored."""
    scored = [a for a in alerts if a.get("accuracy") is not None]
    return {
        "summary": {
            "total_resolved": len(scored),
            "avg_accuracy": _r2(_mean(_accuracy_values(scored))),
        },
        "accuracy_by_risk": _accuracy_groups(scored, lambda a: a.get("risk_level") or "unknown"),
        "accuracy_by_category": _accuracy_groups(scored, lambda a: a.get("product_category") or "Unknown"),
    }


# ─────────────────────────────────────────────────────────────────────────────
# Suppliers
# ─────────────────────────────────────────────────────────────────────────────

def supplier_analytics(supplier: Record, shipments: list[Record]) -> dict[str, Any]:
    metrics = supplier.get("sustainability_metrics") or {}
    total_carbon = sum(_carbon(s) for s in shipments)
    return {
        "supplier": {
            "name": supplier.get("name"),
            "esg_score": supplier.get("esg_score"),
            "certification_level": supplier.get("certification_level"),
            "status": supplier.get("status"),
        },
        "shipments": {
            "total": len(shipments),
            "total_carbon": _r2(total_carbon),
            "avg_carbon_per_shipment": _r2(total_carbon / len(shipments)) if shipments else 0,
            "transport_modes": dict(Counter(s.get("transport_mode") or "unknown" for s in shipments)),
        },
        "sustainability": {
            "carbon_footprint": metrics.get("carbon_footprint"),
            "waste_reduction": metrics.get("waste_reduction"),
            "renewable_energy": metrics.get("renewable_energy"),
        },
    }
