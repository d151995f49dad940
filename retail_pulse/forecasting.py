"""
forecasting.py – Demand-based waste prediction for a product, and accuracy
scoring for resolved waste alerts.

The prediction is a deterministic formula, not a trained model:

    avg_daily_demand   = Σ shipped quantity over the last 30 days ÷ 30
    predicted_demand   = avg_daily_demand × horizon_days
    predicted_waste    = max(0, current_stock − predicted_demand)
    waste_percentage   = predicted_waste ÷ current_stock × 100
    confidence         = min(95, 50 + 2 × shipments_observed)
"""
from __future__ import annotations

import logging
from typing import Any, Iterable

from retail_pulse.constants import DEFAULT_SPOILAGE_RATE, DEMAND_LOOKBACK_DAYS
from retail_pulse.validators import to_non_negative, to_number

logger = logging.getLogger(__name__)

MAX_CONFIDENCE = 95
BASE_CONFIDENCE = 50
CONFIDENCE_PER_SHIPMENT = 2


def _r2(value: float) -> float:
    return round(value, 2)


def prediction_risk_level(waste_percentage: float) -> str:
    """Raw-percentage bands used for ad-hoc predictions (strict bounds)."""
    if waste_percentage > 30:
        return "critical"
    if waste_percentage > 20:
        return "high"
    if waste_percentage > 10:
        return "medium"
    return "low"


def predict_waste(
    current_stock: Any,
    recent_quantities: Iterable[Any],
    days: int = 7,
    base_spoilage_rate: Any = DEFAULT_SPOILAGE_RATE,
    price: Any = 0,
) -> dict[str, Any]:
    """
    Forecast unsold stock over the next *days* days.

    Parameters
    ──────────
    current_stock      : units on hand
    recent_quantities  : quantities of the product's shipments in the last 30 days
    days               : forecast horizon
    base_spoilage_rate : product spoilage percentage, reported as a factor
    price              : unit price used to value the recommendations

    Returns a dict with ``prediction``, ``factors`` and ``recommendations``.
    """
    quantities = [to_non_negative(q) for q in recent_quantities]
    stock = to_non_negative(current_stock)
    horizon = max(0, int(to_number(days, 7)))
    spoilage = to_number(base_spoilage_rate, DEFAULT_SPOILAGE_RATE)
    unit_price = to_non_negative(price)

    avg_daily_demand = sum(quantities) / DEMAND_LOOKBACK_DAYS
    predicted_demand = avg_daily_demand * horizon
    predicted_waste = max(0.0, stock - predicted_demand)
    waste_pct = (predicted_waste / stock) * 100 if stock > 0 else 0.0
    confidence = min(MAX_CONFIDENCE, BASE_CONFIDENCE + len(quantities) * CONFIDENCE_PER_SHIPMENT)
    risk_level = prediction_risk_level(waste_pct)

    logger.debug(
        "Waste forecast | stock=%.2f demand=%.2f/day × %d = %.2f → waste %.2f (%.2f%%, %s)",
        stock, avg_daily_demand, horizon, predicted_demand, predicted_waste, waste_pct, risk_level,
    )

    factors = [
        {
            "name": "Historical Demand",
            "impact": 1 if avg_daily_demand > 0 else -1,
            "description": f"Average daily demand: {_r2(avg_daily_demand)} units",
        },
        {
            "name": "Current Stock",
            "impact": -1 if stock > predicted_demand else 1,
            "description": f"Current stock: {stock:g} units",
        },
        {
            "name": "Base Spoilage Rate",
            "impact": -1 if spoilage > 10 else 1,
            "description": f"Base spoilage rate: {spoilage:g}%",
        },
    ]

    recommendations: list[dict[str, Any]] = []
    if waste_pct > 20:
        recommendations.append({
            "action": "Implement Discount Pricing",
            "impact": "high",
            "description": "Offer 20-30% discount to increase sales velocity",
            "estimated_savings": _r2(predicted_waste * unit_price * 0.5),
        })
    if stock > predicted_demand * 2:
        recommendations.append({
            "action": "Transfer to Other Stores",
            "impact": "medium",
            "description": "Transfer excess inventory to stores with higher demand",
            "estimated_savings": _r2(predicted_waste * unit_price * 0.3),
        })
    if waste_pct > 15:
        recommendations.append({
            "action": "Launch Promotional Campaign",
            "impact": "medium",
            "description": "Create targeted marketing campaign to boost sales",
            "estimated_savings": _r2(predicted_waste * unit_price * 0.4),
        })

    return {
        "prediction": {
            "days": horizon,
            "predicted_demand": _r2(predicted_demand),
            "predicted_waste": _r2(predicted_waste),
            "predicted_waste_percentage": _r2(waste_pct),
            "risk_level": risk_level,
            "confidence": confidence,
        },
        "factors": factors,
        "recommendations": recommendations,
    }


def calc_prediction_accuracy(predicted_qty: Any, actual_qty: Any) -> float | None:
    """
    Accuracy (0–100) of a waste prediction once the real waste is known.

    Returns None when nothing was predicted, since the relative error is
    undefined.
    """
    predicted = to_number(predicted_qty)
    if predicted <= 0 or actual_qty is None:
        return None
    error_pct = abs((to_number(actual_qty) - predicted) / predicted * 100)
    return _r2(max(0.0, 100 - error_pct))
