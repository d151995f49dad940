"""
calculations.py – Derived metric engine for shipments, products, suppliers and waste alerts.

Every function here is pure: it reads attribute values, returns the derived
value, and never touches the database.  The service layer calls them
immediately before a write and stores the returned values on the entity.

Derived field formulas
──────────────────────
 Entity      Field                        Formula
 ─────────────────────────────────────────────────────────────────────────
 Shipment    carbon_kg                    distance_km × factor × (quantity + packaging) / 1000
 Product     sustainability_metrics       50 + packaging + carbon band + water band
              .green_score                 + 5 × certifications + spoilage band, clamp [0, 100]
 Supplier    esg_score                    certification + carbon band + waste band
                                           + renewable band + min(5 × verified docs, 20)
 WasteAlert  risk_level                   step(pct × confidence / 100): 30 / 20 / 10
 WasteAlert  recommendations              discount / transfer / promotion rules

Aggregate sustainability score (not persisted)
──────────────────────────────────────────────
 overall = 0.30 × carbon + 0.25 × supplier + 0.25 × product + 0.20 × waste

Inputs outside their documented domain (None, negative numbers, unknown enum
values) fall back to defaults instead of raising.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from retail_pulse.constants import (
    ALERT_ACTIVE,
    ALERT_RESOLVED,
    CERTIFICATION_BONUS,
    CERTIFICATION_SCORES,
    DEFAULT_CONFIDENCE,
    DEFAULT_SPOILAGE_RATE,
    GREEN_SCORE_BASE,
    IMPACT_ORDER,
    IMPROVEMENT_THRESHOLD,
    PACKAGING_SCORES,
    SCORE_WEIGHTS,
    VERIFIED_DOC_BONUS,
    VERIFIED_DOC_BONUS_CAP,
)
from retail_pulse.emission_factors import get_emission_factor
from retail_pulse.validators import to_datetime, to_non_negative, to_number, unique

logger = logging.getLogger(__name__)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _metric(metrics: Mapping[str, Any] | None, key: str) -> float:
    return to_number((metrics or {}).get(key))


# ─────────────────────────────────────────────────────────────────────────────
# Result dataclasses
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class WasteRiskAssessment:
    """Risk level and recommended actions for one waste alert."""
    risk_level: str
    adjusted_risk: float
    recommendations: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class SustainabilityScore:
    """Weighted organisational score returned by calc_sustainability_score()."""
    carbon_score: float
    supplier_score: float
    product_score: float
    waste_score: float
    overall_score: float
    category: dict[str, str] = field(default_factory=dict)
    recommendations: list[dict[str, Any]] = field(default_factory=list)

    @property
    def breakdown(self) -> dict[str, float]:
        return {
            "carbon_score": self.carbon_score,
            "supplier_score": self.supplier_score,
            "product_score": self.product_score,
            "waste_score": self.waste_score,
            "overall_score": self.overall_score,
        }

    def as_dict(self) -> dict[str, Any]:
        return {
            "score": self.breakdown,
            "category": dict(self.category),
            "recommendations": [dict(r) for r in self.recommendations],
        }


# ─────────────────────────────────────────────────────────────────────────────
# 1. Shipment carbon footprint
# Formula: carbon_kg = distance_km × emission_factor × (quantity + packaging) / 1000
# ─────────────────────────────────────────────────────────────────────────────

def calc_carbon_footprint(
    transport_mode: str | None,
    distance_km: Any,
    quantity: Any,
    vehicle_type: str | None = None,
    packaging_weight: Any = 0,
) -> float:
    """
    Return kg CO₂ emitted by a shipment, rounded to 2 decimals.

    A missing or zero distance, transport mode or quantity yields 0.0.
    Vehicle type only matters for road modes and defaults to truck.
    """
    distance = to_number(distance_km)
    qty = to_number(quantity)
    if not distance or not transport_mode or not qty:
        logger.debug(
            "Carbon skipped | mode=%r distance=%r quantity=%r", transport_mode, distance_km, quantity,
        )
        return 0.0

    factor = get_emission_factor(transport_mode, vehicle_type)
    total_weight_tons = (qty + to_non_negative(packaging_weight)) / 1_000.0
    carbon_kg = round(distance * factor * total_weight_tons, 2)

    logger.debug(
        "Carbon | %s/%s %.2f km × %.4f × %.4f t = %.2f kg CO₂",
        transport_mode, vehicle_type or "truck", distance, factor, total_weight_tons, carbon_kg,
    )
    return max(0.0, carbon_kg)


# ─────────────────────────────────────────────────────────────────────────────
# 2. Product green score
# Base 50, additive and independent bands, clamp [0, 100]
# ─────────────────────────────────────────────────────────────────────────────

def calc_green_score(
    packaging_type: str | None,
    carbon_footprint: Any = 0,
    water_footprint: Any = 0,
    certifications: Iterable[str] | None = None,
    base_spoilage_rate: Any = DEFAULT_SPOILAGE_RATE,
) -> int:
    """Return the 0–100 sustainability score for a product."""
    score = GREEN_SCORE_BASE

    score += PACKAGING_SCORES.get(packaging_type or "", 0)

    carbon = to_number(carbon_footprint)
    if carbon < 1:
        score += 20
    elif carbon < 5:
        score += 15
    elif carbon < 10:
        score += 10
    elif carbon > 20:
        score -= 15

    water = to_number(water_footprint)
    if water < 10:
        score += 15
    elif water < 50:
        score += 10
    elif water > 100:
        score -= 10

    if isinstance(certifications, str):
        certifications = [certifications]
    score += len(unique(certifications)) * CERTIFICATION_BONUS

    spoilage = to_number(base_spoilage_rate, DEFAULT_SPOILAGE_RATE)
    if spoilage < 2:
        score += 10
    elif spoilage < 5:
        score += 5
    elif spoilage > 15:
        score -= 10

    return int(round(_clamp(score)))


def calc_product_green_score(product: Mapping[str, Any]) -> int:
    """calc_green_score() over a stored product record."""
    metrics = product.get("sustainability_metrics") or {}
    return calc_green_score(
        packaging_type=product.get("packaging_type"),
        carbon_footprint=_metric(metrics, "carbon_footprint"),
        water_footprint=_metric(metrics, "water_footprint"),
        certifications=product.get("certifications"),
        base_spoilage_rate=product.get("base_spoilage_rate", DEFAULT_SPOILAGE_RATE),
    )


# ─────────────────────────────────────────────────────────────────────────────
# 3. Supplier ESG score
# certification + metric bands + verified document bonus, clamp [0, 100]
# ─────────────────────────────────────────────────────────────────────────────

def count_verified_docs(audit_docs: Iterable[Mapping[str, Any]] | None) -> int:
    return sum(1 for doc in audit_docs or () if isinstance(doc, Mapping) and doc.get("verified") is True)


def calc_esg_score(
    certification_level: str | None,
    carbon_footprint: Any = 0,
    waste_reduction: Any = 0,
    renewable_energy: Any = 0,
    verified_docs: Any = 0,
) -> int:
    """Return the 0–100 ESG score for a supplier."""
    score = CERTIFICATION_SCORES.get(certification_level or "None", 0)

    carbon = to_number(carbon_footprint)
    if carbon < 10:
        score += 20
    elif carbon < 25:
        score += 15
    elif carbon < 50:
        score += 10

    waste = to_number(waste_reduction)
    if waste > 50:
        score += 20
    elif waste > 25:
        score += 15
    elif waste > 10:
        score += 10

    renewable = to_number(renewable_energy)
    if renewable > 80:
        score += 20
    elif renewable > 50:
        score += 15
    elif renewable > 20:
        score += 10

    docs = int(to_non_negative(verified_docs))
    score += min(docs * VERIFIED_DOC_BONUS, VERIFIED_DOC_BONUS_CAP)

    return int(round(_clamp(score)))


def calc_supplier_esg_score(supplier: Mapping[str, Any]) -> int:
    """calc_esg_score() over a stored supplier record."""
    metrics = supplier.get("sustainability_metrics") or {}
    return calc_esg_score(
        certification_level=supplier.get("certification_level"),
        carbon_footprint=_metric(metrics, "carbon_footprint"),
        waste_reduction=_metric(metrics, "waste_reduction"),
        renewable_energy=_metric(metrics, "renewable_energy"),
        verified_docs=count_verified_docs(supplier.get("audit_docs")),
    )


# ─────────────────────────────────────────────────────────────────────────────
# 4. Waste risk classification
# adjusted_risk = predicted_waste_pct × confidence / 100
# ─────────────────────────────────────────────────────────────────────────────

def calc_adjusted_risk(predicted_waste_percentage: Any, confidence: Any = DEFAULT_CONFIDENCE) -> float:
    return to_number(predicted_waste_percentage) * (to_number(confidence, DEFAULT_CONFIDENCE) / 100)


def calc_risk_level(predicted_waste_percentage: Any, confidence: Any = DEFAULT_CONFIDENCE) -> str:
    """Step function over the confidence-weighted waste percentage (bounds inclusive)."""
    adjusted = calc_adjusted_risk(predicted_waste_percentage, confidence)
    if adjusted >= 30:
        return "critical"
    if adjusted >= 20:
        return "high"
    if adjusted >= 10:
        return "medium"
    return "low"


def generate_waste_recommendations(
    predicted_waste_percentage: Any,
    current_stock: Any,
    predicted_waste_qty: Any,
) -> list[dict[str, Any]]:
    """Return the full recommendation list for an alert (zero to three entries)."""
    pct = to_number(predicted_waste_percentage)
    stock = to_number(current_stock)
    qty = to_non_negative(predicted_waste_qty)
    recommendations: list[dict[str, Any]] = []

    if pct > 20:
        recommendations.append({
            "action": "Discount Pricing",
            "impact": "high",
            "description": "Implement 20-30% discount to increase sales velocity",
            "estimated_savings": qty * 5,
        })

    if stock > qty * 2:
        recommendations.append({
            "action": "Transfer to Other Stores",
            "impact": "medium",
            "description": "Transfer excess inventory to stores with higher demand",
            "estimated_savings": qty * 3,
        })

    if pct > 15:
        recommendations.append({
            "action": "Promotional Campaign",
            "impact": "medium",
            "description": "Launch targeted marketing campaign to boost sales",
            "estimated_savings": qty * 4,
        })

    return recommendations


def classify_waste_risk(
    predicted_waste_percentage: Any,
    confidence: Any = DEFAULT_CONFIDENCE,
    current_stock: Any = 0,
    predicted_waste_qty: Any = 0,
) -> WasteRiskAssessment:
    """Risk level plus recommendations for one alert snapshot."""
    if confidence is None:
        confidence = DEFAULT_CONFIDENCE
    assessment = WasteRiskAssessment(
        risk_level=calc_risk_level(predicted_waste_percentage, confidence),
        adjusted_risk=calc_adjusted_risk(predicted_waste_percentage, confidence),
        recommendations=generate_waste_recommendations(
            predicted_waste_percentage, current_stock, predicted_waste_qty,
        ),
    )
    logger.debug(
        "Waste risk | pct=%r conf=%r adjusted=%.2f → %s (%d recommendations)",
        predicted_waste_percentage, confidence, assessment.adjusted_risk,
        assessment.risk_level, len(assessment.recommendations),
    )
    return assessment


# ─────────────────────────────────────────────────────────────────────────────
# 5. Aggregate sustainability score
# Populations are lists of stored records (dicts) for one analytics window.
# ─────────────────────────────────────────────────────────────────────────────

def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def green_score_of(product: Mapping[str, Any]) -> float:
    return to_number((product.get("sustainability_metrics") or {}).get("green_score"))


def calc_carbon_score(shipments: list[Mapping[str, Any]]) -> float:
    """Lower mean carbon per shipment scores higher; no shipments scores 0."""
    if not shipments:
        return 0
    avg = _mean([to_number(s.get("carbon_kg")) for s in shipments])
    if avg < 5:
        return 100
    if avg < 10:
        return 80
    if avg < 20:
        return 60
    if avg < 50:
        return 40
    return 20


def calc_supplier_score(suppliers: list[Mapping[str, Any]]) -> float:
    if not suppliers:
        return 0
    return min(100.0, _mean([to_number(s.get("esg_score")) for s in suppliers]))


def calc_product_score(products: list[Mapping[str, Any]]) -> float:
    if not products:
        return 0
    return min(100.0, _mean([green_score_of(p) for p in products]))


def calc_waste_score(alerts: list[Mapping[str, Any]]) -> float:
    """
    resolution_rate × 100 − critical_rate × 30, clamped to [0, 100].

    No alerts at all scores 100, not 0.  With alerts but none active the
    critical rate is 0.
    """
    if not alerts:
        return 100
    active = [a for a in alerts if a.get("status") == ALERT_ACTIVE]
    critical = [a for a in active if a.get("risk_level") == "critical"]
    resolved = [a for a in alerts if a.get("status") == ALERT_RESOLVED]

    resolution_rate = len(resolved) / len(alerts)
    critical_rate = len(critical) / len(active) if active else 0.0

    return _clamp(resolution_rate * 100 - critical_rate * 30)


_CATEGORIES = (
    (80, {"category": "Excellent", "color": "green", "description": "Leading sustainability performance"}),
    (60, {"category": "Good", "color": "blue", "description": "Above average sustainability performance"}),
    (40, {"category": "Fair", "color": "yellow", "description": "Average sustainability performance"}),
)
_POOR = {"category": "Poor", "color": "red", "description": "Below average sustainability performance"}


def get_score_category(score: float) -> dict[str, str]:
    for threshold, category in _CATEGORIES:
        if score >= threshold:
            return dict(category)
    return dict(_POOR)


_IMPROVEMENTS = (
    ("carbon_score", {
        "type": "carbon",
        "title": "Reduce Carbon Emissions",
        "description": "Switch to electric vehicles and optimize routes",
        "impact": "high",
        "potential_improvement": 20,
    }),
    ("supplier_score", {
        "type": "supplier",
        "title": "Improve Supplier ESG Scores",
        "description": "Work with suppliers to improve their sustainability practices",
        "impact": "medium",
        "potential_improvement": 15,
    }),
    ("product_score", {
        "type": "product",
        "title": "Enhance Product Sustainability",
        "description": "Improve packaging and sourcing practices",
        "impact": "medium",
        "potential_improvement": 15,
    }),
    ("waste_score", {
        "type": "waste",
        "title": "Reduce Waste",
        "description": "Implement better inventory management and waste reduction strategies",
        "impact": "high",
        "potential_improvement": 25,
    }),
)


def sort_by_impact(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Stable sort, high impact first."""
    return sorted(items, key=lambda r: IMPACT_ORDER.get(r.get("impact"), 0), reverse=True)


def get_improvement_recommendations(breakdown: Mapping[str, float]) -> list[dict[str, Any]]:
    recommendations = [
        dict(rec) for key, rec in _IMPROVEMENTS
        if breakdown.get(key, 0) < IMPROVEMENT_THRESHOLD
    ]
    return sort_by_impact(recommendations)


def calc_sustainability_score(
    shipments: list[Mapping[str, Any]],
    suppliers: list[Mapping[str, Any]],
    products: list[Mapping[str, Any]],
    alerts: list[Mapping[str, Any]],
) -> SustainabilityScore:
    """Combine the four sub-scores into one weighted organisational score."""
    carbon = calc_carbon_score(shipments)
    supplier = calc_supplier_score(suppliers)
    product = calc_product_score(products)
    waste = calc_waste_score(alerts)

    overall = round(
        carbon * SCORE_WEIGHTS["carbon"]
        + supplier * SCORE_WEIGHTS["supplier"]
        + product * SCORE_WEIGHTS["product"]
        + waste * SCORE_WEIGHTS["waste"],
        2,
    )
    result = SustainabilityScore(
        carbon_score=round(carbon, 2),
        supplier_score=round(supplier, 2),
        product_score=round(product, 2),
        waste_score=round(waste, 2),
        overall_score=overall,
    )
    result.category = get_score_category(overall)
    result.recommendations = get_improvement_recommendations(result.breakdown)

    logger.debug(
        "Sustainability | carbon=%.2f supplier=%.2f product=%.2f waste=%.2f → %.2f (%s)",
        carbon, supplier, product, waste, overall, result.category["category"],
    )
    return result


# ─────────────────────────────────────────────────────────────────────────────
# 6. Derived labels shown alongside stored records
# ─────────────────────────────────────────────────────────────────────────────

def score_category(score: Any) -> str:
    """Excellent / Good / Fair / Poor for ESG and green scores."""
    return get_score_category(to_number(score))["category"]


def carbon_efficiency(carbon_kg: Any, quantity: Any) -> str:
    qty = to_number(quantity)
    if qty <= 0:
        return "poor"
    per_unit = to_number(carbon_kg) / qty
    if per_unit < 0.1:
        return "excellent"
    if per_unit < 0.3:
        return "good"
    if per_unit < 0.5:
        return "fair"
    return "poor"


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def delivery_status(status: str | None, estimated_delivery: Any = None, now: datetime | None = None) -> str:
    if status == "delivered":
        return "completed"
    if status == "cancelled":
        return "cancelled"
    eta = to_datetime(estimated_delivery)
    if eta and _now(now) > eta:
        return "delayed"
    return "on-time"


def stock_status(current_stock: Any, reorder_point: Any = 10) -> str:
    stock = to_number(current_stock)
    if stock == 0:
        return "out-of-stock"
    if stock <= to_number(reorder_point, 10):
        return "low-stock"
    return "in-stock"


def alert_age_days(alert_date: Any, now: datetime | None = None) -> int:
    created = to_datetime(alert_date)
    if created is None:
        return 0
    return int((_now(now) - created).total_seconds() // 86_400)


def alert_urgency(predicted_date: Any, now: datetime | None = None) -> str:
    predicted = to_datetime(predicted_date)
    if predicted is None:
        return "normal"
    days = (predicted - _now(now)).total_seconds() // 86_400
    if days <= 1:
        return "immediate"
    if days <= 3:
        return "urgent"
    if days <= 7:
        return "high"
    return "normal"


def alert_potential_savings(predicted_waste_qty: Any) -> float:
    # flat valuation of 10 per wasted unit
    return to_non_negative(predicted_waste_qty) * 10


def derived_labels(table: str, record: Mapping[str, Any], now: datetime | None = None) -> dict[str, Any]:
    """Read-only labels returned alongside a stored record; never persisted."""
    if table == "shipments":
        return {
            "carbon_efficiency": carbon_efficiency(record.get("carbon_kg"), record.get("quantity")),
            "delivery_status": delivery_status(record.get("status"), record.get("estimated_delivery"), now),
        }
    if table == "products":
        inventory = record.get("inventory") or {}
        return {
            "green_score_category": score_category(green_score_of(record)),
            "stock_status": stock_status(inventory.get("current_stock"), inventory.get("reorder_point", 10)),
        }
    if table == "suppliers":
        return {"esg_category": score_category(record.get("esg_score"))}
    if table == "waste_alerts":
        return {
            "age_days": alert_age_days(record.get("alert_date"), now),
            "urgency": alert_urgency(record.get("predicted_date"), now),
            "potential_savings": alert_potential_savings(record.get("predicted_waste_qty")),
        }
    return {}
