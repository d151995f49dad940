"""
queries.py – Read paths of the API: load a windowed population, hand it to
retail_pulse.analytics / calculations, echo the window back.

Every function takes the authenticated caller.  Supplier accounts are always
narrowed to their own supplier (see auth.supplier_scope); staff see the
whole organisation.  Windows are "7d" / "30d" / "90d", defaulting to
RETAIL_PULSE_DEFAULT_PERIOD.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from retail_pulse import analytics
from retail_pulse import db as store
from retail_pulse.calculations import calc_sustainability_score
from retail_pulse.constants import DEMAND_LOOKBACK_DAYS, PERIOD_DAYS, ROLE_CONSUMER, ROLE_SUPPLIER
from retail_pulse.eco_impact import adoption_rates, consumer_recommendations
from retail_pulse.forecasting import predict_waste
from retail_pulse.service import Actor, NotFoundError

from .auth import supplier_scope
from .db import get_settings, with_connection

logger = logging.getLogger(__name__)


# ─── helpers ──────────────────────────────────────────────────────────────

def _period(period: str | None) -> str:
    if period and period in PERIOD_DAYS:
        return period
    return get_settings().default_period


def _windowed(period: str | None, build: Callable[[Any, datetime], dict[str, Any]]) -> dict[str, Any]:
    """Run build(conn, start) over the window and add period/start_date/end_date."""
    period = _period(period)
    end = datetime.now(timezone.utc)
    start = analytics.window_start(period, end)
    payload = with_connection(lambda conn: build(conn, start))
    payload.update({
        "period": period,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
    })
    return payload


# ─── organisation-wide analytics ──────────────────────────────────────────

def get_dashboard(user: Actor, period: str | None = None) -> dict[str, Any]:
    """Summary tiles, daily trends and efficiency breakdown for the dashboard."""
    scope = supplier_scope(user)

    def _build(conn, start):
        return analytics.dashboard_summary(
            store.load_shipments(conn, start, supplier_id=scope),
            store.load_suppliers(conn, supplier_id=scope),
            store.load_products(conn, supplier_id=scope),
            store.load_alerts(conn, start, supplier_id=scope),
        )

    return _windowed(period, _build)


def get_sustainability_score(user: Actor, period: str | None = None) -> dict[str, Any]:
    scope = supplier_scope(user)

    def _build(conn, start):
        score = calc_sustainability_score(
            store.load_shipments(conn, start, supplier_id=scope),
            store.load_suppliers(conn, supplier_id=scope),
            store.load_products(conn, supplier_id=scope),
            store.load_alerts(conn, start, supplier_id=scope),
        )
        return score.as_dict()

    return _windowed(period, _build)


def get_performance_comparison(user: Actor, period: str | None = None) -> dict[str, Any]:
    scope = supplier_scope(user)
    return _windowed(
        period,
        lambda conn, start: analytics.performance_comparison(
            store.load_shipments(conn, start, supplier_id=scope)
        ),
    )


def get_carbon_analytics(
    user: Actor,
    period: str | None = None,
    supplier_id: int | None = None,
    transport_mode: str | None = None,
) -> dict[str, Any]:
    scope = supplier_scope(user, supplier_id)
    return _windowed(
        period,
        lambda conn, start: analytics.carbon_analytics(
            store.load_shipments(conn, start, supplier_id=scope, transport_mode=transport_mode)
        ),
    )


def get_efficiency_analytics(
    user: Actor,
    period: str | None = None,
    transport_mode: str | None = None,
) -> dict[str, Any]:
    scope = supplier_scope(user)
    return _windowed(
        period,
        lambda conn, start: analytics.efficiency_analytics(
            store.load_shipments(conn, start, supplier_id=scope, transport_mode=transport_mode)
        ),
    )


def get_green_score_analytics(
    user: Actor,
    category: str | None = None,
    min_score: int | None = None,
) -> dict[str, Any]:
    """Green scores of the active catalogue (not windowed)."""
    scope = supplier_scope(user)
    return with_connection(
        lambda conn: analytics.green_score_analytics(
            store.load_products(conn, supplier_id=scope, category=category, min_score=min_score)
        )
    )


def get_alert_summary(user: Actor, period: str | None = None) -> dict[str, Any]:
    scope = supplier_scope(user)
    return _windowed(
        period,
        lambda conn, start: analytics.alert_summary(store.load_alerts(conn, start, supplier_id=scope)),
    )


def get_accuracy_analytics(user: Actor, period: str | None = None) -> dict[str, Any]:
    """Prediction accuracy of resolved alerts that recorded the actual waste."""
    scope = supplier_scope(user)
    return _windowed(
        period,
        lambda conn, start: analytics.accuracy_analytics(
            store.load_alerts(conn, start, supplier_id=scope, with_accuracy=True)
        ),
    )


def get_supplier_analytics(user: Actor, supplier_id: int, period: str | None = None) -> dict[str, Any]:
    if user.role == ROLE_SUPPLIER and supplier_scope(user) != supplier_id:
        raise PermissionError("Suppliers can only view their own analytics")

    def _build(conn, start):
        supplier = store.fetch_supplier(conn, supplier_id)
        if supplier is None:
            raise NotFoundError(f"Supplier {supplier_id} not found")
        return analytics.supplier_analytics(
            supplier, store.load_shipments(conn, start, supplier_id=supplier_id)
        )

    return _windowed(period, _build)


# ─── products ─────────────────────────────────────────────────────────────

def predict_product_waste(user: Actor, product_id: int, days: int = 7) -> dict[str, Any]:
    """Forecast waste for one product from its last 30 days of shipments."""
    if days < 1:
        raise ValueError("days must be at least 1")

    def _build(conn):
        product = store.fetch_product(conn, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        if user.role == ROLE_SUPPLIER and supplier_scope(user) != product.get("supplier_id"):
            raise PermissionError("Suppliers can only forecast their own products")
        since = datetime.now(timezone.utc) - timedelta(days=DEMAND_LOOKBACK_DAYS)
        quantities = store.load_recent_quantities(conn, product_id, since)
        current_stock = (product.get("inventory") or {}).get("current_stock", 0)
        forecast = predict_waste(
            current_stock,
            quantities,
            days=days,
            base_spoilage_rate=product.get("base_spoilage_rate"),
            price=product.get("price"),
        )
        return {
            "product": {
                "id": product["id"],
                "name": product.get("name"),
                "category": product.get("category"),
                "current_stock": current_stock,
                "base_spoilage_rate": product.get("base_spoilage_rate"),
            },
            **forecast,
        }

    return with_connection(_build)


# ─── eco orders ───────────────────────────────────────────────────────────

def get_eco_adoption(user: Actor, period: str | None = None) -> dict[str, Any]:
    return _windowed(period, lambda conn, start: adoption_rates(store.load_orders(conn, start)))


def get_consumer_recommendations(user: Actor, preferences: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Tips for the calling consumer based on how many orders they have placed."""
    if user.role != ROLE_CONSUMER:
        raise PermissionError("Recommendations are only available to consumers")
    order_count = with_connection(lambda conn: len(store.load_orders(conn, customer_id=user.id)))
    return {
        "order_count": order_count,
        "recommendations": consumer_recommendations(order_count, preferences),
    }
