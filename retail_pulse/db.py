"""
db.py – PostgreSQL persistence for suppliers, products, shipments, waste
alerts and eco orders.

Tables are defined in schema/retail_pulse.sql.  Nested fields live in JSONB
columns and are written through psycopg2's Json adapter.  Functions taking
``conn`` never commit; the caller owns the transaction.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping

import psycopg2
from psycopg2.extras import Json, RealDictCursor

logger = logging.getLogger(__name__)


def get_connection(database_url: str):
    """Return a psycopg2 connection. Caller must close it."""
    return psycopg2.connect(database_url)


def test_connection(database_url: str) -> tuple[bool, str | None]:
    """
    Connect to PostgreSQL and run SELECT 1. Return (True, None) on success,
    (False, error_message) on failure.
    """
    try:
        conn = get_connection(database_url)
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        finally:
            conn.close()
        return True, None
    except Exception as e:  # noqa: BLE001
        return False, str(e)


def apply_schema(database_url: str, schema_path: Path | None = None) -> tuple[bool, str | None]:
    """
    Execute the schema SQL file against the database.
    If schema_path is None, uses schema/retail_pulse.sql at the repository root.
    Returns (True, None) on success, (False, error_message) on failure.
    """
    if schema_path is None:
        schema_path = Path(__file__).resolve().parent.parent / "schema" / "retail_pulse.sql"
    if not schema_path.exists():
        return False, f"Schema file not found: {schema_path}"
    sql = schema_path.read_text(encoding="utf-8")
    try:
        conn = get_connection(database_url)
        conn.autocommit = True
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
        finally:
            conn.close()
        return True, None
    except Exception as e:  # noqa: BLE001
        return False, str(e)


# ─────────────────────────────────────────────────────────────────────────────
# Column whitelists – only these names are ever interpolated into SQL
# ─────────────────────────────────────────────────────────────────────────────

TABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    "suppliers": (
        "name", "certification_level", "location", "contact_info",
        "sustainability_metrics", "audit_docs", "esg_score", "status",
    ),
    "products": (
        "name", "sku", "category", "supplier_id", "description", "base_spoilage_rate",
        "shelf_life", "unit", "price", "packaging_type", "sustainability_metrics",
        "certifications", "inventory", "is_active",
    ),
    "shipments": (
        "supplier_id", "product_id", "quantity", "distance_km", "transport_mode",
        "vehicle_type", "packaging_weight", "carbon_kg", "origin", "destination",
        "status", "timestamp", "estimated_delivery", "actual_delivery", "notes", "created_by",
    ),
    "waste_alerts": (
        "product_id", "supplier_id", "predicted_waste_qty", "current_stock",
        "predicted_waste_percentage", "confidence", "risk_level", "recommendations",
        "status", "alert_date", "predicted_date", "acknowledged_by", "acknowledged_at",
        "resolved_by", "resolved_at", "resolution_notes", "actual_waste_qty", "accuracy", "notes",
    ),
    "orders": (
        "order_id", "customer_email", "customer_id", "preferences", "items",
        "total_amount", "eco_impact", "timestamp",
    ),
}

JSON_COLUMNS = frozenset({
    "location", "contact_info", "sustainability_metrics", "audit_docs", "certifications",
    "inventory", "origin", "destination", "recommendations", "preferences", "items", "eco_impact",
})

_HAS_UPDATED_AT = frozenset({"suppliers", "products", "shipments", "waste_alerts"})


def _adapt(table: str, record: Mapping[str, Any]) -> dict[str, Any]:
    """Keep known columns only and wrap nested values for JSONB."""
    allowed = TABLE_COLUMNS[table]
    return {
        col: Json(value) if col in JSON_COLUMNS and value is not None else value
        for col, value in record.items()
        if col in allowed
    }


def _plain(row: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """RealDictRow → dict with Decimal converted to float."""
    if row is None:
        return None
    return {k: float(v) if isinstance(v, Decimal) else v for k, v in dict(row).items()}


def insert_row(conn, table: str, record: Mapping[str, Any]) -> dict[str, Any]:
    """INSERT one row and return it as stored (RETURNING *)."""
    values = _adapt(table, record)
    if not values:
        raise ValueError(f"No insertable columns for {table}")
    cols = ", ".join(values)
    placeholders = ", ".join(["%s"] * len(values))
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"INSERT INTO {table} ({cols}) VALUES ({placeholders}) RETURNING *",
            tuple(values.values()),
        )
        row = _plain(cur.fetchone())
    logger.debug("Inserted %s id=%s", table, row.get("id") if row else None)
    return row


def update_row(conn, table: str, entity_id: int, fields: Mapping[str, Any]) -> dict[str, Any] | None:
    """UPDATE the given columns of one row; returns the new row or None if absent."""
    values = _adapt(table, fields)
    if not values:
        return fetch_row(conn, table, entity_id)
    assignments = [f"{col} = %s" for col in values]
    if table in _HAS_UPDATED_AT:
        assignments.append("updated_at = now()")
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"UPDATE {table} SET {', '.join(assignments)} WHERE id = %s RETURNING *",
            (*values.values(), entity_id),
        )
        row = _plain(cur.fetchone())
    logger.debug("Updated %s id=%d columns=%s", table, entity_id, list(values))
    return row


def fetch_row(conn, table: str, entity_id: int, *, for_update: bool = False) -> dict[str, Any] | None:
    if table not in TABLE_COLUMNS:
        raise ValueError(f"Unknown table: {table}")
    lock = " FOR UPDATE" if for_update else ""
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(f"SELECT * FROM {table} WHERE id = %s{lock}", (entity_id,))
        return _plain(cur.fetchone())


def fetch_all(conn, table: str) -> list[dict[str, Any]]:
    """Every row of *table*, ordered by id (used by the rescoring job)."""
    if table not in TABLE_COLUMNS:
        raise ValueError(f"Unknown table: {table}")
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(f"SELECT * FROM {table} ORDER BY id")
        return [_plain(r) for r in cur.fetchall()]


def _select(conn, sql: str, params: list[Any]) -> list[dict[str, Any]]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(sql, params)
        return [_plain(r) for r in cur.fetchall()]


# ── Per-entity wrappers ─────────────────────────────────────────────────────

def insert_supplier(conn, record):
    return insert_row(conn, "suppliers", record)


def update_supplier(conn, supplier_id, fields):
    return update_row(conn, "suppliers", supplier_id, fields)


def fetch_supplier(conn, supplier_id, *, for_update=False):
    return fetch_row(conn, "suppliers", supplier_id, for_update=for_update)


def insert_product(conn, record):
    return insert_row(conn, "products", record)


def update_product(conn, product_id, fields):
    return update_row(conn, "products", product_id, fields)


def fetch_product(conn, product_id, *, for_update=False):
    return fetch_row(conn, "products", product_id, for_update=for_update)


def insert_shipment(conn, record):
    return insert_row(conn, "shipments", record)


def update_shipment(conn, shipment_id, fields):
    return update_row(conn, "shipments", shipment_id, fields)


def fetch_shipment(conn, shipment_id, *, for_update=False):
    return fetch_row(conn, "shipments", shipment_id, for_update=for_update)


def insert_alert(conn, record):
    return insert_row(conn, "waste_alerts", record)


def update_alert(conn, alert_id, fields):
    return update_row(conn, "waste_alerts", alert_id, fields)


def fetch_alert(conn, alert_id, *, for_update=False):
    return fetch_row(conn, "waste_alerts", alert_id, for_update=for_update)


def insert_order(conn, record):
    return insert_row(conn, "orders", record)


# ─────────────────────────────────────────────────────────────────────────────
# Windowed population loads for analytics
# ─────────────────────────────────────────────────────────────────────────────

def load_shipments(
    conn,
    since: datetime | None = None,
    *,
    supplier_id: int | None = None,
    transport_mode: str | None = None,
    product_id: int | None = None,
) -> list[dict[str, Any]]:
    """Shipments in the window, each with its supplier's name as supplier_name."""
    sql = (
        "SELECT s.*, sup.name AS supplier_name FROM shipments s "
        "LEFT JOIN suppliers sup ON sup.id = s.supplier_id WHERE TRUE"
    )
    params: list[Any] = []
    if since is not None:
        sql += " AND s.timestamp >= %s"
        params.append(since)
    if supplier_id is not None:
        sql += " AND s.supplier_id = %s"
        params.append(supplier_id)
    if transport_mode:
        sql += " AND s.transport_mode = %s"
        params.append(transport_mode)
    if product_id is not None:
        sql += " AND s.product_id = %s"
        params.append(product_id)
    return _select(conn, sql + " ORDER BY s.timestamp", params)


def load_recent_quantities(conn, product_id: int, since: datetime) -> list[float]:
    """Shipped quantities of one product since *since* (demand history)."""
    rows = _select(
        conn,
        "SELECT quantity FROM shipments WHERE product_id = %s AND timestamp >= %s",
        [product_id, since],
    )
    return [r["quantity"] for r in rows]


def load_suppliers(conn, *, supplier_id: int | None = None) -> list[dict[str, Any]]:
    sql = "SELECT * FROM suppliers"
    params: list[Any] = []
    if supplier_id is not None:
        sql += " WHERE id = %s"
        params.append(supplier_id)
    return _select(conn, sql + " ORDER BY id", params)


def load_products(
    conn,
    *,
    supplier_id: int | None = None,
    category: str | None = None,
    min_score: int | None = None,
) -> list[dict[str, Any]]:
    """Active products, optionally filtered."""
    sql = "SELECT * FROM products WHERE is_active"
    params: list[Any] = []
    if supplier_id is not None:
        sql += " AND supplier_id = %s"
        params.append(supplier_id)
    if category:
        sql += " AND category = %s"
        params.append(category)
    if min_score is not None:
        sql += " AND COALESCE((sustainability_metrics->>'green_score')::numeric, 0) >= %s"
        params.append(min_score)
    return _select(conn, sql + " ORDER BY id", params)


def load_alerts(
    conn,
    since: datetime | None = None,
    *,
    supplier_id: int | None = None,
    with_accuracy: bool = False,
) -> list[dict[str, Any]]:
    """Alerts raised in the window, each with its product's category as product_category."""
    sql = (
        "SELECT a.*, p.category AS product_category FROM waste_alerts a "
        "LEFT JOIN products p ON p.id = a.product_id WHERE TRUE"
    )
    params: list[Any] = []
    if since is not None:
        sql += " AND a.alert_date >= %s"
        params.append(since)
    if supplier_id is not None:
        sql += " AND a.supplier_id = %s"
        params.append(supplier_id)
    if with_accuracy:
        sql += " AND a.accuracy IS NOT NULL"
    return _select(conn, sql + " ORDER BY a.alert_date", params)


def load_orders(conn, since: datetime | None = None, *, customer_id: str | None = None) -> list[dict[str, Any]]:
    sql = "SELECT * FROM orders WHERE TRUE"
    params: list[Any] = []
    if since is not None:
        sql += " AND timestamp >= %s"
        params.append(since)
    if customer_id is not None:
        sql += " AND customer_id = %s"
        params.append(customer_id)
    return _select(conn, sql + " ORDER BY timestamp", params)
