"""
service.py – Write operations for shipments, products, suppliers, waste
alerts and eco orders.

Every write goes through here so derived fields are recomputed right before
the row is persisted:

 Write                         Recomputed
 ─────────────────────────────────────────────────────────────
 create/update shipment        vehicle_type default, carbon_kg
 create/update product         sustainability_metrics.green_score
 create/update supplier        esg_score
 add/verify supplier document  esg_score
 create/update waste alert     risk_level, recommendations
 resolve waste alert           accuracy (when actual waste is given)

Derived values sent by a caller are discarded.  Functions take an open
psycopg2 connection and commit on success; on any error the transaction is
rolled back and the exception propagates.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping

from retail_pulse import db
from retail_pulse.calculations import (
    calc_carbon_footprint,
    calc_product_green_score,
    calc_supplier_esg_score,
    classify_waste_risk,
)
from retail_pulse.constants import (
    ALERT_ACKNOWLEDGED,
    ALERT_ACTIVE,
    ALERT_DISMISSED,
    ALERT_RESOLVED,
    ALERT_TRANSITIONS,
    DEFAULT_CONFIDENCE,
    ROLE_ADMIN,
    ROLE_CONSUMER,
    ROLE_MANAGER,
    ROLE_SUPPLIER,
)
from retail_pulse.eco_impact import calc_eco_impact, generate_order_id
from retail_pulse.emission_factors import default_vehicle_type
from retail_pulse.forecasting import calc_prediction_accuracy
from retail_pulse.validators import unique

logger = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """The referenced entity does not exist."""


class TransitionError(ValueError):
    """A waste alert cannot move from its current status to the requested one."""


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a write."""

    id: str
    role: str
    supplier_id: int | None = None

    @property
    def is_staff(self) -> bool:
        return self.role in (ROLE_ADMIN, ROLE_MANAGER)


# Fields owned by the calculators; never accepted from a caller.
DERIVED_FIELDS = {
    "shipments": frozenset({"carbon_kg"}),
    "suppliers": frozenset({"esg_score"}),
    "waste_alerts": frozenset({"risk_level", "recommendations", "accuracy"}),
    "products": frozenset(),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def _transaction(conn) -> Iterator[None]:
    try:
        yield
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def _strip_derived(table: str, data: Mapping[str, Any]) -> dict[str, Any]:
    record = {k: v for k, v in data.items() if k not in DERIVED_FIELDS[table] and k != "id"}
    if table == "products":
        if isinstance(record.get("sustainability_metrics"), Mapping):
            record["sustainability_metrics"] = {
                k: v for k, v in record["sustainability_metrics"].items() if k != "green_score"
            }
        if record.get("certifications") is not None:
            # stored as a set
            record["certifications"] = unique(record["certifications"])
    return record


def _changes(table: str, changes: Mapping[str, Any]) -> dict[str, Any]:
    """Fields an update may apply; a null leaves the stored value unchanged."""
    return {k: v for k, v in _strip_derived(table, changes).items() if v is not None}


def _require(row: dict[str, Any] | None, kind: str, entity_id: Any) -> dict[str, Any]:
    if row is None:
        raise NotFoundError(f"{kind} {entity_id} not found")
    return row


def _check_can_write(actor: Actor | None, supplier_id: Any) -> None:
    """Staff may write anything; a supplier only its own entities; consumers nothing."""
    if actor is None or actor.is_staff:
        return
    if actor.role == ROLE_SUPPLIER and actor.supplier_id is not None and actor.supplier_id == supplier_id:
        return
    raise PermissionError(f"{actor.role} {actor.id} may not modify records of supplier {supplier_id}")


def _check_staff(actor: Actor | None, action: str) -> None:
    if actor is not None and not actor.is_staff:
        raise PermissionError(f"Only admins and managers can {action}")


# ─────────────────────────────────────────────────────────────────────────────
# Derivation hooks – pure, called immediately before a write
# ─────────────────────────────────────────────────────────────────────────────

def derive_shipment_fields(shipment: Mapping[str, Any]) -> dict[str, Any]:
    mode = shipment.get("transport_mode")
    vehicle = shipment.get("vehicle_type") or default_vehicle_type(mode)
    return {
        "vehicle_type": vehicle,
        "carbon_kg": calc_carbon_footprint(
            transport_mode=mode,
            distance_km=shipment.get("distance_km"),
            quantity=shipment.get("quantity"),
            vehicle_type=vehicle,
            packaging_weight=shipment.get("packaging_weight") or 0,
        ),
    }


def derive_product_fields(product: Mapping[str, Any]) -> dict[str, Any]:
    metrics = dict(product.get("sustainability_metrics") or {})
    metrics["green_score"] = calc_product_green_score(product)
    return {"sustainability_metrics": metrics}


def derive_supplier_fields(supplier: Mapping[str, Any]) -> dict[str, Any]:
    return {"esg_score": calc_supplier_esg_score(supplier)}


def derive_alert_fields(alert: Mapping[str, Any]) -> dict[str, Any]:
    confidence = alert.get("confidence")
    assessment = classify_waste_risk(
        alert.get("predicted_waste_percentage"),
        DEFAULT_CONFIDENCE if confidence is None else confidence,
        alert.get("current_stock"),
        alert.get("predicted_waste_qty"),
    )
    return {"risk_level": assessment.risk_level, "recommendations": assessment.recommendations}


# ─────────────────────────────────────────────────────────────────────────────
# Shipments
# ─────────────────────────────────────────────────────────────────────────────

def create_shipment(conn, data: Mapping[str, Any], actor: Actor | None = None) -> dict[str, Any]:
    record = _strip_derived("shipments", data)
    _check_can_write(actor, record.get("supplier_id"))
    record.update(derive_shipment_fields(record))
    if actor is not None:
        record["created_by"] = actor.id
    with _transaction(conn):
        row = db.insert_shipment(conn, record)
    logger.info("Shipment created id=%s | %s km %s → %.2f kg CO₂",
                row["id"], record.get("distance_km"), record.get("transport_mode"), record["carbon_kg"])
    return row


def update_shipment(conn, shipment_id: int, changes: Mapping[str, Any], actor: Actor | None = None) -> dict[str, Any]:
    with _transaction(conn):
        current = _require(db.fetch_shipment(conn, shipment_id, for_update=True), "Shipment", shipment_id)
        _check_can_write(actor, current.get("supplier_id"))
        fields = _changes("shipments", changes)
        fields.pop("supplier_id", None)
        if "transport_mode" in fields and "vehicle_type" not in fields:
            # a new mode without a vehicle re-defaults the vehicle
            current = {**current, "vehicle_type": None}
        fields.update(derive_shipment_fields({**current, **fields}))
        row = db.update_shipment(conn, shipment_id, fields)
    logger.info("Shipment updated id=%d | carbon_kg=%.2f", shipment_id, fields["carbon_kg"])
    return row


# ─────────────────────────────────────────────────────────────────────────────
# Products
# ─────────────────────────────────────────────────────────────────────────────

def create_product(conn, data: Mapping[str, Any], actor: Actor | None = None) -> dict[str, Any]:
    record = _strip_derived("products", data)
    _check_can_write(actor, record.get("supplier_id"))
    record.update(derive_product_fields(record))
    with _transaction(conn):
        row = db.insert_product(conn, record)
    logger.info("Product created id=%s sku=%s | green_score=%d",
                row["id"], record.get("sku"), record["sustainability_metrics"]["green_score"])
    return row


def update_product(conn, product_id: int, changes: Mapping[str, Any], actor: Actor | None = None) -> dict[str, Any]:
    with _transaction(conn):
        current = _require(db.fetch_product(conn, product_id, for_update=True), "Product", product_id)
        _check_can_write(actor, current.get("supplier_id"))
        fields = _changes("products", changes)
        fields.pop("supplier_id", None)
        fields.pop("sku", None)
        if "sustainability_metrics" in fields:
            fields["sustainability_metrics"] = {
                **(current.get("sustainability_metrics") or {}),
                **(fields["sustainability_metrics"] or {}),
            }
        if "inventory" in fields:
            fields["inventory"] = {**(current.get("inventory") or {}), **(fields["inventory"] or {})}
        fields.update(derive_product_fields({**current, **fields}))
        row = db.update_product(conn, product_id, fields)
    logger.info("Product updated id=%d | green_score=%d",
                product_id, fields["sustainability_metrics"]["green_score"])
    return row


# ─────────────────────────────────────────────────────────────────────────────
# Suppliers
# ─────────────────────────────────────────────────────────────────────────────

def create_supplier(conn, data: Mapping[str, Any], actor: Actor | None = None) -> dict[str, Any]:
    _check_staff(actor, "create suppliers")
    record = _strip_derived("suppliers", data)
    record.setdefault("audit_docs", [])
    record.update(derive_supplier_fields(record))
    with _transaction(conn):
        row = db.insert_supplier(conn, record)
    logger.info("Supplier created id=%s name=%r | esg_score=%d", row["id"], record.get("name"), record["esg_score"])
    return row


def update_supplier(conn, supplier_id: int, changes: Mapping[str, Any], actor: Actor | None = None) -> dict[str, Any]:
    with _transaction(conn):
        current = _require(db.fetch_supplier(conn, supplier_id, for_update=True), "Supplier", supplier_id)
        _check_can_write(actor, supplier_id)
        fields = _changes("suppliers", changes)
        # documents change only through add/verify
        fields.pop("audit_docs", None)
        if "status" in fields:
            _check_staff(actor, "change supplier status")
        if "sustainability_metrics" in fields:
            fields["sustainability_metrics"] = {
                **(current.get("sustainability_metrics") or {}),
                **(fields["sustainability_metrics"] or {}),
            }
        fields.update(derive_supplier_fields({**current, **fields}))
        row = db.update_supplier(conn, supplier_id, fields)
    logger.info("Supplier updated id=%d | esg_score=%d", supplier_id, fields["esg_score"])
    return row


def add_supplier_documents(
    conn,
    supplier_id: int,
    documents: list[Mapping[str, Any]],
    actor: Actor | None = None,
) -> dict[str, Any]:
    """Register audit document metadata (unverified) and rescore the supplier."""
    if not documents:
        raise ValueError("No documents given")
    with _transaction(conn):
        current = _require(db.fetch_supplier(conn, supplier_id, for_update=True), "Supplier", supplier_id)
        _check_can_write(actor, supplier_id)
        uploaded_at = _now().isoformat()
        new_docs = [
            {
                "name": doc["name"],
                "url": doc["url"],
                "type": doc.get("type") or "certification",
                "uploaded_at": uploaded_at,
                "verified": False,
            }
            for doc in documents
        ]
        audit_docs = list(current.get("audit_docs") or []) + new_docs
        fields = {"audit_docs": audit_docs}
        fields.update(derive_supplier_fields({**current, **fields}))
        row = db.update_supplier(conn, supplier_id, fields)
    logger.info("Supplier id=%d | %d document(s) added → esg_score=%d",
                supplier_id, len(new_docs), fields["esg_score"])
    return {"documents": new_docs, "new_esg_score": fields["esg_score"], "supplier": row}


def set_document_verification(
    conn,
    supplier_id: int,
    doc_index: int,
    verified: bool,
    actor: Actor | None = None,
) -> dict[str, Any]:
    """Toggle the verified flag of one audit document and rescore the supplier."""
    _check_staff(actor, "verify supplier documents")
    with _transaction(conn):
        current = _require(db.fetch_supplier(conn, supplier_id, for_update=True), "Supplier", supplier_id)
        audit_docs = [dict(d) for d in current.get("audit_docs") or []]
        if not 0 <= doc_index < len(audit_docs):
            raise NotFoundError(f"Document {doc_index} of supplier {supplier_id} not found")
        audit_docs[doc_index]["verified"] = bool(verified)
        fields = {"audit_docs": audit_docs}
        fields.update(derive_supplier_fields({**current, **fields}))
        row = db.update_supplier(conn, supplier_id, fields)
    logger.info("Supplier id=%d | document %d verified=%s → esg_score=%d",
                supplier_id, doc_index, verified, fields["esg_score"])
    return row


# ─────────────────────────────────────────────────────────────────────────────
# Waste alerts
# ─────────────────────────────────────────────────────────────────────────────

def create_alert(conn, data: Mapping[str, Any], actor: Actor | None = None) -> dict[str, Any]:
    record = _strip_derived("waste_alerts", data)
    _check_can_write(actor, record.get("supplier_id"))
    record["status"] = ALERT_ACTIVE
    record.update(derive_alert_fields(record))
    with _transaction(conn):
        row = db.insert_alert(conn, record)
    logger.info("Waste alert created id=%s product=%s | %s, %d recommendation(s)",
                row["id"], record.get("product_id"), record["risk_level"], len(record["recommendations"]))
    return row


def update_alert(conn, alert_id: int, changes: Mapping[str, Any], actor: Actor | None = None) -> dict[str, Any]:
    with _transaction(conn):
        current = _require(db.fetch_alert(conn, alert_id, for_update=True), "Alert", alert_id)
        _check_can_write(actor, current.get("supplier_id"))
        fields = _changes("waste_alerts", changes)
        for key in ("status", "supplier_id", "product_id"):
            fields.pop(key, None)
        fields.update(derive_alert_fields({**current, **fields}))
        row = db.update_alert(conn, alert_id, fields)
    logger.info("Waste alert updated id=%d | %s", alert_id, fields["risk_level"])
    return row


def _transition(
    conn,
    alert_id: int,
    target: str,
    actor: Actor | None,
    extra: Mapping[str, Any],
) -> dict[str, Any]:
    with _transaction(conn):
        current = _require(db.fetch_alert(conn, alert_id, for_update=True), "Alert", alert_id)
        _check_can_write(actor, current.get("supplier_id"))
        status = current.get("status") or ALERT_ACTIVE
        if target not in ALERT_TRANSITIONS.get(status, frozenset()):
            raise TransitionError(f"Alert {alert_id} cannot move from {status} to {target}")
        fields = {"status": target, **extra}
        if fields.get("actual_waste_qty") is not None:
            accuracy = calc_prediction_accuracy(current.get("predicted_waste_qty"), fields["actual_waste_qty"])
            if accuracy is not None:
                fields["accuracy"] = accuracy
        row = db.update_alert(conn, alert_id, fields)
    logger.info("Waste alert id=%d | %s → %s", alert_id, status, target)
    return row


def acknowledge_alert(conn, alert_id: int, actor: Actor | None = None, notes: str | None = None) -> dict[str, Any]:
    extra: dict[str, Any] = {
        "acknowledged_by": actor.id if actor else None,
        "acknowledged_at": _now(),
    }
    if notes:
        extra["resolution_notes"] = notes
    return _transition(conn, alert_id, ALERT_ACKNOWLEDGED, actor, extra)


def resolve_alert(
    conn,
    alert_id: int,
    actor: Actor | None = None,
    actual_waste_qty: float | None = None,
    notes: str | None = None,
) -> dict[str, Any]:
    """Resolve an alert; with the actual waste known, also score the prediction."""
    extra: dict[str, Any] = {
        "resolved_by": actor.id if actor else None,
        "resolved_at": _now(),
    }
    if notes:
        extra["resolution_notes"] = notes
    if actual_waste_qty is not None:
        if actual_waste_qty < 0:
            raise ValueError("actual_waste_qty must be non-negative")
        extra["actual_waste_qty"] = actual_waste_qty
    return _transition(conn, alert_id, ALERT_RESOLVED, actor, extra)


def dismiss_alert(conn, alert_id: int, actor: Actor | None = None, notes: str | None = None) -> dict[str, Any]:
    extra: dict[str, Any] = {
        "resolved_by": actor.id if actor else None,
        "resolved_at": _now(),
    }
    if notes:
        extra["resolution_notes"] = notes
    return _transition(conn, alert_id, ALERT_DISMISSED, actor, extra)


# ─────────────────────────────────────────────────────────────────────────────
# Eco orders
# ─────────────────────────────────────────────────────────────────────────────

def record_eco_order(conn, data: Mapping[str, Any], actor: Actor | None) -> dict[str, Any]:
    """Store a consumer's eco preferences for an order, with its estimated impact."""
    if actor is None or actor.role != ROLE_CONSUMER:
        raise PermissionError("Only consumers can submit eco options")
    preferences = dict(data.get("preferences") or {})
    total_amount = data.get("total_amount") or 0
    record = {
        "order_id": data.get("order_id") or generate_order_id(),
        "customer_email": data.get("customer_email"),
        "customer_id": actor.id,
        "preferences": preferences,
        "items": list(data.get("items") or []),
        "total_amount": total_amount,
        "eco_impact": calc_eco_impact(preferences, total_amount),
        "timestamp": _now(),
    }
    with _transaction(conn):
        row = db.insert_order(conn, record)
    logger.info("Eco order recorded %s | impact=%.2f", record["order_id"], record["eco_impact"]["total_impact"])
    return row
