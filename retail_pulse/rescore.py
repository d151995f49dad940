"""
rescore.py – Recompute every stored derived field in bulk.

Run after an emission factor or scoring table changes so stored carbon,
green, ESG and risk values agree with the current formulas.  The
``retail-pulse rescore`` command (retail_pulse.cli) drives this module.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from retail_pulse import db
from retail_pulse.service import (
    derive_alert_fields,
    derive_product_fields,
    derive_shipment_fields,
    derive_supplier_fields,
)

log = logging.getLogger(__name__)

# entity → (table, derivation hook)
ENTITIES: dict[str, tuple[str, Callable[[Mapping[str, Any]], dict[str, Any]]]] = {
    "shipments": ("shipments", derive_shipment_fields),
    "products": ("products", derive_product_fields),
    "suppliers": ("suppliers", derive_supplier_fields),
    "alerts": ("waste_alerts", derive_alert_fields),
}


@dataclass
class RescoreSummary:
    entity: str
    scanned: int = 0
    changed: int = 0
    errors: list[str] = field(default_factory=list)


def _changed_fields(row: Mapping[str, Any], derived: Mapping[str, Any]) -> dict[str, Any]:
    changed = {}
    for key, value in derived.items():
        stored = row.get(key)
        if isinstance(value, float) and stored is not None:
            if abs(float(stored) - value) > 1e-9:
                changed[key] = value
        elif stored != value:
            changed[key] = value
    return changed


def rescore_entity(conn, entity: str, *, dry_run: bool = False) -> RescoreSummary:
    """
    Recompute one entity type.  Each row is written in its own transaction,
    so a bad row is logged and skipped without undoing the others.
    """
    table, derive = ENTITIES[entity]
    summary = RescoreSummary(entity=entity)
    for row in db.fetch_all(conn, table):
        summary.scanned += 1
        try:
            changes = _changed_fields(row, derive(row))
            if not changes:
                continue
            summary.changed += 1
            log.info("%s id=%s | %s", entity, row["id"], ", ".join(f"{k}={v!r}" for k, v in changes.items()
                                                                  if k != "recommendations"))
            if not dry_run:
                db.update_row(conn, table, row["id"], changes)
                conn.commit()
        except Exception as exc:  # noqa: BLE001
            conn.rollback()
            summary.errors.append(f"{entity} id={row.get('id')}: {exc}")
            log.error("Rescore failed for %s id=%s: %s", entity, row.get("id"), exc)
    if dry_run:
        conn.rollback()
    return summary
