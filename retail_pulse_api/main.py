"""
main.py – FastAPI service for Retail Pulse.

Start:
    cd /path/to/retail-pulse
    uvicorn retail_pulse_api.main:app --reload --port 8000

Every route except /health and /api/orders/eco-impact needs
``Authorization: Bearer <token>``.  Writes go through retail_pulse.service
so derived fields are recomputed on each write; reads go through queries.
"""
from __future__ import annotations

import logging

from fastapi import Body, Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from retail_pulse import __version__, service
from retail_pulse.calculations import derived_labels
from retail_pulse.eco_impact import calc_eco_impact, eco_score
from retail_pulse.routing import calculate_route_carbon, generate_route_options, parse_coordinates, transport_modes
from retail_pulse.schemas import (
    AlertCreate,
    AlertNote,
    AlertUpdate,
    AuditDocIn,
    DocumentVerification,
    EcoOrderIn,
    EcoPreferences,
    ProductCreate,
    ProductUpdate,
    ResolveAlert,
    RouteCarbonRequest,
    ShipmentCreate,
    ShipmentUpdate,
    SupplierCreate,
    SupplierUpdate,
)
from retail_pulse.service import Actor, NotFoundError, TransitionError

from . import queries
from .auth import get_current_user
from .db import get_settings, with_connection

_settings = get_settings()

logging.basicConfig(
    level=getattr(logging, _settings.log_level, logging.INFO),
    format="%(asctime)s  %(levelname)-8s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Retail Pulse – Sustainability API",
    version=__version__,
    description="Carbon, green score, ESG and waste-risk metrics derived on every write.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _http_error(exc: Exception) -> HTTPException:
    """Map a domain exception to the HTTP status the client should see."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, TransitionError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, PermissionError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    logger.exception("Unhandled error: %s", exc)
    return HTTPException(status_code=500, detail=str(exc))


def _labelled(table: str, row: dict) -> dict:
    return {**row, **derived_labels(table, row)}


@app.get("/health", summary="Liveness check")
def health():
    return {"status": "ok", "version": __version__}


# ─── shipments ────────────────────────────────────────────────────────────

@app.post("/api/shipments", status_code=201, summary="Create shipment (carbon_kg derived)")
def create_shipment(body: ShipmentCreate, user: Actor = Depends(get_current_user)):
    try:
        row = with_connection(lambda conn: service.create_shipment(conn, body.model_dump(), user))
        return {"shipment": _labelled("shipments", row)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.put("/api/shipments/{shipment_id}", summary="Update shipment and recompute carbon_kg")
def update_shipment(shipment_id: int, body: ShipmentUpdate, user: Actor = Depends(get_current_user)):
    try:
        changes = body.model_dump(exclude_unset=True)
        row = with_connection(lambda conn: service.update_shipment(conn, shipment_id, changes, user))
        return {"shipment": _labelled("shipments", row)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.get("/api/shipments/analytics/carbon", summary="Carbon totals by transport mode, supplier and day")
def shipment_carbon_analytics(
    period: str | None = None,
    supplier_id: int | None = None,
    transport_mode: str | None = None,
    user: Actor = Depends(get_current_user),
):
    try:
        return {"analytics": queries.get_carbon_analytics(user, period, supplier_id, transport_mode)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.get("/api/shipments/analytics/efficiency", summary="Carbon per unit and per km by transport mode")
def shipment_efficiency_analytics(period: str | None = None, user: Actor = Depends(get_current_user)):
    try:
        return {"analytics": queries.get_efficiency_analytics(user, period)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


# ─── products ─────────────────────────────────────────────────────────────

@app.post("/api/products", status_code=201, summary="Create product (green_score derived)")
def create_product(body: ProductCreate, user: Actor = Depends(get_current_user)):
    try:
        row = with_connection(lambda conn: service.create_product(conn, body.model_dump(), user))
        return {"product": _labelled("products", row)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.put("/api/products/{product_id}", summary="Update product and recompute green_score")
def update_product(product_id: int, body: ProductUpdate, user: Actor = Depends(get_current_user)):
    try:
        changes = body.model_dump(exclude_unset=True)
        row = with_connection(lambda conn: service.update_product(conn, product_id, changes, user))
        return {"product": _labelled("products", row)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.get("/api/products/analytics/green-score", summary="Green score distribution of the catalogue")
def product_green_score_analytics(
    category: str | None = None,
    min_score: int | None = Query(None, ge=0, le=100),
    user: Actor = Depends(get_current_user),
):
    try:
        return {"analytics": queries.get_green_score_analytics(user, category, min_score)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.get("/api/products/{product_id}/predict-waste", summary="Forecast unsold stock for a product")
def predict_product_waste(
    product_id: int,
    days: int = Query(7, ge=1, le=365),
    user: Actor = Depends(get_current_user),
):
    try:
        return {"prediction": queries.predict_product_waste(user, product_id, days)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


# ─── suppliers ────────────────────────────────────────────────────────────

@app.post("/api/suppliers", status_code=201, summary="Create supplier (esg_score derived)")
def create_supplier(body: SupplierCreate, user: Actor = Depends(get_current_user)):
    try:
        row = with_connection(lambda conn: service.create_supplier(conn, body.model_dump(), user))
        return {"supplier": _labelled("suppliers", row)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.put("/api/suppliers/{supplier_id}", summary="Update supplier and recompute esg_score")
def update_supplier(supplier_id: int, body: SupplierUpdate, user: Actor = Depends(get_current_user)):
    try:
        changes = body.model_dump(exclude_unset=True)
        row = with_connection(lambda conn: service.update_supplier(conn, supplier_id, changes, user))
        return {"supplier": _labelled("suppliers", row)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.post("/api/suppliers/{supplier_id}/documents", summary="Attach audit documents (unverified)")
def add_supplier_documents(
    supplier_id: int,
    documents: list[AuditDocIn] = Body(...),
    user: Actor = Depends(get_current_user),
):
    try:
        docs = [d.model_dump() for d in documents]
        return with_connection(lambda conn: service.add_supplier_documents(conn, supplier_id, docs, user))
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.put(
    "/api/suppliers/{supplier_id}/documents/{doc_index}/verify",
    summary="Mark an audit document verified or unverified (staff only)",
)
def verify_supplier_document(
    supplier_id: int,
    doc_index: int,
    body: DocumentVerification,
    user: Actor = Depends(get_current_user),
):
    try:
        row = with_connection(
            lambda conn: service.set_document_verification(conn, supplier_id, doc_index, body.verified, user)
        )
        return {"supplier": _labelled("suppliers", row)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.get("/api/suppliers/{supplier_id}/analytics", summary="Shipment metrics for one supplier")
def supplier_analytics(supplier_id: int, period: str | None = None, user: Actor = Depends(get_current_user)):
    try:
        return {"analytics": queries.get_supplier_analytics(user, supplier_id, period)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


# ─── waste alerts ─────────────────────────────────────────────────────────

@app.post("/api/alerts", status_code=201, summary="Raise a waste alert (risk level derived)")
def create_alert(body: AlertCreate, user: Actor = Depends(get_current_user)):
    try:
        row = with_connection(lambda conn: service.create_alert(conn, body.model_dump(), user))
        return {"alert": _labelled("waste_alerts", row)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.get("/api/alerts/analytics/summary", summary="Alert counts by status and risk level")
def alert_summary(period: str | None = None, user: Actor = Depends(get_current_user)):
    try:
        return {"analytics": queries.get_alert_summary(user, period)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.get("/api/alerts/analytics/accuracy", summary="Prediction accuracy of resolved alerts")
def alert_accuracy(period: str | None = None, user: Actor = Depends(get_current_user)):
    try:
        return {"analytics": queries.get_accuracy_analytics(user, period)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.put("/api/alerts/{alert_id}", summary="Update alert and recompute risk level")
def update_alert(alert_id: int, body: AlertUpdate, user: Actor = Depends(get_current_user)):
    try:
        changes = body.model_dump(exclude_unset=True)
        row = with_connection(lambda conn: service.update_alert(conn, alert_id, changes, user))
        return {"alert": _labelled("waste_alerts", row)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.put("/api/alerts/{alert_id}/acknowledge", summary="Acknowledge an active alert")
def acknowledge_alert(alert_id: int, body: AlertNote | None = None, user: Actor = Depends(get_current_user)):
    try:
        notes = body.notes if body else None
        row = with_connection(lambda conn: service.acknowledge_alert(conn, alert_id, user, notes))
        return {"alert": _labelled("waste_alerts", row)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.put("/api/alerts/{alert_id}/resolve", summary="Resolve an alert, optionally with the actual waste")
def resolve_alert(alert_id: int, body: ResolveAlert | None = None, user: Actor = Depends(get_current_user)):
    try:
        body = body or ResolveAlert()
        row = with_connection(
            lambda conn: service.resolve_alert(conn, alert_id, user, body.actual_waste_qty, body.notes)
        )
        return {"alert": _labelled("waste_alerts", row)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.put("/api/alerts/{alert_id}/dismiss", summary="Dismiss an alert")
def dismiss_alert(alert_id: int, body: AlertNote | None = None, user: Actor = Depends(get_current_user)):
    try:
        notes = body.notes if body else None
        row = with_connection(lambda conn: service.dismiss_alert(conn, alert_id, user, notes))
        return {"alert": _labelled("waste_alerts", row)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


# ─── organisation analytics ───────────────────────────────────────────────

@app.get("/api/analytics/dashboard", summary="Dashboard summary, trends and efficiency")
def dashboard(period: str | None = None, user: Actor = Depends(get_current_user)):
    try:
        return {"dashboard": queries.get_dashboard(user, period)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.get("/api/analytics/sustainability-score", summary="Weighted organisational sustainability score")
def sustainability_score(period: str | None = None, user: Actor = Depends(get_current_user)):
    try:
        return {"analytics": queries.get_sustainability_score(user, period)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.get("/api/analytics/performance-comparison", summary="Carbon per km against industry benchmarks")
def performance_comparison(period: str | None = None, user: Actor = Depends(get_current_user)):
    try:
        return {"comparison": queries.get_performance_comparison(user, period)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


# ─── routes ───────────────────────────────────────────────────────────────

@app.get("/api/routes/optimize", summary="Candidate routes between two points, lowest carbon first")
def optimize_route(
    origin: str | None = Query(None, alias="from", description='"lat,lng"'),
    destination: str | None = Query(None, alias="to", description='"lat,lng"'),
    weight: float = Query(1000, ge=0, description="kg"),
    transport_mode: str = "diesel",
    vehicle_type: str = "truck",
    user: Actor = Depends(get_current_user),
):
    if not origin or not destination:
        raise HTTPException(status_code=400, detail="Origin and destination are required")
    try:
        routes = generate_route_options(
            parse_coordinates(origin),
            parse_coordinates(destination),
            weight_kg=weight,
            transport_mode=transport_mode,
            vehicle_type=vehicle_type,
        )
        return {"routes": routes}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.post("/api/routes/calculate-carbon", summary="Carbon footprint of a single leg")
def calculate_carbon(body: RouteCarbonRequest, user: Actor = Depends(get_current_user)):
    try:
        calculation = calculate_route_carbon(body.distance_km, body.transport_mode, body.vehicle_type, body.weight)
        calculation.update({
            "distance_km": body.distance_km,
            "transport_mode": body.transport_mode,
            "vehicle_type": body.vehicle_type,
            "weight": body.weight,
        })
        return {"calculation": calculation}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.get("/api/routes/transport-modes", summary="Transport modes with typical efficiency")
def list_transport_modes(user: Actor = Depends(get_current_user)):
    return {"transport_modes": transport_modes()}


@app.get("/api/routes/analytics/efficiency", summary="Route efficiency by transport mode")
def route_efficiency(
    period: str | None = None,
    transport_mode: str | None = None,
    user: Actor = Depends(get_current_user),
):
    try:
        return {"analytics": queries.get_efficiency_analytics(user, period, transport_mode)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


# ─── eco orders ───────────────────────────────────────────────────────────

@app.post("/api/orders/eco-options", status_code=201, summary="Record a consumer's eco preferences")
def submit_eco_options(body: EcoOrderIn, user: Actor = Depends(get_current_user)):
    try:
        row = with_connection(lambda conn: service.record_eco_order(conn, body.model_dump(), user))
        return {"order": row, "eco_impact": row.get("eco_impact")}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.get("/api/orders/eco-impact", summary="Estimate the impact of eco options (public)")
def eco_impact(
    preferences: EcoPreferences = Depends(),
    total_amount: float = Query(0, ge=0),
):
    prefs = preferences.model_dump()
    return {"eco_impact": {**calc_eco_impact(prefs, total_amount), "eco_score": eco_score(prefs)}}


@app.get("/api/orders/analytics/eco-adoption", summary="Adoption of eco options across orders")
def eco_adoption(period: str | None = None, user: Actor = Depends(get_current_user)):
    try:
        return {"analytics": queries.get_eco_adoption(user, period)}
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc


@app.get("/api/orders/recommendations", summary="Eco tips for the calling consumer")
def order_recommendations(preferences: EcoPreferences = Depends(), user: Actor = Depends(get_current_user)):
    try:
        return queries.get_consumer_recommendations(user, preferences.model_dump())
    except HTTPException:
        raise
    except Exception as exc:
        raise _http_error(exc) from exc
