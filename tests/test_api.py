"""
Tests for retail_pulse_api/main.py

The database is never touched: with_connection is patched to hand the
callback a MagicMock, and service / query functions are patched where a
test only cares about the HTTP layer.  The authenticated caller is
injected through dependency_overrides except in the token tests.
"""
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from retail_pulse.service import Actor, NotFoundError, TransitionError
from retail_pulse_api.auth import create_access_token, get_current_user
from retail_pulse_api.db import get_settings
from retail_pulse_api.main import app

ADMIN = Actor(id="u-admin", role="admin")
SUPPLIER_4 = Actor(id="u-sup", role="supplier", supplier_id=4)
CONSUMER = Actor(id="u-cons", role="consumer")

client = TestClient(app)


@pytest.fixture
def as_user():
    def _login(actor):
        app.dependency_overrides[get_current_user] = lambda: actor
        return actor
    yield _login
    app.dependency_overrides.clear()


@pytest.fixture
def no_db():
    with patch("retail_pulse_api.main.with_connection", side_effect=lambda fn: fn(MagicMock())) as wc:
        yield wc


# ─────────────────────────────────────────────────────────────────────────────
# Authentication
# ─────────────────────────────────────────────────────────────────────────────

class TestAuth:

    def test_health_is_public(self):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"

    def test_missing_token(self):
        r = client.get("/api/analytics/dashboard")
        assert r.status_code == 401
        assert r.json()["detail"] == "Access token required"
        assert r.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self):
        r = client.get("/api/analytics/dashboard", headers={"Authorization": "Bearer not.a.token"})
        assert r.status_code == 401
        assert r.json()["detail"] == "Invalid or expired token"

    def test_valid_token_reaches_query(self):
        token = create_access_token("u9", "supplier", 4, secret=get_settings().secret_key, expires_in=60)
        with patch("retail_pulse_api.main.queries.get_dashboard", return_value={"summary": {}}) as q:
            r = client.get("/api/analytics/dashboard?period=7d", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 200
        assert r.json() == {"dashboard": {"summary": {}}}
        q.assert_called_once_with(Actor(id="u9", role="supplier", supplier_id=4), "7d")

    def test_sustainability_score_is_wrapped_in_analytics(self, as_user):
        as_user(ADMIN)
        score = {"overall_score": 72.5, "category": "Good"}
        with patch("retail_pulse_api.main.queries.get_sustainability_score", return_value=score) as q:
            r = client.get("/api/analytics/sustainability-score?period=90d")
        assert r.status_code == 200
        assert r.json() == {"analytics": score}
        q.assert_called_once_with(ADMIN, "90d")


# ─────────────────────────────────────────────────────────────────────────────
# Writes
# ─────────────────────────────────────────────────────────────────────────────

SHIPMENT_BODY = {
    "supplier_id": 4,
    "product_id": 2,
    "quantity": 500,
    "distance_km": 100,
    "transport_mode": "diesel",
    "carbon_kg": 0.01,
}


class TestWrites:

    def test_create_shipment_derives_carbon(self, as_user, no_db):
        as_user(SUPPLIER_4)
        with patch("retail_pulse.service.db.insert_shipment", side_effect=lambda conn, rec: {"id": 1, **rec}):
            r = client.post("/api/shipments", json=SHIPMENT_BODY)
        assert r.status_code == 201
        shipment = r.json()["shipment"]
        assert shipment["carbon_kg"] == pytest.approx(7.5)
        assert shipment["vehicle_type"] == "truck"
        assert shipment["carbon_efficiency"] == "excellent"
        assert shipment["delivery_status"] == "on-time"

    def test_null_in_update_is_not_written(self, as_user, no_db):
        as_user(ADMIN)
        current = {"id": 1, "supplier_id": 4, "quantity": 500, "distance_km": 100,
                   "transport_mode": "diesel", "vehicle_type": "truck", "carbon_kg": 7.5}
        with patch("retail_pulse.service.db.fetch_shipment", return_value=current), \
             patch("retail_pulse.service.db.update_shipment",
                   side_effect=lambda conn, sid, fields: {**current, **fields}) as update:
            r = client.put("/api/shipments/1", json={"quantity": None, "notes": "late pickup"})
        assert r.status_code == 200
        fields = update.call_args[0][2]
        assert "quantity" not in fields
        assert fields["notes"] == "late pickup"
        assert r.json()["shipment"]["carbon_kg"] == pytest.approx(7.5)

    def test_unknown_transport_mode_is_rejected(self, as_user):
        as_user(ADMIN)
        r = client.post("/api/shipments", json={**SHIPMENT_BODY, "transport_mode": "teleport"})
        assert r.status_code == 422

    def test_supplier_labels(self, as_user, no_db):
        as_user(ADMIN)
        row = {"id": 4, "name": "Acme", "esg_score": 85}
        with patch("retail_pulse_api.main.service.update_supplier", return_value=row):
            r = client.put("/api/suppliers/4", json={"name": "Acme"})
        assert r.status_code == 200
        assert r.json()["supplier"]["esg_category"] == "Excellent"

    def test_documents_endpoint(self, as_user, no_db):
        as_user(SUPPLIER_4)
        result = {"documents": [], "new_esg_score": 25, "supplier": {"id": 4}}
        with patch("retail_pulse_api.main.service.add_supplier_documents", return_value=result) as add:
            r = client.post("/api/suppliers/4/documents", json=[{"name": "ISO", "url": "https://f/iso.pdf"}])
        assert r.status_code == 200
        assert r.json()["new_esg_score"] == 25
        docs = add.call_args[0][2]
        assert docs == [{"name": "ISO", "url": "https://f/iso.pdf", "type": "certification"}]

    def test_resolve_without_body(self, as_user, no_db):
        as_user(ADMIN)
        row = {"id": 5, "status": "resolved", "predicted_waste_qty": 3}
        with patch("retail_pulse_api.main.service.resolve_alert", return_value=row) as resolve:
            r = client.put("/api/alerts/5/resolve")
        assert r.status_code == 200
        assert r.json()["alert"]["potential_savings"] == 30
        assert resolve.call_args[0][3:] == (None, None)

    def test_eco_order_by_consumer(self, as_user, no_db):
        as_user(CONSUMER)
        body = {"preferences": {"carbon_offset": True}, "total_amount": 100}
        with patch("retail_pulse.service.db.insert_order", side_effect=lambda conn, rec: {"id": 1, **rec}):
            r = client.post("/api/orders/eco-options", json=body)
        assert r.status_code == 201
        assert r.json()["eco_impact"]["carbon_saved"] == 20.0


# ─────────────────────────────────────────────────────────────────────────────
# Error mapping
# ─────────────────────────────────────────────────────────────────────────────

class TestErrorMapping:

    @pytest.mark.parametrize("exc,status", [
        (NotFoundError("Shipment 9 not found"), 404),
        (PermissionError("nope"), 403),
        (ValueError("bad"), 400),
        (RuntimeError("db down"), 500),
    ])
    def test_update_shipment(self, as_user, no_db, exc, status):
        as_user(ADMIN)
        with patch("retail_pulse_api.main.service.update_shipment", side_effect=exc):
            r = client.put("/api/shipments/9", json={"quantity": 1})
        assert r.status_code == status
        assert r.json()["detail"] == str(exc)

    def test_invalid_transition(self, as_user, no_db):
        as_user(ADMIN)
        with patch("retail_pulse_api.main.service.dismiss_alert",
                   side_effect=TransitionError("Alert 5 cannot move from resolved to dismissed")):
            r = client.put("/api/alerts/5/dismiss", json={"notes": "late"})
        assert r.status_code == 409

    def test_consumer_cannot_create_shipment(self, as_user, no_db):
        as_user(CONSUMER)
        with patch("retail_pulse.service.db.insert_shipment") as insert:
            r = client.post("/api/shipments", json=SHIPMENT_BODY)
        assert r.status_code == 403
        insert.assert_not_called()

    def test_recommendations_are_consumer_only(self, as_user):
        as_user(ADMIN)
        r = client.get("/api/orders/recommendations")
        assert r.status_code == 403


# ─────────────────────────────────────────────────────────────────────────────
# Routes and public eco impact
# ─────────────────────────────────────────────────────────────────────────────

class TestRoutes:

    def test_optimize_requires_both_points(self, as_user):
        as_user(ADMIN)
        r = client.get("/api/routes/optimize", params={"from": "40.7,-74.0"})
        assert r.status_code == 400
        assert r.json()["detail"] == "Origin and destination are required"

    def test_optimize_bad_coordinates(self, as_user):
        as_user(ADMIN)
        r = client.get("/api/routes/optimize", params={"from": "somewhere", "to": "42.36,-71.06"})
        assert r.status_code == 400

    def test_optimize_lowest_carbon_first(self, as_user):
        as_user(ADMIN)
        r = client.get("/api/routes/optimize", params={"from": "40.71,-74.01", "to": "42.36,-71.06"})
        assert r.status_code == 200
        routes = r.json()["routes"]
        assert len(routes) == 3
        assert routes[0]["transport_mode"] == "rail"
        footprints = [route["carbon_footprint"] for route in routes]
        assert footprints == sorted(footprints)

    def test_calculate_carbon(self, as_user):
        as_user(ADMIN)
        r = client.post("/api/routes/calculate-carbon", json={"distance_km": 100, "transport_mode": "diesel"})
        assert r.status_code == 200
        calculation = r.json()["calculation"]
        assert calculation["carbon_footprint"]["total_kg"] == 15.0
        assert calculation["vehicle_type"] == "truck"
        assert calculation["weight"] == 1000

    def test_transport_modes(self, as_user):
        as_user(ADMIN)
        modes = client.get("/api/routes/transport-modes").json()["transport_modes"]
        assert {m["mode"] for m in modes} == {"electric", "hybrid", "rail", "ship", "diesel", "air"}

    def test_eco_impact_is_public(self):
        r = client.get("/api/orders/eco-impact", params={"green_delivery": "true", "total_amount": 200})
        assert r.status_code == 200
        impact = r.json()["eco_impact"]
        assert impact["carbon_saved"] == 30.0
        assert impact["eco_score"] == 20
