"""
Unit tests for retail_pulse/service.py

retail_pulse.db is patched out so only derivation, ownership and lifecycle
rules are exercised.  The connection is a MagicMock; commit/rollback calls
show whether the write went through.
"""
from unittest.mock import patch

import pytest

from retail_pulse import service
from retail_pulse.service import Actor, NotFoundError, TransitionError
from tests.helpers import make_conn

ADMIN = Actor(id="u-admin", role="admin")
MANAGER = Actor(id="u-manager", role="manager")
SUPPLIER_4 = Actor(id="u-sup", role="supplier", supplier_id=4)
CONSUMER = Actor(id="u-cons", role="consumer")


def _echo_insert(conn, record):
    return {"id": 1, **record}


def _echo_update(conn, entity_id, fields):
    return {"id": entity_id, **fields}


# ─────────────────────────────────────────────────────────────────────────────
# Shipments
# ─────────────────────────────────────────────────────────────────────────────

class TestShipments:

    def test_create_derives_carbon_and_ignores_caller_value(self):
        conn, _ = make_conn()
        data = {"supplier_id": 4, "product_id": 2, "quantity": 500, "distance_km": 100,
                "transport_mode": "diesel", "carbon_kg": 0.01, "id": 999}
        with patch("retail_pulse.service.db.insert_shipment", side_effect=_echo_insert) as insert:
            row = service.create_shipment(conn, data, SUPPLIER_4)

        record = insert.call_args[0][1]
        assert record["carbon_kg"] == pytest.approx(7.5)
        assert record["vehicle_type"] == "truck"
        assert record["created_by"] == "u-sup"
        assert "id" not in record
        assert row["carbon_kg"] == pytest.approx(7.5)
        conn.commit.assert_called_once()

    @pytest.mark.parametrize("mode,vehicle", [("rail", "train"), ("ship", "ship"), ("air", "plane"), ("hybrid", "truck")])
    def test_vehicle_defaults_by_mode(self, mode, vehicle):
        assert service.derive_shipment_fields({"transport_mode": mode})["vehicle_type"] == vehicle

    def test_supplier_cannot_create_for_another_supplier(self):
        conn, _ = make_conn()
        with patch("retail_pulse.service.db.insert_shipment") as insert:
            with pytest.raises(PermissionError):
                service.create_shipment(conn, {"supplier_id": 5, "quantity": 1}, SUPPLIER_4)
        insert.assert_not_called()
        conn.commit.assert_not_called()

    def test_consumer_cannot_write(self):
        conn, _ = make_conn()
        with pytest.raises(PermissionError):
            service.create_shipment(conn, {"supplier_id": 4}, CONSUMER)

    def test_update_recomputes_from_merged_state(self):
        conn, _ = make_conn()
        current = {"id": 3, "supplier_id": 4, "quantity": 500, "distance_km": 100,
                   "transport_mode": "diesel", "vehicle_type": "truck", "carbon_kg": 7.5}
        with patch("retail_pulse.service.db.fetch_shipment", return_value=current) as fetch, \
             patch("retail_pulse.service.db.update_shipment", side_effect=_echo_update) as update:
            service.update_shipment(conn, 3, {"distance_km": 200, "carbon_kg": 1}, ADMIN)

        fetch.assert_called_once_with(conn, 3, for_update=True)
        fields = update.call_args[0][2]
        assert fields["carbon_kg"] == pytest.approx(15.0)
        assert fields["distance_km"] == 200
        conn.commit.assert_called_once()

    def test_new_mode_without_vehicle_redefaults_vehicle(self):
        conn, _ = make_conn()
        current = {"id": 3, "supplier_id": 4, "quantity": 1000, "distance_km": 1000,
                   "transport_mode": "diesel", "vehicle_type": "van"}
        with patch("retail_pulse.service.db.fetch_shipment", return_value=current), \
             patch("retail_pulse.service.db.update_shipment", side_effect=_echo_update) as update:
            service.update_shipment(conn, 3, {"transport_mode": "rail"}, ADMIN)

        fields = update.call_args[0][2]
        assert fields["vehicle_type"] == "train"
        assert fields["carbon_kg"] == pytest.approx(30.0)

    def test_update_missing_shipment_rolls_back(self):
        conn, _ = make_conn()
        with patch("retail_pulse.service.db.fetch_shipment", return_value=None):
            with pytest.raises(NotFoundError):
                service.update_shipment(conn, 404, {"quantity": 1}, ADMIN)
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_supplier_cannot_move_shipment_to_other_supplier(self):
        conn, _ = make_conn()
        current = {"id": 3, "supplier_id": 4, "quantity": 1, "distance_km": 1, "transport_mode": "diesel"}
        with patch("retail_pulse.service.db.fetch_shipment", return_value=current), \
             patch("retail_pulse.service.db.update_shipment", side_effect=_echo_update) as update:
            service.update_shipment(conn, 3, {"supplier_id": 9}, SUPPLIER_4)
        assert "supplier_id" not in update.call_args[0][2]


# ─────────────────────────────────────────────────────────────────────────────
# Products
# ─────────────────────────────────────────────────────────────────────────────

class TestProducts:

    def test_create_derives_green_score(self):
        conn, _ = make_conn()
        data = {"supplier_id": 4, "sku": "A-1", "packaging_type": "minimal",
                "sustainability_metrics": {"carbon_footprint": 0.5, "water_footprint": 5, "green_score": 1},
                "certifications": [], "base_spoilage_rate": 5}
        with patch("retail_pulse.service.db.insert_product", side_effect=_echo_insert) as insert:
            service.create_product(conn, data, SUPPLIER_4)

        metrics = insert.call_args[0][1]["sustainability_metrics"]
        # 50 + 25 + 20 + 15 = 110 → 100
        assert metrics["green_score"] == 100
        assert metrics["carbon_footprint"] == 0.5

    def test_update_merges_metrics(self):
        conn, _ = make_conn()
        current = {"id": 8, "supplier_id": 4, "packaging_type": "plastic", "base_spoilage_rate": 5,
                   "sustainability_metrics": {"carbon_footprint": 25, "water_footprint": 150, "green_score": 15},
                   "inventory": {"current_stock": 10, "reorder_point": 5}}
        with patch("retail_pulse.service.db.fetch_product", return_value=current), \
             patch("retail_pulse.service.db.update_product", side_effect=_echo_update) as update:
            service.update_product(
                conn, 8, {"sustainability_metrics": {"carbon_footprint": 0.5}, "inventory": {"current_stock": 3}}, ADMIN,
            )

        fields = update.call_args[0][2]
        # 50 − 10 + 20 − 10 = 50
        assert fields["sustainability_metrics"] == {"carbon_footprint": 0.5, "water_footprint": 150, "green_score": 50}
        assert fields["inventory"] == {"current_stock": 3, "reorder_point": 5}

    def test_sku_is_immutable(self):
        conn, _ = make_conn()
        current = {"id": 8, "supplier_id": 4, "sku": "A-1"}
        with patch("retail_pulse.service.db.fetch_product", return_value=current), \
             patch("retail_pulse.service.db.update_product", side_effect=_echo_update) as update:
            service.update_product(conn, 8, {"sku": "B-2", "price": 3}, ADMIN)
        assert "sku" not in update.call_args[0][2]


# ─────────────────────────────────────────────────────────────────────────────
# Suppliers and audit documents
# ─────────────────────────────────────────────────────────────────────────────

class TestSuppliers:

    def test_only_staff_create_suppliers(self):
        conn, _ = make_conn()
        with pytest.raises(PermissionError):
            service.create_supplier(conn, {"name": "X"}, SUPPLIER_4)

    def test_create_derives_esg(self):
        conn, _ = make_conn()
        data = {"name": "Acme", "certification_level": "B Corp", "esg_score": 99,
                "sustainability_metrics": {"carbon_footprint": 5}}
        with patch("retail_pulse.service.db.insert_supplier", side_effect=_echo_insert) as insert:
            service.create_supplier(conn, data, MANAGER)
        record = insert.call_args[0][1]
        assert record["esg_score"] == 60
        assert record["audit_docs"] == []

    def test_supplier_cannot_change_own_status(self):
        conn, _ = make_conn()
        with patch("retail_pulse.service.db.fetch_supplier", return_value={"id": 4}):
            with pytest.raises(PermissionError):
                service.update_supplier(conn, 4, {"status": "approved"}, SUPPLIER_4)
        conn.rollback.assert_called_once()

    def test_supplier_updates_own_metrics(self):
        conn, _ = make_conn()
        current = {"id": 4, "certification_level": "None", "sustainability_metrics": {"carbon_footprint": 100},
                   "audit_docs": [{"verified": True}]}
        with patch("retail_pulse.service.db.fetch_supplier", return_value=current), \
             patch("retail_pulse.service.db.update_supplier", side_effect=_echo_update) as update:
            service.update_supplier(conn, 4, {"sustainability_metrics": {"renewable_energy": 90},
                                              "audit_docs": []}, SUPPLIER_4)
        fields = update.call_args[0][2]
        assert "audit_docs" not in fields
        # 0 + 0 + 0 + 20 + 5 = 25
        assert fields["esg_score"] == 25

    def test_new_documents_start_unverified(self):
        conn, _ = make_conn()
        current = {"id": 4, "certification_level": "Basic", "audit_docs": [{"name": "old", "verified": True}]}
        docs = [{"name": "ISO 14001", "url": "https://files/iso.pdf", "type": "certification", "verified": True}]
        with patch("retail_pulse.service.db.fetch_supplier", return_value=current), \
             patch("retail_pulse.service.db.update_supplier", side_effect=_echo_update) as update:
            result = service.add_supplier_documents(conn, 4, docs, SUPPLIER_4)

        assert result["documents"][0]["verified"] is False
        assert "uploaded_at" in result["documents"][0]
        assert len(update.call_args[0][2]["audit_docs"]) == 2
        # Basic 10 + carbon 20 + one verified doc 5
        assert result["new_esg_score"] == 35

    def test_no_documents(self):
        conn, _ = make_conn()
        with pytest.raises(ValueError):
            service.add_supplier_documents(conn, 4, [], ADMIN)

    def test_verify_document_rescores(self):
        conn, _ = make_conn()
        current = {"id": 4, "certification_level": "None", "audit_docs": [{"verified": False}, {"verified": False}]}
        with patch("retail_pulse.service.db.fetch_supplier", return_value=current), \
             patch("retail_pulse.service.db.update_supplier", side_effect=_echo_update) as update:
            service.set_document_verification(conn, 4, 1, True, ADMIN)

        fields = update.call_args[0][2]
        assert fields["audit_docs"][1]["verified"] is True
        assert fields["esg_score"] == 25
        assert current["audit_docs"][1]["verified"] is False

    def test_verify_bad_index(self):
        conn, _ = make_conn()
        with patch("retail_pulse.service.db.fetch_supplier", return_value={"id": 4, "audit_docs": []}):
            with pytest.raises(NotFoundError):
                service.set_document_verification(conn, 4, 0, True, ADMIN)

    def test_suppliers_cannot_verify(self):
        conn, _ = make_conn()
        with pytest.raises(PermissionError):
            service.set_document_verification(conn, 4, 0, True, SUPPLIER_4)


# ─────────────────────────────────────────────────────────────────────────────
# Waste alerts
# ─────────────────────────────────────────────────────────────────────────────

class TestAlerts:

    def test_create_classifies(self):
        conn, _ = make_conn()
        data = {"product_id": 2, "supplier_id": 4, "predicted_waste_qty": 70, "current_stock": 200,
                "predicted_waste_percentage": 35, "confidence": 80, "risk_level": "low", "status": "resolved"}
        with patch("retail_pulse.service.db.insert_alert", side_effect=_echo_insert) as insert:
            service.create_alert(conn, data, ADMIN)
        record = insert.call_args[0][1]
        assert record["status"] == "active"
        assert record["risk_level"] == "high"
        assert len(record["recommendations"]) == 3

    def test_update_cannot_change_status(self):
        conn, _ = make_conn()
        current = {"id": 5, "supplier_id": 4, "status": "active", "predicted_waste_percentage": 5,
                   "confidence": 100, "current_stock": 10, "predicted_waste_qty": 1}
        with patch("retail_pulse.service.db.fetch_alert", return_value=current), \
             patch("retail_pulse.service.db.update_alert", side_effect=_echo_update) as update:
            service.update_alert(conn, 5, {"status": "resolved", "predicted_waste_percentage": 50}, ADMIN)
        fields = update.call_args[0][2]
        assert "status" not in fields
        assert fields["risk_level"] == "critical"

    def test_acknowledge_active_alert(self):
        conn, _ = make_conn()
        with patch("retail_pulse.service.db.fetch_alert", return_value={"id": 5, "status": "active"}), \
             patch("retail_pulse.service.db.update_alert", side_effect=_echo_update) as update:
            service.acknowledge_alert(conn, 5, MANAGER, notes="on it")
        fields = update.call_args[0][2]
        assert fields["status"] == "acknowledged"
        assert fields["acknowledged_by"] == "u-manager"
        assert fields["resolution_notes"] == "on it"
        conn.commit.assert_called_once()

    def test_resolve_scores_accuracy(self):
        conn, _ = make_conn()
        current = {"id": 5, "status": "acknowledged", "predicted_waste_qty": 100}
        with patch("retail_pulse.service.db.fetch_alert", return_value=current), \
             patch("retail_pulse.service.db.update_alert", side_effect=_echo_update) as update:
            service.resolve_alert(conn, 5, ADMIN, actual_waste_qty=80)
        fields = update.call_args[0][2]
        assert fields["status"] == "resolved"
        assert fields["actual_waste_qty"] == 80
        assert fields["accuracy"] == 80.0

    def test_resolve_without_prediction_has_no_accuracy(self):
        conn, _ = make_conn()
        current = {"id": 5, "status": "active", "predicted_waste_qty": 0}
        with patch("retail_pulse.service.db.fetch_alert", return_value=current), \
             patch("retail_pulse.service.db.update_alert", side_effect=_echo_update) as update:
            service.resolve_alert(conn, 5, ADMIN, actual_waste_qty=3)
        assert "accuracy" not in update.call_args[0][2]

    def test_negative_actual_waste(self):
        conn, _ = make_conn()
        with pytest.raises(ValueError):
            service.resolve_alert(conn, 5, ADMIN, actual_waste_qty=-1)

    @pytest.mark.parametrize("status", ["resolved", "dismissed"])
    def test_terminal_states(self, status):
        conn, _ = make_conn()
        with patch("retail_pulse.service.db.fetch_alert", return_value={"id": 5, "status": status}), \
             patch("retail_pulse.service.db.update_alert") as update:
            with pytest.raises(TransitionError):
                service.dismiss_alert(conn, 5, ADMIN)
        update.assert_not_called()
        conn.rollback.assert_called_once()

    def test_acknowledged_cannot_be_acknowledged_again(self):
        conn, _ = make_conn()
        with patch("retail_pulse.service.db.fetch_alert", return_value={"id": 5, "status": "acknowledged"}):
            with pytest.raises(TransitionError):
                service.acknowledge_alert(conn, 5, ADMIN)

    def test_supplier_cannot_touch_other_suppliers_alert(self):
        conn, _ = make_conn()
        with patch("retail_pulse.service.db.fetch_alert", return_value={"id": 5, "status": "active", "supplier_id": 9}):
            with pytest.raises(PermissionError):
                service.acknowledge_alert(conn, 5, SUPPLIER_4)


# ─────────────────────────────────────────────────────────────────────────────
# Eco orders
# ─────────────────────────────────────────────────────────────────────────────

class TestEcoOrders:

    def test_only_consumers(self):
        conn, _ = make_conn()
        with pytest.raises(PermissionError):
            service.record_eco_order(conn, {"preferences": {}}, ADMIN)
        with pytest.raises(PermissionError):
            service.record_eco_order(conn, {"preferences": {}}, None)

    def test_records_impact(self):
        conn, _ = make_conn()
        data = {"preferences": {"green_delivery": True}, "total_amount": 200, "items": [{"name": "tea"}]}
        with patch("retail_pulse.service.db.insert_order", side_effect=_echo_insert) as insert:
            service.record_eco_order(conn, data, CONSUMER)
        record = insert.call_args[0][1]
        assert record["order_id"].startswith("ORD-")
        assert record["customer_id"] == "u-cons"
        assert record["eco_impact"]["carbon_saved"] == 30.0
        conn.commit.assert_called_once()


# ─────────────────────────────────────────────────────────────────────────────
# Update payload hygiene
# ─────────────────────────────────────────────────────────────────────────────

class TestUpdatePayloads:

    def test_duplicate_certifications_stored_once(self):
        conn, _ = make_conn()
        data = {"supplier_id": 4, "sku": "A-1", "packaging_type": "recyclable",
                "certifications": ["Organic", "Organic", "Vegan"]}
        with patch("retail_pulse.service.db.insert_product", side_effect=_echo_insert) as insert:
            service.create_product(conn, data, ADMIN)
        assert insert.call_args[0][1]["certifications"] == ["Organic", "Vegan"]

    def test_duplicate_certifications_on_update(self):
        conn, _ = make_conn()
        current = {"id": 8, "supplier_id": 4, "certifications": []}
        with patch("retail_pulse.service.db.fetch_product", return_value=current), \
             patch("retail_pulse.service.db.update_product", side_effect=_echo_update) as update:
            service.update_product(conn, 8, {"certifications": ["Halal", "Halal"]}, ADMIN)
        assert update.call_args[0][2]["certifications"] == ["Halal"]

    def test_null_shipment_field_keeps_stored_value(self):
        conn, _ = make_conn()
        current = {"id": 1, "supplier_id": 4, "quantity": 500, "distance_km": 100,
                   "transport_mode": "diesel", "vehicle_type": "truck", "carbon_kg": 7.5}
        with patch("retail_pulse.service.db.fetch_shipment", return_value=current), \
             patch("retail_pulse.service.db.update_shipment", side_effect=_echo_update) as update:
            service.update_shipment(conn, 1, {"quantity": None, "distance_km": None}, ADMIN)
        fields = update.call_args[0][2]
        assert "quantity" not in fields
        assert "distance_km" not in fields
        assert fields["carbon_kg"] == pytest.approx(7.5)

    def test_null_alert_field_keeps_stored_value(self):
        conn, _ = make_conn()
        current = {"id": 5, "supplier_id": 4, "status": "active", "predicted_waste_percentage": 40,
                   "confidence": 80, "current_stock": 10, "predicted_waste_qty": 4}
        with patch("retail_pulse.service.db.fetch_alert", return_value=current), \
             patch("retail_pulse.service.db.update_alert", side_effect=_echo_update) as update:
            service.update_alert(conn, 5, {"confidence": None, "predicted_waste_percentage": None}, ADMIN)
        fields = update.call_args[0][2]
        assert "confidence" not in fields
        # 40 × 0.8 = 32
        assert fields["risk_level"] == "critical"

    def test_null_supplier_name_ignored(self):
        conn, _ = make_conn()
        current = {"id": 4, "name": "Acme", "certification_level": "Basic"}
        with patch("retail_pulse.service.db.fetch_supplier", return_value=current), \
             patch("retail_pulse.service.db.update_supplier", side_effect=_echo_update) as update:
            service.update_supplier(conn, 4, {"name": None, "certification_level": None}, ADMIN)
        fields = update.call_args[0][2]
        assert "name" not in fields
        # Basic 10 + carbon 20
        assert fields["esg_score"] == 30
