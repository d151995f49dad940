"""
Unit tests for retail_pulse/rescore.py

db.fetch_all / db.update_row are patched; the connection is a MagicMock.
"""
from unittest.mock import MagicMock, patch

from retail_pulse import rescore

SUPPLIERS = [
    {"id": 1, "certification_level": "B Corp", "esg_score": 60},   # already correct
    {"id": 2, "certification_level": "Basic", "esg_score": 99},    # should be 30
]


class TestRescoreEntity:

    def test_only_changed_rows_written(self):
        conn = MagicMock()
        with patch("retail_pulse.rescore.db.fetch_all", return_value=SUPPLIERS), \
             patch("retail_pulse.rescore.db.update_row") as update:
            summary = rescore.rescore_entity(conn, "suppliers")

        assert summary.scanned == 2
        assert summary.changed == 1
        assert summary.errors == []
        update.assert_called_once_with(conn, "suppliers", 2, {"esg_score": 30})
        conn.commit.assert_called_once()

    def test_dry_run_writes_nothing(self):
        conn = MagicMock()
        with patch("retail_pulse.rescore.db.fetch_all", return_value=SUPPLIERS), \
             patch("retail_pulse.rescore.db.update_row") as update:
            summary = rescore.rescore_entity(conn, "suppliers", dry_run=True)

        assert summary.changed == 1
        update.assert_not_called()
        conn.commit.assert_not_called()
        conn.rollback.assert_called_once()

    def test_failed_row_is_collected(self):
        conn = MagicMock()
        with patch("retail_pulse.rescore.db.fetch_all", return_value=SUPPLIERS), \
             patch("retail_pulse.rescore.db.update_row", side_effect=RuntimeError("deadlock")):
            summary = rescore.rescore_entity(conn, "suppliers")

        assert len(summary.errors) == 1
        assert "id=2" in summary.errors[0]
        conn.rollback.assert_called_once()

    def test_alerts_use_waste_alerts_table(self):
        conn = MagicMock()
        rows = [{"id": 7, "predicted_waste_percentage": 50, "confidence": 100,
                 "current_stock": 0, "predicted_waste_qty": 0, "risk_level": "low", "recommendations": []}]
        with patch("retail_pulse.rescore.db.fetch_all", return_value=rows) as fetch, \
             patch("retail_pulse.rescore.db.update_row") as update:
            rescore.rescore_entity(conn, "alerts")

        fetch.assert_called_once_with(conn, "waste_alerts")
        changes = update.call_args[0][3]
        assert changes["risk_level"] == "critical"

    def test_float_noise_is_not_a_change(self):
        conn = MagicMock()
        rows = [{"id": 3, "transport_mode": "diesel", "vehicle_type": "truck",
                 "distance_km": 100, "quantity": 500, "carbon_kg": 7.5000000000001}]
        with patch("retail_pulse.rescore.db.fetch_all", return_value=rows), \
             patch("retail_pulse.rescore.db.update_row") as update:
            summary = rescore.rescore_entity(conn, "shipments")
        assert summary.changed == 0
        update.assert_not_called()
