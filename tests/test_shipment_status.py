"""Tests — date-based shipment status recalculation."""

from datetime import date, timedelta

import pytest

from app.models import db
from app.models.logistics import Shipment
from app.services.shipment_status import (
    calculate_date_based_status,
    recalculate_date_based_statuses,
)

TODAY = date(2026, 3, 10)


def _shipment(**fields):
    return Shipment(sn="SN-X", status="planning", **fields)


class TestCalculateDateBasedStatus:
    def test_defaults_to_planning(self):
        assert calculate_date_based_status(_shipment(), TODAY) == "planning"

    def test_missed_shipping_date_without_bl_is_delayed(self):
        s = _shipment(agreed_shipping_date=TODAY - timedelta(days=1))
        assert calculate_date_based_status(s, TODAY) == "delayed"

    def test_shipping_date_today_is_not_delayed(self):
        s = _shipment(agreed_shipping_date=TODAY)
        assert calculate_date_based_status(s, TODAY) == "planning"

    def test_bl_with_future_eta_is_sailed(self):
        s = _shipment(bl_no="BL-1", eta=TODAY + timedelta(days=4))
        assert calculate_date_based_status(s, TODAY) == "sailed"

    @pytest.mark.parametrize("offset", [0, -3])
    def test_bl_with_eta_reached_awaits_clearance(self, offset):
        s = _shipment(bl_no="BL-1", eta=TODAY + timedelta(days=offset),
                      agreed_shipping_date=TODAY - timedelta(days=20))
        assert calculate_date_based_status(s, TODAY) == "awaiting_clearance"

    def test_bl_without_eta_stays_put(self):
        # a BL rules out "delayed" even when the shipping date has passed
        s = _shipment(bl_no="BL-1", agreed_shipping_date=TODAY - timedelta(days=5))
        assert calculate_date_based_status(s, TODAY) == "planning"

    def test_cleared_customs(self):
        s = _shipment(bl_no="BL-1", eta=TODAY - timedelta(days=5),
                      customs_clearance_date=TODAY - timedelta(days=1))
        assert calculate_date_based_status(s, TODAY) == "loaded_to_final"

    @pytest.mark.parametrize("has_issues,expected", [(False, "received"), (True, "quality_issue")])
    def test_warehouse_receipt_wins(self, has_issues, expected):
        s = _shipment(customs_clearance_date=TODAY, warehouse_receipt_confirmed=True,
                      warehouse_receipt_has_issues=has_issues)
        assert calculate_date_based_status(s, TODAY) == expected


class TestRecalculate:
    def test_updates_date_driven_shipments(self, make_shipment):
        arrived = make_shipment(status="sailed", bl_no="BL-1", eta=TODAY - timedelta(days=1))
        late = make_shipment(status="planning", agreed_shipping_date=TODAY - timedelta(days=2))
        on_track = make_shipment(status="planning", agreed_shipping_date=TODAY + timedelta(days=2))

        result = recalculate_date_based_statuses(TODAY)

        # on_track cannot move yet, so it is not even loaded
        assert result == {"processed": 2, "updated": 2, "errors": 0}
        db.session.expire_all()
        assert db.session.get(Shipment, arrived.id).status == "awaiting_clearance"
        assert db.session.get(Shipment, late.id).status == "delayed"
        assert db.session.get(Shipment, on_track.id).status == "planning"

    def test_static_shipments_do_not_fill_the_batch(self, app, make_shipment, monkeypatch):
        monkeypatch.setitem(app.config, "STATUS_RECALC_BATCH", 3)
        for _ in range(3):
            make_shipment(status="planning", agreed_shipping_date=TODAY + timedelta(days=5))
        arrived = make_shipment(status="sailed", bl_no="BL-7", eta=TODAY - timedelta(days=1))

        assert recalculate_date_based_statuses(TODAY) == {"processed": 1, "updated": 1, "errors": 0}
        db.session.refresh(arrived)
        assert arrived.status == "awaiting_clearance"

    def test_sailed_with_future_eta_is_not_loaded(self, make_shipment):
        make_shipment(status="sailed", bl_no="BL-1", eta=TODAY + timedelta(days=3))
        assert recalculate_date_based_statuses(TODAY)["processed"] == 0

    def test_delayed_shipment_recovers_when_bl_arrives(self, make_shipment):
        s = make_shipment(status="delayed", agreed_shipping_date=TODAY - timedelta(days=9),
                          bl_no="BL-9", eta=TODAY + timedelta(days=12))
        recalculate_date_based_statuses(TODAY)
        db.session.refresh(s)
        assert s.status == "sailed"

    def test_later_statuses_untouched(self, make_shipment):
        cleared = make_shipment(status="awaiting_clearance", bl_no="BL-1", eta=TODAY + timedelta(days=30))
        delivered = make_shipment(status="delivered", agreed_shipping_date=TODAY - timedelta(days=40))

        result = recalculate_date_based_statuses(TODAY)

        assert result["processed"] == 0
        db.session.refresh(cleared)
        db.session.refresh(delivered)
        assert cleared.status == "awaiting_clearance"
        assert delivered.status == "delivered"

    def test_deleted_shipments_skipped(self, make_shipment):
        make_shipment(status="planning", is_deleted=True, agreed_shipping_date=TODAY - timedelta(days=2))
        assert recalculate_date_based_statuses(TODAY)["processed"] == 0

    def test_batch_limit(self, app, make_shipment, monkeypatch):
        monkeypatch.setitem(app.config, "STATUS_RECALC_BATCH", 2)
        for _ in range(3):
            make_shipment(status="planning", agreed_shipping_date=TODAY - timedelta(days=1))

        assert recalculate_date_based_statuses(TODAY) == {"processed": 2, "updated": 2, "errors": 0}
        # the delayed shipments are still date-driven, so the next pass picks them up again
        assert recalculate_date_based_statuses(TODAY)["processed"] == 2
