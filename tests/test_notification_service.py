"""
Tests — NotificationService.

Covers:
    1. create(): validation, dedup, partial unique index
    2. Queries: list, pending, stats, auto-completed
    3. Actions: read / read-all / complete
    4. Quality-incident entry points
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ValidationError
from app.models import db
from app.models.notification import Notification, make_dedup_key
from app.services.notification import NotificationDraft, NotificationService


def _draft(**overrides):
    data = dict(
        type="documents_needed",
        severity="warning",
        title="Request shipping documents",
        title_ar="طلب مستندات الشحن",
        message="Shipment SN-1 is sailed.",
        message_ar="الشحنة SN-1 أبحرت.",
        action_required="Request documents",
    )
    data.update(overrides)
    return NotificationDraft(**data)


# ═══════════════════════════════════════════════════════════════════════════
#  Create / dedup
# ═══════════════════════════════════════════════════════════════════════════

class TestCreate:
    def test_create_persists(self, make_shipment):
        s = make_shipment()
        n = NotificationService.create(_draft(shipment_id=s.id, auto_escalate_hours=24))

        assert n.id is not None
        assert n.dedup_key == make_dedup_key("documents_needed", s.id, None)
        assert n.is_open
        assert n.meta["created_by"] == "notification_service"
        assert n.auto_escalate_at is not None

    def test_duplicate_open_is_skipped(self, make_shipment):
        s = make_shipment()
        assert NotificationService.create(_draft(shipment_id=s.id)) is not None
        assert NotificationService.create(_draft(shipment_id=s.id)) is None
        assert Notification.query.count() == 1

    def test_same_type_other_entity_is_allowed(self, make_shipment):
        a, b = make_shipment(), make_shipment()
        assert NotificationService.create(_draft(shipment_id=a.id)) is not None
        assert NotificationService.create(_draft(shipment_id=b.id)) is not None

    def test_exists(self, make_shipment):
        s = make_shipment()
        assert NotificationService.exists("documents_needed", s.id) is False
        NotificationService.create(_draft(shipment_id=s.id))
        assert NotificationService.exists("documents_needed", s.id) is True
        assert NotificationService.exists("documents_needed", None, s.id) is False

    def test_race_loser_is_rolled_back(self, make_shipment, monkeypatch):
        s = make_shipment()
        NotificationService.create(_draft(shipment_id=s.id))
        monkeypatch.setattr(NotificationService, "exists", staticmethod(lambda *a, **k: False))

        assert NotificationService.create(_draft(shipment_id=s.id)) is None
        assert Notification.query.count() == 1

    def test_undeduplicated_notices_always_insert(self):
        NotificationService.create(_draft(dedup=False))
        NotificationService.create(_draft(dedup=False))
        assert Notification.query.filter(Notification.dedup_key.is_(None)).count() == 2

    def test_invalid_severity(self):
        with pytest.raises(ValueError):
            NotificationService.create(_draft(severity="catastrophic"))

    def test_shipment_and_contract_together_rejected(self, make_shipment, make_contract):
        s, c = make_shipment(), make_contract()
        with pytest.raises(ValueError):
            NotificationService.create(_draft(shipment_id=s.id, contract_id=c.id))

    def test_on_created_hook_runs_only_on_insert(self, make_shipment):
        s = make_shipment()
        seen = []
        NotificationService.create(_draft(shipment_id=s.id, on_created=seen.append))
        NotificationService.create(_draft(shipment_id=s.id, on_created=seen.append))
        assert len(seen) == 1


class TestOpenDedupIndex:
    def test_index_rejects_second_open_row(self):
        key = make_dedup_key("send_docs_to_customs")
        db.session.add(Notification(type="send_docs_to_customs", title="a", dedup_key=key))
        db.session.commit()

        db.session.add(Notification(type="send_docs_to_customs", title="b", dedup_key=key))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_index_ignores_completed_rows(self):
        key = make_dedup_key("send_docs_to_customs")
        db.session.add(Notification(type="send_docs_to_customs", title="a", dedup_key=key,
                                    action_completed=True))
        db.session.add(Notification(type="send_docs_to_customs", title="b", dedup_key=key))
        db.session.commit()
        assert Notification.query.count() == 2


# ═══════════════════════════════════════════════════════════════════════════
#  Queries
# ═══════════════════════════════════════════════════════════════════════════

class TestQueries:
    def test_list_filters(self):
        NotificationService.create(_draft(type="a", severity="error", dedup=False))
        NotificationService.create(_draft(type="b", severity="info", dedup=False))
        read = NotificationService.create(_draft(type="a", severity="info", dedup=False))
        NotificationService.mark_read(read.id)

        items, total = NotificationService.list_notifications(notification_type="a")
        assert total == 2
        items, total = NotificationService.list_notifications(is_read=False, severity="info")
        assert [n.type for n in items] == ["b"]

    def test_list_pagination(self):
        for i in range(5):
            NotificationService.create(_draft(type=f"t{i}", dedup=False))
        items, total = NotificationService.list_notifications(limit=2, offset=1)
        assert total == 5
        assert [n.type for n in items] == ["t3", "t2"]

    def test_pending_groups_by_severity(self, today):
        NotificationService.create(_draft(type="late", severity="error",
                                          due_date=today + timedelta(days=3), dedup=False))
        NotificationService.create(_draft(type="early", severity="error",
                                          due_date=today + timedelta(days=1), dedup=False))
        NotificationService.create(_draft(type="fyi", severity="info", action_required=None,
                                          dedup=False))
        done = NotificationService.create(_draft(type="done", severity="warning", dedup=False))
        NotificationService.complete_action(done.id)

        grouped = NotificationService.pending_by_severity()
        assert [n.type for n in grouped["error"]] == ["early", "late"]
        assert grouped["warning"] == []
        assert grouped["info"] == []

    def test_stats(self, today):
        NotificationService.create(_draft(type="a", severity="error",
                                          due_date=today - timedelta(days=1), dedup=False))
        b = NotificationService.create(_draft(type="b", severity="info", dedup=False))
        NotificationService.complete_action(b.id)

        stats = NotificationService.stats()
        assert stats["total"] == 2
        assert stats["unread"] == 1
        assert stats["open"] == 1
        assert stats["open_by_severity"] == {"error": 1}
        assert stats["overdue"] == 1
        assert stats["auto_completed"] == 0


# ═══════════════════════════════════════════════════════════════════════════
#  Actions
# ═══════════════════════════════════════════════════════════════════════════

class TestActions:
    def test_mark_read(self):
        n = NotificationService.create(_draft(dedup=False))
        NotificationService.mark_read(n.id)
        db.session.refresh(n)
        assert n.is_read is True
        assert n.read_at is not None

    def test_mark_read_missing(self):
        assert NotificationService.mark_read(999) is None

    def test_mark_all_read(self):
        for _ in range(3):
            NotificationService.create(_draft(dedup=False))
        assert NotificationService.mark_all_read() == 3
        assert NotificationService.mark_all_read() == 0

    def test_complete_is_idempotent(self):
        n = NotificationService.create(_draft(dedup=False))
        NotificationService.complete_action(n.id)
        first = n.action_completed_at
        NotificationService.complete_action(n.id)

        db.session.refresh(n)
        assert n.action_completed is True
        assert n.is_read is True
        assert n.auto_completed is False
        assert n.action_completed_at == first


# ═══════════════════════════════════════════════════════════════════════════
#  Quality-incident entry points
# ═══════════════════════════════════════════════════════════════════════════

class TestQualityNotices:
    def test_incident_created_fires_once(self):
        first = NotificationService.notify_quality_incident_created(11, "SN-7")
        second = NotificationService.notify_quality_incident_created(12, "SN-8")

        assert first.severity == "warning"
        assert first.due_date == date.today() + timedelta(days=1)
        assert first.meta["quality_incident_id"] == 11
        assert "SN-7" in first.message
        assert second is None

    def test_incident_submitted_is_urgent(self):
        n = NotificationService.notify_quality_incident_submitted(11, "SN-7", "moisture")
        again = NotificationService.notify_quality_incident_submitted(11, "SN-7", "moisture")

        assert n.severity == "error"
        assert n.title.startswith("URGENT")
        assert "moisture" in n.message
        assert n.auto_escalate_at is not None
        assert again is not None

    def test_resampling_requested(self):
        n = NotificationService.notify_resampling_requested(11, "SN-7", [3, 5])
        assert n.severity == "warning"
        assert "3, 5" in n.message
        assert n.due_date == date.today() + timedelta(days=2)

    @pytest.mark.parametrize("action,severity", [("cleared", "success"), ("kept", "warning")])
    def test_hold_status_changed(self, action, severity):
        n = NotificationService.notify_hold_status_changed("SN-7", action, "lab results")
        assert n.type == f"quality_hold_{action}"
        assert n.severity == severity
        assert "lab results" in n.message

    def test_hold_status_rejects_unknown_action(self):
        with pytest.raises(ValidationError):
            NotificationService.notify_hold_status_changed("SN-7", "lifted", "n/a")

    def test_incident_closed(self):
        n = NotificationService.notify_quality_incident_closed(11, "SN-7", "credit note issued")
        assert n.severity == "success"
        assert "credit note issued" in n.message

    def test_quality_feedback_reminder(self, make_shipment):
        s = make_shipment(status="delivered")
        now = datetime(2026, 5, 1, 22, 0, tzinfo=timezone.utc)
        n = NotificationService.create_quality_feedback_reminder(s.id, s.sn, now=now)

        assert n.shipment_id == s.id
        assert n.due_date == date(2026, 5, 3)
