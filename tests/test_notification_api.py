"""
Tests — Notification, progression-rule and scheduler endpoints.

Covers:
    1. /api/v1/health
    2. Notifications: list, pending, stats, read, complete, auto-completed
    3. Manual checks (full, contract, shipment)
    4. Progression rules admin
    5. Scheduled jobs management
"""

from datetime import timedelta

from app.models import db
from app.models.notification import Notification
from app.models.progression import ProgressionRule
from app.services.notification import NotificationDraft, NotificationService
from app.services.scheduler_service import SchedulerService


def _notify(notification_type="documents_needed", severity="warning", **kw):
    kw.setdefault("action_required", "Request documents")
    return NotificationService.create(NotificationDraft(
        type=notification_type, severity=severity,
        title=f"{notification_type} title", title_ar="عنوان",
        message="message", message_ar="رسالة", **kw,
    ))


def _rule(**kw):
    rule = ProgressionRule(
        notification_type=kw.pop("notification_type", "documents_needed"),
        rule_name=kw.pop("rule_name", "Documents on file"),
        conditions=kw.pop("conditions", {"doc_count_gte": {"min": 3}}),
        priority=kw.pop("priority", 10),
        **kw,
    )
    db.session.add(rule)
    db.session.commit()
    return rule


# ═══════════════════════════════════════════════════════════════════════════
#  Health / errors
# ═══════════════════════════════════════════════════════════════════════════

class TestHealth:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "ok"
        assert data["scheduler"] == {"enabled": False, "scheduled_jobs": []}

    def test_request_duration_header(self, client):
        res = client.get("/api/v1/health")
        assert "X-Request-Duration-Ms" in res.headers

    def test_unknown_route_is_json_404(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
        assert res.get_json()["path"] == "/api/v1/nope"

    def test_wrong_method_is_405(self, client):
        assert client.delete("/api/v1/notifications").status_code == 405


# ═══════════════════════════════════════════════════════════════════════════
#  Notifications
# ═══════════════════════════════════════════════════════════════════════════

class TestNotificationEndpoints:
    def test_list_paginates(self, client, make_shipment):
        for _ in range(3):
            _notify(shipment_id=make_shipment().id)

        res = client.get("/api/v1/notifications?limit=2")
        assert res.status_code == 200
        data = res.get_json()
        assert data["total"] == 3
        assert len(data["items"]) == 2
        assert data["limit"] == 2 and data["offset"] == 0

    def test_list_filters(self, client, make_shipment):
        s = make_shipment()
        _notify(shipment_id=s.id)
        _notify("delivery_status_check", severity="info", shipment_id=s.id)

        data = client.get("/api/v1/notifications?severity=info").get_json()
        assert [n["type"] for n in data["items"]] == ["delivery_status_check"]

        data = client.get("/api/v1/notifications?type=documents_needed&is_read=false").get_json()
        assert data["total"] == 1

    def test_list_rejects_bad_severity(self, client):
        res = client.get("/api/v1/notifications?severity=panic")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_pending_groups_by_severity(self, client, make_shipment):
        s = make_shipment()
        _notify(severity="error", shipment_id=s.id)
        _notify("delivery_status_check", severity="info", shipment_id=s.id, action_required=None)

        data = client.get("/api/v1/notifications/pending").get_json()
        assert data["total"] == 1
        assert len(data["by_severity"]["error"]) == 1
        assert data["by_severity"]["info"] == []

    def test_stats(self, client, make_shipment, today):
        _notify(shipment_id=make_shipment().id, due_date=today - timedelta(days=1))
        data = client.get("/api/v1/notifications/stats").get_json()
        assert data["total"] == 1
        assert data["unread"] == 1
        assert data["overdue"] == 1

    def test_mark_read(self, client, make_shipment):
        n = _notify(shipment_id=make_shipment().id)
        res = client.post(f"/api/v1/notifications/{n.id}/read")
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True

    def test_mark_read_missing(self, client):
        res = client.post("/api/v1/notifications/999/read")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_read_all(self, client, make_shipment):
        s = make_shipment()
        _notify(shipment_id=s.id)
        _notify("delivery_status_check", shipment_id=s.id)

        res = client.post("/api/v1/notifications/read-all")
        assert res.get_json() == {"marked_read": 2}
        db.session.expire_all()
        assert Notification.query.filter_by(is_read=False).count() == 0

    def test_complete_is_idempotent(self, client, make_shipment):
        n = _notify(shipment_id=make_shipment().id)

        first = client.put(f"/api/v1/notifications/{n.id}/complete").get_json()
        second = client.put(f"/api/v1/notifications/{n.id}/complete").get_json()

        assert first["action_completed"] is True
        assert first["auto_completed"] is False
        assert second["action_completed_at"] == first["action_completed_at"]

    def test_complete_missing(self, client):
        assert client.put("/api/v1/notifications/12345/complete").status_code == 404

    def test_auto_completed_listing(self, client, make_shipment, make_document):
        s = make_shipment()
        for doc_type in ("BL_FINAL", "PL", "COO"):
            make_document(s, doc_type=doc_type)
        _rule()
        _notify(shipment_id=s.id)

        client.post("/api/v1/progression-rules/check")

        data = client.get("/api/v1/notifications/auto-completed").get_json()
        assert data["total"] == 1
        assert data["items"][0]["auto_completed_reason"] == "Documents on file"


# ═══════════════════════════════════════════════════════════════════════════
#  Manual checks
# ═══════════════════════════════════════════════════════════════════════════

class TestManualChecks:
    def test_full_check_runs_job(self, client, make_shipment, today):
        make_shipment(contract_ship_date=today + timedelta(days=1))
        SchedulerService.ensure_jobs_registered()

        res = client.post("/api/v1/notifications/check")

        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "success"
        assert data["result"]["generation"]["notifications_created"] == 1

    def test_full_check_conflicts_with_running_job(self, client):
        lock = SchedulerService._lock_for("notification_check")
        lock.acquire()
        try:
            res = client.post("/api/v1/notifications/check")
        finally:
            lock.release()
        assert res.status_code == 409
        assert res.get_json()["status"] == "skipped"

    def test_shipment_check(self, client, make_shipment, today):
        s = make_shipment(contract_ship_date=today + timedelta(days=1))

        res = client.post(f"/api/v1/notifications/shipments/{s.id}/check")

        assert res.status_code == 200
        assert res.get_json() == {"shipment_id": s.id, "notifications_created": 1}
        # dedup: a second manual check creates nothing
        res = client.post(f"/api/v1/notifications/shipments/{s.id}/check")
        assert res.get_json()["notifications_created"] == 0

    def test_contract_check(self, client, make_contract):
        c = make_contract(status="DRAFT")
        res = client.post(f"/api/v1/notifications/contracts/{c.id}/check")
        assert res.status_code == 200
        assert res.get_json()["contract_id"] == c.id

    def test_check_missing_entities(self, client):
        assert client.post("/api/v1/notifications/shipments/999/check").status_code == 404
        assert client.post("/api/v1/notifications/contracts/999/check").status_code == 404


# ═══════════════════════════════════════════════════════════════════════════
#  Progression rules
# ═══════════════════════════════════════════════════════════════════════════

class TestProgressionRuleEndpoints:
    def test_list(self, client):
        _rule()
        data = client.get("/api/v1/progression-rules").get_json()
        assert data["total"] == 1
        assert data["rules"][0]["notification_type"] == "documents_needed"

    def test_update(self, client):
        rule = _rule()
        res = client.put(f"/api/v1/progression-rules/{rule.id}",
                         json={"is_active": False, "priority": 3, "notification_type": "other"})
        assert res.status_code == 200
        data = res.get_json()
        assert data["is_active"] is False
        assert data["priority"] == 3
        assert data["notification_type"] == "documents_needed"

    def test_update_rejects_bad_types(self, client):
        rule = _rule()
        res = client.put(f"/api/v1/progression-rules/{rule.id}", json={"priority": "high"})
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_CONSTRAINT"
        assert "priority" in body["details"]

    def test_update_requires_body(self, client):
        rule = _rule()
        assert client.put(f"/api/v1/progression-rules/{rule.id}", json={}).status_code == 400

    def test_update_missing_rule(self, client):
        assert client.put("/api/v1/progression-rules/999", json={"priority": 1}).status_code == 404

    def test_stats(self, client):
        _rule()
        _rule(notification_type="delivery_status_check", is_active=False)
        data = client.get("/api/v1/progression-rules/stats").get_json()
        assert data["total_rules"] == 2
        assert data["active_rules"] == 1

    def test_manual_check(self, client):
        res = client.post("/api/v1/progression-rules/check")
        assert res.status_code == 200
        assert res.get_json() == {"processed": 0, "auto_completed": 0}


# ═══════════════════════════════════════════════════════════════════════════
#  Scheduled jobs
# ═══════════════════════════════════════════════════════════════════════════

class TestSchedulerEndpoints:
    def test_list_jobs(self, client):
        SchedulerService.ensure_jobs_registered()
        data = client.get("/api/v1/scheduler/jobs").get_json()
        names = {j["job_name"] for j in data["jobs"]}
        assert {"notification_check", "shipment_status_recalculation"} <= names
        assert data["total"] == len(data["jobs"])

    def test_job_status(self, client):
        SchedulerService.ensure_jobs_registered()
        data = client.get("/api/v1/scheduler/jobs/notification_check").get_json()
        assert data["job_name"] == "notification_check"
        assert data["running"] is False

    def test_job_status_unknown(self, client):
        assert client.get("/api/v1/scheduler/jobs/nope").status_code == 404

    def test_trigger(self, client):
        SchedulerService.ensure_jobs_registered()
        res = client.post("/api/v1/scheduler/jobs/shipment_status_recalculation/trigger")
        assert res.status_code == 200
        assert res.get_json()["status"] == "success"

        db.session.expire_all()
        status = client.get("/api/v1/scheduler/jobs/shipment_status_recalculation").get_json()
        assert status["run_count"] == 1
        assert status["last_run_status"] == "success"

    def test_trigger_unknown(self, client):
        assert client.post("/api/v1/scheduler/jobs/nope/trigger").status_code == 404

    def test_trigger_while_running(self, client):
        lock = SchedulerService._lock_for("shipment_status_recalculation")
        lock.acquire()
        try:
            res = client.post("/api/v1/scheduler/jobs/shipment_status_recalculation/trigger")
        finally:
            lock.release()
        assert res.status_code == 409

    def test_toggle(self, client):
        SchedulerService.ensure_jobs_registered()
        res = client.patch("/api/v1/scheduler/jobs/notification_check/toggle", json={"enabled": False})
        assert res.status_code == 200
        assert res.get_json()["status"] == "paused"

    def test_toggle_requires_boolean(self, client):
        SchedulerService.ensure_jobs_registered()
        res = client.patch("/api/v1/scheduler/jobs/notification_check/toggle", json={"enabled": "no"})
        assert res.status_code == 400

    def test_toggle_unknown(self, client):
        res = client.patch("/api/v1/scheduler/jobs/nope/toggle", json={"enabled": True})
        assert res.status_code == 404
