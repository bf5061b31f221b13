"""
Trade Operations Platform
Notification, Progression & Scheduler Blueprint.

Provides:
    - Notification listing, stats, read / complete actions
    - Manual notification checks (full pass, single contract, single shipment)
    - Workflow progression rule admin (list, update, stats, manual check)
    - Scheduled job management (list, status, trigger, toggle)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from app.blueprints import pagination_args
from app.core.exceptions import ValidationError
from app.models import db
from app.models.logistics import Contract, Shipment
from app.models.notification import NOTIFICATION_SEVERITIES, Notification
from app.services import workflow_progression
from app.services.notification import NotificationService
from app.services.notification_generator import (
    check_contract_notifications,
    check_shipment_notifications,
)
from app.services.scheduler_service import SchedulerService
from app.utils.errors import E, api_error
from app.utils.helpers import get_or_404, parse_bool

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")


def _database_error(action):
    logger.exception("Database error %s", action)
    db.session.rollback()
    return api_error(E.DATABASE, "Database error")


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATIONS
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    """List notifications, newest first."""
    limit, offset = pagination_args()
    severity = request.args.get("severity")
    if severity and severity not in NOTIFICATION_SEVERITIES:
        return api_error(E.VALIDATION_INVALID,
                         f"Invalid severity. Must be one of: {sorted(NOTIFICATION_SEVERITIES)}")

    items, total = NotificationService.list_notifications(
        is_read=parse_bool(request.args.get("is_read")),
        notification_type=request.args.get("type"),
        severity=severity,
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@notification_bp.route("/notifications/pending", methods=["GET"])
def pending_notifications():
    """Open actionable notifications grouped by severity."""
    grouped = NotificationService.pending_by_severity()
    return jsonify({
        "total": sum(len(v) for v in grouped.values()),
        "by_severity": {sev: [n.to_dict() for n in items] for sev, items in grouped.items()},
    })


@notification_bp.route("/notifications/stats", methods=["GET"])
def notification_stats():
    return jsonify(NotificationService.stats())


@notification_bp.route("/notifications/<int:nid>/read", methods=["POST"])
def mark_notification_read(nid):
    notif, err = get_or_404(Notification, nid, "Notification")
    if err:
        return err
    try:
        NotificationService.mark_read(notif.id)
    except SQLAlchemyError:
        return _database_error("marking notification read")
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_notifications_read():
    try:
        count = NotificationService.mark_all_read()
    except SQLAlchemyError:
        return _database_error("marking all notifications read")
    return jsonify({"marked_read": count})


@notification_bp.route("/notifications/<int:nid>/complete", methods=["PUT"])
def complete_notification(nid):
    """Mark the required action done. Repeating the call is a no-op."""
    notif, err = get_or_404(Notification, nid, "Notification")
    if err:
        return err
    try:
        NotificationService.complete_action(notif.id)
    except SQLAlchemyError:
        return _database_error("completing notification")
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/auto-completed", methods=["GET"])
def list_auto_completed():
    """Notifications closed by the progression engine, most recent first."""
    limit, offset = pagination_args()
    items, total = NotificationService.list_auto_completed(limit=limit, offset=offset)
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    })


# ── Manual checks ─────────────────────────────────────────────────────────

@notification_bp.route("/notifications/check", methods=["POST"])
def trigger_notification_check():
    """Run the notification_check job now (generation + auto-completion)."""
    result = SchedulerService.run_job("notification_check")
    if result["status"] == "skipped":
        return jsonify(result), 409
    return jsonify(result)


@notification_bp.route("/notifications/contracts/<int:contract_id>/check", methods=["POST"])
def check_contract(contract_id):
    contract, err = get_or_404(Contract, contract_id, "Contract")
    if err:
        return err
    created = check_contract_notifications(contract.id)
    return jsonify({"contract_id": contract.id, "notifications_created": created})


@notification_bp.route("/notifications/shipments/<int:shipment_id>/check", methods=["POST"])
def check_shipment(shipment_id):
    shipment, err = get_or_404(Shipment, shipment_id, "Shipment")
    if err:
        return err
    created = check_shipment_notifications(shipment.id)
    return jsonify({"shipment_id": shipment.id, "notifications_created": created})


# ═══════════════════════════════════════════════════════════════════════════
#  WORKFLOW PROGRESSION RULES
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/progression-rules", methods=["GET"])
def list_progression_rules():
    rules = workflow_progression.list_rules()
    return jsonify({"rules": [r.to_dict() for r in rules], "total": len(rules)})


@notification_bp.route("/progression-rules/<int:rule_id>", methods=["PUT"])
def update_progression_rule(rule_id):
    """Update conditions, is_active, priority or description of a rule."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")

    try:
        rule = workflow_progression.update_rule(rule_id, data)
    except ValidationError as exc:
        db.session.rollback()
        return api_error(E.VALIDATION_CONSTRAINT, str(exc), details=exc.details)
    except SQLAlchemyError:
        return _database_error("updating progression rule")

    if rule is None:
        return api_error(E.NOT_FOUND, "Progression rule not found")
    return jsonify(rule.to_dict())


@notification_bp.route("/progression-rules/stats", methods=["GET"])
def progression_rule_stats():
    return jsonify(workflow_progression.get_stats())


@notification_bp.route("/progression-rules/check", methods=["POST"])
def check_progression_rules():
    """Run one auto-completion pass now."""
    return jsonify(workflow_progression.check_and_auto_complete())


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULED JOBS MANAGEMENT
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/scheduler/jobs", methods=["GET"])
def list_scheduled_jobs():
    """List all registered jobs with their schedule and run history."""
    jobs = SchedulerService.list_jobs()
    return jsonify({"jobs": jobs, "total": len(jobs)})


@notification_bp.route("/scheduler/jobs/<job_name>", methods=["GET"])
def get_job_status(job_name):
    status = SchedulerService.get_job_status(job_name)
    if not status:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(status)


@notification_bp.route("/scheduler/jobs/<job_name>/trigger", methods=["POST"])
def trigger_job(job_name):
    """Manually trigger a scheduled job. Overlapping runs are skipped."""
    result = SchedulerService.run_job(job_name)
    if result.get("status") == "error" and "Unknown job" in (result.get("error") or ""):
        return jsonify(result), 404
    if result["status"] == "skipped":
        return jsonify(result), 409
    return jsonify(result)


@notification_bp.route("/scheduler/jobs/<job_name>/toggle", methods=["PATCH"])
def toggle_job_status(job_name):
    """Enable or disable a scheduled job."""
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if not isinstance(enabled, bool):
        return api_error(E.VALIDATION_REQUIRED, "'enabled' field is required (true/false)")

    try:
        result = SchedulerService.toggle_job(job_name, enabled)
    except SQLAlchemyError:
        return _database_error("toggling scheduled job")
    if not result:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(result)
