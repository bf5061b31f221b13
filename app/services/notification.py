"""
Trade Operations Platform
Notification Service.

Central service for writing, querying and completing notifications.

Writes go through :meth:`NotificationService.create`, which enforces
"at most one open notification per (type, shipment_id, contract_id)":
an existence check first, then an insert guarded by the partial unique
index on ``notifications.dedup_key``. A concurrent insert that loses the
race is rolled back and reported as not created.

Also hosts the quality-incident entry points called directly by the
quality workflow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.exceptions import ValidationError
from app.models import db
from app.models.notification import NOTIFICATION_SEVERITIES, Notification, make_dedup_key

logger = logging.getLogger(__name__)


@dataclass
class NotificationDraft:
    """Everything needed to insert one notification."""

    type: str
    severity: str
    title: str
    title_ar: str
    message: str
    message_ar: str
    action_required: str | None = None
    action_required_ar: str | None = None
    due_date: date | None = None
    auto_escalate_hours: int | None = None
    shipment_id: int | None = None
    contract_id: int | None = None
    dedup: bool = True
    meta: dict[str, Any] = field(default_factory=dict)
    # Called with the inserted row; skipped when the draft was deduplicated.
    on_created: Callable[[Notification], None] | None = None

    @property
    def dedup_key(self) -> str | None:
        if not self.dedup:
            return None
        return make_dedup_key(self.type, self.shipment_id, self.contract_id)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def exists(notification_type, shipment_id=None, contract_id=None):
        """True when an open notification already covers (type, shipment, contract)."""
        key = make_dedup_key(notification_type, shipment_id, contract_id)
        stmt = select(Notification.id).where(
            Notification.dedup_key == key,
            Notification.action_completed.is_(False),
        ).limit(1)
        return db.session.execute(stmt).first() is not None

    @staticmethod
    def create(draft: NotificationDraft, now=None):
        """
        Insert a notification unless an open duplicate exists.

        Returns:
            The committed Notification, or None when it was deduplicated or
            the insert failed (failures are logged, never raised).
        """
        if draft.severity not in NOTIFICATION_SEVERITIES:
            raise ValueError(f"Invalid severity: {draft.severity}")
        if draft.shipment_id is not None and draft.contract_id is not None:
            raise ValueError("A notification links to a shipment or a contract, not both")

        if draft.dedup and NotificationService.exists(draft.type, draft.shipment_id, draft.contract_id):
            return None

        now = now or datetime.now(timezone.utc)
        notif = Notification(
            type=draft.type,
            severity=draft.severity,
            title=draft.title,
            title_ar=draft.title_ar,
            message=draft.message,
            message_ar=draft.message_ar,
            action_required=draft.action_required,
            action_required_ar=draft.action_required_ar,
            due_date=draft.due_date,
            auto_escalate_at=(
                now + timedelta(hours=draft.auto_escalate_hours) if draft.auto_escalate_hours else None
            ),
            shipment_id=draft.shipment_id,
            contract_id=draft.contract_id,
            meta={"created_by": "notification_service", **draft.meta},
            dedup_key=draft.dedup_key,
        )
        context = {"notification_type": draft.type, "shipment_id": draft.shipment_id,
                   "contract_id": draft.contract_id}
        db.session.add(notif)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.info("Open %s notification already exists (%s), skipped", draft.type, draft.dedup_key,
                        extra=context)
            return None
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to create notification %s", draft.type, extra=context)
            return None

        logger.info("Created %s notification: %s", draft.severity, draft.type, extra=context)
        if draft.on_created is not None:
            draft.on_created(notif)
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_notifications(*, is_read=None, notification_type=None, severity=None,
                           limit=50, offset=0):
        """Notifications newest first, with the unfiltered-by-page total."""
        q = Notification.query
        if is_read is not None:
            q = q.filter(Notification.is_read.is_(is_read))
        if notification_type:
            q = q.filter(Notification.type == notification_type)
        if severity:
            q = q.filter(Notification.severity == severity)
        total = q.count()
        items = q.order_by(Notification.created_at.desc(), Notification.id.desc()) \
                 .offset(offset).limit(limit).all()
        return items, total

    @staticmethod
    def pending_by_severity():
        """Open actionable notifications grouped by severity, most urgent due date first."""
        items = (
            Notification.query
            .filter(
                Notification.action_required.isnot(None),
                Notification.action_completed.is_(False),
            )
            .order_by(Notification.due_date.asc().nulls_last(), Notification.created_at.desc())
            .all()
        )
        grouped = {"error": [], "warning": [], "info": [], "success": []}
        for n in items:
            grouped.setdefault(n.severity, []).append(n)
        return grouped

    @staticmethod
    def stats(now=None):
        """Counters for the notification bell / dashboard."""
        now = now or datetime.now(timezone.utc)
        open_q = Notification.query.filter(Notification.action_completed.is_(False))
        by_severity = dict(
            db.session.execute(
                select(Notification.severity, func.count(Notification.id))
                .where(Notification.action_completed.is_(False))
                .group_by(Notification.severity)
            ).all()
        )
        return {
            "total": Notification.query.count(),
            "unread": Notification.query.filter(Notification.is_read.is_(False)).count(),
            "open": open_q.count(),
            "open_by_severity": by_severity,
            "overdue": open_q.filter(
                Notification.due_date.isnot(None),
                Notification.due_date < now.date(),
            ).count(),
            "auto_completed": Notification.query.filter(Notification.auto_completed.is_(True)).count(),
        }

    @staticmethod
    def list_auto_completed(limit=50, offset=0):
        q = Notification.query.filter(Notification.auto_completed.is_(True))
        total = q.count()
        items = q.order_by(Notification.auto_completed_at.desc()).offset(offset).limit(limit).all()
        return items, total

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id):
        """Mark a single notification as read."""
        notif = db.session.get(Notification, notification_id)
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read():
        """Mark every unread notification as read. Returns the number updated."""
        now = datetime.now(timezone.utc)
        count = Notification.query.filter(Notification.is_read.is_(False)).update(
            {"is_read": True, "read_at": now}, synchronize_session="fetch",
        )
        db.session.commit()
        return count

    @staticmethod
    def complete_action(notification_id):
        """Manual completion by a user. Completing twice keeps the first timestamp."""
        notif = db.session.get(Notification, notification_id)
        if notif and not notif.action_completed:
            notif.mark_completed()
            db.session.commit()
        return notif

    # ── Quality Incident Entry Points ─────────────────────────────────────

    @staticmethod
    def notify_quality_incident_created(incident_id, shipment_sn):
        """New incident: shipment goes ON HOLD. Fire-once until the notice is handled."""
        today = date.today()
        return NotificationService.create(NotificationDraft(
            type="quality_incident_created",
            severity="warning",
            title="New quality incident reported",
            title_ar="تم الإبلاغ عن حادثة جودة جديدة",
            message=(f"Quality incident reported for shipment {shipment_sn}. "
                     "Shipment is now ON HOLD. Review required."),
            message_ar=f"تم الإبلاغ عن حادثة جودة للشحنة {shipment_sn}. الشحنة الآن محتجزة. المراجعة مطلوبة.",
            action_required="Review the incident report and take action",
            action_required_ar="مراجعة تقرير الحادثة واتخاذ إجراء",
            due_date=today + timedelta(days=1),
            meta={"quality_incident_id": incident_id, "shipment_sn": shipment_sn},
        ))

    @staticmethod
    def notify_quality_incident_submitted(incident_id, shipment_sn, issue_type):
        today = date.today()
        return NotificationService.create(NotificationDraft(
            type="quality_incident_submitted",
            severity="error",
            title="URGENT: Quality incident awaiting review",
            title_ar="عاجل: حادثة جودة بانتظار المراجعة",
            message=(f"Quality incident ({issue_type}) for shipment {shipment_sn} has been submitted. "
                     "Shipment is ON HOLD. Supervisor action required."),
            message_ar=(f"تم تقديم حادثة الجودة ({issue_type}) للشحنة {shipment_sn}. "
                        "الشحنة محتجزة. إجراء المشرف مطلوب."),
            action_required="Review samples, then request resampling, keep or clear the HOLD, or close",
            action_required_ar="مراجعة العينات ثم طلب إعادة العينات أو إبقاء الاحتجاز أو رفعه أو الإغلاق",
            due_date=today + timedelta(days=1),
            auto_escalate_hours=24,
            dedup=False,
            meta={"quality_incident_id": incident_id, "shipment_sn": shipment_sn},
        ))

    @staticmethod
    def notify_resampling_requested(incident_id, shipment_sn, sample_ids):
        today = date.today()
        samples = ", ".join(str(s) for s in sample_ids)
        return NotificationService.create(NotificationDraft(
            type="quality_resampling_requested",
            severity="warning",
            title="Resampling requested",
            title_ar="طلب إعادة العينات",
            message=f"Supervisor requested resampling for shipment {shipment_sn}. Samples to redo: {samples}",
            message_ar=f"طلب المشرف إعادة العينات للشحنة {shipment_sn}. العينات المطلوبة: {samples}",
            action_required="Complete the requested samples and resubmit",
            action_required_ar="إكمال العينات المطلوبة وإعادة الإرسال",
            due_date=today + timedelta(days=2),
            dedup=False,
            meta={"quality_incident_id": incident_id, "shipment_sn": shipment_sn},
        ))

    @staticmethod
    def notify_hold_status_changed(shipment_sn, action, reason):
        """HOLD decision taken: ``action`` is ``cleared`` or ``kept``."""
        if action not in ("cleared", "kept"):
            raise ValidationError(f"Invalid hold action: {action}", details={"action": "cleared or kept"})
        cleared = action == "cleared"
        return NotificationService.create(NotificationDraft(
            type=f"quality_hold_{action}",
            severity="success" if cleared else "warning",
            title=f"{'HOLD cleared' if cleared else 'HOLD maintained'}: {shipment_sn}",
            title_ar=f"{'تم رفع الاحتجاز' if cleared else 'تم الإبقاء على الاحتجاز'}: {shipment_sn}",
            message=(
                f"HOLD has been cleared for shipment {shipment_sn}. Goods can now be sold. Reason: {reason}"
                if cleared else
                f"HOLD is maintained for shipment {shipment_sn}. Do NOT sell or repack. Reason: {reason}"
            ),
            message_ar=(
                f"تم رفع الاحتجاز للشحنة {shipment_sn}. يمكن الآن بيع البضائع. السبب: {reason}"
                if cleared else
                f"تم الإبقاء على احتجاز الشحنة {shipment_sn}. لا تبيع أو تعيد التغليف. السبب: {reason}"
            ),
            dedup=False,
            meta={"shipment_sn": shipment_sn},
        ))

    @staticmethod
    def notify_quality_incident_closed(incident_id, shipment_sn, outcome):
        return NotificationService.create(NotificationDraft(
            type="quality_incident_closed",
            severity="success",
            title="Quality incident closed",
            title_ar="تم إغلاق حادثة الجودة",
            message=f"Quality incident for shipment {shipment_sn} has been closed. Final outcome: {outcome}",
            message_ar=f"تم إغلاق حادثة الجودة للشحنة {shipment_sn}. النتيجة النهائية: {outcome}",
            dedup=False,
            meta={"quality_incident_id": incident_id, "shipment_sn": shipment_sn},
        ))

    @staticmethod
    def create_quality_feedback_reminder(shipment_id, shipment_sn, now=None):
        """48-hour reminder after delivery to check goods quality."""
        now = now or datetime.now(timezone.utc)
        return NotificationService.create(NotificationDraft(
            type="quality_feedback_reminder",
            severity="info",
            title="Quality feedback reminder",
            title_ar="تذكير بملاحظات الجودة",
            message=(f"Shipment {shipment_sn} was marked as delivered. "
                     "Please provide quality feedback within 48 hours."),
            message_ar=f"تم تسليم الشحنة {shipment_sn}. يرجى تقديم ملاحظات الجودة خلال 48 ساعة.",
            action_required="Check goods quality and report any issues",
            action_required_ar="فحص جودة البضائع والإبلاغ عن أي مشاكل",
            due_date=(now + timedelta(hours=48)).date(),
            shipment_id=shipment_id,
            dedup=False,
        ), now=now)
