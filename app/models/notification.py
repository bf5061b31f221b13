"""
Trade Operations Platform
Notification domain model.

Models:
    - Notification: bilingual action notice with read / completion tracking

A notification is OPEN until ``action_completed`` is set, either by a user
(COMPLETED) or by the workflow-progression engine (AUTO_COMPLETED).
Both states are terminal.
"""

from datetime import datetime, timezone

import sqlalchemy as sa

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_SEVERITIES = {"info", "warning", "error", "success"}


def make_dedup_key(notification_type, shipment_id=None, contract_id=None):
    """Build the ``type:shipment:contract`` key that is unique among open notifications."""
    return f"{notification_type}:{shipment_id or '-'}:{contract_id or '-'}"


class Notification(db.Model):
    """
    Action notice produced by the notification engine.

    At most one of ``shipment_id`` / ``contract_id`` is set; global notices
    carry neither. ``dedup_key`` is filled for deduplicated notices and a
    partial unique index keeps it unique while the notice is open.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index(
            "uq_notifications_open_dedup_key", "dedup_key", unique=True,
            sqlite_where=sa.text("action_completed = 0"),
            postgresql_where=sa.text("action_completed = false"),
        ),
        db.Index("ix_notifications_type_created", "type", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(60), nullable=False, index=True,
                     comment="Business rule key, e.g. balance_payment_due_2w")
    severity = db.Column(db.String(20), default="info", nullable=False)

    title = db.Column(db.String(300), nullable=False)
    title_ar = db.Column(db.String(300), default="")
    message = db.Column(db.Text, default="")
    message_ar = db.Column(db.Text, default="")
    action_required = db.Column(db.Text, nullable=True)
    action_required_ar = db.Column(db.Text, nullable=True)

    due_date = db.Column(db.Date, nullable=True)
    auto_escalate_at = db.Column(db.DateTime(timezone=True), nullable=True)

    shipment_id = db.Column(
        db.Integer, db.ForeignKey("shipments.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    contract_id = db.Column(
        db.Integer, db.ForeignKey("contracts.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    meta = db.Column("metadata", db.JSON, default=dict)
    dedup_key = db.Column(db.String(120), nullable=True,
                          comment="type:shipment:contract; NULL for always-fire notices")

    # Read tracking
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Completion tracking
    action_completed = db.Column(db.Boolean, default=False, nullable=False)
    action_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    auto_completed = db.Column(db.Boolean, default=False, nullable=False)
    auto_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    auto_completed_reason = db.Column(db.String(500), nullable=True)
    auto_completed_rule_id = db.Column(
        db.Integer, db.ForeignKey("workflow_progression_rules.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    @property
    def is_open(self):
        return not self.action_completed

    def mark_read(self, now=None):
        self.is_read = True
        self.read_at = self.read_at or now or datetime.now(timezone.utc)

    def mark_completed(self, now=None):
        now = now or datetime.now(timezone.utc)
        self.action_completed = True
        self.action_completed_at = now
        self.mark_read(now)

    def mark_auto_completed(self, rule, now=None):
        """Retire the notice because ``rule`` found the workflow already moved on."""
        now = now or datetime.now(timezone.utc)
        self.mark_completed(now)
        self.auto_completed = True
        self.auto_completed_at = now
        self.auto_completed_reason = rule.description or rule.rule_name
        self.auto_completed_rule_id = rule.id

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "title": self.title,
            "title_ar": self.title_ar,
            "message": self.message,
            "message_ar": self.message_ar,
            "action_required": self.action_required,
            "action_required_ar": self.action_required_ar,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "auto_escalate_at": self.auto_escalate_at.isoformat() if self.auto_escalate_at else None,
            "shipment_id": self.shipment_id,
            "contract_id": self.contract_id,
            "metadata": self.meta or {},
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "action_completed": self.action_completed,
            "action_completed_at": (
                self.action_completed_at.isoformat() if self.action_completed_at else None
            ),
            "auto_completed": self.auto_completed,
            "auto_completed_at": self.auto_completed_at.isoformat() if self.auto_completed_at else None,
            "auto_completed_reason": self.auto_completed_reason,
            "auto_completed_rule_id": self.auto_completed_rule_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.type} {self.title[:40]}>"
