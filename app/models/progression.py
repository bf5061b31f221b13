"""
Trade Operations Platform
Workflow progression rule model.

Models:
    - ProgressionRule: admin-authored rule that auto-completes open
      notifications of one type once its condition tree holds
"""

from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

RULE_ENTITY_TYPES = {"shipment", "contract", "quality_incident"}


class ProgressionRule(db.Model):
    """
    Declarative auto-completion rule.

    ``conditions`` holds a JSON condition tree, see
    :mod:`app.services.conditions`. Rules for the same notification type are
    evaluated by ascending ``priority``; the first one that holds wins.
    """

    __tablename__ = "workflow_progression_rules"
    __table_args__ = (
        db.Index("ix_progression_rules_type_priority", "notification_type", "priority"),
    )

    id = db.Column(db.Integer, primary_key=True)
    notification_type = db.Column(db.String(60), nullable=False,
                                  comment="Notification.type this rule retires")
    rule_name = db.Column(db.String(150), nullable=False)
    rule_name_ar = db.Column(db.String(150), default="")
    entity_type = db.Column(db.String(30), nullable=False, default="shipment",
                            comment="shipment, contract, quality_incident")
    conditions = db.Column(db.JSON, nullable=False, default=dict)
    priority = db.Column(db.Integer, nullable=False, default=100,
                         comment="Lower is evaluated first")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    description = db.Column(db.String(500), nullable=True)
    description_ar = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "notification_type": self.notification_type,
            "rule_name": self.rule_name,
            "rule_name_ar": self.rule_name_ar,
            "entity_type": self.entity_type,
            "conditions": self.conditions,
            "priority": self.priority,
            "is_active": self.is_active,
            "description": self.description,
            "description_ar": self.description_ar,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ProgressionRule {self.notification_type}#{self.priority} {self.rule_name}>"
