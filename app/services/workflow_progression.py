"""
Trade Operations Platform
Workflow-Progression Engine.

Auto-completes open notifications once the workflow behind them has moved
on (e.g. "request documents" once three documents are on file).

Algorithm:
    1. load active rules ordered by (priority, notification_type)
    2. load up to PROGRESSION_BATCH_SIZE open, actionable notifications
       created within PROGRESSION_LOOKBACK_DAYS, newest first
    3. per notification: candidate rules of its type; snapshot of the
       entity named by the first candidate's entity_type; first rule whose
       condition holds completes the notification

Each completion is committed on its own, so an interrupted pass simply
leaves fewer notifications for the next one.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any

from flask import current_app
from sqlalchemy import func, select

from app.core.exceptions import ValidationError
from app.models import db
from app.models.notification import Notification
from app.models.progression import RULE_ENTITY_TYPES, ProgressionRule
from app.services.conditions import ConditionEvaluator
from app.services.entity_snapshot import load_snapshot, related_status_lookup

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500
DEFAULT_LOOKBACK_DAYS = 30
UPDATABLE_RULE_FIELDS = ("conditions", "is_active", "priority", "description", "description_ar")


# ═══════════════════════════════════════════════════════════════════════════
#  Loading
# ═══════════════════════════════════════════════════════════════════════════

def load_active_rules() -> list[ProgressionRule]:
    stmt = (
        select(ProgressionRule)
        .where(ProgressionRule.is_active.is_(True))
        .order_by(ProgressionRule.priority.asc(), ProgressionRule.notification_type.asc(),
                  ProgressionRule.id.asc())
    )
    return list(db.session.execute(stmt).scalars())


def load_pending_notifications(now: datetime, limit: int, lookback_days: int) -> list[Notification]:
    stmt = (
        select(Notification)
        .where(
            Notification.action_required.isnot(None),
            Notification.action_completed.is_(False),
            Notification.auto_completed.is_(False),
            Notification.created_at >= now - timedelta(days=lookback_days),
        )
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )
    return list(db.session.execute(stmt).scalars())


def group_rules_by_type(rules: list[ProgressionRule]) -> dict[str, list[ProgressionRule]]:
    grouped: dict[str, list[ProgressionRule]] = defaultdict(list)
    for r in rules:
        grouped[r.notification_type].append(r)
    return grouped


# ═══════════════════════════════════════════════════════════════════════════
#  Evaluation
# ═══════════════════════════════════════════════════════════════════════════

def find_matching_rule(candidates: list[ProgressionRule],
                       snapshot: dict[str, Any]) -> ProgressionRule | None:
    """First candidate (in priority order) whose condition tree holds."""
    evaluator = ConditionEvaluator(snapshot, related_status_lookup)
    for candidate in candidates:
        try:
            if evaluator.evaluate(candidate.conditions):
                return candidate
        except Exception:
            logger.exception("Progression rule %s (%s) failed to evaluate",
                             candidate.id, candidate.rule_name)
    return None


def check_and_auto_complete(now: datetime | None = None) -> dict[str, int]:
    """
    Auto-complete notifications whose workflow has progressed.

    Returns:
        {"processed": <notifications looked at>, "auto_completed": <completed>}.
        Never raises.
    """
    now = now or datetime.now(timezone.utc)
    results = {"processed": 0, "auto_completed": 0}

    try:
        rules = load_active_rules()
        if not rules:
            logger.debug("No active progression rules")
            return results

        pending = load_pending_notifications(
            now,
            int(current_app.config.get("PROGRESSION_BATCH_SIZE", DEFAULT_BATCH_SIZE)),
            int(current_app.config.get("PROGRESSION_LOOKBACK_DAYS", DEFAULT_LOOKBACK_DAYS)),
        )
        if not pending:
            return results

        rules_by_type = group_rules_by_type(rules)

        for notif in pending:
            results["processed"] += 1
            context = {"notification_type": notif.type, "shipment_id": notif.shipment_id,
                       "contract_id": notif.contract_id}
            candidates = rules_by_type.get(notif.type)
            if not candidates:
                continue
            try:
                snapshot = load_snapshot(candidates[0].entity_type,
                                         shipment_id=notif.shipment_id,
                                         contract_id=notif.contract_id)
                if snapshot is None:
                    continue
                matched = find_matching_rule(candidates, snapshot)
                if matched is None:
                    continue
                notif.mark_auto_completed(matched, now)
                db.session.commit()
                results["auto_completed"] += 1
                logger.info("Auto-completed notification %s (%s) by rule %s",
                            notif.id, notif.type, matched.rule_name, extra=context)
            except Exception:
                db.session.rollback()
                logger.exception("Progression check failed for notification %s", notif.id,
                                 extra=context)
    except Exception:
        db.session.rollback()
        logger.exception("Workflow progression pass failed")

    logger.info("Workflow progression: %s", results)
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Admin accessors
# ═══════════════════════════════════════════════════════════════════════════

def list_rules() -> list[ProgressionRule]:
    stmt = select(ProgressionRule).order_by(ProgressionRule.notification_type,
                                            ProgressionRule.priority)
    return list(db.session.execute(stmt).scalars())


def update_rule(rule_id: int, data: dict[str, Any]) -> ProgressionRule | None:
    """
    Update a rule's editable fields. Unknown keys are ignored.

    Returns:
        The updated rule, or None when it does not exist.

    Raises:
        ValidationError: a field has the wrong type.
    """
    rule = db.session.get(ProgressionRule, rule_id)
    if rule is None:
        return None

    errors = {}
    if "conditions" in data and not isinstance(data["conditions"], dict):
        errors["conditions"] = "must be an object"
    if "is_active" in data and not isinstance(data["is_active"], bool):
        errors["is_active"] = "must be a boolean"
    if "priority" in data and (isinstance(data["priority"], bool)
                               or not isinstance(data["priority"], int)):
        errors["priority"] = "must be an integer"
    if errors:
        raise ValidationError("Invalid progression rule update", details=errors)

    for key in UPDATABLE_RULE_FIELDS:
        if key in data:
            setattr(rule, key, data[key])
    db.session.commit()
    logger.info("Progression rule %s updated: %s", rule.id, sorted(k for k in data if k in UPDATABLE_RULE_FIELDS))
    return rule


def get_stats(now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    auto_q = Notification.query.filter(Notification.auto_completed.is_(True))

    top_rules = db.session.execute(
        select(ProgressionRule.id, ProgressionRule.rule_name, ProgressionRule.notification_type,
               func.count(Notification.id).label("completions"))
        .join(Notification, Notification.auto_completed_rule_id == ProgressionRule.id)
        .where(Notification.auto_completed_at >= now - timedelta(days=30))
        .group_by(ProgressionRule.id, ProgressionRule.rule_name, ProgressionRule.notification_type)
        .order_by(func.count(Notification.id).desc())
        .limit(5)
    ).all()

    return {
        "total_rules": ProgressionRule.query.count(),
        "active_rules": ProgressionRule.query.filter(ProgressionRule.is_active.is_(True)).count(),
        "auto_completed_today": auto_q.filter(Notification.auto_completed_at >= start_of_day).count(),
        "auto_completed_week": auto_q.filter(
            Notification.auto_completed_at >= now - timedelta(days=7)).count(),
        "top_rules": [
            {"id": r.id, "rule_name": r.rule_name, "notification_type": r.notification_type,
             "completions": r.completions}
            for r in top_rules
        ],
    }


# ═══════════════════════════════════════════════════════════════════════════
#  Default rule set
# ═══════════════════════════════════════════════════════════════════════════

_REACHED_SHIPMENTS = {"table": "shipments", "link_field": "contract_id"}

DEFAULT_RULES: list[dict[str, Any]] = [
    {"notification_type": "send_contract_to_supplier", "entity_type": "contract",
     "rule_name": "Shipment booked or contract closed", "priority": 10,
     "conditions": {"any_of": [
         {"status_in": ["FULFILLED", "COMPLETED", "CANCELLED"]},
         {"related_entity_status": {**_REACHED_SHIPMENTS, "status_gte": "planning"}},
     ]},
     "description": "Supplier already has the contract: a shipment exists or the contract is closed"},
    {"notification_type": "advance_payment_due", "entity_type": "contract",
     "rule_name": "Goods on the water", "priority": 10,
     "conditions": {"related_entity_status": {**_REACHED_SHIPMENTS, "status_gte": "sailed"}},
     "description": "A linked shipment has sailed, so the advance was paid"},
    {"notification_type": "shipping_deadline_approaching", "entity_type": "shipment",
     "rule_name": "Shipment sailed", "priority": 10,
     "conditions": {"status_gte": "sailed"},
     "description": "Shipment has sailed"},
    {"notification_type": "documents_needed", "entity_type": "shipment",
     "rule_name": "Documents on file", "priority": 10,
     "conditions": {"any_of": [{"doc_count_gte": {"min": 3}}, {"status_gte": "awaiting_clearance"}]},
     "description": "Required shipping documents received"},
    {"notification_type": "balance_payment_due_2w", "entity_type": "shipment",
     "rule_name": "Balance paid", "priority": 10,
     "conditions": {"field_lte": {"field": "balance_value_usd", "value": 0}},
     "description": "Balance fully paid"},
    {"notification_type": "balance_payment_critical_8d", "entity_type": "shipment",
     "rule_name": "Balance paid", "priority": 10,
     "conditions": {"field_lte": {"field": "balance_value_usd", "value": 0}},
     "description": "Balance fully paid"},
    {"notification_type": "send_docs_to_customs", "entity_type": "shipment",
     "rule_name": "Clearance under way", "priority": 10,
     "conditions": {"any_of": [{"field_not_null": "customs_clearance_date"},
                               {"status_gte": "loaded_to_final"}]},
     "description": "Customs agent has the documents"},
    {"notification_type": "pod_clearance_check", "entity_type": "shipment",
     "rule_name": "Clearance date entered", "priority": 10,
     "conditions": {"field_not_null": "customs_clearance_date"},
     "description": "Customs clearance date recorded"},
    {"notification_type": "clearance_overdue", "entity_type": "shipment",
     "rule_name": "Clearance date entered", "priority": 10,
     "conditions": {"field_not_null": "customs_clearance_date"},
     "description": "Customs clearance date recorded"},
    {"notification_type": "delivery_status_check", "entity_type": "shipment",
     "rule_name": "Delivered", "priority": 10,
     "conditions": {"status_gte": "received"},
     "description": "Shipment received at final destination"},
    {"notification_type": "quality_check_needed", "entity_type": "quality_incident",
     "rule_name": "Quality incident closed", "priority": 10,
     "conditions": {"status_in": ["closed"]},
     "description": "Quality incident for the shipment was closed"},
    {"notification_type": "seller_booking_share", "entity_type": "shipment",
     "rule_name": "Shipment loaded", "priority": 10,
     "conditions": {"status_gte": "sailed"},
     "description": "Shipment left the booking stage"},
    {"notification_type": "seller_goods_loaded", "entity_type": "shipment",
     "rule_name": "Drafts approved", "priority": 10,
     "conditions": {"field_gte": {"field": "docs_draft_approved", "value": 1}},
     "description": "Customer approved the draft documents"},
    {"notification_type": "seller_send_original_docs", "entity_type": "shipment",
     "rule_name": "Originals sent", "priority": 10,
     "conditions": {"field_gte": {"field": "original_docs_sent", "value": 1}},
     "description": "Original documents dispatched"},
]


def seed_default_rules() -> int:
    """Insert default rules for notification types that have none. Returns count added."""
    existing = set(db.session.execute(select(ProgressionRule.notification_type)).scalars())
    added = 0
    for spec in DEFAULT_RULES:
        if spec["notification_type"] in existing:
            continue
        if spec["entity_type"] not in RULE_ENTITY_TYPES:
            raise ValueError(f"Invalid entity type in default rule: {spec['entity_type']}")
        db.session.add(ProgressionRule(is_active=True, **spec))
        added += 1
    db.session.commit()
    return added
