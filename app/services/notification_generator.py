"""
Trade Operations Platform
Notification Generator.

Periodic scan that turns live contract / shipment state into notifications.

Batching:
    - contracts: ACTIVE or DRAFT, newest first (NOTIFICATION_CONTRACT_BATCH)
    - shipments: not delivered / invoiced, most urgent first
      (NOTIFICATION_SHIPMENT_BATCH)

Failure isolation, innermost first:
    1. a failing rule-check is logged and treated as "did not fire"
    2. a failing entity is logged and the loop moves on
    3. the whole pass never raises
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from flask import current_app
from sqlalchemy import case, select

from app.models import db
from app.models.logistics import TERMINAL_SHIPMENT_STATUSES, Contract, Shipment
from app.services.notification import NotificationService
from app.services.notification_rules import (
    BUYER_RULES,
    CONTRACT_RULES,
    SELLER_RULES,
    RuleCheck,
    RuleContext,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTRACT_BATCH = 30
DEFAULT_SHIPMENT_BATCH = 50
URGENCY_WINDOW_DAYS = 7


def _config(key: str, default: int) -> int:
    return int(current_app.config.get(key, default))


def rules_for_shipment(shipment: Shipment) -> list[RuleCheck]:
    return SELLER_RULES if shipment.transaction_type == "outgoing" else BUYER_RULES


def _log_context(entity: Any) -> dict[str, Any]:
    key = "contract_id" if isinstance(entity, Contract) else "shipment_id"
    return {key: entity.id}


def _apply_rules(entity: Any, rules: Iterable[RuleCheck], ctx: RuleContext) -> int:
    """Run each rule-check and insert its drafts. Returns the number created."""
    created = 0
    context = _log_context(entity)
    for rule_check in rules:
        try:
            drafts = rule_check(entity, ctx)
            for draft in drafts:
                if NotificationService.create(draft, now=ctx.now) is not None:
                    created += 1
        except Exception:
            db.session.rollback()
            logger.exception("Rule %s failed for %r", rule_check.__name__, entity, extra=context)
    return created


def _stamp_checked(entity: Any, now: datetime) -> None:
    entity.last_notification_check = now
    db.session.commit()


# ── Single-entity checks ─────────────────────────────────────────────────────

def check_contract_notifications(contract_id: int, now: datetime | None = None) -> int:
    """Run contract rules for one contract. Returns notifications created."""
    ctx = RuleContext(now=now or datetime.now(timezone.utc))
    contract = db.session.get(Contract, contract_id)
    if contract is None or contract.is_deleted:
        return 0
    created = _apply_rules(contract, CONTRACT_RULES, ctx)
    _stamp_checked(contract, ctx.now)
    return created


def check_shipment_notifications(shipment_id: int, now: datetime | None = None) -> int:
    """Run the buyer or seller rule list for one shipment. Returns notifications created."""
    ctx = RuleContext(now=now or datetime.now(timezone.utc))
    shipment = db.session.get(Shipment, shipment_id)
    if shipment is None or shipment.is_deleted:
        return 0
    created = _apply_rules(shipment, rules_for_shipment(shipment), ctx)
    _stamp_checked(shipment, ctx.now)
    return created


# ── Batch selection ──────────────────────────────────────────────────────────

def select_contract_batch(limit: int) -> list[int]:
    stmt = (
        select(Contract.id)
        .where(Contract.is_deleted.is_(False), Contract.status.in_(("ACTIVE", "DRAFT")))
        .order_by(Contract.created_at.desc(), Contract.id.desc())
        .limit(limit)
    )
    return list(db.session.execute(stmt).scalars())


def select_shipment_batch(limit: int, now: datetime) -> list[int]:
    """Shipments arriving or due to ship within a week come first."""
    horizon = (now + timedelta(days=URGENCY_WINDOW_DAYS)).date()
    urgency = case(
        (Shipment.eta.isnot(None) & (Shipment.eta <= horizon), 0),
        (Shipment.contract_ship_date.isnot(None) & (Shipment.contract_ship_date <= horizon), 1),
        else_=2,
    )
    stmt = (
        select(Shipment.id)
        .where(
            Shipment.is_deleted.is_(False),
            Shipment.status.notin_(TERMINAL_SHIPMENT_STATUSES),
        )
        .order_by(urgency, Shipment.eta.asc().nulls_last(), Shipment.created_at.desc())
        .limit(limit)
    )
    return list(db.session.execute(stmt).scalars())


# ── Full pass ────────────────────────────────────────────────────────────────

def check_and_generate_notifications(now: datetime | None = None) -> dict[str, Any]:
    """
    Scan contracts and shipments and create every notification now due.

    Never raises; returns a summary of what was checked and created.
    """
    now = now or datetime.now(timezone.utc)
    results = {"contracts_checked": 0, "shipments_checked": 0,
               "notifications_created": 0, "errors": 0}

    try:
        for contract_id in select_contract_batch(_config("NOTIFICATION_CONTRACT_BATCH",
                                                         DEFAULT_CONTRACT_BATCH)):
            try:
                results["notifications_created"] += check_contract_notifications(contract_id, now)
                results["contracts_checked"] += 1
            except Exception:
                db.session.rollback()
                results["errors"] += 1
                logger.exception("Notification check failed for contract %s", contract_id,
                                 extra={"contract_id": contract_id})

        for shipment_id in select_shipment_batch(_config("NOTIFICATION_SHIPMENT_BATCH",
                                                         DEFAULT_SHIPMENT_BATCH), now):
            try:
                results["notifications_created"] += check_shipment_notifications(shipment_id, now)
                results["shipments_checked"] += 1
            except Exception:
                db.session.rollback()
                results["errors"] += 1
                logger.exception("Notification check failed for shipment %s", shipment_id,
                                 extra={"shipment_id": shipment_id})
    except Exception:
        db.session.rollback()
        results["errors"] += 1
        logger.exception("Notification generation pass failed")

    logger.info("Notification generation: %s", results)
    return results
