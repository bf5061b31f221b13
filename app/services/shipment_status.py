"""
Trade Operations Platform
Date-based shipment status recalculation.

Statuses before customs clearance move with the calendar: a shipment with a
Bill of Lading whose ETA has passed is awaiting clearance, one whose agreed
shipping date passed without a BL is delayed. This job keeps those
statuses current without anyone touching the shipment.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from flask import current_app
from sqlalchemy import and_, or_, select

from app.models import db
from app.models.logistics import Shipment

logger = logging.getLogger(__name__)

DATE_DRIVEN_STATUSES = ("planning", "delayed", "sailed")
DEFAULT_BATCH = 1000


def calculate_date_based_status(shipment: Shipment, today: date) -> str:
    """Status implied by the shipment's dates and milestones, most advanced first."""
    if shipment.warehouse_receipt_confirmed:
        return "quality_issue" if shipment.warehouse_receipt_has_issues else "received"
    if shipment.customs_clearance_date:
        return "loaded_to_final"
    if shipment.bl_no and shipment.eta:
        return "awaiting_clearance" if shipment.eta <= today else "sailed"
    if shipment.agreed_shipping_date and shipment.agreed_shipping_date < today and not shipment.bl_no:
        return "delayed"
    return "planning"


def recalculate_date_based_statuses(today: date | None = None) -> dict[str, Any]:
    """
    Refresh date-driven statuses: planning shipments past their agreed shipping
    date, sailed shipments whose ETA has come, and every delayed shipment.
    Most recently updated first.
    """
    today = today or date.today()
    limit = int(current_app.config.get("STATUS_RECALC_BATCH", DEFAULT_BATCH))
    results = {"processed": 0, "updated": 0, "errors": 0}

    # candidates only: shipments whose dates can move them
    candidates = or_(
        and_(Shipment.status == "planning", Shipment.agreed_shipping_date.isnot(None),
             Shipment.agreed_shipping_date < today),
        and_(Shipment.status == "sailed", Shipment.eta.isnot(None), Shipment.eta <= today),
        Shipment.status == "delayed",
    )
    shipments = db.session.execute(
        select(Shipment)
        .where(Shipment.is_deleted.is_(False), Shipment.status.in_(DATE_DRIVEN_STATUSES), candidates)
        .order_by(Shipment.updated_at.desc(), Shipment.id.desc())
        .limit(limit)
    ).scalars().all()

    for shipment in shipments:
        results["processed"] += 1
        try:
            new_status = calculate_date_based_status(shipment, today)
            if new_status == shipment.status:
                continue
            logger.info("Shipment %s status %s -> %s", shipment.sn, shipment.status, new_status,
                        extra={"shipment_id": shipment.id})
            shipment.status = new_status
            db.session.commit()
            results["updated"] += 1
        except Exception:
            db.session.rollback()
            results["errors"] += 1
            logger.exception("Status recalculation failed for shipment %s", shipment.id)

    logger.info("Shipment status recalculation: %s", results)
    return results
