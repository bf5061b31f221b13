"""
Trade Operations Platform
Entity Snapshot Loader.

Builds flat, read-only dict views of shipments, contracts and quality
incidents for rule evaluation. Snapshots are recomputed on every check and
never persisted.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select

from app.models import db
from app.models.logistics import (
    QUALIFYING_DOC_TYPES,
    Contract,
    PaymentScheduleItem,
    QualityIncident,
    Shipment,
    ShipmentDocument,
)
from app.services.status_order import SHIPMENT, most_advanced_status, status_rank

logger = logging.getLogger(__name__)


def _number(value):
    return float(value) if value is not None else None


# ── Aggregates ───────────────────────────────────────────────────────────────

def count_qualifying_documents(shipment_id: int) -> int:
    """Live BL / PL / COO / COA documents attached to the shipment."""
    stmt = (
        select(func.count(ShipmentDocument.id))
        .where(
            ShipmentDocument.shipment_id == shipment_id,
            ShipmentDocument.doc_type.in_(QUALIFYING_DOC_TYPES),
            ShipmentDocument.is_deleted.is_(False),
        )
    )
    return db.session.execute(stmt).scalar() or 0


def load_payment_schedule(contract_id: int) -> list[PaymentScheduleItem]:
    stmt = (
        select(PaymentScheduleItem)
        .where(PaymentScheduleItem.contract_id == contract_id)
        .order_by(PaymentScheduleItem.seq)
    )
    return list(db.session.execute(stmt).scalars())


def linked_shipment_statuses(contract_id: int) -> list[str]:
    stmt = select(Shipment.status).where(
        Shipment.contract_id == contract_id,
        Shipment.is_deleted.is_(False),
    )
    return [s for s in db.session.execute(stmt).scalars() if s]


def most_advanced_shipment_status(contract_id: int) -> str | None:
    """Status of the contract's furthest-along shipment, None without shipments."""
    return most_advanced_status(linked_shipment_statuses(contract_id))


def related_status_lookup(table: str, link_field: str, entity_id: Any) -> str | None:
    """Fallback for ``related_entity_status`` conditions; only shipments by contract."""
    if (table, link_field) != ("shipments", "contract_id") or entity_id is None:
        return None
    return most_advanced_shipment_status(entity_id)


# ── Snapshots ────────────────────────────────────────────────────────────────

def load_shipment_snapshot(shipment_id: int | None) -> dict[str, Any] | None:
    if shipment_id is None:
        return None
    shipment = db.session.get(Shipment, shipment_id)
    if shipment is None or shipment.is_deleted:
        return None
    return {
        "id": shipment.id,
        "sn": shipment.sn,
        "status": shipment.status,
        "transaction_type": shipment.transaction_type,
        "contract_id": shipment.contract_id,
        "eta": shipment.eta,
        "balance_value_usd": _number(shipment.balance_value_usd),
        "paid_value_usd": _number(shipment.paid_value_usd),
        "total_value_usd": _number(shipment.total_value_usd),
        "customs_clearance_date": shipment.customs_clearance_date,
        "free_time_days": shipment.free_time_days,
        "quality_feedback_requested": shipment.quality_feedback_requested,
        "docs_draft_approved": shipment.docs_draft_approved,
        "original_docs_sent": shipment.original_docs_sent,
        "doc_count": count_qualifying_documents(shipment.id),
    }


def load_contract_snapshot(contract_id: int | None) -> dict[str, Any] | None:
    if contract_id is None:
        return None
    contract = db.session.get(Contract, contract_id)
    if contract is None or contract.is_deleted:
        return None
    statuses = linked_shipment_statuses(contract.id)
    most_advanced = most_advanced_status(statuses)
    return {
        "id": contract.id,
        "contract_no": contract.contract_no,
        "status": contract.status,
        "signed_at": contract.signed_at,
        "buyer_company_id": contract.buyer_company_id,
        "seller_company_id": contract.seller_company_id,
        "max_shipment_status_order": status_rank(most_advanced, SHIPMENT) if most_advanced else None,
        "most_advanced_shipment_status": most_advanced,
    }


def load_quality_incident_snapshot(shipment_id: int | None) -> dict[str, Any] | None:
    """Latest quality incident raised against the shipment."""
    if shipment_id is None:
        return None
    stmt = (
        select(QualityIncident)
        .where(QualityIncident.shipment_id == shipment_id)
        .order_by(QualityIncident.created_at.desc(), QualityIncident.id.desc())
        .limit(1)
    )
    incident = db.session.execute(stmt).scalars().first()
    if incident is None:
        return None
    return {
        "id": incident.id,
        "shipment_id": incident.shipment_id,
        "status": incident.status,
        "issue_type": incident.issue_type,
    }


_LOADERS = {
    "shipment": lambda shipment_id, contract_id: load_shipment_snapshot(shipment_id),
    "contract": lambda shipment_id, contract_id: load_contract_snapshot(contract_id),
    "quality_incident": lambda shipment_id, contract_id: load_quality_incident_snapshot(shipment_id),
}


def load_snapshot(entity_type: str, *, shipment_id: int | None = None,
                  contract_id: int | None = None) -> dict[str, Any] | None:
    """Snapshot of the entity a notification points at, None when it is gone."""
    loader = _LOADERS.get(entity_type)
    if loader is None:
        logger.warning("Unknown progression entity type: %s", entity_type)
        return None
    return loader(shipment_id, contract_id)
