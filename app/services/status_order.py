"""
Trade Operations Platform
Status-Order Registry.

Fixed ordinal tables for the lifecycle statuses of shipments, contracts,
quality incidents and customs clearances. Ordinals only support ``>=``
comparisons ("has the workflow reached stage X yet?").

Legacy shipment statuses (booked, loaded, arrived, ...) are folded onto the
current stage numbers so old records compare correctly.

Table resolution for a bare status string:
    1. shipment
    2. contract (upper-cased)
    3. quality incident
    4. customs clearance
    5. fallback: shipment
Statuses missing from the resolved table rank 0.
"""

from __future__ import annotations

from typing import Iterable

SHIPMENT = "shipment"
CONTRACT = "contract"
QUALITY_INCIDENT = "quality_incident"
CUSTOMS_CLEARANCE = "customs_clearance"


SHIPMENT_STATUS_ORDER: dict[str, int] = {
    "planning": 1,
    "delayed": 2,
    "sailed": 3,
    "awaiting_clearance": 4,
    "loaded_to_final": 5,
    "received": 6,
    "quality_issue": 7,
    # legacy aliases
    "booked": 1,
    "gate_in": 1,
    "loaded": 3,
    "arrived": 4,
    "delivered": 6,
    "invoiced": 6,
}

CONTRACT_STATUS_ORDER: dict[str, int] = {
    "DRAFT": 1,
    "PENDING": 2,
    "ACTIVE": 3,
    "FULFILLED": 4,
    "COMPLETED": 5,
    "CANCELLED": 6,
}

QUALITY_INCIDENT_STATUS_ORDER: dict[str, int] = {
    "draft": 1,
    "submitted": 2,
    "under_review": 3,
    "action_set": 4,
    "closed": 5,
}

CUSTOMS_CLEARANCE_STATUS_ORDER: dict[str, int] = {
    "pending": 1,
    "arrived": 2,
    "in_progress": 3,
    "cleared": 4,
    "cancelled": 5,
}

STATUS_TABLES: dict[str, dict[str, int]] = {
    SHIPMENT: SHIPMENT_STATUS_ORDER,
    CONTRACT: CONTRACT_STATUS_ORDER,
    QUALITY_INCIDENT: QUALITY_INCIDENT_STATUS_ORDER,
    CUSTOMS_CLEARANCE: CUSTOMS_CLEARANCE_STATUS_ORDER,
}


def status_rank(status: str | None, table: str = SHIPMENT) -> int:
    """Ordinal of ``status`` in the named table, 0 when unknown."""
    if not status:
        return 0
    order = STATUS_TABLES[table]
    if table == CONTRACT:
        status = status.upper()
    return order.get(status, 0)


def resolve_status_table(status: str) -> str:
    """Name of the table that owns ``status``, following the fixed precedence."""
    if status in SHIPMENT_STATUS_ORDER:
        return SHIPMENT
    if status.upper() in CONTRACT_STATUS_ORDER:
        return CONTRACT
    if status in QUALITY_INCIDENT_STATUS_ORDER:
        return QUALITY_INCIDENT
    if status in CUSTOMS_CLEARANCE_STATUS_ORDER:
        return CUSTOMS_CLEARANCE
    return SHIPMENT


def is_status_gte(current: str | None, threshold: str, table: str | None = None) -> bool:
    """
    True when ``current`` has reached ``threshold``.

    Args:
        current: Status to test. Empty / None never satisfies a threshold.
        threshold: Stage that must have been reached.
        table: Force a table; when omitted it is resolved from ``current``.
    """
    if not current:
        return False
    table = table or resolve_status_table(current)
    return status_rank(current, table) >= status_rank(threshold, table)


def most_advanced_status(statuses: Iterable[str | None], table: str = SHIPMENT) -> str | None:
    """Highest-ranked status of ``statuses``; the first one wins on ties."""
    best, best_rank = None, -1
    for status in statuses:
        if not status:
            continue
        rank = status_rank(status, table)
        if rank > best_rank:
            best, best_rank = status, rank
    return best
