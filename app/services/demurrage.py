"""
Trade Operations Platform
Demurrage / free-time calculations.

After arrival the port grants ``free_time_days`` of free storage. The
deadline is ``eta + free_time_days``; it is measured against the customs
clearance date when one is known, otherwise against today.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

SAFE = "safe"
WARNING = "warning"
EXCEEDED = "exceeded"

WARNING_WINDOW_DAYS = 2
CLEARANCE_ENTRY_GRACE_DAYS = 3
ARRIVED_STATUSES = ("arrived", "delivered", "invoiced")


@dataclass(frozen=True)
class DemurrageStatus:
    deadline: date
    days_remaining: int
    state: str

    @property
    def days_overdue(self) -> int:
        return max(0, -self.days_remaining)


def calculate_demurrage(eta: date | None, free_time_days: int | None,
                        clearance_date: date | None, today: date) -> DemurrageStatus | None:
    """Classify a shipment's free time; None when ETA or free time is unknown."""
    if not eta or not free_time_days:
        return None
    deadline = eta + timedelta(days=free_time_days)
    reference = clearance_date or today
    days_remaining = (deadline - reference).days
    if days_remaining < 0:
        state = EXCEEDED
    elif days_remaining <= WARNING_WINDOW_DAYS:
        state = WARNING
    else:
        state = SAFE
    return DemurrageStatus(deadline=deadline, days_remaining=days_remaining, state=state)


def is_clearance_entry_overdue(status: str | None, clearance_date: date | None,
                               eta: date | None, today: date,
                               grace_days: int = CLEARANCE_ENTRY_GRACE_DAYS) -> bool:
    """Arrived shipment still missing its clearance date ``grace_days`` after ETA."""
    if clearance_date or not eta:
        return False
    if status not in ARRIVED_STATUSES:
        return False
    return today >= eta + timedelta(days=grace_days)
