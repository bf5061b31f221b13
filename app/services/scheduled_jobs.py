"""
Trade Operations Platform
Scheduled Jobs.

Jobs:
    - notification_check: generate notifications, then auto-complete the
      ones whose workflow has progressed (every 30 min + once at startup)
    - shipment_status_recalculation: refresh date-driven shipment statuses
"""

from __future__ import annotations

import logging
from typing import Any

from app.services.notification_generator import check_and_generate_notifications
from app.services.scheduler_service import register_job
from app.services.shipment_status import recalculate_date_based_statuses
from app.services.workflow_progression import check_and_auto_complete

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Notification & Progression Check
# ═══════════════════════════════════════════════════════════════════════════

@register_job("notification_check",
              interval_config_key="NOTIFICATION_CHECK_INTERVAL_MINUTES",
              default_interval_minutes=30,
              run_on_startup=True)
def run_notification_check(app) -> dict[str, Any]:
    """Generate due notifications, then auto-complete progressed ones."""
    results: dict[str, Any] = {"generation": None, "progression": None}

    try:
        results["generation"] = check_and_generate_notifications()
    except Exception as exc:
        logger.error("Notification generation crashed: %s", exc, extra={"job_name": "notification_check"})
        results["generation"] = {"error": str(exc)}

    try:
        results["progression"] = check_and_auto_complete()
    except Exception as exc:
        logger.error("Workflow progression crashed: %s", exc, extra={"job_name": "notification_check"})
        results["progression"] = {"error": str(exc)}

    logger.info("Notification check job: %s", results, extra={"job_name": "notification_check"})
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Shipment Status Recalculation
# ═══════════════════════════════════════════════════════════════════════════

@register_job("shipment_status_recalculation",
              interval_config_key="STATUS_RECALC_INTERVAL_MINUTES",
              default_interval_minutes=360)
def run_shipment_status_recalculation(app) -> dict[str, Any]:
    """Move date-driven shipments to the status their dates imply."""
    results = recalculate_date_based_statuses()
    logger.info("Shipment status recalculation job: %s", results,
                extra={"job_name": "shipment_status_recalculation"})
    return results
