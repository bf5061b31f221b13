"""
Startup diagnostics, run once when the Flask app starts.

Checks the database, counts tables and progression rules, lists the
registered scheduler jobs and logs a summary banner.
"""

import logging
import sys

from flask import Flask
from sqlalchemy import func, inspect as sa_inspect, select

from app.models import db
from app.models.progression import ProgressionRule

logger = logging.getLogger(__name__)


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup (inside app context)."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    from app.services.scheduler_service import get_registered_jobs

    issues: list[str] = []

    with app.app_context():
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        # ── Database connectivity ────────────────────────────────────
        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        try:
            db.session.execute(db.text("SELECT 1"))
        except Exception as exc:
            db_status = f"FAILED ({exc})"
            issues.append(f"Database unreachable: {exc}")

        # ── Table count ──────────────────────────────────────────────
        try:
            table_count = len(sa_inspect(db.engine).get_table_names())
            if table_count == 0:
                issues.append("No tables found")
        except Exception:
            table_count = "?"

        # ── Progression rules ────────────────────────────────────────
        try:
            active_rules = db.session.execute(
                select(func.count(ProgressionRule.id)).where(ProgressionRule.is_active.is_(True))
            ).scalar_one()
            if active_rules == 0:
                issues.append("No active progression rules; run 'flask seed-progression-rules'")
        except Exception:
            db.session.rollback()
            active_rules = "?"

        jobs = ", ".join(sorted(get_registered_jobs())) or "none"
        scheduler = "ENABLED" if app.config.get("SCHEDULER_ENABLED") else "DISABLED"
        redis_url = app.config.get("REDIS_URL") or "memory://"

        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  Trade Operations Platform — Startup Diagnostics             ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f'{db_type} ({db_status})'[:46]:<46s}║
║  Tables      : {str(table_count):<46s}║
║  Rules       : {str(active_rules) + ' active':<46s}║
║  Jobs        : {jobs[:46]:<46s}║
║  Scheduler   : {scheduler:<46s}║
║  Limiter     : {redis_url.split('@')[-1][:46]:<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")
