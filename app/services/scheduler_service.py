"""
Trade Operations Platform
Scheduler Service.

Lightweight in-process interval scheduler built on ``threading``.

Architecture:
    - Jobs are plain functions ``(app) -> dict`` registered via decorator
    - Each job has a ScheduledJob row (schedule config + run history)
    - ``start()`` runs every enabled job on its own named daemon thread,
      ticking every ``interval_minutes``; startup jobs also run once shortly
      after boot
    - ``cancel(name)`` / ``stop()`` end the threads
    - ``run_job`` is single-flight per job name: an overlapping call (timer
      tick, startup run or manual trigger) is skipped, not queued
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from flask import Flask

from app.models import db
from app.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}
_job_options: dict[str, dict] = {}


def register_job(name: str, *, interval_config_key: str | None = None,
                 default_interval_minutes: int = 60, run_on_startup: bool = False):
    """Decorator to register a job function.

    Usage:
        @register_job("notification_check",
                      interval_config_key="NOTIFICATION_CHECK_INTERVAL_MINUTES",
                      default_interval_minutes=30, run_on_startup=True)
        def run_notification_check(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        _job_options[name] = {
            "interval_config_key": interval_config_key,
            "default_interval_minutes": default_interval_minutes,
            "run_on_startup": run_on_startup,
        }
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


class SchedulerService:
    """
    Interval scheduler service.

    Manages job registration, persistence, execution and the worker threads.
    Jobs are executed within Flask app context.
    """

    _app: Flask | None = None
    _locks: dict[str, threading.Lock] = {}
    _locks_guard = threading.Lock()
    _threads: dict[str, threading.Thread] = {}
    _stop_events: dict[str, threading.Event] = {}

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Initialize scheduler with Flask app context."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def ensure_jobs_registered(cls) -> list[str]:
        """
        Ensure all registered jobs have a corresponding DB record.
        Creates missing records with default config.

        Returns:
            Names of the jobs whose records were created.
        """
        if not cls._app:
            return []

        created = []
        with cls._app.app_context():
            for name, fn in _job_registry.items():
                existing = ScheduledJob.query.filter_by(job_name=name).first()
                if not existing:
                    job = ScheduledJob(
                        job_name=name,
                        description=(fn.__doc__ or f"Scheduled job: {name}").strip().splitlines()[0],
                        schedule_type="interval",
                        schedule_config=_get_default_schedule(cls._app, name),
                        status="active",
                        is_enabled=True,
                    )
                    db.session.add(job)
                    created.append(job)
            if created:
                db.session.commit()
                logger.info("Created %d scheduled job records", len(created))
            # rows detach when this context closes
            return [job.job_name for job in created]

    # ── Execution ─────────────────────────────────────────────────────────

    @classmethod
    def _lock_for(cls, job_name: str) -> threading.Lock:
        with cls._locks_guard:
            return cls._locks.setdefault(job_name, threading.Lock())

    @classmethod
    def is_job_running(cls, job_name: str) -> bool:
        return cls._lock_for(job_name).locked()

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name, unless it is already running.

        Returns:
            Dict with status (success, failed, skipped, error), duration_ms,
            result or error. Never raises.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        lock = cls._lock_for(job_name)
        if not lock.acquire(blocking=False):
            logger.warning("Job %s is still running; skipping overlapping run", job_name,
                           extra={"job_name": job_name})
            cls._record(job_name, status="skipped")
            return {"job_name": job_name, "status": "skipped", "duration_ms": 0,
                    "result": None, "error": "Job already running"}

        try:
            start = time.monotonic()
            result = None
            error = None
            status = "success"

            try:
                with cls._app.app_context():
                    result = fn(cls._app)
            except Exception as exc:
                status = "failed"
                error = str(exc)
                logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})

            duration_ms = int((time.monotonic() - start) * 1000)
            cls._record(
                job_name,
                status=status,
                duration_ms=duration_ms,
                result=result if isinstance(result, dict) else {"output": str(result)},
                error=error,
            )
        finally:
            lock.release()

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def _record(cls, job_name: str, **kwargs) -> None:
        try:
            with cls._app.app_context():
                job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
                if job_record:
                    job_record.record_run(**kwargs)
                    db.session.commit()
        except Exception:
            logger.exception("Failed to update job record for %s", job_name, extra={"job_name": job_name})

    # ── Worker threads ────────────────────────────────────────────────────

    @classmethod
    def start(cls) -> list[str]:
        """Start a worker thread for every enabled job. Returns the names started."""
        if not cls._app:
            raise RuntimeError("SchedulerService.init_app() must be called before start()")

        cls.ensure_jobs_registered()
        started = []
        with cls._app.app_context():
            records = {j.job_name: (j.is_enabled, j.schedule_config) for j in ScheduledJob.query.all()}
        for name in _job_registry:
            is_enabled, config = records.get(name, (True, None))
            if not is_enabled:
                logger.info("Job %s is disabled; not scheduling", name)
                continue
            config = config or _get_default_schedule(cls._app, name)
            if cls.schedule(name, config):
                started.append(name)
        logger.info("Scheduler started: %s", ", ".join(started) or "no jobs")
        return started

    @classmethod
    def schedule(cls, job_name: str, config: dict) -> bool:
        """Start the named worker thread. False when it is already running."""
        existing = cls._threads.get(job_name)
        if existing is not None and existing.is_alive():
            return False

        interval_seconds = max(1.0, float(config.get("interval_minutes", 60)) * 60)
        startup_delay = config.get("startup_delay_seconds")
        stop_event = threading.Event()
        thread = threading.Thread(
            target=cls._run_loop,
            args=(job_name, interval_seconds, startup_delay, stop_event),
            name=f"scheduler:{job_name}",
            daemon=True,
        )
        cls._stop_events[job_name] = stop_event
        cls._threads[job_name] = thread
        thread.start()
        logger.info("Scheduled %s every %.0f minutes%s", job_name, interval_seconds / 60,
                    f" (first run after {startup_delay}s)" if startup_delay is not None else "")
        return True

    @classmethod
    def _run_loop(cls, job_name: str, interval_seconds: float,
                  startup_delay: float | None, stop_event: threading.Event) -> None:
        if startup_delay is not None:
            if stop_event.wait(startup_delay):
                return
            cls._tick(job_name)
        while not stop_event.wait(interval_seconds):
            cls._tick(job_name)

    @classmethod
    def _tick(cls, job_name: str) -> None:
        if not cls._is_enabled(job_name):
            logger.debug("Job %s paused; tick skipped", job_name)
            return
        outcome = cls.run_job(job_name)
        logger.info("Job %s finished: %s in %sms", job_name, outcome["status"],
                    outcome.get("duration_ms"), extra={"job_name": job_name})

    @classmethod
    def _is_enabled(cls, job_name: str) -> bool:
        try:
            with cls._app.app_context():
                record = ScheduledJob.query.filter_by(job_name=job_name).first()
                return record is None or bool(record.is_enabled)
        except Exception:
            logger.exception("Could not read enabled flag for %s", job_name, extra={"job_name": job_name})
            return True

    @classmethod
    def cancel(cls, job_name: str, timeout: float | None = 5.0) -> bool:
        """Stop the named worker thread. A run in progress finishes first."""
        event = cls._stop_events.pop(job_name, None)
        thread = cls._threads.pop(job_name, None)
        if event is None:
            return False
        event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        logger.info("Cancelled scheduled job %s", job_name, extra={"job_name": job_name})
        return True

    @classmethod
    def stop(cls, timeout: float | None = 5.0) -> None:
        """Cancel every worker thread."""
        for name in list(cls._stop_events):
            cls.cancel(name, timeout)

    @classmethod
    def scheduled_jobs(cls) -> list[str]:
        return [name for name, t in cls._threads.items() if t.is_alive()]

    # ── Queries / admin ───────────────────────────────────────────────────

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "registered": True,
                "scheduled": name in cls.scheduled_jobs(),
                "running": cls.is_job_running(name),
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs

    @classmethod
    def get_job_status(cls, job_name: str) -> dict | None:
        """Get status of a specific job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if job_record:
            return {**job_record.to_dict(), "running": cls.is_job_running(job_name)}
        return None

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Enable or disable a scheduled job. Paused jobs keep their thread but skip ticks."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if not job_record:
            return None
        job_record.is_enabled = enabled
        job_record.status = "active" if enabled else "paused"
        db.session.commit()
        return job_record.to_dict()


def _get_default_schedule(app: Flask, job_name: str) -> dict:
    """Return default schedule config, reading intervals from app config."""
    options = _job_options.get(job_name, {})
    key = options.get("interval_config_key")
    interval = options.get("default_interval_minutes", 60)
    if key:
        interval = int(app.config.get(key, interval))
    schedule = {"interval_minutes": interval, "description": f"Every {interval} minutes"}
    if options.get("run_on_startup"):
        schedule["startup_delay_seconds"] = int(app.config.get("NOTIFICATION_STARTUP_DELAY_SECONDS", 5))
    return schedule
