"""
Content Portal
Scheduler Service.

Lightweight registry and runner for periodic maintenance sweeps. Sweeps are
plain functions registered with ``@register_job``; ``run_job`` executes one
inside the app context and records the outcome on its ScheduledJob row.

An optional daemon thread (``SCHEDULER_ENABLED``) runs every registered
sweep on its interval. In testing, sweeps are triggered directly via
``SchedulerService.run_job``.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from flask import Flask
from sqlalchemy import select

from portal.models import db
from portal.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}
_job_intervals: dict[str, int] = {}


def register_job(name: str, interval_seconds: int = 300):
    """Decorator to register a sweep function.

    Usage:
        @register_job("stale_job_sweeper", interval_seconds=300)
        def sweep_stale_jobs(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        _job_intervals[name] = interval_seconds
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


class SchedulerService:
    """
    Lightweight scheduler service.

    Manages job registration, persistence, and execution.
    Jobs are executed within Flask app context.
    """

    _app: Flask | None = None
    _thread: threading.Thread | None = None
    _stop: threading.Event | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Initialize scheduler with Flask app context."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))
        if app.config.get("SCHEDULER_ENABLED"):
            cls.start()

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """
        Ensure all registered jobs have a corresponding DB record.
        Creates missing records with default config.
        """
        if not cls._app:
            return []

        created = []
        with cls._app.app_context():
            for name, fn in _job_registry.items():
                existing = db.session.execute(
                    select(ScheduledJob).where(ScheduledJob.job_name == name)
                ).scalar_one_or_none()
                if not existing:
                    job = ScheduledJob(
                        job_name=name,
                        description=(fn.__doc__ or f"Scheduled job: {name}").strip().splitlines()[0],
                        schedule_type="interval",
                        schedule_config={"seconds": _job_intervals.get(name, 300)},
                        status="active",
                        is_enabled=True,
                    )
                    db.session.add(job)
                    created.append(job)
            if created:
                db.session.commit()
                logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"status": "error", "error": "Scheduler not initialized"}

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
            logger.exception("Job %s failed: %s", job_name, exc)

        duration_ms = int((time.monotonic() - start) * 1000)

        try:
            with cls._app.app_context():
                job_record = db.session.execute(
                    select(ScheduledJob).where(ScheduledJob.job_name == job_name)
                ).scalar_one_or_none()
                if job_record:
                    job_record.record_run(
                        status=status,
                        duration_ms=duration_ms,
                        result=result if isinstance(result, dict) else {"output": str(result)},
                        error=error,
                    )
                    db.session.commit()
        except Exception:
            logger.exception("Failed to update job record for %s", job_name)

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def run_due_jobs(cls, last_runs: dict[str, float], now: float | None = None) -> list[dict]:
        """Run every enabled job whose interval has elapsed since *last_runs*."""
        now = now if now is not None else time.monotonic()
        results = []
        disabled = cls._disabled_jobs()
        for name in list(_job_registry):
            if name in disabled:
                continue
            interval = _job_intervals.get(name, 300)
            if now - last_runs.get(name, float("-inf")) >= interval:
                results.append(cls.run_job(name))
                last_runs[name] = now
        return results

    @classmethod
    def _disabled_jobs(cls) -> set[str]:
        """Names of sweeps an operator paused via ScheduledJob.is_enabled."""
        if not cls._app:
            return set()
        with cls._app.app_context():
            return set(db.session.execute(
                select(ScheduledJob.job_name).where(ScheduledJob.is_enabled.is_(False))
            ).scalars())

    @classmethod
    def start(cls, tick_seconds: int = 30) -> None:
        if cls._thread and cls._thread.is_alive():
            return
        cls._stop = threading.Event()
        cls.ensure_jobs_registered()

        def _loop(stop: threading.Event):
            last_runs: dict[str, float] = {}
            while not stop.is_set():
                cls.run_due_jobs(last_runs)
                stop.wait(tick_seconds)

        cls._thread = threading.Thread(target=_loop, args=(cls._stop,),
                                       name="portal-scheduler", daemon=True)
        cls._thread.start()
        logger.info("Scheduler thread started (tick=%ss)", tick_seconds)

    @classmethod
    def stop(cls) -> None:
        if cls._stop:
            cls._stop.set()
        cls._thread = None

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = db.session.execute(
                select(ScheduledJob).where(ScheduledJob.job_name == name)
            ).scalar_one_or_none()
            jobs.append({
                "job_name": name,
                "interval_seconds": _job_intervals.get(name),
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs
