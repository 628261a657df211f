"""
Content Portal
Pipeline Job Store.

Durable queue of pipeline jobs. Every status change is a conditional
``UPDATE … WHERE id = ? AND status = <expected>``; a zero row count means
another writer got there first. No row is ever locked.

Job status flow:
    pending ──release──▶ queued ──claim──▶ running ──complete──▶ completed
                            ▲                 │
                            └──fail(retryable)┤
                                              └──fail──▶ failed

Usage:
    from portal.services import job_store

    job = job_store.enqueue("auto-narrative", project.id, {"revision_notes": "..."})
    db.session.commit()

    job = job_store.claim_next({"auto-narrative", "auto-build"})
    job_store.complete(job.id, {"narrative_id": 7})
"""

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app, has_app_context
from sqlalchemy import select, update

from portal.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from portal.models import db
from portal.models.pipeline import DEFAULT_MAX_ATTEMPTS, JOB_TYPES, PipelineJob

logger = logging.getLogger(__name__)

# How many oldest candidates a single claim attempt considers before giving up
_CLAIM_CANDIDATES = 10


def _now():
    return datetime.now(timezone.utc)


def _default_max_attempts() -> int:
    if has_app_context():
        return current_app.config.get("JOB_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)
    return DEFAULT_MAX_ATTEMPTS


def _cas(job_id: int, expected: str, **values) -> int:
    """Conditionally update one job row; return the affected row count."""
    result = db.session.execute(
        update(PipelineJob)
        .where(PipelineJob.id == job_id, PipelineJob.status == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def _refreshed(job_id: int) -> PipelineJob:
    job = db.session.get(PipelineJob, job_id)
    db.session.refresh(job)
    return job


def _require_running(job_id: int, count: int, operation: str) -> None:
    """Translate a lost CAS on a running job into the right error."""
    if count:
        return
    db.session.rollback()
    job = db.session.get(PipelineJob, job_id)
    if job is None:
        raise NotFoundError(resource="PipelineJob", resource_id=job_id)
    raise InvalidStateError(
        f"Cannot {operation} job {job_id} in status '{job.status}'",
        current=job.status,
        allowed={"running"},
    )


# ═════════════════════════════════════════════════════════════════════════════
# Producer side
# ═════════════════════════════════════════════════════════════════════════════

def enqueue(
    job_type: str,
    project_id: int,
    payload: dict | None = None,
    *,
    max_attempts: int | None = None,
    status: str = "queued",
) -> PipelineJob:
    """
    Add a job row to the current unit of work.

    Only flushes; the caller commits together with whatever status change
    triggered the job, so the two succeed or fail as one.
    """
    if job_type not in JOB_TYPES:
        raise ValidationError(f"Unknown job type: {job_type}", details={"job_type": job_type})
    if status not in ("queued", "pending"):
        raise ValidationError(f"Jobs can only be enqueued as queued or pending, not {status}")

    job = PipelineJob(
        project_id=project_id,
        job_type=job_type,
        status=status,
        payload=payload or {},
        attempts=0,
        max_attempts=max_attempts or _default_max_attempts(),
        created_at=_now(),
    )
    db.session.add(job)
    db.session.flush()
    logger.info(
        "Enqueued %s job %s (%s)", job_type, job.id, status,
        extra={"project_id": project_id, "job_id": job.id, "event_type": "job-enqueued"},
    )
    return job


def get(job_id: int) -> PipelineJob:
    job = db.session.get(PipelineJob, job_id)
    if not job:
        raise NotFoundError(resource="PipelineJob", resource_id=job_id)
    return job


def list_by_project(project_id: int, limit: int = 20) -> list[PipelineJob]:
    """Most recent jobs for a project, newest first."""
    return db.session.execute(
        select(PipelineJob)
        .where(PipelineJob.project_id == project_id)
        .order_by(PipelineJob.created_at.desc(), PipelineJob.id.desc())
        .limit(limit)
    ).scalars().all()


def release(job_id: int) -> PipelineJob:
    """Move a held (pending) job into the queue. Admin gate for supervised projects."""
    count = _cas(job_id, "pending", status="queued")
    if not count:
        db.session.rollback()
        job = get(job_id)
        raise InvalidStateError(
            f"Only pending jobs can be released (job {job_id} is '{job.status}')",
            current=job.status,
            allowed={"pending"},
        )
    db.session.commit()
    job = _refreshed(job_id)
    logger.info("Released job %s", job_id,
                extra={"project_id": job.project_id, "job_id": job_id, "event_type": "job-released"})
    return job


# ═════════════════════════════════════════════════════════════════════════════
# Worker side
# ═════════════════════════════════════════════════════════════════════════════

def claim_next(capabilities) -> PipelineJob | None:
    """
    Claim the oldest queued job whose type is in *capabilities*.

    Returns None when nothing is claimable. A claim lost to another worker
    moves on to the next candidate.
    """
    capabilities = set(capabilities or ())
    if not capabilities:
        return None

    candidate_ids = db.session.execute(
        select(PipelineJob.id)
        .where(PipelineJob.status == "queued", PipelineJob.job_type.in_(capabilities))
        .order_by(PipelineJob.created_at.asc(), PipelineJob.id.asc())
        .limit(_CLAIM_CANDIDATES)
    ).scalars().all()

    for job_id in candidate_ids:
        if _cas(job_id, "queued", status="running", started_at=_now(), progress=None):
            db.session.commit()
            job = _refreshed(job_id)
            logger.info(
                "Claimed %s job %s", job.job_type, job_id,
                extra={"project_id": job.project_id, "job_id": job_id, "event_type": "job-claimed"},
            )
            return job
        logger.debug("Lost claim race for job %s", job_id)

    db.session.rollback()
    return None


def report_progress(job_id: int, turn: int, max_turns: int, last_action: str | None = None) -> PipelineJob:
    progress = {"turn": int(turn), "max_turns": int(max_turns), "last_action": last_action}
    count = _cas(job_id, "running", progress=progress)
    _require_running(job_id, count, "report progress for")
    db.session.commit()
    return _refreshed(job_id)


def complete(job_id: int, result: dict | None = None) -> PipelineJob:
    count = _cas(job_id, "running", status="completed", result=result or {}, completed_at=_now())
    _require_running(job_id, count, "complete")
    db.session.commit()
    job = _refreshed(job_id)
    logger.info(
        "Completed %s job %s", job.job_type, job_id,
        extra={"project_id": job.project_id, "job_id": job_id, "event_type": "job-completed"},
    )
    return job


def fail(job_id: int, error: str, retryable: bool = False) -> PipelineJob:
    """
    Record a failed execution.

    Terminal by default. With ``retryable=True`` and attempts left
    (``attempts + 1 < max_attempts``) the job goes back to the queue with
    ``attempts`` incremented instead.
    """
    job = get(job_id)
    if job.status != "running":
        raise InvalidStateError(
            f"Cannot fail job {job_id} in status '{job.status}'",
            current=job.status,
            allowed={"running"},
        )

    if retryable and job.attempts + 1 < job.max_attempts:
        count = _cas(
            job_id, "running",
            status="queued",
            attempts=job.attempts + 1,
            last_error=error,
            started_at=None,
            progress=None,
        )
        _require_running(job_id, count, "requeue")
        db.session.commit()
        job = _refreshed(job_id)
        logger.warning(
            "Job %s failed (attempt %d/%d), re-queued: %s",
            job_id, job.attempts, job.max_attempts, error,
            extra={"project_id": job.project_id, "job_id": job_id, "event_type": "job-requeued"},
        )
        return job

    count = _cas(job_id, "running", status="failed", last_error=error, completed_at=_now())
    _require_running(job_id, count, "fail")
    db.session.commit()
    job = _refreshed(job_id)
    logger.warning(
        "Job %s failed: %s", job_id, error,
        extra={"project_id": job.project_id, "job_id": job_id, "event_type": "job-failed"},
    )
    return job


# ═════════════════════════════════════════════════════════════════════════════
# Maintenance
# ═════════════════════════════════════════════════════════════════════════════

def expire_stale_running(lease_minutes: int, now: datetime | None = None) -> list[tuple[int, str]]:
    """Recover every running job whose lease (started_at + lease_minutes) has passed.

    A job with attempts left (``attempts + 1 < max_attempts``) goes back to
    the queue with ``attempts`` incremented; the rest are failed.

    Returns ``(job_id, new_status)`` for each job recovered by this call.
    """
    now = now or _now()
    cutoff = now - timedelta(minutes=lease_minutes)
    stale = db.session.execute(
        select(PipelineJob.id, PipelineJob.attempts, PipelineJob.max_attempts).where(
            PipelineJob.status == "running",
            PipelineJob.started_at < cutoff,
        ).order_by(PipelineJob.id)
    ).all()

    recovered = []
    for job_id, attempts, max_attempts in stale:
        if attempts + 1 < max_attempts:
            changed = _cas(job_id, "running", status="queued", attempts=attempts + 1,
                           last_error="lease expired", started_at=None, progress=None)
            new_status = "queued"
        else:
            changed = _cas(job_id, "running", status="failed", last_error="lease expired",
                           completed_at=now)
            new_status = "failed"
        if changed:
            recovered.append((job_id, new_status))
    db.session.commit()
    return recovered
