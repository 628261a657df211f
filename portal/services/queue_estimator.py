"""
Content Portal
Queue-position estimator.

Best-effort answer to "how long until my project's work starts?". Reads are
plain snapshots; two calls may disagree under concurrent claims and that is
acceptable.

    position      = global running + queued jobs created strictly before the
                    project's earliest queued/pending job
    avg_duration  = mean (completed_at - started_at) over the most recent
                    QUEUE_HISTORY_WINDOW completed jobs, else
                    QUEUE_FALLBACK_MINUTES
    estimated_wait = position × avg_duration
"""

import logging
from dataclasses import asdict, dataclass

from flask import current_app, has_app_context
from sqlalchemy import func, select

from portal.models import db
from portal.models.pipeline import ACTIVE_QUEUE_STATUSES, WAITING_STATUSES, PipelineJob

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_WINDOW = 10
DEFAULT_FALLBACK_MINUTES = 10.0


@dataclass(frozen=True)
class QueuePosition:
    position: int
    avg_duration_minutes: float
    estimated_wait_minutes: float

    @property
    def display_position(self) -> int:
        """1-based position shown to clients."""
        return self.position + 1

    @property
    def estimated_wait_min(self) -> int:
        """Whole minutes shown to clients, never below one."""
        return max(1, round(self.estimated_wait_minutes))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["display_position"] = self.display_position
        data["estimated_wait_min"] = self.estimated_wait_min
        return data


def _config(key, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def average_duration_minutes(window: int | None = None, fallback: float | None = None) -> float:
    window = window or _config("QUEUE_HISTORY_WINDOW", DEFAULT_HISTORY_WINDOW)
    if fallback is None:
        fallback = float(_config("QUEUE_FALLBACK_MINUTES", DEFAULT_FALLBACK_MINUTES))

    rows = db.session.execute(
        select(PipelineJob.started_at, PipelineJob.completed_at)
        .where(
            PipelineJob.status == "completed",
            PipelineJob.started_at.isnot(None),
            PipelineJob.completed_at.isnot(None),
        )
        .order_by(PipelineJob.completed_at.desc())
        .limit(window)
    ).all()
    if not rows:
        return fallback

    durations = [(done - started).total_seconds() / 60.0 for started, done in rows]
    return sum(durations) / len(durations)


def queue_position(project_id: int) -> QueuePosition | None:
    """Return the project's queue estimate, or None if it has nothing waiting."""
    earliest = db.session.execute(
        select(func.min(PipelineJob.created_at)).where(
            PipelineJob.project_id == project_id,
            PipelineJob.status.in_(WAITING_STATUSES),
        )
    ).scalar_one_or_none()
    if earliest is None:
        return None

    position = db.session.execute(
        select(func.count(PipelineJob.id)).where(
            PipelineJob.status.in_(ACTIVE_QUEUE_STATUSES),
            PipelineJob.created_at < earliest,
        )
    ).scalar_one()

    avg = average_duration_minutes()
    return QueuePosition(
        position=position,
        avg_duration_minutes=avg,
        estimated_wait_minutes=position * avg,
    )
