"""
Content Portal
Pipeline job model.

Models:
    - PipelineJob: one unit of asynchronous AI work tracked independently
      of project status. Claimed and executed by the external worker pool.
"""

from datetime import datetime, timezone

from portal.models import db


# ── Constants ────────────────────────────────────────────────────────────────

JOB_TYPES = {
    "auto-pull",
    "auto-research",
    "auto-narrative",
    "auto-copy",
    "auto-build",
    "auto-review",
    "auto-push",
    "auto-one-pager",
    "auto-emails",
    "auto-brief",
    "auto-revise",
}

JOB_STATUSES = {"pending", "queued", "running", "completed", "failed"}
TERMINAL_JOB_STATUSES = {"completed", "failed"}

# Statuses that count against the global queue when estimating wait time
ACTIVE_QUEUE_STATUSES = ("running", "queued")
WAITING_STATUSES = ("queued", "pending")

DEFAULT_MAX_ATTEMPTS = 3


class PipelineJob(db.Model):
    """
    Durable pipeline job record.

    ``payload`` is opaque to the orchestration core; only the worker decodes
    it (see ``portal.services.payloads``). A failed row is never mutated
    again: retry inserts a fresh row and the failed one stays as history.
    """

    __tablename__ = "pipeline_jobs"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    job_type = db.Column(db.String(30), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="queued", index=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    result = db.Column(db.JSON, nullable=True)

    attempts = db.Column(db.Integer, nullable=False, default=0)
    max_attempts = db.Column(db.Integer, nullable=False, default=DEFAULT_MAX_ATTEMPTS)
    last_error = db.Column(db.Text, nullable=True)

    # {turn, max_turns, last_action} while an agentic loop is running
    progress = db.Column(db.JSON, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.Index("ix_pipeline_jobs_status_created", "status", "created_at"),
        db.CheckConstraint(
            "status IN ('pending','queued','running','completed','failed')",
            name="ck_pipeline_job_status",
        ),
    )

    @property
    def duration_seconds(self) -> float | None:
        if not self.started_at or not self.completed_at:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self, include_payload: bool = True) -> dict:
        data = {
            "id": self.id,
            "project_id": self.project_id,
            "job_type": self.job_type,
            "status": self.status,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "last_error": self.last_error,
            "progress": self.progress,
            "result": self.result,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
        if include_payload:
            data["payload"] = self.payload or {}
        return data

    def __repr__(self):
        return f"<PipelineJob id={self.id} type={self.job_type} status={self.status}>"
