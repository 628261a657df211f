"""
Content Portal
Automation audit model.

Models:
    - AutomationLog: append-only trail of lifecycle and pipeline events
      (narrative-approved, build-started, job-retried, project-promoted, ...).
"""

from datetime import UTC, datetime

from portal.models import db


# ── Constants ────────────────────────────────────────────────────────────────

AUTOMATION_EVENTS = {
    "project-submitted",
    "status-changed",
    "narrative-approved",
    "narrative-rejected",
    "narrative-escalated",
    "research-approved",
    "research-rejected",
    "build-started",
    "client-approval",
    "artifact-recorded",
    "job-retried",
    "job-escalated",
    "job-released",
    "job-completed",
    "job-failed",
    "stale-job-recovered",
    "project-promoted",
    "project-deleted",
}


class AutomationLog(db.Model):
    """
    Immutable record of one automation event.

    ``project_id`` is nullable and not a foreign key so that events about
    deleted projects remain readable.
    """

    __tablename__ = "automation_log"
    __table_args__ = (
        db.Index("idx_automation_project", "project_id"),
        db.Index("idx_automation_event", "event"),
        db.Index("idx_automation_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, nullable=True)
    department = db.Column(db.String(20), nullable=True)
    event = db.Column(db.String(60), nullable=False, comment="narrative-approved | job-retried | …")
    actor = db.Column(db.String(64), nullable=False, default="system")
    details = db.Column(db.JSON, nullable=False, default=dict)

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "department": self.department,
            "event": self.event,
            "actor": self.actor,
            "details": self.details or {},
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AutomationLog {self.id}: {self.event} project={self.project_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_automation_log(
    *,
    event: str,
    project_id: int | None = None,
    department: str | None = None,
    actor: str = "system",
    details: dict | None = None,
) -> AutomationLog:
    """
    Append a single automation row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AutomationLog instance.
    """
    if event not in AUTOMATION_EVENTS:
        raise ValueError(f"Unknown automation event: {event}")
    log = AutomationLog(
        project_id=project_id,
        department=department,
        event=event,
        actor=actor or "system",
        details=details or {},
    )
    db.session.add(log)
    db.session.flush()
    return log
