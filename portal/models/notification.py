"""
Content Portal
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from datetime import datetime, timezone

from portal.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {
    "project_submitted",
    "narrative_approved",
    "narrative_rejected",
    "research_approved",
    "research_rejected",
    "narrative_ready",
    "research_ready",
    "escalation",
    "build_started",
    "project_approved",
    "changes_requested",
    "job_escalated",
    "project_promoted",
    "status_changed",
}

# Acknowledgements sent back to the acting user carry an "_ack" suffix
ACK_SUFFIX = "_ack"


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    project_id = db.Column(db.Integer, nullable=True, index=True)
    type = db.Column(db.String(40), nullable=False, default="status_changed")
    title = db.Column(db.String(300), nullable=False)
    body = db.Column(db.Text, default="")

    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "type": self.type,
            "title": self.title,
            "body": self.body,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
