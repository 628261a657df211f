"""
Content Portal
Best-effort automation event recording.

Runs after the primary commit. A failed log write is rolled back and logged
as a warning; it never surfaces to the caller.
"""

import logging

from portal.models import db
from portal.models.audit import write_automation_log

logger = logging.getLogger(__name__)


def log_event(event: str, *, project_id=None, department=None, actor="system", details=None):
    """Append one AutomationLog row in its own commit. Returns it, or None on failure."""
    try:
        entry = write_automation_log(
            event=event,
            project_id=project_id,
            department=department,
            actor=actor,
            details=details,
        )
        db.session.commit()
        return entry
    except Exception as exc:
        db.session.rollback()
        logger.warning(
            "Automation log write failed for %s: %s", event, exc,
            extra={"project_id": project_id, "event_type": event},
        )
        return None
