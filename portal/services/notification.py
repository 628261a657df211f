"""
Content Portal
Notification Service.

Central service for creating and querying in-app notifications. Callers in
the lifecycle, retry and promotion services use ``notify_best_effort`` after
their primary commit: a sink failure is logged and never undoes the state
change that triggered it.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update

from portal.core.exceptions import NotFoundError, ValidationError
from portal.models import db
from portal.models.notification import ACK_SUFFIX, NOTIFICATION_TYPES, Notification

logger = logging.getLogger(__name__)


def _check_type(type: str) -> None:
    base = type[: -len(ACK_SUFFIX)] if type.endswith(ACK_SUFFIX) else type
    if base not in NOTIFICATION_TYPES:
        raise ValidationError(f"Unknown notification type: {type}")


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def notify(*, user_id, title, body="", type="status_changed", project_id=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (already committed).
        """
        _check_type(type)
        notif = Notification(
            user_id=user_id,
            project_id=project_id,
            type=type,
            title=title,
            body=body,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    @staticmethod
    def broadcast(*, recipients, title, body="", type="status_changed", project_id=None):
        """
        Send the same notification to every user id in *recipients*.

        Returns:
            List of created Notification instances.
        """
        _check_type(type)
        notifications = []
        for user_id in dict.fromkeys(recipients):
            notif = Notification(
                user_id=user_id,
                project_id=project_id,
                type=type,
                title=title,
                body=body,
            )
            db.session.add(notif)
            notifications.append(notif)
        db.session.commit()
        return notifications

    @staticmethod
    def notify_admins(*, title, body="", type="status_changed", project_id=None):
        from portal.services.permission import get_admin_directory

        admin_ids = get_admin_directory().admin_user_ids()
        if not admin_ids:
            logger.info("No admin users resolved; skipping admin notification",
                        extra={"project_id": project_id})
            return []
        return NotificationService.broadcast(
            recipients=admin_ids, title=title, body=body, type=type, project_id=project_id,
        )

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a user, newest first.
        """
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        items = db.session.execute(
            stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit)
        ).scalars().all()
        return items

    @staticmethod
    def unread_count(user_id):
        return db.session.execute(
            select(db.func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        ).scalar_one()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark a single notification as read."""
        notif = db.session.get(Notification, notification_id)
        if not notif or notif.user_id != user_id:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        now = datetime.now(timezone.utc)
        result = db.session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=now)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return result.rowcount


def notify_best_effort(fn, *args, **kwargs):
    """Run a notification call; on failure roll back its writes and log.

    Returns the call's result, or None if it failed.
    """
    try:
        return fn(*args, **kwargs)
    except Exception as exc:
        db.session.rollback()
        logger.warning("Notification delivery failed: %s", exc,
                       extra={"project_id": kwargs.get("project_id")})
        return None
