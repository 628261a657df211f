"""
Content Portal
Project role guard and admin directory.

Usage:
    from portal.services.permission import Actor, require_project_role

    # Raises ForbiddenError unless the actor is owner (admins always pass)
    require_project_role(project, actor, {"owner"})

    admin_ids = get_admin_directory().admin_user_ids()
"""

import logging
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import select

from portal.core.exceptions import ForbiddenError
from portal.models import db
from portal.models.project import ProjectMember
from portal.models.user import PortalUser
from portal.services.cache_service import TTLCache, make_backend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf an operation runs."""

    user_id: str
    email: str | None = None
    is_admin: bool = False
    is_worker: bool = False

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id="system", is_admin=True)


def parse_admin_emails(raw: str | None) -> set[str]:
    return {e.strip().lower() for e in (raw or "").split(",") if e.strip()}


class AdminDirectory:
    """
    Resolves admin e-mails to user ids.

    The id list is cached for ``ADMIN_CACHE_TTL_SECONDS`` in a ``TTLCache``;
    call ``invalidate()`` after changing the admin set.
    """

    CACHE_KEY = "admin_user_ids"

    def __init__(self, admin_emails: set[str], cache: TTLCache):
        self.admin_emails = admin_emails
        self.cache = cache

    def is_admin_email(self, email: str | None) -> bool:
        return bool(email) and email.strip().lower() in self.admin_emails

    def admin_user_ids(self) -> list[str]:
        return self.cache.get_or_load(self.CACHE_KEY, self._load_admin_ids)

    def _load_admin_ids(self) -> list[str]:
        if not self.admin_emails:
            return []
        rows = db.session.execute(
            select(PortalUser.id, PortalUser.email).where(PortalUser.email.isnot(None))
        ).all()
        return sorted(uid for uid, email in rows if email.lower() in self.admin_emails)

    def invalidate(self) -> None:
        self.cache.invalidate()


def init_admin_directory(app) -> AdminDirectory:
    cache = TTLCache(
        ttl_seconds=app.config.get("ADMIN_CACHE_TTL_SECONDS", 300),
        backend=make_backend(app.config.get("REDIS_URL")),
        namespace="admins",
    )
    directory = AdminDirectory(parse_admin_emails(app.config.get("ADMIN_EMAILS")), cache)
    app.extensions["admin_directory"] = directory
    return directory


def get_admin_directory() -> AdminDirectory:
    return current_app.extensions["admin_directory"]


def get_member_role(project_id: int, user_id: str) -> str | None:
    return db.session.execute(
        select(ProjectMember.role).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
        )
    ).scalar_one_or_none()


def require_project_role(project, actor: Actor, roles: set[str]) -> str | None:
    """Raise ForbiddenError unless *actor* holds one of *roles* on *project*.

    Admins pass every check. Returns the actor's membership role (None for
    admins without membership).
    """
    role = get_member_role(project.id, actor.user_id)
    if actor.is_admin:
        return role
    if role not in roles:
        logger.info(
            "Role check failed: user=%s project=%s role=%s required=%s",
            actor.user_id, project.id, role, sorted(roles),
            extra={"project_id": project.id},
        )
        raise ForbiddenError(
            f"Requires project role: {' or '.join(sorted(roles))}",
            required=",".join(sorted(roles)),
        )
    return role


def require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise ForbiddenError("Admin access required", required="admin")


def require_worker(actor: Actor) -> None:
    """Pipeline-side writes (claims, job outcomes, artifacts) are for the
    worker pool. Admins may act as a worker when recovering by hand."""
    if not (actor.is_worker or actor.is_admin):
        logger.info("Worker check failed: user=%s", actor.user_id)
        raise ForbiddenError("Worker credentials required", required="worker")
