"""
Identity middleware — resolves the acting user from forwarded headers.

Authentication itself happens upstream; the auth layer forwards the user as
``X-User-Id`` / ``X-User-Email``. Admins are the users whose e-mail is listed
in ``ADMIN_EMAILS``.

    g.actor  →  Actor | None   (None when no user id was forwarded)

The worker pool authenticates with the shared ``WORKER_TOKEN`` in
``X-Worker-Token``; such requests get ``Actor.is_worker`` and, when no user id
is forwarded, act as the ``worker`` user.

First sight of a user id records it in ``portal_users`` so admin e-mails can
be resolved to the ids notifications target.
"""

import hmac
import logging

from flask import abort, current_app, g, request

from portal.models import db
from portal.models.user import PortalUser
from portal.services.permission import Actor, get_admin_directory

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"
USER_EMAIL_HEADER = "X-User-Email"
WORKER_TOKEN_HEADER = "X-Worker-Token"
WORKER_USER_ID = "worker"

# Paths that never need an identity
IDENTITY_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def _remember_user(user_id: str, email: str | None) -> None:
    try:
        user = db.session.get(PortalUser, user_id)
        if user is None:
            db.session.add(PortalUser(id=user_id, email=email))
        elif email and user.email != email:
            user.email = email
        else:
            return
        db.session.commit()
        if get_admin_directory().is_admin_email(email):
            get_admin_directory().invalidate()
    except Exception as exc:
        db.session.rollback()
        logger.warning("Could not record portal user %s: %s", user_id, exc)


def _has_worker_token() -> bool:
    expected = current_app.config.get("WORKER_TOKEN") or ""
    supplied = request.headers.get(WORKER_TOKEN_HEADER) or ""
    if not expected or not supplied:
        return False
    if hmac.compare_digest(supplied.encode(), expected.encode()):
        return True
    logger.warning("Rejected worker token from %s", request.remote_addr)
    return False


def init_identity(app):
    """Register the identity hook as a before_request handler."""

    @app.before_request
    def _resolve_identity():
        g.actor = None
        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in IDENTITY_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        is_worker = _has_worker_token()
        user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
        if not user_id:
            if is_worker:
                g.actor = Actor(user_id=WORKER_USER_ID, is_worker=True)
            return
        email = (request.headers.get(USER_EMAIL_HEADER) or "").strip() or None

        directory = get_admin_directory()
        g.actor = Actor(user_id=user_id, email=email,
                        is_admin=directory.is_admin_email(email), is_worker=is_worker)
        _remember_user(user_id, email)


def current_actor() -> Actor:
    """Return the acting user, aborting with 401 when none was forwarded."""
    actor = getattr(g, "actor", None)
    if actor is None:
        abort(401, description="Login required.")
    return actor
