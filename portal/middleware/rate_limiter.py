"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in portal/__init__.py with no default limits;
this module applies granular limits per route category. Limits are keyed by
the forwarded user id when present, else by remote IP.

Usage:
    from portal.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

PROMOTION_LIMIT = "20/minute"
WRITE_LIMIT = "60/minute"
WORKER_LIMIT = "600/minute"
READ_LIMIT = "200/minute"


def rate_limit_key() -> str:
    """Dynamic rate limit key: acting user if forwarded, else remote IP."""
    actor = getattr(g, "actor", None)
    if actor is not None:
        return f"user:{actor.user_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Promotion:        20/minute  (multi-step writes)
        - Lifecycle writes: 60/minute
        - Worker pipeline:  600/minute (claim / progress polling)
        - Notifications:    200/minute
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    limits = {
        "promotion": PROMOTION_LIMIT,
        "project": WRITE_LIMIT,
        "strategy": WRITE_LIMIT,
        "pipeline": WORKER_LIMIT,
        "notification": READ_LIMIT,
    }
    for bp_name, limit in limits.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — promotion: %s, write: %s, worker: %s, read: %s",
        PROMOTION_LIMIT, WRITE_LIMIT, WORKER_LIMIT, READ_LIMIT,
    )
