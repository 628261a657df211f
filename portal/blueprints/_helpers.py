"""
Content Portal
Shared request helpers for blueprints.
"""

from flask import request

from portal.core.exceptions import NotFoundError, ValidationError
from portal.models import db
from portal.services import lifecycle


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def resolve_artifact_id(project_id: int, kind: str, raw_id) -> int:
    """Artifact id from the body, or the project's pending version when omitted.

    An explicit id must belong to *project_id*.
    """
    if raw_id is None:
        return lifecycle.find_pending_artifact(project_id, kind).id
    try:
        artifact_id = int(raw_id)
    except (TypeError, ValueError):
        raise ValidationError(f"{kind}_id must be an integer") from None
    model = lifecycle.ARTIFACT_RULES[kind]["model"]
    artifact = db.session.get(model, artifact_id)
    if artifact is None or artifact.project_id != project_id:
        raise NotFoundError(resource=kind.capitalize(), resource_id=artifact_id)
    return artifact_id
