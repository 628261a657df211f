"""
Content Portal
Promotion Blueprint — cross-department hand-off.

Endpoints (all under /api/v1):
    POST /promote                        — promote a project or trend
    POST /projects/<id>/promote          — promote the given project
    GET  /projects/<id>/references       — provenance edges of a project
"""

from flask import Blueprint, jsonify

from portal.blueprints._helpers import json_body
from portal.core.exceptions import ValidationError
from portal.middleware.identity import current_actor
from portal.services import lifecycle, promotion
from portal.utils.errors import register_error_handlers

promotion_bp = Blueprint("promotion", __name__, url_prefix="/api/v1")
register_error_handlers(promotion_bp)

_OVERRIDE_KEYS = ("project_name", "type", "notes")


def _promote(source_type: str, source_id, data: dict):
    target = data.get("target_department")
    if not target:
        raise ValidationError("target_department is required",
                              details={"target_department": "required"})
    overrides = {k: data[k] for k in _OVERRIDE_KEYS if k in data}
    result = promotion.promote(source_type, source_id, target, current_actor(), overrides)
    return jsonify({
        "project": result["project"].to_dict(),
        "reference": result["reference"].to_dict(),
        "source_type": result["source_type"],
        "source_id": result["source_id"],
    }), 201


@promotion_bp.route("/promote", methods=["POST"])
def promote():
    current_actor()
    data = json_body()
    if data.get("source_id") is None:
        raise ValidationError("source_id is required", details={"source_id": "required"})
    return _promote(data.get("source_type") or "project", data["source_id"], data)


@promotion_bp.route("/projects/<int:project_id>/promote", methods=["POST"])
def promote_project(project_id):
    current_actor()
    return _promote("project", project_id, json_body())


@promotion_bp.route("/projects/<int:project_id>/references", methods=["GET"])
def project_references(project_id):
    actor = current_actor()
    lifecycle.get_project(project_id, actor)
    refs = promotion.list_references(project_id)
    return jsonify({"items": [r.to_dict() for r in refs], "total": len(refs)})
