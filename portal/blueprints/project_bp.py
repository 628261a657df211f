"""
Content Portal
Project Blueprint.

Endpoints (all under /api/v1):
    POST   /projects                              — submit a project
    GET    /projects                              — list visible projects
    GET    /projects/<id>                         — project detail
    DELETE /projects/<id>                         — admin hard delete
    PATCH  /projects/<id>/status                  — admin status override
    POST   /projects/<id>/narrative/review        — owner narrative decision
    POST   /projects/<id>/start-build             — owner starts the build
    POST   /projects/<id>/approve                 — client approval of the build
    POST   /projects/<id>/artifacts               — worker registers a new version
"""

import logging

from flask import Blueprint, jsonify, request

from portal.blueprints._helpers import json_body, resolve_artifact_id
from portal.core.exceptions import ValidationError
from portal.middleware.identity import current_actor
from portal.services import lifecycle
from portal.services.permission import require_worker
from portal.services.queue_estimator import queue_position
from portal.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

project_bp = Blueprint("project", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


@project_bp.route("/projects", methods=["POST"])
def create_project():
    actor = current_actor()
    project = lifecycle.submit_project(actor, json_body())
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    actor = current_actor()
    projects = lifecycle.list_projects(actor, department=request.args.get("department"))
    return jsonify({"items": [p.to_dict() for p in projects], "total": len(projects)})


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    actor = current_actor()
    project = lifecycle.get_project(project_id, actor)
    data = project.to_dict()
    position = queue_position(project_id)
    data["queue"] = position.to_dict() if position else None
    return jsonify(data)


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    actor = current_actor()
    counts = lifecycle.delete_project(project_id, actor)
    return jsonify({"deleted": True, "id": project_id, "counts": counts})


@project_bp.route("/projects/<int:project_id>/status", methods=["PATCH"])
def update_status(project_id):
    actor = current_actor()
    data = json_body()
    new_status = data.get("status")
    if not new_status:
        raise ValidationError("status is required", details={"status": "required"})
    project = lifecycle.set_status(project_id, actor, new_status, pitchapp_url=data.get("pitchapp_url"))
    return jsonify(project.to_dict())


@project_bp.route("/projects/<int:project_id>/narrative/review", methods=["POST"])
def review_narrative(project_id):
    actor = current_actor()
    lifecycle.get_project(project_id, actor)
    data = json_body()
    narrative_id = resolve_artifact_id(project_id, "narrative", data.get("narrative_id"))
    result = lifecycle.submit_decision("narrative", narrative_id, data.get("action"), actor,
                                       data.get("notes"))
    return jsonify(_decision_response(result))


@project_bp.route("/projects/<int:project_id>/start-build", methods=["POST"])
def start_build(project_id):
    actor = current_actor()
    lifecycle.get_project(project_id, actor)
    data = json_body()
    result = lifecycle.start_build(project_id, actor, skip_assets=bool(data.get("skip_assets", False)))
    return jsonify({
        "project": result["project"].to_dict(),
        "jobs": [j.to_dict() for j in result["jobs"]],
    }), 202


@project_bp.route("/projects/<int:project_id>/approve", methods=["POST"])
def approve_build(project_id):
    actor = current_actor()
    lifecycle.get_project(project_id, actor)
    data = json_body()
    project = lifecycle.apply_approval(project_id, actor, data.get("action"), data.get("message"))
    return jsonify(project.to_dict())


@project_bp.route("/projects/<int:project_id>/artifacts", methods=["POST"])
def create_artifact(project_id):
    require_worker(current_actor())
    data = json_body()
    source_job_id = data.get("source_job_id")
    artifact = lifecycle.record_artifact(
        project_id,
        data.get("kind"),
        data.get("content"),
        sections=data.get("sections"),
        research_type=data.get("research_type"),
        quality_scores=data.get("quality_scores"),
        source_job_id=int(source_job_id) if source_job_id is not None else None,
    )
    return jsonify(artifact.to_dict()), 201


def _decision_response(result: dict) -> dict:
    job = result.get("job")
    body = {
        "artifact": result["artifact"].to_dict(),
        "project": result["project"].to_dict(),
        "job": job.to_dict() if job else None,
    }
    if "notified" in result:
        body["notified"] = result["notified"]
    return body
