"""
Content Portal
Strategy Blueprint.

Endpoints (all under /api/v1/strategy):
    POST /projects/<id>/research/review  — owner decision on the draft research
"""

from flask import Blueprint, jsonify

from portal.blueprints._helpers import json_body, resolve_artifact_id
from portal.middleware.identity import current_actor
from portal.services import lifecycle
from portal.utils.errors import register_error_handlers

strategy_bp = Blueprint("strategy", __name__, url_prefix="/api/v1/strategy")
register_error_handlers(strategy_bp)


@strategy_bp.route("/projects/<int:project_id>/research/review", methods=["POST"])
def review_research(project_id):
    actor = current_actor()
    lifecycle.get_project(project_id, actor)
    data = json_body()
    research_id = resolve_artifact_id(project_id, "research", data.get("research_id"))
    result = lifecycle.submit_decision("research", research_id, data.get("action"), actor,
                                       data.get("notes"))
    job = result["job"]
    return jsonify({
        "artifact": result["artifact"].to_dict(),
        "project": result["project"].to_dict(),
        "job": job.to_dict() if job else None,
    })
