"""
Content Portal
Pipeline Blueprint — job queue, recovery and worker endpoints.

User endpoints (all under /api/v1):
    GET  /projects/<id>/pipeline            — recent jobs + queue position
    POST /projects/<id>/pipeline/retry      — re-queue a failed job (owner/editor)
    POST /projects/<id>/pipeline/escalate   — report a job to the admins

Worker endpoints (X-Worker-Token or admin):
    POST /pipeline/claim                    — claim the oldest supported job
    POST /pipeline/jobs/<id>/progress       — heartbeat / turn progress
    POST /pipeline/jobs/<id>/complete
    POST /pipeline/jobs/<id>/fail
    POST /pipeline/jobs/<id>/release        — admin releases a held job
"""

import logging

from flask import Blueprint, jsonify, request

from portal.blueprints._helpers import json_body
from portal.core.exceptions import ValidationError
from portal.middleware.identity import current_actor
from portal.services import job_store, lifecycle, retry_controller
from portal.services.automation_log import log_event
from portal.services.payloads import decode_payload, encode_payload
from portal.services.permission import require_admin, require_worker
from portal.services.queue_estimator import queue_position
from portal.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

pipeline_bp = Blueprint("pipeline", __name__, url_prefix="/api/v1")
register_error_handlers(pipeline_bp)


def _required_int(data: dict, key: str) -> int:
    value = data.get(key)
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{key} is required", details={key: "required"})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer", details={key: value}) from None


# ═══════════════════════════════════════════════════════════════════════════
#  Project-facing
# ═══════════════════════════════════════════════════════════════════════════

@pipeline_bp.route("/projects/<int:project_id>/pipeline", methods=["GET"])
def project_pipeline(project_id):
    actor = current_actor()
    lifecycle.get_project(project_id, actor)
    limit = min(request.args.get("limit", 20, type=int), 100)
    jobs = job_store.list_by_project(project_id, limit=limit)
    position = queue_position(project_id)
    return jsonify({
        "jobs": [j.to_dict(include_payload=False) for j in jobs],
        "queue": position.to_dict() if position else None,
    })


@pipeline_bp.route("/projects/<int:project_id>/pipeline/retry", methods=["POST"])
def retry_job(project_id):
    actor = current_actor()
    lifecycle.get_project(project_id, actor)
    job_id = _required_int(json_body(), "job_id")
    new_job = retry_controller.retry(project_id, job_id, actor)
    return jsonify({"job": new_job.to_dict(), "retried_from": job_id}), 201


@pipeline_bp.route("/projects/<int:project_id>/pipeline/escalate", methods=["POST"])
def escalate_job(project_id):
    actor = current_actor()
    lifecycle.get_project(project_id, actor)
    job_id = _required_int(json_body(), "job_id")
    notified = retry_controller.escalate(project_id, job_id, actor)
    return jsonify({"escalated": True, "job_id": job_id, "notified": notified})


# ═══════════════════════════════════════════════════════════════════════════
#  Worker-facing
# ═══════════════════════════════════════════════════════════════════════════

@pipeline_bp.route("/pipeline/claim", methods=["POST"])
def claim_job():
    require_worker(current_actor())
    capabilities = json_body().get("capabilities") or []
    if not isinstance(capabilities, list) or not all(isinstance(c, str) for c in capabilities):
        raise ValidationError("capabilities must be a list of job types")
    job = job_store.claim_next(capabilities)
    if job is None:
        return jsonify({"job": None}), 200

    data = job.to_dict()
    try:
        data["payload"] = encode_payload(decode_payload(job.job_type, job.payload))
    except ValidationError as exc:
        job = job_store.fail(job.id, f"invalid payload: {exc}")
        log_event("job-failed", project_id=job.project_id,
                  details={"job_id": job.id, "job_type": job.job_type, "error": job.last_error})
        return jsonify({"job": None, "rejected": job.to_dict()}), 200
    return jsonify({"job": data})


@pipeline_bp.route("/pipeline/jobs/<int:job_id>/progress", methods=["POST"])
def job_progress(job_id):
    require_worker(current_actor())
    data = json_body()
    job = job_store.report_progress(
        job_id,
        _required_int(data, "turn"),
        _required_int(data, "max_turns"),
        data.get("last_action"),
    )
    return jsonify(job.to_dict(include_payload=False))


@pipeline_bp.route("/pipeline/jobs/<int:job_id>/complete", methods=["POST"])
def job_complete(job_id):
    require_worker(current_actor())
    result = json_body().get("result")
    if result is not None and not isinstance(result, dict):
        raise ValidationError("result must be a JSON object")
    job = job_store.complete(job_id, result)
    log_event("job-completed", project_id=job.project_id,
              details={"job_id": job_id, "job_type": job.job_type,
                       "duration_seconds": job.duration_seconds})
    return jsonify(job.to_dict(include_payload=False))


@pipeline_bp.route("/pipeline/jobs/<int:job_id>/fail", methods=["POST"])
def job_fail(job_id):
    require_worker(current_actor())
    data = json_body()
    error = (data.get("error") or "").strip()
    if not error:
        raise ValidationError("error is required", details={"error": "required"})
    job = job_store.fail(job_id, error, retryable=bool(data.get("retryable", False)))
    if job.status == "failed":
        log_event("job-failed", project_id=job.project_id,
                  details={"job_id": job_id, "job_type": job.job_type,
                           "error": error, "attempts": job.attempts})
    return jsonify(job.to_dict(include_payload=False))


@pipeline_bp.route("/pipeline/jobs/<int:job_id>/release", methods=["POST"])
def job_release(job_id):
    actor = current_actor()
    require_admin(actor)
    job = job_store.release(job_id)
    log_event("job-released", project_id=job.project_id, actor=actor.user_id,
              details={"job_id": job_id, "job_type": job.job_type})
    return jsonify(job.to_dict(include_payload=False))
