"""
Content Portal
Retry / Escalation Controller.

Human recovery paths for failed pipeline jobs:
    - retry: insert a fresh queued copy of a failed job. The failed row is
      history and is never touched.
    - escalate: flag a job for admin attention. Nothing is mutated.
"""

import logging

from portal.core.exceptions import InvalidStateError, NotFoundError
from portal.models import db
from portal.models.pipeline import PipelineJob
from portal.services import job_store
from portal.services.automation_log import log_event
from portal.services.lifecycle import get_project
from portal.services.notification import NotificationService, notify_best_effort
from portal.services.permission import Actor, require_project_role

logger = logging.getLogger(__name__)

RETRY_ROLES = {"owner", "editor"}
ESCALATE_ROLES = {"owner", "editor", "viewer"}


def _project_job(project_id: int, job_id: int) -> PipelineJob:
    job = db.session.get(PipelineJob, job_id)
    if job is None or job.project_id != project_id:
        raise NotFoundError(resource="PipelineJob", resource_id=job_id)
    return job


def retry(project_id: int, job_id: int, actor: Actor) -> PipelineJob:
    """Queue a new attempt of failed job *job_id*. Returns the new job."""
    project = get_project(project_id)
    require_project_role(project, actor, RETRY_ROLES)
    job = _project_job(project_id, job_id)
    if job.status != "failed":
        raise InvalidStateError(
            "Only failed jobs can be retried",
            current=job.status,
            allowed={"failed"},
        )

    new_job = job_store.enqueue(job.job_type, project_id, dict(job.payload or {}),
                                max_attempts=job.max_attempts)
    db.session.commit()

    logger.info(
        "Job %s retried as %s by %s", job_id, new_job.id, actor.user_id,
        extra={"project_id": project_id, "job_id": new_job.id, "event_type": "job-retried"},
    )
    log_event(
        "job-retried", project_id=project_id, department=project.department, actor=actor.user_id,
        details={
            "original_job_id": job_id,
            "new_job_id": new_job.id,
            "job_type": job.job_type,
            "triggered_by": actor.user_id,
        },
    )
    return new_job


def escalate(project_id: int, job_id: int, actor: Actor) -> int:
    """Report job *job_id* to the admins. Returns the number notified."""
    project = get_project(project_id)
    require_project_role(project, actor, ESCALATE_ROLES)
    job = _project_job(project_id, job_id)

    label = f"{project.company_name} — {project.project_name}"
    sent = notify_best_effort(
        NotificationService.notify_admins,
        title="issue reported",
        body=(f'{label}: {job.job_type} failed — "{job.last_error or "unknown error"}". '
              "User escalated for help."),
        type="job_escalated",
        project_id=project_id,
    ) or []

    logger.info(
        "Job %s escalated by %s", job_id, actor.user_id,
        extra={"project_id": project_id, "job_id": job_id, "event_type": "job-escalated"},
    )
    log_event(
        "job-escalated", project_id=project_id, department=project.department, actor=actor.user_id,
        details={
            "job_id": job_id,
            "job_type": job.job_type,
            "last_error": job.last_error,
            "escalated_by": actor.user_id,
        },
    )
    return len(sent)
