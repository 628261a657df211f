"""
Content Portal
Scheduled maintenance sweeps.

Jobs:
    - stale_job_sweeper: re-queues or fails running pipeline jobs whose lease expired
      (crashed or hung worker). Recovery is the normal retry / escalate path.
    - provisional_project_cleanup: removes projects left provisional by a
      promotion whose compensating delete failed.
"""

from __future__ import annotations

import logging
from typing import Any

from portal.services import job_store
from portal.services.automation_log import log_event
from portal.services.promotion import cleanup_provisional_projects
from portal.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


@register_job("stale_job_sweeper", interval_seconds=300)
def sweep_stale_jobs(app) -> dict[str, Any]:
    """Re-queue or fail running jobs older than JOB_LEASE_TIMEOUT_MINUTES."""
    lease = app.config.get("JOB_LEASE_TIMEOUT_MINUTES", 60)
    recovered = job_store.expire_stale_running(lease)
    for job_id, new_status in recovered:
        job = job_store.get(job_id)
        log_event("stale-job-recovered", project_id=job.project_id,
                  details={"job_id": job_id, "job_type": job.job_type, "new_status": new_status,
                           "attempts": job.attempts, "lease_minutes": lease})
    if recovered:
        logger.warning("Recovered %d stale running job(s): %s", len(recovered), recovered)
    return {
        "requeued": [job_id for job_id, status in recovered if status == "queued"],
        "failed": [job_id for job_id, status in recovered if status == "failed"],
    }


@register_job("provisional_project_cleanup", interval_seconds=600)
def cleanup_provisional(app) -> dict[str, Any]:
    """Delete provisional projects older than PROVISIONAL_PROJECT_TTL_MINUTES."""
    ttl = app.config.get("PROVISIONAL_PROJECT_TTL_MINUTES", 15)
    removed = cleanup_provisional_projects(ttl)
    if removed:
        logger.warning("Removed %d orphaned provisional project(s): %s", len(removed), removed)
    return {"removed": len(removed), "project_ids": removed}
