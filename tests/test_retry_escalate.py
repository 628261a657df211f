"""
Retry / escalation controller.

Properties:
    - retry leaves the failed row untouched and inserts one fresh queued copy
    - escalate never mutates the job or the project
    - role guards: retry needs owner/editor, escalate any member
"""

import pytest
from sqlalchemy import select

from conftest import make_job, make_project
from portal.core.exceptions import ForbiddenError, InvalidStateError, NotFoundError
from portal.models import db
from portal.models.audit import AutomationLog
from portal.models.notification import Notification
from portal.models.pipeline import PipelineJob
from portal.models.project import Project
from portal.services import retry_controller


def _failed_job(project, **kwargs):
    kwargs.setdefault("attempts", 2)
    kwargs.setdefault("max_attempts", 3)
    return make_job(project, job_type="auto-build", status="failed",
                    last_error="Timeout", payload={"narrative_id": 7}, **kwargs)


def _snapshot(job_id):
    job = db.session.get(PipelineJob, job_id)
    db.session.refresh(job)
    return (job.status, job.attempts, job.last_error, job.payload, job.max_attempts)


class TestRetry:

    @pytest.mark.parametrize("actor_fixture", ["owner", "editor"])
    def test_retry_inserts_fresh_copy(self, request, actor_fixture):
        actor = request.getfixturevalue(actor_fixture)
        project = make_project(status="in_progress")
        failed = _failed_job(project)
        before = _snapshot(failed.id)

        new_job = retry_controller.retry(project.id, failed.id, actor)

        assert new_job.id != failed.id
        assert new_job.status == "queued"
        assert new_job.attempts == 0
        assert new_job.job_type == "auto-build"
        assert new_job.payload == {"narrative_id": 7}
        assert _snapshot(failed.id) == before

    def test_retry_logs_link(self, owner):
        project = make_project(status="in_progress")
        failed = _failed_job(project)

        new_job = retry_controller.retry(project.id, failed.id, owner)

        log = db.session.execute(
            select(AutomationLog).where(AutomationLog.event == "job-retried")
        ).scalar_one()
        assert log.details["original_job_id"] == failed.id
        assert log.details["new_job_id"] == new_job.id
        assert log.details["triggered_by"] == owner.user_id

    def test_viewer_cannot_retry(self, viewer):
        project = make_project(status="in_progress")
        failed = _failed_job(project)
        failed_id = failed.id

        with pytest.raises(ForbiddenError):
            retry_controller.retry(project.id, failed.id, viewer)
        assert [j.id for j in db.session.execute(select(PipelineJob)).scalars()] == [failed_id]

    @pytest.mark.parametrize("status", ["queued", "running", "completed", "pending"])
    def test_only_failed_jobs(self, owner, status):
        project = make_project(status="in_progress")
        job = make_job(project, status=status)

        with pytest.raises(InvalidStateError):
            retry_controller.retry(project.id, job.id, owner)

    def test_job_from_another_project(self, owner):
        project = make_project(status="in_progress")
        other = make_project(status="in_progress")
        failed = _failed_job(other)

        with pytest.raises(NotFoundError):
            retry_controller.retry(project.id, failed.id, owner)

    def test_retry_twice_creates_two_rows(self, owner):
        project = make_project(status="in_progress")
        failed = _failed_job(project)

        retry_controller.retry(project.id, failed.id, owner)
        retry_controller.retry(project.id, failed.id, owner)

        jobs = db.session.execute(
            select(PipelineJob).where(PipelineJob.project_id == project.id)
        ).scalars().all()
        assert sorted(j.status for j in jobs) == ["failed", "queued", "queued"]

    def test_retry_keeps_attempt_budget(self, owner):
        project = make_project(status="in_progress")
        failed = make_job(project, status="failed", attempts=4, max_attempts=5,
                          last_error="render timeout")

        new_job = retry_controller.retry(project.id, failed.id, owner)

        assert new_job.max_attempts == 5
        assert new_job.attempts == 0


class TestEscalate:

    @pytest.mark.parametrize("actor_fixture", ["owner", "editor", "viewer"])
    def test_escalate_notifies_admins_only(self, request, actor_fixture):
        actor = request.getfixturevalue(actor_fixture)
        project = make_project(status="in_progress")
        failed = _failed_job(project)
        before = _snapshot(failed.id)

        notified = retry_controller.escalate(project.id, failed.id, actor)

        assert notified == 1
        assert _snapshot(failed.id) == before
        assert db.session.get(Project, project.id).status == "in_progress"
        notes = db.session.execute(select(Notification)).scalars().all()
        assert [(n.user_id, n.type) for n in notes] == [("admin-1", "job_escalated")]
        assert "Timeout" in notes[0].body
        assert len(db.session.execute(select(PipelineJob)).scalars().all()) == 1

    def test_escalate_logs_event(self, owner):
        project = make_project(status="in_progress")
        failed = _failed_job(project)

        retry_controller.escalate(project.id, failed.id, owner)

        log = db.session.execute(
            select(AutomationLog).where(AutomationLog.event == "job-escalated")
        ).scalar_one()
        assert log.details["escalated_by"] == owner.user_id
        assert log.details["last_error"] == "Timeout"

    def test_outsider_cannot_escalate(self, outsider):
        project = make_project(status="in_progress")
        failed = _failed_job(project)

        with pytest.raises(ForbiddenError):
            retry_controller.escalate(project.id, failed.id, outsider)

    def test_escalate_survives_sink_failure(self, owner, monkeypatch):
        from portal.services.notification import NotificationService

        def _broken(**kwargs):
            raise RuntimeError("sink down")

        monkeypatch.setattr(NotificationService, "broadcast", staticmethod(_broken))
        project = make_project(status="in_progress")
        failed = _failed_job(project)

        assert retry_controller.escalate(project.id, failed.id, owner) == 0
        assert db.session.execute(
            select(AutomationLog).where(AutomationLog.event == "job-escalated")
        ).scalar_one() is not None


class TestFailedBuildScenario:

    def test_failed_build_then_retry(self, owner):
        project = make_project(status="in_progress")
        failed = _failed_job(project, attempts=2, max_attempts=3)

        new_job = retry_controller.retry(project.id, failed.id, owner)

        assert (new_job.status, new_job.attempts) == ("queued", 0)
        assert db.session.get(PipelineJob, failed.id).status == "failed"
