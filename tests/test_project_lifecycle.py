"""
Project submission, build, client approval and admin operations.

Covers:
    1. submit_project: initial status, owner membership, first job in one commit
    2. start_build: exactly-once, supervised jobs held as pending
    3. apply_approval: approve / request_changes / escalate
    4. set_status + delete_project (admin only)
    5. record_artifact: versioning, supersede, walk into review
    6. Visibility: provisional and non-member projects are not found
"""

import pytest
from sqlalchemy import select

from conftest import make_job, make_narrative, make_project, make_research
from portal.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from portal.models import db
from portal.models.audit import AutomationLog
from portal.models.pipeline import PipelineJob
from portal.models.project import Narrative, Project, ProjectMember, Research
from portal.services import job_store, lifecycle


def _jobs(project_id):
    return db.session.execute(
        select(PipelineJob).where(PipelineJob.project_id == project_id).order_by(PipelineJob.id)
    ).scalars().all()


# ═════════════════════════════════════════════════════════════════════════════
# Submission
# ═════════════════════════════════════════════════════════════════════════════


class TestSubmitProject:

    def test_creative_submission_enqueues_pull(self, owner):
        project = lifecycle.submit_project(owner, {
            "project_name": "Seed Round", "company_name": "Nimbus", "autonomy_level": "full_auto",
        })

        assert project.department == "creative"
        assert project.status == "requested"
        assert [j.job_type for j in _jobs(project.id)] == ["auto-pull"]
        role = db.session.execute(
            select(ProjectMember.role).where(ProjectMember.project_id == project.id,
                                             ProjectMember.user_id == owner.user_id)
        ).scalar_one()
        assert role == "owner"

    def test_strategy_submission_enqueues_research(self, owner):
        project = lifecycle.submit_project(owner, {
            "department": "strategy", "project_name": "EU entry", "company_name": "Nimbus",
        })

        assert project.status == "research_queued"
        assert project.type == "market_research"
        assert [j.job_type for j in _jobs(project.id)] == ["auto-research"]

    def test_intelligence_submission_has_no_first_job(self, owner):
        project = lifecycle.submit_project(owner, {
            "department": "intelligence", "project_name": "Watch AI chips", "company_name": "Nimbus",
        })

        assert project.status == "monitoring"
        assert _jobs(project.id) == []

    def test_failed_enqueue_creates_nothing(self, owner, monkeypatch):
        def broken_enqueue(*args, **kwargs):
            raise RuntimeError("queue unavailable")

        monkeypatch.setattr(job_store, "enqueue", broken_enqueue)

        with pytest.raises(RuntimeError):
            lifecycle.submit_project(owner, {"project_name": "Seed Round", "company_name": "Nimbus"})

        assert db.session.execute(select(Project)).scalars().all() == []
        assert db.session.execute(select(ProjectMember)).scalars().all() == []

    def test_missing_fields(self, owner):
        with pytest.raises(ValidationError) as exc_info:
            lifecycle.submit_project(owner, {"project_name": "  "})
        assert set(exc_info.value.details) == {"project_name", "company_name"}

    def test_type_must_match_department(self, owner):
        with pytest.raises(ValidationError):
            lifecycle.submit_project(owner, {
                "department": "strategy", "type": "investor_pitch",
                "project_name": "X", "company_name": "Y",
            })

    def test_unknown_department(self, owner):
        with pytest.raises(ValidationError):
            lifecycle.submit_project(owner, {
                "department": "finance", "project_name": "X", "company_name": "Y",
            })


# ═════════════════════════════════════════════════════════════════════════════
# Build
# ═════════════════════════════════════════════════════════════════════════════


class TestStartBuild:

    def test_full_auto_build_queues_three_jobs(self, owner):
        project = make_project(status="brand_collection")
        narrative = make_narrative(project, status="approved")

        result = lifecycle.start_build(project.id, owner, skip_assets=True)

        assert result["project"].status == "in_progress"
        jobs = _jobs(project.id)
        assert [j.job_type for j in jobs] == ["auto-build", "auto-one-pager", "auto-emails"]
        assert {j.status for j in jobs} == {"queued"}
        assert jobs[0].payload == {"narrative_id": narrative.id, "skip_assets": True}
        assert jobs[1].payload == {"narrative_id": narrative.id}

    def test_supervised_build_holds_jobs_pending(self, owner):
        project = make_project(status="brand_collection", autonomy_level="supervised")

        lifecycle.start_build(project.id, owner)

        assert {j.status for j in _jobs(project.id)} == {"pending"}

    def test_second_start_is_invalid_state(self, owner):
        project = make_project(status="brand_collection")
        lifecycle.start_build(project.id, owner)

        with pytest.raises(InvalidStateError) as exc_info:
            lifecycle.start_build(project.id, owner)

        assert exc_info.value.current == "in_progress"
        assert len(_jobs(project.id)) == 3

    def test_only_owner_starts_build(self, editor):
        project = make_project(status="brand_collection")

        with pytest.raises(ForbiddenError):
            lifecycle.start_build(project.id, editor)
        assert _jobs(project.id) == []

    def test_build_from_wrong_status(self, owner):
        project = make_project(status="narrative_review")

        with pytest.raises(InvalidStateError):
            lifecycle.start_build(project.id, owner)
        assert db.session.get(Project, project.id).status == "narrative_review"

    def test_failed_enqueue_leaves_project_untouched(self, owner, monkeypatch):
        project = make_project(status="brand_collection")
        project_id = project.id
        real_enqueue = job_store.enqueue
        calls = []

        def flaky_enqueue(*args, **kwargs):
            calls.append(args[0])
            if len(calls) == 2:
                raise RuntimeError("queue unavailable")
            return real_enqueue(*args, **kwargs)

        monkeypatch.setattr(job_store, "enqueue", flaky_enqueue)

        with pytest.raises(RuntimeError):
            lifecycle.start_build(project_id, owner)

        db.session.expire_all()
        assert calls == ["auto-build", "auto-one-pager"]
        assert db.session.get(Project, project_id).status == "brand_collection"
        assert _jobs(project_id) == []


# ═════════════════════════════════════════════════════════════════════════════
# Client approval
# ═════════════════════════════════════════════════════════════════════════════


class TestApplyApproval:

    def test_approve_goes_live(self, owner):
        project = make_project(status="review")

        updated = lifecycle.apply_approval(project.id, owner, "approve")

        assert updated.status == "live"

    def test_request_changes_goes_to_revision(self, owner):
        project = make_project(status="review")

        updated = lifecycle.apply_approval(project.id, owner, "request_changes", "New logo please")

        assert updated.status == "revision"
        log = db.session.execute(
            select(AutomationLog).where(AutomationLog.event == "client-approval")
        ).scalar_one()
        assert log.details["message"] == "New logo please"

    def test_escalate_keeps_status(self, owner):
        project = make_project(status="review")

        updated = lifecycle.apply_approval(project.id, owner, "escalate", "Broken link")

        assert updated.status == "review"

    def test_approval_outside_review(self, owner):
        project = make_project(status="in_progress")

        with pytest.raises(InvalidStateError):
            lifecycle.apply_approval(project.id, owner, "approve")

    def test_invalid_action(self, owner):
        project = make_project(status="review")

        with pytest.raises(ValidationError):
            lifecycle.apply_approval(project.id, owner, "ship_it")


# ═════════════════════════════════════════════════════════════════════════════
# Admin
# ═════════════════════════════════════════════════════════════════════════════


class TestAdminOperations:

    def test_set_status_follows_table(self, admin):
        project = make_project(status="in_progress")

        updated = lifecycle.set_status(project.id, admin, "review")
        assert updated.status == "review"

        with pytest.raises(InvalidStateError):
            lifecycle.set_status(project.id, admin, "requested")

    def test_set_status_records_pitchapp_url(self, admin):
        project = make_project(status="review")

        updated = lifecycle.set_status(project.id, admin, "live", pitchapp_url="https://deck.example/acme")

        assert updated.pitchapp_url == "https://deck.example/acme"

    def test_set_status_requires_admin(self, owner):
        project = make_project(status="in_progress")

        with pytest.raises(ForbiddenError):
            lifecycle.set_status(project.id, owner, "review")

    def test_delete_cascades_children(self, admin):
        project = make_project(status="narrative_review")
        job = make_job(project, job_type="auto-narrative", status="completed")
        narrative = make_narrative(project)
        narrative.source_job_id = job.id
        db.session.commit()

        project_id = project.id

        counts = lifecycle.delete_project(project_id, admin)

        assert counts["jobs"] == 1
        assert counts["narratives"] == 1
        assert counts["members"] == 3
        assert db.session.get(Project, project_id) is None
        assert db.session.execute(select(PipelineJob)).scalars().all() == []
        events = db.session.execute(
            select(AutomationLog.event).where(AutomationLog.project_id == project_id)
        ).scalars().all()
        assert "project-deleted" in events

    def test_delete_requires_admin(self, owner):
        project = make_project()

        with pytest.raises(ForbiddenError):
            lifecycle.delete_project(project.id, owner)

    def test_delete_missing(self, admin):
        with pytest.raises(NotFoundError):
            lifecycle.delete_project(404, admin)


# ═════════════════════════════════════════════════════════════════════════════
# Artifacts
# ═════════════════════════════════════════════════════════════════════════════


class TestRecordArtifact:

    def test_first_narrative_moves_project_into_review(self):
        project = make_project(status="requested")

        narrative = lifecycle.record_artifact(project.id, "narrative", "Our story",
                                              sections=[{"title": "Hook"}])

        assert narrative.version == 1
        assert narrative.status == "pending_review"
        assert db.session.get(Project, project.id).status == "narrative_review"

    def test_new_version_supersedes_pending_sibling(self):
        project = make_project(status="narrative_review")
        old = make_narrative(project, version=1)

        new = lifecycle.record_artifact(project.id, "narrative", "Take two")

        assert new.version == 2
        assert db.session.get(Narrative, old.id).status == "superseded"
        pending = db.session.execute(
            select(Narrative).where(Narrative.project_id == project.id,
                                    Narrative.status == "pending_review")
        ).scalars().all()
        assert [n.id for n in pending] == [new.id]

    def test_research_walks_queue_to_review(self):
        project = make_project(department="strategy", status="research_queued")

        research = lifecycle.record_artifact(project.id, "research", "Findings",
                                             quality_scores={"depth": 0.8})

        assert research.status == "draft"
        assert research.quality_scores == {"depth": 0.8}
        assert db.session.get(Project, project.id).status == "research_review"

    def test_research_after_rejection(self):
        project = make_project(department="strategy", status="researching")
        make_research(project, version=1, status="superseded")

        research = lifecycle.record_artifact(project.id, "research", "Findings v2")

        assert research.version == 2
        assert db.session.get(Research, research.id).status == "draft"

    def test_wrong_department(self):
        project = make_project(department="strategy")

        with pytest.raises(ValidationError):
            lifecycle.record_artifact(project.id, "narrative", "Story")

    def test_empty_content(self):
        project = make_project()

        with pytest.raises(ValidationError):
            lifecycle.record_artifact(project.id, "narrative", "  ")

    def test_provisional_project_not_found(self):
        project = make_project(is_provisional=True)

        with pytest.raises(NotFoundError):
            lifecycle.record_artifact(project.id, "narrative", "Story")
        assert db.session.execute(select(Narrative)).scalars().all() == []


# ═════════════════════════════════════════════════════════════════════════════
# Visibility
# ═════════════════════════════════════════════════════════════════════════════


class TestVisibility:

    def test_outsider_cannot_see_project(self, outsider):
        project = make_project()

        with pytest.raises(NotFoundError):
            lifecycle.get_project(project.id, outsider)
        assert lifecycle.list_projects(outsider) == []

    def test_admin_sees_everything(self, admin):
        make_project()
        make_project(department="strategy")

        assert len(lifecycle.list_projects(admin)) == 2
        assert len(lifecycle.list_projects(admin, department="strategy")) == 1

    def test_provisional_project_hidden(self, admin):
        project = make_project(is_provisional=True)

        with pytest.raises(NotFoundError):
            lifecycle.get_project(project.id, admin)
        assert lifecycle.list_projects(admin) == []
