"""
Cross-department promotion.

Covers:
    1. happy paths (strategy project → creative, trend → strategy)
    2. membership copy rules
    3. path / input validation
    4. compensation when a step after project creation fails
    5. cleanup of provisional projects a failed compensation leaves behind
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from conftest import make_project, make_research
from portal.core.exceptions import ForbiddenError, NotFoundError, UpstreamFailure, ValidationError
from portal.models import db
from portal.models.intelligence import (
    ProjectTrendLink,
    Signal,
    SignalClusterAssignment,
    TrendCluster,
)
from portal.models.notification import Notification
from portal.models.project import Project, ProjectMember
from portal.models.reference import CrossDepartmentRef
from portal.services import promotion
from portal.services.context_budget import TRUNCATION_MARKER


def _cluster(name="Edge AI", signals=("Chip shortage eases", "NPU laptops ship")):
    cluster = TrendCluster(name=name, description="On-device inference",
                           category="AI hardware", lifecycle="emerging", velocity_score=0.8)
    db.session.add(cluster)
    db.session.flush()
    for i, title in enumerate(signals):
        signal = Signal(title=title)
        db.session.add(signal)
        db.session.flush()
        db.session.add(SignalClusterAssignment(signal_id=signal.id, cluster_id=cluster.id,
                                               confidence=1.0 - i * 0.1))
    db.session.commit()
    return cluster


def _members(project_id):
    return dict(db.session.execute(
        select(ProjectMember.user_id, ProjectMember.role).where(ProjectMember.project_id == project_id)
    ).all())


def _refs():
    return db.session.execute(select(CrossDepartmentRef)).scalars().all()


class TestPromoteProject:

    def test_strategy_to_creative(self, app, owner, monkeypatch):
        monkeypatch.setitem(app.config, "UPSTREAM_TOKEN_BUDGET", 10)
        source = make_project(department="strategy", status="research_complete",
                              project_name="Robotics TAM")
        research = "Warehouse robotics grows 18% a year. " * 20
        make_research(source, content=research, quality_scores={"depth": 4})
        cluster = _cluster()
        db.session.add(ProjectTrendLink(project_id=source.id, cluster_id=cluster.id))
        db.session.commit()

        result = promotion.promote("project", source.id, "creative", owner,
                                   {"project_name": "  Robotics Pitch  ", "notes": "Use TAM slide"})

        project = result["project"]
        assert project.department == "creative"
        assert project.status == "requested"
        assert project.project_name == "Robotics Pitch"
        assert project.company_name == "Acme Robotics"
        assert project.type == "investor_pitch"
        assert project.autonomy_level == "supervised"
        assert project.notes == "Use TAM slide"
        assert project.is_provisional is False

        ctx = project.source_context
        assert ctx["source_department"] == "strategy"
        assert ctx["source_project_id"] == str(source.id)
        assert ctx["research_summary"] == research[:40] + TRUNCATION_MARKER
        assert ctx["quality_scores"] == {"depth": 4}
        assert ctx["trend_context"].startswith("Linked Trends:\n- Edge AI (emerging)")

        ref = result["reference"]
        assert (ref.source_department, ref.source_type, ref.source_id) == ("strategy", "project", str(source.id))
        assert (ref.target_department, ref.target_type, ref.target_id) == ("creative", "project", str(project.id))
        assert ref.relationship == "promoted_to"
        assert ref.metadata_json["upstream_research"] == research
        assert ref.metadata_json["promoted_by"] == "owner-1"

    def test_membership_copied_with_owner_demoted(self, editor):
        source = make_project(department="strategy")

        project = promotion.promote("project", source.id, "creative", editor)["project"]

        assert project.user_id == "editor-1"
        assert _members(project.id) == {
            "editor-1": "owner",
            "owner-1": "editor",
            "viewer-1": "viewer",
        }

    def test_admins_notified(self, owner):
        source = make_project(department="strategy")

        promotion.promote("project", source.id, "creative", owner)

        notes = db.session.execute(select(Notification)).scalars().all()
        assert [(n.user_id, n.type) for n in notes] == [("admin-1", "project_promoted")]

    def test_source_without_upstream_has_no_context(self, owner):
        source = make_project(department="strategy")

        project = promotion.promote("project", source.id, "creative", owner)["project"]

        assert project.source_context is None
        assert project.is_provisional is False

    def test_references_listed_from_both_sides(self, owner):
        source = make_project(department="strategy")
        project = promotion.promote("project", source.id, "creative", owner)["project"]

        assert [r.target_id for r in promotion.list_references(source.id)] == [str(project.id)]
        assert [r.source_id for r in promotion.list_references(project.id)] == [str(source.id)]


class TestPromoteTrend:

    def test_trend_to_strategy(self, viewer):
        cluster = _cluster()

        result = promotion.promote("trend", cluster.id, "strategy", viewer)

        project = result["project"]
        assert project.department == "strategy"
        assert project.status == "research_queued"
        assert project.project_name == "Edge AI"
        assert project.company_name == "AI hardware"
        assert project.type == "market_research"
        assert _members(project.id) == {"viewer-1": "owner"}

        trend = project.source_context["trend_context"]
        assert trend.splitlines()[0] == "Trend: Edge AI"
        assert "Top Signals:\n- Chip shortage eases\n- NPU laptops ship" in trend
        assert result["reference"].source_department == "intelligence"
        assert result["reference"].source_type == "trend"

    def test_missing_cluster(self, owner):
        with pytest.raises(NotFoundError):
            promotion.promote("trend", 999, "creative", owner)


class TestValidation:

    @pytest.mark.parametrize("source_dept, target", [
        ("creative", "strategy"),
        ("creative", "creative"),
        ("strategy", "strategy"),
        ("strategy", "intelligence"),
        ("intelligence", "intelligence"),
    ])
    def test_invalid_paths(self, owner, source_dept, target):
        source = make_project(department=source_dept)

        with pytest.raises(ValidationError):
            promotion.promote("project", source.id, target, owner)
        assert db.session.execute(select(Project)).scalars().all() == [source]

    def test_bad_source_type(self, owner):
        with pytest.raises(ValidationError):
            promotion.promote("signal", 1, "creative", owner)

    def test_non_numeric_source_id(self, owner):
        with pytest.raises(ValidationError):
            promotion.promote("project", "abc", "creative", owner)

    @pytest.mark.parametrize("actor_fixture", ["viewer", "outsider"])
    def test_requires_owner_or_editor(self, request, actor_fixture):
        source = make_project(department="strategy")

        with pytest.raises(ForbiddenError):
            promotion.promote("project", source.id, "creative", request.getfixturevalue(actor_fixture))

    def test_admin_may_promote_any_project(self, admin):
        source = make_project(department="intelligence")

        project = promotion.promote("project", source.id, "strategy", admin)["project"]

        assert _members(project.id)["admin-1"] == "owner"


class TestCompensation:

    def test_failed_reference_rolls_back_project(self, owner, monkeypatch):
        source = make_project(department="strategy")
        source_id = source.id

        def _boom(*args, **kwargs):
            raise RuntimeError("db went away")

        monkeypatch.setattr(promotion, "_record_reference", _boom)

        with pytest.raises(UpstreamFailure) as exc_info:
            promotion.promote("project", source_id, "creative", owner)

        assert exc_info.value.step == "record_reference"
        assert [p.id for p in db.session.execute(select(Project)).scalars()] == [source_id]
        assert _refs() == []
        assert set(_members(source_id)) == {"owner-1", "editor-1", "viewer-1"}

    def test_failed_compensation_leaves_provisional_project(self, owner, monkeypatch):
        source = make_project(department="strategy")
        source_id = source.id

        def _boom(*args, **kwargs):
            raise RuntimeError("db went away")

        monkeypatch.setattr(promotion, "_record_reference", _boom)
        monkeypatch.setattr(promotion, "_compensate", lambda project_id: False)

        with pytest.raises(UpstreamFailure):
            promotion.promote("project", source_id, "creative", owner)

        orphan = db.session.execute(
            select(Project).where(Project.id != source_id)
        ).scalar_one()
        orphan_id = orphan.id
        assert orphan.is_provisional is True

        monkeypatch.undo()
        # fresh orphans are left alone
        assert promotion.cleanup_provisional_projects(15) == []

        later = datetime.now(timezone.utc) + timedelta(minutes=30)
        assert promotion.cleanup_provisional_projects(15, now=later) == [orphan_id]
        assert db.session.execute(select(Project.id).where(Project.id == orphan_id)).first() is None
        assert _members(orphan_id) == {}

    def test_cleanup_ignores_finished_projects(self, owner):
        source = make_project(department="strategy")
        promotion.promote("project", source.id, "creative", owner)

        later = datetime.now(timezone.utc) + timedelta(days=1)
        assert promotion.cleanup_provisional_projects(15, now=later) == []
