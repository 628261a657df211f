"""
Content Portal
Project domain model.

Models:
    - Project: one unit of client work inside a department
    - ProjectMember: department-scoped membership role (owner/editor/viewer)
    - Narrative: versioned creative narrative awaiting client review
    - Research: versioned strategy research awaiting client review
"""

from datetime import datetime, timezone

from portal.models import db


# ── Constants ────────────────────────────────────────────────────────────────

DEPARTMENTS = {"intelligence", "strategy", "creative"}
AUTONOMY_LEVELS = {"manual", "full_auto", "supervised"}
MEMBER_ROLES = {"owner", "editor", "viewer"}

CREATIVE_TYPES = {"investor_pitch", "client_proposal", "research_report", "website", "other"}
STRATEGY_TYPES = {"market_research", "competitive_analysis", "funding_landscape"}
INTELLIGENCE_TYPES = {"trend_watch"}

DEFAULT_TYPE = {
    "creative": "investor_pitch",
    "strategy": "market_research",
    "intelligence": "trend_watch",
}

NARRATIVE_STATUSES = {"pending_review", "approved", "rejected", "superseded"}
RESEARCH_STATUSES = {"draft", "approved", "superseded"}
RESEARCH_TYPES = {"market", "competitive", "trend", "custom"}


def _utcnow():
    return datetime.now(timezone.utc)


class Project(db.Model):
    """Client project owned by exactly one department."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True, comment="Submitting user")
    department = db.Column(
        db.String(20), nullable=False, default="creative",
        comment="intelligence | strategy | creative",
    )
    status = db.Column(db.String(30), nullable=False, default="requested", index=True)
    project_name = db.Column(db.String(200), nullable=False)
    company_name = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(50), nullable=False, default="investor_pitch")
    autonomy_level = db.Column(
        db.String(20), nullable=False, default="supervised",
        comment="manual | full_auto | supervised",
    )
    target_audience = db.Column(db.String(300), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    pitchapp_url = db.Column(db.String(500), nullable=True)

    # Denormalized, token-budgeted upstream summary written by promotion
    source_context = db.Column(db.JSON, nullable=True)

    is_provisional = db.Column(
        db.Boolean, nullable=False, default=False,
        comment="True while a promotion is still wiring the project",
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    members = db.relationship(
        "ProjectMember", backref="project", lazy="dynamic",
        passive_deletes=True,
    )
    narratives = db.relationship(
        "Narrative", backref="project", lazy="dynamic",
        passive_deletes=True,
    )
    research = db.relationship(
        "Research", backref="project", lazy="dynamic",
        passive_deletes=True,
    )
    jobs = db.relationship(
        "PipelineJob", backref="project", lazy="dynamic",
        passive_deletes=True,
    )

    __table_args__ = (
        db.Index("ix_projects_department_status", "department", "status"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "department": self.department,
            "status": self.status,
            "project_name": self.project_name,
            "company_name": self.company_name,
            "type": self.type,
            "autonomy_level": self.autonomy_level,
            "target_audience": self.target_audience,
            "notes": self.notes,
            "pitchapp_url": self.pitchapp_url,
            "source_context": self.source_context,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.department}/{self.status}>"


class ProjectMember(db.Model):
    """Membership row granting a user a role on one project."""

    __tablename__ = "project_members"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(db.String(64), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default="viewer")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "role": self.role,
        }

    def __repr__(self):
        return f"<ProjectMember {self.user_id}@{self.project_id}={self.role}>"


class _ReviewableMixin:
    """Columns shared by every artifact that passes a review gate."""

    id = db.Column(db.Integer, primary_key=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    content = db.Column(db.Text, nullable=False, default="")
    revision_notes = db.Column(db.Text, nullable=True)
    reviewed_by = db.Column(db.String(64), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    def _base_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "version": self.version,
            "content": self.content,
            "status": self.status,
            "source_job_id": self.source_job_id,
            "revision_notes": self.revision_notes,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Narrative(_ReviewableMixin, db.Model):
    """Versioned story arc produced by the auto-narrative job."""

    __tablename__ = "project_narratives"

    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    sections = db.Column(db.JSON, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="pending_review")
    source_job_id = db.Column(
        db.Integer, db.ForeignKey("pipeline_jobs.id", ondelete="SET NULL"), nullable=True,
    )

    __table_args__ = (
        db.UniqueConstraint("project_id", "version", name="uq_narratives_project_version"),
        db.Index("ix_narratives_status_project", "status", "project_id"),
        db.CheckConstraint(
            "status IN ('pending_review','approved','rejected','superseded')",
            name="ck_narrative_status",
        ),
    )

    def to_dict(self):
        data = self._base_dict()
        data["sections"] = self.sections
        return data

    def __repr__(self):
        return f"<Narrative {self.id}: project={self.project_id} v{self.version} [{self.status}]>"


class Research(_ReviewableMixin, db.Model):
    """Versioned research content for strategy projects."""

    __tablename__ = "project_research"

    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    research_type = db.Column(db.String(20), nullable=False, default="market")
    quality_scores = db.Column(db.JSON, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="draft")
    source_job_id = db.Column(
        db.Integer, db.ForeignKey("pipeline_jobs.id", ondelete="SET NULL"), nullable=True,
    )

    __table_args__ = (
        db.UniqueConstraint("project_id", "version", name="uq_research_project_version"),
        db.CheckConstraint(
            "status IN ('draft','approved','superseded')",
            name="ck_research_status",
        ),
    )

    def to_dict(self):
        data = self._base_dict()
        data["research_type"] = self.research_type
        data["quality_scores"] = self.quality_scores
        return data

    def __repr__(self):
        return f"<Research {self.id}: project={self.project_id} v{self.version} [{self.status}]>"
