"""initial_portal_schema

Create the content portal tables: projects + membership, versioned
narratives / research, the pipeline job queue, cross-department references,
intelligence trends, automation log, notifications, scheduler bookkeeping
and the user directory.

Revision ID: 7c1e0a2f4b90
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e0a2f4b90"
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "portal_users" not in existing_tables:
        op.create_table(
            "portal_users",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("display_name", sa.String(length=150), nullable=True),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_portal_users_email", "portal_users", ["email"])

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("department", sa.String(length=20), nullable=False, server_default="creative"),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="requested"),
            sa.Column("project_name", sa.String(length=200), nullable=False),
            sa.Column("company_name", sa.String(length=200), nullable=False),
            sa.Column("type", sa.String(length=50), nullable=False, server_default="investor_pitch"),
            sa.Column("autonomy_level", sa.String(length=20), nullable=False, server_default="supervised"),
            sa.Column("target_audience", sa.String(length=300), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("pitchapp_url", sa.String(length=500), nullable=True),
            sa.Column("source_context", sa.JSON(), nullable=True),
            sa.Column("is_provisional", sa.Boolean(), nullable=False, server_default=sa.false()),
            _created_at(),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_user_id", "projects", ["user_id"])
        op.create_index("ix_projects_status", "projects", ["status"])
        op.create_index("ix_projects_department_status", "projects", ["department", "status"])

    if "project_members" not in existing_tables:
        op.create_table(
            "project_members",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="viewer"),
            _created_at(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
        )
        op.create_index("ix_project_members_project_id", "project_members", ["project_id"])
        op.create_index("ix_project_members_user_id", "project_members", ["user_id"])

    if "pipeline_jobs" not in existing_tables:
        op.create_table(
            "pipeline_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("job_type", sa.String(length=30), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="queued"),
            sa.Column("payload", sa.JSON(), nullable=False),
            sa.Column("result", sa.JSON(), nullable=True),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("progress", sa.JSON(), nullable=True),
            _created_at(),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('pending','queued','running','completed','failed')",
                name="ck_pipeline_job_status",
            ),
        )
        op.create_index("ix_pipeline_jobs_project_id", "pipeline_jobs", ["project_id"])
        op.create_index("ix_pipeline_jobs_job_type", "pipeline_jobs", ["job_type"])
        op.create_index("ix_pipeline_jobs_status", "pipeline_jobs", ["status"])
        op.create_index("ix_pipeline_jobs_status_created", "pipeline_jobs", ["status", "created_at"])

    for table, extra_cols, status_default, statuses, unique_name in (
        (
            "project_narratives",
            [sa.Column("sections", sa.JSON(), nullable=True)],
            "pending_review",
            "'pending_review','approved','rejected','superseded'",
            "uq_narratives_project_version",
        ),
        (
            "project_research",
            [
                sa.Column("research_type", sa.String(length=20), nullable=False, server_default="market"),
                sa.Column("quality_scores", sa.JSON(), nullable=True),
            ],
            "draft",
            "'draft','approved','superseded'",
            "uq_research_project_version",
        ),
    ):
        if table in existing_tables:
            continue
        check_name = "ck_narrative_status" if table == "project_narratives" else "ck_research_status"
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("content", sa.Text(), nullable=False),
            *extra_cols,
            sa.Column("status", sa.String(length=20), nullable=False, server_default=status_default),
            sa.Column("revision_notes", sa.Text(), nullable=True),
            sa.Column("reviewed_by", sa.String(length=64), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("source_job_id", sa.Integer(), nullable=True),
            _created_at(),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["source_job_id"], ["pipeline_jobs.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "version", name=unique_name),
            sa.CheckConstraint(f"status IN ({statuses})", name=check_name),
        )
        op.create_index(f"ix_{table}_project_id", table, ["project_id"])
    if "project_narratives" not in existing_tables:
        op.create_index("ix_narratives_status_project", "project_narratives", ["status", "project_id"])

    if "cross_department_refs" not in existing_tables:
        op.create_table(
            "cross_department_refs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("source_department", sa.String(length=20), nullable=False),
            sa.Column("source_type", sa.String(length=30), nullable=False),
            sa.Column("source_id", sa.String(length=64), nullable=False),
            sa.Column("target_department", sa.String(length=20), nullable=False),
            sa.Column("target_type", sa.String(length=30), nullable=False),
            sa.Column("target_id", sa.String(length=64), nullable=False),
            sa.Column("relationship", sa.String(length=20), nullable=False, server_default="promoted_to"),
            sa.Column("metadata", sa.JSON(), nullable=False),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_cdr_source", "cross_department_refs",
                        ["source_department", "source_type", "source_id"])
        op.create_index("ix_cdr_target", "cross_department_refs",
                        ["target_department", "target_type", "target_id"])

    if "trend_clusters" not in existing_tables:
        op.create_table(
            "trend_clusters",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("lifecycle", sa.String(length=20), nullable=True),
            sa.Column("velocity_score", sa.Float(), nullable=True),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )

    if "signals" not in existing_tables:
        op.create_table(
            "signals",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("content_snippet", sa.Text(), nullable=True),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )

    if "signal_cluster_assignments" not in existing_tables:
        op.create_table(
            "signal_cluster_assignments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("signal_id", sa.Integer(), nullable=False),
            sa.Column("cluster_id", sa.Integer(), nullable=False),
            sa.Column("confidence", sa.Float(), nullable=False, server_default="0"),
            sa.ForeignKeyConstraint(["signal_id"], ["signals.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["cluster_id"], ["trend_clusters.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("signal_id", "cluster_id", name="uq_signal_cluster"),
        )
        op.create_index("ix_signal_cluster_assignments_signal_id", "signal_cluster_assignments", ["signal_id"])
        op.create_index("ix_signal_cluster_assignments_cluster_id", "signal_cluster_assignments", ["cluster_id"])

    if "project_trend_links" not in existing_tables:
        op.create_table(
            "project_trend_links",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("cluster_id", sa.Integer(), nullable=False),
            sa.Column("link_type", sa.String(length=20), nullable=False, server_default="reference"),
            sa.Column("notes", sa.Text(), nullable=True),
            _created_at(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["cluster_id"], ["trend_clusters.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "cluster_id", name="uq_project_trend_link"),
        )
        op.create_index("ix_project_trend_links_project_id", "project_trend_links", ["project_id"])
        op.create_index("ix_project_trend_links_cluster_id", "project_trend_links", ["cluster_id"])

    if "automation_log" not in existing_tables:
        op.create_table(
            "automation_log",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("department", sa.String(length=20), nullable=True),
            sa.Column("event", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=64), nullable=False, server_default="system"),
            sa.Column("details", sa.JSON(), nullable=False),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_automation_project", "automation_log", ["project_id"])
        op.create_index("idx_automation_event", "automation_log", ["event"])
        op.create_index("idx_automation_ts", "automation_log", ["timestamp"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("type", sa.String(length=40), nullable=False, server_default="status_changed"),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("body", sa.Text(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True, server_default=sa.false()),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
        op.create_index("ix_notifications_project_id", "notifications", ["project_id"])

    if "scheduled_jobs" not in existing_tables:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("schedule_type", sa.String(length=30), nullable=True),
            sa.Column("schedule_config", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=True),
            sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_run_status", sa.String(length=20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=True),
            sa.Column("error_count", sa.Integer(), nullable=True),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in (
        "scheduled_jobs",
        "notifications",
        "automation_log",
        "project_trend_links",
        "signal_cluster_assignments",
        "signals",
        "trend_clusters",
        "cross_department_refs",
        "project_research",
        "project_narratives",
        "pipeline_jobs",
        "project_members",
        "projects",
        "portal_users",
    ):
        if table in existing_tables:
            op.drop_table(table)
