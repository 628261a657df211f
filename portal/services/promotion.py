"""
Content Portal
Promotion Coordinator.

Creates a project in a downstream department seeded from an upstream project
or trend cluster.

Steps:
    1. load source, validate path       (strategy → creative; intelligence → strategy|creative)
    2. gather upstream context          (latest research, linked trends / top signals)
    3. create target project            (provisional, committed)
    4. copy membership                  (owner → editor; actor → owner)
    5. record CrossDepartmentRef        (full, untruncated context)
    6. write source_context             (token-budgeted) and clear provisional flag
    7. log + notify                     (best-effort)

Steps 3–6 each commit on their own. A failure in 4–6 deletes what was
created in reverse order and raises UpstreamFailure. If that compensation
itself fails the project stays provisional (hidden from every listing) and
the ``provisional_project_cleanup`` scheduled job removes it later.
"""

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app, has_app_context
from sqlalchemy import delete, or_, and_, select

from portal.core.exceptions import ForbiddenError, NotFoundError, UpstreamFailure, ValidationError
from portal.models import db
from portal.models.intelligence import ProjectTrendLink, SignalClusterAssignment, TrendCluster
from portal.models.project import Project, ProjectMember, Research
from portal.models.reference import CrossDepartmentRef
from portal.services.automation_log import log_event
from portal.services.context_budget import (
    DEFAULT_MAX_TOKENS,
    build_ref_metadata,
    build_source_context,
)
from portal.services.lifecycle import TYPES_BY_DEPARTMENT, get_project
from portal.services.notification import NotificationService, notify_best_effort
from portal.services.permission import Actor, get_member_role
from portal.services.transitions import Department, initial_status

logger = logging.getLogger(__name__)

VALID_TARGETS = (Department.STRATEGY.value, Department.CREATIVE.value)

# Source department → departments it may be promoted into
PROMOTION_PATHS = {
    Department.INTELLIGENCE.value: {Department.STRATEGY.value, Department.CREATIVE.value},
    Department.STRATEGY.value: {Department.CREATIVE.value},
    Department.CREATIVE.value: set(),
}

MAX_LINKED_TRENDS = 3
MAX_TOP_SIGNALS = 5


def _now():
    return datetime.now(timezone.utc)


def _token_budget() -> int:
    if has_app_context():
        return current_app.config.get("UPSTREAM_TOKEN_BUDGET", DEFAULT_MAX_TOKENS)
    return DEFAULT_MAX_TOKENS


def validate_promotion_path(source_department: str, target_department: str) -> None:
    if target_department not in VALID_TARGETS:
        raise ValidationError(
            f"target_department must be one of: {', '.join(VALID_TARGETS)}",
            details={"target_department": list(VALID_TARGETS)},
        )
    if source_department == Department.CREATIVE.value:
        raise ValidationError("creative projects cannot be promoted")
    if target_department not in PROMOTION_PATHS.get(source_department, set()):
        raise ValidationError(
            f"{source_department} projects can only be promoted to "
            f"{' or '.join(sorted(PROMOTION_PATHS[source_department]))}"
        )


# ═════════════════════════════════════════════════════════════════════════════
# Upstream context
# ═════════════════════════════════════════════════════════════════════════════

def project_upstream_context(project: Project) -> dict:
    """Research (strategy only) and up to three linked trends for *project*."""
    ctx = {"research_content": None, "quality_scores": None, "trend_context": None}

    if project.department == Department.STRATEGY.value:
        research = db.session.execute(
            select(Research)
            .where(Research.project_id == project.id)
            .order_by(Research.version.desc())
            .limit(1)
        ).scalar_one_or_none()
        if research:
            ctx["research_content"] = research.content or None
            ctx["quality_scores"] = research.quality_scores or None

    links = db.session.execute(
        select(ProjectTrendLink)
        .where(ProjectTrendLink.project_id == project.id)
        .order_by(ProjectTrendLink.created_at.asc(), ProjectTrendLink.id.asc())
        .limit(MAX_LINKED_TRENDS)
    ).scalars().all()
    summaries = []
    for link in links:
        tc = link.cluster
        if tc is None:
            continue
        line = f"- {tc.name}"
        if tc.lifecycle:
            line += f" ({tc.lifecycle})"
        if tc.velocity_score is not None:
            line += f" — velocity: {tc.velocity_score}"
        summaries.append(line)
    if summaries:
        ctx["trend_context"] = "Linked Trends:\n" + "\n".join(summaries)
    return ctx


def trend_upstream_context(cluster: TrendCluster) -> dict:
    """Summary of a trend cluster and its top signals by confidence."""
    parts = [f"Trend: {cluster.name}"]
    if cluster.description:
        parts.append(f"Description: {cluster.description}")
    if cluster.lifecycle:
        parts.append(f"Lifecycle: {cluster.lifecycle}")
    if cluster.velocity_score is not None:
        parts.append(f"Velocity Score: {cluster.velocity_score}")

    assignments = db.session.execute(
        select(SignalClusterAssignment)
        .where(SignalClusterAssignment.cluster_id == cluster.id)
        .order_by(SignalClusterAssignment.confidence.desc(), SignalClusterAssignment.id.asc())
        .limit(MAX_TOP_SIGNALS)
    ).scalars().all()
    titles = [f"- {a.signal.title}" for a in assignments if a.signal is not None]
    if titles:
        parts.append("Top Signals:\n" + "\n".join(titles))

    return {"research_content": None, "quality_scores": None, "trend_context": "\n".join(parts)}


def _load_source(source_type: str, source_id, actor: Actor) -> dict:
    """Step 1: resolve the source into name / company / department / context."""
    if source_type == "trend":
        cluster = db.session.get(TrendCluster, source_id)
        if cluster is None:
            raise NotFoundError(resource="TrendCluster", resource_id=source_id)
        return {
            "name": cluster.name,
            "company": cluster.category or "Unknown",
            "department": Department.INTELLIGENCE.value,
            "project": None,
            "ctx": trend_upstream_context(cluster),
        }

    if source_type != "project":
        raise ValidationError("source_type must be 'project' or 'trend'")

    source = get_project(source_id)
    role = get_member_role(source.id, actor.user_id)
    if not actor.is_admin and role not in ("owner", "editor"):
        raise ForbiddenError("Promotion requires owner or editor role", required="owner,editor")
    return {
        "name": source.project_name,
        "company": source.company_name,
        "department": source.department,
        "project": source,
        "ctx": None,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Steps 4–6
# ═════════════════════════════════════════════════════════════════════════════

def _copy_membership(project: Project, source: Project | None, actor: Actor) -> int:
    rows = {}
    if source is not None:
        for member in db.session.execute(
            select(ProjectMember).where(ProjectMember.project_id == source.id)
        ).scalars():
            rows[member.user_id] = "editor" if member.role == "owner" else member.role
    rows[actor.user_id] = "owner"

    for user_id, role in rows.items():
        db.session.add(ProjectMember(project_id=project.id, user_id=user_id, role=role))
    db.session.commit()
    return len(rows)


def _record_reference(project: Project, source_type: str, source_id, source_department: str,
                      metadata: dict) -> CrossDepartmentRef:
    ref = CrossDepartmentRef(
        source_department=source_department,
        source_type=source_type,
        source_id=str(source_id),
        target_department=project.department,
        target_type="project",
        target_id=str(project.id),
        relationship="promoted_to",
        metadata_json=metadata,
    )
    db.session.add(ref)
    db.session.commit()
    return ref


def _write_source_context(project: Project, source_context: dict | None) -> None:
    project.source_context = source_context
    project.is_provisional = False
    db.session.commit()


def _compensate(project_id: int) -> bool:
    """Undo steps 5, 4 and 3 for a provisional project, in that order."""
    try:
        db.session.execute(
            delete(CrossDepartmentRef).where(
                CrossDepartmentRef.target_type == "project",
                CrossDepartmentRef.target_id == str(project_id),
            ).execution_options(synchronize_session=False)
        )
        db.session.execute(
            delete(ProjectMember).where(ProjectMember.project_id == project_id)
            .execution_options(synchronize_session=False)
        )
        db.session.execute(
            delete(Project).where(Project.id == project_id)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return True
    except Exception as exc:
        db.session.rollback()
        logger.error(
            "Compensating delete failed for provisional project %s: %s", project_id, exc,
            extra={"project_id": project_id, "event_type": "promotion-compensation-failed"},
        )
        return False


# ═════════════════════════════════════════════════════════════════════════════
# Coordinator
# ═════════════════════════════════════════════════════════════════════════════

def promote(source_type: str, source_id, target_department: str, actor: Actor,
            overrides: dict | None = None) -> dict:
    """
    Promote a project or trend into *target_department*.

    Returns:
        {"project": <Project>, "reference": <CrossDepartmentRef>,
         "source_type": str, "source_id": str}
    """
    overrides = overrides or {}
    source_type = source_type or "project"
    try:
        source_id = int(source_id)
    except (TypeError, ValueError):
        raise ValidationError("source_id must be an integer id", details={"source_id": source_id}) from None
    source = _load_source(source_type, source_id, actor)
    source_dept = source["department"]
    validate_promotion_path(source_dept, target_department)

    source_project = source["project"]
    ctx = source["ctx"] if source_project is None else project_upstream_context(source_project)
    ctx["forwarded_at"] = _now().isoformat()

    name = overrides.get("project_name")
    name = name.strip()[:200] if isinstance(name, str) and name.strip() else source["name"]
    project_type = overrides.get("type")
    if project_type not in TYPES_BY_DEPARTMENT[target_department]:
        project_type = "investor_pitch" if target_department == "creative" else "market_research"
    notes = overrides.get("notes")
    notes = notes.strip()[:2000] if isinstance(notes, str) and notes.strip() else None

    # Step 3
    project = Project(
        user_id=actor.user_id,
        department=target_department,
        status=initial_status(target_department),
        project_name=name,
        company_name=source["company"],
        type=project_type,
        autonomy_level="supervised",
        notes=notes,
        is_provisional=True,
    )
    db.session.add(project)
    db.session.commit()
    project_id = project.id

    step = "copy_membership"
    try:
        _copy_membership(project, source_project, actor)
        step = "record_reference"
        ref = _record_reference(
            project, source_type, source_id, source_dept,
            build_ref_metadata(actor.user_id, ctx),
        )
        step = "write_source_context"
        source_ref_id = source_project.id if source_project is not None else source_id
        _write_source_context(
            project,
            build_source_context(source_dept, source_ref_id, ctx, max_tokens=_token_budget()),
        )
    except Exception as exc:
        db.session.rollback()
        logger.warning(
            "Promotion failed at %s, compensating project %s: %s", step, project_id, exc,
            extra={"project_id": project_id, "event_type": "promotion-failed"},
        )
        _compensate(project_id)
        raise UpstreamFailure(f"Promotion failed at step {step}", step=step) from exc

    logger.info(
        "Promoted %s %s (%s) → %s project %s", source_type, source_id, source_dept,
        target_department, project_id,
        extra={"project_id": project_id, "department": target_department,
               "event_type": "project-promoted"},
    )
    log_event(
        "project-promoted",
        project_id=source_project.id if source_project is not None else project_id,
        department=source_dept,
        actor=actor.user_id,
        details={
            "source_type": source_type,
            "source_id": str(source_id),
            "target_project_id": project_id,
            "source_department": source_dept,
            "target_department": target_department,
            "promoted_by": actor.user_id,
        },
    )
    notify_best_effort(
        NotificationService.notify_admins,
        title=f"{source_type} promoted to {target_department}",
        body=f'{source["company"]} "{source["name"]}" promoted from {source_dept} to {target_department}.',
        type="project_promoted",
        project_id=project_id,
    )

    return {
        "project": db.session.get(Project, project_id),
        "reference": ref,
        "source_type": source_type,
        "source_id": str(source_id),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Reads & maintenance
# ═════════════════════════════════════════════════════════════════════════════

def list_references(project_id: int) -> list[CrossDepartmentRef]:
    """Provenance edges into or out of a project, oldest first."""
    pid = str(project_id)
    return db.session.execute(
        select(CrossDepartmentRef)
        .where(or_(
            and_(CrossDepartmentRef.source_type == "project", CrossDepartmentRef.source_id == pid),
            and_(CrossDepartmentRef.target_type == "project", CrossDepartmentRef.target_id == pid),
        ))
        .order_by(CrossDepartmentRef.created_at.asc(), CrossDepartmentRef.id.asc())
    ).scalars().all()


def cleanup_provisional_projects(ttl_minutes: int, now: datetime | None = None) -> list[int]:
    """Delete provisional projects older than *ttl_minutes*. Returns their ids."""
    cutoff = (now or _now()) - timedelta(minutes=ttl_minutes)
    stale_ids = db.session.execute(
        select(Project.id).where(Project.is_provisional.is_(True), Project.created_at < cutoff)
    ).scalars().all()
    removed = []
    for project_id in stale_ids:
        if _compensate(project_id):
            removed.append(project_id)
    return removed
