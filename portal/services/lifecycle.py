"""
Content Portal
Project Lifecycle Service.

Owns every project status change. Each operation:
  1. loads the project and checks the actor's project role,
  2. checks the current status (and artifact status for review decisions),
  3. applies the status change and any triggered job enqueue in ONE commit,
     using conditional updates so a concurrent writer cannot be overwritten,
  4. after the commit, writes the automation log and notifications on a
     best-effort basis.

Review decisions:
    narrative  approve   pending_review → approved     project → brand_collection
               reject    pending_review → rejected     auto-narrative queued (with notes)
               escalate  no change                     admins notified
    research   approve   draft → approved              project → research_complete
               reject    draft → superseded            auto-research queued, project → researching

Usage:
    from portal.services.lifecycle import submit_decision

    result = submit_decision("narrative", narrative_id, "approve", actor)
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update

from portal.core.exceptions import (
    AlreadyReviewedError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from portal.models import db
from portal.models.intelligence import ProjectTrendLink
from portal.models.pipeline import PipelineJob
from portal.models.project import (
    AUTONOMY_LEVELS,
    CREATIVE_TYPES,
    DEFAULT_TYPE,
    INTELLIGENCE_TYPES,
    Narrative,
    Project,
    ProjectMember,
    Research,
    RESEARCH_TYPES,
    STRATEGY_TYPES,
)
from portal.services import job_store
from portal.services.automation_log import log_event
from portal.services.notification import NotificationService, notify_best_effort
from portal.services.permission import Actor, require_admin, require_project_role
from portal.services.transitions import (
    Department,
    initial_status,
    parse_department,
    validate_transition,
)

logger = logging.getLogger(__name__)

NOTES_MAX_LENGTH = 2000

# Artifact kind → model, department, statuses and follow-up job
ARTIFACT_RULES = {
    "narrative": {
        "model": Narrative,
        "department": Department.CREATIVE.value,
        "review_status": "narrative_review",
        "pending": "pending_review",
        "approved_project_status": "brand_collection",
        "rejected_artifact_status": "rejected",
        "rejected_project_status": None,
        "regenerate_job": "auto-narrative",
        "previous_key": "previous_narrative_id",
        "actions": ("approve", "reject", "escalate"),
    },
    "research": {
        "model": Research,
        "department": Department.STRATEGY.value,
        "review_status": "research_review",
        "pending": "draft",
        "approved_project_status": "research_complete",
        "rejected_artifact_status": "superseded",
        "rejected_project_status": "researching",
        "regenerate_job": "auto-research",
        "previous_key": "previous_research_id",
        "actions": ("approve", "reject"),
    },
}

APPROVAL_ACTIONS = ("approve", "request_changes", "escalate")
APPROVAL_TARGET = {"approve": "live", "request_changes": "revision"}

FIRST_JOB = {
    Department.CREATIVE.value: "auto-pull",
    Department.STRATEGY.value: "auto-research",
}

TYPES_BY_DEPARTMENT = {
    Department.CREATIVE.value: CREATIVE_TYPES,
    Department.STRATEGY.value: STRATEGY_TYPES,
    Department.INTELLIGENCE.value: INTELLIGENCE_TYPES,
}

BUILD_JOBS = ("auto-build", "auto-one-pager", "auto-emails")


def _now():
    return datetime.now(timezone.utc)


def _clean_notes(notes) -> str | None:
    if not isinstance(notes, str):
        return None
    notes = notes.strip()[:NOTES_MAX_LENGTH]
    return notes or None


# ═════════════════════════════════════════════════════════════════════════════
# Lookups
# ═════════════════════════════════════════════════════════════════════════════

def get_project(project_id: int, actor: Actor | None = None) -> Project:
    """Load a visible project.

    Provisional projects and, for non-admin actors, projects without a
    membership row are reported as not found.
    """
    project = db.session.get(Project, project_id)
    if not project or project.is_provisional:
        raise NotFoundError(resource="Project", resource_id=project_id)
    if actor is not None and not actor.is_admin:
        member = db.session.execute(
            select(ProjectMember.id).where(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == actor.user_id,
            )
        ).scalar_one_or_none()
        if member is None:
            raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def list_projects(actor: Actor, department: str | None = None) -> list[Project]:
    stmt = select(Project).where(Project.is_provisional.is_(False))
    if department:
        stmt = stmt.where(Project.department == parse_department(department).value)
    if not actor.is_admin:
        stmt = stmt.where(
            Project.id.in_(
                select(ProjectMember.project_id).where(ProjectMember.user_id == actor.user_id)
            )
        )
    return db.session.execute(
        stmt.order_by(Project.created_at.desc(), Project.id.desc())
    ).scalars().all()


def member_ids(project_id: int, exclude: str | None = None) -> list[str]:
    stmt = select(ProjectMember.user_id).where(ProjectMember.project_id == project_id)
    if exclude:
        stmt = stmt.where(ProjectMember.user_id != exclude)
    return list(db.session.execute(stmt.order_by(ProjectMember.id)).scalars().all())


def find_pending_artifact(project_id: int, kind: str):
    """Latest artifact of *kind* still awaiting review, or NotFoundError."""
    rules = _artifact_rules(kind)
    model = rules["model"]
    artifact = db.session.execute(
        select(model)
        .where(model.project_id == project_id, model.status == rules["pending"])
        .order_by(model.version.desc())
        .limit(1)
    ).scalar_one_or_none()
    if artifact is None:
        raise NotFoundError(resource=f"Pending {kind}", resource_id=project_id)
    return artifact


def latest_approved_narrative_id(project_id: int) -> int | None:
    return db.session.execute(
        select(Narrative.id)
        .where(Narrative.project_id == project_id, Narrative.status == "approved")
        .order_by(Narrative.version.desc())
        .limit(1)
    ).scalar_one_or_none()


def _artifact_rules(kind: str) -> dict:
    rules = ARTIFACT_RULES.get(kind)
    if not rules:
        raise ValidationError(
            f"Unknown artifact kind: {kind}",
            details={"kind": sorted(ARTIFACT_RULES)},
        )
    return rules


# ═════════════════════════════════════════════════════════════════════════════
# Status writes
# ═════════════════════════════════════════════════════════════════════════════

def _cas_project_status(project: Project, expected: str, new: str, **extra) -> None:
    """Move *project* expected → new inside the current unit of work.

    Validates against the department table first; a lost race rolls back
    and raises InvalidStateError.
    """
    validate_transition(project.department, expected, new)
    result = db.session.execute(
        update(Project)
        .where(Project.id == project.id, Project.status == expected)
        .values(status=new, updated_at=_now(), **extra)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        db.session.refresh(project)
        raise InvalidStateError(
            f"Project {project.id} is no longer '{expected}'",
            current=project.status,
            allowed={expected},
        )


def _notify_after_commit(project: Project, actor: Actor, *, type: str,
                         member=None, admin=None, ack=None) -> None:
    """Fan out (title, body) pairs to other members, admins and the actor."""
    if member:
        recipients = member_ids(project.id, exclude=actor.user_id)
        if recipients:
            notify_best_effort(
                NotificationService.broadcast,
                recipients=recipients, title=member[0], body=member[1],
                type=type, project_id=project.id,
            )
    if admin:
        notify_best_effort(
            NotificationService.notify_admins,
            title=admin[0], body=admin[1], type=type, project_id=project.id,
        )
    if ack and actor.user_id != "system":
        notify_best_effort(
            NotificationService.notify,
            user_id=actor.user_id, title=ack[0], body=ack[1],
            type=f"{type}_ack", project_id=project.id,
        )


# ═════════════════════════════════════════════════════════════════════════════
# Submission
# ═════════════════════════════════════════════════════════════════════════════

def submit_project(actor: Actor, data: dict) -> Project:
    """
    Create a project at its department's initial status.

    The actor becomes owner and the department's first job (if any) is
    enqueued in the same commit.
    """
    department = parse_department(data.get("department") or "creative").value

    missing = [f for f in ("project_name", "company_name") if not (data.get(f) or "").strip()]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={f: "required" for f in missing},
        )

    project_type = data.get("type") or DEFAULT_TYPE[department]
    if project_type not in TYPES_BY_DEPARTMENT[department]:
        raise ValidationError(
            f"Invalid type '{project_type}' for {department}",
            details={"type": sorted(TYPES_BY_DEPARTMENT[department])},
        )

    autonomy = data.get("autonomy_level") or "supervised"
    if autonomy not in AUTONOMY_LEVELS:
        raise ValidationError(
            f"Invalid autonomy_level: {autonomy}",
            details={"autonomy_level": sorted(AUTONOMY_LEVELS)},
        )

    project = Project(
        user_id=actor.user_id,
        department=department,
        status=initial_status(department),
        project_name=data["project_name"].strip()[:200],
        company_name=data["company_name"].strip()[:200],
        type=project_type,
        autonomy_level=autonomy,
        target_audience=data.get("target_audience"),
        notes=_clean_notes(data.get("notes")),
    )
    first_job = FIRST_JOB.get(department)
    try:
        db.session.add(project)
        db.session.flush()
        db.session.add(ProjectMember(project_id=project.id, user_id=actor.user_id, role="owner"))
        if first_job:
            job_store.enqueue(first_job, project.id, {})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Project %s submitted in %s", project.id, department,
        extra={"project_id": project.id, "department": department, "event_type": "project-submitted"},
    )
    log_event(
        "project-submitted", project_id=project.id, department=department,
        actor=actor.user_id, details={"first_job": first_job},
    )
    _notify_after_commit(
        project, actor, type="project_submitted",
        admin=("new project submitted",
               f'{project.company_name} submitted "{project.project_name}" ({department}).'),
    )
    return project


# ═════════════════════════════════════════════════════════════════════════════
# Review decisions
# ═════════════════════════════════════════════════════════════════════════════

def submit_decision(
    artifact_kind: str,
    artifact_id: int,
    action: str,
    actor: Actor,
    notes: str | None = None,
) -> dict:
    """
    Apply an owner's review decision to a narrative or research version.

    Exactly one of two concurrent decisions on the same version succeeds;
    the other raises AlreadyReviewedError and changes nothing.

    Returns:
        {"artifact": <model>, "project": <Project>, "job": <PipelineJob|None>}
    """
    rules = _artifact_rules(artifact_kind)
    if action not in rules["actions"]:
        raise ValidationError(
            f"Invalid action '{action}' for {artifact_kind}. Must be one of: "
            f"{', '.join(rules['actions'])}",
            details={"action": list(rules["actions"])},
        )
    notes = _clean_notes(notes)
    if action == "reject" and not notes:
        raise ValidationError(f"notes are required when rejecting a {artifact_kind}",
                              details={"notes": "required"})

    model = rules["model"]
    artifact = db.session.get(model, artifact_id)
    if artifact is None:
        raise NotFoundError(resource=artifact_kind.capitalize(), resource_id=artifact_id)
    project = get_project(artifact.project_id)
    require_project_role(project, actor, {"owner"})

    if artifact.status != rules["pending"]:
        raise AlreadyReviewedError(resource=artifact_kind.capitalize(), resource_id=artifact_id)
    if project.status != rules["review_status"]:
        raise InvalidStateError(
            f"{artifact_kind} review actions are only available in {rules['review_status']}",
            current=project.status,
            allowed={rules["review_status"]},
        )

    if action == "escalate":
        return _escalate_review(artifact_kind, artifact, project, actor, notes)

    version = artifact.version
    job = None
    if action == "approve":
        artifact_values = {"status": "approved"}
        new_project_status = rules["approved_project_status"]
    else:
        artifact_values = {"status": rules["rejected_artifact_status"], "revision_notes": notes}
        new_project_status = rules["rejected_project_status"]

    # Fail fast on table violations before touching the artifact
    if new_project_status:
        validate_transition(project.department, project.status, new_project_status)

    result = db.session.execute(
        update(model)
        .where(model.id == artifact_id, model.status == rules["pending"])
        .values(reviewed_by=actor.user_id, reviewed_at=_now(), updated_at=_now(), **artifact_values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        logger.info(
            "Lost review race on %s %s", artifact_kind, artifact_id,
            extra={"project_id": project.id},
        )
        raise AlreadyReviewedError(resource=artifact_kind.capitalize(), resource_id=artifact_id)

    try:
        if new_project_status:
            _cas_project_status(project, rules["review_status"], new_project_status)
        if action == "reject":
            job = job_store.enqueue(
                rules["regenerate_job"],
                project.id,
                {
                    "revision_notes": notes,
                    rules["previous_key"]: artifact_id,
                    "previous_version": version,
                },
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.refresh(artifact)
    db.session.refresh(project)

    event = f"{artifact_kind}-{'approved' if action == 'approve' else 'rejected'}"
    details = {f"{artifact_kind}_id": artifact_id, "version": version}
    if action == "approve":
        details["approved_by"] = actor.user_id
    else:
        details.update({"rejected_by": actor.user_id, "revision_notes": notes, "job_id": job.id})

    logger.info(
        "%s %s v%s by %s", event, artifact_id, version, actor.user_id,
        extra={"project_id": project.id, "department": project.department, "event_type": event},
    )
    log_event(event, project_id=project.id, department=project.department,
              actor=actor.user_id, details=details)
    _notify_decision(artifact_kind, action, project, actor, notes)

    return {"artifact": artifact, "project": project, "job": job}


def _escalate_review(kind: str, artifact, project: Project, actor: Actor, notes) -> dict:
    body = (
        f'{project.company_name} escalated {kind} review for "{project.project_name}": {notes}'
        if notes else
        f'{project.company_name} escalated {kind} review for "{project.project_name}" '
        f"— needs human review."
    )
    _notify_after_commit(
        project, actor, type="escalation",
        admin=(f"{kind} review — needs human attention", body),
        ack=("we're on it", "your concern has been flagged — a team member will follow up directly."),
    )
    log_event(f"{kind}-escalated", project_id=project.id, department=project.department,
              actor=actor.user_id, details={f"{kind}_id": artifact.id, "notes": notes})
    return {"artifact": artifact, "project": project, "job": None}


def _notify_decision(kind: str, action: str, project: Project, actor: Actor, notes) -> None:
    name, company = project.project_name, project.company_name
    if kind == "narrative" and action == "approve":
        _notify_after_commit(
            project, actor, type="narrative_approved",
            member=("narrative approved",
                    f"{name} — the narrative has been approved. brand assets are being collected."),
            admin=("narrative approved — collecting brand assets",
                   f'{company} approved the narrative for "{name}".'),
            ack=("narrative approved",
                 "your story arc has been approved — add your brand assets to shape the build."),
        )
    elif kind == "narrative":
        _notify_after_commit(
            project, actor, type="narrative_rejected",
            member=("narrative revision requested",
                    f"{name} — the narrative is being reworked based on feedback."),
            admin=("narrative rejected — reworking",
                   f'{company} requested narrative changes on "{name}": {notes}'),
            ack=("feedback received", "noted — the team will rework the narrative."),
        )
    elif action == "approve":
        _notify_after_commit(
            project, actor, type="research_approved",
            member=("research approved", f"{name} — the research has been approved."),
            admin=("research approved", f'{company} approved the research for "{name}".'),
        )
    else:
        _notify_after_commit(
            project, actor, type="research_rejected",
            member=("research revision requested",
                    f"{name} — the research is being reworked based on feedback."),
            admin=("research rejected — reworking",
                   f'{company} requested research changes on "{name}": {notes}'),
            ack=("feedback received", "noted — the team will rework the research."),
        )


# ═════════════════════════════════════════════════════════════════════════════
# Build & client approval
# ═════════════════════════════════════════════════════════════════════════════

def start_build(project_id: int, actor: Actor, skip_assets: bool = False) -> dict:
    """
    brand_collection → in_progress, enqueueing the build and its parallel
    deliverables. Jobs are held as ``pending`` for supervised projects.

    Returns:
        {"project": <Project>, "jobs": [<PipelineJob>, ...]}
    """
    project = get_project(project_id)
    require_project_role(project, actor, {"owner"})
    if project.status != "brand_collection":
        raise InvalidStateError(
            "Build can only be started from brand_collection",
            current=project.status,
            allowed={"brand_collection"},
        )

    narrative_id = latest_approved_narrative_id(project.id)
    job_status = "pending" if project.autonomy_level == "supervised" else "queued"

    try:
        _cas_project_status(project, "brand_collection", "in_progress")
        jobs = [
            job_store.enqueue("auto-build", project.id,
                              {"narrative_id": narrative_id, "skip_assets": bool(skip_assets)},
                              status=job_status),
        ]
        for job_type in BUILD_JOBS[1:]:
            jobs.append(job_store.enqueue(job_type, project.id, {"narrative_id": narrative_id},
                                          status=job_status))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.refresh(project)

    logger.info(
        "Build started for project %s (%d jobs, %s)", project.id, len(jobs), job_status,
        extra={"project_id": project.id, "department": project.department,
               "event_type": "build-started"},
    )
    log_event(
        "build-started", project_id=project.id, department=project.department,
        actor=actor.user_id,
        details={
            "job_ids": [j.id for j in jobs],
            "narrative_id": narrative_id,
            "skip_assets": bool(skip_assets),
            "job_status": job_status,
        },
    )
    _notify_after_commit(
        project, actor, type="build_started",
        admin=("build started",
               f'"{project.project_name}" entered the build'
               + (" — jobs await release." if job_status == "pending" else ".")),
    )
    return {"project": project, "jobs": jobs}


def apply_approval(project_id: int, actor: Actor, action: str, message: str | None = None) -> Project:
    """Client decision on a finished build: approve → live,
    request_changes → revision, escalate → admins notified only."""
    if action not in APPROVAL_ACTIONS:
        raise ValidationError(
            f"Invalid action. Must be one of: {', '.join(APPROVAL_ACTIONS)}",
            details={"action": list(APPROVAL_ACTIONS)},
        )
    message = _clean_notes(message)

    project = get_project(project_id)
    require_project_role(project, actor, {"owner"})
    if project.status != "review":
        raise InvalidStateError(
            "Approval actions are only available when the project is in review",
            current=project.status,
            allowed={"review"},
        )

    name, company = project.project_name, project.company_name
    if action == "escalate":
        _notify_after_commit(
            project, actor, type="escalation",
            admin=("needs human attention",
                   f'{company} escalated "{name}": {message}' if message
                   else f'{company} escalated "{name}" — needs human review.'),
            ack=("we're on it", "your concern has been flagged — a team member will follow up directly."),
        )
        log_event("client-approval", project_id=project.id, department=project.department,
                  actor=actor.user_id, details={"action": action, "message": message})
        return project

    _cas_project_status(project, "review", APPROVAL_TARGET[action])
    db.session.commit()
    db.session.refresh(project)

    log_event("client-approval", project_id=project.id, department=project.department,
              actor=actor.user_id,
              details={"action": action, "message": message, "status": project.status})
    if action == "approve":
        _notify_after_commit(
            project, actor, type="project_approved",
            member=("your project is live", f"{name} has been approved and is now live."),
            admin=("client approved — now live", f'{company} approved "{name}".'),
            ack=("your project is live", f"{name} has been approved and is now live."),
        )
    else:
        _notify_after_commit(
            project, actor, type="changes_requested",
            member=("changes requested", f"{name} has been sent back for revisions."),
            admin=("client requested changes",
                   f'{company} requested changes on "{name}": {message}' if message
                   else f'{company} requested changes on "{name}".'),
            ack=("change request received", "we got your feedback — the build team will start revisions."),
        )
    return project


# ═════════════════════════════════════════════════════════════════════════════
# Admin operations
# ═════════════════════════════════════════════════════════════════════════════

def set_status(project_id: int, actor: Actor, new_status: str, pitchapp_url: str | None = None) -> Project:
    """Admin override, still constrained by the department transition table."""
    require_admin(actor)
    project = get_project(project_id)
    old_status = project.status

    extra = {"pitchapp_url": pitchapp_url} if pitchapp_url else {}
    _cas_project_status(project, old_status, new_status, **extra)
    db.session.commit()
    db.session.refresh(project)

    log_event("status-changed", project_id=project.id, department=project.department,
              actor=actor.user_id, details={"from": old_status, "to": new_status})
    _notify_after_commit(
        project, actor, type="status_changed",
        member=("status updated", f"{project.project_name} moved to {new_status.replace('_', ' ')}."),
    )
    return project


def delete_project(project_id: int, actor: Actor) -> dict:
    """Admin hard delete. Children are removed explicitly, artifacts before
    the jobs they reference."""
    require_admin(actor)
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError(resource="Project", resource_id=project_id)
    department = project.department

    counts = {}
    for label, model in (
        ("narratives", Narrative),
        ("research", Research),
        ("jobs", PipelineJob),
        ("members", ProjectMember),
        ("trend_links", ProjectTrendLink),
    ):
        result = db.session.execute(
            delete(model).where(model.project_id == project_id)
            .execution_options(synchronize_session=False)
        )
        counts[label] = result.rowcount
    db.session.delete(project)
    db.session.commit()

    logger.info("Project %s deleted by %s", project_id, actor.user_id,
                extra={"project_id": project_id, "event_type": "project-deleted"})
    log_event("project-deleted", project_id=project_id, department=department,
              actor=actor.user_id, details=counts)
    return counts


# ═════════════════════════════════════════════════════════════════════════════
# Worker-side artifact registration
# ═════════════════════════════════════════════════════════════════════════════

def record_artifact(
    project_id: int,
    kind: str,
    content: str,
    *,
    sections=None,
    research_type: str | None = None,
    quality_scores: dict | None = None,
    source_job_id: int | None = None,
):
    """
    Store a newly generated narrative / research version.

    Allocates the next version number, supersedes any sibling still awaiting
    review and moves the project into its review status.
    """
    rules = _artifact_rules(kind)
    model = rules["model"]
    project = get_project(project_id)
    if project.department != rules["department"]:
        raise ValidationError(
            f"{kind} artifacts belong to {rules['department']} projects, not {project.department}"
        )
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("content is required", details={"content": "required"})

    fields = {}
    if kind == "narrative":
        fields["sections"] = sections
    else:
        research_type = research_type or "market"
        if research_type not in RESEARCH_TYPES:
            raise ValidationError(f"Invalid research_type: {research_type}",
                                  details={"research_type": sorted(RESEARCH_TYPES)})
        fields["research_type"] = research_type
        fields["quality_scores"] = quality_scores

    review_status = rules["review_status"]
    if project.status != review_status:
        path = _path_to_review(project)
        current = project.status
        for step in path:
            _cas_project_status(project, current, step)
            current = step

    next_version = (db.session.execute(
        select(func.max(model.version)).where(model.project_id == project_id)
    ).scalar_one_or_none() or 0) + 1

    superseded = db.session.execute(
        update(model)
        .where(model.project_id == project_id, model.status == rules["pending"])
        .values(status="superseded", updated_at=_now())
        .execution_options(synchronize_session=False)
    ).rowcount

    artifact = model(
        project_id=project_id,
        version=next_version,
        content=content,
        status=rules["pending"],
        source_job_id=source_job_id,
        **fields,
    )
    db.session.add(artifact)
    db.session.commit()
    db.session.refresh(project)

    log_event("artifact-recorded", project_id=project_id, department=project.department,
              details={"kind": kind, f"{kind}_id": artifact.id, "version": next_version,
                       "superseded": superseded, "source_job_id": source_job_id})
    _notify_after_commit(
        project, Actor.system(), type=f"{kind}_ready",
        member=(f"{kind} ready for review",
                f"{project.project_name} — version {next_version} is ready for your review."),
    )
    return artifact


def _path_to_review(project: Project) -> list[str]:
    """Statuses to walk through to reach the artifact review status."""
    if project.department == Department.CREATIVE.value:
        return ["narrative_review"]
    if project.status == "research_queued":
        return ["researching", "research_review"]
    return ["research_review"]
