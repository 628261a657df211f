"""
Shared pytest fixtures for the Content Portal test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - owner / editor / viewer / admin / outsider / worker: Actor fixtures
    - ORM helper factories (make_project, make_narrative, make_research, make_job)
"""

from datetime import datetime, timedelta, timezone

import pytest

from portal import create_app
from portal.models import db as _db
from portal.models.pipeline import PipelineJob
from portal.models.project import Narrative, Project, ProjectMember, Research
from portal.models.user import PortalUser
from portal.services.permission import Actor, get_admin_directory

ADMIN_EMAIL = "admin@portal.test"
WORKER_TOKEN = "test-worker-token"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        # Admin ids are cached across requests; tables are recreated per test
        get_admin_directory().invalidate()
        _db.session.add(PortalUser(id="admin-1", email=ADMIN_EMAIL))
        _db.session.commit()
        yield
        get_admin_directory().invalidate()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Actors ───────────────────────────────────────────────────────────────


@pytest.fixture()
def owner():
    return Actor(user_id="owner-1", email="owner@client.test")


@pytest.fixture()
def editor():
    return Actor(user_id="editor-1", email="editor@client.test")


@pytest.fixture()
def viewer():
    return Actor(user_id="viewer-1", email="viewer@client.test")


@pytest.fixture()
def outsider():
    return Actor(user_id="stranger-1", email="stranger@elsewhere.test")


@pytest.fixture()
def admin():
    return Actor(user_id="admin-1", email=ADMIN_EMAIL, is_admin=True)


@pytest.fixture()
def worker():
    return Actor(user_id="worker-1", is_worker=True)


def headers(actor: Actor) -> dict:
    """Forwarded identity headers for *actor*."""
    h = {"X-User-Id": actor.user_id}
    if actor.email:
        h["X-User-Email"] = actor.email
    if actor.is_worker:
        h["X-Worker-Token"] = WORKER_TOKEN
    return h


# ═════════════════════════════════════════════════════════════════════════════
# ORM Helper Factories (DB-level, bypass services to set arbitrary states)
# ═════════════════════════════════════════════════════════════════════════════


def make_project(
    *,
    department="creative",
    status=None,
    owner_id="owner-1",
    members=(("editor-1", "editor"), ("viewer-1", "viewer")),
    autonomy_level="full_auto",
    project_type=None,
    **fields,
) -> Project:
    """Create and commit a Project with its owner and extra memberships."""
    default_status = {"creative": "requested", "strategy": "research_queued",
                      "intelligence": "monitoring"}[department]
    default_type = {"creative": "investor_pitch", "strategy": "market_research",
                    "intelligence": "trend_watch"}[department]
    project = Project(
        user_id=owner_id,
        department=department,
        status=status or default_status,
        project_name=fields.pop("project_name", "Series A Deck"),
        company_name=fields.pop("company_name", "Acme Robotics"),
        type=project_type or default_type,
        autonomy_level=autonomy_level,
        **fields,
    )
    _db.session.add(project)
    _db.session.flush()
    _db.session.add(ProjectMember(project_id=project.id, user_id=owner_id, role="owner"))
    for user_id, role in members:
        _db.session.add(ProjectMember(project_id=project.id, user_id=user_id, role=role))
    _db.session.commit()
    return project


def make_narrative(project: Project, *, version=1, status="pending_review",
                   content="Once upon a market...") -> Narrative:
    narrative = Narrative(project_id=project.id, version=version, status=status,
                          content=content, sections=[{"title": "Hook", "body": content}])
    _db.session.add(narrative)
    _db.session.commit()
    return narrative


def make_research(project: Project, *, version=1, status="draft",
                  content="Market sizing and competitors.", quality_scores=None) -> Research:
    research = Research(project_id=project.id, version=version, status=status,
                        content=content, research_type="market",
                        quality_scores=quality_scores)
    _db.session.add(research)
    _db.session.commit()
    return research


def make_job(
    project: Project,
    *,
    job_type="auto-build",
    status="queued",
    created_at=None,
    started_at=None,
    completed_at=None,
    attempts=0,
    max_attempts=3,
    last_error=None,
    payload=None,
) -> PipelineJob:
    job = PipelineJob(
        project_id=project.id,
        job_type=job_type,
        status=status,
        payload=payload or {},
        attempts=attempts,
        max_attempts=max_attempts,
        last_error=last_error,
        created_at=created_at or datetime.now(timezone.utc),
        started_at=started_at,
        completed_at=completed_at,
    )
    _db.session.add(job)
    _db.session.commit()
    return job


def minutes_ago(minutes: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(minutes=minutes)
