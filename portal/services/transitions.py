"""
Content Portal
Department lifecycle transition tables.

Each department has its own enumerated status set and a table mapping a
status to the statuses it may move to. Every status write in the services
goes through ``validate_transition``; nothing else decides legality.

creative:
    requested        → narrative_review | on_hold
    narrative_review → brand_collection | in_progress | requested | on_hold
    brand_collection → in_progress | on_hold
    in_progress      → review | on_hold
    review           → live | revision | on_hold
    revision         → in_progress | on_hold
    live             → revision | on_hold
    on_hold          → requested | narrative_review | brand_collection | in_progress | review

strategy:
    research_queued   → researching | on_hold
    researching       → research_review | on_hold
    research_review   → research_complete | researching | on_hold
    research_complete → on_hold
    on_hold           → research_queued | researching | research_review

intelligence:
    monitoring → analyzing | paused
    analyzing  → monitoring | paused
    paused     → monitoring | analyzing
"""

from __future__ import annotations

from enum import Enum

from portal.core.exceptions import InvalidStateError, ValidationError


class Department(str, Enum):
    INTELLIGENCE = "intelligence"
    STRATEGY = "strategy"
    CREATIVE = "creative"


class CreativeStatus(str, Enum):
    REQUESTED = "requested"
    NARRATIVE_REVIEW = "narrative_review"
    BRAND_COLLECTION = "brand_collection"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    REVISION = "revision"
    LIVE = "live"
    ON_HOLD = "on_hold"


class StrategyStatus(str, Enum):
    RESEARCH_QUEUED = "research_queued"
    RESEARCHING = "researching"
    RESEARCH_REVIEW = "research_review"
    RESEARCH_COMPLETE = "research_complete"
    ON_HOLD = "on_hold"


class IntelligenceStatus(str, Enum):
    MONITORING = "monitoring"
    ANALYZING = "analyzing"
    PAUSED = "paused"


_C = CreativeStatus
_S = StrategyStatus
_I = IntelligenceStatus

TRANSITIONS: dict[Department, dict[str, frozenset[str]]] = {
    Department.CREATIVE: {
        _C.REQUESTED: frozenset({_C.NARRATIVE_REVIEW, _C.ON_HOLD}),
        _C.NARRATIVE_REVIEW: frozenset(
            {_C.BRAND_COLLECTION, _C.IN_PROGRESS, _C.REQUESTED, _C.ON_HOLD}
        ),
        _C.BRAND_COLLECTION: frozenset({_C.IN_PROGRESS, _C.ON_HOLD}),
        _C.IN_PROGRESS: frozenset({_C.REVIEW, _C.ON_HOLD}),
        _C.REVIEW: frozenset({_C.LIVE, _C.REVISION, _C.ON_HOLD}),
        _C.REVISION: frozenset({_C.IN_PROGRESS, _C.ON_HOLD}),
        _C.LIVE: frozenset({_C.REVISION, _C.ON_HOLD}),
        _C.ON_HOLD: frozenset(
            {_C.REQUESTED, _C.NARRATIVE_REVIEW, _C.BRAND_COLLECTION, _C.IN_PROGRESS, _C.REVIEW}
        ),
    },
    Department.STRATEGY: {
        _S.RESEARCH_QUEUED: frozenset({_S.RESEARCHING, _S.ON_HOLD}),
        _S.RESEARCHING: frozenset({_S.RESEARCH_REVIEW, _S.ON_HOLD}),
        _S.RESEARCH_REVIEW: frozenset({_S.RESEARCH_COMPLETE, _S.RESEARCHING, _S.ON_HOLD}),
        _S.RESEARCH_COMPLETE: frozenset({_S.ON_HOLD}),
        _S.ON_HOLD: frozenset({_S.RESEARCH_QUEUED, _S.RESEARCHING, _S.RESEARCH_REVIEW}),
    },
    Department.INTELLIGENCE: {
        _I.MONITORING: frozenset({_I.ANALYZING, _I.PAUSED}),
        _I.ANALYZING: frozenset({_I.MONITORING, _I.PAUSED}),
        _I.PAUSED: frozenset({_I.MONITORING, _I.ANALYZING}),
    },
}

# Same table keyed by plain status strings, as stored in the status column
_TABLE: dict[Department, dict[str, frozenset[str]]] = {
    dept: {src.value: frozenset(dst.value for dst in dsts) for src, dsts in table.items()}
    for dept, table in TRANSITIONS.items()
}

INITIAL_STATUS: dict[Department, str] = {
    Department.CREATIVE: _C.REQUESTED.value,
    Department.STRATEGY: _S.RESEARCH_QUEUED.value,
    Department.INTELLIGENCE: _I.MONITORING.value,
}

STATUS_ENUMS = {
    Department.CREATIVE: CreativeStatus,
    Department.STRATEGY: StrategyStatus,
    Department.INTELLIGENCE: IntelligenceStatus,
}


def parse_department(department: str) -> Department:
    try:
        return Department(department)
    except ValueError:
        raise ValidationError(
            f"Unknown department: {department!r}",
            details={"department": sorted(d.value for d in Department)},
        ) from None


def department_statuses(department: str) -> set[str]:
    return {s.value for s in STATUS_ENUMS[parse_department(department)]}


def valid_next_statuses(department: str, current: str) -> set[str]:
    """Statuses reachable from *current* in one step (empty for unknown)."""
    table = _TABLE[parse_department(department)]
    return set(table.get(current, frozenset()))


def is_valid_transition(department: str, current: str, new: str) -> bool:
    return new in valid_next_statuses(department, current)


def validate_transition(department: str, current: str, new: str) -> None:
    """Raise InvalidStateError unless *current* → *new* is in the table."""
    allowed = valid_next_statuses(department, current)
    if new not in allowed:
        raise InvalidStateError(
            f"Invalid {department} transition: {current} → {new}",
            current=current,
            allowed=allowed,
        )


def initial_status(department: str) -> str:
    return INITIAL_STATUS[parse_department(department)]
