"""
Exhaustive transition-table tests for the department lifecycles.

For each department:
    - Every VALID edge passes ``validate_transition``.
    - Every other (from, to) pair over the department's statuses raises
      InvalidStateError carrying the current status and the allowed set.
    - Statuses never leak across departments.
"""

import itertools

import pytest

from portal.core.exceptions import InvalidStateError, ValidationError
from portal.services.transitions import (
    TRANSITIONS,
    Department,
    department_statuses,
    initial_status,
    is_valid_transition,
    parse_department,
    valid_next_statuses,
    validate_transition,
)

CREATIVE_EDGES = {
    ("requested", "narrative_review"), ("requested", "on_hold"),
    ("narrative_review", "brand_collection"), ("narrative_review", "in_progress"),
    ("narrative_review", "requested"), ("narrative_review", "on_hold"),
    ("brand_collection", "in_progress"), ("brand_collection", "on_hold"),
    ("in_progress", "review"), ("in_progress", "on_hold"),
    ("review", "live"), ("review", "revision"), ("review", "on_hold"),
    ("revision", "in_progress"), ("revision", "on_hold"),
    ("live", "revision"), ("live", "on_hold"),
    ("on_hold", "requested"), ("on_hold", "narrative_review"), ("on_hold", "brand_collection"),
    ("on_hold", "in_progress"), ("on_hold", "review"),
}

STRATEGY_EDGES = {
    ("research_queued", "researching"), ("research_queued", "on_hold"),
    ("researching", "research_review"), ("researching", "on_hold"),
    ("research_review", "research_complete"), ("research_review", "researching"),
    ("research_review", "on_hold"),
    ("research_complete", "on_hold"),
    ("on_hold", "research_queued"), ("on_hold", "researching"), ("on_hold", "research_review"),
}

INTELLIGENCE_EDGES = {
    ("monitoring", "analyzing"), ("monitoring", "paused"),
    ("analyzing", "monitoring"), ("analyzing", "paused"),
    ("paused", "monitoring"), ("paused", "analyzing"),
}

EDGES = {
    "creative": CREATIVE_EDGES,
    "strategy": STRATEGY_EDGES,
    "intelligence": INTELLIGENCE_EDGES,
}


def _all_pairs(department):
    statuses = sorted(department_statuses(department))
    return [(department, a, b) for a, b in itertools.product(statuses, statuses)]


ALL_PAIRS = [p for dept in EDGES for p in _all_pairs(dept)]
VALID = [p for p in ALL_PAIRS if (p[1], p[2]) in EDGES[p[0]]]
INVALID = [p for p in ALL_PAIRS if (p[1], p[2]) not in EDGES[p[0]]]


class TestTableShape:

    def test_edge_counts_match_table(self):
        for dept in Department:
            table_edges = {
                (src.value, dst.value) for src, dsts in TRANSITIONS[dept].items() for dst in dsts
            }
            assert table_edges == EDGES[dept.value]

    def test_every_status_has_a_row(self):
        for dept in Department:
            assert {s.value for s in TRANSITIONS[dept]} == department_statuses(dept.value)

    def test_no_self_loops(self):
        for dept, edges in EDGES.items():
            assert all(a != b for a, b in edges), dept

    @pytest.mark.parametrize("department,expected", [
        ("creative", "requested"),
        ("strategy", "research_queued"),
        ("intelligence", "monitoring"),
    ])
    def test_initial_status(self, department, expected):
        assert initial_status(department) == expected


class TestValidTransitions:

    @pytest.mark.parametrize("department,current,new", VALID)
    def test_valid_edge_passes(self, department, current, new):
        validate_transition(department, current, new)
        assert is_valid_transition(department, current, new)


class TestInvalidTransitions:

    @pytest.mark.parametrize("department,current,new", INVALID)
    def test_invalid_edge_raises(self, department, current, new):
        with pytest.raises(InvalidStateError) as exc_info:
            validate_transition(department, current, new)
        assert exc_info.value.current == current
        assert set(exc_info.value.allowed) == valid_next_statuses(department, current)

    def test_research_complete_is_nearly_terminal(self):
        assert valid_next_statuses("strategy", "research_complete") == {"on_hold"}

    def test_cross_department_status_rejected(self):
        with pytest.raises(InvalidStateError):
            validate_transition("strategy", "research_queued", "narrative_review")
        with pytest.raises(InvalidStateError):
            validate_transition("creative", "requested", "researching")

    def test_unknown_current_status_has_no_exits(self):
        assert valid_next_statuses("creative", "archived") == set()
        with pytest.raises(InvalidStateError):
            validate_transition("creative", "archived", "requested")


class TestDepartmentParsing:

    def test_parse_known(self):
        assert parse_department("strategy") is Department.STRATEGY

    def test_parse_unknown_raises_validation(self):
        with pytest.raises(ValidationError):
            parse_department("finance")
