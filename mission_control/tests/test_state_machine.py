"""
Tests for engine/state_machine.py

Validates:
- Every documented lifecycle edge is accepted
- done is terminal
- Unknown statuses raise UnknownStatusError
- unblock_target policy (requested > previous status > assignee presence)
- check_assignment enforces inbox <=> no assignees
"""

import pytest

from mission_control.engine.errors import InvalidStateError
from mission_control.engine.models import TaskStatus
from mission_control.engine.state_machine import (
    VALID_TRANSITIONS,
    InvalidTransitionError,
    UnknownStatusError,
    available_transitions,
    can_transition,
    check_assignment,
    is_claimable,
    is_terminal,
    unblock_target,
    validate_transition,
)


@pytest.mark.parametrize(
    "from_status,to_status",
    [
        ("inbox", "assigned"),
        ("assigned", "in_progress"),
        ("in_progress", "review"),
        ("assigned", "review"),
        ("review", "done"),
        ("review", "in_progress"),
        ("assigned", "inbox"),
        ("in_progress", "blocked"),
        ("blocked", "in_progress"),
        ("waiting", "assigned"),
    ],
)
def test_valid_transitions(from_status, to_status):
    validate_transition(from_status, to_status)
    assert can_transition(from_status, to_status)


@pytest.mark.parametrize(
    "from_status,to_status",
    [
        ("inbox", "done"),
        ("inbox", "in_progress"),
        ("done", "inbox"),
        ("review", "inbox"),
    ],
)
def test_invalid_transitions(from_status, to_status):
    with pytest.raises(InvalidTransitionError) as exc_info:
        validate_transition(from_status, to_status, task_id="task-1")
    assert exc_info.value.from_status == from_status
    assert "task-1" in str(exc_info.value)
    assert not can_transition(from_status, to_status)


def test_invalid_transition_is_invalid_state():
    assert issubclass(InvalidTransitionError, InvalidStateError)


def test_done_is_terminal():
    assert is_terminal(TaskStatus.DONE)
    assert available_transitions(TaskStatus.DONE) == frozenset()


def test_every_status_has_an_entry():
    assert set(VALID_TRANSITIONS) == set(TaskStatus.ALL)


def test_unknown_status():
    with pytest.raises(UnknownStatusError):
        validate_transition("inbox", "archived")
    with pytest.raises(UnknownStatusError):
        validate_transition("archived", "inbox")


def test_only_inbox_is_claimable():
    assert is_claimable("inbox")
    assert not is_claimable("assigned")


def test_unblock_target_prefers_request():
    assert unblock_target("in_progress", True, requested="review") == "review"


def test_unblock_target_returns_previous_status():
    assert unblock_target("in_progress", True) == "in_progress"


def test_unblock_target_falls_back_on_assignees():
    assert unblock_target(None, True) == "assigned"
    assert unblock_target(None, False) == "inbox"


def test_check_assignment_inbox_with_assignees():
    with pytest.raises(InvalidStateError):
        check_assignment("inbox", ["agent-1"])


def test_check_assignment_assigned_without_assignees():
    with pytest.raises(InvalidStateError):
        check_assignment("assigned", [])


def test_check_assignment_skips_holding_states():
    check_assignment("blocked", [])
    check_assignment("waiting", ["agent-1"])
    check_assignment("done", [])
