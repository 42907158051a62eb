#!/usr/bin/env python3
"""
Mission Control Task State Machine

Defines valid task status transitions and validates them.

State diagram:
    inbox       → assigned     (agent claims, or operator assigns)
    assigned    → in_progress  (owning agent starts work)
    in_progress → review       (agent completes, or requests review)
    assigned    → review       (review requested before work started)
    review      → done         (operator approves)
    review      → in_progress  (changes requested)
    assigned    → inbox        (operator unassigns)
    in_progress → assigned     (operator pauses work without unassigning)
    any non-terminal → blocked (block with a reason)
    blocked     → previous active state (unblock; target chosen by policy)

`waiting` is a manual holding state: it can be entered from and left to any
non-terminal status, but only through an explicit operator update. No engine
operation moves a task into or out of `waiting` on its own.

`done` is terminal.
"""

from .errors import InvalidStateError
from .models import TaskStatus


# ---------------------------------------------------------------------------
# Valid transitions: {from_status: set(to_statuses)}
# ---------------------------------------------------------------------------

VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    TaskStatus.INBOX: frozenset([
        TaskStatus.ASSIGNED,
        TaskStatus.BLOCKED,
        TaskStatus.WAITING,
    ]),
    TaskStatus.ASSIGNED: frozenset([
        TaskStatus.IN_PROGRESS,
        TaskStatus.REVIEW,
        TaskStatus.INBOX,
        TaskStatus.BLOCKED,
        TaskStatus.WAITING,
    ]),
    TaskStatus.IN_PROGRESS: frozenset([
        TaskStatus.REVIEW,
        TaskStatus.ASSIGNED,
        TaskStatus.BLOCKED,
        TaskStatus.WAITING,
    ]),
    TaskStatus.REVIEW: frozenset([
        TaskStatus.DONE,
        TaskStatus.IN_PROGRESS,
        TaskStatus.BLOCKED,
        TaskStatus.WAITING,
    ]),
    TaskStatus.BLOCKED: frozenset([
        TaskStatus.INBOX,
        TaskStatus.ASSIGNED,
        TaskStatus.IN_PROGRESS,
        TaskStatus.REVIEW,
        TaskStatus.WAITING,
    ]),
    TaskStatus.WAITING: frozenset([
        TaskStatus.INBOX,
        TaskStatus.ASSIGNED,
        TaskStatus.IN_PROGRESS,
        TaskStatus.REVIEW,
        TaskStatus.BLOCKED,
    ]),
    # Terminal
    TaskStatus.DONE: frozenset(),
}


# ---------------------------------------------------------------------------
# Error types
# ---------------------------------------------------------------------------


class InvalidTransitionError(InvalidStateError):
    """Raised when a task status transition is not allowed by the state machine."""

    def __init__(self, from_status: str, to_status: str, task_id: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.task_id = task_id
        task_info = f" (task_id={task_id})" if task_id is not None else ""
        super().__init__(
            f"Invalid task transition{task_info}: "
            f"'{from_status}' → '{to_status}'. "
            f"Valid transitions from '{from_status}': "
            f"{sorted(VALID_TRANSITIONS.get(from_status, frozenset()))}"
        )


class UnknownStatusError(ValueError):
    """Raised when an unknown task status is encountered."""

    def __init__(self, status: str):
        self.status = status
        super().__init__(
            f"Unknown task status: '{status}'. "
            f"Valid statuses: {sorted(TaskStatus.ALL)}"
        )


# ---------------------------------------------------------------------------
# State machine functions
# ---------------------------------------------------------------------------


def validate_transition(
    from_status: str,
    to_status: str,
    task_id: str | None = None,
) -> None:
    """
    Validate that a task status transition is allowed.

    Raises:
        UnknownStatusError: if either status is not in TaskStatus.ALL
        InvalidTransitionError: if the transition is not in VALID_TRANSITIONS
    """
    if from_status not in TaskStatus.ALL:
        raise UnknownStatusError(from_status)
    if to_status not in TaskStatus.ALL:
        raise UnknownStatusError(to_status)

    if to_status not in VALID_TRANSITIONS[from_status]:
        raise InvalidTransitionError(from_status, to_status, task_id)


def can_transition(from_status: str, to_status: str) -> bool:
    """Return True if the transition from_status → to_status is valid."""
    return to_status in VALID_TRANSITIONS.get(from_status, frozenset())


def is_terminal(status: str) -> bool:
    return status in TaskStatus.TERMINAL


def is_claimable(status: str) -> bool:
    """Only inbox tasks can be claimed."""
    return status == TaskStatus.INBOX


def available_transitions(from_status: str) -> frozenset[str]:
    return VALID_TRANSITIONS.get(from_status, frozenset())


def unblock_target(
    blocked_from: str | None,
    has_assignees: bool,
    requested: str | None = None,
) -> str:
    """
    Choose the status a blocked task returns to.

    Policy: an explicitly requested status wins; otherwise the status the task
    held before it was blocked; otherwise assigned/inbox by assignee presence.
    """
    if requested is not None:
        return requested
    if blocked_from and blocked_from not in (TaskStatus.BLOCKED, TaskStatus.DONE):
        return blocked_from
    return TaskStatus.ASSIGNED if has_assignees else TaskStatus.INBOX


def check_assignment(status: str, assignee_ids: list[str], task_id: str | None = None) -> None:
    """
    Enforce inbox <=> no assignees for the statuses where it applies.

    Raises:
        InvalidStateError: inbox task with assignees, or an assigned/in_progress/
                           review task without any
    """
    if status not in TaskStatus.ASSIGNMENT_CHECKED:
        return
    task_info = f" {task_id}" if task_id else ""
    if status == TaskStatus.INBOX and assignee_ids:
        raise InvalidStateError(f"Inbox task{task_info} cannot have assignees")
    if status != TaskStatus.INBOX and not assignee_ids:
        raise InvalidStateError(f"Task{task_info} in status '{status}' requires an assignee")
