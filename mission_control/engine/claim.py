#!/usr/bin/env python3
"""
Mission Control Claiming Logic

An agent takes an inbox task with a compare-and-set patch on the task row:
  UPDATE tasks SET status='assigned', ... WHERE id = ? AND status = 'inbox'

Exactly one of two racing claimers sees rowcount == 1; the loser gets
InvalidStateError and never touches its own agent document. The agent patch
and the task_claimed activity follow as separate commits, so a crash between
them leaves an assigned task with an idle agent, which reconciliation repairs.

Eligibility for automatic claiming (claim_next):
1. status is inbox and the task has no assignees
2. required skills are a subset of the agent's skills (no requirement = eligible)

Candidates are scanned in the configured inbox order, oldest or newest first,
and at most one task is claimed per call.
"""

import logging
from datetime import datetime

from . import activity
from .errors import InvalidStateError, NotFoundError, SkillMismatchError
from .models import ActivityType, Agent, AgentStatus, Task, TaskStatus, to_iso, utc_now
from .roster import require_agent
from .store import Store

logger = logging.getLogger(__name__)

_SCAN_ORDER = {"oldest_first": "asc", "newest_first": "desc"}


# ---------------------------------------------------------------------------
# Claim result types
# ---------------------------------------------------------------------------


class ClaimSuccess:
    """Agent successfully claimed a task."""

    def __init__(self, task: Task, agent_id: str):
        self.task = task
        self.agent_id = agent_id
        self.success = True


class ClaimEmpty:
    """No eligible inbox task for the agent."""

    def __init__(self, agent_name: str):
        self.agent_name = agent_name
        self.success = False

    def __str__(self) -> str:
        return f"No eligible inbox tasks for agent '{self.agent_name}'"


# ---------------------------------------------------------------------------
# Claim
# ---------------------------------------------------------------------------


def claim(
    store: Store,
    task_id: str,
    agent_id: str,
    now: datetime | None = None,
) -> ClaimSuccess:
    """
    Claim one inbox task for an agent.

    Args:
        store: Open store
        task_id: Task to claim
        agent_id: Claiming agent
        now: Clock override for claimed_at

    Returns:
        ClaimSuccess with the updated Task.

    Raises:
        NotFoundError: task or agent missing
        InvalidStateError: task not in inbox, or lost the race to another claimer
        SkillMismatchError: agent lacks one of the task's required skills
    """
    row = store.get("tasks", task_id)
    if row is None:
        raise NotFoundError("task", task_id)
    task = Task.from_row(row)
    agent = require_agent(store, agent_id)

    if task.status != TaskStatus.INBOX:
        raise InvalidStateError(f"Task {task_id} is not in inbox (status '{task.status}')")
    missing = task.missing_skills(agent.skills)
    if missing:
        raise SkillMismatchError(task_id, agent.name, missing)

    stamp = to_iso(now or utc_now())
    won = store.patch_if(
        "tasks",
        task_id,
        {"status": TaskStatus.INBOX},
        {
            "status": TaskStatus.ASSIGNED,
            "assignee_ids": [agent.id],
            "claimed_at": stamp,
            "updated_at": stamp,
        },
    )
    if not won:
        raise InvalidStateError(f"Task {task_id} was claimed by another agent")

    store.patch("agents", agent.id, {"status": AgentStatus.ACTIVE, "current_task_id": task_id})
    activity.log(
        store,
        ActivityType.TASK_CLAIMED,
        f"{agent.name} claimed task: {task.title}",
        agent_id=agent.id,
        task_id=task_id,
        metadata={"old_status": TaskStatus.INBOX, "new_status": TaskStatus.ASSIGNED},
        created_at=stamp,
    )
    logger.info("Agent %s claimed task %s (%s)", agent.name, task_id, task.title)
    return ClaimSuccess(Task.from_row(store.get("tasks", task_id)), agent.id)


def list_available(
    store: Store,
    agent: Agent,
    limit: int = 10,
    order: str = "oldest_first",
) -> list[Task]:
    """
    Inbox tasks the agent could claim, from the first `limit` inbox rows.

    Args:
        order: "oldest_first" or "newest_first"
    """
    try:
        direction = _SCAN_ORDER[order]
    except KeyError:
        raise ValueError(f"Unknown inbox scan order: '{order}'") from None
    rows = store.query("tasks", {"status": TaskStatus.INBOX}, order=direction, limit=limit)
    candidates = [Task.from_row(r) for r in rows]
    return [
        t for t in candidates
        if not t.assignee_ids and agent.has_skills(t.required_skills)
    ]


def claim_next(
    store: Store,
    agent: Agent,
    limit: int = 10,
    order: str = "oldest_first",
    now: datetime | None = None,
) -> ClaimSuccess | ClaimEmpty:
    """
    Claim the first eligible inbox task.

    A candidate lost to a concurrent claimer (InvalidStateError) is skipped
    and the next one tried.
    """
    for task in list_available(store, agent, limit=limit, order=order):
        try:
            return claim(store, task.id, agent.id, now=now)
        except InvalidStateError:
            logger.debug("Agent %s lost claim race on %s", agent.name, task.id)
            continue
    return ClaimEmpty(agent.name)
