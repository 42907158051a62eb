#!/usr/bin/env python3
"""
Mission Control Reconciliation

Multi-document operations commit each write on its own, so a failure part
way through can leave an agent and its task disagreeing (e.g. an assigned
task whose agent is still idle). sync_task_assignments() repairs that drift:

- an idle agent listed on an assigned/in_progress task becomes active on it
  (the oldest such task wins)
- an active agent whose current task is missing, no longer assigned or
  in_progress, or does not list the agent is set idle with its slot cleared

Each repair is logged as agent_status_changed.
"""

import logging
from typing import Any

from . import activity
from .models import ActivityType, Agent, AgentStatus, Task, TaskStatus
from .store import Store

logger = logging.getLogger(__name__)


def _log_repair(store: Store, agent: Agent, new_status: str, task_id: str | None, why: str) -> None:
    activity.log(
        store,
        ActivityType.AGENT_STATUS_CHANGED,
        f"Reconciled {agent.name}: {agent.status} -> {new_status} ({why})",
        agent_id=agent.id,
        task_id=task_id,
        metadata={"old_status": agent.status, "new_status": new_status},
    )


def sync_task_assignments(store: Store) -> list[dict[str, Any]]:
    """
    Repair agent/task drift.

    Returns:
        One {"agent", "status", "task_id", "reason"} entry per repair.
    """
    working = [
        Task.from_row(r)
        for r in store.query("tasks")
        if r["status"] in TaskStatus.WORKING
    ]
    repairs: list[dict[str, Any]] = []

    for row in store.query("agents"):
        agent = Agent.from_row(row)

        if agent.status == AgentStatus.IDLE:
            held = [t for t in working if agent.id in t.assignee_ids]
            if not held:
                continue
            task = held[0]
            store.patch(
                "agents", agent.id,
                {"status": AgentStatus.ACTIVE, "current_task_id": task.id},
            )
            _log_repair(store, agent, AgentStatus.ACTIVE, task.id, "holds a working task")
            repairs.append({
                "agent": agent.name,
                "status": AgentStatus.ACTIVE,
                "task_id": task.id,
                "reason": "holds a working task",
            })

        elif agent.status == AgentStatus.ACTIVE:
            reason = None
            if not agent.current_task_id:
                reason = "no current task"
            else:
                row = store.get("tasks", agent.current_task_id)
                if row is None:
                    reason = "current task missing"
                else:
                    task = Task.from_row(row)
                    if task.status not in TaskStatus.WORKING:
                        reason = f"current task is {task.status}"
                    elif agent.id not in task.assignee_ids:
                        reason = "not an assignee of current task"
            if reason is None:
                continue
            store.patch(
                "agents", agent.id,
                {"status": AgentStatus.IDLE, "current_task_id": None},
            )
            _log_repair(store, agent, AgentStatus.IDLE, agent.current_task_id, reason)
            repairs.append({
                "agent": agent.name,
                "status": AgentStatus.IDLE,
                "task_id": agent.current_task_id,
                "reason": reason,
            })

    if repairs:
        logger.info("Reconciliation repaired %d agent(s)", len(repairs))
    return repairs
