#!/usr/bin/env python3
"""
Mission Control Run Ingestion

Turns lifecycle events from an external agent runtime into board tasks. One
run (identified by run_id) maps to one task:

- start     creates an in_progress task assigned to the resolved agent
- progress  appends a thread message (tools used plus partial response)
- end       moves the task to review, records the output and notifies the operator
- error     blocks the task and appends the error

Events other than start for an unknown run are ignored (task_id None).

Session resolution: a persisted session_mappings row wins; otherwise the
first roster agent whose lowercase name appears in the session key;
otherwise the configured orchestrator. A resolved agent is written back to
session_mappings so later events skip the name match.
"""

import logging
import sqlite3
from typing import Any

from . import activity, documents, messaging, notifications, tasks
from .models import (
    ActivityType,
    Agent,
    AgentStatus,
    Creator,
    DocumentType,
    MissionConfig,
    Task,
    TaskStatus,
)
from .roster import get_agent, get_agent_by_name, list_agents
from .state_machine import can_transition
from .store import Store

logger = logging.getLogger(__name__)

RUN_ACTIONS = ("start", "progress", "end", "error")


# ---------------------------------------------------------------------------
# Session resolution
# ---------------------------------------------------------------------------


def resolve_session_agent(
    store: Store,
    session_key: str,
    config: MissionConfig | None = None,
) -> Agent | None:
    config = config or MissionConfig()
    mapping = store.first("session_mappings", {"session_key": session_key})
    if mapping:
        agent = get_agent(store, mapping["agent_id"])
        if agent is not None:
            return agent

    lowered = session_key.lower()
    agent = next(
        (a for a in list_agents(store) if a.name.lower() in lowered),
        None,
    ) or get_agent_by_name(store, config.orchestrator_name)
    if agent is None:
        return None

    if mapping:
        store.patch("session_mappings", mapping["id"], {"agent_id": agent.id})
    else:
        try:
            store.insert("session_mappings", {"session_key": session_key, "agent_id": agent.id})
        except sqlite3.IntegrityError:
            logger.debug("Session mapping for %s written concurrently", session_key)
    return agent


def find_run_task(store: Store, run_id: str) -> Task | None:
    row = store.first("tasks", {"run_id": run_id})
    return Task.from_row(row) if row else None


def _format_duration(duration_ms: int | None) -> str:
    if not duration_ms:
        return ""
    minutes, remainder = divmod(int(duration_ms), 60_000)
    return f"{minutes}m {remainder // 1000}s"


def _run_title(run_id: str, prompt: str | None, source: str | None) -> str:
    if not prompt:
        return f"Run: {run_id[:8]}"
    prefix = f"[{source}] " if source else ""
    return f"{prefix}{prompt[:80]}{'...' if len(prompt) > 80 else ''}"


# ---------------------------------------------------------------------------
# Event handlers
# ---------------------------------------------------------------------------


def _on_start(
    store: Store,
    run_id: str,
    session_key: str,
    agent: Agent | None,
    prompt: str | None,
    source: str | None,
) -> str:
    existing = find_run_task(store, run_id)
    if existing is not None:
        return existing.id

    title = _run_title(run_id, prompt, source)
    status = TaskStatus.IN_PROGRESS if agent else TaskStatus.INBOX
    task_id = tasks.insert_task(
        store,
        title,
        status,
        description=prompt or "Automation run",
        assignee_ids=[agent.id] if agent else [],
        tags=["automation", (source or "cli").lower()],
        created_by=Creator.agent(agent.id) if agent else Creator.operator(),
        run_id=run_id,
        session_key=session_key,
        source=source,
    )
    if agent is not None and not agent.current_task_id:
        store.patch(
            "agents", agent.id, {"status": AgentStatus.ACTIVE, "current_task_id": task_id}
        )
    activity.log(
        store,
        ActivityType.TASK_CREATED,
        f"Run started: {title}",
        agent_id=agent.id if agent else None,
        task_id=task_id,
        metadata={"content": f"Source: {source or 'CLI'}"},
    )
    return task_id


def _on_end(
    store: Store,
    task: Task,
    author: Creator,
    response: str | None,
    duration_ms: int | None,
    config: MissionConfig,
) -> None:
    if task.assignee_ids and can_transition(task.status, TaskStatus.REVIEW):
        tasks.transition(store, task, TaskStatus.REVIEW)
        tasks.release_agents(store, task.id)
    else:
        logger.warning(
            "Run task %s left in '%s' on end event", task.id, task.status
        )

    duration = _format_duration(duration_ms)
    heading = f"**Complete ({duration})**" if duration else "**Complete**"
    messaging.insert_thread_message(store, task.id, f"{heading}\n\n{response or ''}", author)

    if response:
        documents.create_document(
            store,
            f"Output: {task.title}",
            response,
            DocumentType.DELIVERABLE,
            task_id=task.id,
            created_by=author,
            log_activity=False,
        )

    activity.log(
        store,
        ActivityType.TASK_COMPLETED,
        f"Run complete: {task.title}",
        agent_id=author.agent_id,
        task_id=task.id,
        metadata={"content": f"Duration: {duration_ms or 0}ms"},
    )

    operator = get_agent_by_name(store, config.operator_name)
    if operator is not None:
        notifications.create_notification(
            store,
            operator.id,
            f"Run complete: {task.title}",
            from_agent_id=author.agent_id,
            task_id=task.id,
        )


def _on_error(store: Store, task: Task, author: Creator, error: str | None) -> None:
    if can_transition(task.status, TaskStatus.BLOCKED):
        tasks.transition(store, task, TaskStatus.BLOCKED, {"blocked_from": task.status})
        for agent in tasks.holders(store, task.id):
            store.patch("agents", agent.id, {"status": AgentStatus.BLOCKED})

    messaging.insert_thread_message(
        store, task.id, f"**Error**\n\n```\n{error or 'Unknown error'}\n```", author
    )
    activity.log(
        store,
        ActivityType.TASK_UPDATED,
        f"Run error: {task.title}",
        agent_id=author.agent_id,
        task_id=task.id,
        metadata={
            "old_status": task.status,
            "new_status": TaskStatus.BLOCKED,
            "content": error or "Unknown",
        },
    )


def receive_event(
    store: Store,
    run_id: str,
    action: str,
    session_key: str,
    prompt: str | None = None,
    source: str | None = None,
    response: str | None = None,
    error: str | None = None,
    duration_ms: int | None = None,
    tools_used: list[str] | None = None,
    config: MissionConfig | None = None,
) -> dict[str, Any]:
    """
    Apply one run lifecycle event.

    Returns:
        {"task_id": str or None, "agent_name": str or None}
    """
    if action not in RUN_ACTIONS:
        raise ValueError(f"Unknown run action: '{action}'. Valid: {list(RUN_ACTIONS)}")
    config = config or MissionConfig()
    agent = resolve_session_agent(store, session_key, config)
    author = Creator.agent(agent.id) if agent else Creator.operator()
    agent_name = agent.name if agent else None

    if action == "start":
        task_id = _on_start(store, run_id, session_key, agent, prompt, source)
        return {"task_id": task_id, "agent_name": agent_name}

    task = find_run_task(store, run_id)
    if task is None:
        logger.debug("Ignoring %s event for unknown run %s", action, run_id)
        return {"task_id": None, "agent_name": agent_name}

    if action == "progress":
        if tools_used:
            content = f"**Tools:** {', '.join(tools_used)}\n\n{response or ''}"
        else:
            content = response or "Processing..."
        messaging.insert_thread_message(store, task.id, content, author)
    elif action == "end":
        _on_end(store, task, author, response, duration_ms, config)
    else:
        _on_error(store, task, author, error)

    return {"task_id": task.id, "agent_name": agent_name}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def list_run_tasks(store: Store, limit: int = 50) -> list[Task]:
    """Tasks created by run ingestion, newest first."""
    rows = [r for r in store.query("tasks", order="desc") if r.get("run_id")]
    return [Task.from_row(r) for r in rows[:limit]]


def run_stats(store: Store) -> dict[str, int]:
    run_tasks = [Task.from_row(r) for r in store.query("tasks") if r.get("run_id")]
    return {
        "total": len(run_tasks),
        "active": sum(1 for t in run_tasks if t.status == TaskStatus.IN_PROGRESS),
        "completed": sum(
            1 for t in run_tasks if t.status in (TaskStatus.REVIEW, TaskStatus.DONE)
        ),
        "errors": sum(1 for t in run_tasks if t.status == TaskStatus.BLOCKED),
    }
