#!/usr/bin/env python3
"""
Mission Control Read Views

Operator-facing projections over the store: the activity feed, the daily
standup, the system status summary, the task board and broadcast stats.
Only generate_standup() writes (a standup document and one activity).
"""

from datetime import datetime, timedelta
from typing import Any

from . import activity, documents, notifications, system
from .models import (
    Activity,
    ActivityType,
    Agent,
    AgentStatus,
    Creator,
    Document,
    DocumentType,
    Task,
    TaskStatus,
    to_iso,
    utc_now,
)
from .store import Store


# ---------------------------------------------------------------------------
# Activity feed
# ---------------------------------------------------------------------------


def activity_feed(store: Store, limit: int = 50) -> list[Activity]:
    return activity.list_recent(store, limit=limit)


def activities_by_agent(store: Store, agent_id: str, limit: int = 20) -> list[Activity]:
    return activity.by_agent(store, agent_id, limit=limit)


def activities_by_task(store: Store, task_id: str, limit: int = 50) -> list[Activity]:
    return activity.by_task(store, task_id, limit=limit)


# ---------------------------------------------------------------------------
# Standup
# ---------------------------------------------------------------------------


def _task_lines(store: Store, tasks: list[Task], empty: str, with_assignees: bool = False) -> str:
    if not tasks:
        return f"_{empty}_\n\n"
    lines = []
    for task in tasks:
        lines.append(f"- **{task.title}**")
        if with_assignees and task.assignee_ids:
            names = [r["name"] for r in (store.get("agents", a) for a in task.assignee_ids) if r]
            lines.append(f"  - Assigned: {', '.join(names)}")
    return "\n".join(lines) + "\n\n"


def _tasks_in(store: Store, status: str) -> list[Task]:
    return [Task.from_row(r) for r in store.query("tasks", {"status": status})]


def generate_standup(store: Store, now: datetime | None = None) -> dict[str, Any]:
    """
    Write the daily standup document.

    Sections: Completed (task_completed activities in the last 24h, max 10),
    In Progress (with assignee names), Blocked, Needs Review, Agent Status
    (with current task title) and Key Decisions.

    Returns:
        {"doc_id", "content"}
    """
    now = now or utc_now()
    date_str = now.date().isoformat()
    since = to_iso(now - timedelta(hours=24))

    content = f"# Daily Standup — {date_str}\n\n"

    content += "## Completed Today\n\n"
    completed = activity.query_activities(store, ActivityType.TASK_COMPLETED, since=since)
    titles = []
    for entry in completed[:10]:
        row = store.get("tasks", entry.task_id) if entry.task_id else None
        if row:
            titles.append(f"- **{row['title']}**")
    content += "\n".join(titles) + "\n\n" if titles else "_No tasks completed in last 24h_\n\n"

    content += "## In Progress\n\n"
    content += _task_lines(
        store, _tasks_in(store, TaskStatus.IN_PROGRESS), "No active tasks", with_assignees=True
    )

    content += "## Blocked\n\n"
    content += _task_lines(store, _tasks_in(store, TaskStatus.BLOCKED), "No blocked tasks")

    content += "## Needs Review\n\n"
    content += _task_lines(store, _tasks_in(store, TaskStatus.REVIEW), "Nothing waiting for review")

    content += "## Agent Status\n\n"
    for row in store.query("agents"):
        agent = Agent.from_row(row)
        line = f"- **{agent.name}**: {agent.status}"
        if agent.current_task_id:
            task_row = store.get("tasks", agent.current_task_id)
            if task_row:
                line += f' — working on "{task_row["title"]}"'
        content += line + "\n"
    content += "\n"

    content += "## Key Decisions\n\n"
    content += "_None recorded today_\n\n"

    doc_id = documents.create_document(
        store,
        f"Daily Standup — {date_str}",
        content,
        DocumentType.STANDUP,
        created_by=Creator.operator(),
        log_activity=False,
    )
    activity.log(
        store,
        ActivityType.STANDUP_GENERATED,
        f"Daily standup generated for {date_str}",
    )
    return {"doc_id": doc_id, "content": content}


def latest_standup(store: Store) -> Document | None:
    docs = documents.list_documents(store, doc_type=DocumentType.STANDUP, limit=1)
    return docs[0] if docs else None


# ---------------------------------------------------------------------------
# Status, board, stats
# ---------------------------------------------------------------------------


def system_status(store: Store) -> dict[str, Any]:
    """
    Dashboard summary: agents, task counts by status over the 20 most recent
    tasks, 10 recent activities, pending notification count, 5 recent
    documents and the pause flag.
    """
    agents = [Agent.from_row(r) for r in store.query("agents")]
    recent_tasks = [Task.from_row(r) for r in store.query("tasks", order="desc", limit=20)]
    task_counts = {status: 0 for status in TaskStatus.ORDERED}
    for task in recent_tasks:
        task_counts[task.status] += 1

    state = system.get_state(store)
    return {
        "agents": [
            {
                "id": a.id,
                "name": a.name,
                "role": a.role,
                "status": a.status,
                "current_task_id": a.current_task_id,
            }
            for a in agents
        ],
        "task_counts": task_counts,
        "recent_activities": activity.list_recent(store, limit=10),
        "pending_notifications": notifications.pending_count(store),
        "recent_documents": documents.list_documents(store, limit=5),
        "paused": state.paused,
        "pause": state,
    }


def task_board(store: Store) -> dict[str, list[Task]]:
    """Every task grouped by status (each column newest first)."""
    board: dict[str, list[Task]] = {status: [] for status in TaskStatus.ORDERED}
    for row in store.query("tasks", order="desc"):
        task = Task.from_row(row)
        board[task.status].append(task)
    return board


def broadcast_stats(store: Store) -> dict[str, int]:
    agents = [Agent.from_row(r) for r in store.query("agents")]
    return {
        "total_agents": len(agents),
        "pending_notifications": notifications.pending_count(store),
        "active_agents": sum(1 for a in agents if a.status == AgentStatus.ACTIVE),
    }
