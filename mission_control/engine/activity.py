#!/usr/bin/env python3
"""
Mission Control Activity Log

Every state change in the engine is recorded in the activities table. The
log is append-only and never modified after insertion; it feeds the activity
feed, the standup generator and the system status view.

Activity types:
- task_created          — operator creates, agent proposes, or a run starts
- task_updated          — status or field change (metadata: old/new status)
- task_completed        — agent completes, or a task reaches done
- task_claimed          — agent claims an inbox task
- message_sent          — thread comment or direct message
- document_created      — document or deliverable written
- document_updated      — document edited
- agent_heartbeat       — one work cycle ran
- agent_status_changed  — agent status set or repaired
- mention               — broadcast sent
- standup_generated     — daily standup written
"""

from typing import Any

from .models import Activity, ActivityType
from .store import Store


def log(
    store: Store,
    activity_type: str,
    message: str,
    agent_id: str | None = None,
    task_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    created_at: str | None = None,
) -> str:
    """
    Append an activity entry and return its id.

    The insert is its own commit: it is ordered after the state change it
    records but is not atomic with it.

    Args:
        store: Open store
        activity_type: One of ActivityType.ALL
        message: Human-readable description
        agent_id: Agent that acted or was affected (optional)
        task_id: Task affected (optional)
        metadata: Structured context, e.g. {"old_status": ..., "new_status": ...}
        created_at: Override timestamp (defaults to now)
    """
    if activity_type not in ActivityType.ALL:
        raise ValueError(f"Unknown activity type: '{activity_type}'")
    return store.insert(
        "activities",
        {
            "type": activity_type,
            "message": message,
            "agent_id": agent_id,
            "task_id": task_id,
            "metadata": metadata or {},
            "created_at": created_at,
        },
    )


def list_recent(store: Store, limit: int = 50) -> list[Activity]:
    """Activity feed, newest first."""
    rows = store.query("activities", order="desc", limit=limit)
    return [Activity.from_row(r) for r in rows]


def by_agent(store: Store, agent_id: str, limit: int = 20) -> list[Activity]:
    rows = store.query("activities", {"agent_id": agent_id}, order="desc", limit=limit)
    return [Activity.from_row(r) for r in rows]


def by_task(store: Store, task_id: str, limit: int = 50) -> list[Activity]:
    rows = store.query("activities", {"task_id": task_id}, order="desc", limit=limit)
    return [Activity.from_row(r) for r in rows]


def query_activities(
    store: Store,
    activity_type: str | None = None,
    since: str | None = None,
    limit: int | None = None,
) -> list[Activity]:
    """
    Filtered activity query, oldest first.

    Args:
        activity_type: Restrict to one type
        since: Only entries created at or after this ISO timestamp
        limit: Maximum entries
    """
    where = {"type": activity_type} if activity_type else None
    rows = store.query("activities", where, since=since, limit=limit)
    return [Activity.from_row(r) for r in rows]
