#!/usr/bin/env python3
"""
Mission Control Notification Queue

Per-agent alert queue consumed by the delivery daemon. Delivery is
at-least-once: a notification stays in the undelivered set until a
mark_*_delivered call includes it, and the daemon re-sends anything still
undelivered on its next poll. The delivered flag flips False -> True exactly
once (the update is conditional on delivered = 0) and never reverts.

Failed delivery attempts are counted per notification. When
max_delivery_attempts is positive, notifications at the cap drop out of
get_undelivered() and can be inspected with list_dead_letters(); 0 keeps
retrying forever.
"""

import logging
from typing import Any

from .errors import NotFoundError
from .models import Agent, Notification, now_iso
from .store import Store

logger = logging.getLogger(__name__)


def create_notification(
    store: Store,
    mentioned_agent_id: str,
    content: str,
    from_agent_id: str | None = None,
    task_id: str | None = None,
    message_id: str | None = None,
) -> str:
    """Queue an undelivered notification for one agent and return its id."""
    return store.insert(
        "notifications",
        {
            "mentioned_agent_id": mentioned_agent_id,
            "content": content,
            "from_agent_id": from_agent_id,
            "task_id": task_id,
            "message_id": message_id,
            "delivered": False,
            "delivery_attempts": 0,
        },
    )


def get_notification(store: Store, notification_id: str) -> Notification:
    row = store.get("notifications", notification_id)
    if row is None:
        raise NotFoundError("notification", notification_id)
    return Notification.from_row(row)


# ---------------------------------------------------------------------------
# Queue reads
# ---------------------------------------------------------------------------


def undelivered_for_agent(store: Store, agent_id: str) -> list[Notification]:
    """Undelivered notifications for one agent, oldest first."""
    rows = store.query(
        "notifications", {"mentioned_agent_id": agent_id, "delivered": False}
    )
    return [Notification.from_row(r) for r in rows]


def get_undelivered(store: Store, max_attempts: int = 0) -> list[Notification]:
    """
    Every undelivered notification across the roster.

    Iterates agents in roster order and concatenates each agent's queue, so
    notifications for agents missing from the roster are never returned.

    Args:
        max_attempts: Dead-letter cap; 0 disables the cutoff.
    """
    result: list[Notification] = []
    for row in store.query("agents"):
        for notification in undelivered_for_agent(store, row["id"]):
            if max_attempts > 0 and notification.delivery_attempts >= max_attempts:
                continue
            result.append(notification)
    return result


def list_for_agent(store: Store, agent_id: str, limit: int = 50) -> list[Notification]:
    """Recent notifications for one agent in every state, newest first."""
    rows = store.query(
        "notifications", {"mentioned_agent_id": agent_id}, order="desc", limit=limit
    )
    return [Notification.from_row(r) for r in rows]


def list_dead_letters(store: Store, max_attempts: int) -> list[Notification]:
    """Undelivered notifications whose failed attempts reached max_attempts."""
    if max_attempts <= 0:
        return []
    rows = store.query("notifications", {"delivered": False})
    return [
        Notification.from_row(r)
        for r in rows
        if int(r.get("delivery_attempts") or 0) >= max_attempts
    ]


def pending_count(store: Store) -> int:
    return store.count("notifications", {"delivered": False})


# ---------------------------------------------------------------------------
# Delivery acknowledgement
# ---------------------------------------------------------------------------


def mark_delivered(store: Store, notification_id: str) -> bool:
    """
    Mark one notification delivered.

    Returns True if this call flipped the flag, False if it was already set.
    """
    get_notification(store, notification_id)
    return store.patch_if(
        "notifications",
        notification_id,
        {"delivered": False},
        {"delivered": True, "delivered_at": now_iso()},
    )


def mark_many_delivered(store: Store, notification_ids: list[str]) -> int:
    """
    Mark a batch delivered. Idempotent: unknown or already-delivered ids are
    skipped. Returns the number of rows that changed.
    """
    delivered_at = now_iso()
    changed = 0
    for notification_id in notification_ids:
        if store.patch_if(
            "notifications",
            notification_id,
            {"delivered": False},
            {"delivered": True, "delivered_at": delivered_at},
        ):
            changed += 1
    return changed


def mark_all_delivered(store: Store, agent_id: str) -> int:
    ids = [n.id for n in undelivered_for_agent(store, agent_id)]
    return mark_many_delivered(store, ids)


def record_failed_attempt(store: Store, notification_ids: list[str]) -> int:
    """Count one failed delivery attempt for each id. Returns rows updated."""
    updated = 0
    for notification_id in notification_ids:
        if store.increment("notifications", notification_id, "delivery_attempts"):
            updated += 1
    if updated:
        logger.debug("Recorded failed delivery for %d notification(s)", updated)
    return updated


# ---------------------------------------------------------------------------
# Daemon support
# ---------------------------------------------------------------------------


def get_agent_sessions(store: Store) -> list[dict[str, Any]]:
    """[{id, name, session_key}] for every agent, used by the delivery daemon."""
    agents = [Agent.from_row(r) for r in store.query("agents")]
    return [{"id": a.id, "name": a.name, "session_key": a.session_key} for a in agents]
