#!/usr/bin/env python3
"""
Mission Control Messaging and Subscriptions

Task thread comments, direct agent-to-agent messages and the
(agent, task) subscription set that drives reply fan-out.

A thread comment produces, in order: the message row, a message_sent
activity, one notification per mention, an auto-subscription for an agent
author, and one "New reply" notification per subscriber other than the
author. A mentioned subscriber therefore receives two notifications for the
same message.
"""

import logging
import sqlite3
from typing import Any

from . import activity, notifications
from .errors import NotFoundError
from .models import ActivityType, Creator, Message, Subscription
from .roster import creator_name, require_agent
from .store import Store

logger = logging.getLogger(__name__)


def _author_columns(author: Creator) -> dict[str, Any]:
    return {"from_kind": author.kind, "from_agent_id": author.agent_id}


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


def subscribe(store: Store, agent_id: str, task_id: str) -> str:
    """Subscribe an agent to a task thread. Idempotent; returns the subscription id."""
    existing = store.first("subscriptions", {"agent_id": agent_id, "task_id": task_id})
    if existing:
        return existing["id"]
    try:
        return store.insert("subscriptions", {"agent_id": agent_id, "task_id": task_id})
    except sqlite3.IntegrityError:
        # Lost a race with a concurrent subscribe; the pair is unique.
        row = store.first("subscriptions", {"agent_id": agent_id, "task_id": task_id})
        if row is None:
            raise
        return row["id"]


def subscribers(store: Store, task_id: str) -> list[Subscription]:
    rows = store.query("subscriptions", {"task_id": task_id})
    return [Subscription.from_row(r) for r in rows]


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def create_message(
    store: Store,
    task_id: str,
    content: str,
    mentions: list[str] | None = None,
    author: Creator | None = None,
    attachments: list[str] | None = None,
) -> str:
    """
    Post a comment on a task thread and fan out notifications.

    Args:
        store: Open store
        task_id: Thread to post on
        content: Message body
        mentions: Agent ids to notify directly
        author: Creator of the comment (default: the operator)
        attachments: Document ids

    Returns:
        The new message id.

    Raises:
        NotFoundError: task, author agent or a mentioned agent missing
    """
    author = author or Creator.operator()
    mentions = list(mentions or [])
    if store.get("tasks", task_id) is None:
        raise NotFoundError("task", task_id)
    if not author.is_operator:
        require_agent(store, author.agent_id)
    for agent_id in mentions:
        require_agent(store, agent_id)

    message_id = store.insert(
        "messages",
        {
            "task_id": task_id,
            "content": content,
            "mentions": mentions,
            "attachments": list(attachments or []),
            **_author_columns(author),
        },
    )

    activity.log(
        store,
        ActivityType.MESSAGE_SENT,
        "New comment on task",
        agent_id=author.agent_id,
        task_id=task_id,
    )

    for agent_id in mentions:
        notifications.create_notification(
            store,
            agent_id,
            f"You were mentioned: {content[:100]}...",
            from_agent_id=author.agent_id,
            task_id=task_id,
            message_id=message_id,
        )

    if not author.is_operator:
        subscribe(store, author.agent_id, task_id)

    for sub in subscribers(store, task_id):
        if sub.agent_id == author.agent_id:
            continue
        notifications.create_notification(
            store,
            sub.agent_id,
            "New reply on subscribed task",
            task_id=task_id,
            message_id=message_id,
        )

    return message_id


def send_direct_message(
    store: Store,
    from_agent_id: str,
    to_agent_id: str,
    content: str,
) -> str:
    """Task-less agent-to-agent message. Returns the message id."""
    sender = require_agent(store, from_agent_id)
    recipient = require_agent(store, to_agent_id)

    message_id = store.insert(
        "messages",
        {
            "task_id": None,
            "content": f"@{recipient.name} {content}",
            "mentions": [to_agent_id],
            "attachments": [],
            **_author_columns(Creator.agent(from_agent_id)),
        },
    )
    notifications.create_notification(
        store,
        to_agent_id,
        f"{sender.name}: {content[:100]}...",
        from_agent_id=from_agent_id,
        message_id=message_id,
    )
    activity.log(
        store,
        ActivityType.MESSAGE_SENT,
        f"{sender.name} → {recipient.name}: {content[:50]}...",
        agent_id=from_agent_id,
    )
    return message_id


def insert_thread_message(
    store: Store,
    task_id: str,
    content: str,
    author: Creator,
    mentions: list[str] | None = None,
) -> str:
    """
    Append a bare message to a task thread with no activity or fan-out.

    Used by engine operations that record their own activity (review
    requests, webhook run updates).
    """
    return store.insert(
        "messages",
        {
            "task_id": task_id,
            "content": content,
            "mentions": list(mentions or []),
            "attachments": [],
            **_author_columns(author),
        },
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def messages_by_task(store: Store, task_id: str) -> list[dict[str, Any]]:
    """Thread messages oldest first, each with the author's display name."""
    result = []
    for row in store.query("messages", {"task_id": task_id}):
        message = Message.from_row(row)
        result.append({"message": message, "author_name": creator_name(store, message.author)})
    return result


def recent_messages(store: Store, limit: int = 20) -> list[Message]:
    rows = store.query("messages", order="desc", limit=limit)
    return [Message.from_row(r) for r in rows]
