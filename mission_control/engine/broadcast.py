#!/usr/bin/env python3
"""
Mission Control Broadcasts

Operator announcements fanned out to every agent (or a chosen subset) as
notifications, recorded as a `mention` activity and archived as a `note`
document titled "Broadcast: ...".
"""

from typing import Any

from . import activity, documents, notifications
from .models import ActivityType, Agent, Creator, Document, DocumentType, now_iso
from .store import Store

BROADCAST_PRIORITIES = ("low", "normal", "high", "urgent")

_TITLE_PREFIX = "Broadcast: "


def _truncate(text: str, length: int) -> str:
    return text[:length] + ("..." if len(text) > length else "")


def send_broadcast(
    store: Store,
    content: str,
    target_agent_ids: list[str] | None = None,
    priority: str = "normal",
    category: str = "announcement",
) -> dict[str, Any]:
    """
    Broadcast a message.

    Args:
        content: Message body
        target_agent_ids: Recipients; None or empty means every agent. Unknown
                          ids are skipped.
        priority: One of BROADCAST_PRIORITIES (recorded in the archive note)
        category: Free-form label, e.g. "announcement", "alert", "update"

    Returns:
        {"recipient_count", "notifications": [{"agent_name", "notification_id"}],
         "document_id"}
    """
    if priority not in BROADCAST_PRIORITIES:
        raise ValueError(f"Unknown broadcast priority: '{priority}'")

    if target_agent_ids:
        rows = [store.get("agents", agent_id) for agent_id in target_agent_ids]
        recipients = [Agent.from_row(r) for r in rows if r is not None]
    else:
        recipients = [Agent.from_row(r) for r in store.query("agents")]

    sent = []
    for agent in recipients:
        notification_id = notifications.create_notification(
            store, agent.id, f"[{category.upper()}] {content}"
        )
        sent.append({"agent_name": agent.name, "notification_id": notification_id})

    activity.log(
        store,
        ActivityType.MENTION,
        f"Broadcast: {_truncate(content, 100)}",
        metadata={"content": f"Broadcast to {len(recipients)} agents: {content[:200]}"},
    )

    body = (
        "# Broadcast Message\n\n"
        f"**Priority:** {priority}\n"
        f"**Category:** {category}\n"
        f"**Time:** {now_iso()}\n\n"
        "---\n\n"
        f"{content}\n\n"
        "---\n\n"
        f"**Recipients:** {', '.join(a.name for a in recipients)}"
    )
    document_id = documents.create_document(
        store,
        _TITLE_PREFIX + _truncate(content, 50),
        body,
        DocumentType.NOTE,
        created_by=Creator.operator(),
        log_activity=False,
    )

    return {
        "recipient_count": len(recipients),
        "notifications": sent,
        "document_id": document_id,
    }


def recent_broadcasts(store: Store, limit: int = 10) -> list[Document]:
    """Archived broadcast notes, newest first."""
    notes = documents.list_documents(store, doc_type=DocumentType.NOTE)
    archived = [
        d for d in notes
        if d.created_by.is_operator and d.title.startswith(_TITLE_PREFIX)
    ]
    return archived[:limit]
