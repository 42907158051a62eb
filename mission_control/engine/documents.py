#!/usr/bin/env python3
"""
Mission Control Documents

Markdown artifacts attached to tasks or standing alone: deliverables written
on completion, notes archived by broadcasts, and daily standups.
"""

from typing import Any

from . import activity
from .errors import NotFoundError
from .models import ActivityType, Creator, Document, DocumentType, now_iso
from .roster import creator_name
from .store import Store


def create_document(
    store: Store,
    title: str,
    content: str,
    doc_type: str,
    task_id: str | None = None,
    created_by: Creator | None = None,
    log_activity: bool = True,
) -> str:
    """Insert a document and log document_created. Returns the document id."""
    if doc_type not in DocumentType.ALL:
        raise ValueError(f"Unknown document type: '{doc_type}'")
    created_by = created_by or Creator.operator()
    now = now_iso()
    doc_id = store.insert(
        "documents",
        {
            "title": title,
            "content": content,
            "type": doc_type,
            "task_id": task_id,
            "created_by_kind": created_by.kind,
            "created_by_agent_id": created_by.agent_id,
            "created_at": now,
            "updated_at": now,
        },
    )
    if log_activity:
        activity.log(
            store,
            ActivityType.DOCUMENT_CREATED,
            f"Document created: {title}",
            agent_id=created_by.agent_id,
            task_id=task_id,
        )
    return doc_id


def require_document(store: Store, doc_id: str) -> Document:
    row = store.get("documents", doc_id)
    if row is None:
        raise NotFoundError("document", doc_id)
    return Document.from_row(row)


def get_document(store: Store, doc_id: str) -> dict[str, Any] | None:
    """Document plus the author's display name, or None."""
    row = store.get("documents", doc_id)
    if row is None:
        return None
    document = Document.from_row(row)
    return {"document": document, "created_by_name": creator_name(store, document.created_by)}


def update_document(
    store: Store,
    doc_id: str,
    title: str | None = None,
    content: str | None = None,
) -> Document:
    document = require_document(store, doc_id)
    fields: dict[str, Any] = {"updated_at": now_iso()}
    if title is not None:
        fields["title"] = title
    if content is not None:
        fields["content"] = content
    store.patch("documents", doc_id, fields)
    activity.log(
        store,
        ActivityType.DOCUMENT_UPDATED,
        f"Document updated: {document.title}",
        task_id=document.task_id,
    )
    return require_document(store, doc_id)


def list_documents(
    store: Store,
    doc_type: str | None = None,
    task_id: str | None = None,
    limit: int | None = None,
) -> list[Document]:
    """Documents newest first, optionally filtered by type and/or task."""
    where: dict[str, Any] = {}
    if doc_type:
        where["type"] = doc_type
    if task_id:
        where["task_id"] = task_id
    rows = store.query("documents", where or None, order="desc", limit=limit)
    return [Document.from_row(r) for r in rows]
