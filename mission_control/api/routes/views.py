"""
Read-only board endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from mission_control.engine import documents, reports, roster, tasks
from mission_control.engine.models import TaskStatus, to_dict
from mission_control.engine.store import Store

from ..deps import get_store
from ..models import ActivityOut, AgentOut, DocumentOut, TaskDetail, TaskOut

router = APIRouter(tags=["board"])


@router.get("/tasks", response_model=list[TaskOut])
def list_tasks(
    status: str | None = None,
    assignee_id: str | None = None,
    store: Store = Depends(get_store),
):
    """List tasks, newest first, optionally filtered by status or assignee."""
    if status is not None and status not in TaskStatus.ALL:
        raise HTTPException(status_code=400, detail=f"Unknown status: '{status}'")
    return to_dict(tasks.list_tasks(store, status=status, assignee_id=assignee_id))


@router.get("/tasks/{task_id}", response_model=TaskDetail)
def get_task(task_id: str, store: Store = Depends(get_store)):
    """Task with assignees, recent messages and documents."""
    detail = tasks.get_task_detail(store, task_id)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Task not found: '{task_id}'")
    return to_dict(detail)


@router.get("/board", response_model=dict[str, list[TaskOut]])
def get_board(store: Store = Depends(get_store)):
    """Tasks grouped by status, in board column order."""
    return to_dict(reports.task_board(store))


@router.get("/agents", response_model=list[AgentOut])
def list_agents(store: Store = Depends(get_store)):
    return to_dict(roster.list_agents(store))


@router.get("/activities", response_model=list[ActivityOut])
def list_activities(
    limit: int = Query(50, ge=1, le=500),
    store: Store = Depends(get_store),
):
    """Activity feed, newest first."""
    return to_dict(reports.activity_feed(store, limit=limit))


@router.get("/status")
def get_status(store: Store = Depends(get_store)):
    """Dashboard summary."""
    return to_dict(reports.system_status(store))


@router.get("/standup/latest", response_model=DocumentOut)
def get_latest_standup(store: Store = Depends(get_store)):
    standup = reports.latest_standup(store)
    if standup is None:
        raise HTTPException(status_code=404, detail="No standup generated yet")
    return to_dict(standup)


@router.get("/documents", response_model=list[DocumentOut])
def list_documents(
    type: str | None = None,
    task_id: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    store: Store = Depends(get_store),
):
    return to_dict(documents.list_documents(store, doc_type=type, task_id=task_id, limit=limit))
