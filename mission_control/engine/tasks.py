#!/usr/bin/env python3
"""
Mission Control Task Lifecycle

Create, propose, start, complete, review, block and update tasks. Every
status change goes through the state machine (state_machine.py) and is
applied with a compare-and-set patch on the task's current status, so two
writers racing on the same task cannot both succeed.

Side-effect contract (each write commits on its own, in this order):
- task document patch
- agent document patch (status / current_task_id)
- activity entry
- notifications (assignees, subscribers, operator)

An agent's current-task slot is released whenever the task it points at
leaves the working statuses (assigned, in_progress) for anything other than
blocked. Blocking a task marks its holder agent blocked; unblocking it back
into a working status makes the holder active again.
"""

import logging
from typing import Any

from . import activity, documents, messaging, notifications
from .errors import InvalidStateError, NotFoundError, UnauthorizedError
from .models import (
    ActivityType,
    Agent,
    AgentStatus,
    Creator,
    Document,
    DocumentType,
    Message,
    MissionConfig,
    Task,
    TaskPriority,
    TaskStatus,
    now_iso,
)
from .roster import get_agent, get_agent_by_name, require_agent
from .state_machine import check_assignment, unblock_target, validate_transition
from .store import Store

logger = logging.getLogger(__name__)

# Fields the generic update() accepts
UPDATABLE_FIELDS = frozenset([
    "title", "description", "status", "priority",
    "assignee_ids", "tags", "due_date", "required_skills",
])


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def get_task(store: Store, task_id: str) -> Task | None:
    row = store.get("tasks", task_id)
    return Task.from_row(row) if row else None


def require_task(store: Store, task_id: str) -> Task:
    task = get_task(store, task_id)
    if task is None:
        raise NotFoundError("task", task_id)
    return task


def find_by_title(store: Store, title: str) -> Task | None:
    row = store.first("tasks", {"title": title})
    return Task.from_row(row) if row else None


def list_tasks(
    store: Store,
    status: str | None = None,
    assignee_id: str | None = None,
) -> list[Task]:
    """All tasks newest first, optionally filtered by status and/or assignee."""
    where = {"status": status} if status else None
    tasks = [Task.from_row(r) for r in store.query("tasks", where, order="desc")]
    if assignee_id:
        tasks = [t for t in tasks if assignee_id in t.assignee_ids]
    return tasks


def get_inbox(store: Store, limit: int = 50) -> list[Task]:
    """Inbox tasks, newest first."""
    rows = store.query("tasks", {"status": TaskStatus.INBOX}, order="desc", limit=limit)
    return [Task.from_row(r) for r in rows]


def get_proposed_by(store: Store, agent_id: str, limit: int = 20) -> list[Task]:
    rows = store.query("tasks", {"proposed_by": agent_id}, order="desc", limit=limit)
    return [Task.from_row(r) for r in rows]


def get_task_detail(store: Store, task_id: str) -> dict[str, Any] | None:
    """
    Task with its assignee agents, the 20 most recent thread messages and
    attached documents (both newest first). None if the task does not exist.
    """
    task = get_task(store, task_id)
    if task is None:
        return None
    assignees = [a for a in (get_agent(store, i) for i in task.assignee_ids) if a]
    messages = [
        Message.from_row(r)
        for r in store.query("messages", {"task_id": task_id}, order="desc", limit=20)
    ]
    docs = [
        Document.from_row(r)
        for r in store.query("documents", {"task_id": task_id}, order="desc")
    ]
    return {"task": task, "assignees": assignees, "messages": messages, "documents": docs}


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def insert_task(store: Store, title: str, status: str, **fields: Any) -> str:
    """
    Low-level task insert. Callers are responsible for the assignment
    invariant and for logging task_created.
    """
    created_by: Creator = fields.pop("created_by", None) or Creator.operator()
    priority = fields.get("priority") or TaskPriority.MEDIUM
    if priority not in TaskPriority.ALL:
        raise ValueError(f"Unknown task priority: '{priority}'")
    now = now_iso()
    doc = {
        "title": title,
        "description": fields.pop("description", "") or "",
        "status": status,
        "assignee_ids": list(fields.pop("assignee_ids", None) or []),
        "required_skills": list(fields.pop("required_skills", None) or []),
        "tags": list(fields.pop("tags", None) or []),
        "created_by_kind": created_by.kind,
        "created_by_agent_id": created_by.agent_id,
        "created_at": now,
        "updated_at": now,
        **fields,
        "priority": priority,
    }
    check_assignment(status, doc["assignee_ids"])
    return store.insert("tasks", doc)


def transition(
    store: Store,
    task: Task,
    to_status: str,
    fields: dict[str, Any] | None = None,
) -> Task:
    """Validate and apply a status change, conditional on the status being unchanged."""
    validate_transition(task.status, to_status, task.id)
    patch = {**(fields or {}), "status": to_status, "updated_at": now_iso()}
    if not store.patch_if("tasks", task.id, {"status": task.status}, patch):
        raise InvalidStateError(
            f"Task {task.id} is no longer '{task.status}' (changed concurrently)"
        )
    return require_task(store, task.id)


def _occupy(store: Store, agent: Agent, task_id: str) -> bool:
    """Point a free agent at a task. Returns False if the agent already holds one."""
    if agent.current_task_id and agent.current_task_id != task_id:
        return False
    store.patch(
        "agents", agent.id, {"status": AgentStatus.ACTIVE, "current_task_id": task_id}
    )
    return True


def holders(store: Store, task_id: str) -> list[Agent]:
    """Agents whose current-task slot points at the task."""
    return [Agent.from_row(r) for r in store.query("agents", {"current_task_id": task_id})]


def release_agents(store: Store, task_id: str, only: list[str] | None = None) -> None:
    for agent in holders(store, task_id):
        if only is not None and agent.id not in only:
            continue
        store.patch(
            "agents", agent.id, {"status": AgentStatus.IDLE, "current_task_id": None}
        )


def _notify_assignee(store: Store, agent_id: str, task_id: str, title: str) -> None:
    notifications.create_notification(
        store, agent_id, f"New task assigned: {title}", task_id=task_id
    )
    messaging.subscribe(store, agent_id, task_id)


def _notify_subscribers(store: Store, task: Task, content: str) -> None:
    for sub in messaging.subscribers(store, task.id):
        notifications.create_notification(store, sub.agent_id, content, task_id=task.id)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


def create_task(
    store: Store,
    title: str,
    description: str = "",
    priority: str = TaskPriority.MEDIUM,
    assignee_ids: list[str] | None = None,
    required_skills: list[str] | None = None,
    tags: list[str] | None = None,
    due_date: str | None = None,
    created_by: Creator | None = None,
) -> str:
    """
    Create a task. With assignees it starts in `assigned`, otherwise `inbox`.

    Each assignee gets a "New task assigned" notification and a thread
    subscription, and is made active on the task if its slot is free.

    Raises:
        NotFoundError: an assignee does not exist
    """
    created_by = created_by or Creator.operator()
    assignees = [require_agent(store, agent_id) for agent_id in assignee_ids or []]
    status = TaskStatus.ASSIGNED if assignees else TaskStatus.INBOX

    task_id = insert_task(
        store,
        title,
        status,
        description=description,
        priority=priority,
        assignee_ids=[a.id for a in assignees],
        required_skills=required_skills,
        tags=tags,
        due_date=due_date,
        created_by=created_by,
    )
    activity.log(
        store,
        ActivityType.TASK_CREATED,
        f"Task created: {title}",
        agent_id=created_by.agent_id,
        task_id=task_id,
    )
    for agent in assignees:
        _notify_assignee(store, agent.id, task_id, title)
        _occupy(store, agent, task_id)

    logger.info("Created task %s (%s) status=%s", task_id, title, status)
    return task_id


def propose(
    store: Store,
    title: str,
    description: str,
    proposed_by: str,
    priority: str = TaskPriority.MEDIUM,
    required_skills: list[str] | None = None,
    tags: list[str] | None = None,
) -> str:
    """
    Agent-originated inbox task.

    No title dedup happens here; the work cycle dedups before proposing.

    Raises:
        NotFoundError: proposer does not exist
        UnauthorizedError: proposer lacks proposal rights
    """
    agent = require_agent(store, proposed_by)
    if not agent.can_propose_tasks:
        raise UnauthorizedError(f"Agent '{agent.name}' is not authorized to propose tasks")

    task_id = insert_task(
        store,
        title,
        TaskStatus.INBOX,
        description=description,
        priority=priority,
        required_skills=required_skills,
        tags=tags,
        proposed_by=agent.id,
        created_by=Creator.agent(agent.id),
    )
    activity.log(
        store,
        ActivityType.TASK_CREATED,
        f"{agent.name} proposed new task: {title}",
        agent_id=agent.id,
        task_id=task_id,
        metadata={"content": description},
    )
    return task_id


# ---------------------------------------------------------------------------
# Agent-driven transitions
# ---------------------------------------------------------------------------


def start_task(store: Store, task_id: str, agent_id: str) -> Task:
    """
    assigned -> in_progress by the owning agent.

    Raises:
        NotFoundError: task or agent missing
        InvalidStateError: task not assigned, or the agent is not an assignee
    """
    task = require_task(store, task_id)
    agent = require_agent(store, agent_id)
    if task.status != TaskStatus.ASSIGNED:
        raise InvalidStateError(
            f"Task {task_id} cannot be started from status '{task.status}'"
        )
    if agent.id not in task.assignee_ids:
        raise InvalidStateError(f"Agent '{agent.name}' is not assigned to task {task_id}")

    updated = transition(store, task, TaskStatus.IN_PROGRESS)
    store.patch("agents", agent.id, {"status": AgentStatus.ACTIVE, "current_task_id": task_id})
    activity.log(
        store,
        ActivityType.TASK_UPDATED,
        f"{agent.name} started working on: {task.title}",
        agent_id=agent.id,
        task_id=task_id,
        metadata={"old_status": TaskStatus.ASSIGNED, "new_status": TaskStatus.IN_PROGRESS},
    )
    return updated


def complete_task(
    store: Store,
    task_id: str,
    agent_id: str,
    deliverable_content: str | None = None,
    config: MissionConfig | None = None,
) -> dict[str, Any]:
    """
    Move a working task to review, optionally filing a deliverable.

    Only an assignee may complete. Agents holding the task are set idle with
    their slot cleared, and the operator agent is notified.

    Returns:
        {"task_id": ..., "document_id": ... or None}

    Raises:
        NotFoundError: task or agent missing
        InvalidStateError: task is not assigned or in_progress, or the agent
                           is not an assignee
    """
    config = config or MissionConfig()
    task = require_task(store, task_id)
    agent = require_agent(store, agent_id)
    if task.status not in TaskStatus.WORKING:
        raise InvalidStateError(
            f"Task {task_id} cannot be completed from status '{task.status}'"
        )
    if agent.id not in task.assignee_ids:
        raise InvalidStateError(f"Agent '{agent.name}' is not assigned to task {task_id}")

    transition(store, task, TaskStatus.REVIEW)

    document_id = None
    if deliverable_content:
        document_id = documents.create_document(
            store,
            f"Deliverable: {task.title}",
            deliverable_content,
            DocumentType.DELIVERABLE,
            task_id=task_id,
            created_by=Creator.agent(agent.id),
            log_activity=False,
        )

    release_agents(store, task_id)
    activity.log(
        store,
        ActivityType.TASK_COMPLETED,
        f"{agent.name} completed: {task.title}",
        agent_id=agent.id,
        task_id=task_id,
        metadata={"old_status": task.status, "new_status": TaskStatus.REVIEW},
    )

    operator = get_agent_by_name(store, config.operator_name)
    if operator is not None:
        notifications.create_notification(
            store,
            operator.id,
            f"{agent.name} completed: {task.title}",
            from_agent_id=agent.id,
            task_id=task_id,
        )
    else:
        logger.warning("Operator agent '%s' not found; completion not notified", config.operator_name)

    return {"task_id": task_id, "document_id": document_id}


def request_review(
    store: Store,
    task_id: str,
    from_agent_id: str,
    to_agent_id: str,
    message: str,
) -> Task:
    """
    Ask another agent to review a task and move it to review.

    Raises:
        NotFoundError: task or either agent missing
        InvalidTransitionError: task cannot move to review from its status
    """
    task = require_task(store, task_id)
    requester = require_agent(store, from_agent_id)
    reviewer = require_agent(store, to_agent_id)
    validate_transition(task.status, TaskStatus.REVIEW, task_id)

    messaging.insert_thread_message(
        store,
        task_id,
        f"@{reviewer.name} {message}",
        Creator.agent(requester.id),
        mentions=[reviewer.id],
    )
    notifications.create_notification(
        store,
        reviewer.id,
        f"Review requested by {requester.name}: {task.title}",
        from_agent_id=requester.id,
        task_id=task_id,
    )
    updated = transition(store, task, TaskStatus.REVIEW)
    release_agents(store, task_id)
    activity.log(
        store,
        ActivityType.TASK_UPDATED,
        f"{requester.name} requested review from {reviewer.name}",
        agent_id=requester.id,
        task_id=task_id,
        metadata={"old_status": task.status, "new_status": TaskStatus.REVIEW},
    )
    return updated


# ---------------------------------------------------------------------------
# Operator transitions
# ---------------------------------------------------------------------------


def approve(store: Store, task_id: str, actor: Creator | None = None) -> Task:
    """review -> done."""
    task = require_task(store, task_id)
    if task.status != TaskStatus.REVIEW:
        raise InvalidStateError(f"Task {task_id} is not in review (status '{task.status}')")
    return update(store, task_id, actor=actor, status=TaskStatus.DONE)


def block(store: Store, task_id: str, reason: str = "") -> Task:
    """
    Block a task, remembering the status it held. Holder agents are marked
    blocked but keep their slot.
    """
    task = require_task(store, task_id)
    updated = transition(store, task, TaskStatus.BLOCKED, {"blocked_from": task.status})
    for agent in holders(store, task_id):
        store.patch("agents", agent.id, {"status": AgentStatus.BLOCKED})

    suffix = f": {reason}" if reason else ""
    activity.log(
        store,
        ActivityType.TASK_UPDATED,
        f"Task blocked: {task.title}{suffix}",
        task_id=task_id,
        metadata={"old_status": task.status, "new_status": TaskStatus.BLOCKED, "content": reason},
    )
    _notify_subscribers(store, task, f'Task "{task.title}" updated → {TaskStatus.BLOCKED}')
    return updated


def unblock(store: Store, task_id: str, to_status: str | None = None) -> Task:
    """
    Return a blocked task to an active status.

    Target: to_status if given, else the status held before blocking, else
    assigned/inbox by assignee presence. Unblocking to inbox clears assignees.
    """
    task = require_task(store, task_id)
    if task.status != TaskStatus.BLOCKED:
        raise InvalidStateError(f"Task {task_id} is not blocked (status '{task.status}')")

    target = unblock_target(task.blocked_from, bool(task.assignee_ids), to_status)
    assignees = [] if target == TaskStatus.INBOX else task.assignee_ids
    check_assignment(target, assignees, task_id)
    updated = transition(
        store, task, target, {"blocked_from": None, "assignee_ids": assignees}
    )

    if target in TaskStatus.WORKING:
        for agent_id in assignees:
            _occupy(store, require_agent(store, agent_id), task_id)
    else:
        release_agents(store, task_id)

    activity.log(
        store,
        ActivityType.TASK_UPDATED,
        f"Task unblocked: {task.title}",
        task_id=task_id,
        metadata={"old_status": TaskStatus.BLOCKED, "new_status": target},
    )
    _notify_subscribers(store, task, f'Task "{task.title}" updated → {target}')
    return updated


def update(store: Store, task_id: str, actor: Creator | None = None, **fields: Any) -> Task:
    """
    Generic operator patch.

    Accepts UPDATABLE_FIELDS. A status change is validated against the state
    machine and logged as task_updated with old/new status (plus
    task_completed on entering done). Moving to inbox without explicit
    assignee_ids clears the assignees. Newly added assignees are notified
    and subscribed; every subscriber is told about the update.

    Raises:
        NotFoundError: task or a new assignee missing
        InvalidTransitionError / InvalidStateError: status or assignment invalid
        ValueError: unknown field or priority
    """
    unknown = sorted(set(fields) - UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown task field(s): {unknown}")
    actor = actor or Creator.operator()
    task = require_task(store, task_id)

    old_status = task.status
    new_status = fields.get("status") or old_status
    status_changed = new_status != old_status
    if status_changed:
        validate_transition(old_status, new_status, task_id)
    if "priority" in fields and fields["priority"] not in TaskPriority.ALL:
        raise ValueError(f"Unknown task priority: '{fields['priority']}'")

    if "assignee_ids" in fields:
        assignees = [require_agent(store, a).id for a in fields["assignee_ids"] or []]
    elif new_status == TaskStatus.INBOX:
        assignees = []
    else:
        assignees = task.assignee_ids
    check_assignment(new_status, assignees, task_id)

    patch = {k: v for k, v in fields.items() if k != "status"}
    patch["assignee_ids"] = assignees
    patch["updated_at"] = now_iso()
    if status_changed:
        patch["status"] = new_status
        if new_status == TaskStatus.BLOCKED:
            patch["blocked_from"] = old_status
        elif old_status == TaskStatus.BLOCKED:
            patch["blocked_from"] = None
    if not store.patch_if("tasks", task_id, {"status": old_status}, patch):
        raise InvalidStateError(f"Task {task_id} is no longer '{old_status}' (changed concurrently)")

    # Agent slots
    removed = [a for a in task.assignee_ids if a not in assignees]
    if removed:
        release_agents(store, task_id, only=removed)
    if new_status == TaskStatus.BLOCKED:
        for agent in holders(store, task_id):
            store.patch("agents", agent.id, {"status": AgentStatus.BLOCKED})
    elif new_status in TaskStatus.WORKING:
        # every free assignee holds the task, not only newly added ones
        for agent_id in assignees:
            _occupy(store, require_agent(store, agent_id), task_id)
    else:
        release_agents(store, task_id)
    added = [a for a in assignees if a not in task.assignee_ids]
    for agent_id in added:
        _notify_assignee(store, agent_id, task_id, task.title)

    activity.log(
        store,
        ActivityType.TASK_UPDATED,
        f"Task moved from {old_status} to {new_status}"
        if status_changed else f"Task updated: {task.title}",
        agent_id=actor.agent_id,
        task_id=task_id,
        metadata={"old_status": old_status, "new_status": new_status} if status_changed else {},
    )
    if status_changed and new_status == TaskStatus.DONE:
        activity.log(
            store,
            ActivityType.TASK_COMPLETED,
            f"Task completed: {task.title}",
            agent_id=actor.agent_id,
            task_id=task_id,
        )

    content = (
        f'Task "{task.title}" updated → {fields["status"]}'
        if fields.get("status") else f'Task "{task.title}" updated'
    )
    _notify_subscribers(store, task, content)
    return require_task(store, task_id)


def remove(store: Store, task_id: str) -> bool:
    """Hard delete. Agents holding the task are released first."""
    require_task(store, task_id)
    release_agents(store, task_id)
    deleted = store.delete("tasks", task_id)
    logger.info("Removed task %s", task_id)
    return deleted
