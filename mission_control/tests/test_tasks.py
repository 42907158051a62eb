"""
Tests for engine/tasks.py

Validates:
- inbox <=> no assignees after every task operation
- create_task notifies and subscribes assignees and occupies free agents
- propose requires proposal rights
- start_task / complete_task / request_review / approve lifecycle
- Only an assignee may complete; completing frees every holder
- Completing with a deliverable files a document and notifies the operator
- block / unblock remember and restore the previous status
- update validates transitions and keeps agent slots in step
- Returning to a working status re-occupies every free assignee
- remove releases holders
"""

import pytest

from mission_control.engine import documents, messaging, notifications, roster, tasks
from mission_control.engine.errors import InvalidStateError, NotFoundError, UnauthorizedError
from mission_control.engine.models import Creator
from mission_control.engine.state_machine import InvalidTransitionError


def _assert_assignment_invariant(store):
    """blocked and waiting hold whatever assignees the task had, possibly none."""
    for row in store.query("tasks"):
        if row["status"] == "inbox":
            assert row["assignee_ids"] == [], row["title"]
        elif row["status"] in ("assigned", "in_progress", "review"):
            assert row["assignee_ids"], row["title"]


def _notes(store, agent):
    return [n.content for n in notifications.undelivered_for_agent(store, agent.id)]


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


def test_create_unassigned_goes_to_inbox(store, agents):
    task_id = tasks.create_task(store, "Write docs")
    task = tasks.get_task(store, task_id)
    assert task.status == "inbox"
    assert task.assignee_ids == []
    assert task.created_by == Creator.operator()


def test_create_assigned(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])

    task = tasks.get_task(store, task_id)
    assert task.status == "assigned"
    assert _notes(store, scribe) == ["New task assigned: Write docs"]
    assert [s.agent_id for s in messaging.subscribers(store, task_id)] == [scribe.id]
    agent = roster.get_agent(store, scribe.id)
    assert agent.status == "active"
    assert agent.current_task_id == task_id


def test_create_with_unknown_assignee(store, agents):
    with pytest.raises(NotFoundError):
        tasks.create_task(store, "Ghost work", assignee_ids=["agent-missing"])
    assert store.count("tasks") == 0


def test_create_with_unknown_priority(store, agents):
    with pytest.raises(ValueError):
        tasks.create_task(store, "Odd", priority="critical")


def test_create_logs_activity(store, agents):
    task_id = tasks.create_task(store, "Write docs")
    entries = store.query("activities", {"task_id": task_id})
    assert [e["message"] for e in entries] == ["Task created: Write docs"]


def test_propose_creates_inbox_task(store, agents):
    horizon = agents["Horizon"]
    task_id = tasks.propose(store, "Scan news", "Daily scan", horizon.id, required_skills=["news"])
    task = tasks.get_task(store, task_id)
    assert task.status == "inbox"
    assert task.proposed_by == horizon.id
    assert task.created_by == Creator.agent(horizon.id)
    assert [t.id for t in tasks.get_proposed_by(store, horizon.id)] == [task_id]


def test_propose_without_rights(store, agents):
    finn = agents["Finn"]
    with pytest.raises(UnauthorizedError):
        tasks.propose(store, "Nope", "", finn.id)


def test_propose_unknown_agent(store, agents):
    with pytest.raises(NotFoundError):
        tasks.propose(store, "Nope", "", "agent-missing")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def test_start_task(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])
    task = tasks.start_task(store, task_id, scribe.id)
    assert task.status == "in_progress"


def test_start_task_requires_assignee(store, agents):
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[agents["Scribe"].id])
    with pytest.raises(InvalidStateError):
        tasks.start_task(store, task_id, agents["Vulture"].id)


def test_start_task_requires_assigned(store, agents):
    task_id = tasks.create_task(store, "Write docs")
    with pytest.raises(InvalidStateError):
        tasks.start_task(store, task_id, agents["Scribe"].id)


def test_complete_with_deliverable(store, agents, config):
    scribe = agents["Scribe"]
    finn = agents["Finn"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])
    tasks.start_task(store, task_id, scribe.id)

    result = tasks.complete_task(store, task_id, scribe.id, "# Docs\n\nDone.", config=config)

    task = tasks.get_task(store, task_id)
    assert task.status == "review"
    assert task.assignee_ids == [scribe.id]
    agent = roster.get_agent(store, scribe.id)
    assert agent.status == "idle"
    assert agent.current_task_id is None

    doc = documents.require_document(store, result["document_id"])
    assert doc.title == "Deliverable: Write docs"
    assert doc.type == "deliverable"
    assert doc.task_id == task_id
    assert doc.created_by == Creator.agent(scribe.id)
    assert _notes(store, finn) == ["Scribe completed: Write docs"]


def test_complete_without_deliverable(store, agents, config):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])
    result = tasks.complete_task(store, task_id, scribe.id, config=config)
    assert result == {"task_id": task_id, "document_id": None}


def test_complete_from_inbox_rejected(store, agents):
    task_id = tasks.create_task(store, "Write docs")
    with pytest.raises(InvalidStateError):
        tasks.complete_task(store, task_id, agents["Scribe"].id)


def test_complete_by_non_assignee_rejected(store, agents, config):
    scribe = agents["Scribe"]
    horizon = agents["Horizon"]
    research_id = tasks.create_task(store, "Research", assignee_ids=[horizon.id])
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])

    with pytest.raises(InvalidStateError, match="not assigned"):
        tasks.complete_task(store, task_id, horizon.id, config=config)

    assert tasks.get_task(store, task_id).status == "assigned"
    assert roster.get_agent(store, scribe.id).current_task_id == task_id
    agent = roster.get_agent(store, horizon.id)
    assert agent.status == "active"
    assert agent.current_task_id == research_id


def test_complete_releases_every_holder(store, agents, config):
    scribe = agents["Scribe"]
    horizon = agents["Horizon"]
    task_id = tasks.create_task(
        store, "Write docs", assignee_ids=[scribe.id, horizon.id]
    )

    tasks.complete_task(store, task_id, scribe.id, config=config)

    for agent_id in (scribe.id, horizon.id):
        agent = roster.get_agent(store, agent_id)
        assert agent.status == "idle"
        assert agent.current_task_id is None

def test_request_review(store, agents):
    scribe = agents["Scribe"]
    vulture = agents["Vulture"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])
    tasks.start_task(store, task_id, scribe.id)

    task = tasks.request_review(store, task_id, scribe.id, vulture.id, "please check")

    assert task.status == "review"
    assert "Review requested by Scribe: Write docs" in _notes(store, vulture)
    thread = messaging.messages_by_task(store, task_id)
    assert thread[-1]["message"].content == "@Vulture please check"
    assert thread[-1]["message"].mentions == [vulture.id]
    assert roster.get_agent(store, scribe.id).current_task_id is None


def test_request_review_from_inbox_rejected(store, agents):
    task_id = tasks.create_task(store, "Write docs")
    with pytest.raises(InvalidTransitionError):
        tasks.request_review(store, task_id, agents["Scribe"].id, agents["Vulture"].id, "x")


def test_approve(store, agents, config):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])
    tasks.complete_task(store, task_id, scribe.id, config=config)

    task = tasks.approve(store, task_id)

    assert task.status == "done"
    types = [r["type"] for r in store.query("activities", {"task_id": task_id})]
    assert types.count("task_completed") == 2


def test_approve_requires_review(store, agents):
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[agents["Scribe"].id])
    with pytest.raises(InvalidStateError):
        tasks.approve(store, task_id)


# ---------------------------------------------------------------------------
# Block / unblock
# ---------------------------------------------------------------------------


def test_block_and_unblock_restores_status(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])
    tasks.start_task(store, task_id, scribe.id)

    blocked = tasks.block(store, task_id, "waiting on API keys")
    assert blocked.status == "blocked"
    assert blocked.blocked_from == "in_progress"
    agent = roster.get_agent(store, scribe.id)
    assert agent.status == "blocked"
    assert agent.current_task_id == task_id

    restored = tasks.unblock(store, task_id)
    assert restored.status == "in_progress"
    assert restored.blocked_from is None
    assert roster.get_agent(store, scribe.id).status == "active"


def test_unblock_to_inbox_clears_assignees(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])
    tasks.block(store, task_id)

    task = tasks.unblock(store, task_id, to_status="inbox")

    assert task.status == "inbox"
    assert task.assignee_ids == []
    assert roster.get_agent(store, scribe.id).current_task_id is None
    _assert_assignment_invariant(store)


def test_block_unassigned_task_returns_to_inbox(store, agents):
    task_id = tasks.create_task(store, "Write docs")

    blocked = tasks.block(store, task_id)
    assert blocked.status == "blocked"
    assert blocked.assignee_ids == []
    assert blocked.blocked_from == "inbox"
    _assert_assignment_invariant(store)

    task = tasks.unblock(store, task_id)
    assert task.status == "inbox"
    _assert_assignment_invariant(store)

def test_unblock_requires_blocked(store, agents):
    task_id = tasks.create_task(store, "Write docs")
    with pytest.raises(InvalidStateError):
        tasks.unblock(store, task_id)


def test_block_notifies_subscribers(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])
    tasks.block(store, task_id)
    assert 'Task "Write docs" updated → blocked' in _notes(store, scribe)


# ---------------------------------------------------------------------------
# Generic update
# ---------------------------------------------------------------------------


def test_update_assigns_from_inbox(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs")

    task = tasks.update(store, task_id, status="assigned", assignee_ids=[scribe.id])

    assert task.status == "assigned"
    assert task.assignee_ids == [scribe.id]
    assert roster.get_agent(store, scribe.id).current_task_id == task_id
    assert "New task assigned: Write docs" in _notes(store, scribe)


def test_update_to_inbox_clears_assignees(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])

    task = tasks.update(store, task_id, status="inbox")

    assert task.assignee_ids == []
    agent = roster.get_agent(store, scribe.id)
    assert agent.status == "idle"
    assert agent.current_task_id is None
    _assert_assignment_invariant(store)


def test_update_back_from_review_reoccupies_assignee(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])
    tasks.start_task(store, task_id, scribe.id)

    tasks.update(store, task_id, status="review")
    assert roster.get_agent(store, scribe.id).current_task_id is None

    tasks.update(store, task_id, status="in_progress")
    agent = roster.get_agent(store, scribe.id)
    assert agent.status == "active"
    assert agent.current_task_id == task_id


def test_update_back_from_waiting_reoccupies_assignee(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])

    tasks.update(store, task_id, status="waiting")
    assert roster.get_agent(store, scribe.id).status == "idle"

    tasks.update(store, task_id, status="in_progress")
    agent = roster.get_agent(store, scribe.id)
    assert agent.status == "active"
    assert agent.current_task_id == task_id


def test_update_back_to_working_leaves_busy_assignee(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])
    tasks.update(store, task_id, status="review")
    other_id = tasks.create_task(store, "Edit wiki", assignee_ids=[scribe.id])

    tasks.update(store, task_id, status="in_progress")

    assert roster.get_agent(store, scribe.id).current_task_id == other_id

def test_update_assign_without_status_change_rejected(store, agents):
    """Adding assignees to an inbox task must come with a status change."""
    task_id = tasks.create_task(store, "Write docs")
    with pytest.raises(InvalidStateError):
        tasks.update(store, task_id, assignee_ids=[agents["Scribe"].id])
    _assert_assignment_invariant(store)


def test_update_invalid_transition(store, agents):
    task_id = tasks.create_task(store, "Write docs")
    with pytest.raises(InvalidTransitionError):
        tasks.update(store, task_id, status="done")


def test_update_unknown_field(store, agents):
    task_id = tasks.create_task(store, "Write docs")
    with pytest.raises(ValueError):
        tasks.update(store, task_id, run_id="abc")


def test_update_logs_status_change(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])
    tasks.update(store, task_id, status="in_progress")

    entries = [
        r for r in store.query("activities", {"task_id": task_id})
        if r["type"] == "task_updated"
    ]
    assert entries[-1]["message"] == "Task moved from assigned to in_progress"
    assert entries[-1]["metadata"] == {"old_status": "assigned", "new_status": "in_progress"}


def test_update_title_only(store, agents):
    task_id = tasks.create_task(store, "Write docs")
    task = tasks.update(store, task_id, title="Write better docs")
    assert task.title == "Write better docs"
    assert task.status == "inbox"


def test_remove_releases_holders(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])
    assert tasks.remove(store, task_id)
    assert tasks.get_task(store, task_id) is None
    assert roster.get_agent(store, scribe.id).current_task_id is None


def test_task_detail(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])
    messaging.create_message(store, task_id, "first")
    messaging.create_message(store, task_id, "second")

    detail = tasks.get_task_detail(store, task_id)

    assert detail["task"].id == task_id
    assert [a.name for a in detail["assignees"]] == ["Scribe"]
    assert [m.content for m in detail["messages"]] == ["second", "first"]
    assert tasks.get_task_detail(store, "task-missing") is None


def test_list_tasks_filters(store, agents):
    scribe = agents["Scribe"]
    tasks.create_task(store, "Inbox item")
    assigned = tasks.create_task(store, "Assigned item", assignee_ids=[scribe.id])
    assert [t.title for t in tasks.list_tasks(store, status="inbox")] == ["Inbox item"]
    assert [t.id for t in tasks.list_tasks(store, assignee_id=scribe.id)] == [assigned]
