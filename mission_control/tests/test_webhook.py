"""
Tests for engine/webhook.py

Validates:
- start creates an in_progress task assigned to the session's agent and is
  idempotent per run_id
- progress appends thread messages (tools plus partial response)
- end moves the run to review, files the output and notifies the operator
- error blocks the task and records the error
- Events for unknown runs are ignored
- Session resolution: name match, orchestrator fallback, persisted mapping
"""

import pytest

from mission_control.engine import webhook
from mission_control.engine.roster import require_agent


def _start(store, config, run_id="run-abcdef123", session_key="agent:vulture:main", **kw):
    return webhook.receive_event(
        store, run_id, "start", session_key,
        prompt=kw.pop("prompt", "Audit login flow"), source=kw.pop("source", "slack"),
        config=config, **kw,
    )


def test_start_creates_in_progress_task(store, agents, config):
    result = _start(store, config)

    assert result["agent_name"] == "Vulture"
    task = store.get("tasks", result["task_id"])
    assert task["title"] == "[slack] Audit login flow"
    assert task["status"] == "in_progress"
    assert task["assignee_ids"] == [agents["Vulture"].id]
    assert task["tags"] == ["automation", "slack"]
    assert task["run_id"] == "run-abcdef123"
    assert require_agent(store, agents["Vulture"].id).current_task_id == task["id"]


def test_start_is_idempotent(store, agents, config):
    first = _start(store, config)
    second = _start(store, config)
    assert first["task_id"] == second["task_id"]
    assert store.count("tasks") == 1


def test_start_without_prompt(store, agents, config):
    result = _start(store, config, prompt=None)
    assert store.get("tasks", result["task_id"])["title"] == "Run: run-abcd"


def test_progress_appends_messages(store, agents, config):
    task_id = _start(store, config)["task_id"]
    webhook.receive_event(
        store, "run-abcdef123", "progress", "agent:vulture:main",
        response="checking", tools_used=["grep", "read"], config=config,
    )
    webhook.receive_event(store, "run-abcdef123", "progress", "agent:vulture:main", config=config)

    contents = [m["content"] for m in store.query("messages", {"task_id": task_id})]
    assert contents == ["**Tools:** grep, read\n\nchecking", "Processing..."]


def test_end_moves_to_review(store, agents, config):
    task_id = _start(store, config)["task_id"]
    webhook.receive_event(
        store, "run-abcdef123", "end", "agent:vulture:main",
        response="No issues found", duration_ms=125_000, config=config,
    )

    assert store.get("tasks", task_id)["status"] == "review"
    vulture = require_agent(store, agents["Vulture"].id)
    assert vulture.status == "idle"
    assert vulture.current_task_id is None

    messages = store.query("messages", {"task_id": task_id})
    assert messages[-1]["content"] == "**Complete (2m 5s)**\n\nNo issues found"
    outputs = store.query("documents", {"task_id": task_id})
    assert [(d["type"], d["title"]) for d in outputs] == [
        ("deliverable", "Output: [slack] Audit login flow"),
    ]
    finn_notes = store.query("notifications", {"mentioned_agent_id": agents["Finn"].id})
    assert [n["content"] for n in finn_notes] == ["Run complete: [slack] Audit login flow"]


def test_error_blocks_task(store, agents, config):
    task_id = _start(store, config)["task_id"]
    webhook.receive_event(
        store, "run-abcdef123", "error", "agent:vulture:main",
        error="timeout", config=config,
    )

    task = store.get("tasks", task_id)
    assert task["status"] == "blocked"
    assert task["blocked_from"] == "in_progress"
    assert require_agent(store, agents["Vulture"].id).status == "blocked"
    assert store.query("messages", {"task_id": task_id})[-1]["content"] == (
        "**Error**\n\n```\ntimeout\n```"
    )


def test_unknown_run_ignored(store, agents, config):
    result = webhook.receive_event(
        store, "run-unknown", "end", "agent:scribe:main", response="x", config=config
    )
    assert result == {"task_id": None, "agent_name": "Scribe"}
    assert store.count("messages") == 0


def test_unknown_action(store, agents, config):
    with pytest.raises(ValueError, match="Unknown run action"):
        webhook.receive_event(store, "run-1", "restart", "agent:vulture:main", config=config)


def test_orchestrator_fallback(store, agents, config):
    agent = webhook.resolve_session_agent(store, "cli:session-42", config)
    assert agent.name == "Finn"


def test_mapping_persisted_and_preferred(store, agents, config):
    webhook.resolve_session_agent(store, "discord:horizon-bot", config)
    mapping = store.first("session_mappings", {"session_key": "discord:horizon-bot"})
    assert mapping["agent_id"] == agents["Horizon"].id

    store.patch("session_mappings", mapping["id"], {"agent_id": agents["Scribe"].id})
    assert webhook.resolve_session_agent(store, "discord:horizon-bot", config).name == "Scribe"


def test_run_stats_and_listing(store, agents, config):
    _start(store, config, run_id="run-1")
    second = _start(store, config, run_id="run-2", session_key="agent:scribe:main")["task_id"]
    webhook.receive_event(store, "run-2", "end", "agent:scribe:main", config=config)

    assert webhook.run_stats(store) == {"total": 2, "active": 1, "completed": 1, "errors": 0}
    assert webhook.list_run_tasks(store)[0].id == second
