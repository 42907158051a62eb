"""
Tests for server/server.py

Validates:
- MissionServer bootstraps the roster on open
- Tools accept agent names as well as ids
- claim -> start -> complete through the server methods
- get_notifications with mark_read acknowledges what it returned
- _respond() turns engine errors into {"error": ...} payloads
- create_mcp_server() builds a FastMCP instance
"""

import json

import pytest

from mission_control.engine.errors import NotFoundError
from mission_control.server.server import MissionServer, _respond, create_mcp_server


@pytest.fixture
def ms(tmp_path, monkeypatch):
    monkeypatch.delenv("MISSION_CONTROL_DB", raising=False)
    server = MissionServer(str(tmp_path / "mission.db"), str(tmp_path))
    yield server
    server.close()


def _inbox_task(ms, title="Review auth", skills=None):
    from mission_control.engine import tasks

    return tasks.create_task(ms.store, title, required_skills=skills or ["security"])


def test_roster_bootstrapped(ms):
    names = [a["name"] for a in ms.list_agents()]
    assert names == ["Finn", "Vulture", "Scribe", "Horizon"]


def test_claim_start_complete_by_name(ms):
    task_id = _inbox_task(ms)

    claimed = ms.claim_task(task_id, "Vulture")
    assert claimed["success"] is True
    assert claimed["title"] == "Review auth"

    assert ms.start_task(task_id, "Vulture") == {"task_id": task_id, "status": "in_progress"}

    done = ms.complete_task(task_id, "Vulture", deliverable="All good")
    assert done["task_id"] == task_id
    assert done["document_id"]
    assert ms.get_task(task_id)["task"]["status"] == "review"


def test_unknown_agent_raises(ms):
    task_id = _inbox_task(ms)
    with pytest.raises(NotFoundError):
        ms.claim_task(task_id, "Nobody")


def test_send_message_mentions_by_name(ms):
    task_id = _inbox_task(ms)
    ms.send_message(task_id, "Can you look?", agent="Horizon", mentions=["Scribe"])

    pending = ms.get_notifications("Scribe")
    assert [n["content"] for n in pending] == ["You were mentioned: Can you look?..."]


def test_get_notifications_mark_read(ms):
    ms.send_direct_message("Vulture", "Scribe", "ping")

    first = ms.get_notifications("Scribe", mark_read=True)
    assert len(first) == 1
    assert ms.get_notifications("Scribe") == []
    history = ms.get_notifications("Scribe", include_delivered=True)
    assert [n["delivered"] for n in history] == [True]


def test_get_task_missing(ms):
    assert ms.get_task("task-missing") == {"error": "Task not found: 'task-missing'"}


def test_heartbeat_by_name(ms):
    result = ms.heartbeat("Horizon")
    assert result["status"] == "active"
    assert result["agent"] == "Horizon"


def test_status_and_board(ms):
    _inbox_task(ms)
    assert ms.get_status()["task_counts"]["inbox"] == 1
    assert len(ms.get_board()["inbox"]) == 1


def test_respond_encodes_errors():
    def failing():
        raise NotFoundError("task", "task-x")

    assert json.loads(_respond(failing)) == {"error": "Task not found: 'task-x'"}
    assert json.loads(_respond(lambda: {"ok": True})) == {"ok": True}


def test_create_mcp_server(tmp_path, monkeypatch):
    monkeypatch.delenv("MISSION_CONTROL_DB", raising=False)
    mcp = create_mcp_server(str(tmp_path / "mission.db"), str(tmp_path))
    assert mcp.name == "mission-control"
