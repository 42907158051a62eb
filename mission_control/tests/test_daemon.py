"""
Tests for daemon/notifications.py

Validates:
- StoreClient speaks the query/mutation protocol of the HTTP API
- GatewayClient treats 2xx as delivered and non-2xx / transport errors as
  not delivered
- poll_once() marks only accepted notifications delivered; rejected ones stay
  queued, have their attempt counter bumped and are re-sent next tick
- Agents without a session key count as failures
- Session overrides from config replace roster session keys
- main() exits 1 when MISSION_CONTROL_URL is not configured
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from mission_control.api.app import create_app
from mission_control.daemon.notifications import (
    GatewayClient,
    NotificationDaemon,
    StoreClient,
    main,
)
from mission_control.engine import notifications


class RecordingGateway:
    """MockTransport handler recording sends; sessions in `reject` get a 503."""

    def __init__(self, reject=()):
        self.reject = set(reject)
        self.sent = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.sent.append((body["sessionKey"], body["message"]))
        if body["sessionKey"] in self.reject:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})


@pytest.fixture
def store_client(store, config, agents):
    with TestClient(create_app(store=store, mission_config=config)) as test_client:
        yield StoreClient("http://testserver", client=test_client)


def _gateway(handler):
    return GatewayClient(
        "http://gateway", client=httpx.Client(transport=httpx.MockTransport(handler))
    )


def _daemon(store_client, handler, **kwargs):
    return NotificationDaemon(store_client, _gateway(handler), sleep=lambda _: None, **kwargs)


def test_store_client_round_trip(store_client, agents):
    sessions = store_client.query("daemon:getAgentSessions")
    assert {s["name"] for s in sessions} == {"Finn", "Vulture", "Scribe", "Horizon"}

    note_id = store_client.mutation(
        "notifications:create", {"mentioned_agent_id": agents["Scribe"].id, "content": "hi"}
    )
    assert [n["id"] for n in store_client.query("daemon:getUndelivered")] == [note_id]


def test_store_client_raises_on_error(store_client):
    with pytest.raises(httpx.HTTPStatusError):
        store_client.query("nope:nothing")


def test_gateway_send_outcomes():
    ok = _gateway(lambda request: httpx.Response(204))
    assert ok.send("agent:scribe:main", "hi") is True

    rejected = _gateway(lambda request: httpx.Response(500))
    assert rejected.send("agent:scribe:main", "hi") is False

    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    assert _gateway(unreachable).send("agent:scribe:main", "hi") is False


def test_poll_delivers_and_marks(store_client, store, agents):
    first = notifications.create_notification(store, agents["Scribe"].id, "one")
    second = notifications.create_notification(store, agents["Vulture"].id, "two")
    gateway = RecordingGateway()
    daemon = _daemon(store_client, gateway)

    assert daemon.poll_once() == {"delivered": 2, "failed": 0}
    assert sorted(gateway.sent) == [("agent:scribe:main", "one"), ("agent:vulture:main", "two")]
    assert notifications.get_notification(store, first).delivered
    assert notifications.get_notification(store, second).delivered

    # Nothing left to send
    assert daemon.poll_once() == {"delivered": 0, "failed": 0}
    assert len(gateway.sent) == 2


def test_rejected_delivery_requeued(store_client, store, agents):
    note_id = notifications.create_notification(store, agents["Scribe"].id, "retry me")
    gateway = RecordingGateway(reject={"agent:scribe:main"})
    daemon = _daemon(store_client, gateway)

    assert daemon.poll_once() == {"delivered": 0, "failed": 1}
    assert daemon.poll_once() == {"delivered": 0, "failed": 1}

    note = notifications.get_notification(store, note_id)
    assert note.delivered is False
    assert note.delivery_attempts == 2
    assert gateway.sent == [("agent:scribe:main", "retry me")] * 2

    gateway.reject.clear()
    assert daemon.poll_once() == {"delivered": 1, "failed": 0}
    assert notifications.get_notification(store, note_id).delivered


def test_missing_session_counts_as_failure(store_client, store, agents):
    note_id = notifications.create_notification(store, agents["Scribe"].id, "hello")
    gateway = RecordingGateway()
    daemon = _daemon(store_client, gateway)
    daemon.load_agent_sessions()
    daemon.sessions.pop(agents["Scribe"].id)
    # Refresh on miss finds the agent again
    assert daemon.poll_once() == {"delivered": 1, "failed": 0}

    daemon.sessions = {}
    daemon.load_agent_sessions = lambda: {}
    notifications.create_notification(store, agents["Scribe"].id, "orphan")
    assert daemon.poll_once() == {"delivered": 0, "failed": 1}
    assert notifications.get_notification(store, note_id).delivered


def test_session_overrides(store_client, store, agents):
    notifications.create_notification(store, agents["Vulture"].id, "alt")
    gateway = RecordingGateway()
    daemon = _daemon(store_client, gateway, session_overrides={"Vulture": "agent:vulture:alt"})

    daemon.poll_once()

    assert gateway.sent == [("agent:vulture:alt", "alt")]


def test_run_bounded_ticks(store_client, store, agents):
    notifications.create_notification(store, agents["Horizon"].id, "tick")
    gateway = RecordingGateway()
    sleeps = []
    daemon = NotificationDaemon(store_client, _gateway(gateway), poll_interval=0.5, sleep=sleeps.append)

    daemon.run(max_ticks=3)

    assert len(gateway.sent) == 1
    assert sleeps == [0.5, 0.5]


def test_run_survives_store_errors():
    def broken(request):
        return httpx.Response(500)

    store_client = StoreClient(
        "http://store", client=httpx.Client(transport=httpx.MockTransport(broken))
    )
    daemon = NotificationDaemon(store_client, _gateway(RecordingGateway()), sleep=lambda _: None)
    daemon.run(max_ticks=2)


def test_main_requires_store_url(tmp_path, monkeypatch):
    monkeypatch.delenv("MISSION_CONTROL_URL", raising=False)
    with pytest.raises(SystemExit) as exc_info:
        main(["--project-root", str(tmp_path)])
    assert exc_info.value.code == 1
