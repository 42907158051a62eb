"""
Tests for engine/messaging.py

Validates:
- A mention plus subscriber fan-out yields exactly two notifications for the
  mentioned subscriber and one new subscription for the agent author
- The author is never notified about its own reply
- Operator comments do not create subscriptions
- subscribe() is idempotent
- Direct messages notify the recipient and log the exchange
- Unknown task, author or mention raises NotFoundError
"""

import pytest

from mission_control.engine import messaging, notifications, tasks
from mission_control.engine.errors import NotFoundError
from mission_control.engine.models import Creator


def test_mention_and_subscriber_fan_out(store, agents):
    scribe = agents["Scribe"]
    vulture = agents["Vulture"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])
    subs_before = store.count("subscriptions")

    message_id = messaging.create_message(
        store,
        task_id,
        "Please add the error table",
        mentions=[scribe.id],
        author=Creator.agent(vulture.id),
    )

    created = store.query("notifications", {"message_id": message_id})
    assert len(created) == 2
    assert all(n["mentioned_agent_id"] == scribe.id for n in created)
    assert sorted(n["content"] for n in created) == [
        "New reply on subscribed task",
        "You were mentioned: Please add the error table...",
    ]
    assert store.count("subscriptions") == subs_before + 1
    subscribed = {s.agent_id for s in messaging.subscribers(store, task_id)}
    assert subscribed == {scribe.id, vulture.id}


def test_author_not_notified_of_own_reply(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs", assignee_ids=[scribe.id])

    message_id = messaging.create_message(
        store, task_id, "Progress update", author=Creator.agent(scribe.id)
    )

    assert store.query("notifications", {"message_id": message_id}) == []


def test_operator_comment_does_not_subscribe(store, agents):
    task_id = tasks.create_task(store, "Write docs")
    messaging.create_message(store, task_id, "Any takers?")
    assert store.count("subscriptions") == 0


def test_message_logs_activity(store, agents):
    task_id = tasks.create_task(store, "Write docs")
    messaging.create_message(store, task_id, "hello")
    entries = store.query("activities", {"type": "message_sent"})
    assert [e["message"] for e in entries] == ["New comment on task"]


def test_subscribe_idempotent(store, agents):
    task_id = tasks.create_task(store, "Write docs")
    first = messaging.subscribe(store, agents["Scribe"].id, task_id)
    second = messaging.subscribe(store, agents["Scribe"].id, task_id)
    assert first == second
    assert store.count("subscriptions") == 1


def test_unknown_task(store, agents):
    with pytest.raises(NotFoundError):
        messaging.create_message(store, "task-missing", "hello")


def test_unknown_mention(store, agents):
    task_id = tasks.create_task(store, "Write docs")
    with pytest.raises(NotFoundError):
        messaging.create_message(store, task_id, "hello", mentions=["agent-missing"])
    assert store.count("messages") == 0


def test_unknown_author(store, agents):
    task_id = tasks.create_task(store, "Write docs")
    with pytest.raises(NotFoundError):
        messaging.create_message(store, task_id, "hello", author=Creator.agent("agent-missing"))


def test_direct_message(store, agents):
    vulture = agents["Vulture"]
    scribe = agents["Scribe"]

    message_id = messaging.send_direct_message(store, vulture.id, scribe.id, "ping")

    row = store.get("messages", message_id)
    assert row["task_id"] is None
    assert row["content"] == "@Scribe ping"
    pending = notifications.undelivered_for_agent(store, scribe.id)
    assert [n.content for n in pending] == ["Vulture: ping..."]
    entries = store.query("activities", {"type": "message_sent"})
    assert entries[-1]["message"] == "Vulture → Scribe: ping..."


def test_messages_by_task_author_names(store, agents):
    scribe = agents["Scribe"]
    task_id = tasks.create_task(store, "Write docs")
    messaging.create_message(store, task_id, "from operator")
    messaging.create_message(store, task_id, "from scribe", author=Creator.agent(scribe.id))

    thread = messaging.messages_by_task(store, task_id)
    assert [(e["author_name"], e["message"].content) for e in thread] == [
        ("Operator", "from operator"),
        ("Scribe", "from scribe"),
    ]
