"""
Tests for engine/store.py

Validates:
- insert() generates prefixed ids and stamps the time column
- JSON and boolean columns round-trip as Python values
- patch_if() applies only when every expectation holds (compare-and-set)
- query() filters by equality, treats None as IS NULL, orders by time with
  insertion order breaking ties, and honours since/limit
- Unknown tables and columns are rejected before any SQL is built
- Concurrent compare-and-set from two threads lets exactly one writer win
"""

import threading

import pytest

from mission_control.engine.store import Store


def _task(store, title, status="inbox", **extra):
    return store.insert(
        "tasks",
        {
            "title": title,
            "status": status,
            "priority": "medium",
            "assignee_ids": [],
            "required_skills": [],
            "tags": [],
            "created_by_kind": "operator",
            "updated_at": "2026-01-01T00:00:00.000000+00:00",
            **extra,
        },
    )


def test_insert_generates_prefixed_id(store):
    task_id = _task(store, "A")
    assert task_id.startswith("task-")
    row = store.get("tasks", task_id)
    assert row["title"] == "A"
    assert row["created_at"]


def test_json_columns_round_trip(store):
    task_id = _task(store, "A", required_skills=["jwt", "auth"], tags=["security"])
    row = store.get("tasks", task_id)
    assert row["required_skills"] == ["jwt", "auth"]
    assert row["tags"] == ["security"]


def test_bool_columns_round_trip(store):
    note_id = store.insert(
        "notifications",
        {"mentioned_agent_id": "agent-x", "content": "hi", "delivered": False},
    )
    assert store.get("notifications", note_id)["delivered"] is False
    store.patch("notifications", note_id, {"delivered": True})
    assert store.get("notifications", note_id)["delivered"] is True


def test_get_missing_returns_none(store):
    assert store.get("tasks", "task-missing") is None


def test_patch_if_applies_when_expectation_holds(store):
    task_id = _task(store, "A")
    assert store.patch_if("tasks", task_id, {"status": "inbox"}, {"status": "assigned"})
    assert store.get("tasks", task_id)["status"] == "assigned"


def test_patch_if_rejects_when_expectation_fails(store):
    task_id = _task(store, "A", status="review")
    assert not store.patch_if("tasks", task_id, {"status": "inbox"}, {"status": "assigned"})
    assert store.get("tasks", task_id)["status"] == "review"


def test_patch_missing_row_returns_false(store):
    assert store.patch("tasks", "task-missing", {"title": "x"}) is False


def test_increment(store):
    note_id = store.insert(
        "notifications",
        {"mentioned_agent_id": "agent-x", "content": "hi", "delivered": False},
    )
    store.increment("notifications", note_id, "delivery_attempts")
    store.increment("notifications", note_id, "delivery_attempts")
    assert store.get("notifications", note_id)["delivery_attempts"] == 2


def test_delete(store):
    task_id = _task(store, "A")
    assert store.delete("tasks", task_id)
    assert store.get("tasks", task_id) is None
    assert not store.delete("tasks", task_id)


def test_query_orders_by_insertion_on_equal_timestamps(store):
    stamp = "2026-01-01T00:00:00.000000+00:00"
    ids = [_task(store, f"T{i}", created_at=stamp) for i in range(3)]
    assert [r["id"] for r in store.query("tasks")] == ids
    assert [r["id"] for r in store.query("tasks", order="desc")] == list(reversed(ids))


def test_query_filters_and_limit(store):
    _task(store, "A")
    _task(store, "B", status="review")
    _task(store, "C")
    rows = store.query("tasks", {"status": "inbox"}, limit=1)
    assert [r["title"] for r in rows] == ["A"]
    assert store.count("tasks", {"status": "inbox"}) == 2


def test_query_none_matches_null(store):
    store.insert("agents", {"name": "Idle", "session_key": "k1", "status": "idle"})
    busy = store.insert("agents", {"name": "Busy", "session_key": "k2", "status": "active"})
    store.patch("agents", busy, {"current_task_id": "task-1"})
    rows = store.query("agents", {"current_task_id": None})
    assert [r["name"] for r in rows] == ["Idle"]


def test_query_since(store):
    _task(store, "old", created_at="2026-01-01T00:00:00.000000+00:00")
    _task(store, "new", created_at="2026-01-02T00:00:00.000000+00:00")
    rows = store.query("tasks", since="2026-01-01T12:00:00.000000+00:00")
    assert [r["title"] for r in rows] == ["new"]


def test_unknown_table_rejected(store):
    with pytest.raises(ValueError, match="Unknown table"):
        store.query("tickets")


def test_unknown_column_rejected(store):
    with pytest.raises(ValueError, match="Unknown column"):
        store.query("tasks", {"status; DROP TABLE tasks": "x"})


def test_invalid_order_rejected(store):
    with pytest.raises(ValueError):
        store.query("tasks", order="sideways")


def test_concurrent_compare_and_set_single_winner(tmp_path):
    """Two stores on one file racing patch_if: exactly one succeeds."""
    db_path = tmp_path / "race.db"
    setup = Store.open(db_path)
    task_id = _task(setup, "Contested")
    setup.close()

    results = []
    barrier = threading.Barrier(2)

    def worker(name):
        s = Store.open(db_path)
        try:
            barrier.wait()
            won = s.patch_if(
                "tasks", task_id, {"status": "inbox"},
                {"status": "assigned", "assignee_ids": [name]},
            )
            results.append((name, won))
        finally:
            s.close()

    threads = [threading.Thread(target=worker, args=(n,)) for n in ("agent-a", "agent-b")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(won for _, won in results) == [False, True]
    check = Store.open(db_path)
    try:
        winner = next(name for name, won in results if won)
        assert check.get("tasks", task_id)["assignee_ids"] == [winner]
    finally:
        check.close()
