#!/usr/bin/env python3
"""
Mission Control Database Schema

SQLite schema for the mission database. Includes:
- agents: the fixed roster with skills and the current-task slot
- tasks: board items moving through the lifecycle state machine
- messages: task thread comments and direct agent chat
- notifications: per-agent alert queue polled by the delivery daemon
- activities: append-only audit trail for the activity feed
- subscriptions: (agent, task) thread interest pairs
- documents: deliverables, notes and standups
- system_status: singleton pause flag
- session_mappings: external session key -> agent cache for webhook ingestion

Cross-table references are plain TEXT ids with no FOREIGN KEY constraints:
the store behaves as a document store, and drift between agents and tasks is
repaired by reconciliation, not by the database.

Schema version is stored in PRAGMA user_version. The migrate() function
applies schema changes incrementally and is idempotent.
"""

import sqlite3
from dataclasses import dataclass
from pathlib import Path

# Current schema version; increment when adding tables or columns
SCHEMA_VERSION = 1

# ---------------------------------------------------------------------------
# Connection helper
# ---------------------------------------------------------------------------


def open_db(db_path: str | Path) -> sqlite3.Connection:
    """
    Open (or create) the mission database with required PRAGMAs.

    Sets:
    - journal_mode=WAL: concurrent reads while a single writer holds the lock
    - busy_timeout=5000: retry on a locked DB for up to 5 seconds

    All write transactions must use BEGIN IMMEDIATE so that concurrent
    processes (MCP server, HTTP API, CLI) serialize instead of failing.
    """
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout = 5000")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


# ---------------------------------------------------------------------------
# Table metadata used by the Store for id generation and column encoding
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TableSpec:
    prefix: str                                  # id prefix, e.g. "task"
    json_columns: frozenset[str] = frozenset()   # list/dict values stored as JSON
    bool_columns: frozenset[str] = frozenset()   # stored as 0/1
    time_column: str = "created_at"              # default ordering column


TABLE_SPECS: dict[str, TableSpec] = {
    "agents": TableSpec(
        prefix="agent",
        json_columns=frozenset(["skills", "specialty"]),
        bool_columns=frozenset(["can_propose_tasks"]),
    ),
    "tasks": TableSpec(
        prefix="task",
        json_columns=frozenset(["assignee_ids", "required_skills", "tags"]),
    ),
    "messages": TableSpec(
        prefix="msg",
        json_columns=frozenset(["mentions", "attachments"]),
    ),
    "notifications": TableSpec(
        prefix="notif",
        bool_columns=frozenset(["delivered"]),
    ),
    "activities": TableSpec(
        prefix="act",
        json_columns=frozenset(["metadata"]),
    ),
    "subscriptions": TableSpec(prefix="sub", time_column="subscribed_at"),
    "documents": TableSpec(prefix="doc"),
    "system_status": TableSpec(
        prefix="sys",
        bool_columns=frozenset(["paused"]),
        time_column="updated_at",
    ),
    "session_mappings": TableSpec(prefix="map"),
}


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_AGENTS = """
CREATE TABLE IF NOT EXISTS agents (
    id                TEXT PRIMARY KEY,         -- e.g. "agent-3f9c0a1b2c4d"
    name              TEXT NOT NULL UNIQUE,     -- e.g. "Vulture"
    role              TEXT NOT NULL DEFAULT '',
    status            TEXT NOT NULL DEFAULT 'idle'
                          CHECK(status IN ('idle', 'active', 'blocked')),
    session_key       TEXT NOT NULL UNIQUE,     -- e.g. "agent:vulture:main"
    current_task_id   TEXT,
    last_heartbeat_at TEXT,
    last_proposed_at  TEXT,
    personality       TEXT NOT NULL DEFAULT '',
    specialty         TEXT,                     -- JSON array
    skills            TEXT,                     -- JSON array
    can_propose_tasks INTEGER NOT NULL DEFAULT 0 CHECK(can_propose_tasks IN (0, 1)),
    created_at        TEXT NOT NULL
)
"""

_CREATE_TASKS = """
CREATE TABLE IF NOT EXISTS tasks (
    id                  TEXT PRIMARY KEY,
    title               TEXT NOT NULL,
    description         TEXT NOT NULL DEFAULT '',
    status              TEXT NOT NULL DEFAULT 'inbox'
                            CHECK(status IN (
                                'inbox', 'assigned', 'in_progress', 'review',
                                'done', 'blocked', 'waiting'
                            )),
    priority            TEXT NOT NULL DEFAULT 'medium'
                            CHECK(priority IN ('low', 'medium', 'high', 'urgent')),
    assignee_ids        TEXT,                   -- JSON array of agent ids
    required_skills     TEXT,                   -- JSON array
    tags                TEXT,                   -- JSON array
    proposed_by         TEXT,                   -- agent id, when auto-proposed
    created_by_kind     TEXT NOT NULL DEFAULT 'operator'
                            CHECK(created_by_kind IN ('agent', 'operator')),
    created_by_agent_id TEXT,
    claimed_at          TEXT,
    due_date            TEXT,
    blocked_from        TEXT,                   -- status held before blocking
    run_id              TEXT,                   -- automation run id (webhook)
    session_key         TEXT,
    source              TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
)
"""

_CREATE_MESSAGES = """
CREATE TABLE IF NOT EXISTS messages (
    id            TEXT PRIMARY KEY,
    task_id       TEXT,                         -- NULL for direct agent chat
    from_kind     TEXT NOT NULL DEFAULT 'operator'
                      CHECK(from_kind IN ('agent', 'operator')),
    from_agent_id TEXT,
    content       TEXT NOT NULL,
    mentions      TEXT,                         -- JSON array of agent ids
    attachments   TEXT,                         -- JSON array of document ids
    created_at    TEXT NOT NULL
)
"""

_CREATE_NOTIFICATIONS = """
CREATE TABLE IF NOT EXISTS notifications (
    id                 TEXT PRIMARY KEY,
    mentioned_agent_id TEXT NOT NULL,
    content            TEXT NOT NULL,
    from_agent_id      TEXT,
    task_id            TEXT,
    message_id         TEXT,
    delivered          INTEGER NOT NULL DEFAULT 0 CHECK(delivered IN (0, 1)),
    delivery_attempts  INTEGER NOT NULL DEFAULT 0,
    created_at         TEXT NOT NULL,
    delivered_at       TEXT
)
"""

_CREATE_ACTIVITIES = """
CREATE TABLE IF NOT EXISTS activities (
    id         TEXT PRIMARY KEY,
    type       TEXT NOT NULL
                   CHECK(type IN (
                       'task_created', 'task_updated', 'task_completed',
                       'task_claimed', 'message_sent', 'document_created',
                       'document_updated', 'agent_heartbeat',
                       'agent_status_changed', 'mention', 'standup_generated'
                   )),
    agent_id   TEXT,
    task_id    TEXT,
    message    TEXT NOT NULL,
    metadata   TEXT,                            -- JSON object
    created_at TEXT NOT NULL
)
"""

_CREATE_SUBSCRIPTIONS = """
CREATE TABLE IF NOT EXISTS subscriptions (
    id            TEXT PRIMARY KEY,
    agent_id      TEXT NOT NULL,
    task_id       TEXT NOT NULL,
    subscribed_at TEXT NOT NULL,
    UNIQUE(agent_id, task_id)
)
"""

_CREATE_DOCUMENTS = """
CREATE TABLE IF NOT EXISTS documents (
    id                  TEXT PRIMARY KEY,
    title               TEXT NOT NULL,
    content             TEXT NOT NULL,          -- markdown
    type                TEXT NOT NULL
                            CHECK(type IN (
                                'deliverable', 'research', 'protocol', 'note', 'standup'
                            )),
    task_id             TEXT,
    created_by_kind     TEXT NOT NULL DEFAULT 'operator'
                            CHECK(created_by_kind IN ('agent', 'operator')),
    created_by_agent_id TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
)
"""

_CREATE_SYSTEM_STATUS = """
CREATE TABLE IF NOT EXISTS system_status (
    id         TEXT PRIMARY KEY,                -- always "system"
    paused     INTEGER NOT NULL DEFAULT 0 CHECK(paused IN (0, 1)),
    paused_at  TEXT,
    paused_by  TEXT,
    reason     TEXT,
    updated_at TEXT NOT NULL
)
"""

_CREATE_SESSION_MAPPINGS = """
CREATE TABLE IF NOT EXISTS session_mappings (
    id          TEXT PRIMARY KEY,
    session_key TEXT NOT NULL UNIQUE,
    agent_id    TEXT NOT NULL,
    created_at  TEXT NOT NULL
)
"""

# ---------------------------------------------------------------------------
# Indexes for common queries
# ---------------------------------------------------------------------------

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_created ON tasks(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_proposed_by ON tasks(proposed_by)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_title ON tasks(title)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_run ON tasks(run_id)",
    "CREATE INDEX IF NOT EXISTS idx_messages_task ON messages(task_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_messages_created ON messages(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_delivered "
    "ON notifications(mentioned_agent_id, delivered, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_activities_created ON activities(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_activities_agent ON activities(agent_id)",
    "CREATE INDEX IF NOT EXISTS idx_activities_task ON activities(task_id)",
    "CREATE INDEX IF NOT EXISTS idx_subscriptions_task ON subscriptions(task_id)",
    "CREATE INDEX IF NOT EXISTS idx_documents_type ON documents(type, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_documents_task ON documents(task_id)",
]

# All DDL in creation order
SCHEMA_STATEMENTS: list[str] = [
    _CREATE_AGENTS,
    _CREATE_TASKS,
    _CREATE_MESSAGES,
    _CREATE_NOTIFICATIONS,
    _CREATE_ACTIVITIES,
    _CREATE_SUBSCRIPTIONS,
    _CREATE_DOCUMENTS,
    _CREATE_SYSTEM_STATUS,
    _CREATE_SESSION_MAPPINGS,
    *_INDEXES,
]


# ---------------------------------------------------------------------------
# Migration runner
# ---------------------------------------------------------------------------


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Read the current schema version from PRAGMA user_version."""
    return conn.execute("PRAGMA user_version").fetchone()[0]


def set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Write schema version to PRAGMA user_version (no param binding — use f-string)."""
    conn.execute(f"PRAGMA user_version = {int(version)}")


def migrate(conn: sqlite3.Connection) -> None:
    """
    Apply schema migrations incrementally.

    Idempotent — safe to call on an existing database.

    Version history:
    0 → 1: Initial schema (agents, tasks, messages, notifications, activities,
            subscriptions, documents, system_status, session_mappings, indexes)
    """
    current = get_schema_version(conn)

    if current < 1:
        for stmt in SCHEMA_STATEMENTS:
            conn.execute(stmt)
        set_schema_version(conn, 1)
        conn.commit()


def create_db(db_path: str | Path) -> sqlite3.Connection:
    """
    Create or open a mission database, applying all migrations.

    Returns an open connection with WAL mode and busy_timeout=5000.
    The caller is responsible for closing it.
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = open_db(path)
    migrate(conn)
    return conn
