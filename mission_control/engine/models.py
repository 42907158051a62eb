#!/usr/bin/env python3
"""
Mission Control Data Models

Typed dataclasses for the domain objects stored by the engine. Rows come back
from the Store as plain dicts with JSON columns already decoded; each model
builds itself from such a dict via from_row().

Timestamps are ISO-8601 UTC strings with microsecond precision, so lexical
order equals chronological order in SQL ORDER BY clauses.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Format a datetime as a sortable UTC timestamp string."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def now_iso() -> str:
    return to_iso(utc_now())


def parse_iso(value: str) -> datetime:
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


# ---------------------------------------------------------------------------
# Status constants
# ---------------------------------------------------------------------------


class TaskStatus:
    INBOX = "inbox"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"
    BLOCKED = "blocked"
    WAITING = "waiting"

    ALL = frozenset([
        INBOX, ASSIGNED, IN_PROGRESS, REVIEW, DONE, BLOCKED, WAITING,
    ])

    # Board column order
    ORDERED = (INBOX, ASSIGNED, IN_PROGRESS, REVIEW, DONE, BLOCKED, WAITING)

    # Statuses in which an agent is actively holding the task
    WORKING = frozenset([ASSIGNED, IN_PROGRESS])

    # inbox <=> no assignees holds for these; holding states keep their assignees
    ASSIGNMENT_CHECKED = frozenset([INBOX, ASSIGNED, IN_PROGRESS, REVIEW])

    TERMINAL = frozenset([DONE])


class TaskPriority:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    ALL = frozenset([LOW, MEDIUM, HIGH, URGENT])


class AgentStatus:
    IDLE = "idle"
    ACTIVE = "active"
    BLOCKED = "blocked"

    ALL = frozenset([IDLE, ACTIVE, BLOCKED])


class ActivityType:
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_COMPLETED = "task_completed"
    TASK_CLAIMED = "task_claimed"
    MESSAGE_SENT = "message_sent"
    DOCUMENT_CREATED = "document_created"
    DOCUMENT_UPDATED = "document_updated"
    AGENT_HEARTBEAT = "agent_heartbeat"
    AGENT_STATUS_CHANGED = "agent_status_changed"
    MENTION = "mention"
    STANDUP_GENERATED = "standup_generated"

    ALL = frozenset([
        TASK_CREATED, TASK_UPDATED, TASK_COMPLETED, TASK_CLAIMED,
        MESSAGE_SENT, DOCUMENT_CREATED, DOCUMENT_UPDATED, AGENT_HEARTBEAT,
        AGENT_STATUS_CHANGED, MENTION, STANDUP_GENERATED,
    ])


class DocumentType:
    DELIVERABLE = "deliverable"
    RESEARCH = "research"
    PROTOCOL = "protocol"
    NOTE = "note"
    STANDUP = "standup"

    ALL = frozenset([DELIVERABLE, RESEARCH, PROTOCOL, NOTE, STANDUP])


class CreatorKind:
    AGENT = "agent"
    OPERATOR = "operator"


# ---------------------------------------------------------------------------
# Creator: who authored a task, message or document
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Creator:
    """Either a roster agent or the human operator."""
    kind: str
    agent_id: str | None = None

    @classmethod
    def agent(cls, agent_id: str) -> "Creator":
        return cls(CreatorKind.AGENT, agent_id)

    @classmethod
    def operator(cls) -> "Creator":
        return cls(CreatorKind.OPERATOR)

    @property
    def is_operator(self) -> bool:
        return self.kind == CreatorKind.OPERATOR

    @classmethod
    def from_columns(cls, kind: str | None, agent_id: str | None) -> "Creator":
        if kind == CreatorKind.AGENT and agent_id:
            return cls.agent(agent_id)
        return cls.operator()


# ---------------------------------------------------------------------------
# Core dataclasses
# ---------------------------------------------------------------------------


@dataclass
class Agent:
    """A roster agent with a single current-task slot."""
    id: str
    name: str
    session_key: str
    role: str = ""
    status: str = AgentStatus.IDLE
    skills: list[str] = field(default_factory=list)
    can_propose_tasks: bool = False
    current_task_id: str | None = None
    last_heartbeat_at: str | None = None
    last_proposed_at: str | None = None
    personality: str = ""
    specialty: list[str] = field(default_factory=list)
    created_at: str | None = None

    def has_skills(self, required: list[str]) -> bool:
        """True when every required skill is in this agent's skill set."""
        return set(required or []) <= set(self.skills)

    @classmethod
    def from_row(cls, row: Any) -> "Agent":
        d = dict(row)
        return cls(
            id=d["id"],
            name=d["name"],
            session_key=d["session_key"],
            role=d.get("role") or "",
            status=d.get("status") or AgentStatus.IDLE,
            skills=list(d.get("skills") or []),
            can_propose_tasks=bool(d.get("can_propose_tasks")),
            current_task_id=d.get("current_task_id"),
            last_heartbeat_at=d.get("last_heartbeat_at"),
            last_proposed_at=d.get("last_proposed_at"),
            personality=d.get("personality") or "",
            specialty=list(d.get("specialty") or []),
            created_at=d.get("created_at"),
        )


@dataclass
class Task:
    """A work item on the board."""
    id: str
    title: str
    description: str = ""
    status: str = TaskStatus.INBOX
    priority: str = TaskPriority.MEDIUM
    assignee_ids: list[str] = field(default_factory=list)
    required_skills: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    proposed_by: str | None = None
    created_by: Creator = field(default_factory=Creator.operator)
    claimed_at: str | None = None
    due_date: str | None = None
    blocked_from: str | None = None     # status held before entering blocked
    run_id: str | None = None           # automation run that created the task
    session_key: str | None = None
    source: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def missing_skills(self, skills: list[str]) -> list[str]:
        """Required skills not covered by the given skill list."""
        have = set(skills)
        return [s for s in self.required_skills if s not in have]

    @classmethod
    def from_row(cls, row: Any) -> "Task":
        d = dict(row)
        return cls(
            id=d["id"],
            title=d["title"],
            description=d.get("description") or "",
            status=d["status"],
            priority=d.get("priority") or TaskPriority.MEDIUM,
            assignee_ids=list(d.get("assignee_ids") or []),
            required_skills=list(d.get("required_skills") or []),
            tags=list(d.get("tags") or []),
            proposed_by=d.get("proposed_by"),
            created_by=Creator.from_columns(
                d.get("created_by_kind"), d.get("created_by_agent_id")
            ),
            claimed_at=d.get("claimed_at"),
            due_date=d.get("due_date"),
            blocked_from=d.get("blocked_from"),
            run_id=d.get("run_id"),
            session_key=d.get("session_key"),
            source=d.get("source"),
            created_at=d.get("created_at"),
            updated_at=d.get("updated_at"),
        )


@dataclass
class Message:
    """A comment on a task thread, or a direct agent-to-agent message."""
    id: str
    content: str
    author: Creator = field(default_factory=Creator.operator)
    task_id: str | None = None
    mentions: list[str] = field(default_factory=list)
    attachments: list[str] = field(default_factory=list)
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Message":
        d = dict(row)
        return cls(
            id=d["id"],
            content=d["content"],
            author=Creator.from_columns(d.get("from_kind"), d.get("from_agent_id")),
            task_id=d.get("task_id"),
            mentions=list(d.get("mentions") or []),
            attachments=list(d.get("attachments") or []),
            created_at=d.get("created_at"),
        )


@dataclass
class Notification:
    """A queued alert for one agent, delivered at least once by the daemon."""
    id: str
    mentioned_agent_id: str
    content: str
    from_agent_id: str | None = None
    task_id: str | None = None
    message_id: str | None = None
    delivered: bool = False
    delivery_attempts: int = 0
    created_at: str | None = None
    delivered_at: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Notification":
        d = dict(row)
        return cls(
            id=d["id"],
            mentioned_agent_id=d["mentioned_agent_id"],
            content=d["content"],
            from_agent_id=d.get("from_agent_id"),
            task_id=d.get("task_id"),
            message_id=d.get("message_id"),
            delivered=bool(d.get("delivered")),
            delivery_attempts=int(d.get("delivery_attempts") or 0),
            created_at=d.get("created_at"),
            delivered_at=d.get("delivered_at"),
        )


@dataclass
class Activity:
    """Immutable audit event for the activity feed."""
    id: str
    type: str
    message: str
    agent_id: str | None = None
    task_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Activity":
        d = dict(row)
        return cls(
            id=d["id"],
            type=d["type"],
            message=d["message"],
            agent_id=d.get("agent_id"),
            task_id=d.get("task_id"),
            metadata=dict(d.get("metadata") or {}),
            created_at=d.get("created_at"),
        )


@dataclass
class Subscription:
    id: str
    agent_id: str
    task_id: str
    subscribed_at: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Subscription":
        d = dict(row)
        return cls(
            id=d["id"],
            agent_id=d["agent_id"],
            task_id=d["task_id"],
            subscribed_at=d.get("subscribed_at"),
        )


@dataclass
class Document:
    """Markdown artifact: deliverable, research, protocol, note or standup."""
    id: str
    title: str
    content: str
    type: str
    task_id: str | None = None
    created_by: Creator = field(default_factory=Creator.operator)
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Document":
        d = dict(row)
        return cls(
            id=d["id"],
            title=d["title"],
            content=d["content"],
            type=d["type"],
            task_id=d.get("task_id"),
            created_by=Creator.from_columns(
                d.get("created_by_kind"), d.get("created_by_agent_id")
            ),
            created_at=d.get("created_at"),
            updated_at=d.get("updated_at"),
        )


@dataclass
class SystemState:
    """The singleton pause flag. An absent row reads as not paused."""
    paused: bool = False
    paused_at: str | None = None
    paused_by: str | None = None
    reason: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "SystemState":
        d = dict(row)
        return cls(
            paused=bool(d.get("paused")),
            paused_at=d.get("paused_at"),
            paused_by=d.get("paused_by"),
            reason=d.get("reason"),
        )


# ---------------------------------------------------------------------------
# Roster definitions (from roster.yaml, used at runtime only, never stored)
# ---------------------------------------------------------------------------


@dataclass
class TaskTemplate:
    """A candidate task an agent may propose during its work cycle."""
    title: str
    description: str = ""
    priority: str = TaskPriority.MEDIUM
    required_skills: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)


@dataclass
class AgentDefinition:
    """A roster entry from roster.yaml."""
    name: str
    session_key: str
    role: str = ""
    personality: str = ""
    specialty: list[str] = field(default_factory=list)
    skills: list[str] = field(default_factory=list)
    can_propose_tasks: bool = False
    templates: list[TaskTemplate] = field(default_factory=list)


@dataclass
class MissionConfig:
    """Runtime configuration loaded from .mission/config.yaml and roster.yaml."""
    db_path: str = ".mission/mission.db"
    operator: AgentDefinition | None = None
    agents: list[AgentDefinition] = field(default_factory=list)
    orchestrator_name: str = "Finn"
    inbox_scan_limit: int = 10
    inbox_scan_order: str = "oldest_first"      # "oldest_first" or "newest_first"
    proposal_policy: str = "cooldown"           # "cooldown" or "random"
    proposal_cooldown_seconds: int = 3600
    proposal_probability: float = 0.3
    max_delivery_attempts: int = 0              # 0 = retry forever
    poll_interval_seconds: float = 2.0
    store_url: str | None = None
    gateway_url: str = "http://localhost:3000"
    request_timeout_seconds: float = 10.0
    session_overrides: dict[str, str] = field(default_factory=dict)

    @property
    def operator_name(self) -> str:
        return self.operator.name if self.operator else "Finn"

    def templates_for(self, agent_name: str) -> list[TaskTemplate]:
        for definition in self.agents:
            if definition.name == agent_name:
                return definition.templates
        return []


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def to_dict(obj: Any) -> Any:
    """Convert models (and containers of models) into JSON-ready structures."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, dict):
        return {k: to_dict(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_dict(v) for v in obj]
    return obj
