#!/usr/bin/env python3
"""
Mission Control Agent Roster

Bootstrap and lookup for the fixed agent roster. Agents are created from the
roster definitions in MissionConfig (see config.py) and are never deleted in
normal operation; the heartbeat, claim and completion paths mutate them.

The operator ("Finn" by default) is stored as an ordinary agent row so that
completion and review notifications have a recipient, but it cannot propose
tasks and does not run a work cycle.
"""

import logging
from typing import Any

from . import activity
from .errors import NotFoundError
from .models import (
    ActivityType,
    Agent,
    AgentDefinition,
    AgentStatus,
    Creator,
    MissionConfig,
    Task,
)
from .store import Store

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def list_agents(store: Store) -> list[Agent]:
    """All agents in roster (creation) order."""
    return [Agent.from_row(r) for r in store.query("agents")]


def get_agent(store: Store, agent_id: str) -> Agent | None:
    row = store.get("agents", agent_id)
    return Agent.from_row(row) if row else None


def require_agent(store: Store, agent_id: str) -> Agent:
    agent = get_agent(store, agent_id)
    if agent is None:
        raise NotFoundError("agent", agent_id)
    return agent


def get_agent_by_name(store: Store, name: str) -> Agent | None:
    row = store.first("agents", {"name": name})
    return Agent.from_row(row) if row else None


def get_agent_by_session_key(store: Store, session_key: str) -> Agent | None:
    row = store.first("agents", {"session_key": session_key})
    return Agent.from_row(row) if row else None


def resolve_agent(store: Store, ref: str) -> Agent:
    """Look an agent up by id, falling back to name."""
    agent = get_agent(store, ref) or get_agent_by_name(store, ref)
    if agent is None:
        raise NotFoundError("agent", ref)
    return agent


def creator_name(store: Store, creator: Creator) -> str:
    """Display name for a task/message/document author."""
    if creator.is_operator:
        return "Operator"
    agent = get_agent(store, creator.agent_id)
    return agent.name if agent else "Unknown"


def operator_agent(store: Store, config: MissionConfig) -> Agent | None:
    return get_agent_by_name(store, config.operator_name)


def get_agent_with_task(store: Store, agent_id: str) -> dict[str, Any]:
    """Agent plus its current task (None when idle or the task is gone)."""
    agent = require_agent(store, agent_id)
    current = None
    if agent.current_task_id:
        row = store.get("tasks", agent.current_task_id)
        current = Task.from_row(row) if row else None
    return {"agent": agent, "current_task": current}


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------


def _insert_agent(store: Store, definition: AgentDefinition) -> str:
    return store.insert(
        "agents",
        {
            "name": definition.name,
            "role": definition.role,
            "status": AgentStatus.IDLE,
            "session_key": definition.session_key,
            "personality": definition.personality,
            "specialty": definition.specialty,
            "skills": definition.skills,
            "can_propose_tasks": definition.can_propose_tasks,
        },
    )


def init_agents(store: Store, config: MissionConfig) -> dict[str, Any]:
    """
    Create every roster agent that does not exist yet.

    Idempotent: returns status "already_initialized" when nothing was created.
    """
    created = []
    for definition in config.agents:
        if get_agent_by_name(store, definition.name) is None:
            _insert_agent(store, definition)
            created.append(definition.name)

    if created:
        logger.info("Initialized agents: %s", ", ".join(created))
    return {
        "status": "initialized" if created else "already_initialized",
        "created": created,
        "count": store.count("agents"),
    }


def create_operator(store: Store, config: MissionConfig) -> dict[str, Any]:
    """Create the operator agent if missing."""
    existing = operator_agent(store, config)
    if existing is not None:
        return {"id": existing.id, "status": "already_exists"}

    definition = config.operator or AgentDefinition(
        name=config.operator_name,
        session_key="human:command:main",
        role="Command Center / Human Operator",
    )
    agent_id = _insert_agent(store, definition)
    logger.info("Created operator agent %s (%s)", definition.name, agent_id)
    return {"id": agent_id, "status": "created"}


def initialize_system(store: Store, config: MissionConfig) -> dict[str, Any]:
    """Create the operator and the roster agents."""
    operator = create_operator(store, config)
    agents = init_agents(store, config)
    return {"operator": operator, "agents": agents}


# ---------------------------------------------------------------------------
# Agent mutations
# ---------------------------------------------------------------------------


def update_agent_status(
    store: Store,
    agent_id: str,
    status: str,
    current_task_id: str | None = None,
) -> Agent:
    """
    Set an agent's status and current task slot.

    A None current_task_id clears the slot.
    """
    if status not in AgentStatus.ALL:
        raise ValueError(f"Unknown agent status: '{status}'")
    agent = require_agent(store, agent_id)
    store.patch("agents", agent_id, {"status": status, "current_task_id": current_task_id})
    activity.log(
        store,
        ActivityType.AGENT_STATUS_CHANGED,
        f"Agent {agent.name} status changed to {status}",
        agent_id=agent_id,
        metadata={"old_status": agent.status, "new_status": status},
    )
    return require_agent(store, agent_id)


def update_skills(
    store: Store,
    agent_id: str,
    skills: list[str],
    can_propose_tasks: bool | None = None,
) -> Agent:
    require_agent(store, agent_id)
    fields: dict[str, Any] = {"skills": list(skills)}
    if can_propose_tasks is not None:
        fields["can_propose_tasks"] = can_propose_tasks
    store.patch("agents", agent_id, fields)
    return require_agent(store, agent_id)


def update_session_key(store: Store, name: str, session_key: str) -> Agent:
    agent = get_agent_by_name(store, name)
    if agent is None:
        raise NotFoundError("agent", name)
    store.patch("agents", agent.id, {"session_key": session_key})
    return require_agent(store, agent.id)
