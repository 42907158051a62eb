#!/usr/bin/env python3
"""
Mission Control Agent Work Cycle

One heartbeat runs these steps for a single agent, in order:

1. Pause check: when the system is paused only last_heartbeat_at is
   stamped and the cycle returns {"status": "paused"}.
2. Inbox scan: an agent that can propose and holds no task claims the first
   eligible inbox task (see claim.claim_next). At most one claim per cycle.
3. Resume: if the agent held an assigned task when the cycle began, it is
   started (assigned -> in_progress). A task claimed in step 2 is therefore
   started on the next heartbeat, not this one.
4. Proposal: only when nothing was claimed and the agent can propose. A
   policy gate (cooldown since last proposal, or a random draw) decides
   whether the agent proposes this cycle; if it does, every catalog template
   whose title is not already on the board becomes an inbox task. The
   cooldown clock (last_proposed_at) only restarts when at least one task
   was actually proposed.
5. Stamp last_heartbeat_at and log agent_heartbeat.

The clock (`now`) and random source (`rng`) are injectable for tests.
"""

import logging
import random
from datetime import datetime
from typing import Any, Protocol

from . import activity, system, tasks
from .claim import ClaimSuccess, claim_next
from .config import default_mission_config
from .models import (
    ActivityType,
    Agent,
    MissionConfig,
    TaskStatus,
    TaskTemplate,
    parse_iso,
    to_iso,
    utc_now,
)
from .roster import list_agents, resolve_agent
from .store import Store

logger = logging.getLogger(__name__)


class RandomSource(Protocol):
    def random(self) -> float: ...


# ---------------------------------------------------------------------------
# Proposal gate
# ---------------------------------------------------------------------------


def proposal_gate_open(
    agent: Agent,
    config: MissionConfig,
    now: datetime,
    rng: RandomSource | None = None,
) -> bool:
    """Decide whether the agent may propose work this cycle."""
    if config.proposal_policy == "random":
        return (rng or random).random() < config.proposal_probability
    if agent.last_proposed_at is None:
        return True
    elapsed = (now - parse_iso(agent.last_proposed_at)).total_seconds()
    return elapsed >= config.proposal_cooldown_seconds


def propose_templates(store: Store, agent: Agent, templates: list[TaskTemplate]) -> int:
    """Propose every template whose title is not on the board yet. Returns the count."""
    count = 0
    for template in templates:
        if tasks.find_by_title(store, template.title) is not None:
            continue
        tasks.propose(
            store,
            template.title,
            template.description,
            agent.id,
            priority=template.priority,
            required_skills=template.required_skills,
            tags=template.tags,
        )
        count += 1
    return count


# ---------------------------------------------------------------------------
# Heartbeat
# ---------------------------------------------------------------------------


def heartbeat(
    store: Store,
    agent_ref: str,
    config: MissionConfig | None = None,
    now: datetime | None = None,
    rng: RandomSource | None = None,
) -> dict[str, Any]:
    """
    Run one work cycle for an agent.

    Args:
        store: Open store
        agent_ref: Agent id or name
        config: Work-cycle tuning and template catalogs (default roster if None)
        now: Clock override
        rng: Random source for the "random" proposal policy

    Returns:
        {"status": "paused", "agent", "agent_id"} or
        {"status": "active", "agent", "agent_id", "tasks_claimed",
         "tasks_proposed", "messages_sent"}

    Raises:
        NotFoundError: agent does not exist
    """
    config = config or default_mission_config()
    now = now or utc_now()
    stamp = to_iso(now)
    agent = resolve_agent(store, agent_ref)

    if system.is_paused(store):
        store.patch("agents", agent.id, {"last_heartbeat_at": stamp})
        logger.debug("Heartbeat for %s skipped: system paused", agent.name)
        return {"status": "paused", "agent": agent.name, "agent_id": agent.id}

    tasks_claimed = 0
    tasks_proposed = 0

    # 1. Inbox scan
    if agent.can_propose_tasks and not agent.current_task_id:
        result = claim_next(
            store,
            agent,
            limit=config.inbox_scan_limit,
            order=config.inbox_scan_order,
            now=now,
        )
        if isinstance(result, ClaimSuccess):
            tasks_claimed = 1

    # 2. Resume the task held at the start of the cycle
    if agent.current_task_id:
        current = tasks.get_task(store, agent.current_task_id)
        if (
            current is not None
            and current.status == TaskStatus.ASSIGNED
            and agent.id in current.assignee_ids
        ):
            tasks.start_task(store, current.id, agent.id)

    # 3. Propose new work
    if agent.can_propose_tasks and tasks_claimed == 0:
        if proposal_gate_open(agent, config, now, rng):
            tasks_proposed = propose_templates(store, agent, config.templates_for(agent.name))
            if tasks_proposed:
                store.patch("agents", agent.id, {"last_proposed_at": stamp})

    # 4. Stamp
    store.patch("agents", agent.id, {"last_heartbeat_at": stamp})
    activity.log(
        store,
        ActivityType.AGENT_HEARTBEAT,
        f"{agent.name} heartbeat",
        agent_id=agent.id,
        created_at=stamp,
    )

    return {
        "status": "active",
        "agent": agent.name,
        "agent_id": agent.id,
        "tasks_claimed": tasks_claimed,
        "tasks_proposed": tasks_proposed,
        "messages_sent": 0,
    }


def run_heartbeats(
    store: Store,
    config: MissionConfig | None = None,
    names: list[str] | None = None,
    now: datetime | None = None,
    rng: RandomSource | None = None,
) -> list[dict[str, Any]]:
    """
    Heartbeat every roster agent (or the named ones), skipping the operator.

    A failure for one agent is logged and returned as {"agent", "error"};
    it never stops the remaining agents.
    """
    config = config or default_mission_config()
    refs = names or [
        a.name for a in list_agents(store) if a.name != config.operator_name
    ]

    results = []
    for ref in refs:
        try:
            results.append(heartbeat(store, ref, config=config, now=now, rng=rng))
        except Exception as exc:
            logger.exception("Heartbeat failed for agent %s", ref)
            results.append({"agent": ref, "error": str(exc)})
    return results
