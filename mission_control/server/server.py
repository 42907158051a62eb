#!/usr/bin/env python3
"""
Mission Control MCP Server

FastMCP server exposing the task lifecycle to agents via MCP tools.
Supports both stdio (local agent sessions) and SSE (networked) transports.

Usage (stdio mode):
    mission-control-mcp .mission/mission.db --project-root <path>

Usage (SSE mode):
    mission-control-mcp .mission/mission.db --project-root <path> --transport sse --port 8080

Usage (CLI smoke-test):
    mission-control-mcp .mission/mission.db --project-root <path> <command>

MCP Tools exposed:
    heartbeat            — run one work cycle for an agent
    get_inbox            — list unclaimed inbox tasks
    claim_task           — claim an inbox task (skill-checked, race-safe)
    start_task           — assigned -> in_progress
    propose_task         — agent-originated inbox task
    complete_task        — move to review, optionally filing a deliverable
    request_review       — ask another agent to review a task
    send_message         — comment on a task thread
    send_direct_message  — task-less message to another agent
    get_notifications    — an agent's notification queue
    get_task             — task with assignees, messages and documents
    list_agents          — roster with status and current task

MCP Resources:
    mission://status          — system status summary
    mission://board           — tasks grouped by status
    mission://task/{task_id}  — full task state

Agents may be referenced by id or by name in every tool.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable

from mcp.server.fastmcp import FastMCP

from mission_control.engine import (
    claim as claim_mod,
    messaging,
    notifications,
    reconcile,
    reports,
    roster,
    tasks,
    work_cycle,
)
from mission_control.engine.config import load_mission_config
from mission_control.engine.errors import MissionControlError
from mission_control.engine.models import Creator, TaskPriority, to_dict
from mission_control.engine.store import Store

logger = logging.getLogger(__name__)


class MissionServer:
    """
    Mission Control server wrapping the store.

    Owns the database connection and exposes the agent-facing operations.
    The FastMCP tools delegate to this class.
    """

    def __init__(self, db_path: str, project_root: str):
        self.db_path = db_path
        self.project_root = Path(project_root)
        self.config = load_mission_config(project_root)
        self.store = Store.open(db_path)
        roster.initialize_system(self.store, self.config)

    def close(self) -> None:
        """Close the database connection."""
        self.store.close()

    def _agent_id(self, ref: str) -> str:
        return roster.resolve_agent(self.store, ref).id

    # -----------------------------------------------------------------------
    # Work cycle and claiming
    # -----------------------------------------------------------------------

    def heartbeat(self, agent: str) -> dict[str, Any]:
        return work_cycle.heartbeat(self.store, agent, config=self.config)

    def get_inbox(self, limit: int = 20) -> list[dict[str, Any]]:
        return to_dict(tasks.get_inbox(self.store, limit=limit))

    def claim_task(self, task_id: str, agent: str) -> dict[str, Any]:
        """
        Claim an inbox task.

        Returns:
            {success, task_id, title, agent_id, message}
        """
        result = claim_mod.claim(self.store, task_id, self._agent_id(agent))
        return {
            "success": True,
            "task_id": result.task.id,
            "title": result.task.title,
            "agent_id": result.agent_id,
            "message": f"Claimed '{result.task.title}'. Call start_task when you begin work.",
        }

    def start_task(self, task_id: str, agent: str) -> dict[str, Any]:
        task = tasks.start_task(self.store, task_id, self._agent_id(agent))
        return {"task_id": task.id, "status": task.status}

    def propose_task(
        self,
        agent: str,
        title: str,
        description: str,
        priority: str = TaskPriority.MEDIUM,
        required_skills: list[str] | None = None,
        tags: list[str] | None = None,
    ) -> dict[str, Any]:
        task_id = tasks.propose(
            self.store,
            title,
            description,
            self._agent_id(agent),
            priority=priority,
            required_skills=required_skills,
            tags=tags,
        )
        return {"task_id": task_id}

    def complete_task(
        self,
        task_id: str,
        agent: str,
        deliverable: str | None = None,
    ) -> dict[str, Any]:
        result = tasks.complete_task(
            self.store,
            task_id,
            self._agent_id(agent),
            deliverable_content=deliverable,
            config=self.config,
        )
        result["message"] = "Task moved to review. The operator has been notified."
        return result

    def request_review(
        self,
        task_id: str,
        from_agent: str,
        to_agent: str,
        message: str,
    ) -> dict[str, Any]:
        task = tasks.request_review(
            self.store, task_id, self._agent_id(from_agent), self._agent_id(to_agent), message
        )
        return {"task_id": task.id, "status": task.status}

    # -----------------------------------------------------------------------
    # Messaging
    # -----------------------------------------------------------------------

    def send_message(
        self,
        task_id: str,
        content: str,
        agent: str | None = None,
        mentions: list[str] | None = None,
    ) -> dict[str, Any]:
        author = Creator.agent(self._agent_id(agent)) if agent else Creator.operator()
        message_id = messaging.create_message(
            self.store,
            task_id,
            content,
            mentions=[self._agent_id(m) for m in mentions or []],
            author=author,
        )
        return {"message_id": message_id}

    def send_direct_message(self, from_agent: str, to_agent: str, content: str) -> dict[str, Any]:
        message_id = messaging.send_direct_message(
            self.store, self._agent_id(from_agent), self._agent_id(to_agent), content
        )
        return {"message_id": message_id}

    def get_notifications(
        self,
        agent: str,
        include_delivered: bool = False,
        mark_read: bool = False,
    ) -> list[dict[str, Any]]:
        """
        An agent's notifications, oldest first (undelivered only by default).

        mark_read acknowledges the returned undelivered notifications.
        """
        agent_id = self._agent_id(agent)
        if include_delivered:
            items = list(reversed(notifications.list_for_agent(self.store, agent_id)))
        else:
            items = notifications.undelivered_for_agent(self.store, agent_id)
        if mark_read:
            notifications.mark_many_delivered(
                self.store, [n.id for n in items if not n.delivered]
            )
        return to_dict(items)

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def get_task(self, task_id: str) -> dict[str, Any]:
        detail = tasks.get_task_detail(self.store, task_id)
        if detail is None:
            return {"error": f"Task not found: '{task_id}'"}
        return to_dict(detail)

    def list_agents(self) -> list[dict[str, Any]]:
        return to_dict(roster.list_agents(self.store))

    def get_status(self) -> dict[str, Any]:
        return to_dict(reports.system_status(self.store))

    def get_board(self) -> dict[str, Any]:
        return to_dict(reports.task_board(self.store))

    # -----------------------------------------------------------------------
    # Operator smoke commands
    # -----------------------------------------------------------------------

    def run_heartbeats(self) -> list[dict[str, Any]]:
        return work_cycle.run_heartbeats(self.store, self.config)

    def reconcile(self) -> list[dict[str, Any]]:
        return reconcile.sync_task_assignments(self.store)

    def standup(self) -> dict[str, Any]:
        return reports.generate_standup(self.store)


# ---------------------------------------------------------------------------
# FastMCP wiring
# ---------------------------------------------------------------------------


def _respond(call: Callable[[], Any]) -> str:
    """Run a server call and JSON-encode its result, or the engine error."""
    try:
        result = call()
    except (MissionControlError, ValueError) as exc:
        logger.info("Tool call failed: %s", exc)
        result = {"error": str(exc)}
    return json.dumps(result, indent=2, default=str)


def create_mcp_server(db_path: str, project_root: str) -> FastMCP:
    """Create a FastMCP server wrapping MissionServer."""
    ms = MissionServer(db_path, project_root)
    mcp = FastMCP("mission-control")

    @mcp.tool()
    def heartbeat(agent: str) -> str:
        """
        Run one work cycle for an agent.

        Claims at most one matching inbox task, starts the task the agent was
        already holding, and may propose new work. Returns counts of what
        happened, or {status: "paused"} while the system is paused.

        Args:
            agent: Agent name (e.g. 'Vulture') or id
        """
        return _respond(lambda: ms.heartbeat(agent))

    @mcp.tool()
    def get_inbox(limit: int = 20) -> str:
        """
        List unclaimed inbox tasks, newest first.

        Args:
            limit: Maximum tasks (default: 20)
        """
        return _respond(lambda: ms.get_inbox(limit))

    @mcp.tool()
    def claim_task(task_id: str, agent: str) -> str:
        """
        Claim an inbox task.

        Fails if the task is no longer in the inbox, if another agent claimed
        it first, or if the agent lacks one of its required skills.

        Args:
            task_id: Task id (e.g. 'task-3f9c0a1b2c4d')
            agent: Agent name or id
        """
        return _respond(lambda: ms.claim_task(task_id, agent))

    @mcp.tool()
    def start_task(task_id: str, agent: str) -> str:
        """Move an assigned task to in_progress."""
        return _respond(lambda: ms.start_task(task_id, agent))

    @mcp.tool()
    def propose_task(
        agent: str,
        title: str,
        description: str,
        priority: str = TaskPriority.MEDIUM,
        required_skills: list[str] | None = None,
        tags: list[str] | None = None,
    ) -> str:
        """
        Propose a new inbox task. Only agents with proposal rights may propose.

        Args:
            agent: Proposing agent name or id
            title: Task title
            description: What needs doing
            priority: low, medium, high or urgent
            required_skills: Skills a claimer must have
            tags: Free-form labels
        """
        return _respond(
            lambda: ms.propose_task(agent, title, description, priority, required_skills, tags)
        )

    @mcp.tool()
    def complete_task(task_id: str, agent: str, deliverable: str | None = None) -> str:
        """
        Report a task finished. The task moves to review and the agent is freed.

        Args:
            task_id: Task id
            agent: Agent name or id
            deliverable: Optional markdown filed as a deliverable document
        """
        return _respond(lambda: ms.complete_task(task_id, agent, deliverable))

    @mcp.tool()
    def request_review(task_id: str, from_agent: str, to_agent: str, message: str) -> str:
        """Ask another agent to review a task; moves the task to review."""
        return _respond(lambda: ms.request_review(task_id, from_agent, to_agent, message))

    @mcp.tool()
    def send_message(
        task_id: str,
        content: str,
        agent: str | None = None,
        mentions: list[str] | None = None,
    ) -> str:
        """
        Comment on a task thread.

        Mentioned agents and thread subscribers are notified. The author is
        subscribed to the thread.

        Args:
            task_id: Task id
            content: Comment body
            agent: Author name or id (omit for the operator)
            mentions: Agent names or ids to notify
        """
        return _respond(lambda: ms.send_message(task_id, content, agent, mentions))

    @mcp.tool()
    def send_direct_message(from_agent: str, to_agent: str, content: str) -> str:
        """Send a message to another agent outside any task thread."""
        return _respond(lambda: ms.send_direct_message(from_agent, to_agent, content))

    @mcp.tool()
    def get_notifications(
        agent: str,
        include_delivered: bool = False,
        mark_read: bool = False,
    ) -> str:
        """
        Read an agent's notifications.

        Args:
            agent: Agent name or id
            include_delivered: Also return already-delivered notifications
            mark_read: Mark the returned notifications delivered
        """
        return _respond(lambda: ms.get_notifications(agent, include_delivered, mark_read))

    @mcp.tool()
    def get_task(task_id: str) -> str:
        """Task with assignees, the 20 most recent messages and documents."""
        return _respond(lambda: ms.get_task(task_id))

    @mcp.tool()
    def list_agents() -> str:
        """List roster agents with status, skills and current task."""
        return _respond(ms.list_agents)

    # MCP Resources
    @mcp.resource("mission://status")
    def status_resource() -> str:
        """System status: agents, task counts, recent activity, pending notifications."""
        return _respond(ms.get_status)

    @mcp.resource("mission://board")
    def board_resource() -> str:
        """Every task grouped by status."""
        return _respond(ms.get_board)

    @mcp.resource("mission://task/{task_id}")
    def task_resource(task_id: str) -> str:
        """Full task state."""
        return _respond(lambda: ms.get_task(task_id))

    return mcp


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

_SMOKE_COMMANDS = {
    "status": MissionServer.get_status,
    "board": MissionServer.get_board,
    "agents": MissionServer.list_agents,
    "heartbeats": MissionServer.run_heartbeats,
    "reconcile": MissionServer.reconcile,
    "standup": MissionServer.standup,
}


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Mission Control MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # MCP server mode (stdio)
    mission-control-mcp .mission/mission.db --project-root .

    # SSE mode
    mission-control-mcp mission.db --project-root /srv/project --transport sse --port 8080

    # CLI smoke tests
    mission-control-mcp .mission/mission.db --project-root . status
    mission-control-mcp .mission/mission.db --project-root . heartbeats
        """,
    )
    parser.add_argument(
        "database",
        nargs="?",
        help="Path to the mission SQLite database (default: from .mission/config.yaml)",
    )
    parser.add_argument("--project-root", default=".", help="Path to consuming repo root")
    parser.add_argument("--transport", choices=["stdio", "sse"], default="stdio")
    parser.add_argument("--port", type=int, default=8080, help="Port for SSE mode")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument(
        "command",
        nargs="?",
        choices=sorted(_SMOKE_COMMANDS),
        help="CLI command (omit for MCP server mode)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    project_root = Path(args.project_root)
    db_path = args.database or load_mission_config(project_root).db_path

    if not args.command:
        mcp_server = create_mcp_server(str(db_path), str(project_root))
        logger.info("Starting MCP server (%s) on %s", args.transport, db_path)
        if args.transport == "sse":
            mcp_server.settings.port = args.port
            mcp_server.run(transport="sse")
        else:
            mcp_server.run(transport="stdio")
        return

    ms = MissionServer(str(db_path), str(project_root))
    try:
        result = _SMOKE_COMMANDS[args.command](ms)
        print(json.dumps(result, indent=2, default=str))
    finally:
        ms.close()


if __name__ == "__main__":
    main()
