#!/usr/bin/env python3
"""
Mission Control CLI

Operator-facing command-line interface for the task board.
Provides bootstrap, board inspection, task control and maintenance commands.

Usage:
    # All commands auto-detect .mission/ from the current directory
    # or accept --db and --project-root overrides.

    mission-control init                    # create operator + roster agents
    mission-control agents                  # show roster with status
    mission-control grant-skills Vulture jwt,security

    mission-control create "Title" --assign Vulture --skills jwt
    mission-control list [--status inbox]   # list tasks
    mission-control board                   # tasks grouped by status
    mission-control show <task-id>          # task detail with thread
    mission-control update <task-id> --status assigned --assign Scribe
    mission-control approve <task-id>       # review -> done
    mission-control block <task-id> --reason "waiting on keys"
    mission-control unblock <task-id> [--to assigned]
    mission-control comment <task-id> "text" [--mention Scribe]

    mission-control pause [--reason ...]    # stop agent work cycles
    mission-control resume
    mission-control heartbeat [agent ...]   # run work cycles now
    mission-control reconcile               # repair agent/task drift
    mission-control standup                 # write the daily standup
    mission-control feed                    # recent activity
    mission-control status                  # dashboard summary
    mission-control broadcast "text"        # notify every agent
    mission-control notifications <agent>   # an agent's queue

    mission-control serve [--port 8000]     # run the HTTP API
"""

import argparse
import logging
import sys
from pathlib import Path

from mission_control.engine import (
    activity,
    broadcast,
    messaging,
    notifications,
    reconcile,
    reports,
    roster,
    system,
    tasks,
    work_cycle,
)
from mission_control.engine.config import load_mission_config
from mission_control.engine.errors import MissionControlError
from mission_control.engine.models import Creator, TaskStatus
from mission_control.engine.store import Store

logger = logging.getLogger(__name__)


def _find_project_root(start: Path | None = None) -> Path:
    """Walk up from start directory to find .mission/ directory."""
    current = start or Path.cwd()
    for candidate in [current] + list(current.parents):
        if (candidate / ".mission").exists():
            return candidate
    return current  # fallback to cwd


def _open_store(args: argparse.Namespace) -> tuple:
    """Open the store and load config from args or auto-discovery."""
    project_root = Path(args.project_root) if args.project_root else _find_project_root()
    config = load_mission_config(project_root)

    db_path = args.db if args.db else config.db_path
    store = Store.open(db_path)
    return store, config


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _agent_ids(store: Store, refs: list[str]) -> list[str]:
    return [roster.resolve_agent(store, ref).id for ref in refs]


def _print_tasks(store: Store, rows: list) -> None:
    names = {a.id: a.name for a in roster.list_agents(store)}
    print(f"\n{'Task ID':<18} {'Status':<12} {'Priority':<8} {'Assignees':<20} {'Title'}")
    print("-" * 90)
    for t in rows:
        assignees = ", ".join(names.get(a, a) for a in t.assignee_ids)
        if len(assignees) > 18:
            assignees = assignees[:15] + "..."
        print(f"{t.id:<18} {t.status:<12} {t.priority:<8} {assignees:<20} {t.title}")


# ---------------------------------------------------------------------------
# Roster commands
# ---------------------------------------------------------------------------


def cmd_init(args: argparse.Namespace) -> int:
    """Create the operator identity and any missing roster agents."""
    store, config = _open_store(args)
    try:
        result = roster.initialize_system(store, config)
        print(f"Operator: {result['operator']['status']}")
        agents = result["agents"]
        print(f"Agents: {agents['status']} ({len(agents['created'])} created, {agents['count']} total)")
        for name in agents["created"]:
            print(f"  + {name}")
        return 0
    finally:
        store.close()


def cmd_agents(args: argparse.Namespace) -> int:
    """Show roster agents."""
    store, config = _open_store(args)
    try:
        agents = roster.list_agents(store)
        if not agents:
            print("No agents. Run: mission-control init")
            return 0

        print(f"\n{'Name':<12} {'Role':<28} {'Status':<8} {'Current Task':<18} {'Skills'}")
        print("-" * 95)
        for a in agents:
            role = a.role if len(a.role) <= 26 else a.role[:23] + "..."
            print(
                f"{a.name:<12} {role:<28} {a.status:<8} "
                f"{a.current_task_id or '':<18} {', '.join(a.skills)}"
            )
        return 0
    finally:
        store.close()


def cmd_grant_skills(args: argparse.Namespace) -> int:
    """Replace an agent's skill list."""
    store, config = _open_store(args)
    try:
        agent = roster.resolve_agent(store, args.agent)
        can_propose = True if args.can_propose else None
        updated = roster.update_skills(store, agent.id, _split(args.skills), can_propose)
        print(f"{updated.name} skills: {', '.join(updated.skills) or '(none)'}")
        return 0
    finally:
        store.close()


# ---------------------------------------------------------------------------
# Task commands
# ---------------------------------------------------------------------------


def cmd_create(args: argparse.Namespace) -> int:
    """Create a task as the operator."""
    store, config = _open_store(args)
    try:
        task_id = tasks.create_task(
            store,
            args.title,
            description=args.description or "",
            priority=args.priority,
            assignee_ids=_agent_ids(store, _split(args.assign)),
            required_skills=_split(args.skills),
            tags=_split(args.tags),
            due_date=args.due,
        )
        task = tasks.require_task(store, task_id)
        print(f"Created {task_id} ({task.status}): {task.title}")
        return 0
    finally:
        store.close()


def cmd_list(args: argparse.Namespace) -> int:
    """List tasks."""
    store, config = _open_store(args)
    try:
        assignee_id = roster.resolve_agent(store, args.assignee).id if args.assignee else None
        rows = tasks.list_tasks(store, status=args.status, assignee_id=assignee_id)
        if not rows:
            print("No tasks found.")
            return 0
        _print_tasks(store, rows)
        print(f"\n{len(rows)} task(s).")
        return 0
    finally:
        store.close()


def cmd_board(args: argparse.Namespace) -> int:
    """Show tasks grouped by status."""
    store, config = _open_store(args)
    try:
        board = reports.task_board(store)
        for status in TaskStatus.ORDERED:
            column = board[status]
            print(f"\n{status.upper()} ({len(column)})")
            for t in column:
                print(f"  {t.id}  [{t.priority}] {t.title}")
        return 0
    finally:
        store.close()


def cmd_show(args: argparse.Namespace) -> int:
    """Show a task with assignees, thread and documents."""
    store, config = _open_store(args)
    try:
        detail = tasks.get_task_detail(store, args.task_id)
        if detail is None:
            print(f"Task '{args.task_id}' not found.", file=sys.stderr)
            return 1

        task = detail["task"]
        print(f"\nTask: {task.title}")
        print(f"  ID        : {task.id}")
        print(f"  Status    : {task.status}")
        print(f"  Priority  : {task.priority}")
        print(f"  Assignees : {', '.join(a.name for a in detail['assignees']) or 'none'}")
        print(f"  Skills    : {', '.join(task.required_skills) or 'none'}")
        print(f"  Tags      : {', '.join(task.tags) or 'none'}")
        print(f"  Created by: {roster.creator_name(store, task.created_by)}")
        if task.description:
            print(f"\n{task.description}")

        thread = messaging.messages_by_task(store, task.id)
        if thread:
            print(f"\nThread ({len(thread)}):")
            for entry in thread:
                message = entry["message"]
                print(f"  [{message.created_at[:19]}] {entry['author_name']}: {message.content}")

        if detail["documents"]:
            print(f"\nDocuments ({len(detail['documents'])}):")
            for d in detail["documents"]:
                print(f"  {d.id}  {d.type:<12} {d.title}")
        return 0
    finally:
        store.close()


def cmd_update(args: argparse.Namespace) -> int:
    """Patch task fields as the operator."""
    store, config = _open_store(args)
    try:
        fields = {}
        if args.status:
            fields["status"] = args.status
        if args.priority:
            fields["priority"] = args.priority
        if args.title:
            fields["title"] = args.title
        if args.assign is not None:
            fields["assignee_ids"] = _agent_ids(store, _split(args.assign))
        if not fields:
            print("Nothing to update.", file=sys.stderr)
            return 1
        task = tasks.update(store, args.task_id, **fields)
        print(f"Task {task.id} is now {task.status}.")
        return 0
    finally:
        store.close()


def cmd_approve(args: argparse.Namespace) -> int:
    """Approve a task in review."""
    store, config = _open_store(args)
    try:
        task = tasks.approve(store, args.task_id)
        print(f"Task {task.id} APPROVED: {task.title}")
        return 0
    finally:
        store.close()


def cmd_block(args: argparse.Namespace) -> int:
    store, config = _open_store(args)
    try:
        task = tasks.block(store, args.task_id, args.reason or "")
        print(f"Task {task.id} BLOCKED (was {task.blocked_from}).")
        return 0
    finally:
        store.close()


def cmd_unblock(args: argparse.Namespace) -> int:
    store, config = _open_store(args)
    try:
        task = tasks.unblock(store, args.task_id, to_status=args.to)
        print(f"Task {task.id} unblocked to {task.status}.")
        return 0
    finally:
        store.close()


def cmd_comment(args: argparse.Namespace) -> int:
    """Post an operator comment on a task thread."""
    store, config = _open_store(args)
    try:
        mentions = _agent_ids(store, _split(args.mention))
        message_id = messaging.create_message(
            store, args.task_id, args.content, mentions=mentions, author=Creator.operator()
        )
        print(f"Posted {message_id}.")
        return 0
    finally:
        store.close()


# ---------------------------------------------------------------------------
# Control and maintenance commands
# ---------------------------------------------------------------------------


def cmd_pause(args: argparse.Namespace) -> int:
    store, config = _open_store(args)
    try:
        state = system.pause(store, by=args.by or "operator", reason=args.reason)
        print(f"System PAUSED by {state.paused_by}.")
        return 0
    finally:
        store.close()


def cmd_resume(args: argparse.Namespace) -> int:
    store, config = _open_store(args)
    try:
        system.resume(store)
        print("System resumed.")
        return 0
    finally:
        store.close()


def cmd_heartbeat(args: argparse.Namespace) -> int:
    """Run one work cycle for the named agents (default: whole roster)."""
    store, config = _open_store(args)
    try:
        results = work_cycle.run_heartbeats(store, config, names=args.agents or None)
        failed = 0
        for r in results:
            if "error" in r:
                failed += 1
                print(f"  {r['agent']:<12} ERROR: {r['error']}", file=sys.stderr)
            elif r["status"] == "paused":
                print(f"  {r['agent']:<12} paused")
            else:
                print(
                    f"  {r['agent']:<12} claimed={r['tasks_claimed']} "
                    f"proposed={r['tasks_proposed']}"
                )
        return 0 if failed == 0 else 1
    finally:
        store.close()


def cmd_reconcile(args: argparse.Namespace) -> int:
    """Repair drift between agent slots and task assignments."""
    store, config = _open_store(args)
    try:
        fixes = reconcile.sync_task_assignments(store)
        if not fixes:
            print("Agent slots and task assignments are consistent.")
            return 0
        print(f"Reconciled {len(fixes)} agent(s):")
        for f in fixes:
            print(f"  {f['agent']}: {f['status']} ({f['reason']})")
        return 0
    finally:
        store.close()


def cmd_standup(args: argparse.Namespace) -> int:
    store, config = _open_store(args)
    try:
        result = reports.generate_standup(store)
        print(result["content"])
        print(f"Saved as {result['doc_id']}.")
        return 0
    finally:
        store.close()


def cmd_feed(args: argparse.Namespace) -> int:
    """Show recent activity."""
    store, config = _open_store(args)
    try:
        entries = activity.list_recent(store, limit=args.limit)
        if not entries:
            print("No activity yet.")
            return 0

        print(f"\n{'Timestamp':<22} {'Type':<22} {'Message'}")
        print("-" * 90)
        for e in entries:
            print(f"{(e.created_at or '')[:19]:<22} {e.type:<22} {e.message}")
        return 0
    finally:
        store.close()


def cmd_status(args: argparse.Namespace) -> int:
    """Show the dashboard summary."""
    store, config = _open_store(args)
    try:
        summary = reports.system_status(store)
        state = "PAUSED" if summary["paused"] else "running"
        print(f"\nSystem: {state}")
        print(f"Pending notifications: {summary['pending_notifications']}")
        print("\nTasks (20 most recent):")
        for status, count in summary["task_counts"].items():
            print(f"  {status:<12} {count}")
        print("\nAgents:")
        for a in summary["agents"]:
            print(f"  {a['name']:<12} {a['status']:<8} {a['current_task_id'] or ''}")
        return 0
    finally:
        store.close()


def cmd_broadcast(args: argparse.Namespace) -> int:
    store, config = _open_store(args)
    try:
        targets = _agent_ids(store, _split(args.to)) or None
        result = broadcast.send_broadcast(
            store,
            args.content,
            target_agent_ids=targets,
            priority=args.priority,
            category=args.category,
        )
        print(f"Broadcast sent to {result['recipient_count']} agent(s).")
        return 0
    finally:
        store.close()


def cmd_notifications(args: argparse.Namespace) -> int:
    """Show an agent's notification queue."""
    store, config = _open_store(args)
    try:
        agent = roster.resolve_agent(store, args.agent)
        if args.all:
            rows = notifications.list_for_agent(store, agent.id, limit=args.limit)
        else:
            rows = notifications.undelivered_for_agent(store, agent.id)
        if not rows:
            print(f"No notifications for {agent.name}.")
            return 0
        for n in rows:
            state = "delivered" if n.delivered else f"queued ({n.delivery_attempts} failed)"
            print(f"  {n.id:<18} {state:<18} {n.content}")
        return 0
    finally:
        store.close()


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP API with uvicorn."""
    import os

    import uvicorn

    if args.project_root:
        os.environ["MISSION_CONTROL_ROOT"] = args.project_root
    if args.db:
        os.environ["MISSION_CONTROL_DB"] = args.db
    uvicorn.run("mission_control.api.app:app", host=args.host, port=args.port)
    return 0


# ---------------------------------------------------------------------------
# Main CLI
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="mission-control",
        description="Mission Control CLI: multi-agent task board administration",
    )
    parser.add_argument(
        "--db",
        metavar="PATH",
        help="Path to mission.db (default: read from .mission/config.yaml)",
    )
    parser.add_argument(
        "--project-root",
        metavar="PATH",
        help="Path to consuming repo root (default: auto-detect from .mission/)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # init
    p_init = subparsers.add_parser("init", help="Create operator and roster agents")
    p_init.set_defaults(func=cmd_init)

    # agents
    p_agents = subparsers.add_parser("agents", help="Show roster agents")
    p_agents.set_defaults(func=cmd_agents)

    # grant-skills
    p_skills = subparsers.add_parser("grant-skills", help="Set an agent's skills")
    p_skills.add_argument("agent", help="Agent name or id")
    p_skills.add_argument("skills", help="Comma-separated skill list")
    p_skills.add_argument("--can-propose", action="store_true", help="Also grant proposal rights")
    p_skills.set_defaults(func=cmd_grant_skills)

    # create
    p_create = subparsers.add_parser("create", help="Create a task")
    p_create.add_argument("title", help="Task title")
    p_create.add_argument("--description", help="Task description")
    p_create.add_argument("--priority", default="medium", help="low/medium/high/urgent")
    p_create.add_argument("--assign", help="Comma-separated agent names")
    p_create.add_argument("--skills", help="Comma-separated required skills")
    p_create.add_argument("--tags", help="Comma-separated tags")
    p_create.add_argument("--due", help="Due date (ISO 8601)")
    p_create.set_defaults(func=cmd_create)

    # list
    p_list = subparsers.add_parser("list", help="List tasks")
    p_list.add_argument("--status", choices=TaskStatus.ORDERED, help="Filter by status")
    p_list.add_argument("--assignee", help="Filter by agent name or id")
    p_list.set_defaults(func=cmd_list)

    # board
    p_board = subparsers.add_parser("board", help="Show tasks grouped by status")
    p_board.set_defaults(func=cmd_board)

    # show
    p_show = subparsers.add_parser("show", help="Show task detail")
    p_show.add_argument("task_id", help="Task ID")
    p_show.set_defaults(func=cmd_show)

    # update
    p_update = subparsers.add_parser("update", help="Update task fields")
    p_update.add_argument("task_id", help="Task ID")
    p_update.add_argument("--status", choices=TaskStatus.ORDERED, help="New status")
    p_update.add_argument("--priority", help="New priority")
    p_update.add_argument("--title", help="New title")
    p_update.add_argument("--assign", help="Comma-separated agent names (empty to clear)")
    p_update.set_defaults(func=cmd_update)

    # approve
    p_approve = subparsers.add_parser("approve", help="Approve a task in review")
    p_approve.add_argument("task_id", help="Task ID")
    p_approve.set_defaults(func=cmd_approve)

    # block
    p_block = subparsers.add_parser("block", help="Block a task")
    p_block.add_argument("task_id", help="Task ID")
    p_block.add_argument("--reason", help="Why the task is blocked")
    p_block.set_defaults(func=cmd_block)

    # unblock
    p_unblock = subparsers.add_parser("unblock", help="Unblock a task")
    p_unblock.add_argument("task_id", help="Task ID")
    p_unblock.add_argument("--to", choices=TaskStatus.ORDERED, help="Target status")
    p_unblock.set_defaults(func=cmd_unblock)

    # comment
    p_comment = subparsers.add_parser("comment", help="Comment on a task as the operator")
    p_comment.add_argument("task_id", help="Task ID")
    p_comment.add_argument("content", help="Message text")
    p_comment.add_argument("--mention", help="Comma-separated agent names to notify")
    p_comment.set_defaults(func=cmd_comment)

    # pause / resume
    p_pause = subparsers.add_parser("pause", help="Pause all agent work cycles")
    p_pause.add_argument("--reason", help="Pause reason")
    p_pause.add_argument("--by", help="Who paused the system")
    p_pause.set_defaults(func=cmd_pause)

    p_resume = subparsers.add_parser("resume", help="Resume agent work cycles")
    p_resume.set_defaults(func=cmd_resume)

    # heartbeat
    p_heartbeat = subparsers.add_parser("heartbeat", help="Run agent work cycles now")
    p_heartbeat.add_argument("agents", nargs="*", help="Agent names (default: whole roster)")
    p_heartbeat.set_defaults(func=cmd_heartbeat)

    # reconcile
    p_reconcile = subparsers.add_parser("reconcile", help="Repair agent/task drift")
    p_reconcile.set_defaults(func=cmd_reconcile)

    # standup
    p_standup = subparsers.add_parser("standup", help="Generate the daily standup")
    p_standup.set_defaults(func=cmd_standup)

    # feed
    p_feed = subparsers.add_parser("feed", help="Show recent activity")
    p_feed.add_argument("--limit", type=int, default=50, help="Max entries")
    p_feed.set_defaults(func=cmd_feed)

    # status
    p_status = subparsers.add_parser("status", help="Show dashboard summary")
    p_status.set_defaults(func=cmd_status)

    # broadcast
    p_broadcast = subparsers.add_parser("broadcast", help="Notify agents")
    p_broadcast.add_argument("content", help="Broadcast text")
    p_broadcast.add_argument("--to", help="Comma-separated agent names (default: all)")
    p_broadcast.add_argument("--priority", default="normal", help="low/normal/high/urgent")
    p_broadcast.add_argument("--category", default="announcement", help="Broadcast category")
    p_broadcast.set_defaults(func=cmd_broadcast)

    # notifications
    p_notes = subparsers.add_parser("notifications", help="Show an agent's notifications")
    p_notes.add_argument("agent", help="Agent name or id")
    p_notes.add_argument("--all", action="store_true", help="Include delivered notifications")
    p_notes.add_argument("--limit", type=int, default=50, help="Max entries with --all")
    p_notes.set_defaults(func=cmd_notifications)

    # serve
    p_serve = subparsers.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1", help="Bind address")
    p_serve.add_argument("--port", type=int, default=8000, help="Port")
    p_serve.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    try:
        code = args.func(args)
    except (MissionControlError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
