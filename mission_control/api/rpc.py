"""
Query/mutation registry for the RPC surface

Every engine operation reachable over POST /api/query and /api/mutation is
listed here under a "module:function" path. Arguments arrive as a JSON
object and are passed as keyword arguments (snake_case) after the store.
Operations that need the runtime MissionConfig receive it as `config`.

The notification daemon depends on these paths:
    daemon:getAgentSessions, daemon:getUndelivered,
    daemon:markManyDelivered, daemon:recordDeliveryFailure
"""

import inspect
from typing import Any, Callable

from mission_control.engine import (
    activity,
    broadcast,
    claim,
    documents,
    messaging,
    notifications,
    reconcile,
    reports,
    roster,
    system,
    tasks,
    webhook,
    work_cycle,
)
from mission_control.engine.models import Creator, MissionConfig, to_dict
from mission_control.engine.store import Store

Handler = Callable[[Store, MissionConfig, dict[str, Any]], Any]


class UnknownFunctionError(LookupError):
    """No query or mutation registered under the requested path."""


class InvalidArgumentsError(TypeError):
    """Call arguments do not match the registered function signature."""


def _bind(fn: Callable[..., Any], config: bool = False) -> Handler:
    """
    Adapt an engine function to the registry calling convention.

    Argument names are checked against the function signature before the
    call, so a bad argument set fails with InvalidArgumentsError without running
    anything. A TypeError raised inside the function itself propagates as is.
    """
    signature = inspect.signature(fn)

    def handler(store: Store, mission_config: MissionConfig, args: dict[str, Any]) -> Any:
        kwargs = dict(args)
        if config:
            kwargs["config"] = mission_config
        try:
            signature.bind(store, **kwargs)
        except TypeError as e:
            raise InvalidArgumentsError(str(e)) from e
        return fn(store, **kwargs)

    handler.__name__ = fn.__name__
    return handler


# ---------------------------------------------------------------------------
# Adapters for operations whose engine signature is not JSON-friendly
# ---------------------------------------------------------------------------


def _claim_task(store: Store, task_id: str, agent_id: str) -> dict[str, Any]:
    result = claim.claim(store, task_id, agent_id)
    return {"success": True, "task": result.task}


def _create_message(
    store: Store,
    task_id: str,
    content: str,
    mentions: list[str] | None = None,
    from_agent_id: str | None = None,
    attachments: list[str] | None = None,
) -> str:
    author = Creator.agent(from_agent_id) if from_agent_id else Creator.operator()
    return messaging.create_message(
        store, task_id, content, mentions=mentions, author=author, attachments=attachments
    )


def _create_document(
    store: Store,
    title: str,
    content: str,
    type: str,
    task_id: str | None = None,
    created_by_agent_id: str | None = None,
) -> str:
    author = Creator.agent(created_by_agent_id) if created_by_agent_id else Creator.operator()
    return documents.create_document(
        store, title, content, type, task_id=task_id, created_by=author
    )


def _update_task(store: Store, id: str, **fields: Any) -> dict[str, Any]:
    tasks.update(store, id, **fields)
    return {"success": True}


def _dead_letters(store: Store, config: MissionConfig) -> list:
    return notifications.list_dead_letters(store, config.max_delivery_attempts)


def _undelivered(store: Store, config: MissionConfig) -> list:
    return notifications.get_undelivered(store, max_attempts=config.max_delivery_attempts)


def _mark_many(store: Store, ids: list[str]) -> dict[str, int]:
    return {"updated": notifications.mark_many_delivered(store, ids)}


def _record_failure(store: Store, ids: list[str]) -> dict[str, int]:
    return {"updated": notifications.record_failed_attempt(store, ids)}


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------

QUERIES: dict[str, Handler] = {
    "tasks:list": _bind(tasks.list_tasks),
    "tasks:get": _bind(tasks.get_task_detail),
    "tasks:byStatus": _bind(reports.task_board),
    "tasks:getInbox": _bind(tasks.get_inbox),
    "tasks:getProposedBy": _bind(tasks.get_proposed_by),
    "agents:list": _bind(roster.list_agents),
    "agents:getByName": _bind(roster.get_agent_by_name),
    "agents:getBySessionKey": _bind(roster.get_agent_by_session_key),
    "agents:getWithTask": _bind(roster.get_agent_with_task),
    "activities:recent": _bind(reports.activity_feed),
    "activities:byAgent": _bind(activity.by_agent),
    "activities:byTask": _bind(activity.by_task),
    "messages:byTask": _bind(messaging.messages_by_task),
    "messages:recent": _bind(messaging.recent_messages),
    "notifications:undelivered": _bind(notifications.undelivered_for_agent),
    "notifications:list": _bind(notifications.list_for_agent),
    "notifications:deadLetters": _bind(_dead_letters, config=True),
    "documents:get": _bind(documents.get_document),
    "documents:list": _bind(documents.list_documents),
    "standup:latest": _bind(reports.latest_standup),
    "command:getSystemStatus": _bind(reports.system_status),
    "broadcast:getRecent": _bind(broadcast.recent_broadcasts),
    "broadcast:getStats": _bind(reports.broadcast_stats),
    "system:getState": _bind(system.get_state),
    "webhook:getRunTasks": _bind(webhook.list_run_tasks),
    "webhook:getStats": _bind(webhook.run_stats),
    "daemon:getAgentSessions": _bind(notifications.get_agent_sessions),
    "daemon:getUndelivered": _bind(_undelivered, config=True),
}

MUTATIONS: dict[str, Handler] = {
    "tasks:create": _bind(tasks.create_task),
    "tasks:update": _bind(_update_task),
    "tasks:remove": _bind(tasks.remove),
    "tasks:approve": _bind(tasks.approve),
    "tasks:block": _bind(tasks.block),
    "tasks:unblock": _bind(tasks.unblock),
    "task_autonomy:claim": _bind(_claim_task),
    "task_autonomy:propose": _bind(tasks.propose),
    "task_autonomy:updateSkills": _bind(roster.update_skills),
    "task_assignments:startTask": _bind(tasks.start_task),
    "task_assignments:sync": _bind(reconcile.sync_task_assignments),
    "agent_work:heartbeat": _bind(work_cycle.heartbeat, config=True),
    "agent_work:runAll": _bind(work_cycle.run_heartbeats, config=True),
    "agent_work:completeTask": _bind(tasks.complete_task, config=True),
    "agent_work:requestReview": _bind(tasks.request_review),
    "agent_work:sendAgentMessage": _bind(messaging.send_direct_message),
    "agents:init": _bind(roster.init_agents, config=True),
    "agents:updateStatus": _bind(roster.update_agent_status),
    "agents:updateSessionKey": _bind(roster.update_session_key),
    "command:createOperator": _bind(roster.create_operator, config=True),
    "command:initializeSystem": _bind(roster.initialize_system, config=True),
    "messages:create": _bind(_create_message),
    "notifications:create": _bind(notifications.create_notification),
    "notifications:markDelivered": _bind(notifications.mark_delivered),
    "notifications:markAllDelivered": _bind(notifications.mark_all_delivered),
    "documents:create": _bind(_create_document),
    "documents:update": _bind(documents.update_document),
    "broadcast:send": _bind(broadcast.send_broadcast),
    "standup:generate": _bind(reports.generate_standup),
    "system:pause": _bind(system.pause),
    "system:resume": _bind(system.resume),
    "webhook:receiveEvent": _bind(webhook.receive_event, config=True),
    "daemon:markManyDelivered": _bind(_mark_many),
    "daemon:recordDeliveryFailure": _bind(_record_failure),
}


def dispatch(
    registry: dict[str, Handler],
    path: str,
    args: dict[str, Any],
    store: Store,
    mission_config: MissionConfig,
) -> Any:
    """
    Run a registered function and return a JSON-ready value.

    Raises:
        UnknownFunctionError: path not registered
        InvalidArgumentsError: arguments do not match the function signature
        MissionControlError: raised by the engine operation
    """
    handler = registry.get(path)
    if handler is None:
        raise UnknownFunctionError(f"Unknown function: '{path}'")
    return to_dict(handler(store, mission_config, args))
