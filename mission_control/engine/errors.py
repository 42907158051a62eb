#!/usr/bin/env python3
"""
Mission Control Error Taxonomy

Every engine operation fails synchronously with one of these errors. There is
no retry inside the engine; callers (MCP tools, HTTP routes, the heartbeat
loop, the CLI) decide what to do with a failure.

- NotFoundError:      referenced agent/task/document/notification absent
- InvalidStateError:  operation attempted against a task in the wrong status
- SkillMismatchError: claim attempted without the task's required skills
- UnauthorizedError:  proposal attempted by an agent without proposal rights
"""


class MissionControlError(Exception):
    """Base class for all engine errors."""


class NotFoundError(MissionControlError, LookupError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.capitalize()} not found: '{entity_id}'")


class InvalidStateError(MissionControlError, ValueError):
    """Raised when a task is not in the status an operation requires."""


class SkillMismatchError(MissionControlError):
    """Raised when an agent lacks skills required by the task it tries to claim."""

    def __init__(self, task_id: str, agent_name: str, missing: list[str]):
        self.task_id = task_id
        self.agent_name = agent_name
        self.missing = sorted(missing)
        super().__init__(
            f"Agent '{agent_name}' lacks required skills for task {task_id}: "
            f"{self.missing}"
        )


class UnauthorizedError(MissionControlError, PermissionError):
    """Raised when an agent attempts an action it has no rights for."""
