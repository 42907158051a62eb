"""
Pydantic request/response models for the Mission Control API
"""

from typing import Any

from pydantic import BaseModel, Field


class CreatorOut(BaseModel):
    """Author of a task, message or document."""

    kind: str
    agent_id: str | None = None


class AgentOut(BaseModel):
    id: str
    name: str
    session_key: str
    role: str = ""
    status: str
    skills: list[str] = []
    can_propose_tasks: bool = False
    current_task_id: str | None = None
    last_heartbeat_at: str | None = None
    last_proposed_at: str | None = None
    personality: str = ""
    specialty: list[str] = []
    created_at: str | None = None


class TaskOut(BaseModel):
    id: str
    title: str
    description: str = ""
    status: str
    priority: str
    assignee_ids: list[str] = []
    required_skills: list[str] = []
    tags: list[str] = []
    proposed_by: str | None = None
    created_by: CreatorOut
    claimed_at: str | None = None
    due_date: str | None = None
    blocked_from: str | None = None
    run_id: str | None = None
    session_key: str | None = None
    source: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class MessageOut(BaseModel):
    id: str
    content: str
    author: CreatorOut
    task_id: str | None = None
    mentions: list[str] = []
    attachments: list[str] = []
    created_at: str | None = None


class DocumentOut(BaseModel):
    id: str
    title: str
    content: str
    type: str
    task_id: str | None = None
    created_by: CreatorOut
    created_at: str | None = None
    updated_at: str | None = None


class TaskDetail(BaseModel):
    """Task with assignees, recent messages and attached documents."""

    task: TaskOut
    assignees: list[AgentOut]
    messages: list[MessageOut]
    documents: list[DocumentOut]


class ActivityOut(BaseModel):
    id: str
    type: str
    message: str
    agent_id: str | None = None
    task_id: str | None = None
    metadata: dict[str, Any] = {}
    created_at: str | None = None


class RpcRequest(BaseModel):
    """Query/mutation call: a "module:function" path plus keyword arguments."""

    path: str
    args: dict[str, Any] = Field(default_factory=dict)


class RpcResponse(BaseModel):
    status: str = "success"
    value: Any = None


class WebhookEvent(BaseModel):
    """Lifecycle event from an external agent run."""

    run_id: str
    action: str
    session_key: str
    prompt: str | None = None
    source: str | None = None
    response: str | None = None
    error: str | None = None
    duration_ms: int | None = None
    tools_used: list[str] | None = None


class WebhookResult(BaseModel):
    success: bool = True
    task_id: str | None = None
    agent_name: str | None = None
