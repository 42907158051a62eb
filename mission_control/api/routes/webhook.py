"""
Agent-run webhook

Receives start/progress/end/error events from an external agent runtime
and mirrors each run onto the board as one task.
"""

import logging

from fastapi import APIRouter, Depends

from mission_control.engine import webhook
from mission_control.engine.models import MissionConfig
from mission_control.engine.store import Store

from ..deps import get_mission_config, get_store
from ..models import WebhookEvent, WebhookResult

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])


@router.post("/webhook", response_model=WebhookResult)
def receive_event(
    event: WebhookEvent,
    store: Store = Depends(get_store),
    mission_config: MissionConfig = Depends(get_mission_config),
):
    """Apply one run lifecycle event. Unknown actions are rejected with 400."""
    logger.info("Run event %s for %s", event.action, event.run_id)
    result = webhook.receive_event(store, config=mission_config, **event.model_dump())
    return WebhookResult(**result)
