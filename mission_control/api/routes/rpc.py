"""
Query/mutation endpoints

Both endpoints take {"path": "module:function", "args": {...}} and answer
{"status": "success", "value": ...}. Engine errors are mapped to HTTP
status codes by the application's exception handlers.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from mission_control.engine.models import MissionConfig
from mission_control.engine.store import Store

from ..deps import get_mission_config, get_store
from ..models import RpcRequest, RpcResponse
from ..rpc import MUTATIONS, QUERIES, InvalidArgumentsError, UnknownFunctionError, dispatch

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rpc"])


def _call(registry, request: RpcRequest, store: Store, mission_config: MissionConfig):
    try:
        value = dispatch(registry, request.path, request.args, store, mission_config)
    except UnknownFunctionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidArgumentsError as e:
        raise HTTPException(status_code=400, detail=f"Bad arguments for {request.path}: {e}")
    return RpcResponse(value=value)


@router.post("/query", response_model=RpcResponse)
def run_query(
    request: RpcRequest,
    store: Store = Depends(get_store),
    mission_config: MissionConfig = Depends(get_mission_config),
):
    """Run a read-only registered function."""
    return _call(QUERIES, request, store, mission_config)


@router.post("/mutation", response_model=RpcResponse)
def run_mutation(
    request: RpcRequest,
    store: Store = Depends(get_store),
    mission_config: MissionConfig = Depends(get_mission_config),
):
    """Run a registered function that writes to the store."""
    logger.debug("Mutation %s", request.path)
    return _call(MUTATIONS, request, store, mission_config)
