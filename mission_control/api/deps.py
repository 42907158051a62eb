"""
Request dependencies shared by the API routes
"""

from fastapi import Request

from mission_control.engine.models import MissionConfig
from mission_control.engine.store import Store


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_mission_config(request: Request) -> MissionConfig:
    mission_config = request.app.state.mission_config
    return mission_config if mission_config is not None else MissionConfig()
