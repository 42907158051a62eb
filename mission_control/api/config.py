"""
Configuration for the Mission Control API
"""

import os
from pathlib import Path

from mission_control.engine.config import load_mission_config
from mission_control.engine.models import MissionConfig


class Config:
    """Application configuration from environment variables."""

    def __init__(self):
        """Initialize configuration from environment."""
        # Consuming repository root (holds .mission/)
        self.project_root = Path(os.getenv("MISSION_CONTROL_ROOT", ".")).resolve()

        # Explicit database path; otherwise .mission/config.yaml decides
        db_override = os.getenv("MISSION_CONTROL_DB")
        self.db_path = Path(db_override).resolve() if db_override else None

    def mission_config(self) -> MissionConfig:
        """Load roster and work-cycle settings for the project root."""
        return load_mission_config(self.project_root)

    def database_path(self) -> Path:
        if self.db_path is not None:
            return self.db_path
        return Path(self.mission_config().db_path)


# Global config instance
config = Config()
