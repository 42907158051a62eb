"""
pytest configuration for Mission Control tests.

Adds the repository root to sys.path so that
'from mission_control.engine.xxx import ...' works without installing.
"""

import sys
from pathlib import Path

import pytest

repo_root = Path(__file__).parent.parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from mission_control.engine import roster
from mission_control.engine.config import default_mission_config
from mission_control.engine.store import Store


@pytest.fixture
def store(tmp_path):
    """Open a fresh mission database."""
    s = Store.open(tmp_path / "mission.db")
    yield s
    s.close()


@pytest.fixture
def config():
    """Default roster: operator Finn plus Vulture, Scribe and Horizon."""
    return default_mission_config()


@pytest.fixture
def agents(store, config):
    """Initialize the roster and return {name: Agent}."""
    roster.initialize_system(store, config)
    return {a.name: a for a in roster.list_agents(store)}
