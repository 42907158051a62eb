#!/usr/bin/env python3
"""
Mission Control Pause Control

The system pause flag is a singleton row in system_status. Reads go through
get_state(), which returns a default (not paused) SystemState when the row
has never been written. When paused, every agent heartbeat short-circuits
after stamping last_heartbeat_at.
"""

import logging

from .models import SystemState, now_iso
from .store import Store

logger = logging.getLogger(__name__)

_SINGLETON_ID = "system"


def get_state(store: Store) -> SystemState:
    row = store.get("system_status", _SINGLETON_ID)
    return SystemState.from_row(row) if row else SystemState()


def is_paused(store: Store) -> bool:
    return get_state(store).paused


def _write_state(store: Store, fields: dict) -> None:
    fields = {**fields, "updated_at": now_iso()}
    if not store.patch("system_status", _SINGLETON_ID, fields):
        store.insert("system_status", {"id": _SINGLETON_ID, **fields})


def pause(store: Store, by: str = "operator", reason: str | None = None) -> SystemState:
    """Pause every agent work cycle."""
    _write_state(
        store,
        {"paused": True, "paused_at": now_iso(), "paused_by": by, "reason": reason},
    )
    logger.info("System paused by %s%s", by, f": {reason}" if reason else "")
    return get_state(store)


def resume(store: Store) -> SystemState:
    _write_state(store, {"paused": False, "paused_at": None, "paused_by": None, "reason": None})
    logger.info("System resumed")
    return get_state(store)
