"""
Mission Control — multi-agent task coordination.

A small roster of autonomous agents works a shared SQLite-backed task queue.
The engine package owns the task lifecycle, the heartbeat work cycle and the
notification queue; server/, api/, cli/ and daemon/ are thin adapters over it.
"""

__version__ = "0.1.0"
