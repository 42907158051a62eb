"""
Mission Control Engine — task lifecycle, agent work cycle and notification queue.

The engine is storage-backed but adapter-agnostic: every operation takes an
open Store as its first argument and raises the errors defined in errors.py.
Roster, templates and work-cycle tuning come from the consuming project's
.mission/ directory (see config.py).
"""
