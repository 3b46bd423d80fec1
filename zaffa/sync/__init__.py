"""Keeping the local booking view in step with the sheet.

Provides the reconciliation pass (role scoping, grace window, archiving)
and the poll scheduler that runs it periodically.
"""

from .engine import SyncEngine
from .reconcile import ReconcileResult, reconcile
from .scheduler import PollScheduler, SchedulerState

__all__ = [
    "PollScheduler",
    "ReconcileResult",
    "SchedulerState",
    "SyncEngine",
    "reconcile",
]
