"""Scheduler module."""

from .scheduler import ExecuteFn, IScheduler, ScheduledExecution, Scheduler
from .timers import CancellableTimer, IntervalTimer, OneShotTimer

__all__ = [
    "CancellableTimer",
    "ExecuteFn",
    "IScheduler",
    "IntervalTimer",
    "OneShotTimer",
    "ScheduledExecution",
    "Scheduler",
]
