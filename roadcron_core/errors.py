"""RoadCron Errors - Exception Hierarchy.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from typing import Optional


class RoadCronError(Exception):
    """Base class for all RoadCron errors."""


class CronFormatError(RoadCronError, ValueError):
    """Cron expression is missing or cannot be parsed."""

    def __init__(self, message: str, expression: Optional[str] = None):
        super().__init__(message)
        self.expression = expression


class UnreachableOccurrenceError(RoadCronError):
    """Cron expression has no future occurrence."""

    def __init__(self, expression: str):
        super().__init__(f"Cron expression {expression!r} has no reachable occurrence")
        self.expression = expression


class AlreadyWaitingError(RoadCronError, RuntimeError):
    """A second consumer tried to wait on a timer that is already in use."""

    def __init__(self, message: str = "One consumer at a time"):
        super().__init__(message)


class OperationCancelled(RoadCronError):
    """Cancellation was requested while an operation was in progress."""

    def __init__(self, message: str = "Operation was cancelled"):
        super().__init__(message)


__all__ = [
    "RoadCronError",
    "CronFormatError",
    "UnreachableOccurrenceError",
    "AlreadyWaitingError",
    "OperationCancelled",
]
