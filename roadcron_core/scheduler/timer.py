"""RoadCron Occurrence Timer - Single-Consumer Cron Waiter.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Optional, Union

from roadcron_core.cancellation import CancellationToken
from roadcron_core.errors import AlreadyWaitingError, UnreachableOccurrenceError
from roadcron_core.scheduler.cron import CronExpression, CronFormat

logger = logging.getLogger(__name__)

# Floor between "now" and the targeted occurrence
MIN_DELAY = timedelta(milliseconds=500)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_timezone() -> tzinfo:
    """Get the host's local time zone."""
    return datetime.now().astimezone().tzinfo


class _TickHandle:
    """One-shot sleep that can be cut short by ``close`` or a cancel token."""

    def __init__(self, delay: timedelta):
        self.delay = delay
        self._wakeup = threading.Event()

    def wait(self, cancel: CancellationToken) -> bool:
        """Sleep until the delay elapses.

        Returns:
            True if the delay elapsed, False if the handle was closed

        Raises:
            OperationCancelled: If ``cancel`` fires first
        """
        unregister = cancel.register(self._wakeup.set)
        try:
            woken = self._wakeup.wait(self.delay.total_seconds())
        finally:
            unregister()

        if not woken:
            return True
        cancel.raise_if_cancelled()
        return False

    def close(self) -> None:
        self._wakeup.set()

    def __enter__(self) -> "_TickHandle":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class OccurrenceTimer:
    """Sleeps until the next occurrence of a cron expression.

    Only one thread may wait on a timer at a time. Each wait computes a
    fresh delay from the current time, so deadlines never drift.
    :meth:`dispose` may be called from any thread and wakes a waiter.

    Example:
        >>> timer = OccurrenceTimer("*/5 * * * * *")
        >>> while timer.wait_for_next_tick(token):
        ...     do_work()
    """

    def __init__(
        self,
        expression: Union[str, CronExpression],
        timezone: Optional[tzinfo] = None,
        min_delay: timedelta = MIN_DELAY,
        clock: Optional[Callable[[], datetime]] = None,
        fmt: CronFormat = CronFormat.INCLUDE_SECONDS,
    ):
        """Initialize timer.

        Args:
            expression: Cron expression text or parsed expression
            timezone: Zone occurrences are evaluated in (default: local zone)
            min_delay: Minimum distance between now and the next tick
            clock: Returns the current aware time (default: UTC wall clock)
            fmt: Field layout used when ``expression`` is text

        Raises:
            CronFormatError: If ``expression`` cannot be parsed
        """
        if isinstance(expression, CronExpression):
            self._expression = expression
        else:
            self._expression = CronExpression.parse(expression, fmt)

        self.timezone = timezone or local_timezone()
        self.min_delay = min_delay
        self._clock = clock or _utc_now

        self._lock = threading.Lock()
        self._active: Optional[_TickHandle] = None
        self._disposed = False

    @property
    def expression(self) -> CronExpression:
        """Get the parsed expression."""
        return self._expression

    @property
    def is_disposed(self) -> bool:
        """Check if the timer was disposed."""
        return self._disposed

    @property
    def is_waiting(self) -> bool:
        """Check if a consumer is currently waiting."""
        return self._active is not None

    def next_occurrence(self, now: Optional[datetime] = None) -> datetime:
        """Compute the instant the next wait will target.

        Raises:
            UnreachableOccurrenceError: If the expression never fires again
        """
        now = now or self._clock()
        next_run = self._expression.next_occurrence(now + self.min_delay, self.timezone)
        if next_run is None:
            raise UnreachableOccurrenceError(self._expression.text)
        return next_run

    def wait_for_next_tick(self, cancel: Optional[CancellationToken] = None) -> bool:
        """Wait for the next occurrence.

        Args:
            cancel: Token that aborts the wait

        Returns:
            True when the occurrence is reached, False if the timer was disposed

        Raises:
            OperationCancelled: If ``cancel`` is or becomes cancelled
            AlreadyWaitingError: If another thread is already waiting
            UnreachableOccurrenceError: If the expression never fires again
        """
        cancel = cancel or CancellationToken.none()
        cancel.raise_if_cancelled()

        with self._lock:
            if self._disposed:
                return False
            if self._active is not None:
                raise AlreadyWaitingError()

            now = self._clock()
            delay = self.next_occurrence(now) - now
            assert delay > self.min_delay
            handle = self._active = _TickHandle(delay)

        try:
            with handle:
                return handle.wait(cancel)
        finally:
            with self._lock:
                self._active = None

    def dispose(self) -> None:
        """Dispose the timer, waking any waiter."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            active = self._active

        if active:
            active.close()
        logger.debug(f"Timer for {self._expression.text!r} disposed")

    def __enter__(self) -> "OccurrenceTimer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return (
            f"OccurrenceTimer(expression={self._expression.text!r}, "
            f"disposed={self._disposed})"
        )


__all__ = ["OccurrenceTimer", "MIN_DELAY", "local_timezone"]
