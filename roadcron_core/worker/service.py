"""RoadCron Supervisor - Cron-Driven Background Service.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum, auto
from typing import Any, Callable, Mapping, Optional, Union
from zoneinfo import ZoneInfo

from roadcron_core.cancellation import CancellationToken, wait_any
from roadcron_core.errors import (
    CronFormatError,
    OperationCancelled,
    UnreachableOccurrenceError,
)
from roadcron_core.monitoring.logging import TaskLoggerAdapter, null_logger
from roadcron_core.scheduler.cron import CronFormat
from roadcron_core.scheduler.timer import OccurrenceTimer, local_timezone


class SupervisorState(Enum):
    """Supervisor lifecycle states."""

    NOT_STARTED = auto()
    RUNNING = auto()
    STOPPING = auto()
    STOPPED = auto()


@dataclass
class SupervisorConfig:
    """Supervisor configuration.

    Attributes:
        backoff_seconds: Delay before retrying after a recoverable failure
        min_delay_ms: Minimum distance between now and the next tick
        timezone: IANA zone the schedule is evaluated in (None: local zone)
        cron_format: Field layout of the provided expressions
        stop_timeout_seconds: Grace period used by ``stop`` without a token
    """

    backoff_seconds: float = 1.0
    min_delay_ms: int = 500
    timezone: Optional[str] = None
    cron_format: CronFormat = CronFormat.INCLUDE_SECONDS
    stop_timeout_seconds: float = 30.0

    def tzinfo(self) -> tzinfo:
        """Resolve the configured zone."""
        if self.timezone:
            return ZoneInfo(self.timezone)
        return local_timezone()

    @classmethod
    def from_env(
        cls,
        prefix: str = "ROADCRON_",
        environ: Optional[Mapping[str, str]] = None,
    ) -> "SupervisorConfig":
        """Build a config from environment variables.

        Reads ``BACKOFF_SECONDS``, ``MIN_DELAY_MS``, ``TIMEZONE`` and
        ``STOP_TIMEOUT_SECONDS`` under ``prefix``; unset values keep their
        defaults.
        """
        environ = os.environ if environ is None else environ
        config = cls()

        if f"{prefix}BACKOFF_SECONDS" in environ:
            config.backoff_seconds = float(environ[f"{prefix}BACKOFF_SECONDS"])
        if f"{prefix}MIN_DELAY_MS" in environ:
            config.min_delay_ms = int(environ[f"{prefix}MIN_DELAY_MS"])
        if environ.get(f"{prefix}TIMEZONE"):
            config.timezone = environ[f"{prefix}TIMEZONE"]
        if f"{prefix}STOP_TIMEOUT_SECONDS" in environ:
            config.stop_timeout_seconds = float(environ[f"{prefix}STOP_TIMEOUT_SECONDS"])

        return config


@dataclass
class SupervisorStats:
    """Supervisor statistics."""

    state: SupervisorState = SupervisorState.NOT_STARTED
    runs_succeeded: int = 0
    runs_failed: int = 0
    timer_builds: int = 0
    timer_build_failures: int = 0
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None
    next_occurrence: Optional[datetime] = None


class CronTask(ABC):
    """A unit of work run on a cron schedule.

    Subclasses provide the schedule and the work; :class:`CronSupervisor`
    decides when to run it.
    """

    @property
    def name(self) -> str:
        """Stable identifier used to tag log records."""
        return type(self).__name__

    @abstractmethod
    def expression(self) -> Optional[str]:
        """Return the current cron expression.

        Called when the supervisor builds a timer; may return a different
        value each time.
        """
        pass

    @abstractmethod
    def execute(self, cancel: CancellationToken) -> Any:
        """Run the task once."""
        pass


class CallableCronTask(CronTask):
    """Cron task built from plain callables."""

    def __init__(
        self,
        name: str,
        expression: Union[str, Callable[[], Optional[str]]],
        func: Callable[[CancellationToken], Any],
    ):
        self._name = name
        self._expression = expression
        self._func = func

    @property
    def name(self) -> str:
        return self._name

    def expression(self) -> Optional[str]:
        if callable(self._expression):
            return self._expression()
        return self._expression

    def execute(self, cancel: CancellationToken) -> Any:
        return self._func(cancel)


TimerFactory = Callable[[str], OccurrenceTimer]


class CronSupervisor:
    """Runs a :class:`CronTask` at every occurrence of its cron expression.

    The run loop cycles through four phases:

    - acquiring: no usable timer; read the expression and build one,
      backing off and retrying while the expression is invalid
    - armed: log the next occurrence and wait for it
    - firing: execute the task; failures are logged, followed by a backoff,
      and the same timer is reused
    - disarming: the timer was disposed; back off and acquire again

    Only cancellation ends the loop. Every other error is logged and
    retried, so nothing escapes :meth:`run`.

    The supervisor implements the ``start``/``run``/``stop`` hosted
    service contract and is normally driven by a
    :class:`~roadcron_core.worker.host.ServiceHost`.
    """

    def __init__(
        self,
        task: CronTask,
        config: Optional[SupervisorConfig] = None,
        logger: Optional[logging.Logger] = None,
        timer_factory: Optional[TimerFactory] = None,
    ):
        """Initialize supervisor.

        Args:
            task: Task to schedule
            config: Supervisor configuration
            logger: Log sink (default: a logger that discards everything)
            timer_factory: Builds a timer from expression text
        """
        self.task = task
        self.config = config or SupervisorConfig()
        self.name = task.name
        self._log = TaskLoggerAdapter(logger or null_logger(), self.name)
        self._timer_factory = timer_factory or self._default_timer_factory()

        self._timer: Optional[OccurrenceTimer] = None
        self._timer_lock = threading.Lock()
        self._state = SupervisorState.NOT_STARTED
        self._stats = SupervisorStats()

        self._stopping = CancellationToken()
        # Signalled when run() returns
        self._loop_exited = CancellationToken()
        self._loop_started = False

    @property
    def state(self) -> SupervisorState:
        """Get supervisor state."""
        return self._state

    @property
    def timer(self) -> Optional[OccurrenceTimer]:
        """Get the current timer, if any."""
        return self._timer

    def _default_timer_factory(self) -> TimerFactory:
        tz = self.config.tzinfo()
        min_delay = timedelta(milliseconds=self.config.min_delay_ms)
        fmt = self.config.cron_format

        def factory(expression: str) -> OccurrenceTimer:
            return OccurrenceTimer(expression, timezone=tz, min_delay=min_delay, fmt=fmt)

        return factory

    def start(self, cancel: Optional[CancellationToken] = None) -> None:
        """Prepare the supervisor and build the initial timer.

        A missing or invalid expression is logged; the run loop keeps
        retrying it.
        """
        if self._state in (SupervisorState.RUNNING, SupervisorState.STOPPING):
            self._log.warning(f"{self.name} already started")
            return

        if self._state is SupervisorState.STOPPED:
            self._stopping = CancellationToken()
            self._loop_exited = CancellationToken()
            self._loop_started = False

        self._state = SupervisorState.RUNNING
        if cancel is not None and cancel.is_cancelled:
            return

        try:
            self._acquire_timer()
        except Exception as e:
            self._log.error(f"{self.name} failed to create initial timer: {e}", exc_info=True)

    def run(self, cancel: Optional[CancellationToken] = None) -> None:
        """Run the schedule loop until ``cancel`` fires or :meth:`stop` is called."""
        token = CancellationToken.linked(cancel, self._stopping)
        self._loop_started = True
        if self._state is SupervisorState.NOT_STARTED:
            self._state = SupervisorState.RUNNING

        self._log.info(f"{self.name} is running")
        try:
            while not token.is_cancelled:
                try:
                    self._cycle(token)
                except OperationCancelled:
                    break
                except UnreachableOccurrenceError as e:
                    self._log.error(f"{self.name} {e}; discarding timer")
                    self._discard_timer()
                    self._backoff(token)
                except Exception as e:
                    self._stats.last_error = str(e)
                    self._log.error(f"{self.name} task failed: {e}", exc_info=True)
                    self._backoff(token)
        except OperationCancelled:
            pass
        finally:
            token.close()
            self._discard_timer()
            self._state = SupervisorState.STOPPED
            self._loop_exited.cancel()
            self._log.info(f"{self.name} stopped")

    def stop(self, cancel: Optional[CancellationToken] = None) -> bool:
        """Stop the loop and dispose the timer.

        Args:
            cancel: Fires when the caller stops waiting for the loop
                (default: ``stop_timeout_seconds``)

        Returns:
            True if the loop exited within the grace period
        """
        if self._state is SupervisorState.NOT_STARTED:
            self._state = SupervisorState.STOPPED
            return True

        if self._state is not SupervisorState.STOPPED:
            self._state = SupervisorState.STOPPING
        self._stopping.cancel()
        self._discard_timer()

        if not self._loop_started:
            self._state = SupervisorState.STOPPED
            return True

        if cancel is None:
            exited = self._loop_exited.wait(self.config.stop_timeout_seconds)
        else:
            exited = wait_any(self._loop_exited, cancel) and self._loop_exited.is_cancelled

        if not exited:
            self._log.warning(f"{self.name} did not stop within the grace period")
        return exited

    def rebuild(self) -> None:
        """Dispose the current timer so the loop builds a new one.

        Use after the expression returned by the task changed.
        """
        self._log.info(f"{self.name} timer rebuild requested")
        self._discard_timer()

    def get_stats(self) -> SupervisorStats:
        """Get supervisor statistics."""
        self._stats.state = self._state
        return self._stats

    def _cycle(self, token: CancellationToken) -> None:
        timer = self._timer
        if timer is None or timer.is_disposed:
            self._log.debug(f"{self.name} timer is not created or disposed")
            timer = self._acquire_timer()
            if timer is None:
                self._backoff(token)
                return

        now = datetime.now(timezone.utc)
        next_run = timer.next_occurrence(now)
        self._stats.next_occurrence = next_run
        self._log.info(
            f"{self.name} timer next occurrence is "
            f"{next_run:%Y-%m-%d %H:%M:%S %z} (in {next_run - now})"
        )

        if not timer.wait_for_next_tick(token):
            self._log.debug(f"{self.name} timer is signaled to stop")
            self._backoff(token)
            return

        self._execute(token)

    def _execute(self, token: CancellationToken) -> None:
        self._log.info(f"{self.name} is about to execute...")
        try:
            self.task.execute(token)
        except OperationCancelled:
            if token.is_cancelled:
                raise
            self._record_failure("task cancelled itself")
            self._log.warning(f"{self.name} task cancelled itself")
            self._backoff(token)
            return
        except Exception as e:
            self._record_failure(str(e))
            self._log.error(f"{self.name} task failed: {e}", exc_info=True)
            self._backoff(token)
            return

        self._stats.runs_succeeded += 1
        self._stats.last_run_at = datetime.now(timezone.utc)

    def _record_failure(self, error: str) -> None:
        self._stats.runs_failed += 1
        self._stats.last_run_at = datetime.now(timezone.utc)
        self._stats.last_error = error

    def _acquire_timer(self) -> Optional[OccurrenceTimer]:
        # Dispose the old timer before building its replacement
        self._discard_timer()

        try:
            expression = self.task.expression()
        except Exception as e:
            self._stats.timer_build_failures += 1
            self._log.error(f"{self.name} failed to read cron expression: {e}", exc_info=True)
            return None

        self._log.info(f"{self.name} is creating timer with cron expression {expression}")
        try:
            timer = self._timer_factory(expression)
        except CronFormatError as e:
            self._stats.timer_build_failures += 1
            self._log.error(
                f"{self.name} failed to create timer with cron expression {expression}: {e}",
                exc_info=True,
            )
            return None

        with self._timer_lock:
            stopping = self._stopping.is_cancelled
            if not stopping:
                self._timer = timer

        if stopping:
            timer.dispose()
            return None

        self._stats.timer_builds += 1
        return timer

    def _discard_timer(self) -> None:
        with self._timer_lock:
            timer, self._timer = self._timer, None
        if timer:
            timer.dispose()

    def _backoff(self, token: CancellationToken) -> None:
        if token.wait(self.config.backoff_seconds):
            raise OperationCancelled()

    def __repr__(self) -> str:
        return f"CronSupervisor(task={self.name!r}, state={self._state.name})"


__all__ = [
    "CronSupervisor",
    "CronTask",
    "CallableCronTask",
    "SupervisorConfig",
    "SupervisorState",
    "SupervisorStats",
]
