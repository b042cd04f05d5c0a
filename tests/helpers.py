"""Test doubles and helpers for RoadCron tests."""
from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from roadcron_core.cancellation import CancellationToken
from roadcron_core.errors import OperationCancelled
from roadcron_core.scheduler.cron import CronExpression
from roadcron_core.worker.service import CronTask

UTC = timezone.utc


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FakeTimer:
    """Timer double that ticks almost immediately."""

    def __init__(self, expression: str, tick_seconds: float = 0.01):
        self.expression = CronExpression.parse(expression)
        self.tick_seconds = tick_seconds
        self.waits = 0
        self._disposed = False

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def next_occurrence(self, now: Optional[datetime] = None) -> datetime:
        return (now or datetime.now(UTC)) + timedelta(seconds=self.tick_seconds)

    def wait_for_next_tick(self, cancel: Optional[CancellationToken] = None) -> bool:
        cancel = cancel or CancellationToken()
        cancel.raise_if_cancelled()
        if self._disposed:
            return False
        self.waits += 1
        if cancel.wait(self.tick_seconds):
            raise OperationCancelled()
        return not self._disposed

    def dispose(self) -> None:
        self._disposed = True


class FakeTimerFactory:
    """Builds :class:`FakeTimer` objects and remembers them."""

    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, expression: str) -> FakeTimer:
        timer = FakeTimer(expression)
        self.timers.append(timer)
        return timer


class RecordingTask(CronTask):
    """Task that records its calls and can fail on demand."""

    def __init__(self, expressions=("* * * * * *",), failures: int = 0):
        self._expressions = list(expressions)
        self.expression_calls = 0
        self.executions = 0
        self.failures = failures
        self.executed = threading.Event()

    def expression(self):
        index = min(self.expression_calls, len(self._expressions) - 1)
        self.expression_calls += 1
        return self._expressions[index]

    def execute(self, cancel: CancellationToken) -> None:
        self.executions += 1
        self.executed.set()
        if self.executions <= self.failures:
            raise RuntimeError(f"boom #{self.executions}")


class SupervisorThread:
    """Runs ``supervisor.run`` on a background thread."""

    def __init__(self, supervisor, cancel: Optional[CancellationToken] = None):
        self.supervisor = supervisor
        self.cancel = cancel
        self.error: Optional[BaseException] = None
        self.thread = threading.Thread(target=self._run, daemon=True)

    def _run(self) -> None:
        try:
            self.supervisor.run(self.cancel)
        except BaseException as e:  # noqa: BLE001
            self.error = e

    def start(self) -> "SupervisorThread":
        self.thread.start()
        return self

    def join(self, timeout: float = 5.0) -> None:
        self.thread.join(timeout)
