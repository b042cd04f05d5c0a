"""Unit tests for the cron task supervisor."""
from __future__ import annotations

import logging
import time
from zoneinfo import ZoneInfo

import pytest

from roadcron_core.cancellation import CancellationToken
from roadcron_core.errors import CronFormatError
from roadcron_core.scheduler.cron import CronExpression
from roadcron_core.scheduler.timer import OccurrenceTimer
from roadcron_core.worker.service import (
    CallableCronTask,
    CronSupervisor,
    SupervisorConfig,
    SupervisorState,
)
from tests.helpers import FakeTimer, RecordingTask, SupervisorThread, wait_until

FAST = SupervisorConfig(backoff_seconds=0.01, stop_timeout_seconds=5.0)


class NeverExpression(CronExpression):
    def next_occurrence(self, after, tz=None):
        return None


@pytest.fixture
def log():
    return logging.getLogger("tests.supervisor")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
class TestSupervisorConfig:
    def test_defaults(self):
        config = SupervisorConfig()
        assert config.backoff_seconds == 1.0
        assert config.min_delay_ms == 500
        assert config.timezone is None

    def test_from_env(self):
        config = SupervisorConfig.from_env(
            environ={
                "ROADCRON_BACKOFF_SECONDS": "2.5",
                "ROADCRON_MIN_DELAY_MS": "250",
                "ROADCRON_TIMEZONE": "Europe/Berlin",
                "ROADCRON_STOP_TIMEOUT_SECONDS": "3",
            }
        )
        assert config.backoff_seconds == 2.5
        assert config.min_delay_ms == 250
        assert config.timezone == "Europe/Berlin"
        assert config.stop_timeout_seconds == 3.0

    def test_from_env_keeps_defaults(self):
        assert SupervisorConfig.from_env(environ={}) == SupervisorConfig()

    def test_tzinfo(self):
        assert SupervisorConfig(timezone="UTC").tzinfo() == ZoneInfo("UTC")
        assert SupervisorConfig().tzinfo() is not None


# ---------------------------------------------------------------------------
# Task adapters
# ---------------------------------------------------------------------------
class TestCallableCronTask:
    def test_constant_expression(self):
        calls = []
        task = CallableCronTask("report", "@daily", lambda cancel: calls.append(cancel))
        token = CancellationToken()

        task.execute(token)

        assert task.name == "report"
        assert task.expression() == "@daily"
        assert calls == [token]

    def test_expression_provider(self):
        values = iter(["@hourly", "@daily"])
        task = CallableCronTask("report", lambda: next(values), lambda cancel: None)
        assert task.expression() == "@hourly"
        assert task.expression() == "@daily"

    def test_default_name_is_class_name(self):
        assert RecordingTask().name == "RecordingTask"


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
class TestLifecycle:
    def test_start_builds_initial_timer(self, timer_factory):
        task = RecordingTask()
        supervisor = CronSupervisor(task, FAST, timer_factory=timer_factory)

        supervisor.start()

        assert supervisor.state is SupervisorState.RUNNING
        assert task.expression_calls == 1
        assert supervisor.timer is timer_factory.timers[0]

    def test_start_survives_invalid_expression(self, log, caplog):
        supervisor = CronSupervisor(RecordingTask(["bogus"]), FAST, logger=log)

        with caplog.at_level(logging.ERROR, logger="tests.supervisor"):
            supervisor.start()

        assert supervisor.timer is None
        assert supervisor.get_stats().timer_build_failures == 1
        assert any("failed to create timer" in r.getMessage() for r in caplog.records)

    def test_start_survives_provider_error(self):
        def provider():
            raise KeyError("schedule")

        task = CallableCronTask("broken", provider, lambda cancel: None)
        supervisor = CronSupervisor(task, FAST)

        supervisor.start()

        assert supervisor.timer is None
        assert supervisor.state is SupervisorState.RUNNING

    def test_non_string_expression_counts_as_build_failure(self, log, caplog):
        supervisor = CronSupervisor(RecordingTask([5]), FAST, logger=log)

        with caplog.at_level(logging.ERROR, logger="tests.supervisor"):
            supervisor.start()

        assert supervisor.timer is None
        assert supervisor.get_stats().timer_build_failures == 1
        assert any("failed to create timer" in r.getMessage() for r in caplog.records)
        assert not any("task failed" in r.getMessage() for r in caplog.records)

    @pytest.mark.timeout(10)
    def test_sunday_as_seven_reaches_armed_state(self):
        task = RecordingTask(["0 0 0 ? * 7"])
        supervisor = CronSupervisor(task, FAST)
        supervisor.start()
        timer = supervisor.timer
        runner = SupervisorThread(supervisor).start()

        assert timer is not None
        assert wait_until(lambda: timer.is_waiting)
        assert supervisor.stop()
        runner.join()
        assert supervisor.get_stats().timer_build_failures == 0

    def test_stop_before_start(self):
        supervisor = CronSupervisor(RecordingTask(), FAST)
        assert supervisor.stop() is True
        assert supervisor.state is SupervisorState.STOPPED

    @pytest.mark.timeout(10)
    def test_stop_interrupts_wait(self):
        task = RecordingTask(["0 0 0 1 1 *"])
        supervisor = CronSupervisor(task, FAST)
        supervisor.start()
        timer = supervisor.timer
        runner = SupervisorThread(supervisor).start()
        assert wait_until(lambda: timer.is_waiting)

        started = time.monotonic()
        assert supervisor.stop() is True
        runner.join()

        assert time.monotonic() - started < 2.0
        assert runner.error is None
        assert timer.is_disposed
        assert supervisor.timer is None
        assert supervisor.state is SupervisorState.STOPPED
        assert task.executions == 0

    @pytest.mark.timeout(10)
    def test_host_cancellation_ends_loop(self, timer_factory, log, caplog):
        task = RecordingTask()
        supervisor = CronSupervisor(task, FAST, logger=log, timer_factory=timer_factory)
        token = CancellationToken()

        with caplog.at_level(logging.INFO, logger="tests.supervisor"):
            supervisor.start(token)
            runner = SupervisorThread(supervisor, token).start()
            assert task.executed.wait(5.0)
            token.cancel()
            runner.join()

        assert not runner.thread.is_alive()
        assert runner.error is None
        assert supervisor.state is SupervisorState.STOPPED
        assert timer_factory.timers[0].is_disposed
        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]

    @pytest.mark.timeout(10)
    def test_stop_with_expired_grace(self, timer_factory):
        supervisor = CronSupervisor(RecordingTask(), FAST, timer_factory=timer_factory)
        supervisor.start()
        grace = CancellationToken()
        grace.cancel()

        # run() was never entered, so there is no loop to wait for
        assert supervisor.stop(grace) is True


# ---------------------------------------------------------------------------
# Run loop
# ---------------------------------------------------------------------------
class TestRunLoop:
    @pytest.mark.timeout(10)
    def test_task_failure_reuses_timer(self, timer_factory, log, caplog):
        task = RecordingTask(failures=1)
        supervisor = CronSupervisor(task, FAST, logger=log, timer_factory=timer_factory)

        with caplog.at_level(logging.ERROR, logger="tests.supervisor"):
            supervisor.start()
            runner = SupervisorThread(supervisor).start()
            assert wait_until(lambda: task.executions >= 2)
            assert supervisor.stop()
            runner.join()

        stats = supervisor.get_stats()
        assert stats.runs_failed == 1
        assert stats.runs_succeeded >= 1
        assert stats.last_error == "boom #1"
        # one timer, one expression lookup: the failure did not trigger a rebuild
        assert len(timer_factory.timers) == 1
        assert task.expression_calls == 1

        failures = [r for r in caplog.records if "task failed" in r.getMessage()]
        assert len(failures) == 1
        assert failures[0].task_name == "RecordingTask"
        assert failures[0].exc_info is not None

    @pytest.mark.timeout(10)
    def test_unparsable_expression_never_fires(self):
        task = RecordingTask(["not a cron expression"])
        supervisor = CronSupervisor(task, FAST)

        supervisor.start()
        runner = SupervisorThread(supervisor).start()
        assert wait_until(lambda: task.expression_calls >= 5)
        assert supervisor.stop()
        runner.join()

        assert task.executions == 0
        assert supervisor.timer is None
        assert supervisor.get_stats().timer_build_failures >= 5

    @pytest.mark.timeout(10)
    def test_recovers_once_expression_is_valid(self, timer_factory):
        def factory(expression):
            CronExpression.parse(expression)
            return timer_factory(expression)

        task = RecordingTask([None, "nope", "* * * * * *"])
        supervisor = CronSupervisor(task, FAST, timer_factory=factory)

        supervisor.start()
        runner = SupervisorThread(supervisor).start()
        assert task.executed.wait(5.0)
        assert supervisor.stop()
        runner.join()

        assert task.expression_calls >= 3
        assert supervisor.get_stats().timer_build_failures == 2
        assert len(timer_factory.timers) == 1

    @pytest.mark.timeout(10)
    def test_rebuild_replaces_timer(self, timer_factory):
        task = RecordingTask(["* * * * * *", "*/2 * * * * *"])
        supervisor = CronSupervisor(task, FAST, timer_factory=timer_factory)

        supervisor.start()
        runner = SupervisorThread(supervisor).start()
        assert task.executed.wait(5.0)

        supervisor.rebuild()
        assert wait_until(lambda: len(timer_factory.timers) == 2)
        assert supervisor.stop()
        runner.join()

        first, second = timer_factory.timers
        assert first.is_disposed
        assert second.is_disposed
        assert second.expression.text == "*/2 * * * * *"
        assert task.expression_calls == 2

    @pytest.mark.timeout(10)
    def test_unreachable_expression_is_rebuilt(self):
        built = []

        def factory(expression):
            timer = OccurrenceTimer(NeverExpression(text=expression, expanded="0 0 0 30 2 *"))
            built.append(timer)
            return timer

        task = RecordingTask(["0 0 0 30 2 *"])
        supervisor = CronSupervisor(task, FAST, timer_factory=factory)

        supervisor.start()
        runner = SupervisorThread(supervisor).start()
        assert wait_until(lambda: len(built) >= 3)
        assert supervisor.stop()
        runner.join()

        assert runner.error is None
        assert task.executions == 0
        assert all(timer.is_disposed for timer in built)

    @pytest.mark.timeout(10)
    def test_fires_with_real_timer(self):
        task = RecordingTask(["* * * * * *"])
        supervisor = CronSupervisor(task, SupervisorConfig(backoff_seconds=0.01, timezone="UTC"))

        supervisor.start()
        runner = SupervisorThread(supervisor).start()
        assert task.executed.wait(5.0)
        assert supervisor.stop()
        runner.join()

        stats = supervisor.get_stats()
        assert stats.runs_succeeded >= 1
        assert stats.last_run_at is not None
        assert stats.next_occurrence is not None
        assert stats.state is SupervisorState.STOPPED

    def test_timer_factory_errors_are_format_errors(self):
        supervisor = CronSupervisor(RecordingTask(["61 * * * * *"]), FAST)
        supervisor.start()
        assert supervisor.timer is None
        with pytest.raises(CronFormatError):
            OccurrenceTimer("61 * * * * *")
