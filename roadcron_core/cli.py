"""RoadCron CLI - Inspect Schedules and Host the Demo Task.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import typer

from roadcron_core.cancellation import CancellationToken
from roadcron_core.errors import CronFormatError
from roadcron_core.monitoring.logging import configure_logging
from roadcron_core.scheduler.cron import CronExpression, CronFormat
from roadcron_core.scheduler.timer import local_timezone
from roadcron_core.worker.host import ServiceHost
from roadcron_core.worker.service import CronSupervisor, CronTask, SupervisorConfig

DEMO_EXPRESSION = "0-9,20-29,40-49 * * * * *"

app = typer.Typer(no_args_is_help=True, help="Run tasks on cron schedules.")


class EchoTask(CronTask):
    """Demo task that logs the time it runs at."""

    def __init__(self, schedule: str, logger: Optional[logging.Logger] = None):
        self.schedule = schedule
        self.logger = logger or logging.getLogger(__name__)

    def expression(self) -> str:
        return self.schedule

    def execute(self, cancel: CancellationToken) -> None:
        self.logger.info(f"Executing at {datetime.now():%Y-%m-%d %H:%M:%S}")


def _resolve_zone(name: Optional[str]):
    if not name:
        return local_timezone()
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        typer.echo(f"Error: unknown time zone {name!r}", err=True)
        raise typer.Exit(code=2)


@app.command("next")
def next_occurrences(
    expression: str = typer.Argument(..., help="Cron expression or macro"),
    count: int = typer.Option(10, "--count", "-n", min=1, help="Occurrences to print"),
    timezone: Optional[str] = typer.Option(None, "--timezone", "-z", help="IANA time zone"),
    standard: bool = typer.Option(False, "--standard", help="Five fields, no seconds"),
) -> None:
    """Print the next occurrences of an expression."""
    fmt = CronFormat.STANDARD if standard else CronFormat.INCLUDE_SECONDS
    try:
        parsed = CronExpression.parse(expression, fmt)
    except CronFormatError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2)

    zone = _resolve_zone(timezone)
    typer.echo(f"Expression {parsed.text} ({parsed.expanded})")
    for occurrence in parsed.occurrences(datetime.now(zone), count, zone):
        typer.echo(f"|> {occurrence:%Y-%m-%d %a %H:%M:%S %z}")


@app.command("run")
def run(
    expression: str = typer.Argument(DEMO_EXPRESSION, help="Cron expression or macro"),
    backoff: Optional[float] = typer.Option(None, "--backoff", help="Retry delay in seconds"),
    timezone: Optional[str] = typer.Option(None, "--timezone", "-z", help="IANA time zone"),
    log_level: str = typer.Option("INFO", "--log-level", "-l", help="Log level"),
) -> None:
    """Run the demo task until interrupted."""
    configure_logging(log_level)

    config = SupervisorConfig.from_env()
    if backoff is not None:
        config.backoff_seconds = backoff
    if timezone:
        _resolve_zone(timezone)
        config.timezone = timezone

    task = EchoTask(expression)
    supervisor = CronSupervisor(task, config, logger=logging.getLogger("roadcron.supervisor"))
    ServiceHost([supervisor]).run_forever()


def main() -> None:
    app()


__all__ = ["app", "main", "EchoTask", "DEMO_EXPRESSION"]
