"""RoadCron Logging - Logger Helpers and Console Sink.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, MutableMapping, Optional, Tuple, Union

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
NULL_LOGGER_NAME = "roadcron.null"


def null_logger() -> logging.Logger:
    """Get a logger that discards every record.

    Used as the default logger of services constructed without one, which
    keeps unit tests quiet.
    """
    log = logging.getLogger(NULL_LOGGER_NAME)
    if not log.handlers:
        log.addHandler(logging.NullHandler())
    log.propagate = False
    return log


class TaskLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that tags every record with a task name."""

    def __init__(self, logger: logging.Logger, task_name: str):
        super().__init__(logger, {"task_name": task_name})

    @property
    def task_name(self) -> str:
        return self.extra["task_name"]

    def process(
        self,
        msg: Any,
        kwargs: MutableMapping[str, Any],
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("task_name", self.task_name)
        kwargs["extra"] = extra
        return msg, kwargs


def configure_logging(
    level: Union[int, str] = logging.INFO,
    fmt: str = DEFAULT_FORMAT,
    stream: Optional[Any] = None,
) -> logging.Handler:
    """Send log records to the console.

    Args:
        level: Root log level
        fmt: Record format
        stream: Output stream (default: stderr)

    Returns:
        The installed handler
    """
    if isinstance(level, str):
        name = level.upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {name}")

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(level)
    return handler


__all__ = ["TaskLoggerAdapter", "configure_logging", "null_logger", "DEFAULT_FORMAT"]
