"""RoadCron Monitoring Module - Logging Helpers.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from roadcron_core.monitoring.logging import (
    DEFAULT_FORMAT,
    TaskLoggerAdapter,
    configure_logging,
    null_logger,
)

__all__ = ["DEFAULT_FORMAT", "TaskLoggerAdapter", "configure_logging", "null_logger"]
