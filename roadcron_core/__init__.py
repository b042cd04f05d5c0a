"""RoadCron - Cron-Scheduled Background Services.

RoadCron runs a recurring task on a cron schedule inside a long-lived
process. The schedule is re-read whenever a timer has to be built, task
failures never stop the service, and shutdown interrupts every wait
promptly.

Architecture Overview:
┌─────────────────────────────────────────────────────────────────────────┐
│                            RoadCron System                              │
├─────────────────────────────────────────────────────────────────────────┤
│  ┌─────────────┐  ┌─────────────────┐  ┌─────────────────┐             │
│  │ ServiceHost │──▶│ CronSupervisor  │──▶│ OccurrenceTimer │             │
│  │             │  │                 │  │                 │             │
│  │ • start     │  │ • Acquire timer │  │ • Next tick     │             │
│  │ • run       │  │ • Wait          │  │ • One consumer  │             │
│  │ • stop      │  │ • Fire task     │  │ • Dispose       │             │
│  └─────────────┘  └─────────────────┘  └─────────────────┘             │
├─────────────────────────────────────────────────────────────────────────┤
│                           Core Components                               │
├─────────────────────────────────────────────────────────────────────────┤
│  ┌───────────────────────────────────────────────────────────────────┐ │
│  │                       Scheduler Module                            │ │
│  │  • CronExpression - Parsed cron schedule (croniter)               │ │
│  │  • OccurrenceTimer - Cancellable wait for the next occurrence     │ │
│  └───────────────────────────────────────────────────────────────────┘ │
│  ┌───────────────────────────────────────────────────────────────────┐ │
│  │                        Worker Module                              │ │
│  │  • CronTask - Expression provider + task body                     │ │
│  │  • CronSupervisor - Timer lifecycle and failure recovery          │ │
│  │  • ServiceHost - Runs hosted services on background threads       │ │
│  └───────────────────────────────────────────────────────────────────┘ │
│  ┌───────────────────────────────────────────────────────────────────┐ │
│  │                      Monitoring Module                            │ │
│  │  • TaskLoggerAdapter - Task-tagged log records                    │ │
│  │  • configure_logging - Console sink                               │ │
│  └───────────────────────────────────────────────────────────────────┘ │
└─────────────────────────────────────────────────────────────────────────┘

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from roadcron_core.errors import (
    AlreadyWaitingError,
    CronFormatError,
    OperationCancelled,
    RoadCronError,
    UnreachableOccurrenceError,
)
from roadcron_core.cancellation import CancellationToken, wait_any

# Scheduler components
from roadcron_core.scheduler.cron import CronExpression, CronFormat
from roadcron_core.scheduler.timer import OccurrenceTimer

# Worker components
from roadcron_core.worker.service import (
    CallableCronTask,
    CronSupervisor,
    CronTask,
    SupervisorConfig,
    SupervisorState,
    SupervisorStats,
)
from roadcron_core.worker.host import HostedService, ServiceHost

__version__ = "1.0.0"
__author__ = "BlackRoad OS"
__license__ = "Proprietary"

__all__ = [
    # Version
    "__version__",
    # Errors
    "RoadCronError",
    "CronFormatError",
    "UnreachableOccurrenceError",
    "AlreadyWaitingError",
    "OperationCancelled",
    # Cancellation
    "CancellationToken",
    "wait_any",
    # Scheduler
    "CronExpression",
    "CronFormat",
    "OccurrenceTimer",
    # Worker
    "CronTask",
    "CallableCronTask",
    "CronSupervisor",
    "SupervisorConfig",
    "SupervisorState",
    "SupervisorStats",
    "HostedService",
    "ServiceHost",
]
