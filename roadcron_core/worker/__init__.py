"""RoadCron Worker Module - Supervised Cron Services and Hosting.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from roadcron_core.worker.service import (
    CallableCronTask,
    CronSupervisor,
    CronTask,
    SupervisorConfig,
    SupervisorState,
    SupervisorStats,
)
from roadcron_core.worker.host import HostedService, HostState, ServiceHost

__all__ = [
    "CronSupervisor",
    "CronTask",
    "CallableCronTask",
    "SupervisorConfig",
    "SupervisorState",
    "SupervisorStats",
    "HostedService",
    "HostState",
    "ServiceHost",
]
