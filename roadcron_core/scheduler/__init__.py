"""RoadCron Scheduler Module - Cron Expressions and Occurrence Timers.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from roadcron_core.scheduler.cron import CronExpression, CronFormat, MACROS
from roadcron_core.scheduler.timer import OccurrenceTimer, MIN_DELAY

__all__ = [
    "CronExpression",
    "CronFormat",
    "MACROS",
    "OccurrenceTimer",
    "MIN_DELAY",
]
