"""Background task scheduling."""

from .config import (
    ScheduleConfig,
    ScheduleEntry,
    default_schedule_config,
    load_schedule_config,
    save_schedule_config,
    sync_schedule_to_store,
)
from .scheduler import HeartbeatScheduler
from .tasks import BUILTIN_TASKS, TaskContext, TaskResult

__all__ = [
    "BUILTIN_TASKS",
    "HeartbeatScheduler",
    "ScheduleConfig",
    "ScheduleEntry",
    "TaskContext",
    "TaskResult",
    "default_schedule_config",
    "load_schedule_config",
    "save_schedule_config",
    "sync_schedule_to_store",
]
