"""schedule.yml loading and syncing into the state store."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from lifeline.types import ScheduledTaskRecord, StateStore


class ScheduleEntry(BaseModel):
    name: str = Field(..., min_length=1)
    schedule: str = Field(..., description="Crontab expression: minute hour day month day_of_week")
    task: str
    enabled: bool = True
    params: dict[str, Any] = Field(default_factory=dict)


class ScheduleConfig(BaseModel):
    entries: list[ScheduleEntry] = Field(default_factory=list)
    low_compute_multiplier: int | None = Field(default=None, ge=1)


DEFAULT_ENTRIES: tuple[ScheduleEntry, ...] = (
    ScheduleEntry(name="heartbeat_ping", schedule="*/15 * * * *", task="heartbeat_ping"),
    ScheduleEntry(name="check_balance", schedule="*/5 * * * *", task="check_balance"),
    ScheduleEntry(name="check_inbox", schedule="*/2 * * * *", task="check_inbox"),
    ScheduleEntry(name="check_for_updates", schedule="0 */4 * * *", task="check_for_updates"),
    ScheduleEntry(name="health_check", schedule="*/30 * * * *", task="health_check"),
)


def default_schedule_config() -> ScheduleConfig:
    return ScheduleConfig(entries=[entry.model_copy() for entry in DEFAULT_ENTRIES])


def merge_with_defaults(entries: list[ScheduleEntry]) -> list[ScheduleEntry]:
    """User entries override defaults by name; defaults missing from the file are kept."""
    by_name = {entry.name: entry for entry in entries}
    merged = [by_name.pop(default.name, default) for default in DEFAULT_ENTRIES]
    merged.extend(by_name.values())
    return merged


def load_schedule_config(path: Path) -> ScheduleConfig:
    if not path.exists():
        return default_schedule_config()
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        config = ScheduleConfig.model_validate(raw)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        logger.error("schedule.config.invalid path={} error={}", path, e)
        return default_schedule_config()
    return config.model_copy(update={"entries": merge_with_defaults(config.entries)})


def save_schedule_config(config: ScheduleConfig, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config.model_dump(exclude_none=True), f, sort_keys=False)


def sync_schedule_to_store(config: ScheduleConfig, store: StateStore) -> None:
    for entry in config.entries:
        store.upsert_task(
            ScheduledTaskRecord(
                name=entry.name,
                schedule=entry.schedule,
                task=entry.task,
                enabled=entry.enabled,
                params=dict(entry.params),
            )
        )
