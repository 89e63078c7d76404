"""Cron-driven background task runner."""

from __future__ import annotations

import threading
from collections.abc import Mapping

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from lifeline.scheduler.tasks import BUILTIN_TASKS, TaskContext, TaskFn, TaskResult
from lifeline.store import keys
from lifeline.types import StateStore, now_iso


class HeartbeatScheduler:
    """Fires scheduled task records on APScheduler worker threads.

    The scheduler talks to the turn engine only through the state store: a task
    that asks to wake the agent leaves a ``wake_request`` record behind.
    """

    def __init__(
        self,
        *,
        store: StateStore,
        context: TaskContext,
        tasks: Mapping[str, TaskFn] | None = None,
        low_compute_multiplier: int = 4,
        scheduler: BaseScheduler | None = None,
    ) -> None:
        self._store = store
        self._context = context
        self._tasks = dict(BUILTIN_TASKS if tasks is None else tasks)
        self._multiplier = max(1, low_compute_multiplier)
        self._scheduler = scheduler or BackgroundScheduler(daemon=True)
        self._fire_counts: dict[str, int] = {}
        self._count_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        for record in self._store.list_tasks():
            if not record.enabled:
                continue
            if record.task not in self._tasks:
                logger.warning("scheduler.task.unknown name={} task={}", record.name, record.task)
                continue
            try:
                trigger = CronTrigger.from_crontab(record.schedule)
            except ValueError as exc:
                logger.error("scheduler.task.invalid_cron name={} schedule={} error={}", record.name, record.schedule, exc)
                continue
            self._scheduler.add_job(
                self.fire,
                trigger=trigger,
                id=record.name,
                kwargs={"name": record.name},
                coalesce=True,
                max_instances=1,
                replace_existing=True,
            )
            logger.info("scheduler.task.scheduled name={} schedule={}", record.name, record.schedule)
        if not self._scheduler.running:
            self._scheduler.start()

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=True)
            logger.info("scheduler.stopped")

    def _skip_for_slow_cadence(self, name: str) -> bool:
        if self._store.get(keys.SCHEDULER_SLOW) is None:
            return False
        with self._count_lock:
            count = self._fire_counts.get(name, 0) + 1
            self._fire_counts[name] = count
        return count % self._multiplier != 0

    def fire(self, name: str, *, force: bool = False) -> TaskResult | None:
        """Run one task by record name; failures are recorded and never raised."""
        try:
            record = self._store.get_task(name)
            if record is None or not record.enabled:
                return None
            task = self._tasks.get(record.task)
            if task is None:
                logger.warning("scheduler.task.unknown name={} task={}", name, record.task)
                return None
            if not force and self._skip_for_slow_cadence(name):
                logger.debug("scheduler.task.skipped name={} reason=slow_cadence", name)
                return None

            result = task(self._context, dict(record.params))
            self._store.mark_task_run(name, now_iso())
            if result.should_wake:
                reason = result.message or f"woken by {name}"
                self._store.set(keys.WAKE_REQUEST, reason)
                logger.info("scheduler.wake name={} reason={}", name, reason)
            return result
        except Exception as exc:
            logger.exception("scheduler.task.error name={}", name)
            try:
                self._store.set_json(keys.task_error_key(name), {"error": str(exc), "at": now_iso()})
            except Exception as store_exc:
                logger.error("scheduler.task.error_unrecorded name={} error={}", name, store_exc)
            return None

    def run_once(self) -> dict[str, TaskResult | None]:
        """Fire every enabled task once, in record order."""
        results: dict[str, TaskResult | None] = {}
        for record in self._store.list_tasks():
            if record.enabled:
                results[record.name] = self.fire(record.name, force=True)
        return results
