"""Application runtime: wiring, the wake/sleep loop and shutdown ordering."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger

from lifeline.config import Settings
from lifeline.context import Identity
from lifeline.engine import EngineLimits, TurnEngine, sleep_deadline
from lifeline.integrations import (
    INBOX_FILE_NAME,
    CommandBalanceSource,
    JsonlInbox,
    LocalCompute,
    RepublicReasoner,
    StaticBalanceSource,
)
from lifeline.scheduler import HeartbeatScheduler, TaskContext, load_schedule_config, sync_schedule_to_store
from lifeline.store import FileStateStore, keys
from lifeline.survival import SurvivalMonitor
from lifeline.tools import ProtectedResourcePolicy, ToolExecutor
from lifeline.types import (
    BalanceSource,
    ComputeProvider,
    InboxSource,
    LifecycleState,
    ReasoningClient,
    StateStore,
    Wallet,
)


class AppRuntime:
    """Builds every collaborator once and drives the engine between sleeps."""

    def __init__(
        self,
        settings: Settings,
        *,
        workspace: Path | None = None,
        store: StateStore | None = None,
        reasoner: ReasoningClient | None = None,
        compute: ComputeProvider | None = None,
        balance_source: BalanceSource | None = None,
        inbox: InboxSource | None = None,
        wallet: Wallet | None = None,
    ) -> None:
        self.settings = settings
        self.home = settings.resolve_home()
        self.workspace = (workspace or Path.cwd()).resolve()
        self.store = store or FileStateStore(
            self.home,
            turn_cache_size=settings.context_window_turns + settings.summary_turns + 1,
        )
        self.compute = compute or LocalCompute(self.workspace)
        self.balance_source = balance_source or self._default_balance_source()
        self.inbox = inbox or JsonlInbox(self.home / INBOX_FILE_NAME)
        self.reasoner = reasoner or RepublicReasoner(settings)

        schedule_path = settings.resolve_schedule_path()
        self.policy = ProtectedResourcePolicy(
            home=self.home,
            extra_paths=[*settings.protected_paths, str(schedule_path)],
            process_name=settings.process_name,
        )
        self.executor = ToolExecutor(
            compute=self.compute,
            store=self.store,
            balance_source=self.balance_source,
            policy=self.policy,
            wallet=wallet,
            thresholds=settings.thresholds,
            timeout_seconds=settings.tool_timeout_seconds,
            agent_name=settings.name,
        )
        self.monitor = SurvivalMonitor(self.store, self.reasoner, thresholds=settings.thresholds)

        schedule = load_schedule_config(schedule_path)
        sync_schedule_to_store(schedule, self.store)
        self.scheduler = HeartbeatScheduler(
            store=self.store,
            context=TaskContext(
                store=self.store,
                compute=self.compute,
                balance_source=self.balance_source,
                thresholds=settings.thresholds,
                name=settings.name,
                version=settings.version,
                inbox=self.inbox,
                update_repo_path=settings.update_repo_path,
            ),
            low_compute_multiplier=schedule.low_compute_multiplier or settings.low_compute_multiplier,
        )
        self.engine = TurnEngine(
            store=self.store,
            reasoner=self.reasoner,
            executor=self.executor,
            balance_source=self.balance_source,
            monitor=self.monitor,
            identity=Identity(
                name=settings.name,
                creator_id=settings.creator_id,
                genesis_prompt=settings.genesis_prompt,
                creator_message=settings.creator_message,
            ),
            limits=EngineLimits.from_settings(settings),
        )
        self._stop = asyncio.Event()
        self._closed = False
        self._engine_started = False

    def _default_balance_source(self) -> BalanceSource:
        if self.settings.balance_command:
            return CommandBalanceSource(self.compute, self.settings.balance_command)
        return StaticBalanceSource(self.settings.static_balance)

    def __enter__(self) -> AppRuntime:
        if not self.scheduler.running:
            self.scheduler.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def request_stop(self) -> None:
        self._stop.set()

    def close(self) -> None:
        """Stop the scheduler and close the store, leaving the lifecycle record as found."""
        self._release(park=False)

    def shutdown(self) -> None:
        """Stop the scheduler, park the lifecycle if this runtime drove the engine, then close the store."""
        self._release(park=self._engine_started)

    def _release(self, *, park: bool) -> None:
        if self._closed:
            return
        self._closed = True
        self.scheduler.shutdown()
        if park and self.store.get_lifecycle() is not LifecycleState.TERMINATED:
            self.store.set_lifecycle(LifecycleState.SLEEPING)
        self.store.close()
        logger.info("runtime.shutdown.done parked={}", park)

    async def run_forever(self, *, max_cycles: int | None = None, max_turns: int | None = None) -> None:
        self._engine_started = True
        cycles = 0
        while not self._stop.is_set():
            state = await self.engine.run(max_turns=max_turns)
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            if state is LifecycleState.TERMINATED:
                # The scheduler keeps reporting; only the engine stays down.
                await self._wait(self.settings.sleep_poll_seconds)
                continue
            await self._sleep_until_woken()

    async def _sleep_until_woken(self) -> None:
        while not self._stop.is_set():
            if self.store.get(keys.WAKE_REQUEST) is not None:
                return
            deadline = sleep_deadline(self.store)
            if deadline is None:
                return
            remaining = (deadline - datetime.now(UTC)).total_seconds()
            if remaining <= 0:
                return
            await self._wait(min(remaining, self.settings.sleep_poll_seconds))

    async def _wait(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except TimeoutError:
            return
