"""Built-in background tasks.

Each task reads one signal, records what it saw in the state store and tells
the scheduler whether the turn engine should be woken.
"""

from __future__ import annotations

import shlex
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from lifeline.store import keys
from lifeline.survival import classify_tier, format_balance, read_balance
from lifeline.types import (
    DEFAULT_THRESHOLDS,
    BalanceSource,
    ComputeProvider,
    InboxSource,
    ResourceTier,
    StateStore,
    Thresholds,
    now_iso,
)

DISTRESS_TIERS = frozenset({ResourceTier.CRITICAL, ResourceTier.EXHAUSTED})


@dataclass(frozen=True)
class TaskResult:
    should_wake: bool = False
    message: str | None = None


@dataclass(frozen=True)
class TaskContext:
    store: StateStore
    compute: ComputeProvider
    balance_source: BalanceSource
    thresholds: Thresholds = DEFAULT_THRESHOLDS
    name: str = "lifeline"
    version: str = "0.1.0"
    inbox: InboxSource | None = None
    update_repo_path: Path | None = None


TaskFn = Callable[[TaskContext, dict[str, Any]], TaskResult]


def _uptime_seconds(store: StateStore) -> int:
    raw = store.get(keys.START_TIME)
    if raw is None:
        return 0
    try:
        started = datetime.fromisoformat(raw)
    except ValueError:
        return 0
    if started.tzinfo is None:
        started = started.replace(tzinfo=UTC)
    return max(0, int((datetime.now(UTC) - started).total_seconds()))


def heartbeat_ping(ctx: TaskContext, _params: dict[str, Any]) -> TaskResult:
    balance = read_balance(ctx.balance_source)
    tier = classify_tier(balance, ctx.thresholds)
    payload = {
        "name": ctx.name,
        "state": ctx.store.get_lifecycle().value,
        "balance": balance,
        "tier": tier.value,
        "uptime_seconds": _uptime_seconds(ctx.store),
        "version": ctx.version,
        "timestamp": now_iso(),
    }
    ctx.store.set_json(keys.LAST_HEARTBEAT, payload)

    if tier in DISTRESS_TIERS:
        ctx.store.set_json(
            keys.LAST_DISTRESS,
            {"level": tier.value, "name": ctx.name, "balance": balance, "timestamp": now_iso()},
        )
        return TaskResult(True, f"Distress: {tier}. Balance: {format_balance(balance)}. Need funding.")
    return TaskResult()


def check_balance(ctx: TaskContext, _params: dict[str, Any]) -> TaskResult:
    balance = read_balance(ctx.balance_source)
    tier = classify_tier(balance, ctx.thresholds)
    ctx.store.set_json(keys.LAST_BALANCE_CHECK, {"balance": balance, "tier": tier.value, "timestamp": now_iso()})
    previous = ctx.store.get(keys.PREV_BALANCE_TIER)
    ctx.store.set(keys.PREV_BALANCE_TIER, tier.value)
    if previous and previous != tier.value and tier in DISTRESS_TIERS:
        return TaskResult(True, f"Balance dropped to {tier} tier: {format_balance(balance)}")
    return TaskResult()


def check_inbox(ctx: TaskContext, _params: dict[str, Any]) -> TaskResult:
    if ctx.inbox is None:
        return TaskResult()
    cursor = ctx.store.get(keys.INBOX_CURSOR)
    messages, next_cursor = ctx.inbox.poll(cursor)
    fresh = [message for message in messages if ctx.store.enqueue_inbox(message)]
    if next_cursor:
        ctx.store.set(keys.INBOX_CURSOR, next_cursor)
    if not fresh:
        return TaskResult()
    senders = ", ".join(sorted({message.sender[:10] for message in fresh}))
    return TaskResult(True, f"{len(fresh)} new message(s) from: {senders}")


def check_for_updates(ctx: TaskContext, params: dict[str, Any]) -> TaskResult:
    repo = params.get("repo") or ctx.update_repo_path
    if not repo:
        ctx.store.set_json(keys.UPSTREAM_STATUS, {"status": "disabled", "checked_at": now_iso()})
        return TaskResult()

    quoted = shlex.quote(str(repo))
    ctx.compute.execute(f"git -C {quoted} fetch --quiet", timeout_ms=30_000)
    outcome = ctx.compute.execute(f"git -C {quoted} rev-list --count HEAD..@{{u}}", timeout_ms=10_000)
    if outcome.exit_code != 0:
        ctx.store.set_json(
            keys.UPSTREAM_STATUS,
            {"error": outcome.stderr or f"exit={outcome.exit_code}", "checked_at": now_iso()},
        )
        return TaskResult()

    behind = int(outcome.stdout.strip() or 0)
    ctx.store.set_json(keys.UPSTREAM_STATUS, {"repo": str(repo), "behind": behind, "checked_at": now_iso()})
    if behind > 0:
        return TaskResult(True, f"{behind} new commit(s) upstream of {repo}.")
    return TaskResult()


def health_check(ctx: TaskContext, _params: dict[str, Any]) -> TaskResult:
    try:
        outcome = ctx.compute.execute("echo alive", timeout_ms=5_000)
    except Exception as exc:
        return TaskResult(True, f"Health check failed: {exc}")
    if outcome.exit_code != 0:
        return TaskResult(True, "Health check failed: compute exec returned non-zero")
    ctx.store.set(keys.LAST_HEALTH_CHECK, now_iso())
    return TaskResult()


BUILTIN_TASKS: dict[str, TaskFn] = {
    "heartbeat_ping": heartbeat_ping,
    "check_balance": check_balance,
    "check_inbox": check_inbox,
    "check_for_updates": check_for_updates,
    "health_check": health_check,
}
