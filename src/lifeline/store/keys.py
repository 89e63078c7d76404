"""Named records shared by the turn engine and the scheduler."""

from __future__ import annotations

SLEEP_UNTIL = "sleep_until"
SLEEP_REASON = "sleep_reason"
WAKE_REQUEST = "wake_request"
SCHEDULER_SLOW = "scheduler_slow"
CURRENT_TIER = "current_tier"
LAST_BALANCE = "last_balance"
LAST_BLOCKED_INPUT = "last_blocked_input"
START_TIME = "start_time"
LAST_HEARTBEAT = "last_heartbeat"
INBOX_CURSOR = "inbox_cursor"
LAST_HEALTH_CHECK = "last_health_check"
LAST_BALANCE_CHECK = "last_balance_check"
PREV_BALANCE_TIER = "prev_balance_tier"
LAST_DISTRESS = "last_distress"
UPSTREAM_STATUS = "upstream_status"


def task_error_key(task_name: str) -> str:
    return f"task_error:{task_name}"
