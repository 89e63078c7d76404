"""Balance sources."""

from __future__ import annotations

import re

from lifeline.errors import LifelineError
from lifeline.types import ComputeProvider

NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


class CommandBalanceSource:
    """Reads the balance as the first number printed by a shell command."""

    def __init__(self, compute: ComputeProvider, command: str, *, timeout_ms: int = 10_000) -> None:
        self._compute = compute
        self._command = command
        self._timeout_ms = timeout_ms

    def get_balance(self) -> float:
        result = self._compute.execute(self._command, timeout_ms=self._timeout_ms)
        if result.exit_code != 0:
            raise LifelineError(f"balance command failed: exit={result.exit_code} {result.stderr}")
        match = NUMBER_RE.search(result.stdout.replace(",", ""))
        if match is None:
            raise LifelineError(f"balance command printed no number: {result.stdout[:80]!r}")
        return float(match.group(0))


class StaticBalanceSource:
    def __init__(self, balance: float) -> None:
        self.balance = balance

    def get_balance(self) -> float:
        return self.balance
