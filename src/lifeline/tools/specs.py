"""Closed set of tool kinds and their input models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, Field


class ToolKind(StrEnum):
    EXEC = "exec"
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    CHECK_BALANCE = "check_balance"
    SYSTEM_SYNOPSIS = "system_synopsis"
    SLEEP = "sleep"
    TRANSFER_FUNDS = "transfer_funds"


class ExecInput(BaseModel):
    command: str = Field(..., description="Shell command to run")
    timeout_ms: int = Field(default=30_000, ge=1, description="Command timeout in milliseconds")


class ReadFileInput(BaseModel):
    path: str = Field(..., description="Path to the file")


class WriteFileInput(BaseModel):
    path: str = Field(..., description="Path to the file")
    content: str = Field(..., description="File contents")


class EmptyInput(BaseModel):
    """Empty input payload."""


class SleepInput(BaseModel):
    duration_seconds: int = Field(..., ge=1, description="How long to sleep before the next wake")
    reason: str | None = Field(default=None, description="Why the agent is going to sleep")


class TransferFundsInput(BaseModel):
    destination: str = Field(..., description="Invoice or address receiving the funds")
    amount: float = Field(..., gt=0, description="Amount in balance units")
    memo: str = Field(default="", description="Optional memo")


@dataclass(frozen=True)
class ToolSpec:
    kind: ToolKind
    model: type[BaseModel]
    category: str
    description: str
    dangerous: bool = False


TOOL_SPECS: dict[ToolKind, ToolSpec] = {
    ToolKind.EXEC: ToolSpec(
        ToolKind.EXEC, ExecInput, "compute", "Run a shell command and return stdout, stderr and exit code", True
    ),
    ToolKind.READ_FILE: ToolSpec(ToolKind.READ_FILE, ReadFileInput, "compute", "Read a UTF-8 text file"),
    ToolKind.WRITE_FILE: ToolSpec(
        ToolKind.WRITE_FILE, WriteFileInput, "compute", "Write a UTF-8 text file, creating parents", True
    ),
    ToolKind.CHECK_BALANCE: ToolSpec(
        ToolKind.CHECK_BALANCE, EmptyInput, "survival", "Check the current balance and resource tier"
    ),
    ToolKind.SYSTEM_SYNOPSIS: ToolSpec(
        ToolKind.SYSTEM_SYNOPSIS, EmptyInput, "self", "Summarize identity, lifecycle state, tier and activity"
    ),
    ToolKind.SLEEP: ToolSpec(
        ToolKind.SLEEP, SleepInput, "survival", "Sleep for a while; the heartbeat or a new message wakes you"
    ),
    ToolKind.TRANSFER_FUNDS: ToolSpec(
        ToolKind.TRANSFER_FUNDS, TransferFundsInput, "financial", "Transfer funds to an invoice or address", True
    ),
}


def spec_for(name: str) -> ToolSpec | None:
    try:
        return TOOL_SPECS[ToolKind(name)]
    except ValueError:
        return None


def tool_rows() -> list[str]:
    rows: list[str] = []
    for spec in TOOL_SPECS.values():
        caution = " [dangerous]" if spec.dangerous else ""
        rows.append(f"{spec.kind.value} ({spec.category}){caution}: {spec.description}")
    return rows
