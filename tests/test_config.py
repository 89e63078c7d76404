from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from lifeline.config import Settings
from lifeline.types import Thresholds


def test_environment_prefix(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LIFELINE_NAME", "sentinel")
    monkeypatch.setenv("LIFELINE_MAX_TOOL_CALLS_PER_TURN", "3")
    monkeypatch.setenv("LIFELINE_HOME", str(tmp_path))

    settings = Settings(_env_file=None)  # type: ignore[call-arg]

    assert settings.name == "sentinel"
    assert settings.max_tool_calls_per_turn == 3
    assert settings.resolve_schedule_path() == tmp_path / "schedule.yml"


def test_thresholds(tmp_path: Path) -> None:
    settings = Settings(home=tmp_path, _env_file=None)  # type: ignore[call-arg]

    assert settings.thresholds == Thresholds(ample=50_000, reduced=10_000, critical=1_000)


def test_thresholds_must_descend(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        Settings(home=tmp_path, reduced_threshold=60_000, _env_file=None)  # type: ignore[call-arg]


def test_explicit_schedule_path(tmp_path: Path) -> None:
    settings = Settings(home=tmp_path, schedule_path=tmp_path / "etc" / "jobs.yml", _env_file=None)  # type: ignore[call-arg]

    assert settings.resolve_schedule_path() == tmp_path / "etc" / "jobs.yml"
