"""Configuration management for lifeline."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from lifeline.types import Thresholds

DEFAULT_HOME = Path("~/.lifeline")


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="LIFELINE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Identity
    name: str = Field(default="lifeline", description="Agent name shown in prompts and heartbeats")
    creator_id: str = Field(default="creator", description="Sender id treated as the trusted operator")
    genesis_prompt: str = Field(default="Stay alive. Be useful. Earn your existence.")
    creator_message: str | None = Field(default=None, description="Shown to the agent on its first run only")
    version: str = Field(default="0.1.0")

    # Reasoning
    model: str = Field(default="openai:gpt-4o", description="provider:model used in the ample tier")
    low_compute_model: str = Field(default="openai:gpt-4o-mini", description="Model used when effort is reduced")
    routing_models: dict[str, str] = Field(
        default_factory=dict,
        description="Optional routing profile to model map (premium, balanced, economy)",
    )
    api_key: str | None = Field(default=None)
    api_base: str | None = Field(default=None)
    max_tokens: int = Field(default=4096, ge=1)
    model_timeout_seconds: float = Field(default=120.0, gt=0)

    # Survival thresholds, strictly descending
    ample_threshold: float = Field(default=50_000)
    reduced_threshold: float = Field(default=10_000)
    critical_threshold: float = Field(default=1_000)
    balance_command: str | None = Field(default=None, description="Shell command printing the current balance")
    static_balance: float = Field(default=100_000, description="Balance reported when no balance_command is set")

    # Turn engine
    context_window_turns: int = Field(default=20, ge=1)
    summary_turns: int = Field(default=40, ge=0, description="Older turns folded into the summary message")
    max_tool_calls_per_turn: int = Field(default=10, ge=1)
    max_consecutive_errors: int = Field(default=5, ge=1)
    error_backoff_seconds: int = Field(default=300, ge=1)
    idle_sleep_seconds: int = Field(default=60, ge=1)
    tool_timeout_seconds: float = Field(default=30.0, gt=0)
    sleep_poll_seconds: float = Field(default=30.0, gt=0)

    # Background scheduler
    schedule_path: Path | None = Field(default=None, description="Defaults to <home>/schedule.yml")
    low_compute_multiplier: int = Field(default=4, ge=1)
    update_repo_path: Path | None = Field(default=None, description="Git checkout watched by check_for_updates")

    # Safety
    protected_paths: list[str] = Field(default_factory=list, description="Extra paths that may never be modified")
    process_name: str = Field(default="lifeline")

    # System
    home: Path = Field(default=DEFAULT_HOME)
    log_level: str = Field(default="INFO")

    @model_validator(mode="after")
    def _check_thresholds(self) -> Settings:
        if not self.ample_threshold > self.reduced_threshold > self.critical_threshold >= 0:
            raise ValueError(
                "thresholds must satisfy ample > reduced > critical >= 0, "
                f"got {self.ample_threshold}/{self.reduced_threshold}/{self.critical_threshold}"
            )
        return self

    @property
    def thresholds(self) -> Thresholds:
        return Thresholds(
            ample=self.ample_threshold,
            reduced=self.reduced_threshold,
            critical=self.critical_threshold,
        )

    def resolve_home(self) -> Path:
        home = self.home.expanduser()
        home.mkdir(parents=True, exist_ok=True)
        return home

    def resolve_schedule_path(self) -> Path:
        if self.schedule_path is not None:
            return self.schedule_path.expanduser()
        return self.resolve_home() / "schedule.yml"


def get_settings(**overrides: object) -> Settings:
    """Get application settings.

    Args:
        overrides: Field values that take precedence over environment and .env

    Returns:
        Settings instance
    """
    return Settings(**overrides)  # type: ignore[arg-type]
