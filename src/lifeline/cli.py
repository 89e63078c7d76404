"""lifeline command line."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from pydantic import ValidationError

from lifeline.config import Settings, get_settings
from lifeline.integrations import INBOX_FILE_NAME, JsonlInbox
from lifeline.logging_utils import LogProfile, configure_logging
from lifeline.runtime import AppRuntime
from lifeline.scheduler import default_schedule_config, load_schedule_config, save_schedule_config
from lifeline.store import keys
from lifeline.survival import check_resources, format_resource_report

app = typer.Typer(name="lifeline", help="A self-sustaining autonomous agent loop", add_completion=False)


def _load_settings() -> Settings:
    try:
        return get_settings()
    except ValidationError as exc:
        typer.echo(f"invalid configuration: {exc}", err=True)
        raise typer.Exit(2) from exc


def _build_runtime(settings: Settings, workspace: Path | None) -> AppRuntime:
    return AppRuntime(settings, workspace=workspace)


@app.command()
def run(
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Working directory for commands"),  # noqa: B008
    max_cycles: int | None = typer.Option(None, "--max-cycles", help="Stop after this many wake cycles"),
    max_turns: int | None = typer.Option(None, "--max-turns", help="Suspend each cycle after this many turns"),
    log_profile: str = typer.Option("console", "--log-profile", help="default or console"),
) -> None:
    """Start the scheduler and run the agent until interrupted."""
    settings = _load_settings()
    configure_logging(profile=_profile(log_profile), level=settings.log_level)
    runtime = _build_runtime(settings, workspace)
    with runtime:
        try:
            asyncio.run(runtime.run_forever(max_cycles=max_cycles, max_turns=max_turns))
        except KeyboardInterrupt:
            typer.echo("interrupted, shutting down")


@app.command()
def status(
    workspace: Path | None = typer.Option(None, "--workspace", "-w"),  # noqa: B008
) -> None:
    """Show lifecycle, resources and scheduled tasks."""
    settings = _load_settings()
    configure_logging(profile="default", level="WARNING")
    runtime = _build_runtime(settings, workspace)
    try:
        store = runtime.store
        report = check_resources(
            runtime.balance_source,
            runtime.compute,
            store,
            thresholds=runtime.settings.thresholds,
        )
        typer.echo(f"name: {runtime.settings.name}")
        typer.echo(f"lifecycle: {store.get_lifecycle()}")
        typer.echo(f"turns: {store.turn_count()}")
        typer.echo(f"sleep until: {store.get(keys.SLEEP_UNTIL) or '-'}")
        typer.echo(format_resource_report(report))
        for record in store.list_tasks():
            state = "on" if record.enabled else "off"
            typer.echo(f"task {record.name} [{state}] {record.schedule} last_run={record.last_run or '-'}")
        blocked = store.get_json(keys.LAST_BLOCKED_INPUT)
        if blocked:
            typer.echo(f"last blocked input: {blocked}")
    finally:
        runtime.close()


@app.command()
def tick(
    workspace: Path | None = typer.Option(None, "--workspace", "-w"),  # noqa: B008
) -> None:
    """Fire every enabled background task once."""
    settings = _load_settings()
    configure_logging(profile="default", level=settings.log_level)
    runtime = _build_runtime(settings, workspace)
    try:
        for name, result in runtime.scheduler.run_once().items():
            if result is None:
                typer.echo(f"{name}: failed or skipped")
            elif result.should_wake:
                typer.echo(f"{name}: wake ({result.message})")
            else:
                typer.echo(f"{name}: ok")
    finally:
        runtime.close()


@app.command()
def send(
    message: str = typer.Argument(..., help="Message content"),
    sender: str = typer.Option("human", "--sender", "-s", help="Sender id"),
) -> None:
    """Drop a message into the inbox polled by check_inbox."""
    settings = _load_settings()
    posted = JsonlInbox(settings.resolve_home() / INBOX_FILE_NAME).post(sender, message)
    typer.echo(f"queued: {posted.id}")


@app.command()
def schedule(
    reset: bool = typer.Option(False, "--reset", help="Overwrite schedule.yml with defaults"),
) -> None:
    """Show the effective schedule, writing defaults when no file exists."""
    path = _load_settings().resolve_schedule_path()
    if reset or not path.exists():
        save_schedule_config(default_schedule_config(), path)
        typer.echo(f"wrote: {path}")
    for entry in load_schedule_config(path).entries:
        state = "on" if entry.enabled else "off"
        typer.echo(f"{entry.name} [{state}] {entry.schedule} -> {entry.task}")


def _profile(raw: str) -> LogProfile:
    if raw not in ("default", "console"):
        raise typer.BadParameter("log profile must be 'default' or 'console'")
    return raw  # type: ignore[return-value]
