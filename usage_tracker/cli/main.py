"""
CLI interface for usage-tracker.

Inspects and edits the local usage store and the metrics opt-in flag.
"""

import logging
import sys
import uuid
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from usage_tracker.config.loader import (
    DEFAULT_CONFIG_PATH,
    TrackerConfig,
    load_tracker_config,
    write_default_config,
)
from usage_tracker.config.settings import YamlSettings
from usage_tracker.sdk.usage_tracker import UsageTracker
from usage_tracker.storage.models import NEVER, UsageEvent, UsageMeasures
from usage_tracker.utils.logging_config import configure_logging

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

EVENT_NAMES = {event.name.lower().replace("_", "-"): event for event in UsageEvent}


class CliState:
    config_path: Path = Path(DEFAULT_CONFIG_PATH)


state = CliState()


def _load_config() -> TrackerConfig:
    return load_tracker_config(state.config_path)


def _build_tracker(config: TrackerConfig) -> UsageTracker:
    """Tracker without a transport; the CLI never uploads."""
    return UsageTracker(
        metrics_service=None,
        settings=YamlSettings(config.settings_path),
        store_path=config.store_path,
        installation_id=config.installation_id,
        unity_version=config.unity_version,
        initial_delay=config.scheduler.initial_delay_seconds,
        opt_in_delay=config.scheduler.opt_in_delay_seconds,
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_PATH),
        "--config",
        "-c",
        help="Path to the tracker configuration file"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log debug output to stderr"
    ),
):
    """usage-tracker CLI."""
    state.config_path = config
    configure_logging(logging.DEBUG if verbose else logging.WARNING)
    if ctx.invoked_subcommand is None:
        console.print("usage-tracker - Use --help to see available commands")


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite an existing configuration file"
    )
):
    """Write a configuration file with a new installation id."""
    if state.config_path.exists() and not force:
        console.print(f"[red]Error:[/] {state.config_path} already exists (use --force to overwrite)")
        sys.exit(EXIT_CODE_FAIL)
    try:
        installation_id = str(uuid.uuid4())
        write_default_config(state.config_path, installation_id)
        console.print(f"[green]✓[/] Wrote {state.config_path} (installation {installation_id})")
        sys.exit(EXIT_CODE_PASS)
    except OSError as e:
        console.print(f"[red]Error writing configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status():
    """Show the opt-in state and the buckets waiting in the local store."""
    try:
        config = _load_config()
        with _build_tracker(config) as tracker:
            enabled = tracker.enabled
            store = tracker.repository.load()
            pending = tracker.pending_reports()
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"\n[bold]Installation:[/bold] {store.model.guid}")
    console.print(f"[bold]Metrics enabled:[/bold] {'yes' if enabled else 'no'}")
    last_sent = "never" if store.last_updated == NEVER else store.last_updated.isoformat()
    console.print(f"[bold]Last sent:[/bold] {last_sent}")
    console.print(f"[bold]Pending buckets:[/bold] {len(pending)}")

    if not store.model.reports:
        console.print("\n[dim]No usage recorded yet.[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Usage buckets")
    table.add_column("Date")
    table.add_column("App version")
    table.add_column("Counts")
    for usage in store.model.reports:
        table.add_row(
            usage.dimensions.date.date().isoformat(),
            usage.dimensions.app_version or "-",
            _format_measures(usage.measures),
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def record(event: str = typer.Argument(..., help="Event to count, e.g. 'commit'")):
    """Count one occurrence of an event in today's bucket."""
    usage_event = EVENT_NAMES.get(event.lower())
    if usage_event is None:
        console.print(f"[red]Unknown event:[/] {event}. Valid events: {', '.join(EVENT_NAMES)}")
        sys.exit(EXIT_CODE_FAIL)
    try:
        config = _load_config()
        with _build_tracker(config) as tracker:
            tracker.increment(usage_event)
        console.print(f"[green]✓[/] Recorded {event.lower()}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def enable():
    """Turn usage reporting on."""
    _set_enabled(True)


@app.command()
def disable():
    """Turn usage reporting off."""
    _set_enabled(False)


@app.command()
def reset():
    """Delete the local usage store."""
    try:
        config = _load_config()
        with _build_tracker(config) as tracker:
            removed = tracker.repository.delete()
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if removed:
        console.print(f"[green]✓[/] Deleted {config.store_path}")
    else:
        console.print("[dim]No usage store to delete.[/]")
    sys.exit(EXIT_CODE_PASS)


def _set_enabled(value: bool) -> None:
    try:
        config = _load_config()
        with _build_tracker(config) as tracker:
            tracker.enabled = value
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Usage reporting {'enabled' if value else 'disabled'}")
    sys.exit(EXIT_CODE_PASS)


def _format_measures(measures: UsageMeasures) -> str:
    """Non-zero counters as ``name=value`` pairs."""
    if measures.is_empty():
        return "-"
    parts = [
        f"{name}={measures.get(event)}"
        for name, event in EVENT_NAMES.items()
        if measures.get(event)
    ]
    return ", ".join(parts)


if __name__ == "__main__":
    app()
