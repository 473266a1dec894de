"""Command-line interface for BuyTime."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from .config import ApiSettings, MonitorSettings
from .errors import InsufficientBalanceError
from .models import FocusMode, RestrictionSelection
from .paths import get_cache_path, get_ledger_path, get_log_path
from .shield import ScheduleError

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

app = typer.Typer(help="Earn screen time with focus sessions, spend it to unlock apps.")


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )


def _foreground(ledger_path: Optional[Path], cache_path: Optional[Path]):
    from .services import build_foreground

    return build_foreground(
        ledger_path=ledger_path or get_ledger_path(),
        cache_path=cache_path or get_cache_path(),
        api_settings=ApiSettings.from_env(),
    )


@app.command()
def status(
    ledger_path: Optional[Path] = typer.Option(
        None, "--ledger-db", path_type=Path, help="Location of the shared ledger database."
    ),
    cache_path: Optional[Path] = typer.Option(
        None, "--cache-db", path_type=Path, help="Location of the local cache database."
    ),
) -> None:
    """Print the balance, preferences and restriction state."""
    from .reporting import StatusPrinter

    services = _foreground(ledger_path, cache_path)
    try:
        StatusPrinter(services).print_status()
    finally:
        services.close()


@app.command()
def earn(
    minutes: int = typer.Argument(..., min=1, help="Minutes earned by a focus session."),
    ledger_path: Optional[Path] = typer.Option(
        None, "--ledger-db", path_type=Path, help="Location of the shared ledger database."
    ),
    cache_path: Optional[Path] = typer.Option(
        None, "--cache-db", path_type=Path, help="Location of the local cache database."
    ),
) -> None:
    """Credit minutes locally and push them to the server."""
    services = _foreground(ledger_path, cache_path)
    try:
        result = services.balance.earn(minutes).result()
        typer.echo(f"Balance: {services.balance.available_minutes} min")
        if not result.ok:
            typer.echo(f"Saved locally; will sync later ({result.error}).", err=True)
    finally:
        services.close()


@app.command()
def sync(
    ledger_path: Optional[Path] = typer.Option(
        None, "--ledger-db", path_type=Path, help="Location of the shared ledger database."
    ),
    cache_path: Optional[Path] = typer.Option(
        None, "--cache-db", path_type=Path, help="Location of the local cache database."
    ),
) -> None:
    """Reconcile the local balance and preferences with the server."""
    services = _foreground(ledger_path, cache_path)
    try:
        result = services.balance.refresh()
        services.preferences.on_appear()
        if not result.ok:
            typer.echo(f"Sync failed: {result.error}", err=True)
            raise typer.Exit(code=1)
        typer.echo(f"Balance: {result.available_minutes} min ({result.outcome.value})")
    finally:
        services.close()


@app.command()
def spend(
    minutes: Optional[int] = typer.Argument(
        None, min=1, help="Minutes of app use to unlock. Defaults to the spend unit."
    ),
    ledger_path: Optional[Path] = typer.Option(
        None, "--ledger-db", path_type=Path, help="Location of the shared ledger database."
    ),
) -> None:
    """Lift the shield in exchange for one spend unit."""
    from .services import build_device

    device = build_device(ledger_path or get_ledger_path())
    try:
        state = device.machine.spend(minutes)
    except InsufficientBalanceError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2)
    except (ScheduleError, OSError) as exc:
        typer.echo(f"Could not unlock: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(
        f"Unlocked for {state.threshold_minutes} min of use. "
        f"{device.ledger.available_minutes} min left."
    )


@app.command()
def select(
    apps: List[str] = typer.Option([], "--app", help="Application process name to block."),
    categories: List[str] = typer.Option([], "--category", help="Category to block."),
    domains: List[str] = typer.Option([], "--domain", help="Web domain to block."),
    ledger_path: Optional[Path] = typer.Option(
        None, "--ledger-db", path_type=Path, help="Location of the shared ledger database."
    ),
) -> None:
    """Replace the blocked selection. Pass nothing to clear it."""
    from .reporting import describe_state
    from .services import build_device

    device = build_device(ledger_path or get_ledger_path())
    selection = RestrictionSelection(
        applications=frozenset(apps),
        categories=frozenset(categories),
        web_domains=frozenset(domains),
    )
    state = device.machine.setup(selection)
    typer.echo(f"Selection saved: {describe_state(state)}")


@app.command("set-unit")
def set_unit(
    minutes: int = typer.Argument(..., min=1, help="Minutes debited per spend."),
    ledger_path: Optional[Path] = typer.Option(
        None, "--ledger-db", path_type=Path, help="Location of the shared ledger database."
    ),
) -> None:
    """Change how many earned minutes one spend costs."""
    from .services import build_device

    device = build_device(ledger_path or get_ledger_path())
    device.ledger.spend_unit_minutes = minutes
    typer.echo(f"Spend unit: {device.ledger.spend_unit_minutes} min")


@app.command()
def preferences(
    focus: Optional[float] = typer.Option(None, "--focus", min=15, max=60, help="Focus minutes."),
    mode: Optional[FocusMode] = typer.Option(None, "--mode", help="Difficulty mode."),
    reward: Optional[float] = typer.Option(
        None, "--reward", min=0, help="Target reward minutes; focus and mode are derived."
    ),
    ledger_path: Optional[Path] = typer.Option(
        None, "--ledger-db", path_type=Path, help="Location of the shared ledger database."
    ),
    cache_path: Optional[Path] = typer.Option(
        None, "--cache-db", path_type=Path, help="Location of the local cache database."
    ),
) -> None:
    """Show or change focus preferences."""
    services = _foreground(ledger_path, cache_path)
    prefs = services.preferences
    try:
        prefs.on_appear()
        if mode is not None:
            prefs.set_focus_mode(mode)
        if focus is not None:
            prefs.set_focus_duration(focus)
        if reward is not None:
            prefs.set_reward(reward)
        prefs.flush()
        if prefs.error_message:
            typer.echo(prefs.error_message, err=True)
        typer.echo(
            f"Focus {int(prefs.focus_duration)} min, {prefs.focus_mode.display_name}, "
            f"reward {prefs.reward_minutes:g} min"
        )
    finally:
        services.close()


@app.command()
def monitor(
    ledger_path: Optional[Path] = typer.Option(
        None, "--ledger-db", path_type=Path, help="Location of the shared ledger database."
    ),
    sample_seconds: float = typer.Option(
        5.0,
        "--interval",
        min=1.0,
        help="Sampling interval in seconds.",
    ),
    enforce: bool = typer.Option(
        True,
        "--enforce/--no-enforce",
        help="Terminate shielded applications while restricted.",
    ),
) -> None:
    """Run the usage monitor until interrupted."""
    from .monitor import UsageMonitor
    from .services import build_device

    # The monitor usually runs without a console.
    handler = logging.FileHandler(get_log_path(), encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)

    device = build_device(ledger_path or get_ledger_path())
    settings = MonitorSettings.from_intervals(sample_seconds=sample_seconds, enforce_shield=enforce)
    UsageMonitor(device.machine, device.center, device.shield, settings).run_forever()


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the dashboard."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the dashboard."
    ),
    ledger_path: Optional[Path] = typer.Option(
        None, "--ledger-db", path_type=Path, help="Location of the shared ledger database."
    ),
    cache_path: Optional[Path] = typer.Option(
        None, "--cache-db", path_type=Path, help="Location of the local cache database."
    ),
    sample_seconds: float = typer.Option(
        5.0,
        "--interval",
        min=1.0,
        help="Monitor sampling interval in seconds.",
    ),
) -> None:
    """Serve the local dashboard API with the background usage monitor."""
    import uvicorn

    from .webapp import create_app

    dashboard = create_app(
        ledger_path=ledger_path or get_ledger_path(),
        cache_path=cache_path or get_cache_path(),
        settings=MonitorSettings.from_intervals(sample_seconds=sample_seconds),
    )
    typer.echo(f"Dashboard API on http://{host}:{port}/api/status")
    uvicorn.run(dashboard, host=host, port=port, log_level="info")
