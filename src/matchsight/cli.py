"""
Matchsight CLI - Command Line Interface for the live match view

Provides commands for:
- Watching the live session in the terminal
- Serving the live session over HTTP
- Showing environment information
- Creating and inspecting configuration
"""

import logging
import logging.handlers
import platform
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from matchsight import __version__
from matchsight.core.config import (
    LoggingConfig,
    config_to_dict,
    generate_default_config,
    get_config,
    load_config,
    set_config,
)
from matchsight.core.models import SessionState, Snapshot

app = typer.Typer(
    name="matchsight",
    help="Live match overlay data from the local Valorant client",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)

STATE_STYLES = {
    SessionState.NOT_RUNNING: "dim",
    SessionState.DISCONNECTED: "red",
    SessionState.MENUS: "cyan",
    SessionState.PREGAME: "yellow",
    SessionState.INGAME: "green",
}


def setup_logging(settings: LoggingConfig, verbose: bool = False) -> None:
    """Configure root logging from the ``logging`` config section."""
    level = logging.DEBUG if verbose else getattr(logging, settings.level.upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.file:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                settings.file,
                maxBytes=settings.file_max_bytes,
                backupCount=settings.file_backup_count,
                encoding="utf-8",
            )
        )
    logging.basicConfig(level=level, format=settings.format, handlers=handlers, force=True)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]Matchsight[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable verbose output"),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file (YAML, TOML or JSON)",
        exists=True,
        dir_okay=False,
    ),
) -> None:
    """Matchsight - live match data from the local game client"""
    config = load_config(config_file)
    set_config(config)
    setup_logging(config.logging, verbose)


# ============================================================================
# Rendering
# ============================================================================


def _stat(value) -> str:
    return "-" if value is None else str(value)


def render_snapshot(snapshot: Snapshot) -> Table:
    """One table per snapshot: a row per player."""
    context = snapshot.context
    style = STATE_STYLES.get(snapshot.state, "white")
    title = f"[{style}]{snapshot.state}[/{style}]"
    if context.mode:
        title += f"  {context.mode}"
    if context.map:
        title += f"  {context.map}"

    table = Table(title=title)
    table.add_column("Player", style="cyan")
    table.add_column("Agent")
    table.add_column("Rank")
    table.add_column("RR", justify="right")
    table.add_column("Peak")
    table.add_column("Prev")
    table.add_column("Lvl", justify="right")
    table.add_column("K/D", justify="right")
    table.add_column("HS%", justify="right")
    table.add_column("WR%", justify="right")
    table.add_column("Skin")

    for player in snapshot.players:
        name = f"[bold]{player.name}[/bold]" if player.is_party_member else player.name
        level = "" if player.hide_account_level else str(player.account_level or "")
        table.add_row(
            name,
            player.agent_name or player.selection_state or "",
            player.rank.label,
            str(player.rank.rr),
            player.rank.peak_label,
            player.rank.previous_label,
            level,
            _stat(player.stats.kd),
            _stat(player.stats.headshot_pct),
            _stat(player.stats.win_rate),
            player.skin.variant or player.skin.name,
        )
    return table


# ============================================================================
# Commands
# ============================================================================


@app.command()
def watch(
    weapon: Optional[str] = typer.Option(None, "--weapon", "-w", help="Weapon whose skin is shown"),
    show_names: bool = typer.Option(False, "--show-names", help="Do not hide incognito players' names"),
) -> None:
    """
    Follow the live session and print a table for every published snapshot.
    """
    from matchsight.infra.channel import PhaseChange, SnapshotChannel
    from matchsight.live.service import LiveService

    config = get_config()
    if weapon:
        config.live.weapon = weapon
    if show_names:
        config.live.hide_names = False

    console.print("\n[bold blue]Matchsight[/bold blue] - Watching the game client\n")
    console.print(f"[cyan]Weapon:[/cyan] {config.live.weapon}")
    console.print("\nPress [bold]Ctrl+C[/bold] to stop...\n")

    channel = SnapshotChannel()

    @channel.on_phase_change
    def announce(change: PhaseChange) -> None:
        console.print(f"[magenta]Phase:[/magenta] {change.previous} -> {change.current}")

    @channel.on_snapshot
    def show(snapshot: Snapshot) -> None:
        if snapshot.players:
            console.print(render_snapshot(snapshot))

    channel.start()
    service = LiveService(channel=channel, restart_delay=config.polling.restart_delay)
    try:
        service.start(blocking=True)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping...[/yellow]")
    finally:
        service.stop()
        channel.stop()


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port"),
) -> None:
    """
    Run the live session and serve it over HTTP.
    """
    import uvicorn

    from matchsight.api import create_app
    from matchsight.infra.channel import SnapshotChannel
    from matchsight.live.service import LiveService

    config = get_config()
    host = host or config.server.host
    port = port or config.server.port

    channel = SnapshotChannel()
    service = LiveService(channel=channel, restart_delay=config.polling.restart_delay)
    channel.start()
    service.start()

    console.print(f"\n[bold blue]Matchsight[/bold blue] serving on http://{host}:{port}\n")
    try:
        uvicorn.run(create_app(channel, service), host=host, port=port, log_config=None)
    finally:
        service.stop()
        channel.stop()


@app.command()
def info() -> None:
    """
    Display information about Matchsight and the environment.
    """
    from matchsight.infra.process import is_process_running
    from matchsight.integrations.client import get_default_log_path, get_default_lockfile_path

    config = get_config()
    console.print(f"\n[bold blue]Matchsight[/bold blue] v{__version__}\n")

    table = Table(show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Python", platform.python_version())
    table.add_row("Platform", platform.system())

    lockfile = Path(config.client.lockfile_path) if config.client.lockfile_path else get_default_lockfile_path()
    lockfile_status = "[green]present[/green]" if lockfile.exists() else "[yellow]not found[/yellow]"
    table.add_row("Lockfile", f"{lockfile} ({lockfile_status})")

    log_path = Path(config.client.log_path) if config.client.log_path else get_default_log_path()
    log_status = "[green]present[/green]" if log_path.exists() else "[yellow]not found[/yellow]"
    table.add_row("Client log", f"{log_path} ({log_status})")

    running = is_process_running(config.client.process_name)
    table.add_row(config.client.process_name, "[green]running[/green]" if running else "[yellow]not running[/yellow]")
    table.add_row("Weapon", config.live.weapon)
    table.add_row("API", f"http://{config.server.host}:{config.server.port}")

    console.print(table)


@app.command("config")
def config_command(
    init: Optional[Path] = typer.Option(None, "--init", help="Write a default config file to this path"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """
    Show the effective configuration, or create a default config file.
    """
    if init is not None:
        if init.exists() and not force:
            console.print(f"[red]Error:[/red] {init} exists (use --force to overwrite)")
            raise typer.Exit(1)
        try:
            generate_default_config(init)
        except ValueError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
        console.print(f"[green]Wrote default config to {init}[/green]")
        return

    console.print(yaml.safe_dump(config_to_dict(get_config()), sort_keys=False))


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
