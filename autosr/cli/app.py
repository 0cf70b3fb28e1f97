"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from autosr import __version__
from autosr.core.session import TrackingSession
from autosr.exceptions import AutosrError
from autosr.sites import default_registry
from autosr.storage.config_manager import ConfigManager

from .formatters import (
    print_config,
    print_summary_panel,
    print_tracking_table,
    print_validation_table,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("autosr")

app = typer.Typer(
    name="autosr",
    help=(
        "Watch live streams and record them as soon as they go live. Use 'autosr"
        " <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "autosr"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"
TRACK_LIST_FILE = CONFIG_DIR / "track.list"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Show debug logs (-vv to include library logs).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """Live stream recorder"""
    if version:
        console.print(f"[bold]autosr[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 1:
        log_level = "DEBUG"
    logging.getLogger("autosr").setLevel(log_level)
    if verbose >= 2:
        # aiohttp and asyncio too
        logging.getLogger().setLevel("DEBUG")

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]autosr init[/cyan] first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        config = config_manager.load_config()
        print_config(CONFIG_FILE, config.model_dump(exclude={"config_path"}))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    save_to: str | None = typer.Option(
        None, "--save-to", help="Folder recordings are saved under."
    ),
    download_with: str | None = typer.Option(
        None, "--download-with", help="Downloader program (default: streamlink)."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Create a default configuration and an empty track list."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        key: value
        for key, value in {
            "save_to": save_to,
            "download_with": download_with,
            "track_list": str(TRACK_LIST_FILE),
        }.items()
        if value is not None
    }
    config_manager = ConfigManager(CONFIG_FILE)
    config_manager.save_new_config(settings)

    if not TRACK_LIST_FILE.exists():
        TRACK_LIST_FILE.write_text(
            "# One link per line. Lines starting with # are ignored.\n",
            encoding="utf-8",
        )

    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print(f"Add links to [cyan]{TRACK_LIST_FILE}[/cyan], then run [cyan]autosr run[/cyan].")


def _install_signal_handlers(stop: asyncio.Event) -> None:
    """Sets the shutdown event on SIGINT/SIGTERM where the loop supports it."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass


@app.command(name="run")
def run_command(
    links: list[str] | None = typer.Argument(  # noqa: B008
        None, help="Extra links to track in addition to the track list."
    ),
    track_list: Path | None = typer.Option(
        None, "-t", "--track-list", help="Track list file to load and watch."
    ),
    save_to: str | None = typer.Option(
        None, "--save-to", help="Folder recordings are saved under."
    ),
    download_with: str | None = typer.Option(
        None, "--download-with", help="Downloader program."
    ),
    poll_interval: float | None = typer.Option(
        None, "--poll", help="Seconds between liveness checks."
    ),
):
    """Track targets and record them whenever they go live."""
    cli_options = {
        key: value
        for key, value in {
            "track_list": str(track_list) if track_list else None,
            "save_to": save_to,
            "download_with": download_with,
            "poll_interval": poll_interval,
        }.items()
        if value is not None
    }

    async def _run_async():
        config = ConfigManager(CONFIG_FILE).load_config(cli_options)
        session = TrackingSession(config, default_registry(config))
        _install_signal_handlers(session.shutdown)

        console.print("[bold cyan]📡 Starting tracking session...[/bold cyan]")
        await session.start()
        for link in links or []:
            try:
                await session.tracker.add_target(link)
            except AutosrError as e:
                log.error(f"[red]✗ Could not add {escape(link)}: {e}[/red]")

        try:
            await session.shutdown.wait()
        finally:
            print_tracking_table(session.tracker.list_tracking())
            await session.stop()
        print_summary_panel(session.stats)

    asyncio.run(_run_async())


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        config_manager = ConfigManager(CONFIG_FILE)
        config = config_manager.load_config()
        print_validation_table(config)
    except AutosrError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e
