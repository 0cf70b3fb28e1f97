"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from autosr.models.config import AppConfig
from autosr.models.stats import SaveStats
from autosr.models.target import TargetInfo
from autosr.utils.formatting import (
    format_duration,
    format_online_time,
    format_timestamp,
)


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `autosr init` to create a default configuration.",
            "• Run `autosr validate` to see which setting is wrong.",
        ],
        "NoModuleForHostError": [
            "• No site module handles this host.",
            "• For direct playlist links, add the host to `hls_hosts`.",
        ],
        "InvalidLinkError": [
            "• Links must be full URLs, e.g. https://example.com/live/name.m3u8",
        ],
        "NotTrackedError": [
            "• Check the link is spelled exactly as it was added.",
        ],
        "DownloaderError": [
            "• Check that `download_with` points to an installed program.",
            "• Check that `save_to` is writable.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if isinstance(value, list):
            value = ", ".join(value)
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            Text(content.strip()),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: AppConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Save To:", Text(config.save_to))
    table.add_row("Downloader:", Text(config.download_with))
    table.add_row("Segment Threads:", str(config.segment_threads))
    table.add_row("Track List:", Text(config.track_list or "(none)"))
    table.add_row("Poll Interval:", format_duration(config.poll_interval))
    table.add_row("Recover Timeout:", format_duration(config.recover_timeout))
    table.add_row(
        "HLS Hosts:", Text(", ".join(config.hls_hosts) if config.hls_hosts else "-")
    )

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_tracking_table(targets: list[TargetInfo]):
    """Displays every tracked target and its save status."""
    console = Console()
    if not targets:
        console.print("[dim]Not tracking anything.[/dim]")
        return

    table = Table(title="Tracking", box=box.ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("Started", style="dim")
    table.add_column("Online", justify="right", style="magenta")
    table.add_column("Link", style="dim", overflow="fold")

    for info in sorted(targets, key=lambda t: (not t.saving, t.name.lower())):
        status = "[bold green]● saving[/bold green]" if info.saving else "idle"
        table.add_row(
            Text(info.name),
            status,
            format_timestamp(info.started_at),
            format_online_time(info.started_at, info.finished_at),
            Text(info.link),
        )
    console.print(table)


def print_summary_panel(stats: SaveStats):
    """Displays the final summary of a tracking session."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row("▶ Saves Started:", f"[bold]{stats.saves_started}[/bold]")
    stats_table.add_row(
        "✓ Finished:", f"[bold green]{stats.saves_finished}[/bold green]"
    )
    if stats.saves_canceled > 0:
        stats_table.add_row("○ Canceled:", f"[yellow]{stats.saves_canceled}[/yellow]")
    if stats.saves_failed > 0:
        stats_table.add_row("✗ Failed:", f"[bold red]{stats.saves_failed}[/bold red]")
    if stats.recoveries or stats.recoveries_failed:
        stats_table.add_row(
            "↻ Recoveries:",
            f"[green]{stats.recoveries}[/green] ok, "
            f"[yellow]{stats.recoveries_failed}[/yellow] gave up",
        )

    stats_table.add_row("", "")  # Spacer
    stats_table.add_row("Targets Recorded:", str(len(stats.targets_recorded)))
    stats_table.add_row(
        "Time Elapsed:", f"[blue]{format_duration(stats.uptime)}[/blue]"
    )

    console.print()
    console.print(
        Panel(
            stats_table,
            title="📼 [bold]Session Summary[/bold]",
            border_style="green",
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
    console.print()
