"""
Main entry point for the autosr application.

Runs the CLI without click's standalone handling so that every outcome
(usage errors, aborts, autosr errors, crashes) maps to one exit code here.
"""

import asyncio
import logging
import os
import sys
from typing import Optional

import click
from rich.console import Console

from autosr.cli.app import app
from autosr.cli.formatters import format_error_with_suggestions
from autosr.exceptions import AutosrError

EXIT_OK = 0
EXIT_ERROR = 1


def _use_utf8_streams() -> None:
    # rich panels and status glyphs need UTF-8 on Windows consoles
    if os.name != "nt":
        return
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass


def main(argv: Optional[list[str]] = None) -> None:
    """Runs `autosr` with `argv` (default: the process arguments) and exits."""
    _use_utf8_streams()
    log = logging.getLogger("autosr")
    console = Console()
    args = sys.argv[1:] if argv is None else argv

    try:
        code = app(args=args, prog_name="autosr", standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.exceptions.Abort:
        # click turns Ctrl+C into Abort as well
        console.print("\n[yellow]⚠️  Aborted.[/yellow]")
        sys.exit(EXIT_ERROR)
    except asyncio.CancelledError:
        console.print("\n[yellow]⚠️  Stopped by user.[/yellow]")
        sys.exit(EXIT_OK)
    except AutosrError as e:
        console.print()
        console.print(format_error_with_suggestions(e))
        sys.exit(EXIT_ERROR)
    except Exception as e:
        console.print()
        console.print(
            format_error_with_suggestions(e, {"command": " ".join(args) or "autosr"})
        )
        log.debug("Full traceback:", exc_info=True)
        sys.exit(EXIT_ERROR)

    sys.exit(code if isinstance(code, int) else EXIT_OK)


if __name__ == "__main__":
    main()
