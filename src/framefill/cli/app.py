"""FrameFill CLI — Main Typer entry point.

Registers all subcommands and provides --version / --verbose global options.
"""

from __future__ import annotations

import typer
from rich.console import Console

from framefill import __version__

TAGLINE = "Capture form fields across every frame, then fill them back in."

console = Console()

# ── Version callback ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print("FrameFill", style="bold cyan")
        console.print(f"  {TAGLINE}", style="dim")
        console.print(f"  v{__version__}\n", style="bold")
        raise typer.Exit()


# ── Main app ──────────────────────────────────────────────────────────────

app = typer.Typer(
    name="framefill",
    help=f"FrameFill\n\n{TAGLINE}",
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show FrameFill version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
) -> None:
    """FrameFill -- multi-frame element extraction and form replay."""
    if verbose:
        import logging

        logging.basicConfig(level=logging.DEBUG, format="%(name)s  %(message)s")


# ── Register subcommands ──────────────────────────────────────────────────

from framefill.cli.extract import extract  # noqa: E402
from framefill.cli.init_cmd import init  # noqa: E402
from framefill.cli.replay import replay  # noqa: E402
from framefill.cli.sessions import apply, override, sessions  # noqa: E402
from framefill.cli.validate import validate  # noqa: E402

app.command(name="init", help="Initialize a .framefill/ project directory.")(init)
app.command(name="extract", help="Select elements in every frame and save their descriptors.")(extract)
app.command(name="replay", help="Fill the page from saved extractions.")(replay)
app.command(name="validate", help="Count how many elements each selector matches.")(validate)
app.command(name="sessions", help="List, show or delete saved pages.")(sessions)
app.command(name="override", help="Record a pending edit for a saved element.")(override)
app.command(name="apply", help="Merge pending edits into saved descriptors.")(apply)
