"""framefill init — Initialize a .framefill/ project directory."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.tree import Tree

console = Console()

_SAMPLE_CONFIG = """\
# FrameFill project configuration

# Session file (relative to this directory)
store_path: sessions.json

# Accept a class-based selector once it matches at most this many elements
relaxed_match_threshold: 3

# Label derivation: original | enhanced
label_mode: original

# Timeouts (seconds): whole extraction, and each frame's answer
extract_timeout: 10
frame_timeout: 5

# Uncomment to attach to a running browser by default
# cdp_url: http://localhost:9222
"""


def init(
    dir: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Parent directory for .framefill/ project. Defaults to current directory.",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite an existing config.yaml.",
    ),
) -> None:
    """Initialize a new FrameFill project directory.

    Creates .framefill/ with a config.yaml template.  Extractions are saved
    to .framefill/sessions.json.
    """
    project_dir = dir.resolve() / ".framefill"
    config_path = project_dir / "config.yaml"

    if config_path.exists() and not force:
        console.print(
            Panel(
                f"[yellow]Config already exists:[/yellow] {config_path}\n\n"
                "Use [bold]--force[/bold] to overwrite.",
                title="Already Initialized",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=2)

    project_dir.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_SAMPLE_CONFIG, encoding="utf-8")

    tree = Tree(f"[bold green]{project_dir}[/bold green]", guide_style="dim")
    tree.add("[cyan]config.yaml[/cyan]")

    console.print()
    console.print(Panel(tree, title="[bold green]FrameFill Initialized[/bold green]", border_style="green"))
    console.print()
    console.print("[dim]Next steps:[/dim]")
    console.print("  1. Start Chromium with [cyan]--remote-debugging-port=9222[/cyan] and open your form")
    console.print("  2. Run [bold]framefill extract --cdp http://localhost:9222[/bold]")
    console.print("  3. Add sample values with [bold]framefill override[/bold], then [bold]framefill apply[/bold]")
    console.print("  4. Run [bold]framefill replay --cdp http://localhost:9222[/bold]")
    console.print()
