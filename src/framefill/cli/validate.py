"""framefill validate — Count how many elements each selector matches.

Selectors are checked in every frame and the counts summed, since one
selector may legitimately match in more than one frame.  A selector that
matches nothing anywhere is reported as an error; more than one match is a
warning.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from framefill.cli._page import (
    CDP_OPTION,
    HTML_OPTION,
    RESOURCE_OPTION,
    TAB_ID,
    URL_OPTION,
    fail,
    open_page,
    run_async,
)

console = Console(stderr=True)
output_console = Console()


def validate(
    selectors: Optional[list[str]] = typer.Argument(None, help="Raw selectors to check."),
    saved: bool = typer.Option(False, "--saved", help="Also check every saved descriptor's selector."),
    html: Optional[Path] = HTML_OPTION,
    url: Optional[str] = URL_OPTION,
    resource: Optional[list[str]] = RESOURCE_OPTION,
    cdp: Optional[str] = CDP_OPTION,
) -> None:
    """Validate selectors against the current page."""
    to_check = list(selectors or [])
    with open_page(html, url, resource, cdp) as opened:
        if saved:
            for descriptor in opened.store.descriptors():
                if descriptor.selector not in to_check:
                    to_check.append(descriptor.selector)
        if not to_check:
            fail("Nothing To Check", "Pass selectors or use [bold]--saved[/bold].")
        counts = run_async(opened.coordinator.validate_raw_selectors(TAB_ID, to_check))

    table = Table(title="Selector matches")
    table.add_column("Selector", style="cyan")
    table.add_column("Matches", justify="right")
    missing = 0
    for selector, count in counts.items():
        if count == 0:
            missing += 1
            style = "bold red"
        elif count == 1:
            style = "green"
        else:
            style = "yellow"
        table.add_row(selector, f"[{style}]{count}[/{style}]")
    output_console.print(table)

    if missing:
        console.print(f"[bold red]{missing} selector(s) matched nothing.[/bold red]")
        raise typer.Exit(code=1)
