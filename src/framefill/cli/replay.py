"""framefill replay — Fill the page from saved extractions.

Saved descriptors (with pending overrides merged in) become entry
instructions; descriptors without a sample value are placeholders and are
skipped.  Every frame replays the whole batch and keeps only the
instructions addressed to it.  In CDP mode the resulting writes are pushed
into the live browser.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
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
from framefill.engine.entry import build_data_groups
from framefill.engine.replay import ReplayResult

console = Console(stderr=True)
output_console = Console()  # stdout for machine-readable output


def _result_table(result: ReplayResult) -> Table:
    table = Table(title="Entry replay", show_header=True)
    table.add_column("Counter")
    table.add_column("Value", justify="right")
    for key, value in result.counters().items():
        table.add_row(key, str(value))
    return table


def _problem_table(result: ReplayResult) -> Table | None:
    problems = [o for o in result.outcomes if o.status in ("missing", "blocked", "failed")]
    if not problems:
        return None
    table = Table(title="Not applied", show_header=True)
    table.add_column("Status", style="yellow")
    table.add_column("Selector", style="cyan")
    table.add_column("Frame", style="dim", max_width=40)
    table.add_column("Reason")
    for outcome in problems:
        table.add_row(outcome.status, outcome.target_element, outcome.context_document, outcome.reason)
    return table


def replay(
    html: Optional[Path] = HTML_OPTION,
    url: Optional[str] = URL_OPTION,
    resource: Optional[list[str]] = RESOURCE_OPTION,
    cdp: Optional[str] = CDP_OPTION,
    page_id: Optional[str] = typer.Option(None, "--page", "-p", help="Replay only this saved page."),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the filled top document to this file.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the result as JSON."),
) -> None:
    """Replay saved entry instructions into every frame of the page."""
    with open_page(html, url, resource, cdp) as opened:
        pages = opened.store.pages()
        if page_id is not None:
            if page_id not in pages:
                fail("Page Not Found", f"No saved page with id: {page_id}")
            pages = {page_id: pages[page_id]}
        if not pages:
            fail("No Data", "No saved extractions. Run [bold]framefill extract[/bold] first.")

        groups = build_data_groups(pages, opened.store.overrides(), url=opened.page.url)
        result = run_async(opened.coordinator.run_entry(TAB_ID, groups))
        pushed, push_failed = opened.push()

        if output is not None:
            output.write_text(str(opened.page.top.soup), encoding="utf-8")

    if json_output:
        output_console.print(json.dumps(result.to_dict(), indent=2))
    else:
        output_console.print(_result_table(result))
        problems = _problem_table(result)
        if problems is not None:
            output_console.print(problems)

    totals = f"applied {result.applied_actions}/{result.total_actions}"
    if pushed or push_failed:
        totals += f", pushed {pushed} writes ({push_failed} failed)"
    if result.total_actions > 0 and result.applied_actions == result.total_actions:
        console.print(Panel(f"Entry applied successfully ({totals})", border_style="green"))
    elif result.applied_actions > 0:
        console.print(Panel(f"Entry partially applied ({totals})", border_style="yellow"))
    else:
        console.print(Panel(f"Entry failed to apply any actions ({totals})", border_style="red"))
        raise typer.Exit(code=1)
