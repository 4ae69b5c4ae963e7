"""framefill extract — Select elements across all frames and save them.

By default every visible interactive element of every frame is selected.
With ``--select`` only the given selectors are marked; a selector for an
element inside a frame is written as ``<frame locator> >>> <selector>``.
The merged, de-duplicated selection is saved through the top frame.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

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
from framefill.engine.coordinator import AggregationTimeoutError, FrameCoordinator
from framefill.engine.selectors import split_scoped
from framefill.models import LABEL_MODES, MessageAction

console = Console(stderr=True)
output_console = Console()


def _select_manually(coordinator: FrameCoordinator, selectors: list[str]) -> int:
    """Toggle each selector on in the frame it addresses; returns how many were found."""
    run_async(coordinator.broadcast(TAB_ID, MessageAction.CLEAR_ALL))
    run_async(coordinator.broadcast(TAB_ID, MessageAction.MANUAL_MODE_ON))
    found = 0
    for full in selectors:
        context, selector = split_scoped(full)
        responses = run_async(
            coordinator.broadcast(
                TAB_ID, MessageAction.TOGGLE_ELEMENT, {"selector": selector, "contextDocument": context}
            )
        )
        if any(r and r.get("success") for r in responses.values()):
            found += 1
        else:
            console.print(f"[yellow]Not found:[/yellow] {full}")
    run_async(coordinator.broadcast(TAB_ID, MessageAction.MANUAL_MODE_OFF))
    return found


def _summary_table(summary: dict[str, Any]) -> Table:
    table = Table(title=f"Selected elements ({summary['selectedCount']})", show_lines=False)
    table.add_column("Frame", style="dim", max_width=40)
    table.add_column("Selector", style="cyan")
    table.add_column("Label")
    table.add_column("Type", style="magenta")
    table.add_column("Matches", justify="right")
    for item in summary["items"]:
        matches = item.get("matches", 0)
        style = "green" if matches == 1 else "yellow"
        table.add_row(
            item.get("contextDocument", ""),
            item.get("selector", ""),
            item.get("label", ""),
            item.get("type", ""),
            f"[{style}]{matches}[/{style}]",
        )
    return table


def extract(
    html: Optional[Path] = HTML_OPTION,
    url: Optional[str] = URL_OPTION,
    resource: Optional[list[str]] = RESOURCE_OPTION,
    cdp: Optional[str] = CDP_OPTION,
    page_name: Optional[str] = typer.Option(None, "--page-name", "-n", help="Name for the saved page."),
    select: Optional[list[str]] = typer.Option(
        None,
        "--select",
        "-s",
        help="Selector to mark instead of auto-selecting. Repeatable.",
    ),
    label_mode: Optional[str] = typer.Option(None, "--label-mode", help="Label derivation: original or enhanced."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the selection without saving it."),
) -> None:
    """Extract element descriptors from every frame of the page."""
    if label_mode is not None and label_mode not in LABEL_MODES:
        fail("Invalid Option", f"Invalid --label-mode: {label_mode}. Valid modes: {', '.join(LABEL_MODES)}")

    with open_page(html, url, resource, cdp) as opened:
        coordinator = opened.coordinator
        if label_mode is not None:
            run_async(coordinator.broadcast(TAB_ID, MessageAction.SET_LABEL_MODE, {"mode": label_mode}))

        if select:
            _select_manually(coordinator, list(select))
        else:
            run_async(coordinator.broadcast(TAB_ID, MessageAction.AUTO_SELECT))

        stats = run_async(coordinator.get_stats_all(TAB_ID))
        if not stats["selectedCount"]:
            fail("Nothing Selected", "No elements selected in any frame.", code=1)

        if dry_run:
            summary = run_async(coordinator.get_selected_summary_all(TAB_ID))
            output_console.print(_summary_table(summary))
            return

        try:
            result = run_async(coordinator.extract_all(TAB_ID, page_name, opened.store.overrides()))
        except AggregationTimeoutError as exc:
            fail("Extraction Timeout", str(exc), code=1)

    if not result.get("success"):
        fail("Extraction Failed", result.get("error") or "Extraction failed. Unknown error.", code=1)

    console.print(
        Panel(
            f"[bold]Elements:[/bold] {result.get('count', 0)}\n"
            f"[bold]Page:[/bold]     {result.get('pageId', '')}\n"
            f"[bold]Group:[/bold]    {result.get('groupId', '')}",
            title="[bold green]Extraction Saved[/bold green]",
            border_style="green",
        )
    )
