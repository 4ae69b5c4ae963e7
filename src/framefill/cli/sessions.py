"""framefill sessions / override / apply — Inspect and edit saved extractions.

Edits never touch saved descriptors directly: ``override`` records pending
changes keyed by frame context and selector, and ``apply`` merges them into
the stored descriptors field by field.
"""

from __future__ import annotations

import json
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from framefill.cli._page import fail, load_config
from framefill.engine.descriptors import ElementDescriptor
from framefill.models import TOP_FRAME
from framefill.storage import SessionStore, SessionStoreError

console = Console(stderr=True)
output_console = Console()


def _store() -> SessionStore:
    return SessionStore(load_config().store_path)


def _load(store: SessionStore) -> dict:
    try:
        return store.pages()
    except SessionStoreError as exc:
        fail("Session Store Error", str(exc))


def sessions(
    show: Optional[str] = typer.Option(None, "--show", help="Show the elements of one saved page."),
    delete: Optional[str] = typer.Option(None, "--delete", help="Delete one saved page."),
    json_output: bool = typer.Option(False, "--json", help="Print raw JSON."),
) -> None:
    """List saved pages and their extraction groups."""
    store = _store()
    pages = _load(store)

    if delete is not None:
        if not store.delete_page(delete):
            fail("Page Not Found", f"No saved page with id: {delete}")
        console.print(f"[green]Deleted[/green] {delete}")
        return

    if show is not None:
        record = pages.get(show)
        if record is None:
            fail("Page Not Found", f"No saved page with id: {show}")
        if json_output:
            output_console.print(json.dumps(record, indent=2))
            return
        table = Table(title=f"{record.get('pageName', show)} ({record.get('url', '')})")
        table.add_column("Group", justify="right")
        table.add_column("Frame", style="dim", max_width=40)
        table.add_column("Selector", style="cyan")
        table.add_column("Label")
        table.add_column("Type", style="magenta")
        table.add_column("Sample")
        for group in record.get("extractions", []):
            for element in group.get("elements", []):
                descriptor = ElementDescriptor.from_dict(element)
                table.add_row(
                    str(group.get("groupId", "")),
                    descriptor.frame_context,
                    descriptor.selector,
                    descriptor.label,
                    descriptor.type,
                    "" if descriptor.sample is None else str(descriptor.sample),
                )
        output_console.print(table)
        return

    if json_output:
        output_console.print(json.dumps(pages, indent=2))
        return
    if not pages:
        console.print("[dim]No saved extractions.[/dim]")
        return
    table = Table(title="Saved pages")
    table.add_column("Page ID", style="cyan")
    table.add_column("Name")
    table.add_column("URL", style="dim")
    table.add_column("Groups", justify="right")
    table.add_column("Elements", justify="right")
    table.add_column("Last updated", style="dim")
    for page_id, record in pages.items():
        groups = record.get("extractions", [])
        table.add_row(
            page_id,
            record.get("pageName", ""),
            record.get("url", ""),
            str(len(groups)),
            str(sum(len(g.get("elements", [])) for g in groups)),
            record.get("lastUpdated", ""),
        )
    output_console.print(table)


def override(
    selector: str = typer.Argument(..., help="Selector of the saved element to edit."),
    context: str = typer.Option(TOP_FRAME, "--context", "-c", help="Frame context of the element."),
    label: Optional[str] = typer.Option(None, "--label", help="New label."),
    group: Optional[str] = typer.Option(None, "--group", help="New group name."),
    new_selector: Optional[str] = typer.Option(None, "--new-selector", help="Replacement selector."),
    sample: Optional[str] = typer.Option(None, "--sample", help="Sample value used by replay."),
    new_context: Optional[str] = typer.Option(None, "--new-context", help="Replacement frame context."),
    element_type: Optional[str] = typer.Option(None, "--type", help="New element type, e.g. input[text]."),
    remove: bool = typer.Option(False, "--remove", help="Drop the pending override instead."),
) -> None:
    """Record a pending edit for one saved element."""
    store = _store()
    if remove:
        if not store.delete_override(context, selector):
            fail("Override Not Found", f"No pending override for {selector}")
        console.print(f"[green]Removed override for[/green] {selector}")
        return

    fields = {
        "label": label,
        "group": group,
        "new_selector": new_selector,
        "sample": sample,
        "context_document": new_context,
        "type": element_type,
    }
    if all(v is None for v in fields.values()):
        fail("Nothing To Change", "Give at least one of --label, --group, --new-selector, --sample, --new-context, --type.")
    try:
        entry = store.set_override(context, selector, **fields)
    except SessionStoreError as exc:
        fail("Session Store Error", str(exc))
    lines = "\n".join(f"[bold]{k}:[/bold] {v}" for k, v in entry.items())
    console.print(Panel(lines, title=f"[cyan]Pending override[/cyan] {selector}", border_style="cyan"))


def apply(
    page_id: Optional[str] = typer.Option(None, "--page", "-p", help="Only rewrite this saved page."),
) -> None:
    """Merge pending overrides into the saved descriptors."""
    store = _store()
    try:
        summary = store.apply_changes(page_id)
    except SessionStoreError as exc:
        fail("Session Store Error", str(exc))
    console.print(
        Panel(
            f"[bold]Fields updated:[/bold]   {summary.fields_updated}\n"
            f"[bold]Elements changed:[/bold] {summary.elements_changed}\n"
            f"[bold]Pages impacted:[/bold]   {len(summary.pages_impacted)}",
            title="[bold green]Changes Applied[/bold green]",
            border_style="green",
        )
    )
