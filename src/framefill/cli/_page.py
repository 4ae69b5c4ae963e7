"""Shared helpers for commands that work on an open page.

A page comes either from an HTML file (``--html``, offline) or from an
operator's browser reached over CDP (``--cdp``).  Either way the commands
get a FramePage, start one FrameAgent per frame, and talk to them through a
FrameCoordinator.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Coroutine, Iterator, NoReturn, Optional, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel

from framefill.browser import BrowserSession, push_writes, snapshot_page
from framefill.config import FrameFillConfig, FrameFillConfigError
from framefill.dom import FramePage, load_page
from framefill.engine.agent import FrameAgent
from framefill.engine.coordinator import FrameCoordinator, LocalTransport, attach_page
from framefill.storage import SessionStore

console = Console(stderr=True)

logger = logging.getLogger("framefill.cli")

T = TypeVar("T")

TAB_ID = 1


def fail(title: str, message: str, code: int = 2) -> NoReturn:
    """Print a red error panel and exit."""
    console.print(Panel(message, title=f"[red]{title}[/red]", border_style="red"))
    raise typer.Exit(code=code)


def load_config() -> FrameFillConfig:
    try:
        return FrameFillConfig.discover()
    except FrameFillConfigError as exc:
        fail("Config Error", str(exc))


def parse_resources(resources: Optional[list[str]]) -> dict[str, str]:
    """``URL=FILE`` pairs -> {URL: HTML}."""
    loaded: dict[str, str] = {}
    for item in resources or []:
        url, sep, path = item.partition("=")
        if not sep or not url or not path:
            fail("Invalid Resource", f"Expected URL=FILE, got: {item}")
        file_path = Path(path)
        if not file_path.is_file():
            fail("Invalid Resource", f"File not found: {file_path}")
        loaded[url] = file_path.read_text(encoding="utf-8")
    return loaded


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion on a private thread and loop.

    Keeps asyncio work off the thread that drives Playwright's sync API.
    """
    with ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()


@dataclass
class OpenPage:
    """A page with its frame agents wired to a coordinator."""

    page: FramePage
    coordinator: FrameCoordinator
    agents: list[FrameAgent]
    store: SessionStore
    config: FrameFillConfig
    frame_map: dict[int, Any] = field(default_factory=dict)

    @property
    def live(self) -> bool:
        return bool(self.frame_map)

    def push(self) -> tuple[int, int]:
        if not self.live:
            return 0, 0
        return push_writes(self.page, self.frame_map)


@contextlib.contextmanager
def open_page(
    html: Optional[Path],
    url: Optional[str],
    resources: Optional[list[str]],
    cdp: Optional[str],
) -> Iterator[OpenPage]:
    """Yield an OpenPage from ``--html`` or ``--cdp`` options."""
    config = load_config()
    if html is None and cdp is None:
        cdp = config.cdp_url
    if (html is None) == (cdp is None):
        fail("Usage Error", "Give exactly one of [bold]--html FILE[/bold] or [bold]--cdp URL[/bold].")

    store = SessionStore(config.store_path)
    transport = LocalTransport()
    coordinator = FrameCoordinator(
        transport,
        frame_timeout=config.frame_timeout,
        extract_timeout=config.extract_timeout,
    )

    if html is not None:
        if not html.is_file():
            fail("File Not Found", f"HTML file not found: {html}")
        page = load_page(html.read_text(encoding="utf-8"), url or html.resolve().as_uri(), parse_resources(resources))
        agents = attach_page(page, coordinator, transport, TAB_ID, store=store, config=config)
        yield OpenPage(page, coordinator, agents, store, config)
        return

    from playwright.sync_api import Error as PlaywrightError

    session = BrowserSession(cdp)
    try:
        session.start()
    except PlaywrightError as exc:
        session.stop()
        fail("Browser Error", f"Could not connect to {cdp}:\n{exc}")
    try:
        try:
            live_page = session.page(url)
        except LookupError as exc:
            fail("Browser Error", str(exc))
        page, frame_map = snapshot_page(live_page)
        agents = attach_page(page, coordinator, transport, TAB_ID, store=store, config=config)
        yield OpenPage(page, coordinator, agents, store, config, frame_map)
    finally:
        session.stop()


# Typer options shared by page commands
HTML_OPTION = typer.Option(None, "--html", help="Offline HTML file to load as the page.")
URL_OPTION = typer.Option(
    None,
    "--url",
    help="Page URL (offline mode) or a URL substring selecting the tab (CDP mode).",
)
RESOURCE_OPTION = typer.Option(
    None,
    "--resource",
    "-r",
    help="Frame document for offline mode as URL=FILE. Repeatable.",
)
CDP_OPTION = typer.Option(None, "--cdp", help="CDP endpoint of a running browser, e.g. http://localhost:9222.")
