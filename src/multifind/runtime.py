#  Copyright (c) 2025 Tom Villani, Ph.D.
"""In-process host browser for multifind.

:class:`BrowserRuntime` plays the role of the browser: it owns tabs, each with
a parsed page document, routes messages between the Query Surface, the
per-tab Document Engine and the background service, and performs script and
stylesheet injection. Every message crossing a context boundary is copied
through ``json`` so contexts never share live objects.

Engine lifetime follows the page: navigating a tab replaces its document and
drops its engine, exactly as a reload would.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Sequence

from bs4 import BeautifulSoup, Tag

from multifind.background import MessageSender
from multifind.constants import ENGINE_SCRIPT_FILES, ENGINE_STYLESHEET_FILES, is_restricted_url
from multifind.coordinator import TabInfo
from multifind.engine import DocumentEngine
from multifind.exceptions import (
    InjectionError,
    MessagingError,
    NoReceiverError,
    RestrictedTargetError,
    TabNotFoundError,
)
from multifind.options.engine import EngineOptions
from multifind.options.surface import InjectionOptions, SurfaceOptions
from multifind.surface import QuerySurface

if TYPE_CHECKING:
    from multifind.background import BackgroundService

logger = logging.getLogger(__name__)


def _copy_message(message: Any) -> Any:
    """Serialize and deserialize ``message``, as a real context boundary would."""
    try:
        return json.loads(json.dumps(message))
    except (TypeError, ValueError) as e:
        raise MessagingError(f"Message is not JSON-serializable: {e}", original_error=e) from e


@dataclass
class Tab:
    """One browser tab and the page currently loaded in it."""

    tab_id: int
    url: str
    title: str
    document: BeautifulSoup
    engine: DocumentEngine | None = None
    stylesheets: list[str] = field(default_factory=list)
    boot_pending: bool = False
    generation: int = 0
    scrolled_to: Tag | None = None

    @property
    def info(self) -> TabInfo:
        return TabInfo(tab_id=self.tab_id, url=self.url, title=self.title)

    def html(self) -> str:
        return str(self.document)


class _TabPort:
    """Fire-and-forget channel from one tab's engine to the background."""

    def __init__(self, runtime: BrowserRuntime, tab_id: int) -> None:
        self._runtime = runtime
        self._tab_id = tab_id

    def post_message(self, message: dict[str, Any]) -> None:
        payload = _copy_message(message)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._runtime._deliver_from_tab(self._tab_id, payload)
            return
        loop.call_soon(self._runtime._deliver_from_tab, self._tab_id, payload)


class BrowserRuntime:
    """Simulated host browser: tabs, messaging and injection.

    Parameters
    ----------
    background : BackgroundService, optional
        Background context receiving engine messages and commands
    engine_options : EngineOptions, optional
        Options every injected Document Engine is created with
    injection_options : InjectionOptions, optional
        Settle delay and retry budget for Query Surfaces opened by the runtime
    surface_options : SurfaceOptions, optional
        Debounce and history settings for Query Surfaces
    boot_delay : float, default 0.0
        Seconds between script injection and the engine answering messages
    parser : str, default "html.parser"
        BeautifulSoup tree builder used to parse page HTML

    """

    def __init__(
        self,
        background: BackgroundService | None = None,
        *,
        engine_options: EngineOptions | None = None,
        injection_options: InjectionOptions | None = None,
        surface_options: SurfaceOptions | None = None,
        boot_delay: float = 0.0,
        parser: str = "html.parser",
    ) -> None:
        """Create an empty browser with no tabs."""
        self.engine_options = engine_options or EngineOptions()
        self.injection_options = injection_options or InjectionOptions()
        self.surface_options = surface_options or SurfaceOptions()
        self.boot_delay = boot_delay
        self.parser = parser
        self.background = background
        self.surfaces: dict[int, QuerySurface] = {}
        self._tabs: dict[int, Tab] = {}
        self._active_tab_id: int | None = None
        self._next_tab_id = 1
        if background is not None:
            background.bind(self)

    # ------------------------------------------------------------------
    # Tabs
    # ------------------------------------------------------------------

    def _parse(self, html: str) -> BeautifulSoup:
        return BeautifulSoup(html, self.parser)

    @staticmethod
    def _title_of(document: BeautifulSoup, fallback: str) -> str:
        if document.title is not None and document.title.string:
            return document.title.string.strip()
        return fallback

    def open_tab(self, url: str, html: str = "", title: str | None = None, activate: bool = True) -> Tab:
        """Open a new tab showing ``html`` at ``url``. No engine is injected."""
        document = self._parse(html)
        tab = Tab(
            tab_id=self._next_tab_id,
            url=url,
            title=title if title is not None else self._title_of(document, url),
            document=document,
        )
        self._next_tab_id += 1
        self._tabs[tab.tab_id] = tab
        if activate:
            self._active_tab_id = tab.tab_id
        logger.debug("Opened tab %d at %s", tab.tab_id, url)
        return tab

    def navigate(self, tab_id: int, url: str, html: str = "", title: str | None = None) -> Tab:
        """Load a new page into ``tab_id``, discarding its engine and highlights."""
        tab = self.get_tab(tab_id)
        tab.document = self._parse(html)
        tab.url = url
        tab.title = title if title is not None else self._title_of(tab.document, url)
        tab.engine = None
        tab.stylesheets = []
        tab.boot_pending = False
        tab.scrolled_to = None
        tab.generation += 1
        self.surfaces.pop(tab_id, None)
        logger.debug("Tab %d navigated to %s", tab_id, url)
        return tab

    def close_tab(self, tab_id: int) -> None:
        tab = self.get_tab(tab_id)
        tab.engine = None
        del self._tabs[tab_id]
        surface = self.surfaces.pop(tab_id, None)
        if surface is not None:
            surface.close()
        if self._active_tab_id == tab_id:
            self._active_tab_id = next(reversed(self._tabs), None) if self._tabs else None

    def activate_tab(self, tab_id: int) -> Tab:
        tab = self.get_tab(tab_id)
        self._active_tab_id = tab_id
        return tab

    @property
    def active_tab(self) -> Tab | None:
        if self._active_tab_id is None:
            return None
        return self._tabs.get(self._active_tab_id)

    @property
    def tabs(self) -> list[Tab]:
        return list(self._tabs.values())

    def get_tab(self, tab_id: int) -> Tab:
        """Return the tab with ``tab_id``.

        Raises
        ------
        TabNotFoundError
            If no such tab is open

        """
        tab = self._tabs.get(tab_id)
        if tab is None:
            raise TabNotFoundError(tab_id)
        return tab

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_message(self, tab_id: int, message: dict[str, Any]) -> dict[str, Any]:
        """Deliver ``message`` to the engine in ``tab_id`` and return its response.

        Raises
        ------
        TabNotFoundError
            If the tab does not exist
        NoReceiverError
            If no engine is listening in the tab

        """
        tab = self.get_tab(tab_id)
        if tab.engine is None:
            raise NoReceiverError(tab_id)
        response = tab.engine.handle_message(_copy_message(message))
        return _copy_message(response)

    async def send_runtime_message(self, message: dict[str, Any]) -> dict[str, Any]:
        """Deliver ``message`` from an extension page to the background context."""
        if self.background is None:
            raise MessagingError("No background context is running")
        response = self.background.handle_message(_copy_message(message), MessageSender())
        return _copy_message(response)

    def _deliver_from_tab(self, tab_id: int, message: dict[str, Any]) -> None:
        if self.background is None:
            logger.debug("Dropping %s message from tab %d: no background", message.get("action"), tab_id)
            return
        tab = self._tabs.get(tab_id)
        sender = MessageSender(tab_id=tab_id, url=tab.url if tab else "", title=tab.title if tab else "")
        try:
            self.background.handle_message(message, sender)
        except Exception as e:
            logger.error("Background failed to handle %s from tab %d: %s", message.get("action"), tab_id, e)

    # ------------------------------------------------------------------
    # Injection
    # ------------------------------------------------------------------

    def _check_injectable(self, tab: Tab) -> None:
        if is_restricted_url(tab.url):
            raise RestrictedTargetError(tab.url)

    async def insert_css(self, tab_id: int, files: Sequence[str] = ENGINE_STYLESHEET_FILES) -> None:
        """Attach stylesheets to the page in ``tab_id``.

        Raises
        ------
        RestrictedTargetError
            If the tab shows a browser system page

        """
        tab = self.get_tab(tab_id)
        self._check_injectable(tab)
        for name in files:
            if name not in tab.stylesheets:
                tab.stylesheets.append(name)

    async def execute_script(self, tab_id: int, files: Sequence[str] = ENGINE_SCRIPT_FILES) -> None:
        """Inject the Document Engine into ``tab_id``.

        The engine starts answering after ``boot_delay`` seconds. Injecting into
        a tab whose engine is live or still booting does nothing.

        Raises
        ------
        RestrictedTargetError
            If the tab shows a browser system page
        InjectionError
            If ``files`` names no known engine script

        """
        tab = self.get_tab(tab_id)
        self._check_injectable(tab)
        if not set(files) & set(ENGINE_SCRIPT_FILES):
            raise InjectionError(f"Unknown script files: {', '.join(files) or '<none>'}", url=tab.url)

        if tab.engine is not None or tab.boot_pending:
            logger.debug("Engine already present in tab %d; skipping injection", tab_id)
            return

        tab.boot_pending = True
        if self.boot_delay <= 0:
            self._boot(tab_id, tab.generation)
        else:
            asyncio.get_running_loop().call_later(self.boot_delay, self._boot, tab_id, tab.generation)

    def _boot(self, tab_id: int, generation: int) -> None:
        tab = self._tabs.get(tab_id)
        if tab is None or tab.generation != generation:
            # The page went away while the script was loading
            return

        def scroll_into_view(element: Tag) -> None:
            tab.scrolled_to = element

        tab.boot_pending = False
        tab.engine = DocumentEngine(
            tab.document,
            options=self.engine_options,
            port=_TabPort(self, tab_id),
            page_url=tab.url,
            page_title=tab.title,
            on_scroll=scroll_into_view,
        )
        logger.info("Document engine started in tab %d", tab_id)
        tab.engine.announce()

    # ------------------------------------------------------------------
    # Surfaces and commands
    # ------------------------------------------------------------------

    async def open_query_surface(self, tab_id: int | None = None, focus: bool = True) -> QuerySurface:
        """Open a Query Surface against ``tab_id`` (the active tab by default).

        Raises
        ------
        TabNotFoundError
            If there is no such tab, or no active tab

        """
        if tab_id is None:
            if self._active_tab_id is None:
                raise TabNotFoundError(-1, "No active tab")
            tab_id = self._active_tab_id
        tab = self.get_tab(tab_id)

        previous = self.surfaces.pop(tab_id, None)
        if previous is not None:
            previous.close()

        surface = QuerySurface(
            self,
            tab.info,
            options=self.surface_options,
            injection_options=self.injection_options,
            palette=self.engine_options.theme_palette,
        )
        self.surfaces[tab_id] = surface
        await surface.open(focus=focus)
        return surface

    async def dispatch_command(self, name: str) -> None:
        """Deliver a keyboard command to the background context."""
        if self.background is None:
            logger.warning("Command %r ignored: no background context", name)
            return
        await self.background.on_command(name)


__all__ = ["Tab", "BrowserRuntime"]
