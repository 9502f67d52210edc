#  Copyright (c) 2025 Tom Villani, Ph.D.
"""The Query Surface: input handling and view state for one tab.

The surface never touches the page. It turns keystrokes and confirm actions
into requests for the Document Engine and folds the responses into a
:class:`SurfaceView` for whatever UI renders it.

Live typing is debounced: each keystroke cancels the pending dispatch, and
only the response to the most recently dispatched request may update the
view (last-write-wins).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from multifind.constants import (
    DEFAULT_PLACEHOLDER,
    DEFAULT_THEME_PALETTE,
    NO_MATCHES_TEXT,
    RESTRICTED_PLACEHOLDER,
    NavigateDirection,
)
from multifind.coordinator import InjectionCoordinator, TabInfo, TabTransport
from multifind.exceptions import (
    InjectionError,
    MessagingError,
    MultiFindError,
    ProtocolError,
    RestrictedTargetError,
)
from multifind.options.surface import InjectionOptions, SurfaceOptions
from multifind.protocol import (
    ClearRequest,
    GetSearchLogsRequest,
    GetSearchTermsRequest,
    NavigateRequest,
    NavigateResponse,
    RemoveSearchTermRequest,
    SearchLogEntry,
    SearchRequest,
    SearchResponse,
    to_message,
)

logger = logging.getLogger(__name__)


class SurfaceTransport(TabTransport, Protocol):
    """Tab transport that can also reach the background context."""

    async def send_runtime_message(self, message: dict[str, Any]) -> dict[str, Any]: ...


@dataclass(frozen=True)
class TermChip:
    """A committed term as shown in the surface's term list."""

    index: int
    query: str
    theme: str


@dataclass
class SurfaceView:
    """Everything a UI needs to render the surface."""

    input_enabled: bool = True
    placeholder: str = DEFAULT_PLACEHOLDER
    focused: bool = False
    status_text: str = ""
    match_count: int = 0
    current_match: int = 0
    prev_enabled: bool = False
    next_enabled: bool = False
    limit_reached: bool = False
    limit_reason: str | None = None
    terms: list[TermChip] = field(default_factory=list)
    history: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class SurfaceContext:
    """Per-tab session state owned by one Query Surface instance.

    Attributes
    ----------
    tab : TabInfo
        Target tab
    injection : InjectionCoordinator
        Readiness state machine for the tab
    palette : tuple[str, ...]
        Theme cycle shared with the engine
    theme_cursor : int
        Position of the theme the next commit receives, as last reported by the engine
    input_text : str
        Current contents of the search input
    generation : int
        Sequence number of the most recently dispatched search

    """

    tab: TabInfo
    injection: InjectionCoordinator
    palette: tuple[str, ...] = DEFAULT_THEME_PALETTE
    theme_cursor: int = 0
    input_text: str = ""
    generation: int = 0

    @property
    def current_theme(self) -> str:
        return self.palette[self.theme_cursor % len(self.palette)]


class QuerySurface:
    """Popup-style search UI state machine for one tab.

    Parameters
    ----------
    transport : SurfaceTransport
        Host browser transport
    tab : TabInfo
        Tab the surface was opened against
    options : SurfaceOptions, optional
        Debounce window and history size
    injection_options : InjectionOptions, optional
        Settle delay and retry budget for the engine
    palette : tuple[str, ...]
        Theme cycle; must match the engine's palette

    """

    def __init__(
        self,
        transport: SurfaceTransport,
        tab: TabInfo,
        *,
        options: SurfaceOptions | None = None,
        injection_options: InjectionOptions | None = None,
        palette: tuple[str, ...] = DEFAULT_THEME_PALETTE,
    ) -> None:
        """Create the surface; call :meth:`open` before use."""
        self.transport = transport
        self.options = options or SurfaceOptions()
        self.context = SurfaceContext(
            tab=tab,
            injection=InjectionCoordinator(transport, tab, injection_options),
            palette=palette,
        )
        self.view = SurfaceView()
        self.closed = False
        self._debounce_task: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def current_theme(self) -> str:
        return self.context.current_theme

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self, focus: bool = True) -> SurfaceView:
        """Prepare the surface against its tab.

        On restricted pages the input is disabled with an explanatory
        placeholder and nothing is sent. Otherwise the engine is made ready
        and the committed term list is loaded.
        """
        if self.context.tab.restricted:
            self._disable(RESTRICTED_PLACEHOLDER)
            return self.view

        try:
            await self.context.injection.ensure_ready()
        except MultiFindError as e:
            self._handle_failure(e)
            return self.view

        self.view.focused = focus
        await self.refresh_terms()
        return self.view

    def close(self) -> None:
        """Discard pending input. Requests already dispatched still run to completion."""
        self.closed = True
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None

    async def settle(self) -> SurfaceView:
        """Wait for the pending debounce timer and every in-flight search."""
        if self._debounce_task is not None:
            try:
                await self._debounce_task
            except asyncio.CancelledError:
                pass
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        return self.view

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def on_input(self, text: str) -> None:
        """Record a keystroke and (re)start the debounce timer for a live search."""
        if self.closed or not self.view.input_enabled:
            return
        self.context.input_text = text
        self._cancel_debounce()
        self._debounce_task = asyncio.get_running_loop().create_task(self._debounce(text))

    async def _debounce(self, text: str) -> None:
        await asyncio.sleep(self.options.debounce_seconds)
        self.context.generation += 1
        task = asyncio.get_running_loop().create_task(self._dispatch_search(text, self.context.generation))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _dispatch_search(self, text: str, generation: int) -> None:
        request = SearchRequest(query=text, persist=False)
        try:
            response = SearchResponse.from_dict(await self.context.injection.request(to_message(request)))
        except MultiFindError as e:
            if generation == self.context.generation:
                self._handle_failure(e)
            return

        if generation != self.context.generation:
            logger.debug("Discarding stale response for %r", text)
            return
        self._apply_counts(response.match_count, response.current_match)
        self.view.limit_reached = False
        self.view.limit_reason = None

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()

    async def commit(self) -> SurfaceView:
        """Commit the current input as a persistent search term.

        The engine picks the theme from its own cursor; the surface's cursor
        is refreshed from the engine afterwards.
        """
        text = self.context.input_text
        if self.closed or not self.view.input_enabled or not text:
            return self.view

        self._cancel_debounce()
        # A commit supersedes any live search still in flight
        self.context.generation += 1
        request = SearchRequest(query=text, persist=True)
        try:
            response = SearchResponse.from_dict(await self.context.injection.request(to_message(request)))
        except MultiFindError as e:
            self._handle_failure(e)
            return self.view

        if response.search_limit_reached:
            self.view.limit_reached = True
            self.view.limit_reason = response.reason
            if response.reason == "duplicate":
                self.view.status_text = f"{text!r} is already highlighted"
            else:
                self.view.status_text = "Search term limit reached; remove a term first"
            return self.view

        self.view.limit_reached = False
        self.view.limit_reason = None
        self._apply_counts(response.match_count, response.current_match)
        if response.match_count > 0:
            self.context.input_text = ""
            logger.info("Committed search term %r", text)
        return await self.refresh_terms()

    # ------------------------------------------------------------------
    # Other operations
    # ------------------------------------------------------------------

    async def navigate(self, direction: NavigateDirection) -> SurfaceView:
        """Move to the next or previous match of the active set."""
        if not self.view.input_enabled:
            return self.view
        try:
            response = NavigateResponse.from_dict(
                await self.context.injection.request(to_message(NavigateRequest(direction=direction)))
            )
        except MultiFindError as e:
            self._handle_failure(e)
            return self.view
        self._apply_counts(response.match_count, response.current_match)
        return self.view

    async def refresh_terms(self) -> SurfaceView:
        """Reload the committed term list and the next theme from the engine.

        The engine's session owns the theme cursor, so a surface reopened
        against a tab with committed terms picks up where the last one left off.
        """
        try:
            response = await self.context.injection.request(to_message(GetSearchTermsRequest()))
        except MultiFindError as e:
            self._handle_failure(e)
            return self.view

        terms = response.get("terms", [])
        self.view.terms = [
            TermChip(index=index, query=str(item.get("query", "")), theme=str(item.get("theme", "")))
            for index, item in enumerate(terms)
            if isinstance(item, dict)
        ]
        next_theme = response.get("nextTheme")
        if next_theme in self.context.palette:
            self.context.theme_cursor = self.context.palette.index(next_theme)
        elif next_theme is not None:
            logger.warning("Engine reported unknown theme %r", next_theme)
        return self.view

    async def remove_term(self, index: int) -> SurfaceView:
        """Remove the committed term at ``index`` and reload the term list."""
        try:
            response = await self.context.injection.request(to_message(RemoveSearchTermRequest(index=index)))
        except MultiFindError as e:
            self._handle_failure(e)
            return self.view

        if response.get("status") == "removed":
            self.view.limit_reached = False
            self.view.limit_reason = None
        else:
            logger.info("No search term at index %d to remove", index)
        return await self.refresh_terms()

    async def clear_all(self) -> SurfaceView:
        """Remove every highlight, committed or not, from the page."""
        self._cancel_debounce()
        self.context.generation += 1
        self.context.input_text = ""
        try:
            await self.context.injection.request(to_message(ClearRequest(scope="all")))
        except MultiFindError as e:
            self._handle_failure(e)
            return self.view
        self._apply_counts(0, 0, show_empty=False)
        self.view.limit_reached = False
        self.view.limit_reason = None
        return await self.refresh_terms()

    async def load_history(self, limit: int | None = None) -> list[SearchLogEntry]:
        """Fetch the most recent audit log entries for the history display."""
        limit = self.options.history_limit if limit is None else limit
        try:
            response = await self.transport.send_runtime_message(to_message(GetSearchLogsRequest(limit=limit)))
            entries = [SearchLogEntry.from_dict(item) for item in response.get("logs", [])]
        except (MessagingError, ProtocolError) as e:
            logger.warning("Could not load search history: %s", e)
            return []
        self.view.history = [entry.query for entry in reversed(entries)]
        return entries

    # ------------------------------------------------------------------
    # View helpers
    # ------------------------------------------------------------------

    def _apply_counts(self, match_count: int, current_match: int, show_empty: bool = True) -> None:
        has_matches = match_count > 0
        self.view.match_count = match_count
        self.view.current_match = current_match
        self.view.prev_enabled = has_matches
        self.view.next_enabled = has_matches
        if has_matches:
            self.view.status_text = f"{current_match} of {match_count}"
        elif show_empty and self.context.input_text:
            self.view.status_text = NO_MATCHES_TEXT
        else:
            self.view.status_text = ""

    def _disable(self, placeholder: str, error: str | None = None) -> None:
        self._cancel_debounce()
        self.view.input_enabled = False
        self.view.placeholder = placeholder
        self.view.prev_enabled = False
        self.view.next_enabled = False
        self.view.focused = False
        self.view.error = error

    def _handle_failure(self, error: MultiFindError) -> None:
        if isinstance(error, RestrictedTargetError):
            self._disable(RESTRICTED_PLACEHOLDER, error.message)
        elif isinstance(error, InjectionError):
            self._disable("Search is unavailable on this page", error.message)
        else:
            logger.error("Search request failed: %s", error)
            self.view.error = error.message
