#  Copyright (c) 2025 Tom Villani, Ph.D.
"""The Document Engine: multi-term search and highlight inside one page.

One engine instance lives in a page for the page's lifetime. It owns the
page DOM and the :class:`SearchSession`, and answers wire messages through a
single handler table. Handlers run to completion one at a time, so all DOM
mutation is serialized.

Classes
-------
- MessagePort: fire-and-forget channel to the background context
- SearchOutcome / NavigationOutcome: typed results of engine operations
- DocumentEngine: the engine itself

"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Protocol

from bs4 import BeautifulSoup, Tag

from multifind.constants import ClearScope, NavigateDirection
from multifind.engine.highlighter import (
    DetachedNodeError,
    collect_text_nodes,
    compile_literal_pattern,
    create_marker,
    search_root,
    set_current,
    unwrap_marker,
    wrap_matches,
)
from multifind.engine.session import HighlightArena, PersistentTermGroup, SearchSession, SearchTerm, term_key
from multifind.exceptions import ProtocolError
from multifind.options.engine import EngineOptions
from multifind.protocol import (
    ClearRequest,
    ContentScriptLoadedRequest,
    EngineRequest,
    GetSearchTermsRequest,
    LogSearchRequest,
    NavigateRequest,
    NavigateResponse,
    PingRequest,
    RemoveSearchTermRequest,
    SearchLogEntry,
    SearchRequest,
    SearchResponse,
    TermInfo,
    ensure_handler_coverage,
    error_response,
    parse_request,
    to_message,
)

logger = logging.getLogger(__name__)


class MessagePort(Protocol):
    """One-way channel from the engine to the background context."""

    def post_message(self, message: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class SearchOutcome:
    match_count: int = 0
    current_match: int = 0
    search_limit_reached: bool = False
    reason: str | None = None

    def to_response(self) -> SearchResponse:
        return SearchResponse(
            match_count=self.match_count,
            current_match=self.current_match,
            search_limit_reached=self.search_limit_reached,
            reason=self.reason,
        )


@dataclass(frozen=True)
class NavigationOutcome:
    match_count: int = 0
    current_match: int = 0


class DocumentEngine:
    """Search-and-highlight engine bound to one page document.

    Parameters
    ----------
    document : BeautifulSoup
        The live page DOM. The engine is its only mutator.
    options : EngineOptions, optional
        Term cap, palette and exclusion settings
    port : MessagePort, optional
        Channel for fire-and-forget log appends; logging is skipped without one
    page_url : str
        URL recorded in audit log entries
    page_title : str
        Title recorded in audit log entries
    on_scroll : callable, optional
        Called with the marker element each time a match is scrolled into view

    """

    def __init__(
        self,
        document: BeautifulSoup,
        *,
        options: EngineOptions | None = None,
        port: MessagePort | None = None,
        page_url: str = "",
        page_title: str = "",
        on_scroll: Callable[[Tag], None] | None = None,
    ) -> None:
        """Initialise the engine with an empty session."""
        self.options = options or EngineOptions()
        self.document = document
        self.page_url = page_url
        self.page_title = page_title
        self.session = SearchSession(max_terms=self.options.max_terms, palette=self.options.theme_palette)
        self._arena = HighlightArena()
        self._port = port
        self._on_scroll = on_scroll
        self._handlers: dict[type, Callable[[Any], dict[str, Any]]] = {
            PingRequest: self._handle_ping,
            SearchRequest: self._handle_search,
            NavigateRequest: self._handle_navigate,
            GetSearchTermsRequest: self._handle_get_terms,
            RemoveSearchTermRequest: self._handle_remove_term,
            ClearRequest: self._handle_clear,
        }
        ensure_handler_coverage(self._handlers, EngineRequest)

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    def announce(self) -> None:
        """Tell the background context that an engine is now live in this page."""
        logger.debug("Document engine loaded in %s", self.page_url or "<page>")
        self._post(to_message(ContentScriptLoadedRequest()))

    def handle_message(self, message: Mapping[str, Any]) -> dict[str, Any]:
        """Decode one wire message, run its handler and return the response."""
        try:
            request = parse_request(message, EngineRequest)
        except ProtocolError as e:
            logger.warning("Rejected message %r: %s", message, e)
            return error_response(e)
        try:
            return self._handlers[type(request)](request)
        except Exception as e:
            # The page outlives any single message; report the failure to the sender
            logger.exception("Error handling %s message", request.action)
            return error_response(e)

    def _handle_ping(self, _request: PingRequest) -> dict[str, Any]:
        return {"status": "ok"}

    def _handle_search(self, request: SearchRequest) -> dict[str, Any]:
        return self.search(request.query, persist=request.persist, theme=request.theme).to_response().to_dict()

    def _handle_navigate(self, request: NavigateRequest) -> dict[str, Any]:
        outcome = self.navigate(request.direction)  # type: ignore[arg-type]
        return NavigateResponse(outcome.match_count, outcome.current_match).to_dict()

    def _handle_get_terms(self, _request: GetSearchTermsRequest) -> dict[str, Any]:
        return {
            "terms": [TermInfo(term.query, term.theme).to_dict() for term in self.session.terms()],
            "nextTheme": self.session.current_theme,
        }

    def _handle_remove_term(self, request: RemoveSearchTermRequest) -> dict[str, Any]:
        return {"status": "removed" if self.remove_search_term(request.index) else "not_found"}

    def _handle_clear(self, request: ClearRequest) -> dict[str, Any]:
        self.clear(request.scope)  # type: ignore[arg-type]
        return {"status": "cleared"}

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def search(self, query: str, *, persist: bool = False, theme: str | None = None) -> SearchOutcome:
        """Highlight every case-insensitive literal occurrence of ``query``.

        An empty query only clears the transient highlights. A persistent
        search that would exceed the term cap, or that repeats a committed
        term, is rejected before the DOM is touched.

        Parameters
        ----------
        query : str
            Literal text to find
        persist : bool, default False
            Commit the result as a search term instead of a live preview
        theme : str, optional
            Theme to tag the highlights with; defaults to the session's current theme

        Returns
        -------
        SearchOutcome

        """
        session = self.session

        if not query:
            self._release_current()
            self._clear_transient()
            session.activate(None)
            return SearchOutcome()

        if persist and (session.is_full or session.has_term(query)):
            reason = "duplicate" if session.has_term(query) else "limit"
            logger.info(
                "Rejected search term %r (%s, %d/%d terms)",
                query,
                reason,
                len(session.persistent_terms),
                session.max_terms,
            )
            return SearchOutcome(search_limit_reached=True, reason=reason)

        self._release_current()
        self._clear_transient()

        term = SearchTerm(query=query, theme=theme or session.current_theme, persistent=persist)
        try:
            handles = self._scan(term)
        except DetachedNodeError as e:
            logger.error("Search for %r aborted: %s", query, e)
            session.activate(None)
            return SearchOutcome()

        if persist:
            if not handles:
                logger.info("Search term %r has no matches; not committed", query)
                session.activate(None)
                self._log_search(term, 0)
                return SearchOutcome()
            session.persistent_terms[term.key] = PersistentTermGroup(term=term, handles=handles)
            session.advance_theme()
            session.activate(term.key)
            self._log_search(term, len(handles))
        else:
            session.transient_highlights = handles
            session.activate(None)
            if self.options.log_transient_searches:
                self._log_search(term, len(handles))

        if handles:
            self._move_current(None, handles[0])
        logger.debug("Search %r (persist=%s) found %d matches", query, persist, len(handles))
        return SearchOutcome(match_count=len(handles), current_match=1 if handles else 0)

    def navigate(self, direction: NavigateDirection) -> NavigationOutcome:
        """Step the cursor through the active set, wrapping in both directions."""
        session = self.session
        handles = session.active_handles()
        if not handles:
            session.navigation_cursor = -1
            return NavigationOutcome()

        size = len(handles)
        previous = session.navigation_cursor
        start = previous if 0 <= previous < size else 0
        step = 1 if direction == "next" else -1
        session.navigation_cursor = (start + step) % size

        self._move_current(
            handles[previous] if 0 <= previous < size else None,
            handles[session.navigation_cursor],
        )
        return NavigationOutcome(match_count=size, current_match=session.navigation_cursor + 1)

    def clear(self, scope: ClearScope = "transient") -> None:
        """Unwrap the transient highlights, or every highlight for ``scope="all"``."""
        session = self.session
        self._clear_transient()
        if scope == "all":
            for group in session.persistent_terms.values():
                self._unwrap_handles(group.handles)
            session.persistent_terms.clear()
            session.activate(None)
        elif session.active_key is None:
            session.activate(None)

    def search_terms(self) -> list[SearchTerm]:
        """Committed terms in commit order."""
        return self.session.terms()

    def remove_search_term(self, index: int) -> bool:
        """Remove the committed term at ``index``, unwrapping exactly its highlights.

        Returns False when no term exists at that position.
        """
        session = self.session
        key = session.key_at(index)
        if key is None:
            logger.info("No search term at index %d", index)
            return False

        group = session.persistent_terms.pop(key)
        self._unwrap_handles(group.handles)
        if session.active_key == key:
            session.activate(None)
        logger.debug("Removed search term %r", group.term.query)
        return True

    @property
    def highlight_count(self) -> int:
        """Number of live highlights across the transient set and every term."""
        return len(self._arena)

    def highlights_for(self, query: str) -> list[Tag]:
        """Marker elements of the committed term ``query``, in document order."""
        group = self.session.persistent_terms.get(term_key(query))
        if group is None:
            return []
        return [self._arena.get(handle).element for handle in group.handles]

    def transient_elements(self) -> list[Tag]:
        """Marker elements of the live-typing preview set."""
        return [self._arena.get(handle).element for handle in self.session.transient_highlights]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _scan(self, term: SearchTerm) -> list[int]:
        pattern = compile_literal_pattern(term.query)
        handles: list[int] = []

        def make_marker(text: str) -> Tag:
            return create_marker(self.document, text, query=term.query, theme=term.theme)

        try:
            for node in collect_text_nodes(search_root(self.document), self.options.excluded_tags):
                for marker in wrap_matches(node, pattern, make_marker):
                    handles.append(self._arena.add(term, marker))
        except DetachedNodeError:
            # Leave no orphaned markers behind from the aborted scan
            self._unwrap_handles(handles)
            raise
        return handles

    def _clear_transient(self) -> None:
        session = self.session
        if session.transient_highlights:
            self._unwrap_handles(session.transient_highlights)
            session.transient_highlights = []

    def _unwrap_handles(self, handles: list[int]) -> None:
        for handle in handles:
            highlight = self._arena.release(handle)
            if highlight is not None:
                unwrap_marker(highlight.element)

    def _release_current(self) -> None:
        handles = self.session.active_handles()
        cursor = self.session.navigation_cursor
        if 0 <= cursor < len(handles) and handles[cursor] in self._arena:
            set_current(self._arena.get(handles[cursor]).element, False)

    def _move_current(self, previous: int | None, current: int) -> None:
        if previous is not None and previous in self._arena:
            set_current(self._arena.get(previous).element, False)
        element = self._arena.get(current).element
        set_current(element, True)
        if self._on_scroll is not None:
            self._on_scroll(element)

    def _log_search(self, term: SearchTerm, match_count: int) -> None:
        entry = SearchLogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            query=term.query,
            match_count=match_count,
            url=self.page_url,
            title=self.page_title,
        )
        self._post(to_message(LogSearchRequest(search_log=entry)))

    def _post(self, message: dict[str, Any]) -> None:
        if self._port is None:
            return
        try:
            self._port.post_message(message)
        except Exception as e:
            # Audit logging is best-effort and must never break a search
            logger.warning("Could not post %s message: %s", message.get("action"), e)
