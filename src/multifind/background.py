#  Copyright (c) 2025 Tom Villani, Ph.D.
"""The background context: install events, commands and the search audit log."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping

from multifind.constants import COMMAND_ACTIVATE_SEARCH, COMMAND_TOGGLE_SEARCH
from multifind.exceptions import MultiFindError, ProtocolError
from multifind.logstore import SearchLogStore, create_storage
from multifind.options.logstore import LogStoreOptions
from multifind.protocol import (
    BackgroundRequest,
    ContentScriptLoadedRequest,
    GetSearchLogsRequest,
    LogSearchRequest,
    ensure_handler_coverage,
    error_response,
    parse_request,
)

if TYPE_CHECKING:
    from multifind.runtime import BrowserRuntime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageSender:
    """Where a message came from; ``tab_id`` is None for extension pages."""

    tab_id: int | None = None
    url: str = ""
    title: str = ""


class BackgroundService:
    """Long-lived coordinator owning the search log.

    Parameters
    ----------
    log_store : SearchLogStore, optional
        Audit log; built from ``options`` when omitted
    options : LogStoreOptions, optional
        Cap, storage key and storage location of the audit log

    """

    def __init__(self, log_store: SearchLogStore | None = None, options: LogStoreOptions | None = None) -> None:
        self.options = options or LogStoreOptions()
        self.log_store = log_store or SearchLogStore(create_storage(self.options), self.options)
        self.runtime: BrowserRuntime | None = None
        self.loaded_tabs: set[int] = set()
        self._handlers: dict[type, Callable[[Any, MessageSender], dict[str, Any]]] = {
            LogSearchRequest: self._handle_log_search,
            ContentScriptLoadedRequest: self._handle_content_script_loaded,
            GetSearchLogsRequest: self._handle_get_search_logs,
        }
        ensure_handler_coverage(self._handlers, BackgroundRequest)
        self._commands: dict[str, Callable[[], Awaitable[None]]] = {
            COMMAND_ACTIVATE_SEARCH: self._activate_search,
            COMMAND_TOGGLE_SEARCH: self._toggle_search,
        }

    def bind(self, runtime: BrowserRuntime) -> None:
        """Attach the host runtime used to act on commands."""
        self.runtime = runtime

    def on_installed(self, reason: str = "install") -> None:
        """Prepare the audit log. A fresh install starts with an empty log; updates keep it."""
        logger.info("Extension %s", "installed" if reason == "install" else f"event: {reason}")
        self.log_store.initialize(reset=reason == "install")

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def handle_message(self, message: Mapping[str, Any], sender: MessageSender | None = None) -> dict[str, Any]:
        """Decode and handle one message addressed to the background."""
        sender = sender or MessageSender()
        try:
            request = parse_request(message, BackgroundRequest)
        except ProtocolError as e:
            logger.warning("Rejected background message %r: %s", message, e)
            return error_response(e)
        return self._handlers[type(request)](request, sender)

    def _handle_log_search(self, request: LogSearchRequest, sender: MessageSender) -> dict[str, Any]:
        entry = request.search_log
        if sender.url and not entry.url:
            entry = replace(entry, url=sender.url, title=entry.title or sender.title)
        self.log_store.append(entry)
        return {"status": "logged"}

    def _handle_content_script_loaded(
        self, _request: ContentScriptLoadedRequest, sender: MessageSender
    ) -> dict[str, Any]:
        if sender.tab_id is not None:
            self.loaded_tabs.add(sender.tab_id)
        logger.debug("Content script loaded in tab %s", sender.tab_id)
        return {"status": "acknowledged"}

    def _handle_get_search_logs(self, request: GetSearchLogsRequest, _sender: MessageSender) -> dict[str, Any]:
        return {"logs": [entry.to_dict() for entry in self.log_store.entries(request.limit)]}

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def on_command(self, command: str) -> None:
        """Run a keyboard command. Unknown commands are logged and ignored."""
        handler = self._commands.get(command)
        if handler is None:
            logger.warning("Unknown command: %s", command)
            return
        logger.debug("Command received: %s", command)
        await handler()

    async def _activate_search(self) -> None:
        await self._open_surface(focus=True)

    async def _toggle_search(self) -> None:
        await self._open_surface(focus=False)

    async def _open_surface(self, focus: bool) -> None:
        runtime = self.runtime
        if runtime is None:
            logger.warning("No runtime bound; command ignored")
            return
        tab = runtime.active_tab
        if tab is None:
            logger.info("No active tab found")
            return
        if tab.info.restricted:
            logger.info("Cannot inject into restricted URL: %s", tab.url)
            return
        try:
            await runtime.open_query_surface(tab.tab_id, focus=focus)
        except MultiFindError as e:
            logger.error("Error opening search in tab %d: %s", tab.tab_id, e)


__all__ = ["MessageSender", "BackgroundService"]
