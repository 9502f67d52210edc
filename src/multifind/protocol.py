#  Copyright (c) 2025 Tom Villani, Ph.D.
"""Wire schemas for messages exchanged between multifind contexts.

Every message is a JSON-shaped ``dict`` tagged by its ``action`` field. On
receipt it is decoded into one of the frozen request dataclasses below, and
the receiver dispatches on the request type through a single handler table.

Classes
-------
- Engine requests: PingRequest, SearchRequest, NavigateRequest,
  GetSearchTermsRequest, RemoveSearchTermRequest, ClearRequest
- Background requests: LogSearchRequest, ContentScriptLoadedRequest,
  GetSearchLogsRequest
- Responses: SearchResponse, NavigateResponse, TermInfo
- SearchLogEntry: one audit-log record

"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Callable, ClassVar, Mapping, Union, get_args

from multifind.exceptions import ProtocolError

PING_MESSAGE: dict[str, Any] = {"action": "ping"}


@dataclass(frozen=True)
class SearchLogEntry:
    """One record of the audit log of past searches."""

    timestamp: str
    query: str
    match_count: int
    url: str = ""
    title: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the wire (camelCase) form of the entry."""
        return {
            "timestamp": self.timestamp,
            "query": self.query,
            "matchCount": self.match_count,
            "url": self.url,
            "title": self.title,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SearchLogEntry":
        """Decode an entry from its wire form.

        Raises
        ------
        ProtocolError
            If a required field is missing or has the wrong type

        """
        if not isinstance(data, Mapping):
            raise ProtocolError("searchLog must be an object", action="logSearch", parameter_value=data)
        query = data.get("query")
        match_count = data.get("matchCount", 0)
        if not isinstance(query, str):
            raise ProtocolError("searchLog.query must be a string", action="logSearch", parameter_name="query")
        if isinstance(match_count, bool) or not isinstance(match_count, int):
            raise ProtocolError(
                "searchLog.matchCount must be an integer", action="logSearch", parameter_name="matchCount"
            )
        return cls(
            timestamp=str(data.get("timestamp", "")),
            query=query,
            match_count=match_count,
            url=str(data.get("url") or ""),
            title=str(data.get("title") or ""),
        )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PingRequest:
    """Liveness check answered synchronously by a live engine."""

    action: ClassVar[str] = "ping"


@dataclass(frozen=True)
class SearchRequest:
    """Scan the page for ``query``; ``persist`` commits it as a search term."""

    action: ClassVar[str] = "search"

    query: str = ""
    persist: bool = False
    theme: str | None = None


@dataclass(frozen=True)
class NavigateRequest:
    """Move the current-match cursor through the active highlight set."""

    action: ClassVar[str] = "navigate"

    direction: str = "next"


@dataclass(frozen=True)
class GetSearchTermsRequest:
    action: ClassVar[str] = "getSearchTerms"


@dataclass(frozen=True)
class RemoveSearchTermRequest:
    """Remove the committed term at ``index`` (commit order)."""

    action: ClassVar[str] = "removeSearchTerm"

    index: int = 0


@dataclass(frozen=True)
class ClearRequest:
    action: ClassVar[str] = "clear"

    scope: str = "transient"


@dataclass(frozen=True)
class LogSearchRequest:
    """Fire-and-forget append to the background audit log."""

    action: ClassVar[str] = "logSearch"

    search_log: SearchLogEntry = field(default_factory=lambda: SearchLogEntry(timestamp="", query="", match_count=0))


@dataclass(frozen=True)
class ContentScriptLoadedRequest:
    action: ClassVar[str] = "contentScriptLoaded"


@dataclass(frozen=True)
class GetSearchLogsRequest:
    action: ClassVar[str] = "getSearchLogs"

    limit: int | None = None


EngineRequest = Union[
    PingRequest,
    SearchRequest,
    NavigateRequest,
    GetSearchTermsRequest,
    RemoveSearchTermRequest,
    ClearRequest,
]

BackgroundRequest = Union[
    LogSearchRequest,
    ContentScriptLoadedRequest,
    GetSearchLogsRequest,
]

_VALID_DIRECTIONS = ("next", "prev")
_VALID_SCOPES = ("transient", "all")


def _require_type(action: str, name: str, value: Any, expected: type | tuple[type, ...]) -> None:
    # bool is an int subclass; reject it where an integer is expected
    if isinstance(value, bool) and bool not in (expected if isinstance(expected, tuple) else (expected,)):
        raise ProtocolError(f"{action}.{name} has invalid type bool", action, name, value)
    if not isinstance(value, expected):
        raise ProtocolError(f"{action}.{name} has invalid type {type(value).__name__}", action, name, value)


def _decode_search(message: Mapping[str, Any]) -> SearchRequest:
    query = message.get("query", "")
    persist = message.get("persist", False)
    theme = message.get("theme")
    _require_type("search", "query", query, str)
    _require_type("search", "persist", persist, bool)
    if theme is not None:
        _require_type("search", "theme", theme, str)
    return SearchRequest(query=query, persist=persist, theme=theme or None)


def _decode_navigate(message: Mapping[str, Any]) -> NavigateRequest:
    direction = message.get("direction", "next")
    if direction not in _VALID_DIRECTIONS:
        raise ProtocolError(f"navigate.direction must be one of {_VALID_DIRECTIONS}", "navigate", "direction", direction)
    return NavigateRequest(direction=direction)


def _decode_remove(message: Mapping[str, Any]) -> RemoveSearchTermRequest:
    index = message.get("index")
    _require_type("removeSearchTerm", "index", index, int)
    return RemoveSearchTermRequest(index=index)


def _decode_clear(message: Mapping[str, Any]) -> ClearRequest:
    scope = message.get("scope", "transient")
    if scope not in _VALID_SCOPES:
        raise ProtocolError(f"clear.scope must be one of {_VALID_SCOPES}", "clear", "scope", scope)
    return ClearRequest(scope=scope)


def _decode_log_search(message: Mapping[str, Any]) -> LogSearchRequest:
    return LogSearchRequest(search_log=SearchLogEntry.from_dict(message.get("searchLog")))  # type: ignore[arg-type]


def _decode_get_logs(message: Mapping[str, Any]) -> GetSearchLogsRequest:
    limit = message.get("limit")
    if limit is not None:
        _require_type("getSearchLogs", "limit", limit, int)
        if limit < 0:
            raise ProtocolError("getSearchLogs.limit must be non-negative", "getSearchLogs", "limit", limit)
    return GetSearchLogsRequest(limit=limit)


_DECODERS: dict[str, Callable[[Mapping[str, Any]], Any]] = {
    PingRequest.action: lambda _message: PingRequest(),
    SearchRequest.action: _decode_search,
    NavigateRequest.action: _decode_navigate,
    GetSearchTermsRequest.action: lambda _message: GetSearchTermsRequest(),
    RemoveSearchTermRequest.action: _decode_remove,
    ClearRequest.action: _decode_clear,
    LogSearchRequest.action: _decode_log_search,
    ContentScriptLoadedRequest.action: lambda _message: ContentScriptLoadedRequest(),
    GetSearchLogsRequest.action: _decode_get_logs,
}


def parse_request(message: Mapping[str, Any], accepted: Any = None) -> Any:
    """Decode a wire message into its request dataclass.

    Parameters
    ----------
    message : Mapping
        JSON-shaped message with an ``action`` tag
    accepted : Union type, optional
        Restrict decoding to members of this union (e.g. ``EngineRequest``)

    Returns
    -------
    request dataclass instance

    Raises
    ------
    ProtocolError
        If the message is not an object, the action is unknown or not accepted,
        or a field has the wrong type

    """
    if not isinstance(message, Mapping):
        raise ProtocolError(f"Message must be an object, got {type(message).__name__}")

    action = message.get("action")
    decoder = _DECODERS.get(action) if isinstance(action, str) else None
    if decoder is None:
        raise ProtocolError(f"Unknown action: {action!r}", action=action if isinstance(action, str) else None)

    request = decoder(message)
    if accepted is not None and not isinstance(request, get_args(accepted)):
        raise ProtocolError(f"Action {action!r} is not handled by this receiver", action=action)
    return request


def to_message(request: Any) -> dict[str, Any]:
    """Encode a request dataclass into its wire form."""
    message: dict[str, Any] = {"action": request.action}
    for item in fields(request):
        value = getattr(request, item.name)
        if isinstance(value, SearchLogEntry):
            message["searchLog"] = value.to_dict()
        elif value is not None:
            message[_camel(item.name)] = value
    return message


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def ensure_handler_coverage(handlers: Mapping[type, Any], union: Any) -> None:
    """Check that a dispatch table has a handler for every member of ``union``.

    Raises
    ------
    TypeError
        If any request type of the union has no handler

    """
    missing = [cls.__name__ for cls in get_args(union) if cls not in handlers]
    if missing:
        raise TypeError(f"Dispatch table is missing handlers for: {', '.join(missing)}")


def error_response(error: Exception) -> dict[str, Any]:
    """Build the response sent back for a message that could not be handled."""
    return {"status": "error", "error": str(error)}


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SearchResponse:
    """Outcome of a ``search`` request."""

    match_count: int = 0
    current_match: int = 0
    search_limit_reached: bool = False
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form of the response."""
        payload: dict[str, Any] = {
            "matchCount": self.match_count,
            "currentMatch": self.current_match,
            "searchLimitReached": self.search_limit_reached,
        }
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SearchResponse":
        """Decode a response, tolerating missing optional fields."""
        match_count = data.get("matchCount")
        if not isinstance(match_count, int):
            raise ProtocolError("search response is missing matchCount", action="search", parameter_value=data)
        return cls(
            match_count=match_count,
            current_match=int(data.get("currentMatch") or 0),
            search_limit_reached=bool(data.get("searchLimitReached", False)),
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class NavigateResponse:
    match_count: int = 0
    current_match: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form of the response."""
        return {"matchCount": self.match_count, "currentMatch": self.current_match}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NavigateResponse":
        """Decode a navigation response."""
        match_count = data.get("matchCount")
        if not isinstance(match_count, int):
            raise ProtocolError("navigate response is missing matchCount", action="navigate", parameter_value=data)
        return cls(match_count=match_count, current_match=int(data.get("currentMatch") or 0))


@dataclass(frozen=True)
class TermInfo:
    """A committed search term as reported by ``getSearchTerms``."""

    query: str
    theme: str

    def to_dict(self) -> dict[str, Any]:
        return {"query": self.query, "theme": self.theme}


__all__ = [
    "PING_MESSAGE",
    "SearchLogEntry",
    "PingRequest",
    "SearchRequest",
    "NavigateRequest",
    "GetSearchTermsRequest",
    "RemoveSearchTermRequest",
    "ClearRequest",
    "LogSearchRequest",
    "ContentScriptLoadedRequest",
    "GetSearchLogsRequest",
    "EngineRequest",
    "BackgroundRequest",
    "parse_request",
    "to_message",
    "ensure_handler_coverage",
    "error_response",
    "SearchResponse",
    "NavigateResponse",
    "TermInfo",
]
