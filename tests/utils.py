"""Test utilities for the multifind test suite.

Helpers for building pages, inspecting highlight markers and standing in for
the message port and tab transport in isolation tests.
"""

from __future__ import annotations

from typing import Any, Sequence

from bs4 import BeautifulSoup

from multifind.constants import CURRENT_HIGHLIGHT_CLASS, HIGHLIGHT_CLASS, THEME_ATTRIBUTE
from multifind.exceptions import NoReceiverError

CAT_PAGE = "<html><head><title>Cats</title></head><body><p>the cat sat on the mat</p></body></html>"


def make_page(*paragraphs: str, title: str = "Test page", extra: str = "") -> str:
    """Build an HTML document with one ``<p>`` per paragraph."""
    body = "".join(f"<p>{text}</p>" for text in paragraphs)
    return f"<html><head><title>{title}</title></head><body>{body}{extra}</body></html>"


def parse(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def markers(document: BeautifulSoup) -> list[Any]:
    """All highlight markers in document order."""
    return document.find_all("span", class_=HIGHLIGHT_CLASS)


def marker_texts(document: BeautifulSoup) -> list[str]:
    return [marker.get_text() for marker in markers(document)]


def marker_themes(document: BeautifulSoup) -> list[str]:
    return [marker[THEME_ATTRIBUTE] for marker in markers(document)]


def current_markers(document: BeautifulSoup) -> list[Any]:
    return document.find_all("span", class_=CURRENT_HIGHLIGHT_CLASS)


class RecordingPort:
    """Message port that records everything the engine posts."""

    def __init__(self, fail: bool = False) -> None:
        self.messages: list[dict[str, Any]] = []
        self.fail = fail

    def post_message(self, message: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("port closed")
        self.messages.append(message)

    def actions(self) -> list[str]:
        return [message["action"] for message in self.messages]

    def logged(self) -> list[dict[str, Any]]:
        return [message["searchLog"] for message in self.messages if message["action"] == "logSearch"]


class FakeTransport:
    """Tab transport whose engine comes alive after a configurable number of injections.

    Parameters
    ----------
    alive_after : int or None
        Number of injections after which pings succeed; None never comes alive
    responses : dict, optional
        Canned responses keyed by action for non-ping messages

    """

    def __init__(self, alive_after: int | None = 1, responses: dict[str, dict[str, Any]] | None = None) -> None:
        self.alive_after = alive_after
        self.responses = responses or {}
        self.injections = 0
        self.sent: list[tuple[int, dict[str, Any]]] = []
        self.css: list[Sequence[str]] = []
        self.runtime_messages: list[dict[str, Any]] = []
        self.drop_next_message = False

    @property
    def alive(self) -> bool:
        return self.alive_after is not None and self.injections >= self.alive_after

    def kill(self) -> None:
        """Simulate a page reload: the engine disappears until injected again."""
        self.alive_after = self.injections + 1

    async def send_message(self, tab_id: int, message: dict[str, Any]) -> dict[str, Any]:
        self.sent.append((tab_id, message))
        if not self.alive:
            raise NoReceiverError(tab_id)
        if message["action"] == "ping":
            return {"status": "ok"}
        if self.drop_next_message:
            self.drop_next_message = False
            self.kill()
            raise NoReceiverError(tab_id)
        return dict(self.responses.get(message["action"], {"status": "ok"}))

    async def insert_css(self, tab_id: int, files: Sequence[str]) -> None:
        self.css.append(files)

    async def execute_script(self, tab_id: int, files: Sequence[str]) -> None:
        self.injections += 1

    async def send_runtime_message(self, message: dict[str, Any]) -> dict[str, Any]:
        self.runtime_messages.append(message)
        return dict(self.responses.get(message["action"], {"logs": []}))

    def actions(self) -> list[str]:
        return [message["action"] for _tab_id, message in self.sent]
