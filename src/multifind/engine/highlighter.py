#  Copyright (c) 2025 Tom Villani, Ph.D.
"""Text scanning, wrapping and unwrapping over a BeautifulSoup document.

These helpers are the only code that mutates page content. They know nothing
about terms or sessions: callers pass a compiled pattern and a factory for
marker elements, and get the created markers back.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterable

from bs4 import BeautifulSoup, NavigableString, PageElement, Tag
from bs4.element import PreformattedString

from multifind.constants import (
    CURRENT_HIGHLIGHT_CLASS,
    EXCLUDED_CONTAINER_TAGS,
    HIGHLIGHT_CLASS,
    HIGHLIGHT_TAG,
    QUERY_ATTRIBUTE,
    THEME_ATTRIBUTE,
    THEME_CLASS_PREFIX,
)

logger = logging.getLogger(__name__)


class DetachedNodeError(RuntimeError):
    """Raised when a text node selected for wrapping no longer has a parent."""


def compile_literal_pattern(query: str) -> re.Pattern[str]:
    """Compile ``query`` as a case-insensitive literal (all metacharacters escaped)."""
    return re.compile(re.escape(query), re.IGNORECASE)


def search_root(document: BeautifulSoup) -> Tag:
    """Return the element scans start from: ``<body>`` when present, else the whole document."""
    body = document.body
    return body if body is not None else document


def is_highlight(element: PageElement | None) -> bool:
    """Return True if ``element`` is a highlight marker created by this module."""
    return (
        isinstance(element, Tag)
        and element.name == HIGHLIGHT_TAG
        and HIGHLIGHT_CLASS in element.get_attribute_list("class")
    )


def is_searchable_text(node: PageElement, excluded_tags: Iterable[str] = EXCLUDED_CONTAINER_TAGS) -> bool:
    """Return True if ``node`` is rendered text that a scan may wrap.

    Comments, CDATA, doctypes and other preformatted strings are not text.
    Text below an excluded container, or already inside a highlight marker,
    is rejected.
    """
    if not isinstance(node, NavigableString) or isinstance(node, PreformattedString):
        return False
    excluded = excluded_tags if isinstance(excluded_tags, (set, frozenset)) else frozenset(excluded_tags)
    for ancestor in node.parents:
        if ancestor.name in excluded or is_highlight(ancestor):
            return False
    return True


def collect_text_nodes(root: Tag, excluded_tags: Iterable[str] = EXCLUDED_CONTAINER_TAGS) -> list[NavigableString]:
    """Snapshot every searchable text node under ``root`` in document order.

    The snapshot is taken before any mutation so replacing nodes while
    iterating cannot skip or revisit text.
    """
    excluded = frozenset(excluded_tags)
    return [node for node in root.descendants if is_searchable_text(node, excluded)]  # type: ignore[misc]


def wrap_matches(
    text_node: NavigableString,
    pattern: re.Pattern[str],
    make_marker: Callable[[str], Tag],
) -> list[Tag]:
    """Replace ``text_node`` with plain fragments interleaved with marker elements.

    Parameters
    ----------
    text_node : NavigableString
        Text node to split around its matches
    pattern : re.Pattern
        Compiled literal pattern
    make_marker : callable
        Builds an empty-bodied marker element for the matched text

    Returns
    -------
    list[Tag]
        The markers created, in document order. Empty when nothing matched.

    Raises
    ------
    DetachedNodeError
        If the text node has matches but is no longer attached to the tree

    """
    text = str(text_node)
    matches = list(pattern.finditer(text))
    if not matches:
        return []

    if text_node.parent is None:
        raise DetachedNodeError(f"Text node {text[:40]!r} is detached from the document")

    pieces: list[PageElement] = []
    markers: list[Tag] = []
    cursor = 0
    for match in matches:
        if match.start() > cursor:
            pieces.append(NavigableString(text[cursor : match.start()]))
        marker = make_marker(match.group(0))
        pieces.append(marker)
        markers.append(marker)
        cursor = match.end()
    if cursor < len(text):
        pieces.append(NavigableString(text[cursor:]))

    text_node.replace_with(*pieces)
    return markers


def create_marker(document: BeautifulSoup, text: str, *, query: str, theme: str) -> Tag:
    """Build a highlight marker ``<span>`` holding ``text``."""
    marker = document.new_tag(
        HIGHLIGHT_TAG,
        attrs={
            "class": [HIGHLIGHT_CLASS, f"{THEME_CLASS_PREFIX}{theme}"],
            QUERY_ATTRIBUTE: query,
            THEME_ATTRIBUTE: theme,
        },
    )
    marker.string = text
    return marker


def unwrap_marker(marker: Tag) -> bool:
    """Turn a marker back into plain text and coalesce the surrounding text nodes.

    Returns False when the marker was already detached, which makes repeated
    unwrapping a no-op.
    """
    parent = marker.parent
    if parent is None:
        return False
    marker.unwrap()
    parent.smooth()
    return True


def set_current(marker: Tag, current: bool) -> None:
    """Add or remove the current-match class on a marker."""
    classes = [name for name in marker.get_attribute_list("class") if name and name != CURRENT_HIGHLIGHT_CLASS]
    if current:
        classes.append(CURRENT_HIGHLIGHT_CLASS)
    marker["class"] = classes


def rendered_text(document: BeautifulSoup, excluded_tags: Iterable[str] = EXCLUDED_CONTAINER_TAGS) -> str:
    """Concatenate the searchable text of ``document``, ignoring highlight state.

    Text inside markers is included, so the result is the same before and
    after highlighting.
    """
    excluded = frozenset(excluded_tags)
    parts: list[str] = []
    for node in search_root(document).descendants:
        if not isinstance(node, NavigableString) or isinstance(node, PreformattedString):
            continue
        if any(ancestor.name in excluded for ancestor in node.parents):
            continue
        parts.append(str(node))
    return "".join(parts)


__all__ = [
    "DetachedNodeError",
    "compile_literal_pattern",
    "search_root",
    "is_highlight",
    "is_searchable_text",
    "collect_text_nodes",
    "wrap_matches",
    "create_marker",
    "unwrap_marker",
    "set_current",
    "rendered_text",
]
