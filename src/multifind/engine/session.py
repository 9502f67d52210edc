"""Per-page search state owned by a Document Engine.

Highlights are stored in an arena and referred to by integer handles; the
session itself only ever holds handles. Nothing here touches the DOM.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

from bs4 import Tag

from multifind.constants import DEFAULT_THEME_PALETTE, MAX_TERMS


@dataclass(frozen=True)
class SearchTerm:
    """A query with the theme it was highlighted in."""

    query: str
    theme: str
    persistent: bool = False

    @property
    def key(self) -> str:
        return term_key(self.query)


def term_key(query: str) -> str:
    """Identity used to detect duplicate terms.

    Plain lowercasing, so two terms are duplicates exactly when they differ
    only by simple case mapping; "SS" is not a duplicate of "ß".
    """
    return query.lower()


@dataclass
class Highlight:
    """One wrapped text fragment. ``theme`` is frozen at creation."""

    handle: int
    term: SearchTerm
    theme: str
    element: Tag


class HighlightArena:
    """Owner of every live Highlight, addressed by opaque integer handles."""

    def __init__(self) -> None:
        self._items: dict[int, Highlight] = {}
        self._next_handle = 1

    def add(self, term: SearchTerm, element: Tag) -> int:
        """Register a marker element and return its handle."""
        handle = self._next_handle
        self._next_handle += 1
        self._items[handle] = Highlight(handle=handle, term=term, theme=term.theme, element=element)
        return handle

    def get(self, handle: int) -> Highlight:
        return self._items[handle]

    def release(self, handle: int) -> Highlight | None:
        """Forget a handle, returning its highlight if it was live."""
        return self._items.pop(handle, None)

    def __contains__(self, handle: object) -> bool:
        return handle in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Highlight]:
        return iter(list(self._items.values()))


@dataclass
class PersistentTermGroup:
    """A committed term and the handles of its highlights in discovery order."""

    term: SearchTerm
    handles: list[int] = field(default_factory=list)


@dataclass
class SearchSession:
    """Mutable search state for one page load.

    Attributes
    ----------
    persistent_terms : dict[str, PersistentTermGroup]
        Committed terms keyed by :func:`term_key`, in commit order
    transient_highlights : list[int]
        Handles of the live-typing preview set
    navigation_cursor : int
        Index into the active set, ``-1`` when the active set is empty
    theme_cursor : int
        Position in ``palette`` of the theme the next commit receives
    active_key : str or None
        Key of the persistent group navigation operates on; ``None`` selects
        the transient set

    """

    max_terms: int = MAX_TERMS
    palette: tuple[str, ...] = DEFAULT_THEME_PALETTE
    persistent_terms: dict[str, PersistentTermGroup] = field(default_factory=dict)
    transient_highlights: list[int] = field(default_factory=list)
    navigation_cursor: int = -1
    theme_cursor: int = 0
    active_key: str | None = None

    @property
    def current_theme(self) -> str:
        return self.palette[self.theme_cursor % len(self.palette)]

    def advance_theme(self) -> None:
        self.theme_cursor = (self.theme_cursor + 1) % len(self.palette)

    @property
    def is_full(self) -> bool:
        return len(self.persistent_terms) >= self.max_terms

    def has_term(self, query: str) -> bool:
        return term_key(query) in self.persistent_terms

    def terms(self) -> list[SearchTerm]:
        """Committed terms in commit order."""
        return [group.term for group in self.persistent_terms.values()]

    def key_at(self, index: int) -> str | None:
        """Return the key of the term at commit position ``index``, or None when out of range."""
        if index < 0 or index >= len(self.persistent_terms):
            return None
        return list(self.persistent_terms)[index]

    def active_handles(self) -> list[int]:
        """Handles of the set navigation currently operates on."""
        if self.active_key is not None:
            group = self.persistent_terms.get(self.active_key)
            return group.handles if group is not None else []
        return self.transient_highlights

    def activate(self, key: str | None) -> None:
        """Make a persistent group (or the transient set for ``None``) active and reset the cursor."""
        self.active_key = key
        self.navigation_cursor = 0 if self.active_handles() else -1
