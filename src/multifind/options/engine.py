"""Configuration options for the Document Engine."""

from __future__ import annotations

from dataclasses import dataclass, field

from multifind.constants import (
    DEFAULT_THEME,
    DEFAULT_THEME_PALETTE,
    EXCLUDED_CONTAINER_TAGS,
    MAX_TERMS,
)
from multifind.options.base import CloneFrozenMixin


@dataclass(frozen=True)
class EngineOptions(CloneFrozenMixin):
    """Highlight engine settings applied when a Document Engine boots in a page.

    Parameters
    ----------
    max_terms : int, default 4
        Maximum number of committed search terms held at once
    theme_palette : tuple[str, ...]
        Ordered colour themes cycled round-robin on persistent commits
    excluded_tags : frozenset[str]
        Elements whose text is never scanned
    log_transient_searches : bool, default False
        Also append live-typing searches to the audit log

    """

    max_terms: int = field(
        default=MAX_TERMS,
        metadata={
            "help": "Maximum number of persistent search terms per page",
            "type": int,
            "importance": "core",
        },
    )
    theme_palette: tuple[str, ...] = field(
        default=DEFAULT_THEME_PALETTE,
        metadata={
            "help": "Ordered theme identifiers cycled on each committed term",
            "importance": "core",
        },
    )
    excluded_tags: frozenset[str] = field(
        default=EXCLUDED_CONTAINER_TAGS,
        metadata={
            "help": "Element names whose text content is never searched",
            "importance": "advanced",
        },
    )
    log_transient_searches: bool = field(
        default=False,
        metadata={
            "help": "Append live-typing (transient) searches to the audit log as well as committed ones",
            "importance": "advanced",
        },
    )

    def __post_init__(self) -> None:
        """Validate term cap and palette.

        Raises
        ------
        ValueError
            If any field value is outside its valid range.

        """
        if self.max_terms < 1:
            raise ValueError(f"max_terms must be positive, got {self.max_terms}")
        if len(self.theme_palette) < 2:
            raise ValueError(f"theme_palette needs at least 2 themes, got {len(self.theme_palette)}")
        if DEFAULT_THEME not in self.theme_palette:
            raise ValueError(f"theme_palette must include the {DEFAULT_THEME!r} theme")
        if len(set(self.theme_palette)) != len(self.theme_palette):
            raise ValueError("theme_palette entries must be unique")
