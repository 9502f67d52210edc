"""Configuration options for the Query Surface and its injection coordinator."""

from __future__ import annotations

from dataclasses import dataclass, field

from multifind.constants import (
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_MAX_INJECTION_ATTEMPTS,
    DEFAULT_SETTLE_DELAY_SECONDS,
    ENGINE_SCRIPT_FILES,
    ENGINE_STYLESHEET_FILES,
)
from multifind.options.base import CloneFrozenMixin


@dataclass(frozen=True)
class InjectionOptions(CloneFrozenMixin):
    """Retry budget and timing for (re-)establishing a Document Engine in a tab."""

    settle_delay_seconds: float = field(
        default=DEFAULT_SETTLE_DELAY_SECONDS,
        metadata={
            "help": "Seconds to wait after injecting before probing the engine again",
            "type": float,
            "importance": "core",
        },
    )
    max_injection_attempts: int = field(
        default=DEFAULT_MAX_INJECTION_ATTEMPTS,
        metadata={
            "help": "Number of inject-then-ping attempts before giving up",
            "type": int,
            "importance": "core",
        },
    )
    script_files: tuple[str, ...] = field(
        default=ENGINE_SCRIPT_FILES,
        metadata={"help": "Engine script files injected into the page", "importance": "advanced"},
    )
    stylesheet_files: tuple[str, ...] = field(
        default=ENGINE_STYLESHEET_FILES,
        metadata={"help": "Stylesheets injected alongside the engine", "importance": "advanced"},
    )

    def __post_init__(self) -> None:
        """Validate retry budget and delay.

        Raises
        ------
        ValueError
            If any field value is outside its valid range.

        """
        if self.settle_delay_seconds < 0:
            raise ValueError(f"settle_delay_seconds must be non-negative, got {self.settle_delay_seconds}")
        if self.max_injection_attempts < 1:
            raise ValueError(f"max_injection_attempts must be positive, got {self.max_injection_attempts}")


@dataclass(frozen=True)
class SurfaceOptions(CloneFrozenMixin):
    """Input handling settings for the Query Surface."""

    debounce_seconds: float = field(
        default=DEFAULT_DEBOUNCE_SECONDS,
        metadata={
            "help": "Quiet period after the last keystroke before a live search is dispatched",
            "type": float,
            "importance": "core",
        },
    )
    history_limit: int = field(
        default=DEFAULT_HISTORY_LIMIT,
        metadata={
            "help": "Number of past searches shown in the history display",
            "type": int,
            "importance": "advanced",
        },
    )

    def __post_init__(self) -> None:
        """Validate debounce window and history size."""
        if self.debounce_seconds < 0:
            raise ValueError(f"debounce_seconds must be non-negative, got {self.debounce_seconds}")
        if self.history_limit < 0:
            raise ValueError(f"history_limit must be non-negative, got {self.history_limit}")
