"""Configuration options for the background search log store."""

from __future__ import annotations

from dataclasses import dataclass, field

from multifind.constants import DEFAULT_LOG_MAX_ENTRIES, SEARCH_LOGS_KEY
from multifind.options.base import CloneFrozenMixin


@dataclass(frozen=True)
class LogStoreOptions(CloneFrozenMixin):
    """Sizing and location of the audit log of past searches."""

    max_entries: int = field(
        default=DEFAULT_LOG_MAX_ENTRIES,
        metadata={
            "help": "Maximum number of log entries kept; the oldest is evicted first",
            "type": int,
            "importance": "core",
        },
    )
    storage_key: str = field(
        default=SEARCH_LOGS_KEY,
        metadata={"help": "Storage key holding the log list", "importance": "advanced"},
    )
    storage_path: str | None = field(
        default=None,
        metadata={
            "help": "JSON file backing the log store. In-memory storage is used when unset",
            "importance": "core",
        },
    )

    def __post_init__(self) -> None:
        """Validate the cap."""
        if self.max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {self.max_entries}")
