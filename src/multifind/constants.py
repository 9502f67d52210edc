#  Copyright (c) 2025 Tom Villani, Ph.D.
"""Constants and default values for the multifind library.

Constants are organized by category:
1. Type Definitions - Literal types shared across contexts
2. Document Engine - highlight markup, term cap and theme palette
3. Injection and Query Surface - timing and retry budgets
4. Log Store - audit log sizing and storage keys
5. Restricted Targets - URL schemes that never receive injection
"""

from __future__ import annotations

from typing import Literal

# =============================================================================
# Type Definitions
# =============================================================================

NavigateDirection = Literal["next", "prev"]
ClearScope = Literal["transient", "all"]

# =============================================================================
# Document Engine
# =============================================================================

# Maximum number of committed (persistent) search terms per page
MAX_TERMS = 4

HIGHLIGHT_TAG = "span"
HIGHLIGHT_CLASS = "multifind-highlight"
CURRENT_HIGHLIGHT_CLASS = "multifind-highlight-current"
THEME_CLASS_PREFIX = "multifind-theme-"
QUERY_ATTRIBUTE = "data-multifind-query"
THEME_ATTRIBUTE = "data-multifind-theme"

DEFAULT_THEME = "default"
DEFAULT_THEME_PALETTE: tuple[str, ...] = ("default", "ocean", "forest", "sunset")

# Text under these elements is never scanned (non-rendered containers and form-input internals)
EXCLUDED_CONTAINER_TAGS: frozenset[str] = frozenset(
    {"script", "style", "noscript", "template", "textarea", "input", "select"}
)

# =============================================================================
# Injection and Query Surface
# =============================================================================

DEFAULT_SETTLE_DELAY_SECONDS = 0.1
DEFAULT_MAX_INJECTION_ATTEMPTS = 3
DEFAULT_DEBOUNCE_SECONDS = 0.3
DEFAULT_HISTORY_LIMIT = 20

ENGINE_SCRIPT_FILES: tuple[str, ...] = ("content.js",)
ENGINE_STYLESHEET_FILES: tuple[str, ...] = ("content.css",)

DEFAULT_PLACEHOLDER = "Search this page"
RESTRICTED_PLACEHOLDER = "Cannot search in browser system pages"
NO_MATCHES_TEXT = "No matches"

COMMAND_ACTIVATE_SEARCH = "activate-search"
COMMAND_TOGGLE_SEARCH = "toggle-search"

# =============================================================================
# Log Store
# =============================================================================

SEARCH_LOGS_KEY = "searchLogs"
DEFAULT_LOG_MAX_ENTRIES = 1000

# =============================================================================
# Restricted Targets
# =============================================================================

RESTRICTED_URL_PREFIXES: tuple[str, ...] = (
    "chrome://",
    "chrome-extension://",
    "chrome-search://",
    "chrome-devtools://",
    "about:",
    "edge://",
    "https://chrome.google.com/webstore",
)


def is_restricted_url(url: str | None) -> bool:
    """Return True when pages at ``url`` must never receive injection or messages.

    >>> is_restricted_url("chrome://settings")
    True
    >>> is_restricted_url("https://example.com/")
    False

    """
    if not url:
        return False
    lowered = url.strip().lower()
    return any(lowered.startswith(prefix) for prefix in RESTRICTED_URL_PREFIXES)
