"""multifind - find and track several search terms inside a live page at once.

multifind highlights every case-insensitive occurrence of up to four search
terms in an HTML document. Each committed term gets its own colour theme and
can be navigated and removed on its own, while a transient preview set
follows live typing.

The system is split into three isolated contexts that only exchange
JSON-shaped messages:

- **Document Engine** (:mod:`multifind.engine`): owns the page DOM and does
  all scanning, wrapping and unwrapping of highlight markers
- **Query Surface** (:mod:`multifind.surface`): input handling, debouncing,
  theme cycling and engine injection for one tab
- **Background** (:mod:`multifind.background`): install and command events,
  plus the capped audit log of past searches

:class:`~multifind.runtime.BrowserRuntime` hosts the three contexts on one
asyncio event loop.

Examples
--------
Highlight two terms in a page:

    >>> import asyncio
    >>> from multifind import BackgroundService, BrowserRuntime
    >>> async def run():
    ...     runtime = BrowserRuntime(BackgroundService())
    ...     tab = runtime.open_tab("https://example.com", "<p>the cat sat on the mat</p>")
    ...     surface = await runtime.open_query_surface(tab.tab_id)
    ...     surface.on_input("at")
    ...     return (await surface.commit()).status_text
    >>> asyncio.run(run())
    '1 of 3'

"""

from multifind.background import BackgroundService, MessageSender
from multifind.config import MultiFindConfig, load_config_with_priority
from multifind.constants import MAX_TERMS, is_restricted_url
from multifind.coordinator import InjectionCoordinator, InjectionStatus, TabInfo
from multifind.engine import DocumentEngine, SearchSession, SearchTerm
from multifind.exceptions import (
    InjectionError,
    InjectionExhaustedError,
    MessagingError,
    MultiFindError,
    NoReceiverError,
    ProtocolError,
    RestrictedTargetError,
    StorageError,
    TabNotFoundError,
    ValidationError,
)
from multifind.logstore import JsonFileStorage, MemoryStorage, SearchLogStore
from multifind.options import EngineOptions, InjectionOptions, LogStoreOptions, SurfaceOptions
from multifind.protocol import SearchLogEntry
from multifind.runtime import BrowserRuntime, Tab
from multifind.surface import QuerySurface, SurfaceView

__version__ = "1.0.0"

__all__ = [
    "__version__",
    # Contexts
    "BrowserRuntime",
    "Tab",
    "BackgroundService",
    "MessageSender",
    "DocumentEngine",
    "SearchSession",
    "SearchTerm",
    "QuerySurface",
    "SurfaceView",
    "InjectionCoordinator",
    "InjectionStatus",
    "TabInfo",
    # Log store
    "SearchLogEntry",
    "SearchLogStore",
    "MemoryStorage",
    "JsonFileStorage",
    # Configuration
    "MultiFindConfig",
    "load_config_with_priority",
    "EngineOptions",
    "InjectionOptions",
    "SurfaceOptions",
    "LogStoreOptions",
    "MAX_TERMS",
    "is_restricted_url",
    # Exceptions
    "MultiFindError",
    "ValidationError",
    "ProtocolError",
    "MessagingError",
    "NoReceiverError",
    "TabNotFoundError",
    "InjectionError",
    "RestrictedTargetError",
    "InjectionExhaustedError",
    "StorageError",
]
