"""Document Engine: the in-page search and highlight context."""

from multifind.engine.document_engine import DocumentEngine, MessagePort, NavigationOutcome, SearchOutcome
from multifind.engine.session import Highlight, HighlightArena, PersistentTermGroup, SearchSession, SearchTerm

__all__ = [
    "DocumentEngine",
    "MessagePort",
    "NavigationOutcome",
    "SearchOutcome",
    "Highlight",
    "HighlightArena",
    "PersistentTermGroup",
    "SearchSession",
    "SearchTerm",
]
