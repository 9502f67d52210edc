"""Option dataclasses for every multifind component."""

from multifind.options.base import CloneFrozenMixin
from multifind.options.engine import EngineOptions
from multifind.options.logstore import LogStoreOptions
from multifind.options.surface import InjectionOptions, SurfaceOptions

__all__ = [
    "CloneFrozenMixin",
    "EngineOptions",
    "InjectionOptions",
    "LogStoreOptions",
    "SurfaceOptions",
]
