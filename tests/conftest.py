"""Pytest configuration and shared fixtures for the multifind test suite.

This module provides shared fixtures, test configuration, and utilities
that are used across the entire test suite.
"""

import logging
import os
from pathlib import Path

import pytest
from hypothesis import Phase, Verbosity, settings
from utils import CAT_PAGE, RecordingPort, parse

from multifind.engine import DocumentEngine
from multifind.logstore import MemoryStorage, SearchLogStore
from multifind.options import EngineOptions, InjectionOptions, LogStoreOptions, SurfaceOptions

# Register custom Hypothesis profiles
settings.register_profile("ci", max_examples=100, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=20)
settings.register_profile(
    "debug", max_examples=10, verbosity=Verbosity.verbose, phases=[Phase.explicit, Phase.reuse, Phase.generate]
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests - fast, isolated component tests")
    config.addinivalue_line("markers", "integration: Integration tests - component interaction tests")
    config.addinivalue_line("markers", "slow: Slow tests that may take several seconds")
    config.addinivalue_line("markers", "cli: Tests related to command-line interface")


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    """Keep MULTIFIND_* variables and stray config files out of every test."""
    for name in list(os.environ):
        if name.startswith("MULTIFIND_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """Undo handler and level changes made by CLI runs."""
    package_logger = logging.getLogger("multifind")
    handlers = list(package_logger.handlers)
    level = package_logger.level
    yield
    for handler in package_logger.handlers:
        if handler not in handlers:
            handler.close()
    package_logger.handlers[:] = handlers
    package_logger.setLevel(level)


@pytest.fixture
def port() -> RecordingPort:
    return RecordingPort()


@pytest.fixture
def make_engine(port):
    """Factory building a Document Engine over an HTML string."""

    def _make(html: str = CAT_PAGE, **option_overrides) -> DocumentEngine:
        options = EngineOptions().create_updated(**option_overrides) if option_overrides else EngineOptions()
        return DocumentEngine(
            parse(html), options=options, port=port, page_url="https://example.com/", page_title="Cats"
        )

    return _make


@pytest.fixture
def fast_injection() -> InjectionOptions:
    """Injection options with no settle delay, so tests never sleep."""
    return InjectionOptions(settle_delay_seconds=0.0)


@pytest.fixture
def fast_surface() -> SurfaceOptions:
    return SurfaceOptions(debounce_seconds=0.01)


@pytest.fixture
def log_store() -> SearchLogStore:
    return SearchLogStore(MemoryStorage(), LogStoreOptions())


@pytest.fixture
def page_file(tmp_path) -> Path:
    path = tmp_path / "page.html"
    path.write_text(CAT_PAGE, encoding="utf-8")
    return path
