"""Unit tests for the in-process host browser."""

import asyncio

import pytest
from utils import CAT_PAGE, make_page, marker_texts

from multifind.background import BackgroundService
from multifind.exceptions import (
    InjectionError,
    MessagingError,
    NoReceiverError,
    RestrictedTargetError,
    TabNotFoundError,
)
from multifind.options import InjectionOptions
from multifind.runtime import BrowserRuntime


class TestTabs:
    """Tests for tab bookkeeping."""

    def test_title_from_document(self):
        runtime = BrowserRuntime()
        assert runtime.open_tab("https://example.com/", CAT_PAGE).title == "Cats"
        assert runtime.open_tab("https://example.com/blank", "<p>x</p>").title == "https://example.com/blank"

    def test_active_tab_follows_open_and_close(self):
        runtime = BrowserRuntime()
        first = runtime.open_tab("https://a.example/")
        second = runtime.open_tab("https://b.example/")
        assert runtime.active_tab is second
        runtime.close_tab(second.tab_id)
        assert runtime.active_tab is first
        runtime.close_tab(first.tab_id)
        assert runtime.active_tab is None

    def test_background_tab_not_activated(self):
        runtime = BrowserRuntime()
        first = runtime.open_tab("https://a.example/")
        runtime.open_tab("https://b.example/", activate=False)
        assert runtime.active_tab is first

    def test_unknown_tab(self):
        with pytest.raises(TabNotFoundError):
            BrowserRuntime().get_tab(99)


class TestMessaging:
    @pytest.mark.asyncio
    async def test_no_receiver_before_injection(self):
        runtime = BrowserRuntime()
        tab = runtime.open_tab("https://example.com/", CAT_PAGE)
        with pytest.raises(NoReceiverError):
            await runtime.send_message(tab.tab_id, {"action": "ping"})

    @pytest.mark.asyncio
    async def test_message_to_missing_tab(self):
        with pytest.raises(TabNotFoundError):
            await BrowserRuntime().send_message(5, {"action": "ping"})

    @pytest.mark.asyncio
    async def test_messages_are_copied(self):
        """Test that a message that cannot cross a context boundary is refused."""
        runtime = BrowserRuntime()
        tab = runtime.open_tab("https://example.com/", CAT_PAGE)
        await runtime.execute_script(tab.tab_id)
        with pytest.raises(MessagingError):
            await runtime.send_message(tab.tab_id, {"action": "search", "query": object()})

    @pytest.mark.asyncio
    async def test_runtime_message_without_background(self):
        with pytest.raises(MessagingError):
            await BrowserRuntime().send_runtime_message({"action": "getSearchLogs"})

    @pytest.mark.asyncio
    async def test_engine_logs_reach_background(self):
        """Test that a committed search is written to the background's log with page details."""
        service = BackgroundService()
        runtime = BrowserRuntime(service)
        tab = runtime.open_tab("https://example.com/cats", CAT_PAGE)
        await runtime.execute_script(tab.tab_id)
        await runtime.send_message(tab.tab_id, {"action": "search", "query": "cat", "persist": True})
        await asyncio.sleep(0)

        (entry,) = service.log_store.entries()
        assert (entry.query, entry.match_count) == ("cat", 1)
        assert (entry.url, entry.title) == ("https://example.com/cats", "Cats")


class TestInjection:
    """Tests for script and stylesheet injection."""

    @pytest.mark.asyncio
    async def test_restricted_targets_refused(self):
        runtime = BrowserRuntime()
        tab = runtime.open_tab("chrome://extensions")
        with pytest.raises(RestrictedTargetError):
            await runtime.insert_css(tab.tab_id)
        with pytest.raises(RestrictedTargetError):
            await runtime.execute_script(tab.tab_id)
        assert tab.engine is None

    @pytest.mark.asyncio
    async def test_unknown_script(self):
        runtime = BrowserRuntime()
        tab = runtime.open_tab("https://example.com/", CAT_PAGE)
        with pytest.raises(InjectionError):
            await runtime.execute_script(tab.tab_id, ["other.js"])

    @pytest.mark.asyncio
    async def test_injection_is_idempotent(self):
        """Test that a second injection keeps the running engine and its highlights."""
        runtime = BrowserRuntime()
        tab = runtime.open_tab("https://example.com/", CAT_PAGE)
        await runtime.insert_css(tab.tab_id)
        await runtime.insert_css(tab.tab_id)
        await runtime.execute_script(tab.tab_id)
        engine = tab.engine
        await runtime.send_message(tab.tab_id, {"action": "search", "query": "cat", "persist": True})

        await runtime.execute_script(tab.tab_id)
        assert tab.engine is engine
        assert tab.stylesheets == ["content.css"]
        assert marker_texts(tab.document) == ["cat"]

    @pytest.mark.asyncio
    async def test_boot_delay(self):
        """Test that the engine only answers once the boot delay has passed."""
        runtime = BrowserRuntime(boot_delay=0.02)
        tab = runtime.open_tab("https://example.com/", CAT_PAGE)
        await runtime.execute_script(tab.tab_id)
        assert tab.boot_pending and tab.engine is None
        await runtime.execute_script(tab.tab_id)

        await asyncio.sleep(0.05)
        assert tab.engine is not None
        assert await runtime.send_message(tab.tab_id, {"action": "ping"}) == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_navigation_during_boot_discards_engine(self):
        runtime = BrowserRuntime(boot_delay=0.02)
        tab = runtime.open_tab("https://example.com/", CAT_PAGE)
        await runtime.execute_script(tab.tab_id)
        runtime.navigate(tab.tab_id, "https://example.com/next", make_page("next"))
        await asyncio.sleep(0.05)
        assert tab.engine is None

    @pytest.mark.asyncio
    async def test_navigate_drops_engine_and_highlights(self):
        runtime = BrowserRuntime()
        tab = runtime.open_tab("https://example.com/", CAT_PAGE)
        await runtime.execute_script(tab.tab_id)
        await runtime.send_message(tab.tab_id, {"action": "search", "query": "at"})
        runtime.navigate(tab.tab_id, "https://example.com/", CAT_PAGE)
        assert tab.engine is None
        assert marker_texts(tab.document) == []
        with pytest.raises(NoReceiverError):
            await runtime.send_message(tab.tab_id, {"action": "ping"})


class TestQuerySurface:
    @pytest.mark.asyncio
    async def test_no_active_tab(self):
        with pytest.raises(TabNotFoundError):
            await BrowserRuntime().open_query_surface()

    @pytest.mark.asyncio
    async def test_reopening_replaces_surface(self):
        runtime = BrowserRuntime(injection_options=InjectionOptions(settle_delay_seconds=0.0))
        tab = runtime.open_tab("https://example.com/", CAT_PAGE)
        first = await runtime.open_query_surface()
        second = await runtime.open_query_surface()
        assert first.closed is True
        assert runtime.surfaces[tab.tab_id] is second

    @pytest.mark.asyncio
    async def test_scroll_follows_current_match(self):
        runtime = BrowserRuntime(injection_options=InjectionOptions(settle_delay_seconds=0.0))
        tab = runtime.open_tab("https://example.com/", CAT_PAGE)
        surface = await runtime.open_query_surface()
        surface.on_input("at")
        await surface.settle()
        await surface.navigate("next")
        assert tab.scrolled_to is not None
        assert tab.scrolled_to.get_text() == "at"
        assert tab.scrolled_to.find_parent("p") is not None
