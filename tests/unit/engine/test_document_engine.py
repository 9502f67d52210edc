"""Unit tests for the Document Engine."""

import re

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from utils import CAT_PAGE, RecordingPort, current_markers, make_page, marker_texts, marker_themes, parse

from multifind.constants import DEFAULT_THEME_PALETTE
from multifind.engine import DocumentEngine
from multifind.engine.highlighter import rendered_text

WORDS_PAGE = make_page("alpha beta gamma delta epsilon zeta")


class TestTransientSearch:
    """Tests for live-typing searches."""

    def test_cat_sat_mat(self, make_engine):
        """Test the three-match scenario and navigation wrap-around."""
        engine = make_engine()
        outcome = engine.search("at")
        assert (outcome.match_count, outcome.current_match) == (3, 1)

        positions = [engine.navigate("next").current_match for _ in range(3)]
        assert positions == [2, 3, 1]

    def test_navigate_prev_wraps(self, make_engine):
        """Test that stepping back from the first match lands on the last."""
        engine = make_engine()
        engine.search("at")
        assert engine.navigate("prev").current_match == 3
        assert engine.navigate("prev").current_match == 2

    def test_exactly_one_current_marker(self, make_engine):
        """Test that the current-match class moves rather than accumulates."""
        engine = make_engine()
        engine.search("at")
        engine.navigate("next")
        engine.navigate("next")
        current = current_markers(engine.document)
        assert len(current) == 1
        assert current[0] is engine.transient_elements()[2]

    def test_new_search_replaces_transient_set(self, make_engine):
        """Test that each transient search clears the previous preview."""
        engine = make_engine()
        engine.search("at")
        engine.search("the")
        assert marker_texts(engine.document) == ["the", "the"]

    def test_empty_query_clears(self, make_engine):
        """Test that an empty query removes the preview and reports nothing."""
        engine = make_engine()
        engine.search("at")
        outcome = engine.search("")
        assert (outcome.match_count, outcome.current_match) == (0, 0)
        assert engine.highlight_count == 0
        assert str(engine.document) == str(parse(CAT_PAGE))

    def test_no_matches(self, make_engine):
        """Test that a miss returns zero and navigation stays empty."""
        engine = make_engine()
        assert engine.search("dog").match_count == 0
        nav = engine.navigate("next")
        assert (nav.match_count, nav.current_match) == (0, 0)
        assert engine.session.navigation_cursor == -1

    def test_transient_search_does_not_advance_theme(self, make_engine):
        """Test that only commits move the theme cursor."""
        engine = make_engine()
        engine.search("at")
        engine.search("cat")
        assert engine.session.theme_cursor == 0

    def test_excluded_content_not_counted(self, make_engine):
        """Test that script, style and form text never match."""
        html = make_page(
            "at home",
            extra="<script>var at;</script><style>.at{}</style><textarea>at</textarea><!-- at -->",
        )
        engine = make_engine(html)
        assert engine.search("at").match_count == 1


class TestPersistentTerms:
    """Tests for committed terms, themes and the term cap."""

    def test_four_commits_then_limit(self, make_engine):
        """Test that the fifth distinct commit is rejected without touching the page."""
        engine = make_engine(WORDS_PAGE)
        for word in ("alpha", "beta", "gamma", "delta"):
            outcome = engine.search(word, persist=True)
            assert outcome.match_count == 1
            assert not outcome.search_limit_reached

        before = str(engine.document)
        outcome = engine.search("epsilon", persist=True)
        assert outcome.search_limit_reached is True
        assert outcome.reason == "limit"
        assert outcome.match_count == 0
        assert str(engine.document) == before
        assert [term.query for term in engine.search_terms()] == ["alpha", "beta", "gamma", "delta"]

    def test_themes_cycle_in_commit_order(self, make_engine):
        """Test that term N gets palette[(N-1) mod K]."""
        engine = make_engine(WORDS_PAGE, max_terms=6)
        words = ["alpha", "beta", "gamma", "delta", "epsilon", "zeta"]
        for word in words:
            engine.search(word, persist=True)
        expected = [DEFAULT_THEME_PALETTE[i % len(DEFAULT_THEME_PALETTE)] for i in range(len(words))]
        assert [term.theme for term in engine.search_terms()] == expected
        assert marker_themes(engine.document) == expected

    def test_explicit_theme_is_used(self, make_engine):
        """Test that a theme in the request overrides the session cursor."""
        engine = make_engine()
        engine.search("cat", persist=True, theme="sunset")
        assert marker_themes(engine.document) == ["sunset"]

    def test_duplicate_commit_rejected_case_insensitively(self, make_engine):
        """Test that recommitting a term in another case is refused."""
        engine = make_engine()
        engine.search("cat", persist=True)
        outcome = engine.search("CAT", persist=True)
        assert outcome.search_limit_reached is True
        assert outcome.reason == "duplicate"
        assert len(engine.search_terms()) == 1
        assert engine.session.theme_cursor == 1

    def test_zero_match_commit_not_registered(self, make_engine, port):
        """Test that a commit with no matches takes no slot and no theme."""
        engine = make_engine()
        outcome = engine.search("dog", persist=True)
        assert outcome.match_count == 0
        assert engine.search_terms() == []
        assert engine.session.theme_cursor == 0
        assert port.logged()[-1]["matchCount"] == 0

    def test_committed_text_is_not_rematched(self, make_engine):
        """Test that text already inside a marker is not wrapped again."""
        engine = make_engine()
        engine.search("cat", persist=True)
        assert engine.search("at").match_count == 2
        assert len(engine.document.find_all("span", recursive=True)) == 3
        for span in engine.document.find_all("span"):
            assert span.find("span") is None

    def test_commit_then_navigate_active_term(self, make_engine):
        """Test that navigation follows the most recently committed term."""
        engine = make_engine()
        engine.search("the", persist=True)
        assert engine.navigate("next").current_match == 2
        assert engine.navigate("next").current_match == 1

    def test_new_search_releases_previous_current_marker(self, make_engine):
        """Test that switching the active set leaves a single current marker."""
        engine = make_engine()
        engine.search("the", persist=True)
        engine.search("mat")
        current = current_markers(engine.document)
        assert [marker.get_text() for marker in current] == ["mat"]

    def test_empty_query_releases_current_marker(self, make_engine):
        """Test that clearing the input leaves no stale current marker on a committed term."""
        engine = make_engine()
        engine.search("cat", persist=True)
        engine.search("")
        assert current_markers(engine.document) == []

        engine.search("at")
        assert [marker.get_text() for marker in current_markers(engine.document)] == ["at"]

    def test_duplicate_check_uses_simple_lowercase(self):
        """Test that terms equal only under full case folding are both committed."""
        engine = DocumentEngine(parse(make_page("Straße STRASSE")))
        assert engine.search("straße", persist=True).match_count == 1
        outcome = engine.search("STRASSE", persist=True)
        assert outcome.search_limit_reached is False
        assert outcome.match_count == 1
        assert [term.query for term in engine.search_terms()] == ["straße", "STRASSE"]


class TestRemovalAndClear:
    """Tests for removing terms and clearing highlights."""

    def test_remove_term_keeps_others(self, make_engine):
        """Test that removing one term unwraps exactly its highlights."""
        engine = make_engine()
        engine.search("the", persist=True)
        engine.search("cat", persist=True)
        engine.search("mat", persist=True)

        assert engine.remove_search_term(1) is True
        assert [term.query for term in engine.search_terms()] == ["the", "mat"]
        assert sorted(marker_texts(engine.document)) == ["mat", "the", "the"]
        assert engine.highlights_for("cat") == []

    def test_remove_frees_a_slot(self, make_engine):
        """Test that a full session accepts a new term after a removal."""
        engine = make_engine(WORDS_PAGE)
        for word in ("alpha", "beta", "gamma", "delta"):
            engine.search(word, persist=True)
        engine.remove_search_term(0)
        outcome = engine.search("epsilon", persist=True)
        assert not outcome.search_limit_reached
        assert outcome.match_count == 1

    def test_remove_out_of_range(self, make_engine):
        """Test that a bad index is reported and changes nothing."""
        engine = make_engine()
        engine.search("cat", persist=True)
        assert engine.remove_search_term(5) is False
        assert engine.remove_search_term(-1) is False
        assert len(engine.search_terms()) == 1

    def test_remove_active_term_activates_transient_set(self, make_engine):
        """Test that navigation falls back to the preview set."""
        engine = make_engine()
        engine.search("cat", persist=True)
        engine.remove_search_term(0)
        assert engine.session.active_key is None
        assert engine.navigate("next").match_count == 0

    def test_clear_all_restores_document(self, make_engine):
        """Test that clearing everything gives back the original page."""
        engine = make_engine()
        engine.search("the", persist=True)
        engine.search("at")
        engine.clear("all")
        assert engine.highlight_count == 0
        assert engine.search_terms() == []
        assert str(engine.document) == str(parse(CAT_PAGE))

    def test_clear_then_repeat_search_is_idempotent(self, make_engine):
        """Test that two identical searches after clear(all) agree."""
        engine = make_engine()
        engine.search("cat", persist=True)
        engine.clear("all")
        first = engine.search("at").match_count
        second = engine.search("at").match_count
        assert first == second == 3

    def test_clear_transient_keeps_terms(self, make_engine):
        """Test that the default scope only removes the preview."""
        engine = make_engine()
        engine.search("cat", persist=True)
        engine.search("the")
        engine.clear()
        assert marker_texts(engine.document) == ["cat"]


class TestMessaging:
    """Tests for wire-level handling and audit logging."""

    def test_ping(self, make_engine):
        engine = make_engine()
        assert engine.handle_message({"action": "ping"}) == {"status": "ok"}

    def test_search_message_round_trip(self, make_engine):
        """Test the camelCase wire response of a search."""
        engine = make_engine()
        response = engine.handle_message({"action": "search", "query": "at", "persist": True, "theme": "ocean"})
        assert response == {"matchCount": 3, "currentMatch": 1, "searchLimitReached": False}
        assert engine.handle_message({"action": "getSearchTerms"}) == {
            "terms": [{"query": "at", "theme": "ocean"}],
            "nextTheme": "ocean",
        }
        assert engine.handle_message({"action": "navigate", "direction": "prev"}) == {
            "matchCount": 3,
            "currentMatch": 3,
        }
        assert engine.handle_message({"action": "removeSearchTerm", "index": 0}) == {"status": "removed"}
        assert engine.handle_message({"action": "removeSearchTerm", "index": 0}) == {"status": "not_found"}
        assert engine.handle_message({"action": "clear", "scope": "all"}) == {"status": "cleared"}

    @pytest.mark.parametrize(
        "message",
        [
            {"action": "bogus"},
            {"query": "at"},
            {"action": "search", "query": 5},
            {"action": "navigate", "direction": "sideways"},
            {"action": "removeSearchTerm", "index": "0"},
            {"action": "logSearch", "searchLog": {"query": "x", "matchCount": 1}},
        ],
    )
    def test_malformed_messages_get_error_response(self, make_engine, message):
        """Test that bad messages are answered, not raised."""
        response = make_engine().handle_message(message)
        assert response["status"] == "error"
        assert response["error"]

    def test_handler_failure_gets_error_response(self, make_engine, monkeypatch, caplog):
        """Test that an exception inside a handler is logged and answered."""
        engine = make_engine()

        def _broken_search(*_args, **_kwargs):
            raise RuntimeError("DOM went away")

        monkeypatch.setattr(engine, "search", _broken_search)
        with caplog.at_level("ERROR", logger="multifind.engine.document_engine"):
            response = engine.handle_message({"action": "search", "query": "at"})
        assert response == {"status": "error", "error": "DOM went away"}
        assert "Error handling search message" in caplog.text

        # The engine keeps answering afterwards
        assert engine.handle_message({"action": "ping"}) == {"status": "ok"}

    def test_commit_is_logged(self, make_engine, port):
        """Test that a commit posts one audit entry with page metadata."""
        engine = make_engine()
        engine.search("at")
        engine.search("cat", persist=True)
        logged = port.logged()
        assert len(logged) == 1
        assert logged[0]["query"] == "cat"
        assert logged[0]["matchCount"] == 1
        assert logged[0]["url"] == "https://example.com/"
        assert logged[0]["title"] == "Cats"
        assert logged[0]["timestamp"]

    def test_transient_logging_opt_in(self, make_engine, port):
        engine = make_engine(log_transient_searches=True)
        engine.search("at")
        assert [entry["query"] for entry in port.logged()] == ["at"]

    def test_announce(self, make_engine, port):
        make_engine().announce()
        assert port.actions() == ["contentScriptLoaded"]

    def test_port_failure_does_not_break_search(self):
        """Test that a broken log channel is tolerated."""
        engine = DocumentEngine(parse(CAT_PAGE), port=RecordingPort(fail=True))
        assert engine.search("cat", persist=True).match_count == 1

    def test_scroll_callback_receives_current_marker(self):
        scrolled = []
        engine = DocumentEngine(parse(CAT_PAGE), on_scroll=scrolled.append)
        engine.search("at")
        engine.navigate("next")
        assert [marker.get_text() for marker in scrolled] == ["at", "at"]
        assert scrolled[-1] is engine.transient_elements()[1]


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(
    text=st.text(alphabet="abAB ", max_size=40),
    query=st.text(alphabet="abAB", min_size=1, max_size=3),
)
def test_match_count_equals_occurrences(text, query):
    """matchCount equals the case-insensitive occurrence count in the rendered text."""
    document = parse(make_page(text))
    # The parser may collapse whitespace, so count against what it kept
    before = rendered_text(document)
    engine = DocumentEngine(document)
    expected = len(re.findall(re.escape(query), before, re.IGNORECASE))
    outcome = engine.search(query)
    assert outcome.match_count == expected
    assert outcome.current_match == (1 if expected else 0)
    assert rendered_text(engine.document) == before
