"""Tests for shared utility functions."""

from datetime import timezone

from helpdesk.utils import compile_phrases, normalize_utterance, utcnow


class TestNormalizeUtterance:
    def test_lowercases(self):
        assert normalize_utterance("VPN Down") == "vpn down"

    def test_strips_punctuation(self):
        assert normalize_utterance("Help!!! Now?") == "help now"

    def test_collapses_whitespace(self):
        assert normalize_utterance("  talk   to\tagent \n") == "talk to agent"

    def test_keeps_apostrophes_and_hyphens(self):
        assert normalize_utterance("I can't log-in") == "i can't log-in"

    def test_empty_string(self):
        assert normalize_utterance("") == ""


class TestCompilePhrases:
    def test_matches_on_word_boundaries(self):
        pattern = compile_phrases(["real person"])
        assert pattern.search("i want a real person please")
        assert not pattern.search("surreal personality")

    def test_phrases_are_normalized(self):
        pattern = compile_phrases(["Talk to AGENT!"])
        assert pattern.search("talk to agent")

    def test_empty_list_matches_nothing(self):
        pattern = compile_phrases([])
        assert not pattern.search("talk to agent")
        assert not pattern.search("")

    def test_blank_phrases_ignored(self):
        pattern = compile_phrases(["  ", "operator"])
        assert pattern.search("operator")
        assert not pattern.search("anything else")


def test_utcnow_is_timezone_aware():
    assert utcnow().tzinfo == timezone.utc
