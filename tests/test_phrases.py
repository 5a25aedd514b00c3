"""
Tests for reason phrase extraction.

These tests pin down the exact output of the rule-based extractor, including
its permissive substring matching, since ranked phrase tables depend on it.
"""

from internet_mood.phrases import COMMON_PHRASES, STOPWORDS, extract_phrases, normalize_text


class TestNormalizeText:
    """Test suite for text normalization."""

    def test_lowercases_and_strips_punctuation(self):
        assert normalize_text("  Great NEWS!!! :) ") == "great news"

    def test_non_ascii_letters_become_spaces(self):
        assert normalize_text("più caffè") == "pi caff"

    def test_empty(self):
        assert normalize_text("") == ""


class TestExtractPhrases:
    """Test suite for extract_phrases."""

    def test_known_phrase_with_trailing_word(self):
        """The known phrase is found and the trailing word is still represented."""
        phrases = extract_phrases("good weather today")

        assert "good weather" in phrases
        assert any("today" in phrase for phrase in phrases)
        assert phrases == ["good weather", "weather today"]

    def test_bigrams_and_residual_words(self):
        """Long-word pairs become bigrams; short words are kept on their own."""
        phrases = extract_phrases("i had a really really stressful work day today")

        assert phrases == [
            "stressful work",
            "really really",
            "really stressful",
            "day",
            "today",
        ]
        # Stopwords never show up, alone or in pairs.
        for phrase in phrases:
            assert not all(word in STOPWORDS for word in phrase.split())

    def test_known_phrase_is_not_repeated_as_bigram(self):
        assert extract_phrases("Great news!") == ["great news"]

    def test_known_phrases_match_inside_words(self):
        """Known phrases are plain substrings, so "some time" contains "me time"."""
        assert extract_phrases("some time off") == ["me time", "off"]

    def test_italian_stopwords_are_dropped(self):
        assert extract_phrases("giornata con amici") == ["giornata amici"]

    def test_short_words_are_dropped(self):
        assert extract_phrases("ok go") == []

    def test_empty_and_symbols_only(self):
        assert extract_phrases("") == []
        assert extract_phrases("!!! ???") == []

    def test_word_shared_by_two_bigrams(self):
        """A middle word counts towards both neighbouring bigrams."""
        assert extract_phrases("sleepy rainy monday") == [
            "sleepy rainy",
            "rainy monday",
        ]

    def test_output_is_deterministic(self):
        text = "late night coding, feeling tired"
        assert extract_phrases(text) == extract_phrases(text)

    def test_common_phrases_list(self):
        assert len(COMMON_PHRASES) == 30
        assert all(phrase == phrase.lower() for phrase in COMMON_PHRASES)
