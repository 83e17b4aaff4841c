"""
Unit tests for fuzzy string matching.
"""

import pytest

from dbaas.entstore_server.errors import InvalidQueryError
from dbaas.entstore_server.query.fuzzy import (
    FuzzyOptions,
    best_similarity,
    fuzzy_match,
    levenshtein,
    similarity,
)


class TestLevenshtein:
    @pytest.mark.parametrize(
        "a,b,distance",
        [
            ("", "", 0),
            ("chair", "chair", 0),
            ("", "desk", 4),
            ("kitten", "sitting", 3),
            ("chair", "chiar", 2),
            ("lamp", "lamps", 1),
        ],
    )
    def test_distance(self, a, b, distance):
        assert levenshtein(a, b) == distance

    def test_symmetric(self):
        assert levenshtein("flaw", "lawn") == levenshtein("lawn", "flaw") == 2


class TestSimilarity:
    def test_identical_strings(self):
        assert similarity("desk", "desk") == 1.0

    def test_empty_strings_are_identical(self):
        assert similarity("", "") == 1.0

    def test_normalized_by_longest(self):
        assert similarity("lamp", "lamps") == pytest.approx(0.8)

    def test_best_similarity_uses_tokens(self):
        """The best score over the whole value and its tokens is used."""
        assert best_similarity("Ergonomic Office Chair", "chair") == 1.0


class TestFuzzyMatch:
    """Tests for fuzzy_match."""

    def test_match_is_case_insensitive(self):
        assert fuzzy_match("Oak Desk", "oak desk")

    def test_matches_single_token(self):
        """A target close to one word of the value matches."""
        assert fuzzy_match("Ergonomic Office Chair", "chiar", FuzzyOptions(threshold=0.5))

    def test_typo_within_defaults(self):
        assert fuzzy_match("Keyboard", "keybord")

    def test_unrelated_does_not_match(self):
        assert not fuzzy_match("Standing Desk", "monitor")

    def test_max_distance_bounds_long_strings(self):
        """Long values fail when the edit distance exceeds max_distance."""
        value = "abcdefghijklmnopqrst"
        target = "abcdefghijklmnopWXYZ"
        assert similarity(value.casefold(), target.casefold()) >= 0.7
        assert not fuzzy_match(value, target, FuzzyOptions(threshold=0.7, max_distance=3))
        assert fuzzy_match(value, target, FuzzyOptions(threshold=0.7, max_distance=4))

    def test_threshold_bounds_short_strings(self):
        """Short values fail when similarity is below the threshold."""
        assert not fuzzy_match("cat", "dog", FuzzyOptions(threshold=0.7, max_distance=3))
        assert fuzzy_match("cat", "dog", FuzzyOptions(threshold=0.0, max_distance=3))

    def test_reflexive(self):
        for value in ["", "a", "Desk", "Ergonomic Office Chair"]:
            assert fuzzy_match(value, value, FuzzyOptions(threshold=1.0, max_distance=0))


class TestFuzzyOptions:
    def test_defaults(self):
        options = FuzzyOptions()
        assert options.threshold == 0.7
        assert options.max_distance == 3

    def test_invalid_threshold(self):
        with pytest.raises(InvalidQueryError):
            FuzzyOptions(threshold=1.5)

    def test_invalid_max_distance(self):
        with pytest.raises(InvalidQueryError):
            FuzzyOptions(max_distance=-1)

    def test_from_dict(self):
        assert FuzzyOptions.from_dict({"threshold": 0.5}) == FuzzyOptions(0.5, 3)
