from __future__ import annotations

import pytest

from arb_matcher.config import ClassifierSettings
from arb_matcher.models import RelationshipType
from arb_matcher.relationship import classify_relationship, has_antonym_pair


class TestAntonyms:
    def test_yes_no(self) -> None:
        assert has_antonym_pair("Yes", "No")
        assert has_antonym_pair("No", "Yes")

    def test_embedded_in_phrases(self) -> None:
        assert has_antonym_pair("Above $100k", "Below $100k")
        assert has_antonym_pair("Over 2.5 goals", "Under 2.5 goals")

    def test_whole_words_only(self) -> None:
        # "nobody" contains "no" but is not the word "no".
        assert not has_antonym_pair("Yes", "Nobody")
        assert not has_antonym_pair("Trump wins", "Trump")


class TestClassifyRelationship:
    def test_opposites_beat_high_similarity(self) -> None:
        assert classify_relationship("Yes", "No", 0.99) is RelationshipType.OPPOSITES

    def test_identical_names_are_same_at_any_score(self) -> None:
        assert classify_relationship("Yes", "Yes", 0.0) is RelationshipType.SAME
        assert classify_relationship("Over 2.5 goals", "over 2.5 GOALS", 0.1) is RelationshipType.SAME

    def test_high_similarity_is_same(self) -> None:
        assert classify_relationship("Harris 2028", "Harris in 2028", 0.96) is RelationshipType.SAME

    def test_subset(self) -> None:
        assert classify_relationship("Trump", "Trump wins", 0.5) is RelationshipType.SUBSET
        assert classify_relationship("Trump wins", "Trump", 0.5) is RelationshipType.SUBSET

    def test_subset_requires_whole_words(self) -> None:
        assert classify_relationship("Trump", "Trumpet", 0.5) is not RelationshipType.SUBSET

    def test_near_duplicate_is_same(self) -> None:
        assert classify_relationship("Democratic party", "Democrats", 0.85) is RelationshipType.SAME

    def test_different_lines_are_never_same(self) -> None:
        assert classify_relationship("Over 2.5 goals", "Over 3.5 goals", 0.96) is RelationshipType.OVERLAPPING
        assert classify_relationship("Above 4.25%", "Above 4.75%", 0.85) is RelationshipType.OVERLAPPING
        assert classify_relationship("Over 2.5 goals", "Over 2.5 goals total", 0.96) is RelationshipType.SAME

    def test_overlapping_band(self) -> None:
        assert classify_relationship("Democratic party", "Democrats", 0.65) is RelationshipType.OVERLAPPING

    def test_very_low_similarity_is_mutually_exclusive(self) -> None:
        assert classify_relationship("Lakers", "Celtics", 0.05) is RelationshipType.MUTUALLY_EXCLUSIVE

    def test_shared_tokens_are_overlapping(self) -> None:
        result = classify_relationship("Trump wins popular vote", "Trump wins electoral college", 0.3)
        assert result is RelationshipType.OVERLAPPING

    def test_fallback_is_complementary(self) -> None:
        result = classify_relationship("Lakers win title", "Celtics reach finals", 0.3)
        assert result is RelationshipType.COMPLEMENTARY

    def test_custom_thresholds(self) -> None:
        settings = ClassifierSettings(near_duplicate_threshold=0.9)
        result = classify_relationship("Democratic party", "Democrats", 0.85, settings=settings)
        assert result is RelationshipType.OVERLAPPING

    @pytest.mark.parametrize("similarity", [-0.1, 1.5, float("nan")])
    def test_rejects_out_of_range_similarity(self, similarity: float) -> None:
        with pytest.raises(ValueError):
            classify_relationship("Yes", "Yes", similarity)

    def test_deterministic(self) -> None:
        args = ("Trump wins popular vote", "Trump wins electoral college", 0.3)
        assert classify_relationship(*args) is classify_relationship(*args)
