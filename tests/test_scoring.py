"""Tests for familiarity scoring."""

import pytest

from vocabtrace.models import EncounterSource
from vocabtrace.scoring import (
    SCORING_WEIGHTS,
    ScoringContext,
    calculate_score,
    is_known,
    source_weight,
)


class TestSourceWeights:
    """Tests for the per-source weight table."""

    def test_every_source_has_a_weight(self):
        """Test every encounter source appears in the weight table."""
        for source in EncounterSource:
            assert source.value in SCORING_WEIGHTS

    def test_ratings_outweigh_passive_sightings(self):
        """Test ratings weigh more than scans."""
        assert source_weight(EncounterSource.RATING_KNOWN) == 5.0
        assert source_weight(EncounterSource.RATING_FAMILIAR) == 3.0
        assert source_weight(EncounterSource.PAGE_SCAN) == 0.1

    def test_weight_accepts_wire_strings(self):
        """Test stored source strings resolve to the same weight."""
        assert source_weight("manual") == 2.0
        assert source_weight("import") == 0.5

    def test_unknown_source_falls_back(self):
        """Test unrecognized source tags weigh 0.1."""
        assert source_weight("telepathy") == 0.1


class TestCalculateScore:
    """Tests for calculate_score."""

    def test_empty_history_scores_zero(self):
        assert calculate_score([]) == 0.0

    def test_traced_entry_example(self):
        """Test 5 trace encounters plus a scan on a traced entry score 10.2."""
        sources = [EncounterSource.EXPLICIT_TRACE] * 5 + [EncounterSource.PAGE_SCAN]
        score = calculate_score(sources, ScoringContext(traced=True))

        assert score == pytest.approx(10.2)
        assert not is_known(score)

    def test_untraced_multiplier_is_one(self):
        sources = ["lookup", "lookup", "scan"]
        assert calculate_score(sources) == pytest.approx(2.1)

    def test_traced_doubles_score(self):
        sources = ["rate_familiar", "lookup"]
        untraced = calculate_score(sources, ScoringContext(traced=False))
        traced = calculate_score(sources, ScoringContext(traced=True))
        assert traced == pytest.approx(untraced * 2)

    def test_scoring_ignores_encounter_age(self):
        """Test the score depends only on the multiset of sources."""
        first = calculate_score(["scan", "rate_known", "lookup"])
        second = calculate_score(["lookup", "scan", "rate_known"])
        assert first == pytest.approx(second)

    def test_twenty_known_ratings_reach_threshold(self):
        score = calculate_score([EncounterSource.RATING_KNOWN] * 20)
        assert score == pytest.approx(100.0)
        assert is_known(score)

    def test_score_never_negative(self):
        assert calculate_score(["scan"] * 3) >= 0


class TestIsKnown:
    """Tests for the known threshold."""

    def test_threshold_is_inclusive(self):
        assert is_known(100.0)
        assert not is_known(99.99)

    def test_context_multiplier(self):
        assert ScoringContext().multiplier == 1
        assert ScoringContext(traced=True).multiplier == 2
