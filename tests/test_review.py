"""Tests for review card selection."""

from datetime import datetime, timedelta, timezone

import pytest

from vocabtrace.learning.review import (
    LinearCongruentialGenerator,
    TopNSelector,
    WeightedShuffleSelector,
    compute_priority,
    make_selector,
    select_cards,
)
from vocabtrace.models import ReviewMode, VocabularyEntry

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _entries(n=8):
    return [
        VocabularyEntry(
            vocab_id=f"v{i:02d}",
            lemma=f"word{chr(97 + i)}",
            familiarity_score=float(i * 10),
            is_traced=i % 2 == 0,
            last_seen_at=T0 - timedelta(days=i),
        )
        for i in range(n)
    ]


class TestPriority:
    """Tests for compute_priority."""

    def test_new_traced_word(self):
        entry = VocabularyEntry(vocab_id="v1", lemma="quixotic", is_traced=True, last_seen_at=T0)
        # 0.45 * 0.5 + 0.25 * 1 + 0.20 * 1 + 0.10 * 0
        assert compute_priority(entry, T0) == pytest.approx(0.675)

    def test_overdue_saturates(self):
        entry = VocabularyEntry(
            vocab_id="v1", lemma="quixotic", familiarity_score=50.0,
            next_review_at=T0 - timedelta(days=30), last_seen_at=T0 - timedelta(days=30),
        )
        # 0.45 * 1 + 0.25 * 0.5 + 0.20 * 0.3 + 0.10 * 1
        assert compute_priority(entry, T0) == pytest.approx(0.735)

    def test_scheduled_in_future(self):
        entry = VocabularyEntry(
            vocab_id="v1", lemma="quixotic", next_review_at=T0 + timedelta(days=1), last_seen_at=T0
        )
        # 0.25 * 1 + 0.20 * 0.3
        assert compute_priority(entry, T0) == pytest.approx(0.31)


class TestGenerator:
    """Tests for the linear congruential generator."""

    def test_known_sequence(self):
        rng = LinearCongruentialGenerator(0)
        assert rng.state == 0
        assert rng() == pytest.approx(1013904223 / 2**32)
        assert rng.state == 1013904223

    def test_same_seed_same_sequence(self):
        a = LinearCongruentialGenerator(42)
        b = LinearCongruentialGenerator(42)
        assert [a() for _ in range(5)] == [b() for _ in range(5)]

    def test_values_in_unit_interval(self):
        rng = LinearCongruentialGenerator(7)
        assert all(0.0 <= rng() < 1.0 for _ in range(100))


class TestSelection:
    """Tests for select_cards."""

    def test_seeded_shuffle_repeatable(self):
        first = select_cards(_entries(), 4, T0, ReviewMode.SHUFFLE, seed=42)
        second = select_cards(list(reversed(_entries())), 4, T0, ReviewMode.SHUFFLE, seed=42)
        assert [s.entry.vocab_id for s in first] == [s.entry.vocab_id for s in second]

    @pytest.mark.parametrize("mode", [ReviewMode.SHUFFLE, ReviewMode.AUTO])
    def test_count_bounded_by_eligible(self, mode):
        assert len(select_cards(_entries(3), 10, T0, mode, seed=1)) == 3
        assert len(select_cards(_entries(8), 5, T0, mode, seed=1)) == 5
        assert select_cards([], 5, T0, mode) == []

    def test_no_duplicates(self):
        cards = select_cards(_entries(), 8, T0, ReviewMode.SHUFFLE)
        ids = [s.entry.vocab_id for s in cards]
        assert len(ids) == len(set(ids)) == 8

    def test_auto_mode_is_top_n(self):
        cards = select_cards(_entries(), 3, T0, ReviewMode.AUTO)
        priorities = [s.priority for s in cards]
        assert priorities == sorted(priorities, reverse=True)
        everything = select_cards(_entries(), 8, T0, ReviewMode.AUTO)
        assert priorities == [s.priority for s in everything[:3]]

    def test_zero_count(self):
        assert select_cards(_entries(), 0, T0, ReviewMode.AUTO) == []

    def test_invalid_mode(self):
        with pytest.raises(ValueError):
            select_cards(_entries(), 3, T0, "sometimes")

    def test_make_selector(self):
        assert isinstance(make_selector("auto"), TopNSelector)
        assert isinstance(make_selector("shuffle", seed=3), WeightedShuffleSelector)

    def test_custom_rng(self):
        draws = iter([0.9, 0.1, 0.5])
        selector = WeightedShuffleSelector(rng=lambda: next(draws))
        scored = select_cards(_entries(3), 3, T0, ReviewMode.AUTO)

        picked = selector.select(scored, 1)

        assert len(picked) == 1
