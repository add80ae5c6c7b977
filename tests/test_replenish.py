"""Tests for auto-trace replenishment."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from vocabtrace.learning.replenish import AutoTraceReplenisher, rank_candidates, recency_factor
from vocabtrace.models import VocabularyEntry

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _always(_lemma):
    return True


def _seed_candidates(storage, words, lookups=3):
    ids = []
    for word in words:
        entry = storage.upsert_vocab(word, "en", T0)
        for i in range(lookups):
            storage.record_encounter(
                entry.vocab_id, word, "lookup", T0, page_url=f"https://example.com/{word}/{i}"
            )
        ids.append(entry.vocab_id)
    return ids


class TestRanking:
    """Tests for recency_factor and rank_candidates."""

    def test_recency_falloff(self):
        assert recency_factor(T0, T0) == pytest.approx(1.0)
        assert recency_factor(T0 - timedelta(days=15), T0) == pytest.approx(0.5)
        assert recency_factor(T0 - timedelta(days=90), T0) == pytest.approx(0.1)

    def test_count_times_recency(self):
        fresh = VocabularyEntry(vocab_id="b", lemma="quixotic")
        stale = VocabularyEntry(vocab_id="a", lemma="laconic")
        ranked = rank_candidates(
            [(stale, 10, T0 - timedelta(days=27)), (fresh, 3, T0)], T0, _always
        )
        assert [entry.lemma for entry, _ in ranked] == ["quixotic", "laconic"]

    def test_ties_broken_by_id(self):
        entries = [VocabularyEntry(vocab_id=i, lemma=w) for i, w in (("b", "quixotic"), ("a", "laconic"))]
        ranked = rank_candidates([(e, 3, T0) for e in entries], T0, _always)
        assert [entry.vocab_id for entry, _ in ranked] == ["a", "b"]

    def test_unrecognized_and_invalid_filtered(self):
        entries = [
            VocabularyEntry(vocab_id="a", lemma="quixotic"),
            VocabularyEntry(vocab_id="b", lemma="x1"),
            VocabularyEntry(vocab_id="c", lemma="zzyzx"),
        ]
        ranked = rank_candidates(
            [(e, 3, T0) for e in entries], T0, lambda lemma: lemma != "zzyzx"
        )
        assert [entry.vocab_id for entry, _ in ranked] == ["a"]


class TestAutoTraceReplenisher:
    """Tests for AutoTraceReplenisher.replenish."""

    def test_fills_free_slots(self, storage):
        _seed_candidates(storage, ["quixotic", "laconic", "ephemeral"])

        traced = asyncio.run(AutoTraceReplenisher(storage).replenish(2, 3, _always, T0))

        assert len(traced) == 2
        assert storage.count_active_traced() == 2

    def test_full_pool_untouched(self, storage):
        ids = _seed_candidates(storage, ["quixotic", "laconic"])
        storage.set_traced(ids[0], True, T0)

        traced = asyncio.run(AutoTraceReplenisher(storage).replenish(1, 3, _always, T0))

        assert traced == []
        assert storage.count_active_traced() == 1

    def test_below_min_encounters_ignored(self, storage):
        _seed_candidates(storage, ["quixotic"], lookups=2)
        assert asyncio.run(AutoTraceReplenisher(storage).replenish(5, 3, _always, T0)) == []

    def test_concurrent_replenish_respects_pool(self, storage):
        _seed_candidates(storage, ["quixotic", "laconic", "ephemeral", "obfuscate"])

        async def scenario():
            replenisher = AutoTraceReplenisher(storage)
            return await asyncio.gather(
                *(replenisher.replenish(2, 3, _always, T0) for _ in range(3))
            )

        results = asyncio.run(scenario())

        assert sum(len(r) for r in results) == 2
        assert storage.count_active_traced() == 2
