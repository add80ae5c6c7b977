"""Tests for noise-word reconciliation."""

import asyncio
from datetime import datetime, timezone

from vocabtrace.constants import SETTING_NOISE_SNAPSHOT
from vocabtrace.learning.noise import NoiseConfig, NoiseReconciler, plan_changes, target_set
from vocabtrace.models import EngineSettings, VocabularyEntry

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _noise_wordbank(storage, words=("the", "of")):
    wordbank = storage.create_wordbank("Noise", T0, code="noise", enabled=False)
    storage.add_wordbank_words(wordbank.wordbank_id, [(w, w, None) for w in words], T0)
    return wordbank.wordbank_id


class TestTargetSet:
    """Tests for target_set and plan_changes."""

    def test_manual_remove_wins(self):
        assert target_set({"the", "of"}, {"is"}, {"of", "is"}) == frozenset({"the"})

    def test_plan(self):
        managed = [
            VocabularyEntry(vocab_id="v-gone", lemma="gone", score_locked=True, noise_managed=True),
            VocabularyEntry(vocab_id="v-the", lemma="the", score_locked=True, noise_managed=True),
        ]
        existing = {
            "the": managed[1],
            "of": VocabularyEntry(vocab_id="v-of", lemma="of"),
            "is": VocabularyEntry(vocab_id="v-is", lemma="is", is_traced=True),
            "an": VocabularyEntry(vocab_id="v-an", lemma="an", deleted_at=T0),
        }
        plan = plan_changes(frozenset({"the", "of", "is", "an", "to"}), managed, existing)

        assert plan.unlock_ids == ["v-gone"]
        assert plan.lock_ids == ["v-of"]
        assert plan.create_lemmas == ["to"]
        assert plan.size == 3

    def test_config_round_trip_rejects_garbage(self):
        config = NoiseConfig("wb", 2, frozenset({"is"}), frozenset())
        assert NoiseConfig.from_dict(config.to_dict()) == config
        assert NoiseConfig.from_dict({"version": 1}) is None
        assert NoiseConfig.from_dict("nope") is None


class TestNoiseReconciler:
    """Tests for NoiseReconciler.reconcile."""

    def test_locks_wordbank_words(self, storage):
        settings = EngineSettings(noise_wordbank_id=_noise_wordbank(storage))
        result = asyncio.run(NoiseReconciler(storage).reconcile(settings, T0))

        assert result.created == 2
        assert result.writes == 2
        for lemma in ("the", "of"):
            entry = storage.find_vocab(lemma)
            assert entry.score_locked and entry.noise_managed
            assert entry.familiarity_score == 100.0
            assert entry.is_known

    def test_existing_entry_locked(self, storage):
        entry = storage.upsert_vocab("the", "en", T0)
        settings = EngineSettings(noise_manual_add=frozenset({"the"}))

        result = asyncio.run(NoiseReconciler(storage).reconcile(settings, T0))

        assert result.locked == 1
        assert storage.get_vocab(entry.vocab_id).score_locked

    def test_manual_remove_unlocks(self, storage):
        wordbank_id = _noise_wordbank(storage)

        async def scenario():
            reconciler = NoiseReconciler(storage)
            await reconciler.reconcile(EngineSettings(noise_wordbank_id=wordbank_id), T0)
            return await reconciler.reconcile(
                EngineSettings(noise_wordbank_id=wordbank_id, noise_manual_remove=frozenset({"the"})),
                T0,
            )

        result = asyncio.run(scenario())
        entry = storage.find_vocab("the")

        assert result.unlocked == 1
        assert not entry.score_locked
        assert entry.familiarity_score == 0.0
        assert not entry.is_known
        assert storage.find_vocab("of").score_locked

    def test_unchanged_config_skipped(self, storage):
        settings = EngineSettings(noise_wordbank_id=_noise_wordbank(storage))

        async def scenario():
            reconciler = NoiseReconciler(storage)
            await reconciler.reconcile(settings, T0)
            return await reconciler.reconcile(settings, T0)

        result = asyncio.run(scenario())
        assert result.skipped
        assert result.writes == 0
        assert result.target_size == 2

    def test_forced_sync_is_idempotent(self, storage):
        settings = EngineSettings(noise_wordbank_id=_noise_wordbank(storage))

        async def scenario():
            reconciler = NoiseReconciler(storage)
            await reconciler.reconcile(settings, T0)
            return await reconciler.reconcile(settings, T0, force=True)

        result = asyncio.run(scenario())
        assert not result.skipped
        assert result.writes == 0

    def test_dry_run_writes_nothing(self, storage):
        settings = EngineSettings(noise_wordbank_id=_noise_wordbank(storage))
        result = asyncio.run(NoiseReconciler(storage).reconcile(settings, T0, dry_run=True))

        assert result.dry_run
        assert result.created == 2
        assert result.writes == 0
        assert storage.find_vocab("the") is None
        assert SETTING_NOISE_SNAPSHOT not in storage.get_settings()

    def test_traced_word_not_locked(self, storage):
        entry = storage.upsert_vocab("the", "en", T0)
        storage.set_traced(entry.vocab_id, True, T0)
        settings = EngineSettings(noise_manual_add=frozenset({"the"}))

        result = asyncio.run(NoiseReconciler(storage).reconcile(settings, T0))

        assert result.writes == 0
        assert not storage.get_vocab(entry.vocab_id).score_locked

    def test_deleted_word_not_recreated(self, storage):
        entry = storage.upsert_vocab("the", "en", T0)
        storage.delete_vocab(entry.vocab_id, T0)
        settings = EngineSettings(noise_manual_add=frozenset({"the"}))

        result = asyncio.run(NoiseReconciler(storage).reconcile(settings, T0))

        assert result.created == 0
        assert storage.find_vocab("the") is None

    def test_small_chunks(self, storage):
        words = ("the", "of", "is", "to", "and")
        settings = EngineSettings(noise_wordbank_id=_noise_wordbank(storage, words))

        result = asyncio.run(NoiseReconciler(storage, chunk_size=2).reconcile(settings, T0))

        assert result.writes == 5
        assert storage.get_statistics().noise_locked == 5
