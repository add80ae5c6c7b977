"""Tests for lemma aggregation helpers."""

import pytest

from vocabtrace.dictionary import Dictionary
from vocabtrace.learning.aggregation import (
    build_matches,
    build_wordbank_index,
    compute_page_stats,
    count_tokens,
    first_sentences,
    qualify_tokens,
)
from vocabtrace.models import VocabularyEntry


def _row(wordbank_id, code, lemma, surface=None):
    return {
        "wordbank_id": wordbank_id,
        "code": code,
        "lemma": lemma,
        "surface": surface or lemma,
        "normalized": lemma,
    }


class TestWordbankIndex:
    """Tests for build_wordbank_index."""

    def test_single_wordbank(self):
        index = build_wordbank_index([_row("wb1", "cet4", "abandon")])
        assert index["abandon"].wordbank_id == "wb1"
        assert index["abandon"].source_wordbank_ids == ["wb1"]

    def test_priority_wins(self):
        """Test a word in several wordbanks is attributed by selection priority."""
        index = build_wordbank_index(
            [
                _row("wb-custom", "custom", "abandon", "Abandon"),
                _row("wb-cet4", "cet4", "abandon", "abandon"),
            ]
        )
        word = index["abandon"]
        assert word.wordbank_id == "wb-cet4"
        assert word.surface == "abandon"
        assert sorted(word.source_wordbank_ids) == ["wb-cet4", "wb-custom"]

    def test_lowest_id_breaks_ties(self):
        index = build_wordbank_index([_row("wb-b", "cet4", "abandon"), _row("wb-a", "cet4", "abandon")])
        assert index["abandon"].wordbank_id == "wb-a"

    def test_unknown_code_ranks_last(self):
        index = build_wordbank_index([_row("wb1", "mystery", "abandon"), _row("wb2", "noise", "abandon")])
        assert index["abandon"].wordbank_id == "wb2"


class TestQualify:
    """Tests for the scan gate."""

    def test_count_tokens_normalizes(self):
        counts = count_tokens(["Cat", "cat,", "(cat)", "...", "Dog"])
        assert counts == {"cat": 3, "dog": 1}

    def test_rare_dictionary_words_pass(self, dictionary):
        counts = {"the": 9, "cat": 2, "ubiquitous": 1, "unlisted": 4}
        assert qualify_tokens(counts, set(), dictionary, 2000) == {"ubiquitous": 1}

    def test_wordbank_words_bypass_rank(self, dictionary):
        counts = {"the": 9, "cat": 2}
        assert qualify_tokens(counts, {"cat"}, dictionary, 2000) == {"cat": 2}

    def test_unranked_dictionary_word_passes(self):
        dictionary = Dictionary.from_entries([("gizmo", None)])
        assert qualify_tokens({"gizmo": 1}, set(), dictionary, 2000) == {"gizmo": 1}

    def test_invalid_words_rejected(self, dictionary):
        counts = {"a": 3, "x1": 2, "ubiquitous": 1}
        assert qualify_tokens(counts, {"a", "x1"}, dictionary, 2000) == {"ubiquitous": 1}

    def test_without_dictionary_only_wordbank(self):
        counts = {"ubiquitous": 1, "cat": 1}
        assert qualify_tokens(counts, {"cat"}, None, 2000) == {"cat": 1}


class TestFirstSentences:
    """Tests for first_sentences."""

    def test_first_occurrence_kept(self):
        sentences = ["Nothing here.", "A quixotic plan.", "Another quixotic idea."]
        assert first_sentences(sentences, ["quixotic"]) == {"quixotic": "A quixotic plan."}

    def test_missing_lemma_absent(self):
        assert first_sentences(["Nothing here."], ["quixotic"]) == {}


class TestMatches:
    """Tests for build_matches and compute_page_stats."""

    def _entries(self):
        return [
            VocabularyEntry(vocab_id="v1", lemma="quixotic", surface="Quixotic"),
            VocabularyEntry(vocab_id="v2", lemma="laconic", is_traced=True),
            VocabularyEntry(
                vocab_id="v3", lemma="abandon", source_wordbank_id="wb1",
                familiarity_score=100.0, is_known=True,
            ),
            VocabularyEntry(vocab_id="v4", lemma="absent"),
        ]

    def test_only_qualified_entries_match(self):
        matches = build_matches(self._entries(), {"quixotic": 2, "laconic": 1, "abandon": 1}, {}, set())
        assert [m.lemma for m in matches] == ["quixotic", "laconic", "abandon"]

    def test_match_sources(self):
        matches = build_matches(
            self._entries(), {"quixotic": 2, "laconic": 1, "abandon": 1}, {}, {"abandon"}
        )
        assert {m.lemma: m.source for m in matches} == {
            "quixotic": "environment",
            "laconic": "traced",
            "abandon": "wordbank",
        }

    def test_score_and_priority_from_summary(self):
        summary = {"v1": (4, ["lookup", "lookup", "scan", "scan"]), "v2": (1, ["trace"])}
        matches = build_matches(self._entries(), {"quixotic": 2, "laconic": 1}, summary, set())
        by_lemma = {m.lemma: m for m in matches}

        assert by_lemma["quixotic"].weighted_score == pytest.approx(2.2)
        assert by_lemma["quixotic"].priority == "high"
        assert by_lemma["quixotic"].surface == "Quixotic"
        assert by_lemma["laconic"].weighted_score == pytest.approx(2.0)
        assert by_lemma["laconic"].priority == "normal"
        assert by_lemma["laconic"].surface == "laconic"

    def test_page_stats(self):
        qualified = {"quixotic": 5, "laconic": 1, "abandon": 2, "ephemeral": 3}
        wordbank = {"abandon", "ephemeral"}
        matches = build_matches(self._entries(), qualified, {}, wordbank)
        stats = compute_page_stats(matches, qualified, wordbank)

        assert stats.coverage == 50
        assert stats.mastered == 0
        assert [w["lemma"] for w in stats.top_missed_words] == ["quixotic", "laconic"]
        assert stats.top_missed_words[0]["present_count"] == 5

    def test_full_coverage_without_wordbank_words(self):
        stats = compute_page_stats([], {"quixotic": 1}, set())
        assert stats.coverage == 100
        assert stats.mastered == 1

    def test_missed_words_capped(self):
        entries = [VocabularyEntry(vocab_id=f"v{i}", lemma=w) for i, w in enumerate(
            ["quixotic", "laconic", "ephemeral", "obfuscate"]
        )]
        qualified = {"quixotic": 1, "laconic": 4, "ephemeral": 3, "obfuscate": 2}
        stats = compute_page_stats(build_matches(entries, qualified, {}, set()), qualified, set())
        assert [w["lemma"] for w in stats.top_missed_words] == ["laconic", "ephemeral", "obfuscate"]
