"""Lemma frequency aggregation.

Pure helpers for turning one page's tokens into qualified lemma counts,
and for summarizing the vocabulary matched on that page.
"""

import math
from collections import Counter
from typing import Iterable, Mapping, Optional

from vocabtrace.constants import (
    HIGH_PRIORITY_ENCOUNTERS,
    KNOWN_THRESHOLD,
    TOP_MISSED_WORDS,
    UNKNOWN_WORDBANK_PRIORITY,
    WORDBANK_SELECTION_PRIORITY,
)
from vocabtrace.dictionary import Dictionary
from vocabtrace.models import (
    PageStats,
    ScanMatch,
    VocabularyEntry,
    WordbankWord,
    is_valid_word,
    normalize_lemma,
    tokenize,
)
from vocabtrace.scoring import ScoringContext, calculate_score


def _selection_priority(code: Optional[str]) -> int:
    return WORDBANK_SELECTION_PRIORITY.get(code or "custom", UNKNOWN_WORDBANK_PRIORITY)


def build_wordbank_index(rows: Iterable[Mapping]) -> dict[str, WordbankWord]:
    """Index enabled wordbank words by normalized lemma.

    A word listed by several wordbanks is attributed to the one with the
    best selection priority, then the lowest wordbank id.

    Args:
        rows: Mappings with wordbank_id, code, lemma, surface and normalized keys

    Returns:
        WordbankWord per normalized lemma
    """
    index: dict[str, WordbankWord] = {}
    best: dict[str, tuple[int, str]] = {}

    for row in rows:
        lemma = row["normalized"]
        rank = (_selection_priority(row["code"]), row["wordbank_id"])
        word = index.get(lemma)
        if word is None:
            index[lemma] = WordbankWord(
                wordbank_id=row["wordbank_id"],
                lemma=row["lemma"],
                surface=row["surface"],
                source_wordbank_ids=[row["wordbank_id"]],
            )
            best[lemma] = rank
            continue

        if row["wordbank_id"] not in word.source_wordbank_ids:
            word.source_wordbank_ids.append(row["wordbank_id"])
        if rank < best[lemma]:
            word.wordbank_id = row["wordbank_id"]
            word.lemma = row["lemma"]
            word.surface = row["surface"]
            best[lemma] = rank

    return index


def count_tokens(tokens: Iterable[str]) -> Counter:
    """Count normalized tokens, dropping those that normalize to nothing."""
    counts: Counter = Counter()
    for token in tokens:
        lemma = normalize_lemma(token)
        if lemma:
            counts[lemma] += 1
    return counts


def qualify_tokens(
    counts: Mapping[str, int],
    wordbank_lemmas: Iterable[str],
    dictionary: Optional[Dictionary],
    rank_threshold: int,
) -> dict[str, int]:
    """Apply the scan gate.

    A lemma qualifies when it is a valid word and either sits in an
    enabled wordbank or is a dictionary word whose rank is unknown or at
    least the threshold. Without a dictionary only wordbank words pass.
    """
    wordbank_lemmas = set(wordbank_lemmas)
    qualified = {}
    for lemma, count in counts.items():
        if not is_valid_word(lemma):
            continue
        if lemma in wordbank_lemmas:
            qualified[lemma] = count
            continue
        if dictionary is None:
            continue
        entry = dictionary.lookup(lemma)
        if entry is not None and (entry.rank is None or entry.rank >= rank_threshold):
            qualified[lemma] = count
    return qualified


def first_sentences(
    sentences: Iterable[str], lemmas: Iterable[str]
) -> dict[str, str]:
    """First sentence in which each lemma appears."""
    wanted = set(lemmas)
    found: dict[str, str] = {}
    for sentence in sentences:
        for token in tokenize(sentence):
            lemma = normalize_lemma(token)
            if lemma in wanted and lemma not in found:
                found[lemma] = sentence
    return found


def build_matches(
    entries: Iterable[VocabularyEntry],
    qualified: Mapping[str, int],
    encounter_summary: Mapping[str, tuple[int, list[str]]],
    wordbank_lemmas: Iterable[str],
) -> list[ScanMatch]:
    """Describe every entry whose lemma was qualified on the page."""
    wordbank_lemmas = set(wordbank_lemmas)
    matches = []
    for entry in entries:
        if entry.lemma not in qualified:
            continue
        count, sources = encounter_summary.get(entry.vocab_id, (0, []))
        score = calculate_score(sources, ScoringContext(traced=entry.is_traced))

        if entry.is_traced:
            source = "traced"
        elif entry.source_wordbank_id or entry.lemma in wordbank_lemmas:
            source = "wordbank"
        else:
            source = "environment"

        matches.append(
            ScanMatch(
                vocab_id=entry.vocab_id,
                lemma=entry.lemma,
                surface=entry.surface or entry.lemma,
                encounter_count=count,
                weighted_score=score,
                present_count=qualified.get(entry.lemma, 1),
                is_known=entry.is_known,
                score_locked=entry.score_locked,
                is_traced=entry.is_traced,
                source=source,
                priority="high" if count > HIGH_PRIORITY_ENCOUNTERS else "normal",
                source_wordbank_id=entry.source_wordbank_id,
                next_review_at=entry.next_review_at,
            )
        )
    return matches


def compute_page_stats(
    matches: list[ScanMatch],
    qualified: Mapping[str, int],
    wordbank_lemmas: Iterable[str],
) -> PageStats:
    """Coverage of wordbank words and the most frequent misses on a page."""
    wordbank_lemmas = set(wordbank_lemmas)
    wordbank_on_page = sum(1 for lemma in qualified if lemma in wordbank_lemmas)

    mastered = sum(
        1
        for m in matches
        if (m.lemma in wordbank_lemmas or m.source_wordbank_id)
        and (m.is_known or m.weighted_score >= KNOWN_THRESHOLD)
    )
    if wordbank_on_page > 0:
        coverage = math.floor(mastered / wordbank_on_page * 100 + 0.5)
    else:
        coverage = 100

    missed = sorted(
        (
            m
            for m in matches
            if not m.is_known and not m.score_locked and m.weighted_score < KNOWN_THRESHOLD
        ),
        key=lambda m: -m.present_count,
    )[:TOP_MISSED_WORDS]

    return PageStats(
        coverage=coverage,
        mastered=1 if coverage >= 100 else 0,
        top_missed_words=[
            {
                "lemma": m.lemma,
                "source": m.source,
                "present_count": m.present_count,
                "encounter_count": m.encounter_count,
            }
            for m in missed
        ],
    )
