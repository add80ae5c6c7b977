"""Review card selection.

Scores eligible entries with a composite priority and picks a batch
either deterministically (top N) or by weighted sampling without
replacement (Efraimidis-Spirakis), optionally seeded for repeatability.
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from vocabtrace.constants import (
    COLD_SATURATION_DAYS,
    KNOWN_THRESHOLD,
    LCG_INCREMENT,
    LCG_MODULUS,
    LCG_MULTIPLIER,
    MIN_PRIORITY,
    NEW_WORD_SRS_DUE,
    OVERDUE_SATURATION_DAYS,
    PRIORITY_WEIGHT_DIFFICULTY,
    PRIORITY_WEIGHT_RECENCY,
    PRIORITY_WEIGHT_SRS,
    PRIORITY_WEIGHT_URGENCY,
    TRACED_URGENCY,
    UNTRACED_URGENCY,
)
from vocabtrace.models import ReviewMode, VocabularyEntry, days_between


@dataclass
class ScoredEntry:
    """An eligible entry with its review priority."""

    entry: VocabularyEntry
    priority: float


def compute_priority(entry: VocabularyEntry, now: datetime) -> float:
    """Composite review priority in [0, 1].

    0.45 * srs_due + 0.25 * difficulty + 0.20 * urgency + 0.10 * recency
    """
    if entry.next_review_at is None:
        srs_due = NEW_WORD_SRS_DUE
    elif entry.next_review_at < now:
        srs_due = min(1.0, days_between(entry.next_review_at, now) / OVERDUE_SATURATION_DAYS)
    else:
        srs_due = 0.0

    difficulty = 1 - entry.familiarity_score / KNOWN_THRESHOLD
    urgency = TRACED_URGENCY if entry.is_traced else UNTRACED_URGENCY

    last_seen = entry.last_seen_at or entry.created_at or now
    recency = min(1.0, max(0.0, days_between(last_seen, now)) / COLD_SATURATION_DAYS)

    return (
        PRIORITY_WEIGHT_SRS * srs_due
        + PRIORITY_WEIGHT_DIFFICULTY * difficulty
        + PRIORITY_WEIGHT_URGENCY * urgency
        + PRIORITY_WEIGHT_RECENCY * recency
    )


class LinearCongruentialGenerator:
    """Seedable uniform generator.

    state = (state * 1664525 + 1013904223) mod 2**32; each draw is
    state / 2**32.
    """

    def __init__(self, seed: int):
        self.state = seed % LCG_MODULUS

    def __call__(self) -> float:
        self.state = (self.state * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
        return self.state / LCG_MODULUS


class SelectionStrategy(ABC):
    """Abstract base class for card selection strategies."""

    @abstractmethod
    def select(self, items: list[ScoredEntry], n: int) -> list[ScoredEntry]:
        """Pick up to n distinct items.

        Args:
            items: Scored eligible entries
            n: Number of cards wanted

        Returns:
            Exactly min(n, len(items)) items, in card order
        """
        pass


class TopNSelector(SelectionStrategy):
    """Highest priority first, ties broken by vocab_id."""

    def select(self, items: list[ScoredEntry], n: int) -> list[ScoredEntry]:
        ordered = sorted(items, key=lambda s: (-s.priority, s.entry.vocab_id))
        return ordered[: max(0, n)]


class WeightedShuffleSelector(SelectionStrategy):
    """Weighted sampling without replacement.

    Each item draws u ~ U(0, 1) and gets key u ** (1 / priority); the n
    largest keys win. Items are keyed in vocab_id order so a seeded
    generator gives the same result for the same candidate set.
    """

    def __init__(self, seed: Optional[int] = None, rng: Optional[Callable[[], float]] = None):
        if rng is not None:
            self._rng = rng
        elif seed is not None:
            self._rng = LinearCongruentialGenerator(seed)
        else:
            self._rng = random.random

    def select(self, items: list[ScoredEntry], n: int) -> list[ScoredEntry]:
        keyed = []
        for item in sorted(items, key=lambda s: s.entry.vocab_id):
            u = self._rng()
            keyed.append((u ** (1 / max(item.priority, MIN_PRIORITY)), item))
        keyed.sort(key=lambda pair: (-pair[0], pair[1].entry.vocab_id))
        return [item for _, item in keyed[: max(0, n)]]


def make_selector(mode: ReviewMode | str, seed: Optional[int] = None) -> SelectionStrategy:
    """Selector for a review mode."""
    if ReviewMode(mode) is ReviewMode.AUTO:
        return TopNSelector()
    return WeightedShuffleSelector(seed=seed)


def select_cards(
    entries: list[VocabularyEntry],
    count: int,
    now: datetime,
    mode: ReviewMode | str = ReviewMode.SHUFFLE,
    seed: Optional[int] = None,
) -> list[ScoredEntry]:
    """Score eligible entries and pick a review batch."""
    scored = [ScoredEntry(entry, compute_priority(entry, now)) for entry in entries]
    return make_selector(mode, seed).select(scored, count)
