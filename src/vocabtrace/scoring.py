"""Familiarity scoring.

Maps the encounter history of a word to a non-negative familiarity score.
Scoring is decay-free: an encounter weighs the same no matter how old it is.
"""

from dataclasses import dataclass
from typing import Final, Iterable

from vocabtrace.constants import (
    DEFAULT_SOURCE_WEIGHT,
    KNOWN_THRESHOLD,
    TRACED_MULTIPLIER,
    UNTRACED_MULTIPLIER,
)
from vocabtrace.models import EncounterSource

SCORING_WEIGHTS: Final[dict[str, float]] = {
    EncounterSource.PAGE_SCAN.value: 0.1,
    EncounterSource.DICTIONARY_LOOKUP.value: 1.0,
    EncounterSource.EXPLICIT_TRACE.value: 1.0,
    EncounterSource.MANUAL_ENTRY.value: 2.0,
    EncounterSource.BULK_IMPORT.value: 0.5,
    EncounterSource.WORDBANK_SEED.value: 0.1,
    EncounterSource.RATING_KNOWN.value: 5.0,
    EncounterSource.RATING_FAMILIAR.value: 3.0,
    EncounterSource.RATING_UNKNOWN.value: 1.0,
}


@dataclass(frozen=True)
class ScoringContext:
    """State of the entry being scored.

    Attributes:
        traced: Whether the entry is actively traced
    """

    traced: bool = False

    @property
    def multiplier(self) -> int:
        return TRACED_MULTIPLIER if self.traced else UNTRACED_MULTIPLIER


def source_weight(source: EncounterSource | str) -> float:
    """Base weight for an encounter source tag."""
    key = source.value if isinstance(source, EncounterSource) else str(source)
    return SCORING_WEIGHTS.get(key, DEFAULT_SOURCE_WEIGHT)


def calculate_score(
    sources: Iterable[EncounterSource | str],
    context: ScoringContext = ScoringContext(),
) -> float:
    """Compute the familiarity score for an encounter history.

    The running total is clamped at zero after every term, so no single
    term can drive it negative.

    Args:
        sources: Source tag of every encounter
        context: Scoring context for the entry

    Returns:
        Familiarity score (>= 0)
    """
    multiplier = context.multiplier
    total = 0.0
    for source in sources:
        total = max(0.0, total + source_weight(source) * multiplier)
    return total


def is_known(score: float) -> bool:
    """Whether a score marks the word as mastered."""
    return score >= KNOWN_THRESHOLD
