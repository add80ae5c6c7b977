"""Auto-trace pool replenishment.

Tops up the pool of actively traced words from recent exposure. The
pool only ever grows here; it shrinks through mastery or an explicit
un-trace.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Iterable

from vocabtrace.constants import MIN_RECENCY_FACTOR, RECENCY_WINDOW_DAYS
from vocabtrace.models import VocabularyEntry, days_between, is_valid_word
from vocabtrace.storage.sqlite import SQLiteStorage

logger = logging.getLogger(__name__)


def recency_factor(last_encounter_at: datetime, now: datetime) -> float:
    """Linear falloff over the recency window, floored at 0.1."""
    days = days_between(last_encounter_at, now)
    return max(MIN_RECENCY_FACTOR, 1 - days / RECENCY_WINDOW_DAYS)


def rank_candidates(
    candidates: Iterable[tuple[VocabularyEntry, int, datetime]],
    now: datetime,
    is_recognized: Callable[[str], bool],
) -> list[tuple[VocabularyEntry, float]]:
    """Order trace candidates by encounter count times recency.

    Args:
        candidates: (entry, encounter count, last encounter time) tuples
        now: Current time
        is_recognized: Whether a lemma is a dictionary or wordbank word

    Returns:
        (entry, score) pairs, best first, ties broken by vocab_id
    """
    scored = [
        (entry, count * recency_factor(last_at, now))
        for entry, count, last_at in candidates
        if is_valid_word(entry.lemma) and is_recognized(entry.lemma)
    ]
    scored.sort(key=lambda pair: (-pair[1], pair[0].vocab_id))
    return scored


class AutoTraceReplenisher:
    """Fills free trace slots with the most exposed candidates."""

    def __init__(self, storage: SQLiteStorage):
        self._storage = storage
        self._lock = asyncio.Lock()

    async def replenish(
        self,
        pool_size: int,
        min_encounters: int,
        is_recognized: Callable[[str], bool],
        now: datetime,
    ) -> list[str]:
        """Trace candidates until the active pool reaches pool_size.

        Returns:
            vocab_ids traced by this call
        """
        async with self._lock:
            active = await asyncio.to_thread(self._storage.count_active_traced)
            slots = pool_size - active
            if slots <= 0:
                return []

            candidates = await asyncio.to_thread(self._storage.get_trace_candidates, min_encounters)
            ranked = rank_candidates(candidates, now, is_recognized)
            if not ranked:
                return []

            chosen = [entry.vocab_id for entry, _ in ranked[:slots]]
            traced = await asyncio.to_thread(self._storage.trace_for_pool, chosen, pool_size, now)

        if traced:
            logger.info(f"Auto-traced {len(traced)} words ({active + len(traced)}/{pool_size})")
        return traced
