"""Promotion of frequently seen lemmas to vocabulary entries.

Promotion is exactly-once per lemma: each attempt is a single storage
transaction that compare-and-sets the stat's promoted_vocab_id, and
attempts on one lemma are serialized by a per-key lock. A lost race is
retried and never surfaces to the caller.
"""

import asyncio
import logging
from datetime import datetime
from typing import Iterable, Mapping, Optional

from vocabtrace.constants import PROMOTION_MAX_ATTEMPTS
from vocabtrace.exceptions import ConflictError
from vocabtrace.locks import KeyedLock
from vocabtrace.models import (
    LemmaStat,
    PromotionConfig,
    PromotionReason,
    SourceType,
    WordbankWord,
)
from vocabtrace.storage.sqlite import SQLiteStorage

logger = logging.getLogger(__name__)


def threshold_candidates(
    stats: Iterable[LemmaStat],
    config: PromotionConfig,
    now: datetime,
) -> list[LemmaStat]:
    """Unpromoted stats past both thresholds and outside any cooldown."""
    return sorted(
        (
            s
            for s in stats
            if not s.is_promoted
            and not s.in_cooldown(now)
            and s.total_count >= config.min_count
            and s.page_count >= config.min_pages
        ),
        key=lambda s: s.normalized_lemma,
    )


class PromotionPipeline:
    """Links lemma stats to vocabulary entries.

    Example:
        >>> pipeline = PromotionPipeline(storage)
        >>> await pipeline.run(stats, qualified, wordbank_index, noise_targets, config, now)
        ['ubiquitous']
    """

    def __init__(
        self,
        storage: SQLiteStorage,
        locks: Optional[KeyedLock] = None,
        max_attempts: int = PROMOTION_MAX_ATTEMPTS,
    ):
        self._storage = storage
        self._locks = locks or KeyedLock()
        self.max_attempts = max_attempts

    async def promote(
        self,
        lemma: str,
        reason: PromotionReason,
        now: datetime,
        lock_as_noise: bool = False,
        surface: Optional[str] = None,
        source_type: SourceType = SourceType.ENVIRONMENT,
        source_wordbank_id: Optional[str] = None,
    ) -> Optional[str]:
        """Promote one lemma, retrying lost races.

        Returns:
            vocab_id linked by this call, or None when the lemma was
            already promoted or every attempt conflicted
        """
        async with self._locks.hold(lemma):
            for attempt in range(1, self.max_attempts + 1):
                try:
                    return await asyncio.to_thread(
                        self._storage.promote,
                        lemma,
                        reason.value,
                        now,
                        lock_as_noise=lock_as_noise,
                        surface=surface,
                        source_type=source_type,
                        source_wordbank_id=source_wordbank_id,
                    )
                except ConflictError as e:
                    logger.debug(f"Promotion conflict on {lemma!r} (attempt {attempt}): {e}")
                    await asyncio.sleep(0)

        logger.warning(f"Giving up promoting {lemma!r} after {self.max_attempts} conflicts")
        return None

    async def run(
        self,
        stats: Mapping[str, LemmaStat],
        qualified: Iterable[str],
        wordbank_index: Mapping[str, WordbankWord],
        noise_targets: frozenset[str] | set[str],
        config: PromotionConfig,
        now: datetime,
    ) -> list[str]:
        """Promote threshold crossers, then unpromoted wordbank words on the page.

        Args:
            stats: Lemma stats touched by this page, keyed by lemma
            qualified: Lemmas that passed the gate on this page
            wordbank_index: Enabled wordbank words
            noise_targets: Lemmas that new entries are locked for
            config: Promotion thresholds
            now: Current time

        Returns:
            Lemmas promoted by this call
        """
        promoted = []

        for stat in threshold_candidates(stats.values(), config, now):
            vocab_id = await self._promote_stat(
                stat, PromotionReason.THRESHOLD, wordbank_index, noise_targets, now
            )
            if vocab_id:
                promoted.append(stat.normalized_lemma)

        done = set(promoted)
        for lemma in sorted(qualified):
            stat = stats.get(lemma)
            if stat is None or lemma in done or lemma not in wordbank_index or stat.is_promoted:
                continue
            vocab_id = await self._promote_stat(
                stat, PromotionReason.WORDBANK, wordbank_index, noise_targets, now
            )
            if vocab_id:
                promoted.append(lemma)

        if promoted:
            logger.info(f"Promoted {len(promoted)} lemmas: {', '.join(promoted)}")
        return promoted

    async def _promote_stat(
        self,
        stat: LemmaStat,
        reason: PromotionReason,
        wordbank_index: Mapping[str, WordbankWord],
        noise_targets: frozenset[str] | set[str],
        now: datetime,
    ) -> Optional[str]:
        word = wordbank_index.get(stat.normalized_lemma)
        return await self.promote(
            stat.normalized_lemma,
            reason,
            now,
            lock_as_noise=stat.normalized_lemma in noise_targets,
            surface=word.surface if word else stat.lemma,
            source_type=SourceType.WORDBANK if word else SourceType.ENVIRONMENT,
            source_wordbank_id=word.wordbank_id if word else None,
        )
