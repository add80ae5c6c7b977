"""Noise-word reconciliation.

Keeps the entries of the noise target set locked at the score ceiling
and releases locks that fall out of it. The inputs are captured in a
versioned NoiseConfig snapshot; an unchanged snapshot makes a sync a
no-op.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from vocabtrace.constants import (
    DEFAULT_LANGUAGE,
    NOISE_CHUNK_SIZE,
    NOISE_CONFIG_VERSION,
    SETTING_NOISE_SNAPSHOT,
)
from vocabtrace.models import EngineSettings, VocabularyEntry
from vocabtrace.storage.sqlite import SQLiteStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoiseConfig:
    """Snapshot of the inputs that define the noise target set.

    Attributes:
        source_wordbank_id: Designated noise wordbank ('' for none)
        source_word_count: Words in that wordbank when the snapshot was taken
        manual_add: Lemmas always treated as noise
        manual_remove: Lemmas never treated as noise
        version: Snapshot format version
    """

    source_wordbank_id: str = ""
    source_word_count: int = 0
    manual_add: frozenset[str] = frozenset()
    manual_remove: frozenset[str] = frozenset()
    version: int = NOISE_CONFIG_VERSION

    @classmethod
    def from_settings(cls, settings: EngineSettings, source_word_count: int = 0) -> "NoiseConfig":
        return cls(
            source_wordbank_id=settings.noise_wordbank_id,
            source_word_count=source_word_count,
            manual_add=settings.noise_manual_add,
            manual_remove=settings.noise_manual_remove,
        )

    @classmethod
    def from_dict(cls, data: Any) -> Optional["NoiseConfig"]:
        """Rebuild a stored snapshot. Returns None if it is unreadable."""
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                source_wordbank_id=str(data["source_wordbank_id"]),
                source_word_count=int(data["source_word_count"]),
                manual_add=frozenset(data["manual_add"]),
                manual_remove=frozenset(data["manual_remove"]),
                version=int(data["version"]),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "source_wordbank_id": self.source_wordbank_id,
            "source_word_count": self.source_word_count,
            "manual_add": sorted(self.manual_add),
            "manual_remove": sorted(self.manual_remove),
        }


@dataclass
class NoisePlan:
    """Writes needed to bring the store in line with a target set."""

    unlock_ids: list[str] = field(default_factory=list)
    lock_ids: list[str] = field(default_factory=list)
    create_lemmas: list[str] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.unlock_ids) + len(self.lock_ids) + len(self.create_lemmas)


@dataclass
class NoiseSyncResult:
    """Outcome of a noise sync."""

    skipped: bool = False
    locked: int = 0
    unlocked: int = 0
    created: int = 0
    writes: int = 0
    target_size: int = 0
    dry_run: bool = False

    def to_dict(self) -> dict:
        return {
            "skipped": self.skipped,
            "locked": self.locked,
            "unlocked": self.unlocked,
            "created": self.created,
            "writes": self.writes,
            "target_size": self.target_size,
            "dry_run": self.dry_run,
        }


def target_set(
    wordbank_lemmas: Iterable[str],
    manual_add: Iterable[str],
    manual_remove: Iterable[str],
) -> frozenset[str]:
    """Noise wordbank words plus manual additions, minus manual removals."""
    return frozenset((set(wordbank_lemmas) | set(manual_add)) - set(manual_remove))


def plan_changes(
    target: frozenset[str],
    managed_locked: Iterable[VocabularyEntry],
    existing: Mapping[str, VocabularyEntry],
) -> NoisePlan:
    """Compute the writes for a target set.

    Traced entries are never locked. Soft-deleted entries are left alone
    and not recreated. Entries already locked by the reconciler need no
    write.

    Args:
        target: Noise target set
        managed_locked: Entries currently locked by the reconciler
        existing: Entry per target lemma (live preferred over deleted)
    """
    plan = NoisePlan()

    for entry in managed_locked:
        if entry.lemma not in target or entry.is_traced:
            plan.unlock_ids.append(entry.vocab_id)

    for lemma in sorted(target):
        entry = existing.get(lemma)
        if entry is None:
            plan.create_lemmas.append(lemma)
        elif entry.is_deleted or entry.is_traced:
            continue
        elif not (entry.score_locked and entry.noise_managed):
            plan.lock_ids.append(entry.vocab_id)

    return plan


def _chunks(items: list, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


class NoiseReconciler:
    """Applies the noise target set to the vocabulary.

    Work is written in chunks, each in its own transaction, with a yield
    to the event loop in between so a long sync can be cancelled between
    chunks. The snapshot is stored only after the last chunk.
    """

    def __init__(
        self,
        storage: SQLiteStorage,
        chunk_size: int = NOISE_CHUNK_SIZE,
        language: str = DEFAULT_LANGUAGE,
    ):
        self._storage = storage
        self.chunk_size = max(1, chunk_size)
        self.language = language

    async def current_config(self, settings: EngineSettings) -> tuple[NoiseConfig, set[str]]:
        """Snapshot for the given settings, with the noise wordbank's words."""
        wordbank_lemmas: set[str] = set()
        if settings.noise_wordbank_id:
            wordbank_lemmas = await asyncio.to_thread(
                self._storage.get_wordbank_lemmas, settings.noise_wordbank_id
            )
        return NoiseConfig.from_settings(settings, len(wordbank_lemmas)), wordbank_lemmas

    async def targets(self, settings: EngineSettings) -> frozenset[str]:
        """Current noise target set."""
        config, wordbank_lemmas = await self.current_config(settings)
        return target_set(wordbank_lemmas, config.manual_add, config.manual_remove)

    async def reconcile(
        self,
        settings: EngineSettings,
        now: datetime,
        force: bool = False,
        dry_run: bool = False,
    ) -> NoiseSyncResult:
        """Bring noise locks in line with the settings.

        Args:
            settings: Engine settings holding the noise selectors
            now: Current time
            force: Run even if the snapshot is unchanged
            dry_run: Report the plan without writing

        Returns:
            NoiseSyncResult
        """
        config, wordbank_lemmas = await self.current_config(settings)
        stored = await asyncio.to_thread(self._storage.get_settings)
        previous = NoiseConfig.from_dict(stored.get(SETTING_NOISE_SNAPSHOT))

        target = target_set(wordbank_lemmas, config.manual_add, config.manual_remove)
        if not force and previous == config:
            logger.debug("Noise config unchanged, skipping sync")
            return NoiseSyncResult(skipped=True, target_size=len(target), dry_run=dry_run)

        managed = await asyncio.to_thread(self._storage.list_managed_locked)
        existing = await asyncio.to_thread(
            self._storage.find_vocab_many, target, self.language, True
        )
        plan = plan_changes(target, managed, existing)

        result = NoiseSyncResult(
            unlocked=len(plan.unlock_ids),
            locked=len(plan.lock_ids),
            created=len(plan.create_lemmas),
            target_size=len(target),
            dry_run=dry_run,
        )
        if dry_run:
            return result

        for chunk in _chunks(plan.unlock_ids, self.chunk_size):
            result.writes += await self._apply(now, unlock_ids=chunk)
        for chunk in _chunks(plan.lock_ids, self.chunk_size):
            result.writes += await self._apply(now, lock_ids=chunk)
        for chunk in _chunks(plan.create_lemmas, self.chunk_size):
            result.writes += await self._apply(now, create_lemmas=chunk)

        if previous != config:
            await asyncio.to_thread(
                self._storage.put_settings, {SETTING_NOISE_SNAPSHOT: config.to_dict()}, now
            )

        logger.info(
            f"Noise words synced: source={config.source_wordbank_id or 'none'}, "
            f"total={len(target)}, writes={result.writes}"
        )
        return result

    async def _apply(
        self,
        now: datetime,
        unlock_ids: Iterable[str] = (),
        lock_ids: Iterable[str] = (),
        create_lemmas: Iterable[str] = (),
    ) -> int:
        writes = await asyncio.to_thread(
            self._storage.apply_noise_changes,
            list(unlock_ids),
            list(lock_ids),
            list(create_lemmas),
            now,
            self.language,
        )
        await asyncio.sleep(0)
        return writes
