"""High-level API for vocabtrace.

Provides the async engine that callers (page scanners, UIs, scheduled
cleanup) drive: encounter recording, page scans with promotion, ratings,
tracing, noise-word management, review card draws and cleanup.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional

from vocabtrace.constants import (
    DEFAULT_CARD_COUNT,
    DEFAULT_LANGUAGE,
    DEFAULT_SETTINGS,
    MAX_POOL_SIZE,
    NOISE_SETTING_KEYS,
    SETTING_AUTO_TRACE_POOL_SIZE,
    SETTING_NOISE_MANUAL_ADD,
    SETTING_NOISE_MANUAL_REMOVE,
    SETTING_NOISE_SNAPSHOT,
    WEEKLY_HIGHLIGHT_DAYS,
    WEEKLY_HIGHLIGHT_MIN_COUNT,
)
from vocabtrace.dictionary import Dictionary
from vocabtrace.exceptions import ConfigError, NotFoundError, StorageError, ValidationError
from vocabtrace.learning.aggregation import (
    build_matches,
    build_wordbank_index,
    compute_page_stats,
    count_tokens,
    first_sentences,
    qualify_tokens,
)
from vocabtrace.learning.noise import NoiseReconciler, NoiseSyncResult
from vocabtrace.learning.promotion import PromotionPipeline
from vocabtrace.learning.replenish import AutoTraceReplenisher
from vocabtrace.learning.review import select_cards
from vocabtrace.locks import KeyedLock
from vocabtrace.models import (
    Card,
    CleanupResult,
    DeleteResult,
    Encounter,
    EncounterSource,
    EngineSettings,
    PageContext,
    PageStats,
    PromotionConfig,
    Rating,
    RatingResult,
    ReviewMode,
    ScanResult,
    SourceType,
    Trace,
    TraceResult,
    VocabFilter,
    VocabularyEntry,
    VocabularyStats,
    Wordbank,
    normalize_lemma,
    tokenize,
    utc_now,
)
from vocabtrace.storage.sqlite import SQLiteStorage

logger = logging.getLogger(__name__)


def _coerce_enum(enum_cls, value: Any, field_name: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {field_name}: {value!r}") from e


class VocabTrace:
    """Vocabulary acquisition and review-scheduling engine.

    The engine owns its SQLite store; the dictionary is a service passed
    in by the caller. Storage work runs in worker threads, each call on
    its own connection.

    Example:
        >>> async with VocabTrace("./vocabtrace.db", dictionary=Dictionary.load(path)) as engine:
        ...     result = await engine.scan_text(text, PageContext(url="https://example.com/a"))
        ...     cards = await engine.draw_review_cards(5, seed=42)
    """

    def __init__(
        self,
        db_path: str | Path,
        dictionary: Optional[Dictionary] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize VocabTrace.

        Args:
            db_path: Path to SQLite database (created on open)
            dictionary: Dictionary service for the scan gate
            clock: Returns the current aware UTC time
        """
        self.db_path = Path(db_path)
        self.dictionary = dictionary
        self._clock = clock or utc_now
        self._storage: Optional[SQLiteStorage] = None
        self._vocab_locks = KeyedLock()
        self._noise_lock = asyncio.Lock()
        self._settings_lock = asyncio.Lock()

    async def open(self) -> "VocabTrace":
        """Create the schema if needed and store default settings."""
        if self._storage is None:
            self._storage = await asyncio.to_thread(SQLiteStorage, self.db_path)
            await asyncio.to_thread(self._storage.ensure_settings, DEFAULT_SETTINGS, self._now())
            self._promotion = PromotionPipeline(self._storage, locks=self._vocab_locks)
            self._reconciler = NoiseReconciler(self._storage)
            self._replenisher = AutoTraceReplenisher(self._storage)
            logger.debug(f"Opened vocabtrace store at {self.db_path}")
        return self

    async def close(self) -> None:
        self._storage = None

    async def __aenter__(self) -> "VocabTrace":
        return await self.open()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def storage(self) -> SQLiteStorage:
        if self._storage is None:
            raise StorageError("Engine is not open")
        return self._storage

    def _now(self) -> datetime:
        return self._clock()

    async def _run(self, func: Callable, *args, **kwargs):
        return await asyncio.to_thread(func, *args, **kwargs)

    # =========================================================================
    # ENCOUNTERS
    # =========================================================================

    async def record_encounter(
        self,
        source: EncounterSource | str,
        page: PageContext,
        vocab_id: Optional[str] = None,
        word: Optional[str] = None,
        language: str = DEFAULT_LANGUAGE,
        source_wordbank_id: Optional[str] = None,
    ) -> Encounter:
        """Record one observation of a word.

        Scan, lookup and wordbank sightings of the same word on the same
        page within 24 hours touch the existing encounter instead of
        adding one. An explicit-trace encounter marks the entry traced.
        A word whose entry was deleted keeps it deleted: the encounter is
        attached without restoring it.

        Args:
            source: Channel that produced the encounter
            page: Page the word was seen on (URL required)
            vocab_id: Existing entry to attach to
            word: Word text, used to find or create the entry when no vocab_id
            language: Language code for a new entry
            source_wordbank_id: Attributed wordbank

        Returns:
            The new or de-duplicated Encounter

        Raises:
            ValidationError: If the page URL or both vocab_id and word are missing
            NotFoundError: If vocab_id doesn't exist
        """
        source = _coerce_enum(EncounterSource, source, "source")
        host = page.require_url()
        now = self._now()

        surface = word or ""
        attach_deleted = False
        if not vocab_id:
            if not word or not word.strip():
                raise ValidationError("word or vocabId is required")
            lemma = normalize_lemma(word)
            if not lemma:
                raise ValidationError(f"word has no letters: {word!r}")
            entry = await self._ensure_vocab(
                lemma,
                language,
                now,
                surface=word.strip(),
                source_type=SourceType.for_encounter(source),
                restore=False,
            )
            vocab_id = entry.vocab_id
            attach_deleted = entry.is_deleted

        encounter, created, auto_unlocked = await self._run(
            self.storage.record_encounter,
            vocab_id,
            surface.strip(),
            source.value,
            now,
            page_url=page.url,
            page_host=host,
            page_title=page.title,
            context_sentence=page.sentence,
            source_wordbank_id=source_wordbank_id,
            dedup=source.deduplicates,
            allow_deleted=attach_deleted,
        )
        if auto_unlocked:
            entry = await self.get_vocab(vocab_id)
            await self._remember_unlock(entry.lemma, now)
            logger.info(f"Released noise lock on {entry.lemma!r} after repeated lookups")
        if created:
            logger.debug(f"Recorded {source.value} encounter for {vocab_id}")
        return encounter

    async def delete_encounter(self, encounter_id: str) -> DeleteResult:
        """Delete an encounter. A missing id is a no-op success."""
        if not encounter_id:
            raise ValidationError("encounterId is required")
        return await self._run(self.storage.delete_encounter, encounter_id, self._now())

    async def get_word_encounters(
        self,
        vocab_id: str,
        limit: int = 50,
        offset: int = 0,
        page_host: Optional[str] = None,
        page_url: Optional[str] = None,
    ) -> tuple[list[Encounter], int]:
        """Encounters of an entry, newest first, with the total count.

        Args:
            vocab_id: Entry to list
            limit: Page size
            offset: Rows to skip
            page_host: Only encounters on this host
            page_url: Only encounters on this page
        """
        if not vocab_id:
            raise ValidationError("vocabId is required")
        return await self._run(
            self.storage.get_encounters, vocab_id, limit, offset, page_host, page_url
        )

    # =========================================================================
    # PAGE SCANS
    # =========================================================================

    async def scan_tokens(
        self,
        tokens: Iterable[str],
        page: PageContext,
        config: Optional[PromotionConfig] = None,
        *,
        language: str = DEFAULT_LANGUAGE,
        sentences: Optional[Iterable[str]] = None,
        record: bool = True,
    ) -> ScanResult:
        """Aggregate one page's words, promote, and report matches.

        Args:
            tokens: Words extracted from the page
            page: Page context (URL required)
            config: Promotion thresholds (stored settings when omitted)
            language: Language of the page
            sentences: Page sentences; when given they are tokenized
                instead of tokens and supply context sentences
            record: Record scan encounters and replenish the trace pool

        Returns:
            ScanResult with the visible matches and page statistics
        """
        host = page.require_url()
        now = self._now()
        sentences = [s for s in (sentences or []) if s]
        if sentences:
            tokens = [t for sentence in sentences for t in tokenize(sentence)]

        counts = count_tokens(tokens)
        if not counts:
            return ScanResult()

        settings = await self.get_settings()
        config = config or settings.promotion

        rows = await self._run(self.storage.get_enabled_wordbank_rows)
        wordbank_index = build_wordbank_index(rows)
        qualified = qualify_tokens(
            counts, wordbank_index, self.dictionary, config.environment_rank_threshold
        )
        if not qualified:
            return ScanResult()

        ranks = {lemma: self.dictionary.rank(lemma) for lemma in qualified} if self.dictionary else {}
        stats = await self._run(
            self.storage.record_sightings,
            qualified,
            page.url,
            host,
            now,
            language=language,
            wordbank_lemmas=set(qualified) & set(wordbank_index),
            ranks=ranks,
        )

        noise_targets = await self._reconciler.targets(settings)
        promoted = await self._promotion.run(
            stats, qualified, wordbank_index, noise_targets, config, now
        )

        entries = await self._run(self.storage.find_vocab_many, qualified, language)
        ordered = sorted(entries.values(), key=lambda e: e.lemma)
        summary = await self._run(self.storage.get_encounter_summary, [e.vocab_id for e in ordered])
        all_matches = build_matches(ordered, qualified, summary, wordbank_index)
        if not all_matches:
            return ScanResult(stats=PageStats(), promoted=promoted)

        page_stats = compute_page_stats(all_matches, qualified, wordbank_index)
        visible = [m for m in all_matches if m.is_visible]
        result = ScanResult(matches=visible, stats=page_stats, promoted=promoted)

        if not record:
            return result

        contexts = first_sentences(sentences, qualified) if sentences else {}
        for match in all_matches:
            scan_page = PageContext(url=page.url, title=page.title, sentence=contexts.get(match.lemma))
            try:
                await self._run(
                    self.storage.record_encounter,
                    match.vocab_id,
                    match.surface,
                    EncounterSource.PAGE_SCAN.value,
                    now,
                    page_url=scan_page.url,
                    page_host=host,
                    page_title=scan_page.title,
                    context_sentence=scan_page.sentence,
                    source_wordbank_id=match.source_wordbank_id,
                    dedup=True,
                )
            except (NotFoundError, StorageError) as e:
                logger.warning(f"Skipping scan encounter for {match.lemma!r}: {e}")

        if settings.auto_trace_enabled:
            recognized = set(wordbank_index)

            def is_recognized(lemma: str) -> bool:
                return lemma in recognized or (self.dictionary is not None and lemma in self.dictionary)

            result.auto_traced = await self._replenisher.replenish(
                settings.auto_trace_pool_size,
                settings.auto_trace_min_encounters,
                is_recognized,
                now,
            )
            for match in visible:
                if match.vocab_id in result.auto_traced:
                    match.is_traced = True
                    match.source = "traced"

        return result

    async def scan_text(
        self,
        text: str,
        page: PageContext,
        config: Optional[PromotionConfig] = None,
        **kwargs,
    ) -> ScanResult:
        """Tokenize page text and scan it."""
        return await self.scan_tokens(tokenize(text or ""), page, config, **kwargs)

    # =========================================================================
    # VOCABULARY
    # =========================================================================

    async def upsert_vocab(
        self,
        lemma: str,
        surface: Optional[str] = None,
        meaning: Optional[str] = None,
        language: str = DEFAULT_LANGUAGE,
    ) -> VocabularyEntry:
        """Add a word explicitly, or update its surface and meaning.

        A soft-deleted entry for the lemma is restored.
        """
        normalized = normalize_lemma(lemma or "")
        if not normalized:
            raise ValidationError("lemma is required")
        return await self._ensure_vocab(
            normalized,
            language,
            self._now(),
            surface=surface or lemma.strip(),
            meaning=meaning,
            source_type=SourceType.MANUAL,
            overwrite=True,
        )

    async def get_vocab(self, vocab_id: str) -> VocabularyEntry:
        """Get an entry by id.

        Raises:
            NotFoundError: If the entry doesn't exist
        """
        entry = await self._run(self.storage.get_vocab, vocab_id)
        if entry is None:
            raise NotFoundError(f"Vocabulary not found: {vocab_id}")
        return entry

    async def list_vocab(
        self,
        vocab_filter: VocabFilter | str = VocabFilter.ALL,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[VocabularyEntry], int]:
        """List live entries, most recently updated first."""
        vocab_filter = _coerce_enum(VocabFilter, vocab_filter, "filter")
        return await self._run(self.storage.list_vocab, vocab_filter, search, limit, offset)

    async def delete_vocab(self, vocab_id: str, hard: bool = False) -> DeleteResult:
        """Soft-delete an entry, or remove it with its encounters.

        A missing id is a no-op success.
        """
        if not vocab_id:
            raise ValidationError("vocabId is required")
        deleted = await self._run(self.storage.delete_vocab, vocab_id, self._now(), hard)
        return DeleteResult(success=True, deleted=deleted, vocab_deleted=deleted)

    async def rate_word(self, vocab_id: str, rating: Rating | str) -> RatingResult:
        """Record a familiarity rating and recompute the score.

        Raises:
            NotFoundError: If the entry doesn't exist
            ValidationError: If the rating is invalid or the word is noise-locked
        """
        rating = _coerce_enum(Rating, rating, "rating")
        if not vocab_id:
            raise ValidationError("vocabId is required")
        entry = await self._run(self.storage.rate, vocab_id, rating.source, self._now())
        return RatingResult(vocab_id, entry.familiarity_score, entry.is_known)

    async def toggle_trace(self, vocab_id: str, traced: bool) -> TraceResult:
        """Set whether an entry is actively traced, recomputing its score.

        Tracing a noise-locked entry releases the lock.
        """
        if not vocab_id:
            raise ValidationError("vocabId is required")
        entry = await self._run(self.storage.set_traced, vocab_id, bool(traced), self._now())
        active = await self._run(self.storage.count_active_traced)
        return TraceResult(vocab_id, entry.is_traced, active)

    async def get_traced_words(self) -> list[VocabularyEntry]:
        """Traced entries that are not yet known."""
        return await self._run(self.storage.get_traced_words)

    async def save_trace(
        self,
        source_text: str,
        page: PageContext,
        language: str = DEFAULT_LANGUAGE,
    ) -> Trace:
        """Save a word or phrase picked out while reading.

        The first save of a text on a page records an explicit-trace
        encounter, which creates the entry if needed and traces it. Saving
        the same text on the same page again refreshes the trace instead.

        Raises:
            ValidationError: If the text or page URL is missing
        """
        if not source_text or not source_text.strip():
            raise ValidationError("sourceText is required")
        host = page.require_url()
        lemma = normalize_lemma(source_text)
        if not lemma:
            raise ValidationError(f"sourceText has no word characters: {source_text!r}")
        now = self._now()

        trace, created = await self._run(
            self.storage.save_trace,
            source_text,
            lemma,
            language,
            page.url,
            host,
            now,
            page_title=page.title,
            context_sentence=page.sentence,
        )
        if created:
            await self.record_encounter(
                EncounterSource.EXPLICIT_TRACE, page, word=source_text.strip(), language=language
            )

        entry = await self._run(self.storage.find_vocab, lemma, language)
        if entry is not None:
            if not entry.is_traced:
                await self._run(self.storage.set_traced, entry.vocab_id, True, now)
            await self._run(self.storage.link_trace, trace.trace_id, entry.vocab_id, now)
            trace.vocab_id = entry.vocab_id
        return trace

    async def get_traces(
        self, limit: int = 50, offset: int = 0, search: Optional[str] = None
    ) -> tuple[list[Trace], int]:
        return await self._run(self.storage.get_traces, limit, offset, search)

    async def delete_trace(self, trace_id: str) -> DeleteResult:
        """Delete a saved trace. A missing id is a no-op success.

        The entry stops being traced once its last trace is gone.
        """
        if not trace_id:
            raise ValidationError("traceId is required")
        return await self._run(self.storage.delete_trace, trace_id, self._now())

    # =========================================================================
    # NOISE WORDS
    # =========================================================================

    async def unlock_noise_word(self, vocab_id: str) -> VocabularyEntry:
        """Release a noise lock and keep the word out of the noise set.

        Raises:
            NotFoundError: If the entry doesn't exist
            ValidationError: If the entry is not locked
        """
        if not vocab_id:
            raise ValidationError("vocabId is required")
        now = self._now()
        entry = await self._run(self.storage.unlock, vocab_id, now)
        await self._remember_unlock(entry.lemma, now)
        return entry

    async def sync_noise_words(
        self,
        config: Optional[EngineSettings] = None,
        force: bool = False,
        dry_run: bool = False,
    ) -> NoiseSyncResult:
        """Reconcile noise locks with the noise settings.

        Args:
            config: Settings to reconcile against (stored settings when omitted)
            force: Run even when the noise snapshot is unchanged
            dry_run: Report the plan without writing
        """
        async with self._noise_lock:
            settings = config or await self.get_settings()
            return await self._reconciler.reconcile(settings, self._now(), force=force, dry_run=dry_run)

    async def _remember_unlock(self, lemma: str, now: datetime) -> None:
        async with self._settings_lock:
            stored = await self._run(self.storage.get_settings)
            removed = stored.get(SETTING_NOISE_MANUAL_REMOVE)
            removed = list(removed) if isinstance(removed, list) else []
            if lemma in removed:
                return
            await self._run(
                self.storage.put_settings, {SETTING_NOISE_MANUAL_REMOVE: sorted([*removed, lemma])}, now
            )

    # =========================================================================
    # REVIEW
    # =========================================================================

    async def draw_review_cards(
        self,
        count: int = DEFAULT_CARD_COUNT,
        mode: ReviewMode | str = ReviewMode.SHUFFLE,
        exclude_ids: Iterable[str] = (),
        seed: Optional[int] = None,
        traced_only: bool = False,
    ) -> list[Card]:
        """Pick a batch of review cards.

        Args:
            count: Number of cards wanted
            mode: 'auto' for top priority, 'shuffle' for weighted sampling
            exclude_ids: Entries to leave out
            seed: Seed for a repeatable shuffle
            traced_only: Only draw traced entries

        Returns:
            Exactly min(count, eligible) distinct cards
        """
        mode = _coerce_enum(ReviewMode, mode, "mode")
        if count < 0:
            raise ValidationError(f"count must be non-negative, got {count}")

        now = self._now()
        candidates = await self._run(self.storage.get_review_candidates, exclude_ids, traced_only)
        if not candidates or count == 0:
            return []

        selected = select_cards(candidates, count, now, mode=mode, seed=seed)
        contexts = await self._run(self.storage.get_latest_contexts, [s.entry.vocab_id for s in selected])

        cards = []
        for scored in selected:
            entry = scored.entry
            sentence, title = contexts.get(entry.vocab_id, (None, None))
            cards.append(
                Card(
                    vocab_id=entry.vocab_id,
                    lemma=entry.lemma,
                    surface=entry.surface or entry.lemma,
                    meaning=entry.meaning or "",
                    weighted_score=entry.familiarity_score,
                    is_traced=entry.is_traced,
                    priority=round(scored.priority, 2),
                    context_sentence=sentence,
                    page_title=title,
                )
            )
        return cards

    # =========================================================================
    # CLEANUP
    # =========================================================================

    async def cleanup_stale(
        self,
        age_days: Optional[int] = None,
        min_count: Optional[int] = None,
        dry_run: bool = False,
    ) -> CleanupResult:
        """Remove low-count lemma stats not seen recently, with their encounters.

        Args:
            age_days: Age cutoff in days (at least 1; stored setting when omitted)
            min_count: Stats with fewer sightings are stale (stored setting when omitted)
            dry_run: Report what would be removed without writing
        """
        settings = await self.get_settings()
        age_days = settings.cleanup_age_days if age_days is None else age_days
        min_count = settings.cleanup_min_count if min_count is None else min_count
        now = self._now()
        cutoff = now - timedelta(days=max(1, int(age_days)))
        return await self._run(self.storage.cleanup_stale, cutoff, int(min_count), dry_run, now)

    # =========================================================================
    # STATISTICS
    # =========================================================================

    async def get_statistics(self) -> VocabularyStats:
        return await self._run(self.storage.get_statistics)

    async def get_weekly_highlights(self, limit: int = 50) -> list[dict]:
        """Words seen at least twice in the past week.

        Environment words come before wordbank words, then higher counts,
        then rarer words.
        """
        since = self._now() - timedelta(days=WEEKLY_HIGHLIGHT_DAYS)
        rows = await self._run(
            self.storage.get_recent_lemma_stats, since, WEEKLY_HIGHLIGHT_MIN_COUNT, max(1, limit)
        )
        return [
            {
                "lemma": stat.lemma,
                "vocab_id": stat.promoted_vocab_id,
                "source": "wordbank" if stat.in_wordbank else "environment",
                "total_count": stat.total_count,
                "rank": stat.dict_rank,
                "mastered": known is True,
            }
            for stat, known in rows
        ]

    # =========================================================================
    # SETTINGS
    # =========================================================================

    async def get_settings(self) -> EngineSettings:
        stored = await self._run(self.storage.get_settings)
        return EngineSettings.from_mapping(stored)

    async def update_settings(self, preferences: Mapping[str, Any]) -> EngineSettings:
        """Store settings. Changing a noise selector forces a noise sync.

        Raises:
            ValidationError: If a key is unknown or a value cannot be parsed
        """
        unknown = set(preferences) - set(DEFAULT_SETTINGS)
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")

        values = dict(preferences)
        if SETTING_AUTO_TRACE_POOL_SIZE in values:
            try:
                pool = int(values[SETTING_AUTO_TRACE_POOL_SIZE])
            except (TypeError, ValueError) as e:
                raise ValidationError(f"{SETTING_AUTO_TRACE_POOL_SIZE} must be a number") from e
            values[SETTING_AUTO_TRACE_POOL_SIZE] = max(0, min(MAX_POOL_SIZE, pool))
        for key in (SETTING_NOISE_MANUAL_ADD, SETTING_NOISE_MANUAL_REMOVE):
            if key in values:
                if not isinstance(values[key], (list, tuple, set, frozenset)):
                    raise ValidationError(f"{key} must be a list of words")
                values[key] = sorted({normalize_lemma(str(v)) for v in values[key]} - {""})

        async with self._settings_lock:
            stored = await self._run(self.storage.get_settings)
            try:
                EngineSettings.from_mapping({**stored, **values})
            except ConfigError as e:
                raise ValidationError(str(e)) from e
            await self._run(self.storage.put_settings, values, self._now())
        settings = await self.get_settings()

        if NOISE_SETTING_KEYS & set(values):
            await self.sync_noise_words(settings, force=True)
        return settings

    async def get_noise_snapshot(self) -> Optional[dict]:
        stored = await self._run(self.storage.get_settings)
        return stored.get(SETTING_NOISE_SNAPSHOT)

    # =========================================================================
    # WORDBANKS
    # =========================================================================

    async def create_wordbank(
        self,
        name: str,
        language: str = DEFAULT_LANGUAGE,
        code: str = "custom",
        enabled: bool = True,
        wordbank_id: Optional[str] = None,
    ) -> Wordbank:
        """Create a wordbank (enabled by default)."""
        if not name or not name.strip():
            raise ValidationError("name is required")
        return await self._run(
            self.storage.create_wordbank,
            name,
            self._now(),
            code=code,
            language=(language or "").strip() or DEFAULT_LANGUAGE,
            enabled=enabled,
            wordbank_id=wordbank_id,
        )

    async def import_wordbank_words(
        self, wordbank_id: str, words: Iterable[str | Mapping[str, Any]]
    ) -> int:
        """Add words to a wordbank.

        Words are plain strings or mappings with lemma, surface and rank.
        Entries without a valid lemma are skipped.

        Returns:
            Number of words added
        """
        words = list(words or [])
        if not wordbank_id or not words:
            raise ValidationError("wordbankId and words are required")
        wordbank = await self._run(self.storage.get_wordbank, wordbank_id)
        if wordbank is None:
            raise NotFoundError(f"Wordbank not found: {wordbank_id}")

        prepared = []
        for i, word in enumerate(words):
            if isinstance(word, Mapping):
                raw, surface, rank = word.get("lemma"), word.get("surface"), word.get("rank", i)
            else:
                raw, surface, rank = word, None, i
            lemma = normalize_lemma(str(raw or ""))
            if not lemma:
                logger.warning(f"Skipping wordbank word without a lemma: {word!r}")
                continue
            prepared.append((lemma, surface or str(raw).strip(), rank))

        added = await self._run(self.storage.add_wordbank_words, wordbank_id, prepared, self._now())
        logger.info(f"Imported {added} words into wordbank {wordbank.name!r}")

        settings = await self.get_settings()
        if settings.noise_wordbank_id == wordbank_id and added:
            await self.sync_noise_words(settings)
        return added

    async def set_wordbank_enabled(self, wordbank_id: str, enabled: bool) -> Wordbank:
        if not await self._run(self.storage.set_wordbank_enabled, wordbank_id, enabled, self._now()):
            raise NotFoundError(f"Wordbank not found: {wordbank_id}")
        return await self._run(self.storage.get_wordbank, wordbank_id)

    async def list_wordbanks(self, language: Optional[str] = None) -> list[Wordbank]:
        return await self._run(self.storage.list_wordbanks, language)

    # =========================================================================
    # INTERNAL
    # =========================================================================

    async def _ensure_vocab(
        self,
        lemma: str,
        language: str,
        now: datetime,
        surface: Optional[str] = None,
        meaning: Optional[str] = None,
        source_type: SourceType = SourceType.MANUAL,
        overwrite: bool = False,
        restore: bool = True,
    ) -> VocabularyEntry:
        async with self._vocab_locks.hold(lemma):
            return await self._run(
                self.storage.upsert_vocab,
                lemma,
                language,
                now,
                surface=surface,
                meaning=meaning,
                source_type=source_type,
                overwrite=overwrite,
                restore=restore,
            )
