"""SQLite storage backend for vocabtrace.

Implements the vocabulary, encounter, lemma-stat, settings and wordbank
tables on a single SQLite database. Every public method opens its own
connection, so methods are safe to call from worker threads.
"""

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from vocabtrace.constants import (
    DEDUP_WINDOW_HOURS,
    DEFAULT_LANGUAGE,
    NOISE_UNLOCK_LOOKUPS,
    SCORE_CEILING,
)
from vocabtrace.exceptions import ConflictError, NotFoundError, StorageError, ValidationError
from vocabtrace.models import (
    CleanupResult,
    DeleteResult,
    Encounter,
    EncounterSource,
    LemmaStat,
    SourceType,
    Trace,
    VocabFilter,
    VocabularyEntry,
    VocabularyStats,
    Wordbank,
    from_timestamp,
    normalize_lemma,
    to_timestamp,
    trace_fingerprint,
    utc_now,
)
from vocabtrace.scoring import ScoringContext, calculate_score, is_known

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 1

# Seconds to wait for a competing writer
SQLITE_TIMEOUT = 30.0

# SQL schema
SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Vocabulary table
CREATE TABLE IF NOT EXISTS vocabulary (
    vocab_id            TEXT PRIMARY KEY,
    lemma               TEXT NOT NULL,
    language            TEXT NOT NULL DEFAULT 'en',
    surface             TEXT NOT NULL DEFAULT '',
    meaning             TEXT NOT NULL DEFAULT '',

    -- Scoring state
    familiarity_score   REAL NOT NULL DEFAULT 0,
    is_known            BOOLEAN NOT NULL DEFAULT FALSE,
    score_locked        BOOLEAN NOT NULL DEFAULT FALSE,
    is_traced           BOOLEAN NOT NULL DEFAULT FALSE,
    noise_managed       BOOLEAN NOT NULL DEFAULT FALSE,

    -- Origin
    source_type         TEXT,
    source_wordbank_id  TEXT,
    source_trace_id     TEXT,

    -- Review schedule
    next_review_at      TEXT,
    last_review_at      TEXT,

    -- Metadata
    first_seen_at       TEXT,
    last_seen_at        TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL,
    deleted_at          TEXT,

    CHECK (familiarity_score >= 0),
    CHECK (is_known = (familiarity_score >= 100)),
    CHECK (NOT (score_locked AND is_traced))
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_vocab_lemma_language
    ON vocabulary(lemma, language) WHERE deleted_at IS NULL;
CREATE INDEX IF NOT EXISTS idx_vocab_lemma ON vocabulary(lemma);
CREATE INDEX IF NOT EXISTS idx_vocab_traced ON vocabulary(is_traced) WHERE is_traced = TRUE;
CREATE INDEX IF NOT EXISTS idx_vocab_updated ON vocabulary(updated_at DESC);

-- Encounters table
CREATE TABLE IF NOT EXISTS encounters (
    encounter_id        TEXT PRIMARY KEY,
    vocab_id            TEXT NOT NULL REFERENCES vocabulary(vocab_id) ON DELETE CASCADE,
    surface             TEXT NOT NULL DEFAULT '',
    normalized_surface  TEXT NOT NULL DEFAULT '',
    source              TEXT NOT NULL,

    -- Page context
    page_url            TEXT NOT NULL DEFAULT '',
    page_host           TEXT NOT NULL DEFAULT '',
    page_title          TEXT,
    context_sentence    TEXT,
    source_wordbank_id  TEXT,

    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_encounters_vocab ON encounters(vocab_id);
CREATE INDEX IF NOT EXISTS idx_encounters_page ON encounters(page_url);
CREATE INDEX IF NOT EXISTS idx_encounters_created ON encounters(created_at);
CREATE INDEX IF NOT EXISTS idx_encounters_vocab_source ON encounters(vocab_id, source);

-- Saved traces (one per text and page)
CREATE TABLE IF NOT EXISTS traces (
    trace_id            TEXT PRIMARY KEY,
    source_text         TEXT NOT NULL,
    lemma               TEXT NOT NULL,
    language            TEXT NOT NULL DEFAULT 'en',
    page_url            TEXT NOT NULL,
    page_host           TEXT NOT NULL DEFAULT '',
    page_title          TEXT,
    context_sentence    TEXT,
    fingerprint         TEXT UNIQUE NOT NULL,
    vocab_id            TEXT REFERENCES vocabulary(vocab_id) ON DELETE SET NULL,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_traces_lemma ON traces(lemma, language);
CREATE INDEX IF NOT EXISTS idx_traces_created ON traces(created_at DESC);

-- Lemma statistics table
CREATE TABLE IF NOT EXISTS lemma_stats (
    lemma_stat_id       TEXT PRIMARY KEY,
    lemma               TEXT NOT NULL,
    normalized_lemma    TEXT UNIQUE NOT NULL,
    language            TEXT NOT NULL DEFAULT 'en',

    -- Counters
    total_count         INTEGER NOT NULL DEFAULT 0,
    page_count          INTEGER NOT NULL DEFAULT 0,
    first_seen_at       TEXT,
    last_seen_at        TEXT,
    last_page_url       TEXT,
    last_page_host      TEXT,
    in_wordbank         BOOLEAN NOT NULL DEFAULT FALSE,
    dict_rank           INTEGER,

    -- Promotion
    promoted_vocab_id   TEXT REFERENCES vocabulary(vocab_id) ON DELETE SET NULL,
    promoted_at         TEXT,
    promotion_reason    TEXT,
    cooldown_until      TEXT,

    updated_at          TEXT
);

CREATE INDEX IF NOT EXISTS idx_lemma_stats_last_seen ON lemma_stats(last_seen_at);
CREATE INDEX IF NOT EXISTS idx_lemma_stats_total ON lemma_stats(total_count DESC);

-- Settings table (values are JSON)
CREATE TABLE IF NOT EXISTS settings (
    key                 TEXT PRIMARY KEY,
    value               TEXT NOT NULL,
    updated_at          TEXT
);

-- Wordbanks table
CREATE TABLE IF NOT EXISTS wordbanks (
    wordbank_id         TEXT PRIMARY KEY,
    code                TEXT NOT NULL DEFAULT 'custom',
    name                TEXT NOT NULL,
    language            TEXT NOT NULL DEFAULT 'en',
    built_in            BOOLEAN NOT NULL DEFAULT FALSE,
    enabled             BOOLEAN NOT NULL DEFAULT FALSE,
    word_count          INTEGER NOT NULL DEFAULT 0,
    created_at          TEXT,
    updated_at          TEXT
);

-- Wordbank words table
CREATE TABLE IF NOT EXISTS wordbank_words (
    word_id             TEXT PRIMARY KEY,
    wordbank_id         TEXT NOT NULL REFERENCES wordbanks(wordbank_id) ON DELETE CASCADE,
    lemma               TEXT NOT NULL,
    surface             TEXT NOT NULL,
    normalized          TEXT NOT NULL,
    rank                INTEGER,
    created_at          TEXT,

    UNIQUE(wordbank_id, normalized)
);

CREATE INDEX IF NOT EXISTS idx_wordbank_words_normalized ON wordbank_words(normalized);
"""

_LOCK_RESET_COLUMNS = """
    score_locked = FALSE,
    noise_managed = FALSE,
    familiarity_score = 0,
    is_known = FALSE
"""


def _new_id() -> str:
    return str(uuid.uuid4())


class SQLiteStorage:
    """SQLite storage backend for vocabtrace.

    Example:
        >>> storage = SQLiteStorage("./vocabtrace.db")
        >>> entry = storage.upsert_vocab("ubiquitous", "en", now)
        >>> storage.record_encounter(entry.vocab_id, "ubiquitous", "lookup", now)
    """

    def __init__(self, db_path: str | Path):
        """Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file (created if not exists)
        """
        self.db_path = Path(db_path)
        self._ensure_schema()

    @contextmanager
    def _connection(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """Context manager for database connection.

        Args:
            immediate: Take the write lock up front (BEGIN IMMEDIATE)
        """
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=SQLITE_TIMEOUT)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Database error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        """Ensure database schema exists and is up to date."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
            )
            if cursor.fetchone() is None:
                conn.executescript(SCHEMA_SQL)
                conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)",
                    [SCHEMA_VERSION],
                )
                logger.debug(f"Created schema v{SCHEMA_VERSION} in {self.db_path}")

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_settings(self) -> dict[str, Any]:
        """Read every setting, decoding the stored JSON values.

        Rows that do not decode are skipped.
        """
        with self._connection() as conn:
            rows = conn.execute("SELECT key, value FROM settings").fetchall()

        settings = {}
        for row in rows:
            try:
                settings[row["key"]] = json.loads(row["value"])
            except (TypeError, ValueError):
                logger.warning(f"Skipping malformed setting {row['key']!r}")
        return settings

    def put_settings(self, values: dict[str, Any], now: datetime) -> None:
        """Write settings, replacing existing values."""
        ts = to_timestamp(now)
        with self._connection() as conn:
            conn.executemany(
                """
                INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                [(key, json.dumps(value), ts) for key, value in values.items()],
            )

    def ensure_settings(self, defaults: dict[str, Any], now: datetime) -> None:
        """Insert default settings that are not stored yet."""
        ts = to_timestamp(now)
        with self._connection() as conn:
            conn.executemany(
                "INSERT OR IGNORE INTO settings (key, value, updated_at) VALUES (?, ?, ?)",
                [(key, json.dumps(value), ts) for key, value in defaults.items()],
            )

    # =========================================================================
    # WORDBANK OPERATIONS
    # =========================================================================

    def create_wordbank(
        self,
        name: str,
        now: datetime,
        code: str = "custom",
        language: str = DEFAULT_LANGUAGE,
        enabled: bool = True,
        built_in: bool = False,
        wordbank_id: Optional[str] = None,
    ) -> Wordbank:
        """Create a wordbank.

        Raises:
            ValidationError: If a wordbank with the same name exists
        """
        wordbank_id = wordbank_id or _new_id()
        ts = to_timestamp(now)

        with self._connection(immediate=True) as conn:
            duplicate = conn.execute(
                """
                SELECT wordbank_id FROM wordbanks
                WHERE (language = ? AND lower(trim(name)) = lower(?)) OR wordbank_id = ?
                """,
                [language, name.strip(), wordbank_id],
            ).fetchone()
            if duplicate:
                raise ValidationError(f"Wordbank already exists: {name}")

            conn.execute(
                """
                INSERT INTO wordbanks
                    (wordbank_id, code, name, language, built_in, enabled, word_count, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?)
                """,
                [wordbank_id, code, name.strip(), language, built_in, enabled, ts, ts],
            )

        return Wordbank(
            wordbank_id=wordbank_id,
            code=code,
            name=name.strip(),
            language=language,
            built_in=built_in,
            enabled=enabled,
        )

    def get_wordbank(self, wordbank_id: str) -> Optional[Wordbank]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM wordbanks WHERE wordbank_id = ?", [wordbank_id]
            ).fetchone()
            return self._row_to_wordbank(row) if row else None

    def list_wordbanks(self, language: Optional[str] = None) -> list[Wordbank]:
        sql = "SELECT * FROM wordbanks"
        params = []
        if language:
            sql += " WHERE language = ?"
            params.append(language)
        sql += " ORDER BY built_in DESC, name"

        with self._connection() as conn:
            return [self._row_to_wordbank(row) for row in conn.execute(sql, params)]

    def set_wordbank_enabled(self, wordbank_id: str, enabled: bool, now: datetime) -> bool:
        """Enable or disable a wordbank. Returns False if it doesn't exist."""
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE wordbanks SET enabled = ?, updated_at = ? WHERE wordbank_id = ?",
                [enabled, to_timestamp(now), wordbank_id],
            )
            return cursor.rowcount > 0

    def add_wordbank_words(
        self,
        wordbank_id: str,
        words: Iterable[tuple[str, str, Optional[int]]],
        now: datetime,
    ) -> int:
        """Add (normalized lemma, surface, rank) words to a wordbank.

        Words already in the wordbank are ignored.

        Returns:
            Number of words added
        """
        ts = to_timestamp(now)
        added = 0
        with self._connection(immediate=True) as conn:
            for lemma, surface, rank in words:
                cursor = conn.execute(
                    """
                    INSERT INTO wordbank_words
                        (word_id, wordbank_id, lemma, surface, normalized, rank, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(wordbank_id, normalized) DO NOTHING
                    """,
                    [_new_id(), wordbank_id, lemma, surface, lemma, rank, ts],
                )
                added += cursor.rowcount

            conn.execute(
                """
                UPDATE wordbanks SET
                    word_count = (SELECT COUNT(*) FROM wordbank_words WHERE wordbank_id = ?),
                    updated_at = ?
                WHERE wordbank_id = ?
                """,
                [wordbank_id, ts, wordbank_id],
            )
        return added

    def get_wordbank_lemmas(self, wordbank_id: str) -> set[str]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT normalized FROM wordbank_words WHERE wordbank_id = ?", [wordbank_id]
            )
            return {row["normalized"] for row in rows}

    def get_enabled_wordbank_rows(self) -> list[sqlite3.Row]:
        """Words of every enabled wordbank, with the wordbank code."""
        with self._connection() as conn:
            return conn.execute(
                """
                SELECT w.wordbank_id, b.code, w.lemma, w.surface, w.normalized
                FROM wordbank_words w
                JOIN wordbanks b ON b.wordbank_id = w.wordbank_id
                WHERE b.enabled = TRUE
                ORDER BY w.wordbank_id, w.rank
                """
            ).fetchall()

    # =========================================================================
    # VOCABULARY OPERATIONS
    # =========================================================================

    def get_vocab(self, vocab_id: str) -> Optional[VocabularyEntry]:
        """Get vocabulary entry by ID (soft-deleted entries included)."""
        with self._connection() as conn:
            return self._fetch_vocab(conn, vocab_id)

    def find_vocab(
        self,
        lemma: str,
        language: str = DEFAULT_LANGUAGE,
        include_deleted: bool = False,
    ) -> Optional[VocabularyEntry]:
        """Find the entry for a lemma, preferring the live one."""
        with self._connection() as conn:
            return self._find_vocab(conn, lemma, language, include_deleted)

    def find_vocab_many(
        self,
        lemmas: Iterable[str],
        language: str = DEFAULT_LANGUAGE,
        include_deleted: bool = False,
    ) -> dict[str, VocabularyEntry]:
        """Entries for a set of lemmas, keyed by lemma.

        With include_deleted, a lemma that has no live entry maps to its
        most recently deleted one.
        """
        lemmas = list(lemmas)
        live_clause = "" if include_deleted else "AND deleted_at IS NULL"
        found: dict[str, VocabularyEntry] = {}
        with self._connection() as conn:
            for chunk in _chunks(lemmas, 500):
                placeholders = ",".join("?" * len(chunk))
                rows = conn.execute(
                    f"""
                    SELECT * FROM vocabulary
                    WHERE language = ? AND lemma IN ({placeholders}) {live_clause}
                    ORDER BY deleted_at IS NULL, deleted_at
                    """,
                    [language, *chunk],
                )
                # Later rows win: oldest deletion first, live entry last
                for row in rows:
                    found[row["lemma"]] = self._row_to_vocab(row)
        return found

    def upsert_vocab(
        self,
        lemma: str,
        language: str,
        now: datetime,
        surface: Optional[str] = None,
        meaning: Optional[str] = None,
        source_type: SourceType = SourceType.MANUAL,
        overwrite: bool = True,
        restore: bool = True,
    ) -> VocabularyEntry:
        """Create or update the entry for a lemma.

        A soft-deleted entry is restored (and rescored) rather than
        duplicated. Without restore it is returned untouched.

        Args:
            lemma: Normalized lemma
            language: Language code
            now: Current time
            surface: Display form
            meaning: Meaning text
            source_type: Origin recorded for new entries
            overwrite: Replace surface and meaning of an existing entry
            restore: Bring back a soft-deleted entry

        Raises:
            ConflictError: If a concurrent writer created the entry first
        """
        ts = to_timestamp(now)
        with self._connection(immediate=True) as conn:
            existing = self._find_vocab(conn, lemma, language, include_deleted=True)

            if existing is None:
                vocab_id = _new_id()
                try:
                    conn.execute(
                        """
                        INSERT INTO vocabulary
                            (vocab_id, lemma, language, surface, meaning, source_type,
                             first_seen_at, last_seen_at, created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        [vocab_id, lemma, language, surface or lemma, meaning or "",
                         source_type.value, ts, ts, ts, ts],
                    )
                except sqlite3.IntegrityError as e:
                    raise ConflictError(f"Entry for {lemma!r} created concurrently") from e
                logger.debug(f"Created vocabulary entry {lemma!r} ({source_type.value})")
                return self._fetch_vocab(conn, vocab_id)

            if existing.is_deleted and not restore:
                return existing

            updates = ["updated_at = ?"]
            params: list[Any] = [ts]
            if existing.is_deleted:
                updates.append("deleted_at = NULL")
            if overwrite and surface:
                updates.append("surface = ?")
                params.append(surface)
            if overwrite and meaning is not None:
                updates.append("meaning = ?")
                params.append(meaning)

            conn.execute(
                f"UPDATE vocabulary SET {', '.join(updates)} WHERE vocab_id = ?",
                [*params, existing.vocab_id],
            )
            if existing.is_deleted:
                self._recalculate(conn, existing.vocab_id, now)
                logger.debug(f"Restored vocabulary entry {lemma!r}")
            return self._fetch_vocab(conn, existing.vocab_id)

    def list_vocab(
        self,
        vocab_filter: VocabFilter = VocabFilter.ALL,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False,
    ) -> tuple[list[VocabularyEntry], int]:
        """List vocabulary with filters.

        Returns:
            Page of entries (most recently updated first) and the total count
        """
        conditions = ["1=1"]
        params: list[Any] = []

        if not include_deleted:
            conditions.append("deleted_at IS NULL")

        if vocab_filter == VocabFilter.NOISE:
            conditions.append("score_locked = TRUE")
        elif vocab_filter == VocabFilter.NORMAL:
            conditions.append("score_locked = FALSE")
        elif vocab_filter == VocabFilter.TRACED:
            conditions.append("is_traced = TRUE")

        if search and search.strip():
            q = f"%{search.strip().lower()}%"
            conditions.append("(lemma LIKE ? OR lower(surface) LIKE ? OR lower(meaning) LIKE ?)")
            params.extend([q, q, q])

        where = " AND ".join(conditions)
        with self._connection() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM vocabulary WHERE {where}", params).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT * FROM vocabulary WHERE {where}
                ORDER BY updated_at DESC, vocab_id
                LIMIT ? OFFSET ?
                """,
                [*params, limit, offset],
            ).fetchall()
        return [self._row_to_vocab(row) for row in rows], total

    def delete_vocab(self, vocab_id: str, now: datetime, hard: bool = False) -> bool:
        """Soft- or hard-delete an entry. Returns False if it doesn't exist."""
        with self._connection() as conn:
            if hard:
                cursor = conn.execute("DELETE FROM vocabulary WHERE vocab_id = ?", [vocab_id])
            else:
                ts = to_timestamp(now)
                cursor = conn.execute(
                    """
                    UPDATE vocabulary SET deleted_at = ?, updated_at = ?
                    WHERE vocab_id = ? AND deleted_at IS NULL
                    """,
                    [ts, ts, vocab_id],
                )
            return cursor.rowcount > 0

    def recalculate(self, vocab_id: str, now: datetime) -> Optional[float]:
        """Recompute an entry's score from its encounters."""
        with self._connection(immediate=True) as conn:
            return self._recalculate(conn, vocab_id, now)

    def rate(self, vocab_id: str, source: EncounterSource, now: datetime) -> VocabularyEntry:
        """Record a rating encounter and recompute, atomically.

        Raises:
            NotFoundError: If the entry doesn't exist
            ValidationError: If the entry is noise-locked
        """
        with self._connection(immediate=True) as conn:
            entry = self._fetch_vocab(conn, vocab_id)
            if entry is None or entry.is_deleted:
                raise NotFoundError(f"Vocabulary not found: {vocab_id}")
            if entry.score_locked:
                raise ValidationError("Cannot rate a score-locked word")

            self._insert_encounter(conn, entry, source.value, now, surface=entry.surface)
            conn.execute(
                "UPDATE vocabulary SET last_review_at = ? WHERE vocab_id = ?",
                [to_timestamp(now), vocab_id],
            )
            self._recalculate(conn, vocab_id, now)
            return self._fetch_vocab(conn, vocab_id)

    def set_traced(self, vocab_id: str, traced: bool, now: datetime) -> VocabularyEntry:
        """Flip the traced flag and recompute, atomically.

        Tracing a noise-locked entry releases the lock.

        Raises:
            NotFoundError: If the entry doesn't exist
        """
        with self._connection(immediate=True) as conn:
            entry = self._fetch_vocab(conn, vocab_id)
            if entry is None or entry.is_deleted:
                raise NotFoundError(f"Vocabulary not found: {vocab_id}")
            if entry.is_traced == traced:
                return entry

            self._apply_traced(conn, entry, traced, now)
            return self._fetch_vocab(conn, vocab_id)

    def unlock(self, vocab_id: str, now: datetime) -> VocabularyEntry:
        """Release a noise lock.

        Raises:
            NotFoundError: If the entry doesn't exist
            ValidationError: If the entry is not locked
        """
        with self._connection(immediate=True) as conn:
            entry = self._fetch_vocab(conn, vocab_id)
            if entry is None or entry.is_deleted:
                raise NotFoundError(f"Vocabulary not found: {vocab_id}")
            if not entry.score_locked:
                raise ValidationError(f"Word is not locked: {entry.lemma}")

            self._unlock(conn, entry, now)
            return self._fetch_vocab(conn, vocab_id)

    def count_active_traced(self) -> int:
        """Entries that are traced, not yet known and not deleted."""
        with self._connection() as conn:
            return self._count_active_traced(conn)

    def get_traced_words(self) -> list[VocabularyEntry]:
        """Active traced entries, newest first."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM vocabulary
                WHERE is_traced = TRUE AND is_known = FALSE AND deleted_at IS NULL
                ORDER BY created_at DESC, vocab_id
                """
            ).fetchall()
        return [self._row_to_vocab(row) for row in rows]

    # =========================================================================
    # ENCOUNTER OPERATIONS
    # =========================================================================

    def record_encounter(
        self,
        vocab_id: str,
        surface: str,
        source: str,
        now: datetime,
        page_url: str = "",
        page_host: str = "",
        page_title: Optional[str] = None,
        context_sentence: Optional[str] = None,
        source_wordbank_id: Optional[str] = None,
        dedup: bool = False,
        allow_deleted: bool = False,
    ) -> tuple[Encounter, bool, bool]:
        """Record an encounter and recompute the entry's score, atomically.

        Args:
            vocab_id: Owning entry
            surface: Text as seen
            source: Encounter source tag
            now: Current time
            page_url: Page URL
            page_host: Page host
            page_title: Page title
            context_sentence: Sentence around the word
            source_wordbank_id: Attributed wordbank
            dedup: Touch a same-page, same-source encounter from the last
                24 hours instead of inserting
            allow_deleted: Attach to a soft-deleted entry without restoring,
                tracing or rescoring it

        Returns:
            (encounter, created, auto_unlocked)

        Raises:
            NotFoundError: If the entry doesn't exist, or is deleted and
                allow_deleted is off
        """
        ts = to_timestamp(now)
        with self._connection(immediate=True) as conn:
            entry = self._fetch_vocab(conn, vocab_id)
            if entry is None or (entry.is_deleted and not allow_deleted):
                raise NotFoundError(f"Vocabulary not found: {vocab_id}")

            if dedup:
                window_start = to_timestamp(now - timedelta(hours=DEDUP_WINDOW_HOURS))
                row = conn.execute(
                    """
                    SELECT * FROM encounters
                    WHERE vocab_id = ? AND page_url = ? AND source = ? AND created_at > ?
                    ORDER BY created_at DESC LIMIT 1
                    """,
                    [vocab_id, page_url, source, window_start],
                ).fetchone()
                if row is not None:
                    conn.execute(
                        "UPDATE encounters SET updated_at = ? WHERE encounter_id = ?",
                        [ts, row["encounter_id"]],
                    )
                    encounter = self._row_to_encounter(row)
                    encounter.updated_at = now
                    return encounter, False, False

            encounter = self._insert_encounter(
                conn,
                entry,
                source,
                now,
                surface=surface or entry.surface or entry.lemma,
                page_url=page_url,
                page_host=page_host,
                page_title=page_title,
                context_sentence=context_sentence,
                source_wordbank_id=source_wordbank_id,
            )
            conn.execute(
                "UPDATE vocabulary SET last_seen_at = ? WHERE vocab_id = ?", [ts, vocab_id]
            )
            if entry.is_deleted:
                return encounter, True, False

            if source == EncounterSource.EXPLICIT_TRACE.value and not entry.is_traced:
                self._apply_traced(conn, entry, True, now)
            else:
                self._recalculate(conn, vocab_id, now)

            auto_unlocked = False
            if source == EncounterSource.DICTIONARY_LOOKUP.value and entry.score_locked:
                lookups = conn.execute(
                    "SELECT COUNT(*) FROM encounters WHERE vocab_id = ? AND source = ?",
                    [vocab_id, source],
                ).fetchone()[0]
                if lookups >= NOISE_UNLOCK_LOOKUPS:
                    self._unlock(conn, entry, now)
                    auto_unlocked = True
                    logger.info(f"Auto-unlocked noise word {entry.lemma!r} after {lookups} lookups")

            return encounter, True, auto_unlocked

    def delete_encounter(self, encounter_id: str, now: datetime) -> DeleteResult:
        """Delete an encounter, cleaning up its entry.

        Removing the last explicit-trace encounter un-traces the entry.
        An entry left with no encounters is deleted unless it is manual,
        traced or locked.
        """
        with self._connection(immediate=True) as conn:
            row = conn.execute(
                "SELECT * FROM encounters WHERE encounter_id = ?", [encounter_id]
            ).fetchone()
            if row is None:
                return DeleteResult(success=True, deleted=False)

            vocab_id = row["vocab_id"]
            conn.execute("DELETE FROM encounters WHERE encounter_id = ?", [encounter_id])

            entry = self._fetch_vocab(conn, vocab_id)
            if entry is None:
                return DeleteResult(success=True, deleted=True)

            if row["source"] == EncounterSource.EXPLICIT_TRACE.value and entry.is_traced:
                remaining_traces = conn.execute(
                    "SELECT COUNT(*) FROM encounters WHERE vocab_id = ? AND source = ?",
                    [vocab_id, EncounterSource.EXPLICIT_TRACE.value],
                ).fetchone()[0]
                if remaining_traces == 0:
                    self._apply_traced(conn, entry, False, now)
                    entry = self._fetch_vocab(conn, vocab_id)

            if self._delete_if_orphan(conn, entry):
                return DeleteResult(success=True, deleted=True, vocab_deleted=True)

            self._recalculate(conn, vocab_id, now)
            return DeleteResult(success=True, deleted=True)

    def get_encounters(
        self,
        vocab_id: str,
        limit: int = 50,
        offset: int = 0,
        page_host: Optional[str] = None,
        page_url: Optional[str] = None,
    ) -> tuple[list[Encounter], int]:
        """Encounters of an entry, newest first, with the total count.

        page_host and page_url narrow the result to one site or page.
        """
        where = "vocab_id = ?"
        params: list[Any] = [vocab_id]
        if page_host:
            where += " AND page_host = ?"
            params.append(page_host)
        if page_url:
            where += " AND page_url = ?"
            params.append(page_url)

        with self._connection() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM encounters WHERE {where}", params
            ).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT * FROM encounters WHERE {where}
                ORDER BY created_at DESC, encounter_id
                LIMIT ? OFFSET ?
                """,
                [*params, limit, offset],
            ).fetchall()
        return [self._row_to_encounter(row) for row in rows], total

    def get_encounter_sources(self, vocab_id: str) -> list[str]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT source FROM encounters WHERE vocab_id = ? ORDER BY created_at",
                [vocab_id],
            )
            return [row["source"] for row in rows]

    def get_encounter_summary(self, vocab_ids: Iterable[str]) -> dict[str, tuple[int, list[str]]]:
        """Encounter count and source tags per entry."""
        vocab_ids = list(vocab_ids)
        summary: dict[str, tuple[int, list[str]]] = {}
        with self._connection() as conn:
            for chunk in _chunks(vocab_ids, 500):
                placeholders = ",".join("?" * len(chunk))
                rows = conn.execute(
                    f"SELECT vocab_id, source FROM encounters WHERE vocab_id IN ({placeholders})",
                    chunk,
                )
                for row in rows:
                    count, sources = summary.get(row["vocab_id"], (0, []))
                    sources.append(row["source"])
                    summary[row["vocab_id"]] = (count + 1, sources)
        return summary

    def get_latest_contexts(
        self, vocab_ids: Iterable[str]
    ) -> dict[str, tuple[Optional[str], Optional[str]]]:
        """Most recent (context sentence, page title) per entry.

        Only encounters that carry a sentence or a title are considered.
        """
        vocab_ids = list(vocab_ids)
        contexts = {}
        with self._connection() as conn:
            for chunk in _chunks(vocab_ids, 500):
                placeholders = ",".join("?" * len(chunk))
                rows = conn.execute(
                    f"""
                    SELECT vocab_id, context_sentence, page_title FROM encounters
                    WHERE vocab_id IN ({placeholders})
                      AND (context_sentence IS NOT NULL OR page_title IS NOT NULL)
                    ORDER BY created_at DESC
                    """,
                    chunk,
                )
                for row in rows:
                    if row["vocab_id"] not in contexts:
                        contexts[row["vocab_id"]] = (row["context_sentence"], row["page_title"])
        return contexts

    # =========================================================================
    # TRACES
    # =========================================================================

    def save_trace(
        self,
        source_text: str,
        lemma: str,
        language: str,
        page_url: str,
        page_host: str,
        now: datetime,
        page_title: Optional[str] = None,
        context_sentence: Optional[str] = None,
    ) -> tuple[Trace, bool]:
        """Save a trace, or touch the one with the same text and page.

        Returns:
            (trace, created)
        """
        fingerprint = trace_fingerprint(source_text, page_url)
        ts = to_timestamp(now)
        with self._connection(immediate=True) as conn:
            row = conn.execute(
                "SELECT trace_id FROM traces WHERE fingerprint = ?", [fingerprint]
            ).fetchone()
            if row is not None:
                conn.execute(
                    """
                    UPDATE traces SET
                        updated_at = ?,
                        page_title = COALESCE(?, page_title),
                        context_sentence = COALESCE(?, context_sentence)
                    WHERE trace_id = ?
                    """,
                    [ts, page_title, context_sentence, row["trace_id"]],
                )
                return self._fetch_trace(conn, row["trace_id"]), False

            trace_id = _new_id()
            conn.execute(
                """
                INSERT INTO traces
                    (trace_id, source_text, lemma, language, page_url, page_host,
                     page_title, context_sentence, fingerprint, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [trace_id, source_text.strip(), lemma, language, page_url, page_host,
                 page_title, context_sentence, fingerprint, ts, ts],
            )
            logger.debug(f"Saved trace {source_text.strip()!r} on {page_host}")
            return self._fetch_trace(conn, trace_id), True

    def link_trace(self, trace_id: str, vocab_id: str, now: datetime) -> None:
        """Point a trace and its entry at each other."""
        with self._connection(immediate=True) as conn:
            conn.execute("UPDATE traces SET vocab_id = ? WHERE trace_id = ?", [vocab_id, trace_id])
            conn.execute(
                "UPDATE vocabulary SET source_trace_id = ?, updated_at = ? WHERE vocab_id = ?",
                [trace_id, to_timestamp(now), vocab_id],
            )

    def get_trace(self, trace_id: str) -> Optional[Trace]:
        with self._connection() as conn:
            return self._fetch_trace(conn, trace_id)

    def get_traces(
        self,
        limit: int = 50,
        offset: int = 0,
        search: Optional[str] = None,
    ) -> tuple[list[Trace], int]:
        """Saved traces, newest first, with the total count.

        search matches the saved text or its context sentence.
        """
        where = ""
        params: list[Any] = []
        if search and search.strip():
            pattern = f"%{search.strip().lower()}%"
            where = "WHERE lower(source_text) LIKE ? OR lower(COALESCE(context_sentence, '')) LIKE ?"
            params = [pattern, pattern]

        with self._connection() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM traces {where}", params).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT * FROM traces {where}
                ORDER BY created_at DESC, trace_id
                LIMIT ? OFFSET ?
                """,
                [*params, limit, offset],
            ).fetchall()
        return [self._row_to_trace(row) for row in rows], total

    def delete_trace(self, trace_id: str, now: datetime) -> DeleteResult:
        """Delete a trace. A missing id is a no-op success.

        When no other trace of the same lemma remains, the entry stops
        being traced. The entry's trace link moves to the newest
        remaining trace.
        """
        with self._connection(immediate=True) as conn:
            trace = self._fetch_trace(conn, trace_id)
            if trace is None:
                return DeleteResult(success=True, deleted=False)

            conn.execute("DELETE FROM traces WHERE trace_id = ?", [trace_id])

            entry = self._find_vocab(conn, trace.lemma, trace.language, include_deleted=False)
            if entry is None:
                return DeleteResult(success=True, deleted=True)

            remaining = conn.execute(
                """
                SELECT trace_id FROM traces WHERE lemma = ? AND language = ?
                ORDER BY updated_at DESC LIMIT 1
                """,
                [trace.lemma, trace.language],
            ).fetchone()
            if remaining is None and entry.is_traced:
                self._apply_traced(conn, entry, False, now)
                logger.debug(f"Untraced {entry.lemma!r}: last trace deleted")
            if entry.source_trace_id == trace_id:
                conn.execute(
                    "UPDATE vocabulary SET source_trace_id = ? WHERE vocab_id = ?",
                    [remaining["trace_id"] if remaining else None, entry.vocab_id],
                )
            return DeleteResult(success=True, deleted=True)

    # =========================================================================
    # LEMMA STATISTICS
    # =========================================================================

    def record_sightings(
        self,
        counts: dict[str, int],
        page_url: str,
        page_host: str,
        now: datetime,
        language: str = DEFAULT_LANGUAGE,
        wordbank_lemmas: Optional[set[str]] = None,
        ranks: Optional[dict[str, Optional[int]]] = None,
    ) -> dict[str, LemmaStat]:
        """Fold one page's qualified token counts into the lemma stats.

        Each lemma is a single UPSERT, so concurrent scans never lose an
        increment. page_count grows only when the page differs from the
        last page recorded for the lemma.

        Returns:
            Updated stats keyed by normalized lemma
        """
        wordbank_lemmas = wordbank_lemmas or set()
        ranks = ranks or {}
        ts = to_timestamp(now)

        with self._connection(immediate=True) as conn:
            for lemma, count in counts.items():
                conn.execute(
                    """
                    INSERT INTO lemma_stats
                        (lemma_stat_id, lemma, normalized_lemma, language, total_count, page_count,
                         first_seen_at, last_seen_at, last_page_url, last_page_host,
                         in_wordbank, dict_rank, updated_at)
                    VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(normalized_lemma) DO UPDATE SET
                        total_count = total_count + excluded.total_count,
                        page_count = page_count
                            + (CASE WHEN last_page_url IS excluded.last_page_url THEN 0 ELSE 1 END),
                        last_seen_at = excluded.last_seen_at,
                        last_page_url = excluded.last_page_url,
                        last_page_host = excluded.last_page_host,
                        in_wordbank = excluded.in_wordbank,
                        dict_rank = excluded.dict_rank,
                        updated_at = excluded.updated_at
                    """,
                    [_new_id(), lemma, lemma, language, count, ts, ts, page_url, page_host,
                     lemma in wordbank_lemmas, ranks.get(lemma), ts],
                )

            return self._fetch_lemma_stats(conn, list(counts))

    def get_lemma_stats(self, lemmas: Iterable[str]) -> dict[str, LemmaStat]:
        with self._connection() as conn:
            return self._fetch_lemma_stats(conn, list(lemmas))

    def promote(
        self,
        normalized_lemma: str,
        reason: str,
        now: datetime,
        lock_as_noise: bool = False,
        surface: Optional[str] = None,
        source_type: SourceType = SourceType.ENVIRONMENT,
        source_wordbank_id: Optional[str] = None,
    ) -> Optional[str]:
        """Promote a lemma stat to a vocabulary entry in one transaction.

        Re-reads the stat, reuses the entry for (lemma, language) when one
        exists (a soft-deleted entry is linked but stays deleted) or
        inserts a new one, then sets promoted_vocab_id only while it is
        still NULL.

        Returns:
            The linked vocab_id, or None if the stat is missing or already promoted

        Raises:
            ConflictError: If another writer promoted the lemma first
        """
        ts = to_timestamp(now)
        with self._connection(immediate=True) as conn:
            stats = self._fetch_lemma_stats(conn, [normalized_lemma])
            stat = stats.get(normalized_lemma)
            if stat is None or stat.is_promoted:
                return None

            entry = self._find_vocab(conn, stat.normalized_lemma, stat.language, include_deleted=True)
            if entry is not None:
                vocab_id = entry.vocab_id
            else:
                vocab_id = _new_id()
                score = SCORE_CEILING if lock_as_noise else 0.0
                try:
                    conn.execute(
                        """
                        INSERT INTO vocabulary
                            (vocab_id, lemma, language, surface, familiarity_score, is_known,
                             score_locked, noise_managed, source_type, source_wordbank_id,
                             first_seen_at, last_seen_at, created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        [vocab_id, stat.normalized_lemma, stat.language, surface or stat.lemma,
                         score, is_known(score), lock_as_noise, lock_as_noise,
                         source_type.value, source_wordbank_id,
                         to_timestamp(stat.first_seen_at) or ts, ts, ts, ts],
                    )
                except sqlite3.IntegrityError as e:
                    raise ConflictError(f"Entry for {normalized_lemma!r} created concurrently") from e

            cursor = conn.execute(
                """
                UPDATE lemma_stats SET
                    promoted_vocab_id = ?, promoted_at = ?, promotion_reason = ?, updated_at = ?
                WHERE lemma_stat_id = ? AND promoted_vocab_id IS NULL
                """,
                [vocab_id, ts, reason, ts, stat.lemma_stat_id],
            )
            if cursor.rowcount == 0:
                raise ConflictError(f"Lemma {normalized_lemma!r} promoted concurrently")

            logger.debug(f"Promoted {normalized_lemma!r} ({reason}) -> {vocab_id}")
            return vocab_id

    def get_recent_lemma_stats(
        self, since: datetime, min_count: int, limit: int
    ) -> list[tuple[LemmaStat, Optional[bool]]]:
        """Lemma stats seen since a time, with the linked entry's known flag.

        Ordered environment words first, then by count, then by rank.
        """
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT s.*, v.is_known AS vocab_is_known FROM lemma_stats s
                LEFT JOIN vocabulary v ON v.vocab_id = s.promoted_vocab_id
                WHERE s.last_seen_at >= ? AND s.total_count >= ?
                ORDER BY s.in_wordbank ASC, s.total_count DESC, COALESCE(s.dict_rank, 0) DESC
                LIMIT ?
                """,
                [to_timestamp(since), min_count, limit],
            ).fetchall()

        result = []
        for row in rows:
            known = row["vocab_is_known"]
            result.append((self._row_to_lemma_stat(row), None if known is None else bool(known)))
        return result

    # =========================================================================
    # NOISE RECONCILIATION
    # =========================================================================

    def list_managed_locked(self) -> list[VocabularyEntry]:
        """Entries locked by the noise reconciler."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM vocabulary
                WHERE score_locked = TRUE AND noise_managed = TRUE
                ORDER BY lemma
                """
            ).fetchall()
        return [self._row_to_vocab(row) for row in rows]

    def apply_noise_changes(
        self,
        unlock_ids: Iterable[str],
        lock_ids: Iterable[str],
        create_lemmas: Iterable[str],
        now: datetime,
        language: str = DEFAULT_LANGUAGE,
    ) -> int:
        """Apply one chunk of a noise plan in a single transaction.

        Each write re-checks its precondition, so entries traced or
        deleted since the plan was made are left alone.

        Returns:
            Number of rows written
        """
        ts = to_timestamp(now)
        writes = 0
        with self._connection(immediate=True) as conn:
            for vocab_id in unlock_ids:
                entry = self._fetch_vocab(conn, vocab_id)
                if entry is None or not entry.score_locked:
                    continue
                self._unlock(conn, entry, now)
                writes += 1

            for vocab_id in lock_ids:
                cursor = conn.execute(
                    """
                    UPDATE vocabulary SET
                        score_locked = TRUE, noise_managed = TRUE,
                        familiarity_score = ?, is_known = TRUE, updated_at = ?
                    WHERE vocab_id = ? AND is_traced = FALSE AND deleted_at IS NULL
                      AND NOT (score_locked = TRUE AND noise_managed = TRUE)
                    """,
                    [SCORE_CEILING, ts, vocab_id],
                )
                writes += cursor.rowcount

            for lemma in create_lemmas:
                cursor = conn.execute(
                    """
                    INSERT INTO vocabulary
                        (vocab_id, lemma, language, surface, familiarity_score, is_known,
                         score_locked, noise_managed, source_type, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, TRUE, TRUE, TRUE, ?, ?, ?)
                    ON CONFLICT DO NOTHING
                    """,
                    [_new_id(), lemma, language, lemma, SCORE_CEILING,
                     SourceType.NOISE.value, ts, ts],
                )
                writes += cursor.rowcount

        return writes

    # =========================================================================
    # AUTO-TRACE
    # =========================================================================

    def get_trace_candidates(
        self, min_encounters: int
    ) -> list[tuple[VocabularyEntry, int, datetime]]:
        """Untraced, unknown, unlocked live entries with enough encounters.

        Returns:
            (entry, encounter count, last encounter time) tuples
        """
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT v.*, COUNT(e.encounter_id) AS encounter_count,
                       MAX(e.created_at) AS last_encounter_at
                FROM vocabulary v
                JOIN encounters e ON e.vocab_id = v.vocab_id
                WHERE v.is_traced = FALSE AND v.is_known = FALSE
                  AND v.score_locked = FALSE AND v.deleted_at IS NULL
                GROUP BY v.vocab_id
                HAVING COUNT(e.encounter_id) >= ?
                """,
                [min_encounters],
            ).fetchall()

        return [
            (self._row_to_vocab(row), row["encounter_count"], from_timestamp(row["last_encounter_at"]))
            for row in rows
        ]

    def trace_for_pool(self, vocab_ids: list[str], pool_size: int, now: datetime) -> list[str]:
        """Trace entries in order until the active pool is full.

        The pool size is re-checked under the write lock.

        Returns:
            IDs that were traced
        """
        traced = []
        with self._connection(immediate=True) as conn:
            slots = pool_size - self._count_active_traced(conn)
            for vocab_id in vocab_ids:
                if slots <= 0:
                    break
                entry = self._fetch_vocab(conn, vocab_id)
                if (
                    entry is None
                    or entry.is_deleted
                    or entry.is_traced
                    or entry.is_known
                    or entry.score_locked
                ):
                    continue
                self._apply_traced(conn, entry, True, now)
                traced.append(vocab_id)
                slots -= 1
        return traced

    # =========================================================================
    # REVIEW
    # =========================================================================

    def get_review_candidates(
        self, exclude_ids: Iterable[str] = (), traced_only: bool = False
    ) -> list[VocabularyEntry]:
        """Live, unlocked, unknown entries eligible for review."""
        exclude = set(exclude_ids)
        sql = """
            SELECT * FROM vocabulary
            WHERE deleted_at IS NULL AND score_locked = FALSE AND is_known = FALSE
        """
        if traced_only:
            sql += " AND is_traced = TRUE"
        sql += " ORDER BY vocab_id"

        with self._connection() as conn:
            rows = conn.execute(sql).fetchall()
        return [self._row_to_vocab(row) for row in rows if row["vocab_id"] not in exclude]

    # =========================================================================
    # CLEANUP
    # =========================================================================

    def cleanup_stale(
        self,
        cutoff: datetime,
        min_count: int,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> CleanupResult:
        """Delete stale low-count lemma stats and their old encounters.

        A stat is stale when it was last seen before the cutoff, has fewer
        than min_count sightings and was never promoted. Encounters older
        than the cutoff whose surface matches a stale lemma are removed,
        and entries left without encounters are deleted unless they are
        traced, locked or manual. Surviving entries that lost
        encounters are rescored. Malformed stat rows are skipped.
        """
        result = CleanupResult(cutoff=cutoff, dry_run=dry_run)
        cutoff_ts = to_timestamp(cutoff)

        with self._connection(immediate=not dry_run) as conn:
            rows = conn.execute(
                "SELECT * FROM lemma_stats WHERE promoted_vocab_id IS NULL"
            ).fetchall()

            stale_ids = []
            stale_lemmas = set()
            for row in rows:
                try:
                    stat = self._row_to_lemma_stat(row)
                    if stat.last_seen_at is None:
                        raise ValueError("missing last_seen_at")
                except (TypeError, ValueError) as e:
                    result.skipped_rows += 1
                    logger.warning(f"Skipping malformed lemma stat {row['lemma_stat_id']}: {e}")
                    continue
                if stat.last_seen_at < cutoff and stat.total_count < min_count:
                    stale_ids.append(stat.lemma_stat_id)
                    stale_lemmas.add(stat.normalized_lemma)

            stale_encounters = []
            for chunk in _chunks(sorted(stale_lemmas), 500):
                placeholders = ",".join("?" * len(chunk))
                stale_encounters.extend(
                    conn.execute(
                        f"""
                        SELECT encounter_id, vocab_id FROM encounters
                        WHERE created_at < ? AND normalized_surface IN ({placeholders})
                        """,
                        [cutoff_ts, *chunk],
                    ).fetchall()
                )

            removed_per_vocab: dict[str, int] = {}
            for row in stale_encounters:
                removed_per_vocab[row["vocab_id"]] = removed_per_vocab.get(row["vocab_id"], 0) + 1

            orphaned = []
            for vocab_id, removed in removed_per_vocab.items():
                total = conn.execute(
                    "SELECT COUNT(*) FROM encounters WHERE vocab_id = ?", [vocab_id]
                ).fetchone()[0]
                if total > removed:
                    continue
                entry = self._fetch_vocab(conn, vocab_id)
                if entry is None or entry.is_traced or entry.score_locked or entry.is_manual:
                    continue
                orphaned.append(vocab_id)

            result.deleted_encounters = len(stale_encounters)
            result.deleted_lemma_stats = len(stale_ids)
            result.deleted_vocabulary = len(orphaned)

            if dry_run:
                return result

            conn.executemany(
                "DELETE FROM encounters WHERE encounter_id = ?",
                [(row["encounter_id"],) for row in stale_encounters],
            )
            conn.executemany(
                "DELETE FROM lemma_stats WHERE lemma_stat_id = ?", [(i,) for i in stale_ids]
            )
            conn.executemany(
                "DELETE FROM vocabulary WHERE vocab_id = ?", [(i,) for i in orphaned]
            )
            rescore_at = now or utc_now()
            for vocab_id in removed_per_vocab:
                if vocab_id not in orphaned:
                    self._recalculate(conn, vocab_id, rescore_at)

        logger.info(
            f"Cleanup removed {result.deleted_encounters} encounters, "
            f"{result.deleted_lemma_stats} lemma stats, {result.deleted_vocabulary} entries"
        )
        return result

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def get_statistics(self) -> VocabularyStats:
        """Get overall store statistics."""
        with self._connection() as conn:
            vocab = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN is_known THEN 1 ELSE 0 END) AS known,
                    SUM(CASE WHEN is_traced THEN 1 ELSE 0 END) AS traced,
                    SUM(CASE WHEN is_traced AND NOT is_known THEN 1 ELSE 0 END) AS active,
                    SUM(CASE WHEN score_locked THEN 1 ELSE 0 END) AS locked
                FROM vocabulary WHERE deleted_at IS NULL
                """
            ).fetchone()
            stats = conn.execute(
                """
                SELECT COUNT(*) AS total,
                       SUM(CASE WHEN promoted_vocab_id IS NOT NULL THEN 1 ELSE 0 END) AS promoted
                FROM lemma_stats
                """
            ).fetchone()
            sources = conn.execute(
                "SELECT source, COUNT(*) AS n FROM encounters GROUP BY source"
            ).fetchall()

        source_counts = {row["source"]: row["n"] for row in sources}
        return VocabularyStats(
            total_vocabulary=vocab["total"] or 0,
            known_vocabulary=vocab["known"] or 0,
            traced_vocabulary=vocab["traced"] or 0,
            active_traced=vocab["active"] or 0,
            noise_locked=vocab["locked"] or 0,
            total_encounters=sum(source_counts.values()),
            total_lemma_stats=stats["total"] or 0,
            promoted_lemma_stats=stats["promoted"] or 0,
            source_counts=source_counts,
        )

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    def _fetch_vocab(self, conn: sqlite3.Connection, vocab_id: str) -> Optional[VocabularyEntry]:
        row = conn.execute("SELECT * FROM vocabulary WHERE vocab_id = ?", [vocab_id]).fetchone()
        return self._row_to_vocab(row) if row else None

    def _find_vocab(
        self,
        conn: sqlite3.Connection,
        lemma: str,
        language: str,
        include_deleted: bool,
    ) -> Optional[VocabularyEntry]:
        sql = "SELECT * FROM vocabulary WHERE lemma = ? AND language = ?"
        if not include_deleted:
            sql += " AND deleted_at IS NULL"
        # Live entry first, then the most recently deleted one
        sql += " ORDER BY deleted_at IS NOT NULL, deleted_at DESC LIMIT 1"
        row = conn.execute(sql, [lemma, language]).fetchone()
        return self._row_to_vocab(row) if row else None

    def _fetch_lemma_stats(self, conn: sqlite3.Connection, lemmas: list[str]) -> dict[str, LemmaStat]:
        stats = {}
        for chunk in _chunks(lemmas, 500):
            placeholders = ",".join("?" * len(chunk))
            rows = conn.execute(
                f"SELECT * FROM lemma_stats WHERE normalized_lemma IN ({placeholders})", chunk
            )
            for row in rows:
                stats[row["normalized_lemma"]] = self._row_to_lemma_stat(row)
        return stats

    def _insert_encounter(
        self,
        conn: sqlite3.Connection,
        entry: VocabularyEntry,
        source: str,
        now: datetime,
        surface: str = "",
        page_url: str = "",
        page_host: str = "",
        page_title: Optional[str] = None,
        context_sentence: Optional[str] = None,
        source_wordbank_id: Optional[str] = None,
    ) -> Encounter:
        encounter = Encounter(
            encounter_id=_new_id(),
            vocab_id=entry.vocab_id,
            surface=surface,
            normalized_surface=normalize_lemma(surface) or entry.lemma,
            source=source,
            page_url=page_url,
            page_host=page_host,
            page_title=page_title,
            context_sentence=context_sentence,
            source_wordbank_id=source_wordbank_id,
            created_at=now,
            updated_at=now,
        )
        ts = to_timestamp(now)
        conn.execute(
            """
            INSERT INTO encounters
                (encounter_id, vocab_id, surface, normalized_surface, source, page_url,
                 page_host, page_title, context_sentence, source_wordbank_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [encounter.encounter_id, encounter.vocab_id, encounter.surface,
             encounter.normalized_surface, encounter.source, page_url, page_host,
             page_title, context_sentence, source_wordbank_id, ts, ts],
        )
        return encounter

    def _recalculate(self, conn: sqlite3.Connection, vocab_id: str, now: datetime) -> Optional[float]:
        """Recompute score and known flag. Skipped for deleted or locked entries."""
        row = conn.execute(
            "SELECT is_traced, score_locked, deleted_at FROM vocabulary WHERE vocab_id = ?",
            [vocab_id],
        ).fetchone()
        if row is None or row["deleted_at"] is not None or row["score_locked"]:
            return None

        sources = [
            r["source"]
            for r in conn.execute(
                "SELECT source FROM encounters WHERE vocab_id = ? ORDER BY created_at", [vocab_id]
            )
        ]
        score = calculate_score(sources, ScoringContext(traced=bool(row["is_traced"])))
        conn.execute(
            """
            UPDATE vocabulary SET familiarity_score = ?, is_known = ?, updated_at = ?
            WHERE vocab_id = ?
            """,
            [score, is_known(score), to_timestamp(now), vocab_id],
        )
        return score

    def _apply_traced(
        self, conn: sqlite3.Connection, entry: VocabularyEntry, traced: bool, now: datetime
    ) -> None:
        if traced and entry.score_locked:
            conn.execute(
                f"""
                UPDATE vocabulary SET {_LOCK_RESET_COLUMNS}, is_traced = TRUE, updated_at = ?
                WHERE vocab_id = ?
                """,
                [to_timestamp(now), entry.vocab_id],
            )
            logger.debug(f"Tracing released noise lock on {entry.lemma!r}")
        else:
            conn.execute(
                "UPDATE vocabulary SET is_traced = ?, updated_at = ? WHERE vocab_id = ?",
                [traced, to_timestamp(now), entry.vocab_id],
            )
        self._recalculate(conn, entry.vocab_id, now)

    def _unlock(self, conn: sqlite3.Connection, entry: VocabularyEntry, now: datetime) -> None:
        conn.execute(
            f"UPDATE vocabulary SET {_LOCK_RESET_COLUMNS}, updated_at = ? WHERE vocab_id = ?",
            [to_timestamp(now), entry.vocab_id],
        )

    def _count_active_traced(self, conn: sqlite3.Connection) -> int:
        return conn.execute(
            """
            SELECT COUNT(*) FROM vocabulary
            WHERE is_traced = TRUE AND is_known = FALSE AND deleted_at IS NULL
            """
        ).fetchone()[0]

    def _delete_if_orphan(self, conn: sqlite3.Connection, entry: VocabularyEntry) -> bool:
        if entry.is_traced or entry.score_locked or entry.is_manual:
            return False
        remaining = conn.execute(
            "SELECT COUNT(*) FROM encounters WHERE vocab_id = ?", [entry.vocab_id]
        ).fetchone()[0]
        if remaining > 0:
            return False
        conn.execute("DELETE FROM vocabulary WHERE vocab_id = ?", [entry.vocab_id])
        logger.debug(f"Deleted orphaned entry {entry.lemma!r}")
        return True

    def _row_to_vocab(self, row: sqlite3.Row) -> VocabularyEntry:
        return VocabularyEntry(
            vocab_id=row["vocab_id"],
            lemma=row["lemma"],
            language=row["language"],
            surface=row["surface"],
            meaning=row["meaning"],
            familiarity_score=float(row["familiarity_score"]),
            is_known=bool(row["is_known"]),
            score_locked=bool(row["score_locked"]),
            is_traced=bool(row["is_traced"]),
            noise_managed=bool(row["noise_managed"]),
            source_type=row["source_type"],
            source_wordbank_id=row["source_wordbank_id"],
            source_trace_id=row["source_trace_id"],
            next_review_at=from_timestamp(row["next_review_at"]),
            last_review_at=from_timestamp(row["last_review_at"]),
            first_seen_at=from_timestamp(row["first_seen_at"]),
            last_seen_at=from_timestamp(row["last_seen_at"]),
            created_at=from_timestamp(row["created_at"]),
            updated_at=from_timestamp(row["updated_at"]),
            deleted_at=from_timestamp(row["deleted_at"]),
        )

    def _row_to_encounter(self, row: sqlite3.Row) -> Encounter:
        return Encounter(
            encounter_id=row["encounter_id"],
            vocab_id=row["vocab_id"],
            surface=row["surface"],
            normalized_surface=row["normalized_surface"],
            source=row["source"],
            page_url=row["page_url"],
            page_host=row["page_host"],
            page_title=row["page_title"],
            context_sentence=row["context_sentence"],
            source_wordbank_id=row["source_wordbank_id"],
            created_at=from_timestamp(row["created_at"]),
            updated_at=from_timestamp(row["updated_at"]),
        )

    def _fetch_trace(self, conn: sqlite3.Connection, trace_id: str) -> Optional[Trace]:
        row = conn.execute("SELECT * FROM traces WHERE trace_id = ?", [trace_id]).fetchone()
        return self._row_to_trace(row) if row else None

    def _row_to_trace(self, row: sqlite3.Row) -> Trace:
        return Trace(
            trace_id=row["trace_id"],
            source_text=row["source_text"],
            lemma=row["lemma"],
            language=row["language"],
            page_url=row["page_url"],
            page_host=row["page_host"],
            page_title=row["page_title"],
            context_sentence=row["context_sentence"],
            fingerprint=row["fingerprint"],
            vocab_id=row["vocab_id"],
            created_at=from_timestamp(row["created_at"]),
            updated_at=from_timestamp(row["updated_at"]),
        )

    def _row_to_lemma_stat(self, row: sqlite3.Row) -> LemmaStat:
        rank = row["dict_rank"]
        return LemmaStat(
            lemma_stat_id=row["lemma_stat_id"],
            lemma=row["lemma"],
            normalized_lemma=row["normalized_lemma"],
            language=row["language"],
            total_count=int(row["total_count"]),
            page_count=int(row["page_count"]),
            first_seen_at=from_timestamp(row["first_seen_at"]),
            last_seen_at=from_timestamp(row["last_seen_at"]),
            last_page_url=row["last_page_url"],
            last_page_host=row["last_page_host"],
            in_wordbank=bool(row["in_wordbank"]),
            dict_rank=int(rank) if rank is not None else None,
            promoted_vocab_id=row["promoted_vocab_id"],
            promoted_at=from_timestamp(row["promoted_at"]),
            promotion_reason=row["promotion_reason"],
            cooldown_until=from_timestamp(row["cooldown_until"]),
            updated_at=from_timestamp(row["updated_at"]),
        )

    def _row_to_wordbank(self, row: sqlite3.Row) -> Wordbank:
        return Wordbank(
            wordbank_id=row["wordbank_id"],
            code=row["code"],
            name=row["name"],
            language=row["language"],
            built_in=bool(row["built_in"]),
            enabled=bool(row["enabled"]),
            word_count=row["word_count"],
        )


def _chunks(items: list, size: int) -> Iterator[list]:
    for start in range(0, len(items), size):
        yield items[start:start + size]
