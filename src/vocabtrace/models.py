"""Data models for vocabtrace.

Defines core entities for exposure tracking, promotion and review,
plus the text normalization helpers every layer shares.
"""

import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit

from vocabtrace.constants import (
    DEFAULT_LANGUAGE,
    DEFAULT_SETTINGS,
    MAX_POOL_SIZE,
    SETTING_AUTO_TRACE_ENABLED,
    SETTING_AUTO_TRACE_MIN_ENCOUNTERS,
    SETTING_AUTO_TRACE_POOL_SIZE,
    SETTING_CLEANUP_AGE_DAYS,
    SETTING_CLEANUP_MIN_COUNT,
    SETTING_ENVIRONMENT_RANK_THRESHOLD,
    SETTING_NOISE_MANUAL_ADD,
    SETTING_NOISE_MANUAL_REMOVE,
    SETTING_NOISE_WORDBANK_ID,
    SETTING_PROMOTION_MIN_COUNT,
    SETTING_PROMOTION_MIN_PAGES,
)
from vocabtrace.exceptions import ConfigError, ValidationError

_EDGE_PUNCTUATION_RE = re.compile(r"^[\W_]+|[\W_]+$")
_TOKEN_SPLIT_RE = re.compile(r"[\s,.;:!?()\[\]{}\"'`~<>/\\|+\-=_*&#@]+")
_VALID_WORD_RE = re.compile(r"^[^\W\d_]{2,}$")


class EncounterSource(str, Enum):
    """Channel that produced an encounter.

    Values are the stored wire strings.
    """

    PAGE_SCAN = "scan"
    DICTIONARY_LOOKUP = "lookup"
    EXPLICIT_TRACE = "trace"
    MANUAL_ENTRY = "manual"
    BULK_IMPORT = "import"
    WORDBANK_SEED = "wordbank"
    RATING_KNOWN = "rate_known"
    RATING_FAMILIAR = "rate_familiar"
    RATING_UNKNOWN = "rate_unknown"

    @property
    def deduplicates(self) -> bool:
        """Whether repeat sightings on one page collapse within the window."""
        return self in (
            EncounterSource.PAGE_SCAN,
            EncounterSource.DICTIONARY_LOOKUP,
            EncounterSource.WORDBANK_SEED,
        )


class SourceType(str, Enum):
    """How a vocabulary entry came into existence."""

    MANUAL = "manual"
    WORDBANK = "wordbank"
    IMPORT = "import"
    ENVIRONMENT = "environment"
    NOISE = "noise"

    @classmethod
    def for_encounter(cls, source: EncounterSource) -> "SourceType":
        """Source type for an entry created by its first encounter."""
        if source is EncounterSource.MANUAL_ENTRY:
            return cls.MANUAL
        if source is EncounterSource.BULK_IMPORT:
            return cls.IMPORT
        if source is EncounterSource.WORDBANK_SEED:
            return cls.WORDBANK
        return cls.ENVIRONMENT


class PromotionReason(str, Enum):
    """Why a lemma stat was promoted to a vocabulary entry."""

    THRESHOLD = "threshold"
    WORDBANK = "wordbank"
    MANUAL = "manual"


class Rating(str, Enum):
    """User familiarity rating for a word."""

    KNOWN = "known"
    FAMILIAR = "familiar"
    UNKNOWN = "unknown"

    @property
    def source(self) -> EncounterSource:
        """Encounter source injected by this rating."""
        return EncounterSource(f"rate_{self.value}")


class ReviewMode(str, Enum):
    """Card selection mode."""

    AUTO = "auto"
    SHUFFLE = "shuffle"


class VocabFilter(str, Enum):
    """Filter for vocabulary listings."""

    ALL = "all"
    NOISE = "noise"
    NORMAL = "normal"
    TRACED = "traced"


# =============================================================================
# HELPERS
# =============================================================================


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage.

    Fixed-width UTC ISO strings sort lexically in time order.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days from earlier to later."""
    return (later - earlier).total_seconds() / 86400.0


def normalize_lemma(text: str) -> str:
    """Normalize a word for consistent matching.

    Args:
        text: Raw word or token

    Returns:
        Lowercased, trimmed text with leading and trailing punctuation removed
    """
    return _EDGE_PUNCTUATION_RE.sub("", text.lower().strip())


def tokenize(text: str) -> list[str]:
    """Split page text into lowercase tokens.

    Args:
        text: Raw text content

    Returns:
        Non-empty tokens in page order
    """
    return [t for t in _TOKEN_SPLIT_RE.split(text.lower()) if t.strip()]


def is_valid_word(lemma: str) -> bool:
    """Check that a lemma is at least two letters and nothing else."""
    return bool(_VALID_WORD_RE.match(lemma))


def trace_fingerprint(text: str, url: str) -> str:
    """Stable key for a saved text on a page (case and edge whitespace ignored)."""
    key = f"{text.strip().lower()}|{url}"
    return hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# =============================================================================
# ENTITIES
# =============================================================================


@dataclass(frozen=True)
class PageContext:
    """Where a word was seen.

    Attributes:
        url: Page URL
        title: Page title
        sentence: Sentence around the word
    """

    url: str = ""
    title: Optional[str] = None
    sentence: Optional[str] = None

    @property
    def host(self) -> str:
        """Network location of the URL ('' when there is none)."""
        return urlsplit(self.url).netloc if self.url else ""

    def require_url(self) -> str:
        """Validate the page reference and return its host.

        Raises:
            ValidationError: If the URL is missing or has no host
        """
        if not self.url or not self.url.strip():
            raise ValidationError("pageUrl is required")
        host = self.host
        if not host:
            raise ValidationError(f"invalid pageUrl: {self.url!r}")
        return host


@dataclass
class Encounter:
    """One timestamped observation of a word.

    Attributes:
        encounter_id: Unique identifier
        vocab_id: Owning vocabulary entry
        surface: Text as seen
        normalized_surface: Normalized form of the surface text
        source: Channel that produced the encounter
        page_url: Page URL ('' for ratings)
        page_host: Page host
        page_title: Page title
        context_sentence: Sentence around the word
        source_wordbank_id: Wordbank the word was attributed to
        created_at: When the encounter happened
        updated_at: Last de-duplication touch
    """

    encounter_id: str
    vocab_id: str
    surface: str
    normalized_surface: str
    source: str
    page_url: str = ""
    page_host: str = ""
    page_title: Optional[str] = None
    context_sentence: Optional[str] = None
    source_wordbank_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "encounter_id": self.encounter_id,
            "vocab_id": self.vocab_id,
            "surface": self.surface,
            "normalized_surface": self.normalized_surface,
            "source": self.source,
            "page_url": self.page_url,
            "page_host": self.page_host,
            "page_title": self.page_title,
            "context_sentence": self.context_sentence,
            "source_wordbank_id": self.source_wordbank_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class LemmaStat:
    """Rolling frequency counter for a normalized word.

    Exists independently of whether the word is tracked yet.
    """

    lemma_stat_id: str
    lemma: str
    normalized_lemma: str
    language: str = DEFAULT_LANGUAGE
    total_count: int = 0
    page_count: int = 0
    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    last_page_url: Optional[str] = None
    last_page_host: Optional[str] = None
    in_wordbank: bool = False
    dict_rank: Optional[int] = None
    promoted_vocab_id: Optional[str] = None
    promoted_at: Optional[datetime] = None
    promotion_reason: Optional[str] = None
    cooldown_until: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_promoted(self) -> bool:
        return self.promoted_vocab_id is not None

    def in_cooldown(self, now: datetime) -> bool:
        """Whether promotion is suppressed at the given time."""
        return self.cooldown_until is not None and self.cooldown_until >= now

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "lemma_stat_id": self.lemma_stat_id,
            "lemma": self.lemma,
            "normalized_lemma": self.normalized_lemma,
            "language": self.language,
            "total_count": self.total_count,
            "page_count": self.page_count,
            "first_seen_at": _iso(self.first_seen_at),
            "last_seen_at": _iso(self.last_seen_at),
            "last_page_url": self.last_page_url,
            "last_page_host": self.last_page_host,
            "in_wordbank": self.in_wordbank,
            "dict_rank": self.dict_rank,
            "promoted_vocab_id": self.promoted_vocab_id,
            "promoted_at": _iso(self.promoted_at),
            "promotion_reason": self.promotion_reason,
            "cooldown_until": _iso(self.cooldown_until),
        }


@dataclass
class VocabularyEntry:
    """A word the user is learning.

    Attributes:
        vocab_id: Unique identifier
        lemma: Normalized lemma (unique with language among live entries)
        language: Language code
        surface: Display form
        meaning: User or dictionary meaning
        familiarity_score: Weighted exposure score (>= 0)
        is_known: Score at or above the known threshold
        score_locked: Noise-word lock (score pinned to the ceiling)
        is_traced: Actively studied (doubles scoring weight)
        noise_managed: Lock is owned by the noise reconciler
        source_type: How the entry was created
        source_wordbank_id: Originating wordbank
        source_trace_id: Saved trace the entry was traced from
        next_review_at: Scheduled review time
        last_review_at: Last review time
        first_seen_at: First sighting
        last_seen_at: Most recent sighting
        created_at: Creation time
        updated_at: Last mutation time
        deleted_at: Soft-delete time
    """

    vocab_id: str
    lemma: str
    language: str = DEFAULT_LANGUAGE
    surface: str = ""
    meaning: str = ""
    familiarity_score: float = 0.0
    is_known: bool = False
    score_locked: bool = False
    is_traced: bool = False
    noise_managed: bool = False
    source_type: Optional[str] = None
    source_wordbank_id: Optional[str] = None
    source_trace_id: Optional[str] = None
    next_review_at: Optional[datetime] = None
    last_review_at: Optional[datetime] = None
    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_manual(self) -> bool:
        return self.source_type == SourceType.MANUAL.value

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "vocab_id": self.vocab_id,
            "lemma": self.lemma,
            "language": self.language,
            "surface": self.surface,
            "meaning": self.meaning,
            "familiarity_score": self.familiarity_score,
            "is_known": self.is_known,
            "score_locked": self.score_locked,
            "is_traced": self.is_traced,
            "noise_managed": self.noise_managed,
            "source_type": self.source_type,
            "source_wordbank_id": self.source_wordbank_id,
            "source_trace_id": self.source_trace_id,
            "next_review_at": _iso(self.next_review_at),
            "last_review_at": _iso(self.last_review_at),
            "first_seen_at": _iso(self.first_seen_at),
            "last_seen_at": _iso(self.last_seen_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }


@dataclass
class Trace:
    """A word or phrase the user saved while reading.

    Saving the same text on the same page again updates the trace
    instead of adding one (see trace_fingerprint).
    """

    trace_id: str
    source_text: str
    lemma: str
    page_url: str
    fingerprint: str
    language: str = DEFAULT_LANGUAGE
    page_host: str = ""
    page_title: Optional[str] = None
    context_sentence: Optional[str] = None
    vocab_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "trace_id": self.trace_id,
            "source_text": self.source_text,
            "lemma": self.lemma,
            "language": self.language,
            "page_url": self.page_url,
            "page_host": self.page_host,
            "page_title": self.page_title,
            "context_sentence": self.context_sentence,
            "fingerprint": self.fingerprint,
            "vocab_id": self.vocab_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class Wordbank:
    """A named word list."""

    wordbank_id: str
    code: str
    name: str
    language: str = DEFAULT_LANGUAGE
    built_in: bool = False
    enabled: bool = False
    word_count: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "wordbank_id": self.wordbank_id,
            "code": self.code,
            "name": self.name,
            "language": self.language,
            "built_in": self.built_in,
            "enabled": self.enabled,
            "word_count": self.word_count,
        }


@dataclass
class WordbankWord:
    """A word as it appears across the enabled wordbanks.

    Attributes:
        wordbank_id: Attributed wordbank (highest selection priority)
        lemma: Normalized lemma
        surface: Display form from the attributed wordbank
        source_wordbank_ids: Every enabled wordbank listing the word
    """

    wordbank_id: str
    lemma: str
    surface: str
    source_wordbank_ids: list[str] = field(default_factory=list)


# =============================================================================
# SETTINGS
# =============================================================================


def _lemma_set(value: Any) -> frozenset[str]:
    if not isinstance(value, (list, tuple, set, frozenset)):
        return frozenset()
    lemmas = (normalize_lemma(str(v if v is not None else "")) for v in value)
    return frozenset(lemma for lemma in lemmas if lemma)


def _as_int(prefs: Mapping[str, Any], key: str) -> int:
    value = prefs.get(key)
    if value is None:
        value = DEFAULT_SETTINGS[key]
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Setting {key} must be a number, got {value!r}") from e


@dataclass(frozen=True)
class PromotionConfig:
    """Per-scan promotion thresholds."""

    min_count: int = 6
    min_pages: int = 3
    environment_rank_threshold: int = 2000


@dataclass(frozen=True)
class EngineSettings:
    """Typed view of the flat settings table."""

    promotion_min_count: int = 6
    promotion_min_pages: int = 3
    environment_rank_threshold: int = 2000
    auto_trace_enabled: bool = True
    auto_trace_pool_size: int = 30
    auto_trace_min_encounters: int = 3
    noise_wordbank_id: str = ""
    noise_manual_add: frozenset[str] = frozenset()
    noise_manual_remove: frozenset[str] = frozenset()
    cleanup_age_days: int = 30
    cleanup_min_count: int = 3

    @classmethod
    def from_mapping(cls, prefs: Mapping[str, Any]) -> "EngineSettings":
        """Build settings from stored key/value pairs, falling back to defaults.

        Raises:
            ConfigError: If a numeric setting cannot be parsed
        """
        pool_size = _as_int(prefs, SETTING_AUTO_TRACE_POOL_SIZE)
        noise_source = prefs.get(SETTING_NOISE_WORDBANK_ID)
        return cls(
            promotion_min_count=_as_int(prefs, SETTING_PROMOTION_MIN_COUNT),
            promotion_min_pages=_as_int(prefs, SETTING_PROMOTION_MIN_PAGES),
            environment_rank_threshold=_as_int(prefs, SETTING_ENVIRONMENT_RANK_THRESHOLD),
            auto_trace_enabled=prefs.get(SETTING_AUTO_TRACE_ENABLED) is not False,
            auto_trace_pool_size=max(0, min(MAX_POOL_SIZE, pool_size)),
            auto_trace_min_encounters=_as_int(prefs, SETTING_AUTO_TRACE_MIN_ENCOUNTERS),
            noise_wordbank_id=noise_source if isinstance(noise_source, str) else "",
            noise_manual_add=_lemma_set(prefs.get(SETTING_NOISE_MANUAL_ADD)),
            noise_manual_remove=_lemma_set(prefs.get(SETTING_NOISE_MANUAL_REMOVE)),
            cleanup_age_days=_as_int(prefs, SETTING_CLEANUP_AGE_DAYS),
            cleanup_min_count=_as_int(prefs, SETTING_CLEANUP_MIN_COUNT),
        )

    @property
    def promotion(self) -> PromotionConfig:
        return PromotionConfig(
            min_count=self.promotion_min_count,
            min_pages=self.promotion_min_pages,
            environment_rank_threshold=self.environment_rank_threshold,
        )

    def to_dict(self) -> dict:
        """Convert to the stored key/value form."""
        return {
            SETTING_PROMOTION_MIN_COUNT: self.promotion_min_count,
            SETTING_PROMOTION_MIN_PAGES: self.promotion_min_pages,
            SETTING_ENVIRONMENT_RANK_THRESHOLD: self.environment_rank_threshold,
            SETTING_AUTO_TRACE_ENABLED: self.auto_trace_enabled,
            SETTING_AUTO_TRACE_POOL_SIZE: self.auto_trace_pool_size,
            SETTING_AUTO_TRACE_MIN_ENCOUNTERS: self.auto_trace_min_encounters,
            SETTING_NOISE_WORDBANK_ID: self.noise_wordbank_id,
            SETTING_NOISE_MANUAL_ADD: sorted(self.noise_manual_add),
            SETTING_NOISE_MANUAL_REMOVE: sorted(self.noise_manual_remove),
            SETTING_CLEANUP_AGE_DAYS: self.cleanup_age_days,
            SETTING_CLEANUP_MIN_COUNT: self.cleanup_min_count,
        }


# =============================================================================
# RESULTS
# =============================================================================


@dataclass
class ScanMatch:
    """A vocabulary entry matched on a scanned page."""

    vocab_id: str
    lemma: str
    surface: str
    encounter_count: int
    weighted_score: float
    present_count: int
    is_known: bool
    score_locked: bool
    is_traced: bool
    source: str
    priority: str = "normal"
    source_wordbank_id: Optional[str] = None
    next_review_at: Optional[datetime] = None

    @property
    def is_visible(self) -> bool:
        """Whether the match should be surfaced to the reader."""
        if self.is_traced:
            return True
        return not self.score_locked and not self.is_known and self.weighted_score < 100

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "vocab_id": self.vocab_id,
            "lemma": self.lemma,
            "surface": self.surface,
            "encounter_count": self.encounter_count,
            "weighted_score": self.weighted_score,
            "present_count": self.present_count,
            "is_known": self.is_known,
            "score_locked": self.score_locked,
            "is_traced": self.is_traced,
            "source": self.source,
            "priority": self.priority,
            "source_wordbank_id": self.source_wordbank_id,
            "next_review_at": _iso(self.next_review_at),
        }


@dataclass
class PageStats:
    """Coverage statistics for one scanned page.

    Attributes:
        coverage: Percentage of wordbank words on the page already mastered
        mastered: 1 when every wordbank word on the page is mastered
        top_missed_words: Most frequent unmastered words on the page
    """

    coverage: int = 0
    mastered: int = 0
    top_missed_words: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "coverage": self.coverage,
            "mastered": self.mastered,
            "top_missed_words": self.top_missed_words,
        }


@dataclass
class ScanResult:
    """Outcome of a page scan."""

    matches: list[ScanMatch] = field(default_factory=list)
    stats: PageStats = field(default_factory=PageStats)
    promoted: list[str] = field(default_factory=list)
    auto_traced: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "matches": [m.to_dict() for m in self.matches],
            "stats": self.stats.to_dict(),
            "promoted": self.promoted,
            "auto_traced": self.auto_traced,
        }


@dataclass
class RatingResult:
    vocab_id: str
    new_score: float
    is_known: bool

    def to_dict(self) -> dict:
        return {"vocab_id": self.vocab_id, "new_score": self.new_score, "is_known": self.is_known}


@dataclass
class TraceResult:
    vocab_id: str
    is_traced: bool
    active_trace_count: int

    def to_dict(self) -> dict:
        return {
            "vocab_id": self.vocab_id,
            "is_traced": self.is_traced,
            "active_trace_count": self.active_trace_count,
        }


@dataclass
class Card:
    """A review card.

    Context fields are display-only and do not affect selection.
    """

    vocab_id: str
    lemma: str
    surface: str
    meaning: str
    weighted_score: float
    is_traced: bool
    priority: float
    context_sentence: Optional[str] = None
    page_title: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "vocab_id": self.vocab_id,
            "lemma": self.lemma,
            "surface": self.surface,
            "meaning": self.meaning,
            "weighted_score": self.weighted_score,
            "is_traced": self.is_traced,
            "priority": self.priority,
            "context_sentence": self.context_sentence,
            "page_title": self.page_title,
        }


@dataclass
class CleanupResult:
    """Effect (or intended effect, for dry runs) of a stale-data cleanup."""

    deleted_encounters: int = 0
    deleted_lemma_stats: int = 0
    deleted_vocabulary: int = 0
    skipped_rows: int = 0
    cutoff: Optional[datetime] = None
    dry_run: bool = False

    def to_dict(self) -> dict:
        return {
            "deleted_encounters": self.deleted_encounters,
            "deleted_lemma_stats": self.deleted_lemma_stats,
            "deleted_vocabulary": self.deleted_vocabulary,
            "skipped_rows": self.skipped_rows,
            "cutoff": _iso(self.cutoff),
            "dry_run": self.dry_run,
        }


@dataclass
class DeleteResult:
    success: bool = True
    deleted: bool = False
    vocab_deleted: bool = False

    def to_dict(self) -> dict:
        return {"success": self.success, "deleted": self.deleted, "vocab_deleted": self.vocab_deleted}


@dataclass
class VocabularyStats:
    """Overall store statistics."""

    total_vocabulary: int = 0
    known_vocabulary: int = 0
    traced_vocabulary: int = 0
    active_traced: int = 0
    noise_locked: int = 0
    total_encounters: int = 0
    total_lemma_stats: int = 0
    promoted_lemma_stats: int = 0
    source_counts: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_vocabulary": self.total_vocabulary,
            "known_vocabulary": self.known_vocabulary,
            "traced_vocabulary": self.traced_vocabulary,
            "active_traced": self.active_traced,
            "noise_locked": self.noise_locked,
            "total_encounters": self.total_encounters,
            "total_lemma_stats": self.total_lemma_stats,
            "promoted_lemma_stats": self.promoted_lemma_stats,
            "source_counts": self.source_counts,
        }
