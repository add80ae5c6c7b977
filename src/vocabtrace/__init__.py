"""vocabtrace - Vocabulary acquisition and review scheduling.

Tracks a reader's incidental exposure to words, turns that exposure into
a familiarity score, promotes frequently seen words into vocabulary
entries and draws review cards.

Features:
- Encounter recording with per-page de-duplication
- Page scans with frequency-threshold and wordbank promotion
- Noise-word locking driven by a designated wordbank
- A bounded pool of auto-traced words
- Saved traces of words picked out while reading
- Weighted, seedable review card selection

Example:
    >>> from vocabtrace import VocabTrace, PageContext
    >>> async with VocabTrace("./vocabtrace.db") as engine:
    ...     result = await engine.scan_text(text, PageContext(url="https://example.com"))
    ...     cards = await engine.draw_review_cards(5, seed=42)

Per-app isolation:
    >>> from vocabtrace import AppConfig
    >>> config = AppConfig("reader")
    >>> engine = VocabTrace(config.vocab_db)
"""

__version__ = "0.1.0"

from vocabtrace.api import VocabTrace
from vocabtrace.app_config import AppConfig
from vocabtrace.dictionary import Dictionary, DictEntry
from vocabtrace.exceptions import (
    ConfigError,
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
    VocabTraceError,
)
from vocabtrace.models import (
    Card,
    Encounter,
    EncounterSource,
    EngineSettings,
    PageContext,
    PromotionConfig,
    Rating,
    ReviewMode,
    ScanResult,
    SourceType,
    Trace,
    VocabFilter,
    VocabularyEntry,
    normalize_lemma,
    tokenize,
)
from vocabtrace.scoring import ScoringContext, calculate_score

__all__ = [
    "VocabTrace",
    "AppConfig",
    "Dictionary",
    "DictEntry",
    "Card",
    "Encounter",
    "EncounterSource",
    "EngineSettings",
    "PageContext",
    "PromotionConfig",
    "Rating",
    "ReviewMode",
    "ScanResult",
    "SourceType",
    "Trace",
    "VocabFilter",
    "VocabularyEntry",
    "ScoringContext",
    "calculate_score",
    "normalize_lemma",
    "tokenize",
    "VocabTraceError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "StorageError",
    "ConfigError",
]
