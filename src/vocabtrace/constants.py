"""Engine-wide constants.

Centralizes thresholds, weights and settings defaults so that the scoring,
promotion and review code never hardcodes them.
"""

from enum import Enum
from typing import Final

# =============================================================================
# VERSION AND METADATA
# =============================================================================

APP_NAME: Final[str] = "vocabtrace"
DEFAULT_LANGUAGE: Final[str] = "en"

# =============================================================================
# SCORING
# =============================================================================

KNOWN_THRESHOLD: Final[float] = 100.0
SCORE_CEILING: Final[float] = 100.0

TRACED_MULTIPLIER: Final[int] = 2
UNTRACED_MULTIPLIER: Final[int] = 1

# Weight for source tags that are not in the table
DEFAULT_SOURCE_WEIGHT: Final[float] = 0.1

# =============================================================================
# ENCOUNTERS
# =============================================================================

# Repeat sightings from these sources on the same page within the window
# touch the existing encounter instead of adding a new one
DEDUP_WINDOW_HOURS: Final[int] = 24

# Lookups that unlock a noise-locked word
NOISE_UNLOCK_LOOKUPS: Final[int] = 2

# =============================================================================
# PROMOTION
# =============================================================================

PROMOTION_MAX_ATTEMPTS: Final[int] = 5

# =============================================================================
# AUTO-TRACE
# =============================================================================

MAX_POOL_SIZE: Final[int] = 500
RECENCY_WINDOW_DAYS: Final[float] = 30.0
MIN_RECENCY_FACTOR: Final[float] = 0.1

# =============================================================================
# REVIEW
# =============================================================================

PRIORITY_WEIGHT_SRS: Final[float] = 0.45
PRIORITY_WEIGHT_DIFFICULTY: Final[float] = 0.25
PRIORITY_WEIGHT_URGENCY: Final[float] = 0.20
PRIORITY_WEIGHT_RECENCY: Final[float] = 0.10

NEW_WORD_SRS_DUE: Final[float] = 0.5
OVERDUE_SATURATION_DAYS: Final[float] = 7.0
COLD_SATURATION_DAYS: Final[float] = 14.0
TRACED_URGENCY: Final[float] = 1.0
UNTRACED_URGENCY: Final[float] = 0.3
MIN_PRIORITY: Final[float] = 0.001

# Linear congruential generator (Numerical Recipes constants)
LCG_MULTIPLIER: Final[int] = 1664525
LCG_INCREMENT: Final[int] = 1013904223
LCG_MODULUS: Final[int] = 2**32

DEFAULT_CARD_COUNT: Final[int] = 10

# =============================================================================
# NOISE RECONCILIATION
# =============================================================================

NOISE_CONFIG_VERSION: Final[int] = 1
NOISE_CHUNK_SIZE: Final[int] = 200

# =============================================================================
# HIGHLIGHTS
# =============================================================================

WEEKLY_HIGHLIGHT_DAYS: Final[int] = 7
WEEKLY_HIGHLIGHT_MIN_COUNT: Final[int] = 2
HIGH_PRIORITY_ENCOUNTERS: Final[int] = 3
TOP_MISSED_WORDS: Final[int] = 3

# =============================================================================
# SETTINGS
# =============================================================================

# Keys stay camelCase for compatibility with existing stores
SETTING_PROMOTION_MIN_COUNT: Final[str] = "promotionMinCount"
SETTING_PROMOTION_MIN_PAGES: Final[str] = "promotionMinPages"
SETTING_ENVIRONMENT_RANK_THRESHOLD: Final[str] = "environmentRankThreshold"
SETTING_AUTO_TRACE_ENABLED: Final[str] = "autoTraceEnabled"
SETTING_AUTO_TRACE_POOL_SIZE: Final[str] = "autoTracePoolSize"
SETTING_AUTO_TRACE_MIN_ENCOUNTERS: Final[str] = "autoTraceMinEncounters"
SETTING_NOISE_WORDBANK_ID: Final[str] = "noiseWordbankId"
SETTING_NOISE_MANUAL_ADD: Final[str] = "noiseManualAdd"
SETTING_NOISE_MANUAL_REMOVE: Final[str] = "noiseManualRemove"
SETTING_NOISE_SNAPSHOT: Final[str] = "noiseConfigSnapshot"
SETTING_CLEANUP_AGE_DAYS: Final[str] = "cleanupAgeDays"
SETTING_CLEANUP_MIN_COUNT: Final[str] = "cleanupMinCount"

NOISE_SETTING_KEYS: Final[frozenset[str]] = frozenset(
    {SETTING_NOISE_WORDBANK_ID, SETTING_NOISE_MANUAL_ADD, SETTING_NOISE_MANUAL_REMOVE}
)

DEFAULT_SETTINGS: Final[dict[str, object]] = {
    SETTING_PROMOTION_MIN_COUNT: 6,
    SETTING_PROMOTION_MIN_PAGES: 3,
    SETTING_ENVIRONMENT_RANK_THRESHOLD: 2000,
    SETTING_AUTO_TRACE_ENABLED: True,
    SETTING_AUTO_TRACE_POOL_SIZE: 30,
    SETTING_AUTO_TRACE_MIN_ENCOUNTERS: 3,
    SETTING_NOISE_WORDBANK_ID: "",
    SETTING_NOISE_MANUAL_ADD: [],
    SETTING_NOISE_MANUAL_REMOVE: [],
    SETTING_CLEANUP_AGE_DAYS: 30,
    SETTING_CLEANUP_MIN_COUNT: 3,
}

# =============================================================================
# WORDBANKS
# =============================================================================

# Lower value wins when a word sits in several enabled wordbanks
WORDBANK_SELECTION_PRIORITY: Final[dict[str, int]] = {
    "daily": 10,
    "programming": 20,
    "cet4": 30,
    "cet6": 40,
    "gaokao": 50,
    "postgrad": 60,
    "primary": 70,
    "top10k": 80,
    "custom": 90,
    "noise": 100,
}
UNKNOWN_WORDBANK_PRIORITY: Final[int] = 999

# =============================================================================
# CLI
# =============================================================================


class ExitCode(int, Enum):
    """CLI exit codes."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    FILE_NOT_FOUND = 2
    INVALID_INPUT = 3
    NOT_FOUND = 4
    KEYBOARD_INTERRUPT = 130
