"""Shared constants and enums used across the application."""

from enum import StrEnum


class ExtractionStatus(StrEnum):
    """Outcome of extracting a single document."""

    EXTRACTED = "extracted"
    LOW_CONFIDENCE = "low_confidence"
    MALFORMED = "malformed"


class ExtractionTier(StrEnum):
    """Strategy tiers, in priority order."""

    STRUCTURED_DATA = "structured_data"
    SELECTOR = "selector"
    PATTERN = "pattern"


class FieldCategory(StrEnum):
    """Field groups used for category-level confidence."""

    IDENTITY = "identity"
    LOCATION = "location"
    ENROLLMENT = "enrollment"
    RANKINGS = "rankings"
    ACADEMICS = "academics"
    DEMOGRAPHICS = "demographics"
    SOCIOECONOMIC = "socioeconomic"


class RankingPrecision(StrEnum):
    """How precisely a ranking was stated on the page."""

    EXACT = "exact"
    RANGE = "range"
    ESTIMATED = "estimated"
    STATE_ONLY = "state_only"


class RankingScope(StrEnum):
    """Ranking scope."""

    NATIONAL = "national"
    STATE = "state"


class ConflictType(StrEnum):
    """Cross-record consistency violations."""

    DUPLICATE_EXACT_RANK = "duplicate_exact_rank"
    DUPLICATE_STATE_RANK = "duplicate_state_rank"
    IMPOSSIBLE_BUCKET = "impossible_bucket"


class ConflictSeverity(StrEnum):
    CRITICAL = "critical"
    WARNING = "warning"


class SoftErrorType(StrEnum):
    """Non-fatal, per-field extraction failures attached to a record."""

    STRUCTURED_DATA_FAILED = "structured_data_failed"
    SELECTOR_FAILED = "selector_failed"
    PATTERN_FAILED = "pattern_failed"
    VALIDATION_FAILED = "validation_failed"
    PARSE_ERROR = "parse_error"
    MISSING_FIELD = "missing_field"
    UNIQUENESS_VIOLATION = "uniqueness_violation"


class CircuitState(StrEnum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


# ─── Ranking buckets ──────────────────────────
# Published methodology boundaries; must not change without upstream confirmation.
BUCKET_1_MAX = 13426
BUCKET_2_MIN = 13427
BUCKET_2_MAX = 17901

# Range starts at this value are a known artifact of an old boundary rule.
REJECTED_RANGE_START = 13427

# Upper sanity bound for any national rank read from text
MAX_NATIONAL_RANK = 50000


def ranking_bucket(rank: int, scope: str = RankingScope.NATIONAL) -> int:
    """Classify a rank into bucket 1, 2 or 3. State-scope ranks are always bucket 3."""
    if scope != RankingScope.NATIONAL:
        return 3
    if 1 <= rank <= BUCKET_1_MAX:
        return 1
    if BUCKET_2_MIN <= rank <= BUCKET_2_MAX:
        return 2
    return 3
