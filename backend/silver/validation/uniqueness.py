"""
Ranking uniqueness — cross-record consistency checks.

Rules:
    - An exact national rank in bucket 1 belongs to one school per year.
      A second school claiming it → duplicate_exact_rank, -50 (critical).
    - An exact state rank belongs to one school per state and year.
      A second school claiming it → duplicate_state_rank, -30 (warning).
    - A precision that contradicts the bucket (exact beyond bucket 1, a
      range starting inside bucket 1) → impossible_bucket, -20.
    - Bucket-2 ranges and other duplicates are expected and never flagged.

The dataset lookup sits behind RankConflictSource.find_conflicts(record),
so the validator runs the same against the in-memory store (tests,
dry runs) and the SQL store (repositories.silver_records).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from silver.core.config import settings
from silver.core.constants import (
    BUCKET_1_MAX,
    BUCKET_2_MAX,
    ConflictSeverity,
    ConflictType,
    RankingPrecision,
    RankingScope,
    SoftErrorType,
    ranking_bucket,
)
from silver.core.logging import get_logger
from silver.extraction.record import ExtractedRecord, SoftError

logger = get_logger(__name__)

NATIONAL_DUPLICATE_PENALTY = -50
STATE_DUPLICATE_PENALTY = -30
IMPOSSIBLE_BUCKET_PENALTY = -20

_STATE_CHECKED_PRECISIONS = (RankingPrecision.EXACT, RankingPrecision.STATE_ONLY)


@dataclass(frozen=True)
class ValidationConflict:
    """A consistency violation found for one record; attached, never stored alone."""

    school_slug: str
    source_year: int
    rank: int
    scope: RankingScope
    conflict_type: ConflictType
    confidence_adjustment: int
    severity: ConflictSeverity = ConflictSeverity.CRITICAL
    conflicting_slugs: tuple[str, ...] = ()
    state: str | None = None

    def to_soft_error(self) -> SoftError:
        others = f" (also claimed by {', '.join(self.conflicting_slugs)})" if self.conflicting_slugs else ""
        return SoftError(
            field=f"{self.scope}_rank",
            error_type=SoftErrorType.UNIQUENESS_VIOLATION,
            message=f"{self.conflict_type}: rank {self.rank}{others}",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "school_slug": self.school_slug,
            "source_year": self.source_year,
            "rank": self.rank,
            "scope": self.scope,
            "state": self.state,
            "conflict_type": self.conflict_type,
            "severity": self.severity,
            "confidence_adjustment": self.confidence_adjustment,
            "conflicting_slugs": list(self.conflicting_slugs),
        }


# ═══════════════════════════════════════════════════════════
#  Conflict sources
# ═══════════════════════════════════════════════════════════

class RankConflictSource(ABC):
    """
    Query side of the accumulated dataset.

    `find_conflicts()` holds the duplicate rules; subclasses only answer
    "which other schools hold this exact rank?".
    """

    @abstractmethod
    async def rank_holders(
        self,
        *,
        scope: RankingScope,
        rank: int,
        source_year: int,
        exclude_slug: str,
        state: str | None = None,
    ) -> list[str]:
        """Slugs of other schools holding `rank` exactly in `scope` for the year."""
        ...

    @abstractmethod
    async def bucket1_national_ranks(self, source_year: int) -> dict[int, list[str]]:
        """Exact bucket-1 national rank → holder slugs, for the integrity report."""
        ...

    async def find_conflicts(self, record: ExtractedRecord) -> list[ValidationConflict]:
        conflicts: list[ValidationConflict] = []

        national = record.get("national_rank")
        if (
            isinstance(national, int)
            and record.get("national_rank_precision") == RankingPrecision.EXACT
            and ranking_bucket(national) == 1
        ):
            holders = await self.rank_holders(
                scope=RankingScope.NATIONAL,
                rank=national,
                source_year=record.source_year,
                exclude_slug=record.school_slug,
            )
            if holders:
                conflicts.append(ValidationConflict(
                    school_slug=record.school_slug,
                    source_year=record.source_year,
                    rank=national,
                    scope=RankingScope.NATIONAL,
                    conflict_type=ConflictType.DUPLICATE_EXACT_RANK,
                    confidence_adjustment=NATIONAL_DUPLICATE_PENALTY,
                    conflicting_slugs=tuple(holders),
                ))

        state_rank = record.get("state_rank")
        state = record.get("address_state")
        if (
            isinstance(state_rank, int)
            and state
            and record.get("state_rank_precision") in _STATE_CHECKED_PRECISIONS
        ):
            holders = await self.rank_holders(
                scope=RankingScope.STATE,
                rank=state_rank,
                source_year=record.source_year,
                exclude_slug=record.school_slug,
                state=state,
            )
            if holders:
                conflicts.append(ValidationConflict(
                    school_slug=record.school_slug,
                    source_year=record.source_year,
                    rank=state_rank,
                    scope=RankingScope.STATE,
                    conflict_type=ConflictType.DUPLICATE_STATE_RANK,
                    confidence_adjustment=STATE_DUPLICATE_PENALTY,
                    severity=ConflictSeverity.WARNING,
                    conflicting_slugs=tuple(holders),
                    state=state,
                ))
        return conflicts

    async def post_extraction_report(self, source_year: int) -> IntegrityReport:
        return build_integrity_report(source_year, await self.bucket1_national_ranks(source_year))


class RecordStore(RankConflictSource):
    """A conflict source that also accepts finished records."""

    @abstractmethod
    async def save(self, record: ExtractedRecord) -> ExtractedRecord:
        ...


# ─── In-memory store ──────────────────────────

class InMemoryRecordStore(RecordStore):
    """
    Dict-backed record store.  Implements both sides the batch runner
    needs (conflict lookup + save), keyed by natural key.
    """

    def __init__(self) -> None:
        self.records: dict[tuple[str, int], ExtractedRecord] = {}

    async def save(self, record: ExtractedRecord) -> ExtractedRecord:
        self.records[record.natural_key] = record
        return record

    async def rank_holders(
        self,
        *,
        scope: RankingScope,
        rank: int,
        source_year: int,
        exclude_slug: str,
        state: str | None = None,
    ) -> list[str]:
        rank_field = f"{scope}_rank"
        precision_field = f"{scope}_rank_precision"
        allowed = (
            (RankingPrecision.EXACT,) if scope == RankingScope.NATIONAL else _STATE_CHECKED_PRECISIONS
        )
        holders = []
        for record in self.records.values():
            if record.source_year != source_year or record.school_slug == exclude_slug:
                continue
            if record.get(rank_field) != rank or record.get(precision_field) not in allowed:
                continue
            if state is not None and record.get("address_state") != state:
                continue
            holders.append(record.school_slug)
        return sorted(holders)

    async def bucket1_national_ranks(self, source_year: int) -> dict[int, list[str]]:
        ranks: dict[int, list[str]] = defaultdict(list)
        for record in self.records.values():
            rank = record.get("national_rank")
            if (
                record.source_year == source_year
                and isinstance(rank, int)
                and record.get("national_rank_precision") == RankingPrecision.EXACT
                and 1 <= rank <= BUCKET_1_MAX
            ):
                ranks[rank].append(record.school_slug)
        return dict(ranks)


# ═══════════════════════════════════════════════════════════
#  Validator
# ═══════════════════════════════════════════════════════════

def bucket_conflicts(record: ExtractedRecord) -> list[ValidationConflict]:
    """Precision/bucket contradictions that need no dataset lookup."""
    rank = record.get("national_rank")
    if not isinstance(rank, int):
        return []
    precision = record.get("national_rank_precision")
    rank_end = record.get("national_rank_end")

    impossible = (
        (precision == RankingPrecision.EXACT and rank > BUCKET_1_MAX)
        or (precision == RankingPrecision.RANGE and rank <= BUCKET_1_MAX)
        or (isinstance(rank_end, int) and precision == RankingPrecision.RANGE and rank_end > BUCKET_2_MAX)
    )
    if not impossible:
        return []
    return [ValidationConflict(
        school_slug=record.school_slug,
        source_year=record.source_year,
        rank=rank,
        scope=RankingScope.NATIONAL,
        conflict_type=ConflictType.IMPOSSIBLE_BUCKET,
        confidence_adjustment=IMPOSSIBLE_BUCKET_PENALTY,
        severity=ConflictSeverity.WARNING,
    )]


@dataclass
class UniquenessResult:
    record: ExtractedRecord
    conflicts: list[ValidationConflict] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.conflicts

    @property
    def confidence_adjustment(self) -> int:
        return sum(c.confidence_adjustment for c in self.conflicts)


class UniquenessValidator:
    """
    Checks a finished record against everything accepted so far.

    Conflicts penalise confidence and are attached to the record as soft
    errors; the record's data is never altered or dropped.
    """

    def __init__(self, source: RankConflictSource, *, min_confidence: float | None = None) -> None:
        self.source = source
        self.min_confidence = (
            min_confidence if min_confidence is not None else settings.MIN_CONFIDENCE_THRESHOLD
        )

    async def validate(self, record: ExtractedRecord) -> UniquenessResult:
        conflicts = bucket_conflicts(record) + await self.source.find_conflicts(record)
        if not conflicts:
            return UniquenessResult(record=record)

        for conflict in conflicts:
            logger.warning(
                "Ranking conflict detected",
                school_slug=conflict.school_slug,
                source_year=conflict.source_year,
                conflict_type=conflict.conflict_type,
                rank=conflict.rank,
                scope=conflict.scope,
                conflicting_slugs=list(conflict.conflicting_slugs),
                adjustment=conflict.confidence_adjustment,
            )
        return UniquenessResult(
            record=record.with_conflicts(conflicts, min_confidence=self.min_confidence),
            conflicts=conflicts,
        )


# ═══════════════════════════════════════════════════════════
#  Integrity report
# ═══════════════════════════════════════════════════════════

@dataclass
class IntegrityReport:
    """Post-extraction view of bucket-1 national rank uniqueness for a year."""

    source_year: int
    total_bucket1_records: int = 0
    duplicated_records: int = 0
    duplicate_groups: dict[int, list[str]] = field(default_factory=dict)
    integrity_score: int = 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_year": self.source_year,
            "total_bucket1_records": self.total_bucket1_records,
            "duplicated_records": self.duplicated_records,
            "duplicate_groups": {str(k): v for k, v in self.duplicate_groups.items()},
            "integrity_score": self.integrity_score,
        }


def build_integrity_report(source_year: int, ranks: dict[int, list[str]]) -> IntegrityReport:
    total = sum(len(slugs) for slugs in ranks.values())
    groups = {rank: sorted(slugs) for rank, slugs in sorted(ranks.items()) if len(slugs) > 1}
    duplicated = sum(len(slugs) for slugs in groups.values())
    score = 100 if total == 0 else round(100 - duplicated / total * 100)
    return IntegrityReport(
        source_year=source_year,
        total_bucket1_records=total,
        duplicated_records=duplicated,
        duplicate_groups=groups,
        integrity_score=max(0, min(100, score)),
    )
