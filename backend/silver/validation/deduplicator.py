"""
Deduplicator — collapse stored records sharing a natural key.

For every (school_slug, source_year) with more than one row, keep exactly
one: highest confidence, then most recently updated, then lowest id.
Everything else in the group is deleted inside a single transaction.
Dry runs compute the identical plan and touch nothing.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from silver.core.logging import get_logger
from silver.pipeline.errors import DeduplicationError
from silver.repositories import silver_records as repo

logger = get_logger(__name__)


@dataclass(frozen=True)
class DedupCandidate:
    id: int
    school_slug: str
    source_year: int
    confidence: float
    updated_at: datetime

    @property
    def natural_key(self) -> tuple[str, int]:
        return (self.school_slug, self.source_year)


@dataclass
class DeduplicationReport:
    """Outcome (or, for dry runs, the would-be outcome) of one pass."""

    dry_run: bool
    groups_found: int = 0
    records_removed: int = 0
    records_preserved: int = 0
    avg_confidence_preserved: float = 0.0
    preserved_ids: list[int] = field(default_factory=list)
    removed_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "groups_found": self.groups_found,
            "records_removed": self.records_removed,
            "records_preserved": self.records_preserved,
            "avg_confidence_preserved": self.avg_confidence_preserved,
            "preserved_ids": self.preserved_ids,
            "removed_ids": self.removed_ids,
        }


# ═══════════════════════════════════════════════════════════
#  Planning (pure)
# ═══════════════════════════════════════════════════════════

def rank_group(candidates: list[DedupCandidate]) -> list[DedupCandidate]:
    """Order one group best-first: confidence desc, updated_at desc, id asc."""
    ordered = sorted(candidates, key=lambda c: c.id)
    ordered.sort(key=lambda c: c.updated_at, reverse=True)
    ordered.sort(key=lambda c: c.confidence, reverse=True)
    return ordered


def plan(candidates: list[DedupCandidate], *, dry_run: bool = True) -> DeduplicationReport:
    """Decide keep/remove for every duplicated natural key."""
    groups: dict[tuple[str, int], list[DedupCandidate]] = defaultdict(list)
    for candidate in candidates:
        groups[candidate.natural_key].append(candidate)

    report = DeduplicationReport(dry_run=dry_run)
    kept_confidences: list[float] = []
    for key in sorted(groups):
        group = groups[key]
        if len(group) < 2:
            continue
        keeper, *losers = rank_group(group)
        report.groups_found += 1
        report.preserved_ids.append(keeper.id)
        report.removed_ids.extend(c.id for c in losers)
        kept_confidences.append(keeper.confidence)

    report.records_preserved = len(report.preserved_ids)
    report.records_removed = len(report.removed_ids)
    if kept_confidences:
        report.avg_confidence_preserved = round(sum(kept_confidences) / len(kept_confidences), 2)
    return report


# ═══════════════════════════════════════════════════════════
#  Execution
# ═══════════════════════════════════════════════════════════

class Deduplicator:
    """
    Runs the dedup pass against the record store.

    Usage::

        report = await Deduplicator(session_factory).run(dry_run=False)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def run(self, *, dry_run: bool = True) -> DeduplicationReport:
        log = logger.bind(dry_run=dry_run)
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    report = await self._run_in_transaction(session, dry_run)
        except DeduplicationError:
            raise
        except Exception as exc:
            log.exception("Deduplication failed, transaction rolled back", error=str(exc))
            raise DeduplicationError(
                f"Deduplication failed: {exc}",
                details={"dry_run": dry_run},
            ) from exc

        log.info(
            "Deduplication complete",
            groups_found=report.groups_found,
            records_removed=report.records_removed,
            records_preserved=report.records_preserved,
            avg_confidence_preserved=report.avg_confidence_preserved,
        )
        return report

    async def _run_in_transaction(self, session: AsyncSession, dry_run: bool) -> DeduplicationReport:
        rows = await repo.list_duplicate_rows(session)
        candidates = [
            DedupCandidate(
                id=row_id,
                school_slug=slug,
                source_year=year,
                confidence=confidence or 0.0,
                updated_at=updated_at,
            )
            for row_id, slug, year, confidence, updated_at in rows
        ]
        report = plan(candidates, dry_run=dry_run)
        if dry_run or not report.removed_ids:
            return report

        deleted = await repo.delete_records(session, report.removed_ids)
        if deleted != report.records_removed:
            # Raising inside session.begin() rolls the whole batch back
            raise DeduplicationError(
                "Row count mismatch during deduplication",
                details={"expected": report.records_removed, "deleted": deleted},
            )
        return report
