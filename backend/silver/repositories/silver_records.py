"""
Silver record repository containing all data-access operations for the
silver_records table.

Repository rules:
- Pure data-access logic only
- Every function receives AsyncSession explicitly
- Functions flush, but never commit
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from silver.core.constants import BUCKET_1_MAX, RankingPrecision, RankingScope
from silver.db.models.silver_record import SilverRecord
from silver.extraction.record import ExtractedRecord
from silver.validation.uniqueness import RecordStore

_STATE_CHECKED_PRECISIONS = (RankingPrecision.EXACT.value, RankingPrecision.STATE_ONLY.value)


def _str_or_none(value) -> str | None:
    return None if value is None else str(value)


async def insert_record(
    db: AsyncSession,
    record: ExtractedRecord,
    *,
    updated_at: datetime | None = None,
) -> SilverRecord:
    """Store one extracted record as a new row."""
    row = SilverRecord(
        school_slug=record.school_slug,
        source_year=record.source_year,
        document_id=record.document_id,
        school_name=record.get("school_name"),
        address_state=record.get("address_state"),
        national_rank=record.get("national_rank"),
        national_rank_end=record.get("national_rank_end"),
        national_rank_precision=_str_or_none(record.get("national_rank_precision")),
        state_rank=record.get("state_rank"),
        state_rank_end=record.get("state_rank_end"),
        state_rank_precision=_str_or_none(record.get("state_rank_precision")),
        is_unranked=bool(record.get("is_unranked", False)),
        fields=dict(record.fields),
        field_confidence=dict(record.field_confidence),
        category_confidence={str(k): v for k, v in record.category_confidence.items()},
        processing_errors=[e.to_dict() for e in record.errors],
        extraction_confidence=record.overall_confidence,
        extraction_status=str(record.status),
    )
    if updated_at is not None:
        row.created_at = updated_at
        row.updated_at = updated_at
    db.add(row)
    await db.flush()
    return row


async def get_record(db: AsyncSession, record_id: int) -> SilverRecord | None:
    """Fetch a record by primary key."""
    return await db.get(SilverRecord, record_id)


async def list_records_for_key(
    db: AsyncSession,
    *,
    school_slug: str,
    source_year: int,
) -> list[SilverRecord]:
    """All stored rows for one natural key, oldest id first."""
    stmt = (
        select(SilverRecord)
        .where(SilverRecord.school_slug == school_slug, SilverRecord.source_year == source_year)
        .order_by(SilverRecord.id)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def count_records(db: AsyncSession, *, source_year: int | None = None) -> int:
    """Count stored rows, optionally for one year."""
    stmt = select(func.count()).select_from(SilverRecord)
    if source_year is not None:
        stmt = stmt.where(SilverRecord.source_year == source_year)
    result = await db.execute(stmt)
    return result.scalar_one()


# ═══════════════════════════════════════════════════════════
#  Ranking lookups
# ═══════════════════════════════════════════════════════════

async def find_rank_holders(
    db: AsyncSession,
    *,
    scope: RankingScope,
    rank: int,
    source_year: int,
    exclude_slug: str,
    state: str | None = None,
) -> list[str]:
    """Slugs of other schools holding `rank` exactly in `scope` for the year."""
    if scope == RankingScope.NATIONAL:
        stmt = select(SilverRecord.school_slug).where(
            SilverRecord.national_rank == rank,
            SilverRecord.national_rank_precision == RankingPrecision.EXACT.value,
        )
    else:
        stmt = select(SilverRecord.school_slug).where(
            SilverRecord.state_rank == rank,
            SilverRecord.state_rank_precision.in_(_STATE_CHECKED_PRECISIONS),
        )
        if state is not None:
            stmt = stmt.where(SilverRecord.address_state == state)

    stmt = (
        stmt.where(
            SilverRecord.source_year == source_year,
            SilverRecord.school_slug != exclude_slug,
        )
        .distinct()
        .order_by(SilverRecord.school_slug)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def bucket1_national_ranks(db: AsyncSession, source_year: int) -> dict[int, list[str]]:
    """Exact bucket-1 national rank → distinct holder slugs for a year."""
    stmt = (
        select(SilverRecord.national_rank, SilverRecord.school_slug)
        .where(
            SilverRecord.source_year == source_year,
            SilverRecord.national_rank_precision == RankingPrecision.EXACT.value,
            SilverRecord.national_rank.between(1, BUCKET_1_MAX),
        )
        .distinct()
    )
    result = await db.execute(stmt)
    ranks: dict[int, list[str]] = defaultdict(list)
    for rank, slug in result.all():
        ranks[rank].append(slug)
    return dict(ranks)


# ═══════════════════════════════════════════════════════════
#  Deduplication support
# ═══════════════════════════════════════════════════════════

async def list_duplicate_rows(
    db: AsyncSession,
) -> list[tuple[int, str, int, float, datetime]]:
    """
    (id, school_slug, source_year, confidence, updated_at) for every row
    whose natural key appears more than once.
    """
    duplicated_keys = (
        select(SilverRecord.school_slug, SilverRecord.source_year)
        .group_by(SilverRecord.school_slug, SilverRecord.source_year)
        .having(func.count(SilverRecord.id) > 1)
        .subquery()
    )
    stmt = (
        select(
            SilverRecord.id,
            SilverRecord.school_slug,
            SilverRecord.source_year,
            SilverRecord.extraction_confidence,
            SilverRecord.updated_at,
        )
        .join(
            duplicated_keys,
            (SilverRecord.school_slug == duplicated_keys.c.school_slug)
            & (SilverRecord.source_year == duplicated_keys.c.source_year),
        )
        .order_by(SilverRecord.school_slug, SilverRecord.source_year, SilverRecord.id)
    )
    result = await db.execute(stmt)
    return [tuple(row) for row in result.all()]


async def delete_records(db: AsyncSession, record_ids: list[int]) -> int:
    """Delete rows by id.  Returns the number of rows removed."""
    if not record_ids:
        return 0
    result = await db.execute(delete(SilverRecord).where(SilverRecord.id.in_(record_ids)))
    await db.flush()
    return result.rowcount


# ═══════════════════════════════════════════════════════════
#  Store adapter
# ═══════════════════════════════════════════════════════════

class SqlRecordStore(RecordStore):
    """
    Session-bound record store: the SQL counterpart of InMemoryRecordStore.

    The owner of the session controls the transaction, so a conflict check
    and the following insert can share one `session.begin()` block.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def save(self, record: ExtractedRecord) -> ExtractedRecord:
        await insert_record(self.session, record)
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
        return await find_rank_holders(
            self.session,
            scope=scope,
            rank=rank,
            source_year=source_year,
            exclude_slug=exclude_slug,
            state=state,
        )

    async def bucket1_national_ranks(self, source_year: int) -> dict[int, list[str]]:
        return await bucket1_national_ranks(self.session, source_year)
