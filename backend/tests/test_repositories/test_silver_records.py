"""Tests for the silver record repository and the SQL-backed store."""

import pytest

from silver.core.constants import ConflictType, RankingScope
from silver.repositories import silver_records as repo
from silver.repositories.silver_records import SqlRecordStore
from silver.validation.uniqueness import UniquenessValidator


class TestRecordRepository:

    @pytest.mark.asyncio
    async def test_insert_promotes_ranking_columns(self, session_factory, make_record):
        async with session_factory() as session:
            async with session.begin():
                row = await repo.insert_record(
                    session, make_record("lakeside-high-1", national_rank=42, state="SC", state_rank=3)
                )
            stored = await repo.get_record(session, row.id)

        assert stored.national_rank == 42
        assert stored.national_rank_precision == "exact"
        assert stored.state_rank == 3
        assert stored.address_state == "SC"
        assert stored.fields["national_rank"] == 42
        assert stored.extraction_status == "extracted"

    @pytest.mark.asyncio
    async def test_find_rank_holders(self, session_factory, make_record):
        async with session_factory() as session:
            async with session.begin():
                await repo.insert_record(session, make_record("a-school-1", national_rank=5))
                await repo.insert_record(session, make_record("b-school-2", national_rank=5))
                await repo.insert_record(
                    session,
                    make_record("c-school-3", national_rank=13450, national_end=13500, national_precision="range"),
                )
            holders = await repo.find_rank_holders(
                session, scope=RankingScope.NATIONAL, rank=5, source_year=2024, exclude_slug="b-school-2"
            )
            range_holders = await repo.find_rank_holders(
                session, scope=RankingScope.NATIONAL, rank=13450, source_year=2024, exclude_slug="x"
            )
        assert holders == ["a-school-1"]
        assert range_holders == []

    @pytest.mark.asyncio
    async def test_bucket1_national_ranks(self, session_factory, make_record):
        async with session_factory() as session:
            async with session.begin():
                await repo.insert_record(session, make_record("a-school-1", national_rank=5))
                await repo.insert_record(session, make_record("b-school-2", national_rank=5))
                await repo.insert_record(session, make_record("c-school-3", national_rank=9, year=2023))
            ranks = await repo.bucket1_national_ranks(session, 2024)
        assert {rank: sorted(slugs) for rank, slugs in ranks.items()} == {5: ["a-school-1", "b-school-2"]}

    @pytest.mark.asyncio
    async def test_delete_records(self, session_factory, make_record):
        async with session_factory() as session:
            async with session.begin():
                first = await repo.insert_record(session, make_record("a-school-1"))
                await repo.insert_record(session, make_record("a-school-1"))
                assert await repo.delete_records(session, [first.id]) == 1
                assert await repo.delete_records(session, []) == 0
            assert await repo.count_records(session) == 1


class TestSqlRecordStore:

    @pytest.mark.asyncio
    async def test_validator_against_sql_store(self, session_factory, make_record):
        async with session_factory() as session:
            async with session.begin():
                store = SqlRecordStore(session)
                validator = UniquenessValidator(store, min_confidence=60)

                await store.save(make_record("a-school-1", national_rank=5))
                result = await validator.validate(make_record("b-school-2", national_rank=5))

        assert [c.conflict_type for c in result.conflicts] == [ConflictType.DUPLICATE_EXACT_RANK]
        assert result.conflicts[0].conflicting_slugs == ("a-school-1",)

    @pytest.mark.asyncio
    async def test_post_extraction_report(self, session_factory, make_record):
        async with session_factory() as session:
            async with session.begin():
                store = SqlRecordStore(session)
                for slug, rank in (("a-1", 1), ("b-2", 1), ("c-3", 2), ("d-4", 3)):
                    await store.save(make_record(slug, national_rank=rank))
            report = await store.post_extraction_report(2024)
        assert report.integrity_score == 50
        assert report.duplicate_groups == {1: ["a-1", "b-2"]}
