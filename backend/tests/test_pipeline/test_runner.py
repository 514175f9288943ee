"""Tests for the batch runner: parallel extraction, serialized validation."""

import pytest

from silver.core.constants import ConflictType, ExtractionStatus
from silver.pipeline.context import DocumentRef
from silver.pipeline.runner import BatchRunner, FileDocumentReader
from silver.resilience.registry import CircuitBreakerRegistry
from silver.validation.uniqueness import InMemoryRecordStore


async def _no_sleep(seconds):
    return None


@pytest.fixture
def registry():
    return CircuitBreakerRegistry(sleep=_no_sleep, rng=lambda: 0.0)


@pytest.fixture
def documents(tmp_path, page, unranked_html):
    (tmp_path / "lakeside.html").write_text(page("Lakeside High School", "#5 in National Rankings"))
    (tmp_path / "hillcrest.html").write_text(page("Hillcrest High School", "#5 in National Rankings"))
    (tmp_path / "riverside.html").write_text(unranked_html)
    return tmp_path


def _ref(slug, path):
    return DocumentRef(document_id=f"doc-{slug}", school_slug=slug, source_year=2024, path=path)


MANIFEST = [
    _ref("lakeside-high-school-1", "lakeside.html"),
    _ref("hillcrest-high-school-2", "hillcrest.html"),
    _ref("ghost-high-school-3", "ghost.html"),
    _ref("riverside-private-academy-4", "riverside.html"),
]


class FailingStore(InMemoryRecordStore):
    def __init__(self):
        super().__init__()
        self.attempts = 0

    async def save(self, record):
        self.attempts += 1
        raise ConnectionResetError("database went away")


class TestBatchRunner:

    @pytest.mark.asyncio
    async def test_batch_summary(self, documents, registry):
        store = InMemoryRecordStore()
        runner = BatchRunner(FileDocumentReader(documents), store, registry, workers=2, queue_size=2)

        result = await runner.run(MANIFEST)
        summary = result.to_summary_dict()

        assert [r.school_slug for r in result.records] == [
            "lakeside-high-school-1",
            "hillcrest-high-school-2",
            "riverside-private-academy-4",
        ]
        assert summary["total"] == 3
        assert summary["read_failures"] == 1
        assert summary["persistence_failures"] == 0
        assert summary["field_coverage"]["school_name"] == 100.0
        assert len(store.records) == 3

    @pytest.mark.asyncio
    async def test_later_record_takes_the_conflict(self, documents, registry):
        store = InMemoryRecordStore()
        result = await BatchRunner(FileDocumentReader(documents), store, registry, workers=3).run(MANIFEST)

        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert conflict.school_slug == "hillcrest-high-school-2"
        assert conflict.conflict_type == ConflictType.DUPLICATE_EXACT_RANK
        assert conflict.conflicting_slugs == ("lakeside-high-school-1",)

        first, second = result.records[0], result.records[1]
        assert not any(e.error_type == "uniqueness_violation" for e in first.errors)
        assert any(e.error_type == "uniqueness_violation" for e in second.errors)
        assert second.get("national_rank") == 5

    @pytest.mark.asyncio
    async def test_missing_document_is_not_retried(self, documents, registry):
        result = await BatchRunner(FileDocumentReader(documents), InMemoryRecordStore(), registry).run(MANIFEST)

        (failure,) = result.read_failures
        assert failure["school_slug"] == "ghost-high-school-3"
        assert failure["error_type"] == "DocumentReadError"
        assert registry.get("document_store").metrics()["failed_operations"] == 1

    @pytest.mark.asyncio
    async def test_critical_field_missing_is_reported_and_kept(self, tmp_path, registry):
        (tmp_path / "blank.html").write_text("<html><body><p>Nothing to see</p></body></html>")
        store = InMemoryRecordStore()

        result = await BatchRunner(FileDocumentReader(tmp_path), store, registry).run(
            [_ref("blank-5", "blank.html")]
        )

        (failure,) = result.critical_failures
        assert failure["error_type"] == "CriticalFieldError"
        assert result.records[0].status == ExtractionStatus.MALFORMED
        assert ("blank-5", 2024) in store.records

    @pytest.mark.asyncio
    async def test_save_failures_land_on_the_result(self, documents, registry):
        store = FailingStore()
        result = await BatchRunner(FileDocumentReader(documents), store, registry, workers=1).run(MANIFEST[:2])

        assert len(result.persistence_failures) == 2
        assert {f["stage"] for f in result.persistence_failures} == {"save"}
        # database preset: one attempt plus two retries per record
        assert store.attempts == 6

    @pytest.mark.asyncio
    async def test_state_rank_conflict_across_state_spellings(self, tmp_path, page, registry):
        state_rank = '<div data-testid="state-ranking">#1 in South Carolina High Schools</div>'
        (tmp_path / "a.html").write_text(page(
            "Lakeside High School", "#50 in National Rankings",
            state_rank + '<div data-testid="school-state">SC</div>',
        ))
        (tmp_path / "b.html").write_text(page(
            "Hillcrest High School", "#51 in National Rankings",
            state_rank + '<div data-testid="school-state">South Carolina</div>',
        ))
        store = InMemoryRecordStore()

        result = await BatchRunner(FileDocumentReader(tmp_path), store, registry).run(
            [_ref("lakeside-high-school-1", "a.html"), _ref("hillcrest-high-school-2", "b.html")]
        )

        assert [r.get("address_state") for r in result.records] == ["SC", "SC"]
        (conflict,) = result.conflicts
        assert conflict.conflict_type == ConflictType.DUPLICATE_STATE_RANK
        assert conflict.school_slug == "hillcrest-high-school-2"
        assert conflict.state == "SC"
        assert conflict.conflicting_slugs == ("lakeside-high-school-1",)


class TestDocumentRef:

    def test_from_dict(self):
        ref = DocumentRef.from_dict(
            {"document_id": 17, "school_slug": "lakeside-high-school-1", "source_year": "2024", "path": "a.html"}
        )
        assert ref.document_id == "17"
        assert ref.source_year == 2024
        assert DocumentRef.from_dict(ref.to_dict()) == ref
