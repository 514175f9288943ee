"""
BatchRunner — extract a manifest of captured documents into silver records.

Two phases:

    1. Extraction (parallel).  A fixed pool of workers drains a bounded
       queue of DocumentRefs.  Each worker reads through the
       "document_store" breaker and extracts in a thread.  Workers share
       nothing but the queue and the results dict.

    2. Validate + persist (serialized, manifest order).  Each record is
       checked by the UniquenessValidator against everything stored so
       far, then saved through the "database" breaker.

Nothing in here raises for a single bad document; every failure ends up
on the BatchResult.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from functools import partial
from pathlib import Path

from silver.core.config import settings
from silver.core.logging import get_logger
from silver.extraction.extractor import DocumentExtractor
from silver.extraction.record import ExtractedRecord, SourceDocument
from silver.pipeline.context import BatchResult, DocumentRef
from silver.pipeline.errors import CriticalFieldError, DocumentReadError
from silver.resilience.registry import CircuitBreakerRegistry
from silver.validation.uniqueness import RecordStore, UniquenessValidator

logger = get_logger(__name__)

DOCUMENT_BREAKER = "document_store"
DATABASE_BREAKER = "database"


# ═══════════════════════════════════════════════════════════
#  Document readers
# ═══════════════════════════════════════════════════════════

class DocumentReader(ABC):
    """Turns a manifest entry into a SourceDocument."""

    @abstractmethod
    async def read(self, ref: DocumentRef) -> SourceDocument:
        ...


class FileDocumentReader(DocumentReader):
    """Reads captured pages from a local or mounted directory."""

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root) if root is not None else None

    def resolve(self, ref: DocumentRef) -> Path:
        path = Path(ref.path)
        if self.root is not None and not path.is_absolute():
            path = self.root / path
        return path

    async def read(self, ref: DocumentRef) -> SourceDocument:
        content = await asyncio.to_thread(self.resolve(ref).read_bytes)
        return SourceDocument(
            document_id=ref.document_id,
            school_slug=ref.school_slug,
            source_year=ref.source_year,
            content=content,
        )


# ═══════════════════════════════════════════════════════════
#  Runner
# ═══════════════════════════════════════════════════════════

class BatchRunner:
    """
    Usage::

        registry = CircuitBreakerRegistry()
        runner = BatchRunner(FileDocumentReader(root), InMemoryRecordStore(), registry)
        result = await runner.run(refs)
    """

    def __init__(
        self,
        reader: DocumentReader,
        store: RecordStore,
        registry: CircuitBreakerRegistry,
        *,
        extractor: DocumentExtractor | None = None,
        workers: int | None = None,
        queue_size: int | None = None,
    ) -> None:
        self.reader = reader
        self.store = store
        self.registry = registry
        self.extractor = extractor or DocumentExtractor()
        self.validator = UniquenessValidator(store, min_confidence=self.extractor.min_confidence)
        self.workers = max(1, workers or settings.EXTRACTION_WORKERS)
        self.queue_size = max(1, queue_size or settings.EXTRACTION_QUEUE_SIZE)

    async def run(self, refs: list[DocumentRef]) -> BatchResult:
        result = BatchResult()
        log = logger.bind(batch_id=result.batch_id)
        log.info("Batch started", documents=len(refs), workers=self.workers)

        extracted = await self._extract_all(refs, result)
        for index in sorted(extracted):
            await self._validate_and_save(extracted[index], result)

        result.completed_at = datetime.now(timezone.utc)
        summary = result.to_summary_dict()
        log.info(
            "Batch finished",
            total=summary["total"],
            extracted=summary["extracted"],
            low_confidence=summary["low_confidence"],
            malformed=summary["malformed"],
            average_confidence=summary["average_confidence"],
            conflicts_found=summary["conflicts_found"],
            read_failures=summary["read_failures"],
            persistence_failures=summary["persistence_failures"],
            duration_ms=summary["duration_ms"],
        )
        return result

    # ─── Phase 1: parallel extraction ─────────────────

    async def _extract_all(self, refs: list[DocumentRef], result: BatchResult) -> dict[int, ExtractedRecord]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        extracted: dict[int, ExtractedRecord] = {}
        breaker = self.registry.get(DOCUMENT_BREAKER)

        async def produce() -> None:
            for index, ref in enumerate(refs):
                await queue.put((index, ref))
            for _ in range(self.workers):
                await queue.put(None)

        async def work() -> None:
            while True:
                item = await queue.get()
                if item is None:
                    return
                index, ref = item
                outcome = await breaker.execute(partial(self.reader.read, ref))
                if not outcome.success:
                    error = DocumentReadError(
                        f"Could not read document: {outcome.error}",
                        document_id=ref.document_id,
                        school_slug=ref.school_slug,
                        details={"path": ref.path, "short_circuited": outcome.short_circuited},
                    )
                    logger.warning(
                        "Document read failed",
                        document_id=ref.document_id,
                        school_slug=ref.school_slug,
                        retry_count=outcome.retry_count,
                        short_circuited=outcome.short_circuited,
                        error=str(outcome.error),
                    )
                    result.read_failures.append(_failure(error))
                    continue
                extracted[index] = await asyncio.to_thread(self.extractor.extract, outcome.data)

        await asyncio.gather(produce(), *(work() for _ in range(self.workers)))
        return extracted

    # ─── Phase 2: serialized validate + persist ───────

    async def _validate_and_save(self, record: ExtractedRecord, result: BatchResult) -> None:
        breaker = self.registry.get(DATABASE_BREAKER)

        try:
            record.raise_for_critical()
        except CriticalFieldError as exc:
            logger.warning(
                "Record missing critical field",
                document_id=exc.document_id,
                school_slug=exc.school_slug,
                field=exc.field_name,
                status=record.status,
            )
            result.critical_failures.append(_failure(exc))

        validated = await breaker.execute(partial(self.validator.validate, record))
        if not validated.success:
            result.records.append(record)
            result.persistence_failures.append(_record_failure(record, "validate", validated.error))
            return

        checked = validated.data
        result.conflicts.extend(checked.conflicts)
        result.records.append(checked.record)

        saved = await breaker.execute(partial(self.store.save, checked.record))
        if not saved.success:
            logger.error(
                "Record persistence failed",
                document_id=record.document_id,
                school_slug=record.school_slug,
                retry_count=saved.retry_count,
                short_circuited=saved.short_circuited,
                error=str(saved.error),
            )
            result.persistence_failures.append(_record_failure(record, "save", saved.error))


def _failure(exc) -> dict:
    return {
        "document_id": exc.document_id,
        "school_slug": exc.school_slug,
        "error": str(exc),
        "error_type": type(exc).__name__,
        "details": exc.details,
    }


def _record_failure(record: ExtractedRecord, stage: str, error: BaseException | None) -> dict:
    return {
        "document_id": record.document_id,
        "school_slug": record.school_slug,
        "stage": stage,
        "error": str(error),
        "error_type": type(error).__name__,
    }
