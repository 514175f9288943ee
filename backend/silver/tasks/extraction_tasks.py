"""
Celery tasks — extraction batches and dataset maintenance.

Each task runs its async body with `asyncio.run()` and builds a fresh
engine per call so pooled connections never cross event loops.  Breaker
state lives for the worker process in `registry`.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from silver.db.session import init_models, make_session_factory
from silver.pipeline.context import DocumentRef
from silver.pipeline.runner import BatchRunner, FileDocumentReader
from silver.repositories.silver_records import SqlRecordStore
from silver.resilience.registry import CircuitBreakerRegistry
from silver.tasks import celery_app
from silver.validation.deduplicator import Deduplicator

logger = structlog.get_logger("tasks.extraction")

registry = CircuitBreakerRegistry()


async def _run_batch(
    refs: list[DocumentRef],
    documents_root: str | None,
    database_url: str | None,
) -> dict[str, Any]:
    factory, engine = make_session_factory(database_url)
    try:
        await init_models(engine)
        async with factory() as session:
            async with session.begin():
                store = SqlRecordStore(session)
                runner = BatchRunner(FileDocumentReader(documents_root), store, registry)
                result = await runner.run(refs)
                summary = result.to_summary_dict()
                years = sorted({ref.source_year for ref in refs})
                summary["integrity"] = [
                    (await store.post_extraction_report(year)).to_dict() for year in years
                ]
        summary["circuits"] = registry.all_metrics()
        return summary
    finally:
        await engine.dispose()


async def _run_dedup(dry_run: bool, database_url: str | None) -> dict[str, Any]:
    factory, engine = make_session_factory(database_url)
    try:
        await init_models(engine)
        report = await Deduplicator(factory).run(dry_run=dry_run)
        return report.to_dict()
    finally:
        await engine.dispose()


async def _run_integrity(source_year: int, database_url: str | None) -> dict[str, Any]:
    factory, engine = make_session_factory(database_url)
    try:
        async with factory() as session:
            report = await SqlRecordStore(session).post_extraction_report(source_year)
        return report.to_dict()
    finally:
        await engine.dispose()


@celery_app.task(bind=True, name="silver.tasks.extraction_tasks.extract_batch")
def extract_batch(
    self,
    manifest: list[dict],
    documents_root: str | None = None,
    database_url: str | None = None,
):
    """
    Extract, validate and store one manifest of captured documents.

    Each manifest entry: {document_id, school_slug, source_year, path}.
    Returns the batch summary plus per-year integrity reports.
    """
    task_log = logger.bind(task_id=self.request.id, documents=len(manifest))
    task_log.info("Extraction batch task started")

    try:
        refs = [DocumentRef.from_dict(entry) for entry in manifest]
        summary = asyncio.run(_run_batch(refs, documents_root, database_url))
    except Exception as exc:
        task_log.exception("Extraction batch task failed", error=str(exc))
        raise

    task_log.info(
        "Extraction batch task finished",
        batch_id=summary["batch_id"],
        total=summary["total"],
        conflicts_found=summary["conflicts_found"],
        open_circuits=registry.open_circuits(),
    )
    return summary


@celery_app.task(bind=True, name="silver.tasks.extraction_tasks.deduplicate")
def deduplicate(self, dry_run: bool = True, database_url: str | None = None):
    """Collapse records sharing (school_slug, source_year); dry run by default."""
    task_log = logger.bind(task_id=self.request.id, dry_run=dry_run)
    task_log.info("Deduplication task started")
    report = asyncio.run(_run_dedup(dry_run, database_url))
    task_log.info("Deduplication task finished", **{k: report[k] for k in ("groups_found", "records_removed")})
    return report


@celery_app.task(bind=True, name="silver.tasks.extraction_tasks.integrity_report")
def integrity_report(self, source_year: int, database_url: str | None = None):
    """Bucket-1 national rank integrity for one year."""
    report = asyncio.run(_run_integrity(source_year, database_url))
    logger.bind(task_id=self.request.id).info(
        "Integrity report built",
        source_year=source_year,
        integrity_score=report["integrity_score"],
    )
    return report
