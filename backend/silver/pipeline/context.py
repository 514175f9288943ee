"""
Batch context — what goes into a batch run and what comes out.

    DocumentRef   — one manifest entry (where to read a captured page)
    BatchResult   — records, conflicts and failures for one run, plus
                    the summary handed back to Celery callers
"""

from __future__ import annotations

import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from silver.core.constants import ExtractionStatus
from silver.extraction.record import ExtractedRecord
from silver.validation.uniqueness import ValidationConflict


# ═══════════════════════════════════════════════════════════
#  DocumentRef — manifest entry
# ═══════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DocumentRef:
    """
    Args:
        document_id: Identifier assigned by ingestion.
        school_slug: Natural-key entity slug.
        source_year: Ranking year.
        path: Location of the captured document, relative to the
              reader's root unless absolute.
    """

    document_id: str
    school_slug: str
    source_year: int
    path: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocumentRef:
        return cls(
            document_id=str(data["document_id"]),
            school_slug=str(data["school_slug"]),
            source_year=int(data["source_year"]),
            path=str(data["path"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "school_slug": self.school_slug,
            "source_year": self.source_year,
            "path": self.path,
        }


# ═══════════════════════════════════════════════════════════
#  BatchResult
# ═══════════════════════════════════════════════════════════

@dataclass
class BatchResult:
    """
    Populated by BatchRunner.  `records` are in manifest order and hold
    the post-validation (penalised) versions.
    """

    batch_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    records: list[ExtractedRecord] = field(default_factory=list)
    conflicts: list[ValidationConflict] = field(default_factory=list)
    read_failures: list[dict[str, Any]] = field(default_factory=list)
    persistence_failures: list[dict[str, Any]] = field(default_factory=list)
    critical_failures: list[dict[str, Any]] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    @property
    def duration_ms(self) -> int:
        if self.completed_at is None:
            return 0
        return int((self.completed_at - self.started_at).total_seconds() * 1000)

    def status_counts(self) -> dict[str, int]:
        counts = Counter(str(r.status) for r in self.records)
        return {str(status): counts.get(str(status), 0) for status in ExtractionStatus}

    def field_coverage(self) -> dict[str, float]:
        """Percentage of records carrying each field."""
        if not self.records:
            return {}
        seen = Counter(name for r in self.records for name in r.fields)
        total = len(self.records)
        return {name: round(count / total * 100, 1) for name, count in sorted(seen.items())}

    def average_confidence(self) -> float:
        if not self.records:
            return 0.0
        return round(sum(r.overall_confidence for r in self.records) / len(self.records), 2)

    def to_summary_dict(self) -> dict[str, Any]:
        counts = self.status_counts()
        return {
            "batch_id": self.batch_id,
            "total": len(self.records),
            "extracted": counts[ExtractionStatus.EXTRACTED],
            "low_confidence": counts[ExtractionStatus.LOW_CONFIDENCE],
            "malformed": counts[ExtractionStatus.MALFORMED],
            "average_confidence": self.average_confidence(),
            "field_coverage": self.field_coverage(),
            "conflicts_found": len(self.conflicts),
            "conflicts": [c.to_dict() for c in self.conflicts],
            "critical_failures": len(self.critical_failures),
            "read_failures": len(self.read_failures),
            "persistence_failures": len(self.persistence_failures),
            "duration_ms": self.duration_ms,
        }
