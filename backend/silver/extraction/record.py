"""
Value types shared by the extractor, the validators and the stores.

    SourceDocument  — one captured page handed over by ingestion
    FieldValue      — a single extracted value with its confidence
    SoftError       — a recorded, non-fatal field failure
    ExtractedRecord — the per-document output of the extraction engine
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from silver.core.constants import ExtractionStatus, ExtractionTier, SoftErrorType
from silver.pipeline.errors import CriticalFieldError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════
#  Input
# ═══════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceDocument:
    """
    A captured page as delivered by the ingestion collaborator.

    Args:
        document_id: Stable identifier of the captured document.
        school_slug: Natural-key entity slug, e.g. "academic-magnet-high-school-3841".
        source_year: Ranking year the capture belongs to.
        content: Raw document bytes (or already-decoded text).
    """

    document_id: str
    school_slug: str
    source_year: int
    content: bytes | str = b""


# ═══════════════════════════════════════════════════════════
#  Field-level values
# ═══════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FieldValue:
    """One extracted field value and where it came from."""

    name: str
    value: Any
    confidence: float
    tier: ExtractionTier | None = None
    source: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "confidence": self.confidence,
            "tier": self.tier,
            "source": self.source,
        }


@dataclass(frozen=True)
class SoftError:
    """A recorded, non-fatal extraction failure for a single field."""

    field: str
    error_type: SoftErrorType
    message: str
    tier: ExtractionTier | None = None
    critical: bool = False
    timestamp: datetime = dataclasses.field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Serialise for JSON storage."""
        return {
            "field": self.field,
            "error_type": self.error_type,
            "message": self.message,
            "tier": self.tier,
            "critical": self.critical,
            "timestamp": self.timestamp.isoformat(),
        }


# ═══════════════════════════════════════════════════════════
#  ExtractedRecord
# ═══════════════════════════════════════════════════════════

def resolve_status(
    overall_confidence: float,
    *,
    min_confidence: float,
    critical_missing: bool,
    malformed: bool = False,
) -> ExtractionStatus:
    """Map confidence and critical-field presence onto a record status."""
    if malformed:
        return ExtractionStatus.MALFORMED
    if critical_missing or overall_confidence < min_confidence:
        return ExtractionStatus.LOW_CONFIDENCE
    return ExtractionStatus.EXTRACTED


@dataclass(frozen=True)
class ExtractedRecord:
    """
    Per-document extraction output.

    Immutable: the uniqueness validator produces an adjusted copy via
    `with_conflicts()` rather than editing a record in place.
    """

    school_slug: str
    source_year: int
    document_id: str
    fields: dict[str, Any] = field(default_factory=dict)
    field_confidence: dict[str, float] = field(default_factory=dict)
    category_confidence: dict[str, float] = field(default_factory=dict)
    overall_confidence: float = 0.0
    errors: tuple[SoftError, ...] = ()
    status: ExtractionStatus = ExtractionStatus.MALFORMED
    critical_missing: tuple[str, ...] = ()

    @property
    def natural_key(self) -> tuple[str, int]:
        return (self.school_slug, self.source_year)

    def get(self, name: str, default: Any = None) -> Any:
        """Return a field value, or `default` when it was not extracted."""
        value = self.fields.get(name)
        return default if value is None else value

    def raise_for_critical(self) -> None:
        """Raise CriticalFieldError when an identity-defining field is missing."""
        if self.critical_missing:
            raise CriticalFieldError(
                f"Critical field(s) missing: {', '.join(self.critical_missing)}",
                field_name=self.critical_missing[0],
                document_id=self.document_id,
                school_slug=self.school_slug,
                details={"fields": list(self.critical_missing), "status": str(self.status)},
            )

    def with_conflicts(
        self,
        conflicts: list,
        *,
        min_confidence: float,
    ) -> ExtractedRecord:
        """
        Return a copy with conflict penalties applied.

        Data is never dropped: the conflicts become soft errors and the
        overall confidence is lowered by the summed adjustments (floored at 0).
        """
        if not conflicts:
            return self
        adjustment = sum(c.confidence_adjustment for c in conflicts)
        overall = max(0.0, round(self.overall_confidence + adjustment, 2))
        errors = self.errors + tuple(c.to_soft_error() for c in conflicts)
        status = resolve_status(
            overall,
            min_confidence=min_confidence,
            critical_missing=bool(self.critical_missing),
            malformed=self.status == ExtractionStatus.MALFORMED,
        )
        return dataclasses.replace(
            self,
            overall_confidence=overall,
            errors=errors,
            status=status,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise for JSON storage / Celery results."""
        return {
            "school_slug": self.school_slug,
            "source_year": self.source_year,
            "document_id": self.document_id,
            "fields": dict(self.fields),
            "field_confidence": dict(self.field_confidence),
            "category_confidence": dict(self.category_confidence),
            "overall_confidence": self.overall_confidence,
            "errors": [e.to_dict() for e in self.errors],
            "status": self.status,
            "critical_missing": list(self.critical_missing),
        }
