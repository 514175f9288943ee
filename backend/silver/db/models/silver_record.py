"""
SilverRecord — one extracted school record per stored extraction.

The natural key (school_slug, source_year) is deliberately NOT unique:
repeated extraction runs may store several rows for the same school and
year, and the Deduplicator collapses them afterwards.

Ranking columns are promoted out of `fields` so the uniqueness checks
and the integrity report can filter on them in SQL.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, String

from silver.db.models.base import Base, JSONType, utcnow


class SilverRecord(Base):
    """A validated ExtractedRecord as persisted."""

    __tablename__ = "silver_records"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # ── Natural key ───────────────────────────
    school_slug = Column(String(255), nullable=False, index=True)
    source_year = Column(Integer, nullable=False, index=True)
    document_id = Column(String(255), nullable=False)

    # ── Identity / location ───────────────────
    school_name = Column(String(255), nullable=True)
    address_state = Column(String(2), nullable=True, index=True)

    # ── Rankings ──────────────────────────────
    national_rank = Column(Integer, nullable=True, index=True)
    national_rank_end = Column(Integer, nullable=True)
    national_rank_precision = Column(String(20), nullable=True)
    state_rank = Column(Integer, nullable=True)
    state_rank_end = Column(Integer, nullable=True)
    state_rank_precision = Column(String(20), nullable=True)
    is_unranked = Column(Boolean, default=False, nullable=False)

    # ── Extraction output ─────────────────────
    fields = Column(JSONType, default=dict)               # field name → value
    field_confidence = Column(JSONType, default=dict)     # field name → 0..100
    category_confidence = Column(JSONType, default=dict)  # category → 0..100
    processing_errors = Column(JSONType, default=list)    # SoftError.to_dict() list
    extraction_confidence = Column(Float, nullable=False, default=0.0)
    extraction_status = Column(String(20), nullable=False)

    # ── Timestamps ────────────────────────────
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_silver_records_natural_key", "school_slug", "source_year"),
    )

    def __repr__(self) -> str:
        return f"<SilverRecord slug={self.school_slug} year={self.source_year} conf={self.extraction_confidence}>"
