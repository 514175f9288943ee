"""
Validation package.

    confidence_scorer.py — FieldMerger + ConfidenceScorer (pure)
    uniqueness.py        — cross-record rank consistency
    deduplicator.py      — one record per (school, year)
"""
