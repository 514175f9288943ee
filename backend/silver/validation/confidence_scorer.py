"""
Confidence scoring for extraction quality.

FieldMerger combines the outputs of independent extraction passes (the
tier chain, the ranking parser, JSON-LD description mining) keeping the
highest-confidence non-null value per field.  Linked fields (a rank and
its end/precision) move as one unit so a winner is never mixed with a
loser's leftovers.

ConfidenceScorer turns per-field confidences into per-category and
overall scores.  Both are pure: same input, same output, no state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from silver.core.constants import FieldCategory
from silver.extraction.record import FieldValue

LINKED_FIELDS: dict[str, tuple[str, ...]] = {
    "national_rank": ("national_rank_end", "national_rank_precision"),
    "state_rank": ("state_rank_end", "state_rank_precision"),
    "is_unranked": ("unranked_reason",),
}


class FieldMerger:
    """Highest-confidence non-null value wins; earlier passes win ties."""

    def __init__(self, linked: Mapping[str, tuple[str, ...]] = LINKED_FIELDS) -> None:
        self.linked = dict(linked)
        self._followers = {f for group in self.linked.values() for f in group}

    def merge(self, *passes: Mapping[str, FieldValue]) -> dict[str, FieldValue]:
        merged: dict[str, FieldValue] = {}

        for values in passes:
            for name, candidate in values.items():
                if name in self._followers or candidate.value is None:
                    continue
                current = merged.get(name)
                if current is not None and current.confidence >= candidate.confidence:
                    continue
                merged[name] = candidate
                for follower in self.linked.get(name, ()):
                    if follower in values:
                        merged[follower] = values[follower]
                    else:
                        merged.pop(follower, None)
        return merged


@dataclass(frozen=True)
class ConfidenceBreakdown:
    """Per-category and overall confidence for one record."""

    categories: dict[str, float] = field(default_factory=dict)
    overall: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {**self.categories, "overall": self.overall}


class ConfidenceScorer:
    """
    Category confidence = max of its populated fields; overall = mean of
    the non-zero categories.  A category with one strong field is reliably
    present even when its siblings are legitimately null.
    """

    def __init__(self, field_categories: Mapping[str, FieldCategory]) -> None:
        self.field_categories = dict(field_categories)

    def score(self, confidences: Mapping[str, float]) -> ConfidenceBreakdown:
        categories: dict[str, float] = {str(c): 0.0 for c in FieldCategory}

        for name, confidence in confidences.items():
            category = self.field_categories.get(name)
            if category is None or not confidence:
                continue
            key = str(category)
            categories[key] = max(categories[key], float(confidence))

        populated = [c for c in categories.values() if c > 0]
        overall = round(sum(populated) / len(populated), 2) if populated else 0.0
        return ConfidenceBreakdown(categories=categories, overall=overall)

    def score_fields(self, fields: Mapping[str, FieldValue]) -> ConfidenceBreakdown:
        return self.score({name: fv.confidence for name, fv in fields.items()})
