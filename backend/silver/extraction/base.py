"""
TierExtractor — abstract base class for the three extraction tiers.

A tier turns one strategy into raw candidates; the shared
`first_plausible()` helper runs them through the field's normalizer and
returns the first one that survives.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable

from silver.core.constants import ExtractionTier
from silver.extraction.document import ParsedDocument
from silver.extraction.strategies import Normalizer


@dataclass(frozen=True)
class TierOutcome:
    """What one strategy produced for one field."""

    value: Any = None
    candidates_seen: int = 0

    @property
    def found(self) -> bool:
        return self.value is not None

    @property
    def rejected(self) -> bool:
        """Something matched but none of it passed validation."""
        return self.value is None and self.candidates_seen > 0


class TierExtractor(ABC):
    """Base interface for extraction tiers."""

    tier: ExtractionTier

    @abstractmethod
    def candidates(self, doc: ParsedDocument, strategy: Any, context: Any = None) -> Iterable[Any]:
        """Yield raw candidate values for one strategy, best-first."""
        ...

    def extract(
        self,
        doc: ParsedDocument,
        strategy: Any,
        normalize: Normalizer,
        context: Any = None,
    ) -> TierOutcome:
        return first_plausible(self.candidates(doc, strategy, context), normalize)


def first_plausible(candidates: Iterable[Any], normalize: Normalizer) -> TierOutcome:
    seen = 0
    for raw in candidates:
        if raw is None or raw == "":
            continue
        seen += 1
        value = normalize(raw)
        if value is not None:
            return TierOutcome(value=value, candidates_seen=seen)
    return TierOutcome(candidates_seen=seen)
