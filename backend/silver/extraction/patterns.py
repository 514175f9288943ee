"""PatternExtractor — regex fallback over body or element text."""

from __future__ import annotations

from typing import Any, Iterator

from silver.core.constants import ExtractionTier
from silver.extraction.base import TierExtractor
from silver.extraction.document import ParsedDocument
from silver.extraction.strategies import Pattern


class PatternExtractor(TierExtractor):
    """Yields every match of the strategy's regex, left to right."""

    tier = ExtractionTier.PATTERN

    def candidates(self, doc: ParsedDocument, strategy: Pattern, context: Any = None) -> Iterator[str]:
        text = doc.section_text(strategy.within) if strategy.within else doc.body_text
        if not text:
            return
        for match in strategy.compiled.finditer(text):
            yield match.group(strategy.group)
