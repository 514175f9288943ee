"""SelectorExtractor — CSS queries over the parsed tree."""

from __future__ import annotations

from typing import Any, Iterator

from silver.core.constants import ExtractionTier
from silver.extraction.base import TierExtractor
from silver.extraction.document import ParsedDocument, clean_text, element_text
from silver.extraction.strategies import Selector


class SelectorExtractor(TierExtractor):
    """Tries every element a query matches, in document order."""

    tier = ExtractionTier.SELECTOR

    def candidates(self, doc: ParsedDocument, strategy: Selector, context: Any = None) -> Iterator[str]:
        for element in doc.select(strategy.query):
            if strategy.attribute:
                value = element.get(strategy.attribute)
                if isinstance(value, list):
                    value = " ".join(value)
                yield clean_text(value)
            else:
                yield element_text(element)
