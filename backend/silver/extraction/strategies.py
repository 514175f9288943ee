"""
Typed extraction strategies.

A field's fallback chain is an ordered tuple of strategy variants::

    Strategy = StructuredData | Selector | Pattern

Each variant validates its own inputs at construction time (selectors are
compiled with soupsieve, patterns with `re`), so a bad table entry fails at
import rather than silently on every document.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar

import soupsieve

from silver.core.constants import ExtractionTier, FieldCategory

Normalizer = Callable[[Any], Any]


@dataclass(frozen=True)
class StructuredData:
    """Look a key up in the decoded JSON-LD map."""

    key: str
    confidence: int = 95

    tier: ClassVar[ExtractionTier] = ExtractionTier.STRUCTURED_DATA

    def describe(self) -> str:
        return f"json-ld:{self.key}"


@dataclass(frozen=True)
class Selector:
    """
    CSS query against the document tree.

    `attribute` reads an attribute (e.g. href) instead of element text.
    Every matching element is tried in document order.
    """

    query: str
    confidence: int = 85
    attribute: str | None = None

    tier: ClassVar[ExtractionTier] = ExtractionTier.SELECTOR

    def __post_init__(self) -> None:
        soupsieve.compile(self.query)

    def describe(self) -> str:
        return f"css:{self.query}"


@dataclass(frozen=True)
class Pattern:
    """
    Regex over text. `within` narrows the text to one element's content;
    by default the whole body text is searched.
    """

    regex: str
    confidence: int = 75
    group: int = 1
    within: str | None = None
    flags: int = re.IGNORECASE

    compiled: re.Pattern = field(init=False, repr=False, compare=False)

    tier: ClassVar[ExtractionTier] = ExtractionTier.PATTERN

    def __post_init__(self) -> None:
        compiled = re.compile(self.regex, self.flags)
        if compiled.groups < self.group:
            raise ValueError(f"Pattern {self.regex!r} has no group {self.group}")
        if self.within is not None:
            soupsieve.compile(self.within)
        object.__setattr__(self, "compiled", compiled)

    def describe(self) -> str:
        return f"regex:{self.regex}"


Strategy = StructuredData | Selector | Pattern

_TIER_ORDER = {
    ExtractionTier.STRUCTURED_DATA: 0,
    ExtractionTier.SELECTOR: 1,
    ExtractionTier.PATTERN: 2,
}


@dataclass(frozen=True)
class FieldSpec:
    """
    Everything the extractor needs to know about one field.

    Args:
        name: Output field name.
        category: Confidence category the field contributes to.
        strategies: Ordered fallback chain; must be in tier order.
        normalize: Returns the cleaned value, or None when the raw
                   candidate is not plausible for this field.
        critical: Identity-defining; a miss is surfaced, not silent.
    """

    name: str
    category: FieldCategory
    strategies: tuple[Strategy, ...]
    normalize: Normalizer
    critical: bool = False

    def __post_init__(self) -> None:
        if not self.strategies:
            raise ValueError(f"Field {self.name!r} has no strategies")
        ranks = [_TIER_ORDER[s.tier] for s in self.strategies]
        if ranks != sorted(ranks):
            raise ValueError(f"Field {self.name!r} strategies are not in tier order")
