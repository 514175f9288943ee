"""
StructuredDataDecoder — schema.org JSON-LD → flat key/value map.

School pages embed one `HighSchool` object.  The decoder flattens the
fields we care about and also mines its free-text `description`, which
carries figures (AP participation, minority enrollment, economically
disadvantaged share) and ranking text not present elsewhere in the block.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterator

from silver.core.constants import ExtractionTier
from silver.core.logging import get_logger
from silver.extraction.base import TierExtractor
from silver.extraction.document import ParsedDocument, clean_text
from silver.extraction.record import FieldValue
from silver.extraction.strategies import StructuredData

logger = get_logger(__name__)

# Confidence for figures read out of the description prose
DESCRIPTION_CONFIDENCE = 80

_AP_RATE = re.compile(r"AP participation rate[^0-9]*(\d+)%", re.IGNORECASE)
_MINORITY = re.compile(r"total minority enrollment is (\d+)%", re.IGNORECASE)
_ECON = re.compile(r"(\d+)% of students are economically disadvantaged", re.IGNORECASE)


@dataclass
class DecodedStructuredData:
    """Result of decoding a page's JSON-LD."""

    values: dict[str, Any] = field(default_factory=dict)
    description: str | None = None
    malformed_blocks: int = 0

    @property
    def found(self) -> bool:
        return bool(self.values) or self.description is not None

    def get(self, key: str) -> Any:
        return self.values.get(key)


class StructuredDataDecoder:
    """Finds the school JSON-LD object and normalises its keys."""

    SCHOOL_TYPES = frozenset({"HighSchool"})

    # JSON-LD path → output key
    KEY_MAP: dict[tuple[str, ...], str] = {
        ("name",): "school_name",
        ("location", "address", "streetAddress"): "address_street",
        ("location", "address", "addressLocality"): "address_city",
        ("location", "address", "addressRegion"): "address_state",
        ("location", "address", "postalCode"): "address_zip",
        ("address", "streetAddress"): "address_street",
        ("address", "addressLocality"): "address_city",
        ("address", "addressRegion"): "address_state",
        ("address", "postalCode"): "address_zip",
        ("telephone",): "phone",
        ("url",): "website",
    }

    def decode(self, doc: ParsedDocument) -> DecodedStructuredData:
        result = DecodedStructuredData()
        school = self._find_school(doc.json_ld_blocks)
        result.malformed_blocks = doc.malformed_json_ld
        if school is None:
            return result

        for path, key in self.KEY_MAP.items():
            if key in result.values:
                continue
            value = _dig(school, path)
            if isinstance(value, (str, int, float)) and not isinstance(value, bool):
                result.values[key] = value

        description = school.get("description")
        if isinstance(description, str) and description.strip():
            result.description = clean_text(description)
        return result

    def _find_school(self, blocks: list[dict[str, Any]]) -> dict[str, Any] | None:
        for block in blocks:
            types = block.get("@type")
            if isinstance(types, str):
                types = [types]
            if isinstance(types, list) and self.SCHOOL_TYPES.intersection(types):
                return block
        return None

    def mine_description(self, description: str | None) -> dict[str, FieldValue]:
        """Pull the figures US-News-style descriptions state in prose."""
        if not description:
            return {}

        mined: dict[str, FieldValue] = {}

        def put(name: str, value: float) -> None:
            if 0 <= value <= 100:
                mined[name] = FieldValue(
                    name=name,
                    value=value,
                    confidence=DESCRIPTION_CONFIDENCE,
                    tier=ExtractionTier.STRUCTURED_DATA,
                    source="json-ld:description",
                )

        match = _AP_RATE.search(description)
        if match:
            put("ap_participation_rate", float(match.group(1)))
        match = _MINORITY.search(description)
        if match:
            # minority share is everything except white students
            put("white_pct", float(100 - int(match.group(1))))
        match = _ECON.search(description)
        if match:
            put("economically_disadvantaged_pct", float(match.group(1)))

        if mined:
            logger.debug("Description figures mined", fields=sorted(mined))
        return mined


def _dig(data: Any, path: tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


class StructuredDataTier(TierExtractor):
    """Tier adapter: reads one key from the already-decoded JSON-LD map."""

    tier = ExtractionTier.STRUCTURED_DATA

    def candidates(
        self,
        doc: ParsedDocument,
        strategy: StructuredData,
        context: DecodedStructuredData | None = None,
    ) -> Iterator[Any]:
        if context is None:
            return
        value = context.get(strategy.key)
        if value is not None:
            yield value
