"""
Field normalizers.

Each returns the cleaned value or None when the candidate is implausible.
They never raise on bad input; that is what lets the tier loop move on
to the next strategy.
"""

from __future__ import annotations

import re
from typing import Any, Callable
from urllib.parse import urlparse

from silver.extraction.document import clean_text

_NUMBER = re.compile(r"\d{1,3}(?:,\d{3})+|\d+")
_PERCENT = re.compile(r"(\d{1,3}(?:\.\d+)?)\s*%?")
_ZIP = re.compile(r"^\d{5}(?:-\d{4})?$")
_NCES = re.compile(r"^\d{12}$")
_GRADES = re.compile(r"^(?:K|PK|\d{1,2})(?:-\d{1,2})?$", re.IGNORECASE)
_RATIO = re.compile(r"^(\d{1,2})\s*:\s*(\d)$")
_BAD_NAMES = re.compile(r"not\s+found|error", re.IGNORECASE)

US_STATE_CODES_BY_NAME: dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK",
    "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT",
    "vermont": "VT", "virginia": "VA", "washington": "WA", "west virginia": "WV",
    "wisconsin": "WI", "wyoming": "WY", "district of columbia": "DC",
    "puerto rico": "PR", "virgin islands": "VI", "guam": "GU",
}

US_STATE_CODES = frozenset(US_STATE_CODES_BY_NAME.values())
US_STATE_NAMES = frozenset(US_STATE_CODES_BY_NAME)


def _text(raw: Any) -> str:
    return clean_text(raw if isinstance(raw, str) else str(raw)) if raw is not None else ""


# ─── Text fields ──────────────────────────────

def school_name(raw: Any) -> str | None:
    """Page titles look like "Name | Site"; keep the part before the bar."""
    text = _text(raw).split("|")[0].strip()
    if not 5 <= len(text) <= 100 or _BAD_NAMES.search(text):
        return None
    return text


def bounded_text(min_len: int, max_len: int) -> Callable[[Any], str | None]:
    def normalize(raw: Any) -> str | None:
        text = _text(raw)
        return text if min_len <= len(text) <= max_len else None
    return normalize


def us_state(raw: Any) -> str | None:
    """Postal code, or full state name mapped to its postal code ("South Carolina" → "SC")."""
    text = _text(raw)
    if text.upper() in US_STATE_CODES:
        return text.upper()
    return US_STATE_CODES_BY_NAME.get(text.lower())


def is_us_state_name(name: str) -> bool:
    return name.strip().lower() in US_STATE_NAMES


# ─── Formatted identifiers ────────────────────

def zip_code(raw: Any) -> str | None:
    text = _text(raw)
    return text if _ZIP.match(text) else None


def phone(raw: Any) -> str | None:
    """Ten digits, formatted "(NNN) NNN-NNNN"."""
    digits = re.sub(r"\D", "", _text(raw))
    if len(digits) != 10:
        return None
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def nces_id(raw: Any) -> str | None:
    text = _text(raw)
    return text if _NCES.match(text) else None


def grades(raw: Any) -> str | None:
    text = _text(raw).replace(" ", "").upper()
    return text if _GRADES.match(text) else None


def student_teacher_ratio(raw: Any) -> str | None:
    match = _RATIO.match(_text(raw))
    if not match:
        return None
    return f"{int(match.group(1))}:{match.group(2)}"


def website(excluded_host: str | None) -> Callable[[Any], str | None]:
    """Accept http(s) URLs or bare domains, except links back to the source site."""
    excluded = (excluded_host or "").lower().removeprefix("www.")

    def normalize(raw: Any) -> str | None:
        text = _text(raw)
        if not text or " " in text:
            return None
        if not text.startswith(("http://", "https://")):
            if "." not in text:
                return None
            text = f"http://{text}"
        host = (urlparse(text).hostname or "").lower().removeprefix("www.")
        if not host or "." not in host:
            return None
        if excluded and (host == excluded or host.endswith(f".{excluded}")):
            return None
        return text
    return normalize


# ─── Numeric fields ───────────────────────────

def int_in_range(minimum: int, maximum: int) -> Callable[[Any], int | None]:
    """First integer in the text ("2,657 students" → 2657) within bounds."""
    def normalize(raw: Any) -> int | None:
        if isinstance(raw, bool):
            return None
        if isinstance(raw, int):
            value = raw
        else:
            match = _NUMBER.search(_text(raw))
            if not match:
                return None
            value = int(match.group(0).replace(",", ""))
        return value if minimum <= value <= maximum else None
    return normalize


def percentage(raw: Any) -> float | None:
    """0–100 inclusive; accepts "85%", "85.5 %", 85."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        match = _PERCENT.search(_text(raw))
        if not match:
            return None
        value = float(match.group(1))
    return value if 0 <= value <= 100 else None
