"""
ParsedDocument — a BeautifulSoup tree plus the text views the tiers need.

Parsing is lenient (html.parser); only documents that cannot yield any
element at all are rejected with DocumentParseError.
"""

from __future__ import annotations

import json
import re
from functools import cached_property
from typing import Any

from bs4 import BeautifulSoup, Tag

from silver.pipeline.errors import DocumentParseError

_WHITESPACE = re.compile(r"\s+")


def clean_text(text: str | None) -> str:
    """Collapse runs of whitespace and strip."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def element_text(element: Tag | None) -> str:
    if element is None:
        return ""
    return clean_text(element.get_text(" "))


class ParsedDocument:
    """Read-only view over one parsed page."""

    def __init__(self, soup: BeautifulSoup, raw_html: str) -> None:
        self.soup = soup
        self.raw_html = raw_html
        self.malformed_json_ld = 0

    # ─── Structural queries ───────────────────────────

    def select(self, query: str) -> list[Tag]:
        return self.soup.select(query)

    def select_one(self, query: str) -> Tag | None:
        return self.soup.select_one(query)

    # ─── Text views ───────────────────────────────────

    @cached_property
    def body_text(self) -> str:
        """Whitespace-normalised visible text of <body> (or the whole tree)."""
        root = self.soup.body or self.soup
        return element_text(root)

    def section_text(self, query: str) -> str:
        return element_text(self.select_one(query))

    # ─── Embedded metadata ────────────────────────────

    @cached_property
    def json_ld_blocks(self) -> list[dict[str, Any]]:
        """
        Every decodable JSON-LD object on the page.

        Top-level arrays and `@graph` containers are flattened.  Blocks that
        are not valid JSON are skipped and counted in `malformed_json_ld`.
        """
        blocks: list[dict[str, Any]] = []
        self.malformed_json_ld = 0
        for script in self.soup.find_all("script", attrs={"type": "application/ld+json"}):
            payload = script.string or script.get_text()
            if not payload or not payload.strip():
                continue
            try:
                data = json.loads(payload)
            except json.JSONDecodeError:
                self.malformed_json_ld += 1
                continue
            blocks.extend(_flatten_json_ld(data))
        return blocks


def _flatten_json_ld(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, list):
        out: list[dict[str, Any]] = []
        for item in data:
            out.extend(_flatten_json_ld(item))
        return out
    if isinstance(data, dict):
        if isinstance(data.get("@graph"), list):
            return _flatten_json_ld(data["@graph"])
        return [data]
    return []


def parse_document(content: bytes | str) -> ParsedDocument:
    """
    Parse raw page bytes.

    Raises:
        DocumentParseError: when the content is empty, contains no markup,
            or is rejected by the parser.
    """
    if isinstance(content, bytes):
        html = content.decode("utf-8", errors="replace")
    else:
        html = content or ""

    if not html.strip():
        raise DocumentParseError("Document is empty")

    try:
        soup = BeautifulSoup(html, "html.parser")
    except Exception as exc:
        # html.parser rejects some broken constructs outright (e.g. unknown "<![" sections)
        raise DocumentParseError(f"Markup rejected by parser: {exc}") from exc
    if soup.find(True) is None:
        raise DocumentParseError("Document contains no markup")
    return ParsedDocument(soup, html)
