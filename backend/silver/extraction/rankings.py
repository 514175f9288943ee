"""
RankingCandidateParser — confidence-weighted ranking selection.

Ranking text on school pages is messy: the same blob can carry a national
rank, a state rank, a bucket-2 range, or all of them at once.  Instead of
first-match-wins, every rule in RANKING_RULES is evaluated over the text,
all surviving matches become RankingCandidates, and the best candidate per
scope is chosen by a single ordering:

    confidence desc → precision (exact > range > state_only > estimated)
    → rule order

Composite text ("#7 in National Rankings #1 in South Carolina High Schools")
is handled by two rows sharing one regex, one per scope, so the scopes never
suppress each other.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from silver.core.constants import (
    BUCKET_2_MAX,
    BUCKET_2_MIN,
    MAX_NATIONAL_RANK,
    REJECTED_RANGE_START,
    ExtractionTier,
    RankingPrecision,
    RankingScope,
    ranking_bucket,
)
from silver.core.logging import get_logger
from silver.extraction.document import ParsedDocument, element_text
from silver.extraction.record import FieldValue
from silver.extraction.validators import is_us_state_name

logger = get_logger(__name__)

PRECISION_ORDER: dict[str, int] = {
    RankingPrecision.EXACT: 4,
    RankingPrecision.RANGE: 3,
    RankingPrecision.STATE_ONLY: 2,
    RankingPrecision.ESTIMATED: 1,
}

_NUM = r"\d{1,4}(?:,\d{3})*"
_STATE = r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*"
# A single rank that is really the start of "#a-b" must not be read alone
_NOT_RANGE_START = r"(?![\d,]*\s*-\s*\d)"

_DISTRICT_WORDS = ("district", "township", "county", "system", "isd", "unified", "national")
_TRAILING_HS = re.compile(r"\s+high(?:\s+schools?)?$", re.IGNORECASE)


def precision_for_national(rank: int) -> RankingPrecision:
    """Bucket-derived precision for a single national rank."""
    bucket = ranking_bucket(rank, RankingScope.NATIONAL)
    if bucket == 1:
        return RankingPrecision.EXACT
    if bucket == 2:
        return RankingPrecision.RANGE
    return RankingPrecision.ESTIMATED


def _to_int(text: str) -> int:
    return int(text.replace(",", ""))


# ═══════════════════════════════════════════════════════════
#  Candidates
# ═══════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RankingCandidate:
    """One plausible interpretation of ranking text."""

    rank: int
    precision: RankingPrecision
    confidence: int
    scope: RankingScope
    rank_end: int | None = None
    state: str | None = None
    rule: str = ""

    @property
    def bucket(self) -> int:
        return ranking_bucket(self.rank, self.scope)

    def sort_key(self) -> tuple[int, int]:
        return (-self.confidence, -PRECISION_ORDER.get(self.precision, 0))

    def to_dict(self) -> dict[str, Any]:
        return {
            "rank": self.rank,
            "rank_end": self.rank_end,
            "precision": self.precision,
            "confidence": self.confidence,
            "scope": self.scope,
            "state": self.state,
            "rule": self.rule,
        }


@dataclass(frozen=True)
class RankingRule:
    """
    One row of the declarative ranking table.

    Args:
        name: Identifier used in logs and on candidates.
        regex: Pattern; evaluated with finditer so every occurrence counts.
        scope: Which ranking the match describes.
        confidence: Fixed confidence of every candidate this rule yields.
        precision: Fixed precision, or None to derive it from the bucket.
        rank_group / end_group / state_group: Regex groups to read.
        min_rank / max_rank: Accepted bounds for the (start) rank.
        max_end: Upper bound for a range end.
        rejected_starts: Range starts that are known artifacts.
    """

    name: str
    regex: str
    scope: RankingScope
    confidence: int
    precision: RankingPrecision | None = None
    rank_group: int = 1
    end_group: int | None = None
    state_group: int | None = None
    min_rank: int = 1
    max_rank: int = MAX_NATIONAL_RANK
    max_end: int | None = None
    rejected_starts: frozenset[int] = frozenset()
    flags: int = re.IGNORECASE

    compiled: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "compiled", re.compile(self.regex, self.flags))


RANKING_RULES: tuple[RankingRule, ...] = (
    RankingRule(
        name="ranked_hash",
        regex=rf"ranked\s*#\s*(\d{{1,5}}(?:,\d{{3}})*){_NOT_RANGE_START}",
        scope=RankingScope.NATIONAL,
        confidence=98,
    ),
    RankingRule(
        name="national_bucket2_range",
        regex=r"#(\d{1,2},\d{3})\s*-\s*(\d{1,2},\d{3})",
        scope=RankingScope.NATIONAL,
        confidence=95,
        precision=RankingPrecision.RANGE,
        end_group=2,
        min_rank=BUCKET_2_MIN + 1,
        max_rank=BUCKET_2_MAX,
        max_end=BUCKET_2_MAX,
        rejected_starts=frozenset({REJECTED_RANGE_START}),
    ),
    RankingRule(
        name="composite_national",
        regex=rf"#({_NUM})\s+in\s+National\s+Rankings?\s+#(\d{{1,4}})\s*in\s+({_STATE})\s+High\s+Schools?",
        scope=RankingScope.NATIONAL,
        confidence=95,
    ),
    RankingRule(
        name="composite_state",
        regex=rf"#({_NUM})\s+in\s+National\s+Rankings?\s+#(\d{{1,4}})\s*in\s+({_STATE})\s+High\s+Schools?",
        scope=RankingScope.STATE,
        confidence=95,
        precision=RankingPrecision.EXACT,
        rank_group=2,
        state_group=3,
        max_rank=1000,
    ),
    RankingRule(
        name="state_range",
        regex=rf"#({_NUM})\s*-\s*({_NUM})\s*in\s+({_STATE})\s+High\s+Schools?",
        scope=RankingScope.STATE,
        confidence=95,
        precision=RankingPrecision.RANGE,
        end_group=2,
        state_group=3,
        max_rank=10000,
        max_end=10000,
    ),
    RankingRule(
        name="state_only",
        regex=rf"#({_NUM}){_NOT_RANGE_START}\s*in\s+({_STATE})\s+High\s+Schools?",
        scope=RankingScope.STATE,
        confidence=95,
        precision=RankingPrecision.STATE_ONLY,
        state_group=2,
        max_rank=10000,
    ),
    RankingRule(
        name="national_rankings",
        regex=rf"#({_NUM})\s+in\s+National\s+Rankings?",
        scope=RankingScope.NATIONAL,
        confidence=95,
    ),
    RankingRule(
        name="national_fallback",
        regex=rf"#(\d+){_NOT_RANGE_START}\s*(?:in\s*)?national",
        scope=RankingScope.NATIONAL,
        confidence=85,
    ),
    RankingRule(
        name="state_fallback",
        regex=rf"#(\d+){_NOT_RANGE_START}\s*(?:in\s*)?({_STATE})",
        scope=RankingScope.STATE,
        confidence=85,
        precision=RankingPrecision.EXACT,
        state_group=2,
        max_rank=5000,
    ),
)


# ═══════════════════════════════════════════════════════════
#  Selection
# ═══════════════════════════════════════════════════════════

@dataclass
class RankingSelection:
    """Best candidate per scope plus everything that was considered."""

    national: RankingCandidate | None = None
    state: RankingCandidate | None = None
    candidates: list[RankingCandidate] = field(default_factory=list)
    rejected: list[dict[str, Any]] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.national is not None or self.state is not None

    def to_fields(self, source: str, tier: ExtractionTier = ExtractionTier.SELECTOR) -> dict[str, FieldValue]:
        """Expand the chosen candidates into record fields."""
        out: dict[str, FieldValue] = {}
        for prefix, candidate in (("national", self.national), ("state", self.state)):
            if candidate is None:
                continue
            for suffix, value in (
                ("rank", candidate.rank),
                ("rank_end", candidate.rank_end),
                ("rank_precision", str(candidate.precision)),
            ):
                name = f"{prefix}_{suffix}"
                out[name] = FieldValue(
                    name=name,
                    value=value,
                    confidence=candidate.confidence,
                    tier=tier,
                    source=f"{source}:{candidate.rule}",
                )
        return out


def select_best(candidates: list[RankingCandidate]) -> RankingCandidate | None:
    """Highest confidence, then most precise; stable on table order."""
    if not candidates:
        return None
    return sorted(candidates, key=RankingCandidate.sort_key)[0]


class RankingCandidateParser:
    """Evaluates a rule table over text and picks one candidate per scope."""

    # Elements in priority order; the first one that yields a scope wins it
    NATIONAL_SELECTORS: tuple[str, ...] = (
        '[data-test-id="display_rank_national"]',
        "#rankings_section",
        '[class*="RankingList__RankStyled"]',
        '[class*="with-icon__Rank"]',
        '[data-testid="national-ranking"]',
        ".national-rank .rank-number",
        ".ranking-badge-national",
    )
    STATE_SELECTORS: tuple[str, ...] = (
        '#rankings_section a[href$="/rankings"] [class*="with-icon__Rank"]',
        '[data-testid="state-ranking"]',
        ".state-rank .rank-number",
        ".ranking-badge-state",
    )

    def __init__(self, rules: tuple[RankingRule, ...] = RANKING_RULES) -> None:
        self.rules = rules

    # ─── Text ─────────────────────────────────────────

    def candidates(self, text: str) -> tuple[list[RankingCandidate], list[dict[str, Any]]]:
        """Every candidate the table yields for `text`, plus rejections."""
        found: list[RankingCandidate] = []
        rejected: list[dict[str, Any]] = []
        if not text:
            return found, rejected

        for rule in self.rules:
            for match in rule.compiled.finditer(text):
                candidate, reason = self._build(rule, match)
                if candidate is not None:
                    found.append(candidate)
                elif reason:
                    rejected.append({"rule": rule.name, "match": match.group(0), "reason": reason})
        return found, rejected

    def parse(self, text: str) -> RankingSelection:
        found, rejected = self.candidates(text)
        for item in rejected:
            if item["reason"] == "known_artifact":
                logger.warning(
                    "Rejected suspicious range start",
                    rule=item["rule"],
                    match=item["match"],
                )
        return RankingSelection(
            national=select_best([c for c in found if c.scope == RankingScope.NATIONAL]),
            state=select_best([c for c in found if c.scope == RankingScope.STATE]),
            candidates=found,
            rejected=rejected,
        )

    def _build(self, rule: RankingRule, match: re.Match) -> tuple[RankingCandidate | None, str | None]:
        rank = _to_int(match.group(rule.rank_group))

        if rank in rule.rejected_starts:
            return None, "known_artifact"
        if not rule.min_rank <= rank <= rule.max_rank:
            return None, None

        rank_end: int | None = None
        if rule.end_group is not None:
            rank_end = _to_int(match.group(rule.end_group))
            limit = rule.max_end if rule.max_end is not None else rule.max_rank
            if not rank <= rank_end <= limit:
                return None, None

        state: str | None = None
        if rule.state_group is not None:
            state = _TRAILING_HS.sub("", match.group(rule.state_group)).strip()
            lowered = state.lower()
            if any(word in lowered for word in _DISTRICT_WORDS) or not is_us_state_name(state):
                return None, None
            state = state.title()

        precision = rule.precision or precision_for_national(rank)
        return RankingCandidate(
            rank=rank,
            rank_end=rank_end,
            precision=precision,
            confidence=rule.confidence,
            scope=rule.scope,
            state=state,
            rule=rule.name,
        ), None

    # ─── Document ─────────────────────────────────────

    def extract_from_document(self, doc: ParsedDocument) -> RankingSelection:
        """
        Walk ranking elements in selector priority order.

        Within one element the text is parsed confidence-weighted; across
        elements the first element yielding a scope keeps it.  When an
        element has no state candidate its parent's text is tried, since
        the state link often sits next to the national badge.
        """
        result = RankingSelection()
        seen: set[int] = set()

        for query in self.NATIONAL_SELECTORS + self.STATE_SELECTORS:
            for element in doc.select(query):
                if id(element) in seen:
                    continue
                seen.add(id(element))

                text = element_text(element)
                if not text:
                    continue
                selection = self.parse(text)

                if selection.state is None and element.parent is not None:
                    parent_text = element_text(element.parent)
                    if parent_text and parent_text != text:
                        selection.state = self.parse(parent_text).state

                result.candidates.extend(selection.candidates)
                result.rejected.extend(selection.rejected)
                if result.national is None and selection.national is not None:
                    result.national = selection.national
                if result.state is None and selection.state is not None:
                    result.state = selection.state

            if result.national is not None and result.state is not None:
                break
        return result


# ═══════════════════════════════════════════════════════════
#  Unranked detection
# ═══════════════════════════════════════════════════════════

@dataclass(frozen=True)
class UnrankedStatus:
    is_unranked: bool
    confidence: int = 0
    reason: str | None = None


_VISIBLE_RANK = (
    re.compile(r"ranked\s*#\s*\d+", re.IGNORECASE),
    re.compile(r"#\d{1,5}\s+in\s+(?:national|state)", re.IGNORECASE),
)
_SCHOOL_IS_RANKED = (
    re.compile(r"school is.{0,80}\branked.{0,40}#\d+", re.IGNORECASE),
    re.compile(r"ranked #\d+.{0,60}(?:in|among).{0,40}(?:national|state).{0,40}(?:ranking|school)", re.IGNORECASE),
)
_EXPLICIT_UNRANKED = (
    re.compile(r"school is unranked", re.IGNORECASE),
    re.compile(r"school is not ranked", re.IGNORECASE),
    re.compile(r"unranked in the national rankings", re.IGNORECASE),
    re.compile(r"school.{0,40}unranked.{0,20}by.{0,10}u\.?s\.?\s*news", re.IGNORECASE),
)
_STRONG_UNRANKED_HTML = re.compile(r"<strong[^>]*>\s*unranked\s*</strong>", re.IGNORECASE)
_STRONG_UNRANKED_TEXT = (
    re.compile(r"insufficient data (?:for|to) (?:rank|ranking)", re.IGNORECASE),
    re.compile(r"private school.{0,40}not ranked", re.IGNORECASE),
)


class UnrankedDetector:
    """Recognises pages that explicitly declare the school unranked."""

    SECTION = "#rankings_section"
    MARKERS = ("p.lg-t5.t2 strong", ".ilawbc", "strong")

    def detect(self, doc: ParsedDocument) -> UnrankedStatus:
        section = doc.select_one(self.SECTION)
        if section is not None:
            unranked_markers = 0
            for query in self.MARKERS:
                for element in section.select(query):
                    if element_text(element).lower() in ("unranked", "unranked school"):
                        unranked_markers += 1
            if unranked_markers:
                section_text = element_text(section)
                if not any(p.search(section_text) for p in _VISIBLE_RANK):
                    return UnrankedStatus(
                        True, 95, 'School explicitly marked "Unranked" in the rankings section'
                    )

        body = doc.body_text
        lowered = body.lower()
        unranked_count = lowered.count("unranked school")
        ranked_count = lowered.count("ranked school") - unranked_count
        if ranked_count > unranked_count:
            return UnrankedStatus(False, 90, 'More "Ranked School" markers than "Unranked School"')

        if any(p.search(body) for p in _SCHOOL_IS_RANKED):
            return UnrankedStatus(False, 95, "Page states a ranking for this school")

        if any(p.search(body) for p in _EXPLICIT_UNRANKED):
            return UnrankedStatus(True, 90, "School explicitly stated as unranked")

        strong = _STRONG_UNRANKED_HTML.search(doc.raw_html) or any(
            p.search(body) for p in _STRONG_UNRANKED_TEXT
        )
        if strong:
            if section is None or not any(p.search(element_text(section)) for p in _VISIBLE_RANK):
                return UnrankedStatus(True, 90, "Strong unranked indicator in page text")

        return UnrankedStatus(False)

    def to_fields(self, status: UnrankedStatus) -> dict[str, FieldValue]:
        if not status.is_unranked:
            return {}
        return {
            "is_unranked": FieldValue(
                "is_unranked", True, status.confidence, ExtractionTier.SELECTOR, "unranked"
            ),
            "unranked_reason": FieldValue(
                "unranked_reason", status.reason, status.confidence, ExtractionTier.SELECTOR, "unranked"
            ),
        }
