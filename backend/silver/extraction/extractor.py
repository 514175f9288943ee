"""
DocumentExtractor — one captured page in, one ExtractedRecord out.

Flow per document:
    1. parse (malformed input → zero-confidence MALFORMED record)
    2. decode JSON-LD once
    3. run every field's tier chain (structured → selector → pattern),
       first validated value wins
    4. unranked detection, else ranking candidates from page elements
    5. description pass (JSON-LD prose: ranking text + figures)
    6. FieldMerger across passes; a page without an address state takes
       the state its state rank names; ConfidenceScorer, status

`extract()` never raises.  Field misses are recorded as soft errors on
the record and are not logged; only critical-field misses are logged.
"""

from __future__ import annotations

from silver.core.config import settings
from silver.core.constants import ExtractionStatus, ExtractionTier, SoftErrorType
from silver.core.logging import get_logger
from silver.extraction import validators as v
from silver.extraction.base import TierExtractor, TierOutcome
from silver.extraction.document import ParsedDocument, parse_document
from silver.extraction.fields import build_field_specs, field_categories
from silver.extraction.patterns import PatternExtractor
from silver.extraction.rankings import (
    RankingCandidate,
    RankingCandidateParser,
    UnrankedDetector,
    select_best,
)
from silver.extraction.record import (
    ExtractedRecord,
    FieldValue,
    SoftError,
    SourceDocument,
    resolve_status,
)
from silver.extraction.selectors import SelectorExtractor
from silver.extraction.strategies import FieldSpec, Pattern, Selector, StructuredData
from silver.extraction.structured_data import (
    DecodedStructuredData,
    StructuredDataDecoder,
    StructuredDataTier,
)
from silver.pipeline.errors import DocumentParseError
from silver.validation.confidence_scorer import ConfidenceScorer, FieldMerger

logger = get_logger(__name__)

# Lower than any address_state selector
RANKING_STATE_CONFIDENCE = 70


class DocumentExtractor:
    """
    Stateless per document; safe to share across worker threads.

    Usage::

        extractor = DocumentExtractor()
        record = extractor.extract(SourceDocument("doc-1", "some-school-123", 2024, html))
    """

    def __init__(
        self,
        field_specs: tuple[FieldSpec, ...] | None = None,
        *,
        min_confidence: float | None = None,
        ranking_parser: RankingCandidateParser | None = None,
        unranked_detector: UnrankedDetector | None = None,
        decoder: StructuredDataDecoder | None = None,
    ) -> None:
        self.field_specs = field_specs if field_specs is not None else build_field_specs()
        self.min_confidence = (
            min_confidence if min_confidence is not None else settings.MIN_CONFIDENCE_THRESHOLD
        )
        self.ranking_parser = ranking_parser or RankingCandidateParser()
        self.unranked_detector = unranked_detector or UnrankedDetector()
        self.decoder = decoder or StructuredDataDecoder()
        self.merger = FieldMerger()
        self.scorer = ConfidenceScorer(field_categories(self.field_specs))
        self._tiers: dict[type, TierExtractor] = {
            StructuredData: StructuredDataTier(),
            Selector: SelectorExtractor(),
            Pattern: PatternExtractor(),
        }

    # ─── Public API ───────────────────────────────────

    def extract(self, source: SourceDocument) -> ExtractedRecord:
        """Extract one document.  Never raises."""
        log = logger.bind(document_id=source.document_id, school_slug=source.school_slug)

        try:
            doc = parse_document(source.content)
        except DocumentParseError as exc:
            log.warning("Document malformed", error=str(exc))
            return self._malformed(source, str(exc))

        try:
            return self._extract_parsed(source, doc, log)
        except Exception as exc:
            log.exception("Unexpected extraction failure", error=str(exc))
            return self._malformed(source, f"Unexpected: {exc}")

    def extract_field(
        self,
        doc: ParsedDocument,
        spec: FieldSpec,
        structured: DecodedStructuredData | None = None,
    ) -> tuple[FieldValue | None, list[SoftError]]:
        """
        Walk one field's strategy chain.  Returns the first validated value
        (or None) and the soft errors for strategies whose matches failed
        validation.
        """
        errors: list[SoftError] = []
        for strategy in spec.strategies:
            outcome: TierOutcome = self._tiers[type(strategy)].extract(
                doc, strategy, spec.normalize, structured
            )
            if outcome.found:
                return FieldValue(
                    name=spec.name,
                    value=outcome.value,
                    confidence=strategy.confidence,
                    tier=strategy.tier,
                    source=strategy.describe(),
                ), errors
            if outcome.rejected:
                errors.append(SoftError(
                    field=spec.name,
                    error_type=SoftErrorType.VALIDATION_FAILED,
                    message=f"{outcome.candidates_seen} candidate(s) from {strategy.describe()} failed validation",
                    tier=strategy.tier,
                ))
        return None, errors

    # ─── Internals ────────────────────────────────────

    def _extract_parsed(self, source: SourceDocument, doc: ParsedDocument, log) -> ExtractedRecord:
        errors: list[SoftError] = []

        structured = self.decoder.decode(doc)
        if structured.malformed_blocks:
            errors.append(SoftError(
                field="json_ld",
                error_type=SoftErrorType.PARSE_ERROR,
                message=f"{structured.malformed_blocks} JSON-LD block(s) could not be decoded",
                tier=ExtractionTier.STRUCTURED_DATA,
            ))

        # ── Pass 1: per-field tier chains ─────────────
        tiered: dict[str, FieldValue] = {}
        critical_missing: list[str] = []
        for spec in self.field_specs:
            value, field_errors = self.extract_field(doc, spec, structured)
            errors.extend(field_errors)
            if value is not None:
                tiered[spec.name] = value
            elif spec.critical:
                critical_missing.append(spec.name)

        state_candidates: list[RankingCandidate] = []

        # ── Pass 2: rankings from page elements ───────
        unranked = self.unranked_detector.detect(doc)
        if unranked.is_unranked:
            ranking_fields = self.unranked_detector.to_fields(unranked)
        else:
            selection = self.ranking_parser.extract_from_document(doc)
            ranking_fields = selection.to_fields("element")
            if selection.state is not None:
                state_candidates.append(selection.state)
            if not selection.found and not structured.description:
                errors.append(SoftError(
                    field="rankings",
                    error_type=SoftErrorType.SELECTOR_FAILED,
                    message="No ranking candidates found",
                    tier=ExtractionTier.SELECTOR,
                ))

        # ── Pass 3: JSON-LD description ───────────────
        description_fields: dict[str, FieldValue] = {}
        if structured.description:
            if not unranked.is_unranked:
                described = self.ranking_parser.parse(structured.description)
                description_fields.update(
                    described.to_fields("json-ld:description", ExtractionTier.STRUCTURED_DATA)
                )
                if described.state is not None:
                    state_candidates.append(described.state)
            description_fields.update(self.decoder.mine_description(structured.description))

        merged = self.merger.merge(tiered, ranking_fields, description_fields)
        if "address_state" not in merged:
            inferred = self._state_from_rankings(state_candidates)
            if inferred is not None:
                merged["address_state"] = inferred
        breakdown = self.scorer.score_fields(merged)

        for name in critical_missing:
            log.warning("Critical field missing", field=name)
            errors.append(SoftError(
                field=name,
                error_type=SoftErrorType.MISSING_FIELD,
                message=f"Critical field '{name}' could not be extracted",
                critical=True,
            ))

        fields = {name: fv.value for name, fv in merged.items() if fv.value is not None}
        status = resolve_status(
            breakdown.overall,
            min_confidence=self.min_confidence,
            critical_missing=bool(critical_missing),
            # Nothing at all came out of a page without its identity field
            malformed=bool(critical_missing) and not fields,
        )
        record = ExtractedRecord(
            school_slug=source.school_slug,
            source_year=source.source_year,
            document_id=source.document_id,
            fields=fields,
            field_confidence={
                name: fv.confidence for name, fv in merged.items() if fv.value is not None
            },
            category_confidence=breakdown.categories,
            overall_confidence=breakdown.overall,
            errors=tuple(errors),
            status=status,
            critical_missing=tuple(critical_missing),
        )

        log.debug(
            "Document extracted",
            status=record.status,
            overall_confidence=record.overall_confidence,
            fields=len(record.fields),
            soft_errors=len(record.errors),
        )
        return record

    @staticmethod
    def _state_from_rankings(candidates: list[RankingCandidate]) -> FieldValue | None:
        """Postal code of the state a state rank was claimed in."""
        best = select_best([c for c in candidates if c.state])
        code = v.us_state(best.state) if best is not None else None
        if code is None:
            return None
        return FieldValue(
            name="address_state",
            value=code,
            confidence=RANKING_STATE_CONFIDENCE,
            tier=ExtractionTier.SELECTOR,
            source=f"ranking:{best.rule}",
        )

    def _malformed(self, source: SourceDocument, message: str) -> ExtractedRecord:
        critical = tuple(spec.name for spec in self.field_specs if spec.critical)
        return ExtractedRecord(
            school_slug=source.school_slug,
            source_year=source.source_year,
            document_id=source.document_id,
            category_confidence=self.scorer.score({}).categories,
            overall_confidence=0.0,
            errors=(
                SoftError(
                    field="document",
                    error_type=SoftErrorType.PARSE_ERROR,
                    message=message,
                    critical=True,
                ),
            ),
            status=ExtractionStatus.MALFORMED,
            critical_missing=critical,
        )

