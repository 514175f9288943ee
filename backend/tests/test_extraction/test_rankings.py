"""Tests for ranking candidate parsing, selection and unranked detection."""

import pytest

from silver.core.constants import RankingPrecision, RankingScope
from silver.extraction.document import parse_document
from silver.extraction.rankings import (
    RankingCandidate,
    RankingCandidateParser,
    UnrankedDetector,
    precision_for_national,
    select_best,
)


@pytest.fixture
def parser():
    return RankingCandidateParser()


class TestCompositeText:
    """National and state rankings in one blob are decomposed per scope."""

    def test_ranked_national_and_state_both_selected(self, parser):
        selection = parser.parse(
            "ranked #7 in the National Rankings #1 in South Carolina High Schools"
        )
        assert selection.national is not None
        assert selection.national.rank == 7
        assert selection.national.precision == RankingPrecision.EXACT
        assert selection.national.scope == RankingScope.NATIONAL

        assert selection.state is not None
        assert selection.state.rank == 1
        assert selection.state.scope == RankingScope.STATE
        assert selection.state.state == "South Carolina"

    def test_composite_badge_text(self, parser):
        selection = parser.parse("#7 in National Rankings #1 in South Carolina High Schools")
        assert selection.national.rank == 7
        assert selection.state.rank == 1
        assert selection.state.precision == RankingPrecision.EXACT

    def test_all_candidates_are_kept(self, parser):
        selection = parser.parse("#7 in National Rankings #1 in South Carolina High Schools")
        rules = {c.rule for c in selection.candidates}
        assert {"composite_national", "national_rankings", "composite_state", "state_only"} <= rules


class TestBucketBoundaries:

    @pytest.mark.parametrize("text", [
        "#13,427-17,901 in National Rankings",
        "ranked #13,427-17,901",
        "#13,427 - 17,901 National",
    ])
    def test_range_start_at_bucket_boundary_never_selected(self, parser, text):
        selection = parser.parse(text)
        assert selection.national is None or selection.national.rank != 13427

    def test_boundary_range_is_reported_as_artifact(self, parser):
        selection = parser.parse("#13,427-17,901 in National Rankings")
        assert any(r["reason"] == "known_artifact" for r in selection.rejected)

    def test_bucket_two_range(self, parser):
        selection = parser.parse("#13,450-13,500 in National Rankings")
        assert selection.national.rank == 13450
        assert selection.national.rank_end == 13500
        assert selection.national.precision == RankingPrecision.RANGE
        assert selection.national.bucket == 2

    def test_range_past_bucket_two_rejected(self, parser):
        selection = parser.parse("#17,000-18,500 in National Rankings")
        assert selection.national is None

    @pytest.mark.parametrize("rank,expected", [
        (1, RankingPrecision.EXACT),
        (13426, RankingPrecision.EXACT),
        (13427, RankingPrecision.RANGE),
        (17901, RankingPrecision.RANGE),
        (17902, RankingPrecision.ESTIMATED),
    ])
    def test_precision_follows_bucket(self, rank, expected):
        assert precision_for_national(rank) == expected

    def test_large_national_rank_is_estimated(self, parser):
        selection = parser.parse("#25,000 in National Rankings")
        assert selection.national.rank == 25000
        assert selection.national.precision == RankingPrecision.ESTIMATED


class TestStateCandidates:

    def test_state_range(self, parser):
        selection = parser.parse("#5-10 in Texas High Schools")
        assert selection.state.rank == 5
        assert selection.state.rank_end == 10
        assert selection.state.precision == RankingPrecision.RANGE
        assert selection.state.state == "Texas"

    def test_district_labels_are_not_states(self, parser):
        selection = parser.parse("#3 in Fulton County School District")
        assert selection.state is None

    def test_unknown_state_name_rejected(self, parser):
        selection = parser.parse("#4 in Atlantis High Schools")
        assert selection.state is None

    def test_empty_text(self, parser):
        selection = parser.parse("")
        assert not selection.found
        assert selection.candidates == []


class TestSelection:

    def test_confidence_beats_precision(self):
        strong_range = RankingCandidate(13500, RankingPrecision.RANGE, 95, RankingScope.NATIONAL, rule="a")
        weak_exact = RankingCandidate(12, RankingPrecision.EXACT, 85, RankingScope.NATIONAL, rule="b")
        assert select_best([weak_exact, strong_range]) is strong_range

    def test_precision_breaks_confidence_ties(self):
        state_only = RankingCandidate(3, RankingPrecision.STATE_ONLY, 95, RankingScope.STATE, rule="a")
        exact = RankingCandidate(3, RankingPrecision.EXACT, 95, RankingScope.STATE, rule="b")
        assert select_best([state_only, exact]) is exact

    def test_full_ties_keep_table_order(self):
        first = RankingCandidate(7, RankingPrecision.EXACT, 95, RankingScope.NATIONAL, rule="first")
        second = RankingCandidate(8, RankingPrecision.EXACT, 95, RankingScope.NATIONAL, rule="second")
        assert select_best([first, second]) is first

    def test_no_candidates(self):
        assert select_best([]) is None

    def test_to_fields_carries_precision_and_confidence(self, parser):
        fields = parser.parse("#13,450-13,500 in National Rankings").to_fields("element")
        assert fields["national_rank"].value == 13450
        assert fields["national_rank_end"].value == 13500
        assert fields["national_rank_precision"].value == "range"
        assert fields["national_rank"].confidence == 95


class TestDocumentExtraction:

    def test_state_found_through_parent_element(self, parser, academic_magnet_html):
        selection = parser.extract_from_document(parse_document(academic_magnet_html))
        assert selection.national.rank == 7
        assert selection.state.rank == 1
        assert selection.state.state == "South Carolina"

    def test_page_without_ranking_elements(self, parser):
        doc = parse_document("<html><body><h1>Plain School Page</h1></body></html>")
        assert not parser.extract_from_document(doc).found


class TestUnrankedDetector:

    def test_marker_in_rankings_section(self, unranked_html):
        status = UnrankedDetector().detect(parse_document(unranked_html))
        assert status.is_unranked
        assert status.confidence == 95

    def test_ranked_page_is_not_unranked(self, academic_magnet_html):
        status = UnrankedDetector().detect(parse_document(academic_magnet_html))
        assert not status.is_unranked

    def test_explicit_statement(self):
        doc = parse_document("<html><body><p>This school is unranked this year.</p></body></html>")
        status = UnrankedDetector().detect(doc)
        assert status.is_unranked
        assert status.confidence == 90

    def test_ranked_markers_outnumber_unranked(self):
        doc = parse_document(
            "<html><body><p>Ranked School</p><p>Ranked School</p>"
            "<p>Unranked School</p></body></html>"
        )
        assert not UnrankedDetector().detect(doc).is_unranked

    def test_to_fields(self, unranked_html):
        detector = UnrankedDetector()
        fields = detector.to_fields(detector.detect(parse_document(unranked_html)))
        assert fields["is_unranked"].value is True
        assert fields["unranked_reason"].value
