"""
Field catalogue — one FieldSpec per extracted field.

Structured-data values sit at 90-98.  Selector confidences follow
specificity: data-test-id / data-testid hooks 95, a page h1 90, generic
class selectors 85, the <title> fallback 70.
Percentage hooks are 85 regardless of selector.
"""

from __future__ import annotations

from urllib.parse import urlparse

from silver.core.config import settings
from silver.core.constants import FieldCategory
from silver.extraction import validators as v
from silver.extraction.strategies import FieldSpec, Pattern, Selector, StructuredData

C = FieldCategory


def _percent_field(name: str, category: FieldCategory, *queries: str, patterns: tuple[Pattern, ...] = ()) -> FieldSpec:
    return FieldSpec(
        name=name,
        category=category,
        strategies=tuple(Selector(q, confidence=85) for q in queries) + patterns,
        normalize=v.percentage,
    )


def build_field_specs(source_base_url: str | None = None) -> tuple[FieldSpec, ...]:
    """Build the catalogue; `source_base_url` is excluded as a school website."""
    source_host = urlparse(source_base_url or settings.SOURCE_BASE_URL).hostname

    return (
        # ═══ Identity ═══════════════════════════════════════
        FieldSpec(
            name="school_name",
            category=C.IDENTITY,
            critical=True,
            normalize=v.school_name,
            strategies=(
                StructuredData("school_name", confidence=95),
                Selector('h1[data-testid="school-name"]', confidence=95),
                Selector(".school-profile-header h1", confidence=90),
                Selector("h1.profile-header-name", confidence=90),
                Selector(".school-name-header", confidence=85),
                Selector("h1", confidence=90),
                Selector("title", confidence=70),
            ),
        ),
        FieldSpec(
            name="nces_id",
            category=C.IDENTITY,
            normalize=v.nces_id,
            strategies=(
                Selector('[data-testid="nces-id"]', confidence=90),
                Selector(".nces-identifier", confidence=90),
                Selector(".school-id", confidence=85),
                Pattern(r"NCES\s*(?:School\s*)?ID\s*:?\s*(\d{12})\b", confidence=80),
            ),
        ),
        FieldSpec(
            name="grades_served",
            category=C.IDENTITY,
            normalize=v.grades,
            strategies=(
                Selector('[data-test-id="g_grades_served"]', confidence=95),
                Selector('[data-testid="grades-served"]', confidence=85),
                Selector(".grades-served", confidence=85),
                Pattern(r"(?:grades?|serving)\s*(?:levels?)?\s*:?\s*((?:PK|K|\d+)(?:\s*-\s*\d+)?)\b", confidence=80),
            ),
        ),

        # ═══ Location ═══════════════════════════════════════
        FieldSpec(
            name="address_street",
            category=C.LOCATION,
            normalize=v.bounded_text(3, 120),
            strategies=(
                StructuredData("address_street", confidence=90),
                Selector('[data-testid="school-address-street"]', confidence=90),
                Selector(".school-address .street", confidence=85),
                Selector(".address-line-1", confidence=85),
            ),
        ),
        FieldSpec(
            name="address_city",
            category=C.LOCATION,
            normalize=v.bounded_text(2, 60),
            strategies=(
                StructuredData("address_city", confidence=90),
                Selector('[data-testid="school-city"]', confidence=90),
                Selector(".school-location .city", confidence=85),
                Selector(".address-city", confidence=85),
            ),
        ),
        FieldSpec(
            name="address_state",
            category=C.LOCATION,
            normalize=v.us_state,
            strategies=(
                StructuredData("address_state", confidence=90),
                Selector('[data-testid="school-state"]', confidence=90),
                Selector(".school-location .state", confidence=85),
                Selector(".address-state", confidence=85),
            ),
        ),
        FieldSpec(
            name="address_zip",
            category=C.LOCATION,
            normalize=v.zip_code,
            strategies=(
                StructuredData("address_zip", confidence=90),
                Selector('[data-testid="school-zip"]', confidence=90),
                Selector(".school-location .zip", confidence=85),
                Selector(".address-zip", confidence=85),
            ),
        ),
        FieldSpec(
            name="phone",
            category=C.LOCATION,
            normalize=v.phone,
            strategies=(
                StructuredData("phone", confidence=90),
                Selector('[data-testid="school-phone"]', confidence=85),
                Selector(".school-contact .phone", confidence=85),
                Selector(".phone-number", confidence=85),
                Pattern(r"(\(?\d{3}\)?[\s.-]?\d{3}[\s.-]\d{4})\b", confidence=70),
            ),
        ),
        FieldSpec(
            name="website",
            category=C.LOCATION,
            normalize=v.website(source_host),
            strategies=(
                StructuredData("website", confidence=90),
                Selector('[data-testid="school-website"]', confidence=90, attribute="href"),
                Selector(".school-contact .website a", confidence=85, attribute="href"),
                Selector("span.sm-hide", confidence=85),
                Selector('a[href^="http"]', confidence=70, attribute="href"),
                Pattern(r"\|\s*(https?://[^\s|]+)", confidence=80),
            ),
        ),
        FieldSpec(
            name="setting",
            category=C.LOCATION,
            normalize=v.bounded_text(3, 50),
            strategies=(
                Selector('[data-test-id="ulocal"]', confidence=95),
                Selector('[data-testid="school-setting"]', confidence=85),
                Selector(".school-setting", confidence=85),
                Selector(".location-type", confidence=85),
            ),
        ),

        # ═══ Enrollment ═════════════════════════════════════
        FieldSpec(
            name="enrollment",
            category=C.ENROLLMENT,
            normalize=v.int_in_range(10, 10000),
            strategies=(
                Selector('[data-test-id="ccd_member"]', confidence=95),
                Selector('[data-testid="enrollment-number"]', confidence=90),
                Selector(".enrollment-stats .number", confidence=85),
                Selector(".enrollment-count", confidence=85),
                Pattern(r"(?:total\s+students?|enrollment)\s*:?\s*(\d{1,6}(?:,\d{3})*)", confidence=80),
            ),
        ),
        FieldSpec(
            name="student_teacher_ratio",
            category=C.ENROLLMENT,
            normalize=v.student_teacher_ratio,
            strategies=(
                Selector('[data-test-id="student_teacher_ratio_rounded"]', confidence=95),
                Selector('[data-testid="student-teacher-ratio"]', confidence=85),
                Selector(".ratio-display", confidence=85),
                Pattern(r"student[\s-]*teacher\s+ratio\s*:?\s*(\d{1,2}\s*:\s*1)\b", confidence=75),
            ),
        ),
        FieldSpec(
            name="full_time_teachers",
            category=C.ENROLLMENT,
            normalize=v.int_in_range(1, 1000),
            strategies=(
                Selector('[data-test-id="fte"]', confidence=95),
                Selector('[data-testid="teacher-count"]', confidence=85),
                Selector(".teacher-stats .count", confidence=85),
                Selector(".full-time-teachers", confidence=85),
            ),
        ),

        # ═══ Academics ══════════════════════════════════════
        _percent_field(
            "ap_participation_rate", C.ACADEMICS,
            '[data-test-id="participation_rate"]',
            '[data-testid="ap-participation"]',
            ".ap-stats .participation",
            patterns=(Pattern(r"AP participation rate[^0-9%]{0,40}(\d{1,3}(?:\.\d+)?)\s*%", confidence=75),),
        ),
        _percent_field(
            "ap_pass_rate", C.ACADEMICS,
            '[data-test-id="participant_passing_rate"]',
            '[data-testid="ap-pass-rate"]',
            ".ap-stats .pass-rate",
        ),
        _percent_field(
            "math_proficiency", C.ACADEMICS,
            '[data-test-id="school_percent_proficient_in_math"]',
            '[data-testid="math-proficiency"]',
            ".proficiency-math",
        ),
        _percent_field(
            "reading_proficiency", C.ACADEMICS,
            '[data-test-id="school_percent_proficient_in_english"]',
            '[data-testid="reading-proficiency"]',
            ".proficiency-reading",
        ),
        _percent_field(
            "science_proficiency", C.ACADEMICS,
            '[data-test-id="school_percent_proficient_in_science"]',
            '[data-testid="science-proficiency"]',
            ".proficiency-science",
        ),
        _percent_field(
            "graduation_rate", C.ACADEMICS,
            '[data-test-id="gradrate"]',
            '[data-testid="graduation-rate"]',
            ".graduation-stats .rate",
            patterns=(Pattern(r"graduation rate[^0-9%]{0,40}(\d{1,3}(?:\.\d+)?)\s*%", confidence=75),),
        ),
        _percent_field(
            "college_readiness_index", C.ACADEMICS,
            '[data-test-id="ranknat_cri"]',
            '[data-testid="college-readiness"]',
            ".college-readiness-score",
        ),

        # ═══ Demographics ═══════════════════════════════════
        _percent_field("white_pct", C.DEMOGRAPHICS, '[data-testid="demo-white"]', ".demographics .white-percentage"),
        _percent_field("asian_pct", C.DEMOGRAPHICS, '[data-testid="demo-asian"]', ".demographics .asian-percentage"),
        _percent_field("hispanic_pct", C.DEMOGRAPHICS, '[data-testid="demo-hispanic"]', ".demographics .hispanic-percentage"),
        _percent_field("black_pct", C.DEMOGRAPHICS, '[data-testid="demo-black"]', ".demographics .black-percentage"),
        _percent_field("american_indian_pct", C.DEMOGRAPHICS, '[data-testid="demo-native"]', ".demographics .native-percentage"),
        _percent_field("two_or_more_pct", C.DEMOGRAPHICS, '[data-testid="demo-multiracial"]', ".demographics .multiracial-percentage"),
        _percent_field("female_pct", C.DEMOGRAPHICS, '[data-testid="gender-female"]', ".gender-breakdown .female-percentage"),
        _percent_field("male_pct", C.DEMOGRAPHICS, '[data-testid="gender-male"]', ".gender-breakdown .male-percentage"),

        # ═══ Socioeconomic ══════════════════════════════════
        _percent_field(
            "economically_disadvantaged_pct", C.SOCIOECONOMIC,
            '[data-testid="economically-disadvantaged"]',
            ".socioeconomic .disadvantaged-percentage",
        ),
        _percent_field("free_lunch_pct", C.SOCIOECONOMIC, '[data-testid="free-lunch"]', ".lunch-program .free"),
        _percent_field("reduced_lunch_pct", C.SOCIOECONOMIC, '[data-testid="reduced-lunch"]', ".lunch-program .reduced"),
    )


# Fields produced outside the tier chain (ranking parser, unranked detector)
RANKING_FIELDS: tuple[str, ...] = (
    "national_rank",
    "national_rank_end",
    "national_rank_precision",
    "state_rank",
    "state_rank_end",
    "state_rank_precision",
    "is_unranked",
    "unranked_reason",
)


def field_categories(specs: tuple[FieldSpec, ...]) -> dict[str, FieldCategory]:
    """Field name → category, including the ranking fields."""
    categories = {spec.name: spec.category for spec in specs}
    categories.update({name: FieldCategory.RANKINGS for name in RANKING_FIELDS})
    return categories
