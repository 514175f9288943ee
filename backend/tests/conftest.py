"""Shared fixtures: captured school pages, record factory, sqlite store."""

import pytest
import pytest_asyncio

from silver.core.constants import ExtractionStatus, RankingPrecision
from silver.db.session import init_models, make_session_factory
from silver.extraction.record import ExtractedRecord

ACADEMIC_MAGNET_HTML = """<!DOCTYPE html>
<html>
<head>
  <title>Academic Magnet High School | US News Best High Schools</title>
  <script type="application/ld+json">
  {
    "@context": "https://schema.org",
    "@type": "HighSchool",
    "name": "Academic Magnet High School",
    "location": {
      "@type": "Place",
      "address": {
        "@type": "PostalAddress",
        "streetAddress": "5109-B W Enterprise Ave",
        "addressLocality": "North Charleston",
        "addressRegion": "SC",
        "postalCode": "29405"
      }
    },
    "telephone": "843-764-3900",
    "url": "https://www.academicmagnet.example.org",
    "description": "Academic Magnet High School is ranked #7 in the National Rankings. The AP participation rate at Academic Magnet High School is 100%. The total minority enrollment is 26%, and 8% of students are economically disadvantaged."
  }
  </script>
</head>
<body>
  <h1 data-testid="school-name">Academic Magnet High School</h1>
  <section id="rankings_section">
    <div data-test-id="display_rank_national">#7 in National Rankings</div>
    <a href="/education/best-high-schools/south-carolina/rankings">
      <span class="with-icon__Rank-sc1">#1 in South Carolina High Schools</span>
    </a>
  </section>
  <div data-test-id="g_grades_served">9-12</div>
  <div data-test-id="ulocal">Suburban</div>
  <div data-test-id="ccd_member">685</div>
  <div data-test-id="student_teacher_ratio_rounded">16:1</div>
  <div data-test-id="fte">43</div>
  <div data-test-id="participation_rate">100%</div>
  <div data-test-id="participant_passing_rate">98%</div>
  <div data-test-id="gradrate">99%</div>
  <div class="nces-identifier">450231001085</div>
</body>
</html>
"""

UNRANKED_HTML = """<html>
<body>
  <h1>Riverside Private Academy</h1>
  <section id="rankings_section">
    <p class="lg-t5 t2"><strong>Unranked</strong></p>
    <p>Schools are unranked when they do not meet the data requirements.</p>
  </section>
  <div data-test-id="ccd_member">312</div>
</body>
</html>
"""


def ranked_page(name: str, national: str, extra: str = "") -> str:
    return f"""<html><body>
  <h1>{name}</h1>
  <section id="rankings_section">
    <div data-test-id="display_rank_national">{national}</div>
  </section>
  {extra}
</body></html>"""


@pytest.fixture
def academic_magnet_html():
    return ACADEMIC_MAGNET_HTML


@pytest.fixture
def unranked_html():
    return UNRANKED_HTML


@pytest.fixture
def page():
    return ranked_page


@pytest.fixture
def make_record():
    """Build an ExtractedRecord with just the fields the validators read."""

    def _make(
        slug: str,
        *,
        year: int = 2024,
        national_rank: int | None = None,
        national_precision: str = RankingPrecision.EXACT,
        national_end: int | None = None,
        state: str | None = None,
        state_rank: int | None = None,
        state_precision: str = RankingPrecision.EXACT,
        confidence: float = 90.0,
    ) -> ExtractedRecord:
        fields = {"school_name": slug.replace("-", " ").title()}
        if national_rank is not None:
            fields["national_rank"] = national_rank
            fields["national_rank_precision"] = RankingPrecision(national_precision)
        if national_end is not None:
            fields["national_rank_end"] = national_end
        if state is not None:
            fields["address_state"] = state
        if state_rank is not None:
            fields["state_rank"] = state_rank
            fields["state_rank_precision"] = RankingPrecision(state_precision)
        return ExtractedRecord(
            school_slug=slug,
            source_year=year,
            document_id=f"doc-{slug}-{year}",
            fields=fields,
            overall_confidence=confidence,
            status=ExtractionStatus.EXTRACTED,
        )

    return _make


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    factory, engine = make_session_factory(f"sqlite+aiosqlite:///{tmp_path / 'silver.db'}")
    await init_models(engine)
    yield factory
    await engine.dispose()
