"""Tests for the strategy-result merger."""

from campwatch.extraction.models import (
    AcquireMode,
    Ages,
    CanonicalFacts,
    ExtendedCare,
    Hours,
    PdfLink,
    Pricing,
    Session,
    StrategyResult,
)
from campwatch.pipeline.merger import merge, usable_results
from campwatch.pipeline.quality import score_quality


def _result(mode, facts, *, success=True):
    return StrategyResult(
        strategy=mode,
        success=success,
        extracted=facts,
        quality=score_quality(facts) if success else 0,
    )


RENDERED = _result(
    AcquireMode.RENDERED,
    CanonicalFacts(
        pricing=Pricing(weekly=350),
        sessions=[Session(name="Week 1", dates="June 16-20, 2026")],
        hours=Hours(standard_range="9AM – 3PM"),
        extended_care=ExtendedCare(available=True),
        activities=["Swimming"],
    ),
)
STATIC = _result(
    AcquireMode.STATIC_FETCH,
    CanonicalFacts(
        pricing=Pricing(weekly=340),
        sessions=[
            Session(name="Week 1", dates="June 16-20, 2026"),
            Session(name="Week 2", dates="June 23-27, 2026"),
        ],
        ages=Ages(min_age=5, max_age=12),
        activities=["Coding"],
        pdf_links=[PdfLink(url="https://zoo.example/handbook.pdf", kind="handbook")],
    ),
)


class TestMerge:
    def test_nothing_usable(self):
        failed = _result(AcquireMode.RENDERED, CanonicalFacts(), success=False)
        empty = _result(AcquireMode.STATIC_FETCH, CanonicalFacts())
        assert merge([]) is None
        assert merge([failed, empty]) is None

    def test_best_result_seeds_the_record(self):
        merged = merge([STATIC, RENDERED])
        assert merged.pricing.weekly == 350
        assert merged.hours.standard_range == "9AM – 3PM"
        assert merged.sources["pricing"] == "rendered"

    def test_lower_ranked_results_fill_gaps(self):
        merged = merge([STATIC, RENDERED])
        assert merged.ages.min_age == 5
        assert merged.sources["ages"] == "static-fetch"
        assert [s.dates for s in merged.sessions] == ["June 16-20, 2026", "June 23-27, 2026"]
        assert merged.activities == ["Coding", "Swimming"]
        assert [link.url for link in merged.pdf_links] == ["https://zoo.example/handbook.pdf"]

    def test_quality_scores_recorded_per_strategy(self):
        merged = merge([STATIC, RENDERED])
        assert merged.quality_scores == {
            "rendered": RENDERED.quality,
            "static-fetch": STATIC.quality,
        }

    def test_merged_quality_at_least_best_input(self):
        merged = merge([STATIC, RENDERED])
        assert score_quality(merged) >= max(RENDERED.quality, STATIC.quality)

    def test_idempotent(self):
        merged = merge([RENDERED])
        again = merge([_result(AcquireMode.RENDERED, merged)])
        assert again.model_dump(exclude={"quality_scores"}) == merged.model_dump(
            exclude={"quality_scores"}
        )

    def test_ties_keep_input_order(self):
        first = _result(
            AcquireMode.STATIC_FETCH,
            CanonicalFacts(extended_care=ExtendedCare(available=True)),
        )
        tied = _result(
            AcquireMode.ACCESSIBILITY,
            CanonicalFacts(extended_care=ExtendedCare(available=True, details="Until 6")),
        )
        assert [r.strategy for r in usable_results([first, tied])] == [
            AcquireMode.STATIC_FETCH,
            AcquireMode.ACCESSIBILITY,
        ]
        assert merge([first, tied]).sources["extended_care"] == "static-fetch"
        assert merge([tied, first]).sources["extended_care"] == "accessibility"
