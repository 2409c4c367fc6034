"""Tests for the heuristic extractor."""

from campwatch.extraction.heuristic import (
    detect_extended_care,
    extract_activities,
    extract_ages,
    extract_contact,
    extract_facts,
    extract_hours,
    extract_pricing,
    extract_registration,
    extract_sessions,
    normalize_time,
)
from campwatch.extraction.structured import StructuredFragments
from campwatch.pipeline.quality import score_breakdown, score_quality

ZOO_CAMP_TEXT = (
    "$350/week, ages 5–12, 9am – 3pm, extended care available until 5pm, "
    "Week 1: June 16–20, Week 2: June 23–27"
)
ZOO_CAMP_PAGE = (
    ZOO_CAMP_TEXT
    + ". Pick-up: 3:00-3:15pm. Activities include zoo animals, arts & crafts, games, "
    "swimming and science."
)


class TestZooCamp:
    """The rendered Zoo Camp page."""

    def test_core_facts(self):
        facts = extract_facts(ZOO_CAMP_PAGE)
        assert facts.pricing.weekly == 350
        assert facts.ages.min_age == 5
        assert facts.ages.max_age == 12
        assert facts.hours.standard_range == "9AM – 3PM"
        assert facts.extended_care.available is True
        assert [s.dates for s in facts.sessions if s.kind == "session"] == [
            "June 16-20, 2026",
            "June 23-27, 2026",
        ]

    def test_quality_at_least_seventy(self):
        assert score_quality(extract_facts(ZOO_CAMP_PAGE)) >= 70

    def test_bare_listing_scores_every_reported_group(self):
        breakdown = score_breakdown(extract_facts(ZOO_CAMP_TEXT))
        assert breakdown["pricing"] == 15
        assert breakdown["sessions"] == 15
        assert breakdown["hours"] == 10
        assert breakdown["extended_care"] == 12
        assert breakdown["ages"] == 10

    def test_extended_care_times_and_hours(self):
        facts = extract_facts(ZOO_CAMP_TEXT)
        assert facts.extended_care.times == "5PM"
        assert facts.extended_care.cost is None
        assert facts.hours.extended_after == "5PM"

    def test_pick_up_window(self):
        hours = extract_hours(ZOO_CAMP_PAGE)
        assert hours.pick_up == "3:00 – 3:15PM"


class TestPricing:
    def test_labelled_tiers(self):
        pricing = extract_pricing(
            "Early bird: $299. Half day $200. Full day: $320. $350 per week."
        )
        assert pricing.weekly == 350
        assert pricing.early_bird == 299
        assert pricing.half_day == 200
        assert pricing.full_day == 320

    def test_contextual_fallback(self):
        assert extract_pricing("Camp fee $425 includes lunch").weekly == 425

    def test_median_fallback(self):
        assert extract_pricing("Options: $150 $300 $900").weekly == 300

    def test_thousands_separator(self):
        pricing = extract_pricing("$1,200/week. Members: $1,050")
        assert pricing.weekly == 1200
        assert pricing.member == 1050

    def test_thousands_separator_in_contextual_fallback(self):
        assert extract_pricing("Tuition $1,250 for the summer").weekly == 1250

    def test_separated_price_out_of_range_is_dropped(self):
        assert extract_pricing("$12,500/week") is None

    def test_out_of_range_price_is_dropped(self):
        assert extract_pricing("$5/week") is None

    def test_no_prices(self):
        assert extract_pricing("PERMANENTLY CLOSED. Thank you for 20 great years.") is None


class TestSessions:
    def test_numeric_range(self):
        sessions = extract_sessions("Session dates 6/15-6/19/26")
        assert [s.dates for s in sessions] == ["June 15-19, 2026"]

    def test_cross_month_week(self):
        sessions = extract_sessions("Week 3: June 30 - July 3")
        assert sessions[0].dates == "June 30-July 3, 2026"
        assert sessions[0].name == "Session 3"

    def test_summer_start_fallback(self):
        sessions = extract_sessions("Summer Camp 2026 begins June 15")
        assert sessions[0].dates == "June 15, 2026"
        assert sessions[0].name == "Summer Session"

    def test_duplicates_collapse(self):
        sessions = extract_sessions("Week 1: June 16-20. Also June 16-20 again.")
        assert len(sessions) == 1

    def test_expected_year_is_configurable(self):
        sessions = extract_sessions("July 6-10", expected_year=2027)
        assert sessions[0].dates == "July 6-10, 2027"


class TestHoursAndCare:
    def test_normalize_time(self):
        assert normalize_time("9 a.m.") == "9AM"
        assert normalize_time("3:30 pm") == "3:30PM"

    def test_no_extended_care(self):
        care = detect_extended_care("Sorry, there is no extended care this year.")
        assert care.available is False
        assert care.details == "Not offered"

    def test_no_extended_care_earns_known_credit(self):
        facts = extract_facts("Sorry, there is no extended care this year.")
        assert score_breakdown(facts)["extended_care"] == 5

    def test_care_cost_from_context(self):
        care = detect_extended_care("After care until 6pm is $75 per week.")
        assert care.available is True
        assert care.cost == 75
        assert care.times == "6PM"

    def test_unknown_care(self):
        assert detect_extended_care("Drop-off at the front gate.") is None


class TestAgesActivitiesRegistration:
    def test_named_age_groups(self):
        ages = extract_ages("Little Explorers: ages 4-6. Junior Rangers: ages 7-10.")
        assert [g.name for g in ages.groups] == ["Little Explorers", "Junior Rangers"]
        assert (ages.min_age, ages.max_age) == (4, 6)

    def test_month_names_are_not_age_groups(self):
        ages = extract_ages("June 16-20, July 7-11")
        assert ages is None

    def test_ages_and_up(self):
        ages = extract_ages("Open to ages 5 and up")
        assert (ages.min_age, ages.max_age) == (5, 18)

    def test_implausible_range_dropped(self):
        assert extract_ages("ages 1-2") is None

    def test_activities_are_a_closed_set(self):
        assert set(extract_activities("Swimming, soccer and coding. More swimming!")) == {
            "Swimming",
            "Soccer",
            "Coding",
        }

    def test_registration_upcoming(self):
        registration = extract_registration("Registration opens March 1, 2026")
        assert registration.status == "upcoming"
        assert registration.opens_date == "March 1, 2026"

    def test_registration_open_with_waitlist(self):
        registration = extract_registration("Register now! Join the waitlist for week 3.")
        assert registration.status == "open"
        assert registration.waitlist is True

    def test_contact_prefers_camp_email(self):
        contact = extract_contact("Email noreply@zoo.org or camp@zoo.org, call (555) 123-4567")
        assert contact.email == "camp@zoo.org"
        assert contact.phone == "(555) 123-4567"


class TestStructuredFragments:
    def test_text_wins_and_structured_fills_gaps(self):
        structured = StructuredFragments(
            json_ld=[
                {
                    "@type": "Event",
                    "name": "Explorer Week",
                    "startDate": "2026-06-15",
                    "endDate": "2026-06-19",
                    "offers": {"price": "500"},
                },
                {"@type": "Organization", "email": "hello@zoo.org"},
            ]
        )
        facts = extract_facts("$350/week", structured)
        assert facts.pricing.weekly == 350
        assert [s.dates for s in facts.sessions] == ["June 15-19, 2026"]
        assert facts.contact.email == "hello@zoo.org"

    def test_pricing_table(self):
        structured = StructuredFragments(
            tables=[[["Option", "Price"], ["Members", "$300"], ["Non-members", "$360"]]]
        )
        facts = extract_facts("", structured)
        assert facts.pricing.member == 300
        assert facts.pricing.non_member == 360


class TestRobustness:
    def test_empty_text(self):
        assert extract_facts("").is_empty()

    def test_junk_never_raises(self):
        facts = extract_facts("\x00$$$ ages 99-1 week: 13/45-99/99 $99999/week")
        assert facts.pricing.weekly is None
        assert facts.ages.min_age is None
