import pytest
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from types import SimpleNamespace
from django.utils import timezone

from payroll.utils import (
    AbsenceCalculator,
    DeliveryEventMatcher,
    LatenessCalculator,
    PayrollDataProcessor,
)

TIERS = [
    {"tier": 1, "start_minute": 4, "end_minute": 10, "deduction_percent": Decimal("25")},
    {"tier": 2, "start_minute": 11, "end_minute": 20, "deduction_percent": Decimal("50")},
    {"tier": 3, "start_minute": 21, "end_minute": 30, "deduction_percent": Decimal("75")},
]

BASE = Decimal("30.00")


def aware(*args):
    return timezone.make_aware(datetime(*args))


def late_by(minutes, seconds=0):
    scheduled = aware(2025, 6, 2, 10, 0)
    return scheduled, scheduled + timedelta(minutes=minutes, seconds=seconds)


def test_lateness_within_threshold_is_excused():
    scheduled, actual = late_by(3)
    result = LatenessCalculator.compute_lateness(scheduled, actual, BASE, TIERS, 3)
    assert result == {"minutes": 3, "deduction": Decimal("0.00"), "tier": "Excused"}


def test_early_link_counts_as_zero_minutes():
    scheduled, actual = late_by(-15)
    result = LatenessCalculator.compute_lateness(scheduled, actual, BASE, TIERS, 3)
    assert result["minutes"] == 0
    assert result["tier"] == "Excused"


def test_lateness_matches_tier_by_position():
    scheduled, actual = late_by(15)
    result = LatenessCalculator.compute_lateness(scheduled, actual, BASE, TIERS, 3)
    assert result["tier"] == "Tier 2"
    assert result["deduction"] == Decimal("15.00")


def test_lateness_rounds_minutes_half_up():
    scheduled, actual = late_by(10, 30)
    result = LatenessCalculator.compute_lateness(scheduled, actual, BASE, TIERS, 3)
    assert result["minutes"] == 11
    assert result["tier"] == "Tier 2"


def test_lateness_beyond_last_tier_takes_full_base():
    scheduled, actual = late_by(45)
    result = LatenessCalculator.compute_lateness(scheduled, actual, BASE, TIERS, 3)
    assert result["tier"] == "> Max Tier"
    assert result["deduction"] == Decimal("30.00")


def test_lateness_in_tier_gap_is_untiered():
    tiers = [TIERS[0], TIERS[2]]
    scheduled, actual = late_by(15)
    result = LatenessCalculator.compute_lateness(scheduled, actual, BASE, tiers, 3)
    assert result["tier"] == "Untiered"
    assert result["deduction"] == Decimal("0.00")


def test_lateness_without_tiers_never_deducts():
    scheduled, actual = late_by(90)
    result = LatenessCalculator.compute_lateness(scheduled, actual, BASE, [], 3)
    assert result["deduction"] == Decimal("0.00")


@pytest.mark.parametrize("base", [Decimal("30.00"), Decimal("7.35"), Decimal("0.00")])
@pytest.mark.parametrize("threshold", [0, 3, 10])
def test_deduction_never_decreases_as_lateness_grows(base, threshold):
    results = [
        LatenessCalculator.compute_lateness(*late_by(minutes), base, TIERS, threshold)
        for minutes in range(0, 61)
    ]
    deductions = [result["deduction"] for result in results]

    assert deductions == sorted(deductions)
    assert results[0]["tier"] == "Excused"
    assert results[-1]["tier"] == "> Max Tier"
    assert results[-1]["deduction"] == base
    tiers_seen = [result["tier"] for result in results]
    assert tiers_seen.index("> Max Tier") == 31
    if threshold < 4:
        assert tiers_seen.index("Tier 1") == 4


@pytest.mark.parametrize(
    "working_days,divisor",
    [(0, 1), (5, 5), (22, 22), (26, 22)],
)
def test_daily_rate_divisor_is_capped(working_days, divisor):
    assert PayrollDataProcessor.get_daily_rate_divisor(working_days) == divisor


def test_expected_working_dates_skip_sundays_by_default():
    dates = PayrollDataProcessor.get_expected_working_dates(date(2025, 6, 1), date(2025, 6, 30), False)
    assert len(dates) == 25
    assert date(2025, 6, 1) not in dates

    with_sundays = PayrollDataProcessor.get_expected_working_dates(
        date(2025, 6, 1), date(2025, 6, 30), True
    )
    assert len(with_sundays) == 30


def event(pk, *args):
    return SimpleNamespace(pk=pk, sent_time=aware(*args))


def test_matcher_claims_each_event_once():
    matcher = DeliveryEventMatcher([event(1, 2025, 6, 2, 10, 5)])
    assert matcher.match(date(2025, 6, 2), time(10, 0)).pk == 1
    assert matcher.match(date(2025, 6, 2), time(10, 0)) is None


def test_matcher_falls_back_across_midnight():
    late_night = event(1, 2025, 6, 3, 0, 10)
    matcher = DeliveryEventMatcher([late_night], fallback_hours=12)

    assert matcher.match(date(2025, 6, 2), time(23, 30)) is late_night
    # already claimed by the previous day
    assert matcher.match(date(2025, 6, 3), time(23, 30)) is None


def test_matcher_fallback_needs_schedule():
    matcher = DeliveryEventMatcher([event(1, 2025, 6, 3, 0, 10)], fallback_hours=12)
    assert matcher.match(date(2025, 6, 2), None) is None


def make_student():
    return SimpleNamespace(pk=7, name="Abdullah", package="Gold")


def test_absences_only_on_expected_days_without_evidence():
    dates = [date(2025, 6, day) for day in range(1, 8)]
    absences, waived = AbsenceCalculator.compute_absences(
        make_student(),
        dates,
        "MWF",
        Decimal("25"),
        include_sundays=False,
        delivered_dates={date(2025, 6, 2)},
        permission_dates=set(),
        waived_dates=set(),
        today=date(2025, 7, 1),
    )
    assert [record["date"] for record in absences] == ["2025-06-04", "2025-06-06"]
    assert all(record["deduction"] == Decimal("25.00") for record in absences)
    assert absences[0]["reason"] == "No zoom link"
    assert waived == []


def test_permission_and_waivers_suppress_absence_deductions():
    dates = [date(2025, 6, 2), date(2025, 6, 4), date(2025, 6, 6)]
    absences, waived = AbsenceCalculator.compute_absences(
        make_student(),
        dates,
        "MWF",
        Decimal("25"),
        include_sundays=False,
        delivered_dates=set(),
        permission_dates={date(2025, 6, 2)},
        waived_dates={date(2025, 6, 4)},
        today=date(2025, 7, 1),
    )
    assert [record["date"] for record in absences] == ["2025-06-06"]
    assert len(waived) == 1
    assert waived[0]["waived"] is True
    assert waived[0]["deduction"] == Decimal("0.00")


def test_future_dates_are_never_absences():
    absences, _ = AbsenceCalculator.compute_absences(
        make_student(),
        [date(2025, 6, 2), date(2025, 6, 4)],
        "",
        Decimal("25"),
        include_sundays=False,
        delivered_dates=set(),
        permission_dates=set(),
        waived_dates=set(),
        today=date(2025, 6, 3),
    )
    assert [record["date"] for record in absences] == ["2025-06-02"]


def test_sunday_absence_only_when_sundays_count():
    sunday = date(2025, 6, 1)
    kwargs = dict(
        delivered_dates=set(),
        permission_dates=set(),
        waived_dates=set(),
        today=date(2025, 7, 1),
    )
    absences, _ = AbsenceCalculator.compute_absences(
        make_student(), [sunday], "ALL DAYS", Decimal("25"), include_sundays=False, **kwargs
    )
    assert absences == []

    absences, _ = AbsenceCalculator.compute_absences(
        make_student(), [sunday], "ALL DAYS", Decimal("25"), include_sundays=True, **kwargs
    )
    assert len(absences) == 1
