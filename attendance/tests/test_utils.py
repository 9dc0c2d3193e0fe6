import pytest
from datetime import date, time

from attendance.utils import DaypackageParser, TimeCalculator, iter_dates, weekday_number


@pytest.mark.parametrize(
    "daypackage,expected",
    [
        ("MWF", [1, 3, 5]),
        ("tts", [2, 4, 6]),
        ("Mon, Wed", [1, 3]),
        ("monday,Thursday, sat", [1, 4, 6]),
        ("1, 3, 9", [1, 3]),
        ("ALL DAYS", [0, 1, 2, 3, 4, 5, 6]),
        ("", []),
        (None, []),
    ],
)
def test_parse_daypackage(daypackage, expected):
    assert DaypackageParser.parse(daypackage) == expected


def test_format_daypackage():
    assert DaypackageParser.format("MWF") == "Mon, Wed, Fri"
    assert DaypackageParser.format("All Days") == "All Days"
    assert DaypackageParser.format("") == "Not set"
    assert DaypackageParser.day_names("Mon, Wed") == ["Monday", "Wednesday"]


def test_sunday_needs_opt_in():
    sunday = date(2025, 6, 1)

    assert weekday_number(sunday) == 0
    assert DaypackageParser.includes_day("ALL DAYS", sunday) is False
    assert DaypackageParser.includes_day("ALL DAYS", sunday, include_sundays=True) is True


def test_empty_package_expects_every_day():
    assert DaypackageParser.includes_day("", date(2025, 6, 3)) is True
    assert DaypackageParser.includes_day("MWF", date(2025, 6, 3)) is False


def test_teaching_days_in_month():
    assert DaypackageParser.count_teaching_days_in_month("MWF", 2025, 6) == 13
    assert DaypackageParser.count_teaching_days_in_month("", 2025, 6) == 25
    assert DaypackageParser.count_teaching_days_in_month("", 2025, 6, include_sundays=True) == 30


def test_iter_dates_is_inclusive():
    days = list(iter_dates(date(2025, 6, 29), date(2025, 7, 1)))
    assert days == [date(2025, 6, 29), date(2025, 6, 30), date(2025, 7, 1)]


@pytest.mark.parametrize(
    "slot,expected",
    [
        ("12:30 AM", "00:30"),
        ("12:15 PM", "12:15"),
        ("1:05 PM", "13:05"),
        ("10:00am", "10:00"),
        ("18:45", "18:45"),
        ("25:00", "00:00"),
        ("soon", "00:00"),
        ("", "00:00"),
    ],
)
def test_convert_to_24_hour(slot, expected):
    assert TimeCalculator.convert_to_24_hour(slot) == expected


def test_scheduled_time():
    assert TimeCalculator.scheduled_time("4:30 PM") == time(16, 30)
    assert TimeCalculator.scheduled_time("") is None
    assert TimeCalculator.scheduled_time(None) is None
