from datetime import date, time, timedelta
from typing import Iterator, List, Optional
import calendar
import logging
import re

logger = logging.getLogger(__name__)

SUNDAY = 0

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
DAY_ABBREVIATIONS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]

DAY_ALIASES = {
    "sun": 0,
    "sunday": 0,
    "mon": 1,
    "monday": 1,
    "tue": 2,
    "tues": 2,
    "tuesday": 2,
    "wed": 3,
    "wednes": 3,
    "wednesday": 3,
    "thu": 4,
    "thur": 4,
    "thurs": 4,
    "thursday": 4,
    "fri": 5,
    "friday": 5,
    "sat": 6,
    "saturday": 6,
}

PACKAGE_MNEMONICS = {
    "ALL DAYS": [0, 1, 2, 3, 4, 5, 6],
    "ALLDAYS": [0, 1, 2, 3, 4, 5, 6],
    "MWF": [1, 3, 5],
    "TTS": [2, 4, 6],
    "TTH": [2, 4, 6],
}

TWELVE_HOUR_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AaPp][Mm])$")
TWENTY_FOUR_HOUR_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def weekday_number(day: date) -> int:
    """0 = Sunday .. 6 = Saturday."""
    return (day.weekday() + 1) % 7


def iter_dates(start_date: date, end_date: date) -> Iterator[date]:
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


class TimeCalculator:
    @staticmethod
    def convert_to_24_hour(time_str: Optional[str]) -> str:
        if not time_str or not time_str.strip():
            return "00:00"

        value = time_str.strip()

        match = TWELVE_HOUR_RE.match(value)
        if match:
            hour, minute = int(match.group(1)), int(match.group(2))
            period = match.group(4).upper()
            if 1 <= hour <= 12 and minute < 60:
                if period == "AM":
                    hour = 0 if hour == 12 else hour
                else:
                    hour = 12 if hour == 12 else hour + 12
                return f"{hour:02d}:{minute:02d}"

        match = TWENTY_FOUR_HOUR_RE.match(value)
        if match:
            hour, minute = int(match.group(1)), int(match.group(2))
            if hour < 24 and minute < 60:
                return f"{hour:02d}:{minute:02d}"

        logger.warning(f"Unparseable time slot {time_str!r}, falling back to 00:00")
        return "00:00"

    @staticmethod
    def parse_time_string(time_str: Optional[str]) -> Optional[time]:
        if not time_str or time_str.strip() == "":
            return None

        try:
            parts = time_str.strip().split(":")
            if len(parts) == 2:
                return time(int(parts[0]), int(parts[1]), 0)
            elif len(parts) == 3:
                return time(int(parts[0]), int(parts[1]), int(parts[2]))
            return None
        except (ValueError, TypeError):
            return None

    @staticmethod
    def scheduled_time(time_slot: Optional[str]) -> Optional[time]:
        """Normalized start time of a slot, or None when no slot is set."""
        if not time_slot or not time_slot.strip():
            return None
        return TimeCalculator.parse_time_string(
            TimeCalculator.convert_to_24_hour(time_slot)
        )


class DaypackageParser:
    @staticmethod
    def parse(daypackage: Optional[str]) -> List[int]:
        if not daypackage or not daypackage.strip():
            return []

        normalized = daypackage.strip().upper()
        if normalized in PACKAGE_MNEMONICS:
            return list(PACKAGE_MNEMONICS[normalized])

        days = set()
        for part in normalized.split(","):
            token = part.strip().lower()
            if not token:
                continue
            if token.isdigit():
                number = int(token)
                if 0 <= number <= 6:
                    days.add(number)
                continue
            if token in DAY_ALIASES:
                days.add(DAY_ALIASES[token])
                continue
            if token.upper() in PACKAGE_MNEMONICS:
                days.update(PACKAGE_MNEMONICS[token.upper()])

        return sorted(days)

    @staticmethod
    def includes_day(
        daypackage: Optional[str], day: date, include_sundays: bool = False
    ) -> bool:
        day_number = weekday_number(day)
        if day_number == SUNDAY and not include_sundays:
            return False

        days = DaypackageParser.parse(daypackage)
        if not days:
            return True

        return day_number in days

    @staticmethod
    def format(daypackage: Optional[str]) -> str:
        days = DaypackageParser.parse(daypackage)
        if not days:
            return "Not set"
        if len(days) == 7:
            return "All Days"
        return ", ".join(DAY_ABBREVIATIONS[day] for day in days)

    @staticmethod
    def day_names(daypackage: Optional[str]) -> List[str]:
        return [DAY_NAMES[day] for day in DaypackageParser.parse(daypackage)]

    @staticmethod
    def count_teaching_days_in_month(
        daypackage: Optional[str], year: int, month: int, include_sundays: bool = False
    ) -> int:
        last_day = calendar.monthrange(year, month)[1]
        return sum(
            1
            for day in iter_dates(date(year, month, 1), date(year, month, last_day))
            if DaypackageParser.includes_day(daypackage, day, include_sundays)
        )
