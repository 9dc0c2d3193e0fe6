from django.conf import settings
from django.core.cache import cache
from django.db.models import F, Q
from django.utils import timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from datetime import date, datetime, time, timedelta
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
import hashlib
import logging
import re

from accounts.models import SystemConfiguration
from attendance.utils import DaypackageParser, iter_dates, weekday_number, SUNDAY

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

DEFAULT_SALARY_VISIBILITY = {
    "show_teacher_salary": True,
    "custom_message": "",
    "admin_contact": "",
}


def payroll_setting(key):
    return settings.PAYROLL_SETTINGS[key]


class PayrollDataProcessor:
    @staticmethod
    def safe_decimal_conversion(value, default=Decimal("0.00")) -> Decimal:
        if value is None or value == "":
            return default
        try:
            return Decimal(str(value))
        except (ValueError, TypeError, InvalidOperation):
            return default

    @staticmethod
    def quantize_money(value) -> Decimal:
        return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

    @staticmethod
    def parse_date(value: Optional[str]) -> Optional[date]:
        if not value:
            return None
        try:
            return date.fromisoformat(value.strip()[:10])
        except (ValueError, TypeError):
            return None

    @staticmethod
    def validate_date_range(start_date: date, end_date: date) -> Tuple[bool, str]:
        if start_date > end_date:
            return False, "Start date cannot be after end date"
        return True, "Valid date range"

    @staticmethod
    def get_period(day: date) -> str:
        return f"{day.year:04d}-{day.month:02d}"

    @staticmethod
    def validate_period(period: Optional[str]) -> bool:
        return bool(period and PERIOD_RE.match(period))

    @staticmethod
    def get_expected_working_dates(
        from_date: date, to_date: date, include_sundays: bool
    ) -> List[date]:
        return [
            day
            for day in iter_dates(from_date, to_date)
            if include_sundays or weekday_number(day) != SUNDAY
        ]

    @staticmethod
    def get_daily_rate_divisor(expected_working_days: int) -> int:
        return max(1, min(payroll_setting("MAX_WORKING_DAYS_DIVISOR"), expected_working_days))


class SalaryConfigLoader:
    @staticmethod
    def load(school=None) -> Dict[str, Any]:
        from payroll.models import LatenessDeductionConfig, PackageDeduction, PackageSalary

        scope = Q(school__isnull=True)
        if school is not None:
            scope |= Q(school=school)

        package_deductions = {}
        # school rows come last so they override the shared defaults
        for row in PackageDeduction.active.filter(scope).order_by(
            F("school_id").asc(nulls_first=True), "created_at"
        ):
            package_deductions[row.package_name] = {
                "lateness": row.lateness_base_amount,
                "absence": row.absence_base_amount,
            }

        package_salaries = {}
        for row in PackageSalary.active.filter(scope).order_by(
            F("school_id").asc(nulls_first=True), "created_at"
        ):
            package_salaries[row.package_name] = row.salary_per_student

        tier_rows = list(
            LatenessDeductionConfig.active.filter(scope, teacher__isnull=True).order_by(
                "tier", "start_minute"
            )
        )
        if school is not None and any(row.school_id == school.pk for row in tier_rows):
            tier_rows = [row for row in tier_rows if row.school_id == school.pk]

        visibility = SystemConfiguration.get_json_setting(
            "TEACHER_SALARY_VISIBILITY", DEFAULT_SALARY_VISIBILITY
        )
        if not isinstance(visibility, dict):
            visibility = DEFAULT_SALARY_VISIBILITY

        return {
            "include_sundays": SystemConfiguration.get_bool_setting("INCLUDE_SUNDAYS", False),
            "salary_visibility": {**DEFAULT_SALARY_VISIBILITY, **visibility},
            "package_deductions": package_deductions,
            "package_salaries": package_salaries,
            "lateness_tiers": [LatenessCalculator.tier_to_dict(row) for row in tier_rows],
            "excused_threshold": LatenessCalculator.excused_threshold_for(tier_rows),
        }

    @staticmethod
    def validate(config: Dict[str, Any]) -> List[str]:
        errors = []
        if not config["package_deductions"]:
            errors.append("No package deductions configured")
        if not config["lateness_tiers"]:
            errors.append("No lateness tiers configured")
        if not config["package_salaries"]:
            errors.append("No package salaries configured")
        return errors

    @staticmethod
    def lateness_base(config: Dict[str, Any], package: Optional[str]) -> Decimal:
        entry = config["package_deductions"].get(package or "")
        if entry is None:
            return Decimal(payroll_setting("DEFAULT_LATENESS_BASE_AMOUNT"))
        return entry["lateness"]

    @staticmethod
    def absence_base(config: Dict[str, Any], package: Optional[str]) -> Decimal:
        entry = config["package_deductions"].get(package or "")
        if entry is None:
            return Decimal(payroll_setting("DEFAULT_ABSENCE_BASE_AMOUNT"))
        return entry["absence"]

    @staticmethod
    def monthly_salary(config: Dict[str, Any], package: Optional[str]) -> Decimal:
        return config["package_salaries"].get(package or "", Decimal("0.00"))


class LatenessCalculator:
    EXCUSED = "Excused"
    MAX_TIER = "> Max Tier"
    UNTIERED = "Untiered"

    @staticmethod
    def tier_to_dict(row) -> Dict[str, Any]:
        return {
            "id": row.pk,
            "tier": row.tier,
            "start_minute": row.start_minute,
            "end_minute": row.end_minute,
            "deduction_percent": row.deduction_percent,
        }

    @staticmethod
    def excused_threshold_for(tier_rows) -> int:
        thresholds = [row.excused_threshold for row in tier_rows]
        if not thresholds:
            return payroll_setting("DEFAULT_EXCUSED_THRESHOLD")
        return min(thresholds)

    @staticmethod
    def tiers_for_teacher(teacher, config: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], int]:
        """Teacher-specific tiers replace the school table when present."""
        from payroll.models import LatenessDeductionConfig

        rows = list(
            LatenessDeductionConfig.active.filter(teacher=teacher).order_by(
                "tier", "start_minute"
            )
        )
        if not rows:
            return config["lateness_tiers"], config["excused_threshold"]
        return (
            [LatenessCalculator.tier_to_dict(row) for row in rows],
            LatenessCalculator.excused_threshold_for(rows),
        )

    @staticmethod
    def lateness_minutes(scheduled: datetime, actual: datetime) -> int:
        seconds = Decimal(str((actual - scheduled).total_seconds()))
        minutes = (seconds / 60).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return max(0, int(minutes))

    @staticmethod
    def compute_lateness(
        scheduled: datetime,
        actual: datetime,
        base_amount: Decimal,
        tiers: List[Dict[str, Any]],
        excused_threshold: int,
    ) -> Dict[str, Any]:
        minutes = LatenessCalculator.lateness_minutes(scheduled, actual)

        if minutes <= excused_threshold:
            return {
                "minutes": minutes,
                "deduction": Decimal("0.00"),
                "tier": LatenessCalculator.EXCUSED,
            }

        for index, tier in enumerate(tiers, 1):
            if tier["start_minute"] <= minutes <= tier["end_minute"]:
                deduction = Decimal(base_amount) * Decimal(tier["deduction_percent"]) / 100
                return {
                    "minutes": minutes,
                    "deduction": PayrollDataProcessor.quantize_money(deduction),
                    "tier": f"Tier {index}",
                }

        if tiers and minutes > max(tier["end_minute"] for tier in tiers):
            return {
                "minutes": minutes,
                "deduction": PayrollDataProcessor.quantize_money(base_amount),
                "tier": LatenessCalculator.MAX_TIER,
            }

        return {
            "minutes": minutes,
            "deduction": Decimal("0.00"),
            "tier": LatenessCalculator.UNTIERED,
        }


class DeliveryEventMatcher:
    """Assigns zoom-link events to class dates, each event to at most one date.

    A date takes its earliest unclaimed event on the same local day; failing
    that, the earliest unclaimed event up to the fallback window after the
    scheduled start, which covers classes running past midnight. Dates must be
    matched in ascending order.
    """

    def __init__(self, events: Iterable, fallback_hours: Optional[int] = None):
        if fallback_hours is None:
            fallback_hours = payroll_setting("LATENESS_FALLBACK_WINDOW_HOURS")
        self.events = sorted(events, key=lambda event: (event.sent_time, event.pk))
        self.fallback = timedelta(hours=fallback_hours)
        self._claimed: Set[int] = set()
        self._by_date = defaultdict(list)
        for event in self.events:
            self._by_date[timezone.localtime(event.sent_time).date()].append(event)

    def _claim(self, event):
        self._claimed.add(event.pk)
        return event

    def match(self, day: date, scheduled: Optional[time] = None):
        for event in self._by_date.get(day, []):
            if event.pk not in self._claimed:
                return self._claim(event)

        if scheduled is None:
            return None

        window_start = timezone.make_aware(datetime.combine(day, scheduled))
        window_end = window_start + self.fallback
        for event in self.events:
            if event.pk in self._claimed:
                continue
            if window_start < event.sent_time <= window_end:
                return self._claim(event)
        return None


class AbsenceCalculator:
    REASON = "No zoom link"
    WAIVED_REASON = "Waived (deduction adjustment)"

    @staticmethod
    def compute_absences(
        student,
        dates: Iterable[date],
        daypackage: Optional[str],
        base_amount: Decimal,
        include_sundays: bool,
        delivered_dates: Set[date],
        permission_dates: Set[date],
        waived_dates: Set[date],
        today: Optional[date] = None,
    ) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        """Returns (absences, waived) for the student's expected class days.

        permission_dates covers approved teacher permission requests and days
        the student's attendance progress is marked Permission.
        """
        today = today or timezone.localdate()
        absences, waived = [], []

        for day in dates:
            if day > today:
                continue
            if not DaypackageParser.includes_day(daypackage, day, include_sundays):
                continue
            if day in delivered_dates or day in permission_dates:
                continue

            record = {
                "date": day.isoformat(),
                "student_id": student.pk,
                "student_name": student.name,
                "student_package": student.package,
                "deduction": PayrollDataProcessor.quantize_money(base_amount),
                "reason": AbsenceCalculator.REASON,
                "permitted": False,
                "waived": False,
            }
            if day in waived_dates:
                record.update(
                    deduction=Decimal("0.00"),
                    reason=AbsenceCalculator.WAIVED_REASON,
                    waived=True,
                )
                waived.append(record)
            else:
                absences.append(record)

        return absences, waived


class PayrollCacheManager:
    """Versioned salary cache; bumping a version orphans every key under it."""

    def __init__(self, namespace: str = "teacher-payments", timeout: Optional[int] = None):
        self.namespace = namespace
        self.timeout = timeout if timeout is not None else payroll_setting("SALARY_CACHE_TIMEOUT")

    @staticmethod
    def get_cache_key(prefix: str, *args) -> str:
        key_parts = [prefix] + [str(arg) for arg in args]
        key_string = "_".join(key_parts)
        return hashlib.md5(key_string.encode()).hexdigest()

    def _version(self, *scope) -> int:
        key = self.get_cache_key(self.namespace, "version", *scope)
        return cache.get_or_set(key, 1, None)

    def _bump(self, *scope):
        key = self.get_cache_key(self.namespace, "version", *scope)
        cache.set(key, self._version(*scope) + 1, None)

    def _salary_key(self, kind: str, teacher_id, from_date: date, to_date: date) -> str:
        return self.get_cache_key(
            self.namespace,
            kind,
            self._version(),
            teacher_id,
            self._version("teacher", teacher_id),
            from_date.isoformat(),
            to_date.isoformat(),
        )

    def get_salary(self, teacher_id, from_date: date, to_date: date, kind: str = "salary"):
        return cache.get(self._salary_key(kind, teacher_id, from_date, to_date))

    def set_salary(self, teacher_id, from_date: date, to_date: date, data, kind: str = "salary"):
        cache.set(self._salary_key(kind, teacher_id, from_date, to_date), data, self.timeout)

    def clear_all(self):
        self._bump()
        logger.info(f"Cleared salary cache namespace {self.namespace}")

    def clear_teacher(self, teacher_id):
        self._bump("teacher", teacher_id)
        logger.info(f"Cleared salary cache for teacher {teacher_id}")


class RateLimiter:
    def __init__(self, limit: int, window_seconds: int, namespace: str = "rate-limit"):
        self.limit = limit
        self.window_seconds = window_seconds
        self.namespace = namespace

    @staticmethod
    def get_client_ip(request) -> str:
        forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return (
            request.META.get("HTTP_X_REAL_IP")
            or request.META.get("REMOTE_ADDR")
            or "unknown"
        )

    def _key(self, identifier: str) -> str:
        return f"{self.namespace}:{identifier}"

    def is_allowed(self, identifier: str) -> bool:
        key = self._key(identifier)
        if cache.add(key, 1, self.window_seconds):
            return True
        try:
            count = cache.incr(key)
        except ValueError:
            # window expired between add and incr
            cache.set(key, 1, self.window_seconds)
            return True

        if count > self.limit:
            logger.warning(f"Rate limit exceeded for {identifier} ({self.namespace})")
            return False
        return True

    def reset(self, identifier: str):
        cache.delete(self._key(identifier))
