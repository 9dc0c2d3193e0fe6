from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils import timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Tuple
import logging

from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
FOUR_PLACES = Decimal("0.0001")
SECONDS_PER_DAY = 86400


def days_per_month() -> int:
    return settings.BILLING_SETTINGS["DAYS_PER_MONTH"]


def round_money(value) -> Decimal:
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def round_rate(value) -> Decimal:
    return Decimal(value).quantize(FOUR_PLACES, rounding=ROUND_HALF_UP)


def as_datetime(value) -> datetime:
    """Aware datetime for a date or datetime; dates map to local midnight."""
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime.combine(value, time.min)
    else:
        raise ValidationError(f"Invalid date: {value!r}")

    if settings.USE_TZ and timezone.is_naive(result):
        result = timezone.make_aware(result)
    return result


def whole_days_between(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds() // SECONDS_PER_DAY))


class ProrationCalculator:
    @staticmethod
    def _money_input(value, label) -> Decimal:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError(f"{label} must be a number")
        if not amount.is_finite() or amount < 0:
            raise ValidationError(f"{label} cannot be negative")
        return amount

    @staticmethod
    def _duration_input(value, label) -> int:
        try:
            months = int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{label} must be a whole number of months")
        if months <= 0 or months != Decimal(str(value)):
            raise ValidationError(f"{label} must be a positive whole number of months")
        return months

    @staticmethod
    def calculate_proration(
        current_price,
        current_duration,
        new_price,
        new_duration,
        original_start_date,
        upgrade_date,
        current_end_date=None,
    ) -> Dict[str, Any]:
        """Credit for the unused part of the current package against the new price.

        Months count as a fixed number of days. The credit is rounded first and
        the net amount derived from it, so credit_amount + net_amount equals
        new_price exactly. A negative net amount is a credit owed to the payer.
        """
        current_price = ProrationCalculator._money_input(current_price, "Current price")
        new_price = ProrationCalculator._money_input(new_price, "New price")
        current_duration = ProrationCalculator._duration_input(current_duration, "Current duration")
        new_duration = ProrationCalculator._duration_input(new_duration, "New duration")

        start = as_datetime(original_start_date)
        upgrade = as_datetime(upgrade_date)

        month_days = days_per_month()
        total_days = current_duration * month_days
        days_used = whole_days_between(start, upgrade)
        days_remaining = max(0, total_days - days_used)

        current_monthly_rate = current_price / current_duration
        new_monthly_rate = new_price / new_duration
        current_daily_rate = current_price / total_days
        new_daily_rate = new_monthly_rate / month_days

        credit_amount = round_money(current_daily_rate * days_remaining)
        net_amount = round_money(new_price - credit_amount)

        result = {
            "total_days": total_days,
            "days_used": days_used,
            "days_remaining": days_remaining,
            "current_monthly_rate": round_rate(current_monthly_rate),
            "new_monthly_rate": round_rate(new_monthly_rate),
            "current_daily_rate": round_rate(current_daily_rate),
            "new_daily_rate": round_rate(new_daily_rate),
            "credit_amount": credit_amount,
            "net_amount": net_amount,
            "new_price": round_money(new_price),
        }

        if current_end_date is not None:
            result["calendar_days_remaining"] = whole_days_between(
                upgrade, as_datetime(current_end_date)
            )

        return result

    @staticmethod
    def change_type(current_price, current_duration, new_price, new_duration) -> Optional[str]:
        """UPGRADE for a higher price or longer term, DOWNGRADE for the reverse."""
        current_price, new_price = Decimal(str(current_price)), Decimal(str(new_price))
        if new_price > current_price or new_duration > current_duration:
            return "UPGRADE"
        if new_price < current_price or new_duration < current_duration:
            return "DOWNGRADE"
        return None


def calculate_new_subscription_dates(upgrade_date, new_duration: int) -> Tuple[datetime, datetime]:
    upgrade = timezone.localtime(as_datetime(upgrade_date)) if settings.USE_TZ else as_datetime(upgrade_date)
    start_date = upgrade.replace(hour=0, minute=0, second=0, microsecond=0)
    end_date = (start_date + relativedelta(months=int(new_duration))).replace(
        hour=23, minute=59, second=59, microsecond=999999
    )
    return start_date, end_date


def generate_month_strings(start_date, end_date) -> List[str]:
    current = date(start_date.year, start_date.month, 1)
    last = date(end_date.year, end_date.month, 1)
    months = []
    while current <= last:
        months.append(f"{current.year:04d}-{current.month:02d}")
        current += relativedelta(months=1)
    return months
