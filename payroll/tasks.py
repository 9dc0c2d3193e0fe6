from celery import shared_task
from django.apps import apps
from django.utils import timezone
import calendar
import logging

from .services import SalaryCalculator

logger = logging.getLogger(__name__)


@shared_task
def warm_teacher_salary_cache():
    today = timezone.localdate()
    from_date = today.replace(day=1)
    to_date = today.replace(day=calendar.monthrange(today.year, today.month)[1])

    calculator = SalaryCalculator(apps.get_app_config("payroll").salary_cache)
    salaries = calculator.calculate_all_teacher_salaries(from_date, to_date)
    logger.info(f"Warmed salary cache for {len(salaries)} teachers ({from_date} - {to_date})")
    return len(salaries)


@shared_task
def clear_salary_cache(teacher_id=None):
    cache_manager = apps.get_app_config("payroll").salary_cache
    if teacher_id is None:
        cache_manager.clear_all()
    else:
        cache_manager.clear_teacher(teacher_id)
    return True
