from django.apps import apps
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver
import logging

from attendance.models import AttendanceProgress, DeductionWaiver, PermissionRequest, ZoomLink
from students.models import Student, TeacherAssignment, TeacherChangeHistory
from .models import (
    BonusRecord,
    LatenessDeductionConfig,
    PackageDeduction,
    PackageSalary,
    QualityAssessment,
    TeacherSalaryPayment,
)

logger = logging.getLogger(__name__)

TEACHER_SCOPED = (
    ZoomLink,
    PermissionRequest,
    DeductionWaiver,
    TeacherAssignment,
    BonusRecord,
    QualityAssessment,
    TeacherSalaryPayment,
)

GLOBAL_SCOPED = (
    PackageSalary,
    PackageDeduction,
    LatenessDeductionConfig,
    AttendanceProgress,
    Student,
    TeacherChangeHistory,
)


def salary_cache():
    return apps.get_app_config("payroll").salary_cache


@receiver(post_save)
@receiver(post_delete)
def invalidate_salary_cache(sender, instance, **kwargs):
    if sender in TEACHER_SCOPED:
        salary_cache().clear_teacher(instance.teacher_id)
    elif sender in GLOBAL_SCOPED:
        # these rows can move salary between teachers
        salary_cache().clear_all()
