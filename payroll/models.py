from django.db import models
from django.db.models import Q
from django.core.validators import MinValueValidator, MaxValueValidator, RegexValidator
from django.core.exceptions import ValidationError
from django.conf import settings
from django.utils import timezone
from decimal import Decimal
import json
import logging
import uuid

from accounts.models import ActiveManager, School
from students.models import Teacher

logger = logging.getLogger(__name__)

period_validator = RegexValidator(
    regex=r"^\d{4}-(0[1-9]|1[0-2])$",
    message="Period must use the YYYY-MM format.",
)


class PackageSalary(models.Model):
    id = models.AutoField(primary_key=True)
    package_name = models.CharField(max_length=100)
    salary_per_student = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="package_salaries",
    )
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_package_salaries",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        db_table = "payroll_package_salaries"
        ordering = ["package_name", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["school", "package_name"],
                condition=Q(is_active=True),
                name="unique_active_package_salary",
            ),
        ]

    def __str__(self):
        return f"{self.package_name}: {self.salary_per_student}"


class PackageDeduction(models.Model):
    id = models.AutoField(primary_key=True)
    package_name = models.CharField(max_length=100)
    lateness_base_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("30.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    absence_base_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("25.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="package_deductions",
    )
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_package_deductions",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        db_table = "payroll_package_deductions"
        ordering = ["package_name", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["school", "package_name"],
                condition=Q(is_active=True),
                name="unique_active_package_deduction",
            ),
        ]

    def __str__(self):
        return f"{self.package_name}: late {self.lateness_base_amount} / absent {self.absence_base_amount}"


class LatenessDeductionConfig(models.Model):
    id = models.AutoField(primary_key=True)
    tier = models.PositiveIntegerField(default=1)
    start_minute = models.PositiveIntegerField()
    end_minute = models.PositiveIntegerField()
    deduction_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[
            MinValueValidator(Decimal("0.00")),
            MaxValueValidator(Decimal("100.00")),
        ],
    )
    excused_threshold = models.PositiveIntegerField(default=3)
    is_global = models.BooleanField(default=True)
    teacher = models.ForeignKey(
        Teacher,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="lateness_configs",
    )
    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="lateness_configs",
    )
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_lateness_configs",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        db_table = "payroll_lateness_deduction_configs"
        ordering = ["tier", "start_minute"]
        indexes = [
            models.Index(fields=["school", "is_active"]),
            models.Index(fields=["teacher", "is_active"]),
        ]

    def __str__(self):
        return f"Tier {self.tier}: {self.start_minute}-{self.end_minute} min = {self.deduction_percent}%"

    def clean(self):
        if self.start_minute is not None and self.end_minute is not None:
            if self.start_minute > self.end_minute:
                raise ValidationError("Tier start minute cannot exceed its end minute.")
        if self.teacher_id and self.is_global:
            raise ValidationError("A teacher-specific tier cannot be global.")

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class BonusRecord(models.Model):
    id = models.AutoField(primary_key=True)
    teacher = models.ForeignKey(
        Teacher, on_delete=models.CASCADE, related_name="bonus_records"
    )
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    reason = models.TextField(blank=True, default="")
    period = models.CharField(
        max_length=7, validators=[period_validator], blank=True, default=""
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="awarded_bonuses",
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "payroll_bonus_records"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["teacher", "created_at"]),
        ]

    def __str__(self):
        return f"{self.teacher} bonus {self.amount}"


class QualityAssessment(models.Model):
    id = models.AutoField(primary_key=True)
    teacher = models.ForeignKey(
        Teacher, on_delete=models.CASCADE, related_name="quality_assessments"
    )
    week_start = models.DateField()
    supervisor_feedback = models.TextField(blank=True, default="[]")
    overall_quality = models.CharField(max_length=50, blank=True, default="")
    manager_approved = models.BooleanField(default=False)
    bonus_awarded = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "payroll_quality_assessments"
        ordering = ["-week_start"]
        unique_together = ["teacher", "week_start"]

    def __str__(self):
        return f"{self.teacher} - week of {self.week_start}"

    def feedback_items(self):
        try:
            items = json.loads(self.supervisor_feedback or "[]")
        except (ValueError, TypeError):
            logger.warning(f"Malformed supervisor feedback on assessment {self.pk}")
            return []
        return items if isinstance(items, list) else []


class TeacherSalaryPayment(models.Model):
    STATUS_CHOICES = [
        ("Unpaid", "Unpaid"),
        ("Paid", "Paid"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    teacher = models.ForeignKey(
        Teacher, on_delete=models.CASCADE, related_name="salary_payments"
    )
    period = models.CharField(max_length=7, validators=[period_validator])
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default="Unpaid")
    total_salary = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    lateness_deduction = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    absence_deduction = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    bonuses = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    paid_at = models.DateTimeField(null=True, blank=True)
    admin = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="processed_salary_payments",
    )
    transaction_id = models.CharField(max_length=100, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "payroll_teacher_salary_payments"
        ordering = ["-period", "teacher"]
        unique_together = ["teacher", "period"]
        indexes = [
            models.Index(fields=["period", "status"]),
        ]

    def __str__(self):
        return f"{self.teacher} - {self.period}: {self.status}"

    @property
    def is_paid(self):
        return self.status == "Paid"
