from django.db import models
from django.core.validators import MinValueValidator
from django.core.exceptions import ValidationError
from django.conf import settings
from decimal import Decimal

from accounts.models import ActiveManager, School
from students.models import Student


def default_currency():
    return settings.BILLING_SETTINGS["DEFAULT_CURRENCY"]


class SubscriptionPackage(models.Model):
    id = models.AutoField(primary_key=True)
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    duration_months = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    currency = models.CharField(max_length=3, default=default_currency)
    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="subscription_packages",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        db_table = "subscription_packages"
        ordering = ["duration_months", "price"]

    def __str__(self):
        return f"{self.name} ({self.duration_months} mo, {self.price} {self.currency})"


class StudentSubscription(models.Model):
    STATUS_CHOICES = [
        ("ACTIVE", "Active"),
        ("TRIALING", "Trialing"),
        ("CANCELLED", "Cancelled"),
        ("EXPIRED", "Expired"),
    ]
    CHANGEABLE_STATUSES = ("ACTIVE", "TRIALING")

    id = models.AutoField(primary_key=True)
    student = models.ForeignKey(
        Student, on_delete=models.CASCADE, related_name="subscriptions"
    )
    package = models.ForeignKey(
        SubscriptionPackage, on_delete=models.PROTECT, related_name="subscriptions"
    )
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="ACTIVE")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "student_subscriptions"
        ordering = ["-start_date"]
        indexes = [
            models.Index(fields=["student", "status"]),
        ]

    def __str__(self):
        return f"{self.student} - {self.package.name} ({self.status})"

    def clean(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValidationError("Subscription must end after it starts.")

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    @property
    def is_changeable(self):
        return self.status in self.CHANGEABLE_STATUSES


class SubscriptionAdjustment(models.Model):
    CHANGE_TYPES = [
        ("UPGRADE", "Upgrade"),
        ("DOWNGRADE", "Downgrade"),
    ]

    id = models.AutoField(primary_key=True)
    subscription = models.ForeignKey(
        StudentSubscription, on_delete=models.CASCADE, related_name="adjustments"
    )
    change_type = models.CharField(max_length=20, choices=CHANGE_TYPES)
    from_package = models.ForeignKey(
        SubscriptionPackage, on_delete=models.PROTECT, related_name="+"
    )
    to_package = models.ForeignKey(
        SubscriptionPackage, on_delete=models.PROTECT, related_name="+"
    )
    upgrade_date = models.DateTimeField()
    credit_amount = models.DecimalField(max_digits=12, decimal_places=2)
    net_amount = models.DecimalField(max_digits=12, decimal_places=2)
    proration = models.JSONField(default=dict)
    months_covered = models.JSONField(default=list)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="subscription_adjustments",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "subscription_adjustments"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.subscription}: {self.from_package.name} -> {self.to_package.name}"
