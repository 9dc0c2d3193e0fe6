from django.db import models
from django.core.exceptions import ValidationError
from django.conf import settings
from students.models import Student, Teacher


class ZoomLink(models.Model):
    """A meeting link sent to a student; evidence that the class took place."""

    id = models.AutoField(primary_key=True)
    student = models.ForeignKey(
        Student, on_delete=models.CASCADE, related_name="zoom_links"
    )
    teacher = models.ForeignKey(
        Teacher, on_delete=models.CASCADE, related_name="zoom_links"
    )
    link = models.URLField(max_length=500, blank=True, default="")
    sent_time = models.DateTimeField()
    clicked_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "zoom_links"
        ordering = ["sent_time"]
        indexes = [
            models.Index(fields=["teacher", "sent_time"]),
            models.Index(fields=["student", "sent_time"]),
        ]

    def __str__(self):
        return f"{self.teacher} -> {self.student} at {self.sent_time}"


class AttendanceProgress(models.Model):
    STATUS_CHOICES = [
        ("Present", "Present"),
        ("Absent", "Absent"),
        ("Permission", "Permission"),
    ]

    id = models.AutoField(primary_key=True)
    student = models.ForeignKey(
        Student, on_delete=models.CASCADE, related_name="attendance_progress"
    )
    date = models.DateField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES)
    notes = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "attendance_progress"
        ordering = ["-date"]
        unique_together = ["student", "date"]

    def __str__(self):
        return f"{self.student} - {self.date}: {self.status}"


class PermissionRequest(models.Model):
    STATUS_CHOICES = [
        ("Pending", "Pending"),
        ("Approved", "Approved"),
        ("Declined", "Declined"),
    ]

    id = models.AutoField(primary_key=True)
    teacher = models.ForeignKey(
        Teacher, on_delete=models.CASCADE, related_name="permission_requests"
    )
    request_date = models.DateField()
    reason = models.TextField(blank=True, default="")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="Pending")
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reviewed_permission_requests",
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "permission_requests"
        ordering = ["-request_date"]
        indexes = [
            models.Index(fields=["teacher", "request_date", "status"]),
        ]

    def __str__(self):
        return f"{self.teacher} - {self.request_date} ({self.status})"


class DeductionWaiver(models.Model):
    DEDUCTION_TYPES = [
        ("lateness", "Lateness"),
        ("absence", "Absence"),
    ]

    id = models.AutoField(primary_key=True)
    teacher = models.ForeignKey(
        Teacher, on_delete=models.CASCADE, related_name="deduction_waivers"
    )
    deduction_type = models.CharField(max_length=20, choices=DEDUCTION_TYPES)
    deduction_date = models.DateField()
    reason = models.TextField()
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_deduction_waivers",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "deduction_waivers"
        ordering = ["-deduction_date"]
        unique_together = ["teacher", "deduction_type", "deduction_date"]

    def __str__(self):
        return f"{self.teacher} - {self.deduction_type} waiver on {self.deduction_date}"

    def clean(self):
        if not self.reason or not self.reason.strip():
            raise ValidationError("A waiver needs a reason.")

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)
