from django.db import models
from django.core.exceptions import ValidationError
from django.conf import settings
from accounts.models import ActiveManager, School


class Teacher(models.Model):
    id = models.AutoField(primary_key=True)
    teacher_code = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=150, blank=True)
    phone = models.CharField(max_length=20, blank=True, null=True)
    email = models.EmailField(blank=True, null=True)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="teacher_profile",
    )
    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="teachers",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        db_table = "teachers"
        ordering = ["name", "teacher_code"]
        indexes = [
            models.Index(fields=["school", "is_active"]),
        ]

    def __str__(self):
        return self.display_name

    @property
    def display_name(self):
        return self.name or f"Teacher {self.teacher_code}"


class Student(models.Model):
    STATUS_CHOICES = [
        ("ACTIVE", "Active"),
        ("NOT_YET", "Not Yet Started"),
        ("LEAVE", "On Leave"),
        ("COMPLETED", "Completed"),
        ("REMOVED", "Removed"),
    ]

    id = models.AutoField(primary_key=True)
    name = models.CharField(max_length=150)
    phone = models.CharField(max_length=20, blank=True, null=True)
    package = models.CharField(max_length=100, blank=True, default="")
    subject = models.CharField(max_length=100, blank=True, default="")
    daypackage = models.CharField(max_length=100, blank=True, default="")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="ACTIVE")
    teacher = models.ForeignKey(
        Teacher,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="students",
    )
    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="students",
    )
    registered_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "students"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["teacher", "status"]),
            models.Index(fields=["school", "status"]),
            models.Index(fields=["package"]),
        ]

    def __str__(self):
        return self.name


class TeacherAssignment(models.Model):
    """Occupied time slot of a teacher with a student."""

    id = models.AutoField(primary_key=True)
    student = models.ForeignKey(
        Student, on_delete=models.CASCADE, related_name="assignments"
    )
    teacher = models.ForeignKey(
        Teacher, on_delete=models.CASCADE, related_name="assignments"
    )
    time_slot = models.CharField(max_length=20, blank=True, default="")
    daypackage = models.CharField(max_length=100, blank=True, default="")
    occupied_at = models.DateTimeField()
    end_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "teacher_assignments"
        ordering = ["occupied_at"]
        indexes = [
            models.Index(fields=["teacher", "occupied_at"]),
            models.Index(fields=["student", "occupied_at"]),
        ]

    def __str__(self):
        return f"{self.teacher} - {self.student} @ {self.time_slot}"

    def clean(self):
        if self.end_at and self.end_at < self.occupied_at:
            raise ValidationError("Assignment cannot end before it starts.")

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class TeacherChangeHistory(models.Model):
    id = models.AutoField(primary_key=True)
    student = models.ForeignKey(
        Student, on_delete=models.CASCADE, related_name="teacher_changes"
    )
    old_teacher = models.ForeignKey(
        Teacher,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="changes_from",
    )
    new_teacher = models.ForeignKey(
        Teacher,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="changes_to",
    )
    change_date = models.DateTimeField()
    reason = models.TextField(blank=True, null=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="recorded_teacher_changes",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "teacher_change_history"
        ordering = ["change_date"]
        indexes = [
            models.Index(fields=["student", "change_date"]),
        ]

    def __str__(self):
        return f"{self.student}: {self.old_teacher} -> {self.new_teacher}"
