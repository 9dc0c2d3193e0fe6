from django.contrib.auth.models import AbstractUser
from django.db import models
from django.core.validators import RegexValidator
from django.core.exceptions import ValidationError
import uuid
import json
import logging

logger = logging.getLogger(__name__)


class ActiveManager(models.Manager):
    def get_queryset(self):
        return super().get_queryset().filter(is_active=True)


class School(models.Model):
    id = models.AutoField(primary_key=True)
    name = models.CharField(max_length=150)
    slug = models.SlugField(max_length=80, unique=True)
    phone = models.CharField(max_length=20, blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        db_table = "schools"
        ordering = ["name"]

    def __str__(self):
        return self.name


class CustomUser(AbstractUser):
    ROLE_TYPES = [
        ("SUPER_ADMIN", "Super Admin"),
        ("ADMIN", "Admin"),
        ("CONTROLLER", "Controller"),
        ("TEACHER", "Teacher"),
        ("REGISTRAL", "Registral"),
    ]

    phone_regex = RegexValidator(
        regex=r"^\+?[0-9]{9,15}$",
        message="Phone number must contain 9 to 15 digits.",
    )

    role = models.CharField(max_length=20, choices=ROLE_TYPES, default="TEACHER")
    school = models.ForeignKey(
        School,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="users",
    )
    phone_number = models.CharField(
        max_length=20, validators=[phone_regex], blank=True, null=True
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "users"
        ordering = ["username"]
        indexes = [
            models.Index(fields=["role"]),
            models.Index(fields=["school", "role"]),
        ]

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    def clean(self):
        super().clean()
        if self.role != "SUPER_ADMIN" and not self.is_superuser and not self.school_id:
            if self.role in ("ADMIN", "CONTROLLER", "REGISTRAL"):
                raise ValidationError("School staff must belong to a school.")

    def get_display_name(self):
        return self.get_full_name() or self.username


class SystemConfiguration(models.Model):
    SETTING_TYPES = [
        ("SYSTEM", "System Setting"),
        ("PAYROLL", "Payroll Setting"),
        ("BILLING", "Billing Setting"),
        ("INTEGRATION", "Integration Setting"),
    ]

    id = models.AutoField(primary_key=True)
    key = models.CharField(max_length=100, unique=True)
    value = models.TextField()
    setting_type = models.CharField(
        max_length=20, choices=SETTING_TYPES, default="SYSTEM"
    )
    description = models.TextField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    updated_by = models.ForeignKey(
        CustomUser,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="updated_configurations",
    )

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        db_table = "system_configurations"
        ordering = ["key"]
        indexes = [
            models.Index(fields=["key"]),
            models.Index(fields=["setting_type"]),
        ]

    def __str__(self):
        return f"{self.key}: {self.value[:50]}"

    def save(self, *args, **kwargs):
        self.key = self.key.upper()
        super().save(*args, **kwargs)

    @classmethod
    def get_setting(cls, key, default=None):
        try:
            setting = cls.objects.get(key=key.upper(), is_active=True)
            return setting.value
        except cls.DoesNotExist:
            return default

    @classmethod
    def set_setting(cls, key, value, setting_type="SYSTEM", description=None, user=None):
        key = key.upper()
        if isinstance(value, (dict, list)):
            value = json.dumps(value)
        elif isinstance(value, bool):
            value = "true" if value else "false"
        setting, created = cls.objects.update_or_create(
            key=key,
            defaults={
                "value": str(value),
                "setting_type": setting_type,
                "description": description or f"System setting for {key}",
                "updated_by": user,
                "is_active": True,
            },
        )
        return setting

    @classmethod
    def get_bool_setting(cls, key, default=False):
        value = cls.get_setting(key, str(default).lower())
        return value.lower() in ["true", "1", "yes", "on", "enabled"]

    @classmethod
    def get_json_setting(cls, key, default=None):
        value = cls.get_setting(key)
        if value is None:
            return default
        try:
            return json.loads(value)
        except (ValueError, TypeError):
            logger.warning(f"Malformed JSON in system setting {key.upper()}")
            return default


class AuditLog(models.Model):
    ACTION_TYPES = [
        ("CREATE", "Create"),
        ("UPDATE", "Update"),
        ("DELETE", "Delete"),
        ("PAYROLL_CONFIG_CHANGE", "Payroll Configuration Change"),
        ("TEACHER_SALARY_STATUS_UPDATE", "Teacher Salary Status Update"),
        ("SUBSCRIPTION_CHANGE", "Subscription Change"),
        ("SYSTEM_CHANGE", "System Change"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        CustomUser,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    action = models.CharField(max_length=50, choices=ACTION_TYPES)
    model_name = models.CharField(max_length=100, blank=True, null=True)
    object_id = models.CharField(max_length=100, blank=True, null=True)
    object_repr = models.CharField(max_length=200, blank=True, null=True)
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, null=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "audit_logs"
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["user", "timestamp"]),
            models.Index(fields=["action", "timestamp"]),
            models.Index(fields=["model_name", "object_id"]),
        ]

    def __str__(self):
        user_info = self.user.username if self.user else "System"
        return f"{user_info} - {self.action} - {self.timestamp}"

    @classmethod
    def log_action(
        cls,
        user,
        action,
        model_name=None,
        object_id=None,
        object_repr=None,
        changes=None,
        ip_address=None,
        user_agent=None,
    ):
        return cls.objects.create(
            user=user if user and user.is_authenticated else None,
            action=action,
            model_name=model_name,
            object_id=str(object_id) if object_id else None,
            object_repr=object_repr,
            changes=changes or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )

