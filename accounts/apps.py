from django.apps import AppConfig
from django.db.models.signals import post_migrate
import logging

logger = logging.getLogger(__name__)


class AccountsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "accounts"
    verbose_name = "Accounts"

    def ready(self):
        post_migrate.connect(
            self.create_initial_data,
            sender=self,
            dispatch_uid="accounts_create_initial_data",
        )

    def create_initial_data(self, sender, **kwargs):
        try:
            from accounts.models import SystemConfiguration

            default_configs = [
                (
                    "INCLUDE_SUNDAYS",
                    "false",
                    "PAYROLL",
                    "Count Sundays as expected teaching days",
                ),
                (
                    "TEACHER_SALARY_VISIBILITY",
                    '{"show_teacher_salary": true, "custom_message": "", "admin_contact": ""}',
                    "PAYROLL",
                    "Whether teachers can see their own salary breakdown",
                ),
            ]

            for key, value, setting_type, description in default_configs:
                config, created = SystemConfiguration.objects.get_or_create(
                    key=key,
                    defaults={
                        "value": value,
                        "setting_type": setting_type,
                        "description": description,
                        "is_active": True,
                    },
                )
                if created:
                    logger.info(f"Created system configuration: {key}")

        except Exception as e:
            logger.error(f"Error creating initial data: {e}")
