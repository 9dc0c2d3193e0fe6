from django.apps import AppConfig


class PayrollConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payroll"
    verbose_name = "D. Teacher Payroll"

    salary_cache = None
    rate_limiter = None

    def ready(self):
        from .utils import PayrollCacheManager, RateLimiter, payroll_setting

        self.salary_cache = PayrollCacheManager(namespace="teacher-payments")
        self.rate_limiter = RateLimiter(
            limit=payroll_setting("RATE_LIMIT_REQUESTS"),
            window_seconds=payroll_setting("RATE_LIMIT_WINDOW_SECONDS"),
            namespace="teacher-payments-rate",
        )

        import payroll.signals  # noqa: F401

    def reset(self):
        """Drop cached salaries and rebuild the process-scoped helpers."""
        if self.salary_cache is not None:
            self.salary_cache.clear_all()
        self.ready()
