from django.contrib import admin
from django.contrib.admin import SimpleListFilter
from django.contrib import messages
from .models import (
    BonusRecord,
    LatenessDeductionConfig,
    PackageDeduction,
    PackageSalary,
    QualityAssessment,
    TeacherSalaryPayment,
)
from .utils import PayrollCacheManager


class PeriodFilter(SimpleListFilter):
    title = "Period"
    parameter_name = "period"

    def lookups(self, request, model_admin):
        periods = (
            TeacherSalaryPayment.objects.values_list("period", flat=True)
            .distinct()
            .order_by("-period")
        )
        return [(period, period) for period in periods]

    def queryset(self, request, queryset):
        if self.value():
            return queryset.filter(period=self.value())
        return queryset


class PayrollConfigAdminMixin:
    """Admin edits bypass the services, so they clear cached salaries too."""

    def save_model(self, request, obj, form, change):
        if not obj.created_by_id:
            obj.created_by = request.user
        super().save_model(request, obj, form, change)
        PayrollCacheManager().clear_all()


@admin.register(PackageSalary)
class PackageSalaryAdmin(PayrollConfigAdminMixin, admin.ModelAdmin):
    list_display = ["package_name", "salary_per_student", "school", "is_active", "created_at"]
    list_filter = ["is_active", "school"]
    search_fields = ["package_name"]


@admin.register(PackageDeduction)
class PackageDeductionAdmin(PayrollConfigAdminMixin, admin.ModelAdmin):
    list_display = [
        "package_name",
        "lateness_base_amount",
        "absence_base_amount",
        "school",
        "is_active",
    ]
    list_filter = ["is_active", "school"]
    search_fields = ["package_name"]


@admin.register(LatenessDeductionConfig)
class LatenessDeductionConfigAdmin(PayrollConfigAdminMixin, admin.ModelAdmin):
    list_display = [
        "tier",
        "start_minute",
        "end_minute",
        "deduction_percent",
        "excused_threshold",
        "teacher",
        "school",
        "is_active",
    ]
    list_filter = ["is_active", "is_global", "school"]
    raw_id_fields = ["teacher"]


@admin.register(BonusRecord)
class BonusRecordAdmin(admin.ModelAdmin):
    list_display = ["teacher", "amount", "period", "reason", "created_at"]
    list_filter = ["period"]
    search_fields = ["teacher__name", "teacher__teacher_code", "reason"]
    raw_id_fields = ["teacher"]


@admin.register(QualityAssessment)
class QualityAssessmentAdmin(admin.ModelAdmin):
    list_display = ["teacher", "week_start", "overall_quality", "manager_approved", "bonus_awarded"]
    list_filter = ["manager_approved", "week_start"]
    search_fields = ["teacher__name", "teacher__teacher_code"]
    raw_id_fields = ["teacher"]


@admin.register(TeacherSalaryPayment)
class TeacherSalaryPaymentAdmin(admin.ModelAdmin):
    list_display = [
        "teacher",
        "period",
        "status",
        "total_salary",
        "lateness_deduction",
        "absence_deduction",
        "bonuses",
        "paid_at",
        "transaction_id",
    ]
    list_filter = ["status", PeriodFilter]
    search_fields = ["teacher__name", "teacher__teacher_code", "transaction_id"]
    readonly_fields = ["id", "paid_at", "admin", "transaction_id", "created_at", "updated_at"]
    actions = ["clear_salary_cache"]

    def has_delete_permission(self, request, obj=None):
        # paid periods are permanent
        if obj is not None and obj.is_paid:
            return False
        return super().has_delete_permission(request, obj)

    def clear_salary_cache(self, request, queryset):
        cache_manager = PayrollCacheManager()
        for teacher_id in queryset.values_list("teacher_id", flat=True).distinct():
            cache_manager.clear_teacher(teacher_id)
        messages.success(request, "Salary cache cleared for the selected teachers")
    clear_salary_cache.short_description = "Clear cached salaries"
