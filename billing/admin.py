from django.contrib import admin
from .models import StudentSubscription, SubscriptionAdjustment, SubscriptionPackage


@admin.register(SubscriptionPackage)
class SubscriptionPackageAdmin(admin.ModelAdmin):
    list_display = ["name", "price", "duration_months", "currency", "school", "is_active"]
    list_filter = ["is_active", "currency", "school"]
    search_fields = ["name"]


class SubscriptionAdjustmentInline(admin.TabularInline):
    model = SubscriptionAdjustment
    fk_name = "subscription"
    extra = 0
    can_delete = False
    readonly_fields = [
        "change_type",
        "from_package",
        "to_package",
        "upgrade_date",
        "credit_amount",
        "net_amount",
        "months_covered",
        "created_by",
    ]
    exclude = ["proration"]

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(StudentSubscription)
class StudentSubscriptionAdmin(admin.ModelAdmin):
    list_display = ["student", "package", "start_date", "end_date", "status"]
    list_filter = ["status", "package"]
    search_fields = ["student__name"]
    raw_id_fields = ["student"]
    inlines = [SubscriptionAdjustmentInline]
