from django.contrib import admin
from .models import AttendanceProgress, DeductionWaiver, PermissionRequest, ZoomLink


@admin.register(ZoomLink)
class ZoomLinkAdmin(admin.ModelAdmin):
    list_display = ('teacher', 'student', 'sent_time', 'clicked_at')
    list_filter = ('sent_time',)
    search_fields = ('teacher__name', 'student__name')
    raw_id_fields = ('teacher', 'student')
    date_hierarchy = 'sent_time'


@admin.register(AttendanceProgress)
class AttendanceProgressAdmin(admin.ModelAdmin):
    list_display = ('student', 'date', 'status')
    list_filter = ('status', 'date')
    search_fields = ('student__name',)
    raw_id_fields = ('student',)


@admin.register(PermissionRequest)
class PermissionRequestAdmin(admin.ModelAdmin):
    list_display = ('teacher', 'request_date', 'status', 'reviewed_by', 'reviewed_at')
    list_filter = ('status', 'request_date')
    search_fields = ('teacher__name', 'reason')
    raw_id_fields = ('teacher',)
    actions = ['approve_requests', 'decline_requests']

    def _review(self, request, queryset, status):
        from django.utils import timezone

        for permission in queryset.filter(status='Pending'):
            permission.status = status
            permission.reviewed_by = request.user
            permission.reviewed_at = timezone.now()
            # per-row save so salary caches are invalidated
            permission.save()

    def approve_requests(self, request, queryset):
        self._review(request, queryset, 'Approved')
    approve_requests.short_description = "Approve selected requests"

    def decline_requests(self, request, queryset):
        self._review(request, queryset, 'Declined')
    decline_requests.short_description = "Decline selected requests"


@admin.register(DeductionWaiver)
class DeductionWaiverAdmin(admin.ModelAdmin):
    list_display = ('teacher', 'deduction_type', 'deduction_date', 'reason', 'created_by')
    list_filter = ('deduction_type', 'deduction_date')
    search_fields = ('teacher__name', 'reason')
    raw_id_fields = ('teacher',)

    def save_model(self, request, obj, form, change):
        if not obj.created_by_id:
            obj.created_by = request.user
        super().save_model(request, obj, form, change)
