from django.contrib import admin
from .models import Student, Teacher, TeacherAssignment, TeacherChangeHistory


class TeacherAssignmentInline(admin.TabularInline):
    model = TeacherAssignment
    extra = 0
    fields = ('student', 'time_slot', 'daypackage', 'occupied_at', 'end_at')
    raw_id_fields = ('student',)


@admin.register(Teacher)
class TeacherAdmin(admin.ModelAdmin):
    list_display = ('teacher_code', 'name', 'phone', 'school', 'is_active')
    list_filter = ('is_active', 'school')
    search_fields = ('teacher_code', 'name', 'phone', 'email')
    raw_id_fields = ('user',)
    inlines = [TeacherAssignmentInline]


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ('name', 'package', 'daypackage', 'status', 'teacher', 'school')
    list_filter = ('status', 'package', 'school')
    search_fields = ('name', 'phone', 'teacher__name')
    raw_id_fields = ('teacher',)


@admin.register(TeacherChangeHistory)
class TeacherChangeHistoryAdmin(admin.ModelAdmin):
    list_display = ('student', 'old_teacher', 'new_teacher', 'change_date', 'created_by')
    list_filter = ('change_date',)
    search_fields = ('student__name', 'old_teacher__name', 'new_teacher__name')
    raw_id_fields = ('student', 'old_teacher', 'new_teacher')
