from django.urls import path
from . import views

app_name = 'payroll'

urlpatterns = [
    # Salary calculation
    path('api/admin/teacher-payments', views.TeacherPaymentsView.as_view(), name='teacher_payments'),
    path('api/admin/teacher-payments/export', views.TeacherPaymentsExportView.as_view(), name='teacher_payments_export'),
    path('api/teacher-payments/zoom-based', views.ZoomBasedSalaryView.as_view(), name='zoom_based_salary'),
    path('api/teacher/salary', views.TeacherSalaryView.as_view(), name='teacher_salary'),

    # Configuration
    path('api/admin/lateness-deduction-config', views.LatenessDeductionConfigView.as_view(), name='lateness_deduction_config'),
    path('api/admin/package-deductions', views.PackageDeductionsView.as_view(), name='package_deductions'),
    path('api/admin/package-salaries', views.PackageSalariesView.as_view(), name='package_salaries'),
]
