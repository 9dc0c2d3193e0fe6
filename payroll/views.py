from django.apps import apps
from django.core.exceptions import PermissionDenied, ValidationError
from django.http import HttpResponse, JsonResponse
from django.utils import timezone
import calendar
import logging

from accounts.permissions import AccessControl, Capabilities
from accounts.views import JsonApiView, error_response, parse_bool, parse_json_body
from students.models import Teacher
from .excel import PayrollExcelProcessor
from .models import LatenessDeductionConfig, PackageDeduction, PackageSalary
from .permissions import PayrollAccessControl
from .services import DeductionConfigurationService, SalaryCalculator, TeacherPaymentService
from .utils import LatenessCalculator, PayrollDataProcessor, RateLimiter, SalaryConfigLoader

logger = logging.getLogger(__name__)


def payroll_app():
    return apps.get_app_config("payroll")


def get_calculator():
    return SalaryCalculator(payroll_app().salary_cache)


def parse_date_range(request, start_key, end_key):
    start_raw = request.GET.get(start_key)
    end_raw = request.GET.get(end_key)
    if not start_raw or not end_raw:
        raise ValidationError(f"Missing {start_key} or {end_key}")

    start_date = PayrollDataProcessor.parse_date(start_raw)
    end_date = PayrollDataProcessor.parse_date(end_raw)
    if start_date is None or end_date is None:
        raise ValidationError("Invalid date format")

    is_valid, message = PayrollDataProcessor.validate_date_range(start_date, end_date)
    if not is_valid:
        raise ValidationError(message)
    return start_date, end_date


def current_month_range():
    today = timezone.localdate()
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=1), today.replace(day=last_day)


def visible_teacher(user, teacher_id):
    teacher = SalaryCalculator.get_teacher(teacher_id)
    if not PayrollAccessControl.can_view_teacher_salary(user, teacher):
        raise PermissionDenied("You cannot view this teacher's salary")
    return teacher


def is_rate_limited(request):
    limiter = payroll_app().rate_limiter
    return not limiter.is_allowed(RateLimiter.get_client_ip(request))


class TeacherPaymentsView(JsonApiView):
    required_capability = Capabilities.VIEW_PAYROLL

    def get(self, request):
        if is_rate_limited(request):
            return error_response("Too many requests", status=429)

        start_date, end_date = parse_date_range(request, "startDate", "endDate")
        calculator = get_calculator()

        if parse_bool(request.GET.get("clearCache")):
            calculator.clear_cache()

        teacher_id = request.GET.get("teacherId")
        if teacher_id:
            teacher = visible_teacher(request.user, teacher_id)
            if parse_bool(request.GET.get("details")):
                return JsonResponse(
                    calculator.get_teacher_salary_details(teacher.pk, start_date, end_date)
                )
            return JsonResponse(
                calculator.calculate_teacher_salary(teacher.pk, start_date, end_date)
            )

        salaries = calculator.calculate_all_teacher_salaries(
            start_date, end_date, PayrollAccessControl.teachers_for(request.user)
        )
        return JsonResponse(salaries, safe=False)

    def post(self, request):
        data = parse_json_body(request)
        teacher_id = data.get("teacherId")
        period = data.get("period")
        status = data.get("status")
        if not teacher_id or not period or not status:
            raise ValidationError("teacherId, period and status are required")

        result = TeacherPaymentService.update_payment_status(
            request.user,
            teacher_id,
            period,
            status,
            total_salary=data.get("totalSalary"),
            lateness_deduction=data.get("latenessDeduction"),
            absence_deduction=data.get("absenceDeduction"),
            bonuses=data.get("bonuses"),
            process_payment_now=parse_bool(data.get("processPaymentNow")),
            cache_manager=payroll_app().salary_cache,
            request=request,
        )
        payment = TeacherPaymentService.serialize_payment(result["payment"])
        payment_result = result["payment_result"]

        if payment_result and not payment_result["success"]:
            return error_response(
                payment_result["message"] or "Payment processing failed",
                status=400,
                status_updated=True,
                payment=payment,
            )

        return JsonResponse(
            {
                "success": True,
                "payment": payment,
                "payment_processed": result["payment_processed"],
                "transaction_id": payment["transaction_id"],
            }
        )


class ZoomBasedSalaryView(JsonApiView):
    required_capability = Capabilities.VIEW_PAYROLL

    def get(self, request):
        teacher_id = request.GET.get("teacherId")
        if not teacher_id:
            raise ValidationError("Missing teacherId")
        from_date, to_date = parse_date_range(request, "from", "to")
        teacher = visible_teacher(request.user, teacher_id)
        return JsonResponse(
            get_calculator().calculate_zoom_based_salary(teacher.pk, from_date, to_date)
        )


class TeacherSalaryView(JsonApiView):
    required_capability = Capabilities.VIEW_OWN_SALARY

    def get(self, request):
        try:
            teacher = request.user.teacher_profile
        except Teacher.DoesNotExist:
            raise Teacher.DoesNotExist("Teacher not found")

        calculator = get_calculator()
        visibility = calculator.config_for(teacher.school)["salary_visibility"]
        if not visibility.get("show_teacher_salary", True):
            return error_response(
                visibility.get("custom_message") or "Salary information is not available",
                status=403,
                admin_contact=visibility.get("admin_contact", ""),
            )

        if request.GET.get("from") or request.GET.get("to"):
            from_date, to_date = parse_date_range(request, "from", "to")
        else:
            from_date, to_date = current_month_range()

        return JsonResponse(calculator.calculate_teacher_salary(teacher.pk, from_date, to_date))


class LatenessDeductionConfigView(JsonApiView):
    required_capability = Capabilities.VIEW_PAYROLL

    def _teacher(self, request, teacher_id):
        if not teacher_id:
            return None
        teacher = SalaryCalculator.get_teacher(teacher_id)
        if not AccessControl.can_access_school(request.user, teacher.school):
            raise PermissionDenied("Teacher belongs to another school")
        return teacher

    def get(self, request):
        school = AccessControl.get_school_scope(request.user)
        teacher = self._teacher(request, request.GET.get("teacherId"))
        config = SalaryConfigLoader.load(school)
        if teacher is not None:
            tiers, threshold = LatenessCalculator.tiers_for_teacher(teacher, config)
        else:
            tiers, threshold = config["lateness_tiers"], config["excused_threshold"]
        return JsonResponse(
            {
                "tiers": tiers,
                "excused_threshold": threshold,
                "config_errors": SalaryConfigLoader.validate(config),
            }
        )

    def post(self, request):
        data = parse_json_body(request)
        tiers = data.get("tiers")
        if not isinstance(tiers, list):
            raise ValidationError("tiers must be a list")

        created = DeductionConfigurationService.replace_lateness_tiers(
            request.user,
            tiers,
            school=AccessControl.get_school_scope(request.user),
            teacher=self._teacher(request, data.get("teacherId")),
            cache_manager=payroll_app().salary_cache,
        )
        return JsonResponse(
            {"success": True, "tiers": [LatenessCalculator.tier_to_dict(row) for row in created]},
            status=201,
        )

    def delete(self, request):
        tier_id = request.GET.get("id")
        if not tier_id:
            raise ValidationError("Missing id")
        tier = DeductionConfigurationService.deactivate_lateness_tier(
            request.user, tier_id, cache_manager=payroll_app().salary_cache
        )
        return JsonResponse({"success": True, "id": tier.pk})


class PackageDeductionsView(JsonApiView):
    required_capability = Capabilities.VIEW_PAYROLL

    def get(self, request):
        school = AccessControl.get_school_scope(request.user)
        deductions = SalaryConfigLoader.load(school)["package_deductions"]
        return JsonResponse(
            {
                "package_deductions": [
                    {
                        "package_name": name,
                        "lateness_base_amount": amounts["lateness"],
                        "absence_base_amount": amounts["absence"],
                    }
                    for name, amounts in sorted(deductions.items())
                ]
            }
        )

    def post(self, request):
        data = parse_json_body(request)
        row = DeductionConfigurationService.set_package_deduction(
            request.user,
            data.get("packageName"),
            data.get("latenessBaseAmount"),
            data.get("absenceBaseAmount"),
            school=AccessControl.get_school_scope(request.user),
            cache_manager=payroll_app().salary_cache,
        )
        return JsonResponse(
            {
                "success": True,
                "id": row.pk,
                "package_name": row.package_name,
                "lateness_base_amount": row.lateness_base_amount,
                "absence_base_amount": row.absence_base_amount,
            },
            status=201,
        )


class PackageSalariesView(JsonApiView):
    required_capability = Capabilities.VIEW_PAYROLL

    def get(self, request):
        school = AccessControl.get_school_scope(request.user)
        salaries = SalaryConfigLoader.load(school)["package_salaries"]
        return JsonResponse(
            {
                "package_salaries": [
                    {"package_name": name, "salary_per_student": amount}
                    for name, amount in sorted(salaries.items())
                ]
            }
        )

    def post(self, request):
        data = parse_json_body(request)
        row = DeductionConfigurationService.set_package_salary(
            request.user,
            data.get("packageName"),
            data.get("salaryPerStudent"),
            school=AccessControl.get_school_scope(request.user),
            cache_manager=payroll_app().salary_cache,
        )
        return JsonResponse(
            {
                "success": True,
                "id": row.pk,
                "package_name": row.package_name,
                "salary_per_student": row.salary_per_student,
            },
            status=201,
        )


class TeacherPaymentsExportView(JsonApiView):
    required_capability = Capabilities.VIEW_PAYROLL

    def get(self, request):
        if is_rate_limited(request):
            return error_response("Too many requests", status=429)

        start_date, end_date = parse_date_range(request, "startDate", "endDate")
        salaries = get_calculator().calculate_all_teacher_salaries(
            start_date, end_date, PayrollAccessControl.teachers_for(request.user)
        )
        content = PayrollExcelProcessor.create_salary_excel(salaries, start_date, end_date)

        response = HttpResponse(
            content,
            content_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )
        response["Content-Disposition"] = (
            f'attachment; filename="teacher_salaries_{start_date}_{end_date}.xlsx"'
        )
        return response
