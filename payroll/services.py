from django.db import transaction
from django.db.models import Sum
from django.core.exceptions import ValidationError, PermissionDenied
from django.utils import timezone
from decimal import Decimal
from datetime import date, datetime, time, timedelta
from collections import defaultdict
from typing import Any, Dict, List, Optional
import logging

from accounts.models import AuditLog
from accounts.permissions import AccessControl
from attendance.models import AttendanceProgress, DeductionWaiver, PermissionRequest, ZoomLink
from attendance.utils import DaypackageParser, TimeCalculator, iter_dates
from students.models import Teacher
from students.utils import AssignmentResolver
from .gateway import PaymentGatewayClient
from .models import (
    BonusRecord,
    LatenessDeductionConfig,
    PackageDeduction,
    PackageSalary,
    QualityAssessment,
    TeacherSalaryPayment,
)
from .permissions import PayrollAccessControl
from .utils import (
    AbsenceCalculator,
    DeliveryEventMatcher,
    LatenessCalculator,
    PayrollCacheManager,
    PayrollDataProcessor,
    SalaryConfigLoader,
    payroll_setting,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
money = PayrollDataProcessor.quantize_money


class EvidenceLoader:
    @staticmethod
    def load(teacher: Teacher, from_date: date, to_date: date) -> Dict[str, Any]:
        window_start = timezone.make_aware(datetime.combine(from_date, time.min))
        window_end = timezone.make_aware(
            datetime.combine(to_date + timedelta(days=1), time.min)
        ) + timedelta(hours=payroll_setting("LATENESS_FALLBACK_WINDOW_HOURS"))

        links = defaultdict(list)
        for link in ZoomLink.objects.filter(
            teacher=teacher, sent_time__gte=window_start, sent_time__lt=window_end
        ).order_by("sent_time", "id"):
            links[link.student_id].append(link)

        permission_dates = set(
            PermissionRequest.objects.filter(
                teacher=teacher,
                status="Approved",
                request_date__gte=from_date,
                request_date__lte=to_date,
            ).values_list("request_date", flat=True)
        )

        lateness_waivers, absence_waivers = set(), set()
        for waiver in DeductionWaiver.objects.filter(
            teacher=teacher,
            deduction_date__gte=from_date,
            deduction_date__lte=to_date,
        ):
            if waiver.deduction_type == "lateness":
                lateness_waivers.add(waiver.deduction_date)
            else:
                absence_waivers.add(waiver.deduction_date)

        return {
            "links": links,
            "permission_dates": permission_dates,
            "lateness_waivers": lateness_waivers,
            "absence_waivers": absence_waivers,
        }

    @staticmethod
    def student_permission_dates(student_ids, from_date: date, to_date: date) -> Dict[int, set]:
        permitted = defaultdict(set)
        for student_id, day in AttendanceProgress.objects.filter(
            student_id__in=student_ids,
            status="Permission",
            date__gte=from_date,
            date__lte=to_date,
        ).values_list("student_id", "date"):
            permitted[student_id].add(day)
        return permitted


class SalaryCalculator:
    """Teacher salary engine: base pay from worked days minus lateness and
    absence deductions plus bonuses.

    Results are cached through the injected PayrollCacheManager; configuration
    is loaded once per school for the lifetime of the instance.
    """

    def __init__(self, cache_manager: Optional[PayrollCacheManager] = None):
        self.cache_manager = cache_manager or PayrollCacheManager()
        self._configs = {}

    def config_for(self, school) -> Dict[str, Any]:
        key = school.pk if school else None
        if key not in self._configs:
            self._configs[key] = SalaryConfigLoader.load(school)
        return self._configs[key]

    @staticmethod
    def load_salary_config(school=None) -> Dict[str, Any]:
        return SalaryConfigLoader.load(school)

    @staticmethod
    def validate_salary_config(config: Dict[str, Any]) -> List[str]:
        return SalaryConfigLoader.validate(config)

    @staticmethod
    def get_teacher(teacher_id) -> Teacher:
        try:
            return Teacher.objects.select_related("school").get(pk=teacher_id)
        except (Teacher.DoesNotExist, ValueError, TypeError):
            raise Teacher.DoesNotExist("Teacher not found")

    def clear_cache(self):
        self.cache_manager.clear_all()

    def clear_teacher_cache(self, teacher_id):
        self.cache_manager.clear_teacher(teacher_id)

    def _evaluate_period(
        self,
        student,
        dates: List[date],
        matcher: DeliveryEventMatcher,
        time_slot: str,
        daypackage: str,
        config: Dict[str, Any],
        tiers: List[Dict[str, Any]],
        excused_threshold: int,
        evidence: Dict[str, Any],
        permitted_dates: set,
        today: date,
    ) -> Dict[str, Any]:
        scheduled = TimeCalculator.scheduled_time(time_slot)
        delivered = {}
        for day in dates:
            event = matcher.match(day, scheduled)
            if event is not None:
                delivered[day] = event

        lateness = []
        lateness_base = SalaryConfigLoader.lateness_base(config, student.package)
        for day, event in delivered.items():
            if scheduled is None or day in evidence["lateness_waivers"]:
                continue
            scheduled_at = timezone.make_aware(datetime.combine(day, scheduled))
            result = LatenessCalculator.compute_lateness(
                scheduled_at, event.sent_time, lateness_base, tiers, excused_threshold
            )
            if result["tier"] == LatenessCalculator.EXCUSED:
                continue
            lateness.append(
                {
                    "date": day.isoformat(),
                    "student_id": student.pk,
                    "student_name": student.name,
                    "scheduled_time": scheduled.strftime("%H:%M"),
                    "actual_time": timezone.localtime(event.sent_time).strftime("%H:%M"),
                    "lateness_minutes": result["minutes"],
                    "tier": result["tier"],
                    "deduction": result["deduction"],
                }
            )

        absences, waived = [], []
        if student.status == "ACTIVE":
            absences, waived = AbsenceCalculator.compute_absences(
                student,
                dates,
                daypackage,
                SalaryConfigLoader.absence_base(config, student.package),
                config["include_sundays"],
                delivered_dates=set(delivered),
                permission_dates=evidence["permission_dates"] | permitted_dates,
                waived_dates=evidence["absence_waivers"],
                today=today,
            )

        return {
            "delivered_dates": sorted(delivered),
            "lateness": lateness,
            "absences": absences,
            "waived": waived,
        }

    def calculate_teacher_salary(
        self, teacher_id, from_date: date, to_date: date, use_cache: bool = True
    ) -> Dict[str, Any]:
        if use_cache:
            cached = self.cache_manager.get_salary(teacher_id, from_date, to_date)
            if cached is not None:
                return cached

        teacher = self.get_teacher(teacher_id)
        result = self._calculate_teacher_salary(teacher, from_date, to_date)
        self.cache_manager.set_salary(teacher.pk, from_date, to_date, result)
        return result

    def _calculate_teacher_salary(
        self, teacher: Teacher, from_date: date, to_date: date
    ) -> Dict[str, Any]:
        config = self.config_for(teacher.school)
        include_sundays = config["include_sundays"]
        tiers, excused_threshold = LatenessCalculator.tiers_for_teacher(teacher, config)
        expected_dates = PayrollDataProcessor.get_expected_working_dates(
            from_date, to_date, include_sundays
        )
        divisor = PayrollDataProcessor.get_daily_rate_divisor(len(expected_dates))
        today = timezone.localdate()

        evidence = EvidenceLoader.load(teacher, from_date, to_date)
        students = AssignmentResolver.get_teacher_students(teacher, from_date, to_date)
        permitted = EvidenceLoader.student_permission_dates(
            [student.pk for student in students], from_date, to_date
        )

        daily_earnings = defaultdict(Decimal)
        teaching_dates = set()
        student_breakdown = []
        lateness_breakdown, absence_breakdown, waived_absences = [], [], []
        base_salary = ZERO
        has_teacher_changes = False

        for student in students:
            periods = AssignmentResolver.get_assignment_periods(
                student, teacher, from_date, to_date
            )
            if not periods:
                continue

            changes = AssignmentResolver.get_changes_in_range(student, from_date, to_date)
            has_teacher_changes = has_teacher_changes or bool(changes)
            time_slot, daypackage = AssignmentResolver.get_schedule(student, teacher)
            monthly_rate = SalaryConfigLoader.monthly_salary(config, student.package)
            daily_rate = Decimal(monthly_rate) / divisor
            matcher = DeliveryEventMatcher(evidence["links"].get(student.pk, []))

            period_entries = []
            days_worked = 0
            for period in periods:
                outcome = self._evaluate_period(
                    student,
                    list(iter_dates(period["start"], period["end"])),
                    matcher,
                    time_slot,
                    daypackage,
                    config,
                    tiers,
                    excused_threshold,
                    evidence,
                    permitted.get(student.pk, set()),
                    today,
                )
                worked = len(outcome["delivered_dates"])
                days_worked += worked
                for day in outcome["delivered_dates"]:
                    daily_earnings[day] += daily_rate
                    teaching_dates.add(day)
                lateness_breakdown.extend(outcome["lateness"])
                absence_breakdown.extend(outcome["absences"])
                waived_absences.extend(outcome["waived"])
                period_entries.append(
                    {
                        "start": period["start"].isoformat(),
                        "end": period["end"].isoformat(),
                        "teacher_role": period["role"],
                        "change_date": (
                            period["change_date"].isoformat()
                            if period["change_date"]
                            else None
                        ),
                        "days_worked": worked,
                        "period_earnings": money(daily_rate * worked),
                    }
                )

            total_earned = money(daily_rate * days_worked)
            base_salary += total_earned
            student_breakdown.append(
                {
                    "student_id": student.pk,
                    "student_name": student.name,
                    "package": student.package,
                    "monthly_rate": money(monthly_rate),
                    "daily_rate": money(daily_rate),
                    "days_worked": days_worked,
                    "total_earned": total_earned,
                    "daypackage": daypackage,
                    "daypackage_formatted": DaypackageParser.format(daypackage),
                    "daypackage_days": DaypackageParser.day_names(daypackage),
                    "teaching_days_in_month": DaypackageParser.count_teaching_days_in_month(
                        daypackage, from_date.year, from_date.month, include_sundays
                    ),
                    "periods": period_entries,
                    "teacher_changes": AssignmentResolver.describe_changes(changes),
                }
            )

        lateness_breakdown.sort(key=lambda record: (record["date"], record["student_id"]))
        absence_breakdown.sort(key=lambda record: (record["date"], record["student_id"]))
        waived_absences.sort(key=lambda record: (record["date"], record["student_id"]))

        lateness_deduction = sum((r["deduction"] for r in lateness_breakdown), ZERO)
        absence_deduction = sum((r["deduction"] for r in absence_breakdown), ZERO)
        bonuses = self.get_bonus_total(teacher, from_date, to_date)
        total_salary = max(
            ZERO, base_salary - lateness_deduction - absence_deduction + bonuses
        )
        teaching_days = len(teaching_dates)
        period = PayrollDataProcessor.get_period(from_date)

        return {
            "id": teacher.pk,
            "teacher_id": teacher.pk,
            "name": teacher.display_name,
            "period": period,
            "from_date": from_date.isoformat(),
            "to_date": to_date.isoformat(),
            "base_salary": money(base_salary),
            "lateness_deduction": money(lateness_deduction),
            "absence_deduction": money(absence_deduction),
            "bonuses": money(bonuses),
            "total_salary": money(total_salary),
            "status": self.get_payment_status(teacher, period),
            "num_students": len(student_breakdown),
            "teaching_days": teaching_days,
            "has_teacher_changes": has_teacher_changes,
            "breakdown": {
                "daily_earnings": [
                    {"date": day.isoformat(), "earnings": money(amount)}
                    for day, amount in sorted(daily_earnings.items())
                ],
                "student_breakdown": student_breakdown,
                "lateness_breakdown": lateness_breakdown,
                "absence_breakdown": absence_breakdown,
                "waived_absences": waived_absences,
                "summary": {
                    "working_days_in_month": len(expected_dates),
                    "actual_teaching_days": teaching_days,
                    "average_daily_earning": (
                        money(base_salary / teaching_days) if teaching_days else ZERO
                    ),
                    "total_deductions": money(lateness_deduction + absence_deduction),
                    "net_salary": money(total_salary),
                },
            },
        }

    @staticmethod
    def get_bonus_total(teacher: Teacher, from_date: date, to_date: date) -> Decimal:
        records = BonusRecord.objects.filter(
            teacher=teacher,
            created_at__date__gte=from_date,
            created_at__date__lte=to_date,
        ).aggregate(total=Sum("amount"))["total"]
        quality = QualityAssessment.objects.filter(
            teacher=teacher,
            manager_approved=True,
            week_start__gte=from_date,
            week_start__lte=to_date,
        ).aggregate(total=Sum("bonus_awarded"))["total"]
        return (records or ZERO) + (quality or ZERO)

    @staticmethod
    def get_payment_status(teacher: Teacher, period: str) -> str:
        payment = TeacherSalaryPayment.objects.filter(teacher=teacher, period=period).first()
        return payment.status if payment else "Unpaid"

    def calculate_all_teacher_salaries(
        self, from_date: date, to_date: date, teachers=None
    ) -> List[Dict[str, Any]]:
        if teachers is None:
            teachers = Teacher.objects.all()

        window_start = timezone.make_aware(datetime.combine(from_date, time.min))
        window_end = timezone.make_aware(
            datetime.combine(to_date + timedelta(days=1), time.min)
        )
        teacher_ids = set(teachers.filter(is_active=True).values_list("id", flat=True))
        teacher_ids.update(
            teachers.filter(
                zoom_links__sent_time__gte=window_start,
                zoom_links__sent_time__lt=window_end,
            ).values_list("id", flat=True)
        )

        results = []
        for teacher_id in sorted(teacher_ids):
            try:
                results.append(self.calculate_teacher_salary(teacher_id, from_date, to_date))
            except Exception as e:
                logger.error(f"Error calculating salary for teacher {teacher_id}: {str(e)}")
                continue

        results.sort(key=lambda result: (result["name"].lower(), result["teacher_id"]))
        return results

    def get_teacher_salary_details(
        self, teacher_id, from_date: date, to_date: date
    ) -> Dict[str, Any]:
        salary = self.calculate_teacher_salary(teacher_id, from_date, to_date)
        teacher = self.get_teacher(teacher_id)

        bonus_records = [
            {
                "id": record.pk,
                "amount": record.amount,
                "reason": record.reason,
                "period": record.period,
                "created_at": record.created_at.isoformat(),
            }
            for record in BonusRecord.objects.filter(
                teacher=teacher,
                created_at__date__gte=from_date,
                created_at__date__lte=to_date,
            )
        ]
        quality_assessments = [
            {
                "week_start": assessment.week_start.isoformat(),
                "overall_quality": assessment.overall_quality,
                "manager_approved": assessment.manager_approved,
                "bonus_awarded": assessment.bonus_awarded,
                "feedback": assessment.feedback_items(),
            }
            for assessment in QualityAssessment.objects.filter(
                teacher=teacher, week_start__gte=from_date, week_start__lte=to_date
            )
        ]

        payment = TeacherSalaryPayment.objects.filter(
            teacher=teacher, period=salary["period"]
        ).first()

        return {
            **salary,
            "bonus_records": bonus_records,
            "quality_assessments": quality_assessments,
            "payment": TeacherPaymentService.serialize_payment(payment) if payment else None,
        }

    def calculate_zoom_based_salary(
        self, teacher_id, from_date: date, to_date: date, use_cache: bool = True
    ) -> Dict[str, Any]:
        """Estimate from zoom evidence alone, over the teacher's current students."""
        if use_cache:
            cached = self.cache_manager.get_salary(teacher_id, from_date, to_date, kind="zoom")
            if cached is not None:
                return cached

        teacher = self.get_teacher(teacher_id)
        config = self.config_for(teacher.school)
        tiers, excused_threshold = LatenessCalculator.tiers_for_teacher(teacher, config)
        expected_dates = PayrollDataProcessor.get_expected_working_dates(
            from_date, to_date, config["include_sundays"]
        )
        divisor = PayrollDataProcessor.get_daily_rate_divisor(len(expected_dates))
        evidence = EvidenceLoader.load(teacher, from_date, to_date)
        students = list(teacher.students.order_by("name", "id"))
        permitted = EvidenceLoader.student_permission_dates(
            [student.pk for student in students], from_date, to_date
        )
        today = timezone.localdate()
        dates = list(iter_dates(from_date, to_date))

        breakdown = []
        worked_dates = set()
        base_salary = lateness_total = absence_total = ZERO
        for student in students:
            time_slot, daypackage = AssignmentResolver.get_schedule(student, teacher)
            outcome = self._evaluate_period(
                student,
                dates,
                DeliveryEventMatcher(evidence["links"].get(student.pk, [])),
                time_slot,
                daypackage,
                config,
                tiers,
                excused_threshold,
                evidence,
                permitted.get(student.pk, set()),
                today,
            )
            daily_rate = Decimal(SalaryConfigLoader.monthly_salary(config, student.package)) / divisor
            worked = len(outcome["delivered_dates"])
            worked_dates.update(outcome["delivered_dates"])
            base = money(daily_rate * worked)
            lateness = sum((r["deduction"] for r in outcome["lateness"]), ZERO)
            absence = sum((r["deduction"] for r in outcome["absences"]), ZERO)
            base_salary += base
            lateness_total += lateness
            absence_total += absence
            breakdown.append(
                {
                    "student_id": student.pk,
                    "student_name": student.name,
                    "package": student.package,
                    "worked_days": worked,
                    "daily_rate": money(daily_rate),
                    "base": base,
                    "absence_deduction": money(absence),
                    "lateness_deduction": money(lateness),
                    "total": money(max(ZERO, base - absence - lateness)),
                }
            )

        total_deductions = lateness_total + absence_total
        result = {
            "teacher_id": teacher.pk,
            "name": teacher.display_name,
            "from_date": from_date.isoformat(),
            "to_date": to_date.isoformat(),
            "students": breakdown,
            "summary": {
                "worked_days": len(worked_dates),
                "expected_days": len(expected_dates),
                "avg_daily_rate": money(
                    sum((row["daily_rate"] for row in breakdown), ZERO) / len(breakdown)
                )
                if breakdown
                else ZERO,
                "base_salary": money(base_salary),
                "total_deductions": money(total_deductions),
                "total_salary": money(max(ZERO, base_salary - total_deductions)),
            },
        }
        self.cache_manager.set_salary(teacher.pk, from_date, to_date, result, kind="zoom")
        return result


class TeacherPaymentService:
    STATUSES = [choice[0] for choice in TeacherSalaryPayment.STATUS_CHOICES]

    @staticmethod
    def serialize_payment(payment: TeacherSalaryPayment) -> Dict[str, Any]:
        return {
            "id": str(payment.pk),
            "teacher_id": payment.teacher_id,
            "period": payment.period,
            "status": payment.status,
            "total_salary": payment.total_salary,
            "lateness_deduction": payment.lateness_deduction,
            "absence_deduction": payment.absence_deduction,
            "bonuses": payment.bonuses,
            "paid_at": payment.paid_at.isoformat() if payment.paid_at else None,
            "admin_id": payment.admin_id,
            "transaction_id": payment.transaction_id,
        }

    @staticmethod
    def _audit(user, teacher_id, period, status, outcome, payment_processed, transaction_id, request=None, message=None):
        changes = {
            "teacher_id": teacher_id,
            "period": period,
            "status": status,
            "outcome": outcome,
            "payment_processed": payment_processed,
            "transaction_id": transaction_id,
        }
        if message:
            changes["message"] = message
        AuditLog.log_action(
            user=user,
            action="TEACHER_SALARY_STATUS_UPDATE",
            model_name="TeacherSalaryPayment",
            object_id=f"{teacher_id}:{period}",
            object_repr=f"Teacher {teacher_id} salary {period}",
            changes=changes,
            ip_address=request.META.get("REMOTE_ADDR") if request else None,
            user_agent=request.META.get("HTTP_USER_AGENT") if request else None,
        )

    @staticmethod
    def update_payment_status(
        user,
        teacher_id,
        period: str,
        status: str,
        total_salary=None,
        lateness_deduction=None,
        absence_deduction=None,
        bonuses=None,
        process_payment_now: bool = False,
        gateway: Optional[PaymentGatewayClient] = None,
        cache_manager: Optional[PayrollCacheManager] = None,
        request=None,
    ) -> Dict[str, Any]:
        if not PayrollAccessControl.can_process_payroll(user):
            raise PermissionDenied("You don't have permission to update salary payments")

        if not PayrollDataProcessor.validate_period(period):
            raise ValidationError("Period must use the YYYY-MM format")
        if status not in TeacherPaymentService.STATUSES:
            raise ValidationError(f"Invalid status: {status}")

        teacher = SalaryCalculator.get_teacher(teacher_id)
        if not AccessControl.can_access_school(user, teacher.school):
            raise PermissionDenied("Teacher belongs to another school")

        amounts = {
            "total_salary": PayrollDataProcessor.safe_decimal_conversion(total_salary),
            "lateness_deduction": PayrollDataProcessor.safe_decimal_conversion(lateness_deduction),
            "absence_deduction": PayrollDataProcessor.safe_decimal_conversion(absence_deduction),
            "bonuses": PayrollDataProcessor.safe_decimal_conversion(bonuses),
        }
        if any(value < ZERO for value in amounts.values()):
            raise ValidationError("Amounts cannot be negative")

        if process_payment_now:
            if status != "Paid":
                TeacherPaymentService._audit(
                    user, teacher.pk, period, status, "rejected", False, None, request,
                    "Payment processing requires Paid status",
                )
                raise ValidationError("Payment processing requires status Paid")
            if amounts["total_salary"] <= ZERO:
                TeacherPaymentService._audit(
                    user, teacher.pk, period, status, "rejected", False, None, request,
                    "Payment processing requires a positive total salary",
                )
                raise ValidationError("Payment processing requires a positive total salary")

        existing = TeacherSalaryPayment.objects.filter(teacher=teacher, period=period).first()
        if existing and existing.is_paid and status == "Unpaid":
            TeacherPaymentService._audit(
                user, teacher.pk, period, status, "rejected", False, existing.transaction_id, request,
                "Paid salary cannot be reverted to Unpaid",
            )
            raise ValidationError("Salary for this period is already paid")
        if existing and existing.is_paid and existing.transaction_id and process_payment_now:
            TeacherPaymentService._audit(
                user, teacher.pk, period, status, "rejected", False, existing.transaction_id, request,
                "Salary for this period was already paid out",
            )
            raise ValidationError(
                f"Salary for this period was already paid out (transaction {existing.transaction_id})"
            )

        payment_result = None
        if process_payment_now:
            payment_result = (gateway or PaymentGatewayClient()).process_salary_payment(
                teacher, amounts["total_salary"], period
            )

        try:
            with transaction.atomic():
                current = (
                    TeacherSalaryPayment.objects.select_for_update()
                    .filter(teacher=teacher, period=period)
                    .first()
                )
                if current and current.is_paid and status == "Unpaid":
                    raise ValidationError("Salary for this period is already paid")

                defaults = {**amounts, "status": status, "admin": user}
                if status == "Paid":
                    defaults["paid_at"] = (
                        current.paid_at if current and current.is_paid else timezone.now()
                    )
                else:
                    defaults["paid_at"] = None
                # a stored payout reference is never replaced
                if payment_result and payment_result["success"] and not (current and current.transaction_id):
                    defaults["transaction_id"] = payment_result["transaction_id"]

                payment, created = TeacherSalaryPayment.objects.update_or_create(
                    teacher=teacher, period=period, defaults=defaults
                )
        except ValidationError:
            TeacherPaymentService._audit(
                user, teacher.pk, period, status, "rejected", False, None, request,
                "Paid salary cannot be reverted to Unpaid",
            )
            raise

        payment_processed = bool(payment_result and payment_result["success"])
        transaction_id = payment_result["transaction_id"] if payment_result else None
        outcome = "updated"
        if payment_result and not payment_result["success"]:
            outcome = "gateway_failed"

        TeacherPaymentService._audit(
            user,
            teacher.pk,
            period,
            status,
            outcome,
            payment_processed,
            transaction_id,
            request,
            payment_result["message"] if payment_result else None,
        )

        (cache_manager or PayrollCacheManager()).clear_teacher(teacher.pk)
        logger.info(
            f"Salary status for teacher {teacher.pk} ({period}) set to {status} by {user.username}"
            f"{' (created)' if created else ''}"
        )

        return {
            "payment": payment,
            "created": created,
            "payment_processed": payment_processed,
            "payment_result": payment_result,
        }


class DeductionConfigurationService:
    @staticmethod
    def _require_manager(user):
        if not PayrollAccessControl.can_process_payroll(user):
            raise PermissionDenied("You don't have permission to change payroll configuration")

    @staticmethod
    def _after_change(user, model_name, changes, cache_manager=None):
        AuditLog.log_action(
            user=user,
            action="PAYROLL_CONFIG_CHANGE",
            model_name=model_name,
            changes=changes,
        )
        (cache_manager or PayrollCacheManager()).clear_all()

    @staticmethod
    def replace_lateness_tiers(
        user, tiers: List[Dict[str, Any]], school=None, teacher=None, cache_manager=None
    ) -> List[LatenessDeductionConfig]:
        DeductionConfigurationService._require_manager(user)
        if not tiers:
            raise ValidationError("At least one lateness tier is required")

        try:
            with transaction.atomic():
                scope = LatenessDeductionConfig.objects.select_for_update().filter(
                    is_active=True, school=school, teacher=teacher
                )
                deactivated = len(list(scope))
                scope.update(is_active=False)

                created = []
                for index, tier in enumerate(tiers, 1):
                    created.append(
                        LatenessDeductionConfig.objects.create(
                            tier=int(tier.get("tier", index)),
                            start_minute=int(tier["start_minute"]),
                            end_minute=int(tier["end_minute"]),
                            deduction_percent=PayrollDataProcessor.safe_decimal_conversion(
                                tier["deduction_percent"], None
                            ),
                            excused_threshold=int(
                                tier.get(
                                    "excused_threshold",
                                    payroll_setting("DEFAULT_EXCUSED_THRESHOLD"),
                                )
                            ),
                            is_global=teacher is None,
                            teacher=teacher,
                            school=school,
                            created_by=user,
                        )
                    )
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Invalid lateness tier payload: {str(e)}")
            raise ValidationError(f"Invalid lateness tier: {str(e)}")

        logger.info(
            f"Replaced {deactivated} lateness tiers with {len(created)} for school {school.pk if school else None}"
        )
        DeductionConfigurationService._after_change(
            user,
            "LatenessDeductionConfig",
            {
                "school_id": school.pk if school else None,
                "teacher_id": teacher.pk if teacher else None,
                "deactivated": deactivated,
                "created": [row.pk for row in created],
            },
            cache_manager,
        )
        return created

    @staticmethod
    def deactivate_lateness_tier(user, tier_id, cache_manager=None) -> LatenessDeductionConfig:
        DeductionConfigurationService._require_manager(user)
        with transaction.atomic():
            try:
                tier = LatenessDeductionConfig.objects.select_for_update().get(
                    pk=tier_id, is_active=True
                )
            except (LatenessDeductionConfig.DoesNotExist, ValueError, TypeError):
                raise ValidationError("Lateness tier not found")
            if not AccessControl.can_access_school(user, tier.school):
                raise PermissionDenied("Lateness tier belongs to another school")
            tier.is_active = False
            tier.save()

        DeductionConfigurationService._after_change(
            user, "LatenessDeductionConfig", {"deactivated": [tier.pk]}, cache_manager
        )
        return tier

    @staticmethod
    def set_package_deduction(
        user, package_name: str, lateness_base, absence_base, school=None, cache_manager=None
    ) -> PackageDeduction:
        DeductionConfigurationService._require_manager(user)
        package_name = (package_name or "").strip()
        if not package_name:
            raise ValidationError("Package name is required")
        lateness = PayrollDataProcessor.safe_decimal_conversion(lateness_base, None)
        absence = PayrollDataProcessor.safe_decimal_conversion(absence_base, None)
        if lateness is None or absence is None or lateness < ZERO or absence < ZERO:
            raise ValidationError("Deduction amounts must be non-negative numbers")

        with transaction.atomic():
            PackageDeduction.objects.select_for_update().filter(
                package_name=package_name, school=school, is_active=True
            ).update(is_active=False)
            row = PackageDeduction.objects.create(
                package_name=package_name,
                lateness_base_amount=lateness,
                absence_base_amount=absence,
                school=school,
                created_by=user,
            )

        DeductionConfigurationService._after_change(
            user,
            "PackageDeduction",
            {
                "package_name": package_name,
                "lateness_base_amount": str(lateness),
                "absence_base_amount": str(absence),
            },
            cache_manager,
        )
        return row

    @staticmethod
    def set_package_salary(
        user, package_name: str, salary_per_student, school=None, cache_manager=None
    ) -> PackageSalary:
        DeductionConfigurationService._require_manager(user)
        package_name = (package_name or "").strip()
        if not package_name:
            raise ValidationError("Package name is required")
        salary = PayrollDataProcessor.safe_decimal_conversion(salary_per_student, None)
        if salary is None or salary < ZERO:
            raise ValidationError("Salary must be a non-negative number")

        with transaction.atomic():
            PackageSalary.objects.select_for_update().filter(
                package_name=package_name, school=school, is_active=True
            ).update(is_active=False)
            row = PackageSalary.objects.create(
                package_name=package_name,
                salary_per_student=salary,
                school=school,
                created_by=user,
            )

        DeductionConfigurationService._after_change(
            user,
            "PackageSalary",
            {"package_name": package_name, "salary_per_student": str(salary)},
            cache_manager,
        )
        return row
