import pytest
from datetime import date, datetime
from decimal import Decimal
from django.utils import timezone

from accounts.models import SystemConfiguration
from attendance.models import AttendanceProgress, DeductionWaiver, PermissionRequest, ZoomLink
from payroll.models import BonusRecord, PackageSalary, QualityAssessment, TeacherSalaryPayment
from payroll.services import SalaryCalculator
from payroll.utils import PayrollCacheManager
from students.models import Student, Teacher, TeacherChangeHistory

JUNE_START = date(2025, 6, 1)
JUNE_END = date(2025, 6, 30)


def aware(*args):
    return timezone.make_aware(datetime(*args))


@pytest.fixture
def zoom_links(teacher, student):
    # on time, 15 minutes late, within the excused threshold
    for sent in [(2025, 6, 2, 10, 0), (2025, 6, 4, 10, 15), (2025, 6, 6, 10, 2)]:
        ZoomLink.objects.create(student=student, teacher=teacher, sent_time=aware(*sent))


@pytest.fixture
def calculator():
    return SalaryCalculator(PayrollCacheManager())


@pytest.mark.django_db
def test_teacher_salary_combines_worked_days_deductions_and_bonuses(
    calculator, teacher, student, payroll_config, zoom_links
):
    BonusRecord.objects.create(
        teacher=teacher, amount=Decimal("50.00"), reason="Ramadan", created_at=aware(2025, 6, 10, 12, 0)
    )

    result = calculator.calculate_teacher_salary(teacher.pk, JUNE_START, JUNE_END)

    # 2200 / min(22, 25 working days) = 100 per delivered class
    assert result["base_salary"] == Decimal("300.00")
    assert result["lateness_deduction"] == Decimal("15.00")
    # 13 MWF days in June, 3 delivered
    assert result["absence_deduction"] == Decimal("250.00")
    assert result["bonuses"] == Decimal("50.00")
    assert result["total_salary"] == Decimal("85.00")
    assert result["status"] == "Unpaid"
    assert result["num_students"] == 1
    assert result["teaching_days"] == 3
    assert result["has_teacher_changes"] is False

    breakdown = result["breakdown"]
    assert [row["tier"] for row in breakdown["lateness_breakdown"]] == ["Tier 2"]
    assert breakdown["lateness_breakdown"][0]["lateness_minutes"] == 15
    assert len(breakdown["absence_breakdown"]) == 10
    student_row = breakdown["student_breakdown"][0]
    assert student_row["daily_rate"] == Decimal("100.00")
    assert student_row["days_worked"] == 3
    assert student_row["daypackage_formatted"] == "Mon, Wed, Fri"
    assert student_row["teaching_days_in_month"] == 13
    assert breakdown["summary"]["working_days_in_month"] == 25
    assert breakdown["summary"]["net_salary"] == Decimal("85.00")


@pytest.mark.django_db
def test_total_salary_never_goes_negative(calculator, teacher, student, payroll_config):
    result = calculator.calculate_teacher_salary(teacher.pk, JUNE_START, JUNE_END)

    assert result["base_salary"] == Decimal("0.00")
    assert result["absence_deduction"] == Decimal("325.00")
    assert result["total_salary"] == Decimal("0.00")


@pytest.mark.django_db
def test_teacher_without_students_gets_zero_result(calculator, teacher):
    result = calculator.calculate_teacher_salary(teacher.pk, JUNE_START, JUNE_END)

    assert result["total_salary"] == Decimal("0.00")
    assert result["num_students"] == 0
    assert result["breakdown"]["student_breakdown"] == []


@pytest.mark.django_db
def test_unknown_teacher_raises_not_found(calculator):
    with pytest.raises(Teacher.DoesNotExist, match="Teacher not found"):
        calculator.calculate_teacher_salary(999, JUNE_START, JUNE_END)


@pytest.mark.django_db
def test_permission_and_waivers_remove_absences(
    calculator, teacher, student, payroll_config, zoom_links
):
    PermissionRequest.objects.create(teacher=teacher, request_date=date(2025, 6, 9), status="Approved")
    PermissionRequest.objects.create(teacher=teacher, request_date=date(2025, 6, 11), status="Pending")
    AttendanceProgress.objects.create(student=student, date=date(2025, 6, 13), status="Permission")
    DeductionWaiver.objects.create(
        teacher=teacher, deduction_type="absence", deduction_date=date(2025, 6, 16), reason="Power cut"
    )
    DeductionWaiver.objects.create(
        teacher=teacher, deduction_type="lateness", deduction_date=date(2025, 6, 4), reason="Network"
    )

    result = calculator.calculate_teacher_salary(teacher.pk, JUNE_START, JUNE_END)

    assert result["lateness_deduction"] == Decimal("0.00")
    # 10 missed days, 2 permitted, 1 waived
    assert result["absence_deduction"] == Decimal("175.00")
    assert [row["date"] for row in result["breakdown"]["waived_absences"]] == ["2025-06-16"]


@pytest.mark.django_db
def test_inactive_students_have_no_absences(calculator, teacher, student, payroll_config, zoom_links):
    Student.objects.filter(pk=student.pk).update(status="LEAVE")

    result = calculator.calculate_teacher_salary(teacher.pk, JUNE_START, JUNE_END)

    assert result["absence_deduction"] == Decimal("0.00")
    assert result["base_salary"] == Decimal("300.00")


@pytest.mark.django_db
def test_teacher_change_splits_the_month(calculator, school, teacher, student, payroll_config, zoom_links):
    successor = Teacher.objects.create(teacher_code="T002", name="Ustaza Fatima", school=school)
    TeacherChangeHistory.objects.create(
        student=student, old_teacher=teacher, new_teacher=successor, change_date=aware(2025, 6, 5, 8, 0)
    )
    Student.objects.filter(pk=student.pk).update(teacher=successor)
    ZoomLink.objects.create(student=student, teacher=successor, sent_time=aware(2025, 6, 9, 10, 0))

    original = calculator.calculate_teacher_salary(teacher.pk, JUNE_START, JUNE_END)
    incoming = calculator.calculate_teacher_salary(successor.pk, JUNE_START, JUNE_END)

    assert original["has_teacher_changes"] is True
    periods = original["breakdown"]["student_breakdown"][0]["periods"]
    assert [(p["start"], p["end"], p["teacher_role"]) for p in periods] == [
        ("2025-06-01", "2025-06-04", "old_teacher")
    ]
    # the June 6 link belongs to the old teacher but falls after the change
    assert original["teaching_days"] == 2
    assert incoming["teaching_days"] == 1
    assert incoming["breakdown"]["student_breakdown"][0]["periods"][0]["start"] == "2025-06-05"


@pytest.mark.django_db
def test_quality_bonus_requires_manager_approval(calculator, teacher):
    QualityAssessment.objects.create(
        teacher=teacher, week_start=date(2025, 6, 2), manager_approved=True, bonus_awarded=Decimal("40")
    )
    QualityAssessment.objects.create(
        teacher=teacher, week_start=date(2025, 6, 9), manager_approved=False, bonus_awarded=Decimal("99")
    )

    result = calculator.calculate_teacher_salary(teacher.pk, JUNE_START, JUNE_END)

    assert result["bonuses"] == Decimal("40.00")
    assert result["total_salary"] == Decimal("40.00")


@pytest.mark.django_db
def test_status_comes_from_payment_record(calculator, teacher):
    TeacherSalaryPayment.objects.create(teacher=teacher, period="2025-06", status="Paid")

    result = calculator.calculate_teacher_salary(teacher.pk, JUNE_START, JUNE_END)

    assert result["status"] == "Paid"


@pytest.mark.django_db
def test_results_are_cached_until_configuration_changes(
    calculator, teacher, student, payroll_config, zoom_links
):
    first = calculator.calculate_teacher_salary(teacher.pk, JUNE_START, JUNE_END)
    assert first == calculator.calculate_teacher_salary(teacher.pk, JUNE_START, JUNE_END)

    PackageSalary.objects.filter(package_name="Gold").update(salary_per_student=Decimal("4400.00"))
    cached = calculator.calculate_teacher_salary(teacher.pk, JUNE_START, JUNE_END)
    assert cached["base_salary"] == Decimal("300.00")

    fresh = SalaryCalculator(PayrollCacheManager()).calculate_teacher_salary(
        teacher.pk, JUNE_START, JUNE_END, use_cache=False
    )
    assert fresh["base_salary"] == Decimal("600.00")


@pytest.mark.django_db
def test_recomputation_is_idempotent(teacher, student, payroll_config, zoom_links):
    BonusRecord.objects.create(teacher=teacher, amount=Decimal("50.00"), created_at=aware(2025, 6, 10, 12, 0))
    DeductionWaiver.objects.create(
        teacher=teacher, deduction_type="absence", deduction_date=date(2025, 6, 16), reason="Power cut"
    )

    first = SalaryCalculator(PayrollCacheManager()).calculate_teacher_salary(
        teacher.pk, JUNE_START, JUNE_END, use_cache=False
    )
    second = SalaryCalculator(PayrollCacheManager()).calculate_teacher_salary(
        teacher.pk, JUNE_START, JUNE_END, use_cache=False
    )

    assert first == second
    assert first["total_salary"] == Decimal("110.00")


@pytest.mark.django_db
def test_saving_evidence_invalidates_cached_salary(teacher, student, payroll_config, zoom_links):
    first = SalaryCalculator().calculate_teacher_salary(teacher.pk, JUNE_START, JUNE_END)
    ZoomLink.objects.create(student=student, teacher=teacher, sent_time=aware(2025, 6, 9, 10, 0))

    second = SalaryCalculator().calculate_teacher_salary(teacher.pk, JUNE_START, JUNE_END)

    assert second["teaching_days"] == first["teaching_days"] + 1


@pytest.mark.django_db
def test_sundays_count_when_enabled(teacher, student, payroll_config):
    Student.objects.filter(pk=student.pk).update(daypackage="")
    student.assignments.update(daypackage="ALL DAYS")
    SystemConfiguration.set_setting("INCLUDE_SUNDAYS", True, setting_type="PAYROLL")

    result = SalaryCalculator().calculate_teacher_salary(teacher.pk, JUNE_START, JUNE_END)

    assert result["breakdown"]["summary"]["working_days_in_month"] == 30
    assert len(result["breakdown"]["absence_breakdown"]) == 30


@pytest.mark.django_db
def test_all_teacher_salaries_sorted_by_name(calculator, school, teacher, student, payroll_config):
    Teacher.objects.create(teacher_code="T009", name="Abu Bakr", school=school)

    results = calculator.calculate_all_teacher_salaries(JUNE_START, JUNE_END, Teacher.objects.all())

    assert [row["name"] for row in results] == ["Abu Bakr", "Ustaz Ahmed"]


@pytest.mark.django_db
def test_salary_details_include_bonus_records_and_payment(calculator, teacher):
    BonusRecord.objects.create(teacher=teacher, amount=Decimal("20"), created_at=aware(2025, 6, 3, 9, 0))
    TeacherSalaryPayment.objects.create(teacher=teacher, period="2025-06", total_salary=Decimal("20"))

    details = calculator.get_teacher_salary_details(teacher.pk, JUNE_START, JUNE_END)

    assert len(details["bonus_records"]) == 1
    assert details["payment"]["status"] == "Unpaid"
    assert details["payment"]["total_salary"] == Decimal("20.00")


@pytest.mark.django_db
def test_zoom_based_estimate_uses_current_students(calculator, teacher, student, payroll_config, zoom_links):
    result = calculator.calculate_zoom_based_salary(teacher.pk, JUNE_START, JUNE_END)

    row = result["students"][0]
    assert row["worked_days"] == 3
    assert row["base"] == Decimal("300.00")
    assert row["lateness_deduction"] == Decimal("15.00")
    assert row["absence_deduction"] == Decimal("250.00")
    assert row["total"] == Decimal("35.00")
    assert result["summary"]["expected_days"] == 25
    assert result["summary"]["total_salary"] == Decimal("35.00")


@pytest.mark.django_db
def test_config_validation_reports_missing_tables(calculator, school):
    config = calculator.load_salary_config(school)

    assert calculator.validate_salary_config(config) == [
        "No package deductions configured",
        "No lateness tiers configured",
        "No package salaries configured",
    ]
