import pytest
from datetime import date, datetime
from decimal import Decimal
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import Client
from django.utils import timezone

from accounts.models import School
from payroll.models import LatenessDeductionConfig, PackageDeduction, PackageSalary
from students.models import Student, Teacher, TeacherAssignment

User = get_user_model()

JUNE_START = date(2025, 6, 1)
JUNE_END = date(2025, 6, 30)


def aware(*args):
    return timezone.make_aware(datetime(*args))


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def school(db):
    return School.objects.create(name="Darul Ilm", slug="darul-ilm")


@pytest.fixture
def other_school(db):
    return School.objects.create(name="Nur Academy", slug="nur-academy")


@pytest.fixture
def admin_user(db, school):
    return User.objects.create_user(username="admin", password="pass", role="ADMIN", school=school)


@pytest.fixture
def super_admin(db):
    return User.objects.create_user(username="root", password="pass", role="SUPER_ADMIN")


@pytest.fixture
def controller_user(db, school):
    return User.objects.create_user(
        username="controller", password="pass", role="CONTROLLER", school=school
    )


@pytest.fixture
def registral_user(db, school):
    return User.objects.create_user(
        username="registral", password="pass", role="REGISTRAL", school=school
    )


@pytest.fixture
def teacher_user(db, school):
    return User.objects.create_user(username="ustaz", password="pass", role="TEACHER", school=school)


@pytest.fixture
def teacher(db, school, teacher_user):
    return Teacher.objects.create(
        teacher_code="T001",
        name="Ustaz Ahmed",
        phone="+251911000000",
        email="ahmed@example.com",
        user=teacher_user,
        school=school,
    )


@pytest.fixture
def payroll_config(db, school):
    PackageSalary.objects.create(package_name="Gold", salary_per_student=Decimal("2200.00"))
    PackageDeduction.objects.create(
        package_name="Gold",
        lateness_base_amount=Decimal("30.00"),
        absence_base_amount=Decimal("25.00"),
    )
    tiers = [
        (1, 4, 10, Decimal("25")),
        (2, 11, 20, Decimal("50")),
        (3, 21, 30, Decimal("75")),
    ]
    return [
        LatenessDeductionConfig.objects.create(
            tier=tier, start_minute=start, end_minute=end, deduction_percent=percent
        )
        for tier, start, end, percent in tiers
    ]


@pytest.fixture
def student(db, school, teacher):
    student = Student.objects.create(
        name="Abdullah",
        package="Gold",
        daypackage="MWF",
        teacher=teacher,
        school=school,
    )
    TeacherAssignment.objects.create(
        student=student,
        teacher=teacher,
        time_slot="10:00 AM",
        daypackage="MWF",
        occupied_at=aware(2025, 5, 1, 9, 0),
    )
    return student


@pytest.fixture
def admin_client(admin_user):
    client = Client()
    client.force_login(admin_user)
    return client


@pytest.fixture
def teacher_client(teacher_user):
    client = Client()
    client.force_login(teacher_user)
    return client
