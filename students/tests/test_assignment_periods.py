import pytest
from datetime import date, datetime
from django.utils import timezone

from students.models import Student, Teacher, TeacherAssignment, TeacherChangeHistory
from students.utils import AssignmentResolver

JUNE_START = date(2025, 6, 1)
JUNE_END = date(2025, 6, 30)


def aware(*args):
    return timezone.make_aware(datetime(*args))


@pytest.fixture
def trio(db, school):
    first = Teacher.objects.create(teacher_code="A", name="Amina", school=school)
    second = Teacher.objects.create(teacher_code="B", name="Bilal", school=school)
    third = Teacher.objects.create(teacher_code="C", name="Khadija", school=school)
    return first, second, third


def spans(periods):
    return [(p["start"], p["end"], p["role"]) for p in periods]


@pytest.mark.django_db
def test_current_teacher_owns_the_whole_range(school, trio):
    first, _, _ = trio
    pupil = Student.objects.create(name="Yusuf", teacher=first, school=school)

    periods = AssignmentResolver.get_assignment_periods(pupil, first, JUNE_START, JUNE_END)

    assert spans(periods) == [(JUNE_START, JUNE_END, "current")]


@pytest.mark.django_db
def test_change_date_belongs_to_new_teacher(school, trio):
    first, second, _ = trio
    pupil = Student.objects.create(name="Yusuf", teacher=second, school=school)
    TeacherChangeHistory.objects.create(
        student=pupil, old_teacher=first, new_teacher=second, change_date=aware(2025, 6, 15, 9, 0)
    )

    old = AssignmentResolver.get_assignment_periods(pupil, first, JUNE_START, JUNE_END)
    new = AssignmentResolver.get_assignment_periods(pupil, second, JUNE_START, JUNE_END)

    assert spans(old) == [(JUNE_START, date(2025, 6, 14), "old_teacher")]
    assert spans(new) == [(date(2025, 6, 15), JUNE_END, "new_teacher")]
    assert new[0]["change_date"] == date(2025, 6, 15)


@pytest.mark.django_db
def test_two_changes_hand_the_student_back(school, trio):
    first, second, third = trio
    pupil = Student.objects.create(name="Yusuf", teacher=third, school=school)
    TeacherChangeHistory.objects.create(
        student=pupil, old_teacher=first, new_teacher=second, change_date=aware(2025, 6, 10, 9, 0)
    )
    TeacherChangeHistory.objects.create(
        student=pupil, old_teacher=second, new_teacher=third, change_date=aware(2025, 6, 20, 9, 0)
    )

    middle = AssignmentResolver.get_assignment_periods(pupil, second, JUNE_START, JUNE_END)
    last = AssignmentResolver.get_assignment_periods(pupil, third, JUNE_START, JUNE_END)

    assert spans(middle) == [(date(2025, 6, 10), date(2025, 6, 19), "new_teacher")]
    assert spans(last) == [(date(2025, 6, 20), JUNE_END, "new_teacher")]


@pytest.mark.django_db
def test_assignment_windows_clip_to_range(school, trio):
    first, _, _ = trio
    pupil = Student.objects.create(name="Yusuf", school=school)
    TeacherAssignment.objects.create(
        student=pupil, teacher=first, time_slot="4:00 PM", occupied_at=aware(2025, 6, 10, 8, 0),
        end_at=aware(2025, 6, 18, 8, 0),
    )
    TeacherAssignment.objects.create(
        student=pupil, teacher=first, time_slot="4:00 PM", occupied_at=aware(2025, 6, 19, 8, 0)
    )

    periods = AssignmentResolver.get_assignment_periods(pupil, first, JUNE_START, JUNE_END)

    # adjacent windows merge into one span
    assert spans(periods) == [(date(2025, 6, 10), JUNE_END, "current")]


@pytest.mark.django_db
def test_unrelated_teacher_gets_nothing(school, trio):
    first, second, _ = trio
    pupil = Student.objects.create(name="Yusuf", teacher=first, school=school)

    assert AssignmentResolver.get_assignment_periods(pupil, second, JUNE_START, JUNE_END) == []


@pytest.mark.django_db
def test_teacher_students_include_past_assignments_and_changes(school, trio):
    first, second, _ = trio
    current = Student.objects.create(name="Current", teacher=first, school=school)
    moved = Student.objects.create(name="Moved", teacher=second, school=school)
    TeacherChangeHistory.objects.create(
        student=moved, old_teacher=first, new_teacher=second, change_date=aware(2025, 6, 5, 9, 0)
    )
    ended = Student.objects.create(name="Ended", school=school)
    TeacherAssignment.objects.create(
        student=ended, teacher=first, occupied_at=aware(2025, 5, 1, 8, 0), end_at=aware(2025, 6, 3, 8, 0)
    )
    TeacherAssignment.objects.create(
        student=Student.objects.create(name="Old", school=school),
        teacher=first,
        occupied_at=aware(2025, 1, 1, 8, 0),
        end_at=aware(2025, 2, 1, 8, 0),
    )

    students = AssignmentResolver.get_teacher_students(first, JUNE_START, JUNE_END)

    assert [s.name for s in students] == ["Current", "Ended", "Moved"]


@pytest.mark.django_db
def test_schedule_prefers_open_assignment(school, trio):
    first, _, _ = trio
    pupil = Student.objects.create(name="Yusuf", daypackage="TTS", school=school)
    TeacherAssignment.objects.create(
        student=pupil, teacher=first, time_slot="8:00 AM", daypackage="MWF",
        occupied_at=aware(2025, 6, 1, 8, 0), end_at=aware(2025, 6, 2, 8, 0),
    )
    TeacherAssignment.objects.create(
        student=pupil, teacher=first, time_slot="6:30 PM", occupied_at=aware(2025, 5, 1, 8, 0)
    )

    assert AssignmentResolver.get_schedule(pupil, first) == ("6:30 PM", "TTS")


@pytest.mark.django_db
def test_assignment_cannot_end_before_it_starts(school, trio):
    from django.core.exceptions import ValidationError

    first, _, _ = trio
    pupil = Student.objects.create(name="Yusuf", school=school)

    with pytest.raises(ValidationError):
        TeacherAssignment.objects.create(
            student=pupil, teacher=first, occupied_at=aware(2025, 6, 10), end_at=aware(2025, 6, 1)
        )
