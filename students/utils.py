from django.db.models import Q
from django.utils import timezone
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging

from .models import Student, Teacher, TeacherAssignment, TeacherChangeHistory

logger = logging.getLogger(__name__)


def to_local_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            return timezone.localtime(value).date()
        return value.date()
    return value


class AssignmentResolver:
    @staticmethod
    def get_teacher_students(
        teacher: Teacher, from_date: date, to_date: date
    ) -> List[Student]:
        student_ids = set(
            Student.objects.filter(teacher=teacher).values_list("id", flat=True)
        )
        student_ids.update(
            TeacherAssignment.objects.filter(
                teacher=teacher, occupied_at__date__lte=to_date
            )
            .filter(Q(end_at__isnull=True) | Q(end_at__date__gte=from_date))
            .values_list("student_id", flat=True)
        )
        student_ids.update(
            TeacherChangeHistory.objects.filter(
                Q(old_teacher=teacher) | Q(new_teacher=teacher),
                change_date__date__gte=from_date,
                change_date__date__lte=to_date,
            ).values_list("student_id", flat=True)
        )
        return list(Student.objects.filter(id__in=student_ids).order_by("name", "id"))

    @staticmethod
    def get_changes_in_range(
        student: Student, from_date: date, to_date: date
    ) -> List[TeacherChangeHistory]:
        return list(
            TeacherChangeHistory.objects.filter(
                student=student,
                change_date__date__gte=from_date,
                change_date__date__lte=to_date,
            ).order_by("change_date", "id")
        )

    @staticmethod
    def get_assignment_periods(
        student: Student, teacher: Teacher, from_date: date, to_date: date
    ) -> List[Dict[str, Any]]:
        """Date slices of [from_date, to_date] during which teacher taught student.

        Teacher changes inside the range split it: the old teacher keeps the
        days before the change date, the new teacher owns the change date
        onward. Without changes, assignment windows decide, then the
        student's current teacher link.
        """
        changes = AssignmentResolver.get_changes_in_range(student, from_date, to_date)
        if changes:
            return AssignmentResolver._periods_from_changes(
                changes, teacher, from_date, to_date
            )

        assignments = (
            TeacherAssignment.objects.filter(
                student=student, teacher=teacher, occupied_at__date__lte=to_date
            )
            .filter(Q(end_at__isnull=True) | Q(end_at__date__gte=from_date))
            .order_by("occupied_at")
        )
        periods = []
        for assignment in assignments:
            start = max(from_date, to_local_date(assignment.occupied_at))
            end = to_date
            if assignment.end_at:
                end = min(to_date, to_local_date(assignment.end_at))
            if start > end:
                continue
            if periods and start <= periods[-1]["end"] + timedelta(days=1):
                periods[-1]["end"] = max(periods[-1]["end"], end)
                continue
            periods.append(
                {"start": start, "end": end, "role": "current", "change_date": None}
            )

        if periods:
            return periods

        if student.teacher_id == teacher.id:
            return [
                {"start": from_date, "end": to_date, "role": "current", "change_date": None}
            ]

        return []

    @staticmethod
    def _periods_from_changes(
        changes: List[TeacherChangeHistory],
        teacher: Teacher,
        from_date: date,
        to_date: date,
    ) -> List[Dict[str, Any]]:
        periods = []
        segment_start = from_date
        owner_id = changes[0].old_teacher_id
        role = "old_teacher"

        for change in changes:
            change_day = to_local_date(change.change_date)
            segment_end = change_day - timedelta(days=1)
            if owner_id == teacher.id and segment_start <= segment_end:
                periods.append(
                    {
                        "start": segment_start,
                        "end": segment_end,
                        "role": role,
                        "change_date": change_day,
                    }
                )
            segment_start = change_day
            owner_id = change.new_teacher_id
            role = "new_teacher"
            last_change_day = change_day

        if owner_id == teacher.id and segment_start <= to_date:
            periods.append(
                {
                    "start": segment_start,
                    "end": to_date,
                    "role": role,
                    "change_date": last_change_day,
                }
            )

        return periods

    @staticmethod
    def get_schedule(student: Student, teacher: Teacher) -> Tuple[str, str]:
        """(time_slot, daypackage) for the pair, preferring the open assignment."""
        assignments = TeacherAssignment.objects.filter(
            student=student, teacher=teacher
        ).order_by("-occupied_at")
        assignment = (
            assignments.filter(end_at__isnull=True).first() or assignments.first()
        )

        if assignment is None:
            return "", student.daypackage or ""

        return assignment.time_slot or "", assignment.daypackage or student.daypackage or ""

    @staticmethod
    def describe_changes(changes: List[TeacherChangeHistory]) -> List[Dict[str, Any]]:
        return [
            {
                "change_date": to_local_date(change.change_date).isoformat(),
                "old_teacher_id": change.old_teacher_id,
                "new_teacher_id": change.new_teacher_id,
                "reason": change.reason or "",
            }
            for change in changes
        ]
