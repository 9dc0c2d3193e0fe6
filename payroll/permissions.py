from accounts.permissions import AccessControl, Capabilities, Roles
from students.models import Teacher


class PayrollAccessControl:
    @staticmethod
    def can_view_payroll(user):
        return AccessControl.has_capability(user, Capabilities.VIEW_PAYROLL)

    @staticmethod
    def can_process_payroll(user):
        return AccessControl.has_capability(user, Capabilities.MANAGE_PAYROLL)

    @staticmethod
    def can_view_teacher_salary(user, teacher):
        if not user or not user.is_authenticated:
            return False

        if PayrollAccessControl.can_view_payroll(user):
            return AccessControl.can_access_school(user, teacher.school)

        if AccessControl.has_capability(user, Capabilities.VIEW_OWN_SALARY):
            return teacher.user_id == user.pk

        return False

    @staticmethod
    def teachers_for(user):
        """Teachers the user may see on payroll screens."""
        queryset = Teacher.objects.select_related("school")
        if AccessControl.resolve_role(user) == Roles.SUPER_ADMIN:
            return queryset
        return queryset.filter(school=AccessControl.get_school_scope(user))
