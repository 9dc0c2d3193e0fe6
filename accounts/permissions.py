from django.core.exceptions import PermissionDenied
from django.http import JsonResponse
import logging

logger = logging.getLogger(__name__)


class Roles:
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    CONTROLLER = "CONTROLLER"
    TEACHER = "TEACHER"
    REGISTRAL = "REGISTRAL"

    ALL = (SUPER_ADMIN, ADMIN, CONTROLLER, TEACHER, REGISTRAL)


class Capabilities:
    VIEW_PAYROLL = "view_payroll"
    MANAGE_PAYROLL = "manage_payroll"
    MANAGE_BILLING = "manage_billing"
    VIEW_OWN_SALARY = "view_own_salary"


ROLE_CAPABILITIES = {
    Roles.SUPER_ADMIN: frozenset(
        [
            Capabilities.VIEW_PAYROLL,
            Capabilities.MANAGE_PAYROLL,
            Capabilities.MANAGE_BILLING,
        ]
    ),
    Roles.ADMIN: frozenset(
        [
            Capabilities.VIEW_PAYROLL,
            Capabilities.MANAGE_PAYROLL,
            Capabilities.MANAGE_BILLING,
        ]
    ),
    Roles.CONTROLLER: frozenset(),
    Roles.TEACHER: frozenset([Capabilities.VIEW_OWN_SALARY]),
    Roles.REGISTRAL: frozenset([Capabilities.MANAGE_BILLING]),
}


class AccessControl:
    @staticmethod
    def resolve_role(user):
        if user.is_superuser:
            return Roles.SUPER_ADMIN

        role = getattr(user, "role", None)
        if role not in ROLE_CAPABILITIES:
            logger.warning(f"User {user.pk} has unknown role {role!r}")
            raise PermissionDenied(f"Unknown role: {role}")
        return role

    @staticmethod
    def has_capability(user, capability):
        if not user or not user.is_authenticated or not user.is_active:
            return False

        return capability in ROLE_CAPABILITIES[AccessControl.resolve_role(user)]

    @staticmethod
    def get_school_scope(user):
        """School the user is confined to, or None for cross-school access."""
        if AccessControl.resolve_role(user) == Roles.SUPER_ADMIN:
            return None
        if user.school_id is None:
            raise PermissionDenied("User is not assigned to a school")
        return user.school

    @staticmethod
    def can_access_school(user, school):
        scope = AccessControl.get_school_scope(user)
        if scope is None:
            return True
        return school is not None and school.pk == scope.pk


class RoleRequiredMixin:
    """JSON-API guard: 401 for anonymous callers, 403 without the capability."""

    required_capability = None

    def dispatch(self, request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({"error": "Unauthorized"}, status=401)

        try:
            allowed = AccessControl.has_capability(
                request.user, self.required_capability
            )
        except PermissionDenied as e:
            return JsonResponse({"error": str(e)}, status=403)

        if not allowed:
            return JsonResponse({"error": "Permission denied"}, status=403)

        return super().dispatch(request, *args, **kwargs)
