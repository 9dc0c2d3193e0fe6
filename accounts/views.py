from django.core.exceptions import ObjectDoesNotExist, PermissionDenied, ValidationError
from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from django.views.generic import View
import json
import logging

from .permissions import RoleRequiredMixin

logger = logging.getLogger(__name__)


def error_response(message, status=400, **extra):
    return JsonResponse({"error": message, **extra}, status=status)


def validation_message(error: ValidationError) -> str:
    return "; ".join(error.messages)


def parse_json_body(request):
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (ValueError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON body")
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


@method_decorator(csrf_exempt, name="dispatch")
class JsonApiView(RoleRequiredMixin, View):
    """Role-guarded JSON endpoint translating domain errors to HTTP statuses."""

    def dispatch(self, request, *args, **kwargs):
        try:
            return super().dispatch(request, *args, **kwargs)
        except ValidationError as e:
            return error_response(validation_message(e), status=400)
        except PermissionDenied as e:
            return error_response(str(e) or "Permission denied", status=403)
        except ObjectDoesNotExist as e:
            return error_response(str(e) or "Not found", status=404)
        except Exception as e:
            logger.error(f"Unhandled error in {self.__class__.__name__}: {str(e)}", exc_info=True)
            return error_response("Internal server error", status=500)
