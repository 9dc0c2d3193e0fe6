from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.utils import timezone
from datetime import datetime
import logging

from accounts.permissions import Capabilities
from accounts.views import JsonApiView, parse_json_body
from .services import SubscriptionService
from .utils import ProrationCalculator

logger = logging.getLogger(__name__)


def parse_datetime_field(data, key, required=True):
    value = data.get(key)
    if not value:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid date for {key}")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


class ProrationPreviewView(JsonApiView):
    required_capability = Capabilities.MANAGE_BILLING

    def post(self, request):
        data = parse_json_body(request)
        for key in ("currentPrice", "currentDuration", "newPrice", "newDuration"):
            if data.get(key) is None:
                raise ValidationError(f"{key} is required")

        proration = ProrationCalculator.calculate_proration(
            data["currentPrice"],
            data["currentDuration"],
            data["newPrice"],
            data["newDuration"],
            parse_datetime_field(data, "originalStartDate"),
            parse_datetime_field(data, "upgradeDate", required=False) or timezone.now(),
            current_end_date=parse_datetime_field(data, "currentEndDate", required=False),
        )
        return JsonResponse(proration)


class SubscriptionChangeView(JsonApiView):
    required_capability = Capabilities.MANAGE_BILLING

    def post(self, request, subscription_id):
        data = parse_json_body(request)
        new_package_id = data.get("newPackageId")
        if not new_package_id:
            raise ValidationError("newPackageId is required")

        adjustment = SubscriptionService.apply_change(
            request.user,
            subscription_id,
            new_package_id,
            upgrade_date=parse_datetime_field(data, "upgradeDate", required=False),
            request=request,
        )
        return JsonResponse(
            {"success": True, "adjustment": SubscriptionService.serialize_adjustment(adjustment)}
        )
