from django.db import transaction
from django.core.exceptions import ValidationError, PermissionDenied
from django.utils import timezone
from typing import Any, Dict
import logging

from accounts.models import AuditLog
from accounts.permissions import AccessControl, Capabilities
from .models import StudentSubscription, SubscriptionAdjustment, SubscriptionPackage
from .utils import ProrationCalculator, calculate_new_subscription_dates, generate_month_strings

logger = logging.getLogger(__name__)


def jsonable(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: str(value) if not isinstance(value, int) else value for key, value in values.items()}


class SubscriptionService:
    @staticmethod
    def preview_change(
        subscription: StudentSubscription, new_package: SubscriptionPackage, upgrade_date=None
    ) -> Dict[str, Any]:
        upgrade_date = upgrade_date or timezone.now()
        current = subscription.package

        if not subscription.is_changeable:
            raise ValidationError(
                f"Only active or trialing subscriptions can be changed. Current status: {subscription.status}"
            )
        if current.pk == new_package.pk:
            raise ValidationError("Subscription is already on this package")
        if not new_package.is_active:
            raise ValidationError(f"Package {new_package.pk} is no longer available")
        if new_package.currency != current.currency:
            raise ValidationError(
                f"Package currency ({new_package.currency}) does not match subscription currency ({current.currency})"
            )

        change_type = ProrationCalculator.change_type(
            current.price, current.duration_months, new_package.price, new_package.duration_months
        )
        if change_type is None:
            raise ValidationError("New package has the same price and duration")

        proration = ProrationCalculator.calculate_proration(
            current.price,
            current.duration_months,
            new_package.price,
            new_package.duration_months,
            subscription.start_date,
            upgrade_date,
            current_end_date=subscription.end_date,
        )
        start_date, end_date = calculate_new_subscription_dates(
            upgrade_date, new_package.duration_months
        )

        return {
            "subscription_id": subscription.pk,
            "change_type": change_type,
            "from_package_id": current.pk,
            "to_package_id": new_package.pk,
            "upgrade_date": upgrade_date,
            "proration": proration,
            "new_start_date": start_date,
            "new_end_date": end_date,
            "months_covered": generate_month_strings(start_date, end_date),
        }

    @staticmethod
    def apply_change(
        user, subscription_id, new_package_id, upgrade_date=None, request=None
    ) -> SubscriptionAdjustment:
        if not AccessControl.has_capability(user, Capabilities.MANAGE_BILLING):
            raise PermissionDenied("You don't have permission to change subscriptions")

        with transaction.atomic():
            try:
                subscription = (
                    StudentSubscription.objects.select_for_update().get(pk=subscription_id)
                )
            except (StudentSubscription.DoesNotExist, ValueError, TypeError):
                raise ValidationError(f"Subscription {subscription_id} not found")

            if not AccessControl.can_access_school(user, subscription.student.school):
                raise PermissionDenied("Subscription belongs to another school")

            try:
                new_package = SubscriptionPackage.objects.get(pk=new_package_id)
            except (SubscriptionPackage.DoesNotExist, ValueError, TypeError):
                raise ValidationError(f"Package {new_package_id} not found")
            if new_package.school_id and not AccessControl.can_access_school(user, new_package.school):
                raise PermissionDenied("Package belongs to another school")

            preview = SubscriptionService.preview_change(subscription, new_package, upgrade_date)
            proration = preview["proration"]

            adjustment = SubscriptionAdjustment.objects.create(
                subscription=subscription,
                change_type=preview["change_type"],
                from_package=subscription.package,
                to_package=new_package,
                upgrade_date=preview["upgrade_date"],
                credit_amount=proration["credit_amount"],
                net_amount=proration["net_amount"],
                proration=jsonable(proration),
                months_covered=preview["months_covered"],
                created_by=user,
            )

            subscription.package = new_package
            subscription.start_date = preview["new_start_date"]
            subscription.end_date = preview["new_end_date"]
            subscription.save()

            AuditLog.log_action(
                user=user,
                action="SUBSCRIPTION_CHANGE",
                model_name="StudentSubscription",
                object_id=subscription.pk,
                object_repr=str(subscription),
                changes={
                    "change_type": preview["change_type"],
                    "from_package_id": preview["from_package_id"],
                    "to_package_id": preview["to_package_id"],
                    "credit_amount": str(proration["credit_amount"]),
                    "net_amount": str(proration["net_amount"]),
                },
                ip_address=request.META.get("REMOTE_ADDR") if request else None,
                user_agent=request.META.get("HTTP_USER_AGENT") if request else None,
            )

        logger.info(
            f"Subscription {subscription.pk} {preview['change_type'].lower()}d to package "
            f"{new_package.pk}: credit {proration['credit_amount']}, net {proration['net_amount']}"
        )
        return adjustment

    @staticmethod
    def serialize_adjustment(adjustment: SubscriptionAdjustment) -> Dict[str, Any]:
        subscription = adjustment.subscription
        return {
            "id": adjustment.pk,
            "subscription_id": subscription.pk,
            "change_type": adjustment.change_type,
            "from_package_id": adjustment.from_package_id,
            "to_package_id": adjustment.to_package_id,
            "credit_amount": adjustment.credit_amount,
            "net_amount": adjustment.net_amount,
            "proration": adjustment.proration,
            "months_covered": adjustment.months_covered,
            "start_date": subscription.start_date.isoformat(),
            "end_date": subscription.end_date.isoformat(),
        }
