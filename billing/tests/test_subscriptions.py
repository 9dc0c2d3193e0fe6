import json
import pytest
from datetime import datetime
from decimal import Decimal
from django.core.exceptions import PermissionDenied, ValidationError
from django.utils import timezone

from accounts.models import AuditLog
from billing.models import StudentSubscription, SubscriptionAdjustment, SubscriptionPackage
from billing.services import SubscriptionService
from students.models import Student


def aware(*args):
    return timezone.make_aware(datetime(*args))


@pytest.fixture
def packages(db, school):
    quarterly = SubscriptionPackage.objects.create(name="Quarterly", price=Decimal("150"), duration_months=3)
    extended = SubscriptionPackage.objects.create(
        name="Extended", price=Decimal("300"), duration_months=5, school=school
    )
    return quarterly, extended


@pytest.fixture
def subscription(school, packages):
    pupil = Student.objects.create(name="Maryam", school=school)
    return StudentSubscription.objects.create(
        student=pupil, package=packages[0], start_date=aware(2024, 1, 1), end_date=aware(2024, 3, 31)
    )


@pytest.mark.django_db
def test_apply_upgrade_moves_subscription_and_records_adjustment(admin_user, subscription, packages):
    adjustment = SubscriptionService.apply_change(
        admin_user, subscription.pk, packages[1].pk, upgrade_date=aware(2024, 2, 1, 9, 30)
    )

    assert adjustment.change_type == "UPGRADE"
    assert adjustment.credit_amount == Decimal("98.33")
    assert adjustment.net_amount == Decimal("201.67")
    assert adjustment.proration["days_used"] == 31
    assert adjustment.proration["credit_amount"] == "98.33"
    assert adjustment.months_covered == [
        "2024-02", "2024-03", "2024-04", "2024-05", "2024-06", "2024-07"
    ]

    subscription.refresh_from_db()
    assert subscription.package == packages[1]
    assert subscription.start_date == aware(2024, 2, 1)
    assert subscription.end_date == aware(2024, 7, 1, 23, 59, 59, 999999)

    audit = AuditLog.objects.get(action="SUBSCRIPTION_CHANGE")
    assert audit.changes["net_amount"] == "201.67"


@pytest.mark.django_db
def test_registral_can_change_subscriptions(registral_user, subscription, packages):
    SubscriptionService.apply_change(registral_user, subscription.pk, packages[1].pk)

    assert SubscriptionAdjustment.objects.count() == 1


@pytest.mark.django_db
def test_teacher_cannot_change_subscriptions(teacher_user, subscription, packages):
    with pytest.raises(PermissionDenied):
        SubscriptionService.apply_change(teacher_user, subscription.pk, packages[1].pk)


@pytest.mark.django_db
def test_other_school_cannot_change_subscription(db, other_school, subscription, packages):
    from django.contrib.auth import get_user_model

    outsider = get_user_model().objects.create_user(
        username="outsider", password="pass", role="ADMIN", school=other_school
    )

    with pytest.raises(PermissionDenied):
        SubscriptionService.apply_change(outsider, subscription.pk, packages[1].pk)


@pytest.mark.django_db
def test_same_package_is_rejected(admin_user, subscription, packages):
    with pytest.raises(ValidationError):
        SubscriptionService.apply_change(admin_user, subscription.pk, packages[0].pk)


@pytest.mark.django_db
def test_cancelled_subscription_cannot_change(admin_user, subscription, packages):
    subscription.status = "CANCELLED"
    subscription.save()

    with pytest.raises(ValidationError):
        SubscriptionService.apply_change(admin_user, subscription.pk, packages[1].pk)

    assert not SubscriptionAdjustment.objects.exists()


@pytest.mark.django_db
def test_currency_mismatch_is_rejected(admin_user, subscription):
    dollars = SubscriptionPackage.objects.create(
        name="Intl", price=Decimal("40"), duration_months=3, currency="USD"
    )

    with pytest.raises(ValidationError):
        SubscriptionService.apply_change(admin_user, subscription.pk, dollars.pk)


@pytest.mark.django_db
def test_missing_subscription_is_rejected(admin_user, packages):
    with pytest.raises(ValidationError):
        SubscriptionService.apply_change(admin_user, 9999, packages[1].pk)


@pytest.mark.django_db
def test_proration_preview_endpoint(admin_client):
    resp = admin_client.post(
        "/api/billing/proration",
        data=json.dumps(
            {
                "currentPrice": 150,
                "currentDuration": 3,
                "newPrice": 300,
                "newDuration": 5,
                "originalStartDate": "2024-01-01T00:00:00Z",
                "upgradeDate": "2024-02-01T00:00:00Z",
            }
        ),
        content_type="application/json",
    )

    assert resp.status_code == 200
    assert resp.json()["credit_amount"] == "98.33"
    assert resp.json()["net_amount"] == "201.67"


@pytest.mark.django_db
def test_proration_preview_requires_prices(admin_client):
    resp = admin_client.post(
        "/api/billing/proration", data=json.dumps({"currentPrice": 150}), content_type="application/json"
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "currentDuration is required"


@pytest.mark.django_db
def test_subscription_change_endpoint(admin_client, subscription, packages):
    resp = admin_client.post(
        f"/api/billing/subscriptions/{subscription.pk}/change",
        data=json.dumps({"newPackageId": packages[1].pk, "upgradeDate": "2024-02-01T09:30:00Z"}),
        content_type="application/json",
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["adjustment"]["change_type"] == "UPGRADE"
    assert body["adjustment"]["credit_amount"] == "98.33"
