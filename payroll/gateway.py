from django.conf import settings
from decimal import Decimal
from typing import Any, Dict
import logging
import time

import requests

from .utils import payroll_setting

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    pass


class PaymentRejectedError(PaymentGatewayError):
    """4xx answer; the same request would be refused again."""


class PaymentGatewayClient:
    def __init__(self, api_url=None, api_key=None, currency=None, timeout=None):
        self.api_url = api_url if api_url is not None else settings.PAYMENT_API_URL
        self.api_key = api_key if api_key is not None else settings.PAYMENT_API_KEY
        self.currency = currency or settings.PAYMENT_CURRENCY
        self.timeout = timeout or settings.PAYMENT_API_TIMEOUT
        self.max_attempts = payroll_setting("GATEWAY_MAX_ATTEMPTS")
        self.backoff_seconds = payroll_setting("GATEWAY_BACKOFF_SECONDS")

    @property
    def is_configured(self):
        return bool(self.api_url)

    def build_payload(self, teacher, amount: Decimal, period: str) -> Dict[str, Any]:
        return {
            "recipient": {
                "id": str(teacher.pk),
                "name": teacher.display_name,
                "phone": teacher.phone or "",
                "email": teacher.email or "",
            },
            "amount": str(amount),
            "currency": self.currency,
            "reference": f"salary_{teacher.pk}_{period}",
            "description": f"Teacher salary for {period}",
        }

    def _send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = requests.post(
            self.api_url,
            json=payload,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
        )
        if response.status_code >= 500:
            raise PaymentGatewayError(
                f"Gateway returned status code: {response.status_code}"
            )
        if response.status_code >= 400:
            raise PaymentRejectedError(
                f"Gateway rejected the payment with status code: {response.status_code}"
            )
        try:
            return response.json()
        except ValueError:
            raise PaymentGatewayError("Gateway returned an invalid response")

    def process_salary_payment(self, teacher, amount: Decimal, period: str) -> Dict[str, Any]:
        if not self.is_configured:
            logger.error("Payment gateway is not configured")
            return {
                "success": False,
                "transaction_id": None,
                "message": "Payment gateway not configured",
            }

        payload = self.build_payload(teacher, amount, period)
        last_error = ""

        for attempt in range(1, self.max_attempts + 1):
            try:
                data = self._send(payload)
                transaction_id = (
                    data.get("transactionId")
                    or data.get("transaction_id")
                    or data.get("id")
                )
                logger.info(
                    f"Salary payment for teacher {teacher.pk} ({period}) processed on attempt {attempt}: {transaction_id}"
                )
                return {
                    "success": True,
                    "transaction_id": str(transaction_id) if transaction_id else None,
                    "message": data.get("message", "Payment processed"),
                }
            except PaymentRejectedError as e:
                logger.error(
                    f"Salary payment for teacher {teacher.pk} ({period}) rejected: {e}"
                )
                return {"success": False, "transaction_id": None, "message": str(e)}
            except (requests.RequestException, PaymentGatewayError) as e:
                last_error = str(e)
                logger.warning(
                    f"Salary payment attempt {attempt}/{self.max_attempts} for teacher {teacher.pk} failed: {last_error}"
                )
                if attempt < self.max_attempts:
                    time.sleep(self.backoff_seconds * attempt)

        logger.error(
            f"Salary payment for teacher {teacher.pk} ({period}) failed after {self.max_attempts} attempts"
        )
        return {"success": False, "transaction_id": None, "message": last_error}
