import logging

import razorpay
import requests
from razorpay.errors import BadRequestError, GatewayError, ServerError
from fastapi import Request

from storefront.config import Settings
from storefront.errors import ExternalServiceError

logger = logging.getLogger(__name__)

CURRENCY = "INR"

_GATEWAY_ERRORS = (
    BadRequestError,
    GatewayError,
    ServerError,
    requests.RequestException,
)


def to_paise(amount: float) -> int:
    return int(round(amount * 100))


def to_rupees(paise: int) -> float:
    return round(paise / 100, 2)


class RazorpayGateway:
    """
    Thin wrapper over the Razorpay SDK: order create, payment fetch,
    capture and refund. Amounts crossing this boundary are in paise.
    """

    def __init__(self, settings: Settings):
        self.configured = bool(settings.razorpay_key_id and settings.razorpay_key_secret)
        self.client = (
            razorpay.Client(auth=(settings.razorpay_key_id, settings.razorpay_key_secret))
            if self.configured
            else None
        )

    def _call(self, operation: str, fn) -> dict:
        if not self.configured:
            raise ExternalServiceError("payment", "Payment gateway is not configured.")
        try:
            return fn()
        except _GATEWAY_ERRORS as e:
            logger.error("Razorpay %s failed | error=%s", operation, str(e))
            raise ExternalServiceError(
                "payment", f"Payment gateway error: {e}", status_code=502
            )

    def create_order(self, amount: int, receipt: str) -> dict:
        return self._call(
            "order.create",
            lambda: self.client.order.create(
                data={"amount": amount, "currency": CURRENCY, "receipt": receipt}
            ),
        )

    def fetch_payment(self, payment_id: str) -> dict:
        return self._call("payment.fetch", lambda: self.client.payment.fetch(payment_id))

    def capture_payment(self, payment_id: str, amount: int) -> dict:
        return self._call(
            "payment.capture",
            lambda: self.client.payment.capture(
                payment_id, amount, data={"currency": CURRENCY}
            ),
        )

    def refund_payment(self, payment_id: str, amount: int) -> dict:
        return self._call(
            "payment.refund",
            lambda: self.client.payment.refund(payment_id, amount),
        )


def get_payment_gateway(request: Request) -> RazorpayGateway:
    return request.app.state.payment_gateway
