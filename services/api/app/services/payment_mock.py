from __future__ import annotations

from uuid import uuid4

from services.api.app.services.payment_base import (
    GatewayOrder,
    PaymentCallback,
    PaymentCancelledError,
    PaymentConfirmation,
    PaymentDeclinedError,
    PaymentRequest,
)

OUTCOMES = ("success", "decline", "cancel")


class MockPaymentGateway:
    """Deterministic gateway for local dev and tests.

    A non-success `outcome` makes every verification fail that way, whatever the callback says.
    """

    gateway = "MOCK_GATEWAY"

    def __init__(self, outcome: str = "success") -> None:
        if outcome not in OUTCOMES:
            raise ValueError(f"Unknown mock gateway outcome {outcome!r}. Expected {OUTCOMES}.")
        self._outcome = outcome

    def create_payment(self, request: PaymentRequest) -> GatewayOrder:
        return GatewayOrder(
            gateway_order_id=f"order_mock_{uuid4().hex[:12]}",
            amount_minor=request.amount_minor,
            currency=request.currency,
            key_id="mock_key",
        )

    def verify_payment(self, callback: PaymentCallback) -> PaymentConfirmation:
        if self._outcome == "cancel" or callback.status == "cancelled":
            raise PaymentCancelledError(callback.reason)
        if self._outcome == "decline" or callback.status != "success":
            raise PaymentDeclinedError(callback.reason or "Payment was declined by the bank.")

        return PaymentConfirmation(
            gateway_order_id=callback.gateway_order_id,
            gateway_payment_id=callback.gateway_payment_id or f"pay_mock_{uuid4().hex[:12]}",
        )
