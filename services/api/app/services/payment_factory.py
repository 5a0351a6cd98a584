from __future__ import annotations

import os

from services.api.app.services.payment_base import PaymentGatewayAdapter
from services.api.app.services.payment_mock import MockPaymentGateway


def get_payment_gateway() -> PaymentGatewayAdapter:
    """Select the payment gateway based on env vars.

    Defaults to the mock gateway so tests and local dev never reach a real payment provider
    unless explicitly configured.
    """

    mode = os.getenv("ATELIER_PAYMENT_GATEWAY", "mock").strip().lower()

    if mode == "mock":
        outcome = os.getenv("ATELIER_MOCK_GATEWAY_OUTCOME", "success").strip().lower()
        return MockPaymentGateway(outcome=outcome)

    if mode == "razorpay":
        from services.api.app.services.payment_razorpay import RazorpayGateway

        return RazorpayGateway.from_env()

    raise ValueError(f"Unknown ATELIER_PAYMENT_GATEWAY={mode!r}. Expected mock or razorpay.")
