from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from services.api.app.services.errors import ExternalFailure


class PaymentGatewayError(ExternalFailure):
    """Base class for payment gateway errors."""


class PaymentGatewayConfigError(PaymentGatewayError):
    def __init__(self, missing: str) -> None:
        super().__init__(f"Payment gateway is not configured: {missing} is required")
        self.missing = missing


class PaymentGatewayTimeoutError(PaymentGatewayError):
    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            f"Payment gateway did not respond within {timeout_seconds:g}s. Please try again."
        )
        self.timeout_seconds = timeout_seconds


class PaymentDeclinedError(PaymentGatewayError):
    def __init__(self, reason: str) -> None:
        super().__init__(reason or "Payment was declined. Please try again.")
        self.reason = reason


class PaymentCancelledError(PaymentGatewayError):
    def __init__(self, reason: str = "") -> None:
        super().__init__(reason or "Payment was cancelled. Please try again.")
        self.reason = reason


@dataclass(frozen=True, slots=True)
class PaymentRequest:
    order_id: str
    amount_minor: int
    currency: str
    customer: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GatewayOrder:
    gateway_order_id: str
    amount_minor: int
    currency: str
    # Public key for the client-side checkout widget, when the gateway has one.
    key_id: str | None = None


@dataclass(frozen=True, slots=True)
class PaymentCallback:
    gateway_order_id: str
    gateway_payment_id: str | None = None
    signature: str | None = None
    status: str = "success"
    reason: str = ""


@dataclass(frozen=True, slots=True)
class PaymentConfirmation:
    gateway_order_id: str
    gateway_payment_id: str


class PaymentGatewayAdapter(Protocol):
    gateway: str

    def create_payment(self, request: PaymentRequest) -> GatewayOrder: ...

    def verify_payment(self, callback: PaymentCallback) -> PaymentConfirmation: ...
