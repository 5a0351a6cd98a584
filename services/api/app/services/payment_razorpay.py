from __future__ import annotations

import hashlib
import hmac
import os
from dataclasses import dataclass

import httpx

from services.api.app.services.payment_base import (
    GatewayOrder,
    PaymentCallback,
    PaymentCancelledError,
    PaymentConfirmation,
    PaymentDeclinedError,
    PaymentGatewayConfigError,
    PaymentGatewayError,
    PaymentGatewayTimeoutError,
    PaymentRequest,
)


@dataclass(frozen=True, slots=True)
class _RazorpayConfig:
    key_id: str
    key_secret: str
    base_url: str
    timeout_seconds: float


class RazorpayGateway:
    """Razorpay orders API adapter.

    Flow: `create_payment` creates a Razorpay order server-side; the storefront opens the
    Razorpay checkout widget with it; the widget's handler posts back
    (order_id, payment_id, signature), which `verify_payment` checks with the key secret.

    Env vars:
    - ATELIER_PAYMENT_GATEWAY=razorpay
    - RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET (required)
    - RAZORPAY_BASE_URL (default: https://api.razorpay.com/v1)
    - ATELIER_GATEWAY_TIMEOUT_SECONDS (default: 15)
    """

    gateway = "RAZORPAY"

    def __init__(self, cfg: _RazorpayConfig, client: httpx.Client | None = None) -> None:
        self._cfg = cfg
        self._client = client

    @classmethod
    def from_env(cls) -> "RazorpayGateway":
        key_id = os.getenv("RAZORPAY_KEY_ID", "").strip()
        key_secret = os.getenv("RAZORPAY_KEY_SECRET", "").strip()
        if not key_id:
            raise PaymentGatewayConfigError("RAZORPAY_KEY_ID")
        if not key_secret:
            raise PaymentGatewayConfigError("RAZORPAY_KEY_SECRET")

        return cls(
            _RazorpayConfig(
                key_id=key_id,
                key_secret=key_secret,
                base_url=os.getenv("RAZORPAY_BASE_URL", "https://api.razorpay.com/v1").rstrip("/"),
                timeout_seconds=float(os.getenv("ATELIER_GATEWAY_TIMEOUT_SECONDS", "15")),
            )
        )

    def create_payment(self, request: PaymentRequest) -> GatewayOrder:
        body = {
            "amount": request.amount_minor,
            "currency": request.currency,
            "receipt": request.order_id,
            "notes": {k: v for k, v in request.customer.items() if v},
        }

        data = self._post("/orders", body)

        gateway_order_id = str(data.get("id") or "")
        if not gateway_order_id:
            raise PaymentGatewayError("Payment gateway returned no order id")

        return GatewayOrder(
            gateway_order_id=gateway_order_id,
            amount_minor=int(data.get("amount") or request.amount_minor),
            currency=str(data.get("currency") or request.currency),
            key_id=self._cfg.key_id,
        )

    def verify_payment(self, callback: PaymentCallback) -> PaymentConfirmation:
        if callback.status == "cancelled":
            raise PaymentCancelledError(callback.reason)
        if callback.status != "success":
            raise PaymentDeclinedError(callback.reason)

        if not callback.gateway_payment_id or not callback.signature:
            raise PaymentDeclinedError("Payment response is missing the payment id or signature")

        expected = hmac.new(
            self._cfg.key_secret.encode(),
            f"{callback.gateway_order_id}|{callback.gateway_payment_id}".encode(),
            hashlib.sha256,
        ).hexdigest()
        if not hmac.compare_digest(expected, callback.signature):
            raise PaymentDeclinedError("Payment signature verification failed")

        return PaymentConfirmation(
            gateway_order_id=callback.gateway_order_id,
            gateway_payment_id=callback.gateway_payment_id,
        )

    def _post(self, path: str, body: dict) -> dict:
        client = self._client or httpx.Client(
            base_url=self._cfg.base_url,
            auth=(self._cfg.key_id, self._cfg.key_secret),
            timeout=self._cfg.timeout_seconds,
        )
        try:
            resp = client.post(path, json=body)
        except httpx.TimeoutException as e:
            raise PaymentGatewayTimeoutError(self._cfg.timeout_seconds) from e
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Payment gateway unreachable: {e}") from e
        finally:
            if self._client is None:
                client.close()

        if resp.status_code >= 400:
            detail = _error_description(resp)
            raise PaymentGatewayError(f"Payment gateway error ({resp.status_code}): {detail}")

        return resp.json()


def _error_description(resp: httpx.Response) -> str:
    try:
        return str(resp.json().get("error", {}).get("description") or resp.text)
    except ValueError:
        return resp.text
