from __future__ import annotations

import hashlib
import hmac
import json

import httpx
import pytest
from services.api.app.services.payment_base import (
    PaymentCallback,
    PaymentCancelledError,
    PaymentDeclinedError,
    PaymentGatewayConfigError,
    PaymentGatewayError,
    PaymentGatewayTimeoutError,
    PaymentRequest,
)
from services.api.app.services.payment_factory import get_payment_gateway
from services.api.app.services.payment_mock import MockPaymentGateway
from services.api.app.services.payment_razorpay import RazorpayGateway, _RazorpayConfig

REQUEST = PaymentRequest(
    order_id="SS1717243200000123",
    amount_minor=131000,
    currency="INR",
    customer={"name": "Asha Rao", "email": "asha@example.in", "phone": ""},
)


def test_get_payment_gateway_defaults_to_mock(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ATELIER_PAYMENT_GATEWAY", raising=False)
    assert get_payment_gateway().gateway == "MOCK_GATEWAY"


def test_get_payment_gateway_rejects_unknown(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ATELIER_PAYMENT_GATEWAY", "nope")
    with pytest.raises(ValueError, match="Unknown ATELIER_PAYMENT_GATEWAY"):
        get_payment_gateway()


def test_razorpay_requires_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ATELIER_PAYMENT_GATEWAY", "razorpay")
    monkeypatch.delenv("RAZORPAY_KEY_ID", raising=False)
    monkeypatch.delenv("RAZORPAY_KEY_SECRET", raising=False)
    with pytest.raises(PaymentGatewayConfigError, match="RAZORPAY_KEY_ID"):
        get_payment_gateway()


def test_razorpay_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ATELIER_PAYMENT_GATEWAY", "razorpay")
    monkeypatch.setenv("RAZORPAY_KEY_ID", "rzp_test_key")
    monkeypatch.setenv("RAZORPAY_KEY_SECRET", "secret")
    assert get_payment_gateway().gateway == "RAZORPAY"


def test_mock_gateway_outcomes() -> None:
    order = MockPaymentGateway().create_payment(REQUEST)
    assert order.amount_minor == 131000
    assert order.gateway_order_id.startswith("order_mock_")

    ok = MockPaymentGateway().verify_payment(
        PaymentCallback(gateway_order_id=order.gateway_order_id, gateway_payment_id="pay_1")
    )
    assert ok.gateway_payment_id == "pay_1"

    with pytest.raises(PaymentDeclinedError):
        MockPaymentGateway("decline").verify_payment(PaymentCallback(gateway_order_id="o"))
    with pytest.raises(PaymentCancelledError):
        MockPaymentGateway("cancel").verify_payment(PaymentCallback(gateway_order_id="o"))
    with pytest.raises(PaymentCancelledError):
        MockPaymentGateway().verify_payment(
            PaymentCallback(gateway_order_id="o", status="cancelled")
        )


def test_mock_gateway_rejects_unknown_outcome() -> None:
    with pytest.raises(ValueError):
        MockPaymentGateway("maybe")


def _razorpay(handler) -> RazorpayGateway:
    cfg = _RazorpayConfig(
        key_id="rzp_test_key",
        key_secret="secret",
        base_url="https://rzp.test/v1",
        timeout_seconds=15,
    )
    client = httpx.Client(base_url=cfg.base_url, transport=httpx.MockTransport(handler))
    return RazorpayGateway(cfg, client=client)


def test_razorpay_create_payment_posts_order() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "order_abc", "amount": 131000, "currency": "INR"})

    order = _razorpay(handler).create_payment(REQUEST)

    assert seen["path"] == "/v1/orders"
    assert seen["body"] == {
        "amount": 131000,
        "currency": "INR",
        "receipt": "SS1717243200000123",
        "notes": {"name": "Asha Rao", "email": "asha@example.in"},
    }
    assert order.gateway_order_id == "order_abc"
    assert order.key_id == "rzp_test_key"


def test_razorpay_error_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        del request
        return httpx.Response(400, json={"error": {"description": "amount too small"}})

    with pytest.raises(PaymentGatewayError, match=r"\(400\): amount too small"):
        _razorpay(handler).create_payment(REQUEST)


def test_razorpay_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(PaymentGatewayTimeoutError):
        _razorpay(handler).create_payment(REQUEST)


def test_razorpay_signature_check() -> None:
    gateway = _razorpay(lambda request: httpx.Response(500))
    signature = hmac.new(b"secret", b"order_abc|pay_xyz", hashlib.sha256).hexdigest()

    confirmed = gateway.verify_payment(
        PaymentCallback(
            gateway_order_id="order_abc", gateway_payment_id="pay_xyz", signature=signature
        )
    )
    assert confirmed.gateway_payment_id == "pay_xyz"

    with pytest.raises(PaymentDeclinedError, match="signature"):
        gateway.verify_payment(
            PaymentCallback(
                gateway_order_id="order_abc", gateway_payment_id="pay_xyz", signature="bad"
            )
        )
