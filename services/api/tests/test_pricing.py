from __future__ import annotations

from decimal import Decimal

import pytest
from services.api.app.services.cart import Cart, Product
from services.api.app.services.money import round_money
from services.api.app.services.pricing import PaymentMethod, price
from services.api.app.services.settings import CommerceSettings

D = Decimal


def _cart(*prices: str) -> Cart:
    cart = Cart()
    for idx, unit_price in enumerate(prices):
        cart.add(Product(product_id=f"p-{idx}", name=f"Item {idx}", unit_price=D(unit_price)))
    return cart


def _settings(**overrides: object) -> CommerceSettings:
    values = {
        "tax_rate": D("5"),
        "delivery_charge": D("50"),
        "free_delivery_threshold": D("1500"),
        "cod_enabled": True,
        "cod_charge": D("20"),
        "cod_threshold": D("5000"),
    }
    values.update(overrides)
    return CommerceSettings(**values)


def test_cod_happy_path_breakdown() -> None:
    priced = price(_cart("1200").lines, _settings(), PaymentMethod.COD)

    assert priced.subtotal == D("1200")
    assert priced.tax == D("60")
    assert priced.delivery_fee == D("50")
    assert priced.cod_fee == D("20")
    assert priced.discount == D("0")
    assert priced.total == D("1330")
    assert priced.is_cod_eligible is True
    assert priced.is_min_order_met is True


def test_fixed_coupon_with_free_delivery() -> None:
    settings = _settings(tax_rate=D("0"))
    priced = price(_cart("1200", "800").lines, settings, PaymentMethod.ONLINE, D("300"))

    assert priced.subtotal == D("2000")
    assert priced.delivery_fee == D("0")
    assert priced.cod_fee == D("0")
    assert priced.total == D("1700")


def test_online_never_charges_cod_fee() -> None:
    priced = price(_cart("1200").lines, _settings(), "online")
    assert priced.cod_fee == D("0")
    assert priced.total == D("1310")


@pytest.mark.parametrize(
    ("subtotal", "expected_fee"),
    [("1499.99", D("50")), ("1500", D("0")), ("1500.01", D("0"))],
)
def test_free_delivery_threshold_is_inclusive(subtotal: str, expected_fee: Decimal) -> None:
    priced = price(_cart(subtotal).lines, _settings(), PaymentMethod.ONLINE)
    assert priced.delivery_fee == expected_fee


def test_zero_threshold_means_no_free_delivery() -> None:
    priced = price(_cart("100000").lines, _settings(free_delivery_threshold=D("0")), "online")
    assert priced.delivery_fee == D("50")


@pytest.mark.parametrize(
    ("cod_threshold", "eligible"),
    [("1330", True), ("1329.99", False), ("1330.01", True)],
)
def test_cod_threshold_is_inclusive(cod_threshold: str, eligible: bool) -> None:
    settings = _settings(cod_threshold=D(cod_threshold))
    priced = price(_cart("1200").lines, settings, PaymentMethod.COD)
    assert priced.total == D("1330")
    assert priced.is_cod_eligible is eligible


def test_cod_disabled_is_never_eligible() -> None:
    priced = price(_cart("100").lines, _settings(cod_enabled=False), PaymentMethod.COD)
    assert priced.is_cod_eligible is False


def test_min_order_shortfall() -> None:
    priced = price(_cart("200").lines, _settings(min_order_amount=D("500")), "online")
    assert priced.is_min_order_met is False
    assert priced.min_order_shortfall == D("300")

    met = price(_cart("500").lines, _settings(min_order_amount=D("500")), "online")
    assert met.is_min_order_met is True
    assert met.min_order_shortfall == D("0")


def test_max_order_only_enforced_when_configured() -> None:
    lines = _cart("3000").lines
    assert price(lines, _settings(), "online").is_max_order_exceeded is False
    assert price(lines, _settings(max_order_amount=D("2000")), "online").is_max_order_exceeded


@pytest.mark.parametrize("subtotal", ["0.01", "99.99", "1200", "1499.99", "1500", "7333.33"])
@pytest.mark.parametrize("tax_rate", ["0", "5", "12.5", "18"])
@pytest.mark.parametrize("method", [PaymentMethod.ONLINE, PaymentMethod.COD])
@pytest.mark.parametrize("discount", ["0", "150", "999999"])
def test_total_is_sum_of_parts_and_never_negative(
    subtotal: str, tax_rate: str, method: PaymentMethod, discount: str
) -> None:
    priced = price(_cart(subtotal).lines, _settings(tax_rate=D(tax_rate)), method, D(discount))

    gross = priced.subtotal + priced.tax + priced.delivery_fee + priced.cod_fee
    assert priced.total == gross - priced.discount
    assert priced.total >= 0
    assert priced.discount <= gross

    shown = priced.rounded()
    shown_gross = shown.subtotal + shown.tax + shown.delivery_fee + shown.cod_fee
    assert shown.total == shown_gross - shown.discount
    assert shown.total >= 0


def test_discount_larger_than_order_zeroes_total() -> None:
    priced = price(_cart("100").lines, _settings(), PaymentMethod.ONLINE, D("5000"))
    assert priced.total == D("0")
    assert priced.discount == D("155")


def test_negative_discount_is_ignored() -> None:
    priced = price(_cart("100").lines, _settings(), PaymentMethod.ONLINE, D("-40"))
    assert priced.discount == D("0")


def test_pricing_is_idempotent() -> None:
    lines = _cart("1200", "349.50").lines
    settings = _settings(tax_rate=D("18"))
    assert price(lines, settings, "cod", D("75")) == price(lines, settings, "cod", D("75"))


def test_rounding_is_half_up_at_the_edge() -> None:
    settings = _settings(tax_rate=D("12.5"), delivery_charge=D("0"))
    priced = price(_cart("1.00").lines, settings, PaymentMethod.ONLINE)

    assert priced.tax == D("0.125")
    assert priced.rounded().tax == D("0.13")
    assert round_money(D("2.675")) == D("2.68")


def test_quantity_multiplies_into_subtotal() -> None:
    cart = Cart()
    cart.add(Product(product_id="tee", name="Tee", unit_price=D("400")), quantity=3)
    priced = price(cart.lines, _settings(tax_rate=D("0")), PaymentMethod.ONLINE)
    assert priced.subtotal == D("1200")


def test_cod_eligibility_uses_the_displayed_total() -> None:
    settings = _settings(
        tax_rate=D("0"), delivery_charge=D("0"), cod_charge=D("0"), cod_threshold=D("5000")
    )
    priced = price(_cart("5000.004").lines, settings, PaymentMethod.COD)

    assert priced.rounded().total == D("5000.00")
    assert priced.is_cod_eligible is True
