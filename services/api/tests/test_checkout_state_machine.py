from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from services.api.app.services.cart import Cart, Product
from services.api.app.services.checkout import (
    AddressDetails,
    CheckoutStateMachine,
    CheckoutStep,
    CustomerInfo,
)
from services.api.app.services.coupons import Coupon, DiscountType
from services.api.app.services.errors import CheckoutStateError, CheckoutValidationError
from services.api.app.services.payment_base import GatewayOrder
from services.api.app.services.settings import CommerceSettings

D = Decimal
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

SETTINGS = CommerceSettings(
    tax_rate=D("5"),
    delivery_charge=D("50"),
    free_delivery_threshold=D("1500"),
    cod_enabled=True,
    cod_charge=D("20"),
    cod_threshold=D("5000"),
    min_order_amount=D("500"),
)

CONTACT = CustomerInfo(name="Asha Rao", email="asha@example.in", phone="+91 98765 43210")
ADDRESS = AddressDetails(
    plot_number="12B",
    building_name="Lotus Residency",
    street="MG Road",
    landmark="City Mall",
    city="Bengaluru",
    state="Karnataka",
    pincode="560001",
)


def _cart(unit_price: str = "1200") -> Cart:
    cart = Cart()
    cart.add(Product(product_id="tee", name="Linen Tee", unit_price=D(unit_price)), "M")
    return cart


def _machine(settings: CommerceSettings = SETTINGS) -> CheckoutStateMachine:
    return CheckoutStateMachine(settings, clock=lambda: NOW)


def _walk_to_summary(machine: CheckoutStateMachine, cart: Cart) -> None:
    machine.update_contact(CONTACT)
    machine.advance(cart.lines)
    machine.update_address(ADDRESS, use_existing_address=False)
    machine.advance(cart.lines)
    machine.advance(cart.lines)


def test_starts_at_contact_info() -> None:
    assert _machine().step is CheckoutStep.CONTACT_INFO


def test_walks_all_steps_with_valid_data() -> None:
    machine, cart = _machine(), _cart()
    _walk_to_summary(machine, cart)
    assert machine.step is CheckoutStep.SUMMARY


def test_contact_gate_reports_first_problem() -> None:
    machine, cart = _machine(), _cart()
    with pytest.raises(CheckoutValidationError) as exc:
        machine.advance(cart.lines)

    assert exc.value.reason == "Name is required."
    assert exc.value.step == CheckoutStep.CONTACT_INFO
    assert machine.step is CheckoutStep.CONTACT_INFO


@pytest.mark.parametrize(
    ("info", "reason"),
    [
        (CustomerInfo(name="A", email="a@b.in", phone="9876543210"), "Name must be at least 2"),
        (CustomerInfo(name="Asha", email="asha@", phone="9876543210"), "valid email"),
        (CustomerInfo(name="Asha", email="a@b.in", phone="98765"), "must be 10 digits"),
    ],
)
def test_contact_gate_rejects_bad_fields(info: CustomerInfo, reason: str) -> None:
    machine, cart = _machine(), _cart()
    machine.update_contact(info)
    with pytest.raises(CheckoutValidationError, match=reason):
        machine.advance(cart.lines)


def test_jump_past_failing_gate_is_rejected() -> None:
    machine, cart = _machine(), _cart()
    machine.update_contact(CONTACT)

    with pytest.raises(CheckoutValidationError) as exc:
        machine.go_to(CheckoutStep.PAYMENT, cart.lines)

    assert exc.value.reason == "Please fill in city, state, and pincode."
    assert exc.value.step == CheckoutStep.ADDRESS_DETAILS
    assert machine.step is CheckoutStep.CONTACT_INFO


def test_back_navigation_preserves_entered_data() -> None:
    machine, cart = _machine(), _cart()
    _walk_to_summary(machine, cart)

    machine.back()
    machine.back()
    assert machine.step is CheckoutStep.ADDRESS_DETAILS
    assert machine.draft.address_details == ADDRESS
    assert machine.draft.customer_info == CONTACT

    machine.go_to(CheckoutStep.CONTACT_INFO, cart.lines)
    machine.go_to(CheckoutStep.SUMMARY, cart.lines)
    assert machine.step is CheckoutStep.SUMMARY


def test_back_at_first_step_stays_put() -> None:
    machine = _machine()
    assert machine.back() is CheckoutStep.CONTACT_INFO


def test_slices_for_unreached_steps_cannot_be_edited() -> None:
    machine = _machine()
    with pytest.raises(CheckoutStateError):
        machine.update_address(ADDRESS, use_existing_address=False)
    with pytest.raises(CheckoutStateError):
        machine.select_payment_method("cod")


def test_existing_address_skips_street_fields() -> None:
    machine, cart = _machine(), _cart()
    machine.update_contact(CONTACT)
    machine.advance(cart.lines)
    machine.update_address(
        AddressDetails(city="Pune", state="Maharashtra", pincode="411001"),
        use_existing_address=True,
    )
    assert machine.advance(cart.lines) is CheckoutStep.PAYMENT


def test_other_address_type_needs_a_name() -> None:
    machine, cart = _machine(), _cart()
    machine.update_contact(CONTACT)
    machine.advance(cart.lines)
    machine.update_address(
        AddressDetails(
            plot_number="1",
            street="Park St",
            city="Kolkata",
            state="West Bengal",
            pincode="700016",
            address_type="other",
        ),
        use_existing_address=False,
    )
    with pytest.raises(CheckoutValidationError, match="name this address"):
        machine.advance(cart.lines)


def test_empty_cart_cannot_advance() -> None:
    machine = _machine()
    machine.update_contact(CONTACT)
    with pytest.raises(CheckoutStateError, match="Cart is empty"):
        machine.advance(())


def test_minimum_order_blocks_forward_moves() -> None:
    machine, cart = _machine(), _cart("200")
    machine.update_contact(CONTACT)

    with pytest.raises(CheckoutValidationError) as exc:
        machine.advance(cart.lines)

    assert exc.value.reason == (
        "Minimum order amount is ₹500.00. Please add more items to your cart."
    )


def test_cod_above_threshold_blocks_payment_step() -> None:
    settings = CommerceSettings(
        cod_enabled=True, cod_charge=D("20"), cod_threshold=D("1000"), delivery_charge=D("50")
    )
    machine, cart = _machine(settings), _cart()
    machine.update_contact(CONTACT)
    machine.advance(cart.lines)
    machine.update_address(ADDRESS, use_existing_address=False)
    machine.advance(cart.lines)
    machine.select_payment_method("cod")

    with pytest.raises(CheckoutValidationError) as exc:
        machine.advance(cart.lines)

    assert exc.value.reason == (
        "Cash on Delivery is not available for orders above ₹1000.00. "
        "Please choose online payment."
    )
    assert machine.step is CheckoutStep.PAYMENT


def test_advance_from_summary_is_a_state_error() -> None:
    machine, cart = _machine(), _cart()
    _walk_to_summary(machine, cart)
    with pytest.raises(CheckoutStateError):
        machine.advance(cart.lines)


def test_placement_only_from_summary() -> None:
    machine, cart = _machine(), _cart()
    with pytest.raises(CheckoutStateError):
        machine.validate_for_placement(cart.lines)


def test_placement_returns_current_pricing() -> None:
    machine, cart = _machine(), _cart()
    _walk_to_summary(machine, cart)
    machine.back()
    machine.select_payment_method("cod")
    machine.advance(cart.lines)

    priced = machine.validate_for_placement(cart.lines)
    assert priced.total == D("1330")


def test_coupon_is_revalidated_when_cart_changes() -> None:
    coupon = Coupon(
        id="c-1",
        code="BIG100",
        discount_type=DiscountType.FIXED,
        discount_value=D("100"),
        min_order_amount=D("1000"),
    )
    machine, cart = _machine(), _cart()

    result = machine.apply_coupon("big100", coupon, cart.lines)
    assert result.valid
    assert machine.price(cart.lines).discount == D("100")

    _walk_to_summary(machine, cart)

    cart.update_quantity("tee", 0, "M")
    cart.add(Product(product_id="cap", name="Cap", unit_price=D("600")))

    assert machine.price(cart.lines).discount == D("0")
    with pytest.raises(CheckoutValidationError, match="Minimum order of ₹1000.00"):
        machine.validate_for_placement(cart.lines)


def test_rejected_coupon_keeps_previous_one() -> None:
    good = Coupon(id="c-1", code="TEN", discount_type=DiscountType.FIXED, discount_value=D("10"))
    machine, cart = _machine(), _cart()

    machine.apply_coupon("TEN", good, cart.lines)
    rejected = machine.apply_coupon("NOPE", None, cart.lines)

    assert rejected.valid is False
    assert machine.draft.applied_coupon is good

    machine.remove_coupon()
    assert machine.draft.applied_coupon is None


def test_placement_rechecks_online_payment_availability() -> None:
    machine, cart = _machine(), _cart()
    _walk_to_summary(machine, cart)
    machine.settings = replace(SETTINGS, online_payment_enabled=False)

    with pytest.raises(CheckoutValidationError) as exc:
        machine.validate_for_placement(cart.lines)

    assert exc.value.reason == "Online payment is currently not available."


def test_slice_edits_drop_the_pending_payment() -> None:
    machine, cart = _machine(), _cart()
    _walk_to_summary(machine, cart)
    machine.draft.pending_order_number = "SS1717243200000123"
    machine.draft.pending_payment = GatewayOrder(
        gateway_order_id="order_1", amount_minor=131000, currency="INR"
    )

    machine.update_address(replace(ADDRESS, city="Pune"), use_existing_address=False)

    assert not machine.draft.awaiting_payment
    assert machine.draft.pending_order is None
    assert machine.draft.pending_order_number == "SS1717243200000123"
