"""Checkout steps and their gates.

Contact info -> Address details -> Payment -> Summary. Forward moves re-run every gate they
cross; backward moves are always allowed and never discard entered data.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import TYPE_CHECKING

from services.api.app.services.cart import CartLine
from services.api.app.services.coupons import Coupon, CouponValidation, validate_coupon
from services.api.app.services.errors import CheckoutStateError, CheckoutValidationError
from services.api.app.services.money import ZERO
from services.api.app.services.pricing import PaymentMethod, PricedOrder, price, subtotal_of
from services.api.app.services.settings import CommerceSettings
from services.api.app.services.validation import (
    validate_address_details,
    validate_contact_info,
    validate_location,
    validate_payment_method,
)

if TYPE_CHECKING:
    from services.api.app.services.orders import OrderRecord
    from services.api.app.services.payment_base import GatewayOrder


class CheckoutStep(IntEnum):
    CONTACT_INFO = 1
    ADDRESS_DETAILS = 2
    PAYMENT = 3
    SUMMARY = 4


STEP_TITLES = {
    CheckoutStep.CONTACT_INFO: "Contact Info",
    CheckoutStep.ADDRESS_DETAILS: "Address Details",
    CheckoutStep.PAYMENT: "Payment",
    CheckoutStep.SUMMARY: "Order Summary",
}


@dataclass
class CustomerInfo:
    name: str = ""
    email: str = ""
    phone: str = ""


@dataclass
class AddressDetails:
    plot_number: str = ""
    building_name: str = ""
    street: str = ""
    landmark: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    address_type: str = "home"
    save_as: str = ""

    def complete_address(self) -> str:
        parts = [self.plot_number]
        if self.building_name:
            parts.append(self.building_name)
        parts.append(self.street)
        if self.landmark:
            parts.append(f"Near {self.landmark}")
        parts.append(self.city)
        head = ", ".join(p for p in parts if p)
        return f"{head}, {self.state} - {self.pincode}"


@dataclass
class CheckoutDraft:
    customer_info: CustomerInfo = field(default_factory=CustomerInfo)
    address_details: AddressDetails = field(default_factory=AddressDetails)
    use_existing_address: bool = False
    payment_method: PaymentMethod = PaymentMethod.ONLINE
    applied_coupon: Coupon | None = None
    current_step: CheckoutStep = CheckoutStep.CONTACT_INFO

    # Submission bookkeeping, owned by the order assembler.
    pending_order_number: str | None = None
    submission_in_flight: bool = False
    pending_order: OrderRecord | None = None
    pending_payment: GatewayOrder | None = None

    @property
    def awaiting_payment(self) -> bool:
        return self.pending_payment is not None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckoutStateMachine:
    """Owns one checkout attempt: the draft, the settings snapshot and the step gates.

    The machine never reads the cart on its own; every call that needs pricing takes the
    current cart lines so results are a function of explicit inputs.
    """

    def __init__(
        self,
        settings: CommerceSettings,
        draft: CheckoutDraft | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings
        self.draft = draft or CheckoutDraft()
        self._clock = clock

    @property
    def step(self) -> CheckoutStep:
        return self.draft.current_step

    def now(self) -> datetime:
        return self._clock()

    # Pricing

    def coupon_status(self, cart_lines: Sequence[CartLine]) -> CouponValidation | None:
        coupon = self.draft.applied_coupon
        if coupon is None:
            return None
        return validate_coupon(
            coupon.code,
            subtotal_of(cart_lines),
            coupon,
            now=self.now(),
            cart_product_ids={line.product_id for line in cart_lines},
            currency_symbol=self.settings.currency_symbol,
        )

    def price(self, cart_lines: Sequence[CartLine]) -> PricedOrder:
        status = self.coupon_status(cart_lines)
        discount = status.discount_amount if status is not None and status.valid else ZERO
        return price(cart_lines, self.settings, self.draft.payment_method, discount)

    # Slice updates

    def update_contact(self, info: CustomerInfo) -> None:
        self._require_reached(CheckoutStep.CONTACT_INFO)
        self.draft.customer_info = info
        self.discard_pending_payment()

    def update_address(self, details: AddressDetails, *, use_existing_address: bool) -> None:
        self._require_reached(CheckoutStep.ADDRESS_DETAILS)
        self.draft.address_details = details
        self.draft.use_existing_address = use_existing_address
        self.discard_pending_payment()

    def select_payment_method(self, method: PaymentMethod | str) -> None:
        self._require_reached(CheckoutStep.PAYMENT)
        self.draft.payment_method = PaymentMethod(method)
        self.discard_pending_payment()

    def discard_pending_payment(self) -> None:
        """Forget the gateway order and its snapshot once the draft they were built from changes.

        The order number is kept so a later placement still reuses it.
        """

        self.draft.pending_order = None
        self.draft.pending_payment = None

    # Coupons

    def apply_coupon(
        self, code: str, coupon: Coupon | None, cart_lines: Sequence[CartLine]
    ) -> CouponValidation:
        """Validate and, when valid, replace whatever coupon was applied before.

        A rejected coupon leaves the current slot untouched.
        """

        result = validate_coupon(
            code,
            subtotal_of(cart_lines),
            coupon,
            now=self.now(),
            cart_product_ids={line.product_id for line in cart_lines},
            currency_symbol=self.settings.currency_symbol,
        )
        if result.valid:
            self.draft.applied_coupon = result.coupon
            self.discard_pending_payment()
        return result

    def remove_coupon(self) -> None:
        self.draft.applied_coupon = None
        self.discard_pending_payment()

    # Navigation

    def advance(self, cart_lines: Sequence[CartLine]) -> CheckoutStep:
        if self.step is CheckoutStep.SUMMARY:
            raise CheckoutStateError("Already at the final step; place the order instead")
        return self.go_to(CheckoutStep(self.step + 1), cart_lines)

    def back(self) -> CheckoutStep:
        if self.step > CheckoutStep.CONTACT_INFO:
            self.draft.current_step = CheckoutStep(self.step - 1)
        return self.step

    def go_to(self, target: CheckoutStep | int, cart_lines: Sequence[CartLine]) -> CheckoutStep:
        try:
            target = CheckoutStep(target)
        except ValueError as e:
            raise CheckoutStateError(f"Unknown checkout step: {target}") from e

        if target <= self.step:
            self.draft.current_step = target
            return self.step

        self._ensure_cart(cart_lines)
        self._global_guard(cart_lines)

        # Every crossed gate must pass on the current data, in order; the step only moves
        # once all of them do.
        for step in range(self.step, target):
            errors = self.gate_errors(CheckoutStep(step), cart_lines)
            if errors:
                raise CheckoutValidationError(
                    errors[0], title=_GATE_TITLES[CheckoutStep(step)], step=step
                )

        self.draft.current_step = target
        return self.step

    def gate_errors(self, step: CheckoutStep, cart_lines: Sequence[CartLine]) -> list[str]:
        draft = self.draft

        if step is CheckoutStep.CONTACT_INFO:
            info = draft.customer_info
            return validate_contact_info(info.name, info.email, info.phone)

        if step is CheckoutStep.ADDRESS_DETAILS:
            addr = draft.address_details
            errors = validate_location(addr.city, addr.state, addr.pincode)
            if errors or draft.use_existing_address:
                return errors
            return validate_address_details(
                plot_number=addr.plot_number,
                street=addr.street,
                pincode=addr.pincode,
                address_type=addr.address_type,
                save_as=addr.save_as,
            )

        if step is CheckoutStep.PAYMENT:
            priced = self.price(cart_lines)
            return validate_payment_method(draft.payment_method, priced.total, self.settings)

        return []

    # Placement

    def validate_for_placement(self, cart_lines: Sequence[CartLine]) -> PricedOrder:
        """Re-check everything the order depends on. Returns the pricing to place with."""

        if self.step is not CheckoutStep.SUMMARY:
            raise CheckoutStateError("Orders can only be placed from the summary step")
        self._ensure_cart(cart_lines)

        draft = self.draft
        info = draft.customer_info
        addr = draft.address_details

        if not (info.name.strip() and info.email.strip() and info.phone.strip()):
            raise CheckoutValidationError(
                "Please fill in all required customer information.", title="Missing Information"
            )
        if not (addr.city.strip() and addr.state.strip()):
            raise CheckoutValidationError(
                "Please provide your city and state.", title="Missing Location"
            )
        if not draft.use_existing_address and not (
            addr.plot_number.strip() and addr.street.strip()
        ):
            raise CheckoutValidationError(
                "Please provide your complete address details.", title="Missing Address"
            )
        if not addr.pincode.strip():
            raise CheckoutValidationError(
                "Please enter your area pincode.", title="Missing Pincode"
            )

        self._global_guard(cart_lines)

        status = self.coupon_status(cart_lines)
        if status is not None and not status.valid:
            raise CheckoutValidationError(status.message, title=status.reason.value)

        priced = self.price(cart_lines)
        errors = validate_payment_method(draft.payment_method, priced.total, self.settings)
        if errors:
            title = (
                "COD Not Available"
                if draft.payment_method is PaymentMethod.COD
                else "Online Payment Not Available"
            )
            raise CheckoutValidationError(errors[0], title=title)

        return priced

    # Guards

    def _global_guard(self, cart_lines: Sequence[CartLine]) -> None:
        priced = self.price(cart_lines)
        fmt = self.settings.format_amount
        if not priced.is_min_order_met:
            raise CheckoutValidationError(
                f"Minimum order amount is {fmt(self.settings.min_order_amount)}. "
                "Please add more items to your cart.",
                title="Minimum Order Not Met",
            )
        if priced.is_max_order_exceeded:
            raise CheckoutValidationError(
                f"Maximum order amount is {fmt(self.settings.max_order_amount)}. "
                "Please remove some items from your cart.",
                title="Maximum Order Exceeded",
            )

    def _ensure_cart(self, cart_lines: Sequence[CartLine]) -> None:
        if not cart_lines:
            raise CheckoutStateError("Cart is empty")

    def _require_reached(self, step: CheckoutStep) -> None:
        if self.step < step:
            raise CheckoutStateError(
                f"Complete the earlier steps before editing {STEP_TITLES[step]}"
            )


_GATE_TITLES = {
    CheckoutStep.CONTACT_INFO: "Invalid Information",
    CheckoutStep.ADDRESS_DETAILS: "Invalid Address",
    CheckoutStep.PAYMENT: "Payment Method Error",
}
