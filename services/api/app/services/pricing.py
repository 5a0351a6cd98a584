"""Checkout pricing.

`price` is a pure function of its inputs. Callers recompute it whenever the cart, settings,
coupon or payment method change; the result is never stored on its own.

Intermediate values keep full Decimal precision. Rounding (half-up, 2 places) happens only in
`PricedOrder.rounded()`.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from services.api.app.services.cart import CartLine
from services.api.app.services.money import ZERO, round_money
from services.api.app.services.settings import CommerceSettings

HUNDRED = Decimal("100")


class PaymentMethod(str, Enum):
    ONLINE = "online"
    COD = "cod"


@dataclass(frozen=True, slots=True)
class PricedOrder:
    subtotal: Decimal
    tax: Decimal
    delivery_fee: Decimal
    cod_fee: Decimal
    discount: Decimal
    total: Decimal
    is_min_order_met: bool
    min_order_shortfall: Decimal
    is_cod_eligible: bool
    is_max_order_exceeded: bool = False

    def rounded(self) -> PricedOrder:
        """Display/persistence view. Keeps total == sum of parts on the rounded values."""

        subtotal = round_money(self.subtotal)
        tax = round_money(self.tax)
        delivery_fee = round_money(self.delivery_fee)
        cod_fee = round_money(self.cod_fee)
        gross = subtotal + tax + delivery_fee + cod_fee
        discount = min(round_money(self.discount), gross)

        return PricedOrder(
            subtotal=subtotal,
            tax=tax,
            delivery_fee=delivery_fee,
            cod_fee=cod_fee,
            discount=discount,
            total=gross - discount,
            is_min_order_met=self.is_min_order_met,
            min_order_shortfall=round_money(self.min_order_shortfall),
            is_cod_eligible=self.is_cod_eligible,
            is_max_order_exceeded=self.is_max_order_exceeded,
        )


def subtotal_of(cart_lines: Iterable[CartLine]) -> Decimal:
    return sum((line.unit_price * line.quantity for line in cart_lines), ZERO)


def delivery_fee_for(subtotal: Decimal, settings: CommerceSettings) -> Decimal:
    threshold = settings.free_delivery_threshold
    if threshold > 0 and subtotal >= threshold:
        return ZERO
    return settings.delivery_charge


def price(
    cart_lines: Iterable[CartLine],
    settings: CommerceSettings,
    payment_method: PaymentMethod | str,
    discount: Decimal = ZERO,
) -> PricedOrder:
    method = PaymentMethod(payment_method)

    subtotal = subtotal_of(cart_lines)
    tax = subtotal * settings.tax_rate / HUNDRED
    delivery_fee = delivery_fee_for(subtotal, settings)
    cod_fee = settings.cod_charge if method is PaymentMethod.COD else ZERO

    gross = subtotal + tax + delivery_fee + cod_fee
    # The discount is bounded, not the total: total == gross - discount always holds.
    effective_discount = min(max(ZERO, Decimal(discount)), gross)
    total = gross - effective_discount

    max_order = settings.max_order_amount

    return PricedOrder(
        subtotal=subtotal,
        tax=tax,
        delivery_fee=delivery_fee,
        cod_fee=cod_fee,
        discount=effective_discount,
        total=total,
        is_min_order_met=subtotal >= settings.min_order_amount,
        min_order_shortfall=max(ZERO, settings.min_order_amount - subtotal),
        is_cod_eligible=settings.cod_enabled and round_money(total) <= settings.cod_threshold,
        is_max_order_exceeded=max_order > 0 and total > max_order,
    )
