from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Protocol

from services.api.app.services.money import ZERO, round_money

HUNDRED = Decimal("100")


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class CouponRejection(str, Enum):
    INVALID = "Invalid coupon"
    NOT_APPLICABLE = "Coupon not applicable"
    EXPIRED = "Coupon expired"
    MIN_ORDER_NOT_MET = "Minimum order not met"
    EXHAUSTED = "Coupon usage limit reached"


@dataclass(frozen=True, slots=True)
class Coupon:
    id: str
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    min_order_amount: Decimal | None = None
    max_discount_amount: Decimal | None = None
    usage_limit: int | None = None
    used_count: int = 0
    is_active: bool = True
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    product_ids: frozenset[str] = field(default_factory=frozenset)
    description: str = ""

    @property
    def is_product_scoped(self) -> bool:
        return bool(self.product_ids)


@dataclass(frozen=True, slots=True)
class CouponValidation:
    valid: bool
    discount_amount: Decimal
    reason: CouponRejection | None = None
    message: str = ""
    coupon: Coupon | None = None


class CouponStore(Protocol):
    def find_by_code(self, code: str) -> Coupon | None: ...

    def list_for_products(self, product_ids: Iterable[str]) -> list[Coupon]: ...

    def increment_usage(self, coupon_id: str) -> None: ...


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def in_scope(coupon: Coupon, cart_product_ids: Iterable[str]) -> bool:
    if not coupon.is_product_scoped:
        return True
    return not coupon.product_ids.isdisjoint(cart_product_ids)


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    if coupon.discount_type is DiscountType.PERCENTAGE:
        raw = subtotal * coupon.discount_value / HUNDRED
        if coupon.max_discount_amount is not None:
            return min(raw, coupon.max_discount_amount)
        return raw

    # Fixed discounts are not clamped here; pricing bounds the effective discount.
    return coupon.discount_value


def validate_coupon(
    code: str,
    subtotal: Decimal,
    coupon: Coupon | None,
    *,
    now: datetime,
    cart_product_ids: Iterable[str] = (),
    currency_symbol: str = "₹",
) -> CouponValidation:
    """Decide whether `coupon` (looked up by `code`) applies to a cart with this subtotal.

    Checks run in a fixed order and the first failure wins: lookup, product scope, active
    window, expiry, coupon minimum order, usage limit.
    """

    normalized = normalize_code(code)

    if coupon is None or not normalized or normalize_code(coupon.code) != normalized:
        return _reject(CouponRejection.INVALID, "Please check your coupon code.")

    if not in_scope(coupon, cart_product_ids):
        return _reject(
            CouponRejection.NOT_APPLICABLE,
            f"{normalized} does not apply to any item in your cart.",
            coupon,
        )

    if not coupon.is_active or (coupon.valid_from is not None and now < coupon.valid_from):
        return _reject(CouponRejection.INVALID, "Please check your coupon code.", coupon)

    if coupon.valid_until is not None and now > coupon.valid_until:
        return _reject(CouponRejection.EXPIRED, f"{normalized} has expired.", coupon)

    if coupon.min_order_amount is not None and subtotal < coupon.min_order_amount:
        return _reject(
            CouponRejection.MIN_ORDER_NOT_MET,
            f"Minimum order of {currency_symbol}{round_money(coupon.min_order_amount)} "
            "required for this coupon.",
            coupon,
        )

    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        return _reject(
            CouponRejection.EXHAUSTED, "This coupon has reached its usage limit.", coupon
        )

    discount = compute_discount(coupon, subtotal)
    return CouponValidation(
        valid=True,
        discount_amount=discount,
        message=f"You saved {currency_symbol}{round_money(discount)} on your order.",
        coupon=coupon,
    )


def available_coupons(
    candidates: Iterable[Coupon],
    cart_product_ids: Iterable[str],
    *,
    now: datetime,
) -> list[Coupon]:
    product_ids = set(cart_product_ids)
    seen: set[str] = set()
    out: list[Coupon] = []

    for coupon in candidates:
        if coupon.id in seen:
            continue
        if not coupon.is_active or not in_scope(coupon, product_ids):
            continue
        if coupon.valid_from is not None and now < coupon.valid_from:
            continue
        if coupon.valid_until is not None and now > coupon.valid_until:
            continue
        seen.add(coupon.id)
        out.append(coupon)

    return out


def _reject(
    reason: CouponRejection, message: str, coupon: Coupon | None = None
) -> CouponValidation:
    return CouponValidation(
        valid=False, discount_amount=ZERO, reason=reason, message=message, coupon=coupon
    )
