"""Shared checkout view schema (v1).

Storefront clients render the checkout entirely from this payload: the step header, the
entered slices, the price breakdown and the actions currently allowed.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class PaymentMethodV1(str, Enum):
    ONLINE = "online"
    COD = "cod"


class CheckoutActionTypeV1(str, Enum):
    NEXT = "NEXT"
    BACK = "BACK"
    APPLY_COUPON = "APPLY_COUPON"
    REMOVE_COUPON = "REMOVE_COUPON"
    PLACE_ORDER = "PLACE_ORDER"
    COMPLETE_PAYMENT = "COMPLETE_PAYMENT"


class CheckoutStepV1(BaseModel):
    number: int = Field(..., ge=1, le=4)
    title: str
    completed: bool
    current: bool


class CustomerInfoV1(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""


class AddressDetailsV1(BaseModel):
    plot_number: str = ""
    building_name: str = ""
    street: str = ""
    landmark: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    address_type: str = "home"
    save_as: str = ""
    complete_address: str | None = None


class PricingV1(BaseModel):
    # Display values, rounded half-up to 2 places. total == subtotal + tax + fees - discount.
    subtotal: Decimal
    tax: Decimal
    delivery_fee: Decimal
    cod_fee: Decimal
    discount: Decimal
    total: Decimal
    currency: str
    is_min_order_met: bool
    min_order_shortfall: Decimal
    is_cod_eligible: bool
    is_max_order_exceeded: bool = False


class AppliedCouponV1(BaseModel):
    code: str
    description: str = ""
    discount_type: str
    discount_value: Decimal
    discount_amount: Decimal
    valid: bool
    message: str = ""


class CheckoutActionV1(BaseModel):
    type: CheckoutActionTypeV1
    label: str


class CheckoutViewV1(BaseModel):
    version: str = "1"
    session_id: str

    step: int = Field(..., ge=1, le=4)
    step_title: str
    steps: list[CheckoutStepV1]

    customer_info: CustomerInfoV1
    address_details: AddressDetailsV1
    use_existing_address: bool = False
    payment_method: PaymentMethodV1

    pricing: PricingV1
    coupon: AppliedCouponV1 | None = None

    awaiting_payment: bool = False
    pending_order_number: str | None = None

    actions: list[CheckoutActionV1] = Field(default_factory=list, max_length=6)
    warnings: list[str] = Field(default_factory=list, max_length=8)
