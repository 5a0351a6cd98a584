from __future__ import annotations

from decimal import Decimal

from packages.shared.schemas.checkout_v1 import CheckoutViewV1, PaymentMethodV1
from pydantic import BaseModel, Field

from services.api.app.models.order import OrderOut


class ContactUpdateRequest(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""


class AddressUpdateRequest(BaseModel):
    plot_number: str = ""
    building_name: str = ""
    street: str = ""
    landmark: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    address_type: str = "home"
    save_as: str = ""
    use_existing_address: bool = False


class PaymentMethodRequest(BaseModel):
    payment_method: PaymentMethodV1


class GoToStepRequest(BaseModel):
    step: int


class CouponApplyRequest(BaseModel):
    code: str = Field(..., min_length=1)


class CouponApplyResponse(BaseModel):
    valid: bool
    reason: str | None = None
    message: str
    discount_amount: Decimal
    checkout: CheckoutViewV1


class AvailableCouponOut(BaseModel):
    code: str
    description: str = ""
    discount_type: str
    discount_value: Decimal
    min_order_amount: Decimal | None = None
    max_discount_amount: Decimal | None = None
    valid_until: str | None = None


class GatewayOrderOut(BaseModel):
    gateway: str
    gateway_order_id: str
    amount_minor: int
    currency: str
    key_id: str | None = None


class PlaceOrderResponse(BaseModel):
    # PLACED or PAYMENT_REQUIRED
    status: str
    order_number: str
    message: str
    order: OrderOut | None = None
    payment: GatewayOrderOut | None = None


class PaymentCallbackRequest(BaseModel):
    gateway_order_id: str
    gateway_payment_id: str | None = None
    signature: str | None = None
    # success | failed | cancelled
    status: str = "success"
    reason: str = ""
