from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel


class OrderItemOut(BaseModel):
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    selected_size: str
    line_total: Decimal


class OrderOut(BaseModel):
    id: str | None = None
    order_number: str

    items: list[OrderItemOut]
    customer_info: dict[str, str]
    address_details: dict[str, str]
    complete_address: str
    selected_size: str

    subtotal: Decimal
    tax: Decimal
    delivery_fee: Decimal
    cod_fee: Decimal
    discount: Decimal
    total: Decimal
    currency: str

    payment_method: str
    payment_status: str
    order_status: str

    coupon_code: str | None = None
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None

    created_at: str
