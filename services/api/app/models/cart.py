from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class CartItemAddRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    unit_price: Decimal = Field(..., gt=0)
    quantity: int = Field(1, ge=1)
    selected_size: str | None = None
    image_ref: str | None = None
    category: str = "apparel"


class CartItemUpdateRequest(BaseModel):
    product_id: str
    selected_size: str | None = None
    # 0 or less removes the line.
    quantity: int


class CartItemRemoveRequest(BaseModel):
    product_id: str
    selected_size: str | None = None


class CartLineOut(BaseModel):
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    selected_size: str
    line_total: Decimal
    image_ref: str | None = None
    category: str


class CartView(BaseModel):
    session_id: str
    lines: list[CartLineOut]
    item_count: int
    subtotal: Decimal
    checkout_active: bool = False
