"""Shared event schema (v1).

Checkout, coupon, payment and order activity is appended to the event log. Clients read these
events to render an order's audit trail.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EntityTypeV1(str, Enum):
    CHECKOUT_SESSION = "CheckoutSession"
    ORDER = "Order"
    COUPON = "Coupon"
    PAYMENT = "Payment"


class EventTypeV1(str, Enum):
    CHECKOUT_STARTED = "CHECKOUT_STARTED"
    STEP_ADVANCED = "STEP_ADVANCED"
    STEP_REJECTED = "STEP_REJECTED"
    COUPON_APPLIED = "COUPON_APPLIED"
    COUPON_REJECTED = "COUPON_REJECTED"
    COUPON_REMOVED = "COUPON_REMOVED"
    PAYMENT_INITIATED = "PAYMENT_INITIATED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    ORDER_PLACED = "ORDER_PLACED"
    ORDER_PERSIST_FAILED = "ORDER_PERSIST_FAILED"
    COUPON_USAGE_INCREMENTED = "COUPON_USAGE_INCREMENTED"


class EventV1(BaseModel):
    id: str
    session_id: str | None = None

    entity_type: EntityTypeV1
    entity_id: str

    event_type: EventTypeV1
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: str
