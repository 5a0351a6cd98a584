"""Order assembly and submission.

The assembler turns a validated checkout into a frozen `OrderRecord` and drives the two
submission paths. COD orders are stored straight away; online orders are only stored once the
gateway confirms the payment. Side effects (coupon usage, clearing the cart) run only after the
order row exists and never undo it.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Protocol

from services.api.app.services.cart import Cart, CartLine
from services.api.app.services.checkout import CheckoutDraft, CheckoutStateMachine, CheckoutStep
from services.api.app.services.coupons import CouponStore
from services.api.app.services.errors import (
    CheckoutStateError,
    DuplicateOrderError,
    OrderStoreError,
)
from services.api.app.services.money import to_minor_units
from services.api.app.services.payment_base import (
    GatewayOrder,
    PaymentCallback,
    PaymentConfirmation,
    PaymentGatewayAdapter,
    PaymentGatewayError,
    PaymentRequest,
)
from services.api.app.services.pricing import PaymentMethod, PricedOrder
from services.api.app.services.settings import CommerceSettings

logger = logging.getLogger(__name__)

ORDER_PREFIX = "SS"


@dataclass(frozen=True, slots=True)
class OrderLine:
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    selected_size: str
    image_ref: str | None = None
    category: str = "apparel"

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @classmethod
    def from_cart_line(cls, line: CartLine) -> OrderLine:
        return cls(
            product_id=line.product_id,
            name=line.name,
            unit_price=line.unit_price,
            quantity=line.quantity,
            selected_size=line.selected_size,
            image_ref=line.image_ref,
            category=line.category,
        )


@dataclass(frozen=True, slots=True)
class OrderRecord:
    order_number: str
    items: tuple[OrderLine, ...]
    customer_info: dict[str, str]
    address_details: dict[str, str]
    complete_address: str
    subtotal: Decimal
    tax: Decimal
    delivery_fee: Decimal
    cod_fee: Decimal
    discount: Decimal
    total: Decimal
    currency: str
    payment_method: PaymentMethod
    payment_status: str
    order_status: str
    selected_size: str
    created_at: datetime
    coupon_code: str | None = None
    coupon_id: str | None = None
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None

    def paid(self, confirmation: PaymentConfirmation) -> OrderRecord:
        return replace(
            self,
            payment_status="paid",
            order_status="confirmed",
            gateway_order_id=confirmation.gateway_order_id,
            gateway_payment_id=confirmation.gateway_payment_id,
        )

    def to_row(self) -> dict[str, Any]:
        """Column values for the orders table. Money stays Decimal; items become plain dicts."""

        row = asdict(self)
        row["items"] = [
            {**asdict(item), "unit_price": str(item.unit_price)} for item in self.items
        ]
        row["payment_method"] = self.payment_method.value
        return row


@dataclass(frozen=True, slots=True)
class PlacementResult:
    # PLACED: the order row exists. PAYMENT_REQUIRED: the client must finish the gateway flow.
    status: str
    order: OrderRecord
    stored_id: str | None = None
    gateway_order: GatewayOrder | None = None
    coupon_usage_incremented: bool = False


class OrderStore(Protocol):
    def insert(self, record: OrderRecord) -> str: ...

    def get(self, order_number: str) -> tuple[str, OrderRecord] | None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_order_number(now: datetime | None = None) -> str:
    now = now or _utcnow()
    millis = int(now.timestamp() * 1000)
    return f"{ORDER_PREFIX}{millis}{secrets.randbelow(1000):03d}"


def _size_summary(lines: Sequence[CartLine]) -> str:
    sizes: list[str] = []
    for line in lines:
        if line.selected_size not in sizes:
            sizes.append(line.selected_size)
    return ", ".join(sizes)


_MAX_NUMBER_ATTEMPTS = 3


def _same_order(stored: OrderRecord, record: OrderRecord) -> bool:
    """True when a stored row is an earlier attempt of this checkout, not another shopper's."""

    return (
        stored.customer_info.get("email", "").lower() == record.customer_info["email"].lower()
        and stored.payment_method is record.payment_method
        and stored.total == record.total
        and stored.items == record.items
    )


class OrderAssembler:
    def __init__(
        self,
        *,
        order_store: OrderStore,
        coupon_store: CouponStore,
        gateway: PaymentGatewayAdapter,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._orders = order_store
        self._coupons = coupon_store
        self._gateway = gateway
        self._clock = clock

    def assemble(
        self,
        draft: CheckoutDraft,
        priced: PricedOrder,
        cart_lines: Sequence[CartLine],
        *,
        settings: CommerceSettings,
        order_number: str,
        now: datetime,
        payment_status: str = "pending",
        order_status: str = "placed",
    ) -> OrderRecord:
        rounded = priced.rounded()
        info = draft.customer_info
        addr = draft.address_details
        coupon = draft.applied_coupon

        return OrderRecord(
            order_number=order_number,
            items=tuple(OrderLine.from_cart_line(line) for line in cart_lines),
            customer_info={
                "name": info.name.strip(),
                "email": info.email.strip(),
                "phone": info.phone.strip(),
            },
            address_details=asdict(addr),
            complete_address=addr.complete_address(),
            subtotal=rounded.subtotal,
            tax=rounded.tax,
            delivery_fee=rounded.delivery_fee,
            cod_fee=rounded.cod_fee,
            discount=rounded.discount,
            total=rounded.total,
            currency=settings.currency,
            payment_method=draft.payment_method,
            payment_status=payment_status,
            order_status=order_status,
            selected_size=_size_summary(cart_lines),
            created_at=now,
            coupon_code=coupon.code if coupon is not None else None,
            coupon_id=coupon.id if coupon is not None else None,
        )

    def place(self, machine: CheckoutStateMachine, cart: Cart) -> PlacementResult:
        """Submit the checkout. COD is stored now; online returns the gateway order to pay."""

        draft = machine.draft
        self._acquire(draft)
        try:
            priced = machine.validate_for_placement(cart.lines)
            if draft.pending_order_number is None:
                draft.pending_order_number = generate_order_number(self._clock())
            if draft.payment_method is PaymentMethod.COD:
                return self.place_cod(machine, cart, priced)
            return self.begin_online(machine, cart, priced)
        finally:
            draft.submission_in_flight = False

    def place_cod(
        self, machine: CheckoutStateMachine, cart: Cart, priced: PricedOrder
    ) -> PlacementResult:
        record = self._assemble_for(machine, cart, priced, order_status="placed")
        stored_id, record = self._persist(machine.draft, record)
        incremented = self._after_persist(machine, cart, record)
        return PlacementResult(
            status="PLACED",
            order=record,
            stored_id=stored_id,
            coupon_usage_incremented=incremented,
        )

    def begin_online(
        self, machine: CheckoutStateMachine, cart: Cart, priced: PricedOrder
    ) -> PlacementResult:
        draft = machine.draft
        record = self._assemble_for(machine, cart, priced, order_status="pending_payment")

        # Same amount: keep paying into the existing gateway order, but always against a
        # snapshot of the draft as it is now.
        pending = draft.pending_payment
        if pending is not None and pending.amount_minor == to_minor_units(record.total):
            draft.pending_order = record
            return PlacementResult(status="PAYMENT_REQUIRED", order=record, gateway_order=pending)

        request = PaymentRequest(
            order_id=record.order_number,
            amount_minor=to_minor_units(record.total),
            currency=record.currency,
            customer=dict(record.customer_info),
        )
        try:
            gateway_order = self._gateway.create_payment(request)
        except PaymentGatewayError:
            logger.error(
                "create_payment failed for order %s", record.order_number, exc_info=True
            )
            raise

        draft.pending_order = record
        draft.pending_payment = gateway_order
        return PlacementResult(
            status="PAYMENT_REQUIRED", order=record, gateway_order=gateway_order
        )

    def complete_online(
        self, machine: CheckoutStateMachine, cart: Cart, callback: PaymentCallback
    ) -> PlacementResult:
        draft = machine.draft
        pending = draft.pending_payment
        record = draft.pending_order
        if pending is None or record is None:
            raise CheckoutStateError("No payment is pending for this checkout")
        if callback.gateway_order_id != pending.gateway_order_id:
            raise CheckoutStateError("Payment does not match the pending order")

        self._acquire(draft)
        try:
            try:
                confirmation = self._gateway.verify_payment(callback)
            except PaymentGatewayError as e:
                self.abandon_online(machine, str(e))
                raise

            paid = record.paid(confirmation)
            stored_id, paid = self._persist(draft, paid)
            incremented = self._after_persist(machine, cart, paid)
            return PlacementResult(
                status="PLACED",
                order=paid,
                stored_id=stored_id,
                coupon_usage_incremented=incremented,
            )
        finally:
            draft.submission_in_flight = False

    def abandon_online(self, machine: CheckoutStateMachine, reason: str) -> None:
        """Drop the pending gateway order. The draft stays at the summary step, retryable."""

        draft = machine.draft
        logger.info(
            "online payment for order %s abandoned: %s", draft.pending_order_number, reason
        )
        draft.pending_payment = None
        draft.pending_order = None
        draft.current_step = CheckoutStep.SUMMARY

    def get_order(self, order_number: str) -> tuple[str, OrderRecord] | None:
        return self._orders.get(order_number)

    # Internals

    def _acquire(self, draft: CheckoutDraft) -> None:
        if draft.submission_in_flight:
            raise CheckoutStateError("An order submission is already in progress")
        draft.submission_in_flight = True

    def _assemble_for(
        self,
        machine: CheckoutStateMachine,
        cart: Cart,
        priced: PricedOrder,
        *,
        order_status: str,
    ) -> OrderRecord:
        draft = machine.draft
        assert draft.pending_order_number is not None
        return self.assemble(
            draft,
            priced,
            cart.lines,
            settings=machine.settings,
            order_number=draft.pending_order_number,
            now=self._clock(),
            payment_status="pending",
            order_status=order_status,
        )

    def _persist(self, draft: CheckoutDraft, record: OrderRecord) -> tuple[str, OrderRecord]:
        for _ in range(_MAX_NUMBER_ATTEMPTS):
            try:
                return self._orders.insert(record), record
            except DuplicateOrderError:
                existing = self._orders.get(record.order_number)
                if existing is None:
                    raise
                if _same_order(existing[1], record):
                    logger.info("order %s already stored; reusing it", record.order_number)
                    return existing[0], existing[1]
                # Another checkout owns this number.
                fresh = generate_order_number(self._clock())
                logger.warning(
                    "order number %s collided with another order; retrying as %s",
                    record.order_number,
                    fresh,
                )
                draft.pending_order_number = fresh
                record = replace(record, order_number=fresh)
            except OrderStoreError:
                logger.error("failed to store order %s", record.order_number, exc_info=True)
                draft.current_step = CheckoutStep.SUMMARY
                raise

        draft.current_step = CheckoutStep.SUMMARY
        raise OrderStoreError(record.order_number, "no free order number")

    def _after_persist(
        self, machine: CheckoutStateMachine, cart: Cart, record: OrderRecord
    ) -> bool:
        incremented = False
        if record.coupon_id is not None:
            try:
                self._coupons.increment_usage(record.coupon_id)
                incremented = True
            except Exception:
                logger.warning(
                    "coupon usage increment failed for %s on order %s",
                    record.coupon_id,
                    record.order_number,
                    exc_info=True,
                )

        cart.clear()
        draft = machine.draft
        draft.pending_order_number = None
        draft.pending_order = None
        draft.pending_payment = None
        return incremented
