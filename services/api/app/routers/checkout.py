from __future__ import annotations

from collections.abc import Callable
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException
from packages.shared.schemas.checkout_v1 import (
    AddressDetailsV1,
    AppliedCouponV1,
    CheckoutActionTypeV1,
    CheckoutActionV1,
    CheckoutStepV1,
    CheckoutViewV1,
    CustomerInfoV1,
    PaymentMethodV1,
    PricingV1,
)
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from services.api.app.db.deps import get_db
from services.api.app.db.models import EventLog
from services.api.app.models.checkout import (
    AddressUpdateRequest,
    AvailableCouponOut,
    ContactUpdateRequest,
    CouponApplyRequest,
    CouponApplyResponse,
    GatewayOrderOut,
    GoToStepRequest,
    PaymentCallbackRequest,
    PaymentMethodRequest,
    PlaceOrderResponse,
)
from services.api.app.models.order import OrderItemOut, OrderOut
from services.api.app.services.checkout import (
    STEP_TITLES,
    AddressDetails,
    CheckoutStateMachine,
    CheckoutStep,
    CustomerInfo,
)
from services.api.app.services.coupons import available_coupons
from services.api.app.services.errors import (
    CheckoutStateError,
    CheckoutValidationError,
    ExternalFailure,
    OrderStoreError,
    SettingsUnavailableError,
)
from services.api.app.services.money import ZERO, round_money
from services.api.app.services.orders import OrderAssembler, OrderRecord, PlacementResult
from services.api.app.services.payment_base import (
    PaymentCallback,
    PaymentCancelledError,
    PaymentDeclinedError,
    PaymentGatewayAdapter,
    PaymentGatewayConfigError,
    PaymentGatewayError,
    PaymentGatewayTimeoutError,
)
from services.api.app.services.payment_factory import get_payment_gateway
from services.api.app.services.pricing import PaymentMethod
from services.api.app.services.repositories import (
    SqlCouponStore,
    SqlOrderStore,
    SqlSettingsStore,
)
from services.api.app.services.settings import load_settings
from services.api.app.services.store import ShopSession, store
from services.api.app.services.validation import validate_payment_method
from sqlalchemy.orm import Session

router = APIRouter()


@router.post("/v1/checkout/{session_id}", response_model=CheckoutViewV1)
def start_checkout(session_id: str, db: Session = Depends(get_db)) -> CheckoutViewV1:
    session = _session_or_404(session_id)
    if session.checkout is not None:
        return _checkout_view(session)

    if session.cart.is_empty:
        raise HTTPException(status_code=409, detail="Cart is empty")

    try:
        settings = load_settings(SqlSettingsStore(db))
    except SettingsUnavailableError as e:
        _raise_checkout_http_error(e)

    session.checkout = CheckoutStateMachine(settings)
    _log_event(
        db,
        session_id=session_id,
        entity_type=EntityTypeV1.CHECKOUT_SESSION,
        entity_id=session_id,
        event_type=EventTypeV1.CHECKOUT_STARTED,
        event_payload={"line_count": len(session.cart.lines)},
    )
    db.commit()
    return _checkout_view(session)


@router.get("/v1/checkout/{session_id}", response_model=CheckoutViewV1)
def get_checkout(session_id: str) -> CheckoutViewV1:
    session = _session_or_404(session_id)
    _active_checkout(session)
    return _checkout_view(session)


@router.put("/v1/checkout/{session_id}/contact", response_model=CheckoutViewV1)
def update_contact(session_id: str, payload: ContactUpdateRequest) -> CheckoutViewV1:
    session = _session_or_404(session_id)
    machine = _active_checkout(session)
    try:
        machine.update_contact(CustomerInfo(**payload.model_dump()))
    except Exception as e:
        _raise_checkout_http_error(e)
    return _checkout_view(session)


@router.put("/v1/checkout/{session_id}/address", response_model=CheckoutViewV1)
def update_address(session_id: str, payload: AddressUpdateRequest) -> CheckoutViewV1:
    session = _session_or_404(session_id)
    machine = _active_checkout(session)
    values = payload.model_dump()
    use_existing = values.pop("use_existing_address")
    try:
        machine.update_address(AddressDetails(**values), use_existing_address=use_existing)
    except Exception as e:
        _raise_checkout_http_error(e)
    return _checkout_view(session)


@router.put("/v1/checkout/{session_id}/payment-method", response_model=CheckoutViewV1)
def select_payment_method(session_id: str, payload: PaymentMethodRequest) -> CheckoutViewV1:
    session = _session_or_404(session_id)
    machine = _active_checkout(session)
    try:
        machine.select_payment_method(payload.payment_method.value)
    except Exception as e:
        _raise_checkout_http_error(e)
    return _checkout_view(session)


@router.post("/v1/checkout/{session_id}/next", response_model=CheckoutViewV1)
def next_step(session_id: str, db: Session = Depends(get_db)) -> CheckoutViewV1:
    session = _session_or_404(session_id)
    machine = _active_checkout(session)
    return _navigate(db, session, machine, lambda: machine.advance(session.cart.lines))


@router.post("/v1/checkout/{session_id}/back", response_model=CheckoutViewV1)
def previous_step(session_id: str) -> CheckoutViewV1:
    session = _session_or_404(session_id)
    machine = _active_checkout(session)
    machine.back()
    return _checkout_view(session)


@router.post("/v1/checkout/{session_id}/goto", response_model=CheckoutViewV1)
def go_to_step(
    session_id: str, payload: GoToStepRequest, db: Session = Depends(get_db)
) -> CheckoutViewV1:
    session = _session_or_404(session_id)
    machine = _active_checkout(session)
    return _navigate(db, session, machine, lambda: machine.go_to(payload.step, session.cart.lines))


@router.post("/v1/checkout/{session_id}/coupon", response_model=CouponApplyResponse)
def apply_coupon(
    session_id: str, payload: CouponApplyRequest, db: Session = Depends(get_db)
) -> CouponApplyResponse:
    session = _session_or_404(session_id)
    machine = _active_checkout(session)

    coupon = SqlCouponStore(db).find_by_code(payload.code)
    result = machine.apply_coupon(payload.code, coupon, session.cart.lines)

    _log_event(
        db,
        session_id=session_id,
        entity_type=EntityTypeV1.COUPON,
        entity_id=coupon.id if coupon is not None else payload.code.strip().upper(),
        event_type=EventTypeV1.COUPON_APPLIED if result.valid else EventTypeV1.COUPON_REJECTED,
        event_payload={
            "code": payload.code.strip().upper(),
            "reason": result.reason.value if result.reason is not None else None,
            "discount_amount": str(round_money(result.discount_amount)),
        },
    )
    db.commit()

    return CouponApplyResponse(
        valid=result.valid,
        reason=result.reason.value if result.reason is not None else None,
        message=result.message,
        discount_amount=round_money(result.discount_amount),
        checkout=_checkout_view(session),
    )


@router.delete("/v1/checkout/{session_id}/coupon", response_model=CheckoutViewV1)
def remove_coupon(session_id: str, db: Session = Depends(get_db)) -> CheckoutViewV1:
    session = _session_or_404(session_id)
    machine = _active_checkout(session)

    coupon = machine.draft.applied_coupon
    machine.remove_coupon()
    if coupon is not None:
        _log_event(
            db,
            session_id=session_id,
            entity_type=EntityTypeV1.COUPON,
            entity_id=coupon.id,
            event_type=EventTypeV1.COUPON_REMOVED,
            event_payload={"code": coupon.code},
        )
        db.commit()
    return _checkout_view(session)


@router.get("/v1/checkout/{session_id}/coupons", response_model=list[AvailableCouponOut])
def list_coupons(session_id: str, db: Session = Depends(get_db)) -> list[AvailableCouponOut]:
    session = _session_or_404(session_id)
    machine = _active_checkout(session)

    product_ids = session.cart.product_ids()
    candidates = SqlCouponStore(db).list_for_products(product_ids)
    coupons = available_coupons(candidates, product_ids, now=machine.now())

    return [
        AvailableCouponOut(
            code=c.code,
            description=c.description,
            discount_type=c.discount_type.value,
            discount_value=c.discount_value,
            min_order_amount=c.min_order_amount,
            max_discount_amount=c.max_discount_amount,
            valid_until=c.valid_until.isoformat() if c.valid_until else None,
        )
        for c in coupons
    ]


@router.post("/v1/checkout/{session_id}/place-order", response_model=PlaceOrderResponse)
def place_order(session_id: str, db: Session = Depends(get_db)) -> PlaceOrderResponse:
    session = _session_or_404(session_id)
    machine = _active_checkout(session)
    gateway = _gateway()

    if not session.submit_lock.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="An order submission is already in progress")
    try:
        try:
            result = _assembler(db, gateway).place(machine, session.cart)
        except (OrderStoreError, PaymentGatewayError) as e:
            _log_submission_failure(db, session_id, machine, e)
            _raise_checkout_http_error(e)
        except Exception as e:
            _raise_checkout_http_error(e)
    finally:
        session.submit_lock.release()

    return _placement_response(db, session, gateway, result)


@router.post("/v1/checkout/{session_id}/payment-callback", response_model=PlaceOrderResponse)
def payment_callback(
    session_id: str, payload: PaymentCallbackRequest, db: Session = Depends(get_db)
) -> PlaceOrderResponse:
    session = _session_or_404(session_id)
    machine = _active_checkout(session)
    gateway = _gateway()

    callback = PaymentCallback(**payload.model_dump())

    if not session.submit_lock.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="An order submission is already in progress")
    try:
        try:
            result = _assembler(db, gateway).complete_online(machine, session.cart, callback)
        except (OrderStoreError, PaymentGatewayError) as e:
            _log_submission_failure(db, session_id, machine, e)
            _raise_checkout_http_error(e)
        except Exception as e:
            _raise_checkout_http_error(e)
    finally:
        session.submit_lock.release()

    return _placement_response(db, session, gateway, result)


def _session_or_404(session_id: str) -> ShopSession:
    session = store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Checkout session not found")
    return session


def _active_checkout(session: ShopSession) -> CheckoutStateMachine:
    if session.checkout is None:
        raise HTTPException(status_code=409, detail="Checkout has not been started")
    if session.cart.is_empty:
        session.end_checkout()
        raise HTTPException(status_code=409, detail="Cart is empty")
    return session.checkout


def _gateway() -> PaymentGatewayAdapter:
    try:
        return get_payment_gateway()
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    except PaymentGatewayConfigError as e:
        _raise_checkout_http_error(e)


def _assembler(db: Session, gateway: PaymentGatewayAdapter) -> OrderAssembler:
    return OrderAssembler(
        order_store=SqlOrderStore(db),
        coupon_store=SqlCouponStore(db),
        gateway=gateway,
    )


def _navigate(
    db: Session,
    session: ShopSession,
    machine: CheckoutStateMachine,
    move: Callable[[], object],
) -> CheckoutViewV1:
    from_step = machine.step
    try:
        move()
    except CheckoutValidationError as e:
        _log_event(
            db,
            session_id=session.session_id,
            entity_type=EntityTypeV1.CHECKOUT_SESSION,
            entity_id=session.session_id,
            event_type=EventTypeV1.STEP_REJECTED,
            event_payload={"step": int(from_step), "title": e.title, "reason": e.reason},
        )
        db.commit()
        _raise_checkout_http_error(e)
    except Exception as e:
        _raise_checkout_http_error(e)

    if machine.step > from_step:
        _log_event(
            db,
            session_id=session.session_id,
            entity_type=EntityTypeV1.CHECKOUT_SESSION,
            entity_id=session.session_id,
            event_type=EventTypeV1.STEP_ADVANCED,
            event_payload={"from_step": int(from_step), "to_step": int(machine.step)},
        )
        db.commit()
    return _checkout_view(session)


def _placement_response(
    db: Session,
    session: ShopSession,
    gateway: PaymentGatewayAdapter,
    result: PlacementResult,
) -> PlaceOrderResponse:
    order = result.order

    if result.status == "PAYMENT_REQUIRED":
        assert result.gateway_order is not None
        _log_event(
            db,
            session_id=session.session_id,
            entity_type=EntityTypeV1.PAYMENT,
            entity_id=order.order_number,
            event_type=EventTypeV1.PAYMENT_INITIATED,
            event_payload={
                "gateway": gateway.gateway,
                "gateway_order_id": result.gateway_order.gateway_order_id,
                "amount_minor": result.gateway_order.amount_minor,
            },
        )
        db.commit()
        return PlaceOrderResponse(
            status=result.status,
            order_number=order.order_number,
            message="Complete the payment to confirm your order.",
            payment=GatewayOrderOut(
                gateway=gateway.gateway,
                gateway_order_id=result.gateway_order.gateway_order_id,
                amount_minor=result.gateway_order.amount_minor,
                currency=result.gateway_order.currency,
                key_id=result.gateway_order.key_id,
            ),
        )

    _log_event(
        db,
        session_id=session.session_id,
        entity_type=EntityTypeV1.ORDER,
        entity_id=order.order_number,
        event_type=EventTypeV1.ORDER_PLACED,
        event_payload={
            "order_id": result.stored_id,
            "payment_method": order.payment_method.value,
            "payment_status": order.payment_status,
            "total": str(order.total),
        },
    )
    if result.coupon_usage_incremented and order.coupon_id is not None:
        _log_event(
            db,
            session_id=session.session_id,
            entity_type=EntityTypeV1.COUPON,
            entity_id=order.coupon_id,
            event_type=EventTypeV1.COUPON_USAGE_INCREMENTED,
            event_payload={"code": order.coupon_code, "order_number": order.order_number},
        )
    db.commit()

    session.end_checkout()

    if order.payment_method is PaymentMethod.COD:
        message = f"Order {order.order_number} placed. Pay on delivery."
    else:
        message = f"Payment received. Order {order.order_number} confirmed."
    return PlaceOrderResponse(
        status=result.status,
        order_number=order.order_number,
        message=message,
        order=order_out(order, result.stored_id),
    )


def _log_submission_failure(
    db: Session, session_id: str, machine: CheckoutStateMachine, e: ExternalFailure
) -> None:
    order_number = getattr(e, "order_number", None) or machine.draft.pending_order_number
    if isinstance(e, OrderStoreError):
        entity_type, event_type = EntityTypeV1.ORDER, EventTypeV1.ORDER_PERSIST_FAILED
    else:
        entity_type, event_type = EntityTypeV1.PAYMENT, EventTypeV1.PAYMENT_FAILED
    _log_event(
        db,
        session_id=session_id,
        entity_type=entity_type,
        entity_id=order_number or session_id,
        event_type=event_type,
        event_payload={"error": str(e), "error_type": type(e).__name__},
    )
    db.commit()


def order_out(order: OrderRecord, stored_id: str | None = None) -> OrderOut:
    return OrderOut(
        id=stored_id,
        order_number=order.order_number,
        items=[
            OrderItemOut(
                product_id=item.product_id,
                name=item.name,
                unit_price=item.unit_price,
                quantity=item.quantity,
                selected_size=item.selected_size,
                line_total=round_money(item.line_total),
            )
            for item in order.items
        ],
        customer_info=order.customer_info,
        address_details=order.address_details,
        complete_address=order.complete_address,
        selected_size=order.selected_size,
        subtotal=order.subtotal,
        tax=order.tax,
        delivery_fee=order.delivery_fee,
        cod_fee=order.cod_fee,
        discount=order.discount,
        total=order.total,
        currency=order.currency,
        payment_method=order.payment_method.value,
        payment_status=order.payment_status,
        order_status=order.order_status,
        coupon_code=order.coupon_code,
        gateway_order_id=order.gateway_order_id,
        gateway_payment_id=order.gateway_payment_id,
        created_at=order.created_at.isoformat(),
    )


def _checkout_view(session: ShopSession) -> CheckoutViewV1:
    machine = session.checkout
    assert machine is not None
    settings = machine.settings
    draft = machine.draft
    lines = session.cart.lines

    priced = machine.price(lines).rounded()
    coupon_status = machine.coupon_status(lines)
    fmt = settings.format_amount

    warnings: list[str] = []
    if not priced.is_min_order_met:
        warnings.append(
            f"Add {fmt(priced.min_order_shortfall)} more to meet the minimum order amount."
        )
    if priced.is_max_order_exceeded:
        warnings.append(f"Maximum order amount is {fmt(settings.max_order_amount)}.")
    if coupon_status is not None and not coupon_status.valid:
        warnings.append(coupon_status.message)
    if draft.payment_method is PaymentMethod.COD:
        warnings.extend(validate_payment_method(PaymentMethod.COD, priced.total, settings))

    coupon = None
    if draft.applied_coupon is not None and coupon_status is not None:
        applied = draft.applied_coupon
        coupon = AppliedCouponV1(
            code=applied.code,
            description=applied.description,
            discount_type=applied.discount_type.value,
            discount_value=applied.discount_value,
            discount_amount=priced.discount if coupon_status.valid else ZERO,
            valid=coupon_status.valid,
            message=coupon_status.message,
        )

    return CheckoutViewV1(
        session_id=session.session_id,
        step=int(machine.step),
        step_title=STEP_TITLES[machine.step],
        steps=[
            CheckoutStepV1(
                number=int(step),
                title=STEP_TITLES[step],
                completed=step < machine.step,
                current=step == machine.step,
            )
            for step in CheckoutStep
        ],
        customer_info=CustomerInfoV1(
            name=draft.customer_info.name,
            email=draft.customer_info.email,
            phone=draft.customer_info.phone,
        ),
        address_details=_address_v1(draft.address_details, draft.use_existing_address),
        use_existing_address=draft.use_existing_address,
        payment_method=PaymentMethodV1(draft.payment_method.value),
        pricing=PricingV1(
            subtotal=priced.subtotal,
            tax=priced.tax,
            delivery_fee=priced.delivery_fee,
            cod_fee=priced.cod_fee,
            discount=priced.discount,
            total=priced.total,
            currency=settings.currency,
            is_min_order_met=priced.is_min_order_met,
            min_order_shortfall=priced.min_order_shortfall,
            is_cod_eligible=priced.is_cod_eligible,
            is_max_order_exceeded=priced.is_max_order_exceeded,
        ),
        coupon=coupon,
        awaiting_payment=draft.awaiting_payment,
        pending_order_number=draft.pending_order_number,
        actions=_actions(machine),
        warnings=warnings[:8],
    )


def _address_v1(addr: AddressDetails, use_existing: bool) -> AddressDetailsV1:
    complete = None
    if addr.city and addr.state and addr.pincode and (use_existing or addr.street):
        complete = addr.complete_address()
    return AddressDetailsV1(
        plot_number=addr.plot_number,
        building_name=addr.building_name,
        street=addr.street,
        landmark=addr.landmark,
        city=addr.city,
        state=addr.state,
        pincode=addr.pincode,
        address_type=addr.address_type,
        save_as=addr.save_as,
        complete_address=complete,
    )


def _actions(machine: CheckoutStateMachine) -> list[CheckoutActionV1]:
    actions: list[CheckoutActionV1] = []
    if machine.step > CheckoutStep.CONTACT_INFO:
        actions.append(CheckoutActionV1(type=CheckoutActionTypeV1.BACK, label="Back"))
    if machine.step < CheckoutStep.SUMMARY:
        actions.append(CheckoutActionV1(type=CheckoutActionTypeV1.NEXT, label="Continue"))
    elif machine.draft.awaiting_payment:
        actions.append(
            CheckoutActionV1(type=CheckoutActionTypeV1.COMPLETE_PAYMENT, label="Complete payment")
        )
    else:
        actions.append(
            CheckoutActionV1(type=CheckoutActionTypeV1.PLACE_ORDER, label="Place Order")
        )

    actions.append(CheckoutActionV1(type=CheckoutActionTypeV1.APPLY_COUPON, label="Apply coupon"))
    if machine.draft.applied_coupon is not None:
        actions.append(
            CheckoutActionV1(type=CheckoutActionTypeV1.REMOVE_COUPON, label="Remove coupon")
        )
    return actions


def _log_event(
    db: Session,
    *,
    session_id: str | None,
    entity_type: EntityTypeV1,
    entity_id: str,
    event_type: EventTypeV1,
    event_payload: dict,
) -> None:
    db.add(
        EventLog(
            id=uuid4().hex,
            session_id=session_id,
            entity_type=entity_type.value,
            entity_id=entity_id,
            event_type=event_type.value,
            event_payload_json=event_payload,
        )
    )


def _raise_checkout_http_error(e: Exception) -> None:
    if isinstance(e, HTTPException):
        raise e

    if isinstance(e, CheckoutValidationError):
        raise HTTPException(status_code=422, detail=e.reason) from e

    if isinstance(e, CheckoutStateError):
        raise HTTPException(status_code=409, detail=str(e)) from e

    if isinstance(e, SettingsUnavailableError):
        raise HTTPException(status_code=503, detail=str(e)) from e

    if isinstance(e, OrderStoreError):
        raise HTTPException(status_code=502, detail=str(e)) from e

    if isinstance(e, PaymentGatewayConfigError):
        raise HTTPException(status_code=500, detail=str(e)) from e

    if isinstance(e, PaymentGatewayTimeoutError):
        raise HTTPException(status_code=504, detail=str(e)) from e

    if isinstance(e, (PaymentDeclinedError, PaymentCancelledError)):
        raise HTTPException(status_code=402, detail=str(e)) from e

    if isinstance(e, ExternalFailure):
        raise HTTPException(status_code=502, detail=str(e)) from e

    raise HTTPException(status_code=500, detail="Internal Server Error") from e
