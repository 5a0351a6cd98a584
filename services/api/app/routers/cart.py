from __future__ import annotations

from fastapi import APIRouter, HTTPException
from services.api.app.models.cart import (
    CartItemAddRequest,
    CartItemRemoveRequest,
    CartItemUpdateRequest,
    CartLineOut,
    CartView,
)
from services.api.app.services.cart import CartError, Product
from services.api.app.services.money import round_money
from services.api.app.services.pricing import subtotal_of
from services.api.app.services.store import ShopSession, store

router = APIRouter()


@router.post("/v1/carts", response_model=CartView, status_code=201)
def create_cart() -> CartView:
    return _cart_view(store.create_session())


@router.get("/v1/carts/{session_id}", response_model=CartView)
def get_cart(session_id: str) -> CartView:
    return _cart_view(_session_or_404(session_id))


@router.post("/v1/carts/{session_id}/items", response_model=CartView)
def add_item(session_id: str, payload: CartItemAddRequest) -> CartView:
    session = _session_or_404(session_id)
    product = Product(
        product_id=payload.product_id,
        name=payload.name,
        unit_price=payload.unit_price,
        image_ref=payload.image_ref,
        category=payload.category,
    )
    try:
        session.cart.add(product, payload.selected_size, payload.quantity)
    except CartError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    _after_cart_edit(session)
    return _cart_view(session)


@router.patch("/v1/carts/{session_id}/items", response_model=CartView)
def update_item(session_id: str, payload: CartItemUpdateRequest) -> CartView:
    session = _session_or_404(session_id)
    session.cart.update_quantity(payload.product_id, payload.quantity, payload.selected_size)
    _after_cart_edit(session)
    return _cart_view(session)


@router.delete("/v1/carts/{session_id}/items", response_model=CartView)
def remove_item(session_id: str, payload: CartItemRemoveRequest) -> CartView:
    session = _session_or_404(session_id)
    session.cart.remove(payload.product_id, payload.selected_size)
    _after_cart_edit(session)
    return _cart_view(session)


@router.delete("/v1/carts/{session_id}", response_model=CartView)
def clear_cart(session_id: str) -> CartView:
    session = _session_or_404(session_id)
    session.cart.clear()
    _after_cart_edit(session)
    return _cart_view(session)


def _session_or_404(session_id: str) -> ShopSession:
    session = store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Cart not found")
    return session


def _after_cart_edit(session: ShopSession) -> None:
    # An empty cart has nothing to check out; drop the draft with it.
    if session.cart.is_empty:
        session.end_checkout()
    elif session.checkout is not None:
        session.checkout.discard_pending_payment()


def _cart_view(session: ShopSession) -> CartView:
    lines = session.cart.lines
    return CartView(
        session_id=session.session_id,
        lines=[
            CartLineOut(
                product_id=line.product_id,
                name=line.name,
                unit_price=line.unit_price,
                quantity=line.quantity,
                selected_size=line.selected_size,
                line_total=round_money(line.line_total),
                image_ref=line.image_ref,
                category=line.category,
            )
            for line in lines
        ],
        item_count=sum(line.quantity for line in lines),
        subtotal=round_money(subtotal_of(lines)),
        checkout_active=session.checkout is not None,
    )
