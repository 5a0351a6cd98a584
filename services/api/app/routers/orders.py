from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1, EventV1
from services.api.app.db.deps import get_db
from services.api.app.db.models import EventLog
from services.api.app.models.order import OrderOut
from services.api.app.routers.checkout import order_out
from services.api.app.services.repositories import SqlOrderStore
from sqlalchemy import or_
from sqlalchemy.orm import Session

router = APIRouter()


@router.get("/v1/orders/{order_number}", response_model=OrderOut)
def get_order(order_number: str, db: Session = Depends(get_db)) -> OrderOut:
    found = SqlOrderStore(db).get(order_number)
    if found is None:
        raise HTTPException(status_code=404, detail="Order not found")

    stored_id, record = found
    return order_out(record, stored_id)


@router.get("/v1/orders/{order_number}/events", response_model=list[EventV1])
def get_order_events(order_number: str, db: Session = Depends(get_db)) -> list[EventV1]:
    """Audit trail of the checkout session that produced this order."""

    if SqlOrderStore(db).get(order_number) is None:
        raise HTTPException(status_code=404, detail="Order not found")

    placed = (
        db.query(EventLog)
        .filter(EventLog.entity_type == EntityTypeV1.ORDER.value)
        .filter(EventLog.entity_id == order_number)
        .filter(EventLog.event_type == EventTypeV1.ORDER_PLACED.value)
        .first()
    )

    query = db.query(EventLog)
    if placed is not None and placed.session_id is not None:
        query = query.filter(
            or_(EventLog.session_id == placed.session_id, EventLog.entity_id == order_number)
        )
    else:
        query = query.filter(EventLog.entity_id == order_number)

    rows = query.order_by(EventLog.created_at.asc()).limit(500).all()

    return [
        EventV1(
            id=r.id,
            session_id=r.session_id,
            entity_type=EntityTypeV1(r.entity_type),
            entity_id=r.entity_id,
            event_type=EventTypeV1(r.event_type),
            payload=r.event_payload_json,
            created_at=r.created_at.isoformat(),
        )
        for r in rows
    ]
