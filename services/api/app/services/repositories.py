"""SQLAlchemy-backed stores for settings, coupons and orders."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from services.api.app.db.models import CouponRow, OrderRow, ProductCoupon, StoreSetting
from services.api.app.services.coupons import Coupon, DiscountType, normalize_code
from services.api.app.services.errors import DuplicateOrderError, OrderStoreError
from services.api.app.services.orders import OrderLine, OrderRecord
from services.api.app.services.pricing import PaymentMethod

logger = logging.getLogger(__name__)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back; everything is stored as UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class SqlSettingsStore:
    def __init__(self, db: Session) -> None:
        self._db = db

    def load_raw(self) -> dict[str, Any]:
        return {row.key: row.value for row in self._db.query(StoreSetting).all()}

    def upsert(self, values: dict[str, Any]) -> None:
        now = datetime.now(timezone.utc)
        for key, value in values.items():
            row = self._db.get(StoreSetting, key)
            if row is None:
                self._db.add(StoreSetting(key=key, value=value, updated_at=now))
            else:
                row.value = value
                row.updated_at = now
        self._db.commit()


class SqlCouponStore:
    def __init__(self, db: Session) -> None:
        self._db = db

    def find_by_code(self, code: str) -> Coupon | None:
        normalized = normalize_code(code)
        if not normalized:
            return None
        row = self._db.query(CouponRow).filter(func.upper(CouponRow.code) == normalized).first()
        if row is None:
            return None
        return self._to_coupon(row, self._scope_of([row.id]).get(row.id, frozenset()))

    def list_for_products(self, product_ids: Iterable[str]) -> list[Coupon]:
        """Active coupons that are either store-wide or scoped to one of these products."""

        product_ids = list(product_ids)
        scoped_ids = select(ProductCoupon.coupon_id).where(
            ProductCoupon.product_id.in_(product_ids)
        )
        any_scope = select(ProductCoupon.coupon_id)

        rows = (
            self._db.query(CouponRow)
            .filter(CouponRow.is_active.is_(True))
            .filter(or_(CouponRow.id.in_(scoped_ids), CouponRow.id.not_in(any_scope)))
            .order_by(CouponRow.created_at.desc())
            .all()
        )
        scopes = self._scope_of([row.id for row in rows])
        return [self._to_coupon(row, scopes.get(row.id, frozenset())) for row in rows]

    def increment_usage(self, coupon_id: str) -> None:
        # Single UPDATE so concurrent orders cannot lose an increment.
        try:
            self._db.execute(
                update(CouponRow)
                .where(CouponRow.id == coupon_id)
                .values(used_count=CouponRow.used_count + 1)
            )
            self._db.commit()
        except SQLAlchemyError:
            self._db.rollback()
            raise

    def _scope_of(self, coupon_ids: list[str]) -> dict[str, frozenset[str]]:
        if not coupon_ids:
            return {}
        scopes: dict[str, set[str]] = {}
        rows = self._db.query(ProductCoupon).filter(ProductCoupon.coupon_id.in_(coupon_ids)).all()
        for link in rows:
            scopes.setdefault(link.coupon_id, set()).add(link.product_id)
        return {cid: frozenset(pids) for cid, pids in scopes.items()}

    @staticmethod
    def _to_coupon(row: CouponRow, product_ids: frozenset[str]) -> Coupon:
        return Coupon(
            id=row.id,
            code=row.code,
            discount_type=DiscountType(row.discount_type),
            discount_value=Decimal(row.discount_value),
            min_order_amount=(
                Decimal(row.min_order_amount) if row.min_order_amount is not None else None
            ),
            max_discount_amount=(
                Decimal(row.max_discount_amount) if row.max_discount_amount is not None else None
            ),
            usage_limit=row.usage_limit,
            used_count=row.used_count or 0,
            is_active=bool(row.is_active),
            valid_from=_aware(row.valid_from),
            valid_until=_aware(row.valid_until),
            product_ids=product_ids,
            description=row.description or "",
        )


class SqlOrderStore:
    def __init__(self, db: Session) -> None:
        self._db = db

    def insert(self, record: OrderRecord) -> str:
        row = _order_row(record)
        try:
            self._db.add(row)
            self._db.commit()
        except IntegrityError as e:
            self._db.rollback()
            if self._exists(record.order_number):
                raise DuplicateOrderError(record.order_number) from e
            raise OrderStoreError(record.order_number, str(e.orig)) from e
        except SQLAlchemyError as e:
            self._db.rollback()
            raise OrderStoreError(record.order_number, str(e)) from e

        logger.info("stored order %s as %s", record.order_number, row.id)
        return row.id

    def get(self, order_number: str) -> tuple[str, OrderRecord] | None:
        row = self._db.query(OrderRow).filter(OrderRow.order_number == order_number).first()
        if row is None:
            return None
        return row.id, _order_record(row)

    def _exists(self, order_number: str) -> bool:
        return (
            self._db.query(OrderRow.id).filter(OrderRow.order_number == order_number).first()
            is not None
        )


def _order_row(record: OrderRecord) -> OrderRow:
    values = record.to_row()
    return OrderRow(
        id=str(uuid.uuid4()),
        order_number=record.order_number,
        customer_info_json=values["customer_info"],
        address_details_json=values["address_details"],
        complete_address=record.complete_address,
        items_json=values["items"],
        selected_size=record.selected_size,
        subtotal=record.subtotal,
        tax=record.tax,
        delivery_fee=record.delivery_fee,
        cod_fee=record.cod_fee,
        discount=record.discount,
        total=record.total,
        currency=record.currency,
        payment_method=values["payment_method"],
        payment_status=record.payment_status,
        order_status=record.order_status,
        coupon_code=record.coupon_code,
        coupon_id=record.coupon_id,
        gateway_order_id=record.gateway_order_id,
        gateway_payment_id=record.gateway_payment_id,
        created_at=record.created_at,
    )


def _order_record(row: OrderRow) -> OrderRecord:
    items = tuple(
        OrderLine(
            product_id=item["product_id"],
            name=item["name"],
            unit_price=Decimal(str(item["unit_price"])),
            quantity=int(item["quantity"]),
            selected_size=item["selected_size"],
            image_ref=item.get("image_ref"),
            category=item.get("category", "apparel"),
        )
        for item in row.items_json
    )
    return OrderRecord(
        order_number=row.order_number,
        items=items,
        customer_info=dict(row.customer_info_json),
        address_details=dict(row.address_details_json),
        complete_address=row.complete_address,
        subtotal=Decimal(row.subtotal),
        tax=Decimal(row.tax),
        delivery_fee=Decimal(row.delivery_fee),
        cod_fee=Decimal(row.cod_fee),
        discount=Decimal(row.discount),
        total=Decimal(row.total),
        currency=row.currency,
        payment_method=PaymentMethod(row.payment_method),
        payment_status=row.payment_status,
        order_status=row.order_status,
        selected_size=row.selected_size,
        created_at=_aware(row.created_at),
        coupon_code=row.coupon_code,
        coupon_id=row.coupon_id,
        gateway_order_id=row.gateway_order_id,
        gateway_payment_id=row.gateway_payment_id,
    )
