from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from services.api.app.services.errors import DuplicateOrderError
from services.api.app.services.orders import OrderLine, OrderRecord
from services.api.app.services.pricing import PaymentMethod
from sqlalchemy.orm import Session

D = Decimal


@pytest.fixture()
def db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Session:
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{tmp_path / 'atelier_repo.db'}")
    monkeypatch.setenv("ATELIER_DB_AUTO_CREATE", "true")

    from services.api.app.db.database import db_session
    from services.api.app.db.init_db import init_db

    init_db()
    session = db_session()
    try:
        yield session
    finally:
        session.close()


def _add_coupon(db: Session, coupon_id: str, code: str, *products: str) -> None:
    from services.api.app.db.models import CouponRow, ProductCoupon

    db.add(
        CouponRow(
            id=coupon_id,
            code=code,
            discount_type="fixed",
            discount_value=D("100"),
            min_order_amount=D("999"),
            is_active=True,
            valid_until=datetime(2030, 1, 1),
        )
    )
    for product_id in products:
        db.add(ProductCoupon(coupon_id=coupon_id, product_id=product_id))
    db.commit()


def _record(order_number: str = "SS1717243200000123") -> OrderRecord:
    return OrderRecord(
        order_number=order_number,
        items=(
            OrderLine(
                product_id="tee",
                name="Linen Tee",
                unit_price=D("1200"),
                quantity=1,
                selected_size="M",
            ),
        ),
        customer_info={"name": "Asha Rao", "email": "asha@example.in", "phone": "9876543210"},
        address_details={"city": "Bengaluru", "state": "Karnataka", "pincode": "560001"},
        complete_address="12B, MG Road, Bengaluru, Karnataka - 560001",
        subtotal=D("1200.00"),
        tax=D("60.00"),
        delivery_fee=D("50.00"),
        cod_fee=D("20.00"),
        discount=D("0.00"),
        total=D("1330.00"),
        currency="INR",
        payment_method=PaymentMethod.COD,
        payment_status="pending",
        order_status="placed",
        selected_size="M",
        created_at=datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc),
    )


def test_settings_round_trip(db: Session) -> None:
    from services.api.app.services.repositories import SqlSettingsStore

    store = SqlSettingsStore(db)
    store.upsert({"tax_rate": 5, "currency": "INR"})
    store.upsert({"tax_rate": 18})

    assert store.load_raw() == {"tax_rate": 18, "currency": "INR"}


def test_coupon_lookup_is_case_insensitive_and_scoped(db: Session) -> None:
    from services.api.app.services.repositories import SqlCouponStore

    _add_coupon(db, "c-1", "TEES100", "tee", "polo")
    store = SqlCouponStore(db)

    coupon = store.find_by_code(" tees100 ")
    assert coupon is not None
    assert coupon.product_ids == frozenset({"tee", "polo"})
    assert coupon.min_order_amount == D("999")
    assert coupon.valid_until is not None and coupon.valid_until.tzinfo is not None
    assert store.find_by_code("missing") is None


def test_list_for_products_includes_store_wide(db: Session) -> None:
    from services.api.app.services.repositories import SqlCouponStore

    _add_coupon(db, "c-1", "TEES100", "tee")
    _add_coupon(db, "c-2", "CAPS100", "cap")
    _add_coupon(db, "c-3", "ALL100")

    codes = {c.code for c in SqlCouponStore(db).list_for_products(["tee"])}
    assert codes == {"TEES100", "ALL100"}


def test_increment_usage(db: Session) -> None:
    from services.api.app.db.models import CouponRow
    from services.api.app.services.repositories import SqlCouponStore

    _add_coupon(db, "c-1", "TEES100")
    store = SqlCouponStore(db)
    store.increment_usage("c-1")
    store.increment_usage("c-1")

    db.expire_all()
    assert db.get(CouponRow, "c-1").used_count == 2


def test_order_insert_and_get(db: Session) -> None:
    from services.api.app.services.repositories import SqlOrderStore

    store = SqlOrderStore(db)
    stored_id = store.insert(_record())

    found = store.get("SS1717243200000123")
    assert found is not None
    assert found[0] == stored_id
    record = found[1]
    assert record.total == D("1330.00")
    assert record.payment_method is PaymentMethod.COD
    assert record.items[0].unit_price == D("1200")
    assert record.created_at.tzinfo is not None


def test_duplicate_order_number(db: Session) -> None:
    from services.api.app.services.repositories import SqlOrderStore

    store = SqlOrderStore(db)
    store.insert(_record())
    with pytest.raises(DuplicateOrderError):
        store.insert(_record())

    assert store.get("SS1717243200000123") is not None
