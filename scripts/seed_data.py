from __future__ import annotations

import argparse
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from services.api.app.db.database import db_session
from services.api.app.db.init_db import init_db
from services.api.app.db.models import CouponRow, ProductCoupon
from services.api.app.services.repositories import SqlSettingsStore

DEFAULT_SETTINGS = {
    "tax_rate": 5,
    "delivery_charge": 50,
    "free_delivery_threshold": 1500,
    "cod_enabled": True,
    "cod_charge": 20,
    "cod_threshold": 5000,
    "min_order_amount": 500,
    "max_order_amount": 0,
    "currency": "INR",
    "currency_symbol": "₹",
    "online_payment_enabled": True,
}


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed store settings and a demo coupon")
    parser.add_argument("--coupon-code", default="WELCOME15")
    parser.add_argument("--coupon-percent", type=int, default=15)
    parser.add_argument("--coupon-cap", default="200")
    parser.add_argument("--coupon-days", type=int, default=30)
    parser.add_argument(
        "--product",
        action="append",
        default=[],
        help="Scope the demo coupon to this product id (repeatable).",
    )
    args = parser.parse_args()

    init_db()

    db = db_session()
    try:
        store = SqlSettingsStore(db)
        existing = store.load_raw()
        store.upsert({k: v for k, v in DEFAULT_SETTINGS.items() if k not in existing})

        code = args.coupon_code.strip().upper()
        if db.query(CouponRow).filter(CouponRow.code == code).first() is None:
            now = datetime.now(timezone.utc)
            coupon_id = uuid4().hex
            db.add(
                CouponRow(
                    id=coupon_id,
                    code=code,
                    description=f"{args.coupon_percent}% off your order",
                    discount_type="percentage",
                    discount_value=Decimal(args.coupon_percent),
                    max_discount_amount=Decimal(args.coupon_cap),
                    usage_limit=None,
                    used_count=0,
                    is_active=True,
                    valid_from=now,
                    valid_until=now + timedelta(days=args.coupon_days),
                )
            )
            for product_id in args.product:
                db.add(ProductCoupon(coupon_id=coupon_id, product_id=product_id))

        db.commit()
        print(f"Seeded settings and coupon={code}")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
