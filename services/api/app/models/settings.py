from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel


class CommerceSettingsOut(BaseModel):
    tax_rate: Decimal
    delivery_charge: Decimal
    free_delivery_threshold: Decimal
    cod_enabled: bool
    cod_charge: Decimal
    cod_threshold: Decimal
    min_order_amount: Decimal
    max_order_amount: Decimal
    currency: str
    currency_symbol: str
    online_payment_enabled: bool
