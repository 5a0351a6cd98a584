"""Store-wide commerce settings.

The settings table is a loose key/value bag (values are often JSON-encoded strings written by
the admin screen). Everything downstream works with `CommerceSettings`; all coercion and
defaulting happens in `resolve_settings`.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

from services.api.app.services.errors import SettingsUnavailableError
from services.api.app.services.money import ZERO, round_money

DEFAULT_CURRENCY = "INR"
DEFAULT_CURRENCY_SYMBOL = "₹"

SETTING_KEYS = (
    "tax_rate",
    "delivery_charge",
    "free_delivery_threshold",
    "cod_enabled",
    "cod_charge",
    "cod_threshold",
    "min_order_amount",
    "max_order_amount",
    "currency",
    "currency_symbol",
    "online_payment_enabled",
)


@dataclass(frozen=True, slots=True)
class CommerceSettings:
    tax_rate: Decimal = ZERO
    delivery_charge: Decimal = ZERO
    free_delivery_threshold: Decimal = ZERO
    cod_enabled: bool = False
    cod_charge: Decimal = ZERO
    cod_threshold: Decimal = ZERO
    min_order_amount: Decimal = ZERO
    max_order_amount: Decimal = ZERO
    currency: str = DEFAULT_CURRENCY
    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL
    online_payment_enabled: bool = True

    def format_amount(self, amount: Decimal) -> str:
        return f"{self.currency_symbol}{round_money(amount):.2f}"

    def as_dict(self) -> dict[str, Any]:
        return {key: getattr(self, key) for key in SETTING_KEYS}


class SettingsStore(Protocol):
    def load_raw(self) -> dict[str, Any]: ...


def resolve_settings(raw: Mapping[str, Any]) -> CommerceSettings:
    """Turn the raw settings bag into typed settings.

    Missing or malformed keys fall back to their defaults; negative amounts are treated as 0
    except for the free-delivery threshold, where any non-positive value means "no offer".
    """

    values = {key: _decode(value) for key, value in raw.items()}

    online = values.get("online_payment_enabled")
    if online is None:
        online = values.get("razorpay_enabled")

    return CommerceSettings(
        tax_rate=_non_negative(values.get("tax_rate")),
        delivery_charge=_non_negative(values.get("delivery_charge")),
        free_delivery_threshold=_decimal(values.get("free_delivery_threshold")),
        cod_enabled=_bool(values.get("cod_enabled"), default=False),
        cod_charge=_non_negative(values.get("cod_charge")),
        cod_threshold=_decimal(values.get("cod_threshold")),
        min_order_amount=_non_negative(values.get("min_order_amount")),
        max_order_amount=_decimal(values.get("max_order_amount")),
        currency=_text(values.get("currency"), DEFAULT_CURRENCY).upper(),
        currency_symbol=_text(values.get("currency_symbol"), DEFAULT_CURRENCY_SYMBOL),
        online_payment_enabled=_bool(online, default=True),
    )


def load_settings(store: SettingsStore) -> CommerceSettings:
    try:
        raw = store.load_raw()
    except Exception as e:
        raise SettingsUnavailableError(str(e)) from e
    return resolve_settings(raw)


def _decode(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        return value


def _decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return ZERO
    try:
        out = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ZERO
    if not out.is_finite():
        return ZERO
    return out


def _non_negative(value: Any) -> Decimal:
    return max(ZERO, _decimal(value))


def _bool(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "y", "on"}:
        return True
    if text in {"0", "false", "no", "n", "off", ""}:
        return False
    return default


def _text(value: Any, default: str) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default
