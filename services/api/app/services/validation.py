"""Field-level validation for the checkout steps.

Each validator returns the list of problems in display order; callers surface the first one.
"""

from __future__ import annotations

import re
from decimal import Decimal

from services.api.app.services.money import round_money
from services.api.app.services.pricing import PaymentMethod
from services.api.app.services.settings import CommerceSettings

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]{2,}$")
PINCODE_RE = re.compile(r"^[1-9][0-9]{5}$")
PHONE_DIGITS = 10


def normalize_phone(phone: str) -> str:
    """Strip separators and a leading +91/91/0 so that the national number remains."""

    digits = re.sub(r"[\s\-().]", "", phone or "")
    if digits.startswith("+"):
        digits = digits[1:]
    if len(digits) == PHONE_DIGITS + 2 and digits.startswith("91"):
        digits = digits[2:]
    elif len(digits) == PHONE_DIGITS + 1 and digits.startswith("0"):
        digits = digits[1:]
    return digits


def validate_contact_info(name: str, email: str, phone: str) -> list[str]:
    errors: list[str] = []

    name = (name or "").strip()
    email = (email or "").strip()
    phone = (phone or "").strip()

    if not name:
        errors.append("Name is required.")
    elif len(name) < 2:
        errors.append("Name must be at least 2 characters.")

    if not email:
        errors.append("Email is required.")
    elif not EMAIL_RE.match(email):
        errors.append("Please enter a valid email address.")

    if not phone:
        errors.append("Phone number is required.")
    else:
        digits = normalize_phone(phone)
        if not digits.isdigit() or len(digits) != PHONE_DIGITS:
            errors.append(f"Phone number must be {PHONE_DIGITS} digits.")

    return errors


def validate_location(city: str, state: str, pincode: str) -> list[str]:
    if not (city or "").strip() or not (state or "").strip() or not (pincode or "").strip():
        return ["Please fill in city, state, and pincode."]
    return []


def validate_address_details(
    *,
    plot_number: str,
    street: str,
    pincode: str,
    address_type: str,
    save_as: str,
) -> list[str]:
    errors: list[str] = []

    if not (plot_number or "").strip():
        errors.append("Plot / house number is required.")
    if not (street or "").strip():
        errors.append("Street is required.")
    if not PINCODE_RE.match((pincode or "").strip()):
        errors.append("Pincode must be a valid 6-digit code.")
    if address_type == "other" and not (save_as or "").strip():
        errors.append("Please name this address.")

    return errors


def validate_payment_method(
    method: PaymentMethod, total: Decimal, settings: CommerceSettings
) -> list[str]:
    if method is PaymentMethod.ONLINE:
        if not settings.online_payment_enabled:
            return ["Online payment is currently not available."]
        return []

    if not settings.cod_enabled:
        return ["Cash on Delivery is currently not available."]
    # Compared on the amount the shopper sees and pays.
    if round_money(total) > settings.cod_threshold:
        return [
            "Cash on Delivery is not available for orders above "
            f"{settings.format_amount(settings.cod_threshold)}. Please choose online payment."
        ]
    return []
