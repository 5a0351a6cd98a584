from __future__ import annotations


class CheckoutError(Exception):
    """Base class for checkout errors."""


class CheckoutValidationError(CheckoutError):
    """User-correctable input problem. `reason` is shown to the shopper as-is."""

    def __init__(
        self, reason: str, *, title: str = "Invalid checkout", step: int | None = None
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.title = title
        self.step = step


class CheckoutStateError(CheckoutError):
    """Illegal transition for the current checkout state."""


class ExternalFailure(CheckoutError):
    """Transient infrastructure failure. The draft stays valid and resubmittable."""


class SettingsUnavailableError(ExternalFailure):
    def __init__(self, cause: str) -> None:
        super().__init__(f"Store settings could not be loaded. Please try again. ({cause})")
        self.cause = cause


class OrderStoreError(ExternalFailure):
    def __init__(self, order_number: str, cause: str) -> None:
        super().__init__(
            f"Order {order_number} could not be saved. Your cart is unchanged, please try again."
        )
        self.order_number = order_number
        self.cause = cause


class DuplicateOrderError(OrderStoreError):
    """An order with this number is already stored."""

    def __init__(self, order_number: str) -> None:
        super().__init__(order_number, "duplicate order number")
