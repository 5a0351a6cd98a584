from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal

DEFAULT_SIZE = "Standard"


class CartError(ValueError):
    """Rejected cart edit."""


@dataclass(frozen=True, slots=True)
class Product:
    product_id: str
    name: str
    unit_price: Decimal
    image_ref: str | None = None
    category: str = "apparel"


@dataclass(frozen=True, slots=True)
class CartLine:
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    selected_size: str = DEFAULT_SIZE
    image_ref: str | None = None
    category: str = "apparel"

    @property
    def key(self) -> tuple[str, str]:
        return (self.product_id, self.selected_size)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class Cart:
    """Cart lines keyed by (product_id, selected_size).

    Two sizes of the same product are separate lines and are never merged.
    """

    def __init__(self, lines: list[CartLine] | None = None) -> None:
        self._lines: list[CartLine] = list(lines or [])

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return tuple(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def product_ids(self) -> set[str]:
        return {line.product_id for line in self._lines}

    def add(self, product: Product, size: str | None = None, quantity: int = 1) -> CartLine:
        if product.unit_price <= 0:
            raise CartError(f"Product {product.product_id} has no valid price")
        if quantity < 1:
            raise CartError("Quantity must be at least 1")

        key = (product.product_id, _size(size))
        for idx, line in enumerate(self._lines):
            if line.key == key:
                updated = replace(line, quantity=line.quantity + quantity)
                self._lines[idx] = updated
                return updated

        line = CartLine(
            product_id=product.product_id,
            name=product.name,
            unit_price=product.unit_price,
            quantity=quantity,
            selected_size=key[1],
            image_ref=product.image_ref,
            category=product.category,
        )
        self._lines.append(line)
        return line

    def remove(self, product_id: str, size: str | None = None) -> None:
        key = (product_id, _size(size))
        self._lines = [line for line in self._lines if line.key != key]

    def update_quantity(self, product_id: str, quantity: int, size: str | None = None) -> None:
        if quantity <= 0:
            self.remove(product_id, size)
            return

        key = (product_id, _size(size))
        self._lines = [
            replace(line, quantity=quantity) if line.key == key else line for line in self._lines
        ]

    def clear(self) -> None:
        self._lines = []


def _size(size: str | None) -> str:
    size = (size or "").strip()
    return size or DEFAULT_SIZE
