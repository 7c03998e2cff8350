"""Session-scoped shopping cart."""
from __future__ import annotations
from typing import Optional

from .calculations import compute_totals
from .models import LineItem, Product, TaxBreakdown


class Cart:
    """
    Mutable list of lines for one sale.

    Quantities change in steps and never drop below one; removing a line is
    explicit. ``lines()`` hands out frozen copies for a document.
    """

    def __init__(self):
        self._lines: list[LineItem] = []

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def _index(self, product_id: str) -> Optional[int]:
        for i, line in enumerate(self._lines):
            if line.product_id == product_id:
                return i
        return None

    def add(self, product: Product, quantity: int = 1) -> LineItem:
        """Add a product, or bump its quantity if it is already in the cart."""
        if product.id is None:
            raise ValueError(f"Product {product.name!r} has no id")
        i = self._index(product.id)
        if i is not None:
            line = self._lines[i]
            self._lines[i] = line.model_copy(update={"quantity": line.quantity + quantity})
            return self._lines[i]
        line = LineItem(
            product_id=product.id,
            description=product.name,
            unit_price=product.price,
            quantity=quantity,
            tax_category=product.tax_category,
            unit_code=product.unit_code,
        )
        self._lines.append(line)
        return line

    def remove(self, product_id: str) -> None:
        self._lines = [line for line in self._lines if line.product_id != product_id]

    def update_quantity(self, product_id: str, delta: int) -> None:
        i = self._index(product_id)
        if i is None:
            raise KeyError(product_id)
        line = self._lines[i]
        self._lines[i] = line.model_copy(update={"quantity": max(1, line.quantity + delta)})

    def clear(self) -> None:
        self._lines = []

    def lines(self) -> tuple[LineItem, ...]:
        return tuple(line.model_copy(deep=True) for line in self._lines)

    def totals(self) -> TaxBreakdown:
        return compute_totals(self._lines)
