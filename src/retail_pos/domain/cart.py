from __future__ import annotations
from decimal import Decimal
from typing import Iterable, Iterator

from retail_pos.domain.discounts import quantize
from retail_pos.domain.errors import StockLimitError, ValidationError
from retail_pos.domain.models import CartLine, CatalogItem


class Cart:
    """
    Ordered item id -> CartLine mapping.

    Every line keeps 0 < quantity <= item.stock, where item is the catalog
    snapshot the line was last bound to. Lines that would drop to 0 are removed.
    """

    def __init__(self):
        self._lines: dict[str, CartLine] = {}

    def __iter__(self) -> Iterator[CartLine]:
        return iter(list(self._lines.values()))

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._lines

    def get(self, item_id: str) -> CartLine | None:
        return self._lines.get(item_id)

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def add_item(self, item: CatalogItem) -> CartLine:
        line = self._lines.get(item.id)
        if line is None:
            if item.stock < 1:
                raise StockLimitError(f"{item.name} is out of stock")
            line = CartLine(item=item, quantity=1, price=item.selling_price)
            self._lines[item.id] = line
            return line
        if line.quantity + 1 > line.item.stock:
            raise StockLimitError("Cannot add more than available stock")
        line.quantity += 1
        return line

    def change_quantity(self, item_id: str, delta: int) -> CartLine | None:
        line = self._lines.get(item_id)
        if line is None:
            raise ValidationError(f"Item {item_id} is not in the cart")
        new_qty = line.quantity + delta
        if new_qty <= 0:
            del self._lines[item_id]
            return None
        if new_qty > line.item.stock:
            raise StockLimitError("Cannot exceed available stock")
        line.quantity = new_qty
        return line

    def remove_item(self, item_id: str) -> None:
        self._lines.pop(item_id, None)

    def set_line_price(self, item_id: str, price: Decimal) -> CartLine:
        line = self._lines.get(item_id)
        if line is None:
            raise ValidationError(f"Item {item_id} is not in the cart")
        if not isinstance(price, Decimal) or not price.is_finite():
            raise ValidationError("Price must be a number")
        if price < 0:
            raise ValidationError("Price cannot be negative")
        line.price = quantize(price)
        return line

    def reconcile(self, catalog: Iterable[CatalogItem]) -> list[str]:
        """
        Re-bind lines to a fresh catalog snapshot.

        Lines whose item is gone are dropped, quantities above the fresh stock
        are clamped. Overridden prices are kept. Returns the adjusted item ids.
        """
        fresh = {item.id: item for item in catalog}
        adjusted: list[str] = []
        for item_id, line in list(self._lines.items()):
            item = fresh.get(item_id)
            if item is None or item.stock < 1:
                del self._lines[item_id]
                adjusted.append(item_id)
                continue
            line.item = item
            if line.quantity > item.stock:
                line.quantity = item.stock
                adjusted.append(item_id)
        return adjusted

    def clear(self) -> None:
        self._lines.clear()
