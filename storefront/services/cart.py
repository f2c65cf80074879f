"""Cart aggregation.

A cart is a set of lines keyed by product id. Every mutation clamps the line
quantity to ``[1, available_inventory]`` (a line that would drop to zero is
removed instead) and recomputes ``total_cents`` and ``item_count`` from the
lines, so the derived values can never drift from the lines they summarize.
"""

from dataclasses import dataclass, field, asdict
from typing import Any


@dataclass
class CartLine:
    product_id: int
    name: str
    unit_price_cents: int
    quantity: int
    available_inventory: int
    image: str = ""
    slug: str = ""

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass
class Cart:
    lines: list[CartLine] = field(default_factory=list)
    total_cents: int = 0
    item_count: int = 0

    def get(self, product_id: int) -> CartLine | None:
        return next((ln for ln in self.lines if ln.product_id == product_id), None)

    def __contains__(self, product_id: int) -> bool:
        return self.get(product_id) is not None

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def add(self, product: dict[str, Any], qty: int = 1) -> "Cart":
        """Add ``qty`` units of ``product``; excess over inventory is truncated."""
        available = int(product["available_inventory"])
        existing = self.get(int(product["product_id"]))
        if existing:
            existing.available_inventory = available
            existing.quantity = min(existing.quantity + qty, available)
        else:
            self.lines.append(
                CartLine(
                    product_id=int(product["product_id"]),
                    name=product["name"],
                    unit_price_cents=int(product["unit_price_cents"]),
                    quantity=min(qty, available),
                    available_inventory=available,
                    image=product.get("image", ""),
                    slug=product.get("slug", ""),
                )
            )
        return self._recompute()

    def remove(self, product_id: int) -> "Cart":
        self.lines = [ln for ln in self.lines if ln.product_id != product_id]
        return self._recompute()

    def set_quantity(self, product_id: int, qty: int) -> "Cart":
        if qty <= 0:
            return self.remove(product_id)
        line = self.get(product_id)
        if line:
            line.quantity = min(qty, line.available_inventory)
        return self._recompute()

    def clear(self) -> "Cart":
        self.lines = []
        return self._recompute()

    def _recompute(self) -> "Cart":
        # out-of-stock lines can be clamped to 0; never keep them
        self.lines = [ln for ln in self.lines if ln.quantity > 0]
        self.total_cents = sum(ln.line_total_cents for ln in self.lines)
        self.item_count = sum(ln.quantity for ln in self.lines)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "lines": [asdict(ln) for ln in self.lines],
            "total_cents": self.total_cents,
            "item_count": self.item_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Cart":
        lines = []
        seen = set()
        for raw in data.get("lines", []):
            if int(raw["product_id"]) in seen:
                continue
            seen.add(int(raw["product_id"]))
            line = CartLine(
                product_id=int(raw["product_id"]),
                name=str(raw["name"]),
                unit_price_cents=int(raw["unit_price_cents"]),
                quantity=int(raw["quantity"]),
                available_inventory=int(raw["available_inventory"]),
                image=raw.get("image", ""),
                slug=raw.get("slug", ""),
            )
            line.quantity = min(line.quantity, line.available_inventory)
            lines.append(line)
        # stored totals are ignored; they are always derived
        return cls(lines=lines)._recompute()
