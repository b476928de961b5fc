from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from fulfillment.domain.common.errors import ValidationError
from fulfillment.domain.common.ids import MenuItemId
from fulfillment.domain.common.money import Money


class CartChangeKind(str, Enum):
    ITEM_ADDED = "item_added"
    QUANTITY_UPDATED = "quantity_updated"
    ITEM_REMOVED = "item_removed"
    CLEARED = "cleared"


@dataclass(frozen=True)
class CartLine:
    menu_item_id: MenuItemId
    name: str
    unit_price: Money
    quantity: int

    @property
    def line_total(self) -> Money:
        return self.unit_price.times(self.quantity)


@dataclass(frozen=True)
class CartChanged:
    kind: CartChangeKind
    lines: tuple[CartLine, ...]
    menu_item_id: MenuItemId | None = None


CartListener = Callable[[CartChanged], None]


class CartStore:
    """Client-side cart with explicit change notifications.

    Listeners receive an immutable snapshot after every change, so nothing
    needs to poll or share the underlying list.
    """

    def __init__(self, currency: str) -> None:
        self._currency = currency
        self._lines: dict[MenuItemId, CartLine] = {}
        self._listeners: list[CartListener] = []

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return tuple(self._lines.values())

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add(self, menu_item_id: MenuItemId, name: str, unit_price: Money, quantity: int = 1) -> None:
        if quantity < 1:
            raise ValidationError("quantity must be >= 1")
        if unit_price.currency != self._currency:
            raise ValidationError(f"cart currency is {self._currency}")
        existing = self._lines.get(menu_item_id)
        if existing is not None:
            quantity += existing.quantity
        self._lines[menu_item_id] = CartLine(
            menu_item_id=menu_item_id,
            name=name,
            unit_price=unit_price,
            quantity=quantity,
        )
        self._notify(CartChangeKind.ITEM_ADDED, menu_item_id)

    def update_quantity(self, menu_item_id: MenuItemId, quantity: int) -> None:
        existing = self._lines.get(menu_item_id)
        if existing is None:
            return
        if quantity <= 0:
            self.remove(menu_item_id)
            return
        self._lines[menu_item_id] = CartLine(
            menu_item_id=existing.menu_item_id,
            name=existing.name,
            unit_price=existing.unit_price,
            quantity=quantity,
        )
        self._notify(CartChangeKind.QUANTITY_UPDATED, menu_item_id)

    def remove(self, menu_item_id: MenuItemId) -> None:
        if self._lines.pop(menu_item_id, None) is not None:
            self._notify(CartChangeKind.ITEM_REMOVED, menu_item_id)

    def clear(self) -> None:
        self._lines.clear()
        self._notify(CartChangeKind.CLEARED, None)

    def total(self) -> Money:
        total = Money.zero(self._currency)
        for line in self._lines.values():
            total = total.plus(line.line_total)
        return total

    def count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def _notify(self, kind: CartChangeKind, menu_item_id: MenuItemId | None) -> None:
        event = CartChanged(kind=kind, lines=self.lines, menu_item_id=menu_item_id)
        for listener in list(self._listeners):
            listener(event)
