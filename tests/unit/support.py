from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

from fulfillment.application.ports.card_processor import CardIntent
from fulfillment.application.ports.repositories import (
    IdempotencyReplayMismatchError,
    InvalidCursorError,
    OptimisticConcurrencyError,
)
from fulfillment.domain.common.errors import PaymentProcessorError
from fulfillment.domain.common.ids import MenuItemId, OrderId, StaffId
from fulfillment.domain.common.money import Money
from fulfillment.domain.order.entities import CustomerSnapshot, Order, OrderItem, create_pending_order
from fulfillment.domain.order.status import TERMINAL_STATUSES, FulfillmentType, OrderStatus, PaymentMethod
from fulfillment.domain.staff.entities import StaffMember, StaffRole


class FakeOrderRepository:
    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._idempotency: dict[str, str] = {}
        self.before_save: list[Callable[[], None]] = []
        self.save_calls = 0

    def add(self, order: Order) -> None:
        self._orders[str(order.order_id)] = order

    def add_with_idempotency(self, order: Order, key: str, payload_hash: str) -> Order:
        existing_id = self._idempotency.get(key)
        if existing_id is not None:
            existing = self._orders[existing_id]
            if existing.idempotency_hash != payload_hash:
                raise IdempotencyReplayMismatchError(f"idempotency key replay with different payload: {key}")
            return existing
        self._idempotency[key] = str(order.order_id)
        self.add(order)
        return order

    def get(self, order_id) -> Order | None:
        return self._orders.get(str(order_id))

    def save(self, order: Order, expected_version: int) -> Order:
        self.save_calls += 1
        if self.before_save:
            self.before_save.pop(0)()
        stored = self._orders[str(order.order_id)]
        if stored.version != expected_version:
            raise OptimisticConcurrencyError(f"order {order.order_id} version conflict")
        persisted = replace(order, version=expected_version + 1)
        self._orders[str(order.order_id)] = persisted
        return persisted

    def list_orders(self, status, customer_id, limit, cursor):
        orders = sorted(self._orders.values(), key=lambda o: (o.created_at, str(o.order_id)), reverse=True)
        if status is not None:
            orders = [o for o in orders if o.status == status]
        if customer_id is not None:
            orders = [o for o in orders if o.customer_id == customer_id]
        if cursor is not None:
            ids = [str(o.order_id) for o in orders]
            if cursor not in ids:
                raise InvalidCursorError("invalid cursor")
            orders = orders[ids.index(cursor) + 1 :]
        page = orders[:limit]
        next_cursor = str(page[-1].order_id) if len(orders) > limit else None
        return page, next_cursor

    def count_active_assignments(self, role: StaffRole) -> dict[StaffId, int]:
        counts: dict[StaffId, int] = {}
        for order in self._orders.values():
            assignment = order.chef if role == StaffRole.CHEF else order.delivery
            if assignment is not None and order.status not in TERMINAL_STATUSES:
                counts[assignment.staff_id] = counts.get(assignment.staff_id, 0) + 1
        return counts

    def list_delivered_for_staff(self, role, staff_id, start, end):
        result = []
        for order in sorted(self._orders.values(), key=lambda o: o.created_at):
            assignment = order.chef if role == StaffRole.CHEF else order.delivery
            if order.status != OrderStatus.DELIVERED or assignment is None:
                continue
            if staff_id is not None and assignment.staff_id != staff_id:
                continue
            if start <= order.created_at < end:
                result.append(order)
        return result

    def overwrite(self, order: Order) -> None:
        """Simulates a write by another request."""
        stored = self._orders[str(order.order_id)]
        self._orders[str(order.order_id)] = replace(order, version=stored.version + 1)


class FakeStaffRepository:
    def __init__(self, members: list[StaffMember] | None = None) -> None:
        self._members = {str(member.staff_id): member for member in members or []}

    def get(self, staff_id) -> StaffMember | None:
        return self._members.get(str(staff_id))

    def list_by_role(self, role: StaffRole) -> list[StaffMember]:
        return sorted((m for m in self._members.values() if m.role == role), key=lambda m: m.name)

    def upsert(self, member: StaffMember) -> None:
        self._members[str(member.staff_id)] = member


class FakePublisher:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def publish(self, channel: str, message: str) -> None:
        self.messages.append((channel, message))


class FakeCardProcessor:
    def __init__(self) -> None:
        self.intents: dict[str, CardIntent] = {}
        self.retrieve_calls = 0
        self.refunds: list[tuple[str, Money]] = []
        self.unavailable = False

    def create_intent(self, order_id: OrderId, amount: Money) -> CardIntent:
        if self.unavailable:
            raise PaymentProcessorError("card processor unavailable")
        intent_id = f"pi_{len(self.intents) + 1:03d}"
        intent = CardIntent(
            intent_id=intent_id,
            status="requires_payment_method",
            amount=amount,
            client_secret=f"{intent_id}_secret",
        )
        self.intents[intent_id] = intent
        return intent

    def retrieve_intent(self, intent_id: str) -> CardIntent:
        self.retrieve_calls += 1
        if self.unavailable:
            raise PaymentProcessorError("card processor unavailable")
        return self.intents[intent_id]

    def refund(self, intent_id: str, amount: Money, reason: str | None = None) -> str:
        self.refunds.append((intent_id, amount))
        return f"re_{len(self.refunds):03d}"

    def set_status(self, intent_id: str, status: str) -> None:
        self.intents[intent_id] = replace(self.intents[intent_id], status=status)


CHEFS = [
    StaffMember(staff_id=StaffId("stf_chef_a"), name="Chef Berhanu", role=StaffRole.CHEF),
    StaffMember(staff_id=StaffId("stf_chef_b"), name="Chef Tigist", role=StaffRole.CHEF),
    StaffMember(staff_id=StaffId("stf_chef_off"), name="Chef Solomon", role=StaffRole.CHEF, is_active=False),
]
COURIERS = [
    StaffMember(staff_id=StaffId("stf_dlv_a"), name="Abebe", role=StaffRole.DELIVERY),
    StaffMember(staff_id=StaffId("stf_dlv_b"), name="Almaz", role=StaffRole.DELIVERY),
]


def build_customer(fulfillment: FulfillmentType = FulfillmentType.DELIVERY) -> CustomerSnapshot:
    return CustomerSnapshot(
        name="Hana Tesfaye",
        phone="+251 911 234 567",
        email="hana@example.com",
        fulfillment=fulfillment,
        address="Bole Road",
        area="Bole",
    )


def build_order(
    payment_method: PaymentMethod = PaymentMethod.CASH,
    unit_price_cents: int = 125,
    quantity: int = 2,
    order_id: str = "ord_test0001",
    now: datetime | None = None,
    customer_id: str | None = None,
) -> Order:
    return create_pending_order(
        order_id=OrderId(order_id),
        items=[
            OrderItem(
                menu_item_id=MenuItemId("itm_001"),
                name="Doro Wat",
                unit_price=Money(amount_cents=unit_price_cents, currency="ETB"),
                quantity=quantity,
            )
        ],
        customer=build_customer(),
        payment_method=payment_method,
        now=now or datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
        customer_id=customer_id,
    )


