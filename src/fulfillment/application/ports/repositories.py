from __future__ import annotations

from datetime import datetime
from typing import Protocol

from fulfillment.domain.common.ids import OrderId, StaffId
from fulfillment.domain.order.entities import Order
from fulfillment.domain.order.status import OrderStatus
from fulfillment.domain.staff.entities import StaffMember, StaffRole


class OrderRepository(Protocol):
    def add(self, order: Order) -> None: ...

    def add_with_idempotency(
        self,
        order: Order,
        key: str,
        payload_hash: str,
    ) -> Order: ...

    def get(self, order_id: OrderId) -> Order | None: ...

    def save(self, order: Order, expected_version: int) -> Order:
        """Persists ``order`` only if the stored version still equals ``expected_version``.

        Returns the stored order with its version incremented; raises
        OptimisticConcurrencyError when another write got there first.
        """
        ...

    def list_orders(
        self,
        status: OrderStatus | None,
        customer_id: str | None,
        limit: int,
        cursor: str | None,
    ) -> tuple[list[Order], str | None]: ...

    def count_active_assignments(self, role: StaffRole) -> dict[StaffId, int]: ...

    def list_delivered_for_staff(
        self,
        role: StaffRole,
        staff_id: StaffId | None,
        start: datetime,
        end: datetime,
    ) -> list[Order]: ...


class StaffRepository(Protocol):
    def get(self, staff_id: StaffId) -> StaffMember | None: ...

    def list_by_role(self, role: StaffRole) -> list[StaffMember]: ...

    def upsert(self, member: StaffMember) -> None: ...


class IdempotencyReplayMismatchError(Exception):
    pass


class OptimisticConcurrencyError(Exception):
    pass


class InvalidCursorError(Exception):
    pass
