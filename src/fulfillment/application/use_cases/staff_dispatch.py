from __future__ import annotations

import logging
from datetime import datetime, timezone

from fulfillment.application.dto.requests import AssignStaffRequest
from fulfillment.application.dto.responses import OrderResponse, StaffListResponse
from fulfillment.application.mappers.order_mapper import to_order_response
from fulfillment.application.mappers.staff_mapper import to_staff_member_response
from fulfillment.application.metrics.order_lifecycle import record_staff_assignment
from fulfillment.application.ports.publisher import EventPublisher
from fulfillment.application.ports.repositories import OrderRepository, StaffRepository
from fulfillment.application.use_cases.common import (
    TraceContext,
    load_order,
    publish_order_event,
    require_role,
    write_order,
)
from fulfillment.domain.common.actors import Actor, ActorRole
from fulfillment.domain.common.errors import FulfillmentError, NotFoundError, ValidationError
from fulfillment.domain.common.ids import OrderId, StaffId
from fulfillment.domain.order.entities import Order
from fulfillment.domain.order.events import OrderEventType
from fulfillment.domain.staff.entities import (
    StaffAssignment,
    StaffAvailability,
    StaffMember,
    StaffRole,
)

logger = logging.getLogger(__name__)

DISPATCH_ROLES = frozenset({ActorRole.ADMIN, ActorRole.CASHIER})


class StaffNotFoundError(NotFoundError):
    pass


class StaffAtCapacityError(FulfillmentError):
    pass


def parse_staff_role(value: str) -> StaffRole:
    try:
        return StaffRole(value.lower())
    except ValueError as exc:
        raise ValidationError(
            f"invalid staff role: {value}",
            details={"allowed": [role.value for role in StaffRole]},
        ) from exc


class StaffDispatcher:
    """Resolves staff for an assignment and applies the optional capacity cap.

    The cap is checked against a snapshot of assignment counts taken before the
    order write, so two concurrent assignments can both pass it.
    """

    def __init__(
        self,
        staff_repository: StaffRepository,
        order_repository: OrderRepository,
        capacity: int | None = None,
    ) -> None:
        self._staff_repository = staff_repository
        self._order_repository = order_repository
        self._capacity = capacity

    def resolve(self, staff_id: StaffId, role: StaffRole) -> StaffMember:
        member = self._staff_repository.get(staff_id)
        if member is None:
            raise StaffNotFoundError(f"staff member {staff_id} not found", details={"staffId": str(staff_id)})
        if member.role != role:
            raise ValidationError(
                f"staff member {staff_id} is a {member.role.value}, not a {role.value}",
                details={"staffId": str(staff_id), "role": member.role.value},
            )
        if not member.is_active:
            raise ValidationError(
                f"staff member {staff_id} is not active",
                details={"staffId": str(staff_id)},
            )
        return member

    def ensure_capacity(self, member: StaffMember, order: Order) -> None:
        if self._capacity is None:
            return
        current = order.chef if member.role == StaffRole.CHEF else order.delivery
        if current is not None and current.staff_id == member.staff_id:
            return
        active = self._order_repository.count_active_assignments(member.role).get(member.staff_id, 0)
        if active >= self._capacity:
            raise StaffAtCapacityError(
                f"staff member {member.staff_id} already has {active} active orders",
                details={"staffId": str(member.staff_id), "active": active, "capacity": self._capacity},
            )

    def availability(self, role: StaffRole) -> list[StaffAvailability]:
        counts = self._order_repository.count_active_assignments(role)
        return [
            StaffAvailability(
                member=member,
                active_assignments=counts.get(member.staff_id, 0),
                capacity=self._capacity,
            )
            for member in self._staff_repository.list_by_role(role)
            if member.is_active
        ]

    def assignment_for(
        self,
        staff_id: StaffId,
        role: StaffRole,
        order: Order,
        now: datetime,
        notes: str | None = None,
    ) -> StaffAssignment:
        member = self.resolve(staff_id, role)
        self.ensure_capacity(member, order)
        return StaffAssignment.of(member, now, notes)


def _apply_assignment(order: Order, assignment: StaffAssignment) -> Order:
    updated = order.assign(assignment)
    current = order.chef if assignment.role == StaffRole.CHEF else order.delivery
    if current is not None and current.staff_id == assignment.staff_id and current.notes == assignment.notes:
        return order
    return updated


class AssignStaff:
    def __init__(
        self,
        order_repository: OrderRepository,
        dispatcher: StaffDispatcher,
        publisher: EventPublisher,
    ) -> None:
        self._order_repository = order_repository
        self._dispatcher = dispatcher
        self._publisher = publisher

    def execute(
        self,
        order_id: OrderId,
        role: StaffRole,
        request_dto: AssignStaffRequest,
        actor: Actor,
        trace_ctx: TraceContext,
    ) -> OrderResponse:
        require_role(actor, DISPATCH_ROLES, f"assign a {role.value}")
        order = load_order(self._order_repository, order_id)
        order.ensure_assignable()
        now = datetime.now(timezone.utc)
        assignment = self._dispatcher.assignment_for(
            StaffId(request_dto.staff_id),
            role,
            order,
            now,
            notes=request_dto.notes,
        )

        write = write_order(
            self._order_repository,
            order_id,
            lambda current: _apply_assignment(current, assignment),
            expected_version=request_dto.expected_version,
        )
        if write.changed:
            record_staff_assignment(role.value)
            logger.info(
                "staff_assigned",
                extra={"order_id": str(order_id), "staff_id": str(assignment.staff_id)},
            )
            publish_order_event(
                self._publisher,
                OrderEventType.STAFF_ASSIGNED,
                write.after,
                occurred_at=now,
                trace_ctx=trace_ctx,
                extra={"role": role.value, "staffId": str(assignment.staff_id)},
            )
        return to_order_response(write.after)


class ListStaff:
    def __init__(self, dispatcher: StaffDispatcher) -> None:
        self._dispatcher = dispatcher

    def execute(self, role: str, actor: Actor) -> StaffListResponse:
        require_role(actor, DISPATCH_ROLES, "list staff")
        staff_role = parse_staff_role(role)
        return StaffListResponse(
            role=staff_role.value,
            staff=[to_staff_member_response(entry) for entry in self._dispatcher.availability(staff_role)],
        )
