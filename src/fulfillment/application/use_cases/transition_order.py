from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from fulfillment.application.dto.requests import CancelOrderRequest, UpdateStatusRequest
from fulfillment.application.dto.responses import OrderResponse
from fulfillment.application.mappers.order_mapper import to_order_response
from fulfillment.application.metrics.order_lifecycle import (
    record_time_to_delivered,
    record_time_to_ready,
    record_transition,
    record_transition_rejected,
)
from fulfillment.application.ports.publisher import EventPublisher
from fulfillment.application.ports.repositories import OrderRepository
from fulfillment.application.use_cases.common import (
    OrderWrite,
    TraceContext,
    ensure_own_order,
    load_order,
    publish_order_event,
    write_order,
)
from fulfillment.application.use_cases.staff_dispatch import DISPATCH_ROLES, StaffDispatcher
from fulfillment.domain.common.actors import Actor
from fulfillment.domain.common.errors import (
    InvalidTransitionError,
    PermissionDeniedError,
    ValidationError,
)
from fulfillment.domain.common.ids import OrderId, StaffId
from fulfillment.domain.order.entities import Order
from fulfillment.domain.order.events import OrderEventType
from fulfillment.domain.order.state_machine import DeliveryPaymentPolicy
from fulfillment.domain.order.status import OrderStatus
from fulfillment.domain.staff.entities import StaffAssignment, StaffRole

logger = logging.getLogger(__name__)

_ASSIGNED_ON_ENTRY: dict[OrderStatus, StaffRole] = {
    OrderStatus.PREPARING: StaffRole.CHEF,
    OrderStatus.DELIVERED: StaffRole.DELIVERY,
}


def _write_transition(
    order_repository: OrderRepository,
    order_id: OrderId,
    target: OrderStatus,
    mutate: Callable[[Order], Order],
) -> OrderWrite:
    try:
        return write_order(order_repository, order_id, mutate)
    except InvalidTransitionError as exc:
        record_transition_rejected(
            OrderStatus(exc.details["from"]),
            target,
            reason=exc.details.get("reason", "illegal_edge"),
        )
        raise


def _after_transition(
    publisher: EventPublisher,
    write: OrderWrite,
    now: datetime,
    trace_ctx: TraceContext,
) -> None:
    before, after = write.before, write.after
    record_transition(from_status=before.status, to_status=after.status)
    if after.status == OrderStatus.READY:
        record_time_to_ready(after, now=now)
    elif after.status == OrderStatus.DELIVERED:
        record_time_to_delivered(after, now=now)
    logger.info(
        "order_status_changed",
        extra={
            "order_id": str(after.order_id),
            "from_status": before.status.value,
            "to_status": after.status.value,
        },
    )
    publish_order_event(
        publisher,
        OrderEventType.STATUS_CHANGED,
        after,
        occurred_at=now,
        trace_ctx=trace_ctx,
        extra={"previousStatus": before.status.value},
    )


class TransitionOrderStatus:
    """Moves an order one step along its lifecycle.

    When ``staffId`` accompanies a move to ``preparing`` or ``delivered`` the
    chef or delivery worker is assigned in the same write as the transition.
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        dispatcher: StaffDispatcher,
        publisher: EventPublisher,
        policy: DeliveryPaymentPolicy = DeliveryPaymentPolicy.STRICT,
    ) -> None:
        self._order_repository = order_repository
        self._dispatcher = dispatcher
        self._publisher = publisher
        self._policy = policy

    def execute(
        self,
        order_id: OrderId,
        request_dto: UpdateStatusRequest,
        actor: Actor,
        trace_ctx: TraceContext,
    ) -> OrderResponse:
        target = request_dto.status
        now = datetime.now(timezone.utc)
        assignment = self._assignment(order_id, request_dto, actor, now)

        def mutate(current: Order) -> Order:
            ensure_own_order(actor, current, "update")
            if current.status == target:
                return current
            if assignment is not None:
                current = current.assign(assignment)
            return current.transition_to(
                target,
                actor_role=actor.role,
                now=now,
                policy=self._policy,
                notes=request_dto.notes,
            )

        write = _write_transition(self._order_repository, order_id, target, mutate)
        if write.changed:
            _after_transition(self._publisher, write, now, trace_ctx)
        return to_order_response(write.after)

    def _assignment(
        self,
        order_id: OrderId,
        request_dto: UpdateStatusRequest,
        actor: Actor,
        now: datetime,
    ) -> StaffAssignment | None:
        if not request_dto.staff_id:
            return None
        role = _ASSIGNED_ON_ENTRY.get(request_dto.status)
        if role is None:
            raise ValidationError(
                "staffId can only accompany a move to preparing or delivered",
                details={"status": request_dto.status.value},
            )
        if actor.role not in DISPATCH_ROLES and actor.actor_id != request_dto.staff_id:
            raise PermissionDeniedError(
                f"role {actor.role.value} may only assign themselves",
                details={"role": actor.role.value},
            )
        order = load_order(self._order_repository, order_id)
        if order.is_terminal:
            # Terminal orders: the transition is either a no-op repeat or an illegal edge.
            return None
        return self._dispatcher.assignment_for(
            StaffId(request_dto.staff_id),
            role,
            order,
            now,
            notes=request_dto.notes,
        )


class CancelOrder:
    def __init__(self, order_repository: OrderRepository, publisher: EventPublisher) -> None:
        self._order_repository = order_repository
        self._publisher = publisher

    def execute(
        self,
        order_id: OrderId,
        request_dto: CancelOrderRequest,
        actor: Actor,
        trace_ctx: TraceContext,
    ) -> OrderResponse:
        now = datetime.now(timezone.utc)

        def mutate(current: Order) -> Order:
            ensure_own_order(actor, current, "cancel")
            return current.transition_to(
                OrderStatus.CANCELLED,
                actor_role=actor.role,
                now=now,
                notes=request_dto.notes,
                override=request_dto.override,
            )

        write = _write_transition(self._order_repository, order_id, OrderStatus.CANCELLED, mutate)
        if write.changed:
            _after_transition(self._publisher, write, now, trace_ctx)
        return to_order_response(write.after)
