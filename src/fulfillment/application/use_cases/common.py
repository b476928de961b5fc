from __future__ import annotations

import logging
from collections.abc import Callable, Collection
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from fulfillment.application.mappers.event_envelope import serialize_order_event
from fulfillment.application.metrics.order_lifecycle import record_write_conflict
from fulfillment.application.ports.publisher import EventPublisher
from fulfillment.application.ports.repositories import OptimisticConcurrencyError, OrderRepository
from fulfillment.domain.common.actors import Actor, ActorRole
from fulfillment.domain.common.errors import FulfillmentError, NotFoundError, PermissionDeniedError
from fulfillment.domain.common.ids import OrderId
from fulfillment.domain.order.entities import Order
from fulfillment.domain.order.events import OrderEvent, OrderEventType

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 5


class OrderNotFoundError(NotFoundError):
    pass


class OrderConflictError(FulfillmentError):
    pass


class StaleOrderVersionError(FulfillmentError):
    pass


@dataclass(frozen=True)
class TraceContext:
    trace_id: str | None
    request_id: str | None


@dataclass(frozen=True)
class OrderWrite:
    before: Order
    after: Order

    @property
    def changed(self) -> bool:
        return self.after.version != self.before.version


def load_order(order_repository: OrderRepository, order_id: OrderId) -> Order:
    order = order_repository.get(order_id)
    if order is None:
        raise OrderNotFoundError(f"order {order_id} not found", details={"orderId": str(order_id)})
    return order


def write_order(
    order_repository: OrderRepository,
    order_id: OrderId,
    mutate: Callable[[Order], Order],
    expected_version: int | None = None,
) -> OrderWrite:
    """Read-modify-write of one order, retried on version conflicts.

    ``mutate`` must be pure: it is re-applied to a fresh read after every
    conflict. Returning the same instance means there is nothing to write.
    """
    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        current = load_order(order_repository, order_id)
        if expected_version is not None and current.version != expected_version:
            raise StaleOrderVersionError(
                f"order {order_id} is at version {current.version}",
                details={"expectedVersion": expected_version, "currentVersion": current.version},
            )

        updated = mutate(current)
        if updated is current:
            return OrderWrite(before=current, after=current)

        try:
            persisted = order_repository.save(updated, expected_version=current.version)
        except OptimisticConcurrencyError:
            record_write_conflict()
            logger.info(
                "order_write_conflict",
                extra={"order_id": str(order_id), "attempt": attempt},
            )
            continue
        return OrderWrite(before=current, after=persisted)

    raise OrderConflictError(
        f"order {order_id} kept changing, giving up after {MAX_WRITE_ATTEMPTS} attempts",
        details={"orderId": str(order_id)},
    )


def require_role(actor: Actor, allowed: Collection[ActorRole], action: str) -> None:
    if actor.role not in allowed:
        raise PermissionDeniedError(
            f"role {actor.role.value} may not {action}",
            details={"role": actor.role.value, "allowed": sorted(role.value for role in allowed)},
        )


def ensure_own_order(actor: Actor, order: Order, action: str) -> None:
    """Customers act only on orders placed under their own id; guest orders carry no owner."""
    if actor.role != ActorRole.CUSTOMER or order.customer_id is None:
        return
    if actor.actor_id != order.customer_id:
        raise PermissionDeniedError(
            f"customers may only {action} their own orders",
            details={"orderId": str(order.order_id)},
        )


def publish_order_event(
    publisher: EventPublisher,
    event_type: OrderEventType,
    order: Order,
    occurred_at: datetime,
    trace_ctx: TraceContext,
    extra: dict[str, Any] | None = None,
) -> None:
    message = serialize_order_event(
        event=OrderEvent(event_type=event_type, order_id=order.order_id, occurred_at=occurred_at),
        order=order,
        trace_id=trace_ctx.trace_id,
        request_id=trace_ctx.request_id,
        extra=extra,
    )
    try:
        publisher.publish(channel=f"events:{order.order_id}", message=message)
    except Exception:
        logger.warning(
            "event_publish_failed",
            extra={"order_id": str(order.order_id), "event_type": event_type.value},
            exc_info=True,
        )
