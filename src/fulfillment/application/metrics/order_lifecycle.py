from __future__ import annotations

from datetime import datetime, timezone

from prometheus_client import Counter, Histogram

from fulfillment.domain.order.entities import Order
from fulfillment.domain.order.status import OrderStatus

ORDERS_TOTAL = Counter(
    "fulfillment_orders_created_total",
    "Total number of orders created by payment method.",
    ["status", "payment_method"],
)

ORDER_TRANSITION_TOTAL = Counter(
    "fulfillment_order_transition_total",
    "Total number of order lifecycle transitions.",
    ["from", "to"],
)

ORDER_TRANSITION_REJECTED_TOTAL = Counter(
    "fulfillment_order_transition_rejected_total",
    "Total number of rejected order transitions.",
    ["from", "to", "reason"],
)

PAYMENTS_TOTAL = Counter(
    "fulfillment_payments_total",
    "Total number of payment outcomes by method.",
    ["method", "outcome"],
)

STAFF_ASSIGNMENTS_TOTAL = Counter(
    "fulfillment_staff_assignments_total",
    "Total number of staff assignments.",
    ["role"],
)

ORDER_WRITE_CONFLICTS_TOTAL = Counter(
    "fulfillment_order_write_conflicts_total",
    "Total number of optimistic concurrency conflicts on order writes.",
)

ORDER_TIME_TO_READY_SECONDS = Histogram(
    "fulfillment_order_time_to_ready_seconds",
    "Time between order placement and readiness.",
)

ORDER_TIME_TO_DELIVERED_SECONDS = Histogram(
    "fulfillment_order_time_to_delivered_seconds",
    "Time between order placement and delivery.",
)


def record_order_status(order: Order) -> None:
    ORDERS_TOTAL.labels(
        status=order.status.value,
        payment_method=order.payment_method.value,
    ).inc()


def record_transition(from_status: OrderStatus, to_status: OrderStatus) -> None:
    ORDER_TRANSITION_TOTAL.labels(**{"from": from_status.value, "to": to_status.value}).inc()


def record_transition_rejected(from_status: OrderStatus, to_status: OrderStatus, reason: str) -> None:
    ORDER_TRANSITION_REJECTED_TOTAL.labels(
        **{"from": from_status.value, "to": to_status.value, "reason": reason}
    ).inc()


def record_payment(method: str, outcome: str) -> None:
    PAYMENTS_TOTAL.labels(method=method, outcome=outcome).inc()


def record_staff_assignment(role: str) -> None:
    STAFF_ASSIGNMENTS_TOTAL.labels(role=role).inc()


def record_write_conflict() -> None:
    ORDER_WRITE_CONFLICTS_TOTAL.inc()


def record_time_to_ready(order: Order, now: datetime | None = None) -> None:
    current = now or datetime.now(timezone.utc)
    ORDER_TIME_TO_READY_SECONDS.observe(max((current - order.created_at).total_seconds(), 0.0))


def record_time_to_delivered(order: Order, now: datetime | None = None) -> None:
    current = now or datetime.now(timezone.utc)
    ORDER_TIME_TO_DELIVERED_SECONDS.observe(max((current - order.created_at).total_seconds(), 0.0))
