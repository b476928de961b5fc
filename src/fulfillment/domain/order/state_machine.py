from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import TYPE_CHECKING

from fulfillment.domain.common.actors import ActorRole
from fulfillment.domain.common.errors import InvalidTransitionError, PermissionDeniedError
from fulfillment.domain.order.status import OrderStatus, PaymentMethod, PaymentStatus

if TYPE_CHECKING:
    from fulfillment.domain.order.entities import Order


class DeliveryPaymentPolicy(str, Enum):
    """Whether ``ready -> delivered`` waits for a completed payment.

    ``strict`` blocks card and mobile money orders until the payment is
    completed; cash is always allowed because it is collected at the door.
    ``lenient`` never blocks.
    """

    STRICT = "strict"
    LENIENT = "lenient"


TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY}),
    OrderStatus.READY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Privileged cancellation once the kitchen has started; never offered to customers.
OVERRIDE_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PREPARING: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.CANCELLED}),
}

_STAFF = frozenset({ActorRole.ADMIN, ActorRole.CASHIER})

TRANSITION_ROLES: dict[tuple[OrderStatus, OrderStatus], frozenset[ActorRole]] = {
    (OrderStatus.PENDING, OrderStatus.CONFIRMED): _STAFF,
    (OrderStatus.PENDING, OrderStatus.CANCELLED): _STAFF | {ActorRole.CUSTOMER},
    (OrderStatus.CONFIRMED, OrderStatus.PREPARING): frozenset({ActorRole.ADMIN, ActorRole.CHEF}),
    (OrderStatus.CONFIRMED, OrderStatus.CANCELLED): _STAFF | {ActorRole.CUSTOMER},
    (OrderStatus.PREPARING, OrderStatus.READY): frozenset({ActorRole.ADMIN, ActorRole.CHEF}),
    (OrderStatus.READY, OrderStatus.DELIVERED): _STAFF | {ActorRole.DELIVERY},
}

OVERRIDE_ROLES = frozenset({ActorRole.ADMIN})


def _check_tables() -> None:
    missing = set(OrderStatus) - set(TRANSITIONS)
    if missing:
        raise RuntimeError(f"transition table is missing statuses: {sorted(s.value for s in missing)}")
    for source, targets in TRANSITIONS.items():
        for target in targets:
            if (source, target) not in TRANSITION_ROLES:
                raise RuntimeError(f"no roles declared for edge {edge_label(source, target)}")


def edge_label(source: OrderStatus, target: OrderStatus) -> str:
    return f"{source.value}→{target.value}"


def is_legal_edge(source: OrderStatus, target: OrderStatus, override: bool = False) -> bool:
    if target in TRANSITIONS[source]:
        return True
    return override and target in OVERRIDE_TRANSITIONS.get(source, frozenset())


def is_valid_path(steps: Iterable[tuple[OrderStatus, bool]]) -> bool:
    """Checks a sequence of (status, override) pairs starting at ``pending``."""
    previous: OrderStatus | None = None
    for status, override in steps:
        if previous is None:
            if status != OrderStatus.PENDING:
                return False
        elif not is_legal_edge(previous, status, override=override):
            return False
        previous = status
    return previous is not None


def ensure_transition_allowed(
    order: Order,
    target: OrderStatus,
    *,
    actor_role: ActorRole,
    policy: DeliveryPaymentPolicy,
    override: bool = False,
) -> None:
    source = order.status
    edge = edge_label(source, target)
    details = {"from": source.value, "to": target.value, "edge": edge}

    if not is_legal_edge(source, target, override=override):
        raise InvalidTransitionError(f"illegal order transition {edge}", details=details)

    if target in TRANSITIONS[source]:
        allowed_roles = TRANSITION_ROLES[(source, target)]
    else:
        allowed_roles = OVERRIDE_ROLES
    if actor_role not in allowed_roles:
        raise PermissionDeniedError(
            f"role {actor_role.value} may not perform {edge}",
            details={**details, "role": actor_role.value},
        )

    if target == OrderStatus.PREPARING and order.chef is None:
        raise InvalidTransitionError(
            f"transition {edge} requires an assigned chef",
            details={**details, "reason": "chef_not_assigned"},
        )

    if (
        target == OrderStatus.DELIVERED
        and policy == DeliveryPaymentPolicy.STRICT
        and order.payment_method != PaymentMethod.CASH
        and order.payment_status != PaymentStatus.COMPLETED
    ):
        raise InvalidTransitionError(
            f"transition {edge} requires a completed payment",
            details={
                **details,
                "reason": "payment_not_completed",
                "paymentStatus": order.payment_status.value,
            },
        )


_check_tables()
