from __future__ import annotations

import pytest

from fulfillment.domain.order.state_machine import (
    OVERRIDE_TRANSITIONS,
    TRANSITION_ROLES,
    TRANSITIONS,
    edge_label,
    is_legal_edge,
    is_valid_path,
)
from fulfillment.domain.order.status import TERMINAL_STATUSES, OrderStatus

LIFECYCLE_ORDER = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.DELIVERED,
]


def test_every_status_has_a_transition_entry() -> None:
    assert set(TRANSITIONS) == set(OrderStatus)


def test_terminal_statuses_have_no_outgoing_edges() -> None:
    for status in TERMINAL_STATUSES:
        assert TRANSITIONS[status] == frozenset()
        assert status not in OVERRIDE_TRANSITIONS


def test_edges_only_move_forward() -> None:
    for source, targets in TRANSITIONS.items():
        for target in targets:
            if target == OrderStatus.CANCELLED:
                continue
            assert LIFECYCLE_ORDER.index(target) == LIFECYCLE_ORDER.index(source) + 1


def test_every_edge_declares_roles() -> None:
    edges = {(source, target) for source, targets in TRANSITIONS.items() for target in targets}
    assert edges == set(TRANSITION_ROLES)


@pytest.mark.parametrize(
    ("source", "target", "override", "expected"),
    [
        (OrderStatus.PENDING, OrderStatus.CONFIRMED, False, True),
        (OrderStatus.PENDING, OrderStatus.PREPARING, False, False),
        (OrderStatus.READY, OrderStatus.PREPARING, True, False),
        (OrderStatus.PREPARING, OrderStatus.CANCELLED, False, False),
        (OrderStatus.PREPARING, OrderStatus.CANCELLED, True, True),
        (OrderStatus.DELIVERED, OrderStatus.CANCELLED, True, False),
    ],
)
def test_is_legal_edge(source: OrderStatus, target: OrderStatus, override: bool, expected: bool) -> None:
    assert is_legal_edge(source, target, override=override) is expected


def test_edge_label_uses_arrow() -> None:
    assert edge_label(OrderStatus.PENDING, OrderStatus.PREPARING) == "pending→preparing"


def test_is_valid_path() -> None:
    assert is_valid_path([(status, False) for status in LIFECYCLE_ORDER])
    assert is_valid_path([(OrderStatus.PENDING, False), (OrderStatus.CANCELLED, False)])
    assert not is_valid_path([(OrderStatus.CONFIRMED, False)])
    assert not is_valid_path([])
    assert not is_valid_path(
        [(OrderStatus.PENDING, False), (OrderStatus.CONFIRMED, False), (OrderStatus.PENDING, False)]
    )
