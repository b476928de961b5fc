from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from support import (
    CHEFS,
    COURIERS,
    FakeCardProcessor,
    FakeOrderRepository,
    FakePublisher,
    FakeStaffRepository,
    build_order,
)

from fulfillment.application.payments.strategies import MobileMoneySettings, PaymentStrategyFactory
from fulfillment.application.use_cases.common import TraceContext
from fulfillment.domain.order.entities import Order


@pytest.fixture
def order_repository() -> FakeOrderRepository:
    return FakeOrderRepository()


@pytest.fixture
def staff_repository() -> FakeStaffRepository:
    return FakeStaffRepository(CHEFS + COURIERS)


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def card_processor() -> FakeCardProcessor:
    return FakeCardProcessor()


@pytest.fixture
def strategies(card_processor: FakeCardProcessor) -> PaymentStrategyFactory:
    return PaymentStrategyFactory(
        card_processor=card_processor,
        mobile_money=MobileMoneySettings(provider="telebirr", recipient="+251911000000"),
    )


@pytest.fixture
def trace_ctx() -> TraceContext:
    return TraceContext(trace_id=None, request_id="req_test")


@pytest.fixture
def order_factory(order_repository: FakeOrderRepository) -> Callable[..., Order]:
    def factory(**kwargs) -> Order:
        order = build_order(**kwargs)
        order_repository.add(order)
        return order

    return factory
