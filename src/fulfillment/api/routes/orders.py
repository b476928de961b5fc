from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Query, Response, status

from fulfillment.api.dependencies import current_trace_context, get_actor
from fulfillment.application.dto.requests import (
    CancelOrderRequest,
    CreateOrderRequest,
    UpdateStatusRequest,
)
from fulfillment.application.dto.responses import OrderListResponse, OrderResponse
from fulfillment.application.use_cases.create_order import CreateOrder
from fulfillment.application.use_cases.get_order import GetOrder, ListOrders
from fulfillment.application.use_cases.staff_dispatch import StaffDispatcher
from fulfillment.application.use_cases.transition_order import CancelOrder, TransitionOrderStatus
from fulfillment.domain.common.actors import Actor
from fulfillment.domain.common.ids import OrderId
from fulfillment.infrastructure.db.repositories.order_repo import SqlAlchemyOrderRepository
from fulfillment.infrastructure.db.repositories.staff_repo import SqlAlchemyStaffRepository
from fulfillment.infrastructure.messaging.redis_publisher import RedisEventPublisher
from fulfillment.infrastructure.settings import (
    delivery_payment_policy,
    order_currency,
    staff_capacity_limit,
)

router = APIRouter(prefix="/orders", tags=["orders"])


def _create_order_use_case() -> CreateOrder:
    return CreateOrder(
        order_repository=SqlAlchemyOrderRepository(),
        publisher=RedisEventPublisher(),
        default_currency=order_currency(),
    )


def _transition_use_case() -> TransitionOrderStatus:
    order_repository = SqlAlchemyOrderRepository()
    return TransitionOrderStatus(
        order_repository=order_repository,
        dispatcher=StaffDispatcher(
            staff_repository=SqlAlchemyStaffRepository(),
            order_repository=order_repository,
            capacity=staff_capacity_limit(),
        ),
        publisher=RedisEventPublisher(),
        policy=delivery_payment_policy(),
    )


def _cancel_use_case() -> CancelOrder:
    return CancelOrder(order_repository=SqlAlchemyOrderRepository(), publisher=RedisEventPublisher())


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    request_dto: CreateOrderRequest,
    response: Response,
    actor: Actor = Depends(get_actor),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> OrderResponse:
    order, created = _create_order_use_case().execute(
        request_dto=request_dto,
        actor=actor,
        trace_ctx=current_trace_context(),
        idempotency_key=idempotency_key,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return order


@router.get("", response_model=OrderListResponse)
def list_orders(
    status_filter: str = Query(default="ALL", alias="status"),
    limit: int = Query(default=50),
    cursor: str | None = Query(default=None),
    actor: Actor = Depends(get_actor),
) -> OrderListResponse:
    return ListOrders(order_repository=SqlAlchemyOrderRepository()).execute(
        actor=actor,
        status=status_filter,
        limit=limit,
        cursor=cursor,
    )


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: str, actor: Actor = Depends(get_actor)) -> OrderResponse:
    return GetOrder(order_repository=SqlAlchemyOrderRepository()).execute(
        order_id=OrderId(order_id),
        actor=actor,
    )


@router.patch("/{order_id}/status", response_model=OrderResponse)
def update_status(
    order_id: str,
    request_dto: UpdateStatusRequest,
    actor: Actor = Depends(get_actor),
) -> OrderResponse:
    return _transition_use_case().execute(
        order_id=OrderId(order_id),
        request_dto=request_dto,
        actor=actor,
        trace_ctx=current_trace_context(),
    )


@router.patch("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: str,
    request_dto: CancelOrderRequest | None = None,
    actor: Actor = Depends(get_actor),
) -> OrderResponse:
    return _cancel_use_case().execute(
        order_id=OrderId(order_id),
        request_dto=request_dto or CancelOrderRequest(),
        actor=actor,
        trace_ctx=current_trace_context(),
    )
