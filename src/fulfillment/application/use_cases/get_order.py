from __future__ import annotations

from fulfillment.application.dto.responses import OrderListResponse, OrderResponse
from fulfillment.application.mappers.order_mapper import to_order_response
from fulfillment.application.ports.repositories import InvalidCursorError, OrderRepository
from fulfillment.application.use_cases.common import ensure_own_order, load_order
from fulfillment.domain.common.actors import Actor, ActorRole
from fulfillment.domain.common.errors import PermissionDeniedError, ValidationError
from fulfillment.domain.common.ids import OrderId
from fulfillment.domain.order.status import OrderStatus

MAX_PAGE_SIZE = 200


class GetOrder:
    def __init__(self, order_repository: OrderRepository) -> None:
        self._order_repository = order_repository

    def execute(self, order_id: OrderId, actor: Actor) -> OrderResponse:
        order = load_order(self._order_repository, order_id)
        ensure_own_order(actor, order, "view")
        return to_order_response(order)


class ListOrders:
    """Newest-first page of orders. Customers only ever see their own."""

    def __init__(self, order_repository: OrderRepository) -> None:
        self._order_repository = order_repository

    def execute(
        self,
        actor: Actor,
        status: str = "ALL",
        limit: int = 50,
        cursor: str | None = None,
    ) -> OrderListResponse:
        normalized_status = status.lower()
        if normalized_status == "all":
            status_filter = None
        else:
            try:
                status_filter = OrderStatus(normalized_status)
            except ValueError as exc:
                raise ValidationError(f"invalid order status: {status}") from exc
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        customer_id = None
        if actor.role == ActorRole.CUSTOMER:
            if not actor.actor_id:
                raise PermissionDeniedError("customers must identify themselves to list orders")
            customer_id = actor.actor_id

        try:
            orders, next_cursor = self._order_repository.list_orders(
                status=status_filter,
                customer_id=customer_id,
                limit=limit,
                cursor=cursor,
            )
        except InvalidCursorError as exc:
            raise ValidationError("invalid cursor") from exc

        return OrderListResponse(
            orders=[to_order_response(order) for order in orders],
            nextCursor=next_cursor,
        )
