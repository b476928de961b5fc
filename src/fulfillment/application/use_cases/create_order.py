from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from uuid import uuid4

from fulfillment.application.dto.requests import CreateOrderRequest
from fulfillment.application.dto.responses import OrderResponse
from fulfillment.application.mappers.order_mapper import to_order_response
from fulfillment.application.metrics.order_lifecycle import record_order_status
from fulfillment.application.ports.publisher import EventPublisher
from fulfillment.application.ports.repositories import (
    IdempotencyReplayMismatchError as RepoIdempotencyReplayMismatchError,
)
from fulfillment.application.ports.repositories import OrderRepository
from fulfillment.application.use_cases.common import TraceContext, publish_order_event
from fulfillment.domain.common.actors import Actor, ActorRole
from fulfillment.domain.common.errors import FulfillmentError, ValidationError
from fulfillment.domain.common.ids import MenuItemId, OrderId
from fulfillment.domain.common.money import Money
from fulfillment.domain.order.entities import CustomerSnapshot, OrderItem, create_pending_order
from fulfillment.domain.order.events import OrderEventType

logger = logging.getLogger(__name__)


class IdempotencyReplayMismatchError(FulfillmentError):
    pass


class CreateOrder:
    def __init__(
        self,
        order_repository: OrderRepository,
        publisher: EventPublisher,
        default_currency: str = "ETB",
    ) -> None:
        self._order_repository = order_repository
        self._publisher = publisher
        self._default_currency = default_currency

    def execute(
        self,
        request_dto: CreateOrderRequest,
        actor: Actor,
        trace_ctx: TraceContext,
        idempotency_key: str | None = None,
    ) -> tuple[OrderResponse, bool]:
        currency = (request_dto.currency or self._default_currency).upper()
        if not request_dto.items:
            raise ValidationError("order must contain at least one item")

        items: list[OrderItem] = []
        for request_item in request_dto.items:
            if request_item.unit_price_cents < 0:
                raise ValidationError(
                    "unit price must be >= 0",
                    details={"menuItemId": request_item.menu_item_id},
                )
            items.append(
                OrderItem(
                    menu_item_id=MenuItemId(request_item.menu_item_id),
                    name=request_item.name,
                    unit_price=Money(amount_cents=request_item.unit_price_cents, currency=currency),
                    quantity=request_item.quantity,
                )
            )

        customer_dto = request_dto.customer
        customer = CustomerSnapshot(
            name=customer_dto.name,
            phone=customer_dto.phone,
            email=customer_dto.email,
            fulfillment=customer_dto.fulfillment,
            address=customer_dto.address,
            city=customer_dto.city,
            area=customer_dto.area,
            building=customer_dto.building,
            floor=customer_dto.floor,
            additional_info=customer_dto.additional_info,
        )

        now = datetime.now(timezone.utc)
        payload_hash = _request_hash(request_dto)
        order = create_pending_order(
            order_id=OrderId(f"ord_{uuid4().hex[:12]}"),
            items=items,
            customer=customer,
            payment_method=request_dto.payment_method,
            now=now,
            actor_role=actor.role,
            customer_id=actor.actor_id if actor.role == ActorRole.CUSTOMER else None,
            idempotency_key=idempotency_key,
            idempotency_hash=payload_hash if idempotency_key else None,
        )

        created = True
        persisted_order = order
        if idempotency_key:
            try:
                persisted_order = self._order_repository.add_with_idempotency(
                    order=order,
                    key=idempotency_key,
                    payload_hash=payload_hash,
                )
            except RepoIdempotencyReplayMismatchError as exc:
                raise IdempotencyReplayMismatchError(
                    str(exc),
                    details={"idempotencyKey": idempotency_key},
                ) from exc
            created = persisted_order.order_id == order.order_id
        else:
            self._order_repository.add(order)

        if created:
            record_order_status(persisted_order)
            logger.info(
                "order_created",
                extra={
                    "order_id": str(persisted_order.order_id),
                    "payment_method": persisted_order.payment_method.value,
                },
            )
            publish_order_event(
                self._publisher,
                OrderEventType.CREATED,
                persisted_order,
                occurred_at=now,
                trace_ctx=trace_ctx,
            )

        return to_order_response(persisted_order), created


def _request_hash(request_dto: CreateOrderRequest) -> str:
    normalized_payload = request_dto.model_dump(mode="json", by_alias=True, exclude_none=False)
    canonical = json.dumps(normalized_payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
