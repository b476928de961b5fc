from __future__ import annotations

import json
from typing import Any
from uuid import uuid4

from fulfillment.domain.order.entities import Order
from fulfillment.domain.order.events import OrderEvent


def serialize_order_event(
    *,
    event: OrderEvent,
    order: Order,
    trace_id: str | None,
    request_id: str | None,
    extra: dict[str, Any] | None = None,
) -> str:
    payload: dict[str, Any] = {
        "orderId": str(order.order_id),
        "status": order.status.value,
        "paymentMethod": order.payment_method.value,
        "paymentStatus": order.payment_status.value,
        "totalMoney": {
            "amountCents": order.total.amount_cents,
            "currency": order.total.currency,
        },
        "assignedChef": str(order.chef.staff_id) if order.chef else None,
        "assignedDelivery": str(order.delivery.staff_id) if order.delivery else None,
        "version": order.version,
        "createdAt": order.created_at.isoformat(),
    }
    if extra:
        payload.update(extra)

    envelope = {
        "event_id": str(uuid4()),
        "event_type": event.event_type.value,
        "occurred_at": event.occurred_at.isoformat(),
        "request_id": request_id,
        "trace_id": trace_id,
        "order_id": str(event.order_id),
        "payload": payload,
    }
    return json.dumps(envelope, separators=(",", ":"), ensure_ascii=False)
