from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from fulfillment.domain.common.ids import OrderId


class OrderEventType(str, Enum):
    CREATED = "order.created"
    STATUS_CHANGED = "order.status_changed"
    PAYMENT_UPDATED = "order.payment_updated"
    STAFF_ASSIGNED = "order.staff_assigned"


@dataclass(frozen=True)
class OrderEvent:
    event_type: OrderEventType
    order_id: OrderId
    occurred_at: datetime
