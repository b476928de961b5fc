from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from fulfillment.domain.common.ids import OrderId
from fulfillment.domain.common.money import Money


@dataclass(frozen=True)
class CardIntent:
    intent_id: str
    status: str
    amount: Money
    client_secret: str | None = None


class CardProcessor(Protocol):
    """Hosted card processor. Implementations raise PaymentProcessorError on failure."""

    def create_intent(self, order_id: OrderId, amount: Money) -> CardIntent: ...

    def retrieve_intent(self, intent_id: str) -> CardIntent: ...

    def refund(self, intent_id: str, amount: Money, reason: str | None = None) -> str: ...
