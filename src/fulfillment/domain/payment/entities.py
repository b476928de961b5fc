from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from fulfillment.domain.common.errors import ValidationError
from fulfillment.domain.common.ids import OrderId, PaymentRecordId
from fulfillment.domain.common.money import Money
from fulfillment.domain.order.status import PaymentMethod


@dataclass(frozen=True)
class PaymentRecord:
    record_id: PaymentRecordId
    order_id: OrderId
    method: PaymentMethod
    amount: Money
    confirmed_at: datetime
    external_reference: str | None = None
    amount_received: Money | None = None
    change: Money | None = None
    refunded_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.method == PaymentMethod.CASH:
            if self.amount_received is None or self.change is None:
                raise ValidationError("cash payment records need amount_received and change")
            if self.amount_received.minus(self.amount) != self.change:
                raise ValidationError("change must equal amount_received - amount")
        elif not self.external_reference:
            raise ValidationError(f"{self.method.value} payment records need an external reference")

    def refunded(self, now: datetime) -> PaymentRecord:
        return replace(self, refunded_at=now)


@dataclass(frozen=True)
class MobileMoneyInstructions:
    provider: str
    recipient: str
    amount: Money
    reference: str
    steps: tuple[str, ...] = ()


@dataclass(frozen=True)
class PaymentHandle:
    """What a caller needs to complete a payment outside the service."""

    order_id: OrderId
    method: PaymentMethod
    client_secret: str | None = None
    external_reference: str | None = None
    instructions: MobileMoneyInstructions | None = None


@dataclass(frozen=True)
class CashEvidence:
    amount_received: Money


@dataclass(frozen=True)
class CardEvidence:
    payment_intent_id: str


@dataclass(frozen=True)
class MobileMoneyEvidence:
    transaction_reference: str
    verified: bool = True
    confirmed_by: str | None = None


PaymentEvidence = CashEvidence | CardEvidence | MobileMoneyEvidence


@dataclass(frozen=True)
class PaymentResult:
    record: PaymentRecord | None = None
    failure_reason: str | None = None
    details: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if (self.record is None) == (self.failure_reason is None):
            raise ValueError("payment result is either a record or a failure reason")

    @classmethod
    def success(cls, record: PaymentRecord) -> PaymentResult:
        return cls(record=record)

    @classmethod
    def failure(cls, reason: str, **details: str) -> PaymentResult:
        return cls(failure_reason=reason, details=dict(details))

    @property
    def succeeded(self) -> bool:
        return self.record is not None
