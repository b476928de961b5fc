from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from fulfillment.application.ports.card_processor import CardProcessor
from fulfillment.domain.common.actors import ActorRole
from fulfillment.domain.common.errors import (
    InsufficientAmountError,
    PaymentNotSettledError,
    ValidationError,
)
from fulfillment.domain.common.ids import PaymentRecordId
from fulfillment.domain.order.entities import Order
from fulfillment.domain.order.status import PaymentMethod, PaymentStatus
from fulfillment.domain.payment.entities import (
    CardEvidence,
    CashEvidence,
    MobileMoneyEvidence,
    MobileMoneyInstructions,
    PaymentEvidence,
    PaymentHandle,
    PaymentRecord,
    PaymentResult,
)

logger = logging.getLogger(__name__)

_FRONT_OF_HOUSE = frozenset({ActorRole.ADMIN, ActorRole.CASHIER})

CARD_SUCCEEDED = "succeeded"
CARD_FAILED_STATES = frozenset({"canceled", "requires_payment_method"})


def _new_record_id() -> PaymentRecordId:
    return PaymentRecordId(f"pay_{uuid4().hex[:12]}")


class PaymentStrategy(ABC):
    """
    One way of settling an order.

    ``initiate`` and ``confirm`` may talk to the outside world and are called
    once per request. ``apply_initiation`` and ``apply_result`` are pure and
    are re-applied to a fresh read of the order whenever a write conflicts.
    """

    method: PaymentMethod
    initiate_roles: frozenset[ActorRole] = frozenset()
    confirm_roles: frozenset[ActorRole] = frozenset()

    def initiate(self, order: Order, now: datetime) -> tuple[Order, PaymentHandle]:
        handle = self.begin(order, now)
        return self.apply_initiation(order, handle), handle

    @abstractmethod
    def begin(self, order: Order, now: datetime) -> PaymentHandle:
        """Prepares whatever the payer needs; never touches the order."""

    def apply_initiation(self, order: Order, handle: PaymentHandle) -> Order:
        if order.payment_status == PaymentStatus.PENDING_CONFIRMATION and (
            order.payment_reference == handle.external_reference
        ):
            return order
        return order.await_payment(handle.external_reference)

    @abstractmethod
    def confirm(self, order: Order, evidence: PaymentEvidence, now: datetime) -> PaymentResult:
        """Checks the evidence and produces a settlement record or a failure."""

    def apply_result(self, order: Order, result: PaymentResult) -> Order:
        if result.succeeded:
            if order.payment_status == PaymentStatus.COMPLETED and order.payment is not None:
                return order
            return order.settle_payment(result.record)
        return order.fail_payment()

    def refund(self, order: Order, reason: str | None) -> str | None:
        """Moves money back to the payer. Returns the processor reference, if any.

        The default is a manual payout recorded by staff.
        """
        logger.info(
            "manual_refund_required",
            extra={"order_id": str(order.order_id), "payment_method": self.method.value},
        )
        return None

    def _existing(self, order: Order) -> PaymentResult | None:
        if order.payment_status == PaymentStatus.COMPLETED and order.payment is not None:
            return PaymentResult.success(order.payment)
        return None


class CashPaymentStrategy(PaymentStrategy):
    """Cash is counted at the counter or at the door, so there is nothing to start."""

    method = PaymentMethod.CASH
    initiate_roles = frozenset({ActorRole.CUSTOMER}) | _FRONT_OF_HOUSE
    confirm_roles = frozenset({ActorRole.ADMIN, ActorRole.CASHIER, ActorRole.DELIVERY})

    def initiate(self, order: Order, now: datetime) -> tuple[Order, PaymentHandle]:
        order.ensure_payable()
        return order, self.begin(order, now)

    def begin(self, order: Order, now: datetime) -> PaymentHandle:
        return PaymentHandle(order_id=order.order_id, method=self.method)

    def apply_initiation(self, order: Order, handle: PaymentHandle) -> Order:
        return order

    def confirm(self, order: Order, evidence: PaymentEvidence, now: datetime) -> PaymentResult:
        if not isinstance(evidence, CashEvidence):
            raise ValidationError("cash payments are confirmed with the amount received")
        existing = self._existing(order)
        if existing is not None:
            return existing
        order.ensure_payable()

        received = evidence.amount_received
        if received.currency != order.total.currency:
            raise ValidationError(
                f"amount received must be in {order.total.currency}",
                details={"currency": received.currency},
            )
        if received.amount_cents < order.total.amount_cents:
            raise InsufficientAmountError(
                "amount received is less than the order total",
                details={
                    "amountReceived": received.amount_cents,
                    "total": order.total.amount_cents,
                    "shortBy": order.total.amount_cents - received.amount_cents,
                },
            )
        return PaymentResult.success(
            PaymentRecord(
                record_id=_new_record_id(),
                order_id=order.order_id,
                method=self.method,
                amount=order.total,
                confirmed_at=now,
                amount_received=received,
                change=received.minus(order.total),
            )
        )


class CardPaymentStrategy(PaymentStrategy):
    """Hosted card checkout: the payer completes the intent, we re-read its state."""

    method = PaymentMethod.CARD
    initiate_roles = frozenset({ActorRole.CUSTOMER}) | _FRONT_OF_HOUSE
    confirm_roles = frozenset({ActorRole.CUSTOMER}) | _FRONT_OF_HOUSE

    def __init__(self, card_processor: CardProcessor) -> None:
        self._card_processor = card_processor

    def begin(self, order: Order, now: datetime) -> PaymentHandle:
        order.ensure_payable()
        intent = self._card_processor.create_intent(order.order_id, order.total)
        return PaymentHandle(
            order_id=order.order_id,
            method=self.method,
            client_secret=intent.client_secret,
            external_reference=intent.intent_id,
        )

    def confirm(self, order: Order, evidence: PaymentEvidence, now: datetime) -> PaymentResult:
        if not isinstance(evidence, CardEvidence):
            raise ValidationError("card payments are confirmed with a payment intent id")
        existing = self._existing(order)
        if existing is not None and existing.record.external_reference == evidence.payment_intent_id:
            return existing
        order.ensure_payable()
        if order.payment_reference != evidence.payment_intent_id:
            raise ValidationError(
                "payment intent does not belong to this order",
                details={"paymentIntentId": evidence.payment_intent_id},
            )

        intent = self._card_processor.retrieve_intent(evidence.payment_intent_id)
        if intent.status == CARD_SUCCEEDED:
            if intent.amount != order.total:
                raise ValidationError(
                    "payment intent amount does not match the order total",
                    details={"intentAmount": intent.amount.amount_cents, "total": order.total.amount_cents},
                )
            return PaymentResult.success(
                PaymentRecord(
                    record_id=_new_record_id(),
                    order_id=order.order_id,
                    method=self.method,
                    amount=order.total,
                    confirmed_at=now,
                    external_reference=intent.intent_id,
                )
            )
        if intent.status in CARD_FAILED_STATES:
            return PaymentResult.failure("card_payment_failed", intentStatus=intent.status)
        raise PaymentNotSettledError(
            f"payment intent is still {intent.status}",
            details={"paymentIntentId": intent.intent_id, "intentStatus": intent.status},
        )

    def refund(self, order: Order, reason: str | None) -> str | None:
        return self._card_processor.refund(order.payment.external_reference, order.payment.amount, reason)


@dataclass(frozen=True)
class MobileMoneySettings:
    provider: str = "telebirr"
    recipient: str = ""


class MobileMoneyPaymentStrategy(PaymentStrategy):
    """
    Manual transfer to a published number.

    Nothing verifies the transfer automatically: an operator checks the
    provider statement and confirms or rejects it.
    """

    method = PaymentMethod.MOBILE_MONEY
    initiate_roles = frozenset({ActorRole.CUSTOMER}) | _FRONT_OF_HOUSE
    confirm_roles = _FRONT_OF_HOUSE

    def __init__(self, settings: MobileMoneySettings) -> None:
        self._settings = settings

    def begin(self, order: Order, now: datetime) -> PaymentHandle:
        order.ensure_payable()
        reference = str(order.order_id)
        amount = order.total
        instructions = MobileMoneyInstructions(
            provider=self._settings.provider,
            recipient=self._settings.recipient,
            amount=amount,
            reference=reference,
            steps=(
                f"Open your {self._settings.provider} app",
                f"Send {amount.amount_cents / 100:.2f} {amount.currency} to {self._settings.recipient}",
                f"Use {reference} as the payment reference",
                "Keep the transaction number; staff will confirm it",
            ),
        )
        return PaymentHandle(
            order_id=order.order_id,
            method=self.method,
            external_reference=reference,
            instructions=instructions,
        )

    def confirm(self, order: Order, evidence: PaymentEvidence, now: datetime) -> PaymentResult:
        if not isinstance(evidence, MobileMoneyEvidence):
            raise ValidationError("mobile money payments are confirmed with a transaction reference")
        existing = self._existing(order)
        if existing is not None and existing.record.external_reference == evidence.transaction_reference:
            return existing
        order.ensure_payable()
        if not evidence.verified:
            return PaymentResult.failure(
                "mobile_money_not_verified",
                transactionReference=evidence.transaction_reference,
            )
        return PaymentResult.success(
            PaymentRecord(
                record_id=_new_record_id(),
                order_id=order.order_id,
                method=self.method,
                amount=order.total,
                confirmed_at=now,
                external_reference=evidence.transaction_reference,
            )
        )


class PaymentStrategyFactory:
    def __init__(self, card_processor: CardProcessor, mobile_money: MobileMoneySettings) -> None:
        self._strategies: dict[PaymentMethod, PaymentStrategy] = {
            PaymentMethod.CASH: CashPaymentStrategy(),
            PaymentMethod.CARD: CardPaymentStrategy(card_processor),
            PaymentMethod.MOBILE_MONEY: MobileMoneyPaymentStrategy(mobile_money),
        }

    def get_strategy(self, method: PaymentMethod) -> PaymentStrategy:
        return self._strategies[method]
