from __future__ import annotations

import logging
from datetime import datetime, timezone

from fulfillment.application.dto.requests import RefundRequest
from fulfillment.application.dto.responses import (
    MobileMoneyInstructionsResponse,
    PaymentConfirmationResponse,
    PaymentInitiationResponse,
)
from fulfillment.application.mappers.order_mapper import (
    to_money_response,
    to_order_response,
    to_payment_record_response,
)
from fulfillment.application.metrics.order_lifecycle import record_payment
from fulfillment.application.payments.strategies import PaymentStrategy, PaymentStrategyFactory
from fulfillment.application.ports.publisher import EventPublisher
from fulfillment.application.ports.repositories import OrderRepository
from fulfillment.application.use_cases.common import (
    TraceContext,
    ensure_own_order,
    load_order,
    publish_order_event,
    require_role,
    write_order,
)
from fulfillment.domain.common.actors import Actor, ActorRole
from fulfillment.domain.common.errors import FulfillmentError, ValidationError
from fulfillment.domain.common.ids import OrderId
from fulfillment.domain.order.entities import Order
from fulfillment.domain.order.events import OrderEventType
from fulfillment.domain.order.status import PaymentMethod
from fulfillment.domain.payment.entities import PaymentEvidence

logger = logging.getLogger(__name__)

REFUND_ROLES = frozenset({ActorRole.ADMIN})


def _strategy_for(
    factory: PaymentStrategyFactory,
    order: Order,
    expected_method: PaymentMethod | None,
) -> PaymentStrategy:
    if expected_method is not None and order.payment_method != expected_method:
        raise ValidationError(
            f"order is paid by {order.payment_method.value}, not {expected_method.value}",
            details={"paymentMethod": order.payment_method.value},
        )
    return factory.get_strategy(order.payment_method)


class PaymentDeclinedError(FulfillmentError):
    """A confirm call whose evidence settled the payment as failed."""


class InitiatePayment:
    def __init__(
        self,
        order_repository: OrderRepository,
        strategies: PaymentStrategyFactory,
        publisher: EventPublisher,
    ) -> None:
        self._order_repository = order_repository
        self._strategies = strategies
        self._publisher = publisher

    def execute(
        self,
        order_id: OrderId,
        actor: Actor,
        trace_ctx: TraceContext,
        expected_method: PaymentMethod | None = None,
    ) -> PaymentInitiationResponse:
        order = load_order(self._order_repository, order_id)
        strategy = _strategy_for(self._strategies, order, expected_method)
        require_role(actor, strategy.initiate_roles, f"start a {strategy.method.value} payment")
        ensure_own_order(actor, order, "pay for")

        now = datetime.now(timezone.utc)
        _, handle = strategy.initiate(order, now)
        write = write_order(
            self._order_repository,
            order_id,
            lambda current: strategy.apply_initiation(current, handle),
        )
        if write.changed:
            record_payment(strategy.method.value, "initiated")
            logger.info(
                "payment_initiated",
                extra={"order_id": str(order_id), "payment_method": strategy.method.value},
            )
            publish_order_event(
                self._publisher,
                OrderEventType.PAYMENT_UPDATED,
                write.after,
                occurred_at=now,
                trace_ctx=trace_ctx,
            )

        instructions = None
        if handle.instructions is not None:
            instructions = MobileMoneyInstructionsResponse(
                provider=handle.instructions.provider,
                recipient=handle.instructions.recipient,
                amount=to_money_response(handle.instructions.amount),
                reference=handle.instructions.reference,
                steps=list(handle.instructions.steps),
            )
        return PaymentInitiationResponse(
            order=to_order_response(write.after),
            method=strategy.method.value,
            clientSecret=handle.client_secret,
            paymentIntentId=handle.external_reference if strategy.method == PaymentMethod.CARD else None,
            instructions=instructions,
        )


class ConfirmPayment:
    """Settles or fails the order's payment from the given evidence.

    A declined result is still a successful call: the order moves to
    ``failed`` and the response carries the reason.
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        strategies: PaymentStrategyFactory,
        publisher: EventPublisher,
    ) -> None:
        self._order_repository = order_repository
        self._strategies = strategies
        self._publisher = publisher

    def execute(
        self,
        order_id: OrderId,
        evidence: PaymentEvidence,
        actor: Actor,
        trace_ctx: TraceContext,
        expected_method: PaymentMethod | None = None,
    ) -> PaymentConfirmationResponse:
        order = load_order(self._order_repository, order_id)
        strategy = _strategy_for(self._strategies, order, expected_method)
        require_role(actor, strategy.confirm_roles, f"confirm a {strategy.method.value} payment")
        ensure_own_order(actor, order, "pay for")

        now = datetime.now(timezone.utc)
        result = strategy.confirm(order, evidence, now)
        write = write_order(
            self._order_repository,
            order_id,
            lambda current: strategy.apply_result(current, result),
        )
        outcome = "completed" if result.succeeded else "failed"
        if write.changed:
            record_payment(strategy.method.value, outcome)
            logger.info(
                "payment_confirmed" if result.succeeded else "payment_failed",
                extra={"order_id": str(order_id), "payment_method": strategy.method.value},
            )
            publish_order_event(
                self._publisher,
                OrderEventType.PAYMENT_UPDATED,
                write.after,
                occurred_at=now,
                trace_ctx=trace_ctx,
            )

        record = write.after.payment if result.succeeded else None
        return PaymentConfirmationResponse(
            order=to_order_response(write.after),
            succeeded=result.succeeded,
            payment=to_payment_record_response(record),
            change=to_money_response(record.change) if record is not None and record.change else None,
            failureReason=result.failure_reason,
        )


class RefundPayment:
    def __init__(
        self,
        order_repository: OrderRepository,
        strategies: PaymentStrategyFactory,
        publisher: EventPublisher,
    ) -> None:
        self._order_repository = order_repository
        self._strategies = strategies
        self._publisher = publisher

    def execute(
        self,
        order_id: OrderId,
        request_dto: RefundRequest,
        actor: Actor,
        trace_ctx: TraceContext,
    ) -> PaymentConfirmationResponse:
        require_role(actor, REFUND_ROLES, "refund payments")
        order = load_order(self._order_repository, order_id)
        now = datetime.now(timezone.utc)
        # Eligibility is checked before any money moves.
        order.refund_payment(now)

        strategy = self._strategies.get_strategy(order.payment_method)
        refund_reference = strategy.refund(order, request_dto.reason)
        write = write_order(
            self._order_repository,
            order_id,
            lambda current: current.refund_payment(now),
        )
        record_payment(strategy.method.value, "refunded")
        logger.info(
            "payment_refunded",
            extra={"order_id": str(order_id), "payment_method": strategy.method.value},
        )
        publish_order_event(
            self._publisher,
            OrderEventType.PAYMENT_UPDATED,
            write.after,
            occurred_at=now,
            trace_ctx=trace_ctx,
            extra={"refundReference": refund_reference},
        )
        return PaymentConfirmationResponse(
            order=to_order_response(write.after),
            succeeded=True,
            payment=to_payment_record_response(write.after.payment),
        )
