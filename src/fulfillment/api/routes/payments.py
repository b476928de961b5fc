from __future__ import annotations

from fastapi import APIRouter, Depends

from fulfillment.api.dependencies import current_trace_context, get_actor
from fulfillment.application.dto.requests import (
    CashPaymentRequest,
    ConfirmCardPaymentRequest,
    CreatePaymentIntentRequest,
    MobileMoneyConfirmRequest,
    RefundRequest,
)
from fulfillment.application.dto.responses import (
    PaymentConfirmationResponse,
    PaymentInitiationResponse,
)
from fulfillment.application.payments.strategies import PaymentStrategyFactory
from fulfillment.application.use_cases.common import load_order
from fulfillment.application.use_cases.payments import (
    ConfirmPayment,
    InitiatePayment,
    PaymentDeclinedError,
    RefundPayment,
)
from fulfillment.domain.common.actors import Actor
from fulfillment.domain.common.ids import OrderId
from fulfillment.domain.common.money import Money
from fulfillment.domain.order.status import PaymentMethod
from fulfillment.domain.payment.entities import (
    CardEvidence,
    CashEvidence,
    MobileMoneyEvidence,
    PaymentEvidence,
)
from fulfillment.infrastructure.db.repositories.order_repo import SqlAlchemyOrderRepository
from fulfillment.infrastructure.messaging.redis_publisher import RedisEventPublisher
from fulfillment.infrastructure.payments.stripe_processor import StripeCardProcessor
from fulfillment.infrastructure.settings import mobile_money_settings

router = APIRouter(tags=["payments"])


def _strategies() -> PaymentStrategyFactory:
    return PaymentStrategyFactory(
        card_processor=StripeCardProcessor(),
        mobile_money=mobile_money_settings(),
    )


def _initiate_use_case() -> InitiatePayment:
    return InitiatePayment(
        order_repository=SqlAlchemyOrderRepository(),
        strategies=_strategies(),
        publisher=RedisEventPublisher(),
    )


def _confirm_use_case() -> ConfirmPayment:
    return ConfirmPayment(
        order_repository=SqlAlchemyOrderRepository(),
        strategies=_strategies(),
        publisher=RedisEventPublisher(),
    )


def _confirm(
    order_id: str,
    evidence: PaymentEvidence,
    method: PaymentMethod,
    actor: Actor,
) -> PaymentConfirmationResponse:
    result = _confirm_use_case().execute(
        order_id=OrderId(order_id),
        evidence=evidence,
        actor=actor,
        trace_ctx=current_trace_context(),
        expected_method=method,
    )
    if not result.succeeded:
        raise PaymentDeclinedError(
            f"{method.value} payment was not completed",
            details={
                "orderId": result.order.orderId,
                "paymentStatus": result.order.paymentStatus,
                "failureReason": result.failureReason,
            },
        )
    return result


@router.post("/payments/create-intent", response_model=PaymentInitiationResponse)
def create_payment_intent(
    request_dto: CreatePaymentIntentRequest,
    actor: Actor = Depends(get_actor),
) -> PaymentInitiationResponse:
    return _initiate_use_case().execute(
        order_id=OrderId(request_dto.order_id),
        actor=actor,
        trace_ctx=current_trace_context(),
        expected_method=PaymentMethod.CARD,
    )


@router.post("/payments/confirm-card", response_model=PaymentConfirmationResponse)
def confirm_card_payment(
    request_dto: ConfirmCardPaymentRequest,
    actor: Actor = Depends(get_actor),
) -> PaymentConfirmationResponse:
    return _confirm(
        request_dto.order_id,
        CardEvidence(payment_intent_id=request_dto.payment_intent_id),
        PaymentMethod.CARD,
        actor,
    )


@router.post("/orders/{order_id}/cash-payment", response_model=PaymentConfirmationResponse)
def record_cash_payment(
    order_id: str,
    request_dto: CashPaymentRequest,
    actor: Actor = Depends(get_actor),
) -> PaymentConfirmationResponse:
    order = load_order(SqlAlchemyOrderRepository(), OrderId(order_id))
    evidence = CashEvidence(
        amount_received=Money(amount_cents=request_dto.amount_received, currency=order.total.currency),
    )
    return _confirm(order_id, evidence, PaymentMethod.CASH, actor)


@router.post("/orders/{order_id}/mobile-money/initiate", response_model=PaymentInitiationResponse)
def initiate_mobile_money(
    order_id: str,
    actor: Actor = Depends(get_actor),
) -> PaymentInitiationResponse:
    return _initiate_use_case().execute(
        order_id=OrderId(order_id),
        actor=actor,
        trace_ctx=current_trace_context(),
        expected_method=PaymentMethod.MOBILE_MONEY,
    )


@router.post("/orders/{order_id}/mobile-money/confirm", response_model=PaymentConfirmationResponse)
def confirm_mobile_money(
    order_id: str,
    request_dto: MobileMoneyConfirmRequest,
    actor: Actor = Depends(get_actor),
) -> PaymentConfirmationResponse:
    evidence = MobileMoneyEvidence(
        transaction_reference=request_dto.transaction_reference,
        verified=request_dto.verified,
        confirmed_by=actor.actor_id,
    )
    return _confirm(order_id, evidence, PaymentMethod.MOBILE_MONEY, actor)


@router.post("/orders/{order_id}/refund", response_model=PaymentConfirmationResponse)
def refund_payment(
    order_id: str,
    request_dto: RefundRequest | None = None,
    actor: Actor = Depends(get_actor),
) -> PaymentConfirmationResponse:
    return RefundPayment(
        order_repository=SqlAlchemyOrderRepository(),
        strategies=_strategies(),
        publisher=RedisEventPublisher(),
    ).execute(
        order_id=OrderId(order_id),
        request_dto=request_dto or RefundRequest(),
        actor=actor,
        trace_ctx=current_trace_context(),
    )
