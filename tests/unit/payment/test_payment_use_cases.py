from __future__ import annotations

import json

import pytest
from support import FakeCardProcessor, FakeOrderRepository, FakePublisher

from fulfillment.application.dto.requests import RefundRequest
from fulfillment.application.use_cases.common import TraceContext
from fulfillment.application.use_cases.payments import ConfirmPayment, InitiatePayment, RefundPayment
from fulfillment.domain.common.actors import Actor, ActorRole
from fulfillment.domain.common.errors import (
    IneligibleOrderStateError,
    InsufficientAmountError,
    PaymentNotSettledError,
    PaymentProcessorError,
    PermissionDeniedError,
    ValidationError,
)
from fulfillment.domain.common.money import Money
from fulfillment.domain.order.status import OrderStatus, PaymentMethod, PaymentStatus
from fulfillment.domain.payment.entities import CardEvidence, CashEvidence, MobileMoneyEvidence

ADMIN = Actor(role=ActorRole.ADMIN, actor_id="adm_001")
CASHIER = Actor(role=ActorRole.CASHIER, actor_id="csh_001")
CUSTOMER = Actor(role=ActorRole.CUSTOMER, actor_id="cus_001")


def _birr(amount_cents: int) -> Money:
    return Money(amount_cents=amount_cents, currency="ETB")


def _use_cases(order_repository, strategies, publisher):
    return (
        InitiatePayment(order_repository, strategies, publisher),
        ConfirmPayment(order_repository, strategies, publisher),
        RefundPayment(order_repository, strategies, publisher),
    )


def test_cash_payment_returns_change(
    order_factory,
    order_repository: FakeOrderRepository,
    strategies,
    publisher: FakePublisher,
    trace_ctx: TraceContext,
) -> None:
    order = order_factory(payment_method=PaymentMethod.CASH, unit_price_cents=125, quantity=2)
    _, confirm, _ = _use_cases(order_repository, strategies, publisher)

    response = confirm.execute(order.order_id, CashEvidence(amount_received=_birr(300)), CASHIER, trace_ctx)

    assert response.succeeded is True
    assert response.change.amountCents == 50
    assert response.payment.amountReceived.amountCents == 300
    assert response.order.paymentStatus == "completed"
    assert json.loads(publisher.messages[-1][1])["event_type"] == "order.payment_updated"


def test_underpaid_cash_leaves_payment_untouched(
    order_factory,
    order_repository: FakeOrderRepository,
    strategies,
    publisher: FakePublisher,
    trace_ctx: TraceContext,
) -> None:
    order = order_factory(payment_method=PaymentMethod.CASH, unit_price_cents=125, quantity=2)
    _, confirm, _ = _use_cases(order_repository, strategies, publisher)

    with pytest.raises(InsufficientAmountError) as exc_info:
        confirm.execute(order.order_id, CashEvidence(amount_received=_birr(200)), CASHIER, trace_ctx)

    assert exc_info.value.details["shortBy"] == 50
    stored = order_repository.get(order.order_id)
    assert stored.payment_status == PaymentStatus.UNPAID
    assert stored.version == 1
    assert publisher.messages == []


def test_cash_confirm_rejects_wrong_method(
    order_factory,
    order_repository: FakeOrderRepository,
    strategies,
    publisher: FakePublisher,
    trace_ctx: TraceContext,
) -> None:
    order = order_factory(payment_method=PaymentMethod.CARD)
    _, confirm, _ = _use_cases(order_repository, strategies, publisher)

    with pytest.raises(ValidationError):
        confirm.execute(
            order.order_id,
            CashEvidence(amount_received=_birr(300)),
            CASHIER,
            trace_ctx,
            expected_method=PaymentMethod.CASH,
        )


def test_card_payment_double_confirm_creates_single_record(
    order_factory,
    order_repository: FakeOrderRepository,
    strategies,
    card_processor: FakeCardProcessor,
    publisher: FakePublisher,
    trace_ctx: TraceContext,
) -> None:
    order = order_factory(payment_method=PaymentMethod.CARD)
    initiate, confirm, _ = _use_cases(order_repository, strategies, publisher)

    started = initiate.execute(order.order_id, CUSTOMER, trace_ctx)
    assert started.paymentIntentId == "pi_001"
    assert started.clientSecret == "pi_001_secret"
    assert started.order.paymentStatus == "pending_confirmation"

    card_processor.set_status("pi_001", "succeeded")
    first = confirm.execute(order.order_id, CardEvidence(payment_intent_id="pi_001"), CUSTOMER, trace_ctx)
    second = confirm.execute(order.order_id, CardEvidence(payment_intent_id="pi_001"), CUSTOMER, trace_ctx)

    assert first.succeeded and second.succeeded
    assert first.payment.recordId == second.payment.recordId
    assert second.order.version == first.order.version
    assert card_processor.retrieve_calls == 1
    assert len(publisher.messages) == 2


def test_card_payment_canceled_intent_fails_order_payment(
    order_factory,
    order_repository: FakeOrderRepository,
    strategies,
    card_processor: FakeCardProcessor,
    publisher: FakePublisher,
    trace_ctx: TraceContext,
) -> None:
    order = order_factory(payment_method=PaymentMethod.CARD)
    initiate, confirm, _ = _use_cases(order_repository, strategies, publisher)
    initiate.execute(order.order_id, CUSTOMER, trace_ctx)
    card_processor.set_status("pi_001", "canceled")

    response = confirm.execute(order.order_id, CardEvidence(payment_intent_id="pi_001"), CUSTOMER, trace_ctx)

    assert response.succeeded is False
    assert response.failureReason == "card_payment_failed"
    assert response.payment is None
    assert order_repository.get(order.order_id).payment_status == PaymentStatus.FAILED


def test_card_payment_still_processing_is_not_settled(
    order_factory,
    order_repository: FakeOrderRepository,
    strategies,
    card_processor: FakeCardProcessor,
    publisher: FakePublisher,
    trace_ctx: TraceContext,
) -> None:
    order = order_factory(payment_method=PaymentMethod.CARD)
    initiate, confirm, _ = _use_cases(order_repository, strategies, publisher)
    initiate.execute(order.order_id, CUSTOMER, trace_ctx)
    card_processor.set_status("pi_001", "processing")

    with pytest.raises(PaymentNotSettledError):
        confirm.execute(order.order_id, CardEvidence(payment_intent_id="pi_001"), CUSTOMER, trace_ctx)

    assert order_repository.get(order.order_id).payment_status == PaymentStatus.PENDING_CONFIRMATION


def test_card_confirm_rejects_foreign_intent(
    order_factory,
    order_repository: FakeOrderRepository,
    strategies,
    publisher: FakePublisher,
    trace_ctx: TraceContext,
) -> None:
    order = order_factory(payment_method=PaymentMethod.CARD)
    initiate, confirm, _ = _use_cases(order_repository, strategies, publisher)
    initiate.execute(order.order_id, CUSTOMER, trace_ctx)

    with pytest.raises(ValidationError):
        confirm.execute(order.order_id, CardEvidence(payment_intent_id="pi_other"), CUSTOMER, trace_ctx)


def test_card_processor_outage_leaves_order_untouched(
    order_factory,
    order_repository: FakeOrderRepository,
    strategies,
    card_processor: FakeCardProcessor,
    publisher: FakePublisher,
    trace_ctx: TraceContext,
) -> None:
    order = order_factory(payment_method=PaymentMethod.CARD)
    initiate, _, _ = _use_cases(order_repository, strategies, publisher)
    card_processor.unavailable = True

    with pytest.raises(PaymentProcessorError):
        initiate.execute(order.order_id, CUSTOMER, trace_ctx)

    assert order_repository.get(order.order_id) == order


def test_customer_cannot_pay_someone_elses_order(
    order_factory,
    order_repository: FakeOrderRepository,
    strategies,
    publisher: FakePublisher,
    trace_ctx: TraceContext,
) -> None:
    order = order_factory(payment_method=PaymentMethod.CARD, customer_id="cus_002")
    initiate, _, _ = _use_cases(order_repository, strategies, publisher)

    with pytest.raises(PermissionDeniedError):
        initiate.execute(order.order_id, CUSTOMER, trace_ctx)


def test_mobile_money_instructions_and_verified_confirmation(
    order_factory,
    order_repository: FakeOrderRepository,
    strategies,
    publisher: FakePublisher,
    trace_ctx: TraceContext,
) -> None:
    order = order_factory(payment_method=PaymentMethod.MOBILE_MONEY)
    initiate, confirm, _ = _use_cases(order_repository, strategies, publisher)

    started = initiate.execute(order.order_id, CUSTOMER, trace_ctx)

    assert started.instructions.provider == "telebirr"
    assert started.instructions.recipient == "+251911000000"
    assert started.instructions.reference == str(order.order_id)
    assert len(started.instructions.steps) == 4
    assert started.paymentIntentId is None

    with pytest.raises(PermissionDeniedError):
        evidence = MobileMoneyEvidence(transaction_reference="TX123")
        confirm.execute(order.order_id, evidence, CUSTOMER, trace_ctx)

    response = confirm.execute(
        order.order_id,
        MobileMoneyEvidence(transaction_reference="TX123", confirmed_by="csh_001"),
        CASHIER,
        trace_ctx,
    )

    assert response.succeeded is True
    assert response.payment.externalReference == "TX123"
    assert response.order.paymentStatus == "completed"


def test_mobile_money_unverified_transfer_fails(
    order_factory,
    order_repository: FakeOrderRepository,
    strategies,
    publisher: FakePublisher,
    trace_ctx: TraceContext,
) -> None:
    order = order_factory(payment_method=PaymentMethod.MOBILE_MONEY)
    initiate, confirm, _ = _use_cases(order_repository, strategies, publisher)
    initiate.execute(order.order_id, CUSTOMER, trace_ctx)

    response = confirm.execute(
        order.order_id,
        MobileMoneyEvidence(transaction_reference="TX404", verified=False),
        CASHIER,
        trace_ctx,
    )

    assert response.succeeded is False
    assert response.failureReason == "mobile_money_not_verified"
    assert response.order.paymentStatus == "failed"


def test_refund_cancelled_card_order(
    order_factory,
    order_repository: FakeOrderRepository,
    strategies,
    card_processor: FakeCardProcessor,
    publisher: FakePublisher,
    trace_ctx: TraceContext,
) -> None:
    order = order_factory(payment_method=PaymentMethod.CARD)
    initiate, confirm, refund = _use_cases(order_repository, strategies, publisher)
    initiate.execute(order.order_id, CUSTOMER, trace_ctx)
    card_processor.set_status("pi_001", "succeeded")
    confirm.execute(order.order_id, CardEvidence(payment_intent_id="pi_001"), CUSTOMER, trace_ctx)

    with pytest.raises(IneligibleOrderStateError):
        refund.execute(order.order_id, RefundRequest(), ADMIN, trace_ctx)
    assert card_processor.refunds == []

    paid = order_repository.get(order.order_id)
    order_repository.overwrite(
        paid.transition_to(OrderStatus.CANCELLED, actor_role=ActorRole.ADMIN, now=paid.created_at)
    )

    with pytest.raises(PermissionDeniedError):
        refund.execute(order.order_id, RefundRequest(), CASHIER, trace_ctx)

    response = refund.execute(order.order_id, RefundRequest(reason="kitchen closed"), ADMIN, trace_ctx)

    assert response.order.paymentStatus == "refunded"
    assert response.payment.refundedAt is not None
    assert card_processor.refunds == [("pi_001", order.total)]
    payload = json.loads(publisher.messages[-1][1])
    assert payload["payload"]["refundReference"] == "re_001"
