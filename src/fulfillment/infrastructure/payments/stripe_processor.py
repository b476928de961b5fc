from __future__ import annotations

import logging

import stripe

from fulfillment.application.ports.card_processor import CardIntent, CardProcessor
from fulfillment.domain.common.errors import PaymentProcessorError
from fulfillment.domain.common.ids import OrderId
from fulfillment.domain.common.money import Money
from fulfillment.infrastructure.settings import stripe_secret_key

logger = logging.getLogger(__name__)


class StripeCardProcessor(CardProcessor):
    """Card payments through Stripe PaymentIntents."""

    def __init__(self, api_key: str | None = None) -> None:
        self._api_key = api_key or stripe_secret_key()

    def _configure(self) -> None:
        if not self._api_key:
            raise PaymentProcessorError("card payments are not configured")
        stripe.api_key = self._api_key

    def create_intent(self, order_id: OrderId, amount: Money) -> CardIntent:
        self._configure()
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount.amount_cents,
                currency=amount.currency.lower(),
                metadata={"order_id": str(order_id)},
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as exc:
            logger.warning("stripe_create_intent_failed", extra={"order_id": str(order_id)})
            raise PaymentProcessorError(
                "card processor rejected the payment intent",
                details={"processorMessage": exc.user_message or str(exc)},
            ) from exc
        return _to_intent(intent)

    def retrieve_intent(self, intent_id: str) -> CardIntent:
        self._configure()
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id)
        except stripe.StripeError as exc:
            logger.warning("stripe_retrieve_intent_failed", extra={"payment_intent_id": intent_id})
            raise PaymentProcessorError(
                "could not read the payment intent",
                details={"processorMessage": exc.user_message or str(exc)},
            ) from exc
        return _to_intent(intent)

    def refund(self, intent_id: str, amount: Money, reason: str | None = None) -> str:
        self._configure()
        params = {"payment_intent": intent_id, "amount": amount.amount_cents}
        if reason:
            params["metadata"] = {"reason": reason}
        try:
            refund = stripe.Refund.create(**params)
        except stripe.StripeError as exc:
            logger.warning("stripe_refund_failed", extra={"payment_intent_id": intent_id})
            raise PaymentProcessorError(
                "card processor rejected the refund",
                details={"processorMessage": exc.user_message or str(exc)},
            ) from exc
        return refund.id


def _to_intent(intent: stripe.PaymentIntent) -> CardIntent:
    return CardIntent(
        intent_id=intent.id,
        status=intent.status,
        amount=Money(amount_cents=intent.amount, currency=intent.currency.upper()),
        client_secret=intent.client_secret,
    )
