from __future__ import annotations

from typing import Any


class FulfillmentError(Exception):
    """Base class for errors a caller can recover from.

    ``details`` is surfaced verbatim in the API error envelope.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


class ValidationError(FulfillmentError, ValueError):
    pass


class InvalidTransitionError(FulfillmentError):
    pass


class IneligibleOrderStateError(FulfillmentError):
    pass


class InsufficientAmountError(FulfillmentError):
    pass


class PaymentProcessorError(FulfillmentError):
    pass


class PaymentNotSettledError(FulfillmentError):
    pass


class PermissionDeniedError(FulfillmentError):
    pass


class NotFoundError(FulfillmentError):
    pass
