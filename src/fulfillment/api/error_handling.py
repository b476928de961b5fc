from __future__ import annotations

import logging
from typing import Any, cast

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fulfillment.api.dependencies import UnknownActorRoleError
from fulfillment.api.middleware.request_id import get_request_id
from fulfillment.application.use_cases.common import (
    OrderConflictError,
    OrderNotFoundError,
    StaleOrderVersionError,
)
from fulfillment.application.use_cases.create_order import IdempotencyReplayMismatchError
from fulfillment.application.use_cases.payments import PaymentDeclinedError
from fulfillment.application.use_cases.staff_dispatch import StaffAtCapacityError, StaffNotFoundError
from fulfillment.domain.common.errors import (
    IneligibleOrderStateError,
    InsufficientAmountError,
    InvalidTransitionError,
    NotFoundError,
    PaymentNotSettledError,
    PaymentProcessorError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _error_response(
    *,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": jsonable_encoder(details or {}),
            },
            "requestId": get_request_id(),
        },
    )


def _exception_handler(status_code: int, code: str):
    async def handler(_: Request, exc: Exception) -> JSONResponse:
        details = getattr(exc, "details", None)
        if status_code >= 500:
            logger.warning("upstream_failure", extra={"reason": code})
        return _error_response(
            status_code=status_code,
            code=code,
            message=str(exc),
            details=details if isinstance(details, dict) else None,
        )

    return handler


async def _http_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    http_exc = cast(StarletteHTTPException, exc)
    message = str(http_exc.detail) if http_exc.detail else "request failed"
    codes = {400: "BAD_REQUEST", 404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED", 409: "CONFLICT"}
    return _error_response(
        status_code=http_exc.status_code,
        code=codes.get(http_exc.status_code, "HTTP_ERROR"),
        message=message,
    )


async def _validation_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    validation_exc = cast(RequestValidationError, exc)
    return _error_response(
        status_code=400,
        code="INVALID_REQUEST",
        message="request validation failed",
        details={"errors": validation_exc.errors()},
    )


def register_exception_handlers(app: FastAPI) -> None:
    # Handlers are looked up along the exception MRO; the most specific registered class wins.
    mappings: list[tuple[type[Exception], int, str]] = [
        (ValidationError, 400, "VALIDATION_ERROR"),
        (InsufficientAmountError, 400, "INSUFFICIENT_AMOUNT"),
        (UnknownActorRoleError, 401, "UNKNOWN_ROLE"),
        (PaymentDeclinedError, 402, "PAYMENT_DECLINED"),
        (PermissionDeniedError, 403, "FORBIDDEN"),
        (OrderNotFoundError, 404, "ORDER_NOT_FOUND"),
        (StaffNotFoundError, 404, "STAFF_NOT_FOUND"),
        (NotFoundError, 404, "NOT_FOUND"),
        (InvalidTransitionError, 409, "INVALID_ORDER_TRANSITION"),
        (IneligibleOrderStateError, 409, "INELIGIBLE_ORDER_STATE"),
        (PaymentNotSettledError, 409, "PAYMENT_NOT_SETTLED"),
        (StaffAtCapacityError, 409, "STAFF_AT_CAPACITY"),
        (StaleOrderVersionError, 409, "STALE_ORDER_VERSION"),
        (OrderConflictError, 409, "CONFLICT"),
        (IdempotencyReplayMismatchError, 409, "IDEMPOTENCY_KEY_REPLAY_DIFFERENT_PAYLOAD"),
        (PaymentProcessorError, 502, "PAYMENT_PROCESSOR_ERROR"),
    ]

    for exc_cls, status_code, code in mappings:
        app.add_exception_handler(exc_cls, _exception_handler(status_code, code))

    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
