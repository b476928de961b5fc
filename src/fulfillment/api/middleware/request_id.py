from __future__ import annotations

from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

REQUEST_ID_HEADER = "X-Request-Id"
MAX_REQUEST_ID_LENGTH = 128

request_id_context: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    return request_id_context.get()


def _incoming_request_id(request: Request) -> str:
    candidate = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if candidate and len(candidate) <= MAX_REQUEST_ID_LENGTH and candidate.isprintable():
        return candidate
    return str(uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Binds the caller's X-Request-Id (or a fresh one) to logs, errors and events."""

    async def dispatch(self, request: Request, call_next):
        request_id = _incoming_request_id(request)
        token = request_id_context.set(request_id)
        request.state.request_id = request_id
        try:
            response = await call_next(request)
        finally:
            request_id_context.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
