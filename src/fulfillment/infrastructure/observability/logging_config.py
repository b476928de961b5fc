from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from opentelemetry import trace

from fulfillment.api.middleware.request_id import get_request_id

_LOGGING_CONFIGURED = False

STRUCTURED_FIELDS = (
    "method",
    "path",
    "status_code",
    "duration_ms",
    "order_id",
    "from_status",
    "to_status",
    "payment_method",
    "payment_intent_id",
    "staff_id",
    "event_type",
    "attempt",
    "channel",
    "scope",
    "reason",
    "pattern",
    "backoff_seconds",
)


def _trace_fields() -> tuple[str | None, str | None]:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None, None
    return (
        format(span_context.trace_id, "032x"),
        format(span_context.span_id, "016x"),
    )


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with request and trace correlation ids."""

    def format(self, record: logging.LogRecord) -> str:
        trace_id, span_id = _trace_fields()
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": get_request_id(),
            "trace_id": trace_id,
            "span_id": span_id,
        }
        payload.update(
            {key: getattr(record, key) for key in STRUCTURED_FIELDS if getattr(record, key, None) is not None}
        )

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def configure_logging() -> None:
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

    _LOGGING_CONFIGURED = True
