from __future__ import annotations

import os

from fulfillment.application.payments.strategies import MobileMoneySettings
from fulfillment.domain.order.state_machine import DeliveryPaymentPolicy


def app_env() -> str:
    return os.getenv("APP_ENV", "local")


def redis_url() -> str | None:
    return os.getenv("REDIS_URL") or None


def order_currency() -> str:
    return os.getenv("ORDER_CURRENCY", "ETB").upper()


def delivery_payment_policy() -> DeliveryPaymentPolicy:
    raw = os.getenv("DELIVERY_PAYMENT_POLICY", DeliveryPaymentPolicy.STRICT.value).lower()
    try:
        return DeliveryPaymentPolicy(raw)
    except ValueError as exc:
        raise RuntimeError(f"DELIVERY_PAYMENT_POLICY must be strict or lenient, got {raw!r}") from exc


def staff_capacity_limit() -> int | None:
    raw = os.getenv("STAFF_CAPACITY_LIMIT")
    if not raw:
        return None
    try:
        limit = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"STAFF_CAPACITY_LIMIT must be an integer, got {raw!r}") from exc
    if limit < 1:
        raise RuntimeError("STAFF_CAPACITY_LIMIT must be >= 1")
    return limit


def mobile_money_settings() -> MobileMoneySettings:
    return MobileMoneySettings(
        provider=os.getenv("MOBILE_MONEY_PROVIDER", "telebirr"),
        recipient=os.getenv("MOBILE_MONEY_RECIPIENT", ""),
    )


def stripe_secret_key() -> str | None:
    return os.getenv("STRIPE_SECRET_KEY") or None


def cors_allow_origins() -> list[str]:
    raw_origins = os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:5173")
    return [origin.strip() for origin in raw_origins.split(",") if origin.strip()]


def otel_service_name() -> str:
    return os.getenv("OTEL_SERVICE_NAME", "fulfillment-backend")


def otel_exporter_endpoint() -> str | None:
    return os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or None
