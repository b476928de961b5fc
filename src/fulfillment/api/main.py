from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from fulfillment.api.error_handling import register_exception_handlers
from fulfillment.api.middleware.request_id import RequestIDMiddleware
from fulfillment.api.routes.health import router as health_router
from fulfillment.api.routes.metrics import router as metrics_router
from fulfillment.api.routes.orders import router as orders_router
from fulfillment.api.routes.payments import router as payments_router
from fulfillment.api.routes.staff import router as staff_router
from fulfillment.api.ws.manager import ConnectionManager
from fulfillment.api.ws.routes import router as ws_router
from fulfillment.infrastructure.messaging.redis_event_listener import start_redis_fanout
from fulfillment.infrastructure.observability.logging_config import configure_logging
from fulfillment.infrastructure.observability.otel import configure_otel
from fulfillment.infrastructure.settings import app_env, cors_allow_origins

logger = logging.getLogger("fulfillment.api.access")

REQUEST_COUNT = Counter(
    "fulfillment_http_requests_total",
    "Total number of HTTP requests",
    ["method", "path", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "fulfillment_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        method = request.method
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - started) * 1000
            path = _route_path(request)
            REQUEST_COUNT.labels(method=method, path=path, status_code="500").inc()
            REQUEST_LATENCY.labels(method=method, path=path).observe(duration_ms / 1000)
            logger.exception(
                "request_error",
                extra={
                    "method": method,
                    "path": path,
                    "status_code": 500,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            raise

        duration_ms = (time.perf_counter() - started) * 1000
        path = _route_path(request)
        REQUEST_COUNT.labels(method=method, path=path, status_code=str(response.status_code)).inc()
        REQUEST_LATENCY.labels(method=method, path=path).observe(duration_ms / 1000)
        logger.info(
            "request_complete",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.ws_manager = ConnectionManager()
    fanout_task = asyncio.create_task(start_redis_fanout(app.state))
    app.state.redis_fanout_task = fanout_task
    try:
        yield
    finally:
        fanout_task.cancel()
        with suppress(asyncio.CancelledError):
            await fanout_task


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Order Fulfillment Service", version="0.1.0", lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(orders_router)
    app.include_router(payments_router)
    app.include_router(staff_router)
    app.include_router(ws_router)

    allow_origins = ["*"] if app_env().lower() in {"local", "dev", "test"} else cors_allow_origins()
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )

    configure_otel(app)
    return app


app = create_app()
