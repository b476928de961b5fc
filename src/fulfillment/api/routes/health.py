from __future__ import annotations

from fastapi import APIRouter, Response, status

from fulfillment.infrastructure.db.session import ping_database
from fulfillment.infrastructure.messaging.redis_publisher import ping_redis
from fulfillment.infrastructure.settings import redis_url

router = APIRouter()


@router.get("/health/live")
def live() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/ready")
def ready(response: Response) -> dict[str, object]:
    checks = {"database": ping_database(timeout_seconds=1.0)}
    if redis_url() is not None:
        checks["redis"] = ping_redis(timeout_seconds=1.0)

    if all(checks.values()):
        return {"status": "ok", "checks": checks}

    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"status": "unavailable", "checks": checks}
