from __future__ import annotations

import logging
from functools import lru_cache

import redis

from fulfillment.application.ports.publisher import EventPublisher
from fulfillment.infrastructure.settings import redis_url

logger = logging.getLogger(__name__)


@lru_cache(maxsize=8)
def _build_client(url: str, timeout_seconds: float) -> redis.Redis:
    return redis.Redis.from_url(
        url,
        socket_connect_timeout=timeout_seconds,
        socket_timeout=timeout_seconds,
    )


def get_redis_client(timeout_seconds: float = 1.0) -> redis.Redis | None:
    url = redis_url()
    if url is None:
        return None
    return _build_client(url, timeout_seconds)


def ping_redis(timeout_seconds: float = 1.0) -> bool:
    client = get_redis_client(timeout_seconds)
    if client is None:
        return False
    try:
        return bool(client.ping())
    except redis.RedisError:
        return False


class RedisEventPublisher(EventPublisher):
    """Publishes to Redis pub/sub; a deployment without REDIS_URL drops events."""

    def __init__(self, timeout_seconds: float = 1.0) -> None:
        self._timeout_seconds = timeout_seconds

    def publish(self, channel: str, message: str) -> None:
        client = get_redis_client(timeout_seconds=self._timeout_seconds)
        if client is None:
            logger.debug("event_publish_skipped", extra={"channel": channel})
            return
        client.publish(channel, message)
