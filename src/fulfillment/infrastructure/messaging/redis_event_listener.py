from __future__ import annotations

import asyncio
import logging
from typing import Any

from redis import asyncio as redis_asyncio

from fulfillment.infrastructure.settings import redis_url

logger = logging.getLogger(__name__)

EVENT_PATTERN = "events:*"
MAX_BACKOFF_SECONDS = 5.0


def _text(value: bytes | str | None) -> str | None:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


async def _close(resource: Any) -> None:
    if resource is None:
        return
    closer = getattr(resource, "aclose", None) or resource.close
    await closer()


async def _relay(ws_manager: Any, message: dict[str, Any]) -> None:
    channel = _text(message.get("channel"))
    payload = _text(message.get("data"))
    if not channel or not payload:
        return
    order_id = channel.partition(":")[2]
    if not order_id:
        logger.warning("redis_fanout_invalid_channel", extra={"channel": channel})
        return
    await ws_manager.broadcast(order_id=order_id, message_json_str=payload)


async def start_redis_fanout(app_state: Any) -> None:
    """Relays committed order events from Redis to websocket subscribers until cancelled."""
    url = redis_url()
    if url is None:
        logger.warning("redis_fanout_not_started", extra={"reason": "REDIS_URL missing"})
        return

    backoff_seconds = 1.0
    while True:
        client = None
        pubsub = None
        try:
            client = redis_asyncio.from_url(url)
            pubsub = client.pubsub()
            await pubsub.psubscribe(EVENT_PATTERN)
            logger.info("redis_fanout_subscribed", extra={"pattern": EVENT_PATTERN})
            backoff_seconds = 1.0

            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None:
                    await asyncio.sleep(0.05)
                    continue
                await _relay(app_state.ws_manager, message)
        except asyncio.CancelledError:
            logger.info("redis_fanout_cancelled")
            raise
        except Exception:
            logger.exception("redis_fanout_error", extra={"backoff_seconds": backoff_seconds})
            await asyncio.sleep(backoff_seconds)
            backoff_seconds = min(backoff_seconds * 2, MAX_BACKOFF_SECONDS)
        finally:
            await _close(pubsub)
            await _close(client)
