from __future__ import annotations

from typing import Protocol


class EventPublisher(Protocol):
    """Fire-and-forget delivery of serialized order events.

    Channels are named ``events:<order_id>``.
    """

    def publish(self, channel: str, message: str) -> None: ...
