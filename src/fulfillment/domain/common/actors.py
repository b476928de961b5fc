from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ActorRole(str, Enum):
    CUSTOMER = "customer"
    CASHIER = "cashier"
    CHEF = "chef"
    DELIVERY = "delivery"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    role: ActorRole
    actor_id: str | None = None
