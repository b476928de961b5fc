from __future__ import annotations

from fastapi import Header
from opentelemetry import trace

from fulfillment.api.middleware.request_id import get_request_id
from fulfillment.application.use_cases.common import TraceContext
from fulfillment.domain.common.actors import Actor, ActorRole
from fulfillment.domain.common.errors import FulfillmentError


class UnknownActorRoleError(FulfillmentError):
    pass


def get_actor(
    x_actor_role: str | None = Header(default=None),
    x_actor_id: str | None = Header(default=None),
) -> Actor:
    """Identity asserted by the auth layer in front of the service."""
    if not x_actor_role:
        return Actor(role=ActorRole.CUSTOMER, actor_id=x_actor_id or None)
    try:
        role = ActorRole(x_actor_role.strip().lower())
    except ValueError as exc:
        raise UnknownActorRoleError(
            f"unknown actor role: {x_actor_role}",
            details={"allowed": [role.value for role in ActorRole]},
        ) from exc
    return Actor(role=role, actor_id=x_actor_id or None)


def current_trace_context() -> TraceContext:
    span_context = trace.get_current_span().get_span_context()
    trace_id = format(span_context.trace_id, "032x") if span_context.is_valid else None
    return TraceContext(trace_id=trace_id, request_id=get_request_id())
