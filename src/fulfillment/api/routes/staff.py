from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query

from fulfillment.api.dependencies import current_trace_context, get_actor
from fulfillment.application.dto.requests import AssignStaffRequest
from fulfillment.application.dto.responses import (
    OrderResponse,
    StaffListResponse,
    StaffReportResponse,
    StaffSummaryResponse,
)
from fulfillment.application.use_cases.staff_dispatch import AssignStaff, ListStaff, StaffDispatcher
from fulfillment.application.use_cases.staff_reports import StaffPerformanceSummary, StaffReport
from fulfillment.domain.common.actors import Actor
from fulfillment.domain.common.ids import OrderId, StaffId
from fulfillment.domain.staff.entities import StaffRole
from fulfillment.infrastructure.db.repositories.order_repo import SqlAlchemyOrderRepository
from fulfillment.infrastructure.db.repositories.staff_repo import SqlAlchemyStaffRepository
from fulfillment.infrastructure.messaging.redis_publisher import RedisEventPublisher
from fulfillment.infrastructure.settings import order_currency, staff_capacity_limit

router = APIRouter(prefix="/staff", tags=["staff"])

DEFAULT_REPORT_DAYS = 30


def _dispatcher(order_repository: SqlAlchemyOrderRepository) -> StaffDispatcher:
    return StaffDispatcher(
        staff_repository=SqlAlchemyStaffRepository(),
        order_repository=order_repository,
        capacity=staff_capacity_limit(),
    )


def _assign_staff_use_case() -> AssignStaff:
    order_repository = SqlAlchemyOrderRepository()
    return AssignStaff(
        order_repository=order_repository,
        dispatcher=_dispatcher(order_repository),
        publisher=RedisEventPublisher(),
    )


def _report_window(start: datetime | None, end: datetime | None) -> tuple[datetime, datetime]:
    end = end or datetime.now(timezone.utc)
    start = start or end - timedelta(days=DEFAULT_REPORT_DAYS)
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    return start, end


def _assign(order_id: str, role: StaffRole, request_dto: AssignStaffRequest, actor: Actor) -> OrderResponse:
    return _assign_staff_use_case().execute(
        order_id=OrderId(order_id),
        role=role,
        request_dto=request_dto,
        actor=actor,
        trace_ctx=current_trace_context(),
    )


@router.post("/assign-chef/{order_id}", response_model=OrderResponse)
def assign_chef(
    order_id: str,
    request_dto: AssignStaffRequest,
    actor: Actor = Depends(get_actor),
) -> OrderResponse:
    return _assign(order_id, StaffRole.CHEF, request_dto, actor)


@router.post("/assign-delivery/{order_id}", response_model=OrderResponse)
def assign_delivery(
    order_id: str,
    request_dto: AssignStaffRequest,
    actor: Actor = Depends(get_actor),
) -> OrderResponse:
    return _assign(order_id, StaffRole.DELIVERY, request_dto, actor)


@router.get("/reports/summary", response_model=StaffSummaryResponse)
def staff_summary(
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    actor: Actor = Depends(get_actor),
) -> StaffSummaryResponse:
    window_start, window_end = _report_window(start, end)
    return StaffPerformanceSummary(
        order_repository=SqlAlchemyOrderRepository(),
        staff_repository=SqlAlchemyStaffRepository(),
        default_currency=order_currency(),
    ).execute(start=window_start, end=window_end, actor=actor)


@router.get("/members/{staff_id}/report", response_model=StaffReportResponse)
def staff_report(
    staff_id: str,
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    actor: Actor = Depends(get_actor),
) -> StaffReportResponse:
    window_start, window_end = _report_window(start, end)
    return StaffReport(
        order_repository=SqlAlchemyOrderRepository(),
        staff_repository=SqlAlchemyStaffRepository(),
        default_currency=order_currency(),
    ).execute(staff_id=StaffId(staff_id), start=window_start, end=window_end, actor=actor)


@router.get("/{role}", response_model=StaffListResponse)
def list_staff(role: str, actor: Actor = Depends(get_actor)) -> StaffListResponse:
    return ListStaff(dispatcher=_dispatcher(SqlAlchemyOrderRepository())).execute(role=role, actor=actor)
