from __future__ import annotations

from collections import Counter, defaultdict
from datetime import date, datetime

from fulfillment.application.dto.responses import (
    ChefPerformanceResponse,
    ChefReportSummaryResponse,
    DailyDeliveryResponse,
    DeliveryPerformanceResponse,
    DeliveryReportSummaryResponse,
    StaffReportResponse,
    StaffSummaryResponse,
)
from fulfillment.application.mappers.order_mapper import to_money_response
from fulfillment.application.ports.repositories import OrderRepository, StaffRepository
from fulfillment.application.use_cases.staff_dispatch import StaffNotFoundError
from fulfillment.domain.common.actors import Actor, ActorRole
from fulfillment.domain.common.errors import PermissionDeniedError, ValidationError
from fulfillment.domain.common.ids import StaffId
from fulfillment.domain.common.money import Money
from fulfillment.domain.order.entities import Order
from fulfillment.domain.order.status import OrderStatus
from fulfillment.domain.staff.entities import StaffRole

REPORT_ROLES = frozenset({ActorRole.ADMIN})


def _ensure_range(start: datetime, end: datetime) -> None:
    if start >= end:
        raise ValidationError(
            "report start must be before end",
            details={"start": start.isoformat(), "end": end.isoformat()},
        )


def _entered_at(order: Order, status: OrderStatus) -> datetime | None:
    for entry in order.status_history:
        if entry.status == status:
            return entry.changed_at
    return None


def _average_minutes(orders: list[Order], start: OrderStatus, end: OrderStatus) -> float | None:
    durations = []
    for order in orders:
        started, finished = _entered_at(order, start), _entered_at(order, end)
        if started is not None and finished is not None:
            durations.append((finished - started).total_seconds() / 60)
    if not durations:
        return None
    return round(sum(durations) / len(durations), 1)


def _sum_totals(orders: list[Order], currency: str) -> Money:
    total = Money.zero(orders[0].total.currency if orders else currency)
    for order in orders:
        total = total.plus(order.total)
    return total


class StaffPerformanceSummary:
    """Per-member totals over delivered orders created in ``[start, end)``."""

    def __init__(
        self,
        order_repository: OrderRepository,
        staff_repository: StaffRepository,
        default_currency: str = "ETB",
    ) -> None:
        self._order_repository = order_repository
        self._staff_repository = staff_repository
        self._default_currency = default_currency

    def execute(self, start: datetime, end: datetime, actor: Actor) -> StaffSummaryResponse:
        if actor.role not in REPORT_ROLES:
            raise PermissionDeniedError(
                f"role {actor.role.value} may not view staff reports",
                details={"role": actor.role.value},
            )
        _ensure_range(start, end)

        cooked: dict[StaffId, list[Order]] = defaultdict(list)
        for order in self._order_repository.list_delivered_for_staff(StaffRole.CHEF, None, start, end):
            cooked[order.chef.staff_id].append(order)
        delivered: dict[StaffId, list[Order]] = defaultdict(list)
        for order in self._order_repository.list_delivered_for_staff(StaffRole.DELIVERY, None, start, end):
            delivered[order.delivery.staff_id].append(order)

        chefs = {
            member.staff_id: member.name for member in self._staff_repository.list_by_role(StaffRole.CHEF)
        }
        for staff_id, orders in cooked.items():
            chefs.setdefault(staff_id, orders[0].chef.staff_name)
        couriers = {
            member.staff_id: member.name for member in self._staff_repository.list_by_role(StaffRole.DELIVERY)
        }
        for staff_id, orders in delivered.items():
            couriers.setdefault(staff_id, orders[0].delivery.staff_name)

        return StaffSummaryResponse(
            start=start,
            end=end,
            chefPerformance=[
                ChefPerformanceResponse(
                    chefId=str(staff_id),
                    name=name,
                    totalOrders=len(cooked[staff_id]),
                    totalItemsCooked=sum(item.quantity for order in cooked[staff_id] for item in order.items),
                )
                for staff_id, name in sorted(chefs.items())
            ],
            deliveryPerformance=[
                DeliveryPerformanceResponse(
                    deliveryId=str(staff_id),
                    name=name,
                    totalDeliveries=len(delivered[staff_id]),
                    totalAmount=to_money_response(_sum_totals(delivered[staff_id], self._default_currency)),
                )
                for staff_id, name in sorted(couriers.items())
            ],
        )


class StaffReport:
    def __init__(
        self,
        order_repository: OrderRepository,
        staff_repository: StaffRepository,
        default_currency: str = "ETB",
    ) -> None:
        self._order_repository = order_repository
        self._staff_repository = staff_repository
        self._default_currency = default_currency

    def execute(self, staff_id: StaffId, start: datetime, end: datetime, actor: Actor) -> StaffReportResponse:
        if actor.role not in REPORT_ROLES and actor.actor_id != str(staff_id):
            raise PermissionDeniedError(
                f"role {actor.role.value} may only view their own report",
                details={"role": actor.role.value},
            )
        _ensure_range(start, end)
        member = self._staff_repository.get(staff_id)
        if member is None:
            raise StaffNotFoundError(f"staff member {staff_id} not found", details={"staffId": str(staff_id)})

        orders = self._order_repository.list_delivered_for_staff(member.role, staff_id, start, end)
        response = StaffReportResponse(
            staffId=str(member.staff_id),
            name=member.name,
            role=member.role.value,
            start=start,
            end=end,
        )
        if member.role == StaffRole.CHEF:
            items: Counter[str] = Counter()
            for order in orders:
                for item in order.items:
                    items[item.name] += item.quantity
            response.chefSummary = ChefReportSummaryResponse(
                totalOrders=len(orders),
                totalItemsCooked=sum(items.values()),
                averageCookingTime=_average_minutes(orders, OrderStatus.PREPARING, OrderStatus.READY),
            )
            response.itemsBreakdown = dict(items.most_common())
            return response

        by_day: dict[date, list[Order]] = defaultdict(list)
        for order in orders:
            delivered_at = _entered_at(order, OrderStatus.DELIVERED) or order.created_at
            by_day[delivered_at.date()].append(order)
        response.deliverySummary = DeliveryReportSummaryResponse(
            totalDeliveries=len(orders),
            totalAmount=to_money_response(_sum_totals(orders, self._default_currency)),
            averageDeliveryTime=_average_minutes(orders, OrderStatus.READY, OrderStatus.DELIVERED),
        )
        response.dailyBreakdown = [
            DailyDeliveryResponse(
                day=day,
                deliveries=len(day_orders),
                amount=to_money_response(_sum_totals(day_orders, self._default_currency)),
            )
            for day, day_orders in sorted(by_day.items())
        ]
        return response
