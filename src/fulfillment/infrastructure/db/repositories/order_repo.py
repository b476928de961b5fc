from __future__ import annotations

import base64
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Engine, and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from fulfillment.application.ports.repositories import (
    IdempotencyReplayMismatchError,
    InvalidCursorError,
    OptimisticConcurrencyError,
    OrderRepository,
)
from fulfillment.domain.common.actors import ActorRole
from fulfillment.domain.common.ids import MenuItemId, OrderId, PaymentRecordId, StaffId
from fulfillment.domain.common.money import Money
from fulfillment.domain.order.entities import CustomerSnapshot, Order, OrderItem, StatusChange
from fulfillment.domain.order.status import (
    TERMINAL_STATUSES,
    FulfillmentType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from fulfillment.domain.payment.entities import PaymentRecord
from fulfillment.domain.staff.entities import StaffAssignment, StaffRole
from fulfillment.infrastructure.db.models.order import (
    OrderItemModel,
    OrderModel,
    OrderStatusHistoryModel,
    PaymentRecordModel,
)
from fulfillment.infrastructure.db.session import get_engine

_LOAD_OPTIONS = (
    selectinload(OrderModel.items),
    selectinload(OrderModel.history),
    selectinload(OrderModel.payment),
)


def _utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlAlchemyOrderRepository(OrderRepository):
    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine or get_engine()

    def add(self, order: Order) -> None:
        order_model = self._to_model(order)
        with Session(self._engine) as session:
            session.add(order_model)
            session.commit()

    def get(self, order_id: OrderId) -> Order | None:
        statement = select(OrderModel).options(*_LOAD_OPTIONS).where(OrderModel.id == str(order_id)).limit(1)
        with Session(self._engine) as session:
            model = session.execute(statement).scalar_one_or_none()
            if model is None:
                return None
            return self._to_domain(model)

    def add_with_idempotency(
        self,
        order: Order,
        key: str,
        payload_hash: str,
    ) -> Order:
        statement = (
            select(OrderModel)
            .options(*_LOAD_OPTIONS)
            .where(OrderModel.idempotency_key == key)
            .limit(1)
        )

        with Session(self._engine) as session:
            existing = session.execute(statement).scalar_one_or_none()
            if existing is not None:
                if existing.idempotency_hash != payload_hash:
                    raise IdempotencyReplayMismatchError(
                        f"idempotency key replay with different payload: {key}"
                    )
                return self._to_domain(existing)

            model = self._to_model(order)
            model.idempotency_key = key
            model.idempotency_hash = payload_hash
            session.add(model)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                existing = session.execute(statement).scalar_one_or_none()
                if existing is None:
                    raise
                if existing.idempotency_hash != payload_hash:
                    raise IdempotencyReplayMismatchError(
                        f"idempotency key replay with different payload: {key}"
                    )
                return self._to_domain(existing)

        created = self.get(order.order_id)
        if created is None:
            raise RuntimeError("created order not found")
        return created

    def save(self, order: Order, expected_version: int) -> Order:
        statement = (
            update(OrderModel)
            .where(
                OrderModel.id == str(order.order_id),
                OrderModel.version == expected_version,
            )
            .values(**_mutable_columns(order), version=expected_version + 1)
        )
        with Session(self._engine) as session:
            result = session.execute(statement)
            if result.rowcount != 1:
                session.rollback()
                raise OptimisticConcurrencyError(f"order {order.order_id} version conflict")

            stored_entries = session.scalar(
                select(func.count())
                .select_from(OrderStatusHistoryModel)
                .where(OrderStatusHistoryModel.order_id == str(order.order_id))
            )
            for seq, entry in enumerate(order.status_history[stored_entries:], start=stored_entries):
                session.add(_history_model(order.order_id, seq, entry))
            if order.payment is not None:
                session.merge(_payment_model(order.payment))
            session.commit()

        updated = self.get(order.order_id)
        if updated is None:
            raise RuntimeError(f"order {order.order_id} not found after update")
        return updated

    def list_orders(
        self,
        status: OrderStatus | None,
        customer_id: str | None,
        limit: int,
        cursor: str | None,
    ) -> tuple[list[Order], str | None]:
        statement = select(OrderModel).options(*_LOAD_OPTIONS)
        if status is not None:
            statement = statement.where(OrderModel.status == status.value)
        if customer_id is not None:
            statement = statement.where(OrderModel.customer_id == customer_id)

        cursor_parts = _decode_cursor(cursor) if cursor else None
        if cursor_parts is not None:
            cursor_created_at, cursor_order_id = cursor_parts
            statement = statement.where(
                or_(
                    OrderModel.created_at < cursor_created_at,
                    and_(
                        OrderModel.created_at == cursor_created_at,
                        OrderModel.id < cursor_order_id,
                    ),
                )
            )

        statement = statement.order_by(OrderModel.created_at.desc(), OrderModel.id.desc()).limit(
            limit + 1
        )

        with Session(self._engine) as session:
            models = list(session.execute(statement).scalars().all())
            has_more = len(models) > limit
            page_models = models[:limit]
            orders = [self._to_domain(model) for model in page_models]

        next_cursor: str | None = None
        if has_more and orders:
            last = orders[-1]
            next_cursor = _encode_cursor(last.created_at, str(last.order_id))
        return orders, next_cursor

    def count_active_assignments(self, role: StaffRole) -> dict[StaffId, int]:
        column = OrderModel.chef_id if role == StaffRole.CHEF else OrderModel.delivery_id
        statement = (
            select(column, func.count())
            .where(
                column.is_not(None),
                OrderModel.status.not_in([status.value for status in TERMINAL_STATUSES]),
            )
            .group_by(column)
        )
        with Session(self._engine) as session:
            rows = session.execute(statement).all()
        return {StaffId(staff_id): count for staff_id, count in rows}

    def list_delivered_for_staff(
        self,
        role: StaffRole,
        staff_id: StaffId | None,
        start: datetime,
        end: datetime,
    ) -> list[Order]:
        column = OrderModel.chef_id if role == StaffRole.CHEF else OrderModel.delivery_id
        statement = (
            select(OrderModel)
            .options(*_LOAD_OPTIONS)
            .where(
                OrderModel.status == OrderStatus.DELIVERED.value,
                column.is_not(None),
                OrderModel.created_at >= start,
                OrderModel.created_at < end,
            )
            .order_by(OrderModel.created_at, OrderModel.id)
        )
        if staff_id is not None:
            statement = statement.where(column == str(staff_id))

        with Session(self._engine) as session:
            return [self._to_domain(model) for model in session.execute(statement).scalars().all()]

    def _to_model(self, order: Order) -> OrderModel:
        order_model = OrderModel(
            id=str(order.order_id),
            created_at=order.created_at,
            version=order.version,
            total_cents=order.total.amount_cents,
            currency=order.total.currency,
            payment_method=order.payment_method.value,
            idempotency_key=order.idempotency_key,
            idempotency_hash=order.idempotency_hash,
            customer_id=order.customer_id,
            customer_name=order.customer.name,
            customer_phone=order.customer.phone,
            customer_email=order.customer.email,
            fulfillment_type=order.customer.fulfillment.value,
            address=order.customer.address,
            city=order.customer.city,
            area=order.customer.area,
            building=order.customer.building,
            floor=order.customer.floor,
            additional_info=order.customer.additional_info,
            **_mutable_columns(order),
        )
        order_model.items = [
            OrderItemModel(
                position=position,
                menu_item_id=str(item.menu_item_id),
                name=item.name,
                quantity=item.quantity,
                unit_price_cents=item.unit_price.amount_cents,
                currency=item.unit_price.currency,
            )
            for position, item in enumerate(order.items)
        ]
        order_model.history = [
            _history_model(order.order_id, seq, entry) for seq, entry in enumerate(order.status_history)
        ]
        if order.payment is not None:
            order_model.payment = _payment_model(order.payment)
        return order_model

    def _to_domain(self, model: OrderModel) -> Order:
        items = tuple(
            OrderItem(
                menu_item_id=MenuItemId(item.menu_item_id),
                name=item.name,
                unit_price=Money(amount_cents=item.unit_price_cents, currency=item.currency),
                quantity=item.quantity,
            )
            for item in model.items
        )
        history = tuple(
            StatusChange(
                status=OrderStatus(entry.status),
                changed_at=_utc(entry.changed_at),
                actor_role=ActorRole(entry.actor_role),
                notes=entry.notes,
                override=entry.override,
            )
            for entry in model.history
        )
        return Order(
            order_id=OrderId(model.id),
            items=items,
            total=Money(amount_cents=model.total_cents, currency=model.currency),
            status=OrderStatus(model.status),
            payment_method=PaymentMethod(model.payment_method),
            payment_status=PaymentStatus(model.payment_status),
            customer=CustomerSnapshot(
                name=model.customer_name,
                phone=model.customer_phone,
                email=model.customer_email,
                fulfillment=FulfillmentType(model.fulfillment_type),
                address=model.address,
                city=model.city,
                area=model.area,
                building=model.building,
                floor=model.floor,
                additional_info=model.additional_info,
            ),
            created_at=_utc(model.created_at),
            status_history=history,
            customer_id=model.customer_id,
            chef=_assignment(
                StaffRole.CHEF,
                model.chef_id,
                model.chef_name,
                model.chef_assigned_at,
                model.chef_notes,
            ),
            delivery=_assignment(
                StaffRole.DELIVERY,
                model.delivery_id,
                model.delivery_name,
                model.delivery_assigned_at,
                model.delivery_notes,
            ),
            payment_reference=model.payment_reference,
            payment=_payment_record(model.payment) if model.payment is not None else None,
            version=model.version,
            idempotency_key=model.idempotency_key,
            idempotency_hash=model.idempotency_hash,
        )


def _mutable_columns(order: Order) -> dict[str, Any]:
    chef, delivery = order.chef, order.delivery
    return {
        "status": order.status.value,
        "payment_status": order.payment_status.value,
        "payment_reference": order.payment_reference,
        "chef_id": str(chef.staff_id) if chef else None,
        "chef_name": chef.staff_name if chef else None,
        "chef_assigned_at": chef.assigned_at if chef else None,
        "chef_notes": chef.notes if chef else None,
        "delivery_id": str(delivery.staff_id) if delivery else None,
        "delivery_name": delivery.staff_name if delivery else None,
        "delivery_assigned_at": delivery.assigned_at if delivery else None,
        "delivery_notes": delivery.notes if delivery else None,
    }


def _history_model(order_id: OrderId, seq: int, entry: StatusChange) -> OrderStatusHistoryModel:
    return OrderStatusHistoryModel(
        order_id=str(order_id),
        seq=seq,
        status=entry.status.value,
        changed_at=entry.changed_at,
        actor_role=entry.actor_role.value,
        notes=entry.notes,
        override=entry.override,
    )


def _payment_model(record: PaymentRecord) -> PaymentRecordModel:
    return PaymentRecordModel(
        id=str(record.record_id),
        order_id=str(record.order_id),
        method=record.method.value,
        amount_cents=record.amount.amount_cents,
        currency=record.amount.currency,
        external_reference=record.external_reference,
        amount_received_cents=record.amount_received.amount_cents if record.amount_received else None,
        change_cents=record.change.amount_cents if record.change else None,
        confirmed_at=record.confirmed_at,
        refunded_at=record.refunded_at,
    )


def _payment_record(model: PaymentRecordModel) -> PaymentRecord:
    def money(cents: int | None) -> Money | None:
        return Money(amount_cents=cents, currency=model.currency) if cents is not None else None

    return PaymentRecord(
        record_id=PaymentRecordId(model.id),
        order_id=OrderId(model.order_id),
        method=PaymentMethod(model.method),
        amount=Money(amount_cents=model.amount_cents, currency=model.currency),
        confirmed_at=_utc(model.confirmed_at),
        external_reference=model.external_reference,
        amount_received=money(model.amount_received_cents),
        change=money(model.change_cents),
        refunded_at=_utc(model.refunded_at),
    )


def _assignment(
    role: StaffRole,
    staff_id: str | None,
    name: str | None,
    assigned_at: datetime | None,
    notes: str | None,
) -> StaffAssignment | None:
    if staff_id is None:
        return None
    return StaffAssignment(
        staff_id=StaffId(staff_id),
        staff_name=name or "",
        role=role,
        assigned_at=_utc(assigned_at),
        notes=notes,
    )


def _encode_cursor(created_at: datetime, order_id: str) -> str:
    payload = f"{created_at.isoformat()}|{order_id}"
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def _decode_cursor(cursor: str) -> tuple[datetime, str]:
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
        created_at_raw, order_id = raw.split("|", 1)
        created_at = datetime.fromisoformat(created_at_raw)
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return created_at, order_id
    except Exception as exc:
        raise InvalidCursorError("invalid cursor") from exc
