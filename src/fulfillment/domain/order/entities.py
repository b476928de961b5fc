from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import datetime

from fulfillment.domain.common.actors import ActorRole
from fulfillment.domain.common.errors import IneligibleOrderStateError, ValidationError
from fulfillment.domain.common.ids import MenuItemId, OrderId
from fulfillment.domain.common.money import Money
from fulfillment.domain.order.state_machine import (
    TRANSITIONS,
    DeliveryPaymentPolicy,
    ensure_transition_allowed,
    is_valid_path,
)
from fulfillment.domain.order.status import (
    SETTLED_PAYMENT_STATUSES,
    TERMINAL_STATUSES,
    FulfillmentType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from fulfillment.domain.payment.entities import PaymentRecord
from fulfillment.domain.staff.entities import StaffAssignment, StaffRole

_PHONE_PATTERN = re.compile(r"^\+?[0-9]{10,15}$")
_EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")


@dataclass(frozen=True)
class OrderItem:
    menu_item_id: MenuItemId
    name: str
    unit_price: Money
    quantity: int

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValidationError(
                "quantity must be >= 1",
                details={"menuItemId": str(self.menu_item_id), "quantity": self.quantity},
            )
        if not self.name.strip():
            raise ValidationError("item name must be non-empty")

    @property
    def line_total(self) -> Money:
        return self.unit_price.times(self.quantity)


@dataclass(frozen=True)
class CustomerSnapshot:
    name: str
    phone: str
    email: str
    fulfillment: FulfillmentType
    address: str | None = None
    city: str | None = None
    area: str | None = None
    building: str | None = None
    floor: str | None = None
    additional_info: str | None = None

    def __post_init__(self) -> None:
        errors: dict[str, str] = {}
        if not self.name.strip():
            errors["name"] = "name is required"
        phone = re.sub(r"\s", "", self.phone)
        if not phone:
            errors["phone"] = "phone number is required"
        elif not _PHONE_PATTERN.match(phone):
            errors["phone"] = "invalid phone number"
        if not self.email.strip():
            errors["email"] = "email is required"
        elif not _EMAIL_PATTERN.search(self.email):
            errors["email"] = "invalid email"
        if self.fulfillment == FulfillmentType.DELIVERY:
            if not (self.address or "").strip() and not (self.area or "").strip():
                errors["address"] = "delivery address is required"
        if errors:
            raise ValidationError("invalid customer details", details=errors)


@dataclass(frozen=True)
class StatusChange:
    status: OrderStatus
    changed_at: datetime
    actor_role: ActorRole
    notes: str | None = None
    override: bool = False


@dataclass(frozen=True)
class Order:
    order_id: OrderId
    items: tuple[OrderItem, ...]
    total: Money
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    customer: CustomerSnapshot
    created_at: datetime
    status_history: tuple[StatusChange, ...]
    customer_id: str | None = None
    chef: StaffAssignment | None = None
    delivery: StaffAssignment | None = None
    payment_reference: str | None = None
    payment: PaymentRecord | None = None
    version: int = 1
    idempotency_key: str | None = None
    idempotency_hash: str | None = None

    def __post_init__(self) -> None:
        if not self.items:
            raise ValidationError("order must contain at least one item")
        currency = self.items[0].unit_price.currency
        if any(item.unit_price.currency != currency for item in self.items):
            raise ValidationError("all items must share one currency")
        if self.total.currency != currency:
            raise ValidationError("order total currency must match item currency")
        expected_total = sum(item.line_total.amount_cents for item in self.items)
        if self.total.amount_cents != expected_total:
            raise ValidationError("order total must equal sum of unit_price * quantity")

        if not self.status_history or self.status_history[-1].status != self.status:
            raise ValueError("status history must end with the current status")
        if not is_valid_path((entry.status, entry.override) for entry in self.status_history):
            raise ValueError("status history is not a valid lifecycle path")

        if self.chef is not None and self.chef.role != StaffRole.CHEF:
            raise ValueError("chef assignment must reference a chef")
        if self.delivery is not None and self.delivery.role != StaffRole.DELIVERY:
            raise ValueError("delivery assignment must reference a delivery worker")
        if self.payment_status in SETTLED_PAYMENT_STATUSES and self.payment is None:
            raise ValueError(f"payment status {self.payment_status.value} needs a payment record")
        if self.payment is not None and self.payment.order_id != self.order_id:
            raise ValueError("payment record belongs to another order")
        if self.version < 1:
            raise ValueError("version must be >= 1")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(
        self,
        target: OrderStatus,
        *,
        actor_role: ActorRole,
        now: datetime,
        policy: DeliveryPaymentPolicy = DeliveryPaymentPolicy.STRICT,
        notes: str | None = None,
        override: bool = False,
    ) -> Order:
        if target == self.status:
            return self
        ensure_transition_allowed(
            self,
            target,
            actor_role=actor_role,
            policy=policy,
            override=override,
        )
        change = StatusChange(
            status=target,
            changed_at=now,
            actor_role=actor_role,
            notes=notes,
            override=override and target not in TRANSITIONS[self.status],
        )
        return replace(self, status=target, status_history=self.status_history + (change,))

    def ensure_assignable(self) -> None:
        if self.is_terminal:
            raise IneligibleOrderStateError(
                f"cannot assign staff to order in status={self.status.value}",
                details={"orderId": str(self.order_id), "status": self.status.value},
            )

    def assign(self, assignment: StaffAssignment) -> Order:
        self.ensure_assignable()
        if assignment.role == StaffRole.CHEF:
            return replace(self, chef=assignment)
        return replace(self, delivery=assignment)

    def ensure_payable(self) -> None:
        if self.status == OrderStatus.CANCELLED:
            raise IneligibleOrderStateError(
                "cannot take payment for a cancelled order",
                details={"orderId": str(self.order_id), "status": self.status.value},
            )
        if self.payment_status in SETTLED_PAYMENT_STATUSES:
            raise IneligibleOrderStateError(
                f"payment already {self.payment_status.value}",
                details={"orderId": str(self.order_id), "paymentStatus": self.payment_status.value},
            )

    def await_payment(self, reference: str | None) -> Order:
        self.ensure_payable()
        return replace(
            self,
            payment_status=PaymentStatus.PENDING_CONFIRMATION,
            payment_reference=reference,
        )

    def settle_payment(self, record: PaymentRecord) -> Order:
        self.ensure_payable()
        if record.method != self.payment_method:
            raise ValidationError(
                f"order is paid by {self.payment_method.value}, not {record.method.value}",
            )
        if record.amount != self.total:
            raise ValidationError("payment amount must equal the order total")
        return replace(
            self,
            payment_status=PaymentStatus.COMPLETED,
            payment=record,
            payment_reference=record.external_reference,
        )

    def fail_payment(self) -> Order:
        self.ensure_payable()
        if self.payment_status == PaymentStatus.FAILED:
            return self
        return replace(self, payment_status=PaymentStatus.FAILED)

    def refund_payment(self, now: datetime) -> Order:
        if self.payment_status != PaymentStatus.COMPLETED or self.payment is None:
            raise IneligibleOrderStateError(
                f"cannot refund a payment in status={self.payment_status.value}",
                details={"orderId": str(self.order_id), "paymentStatus": self.payment_status.value},
            )
        if self.status != OrderStatus.CANCELLED:
            raise IneligibleOrderStateError(
                "only cancelled orders can be refunded",
                details={"orderId": str(self.order_id), "status": self.status.value},
            )
        return replace(
            self,
            payment_status=PaymentStatus.REFUNDED,
            payment=self.payment.refunded(now),
        )


def create_pending_order(
    order_id: OrderId,
    items: list[OrderItem],
    customer: CustomerSnapshot,
    payment_method: PaymentMethod,
    now: datetime,
    actor_role: ActorRole = ActorRole.CUSTOMER,
    customer_id: str | None = None,
    idempotency_key: str | None = None,
    idempotency_hash: str | None = None,
) -> Order:
    if not items:
        raise ValidationError("order must contain at least one item")

    currency = items[0].unit_price.currency
    total = Money.zero(currency)
    for item in items:
        total = total.plus(item.line_total)
    return Order(
        order_id=order_id,
        items=tuple(items),
        total=total,
        status=OrderStatus.PENDING,
        payment_method=payment_method,
        payment_status=PaymentStatus.UNPAID,
        customer=customer,
        created_at=now,
        status_history=(StatusChange(status=OrderStatus.PENDING, changed_at=now, actor_role=actor_role),),
        customer_id=customer_id,
        idempotency_key=idempotency_key,
        idempotency_hash=idempotency_hash,
    )
