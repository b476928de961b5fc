from __future__ import annotations

from fulfillment.application.dto.responses import (
    CustomerResponse,
    MoneyResponse,
    OrderItemResponse,
    OrderResponse,
    PaymentRecordResponse,
    StaffAssignmentResponse,
    StatusChangeResponse,
)
from fulfillment.domain.common.money import Money
from fulfillment.domain.order.entities import Order
from fulfillment.domain.payment.entities import PaymentRecord
from fulfillment.domain.staff.entities import StaffAssignment


def to_money_response(money: Money) -> MoneyResponse:
    return MoneyResponse(amountCents=money.amount_cents, currency=money.currency)


def _to_assignment_response(assignment: StaffAssignment | None) -> StaffAssignmentResponse | None:
    if assignment is None:
        return None
    return StaffAssignmentResponse(
        staffId=str(assignment.staff_id),
        name=assignment.staff_name,
        role=assignment.role.value,
        assignedAt=assignment.assigned_at,
        notes=assignment.notes,
    )


def to_payment_record_response(record: PaymentRecord | None) -> PaymentRecordResponse | None:
    if record is None:
        return None
    return PaymentRecordResponse(
        recordId=str(record.record_id),
        method=record.method.value,
        amount=to_money_response(record.amount),
        confirmedAt=record.confirmed_at,
        externalReference=record.external_reference,
        amountReceived=to_money_response(record.amount_received) if record.amount_received else None,
        change=to_money_response(record.change) if record.change else None,
        refundedAt=record.refunded_at,
    )


def to_order_response(order: Order) -> OrderResponse:
    customer = order.customer
    return OrderResponse(
        orderId=str(order.order_id),
        status=order.status.value,
        paymentMethod=order.payment_method.value,
        paymentStatus=order.payment_status.value,
        items=[
            OrderItemResponse(
                menuItemId=str(item.menu_item_id),
                name=item.name,
                unitPrice=to_money_response(item.unit_price),
                quantity=item.quantity,
                lineTotal=to_money_response(item.line_total),
            )
            for item in order.items
        ],
        totalAmount=to_money_response(order.total),
        customer=CustomerResponse(
            name=customer.name,
            phone=customer.phone,
            email=customer.email,
            fulfillment=customer.fulfillment.value,
            address=customer.address,
            city=customer.city,
            area=customer.area,
            building=customer.building,
            floor=customer.floor,
            additionalInfo=customer.additional_info,
        ),
        customerId=order.customer_id,
        assignedChef=_to_assignment_response(order.chef),
        assignedDelivery=_to_assignment_response(order.delivery),
        payment=to_payment_record_response(order.payment),
        statusHistory=[
            StatusChangeResponse(
                status=entry.status.value,
                changedAt=entry.changed_at,
                actorRole=entry.actor_role.value,
                notes=entry.notes,
                override=entry.override,
            )
            for entry in order.status_history
        ],
        createdAt=order.created_at,
        version=order.version,
    )
