from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from fulfillment.domain.order.status import FulfillmentType, OrderStatus, PaymentMethod


def _to_camel(value: str) -> str:
    parts = value.split("_")
    return parts[0] + "".join(part.capitalize() for part in parts[1:])


class CamelBaseModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,
    )


class OrderItemRequest(CamelBaseModel):
    menu_item_id: str
    name: str
    unit_price_cents: int
    quantity: int


class CustomerRequest(CamelBaseModel):
    name: str
    phone: str
    email: str
    fulfillment: FulfillmentType = FulfillmentType.DELIVERY
    address: str | None = None
    city: str | None = None
    area: str | None = None
    building: str | None = None
    floor: str | None = None
    additional_info: str | None = None


class CreateOrderRequest(CamelBaseModel):
    items: list[OrderItemRequest]
    customer: CustomerRequest
    payment_method: PaymentMethod
    currency: str | None = None


class UpdateStatusRequest(CamelBaseModel):
    status: OrderStatus
    notes: str | None = None
    staff_id: str | None = None


class CancelOrderRequest(CamelBaseModel):
    notes: str | None = None
    override: bool = False


class CreatePaymentIntentRequest(CamelBaseModel):
    order_id: str


class ConfirmCardPaymentRequest(CamelBaseModel):
    order_id: str
    payment_intent_id: str = Field(min_length=1)


class CashPaymentRequest(CamelBaseModel):
    amount_received: int = Field(description="amount handed over, in minor currency units")


class MobileMoneyConfirmRequest(CamelBaseModel):
    transaction_reference: str = Field(min_length=1)
    verified: bool = True


class RefundRequest(CamelBaseModel):
    reason: str | None = None


class AssignStaffRequest(CamelBaseModel):
    staff_id: str
    notes: str | None = None
    expected_version: int | None = None
