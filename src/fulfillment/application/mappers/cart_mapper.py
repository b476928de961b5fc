from __future__ import annotations

from fulfillment.application.dto.requests import (
    CreateOrderRequest,
    CustomerRequest,
    OrderItemRequest,
)
from fulfillment.domain.cart.store import CartStore
from fulfillment.domain.order.status import PaymentMethod


def to_create_order_request(
    cart: CartStore,
    customer: CustomerRequest,
    payment_method: PaymentMethod,
) -> CreateOrderRequest:
    return CreateOrderRequest(
        items=[
            OrderItemRequest(
                menu_item_id=str(line.menu_item_id),
                name=line.name,
                unit_price_cents=line.unit_price.amount_cents,
                quantity=line.quantity,
            )
            for line in cart.lines
        ],
        customer=customer,
        payment_method=payment_method,
        currency=cart.total().currency,
    )
