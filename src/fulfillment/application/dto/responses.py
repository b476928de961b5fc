from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


class MoneyResponse(BaseModel):
    amountCents: int
    currency: str


class OrderItemResponse(BaseModel):
    menuItemId: str
    name: str
    unitPrice: MoneyResponse
    quantity: int
    lineTotal: MoneyResponse


class CustomerResponse(BaseModel):
    name: str
    phone: str
    email: str
    fulfillment: str
    address: str | None = None
    city: str | None = None
    area: str | None = None
    building: str | None = None
    floor: str | None = None
    additionalInfo: str | None = None


class StaffAssignmentResponse(BaseModel):
    staffId: str
    name: str
    role: str
    assignedAt: datetime
    notes: str | None = None


class StatusChangeResponse(BaseModel):
    status: str
    changedAt: datetime
    actorRole: str
    notes: str | None = None
    override: bool = False


class PaymentRecordResponse(BaseModel):
    recordId: str
    method: str
    amount: MoneyResponse
    confirmedAt: datetime
    externalReference: str | None = None
    amountReceived: MoneyResponse | None = None
    change: MoneyResponse | None = None
    refundedAt: datetime | None = None


class OrderResponse(BaseModel):
    orderId: str
    status: str
    paymentMethod: str
    paymentStatus: str
    items: list[OrderItemResponse] = Field(default_factory=list)
    totalAmount: MoneyResponse
    customer: CustomerResponse
    customerId: str | None = None
    assignedChef: StaffAssignmentResponse | None = None
    assignedDelivery: StaffAssignmentResponse | None = None
    payment: PaymentRecordResponse | None = None
    statusHistory: list[StatusChangeResponse] = Field(default_factory=list)
    createdAt: datetime
    version: int


class OrderListResponse(BaseModel):
    orders: list[OrderResponse] = Field(default_factory=list)
    nextCursor: str | None = None


class MobileMoneyInstructionsResponse(BaseModel):
    provider: str
    recipient: str
    amount: MoneyResponse
    reference: str
    steps: list[str] = Field(default_factory=list)


class PaymentInitiationResponse(BaseModel):
    order: OrderResponse
    method: str
    clientSecret: str | None = None
    paymentIntentId: str | None = None
    instructions: MobileMoneyInstructionsResponse | None = None


class PaymentConfirmationResponse(BaseModel):
    order: OrderResponse
    succeeded: bool
    payment: PaymentRecordResponse | None = None
    change: MoneyResponse | None = None
    failureReason: str | None = None


class StaffMemberResponse(BaseModel):
    staffId: str
    name: str
    role: str
    isActive: bool
    activeAssignments: int
    available: bool


class StaffListResponse(BaseModel):
    role: str
    staff: list[StaffMemberResponse] = Field(default_factory=list)


class ChefPerformanceResponse(BaseModel):
    chefId: str
    name: str
    totalOrders: int
    totalItemsCooked: int


class DeliveryPerformanceResponse(BaseModel):
    deliveryId: str
    name: str
    totalDeliveries: int
    totalAmount: MoneyResponse


class StaffSummaryResponse(BaseModel):
    start: datetime
    end: datetime
    chefPerformance: list[ChefPerformanceResponse] = Field(default_factory=list)
    deliveryPerformance: list[DeliveryPerformanceResponse] = Field(default_factory=list)


class ChefReportSummaryResponse(BaseModel):
    totalOrders: int
    totalItemsCooked: int
    averageCookingTime: float | None = None


class DeliveryReportSummaryResponse(BaseModel):
    totalDeliveries: int
    totalAmount: MoneyResponse
    averageDeliveryTime: float | None = None


class DailyDeliveryResponse(BaseModel):
    day: date
    deliveries: int
    amount: MoneyResponse


class StaffReportResponse(BaseModel):
    staffId: str
    name: str
    role: str
    start: datetime
    end: datetime
    chefSummary: ChefReportSummaryResponse | None = None
    itemsBreakdown: dict[str, int] = Field(default_factory=dict)
    deliverySummary: DeliveryReportSummaryResponse | None = None
    dailyBreakdown: list[DailyDeliveryResponse] = Field(default_factory=list)
