from __future__ import annotations

from typing import NewType

OrderId = NewType("OrderId", str)
MenuItemId = NewType("MenuItemId", str)
StaffId = NewType("StaffId", str)
PaymentRecordId = NewType("PaymentRecordId", str)
