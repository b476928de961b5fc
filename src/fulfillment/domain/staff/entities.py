from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from fulfillment.domain.common.errors import ValidationError
from fulfillment.domain.common.ids import StaffId


class StaffRole(str, Enum):
    CHEF = "chef"
    DELIVERY = "delivery"


@dataclass(frozen=True)
class StaffMember:
    staff_id: StaffId
    name: str
    role: StaffRole
    is_active: bool = True
    phone: str | None = None

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValidationError("staff name must be non-empty")


@dataclass(frozen=True)
class StaffAssignment:
    staff_id: StaffId
    staff_name: str
    role: StaffRole
    assigned_at: datetime
    notes: str | None = None

    @classmethod
    def of(cls, member: StaffMember, now: datetime, notes: str | None = None) -> StaffAssignment:
        return cls(
            staff_id=member.staff_id,
            staff_name=member.name,
            role=member.role,
            assigned_at=now,
            notes=notes,
        )


@dataclass(frozen=True)
class StaffAvailability:
    """A staff member with the number of open orders they are assigned to.

    ``capacity`` is None when no cap is configured; availability is then a
    display hint only.
    """

    member: StaffMember
    active_assignments: int
    capacity: int | None = None

    @property
    def is_available(self) -> bool:
        if not self.member.is_active:
            return False
        if self.capacity is None:
            return self.active_assignments == 0
        return self.active_assignments < self.capacity
