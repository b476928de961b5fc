from __future__ import annotations

from fulfillment.application.dto.responses import StaffMemberResponse
from fulfillment.domain.staff.entities import StaffAvailability


def to_staff_member_response(availability: StaffAvailability) -> StaffMemberResponse:
    member = availability.member
    return StaffMemberResponse(
        staffId=str(member.staff_id),
        name=member.name,
        role=member.role.value,
        isActive=member.is_active,
        activeAssignments=availability.active_assignments,
        available=availability.is_available,
    )
