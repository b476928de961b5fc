from __future__ import annotations

from sqlalchemy import inspect

from fulfillment.domain.common.ids import StaffId
from fulfillment.domain.staff.entities import StaffMember, StaffRole
from fulfillment.infrastructure.db.repositories.staff_repo import SqlAlchemyStaffRepository
from fulfillment.infrastructure.db.session import get_engine

DEMO_STAFF = (
    StaffMember(staff_id=StaffId("stf_chef_001"), name="Chef Berhanu", role=StaffRole.CHEF),
    StaffMember(staff_id=StaffId("stf_chef_002"), name="Chef Tigist", role=StaffRole.CHEF),
    StaffMember(staff_id=StaffId("stf_chef_003"), name="Chef Solomon", role=StaffRole.CHEF),
    StaffMember(
        staff_id=StaffId("stf_dlv_001"), name="Abebe", role=StaffRole.DELIVERY, phone="+251911000001"
    ),
    StaffMember(
        staff_id=StaffId("stf_dlv_002"), name="Kebede", role=StaffRole.DELIVERY, phone="+251911000002"
    ),
    StaffMember(
        staff_id=StaffId("stf_dlv_003"), name="Almaz", role=StaffRole.DELIVERY, phone="+251911000003"
    ),
)


def seed_staff(repository: SqlAlchemyStaffRepository) -> int:
    for member in DEMO_STAFF:
        repository.upsert(member)
    return len(DEMO_STAFF)


def main() -> None:
    engine = get_engine(timeout_seconds=2.0)
    if "staff" not in set(inspect(engine).get_table_names()):
        print("no schema yet")
        return

    count = seed_staff(SqlAlchemyStaffRepository(engine))
    print(f"seeded {count} staff members")


if __name__ == "__main__":
    main()
