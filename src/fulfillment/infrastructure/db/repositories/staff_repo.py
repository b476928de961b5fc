from __future__ import annotations

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from fulfillment.application.ports.repositories import StaffRepository
from fulfillment.domain.common.ids import StaffId
from fulfillment.domain.staff.entities import StaffMember, StaffRole
from fulfillment.infrastructure.db.models.staff import StaffModel
from fulfillment.infrastructure.db.session import get_engine


class SqlAlchemyStaffRepository(StaffRepository):
    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine or get_engine()

    def get(self, staff_id: StaffId) -> StaffMember | None:
        with Session(self._engine) as session:
            model = session.get(StaffModel, str(staff_id))
        if model is None:
            return None
        return _to_domain(model)

    def list_by_role(self, role: StaffRole) -> list[StaffMember]:
        statement = select(StaffModel).where(StaffModel.role == role.value).order_by(StaffModel.name)
        with Session(self._engine) as session:
            models = list(session.execute(statement).scalars().all())
        return [_to_domain(model) for model in models]

    def upsert(self, member: StaffMember) -> None:
        with Session(self._engine) as session:
            session.merge(
                StaffModel(
                    id=str(member.staff_id),
                    name=member.name,
                    role=member.role.value,
                    is_active=member.is_active,
                    phone=member.phone,
                )
            )
            session.commit()


def _to_domain(model: StaffModel) -> StaffMember:
    return StaffMember(
        staff_id=StaffId(model.id),
        name=model.name,
        role=StaffRole(model.role),
        is_active=model.is_active,
        phone=model.phone,
    )
