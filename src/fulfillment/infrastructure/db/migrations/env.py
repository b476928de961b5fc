from __future__ import annotations

from alembic import context

from fulfillment.infrastructure.db.models.order import Base
from fulfillment.infrastructure.db.models.staff import StaffModel  # noqa: F401
from fulfillment.infrastructure.db.session import database_url, get_engine

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    with get_engine(timeout_seconds=5.0).connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
