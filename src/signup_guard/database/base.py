import datetime
from typing import Any

from sqlalchemy import DateTime, Insert, MetaData, func
from sqlalchemy.ext.asyncio import AsyncAttrs, AsyncSession
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

POSTGRES_INDEXES_NAMING_CONVENTION = {
    "ix": "%(column_0_label)s_idx",
    "uq": "%(table_name)s_%(column_0_name)s_ukey",
    "ck": "%(table_name)s_%(constraint_name)s_check",
    "fk": "%(table_name)s_%(column_0_name)s_fkey",
    "pk": "%(table_name)s_pkey",
}
metadata = MetaData(naming_convention=POSTGRES_INDEXES_NAMING_CONVENTION)


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class Base(DeclarativeBase, AsyncAttrs):
    __abstract__ = True
    metadata = metadata


class DateTimeMixin:
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.current_timestamp(),
    )


def insert_ignoring_conflicts(
    session: AsyncSession,
    model: type[Base],
    values: dict[str, Any],
    conflict_columns: list[str],
) -> Insert:
    """Build an ``INSERT ... ON CONFLICT DO NOTHING`` for the session's dialect.

    Only the unique constraint over ``conflict_columns`` is ignored; any other
    constraint violation still raises ``IntegrityError``.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise ValueError(f"Unsupported database dialect: {dialect}")

    return (
        insert(model)
        .values(**values)
        .on_conflict_do_nothing(index_elements=conflict_columns)
    )
