import uuid
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import Boolean, DateTime, Index, MetaData, text
from sqlalchemy.orm import DeclarativeBase, declared_attr, Mapped, mapped_column


convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


metadata = MetaData(naming_convention=convention)

CENT = Decimal("0.01")


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite stores datetimes without zone)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def money(value: Decimal | float | int | str | None) -> Decimal:
    """Round an amount to 2 decimals, half up."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    metadata = metadata

    @declared_attr.directive
    def __tablename__(cls) -> str:  # type: ignore[override]
        return cls.__name__.lower()

    @staticmethod
    def generate_uuid() -> uuid.UUID:
        return uuid.uuid4()


def uuid_pk() -> Mapped[uuid.UUID]:
    """UUID primary key column."""
    return mapped_column(
        default=Base.generate_uuid,
        primary_key=True
    )


class TenantEntity:
    """Columns shared by every tenant-owned business record.

    Rows are never removed by services: `soft_delete` flags them and every query filters
    `is_deleted`. Subclasses are picked up by the audit trail listener.
    """

    tenant_id: Mapped[uuid.UUID] = mapped_column(index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    created_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    deleted_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)

    def touch(self, user_id: uuid.UUID | None) -> None:
        self.updated_at = utcnow()
        self.updated_by = user_id

    def soft_delete(self, user_id: uuid.UUID | None) -> None:
        self.is_deleted = True
        self.deleted_at = utcnow()
        self.deleted_by = user_id


def active_unique(*columns: str, name: str) -> Index:
    """Unique index over the rows that are not soft-deleted."""
    return Index(
        name,
        *columns,
        unique=True,
        sqlite_where=text("is_deleted = 0"),
        postgresql_where=text("is_deleted = false"),
    )
