"""
Fixed Assets models: categories, assets and their lifecycle records.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import String, Text, Date, Boolean, Numeric, Integer, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TenantEntity, active_unique, uuid_pk


DEPRECIATION_METHODS = ("StraightLine", "DecliningBalance", "None")
ASSET_STATUSES = ("InStock", "Assigned", "UnderMaintenance", "Disposed")
DISPOSAL_TYPES = ("Sale", "Scrap", "Donation")
INCIDENT_STATUSES = ("Open", "Resolved")


class AssetCategory(TenantEntity, Base):
    __tablename__ = "asset_category"
    __table_args__ = (active_unique("tenant_id", "code", name="uq_asset_category_tenant_code"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    code: Mapped[str] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    depreciation_method: Mapped[str] = mapped_column(String(20), default="StraightLine")
    useful_life_months: Mapped[int] = mapped_column(Integer)


class Asset(TenantEntity, Base):
    """Fixed asset with depreciation tracking."""

    __table_args__ = (active_unique("tenant_id", "asset_code", name="uq_asset_tenant_code"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    asset_code: Mapped[str] = mapped_column(String(50), index=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("asset_category.id"), index=True)
    status: Mapped[str] = mapped_column(String(20), default="InStock")

    acquisition_date: Mapped[date] = mapped_column(Date)
    acquisition_cost: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    salvage_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    # Overrides of the category defaults
    depreciation_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    useful_life_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    accumulated_depreciation: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)

    location_description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    department_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("department.id"), nullable=True)
    assigned_employee_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("employee.id"), nullable=True
    )
    serial_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    barcode: Mapped[str | None] = mapped_column(String(100), nullable=True)

    disposal_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    disposal_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    disposal_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    category: Mapped[AssetCategory] = relationship()

    @property
    def book_value(self) -> Decimal:
        return Decimal(self.acquisition_cost or 0) - Decimal(self.accumulated_depreciation or 0)


class AssetDepreciation(TenantEntity, Base):
    __tablename__ = "asset_depreciation"
    __table_args__ = (
        active_unique("asset_id", "period", name="uq_asset_depreciation_asset_period"),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    asset_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("asset.id"), index=True)
    period: Mapped[str] = mapped_column(String(7))
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))


class AssetAssignment(TenantEntity, Base):
    __tablename__ = "asset_assignment"

    id: Mapped[uuid.UUID] = uuid_pk()
    asset_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("asset.id"), index=True)
    employee_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("employee.id"), nullable=True)
    location_description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    assigned_date: Mapped[date] = mapped_column(Date)
    returned_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    start_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    end_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    condition: Mapped[str | None] = mapped_column(String(255), nullable=True)


class AssetMeterLog(TenantEntity, Base):
    """Odometer / hour meter reading."""

    __tablename__ = "asset_meter_log"

    id: Mapped[uuid.UUID] = uuid_pk()
    asset_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("asset.id"), index=True)
    log_date: Mapped[date] = mapped_column(Date)
    meter_value: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    source: Mapped[str | None] = mapped_column(String(50), nullable=True)


class AssetIncident(TenantEntity, Base):
    __tablename__ = "asset_incident"

    id: Mapped[uuid.UUID] = uuid_pk()
    asset_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("asset.id"), index=True)
    employee_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("employee.id"), nullable=True)
    incident_date: Mapped[date] = mapped_column(Date)
    description: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(10), default="Open")
    is_user_fault: Mapped[bool] = mapped_column(Boolean, default=False)
    deduct_from_salary: Mapped[bool] = mapped_column(Boolean, default=False)
    deduction_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    is_deducted: Mapped[bool] = mapped_column(Boolean, default=False)


class AssetMaintenance(TenantEntity, Base):
    __tablename__ = "asset_maintenance"

    id: Mapped[uuid.UUID] = uuid_pk()
    asset_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("asset.id"), index=True)
    incident_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("asset_incident.id"), nullable=True
    )
    supplier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    service_date: Mapped[date] = mapped_column(Date)
    cost: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_service_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    next_service_meter: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)


class AssetDisposal(TenantEntity, Base):
    __tablename__ = "asset_disposal"

    id: Mapped[uuid.UUID] = uuid_pk()
    asset_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("asset.id"), index=True)
    disposal_date: Mapped[date] = mapped_column(Date)
    disposal_type: Mapped[str] = mapped_column(String(10))  # Sale, Scrap, Donation
    sale_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    book_value_at_disposal: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    profit_loss: Mapped[Decimal] = mapped_column(Numeric(18, 2))
