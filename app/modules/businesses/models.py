"""Business catalogue ORM models: businesses, services, courts and blackouts."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin
from app.core.enums import BusinessStatusEnum, BusinessTypeEnum

CONSENT_REQUIRED_TYPES = frozenset(
    {
        BusinessTypeEnum.BEAUTY,
        BusinessTypeEnum.DENTISTRY,
        BusinessTypeEnum.OPHTHALMOLOGY,
        BusinessTypeEnum.PSYCHOLOGY,
        BusinessTypeEnum.THERAPY,
    },
)


class Business(BaseModelMixin, Base):
    """Business selling appointments."""

    __tablename__ = "businesses"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    business_type: Mapped[BusinessTypeEnum] = mapped_column(
        SAEnum(BusinessTypeEnum, name="business_type_enum", native_enum=False),
        default=BusinessTypeEnum.GENERAL,
        nullable=False,
    )
    status: Mapped[BusinessStatusEnum] = mapped_column(
        SAEnum(BusinessStatusEnum, name="business_status_enum", native_enum=False),
        default=BusinessStatusEnum.ACTIVE,
        nullable=False,
    )
    working_hours: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    default_booking_duration_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)

    @property
    def requires_consent(self) -> bool:
        return self.business_type in CONSENT_REQUIRED_TYPES


class Service(BaseModelMixin, Base):
    """Bookable service offered by a business."""

    __tablename__ = "services"

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)


class Court(BaseModelMixin, Base):
    """Bookable court or field of a sport business."""

    __tablename__ = "courts"

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slot_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_per_hour: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    working_hours: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)


class Holiday(BaseModelMixin, Base):
    """Business-wide closed period (inclusive calendar dates)."""

    __tablename__ = "holidays"

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)


class EmployeeHoliday(BaseModelMixin, Base):
    """Time off of a single employee (inclusive calendar dates)."""

    __tablename__ = "employee_holidays"

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
