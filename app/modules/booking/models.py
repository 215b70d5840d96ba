"""Booking ORM models."""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin
from app.core.enums import (
    BookingPaymentStatusEnum,
    BookingStatusEnum,
    PaymentMethodEnum,
    ResourceKindEnum,
)


class Booking(BaseModelMixin, Base):
    """Appointment of a client on a service or a court."""

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint(
            "(service_id IS NULL) <> (court_id IS NULL)",
            name="service_xor_court",
        ),
        Index("ix_bookings_business_resource_start", "business_id", "resource_id", "start_at"),
    )

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id: Mapped[UUID | None] = mapped_column(ForeignKey("services.id", ondelete="SET NULL"), nullable=True)
    court_id: Mapped[UUID | None] = mapped_column(ForeignKey("courts.id", ondelete="SET NULL"), nullable=True)
    resource_kind: Mapped[ResourceKindEnum] = mapped_column(
        SAEnum(ResourceKindEnum, name="resource_kind_enum", native_enum=False),
        default=ResourceKindEnum.NONE,
        nullable=False,
    )
    # Employee id or court id; NULL puts the booking in the business's resource-less pool.
    resource_id: Mapped[UUID | None] = mapped_column(nullable=True)

    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[BookingStatusEnum] = mapped_column(
        SAEnum(BookingStatusEnum, name="booking_status_enum", native_enum=False),
        default=BookingStatusEnum.CONFIRMED,
        nullable=False,
        index=True,
    )

    paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payment_method: Mapped[PaymentMethodEnum] = mapped_column(
        SAEnum(PaymentMethodEnum, name="payment_method_enum", native_enum=False),
        default=PaymentMethodEnum.OFFLINE,
        nullable=False,
    )
    payment_status: Mapped[BookingPaymentStatusEnum] = mapped_column(
        SAEnum(BookingPaymentStatusEnum, name="booking_payment_status_enum", native_enum=False),
        default=BookingPaymentStatusEnum.PENDING,
        nullable=False,
    )
    payment_reused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    reminder_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    client_notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def end_at(self) -> datetime | None:
        if self.duration_minutes is None:
            return None
        return self.start_at + timedelta(minutes=self.duration_minutes)


class ConsentForm(BaseModelMixin, Base):
    """Signed consent attached to a booking of a consent-required business."""

    __tablename__ = "consent_forms"

    booking_id: Mapped[UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    client_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    document: Mapped[str | None] = mapped_column(Text, nullable=True)
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
