"""Booking schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.core.enums import (
    BookingPaymentStatusEnum,
    BookingStatusEnum,
    PaymentMethodEnum,
    ResourceKindEnum,
)


class BookingCreate(BaseModel):
    """Create booking request; exactly one of service or court."""

    business_id: UUID
    client_id: UUID | None = None
    service_id: UUID | None = None
    court_id: UUID | None = None
    employee_id: UUID | None = None
    start_at: datetime
    duration_minutes: int | None = Field(default=None, ge=1)
    payment_method: PaymentMethodEnum = PaymentMethodEnum.OFFLINE
    paid: bool = False
    payment_reused: bool = False
    payment_intent_id: str | None = Field(default=None, max_length=128)
    client_notes: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def validate_target(self) -> BookingCreate:
        if (self.service_id is None) == (self.court_id is None):
            raise ValueError("Exactly one of service_id or court_id must be provided")
        if self.court_id is not None and self.employee_id is not None:
            raise ValueError("Court bookings cannot be assigned to an employee")
        if self.payment_reused and self.payment_intent_id is not None:
            raise ValueError("A reused payment cannot be combined with a new payment intent")
        return self


class BookingCancelRequest(BaseModel):
    """Cancel booking request."""

    refund_payment: bool = False


class BookingRead(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    business_id: UUID
    client_id: UUID
    service_id: UUID | None
    court_id: UUID | None
    resource_kind: ResourceKindEnum
    resource_id: UUID | None
    start_at: datetime
    end_at: datetime | None
    duration_minutes: int | None
    status: BookingStatusEnum
    paid: bool
    payment_method: PaymentMethodEnum
    payment_status: BookingPaymentStatusEnum
    payment_reused: bool
    reminder_sent_at: datetime | None
    client_notes: str | None
    cancelled_at: datetime | None
    created_at: datetime
    updated_at: datetime


class CancellationResultRead(BaseModel):
    success: bool
    refund_performed: bool
    refund_error: str | None = None
    message: str
