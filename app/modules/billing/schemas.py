"""Billing schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.core.enums import PaymentMethodEnum, PaymentStatusEnum


class PaymentIntentCreate(BaseModel):
    """Start a card payment for a future booking."""

    business_id: UUID
    service_id: UUID | None = None
    court_id: UUID | None = None
    start_at: datetime
    duration_minutes: int | None = Field(default=None, ge=1)
    payment_method: PaymentMethodEnum = PaymentMethodEnum.CARD

    @model_validator(mode="after")
    def validate_target(self) -> PaymentIntentCreate:
        if (self.service_id is None) == (self.court_id is None):
            raise ValueError("Exactly one of service_id or court_id must be provided")
        return self


class PaymentIntentRead(BaseModel):
    payment_id: UUID
    payment_intent_id: str
    client_secret: str | None
    amount: Decimal
    currency: str
    payment_method: PaymentMethodEnum


class PaymentConfirmRequest(BaseModel):
    """Confirm a completed payment intent directly with the provider."""

    payment_intent_id: str = Field(min_length=1, max_length=128)
    booking_id: UUID | None = None


class PaymentRead(BaseModel):
    """Payment response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    business_id: UUID
    client_id: UUID
    booking_id: UUID | None
    external_payment_id: str | None
    amount: Decimal
    currency: str
    method: PaymentMethodEnum
    status: PaymentStatusEnum
    reused: bool
    paid_at: datetime | None
    refunded_at: datetime | None
    created_at: datetime
    updated_at: datetime


class WebhookAck(BaseModel):
    received: bool = True
