"""Scheduling schemas."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel

from app.core.enums import SlotStatusEnum


class SlotRead(BaseModel):
    """Candidate slot with its classification."""

    start: datetime
    end: datetime
    status: SlotStatusEnum


class AvailabilityRead(BaseModel):
    business_id: UUID
    day: date
    granularity_minutes: int
    slots: list[SlotRead]
