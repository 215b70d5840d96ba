"""Scheduling API router."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.modules.identity.service import get_current_user
from app.modules.scheduling.schemas import AvailabilityRead, SlotRead
from app.modules.scheduling.service import SchedulingService, get_scheduling_service

router = APIRouter(prefix="/scheduling", tags=["scheduling"])


@router.get("/availability", response_model=AvailabilityRead)
async def get_availability(
    business_id: UUID = Query(...),
    day: date = Query(...),
    service_id: UUID | None = Query(default=None),
    court_id: UUID | None = Query(default=None),
    employee_id: UUID | None = Query(default=None),
    service: SchedulingService = Depends(get_scheduling_service),
    _current_user=Depends(get_current_user),
) -> AvailabilityRead:
    """List candidate slots of one day for a service or a court."""
    granularity, slots = await service.list_slots(business_id, day, service_id, court_id, employee_id)
    return AvailabilityRead(
        business_id=business_id,
        day=day,
        granularity_minutes=granularity,
        slots=[SlotRead(start=slot.start, end=slot.end, status=slot.status) for slot in slots],
    )
