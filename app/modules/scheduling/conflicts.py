"""Double-booking detection for bookable resources."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol
from uuid import UUID

logger = logging.getLogger(__name__)


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap: intervals that only touch do not overlap."""
    return a_start < b_end and a_end > b_start


def resolve_duration_minutes(
    explicit: int | None,
    linked_default: int | None,
    business_default: int | None,
    fallback: int,
) -> int:
    """First positive value of explicit, service/court default, business default, fallback."""
    for candidate in (explicit, linked_default, business_default):
        if candidate is not None and candidate > 0:
            return candidate
    return fallback


@dataclass(frozen=True, slots=True)
class ScheduledBooking:
    """Non-cancelled booking row with everything needed to resolve its end."""

    booking_id: UUID
    start: datetime
    duration_minutes: int | None
    linked_duration_minutes: int | None
    business_default_minutes: int | None


@dataclass(frozen=True, slots=True)
class BookingConflict:
    booking_id: UUID
    start: datetime
    end: datetime


class ScheduledBookingSource(Protocol):
    async def list_active_bookings_in_window(
        self,
        business_id: UUID,
        resource_id: UUID | None,
        window_start: datetime,
        window_end: datetime,
        exclude_booking_id: UUID | None = None,
    ) -> list[ScheduledBooking]:
        """Non-cancelled bookings of the resource starting inside the window."""


class ConflictDetector:
    """Finds existing bookings overlapping a proposed interval.

    Only bookings starting within ``buffer_minutes`` of the proposed interval
    are fetched. The buffer must be at least the longest allowed booking,
    otherwise a long booking starting earlier would be missed.
    """

    def __init__(
        self,
        source: ScheduledBookingSource,
        *,
        buffer_minutes: int,
        default_duration_minutes: int,
    ) -> None:
        self.source = source
        self.buffer = timedelta(minutes=buffer_minutes)
        self.default_duration_minutes = default_duration_minutes

    def _end_of(self, booking: ScheduledBooking) -> datetime:
        minutes = resolve_duration_minutes(
            booking.duration_minutes,
            booking.linked_duration_minutes,
            booking.business_default_minutes,
            self.default_duration_minutes,
        )
        if timedelta(minutes=minutes) > self.buffer:
            logger.warning(
                "Booking %s lasts %s minutes, longer than the conflict buffer",
                booking.booking_id,
                minutes,
            )
        return booking.start + timedelta(minutes=minutes)

    async def find_conflicts(
        self,
        resource_id: UUID | None,
        start: datetime,
        end: datetime,
        business_id: UUID,
        exclude_booking_id: UUID | None = None,
    ) -> list[BookingConflict]:
        """Bookings of the same resource (or the business's resource-less pool) overlapping ``[start, end)``."""
        candidates = await self.source.list_active_bookings_in_window(
            business_id,
            resource_id,
            start - self.buffer,
            end + self.buffer,
            exclude_booking_id,
        )
        conflicts = []
        for candidate in candidates:
            candidate_end = self._end_of(candidate)
            if intervals_overlap(start, end, candidate.start, candidate_end):
                conflicts.append(BookingConflict(candidate.booking_id, candidate.start, candidate_end))
        return conflicts
