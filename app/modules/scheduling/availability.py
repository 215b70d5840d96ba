"""Slot availability calculation for a single resource and day."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from uuid import UUID

from app.core.config import Settings
from app.core.enums import ResourceKindEnum, SlotStatusEnum
from app.modules.scheduling.conflicts import intervals_overlap
from app.modules.scheduling.working_hours import SECONDS_PER_DAY, TimeWindow, WorkingHours


@dataclass(frozen=True, slots=True)
class SchedulingResource:
    """Bookable unit together with the schedule that applies to it."""

    kind: ResourceKindEnum
    resource_id: UUID | None
    working_hours: WorkingHours | None
    duration_minutes: int


@dataclass(frozen=True, slots=True)
class BlackoutPeriod:
    """Closed period covering whole calendar days, both ends inclusive."""

    start_date: date
    end_date: date
    reason: str | None = None

    def bounds(self, tz: tzinfo) -> tuple[datetime, datetime]:
        start = datetime.combine(self.start_date, time.min, tzinfo=tz)
        end = datetime.combine(self.end_date + timedelta(days=1), time.min, tzinfo=tz)
        return start, end

    def overlaps(self, start: datetime, end: datetime, tz: tzinfo) -> bool:
        blackout_start, blackout_end = self.bounds(tz)
        return intervals_overlap(start, end, blackout_start, blackout_end)


@dataclass(frozen=True, slots=True)
class BookedInterval:
    booking_id: UUID
    start: datetime
    end: datetime


@dataclass(frozen=True, slots=True)
class CandidateSlot:
    start: datetime
    end: datetime
    status: SlotStatusEnum


def slot_granularity_minutes(kind: ResourceKindEnum, settings: Settings) -> int:
    """Courts are offered in longer steps than service appointments."""
    if kind == ResourceKindEnum.COURT:
        return settings.court_slot_granularity_minutes
    return settings.service_slot_granularity_minutes


def find_blocking_blackout(
    blackouts: Sequence[BlackoutPeriod],
    start: datetime,
    end: datetime,
    tz: tzinfo,
) -> BlackoutPeriod | None:
    for blackout in blackouts:
        if blackout.overlaps(start, end, tz):
            return blackout
    return None


def _classify(
    start: datetime,
    end: datetime,
    *,
    resource: SchedulingResource,
    blackouts: Sequence[BlackoutPeriod],
    bookings: Sequence[BookedInterval],
    now: datetime,
    min_lead: timedelta,
    tz: tzinfo,
) -> SlotStatusEnum:
    if start < now:
        return SlotStatusEnum.PAST
    if start - now < min_lead:
        return SlotStatusEnum.TOO_SOON
    if find_blocking_blackout(blackouts, start, end, tz) is not None:
        return SlotStatusEnum.BLOCKED
    if resource.working_hours is not None and not resource.working_hours.covers(start, end, tz):
        return SlotStatusEnum.BLOCKED
    if any(intervals_overlap(start, end, booked.start, booked.end) for booked in bookings):
        return SlotStatusEnum.BOOKED
    return SlotStatusEnum.AVAILABLE


def available_slots(
    resource: SchedulingResource,
    day: date,
    blackouts: Sequence[BlackoutPeriod],
    bookings: Sequence[BookedInterval],
    granularity_minutes: int,
    *,
    now: datetime,
    min_lead: timedelta,
    tz: tzinfo,
) -> Iterator[CandidateSlot]:
    """Yield every candidate start of ``day`` with its status.

    Candidates step by ``granularity_minutes`` inside each configured window.
    A resource without any stored schedule is treated as open all day; a
    weekday without enabled windows yields nothing. Each slot spans the
    resource's booking duration, so a slot running past a window end into a
    break or past closing is reported as blocked.
    """
    if granularity_minutes <= 0:
        raise ValueError("granularity_minutes must be positive")

    if resource.working_hours is None:
        windows: tuple[TimeWindow, ...] = (TimeWindow(0, SECONDS_PER_DAY),)
    else:
        windows = resource.working_hours.windows_for(day)

    step = granularity_minutes * 60
    duration = timedelta(minutes=resource.duration_minutes)
    midnight = datetime.combine(day, time.min, tzinfo=tz)
    for window in windows:
        offset = window.start
        while offset < window.end:
            start = midnight + timedelta(seconds=offset)
            end = start + duration
            yield CandidateSlot(
                start=start,
                end=end,
                status=_classify(
                    start,
                    end,
                    resource=resource,
                    blackouts=blackouts,
                    bookings=bookings,
                    now=now,
                    min_lead=min_lead,
                    tz=tz,
                ),
            )
            offset += step
