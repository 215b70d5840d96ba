from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from uuid import uuid4

import pytest

from app.core.config import Settings
from app.core.enums import ResourceKindEnum, SlotStatusEnum
from app.modules.scheduling.availability import (
    BlackoutPeriod,
    BookedInterval,
    SchedulingResource,
    available_slots,
    slot_granularity_minutes,
)
from app.modules.scheduling.working_hours import WorkingHours

MONDAY = date(2026, 3, 2)
MIN_LEAD = timedelta(hours=2)


def _resource(duration_minutes: int = 60, config: dict | None = None) -> SchedulingResource:
    if config is None:
        config = {
            "monday": {
                "enabled": True,
                "slots": [{"start": "09:00", "end": "12:00"}, {"start": "13:00", "end": "15:00"}],
            },
            "tuesday": {"enabled": False, "slots": [{"start": "09:00", "end": "12:00"}]},
        }
    return SchedulingResource(
        kind=ResourceKindEnum.EMPLOYEE,
        resource_id=uuid4(),
        working_hours=WorkingHours.from_config(config),
        duration_minutes=duration_minutes,
    )


def _slots(resource: SchedulingResource, day: date = MONDAY, *, now: datetime, granularity: int = 60, **kwargs):
    return list(
        available_slots(
            resource,
            day,
            kwargs.get("blackouts", []),
            kwargs.get("bookings", []),
            granularity,
            now=now,
            min_lead=MIN_LEAD,
            tz=UTC,
        ),
    )


def _status_by_hour(slots) -> dict[str, SlotStatusEnum]:
    return {slot.start.strftime("%H:%M"): slot.status for slot in slots}


def test_slots_step_inside_each_window() -> None:
    slots = _slots(_resource(), now=datetime(2026, 3, 1, 8, 0, tzinfo=UTC))

    assert list(_status_by_hour(slots)) == ["09:00", "10:00", "11:00", "13:00", "14:00"]
    assert all(slot.end - slot.start == timedelta(hours=1) for slot in slots)
    assert all(slot.status == SlotStatusEnum.AVAILABLE for slot in slots)


def test_disabled_weekday_yields_no_slots() -> None:
    slots = _slots(_resource(), date(2026, 3, 3), now=datetime(2026, 3, 1, 8, 0, tzinfo=UTC))
    assert slots == []


def test_missing_schedule_opens_the_whole_day() -> None:
    resource = SchedulingResource(ResourceKindEnum.COURT, uuid4(), None, 60)
    slots = _slots(resource, now=datetime(2026, 3, 1, 8, 0, tzinfo=UTC))

    assert len(slots) == 24
    assert slots[0].start == datetime(2026, 3, 2, 0, 0, tzinfo=UTC)


def test_past_and_too_soon_take_priority() -> None:
    now = datetime(2026, 3, 2, 10, 30, tzinfo=UTC)
    statuses = _status_by_hour(_slots(_resource(), now=now))

    assert statuses["09:00"] == SlotStatusEnum.PAST
    assert statuses["10:00"] == SlotStatusEnum.PAST
    assert statuses["11:00"] == SlotStatusEnum.TOO_SOON
    assert statuses["13:00"] == SlotStatusEnum.AVAILABLE


def test_slot_running_into_break_is_blocked() -> None:
    # 90-minute appointments starting 11:00 would run into the 12:00-13:00 break.
    slots = _slots(_resource(duration_minutes=90), now=datetime(2026, 3, 1, 8, 0, tzinfo=UTC), granularity=30)
    statuses = _status_by_hour(slots)

    assert statuses["10:30"] == SlotStatusEnum.AVAILABLE
    assert statuses["11:00"] == SlotStatusEnum.BLOCKED
    assert statuses["13:30"] == SlotStatusEnum.AVAILABLE
    assert statuses["14:00"] == SlotStatusEnum.BLOCKED


def test_blackout_days_block_every_slot() -> None:
    blackout = BlackoutPeriod(start_date=date(2026, 3, 1), end_date=MONDAY, reason="Inventory")
    slots = _slots(_resource(), now=datetime(2026, 3, 1, 8, 0, tzinfo=UTC), blackouts=[blackout])

    assert {slot.status for slot in slots} == {SlotStatusEnum.BLOCKED}


def test_blackout_ending_the_day_before_does_not_block() -> None:
    blackout = BlackoutPeriod(start_date=date(2026, 2, 27), end_date=date(2026, 3, 1))
    slots = _slots(_resource(), now=datetime(2026, 2, 20, 8, 0, tzinfo=UTC), blackouts=[blackout])

    assert {slot.status for slot in slots} == {SlotStatusEnum.AVAILABLE}


def test_booked_slots_use_half_open_overlap() -> None:
    booked = BookedInterval(
        booking_id=uuid4(),
        start=datetime(2026, 3, 2, 10, 0, tzinfo=UTC),
        end=datetime(2026, 3, 2, 11, 0, tzinfo=UTC),
    )
    statuses = _status_by_hour(_slots(_resource(), now=datetime(2026, 3, 1, 8, 0, tzinfo=UTC), bookings=[booked]))

    assert statuses["09:00"] == SlotStatusEnum.AVAILABLE
    assert statuses["10:00"] == SlotStatusEnum.BOOKED
    assert statuses["11:00"] == SlotStatusEnum.AVAILABLE


def test_generator_is_restartable_and_rejects_bad_granularity() -> None:
    resource = _resource()
    now = datetime(2026, 3, 1, 8, 0, tzinfo=UTC)
    assert _slots(resource, now=now) == _slots(resource, now=now)

    with pytest.raises(ValueError):
        _slots(resource, now=now, granularity=0)


def test_courts_use_coarser_granularity() -> None:
    settings = Settings(_env_file=None)
    assert slot_granularity_minutes(ResourceKindEnum.COURT, settings) == 60
    assert slot_granularity_minutes(ResourceKindEnum.EMPLOYEE, settings) == 30
    assert slot_granularity_minutes(ResourceKindEnum.NONE, settings) == 30
