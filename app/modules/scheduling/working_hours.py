"""Weekly working-hours configuration and exact interval coverage."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Any

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Half-open window of a day, in seconds since local midnight."""

    start: int
    end: int

    def contains(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end


def parse_clock(value: str) -> int:
    """Parse ``HH:MM`` into seconds since midnight. ``24:00`` is end of day."""
    try:
        hours_text, minutes_text = value.strip().split(":")
        hours, minutes = int(hours_text), int(minutes_text)
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid clock value: {value!r}") from exc

    if not 0 <= minutes < 60 or not 0 <= hours <= 24 or (hours == 24 and minutes != 0):
        raise ValueError(f"Invalid clock value: {value!r}")
    return hours * 3600 + minutes * 60


def merge_windows(windows: list[TimeWindow]) -> tuple[TimeWindow, ...]:
    """Sort windows and join the ones that overlap or touch."""
    merged: list[TimeWindow] = []
    for window in sorted(windows, key=lambda item: item.start):
        if merged and window.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = TimeWindow(last.start, max(last.end, window.end))
        else:
            merged.append(window)
    return tuple(merged)


def _seconds_of_day(moment: datetime) -> int:
    return moment.hour * 3600 + moment.minute * 60 + moment.second


@dataclass(frozen=True)
class WorkingHours:
    """Enabled windows per weekday name; days without windows are closed."""

    days: Mapping[str, tuple[TimeWindow, ...]] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None) -> WorkingHours | None:
        """Build from the stored JSON shape.

        ``{"monday": {"enabled": true, "slots": [{"start": "09:00", "end": "13:00"}]}}``.
        Returns None when no configuration is stored at all.
        """
        if not config:
            return None

        days: dict[str, tuple[TimeWindow, ...]] = {}
        for day_name in WEEKDAY_NAMES:
            schedule = config.get(day_name)
            if not isinstance(schedule, Mapping) or not schedule.get("enabled"):
                continue

            windows = []
            for slot in schedule.get("slots") or ():
                start, end = parse_clock(slot["start"]), parse_clock(slot["end"])
                if end > start:
                    windows.append(TimeWindow(start, end))
            if windows:
                days[day_name] = merge_windows(windows)
        return cls(days=days)

    def windows_for(self, day: date) -> tuple[TimeWindow, ...]:
        return self.days.get(WEEKDAY_NAMES[day.weekday()], ())

    def covers(self, start: datetime, end: datetime, tz: tzinfo) -> bool:
        """True when every instant of ``[start, end)`` lies inside a window.

        The interval is split at local midnights; each per-day piece must sit
        within a single merged window, so a break between two windows is never
        bridged.
        """
        if end <= start:
            return False

        local_start = start.astimezone(tz)
        local_end = end.astimezone(tz)
        day = local_start.date()
        while day <= local_end.date():
            piece_start = _seconds_of_day(local_start) if day == local_start.date() else 0
            piece_end = _seconds_of_day(local_end) if day == local_end.date() else SECONDS_PER_DAY
            if piece_end > piece_start:
                if not any(window.contains(piece_start, piece_end) for window in self.windows_for(day)):
                    return False
            day += timedelta(days=1)
        return True
