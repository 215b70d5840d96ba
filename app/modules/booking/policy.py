"""Time-window rules for creating and cancelling bookings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from app.core.config import Settings
from app.core.enums import BookingStatusEnum, RoleEnum
from app.modules.booking.models import Booking

PRIVILEGED_ROLES = frozenset({RoleEnum.BUSINESS, RoleEnum.EMPLOYEE, RoleEnum.SUPERADMIN})


@dataclass(frozen=True, slots=True)
class CancellationDecision:
    allowed: bool
    reason: str | None = None
    already_cancelled: bool = False


class CancellationPolicy:
    """Decides who may cancel a booking and until when.

    Business owners, employees and admins bypass every window. Clients must
    cancel at least ``client_cancellation_window_hours`` before the start and,
    once a reminder went out, no later than ``reminder_cancellation_grace_minutes``
    after it; the stricter of the two limits applies.
    """

    def __init__(
        self,
        *,
        client_window: timedelta,
        reminder_grace: timedelta,
        min_lead: timedelta,
    ) -> None:
        self.client_window = client_window
        self.reminder_grace = reminder_grace
        self.min_lead = min_lead

    @classmethod
    def from_settings(cls, settings: Settings) -> CancellationPolicy:
        return cls(
            client_window=timedelta(hours=settings.client_cancellation_window_hours),
            reminder_grace=timedelta(minutes=settings.reminder_cancellation_grace_minutes),
            min_lead=timedelta(minutes=settings.booking_min_lead_minutes),
        )

    def can_cancel(self, actor_role: RoleEnum, booking: Booking, now: datetime) -> CancellationDecision:
        if booking.status == BookingStatusEnum.CANCELLED:
            return CancellationDecision(False, "Booking is already cancelled", already_cancelled=True)
        if booking.status == BookingStatusEnum.COMPLETED:
            return CancellationDecision(False, "Completed bookings cannot be cancelled")

        if actor_role in PRIVILEGED_ROLES:
            return CancellationDecision(True)

        if booking.start_at - now < self.client_window:
            hours = int(self.client_window.total_seconds() // 3600)
            return CancellationDecision(
                False,
                f"Bookings can be cancelled by the client at most {hours} hours before the start",
            )

        if booking.reminder_sent_at is not None and now > booking.reminder_sent_at + self.reminder_grace:
            return CancellationDecision(False, "The cancellation period after the reminder has expired")

        return CancellationDecision(True)

    def has_min_lead(self, start: datetime, now: datetime) -> bool:
        """New bookings must start at least the minimum lead time from now."""
        return start - now >= self.min_lead
