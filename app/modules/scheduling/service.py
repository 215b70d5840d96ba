"""Scheduling business logic: target resolution, working hours, blackouts and slots."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from uuid import UUID
from zoneinfo import ZoneInfo

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.core.database import get_db_session
from app.core.enums import BusinessStatusEnum, ResourceKindEnum, RoleEnum
from app.modules.booking.repository import BookingRepository
from app.modules.businesses.models import Business, Court, Service
from app.modules.businesses.repository import BusinessesRepository
from app.modules.identity.models import User
from app.modules.scheduling.availability import (
    BlackoutPeriod,
    BookedInterval,
    CandidateSlot,
    SchedulingResource,
    available_slots,
    find_blocking_blackout,
    slot_granularity_minutes,
)
from app.modules.scheduling.conflicts import (
    ConflictDetector,
    ScheduledBookingSource,
    resolve_duration_minutes,
)
from app.modules.scheduling.working_hours import WorkingHours
from app.shared.exceptions import (
    BusinessRuleException,
    ForbiddenException,
    InternalException,
    NotFoundException,
    ValidationException,
)
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)

STAFF_ROLES = (RoleEnum.EMPLOYEE, RoleEnum.BUSINESS)


@dataclass(frozen=True, slots=True)
class BookingTarget:
    """Business, catalogue item and resource a booking is placed on."""

    business: Business
    service: Service | None
    court: Court | None
    employee: User | None
    resource: SchedulingResource


class SchedulingService:
    """Scheduling domain service."""

    def __init__(
        self,
        businesses_repository: BusinessesRepository,
        bookings: ScheduledBookingSource,
        settings: Settings,
    ) -> None:
        self.businesses_repository = businesses_repository
        self.settings = settings
        self.tz = ZoneInfo(settings.scheduling_timezone)
        self.conflict_detector = ConflictDetector(
            bookings,
            buffer_minutes=settings.conflict_buffer_minutes,
            default_duration_minutes=settings.default_booking_duration_minutes,
        )

    @staticmethod
    def _parse_working_hours(config: dict | None, owner: str) -> WorkingHours | None:
        try:
            return WorkingHours.from_config(config)
        except (KeyError, TypeError, ValueError) as exc:
            logger.error("Invalid working hours configuration on %s: %s", owner, exc)
            raise InternalException("Working hours configuration is invalid") from exc

    async def resolve_target(
        self,
        business_id: UUID,
        service_id: UUID | None,
        court_id: UUID | None,
        employee_id: UUID | None,
    ) -> BookingTarget:
        """Load and validate everything a booking on this business points at."""
        if (service_id is None) == (court_id is None):
            raise ValidationException("Exactly one of service_id or court_id must be provided")

        business = await self.businesses_repository.get_business_by_id(business_id)
        if business is None:
            raise NotFoundException("Business not found")
        if business.status == BusinessStatusEnum.SUSPENDED:
            raise ForbiddenException("Business is suspended")

        service = court = employee = None
        if service_id is not None:
            service = await self.businesses_repository.get_service(business_id, service_id)
            if service is None:
                raise NotFoundException("Service not found")
        else:
            court = await self.businesses_repository.get_court(business_id, court_id)
            if court is None:
                raise NotFoundException("Court not found")

        if employee_id is not None:
            if court is not None:
                raise ValidationException("Court bookings cannot be assigned to an employee")
            employee = await self.businesses_repository.get_staff_member(business_id, employee_id)
            if employee is None or employee.role not in STAFF_ROLES:
                raise NotFoundException("Employee not found")

        # Most specific schedule wins: employee, then court, then business.
        if employee is not None and employee.working_hours:
            working_hours = self._parse_working_hours(employee.working_hours, f"employee {employee.id}")
        elif court is not None and court.working_hours:
            working_hours = self._parse_working_hours(court.working_hours, f"court {court.id}")
        else:
            working_hours = self._parse_working_hours(business.working_hours, f"business {business.id}")

        if court is not None:
            kind, resource_id = ResourceKindEnum.COURT, court.id
        elif employee is not None:
            kind, resource_id = ResourceKindEnum.EMPLOYEE, employee.id
        else:
            kind, resource_id = ResourceKindEnum.NONE, None

        linked = service.duration_minutes if service is not None else court.slot_duration_minutes
        duration = resolve_duration_minutes(
            None,
            linked,
            business.default_booking_duration_minutes,
            self.settings.default_booking_duration_minutes,
        )
        return BookingTarget(
            business=business,
            service=service,
            court=court,
            employee=employee,
            resource=SchedulingResource(
                kind=kind,
                resource_id=resource_id,
                working_hours=working_hours,
                duration_minutes=duration,
            ),
        )

    def check_working_hours(self, target: BookingTarget, start: datetime, end: datetime) -> None:
        """Reject intervals not fully inside the resource's schedule."""
        working_hours = target.resource.working_hours
        if working_hours is None:
            logger.warning(
                "No working hours configured for business %s, allowing booking at %s",
                target.business.id,
                start.isoformat(),
            )
            return
        if not working_hours.covers(start, end, self.tz):
            raise BusinessRuleException("Booking is outside working hours")

    async def list_blackouts(self, target: BookingTarget, first_day: date, last_day: date) -> list[BlackoutPeriod]:
        holidays = await self.businesses_repository.list_business_holidays(target.business.id, first_day, last_day)
        periods = [BlackoutPeriod(item.start_date, item.end_date, item.reason) for item in holidays]
        if target.employee is not None:
            employee_holidays = await self.businesses_repository.list_employee_holidays(
                target.business.id,
                target.employee.id,
                first_day,
                last_day,
            )
            periods.extend(BlackoutPeriod(item.start_date, item.end_date, item.reason) for item in employee_holidays)
        return periods

    async def find_blocking_blackout(
        self,
        target: BookingTarget,
        start: datetime,
        end: datetime,
    ) -> BlackoutPeriod | None:
        """Business-wide or employee blackout overlapping ``[start, end)``."""
        first_day = start.astimezone(self.tz).date()
        last_day = end.astimezone(self.tz).date()
        blackouts = await self.list_blackouts(target, first_day, last_day)
        return find_blocking_blackout(blackouts, start, end, self.tz)

    async def list_slots(
        self,
        business_id: UUID,
        day: date,
        service_id: UUID | None,
        court_id: UUID | None,
        employee_id: UUID | None,
    ) -> tuple[int, list[CandidateSlot]]:
        """Slot step in minutes and every classified candidate start of ``day``."""
        target = await self.resolve_target(business_id, service_id, court_id, employee_id)
        day_start = datetime.combine(day, time.min, tzinfo=self.tz)
        day_end = day_start + timedelta(days=1, minutes=target.resource.duration_minutes)

        blackouts = await self.list_blackouts(target, day, day_end.date())
        conflicts = await self.conflict_detector.find_conflicts(
            target.resource.resource_id,
            day_start,
            day_end,
            business_id,
        )
        booked = [BookedInterval(item.booking_id, item.start, item.end) for item in conflicts]
        granularity = slot_granularity_minutes(target.resource.kind, self.settings)
        return granularity, list(
            available_slots(
                target.resource,
                day,
                blackouts,
                booked,
                granularity,
                now=utc_now(),
                min_lead=timedelta(minutes=self.settings.booking_min_lead_minutes),
                tz=self.tz,
            ),
        )


async def get_scheduling_service(session: AsyncSession = Depends(get_db_session)) -> SchedulingService:
    """Dependency provider for scheduling service."""
    return SchedulingService(BusinessesRepository(session), BookingRepository(session), get_settings())
