"""Read access to businesses, their catalogue and blackout periods."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.businesses.models import Business, Court, EmployeeHoliday, Holiday, Service
from app.modules.identity.models import User


class BusinessesRepository:
    """DB operations for business catalogue domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_business_by_id(self, business_id: UUID) -> Business | None:
        return await self.session.get(Business, business_id)

    async def get_service(self, business_id: UUID, service_id: UUID) -> Service | None:
        stmt = select(Service).where(Service.id == service_id, Service.business_id == business_id)
        return await self.session.scalar(stmt)

    async def get_court(self, business_id: UUID, court_id: UUID) -> Court | None:
        stmt = select(Court).where(Court.id == court_id, Court.business_id == business_id)
        return await self.session.scalar(stmt)

    async def get_staff_member(self, business_id: UUID, user_id: UUID) -> User | None:
        stmt = select(User).where(
            User.id == user_id,
            User.business_id == business_id,
            User.is_active.is_(True),
        )
        return await self.session.scalar(stmt)

    async def list_business_holidays(self, business_id: UUID, start_date: date, end_date: date) -> list[Holiday]:
        stmt = select(Holiday).where(
            Holiday.business_id == business_id,
            Holiday.start_date <= end_date,
            Holiday.end_date >= start_date,
        )
        return list((await self.session.scalars(stmt)).all())

    async def list_employee_holidays(
        self,
        business_id: UUID,
        employee_id: UUID,
        start_date: date,
        end_date: date,
    ) -> list[EmployeeHoliday]:
        stmt = select(EmployeeHoliday).where(
            EmployeeHoliday.business_id == business_id,
            EmployeeHoliday.employee_id == employee_id,
            EmployeeHoliday.start_date <= end_date,
            EmployeeHoliday.end_date >= start_date,
        )
        return list((await self.session.scalars(stmt)).all())
