"""Booking repository layer."""

from __future__ import annotations

import hashlib
from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, delete, func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import (
    BookingPaymentStatusEnum,
    BookingStatusEnum,
    PaymentMethodEnum,
    ResourceKindEnum,
    RoleEnum,
)
from app.modules.booking.models import Booking, ConsentForm
from app.modules.businesses.models import Business, Court, Service
from app.modules.scheduling.conflicts import ScheduledBooking


def resource_lock_key(business_id: UUID, resource_kind: ResourceKindEnum, resource_id: UUID | None) -> int:
    """Stable signed 64-bit key for ``pg_advisory_xact_lock``."""
    raw = f"{business_id}:{resource_kind.value}:{resource_id or '-'}".encode()
    return int.from_bytes(hashlib.blake2b(raw, digest_size=8).digest(), "big", signed=True)


class BookingRepository:
    """DB operations for booking domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def lock_resource_schedule(
        self,
        business_id: UUID,
        resource_kind: ResourceKindEnum,
        resource_id: UUID | None,
    ) -> None:
        """Serialise creations for one resource until the transaction ends."""
        await self.session.execute(
            text("SELECT pg_advisory_xact_lock(:key)"),
            {"key": resource_lock_key(business_id, resource_kind, resource_id)},
        )

    async def list_active_bookings_in_window(
        self,
        business_id: UUID,
        resource_id: UUID | None,
        window_start: datetime,
        window_end: datetime,
        exclude_booking_id: UUID | None = None,
    ) -> list[ScheduledBooking]:
        stmt = (
            select(
                Booking.id,
                Booking.start_at,
                Booking.duration_minutes,
                func.coalesce(Service.duration_minutes, Court.slot_duration_minutes),
                Business.default_booking_duration_minutes,
            )
            .join(Business, Business.id == Booking.business_id)
            .outerjoin(Service, Service.id == Booking.service_id)
            .outerjoin(Court, Court.id == Booking.court_id)
            .where(
                Booking.business_id == business_id,
                Booking.status != BookingStatusEnum.CANCELLED,
                Booking.start_at >= window_start,
                Booking.start_at <= window_end,
            )
            .order_by(Booking.start_at.asc())
        )
        if resource_id is None:
            stmt = stmt.where(Booking.resource_id.is_(None))
        else:
            stmt = stmt.where(Booking.resource_id == resource_id)
        if exclude_booking_id is not None:
            stmt = stmt.where(Booking.id != exclude_booking_id)

        rows = (await self.session.execute(stmt)).all()
        return [
            ScheduledBooking(
                booking_id=row[0],
                start=row[1],
                duration_minutes=row[2],
                linked_duration_minutes=row[3],
                business_default_minutes=row[4],
            )
            for row in rows
        ]

    async def create_booking(
        self,
        *,
        business_id: UUID,
        client_id: UUID,
        service_id: UUID | None,
        court_id: UUID | None,
        resource_kind: ResourceKindEnum,
        resource_id: UUID | None,
        start_at: datetime,
        duration_minutes: int,
        status: BookingStatusEnum,
        paid: bool,
        payment_method: PaymentMethodEnum,
        payment_status: BookingPaymentStatusEnum,
        payment_reused: bool,
        client_notes: str | None,
    ) -> Booking:
        booking = Booking(
            business_id=business_id,
            client_id=client_id,
            service_id=service_id,
            court_id=court_id,
            resource_kind=resource_kind,
            resource_id=resource_id,
            start_at=start_at,
            duration_minutes=duration_minutes,
            status=status,
            paid=paid,
            payment_method=payment_method,
            payment_status=payment_status,
            payment_reused=payment_reused,
            client_notes=client_notes,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def create_consent_form(self, booking_id: UUID, client_id: UUID) -> ConsentForm:
        consent = ConsentForm(booking_id=booking_id, client_id=client_id)
        self.session.add(consent)
        await self.session.flush()
        return consent

    async def sign_consent_form(self, booking_id: UUID, signed_at: datetime) -> None:
        await self.session.execute(
            update(ConsentForm)
            .where(ConsentForm.booking_id == booking_id, ConsentForm.signed_at.is_(None))
            .values(signed_at=signed_at),
        )

    async def get_booking_by_id(self, booking_id: UUID) -> Booking | None:
        return await self.session.get(Booking, booking_id)

    async def save(self, booking: Booking) -> Booking:
        await self.session.flush()
        return booking

    async def refresh(self, booking: Booking) -> Booking:
        await self.session.refresh(booking)
        return booking

    async def list_bookings(
        self,
        *,
        role: RoleEnum,
        user_id: UUID,
        business_id: UUID | None,
        status: BookingStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Booking], int]:
        base_stmt: Select[tuple[Booking]] = select(Booking)

        if role == RoleEnum.CLIENT:
            base_stmt = base_stmt.where(Booking.client_id == user_id)
        elif role in (RoleEnum.BUSINESS, RoleEnum.EMPLOYEE):
            base_stmt = base_stmt.where(Booking.business_id == business_id)
        if status is not None:
            base_stmt = base_stmt.where(Booking.status == status)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Booking.start_at.desc()).limit(limit).offset(offset)
        items = list((await self.session.scalars(stmt)).all())
        return items, total

    async def cancel_if_active(self, booking_id: UUID, cancelled_at: datetime) -> bool:
        """Mark the booking cancelled unless it already is. Returns whether a row changed."""
        result = await self.session.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status != BookingStatusEnum.CANCELLED)
            .values(status=BookingStatusEnum.CANCELLED, cancelled_at=cancelled_at)
            .execution_options(synchronize_session="fetch"),
        )
        return result.rowcount == 1

    async def delete_if_active(self, booking_id: UUID) -> bool:
        """Delete an unpaid booking and its consent form unless already cancelled."""
        result = await self.session.execute(
            delete(Booking)
            .where(Booking.id == booking_id, Booking.status != BookingStatusEnum.CANCELLED)
            .execution_options(synchronize_session="fetch"),
        )
        if result.rowcount != 1:
            return False
        await self.session.execute(delete(ConsentForm).where(ConsentForm.booking_id == booking_id))
        return True

    async def transition_status(
        self,
        booking_id: UUID,
        from_status: BookingStatusEnum,
        to_status: BookingStatusEnum,
    ) -> bool:
        result = await self.session.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == from_status)
            .values(status=to_status)
            .execution_options(synchronize_session="fetch"),
        )
        return result.rowcount == 1

    async def mark_paid_if_unpaid(self, booking_id: UUID) -> bool:
        result = await self.session.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.paid.is_(False))
            .values(paid=True, payment_status=BookingPaymentStatusEnum.PAID)
            .execution_options(synchronize_session="fetch"),
        )
        return result.rowcount == 1

    async def mark_payment_failed(self, booking_id: UUID) -> bool:
        result = await self.session.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.paid.is_(False))
            .values(payment_status=BookingPaymentStatusEnum.FAILED)
            .execution_options(synchronize_session="fetch"),
        )
        return result.rowcount == 1
