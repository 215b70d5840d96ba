"""Booking business logic layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CacheInvalidator, get_cache_invalidator
from app.core.config import Settings, get_settings
from app.core.database import get_db_session
from app.core.enums import (
    BookingPaymentStatusEnum,
    BookingStatusEnum,
    PaymentStatusEnum,
    RoleEnum,
)
from app.core.metrics import record_booking_operation
from app.modules.audit.repository import AuditRepository
from app.modules.billing.models import Payment
from app.modules.billing.provider import PaymentProviderClient, get_payment_provider
from app.modules.billing.refunds import RefundOutcome, RefundProcessor
from app.modules.billing.repository import BillingRepository
from app.modules.billing.service import item_price
from app.modules.booking.access import ensure_access
from app.modules.booking.models import Booking
from app.modules.booking.policy import PRIVILEGED_ROLES, CancellationPolicy
from app.modules.booking.repository import BookingRepository
from app.modules.booking.schemas import BookingCancelRequest, BookingCreate
from app.modules.businesses.repository import BusinessesRepository
from app.modules.identity.models import User
from app.modules.scheduling.service import BookingTarget, SchedulingService
from app.shared.exceptions import (
    BookingAlreadyCancelledException,
    BusinessRuleException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from app.shared.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[BookingStatusEnum, set[BookingStatusEnum]] = {
    BookingStatusEnum.PENDING_CONSENT: {BookingStatusEnum.CONFIRMED, BookingStatusEnum.CANCELLED},
    BookingStatusEnum.CONFIRMED: {BookingStatusEnum.CANCELLED, BookingStatusEnum.COMPLETED},
    BookingStatusEnum.CANCELLED: set(),
    BookingStatusEnum.COMPLETED: set(),
}


@dataclass(frozen=True, slots=True)
class CancellationResult:
    success: bool
    refund_performed: bool
    refund_error: str | None
    message: str


def _cancellation_message(refund: RefundOutcome) -> str:
    if refund.performed:
        return "Booking cancelled. The payment has been refunded."
    if refund.error:
        return "Booking cancelled. The refund could not be processed and will be handled manually."
    if refund.skipped_reason == "credit_reuse":
        return "Booking cancelled. The payment stays available for a future booking."
    if refund.skipped_reason == "already_refunded":
        return "Booking cancelled. The payment was already refunded."
    return "Booking cancelled."


class BookingService:
    """Booking lifecycle: create, confirm consent, complete and cancel."""

    def __init__(
        self,
        booking_repository: BookingRepository,
        billing_repository: BillingRepository,
        audit_repository: AuditRepository,
        scheduling_service: SchedulingService,
        refund_processor: RefundProcessor,
        cache_invalidator: CacheInvalidator,
        settings: Settings,
    ) -> None:
        self.booking_repository = booking_repository
        self.billing_repository = billing_repository
        self.audit_repository = audit_repository
        self.scheduling_service = scheduling_service
        self.refund_processor = refund_processor
        self.cache_invalidator = cache_invalidator
        self.settings = settings
        self.policy = CancellationPolicy.from_settings(settings)

    def _resolve_client_id(self, payload: BookingCreate, actor: User) -> UUID:
        if actor.role == RoleEnum.CLIENT:
            if payload.client_id is not None and payload.client_id != actor.id:
                raise ForbiddenException("Clients can only book for themselves")
            return actor.id

        if actor.role != RoleEnum.SUPERADMIN and actor.business_id != payload.business_id:
            raise ForbiddenException("You cannot create bookings for this business")
        if payload.client_id is None:
            raise ValidationException("client_id is required when booking on behalf of a client")
        return payload.client_id

    async def _take_reused_payment(self, client_id: UUID, business_id: UUID) -> Payment:
        payment = await self.billing_repository.find_reusable_payment(client_id, business_id)
        if payment is None:
            raise BusinessRuleException("No payment available for reuse")
        if not await self.billing_repository.mark_reused_if_available(payment.id):
            raise ConflictException("The payment was reused by another booking")
        return payment

    async def _attach_payment_intent(self, booking: Booking, intent_id: str) -> None:
        payment = await self.billing_repository.get_payment_by_external_id(intent_id)
        if payment is None:
            raise NotFoundException("Payment not found")
        if payment.client_id != booking.client_id or payment.business_id != booking.business_id:
            raise ForbiddenException("Payment belongs to another client")
        if payment.booking_id is not None:
            raise ConflictException("Payment is already attached to a booking")

        await self.billing_repository.link_booking(payment, booking.id)
        booking.payment_method = payment.method
        if payment.status == PaymentStatusEnum.SUCCEEDED:
            booking.paid = True
            booking.payment_status = BookingPaymentStatusEnum.PAID
        elif payment.status == PaymentStatusEnum.FAILED:
            booking.payment_status = BookingPaymentStatusEnum.FAILED
        await self.booking_repository.save(booking)

    async def _record_desk_payment(self, booking: Booking, target: BookingTarget, now: datetime) -> None:
        """Payment taken by staff outside the provider; later reusable as credit."""
        payment = await self.billing_repository.create_payment(
            business_id=booking.business_id,
            client_id=booking.client_id,
            booking_id=booking.id,
            amount=item_price(target.service, target.court, booking.duration_minutes),
            currency=self.settings.payment_currency,
            method=booking.payment_method,
            external_payment_id=None,
        )
        await self.billing_repository.set_payment_status(payment, PaymentStatusEnum.SUCCEEDED, now)

    async def create_booking(self, payload: BookingCreate, actor: User) -> Booking:
        """Validate and insert a booking while holding the resource's schedule lock."""
        client_id = self._resolve_client_id(payload, actor)

        now = utc_now()
        start = ensure_utc(payload.start_at)
        if not self.policy.has_min_lead(start, now):
            raise BusinessRuleException(
                f"Bookings must be made at least {self.settings.booking_min_lead_minutes} minutes in advance",
            )

        target = await self.scheduling_service.resolve_target(
            payload.business_id,
            payload.service_id,
            payload.court_id,
            payload.employee_id,
        )
        duration = payload.duration_minutes or target.resource.duration_minutes
        if duration > self.settings.max_booking_duration_minutes:
            raise BusinessRuleException(
                f"Bookings cannot last longer than {self.settings.max_booking_duration_minutes} minutes",
            )
        end = start + timedelta(minutes=duration)
        self.scheduling_service.check_working_hours(target, start, end)

        resource = target.resource
        await self.booking_repository.lock_resource_schedule(payload.business_id, resource.kind, resource.resource_id)

        conflicts = await self.scheduling_service.conflict_detector.find_conflicts(
            resource.resource_id,
            start,
            end,
            payload.business_id,
        )
        if conflicts:
            record_booking_operation("create", "conflict")
            logger.warning(
                "Booking conflict on resource %s at %s: %s",
                resource.resource_id,
                start.isoformat(),
                [str(item.booking_id) for item in conflicts],
            )
            raise ConflictException(
                "The selected time overlaps an existing booking",
                details={"conflicting_booking_ids": [str(item.booking_id) for item in conflicts]},
            )

        blackout = await self.scheduling_service.find_blocking_blackout(target, start, end)
        if blackout is not None:
            record_booking_operation("create", "blackout")
            raise ConflictException(
                "The selected time falls into a closed period",
                details={
                    "start_date": blackout.start_date.isoformat(),
                    "end_date": blackout.end_date.isoformat(),
                    "reason": blackout.reason,
                },
            )

        status = (
            BookingStatusEnum.PENDING_CONSENT if target.business.requires_consent else BookingStatusEnum.CONFIRMED
        )

        reused_payment = None
        if payload.payment_reused:
            reused_payment = await self._take_reused_payment(client_id, payload.business_id)
            paid = True
        else:
            # Clients cannot declare a booking paid; staff record payments taken at the desk.
            paid = payload.paid and actor.role in PRIVILEGED_ROLES

        booking = await self.booking_repository.create_booking(
            business_id=payload.business_id,
            client_id=client_id,
            service_id=payload.service_id,
            court_id=payload.court_id,
            resource_kind=resource.kind,
            resource_id=resource.resource_id,
            start_at=start,
            duration_minutes=duration,
            status=status,
            paid=paid,
            payment_method=reused_payment.method if reused_payment is not None else payload.payment_method,
            payment_status=BookingPaymentStatusEnum.PAID if paid else BookingPaymentStatusEnum.PENDING,
            payment_reused=reused_payment is not None,
            client_notes=payload.client_notes,
        )
        if reused_payment is not None:
            # The credit now pays for this booking; cancelling it must find the payment again.
            await self.billing_repository.link_booking(reused_payment, booking.id)
        elif payload.payment_intent_id is not None:
            await self._attach_payment_intent(booking, payload.payment_intent_id)
        elif paid:
            await self._record_desk_payment(booking, target, now)
        if status == BookingStatusEnum.PENDING_CONSENT:
            await self.booking_repository.create_consent_form(booking.id, client_id)

        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="booking.create",
            entity_type="booking",
            entity_id=str(booking.id),
            payload={
                "status": str(status),
                "resource_kind": str(resource.kind),
                "resource_id": str(resource.resource_id) if resource.resource_id else None,
                "start_at": start.isoformat(),
                "duration_minutes": duration,
                "reused_payment_id": str(reused_payment.id) if reused_payment is not None else None,
            },
        )
        if status == BookingStatusEnum.CONFIRMED:
            await self._enqueue_confirmation(booking)

        await self.cache_invalidator.invalidate_business_views(booking.business_id)
        record_booking_operation("create", "succeeded")
        logger.info("Booking %s created with status %s", booking.id, status)
        return booking

    async def _enqueue_confirmation(self, booking: Booking) -> None:
        await self.audit_repository.create_outbox_event(
            aggregate_type="booking",
            aggregate_id=str(booking.id),
            event_type="booking.confirmed",
            payload={
                "booking_id": str(booking.id),
                "business_id": str(booking.business_id),
                "client_id": str(booking.client_id),
                "start_at": booking.start_at.isoformat(),
            },
        )

    async def get_booking(self, booking_id: UUID, actor: User) -> Booking:
        booking = await self.booking_repository.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        ensure_access(actor, booking.business_id, booking.client_id)
        return booking

    async def list_bookings(
        self,
        actor: User,
        status: BookingStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Booking], int]:
        if actor.role in (RoleEnum.BUSINESS, RoleEnum.EMPLOYEE) and actor.business_id is None:
            raise ForbiddenException("Your account is not linked to a business")
        return await self.booking_repository.list_bookings(
            role=actor.role,
            user_id=actor.id,
            business_id=actor.business_id,
            status=status,
            limit=limit,
            offset=offset,
        )

    async def _transition(self, booking: Booking, to_status: BookingStatusEnum) -> Booking:
        if to_status not in ALLOWED_TRANSITIONS[booking.status]:
            raise BusinessRuleException(f"Invalid booking status transition: {booking.status} -> {to_status}")
        if not await self.booking_repository.transition_status(booking.id, booking.status, to_status):
            raise ConflictException("Booking was modified concurrently")
        return await self.booking_repository.refresh(booking)

    async def confirm_consent(self, booking_id: UUID, actor: User) -> Booking:
        """Move a booking waiting for its consent form to CONFIRMED."""
        booking = await self.get_booking(booking_id, actor)
        from_status = booking.status
        booking = await self._transition(booking, BookingStatusEnum.CONFIRMED)
        await self.booking_repository.sign_consent_form(booking.id, utc_now())

        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="booking.confirm",
            entity_type="booking",
            entity_id=str(booking.id),
            payload={"from_status": str(from_status), "to_status": str(booking.status)},
        )
        await self._enqueue_confirmation(booking)
        await self.cache_invalidator.invalidate_business_views(booking.business_id)
        record_booking_operation("confirm", "succeeded")
        return booking

    async def complete_booking(self, booking_id: UUID, actor: User) -> Booking:
        booking = await self.get_booking(booking_id, actor)
        if actor.role not in PRIVILEGED_ROLES:
            raise ForbiddenException("Only the business can complete bookings")

        booking = await self._transition(booking, BookingStatusEnum.COMPLETED)
        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="booking.complete",
            entity_type="booking",
            entity_id=str(booking.id),
            payload={"to_status": str(booking.status)},
        )
        await self.cache_invalidator.invalidate_business_views(booking.business_id)
        record_booking_operation("complete", "succeeded")
        return booking

    async def cancel_booking(self, booking_id: UUID, payload: BookingCancelRequest, actor: User) -> CancellationResult:
        """Cancel once; paid bookings stay as CANCELLED, unpaid ones are removed.

        The conditional update or delete decides which of two racing requests
        wins. The loser gets ``BookingAlreadyCancelledException`` before any
        refund or notification is attempted.
        """
        booking = await self.booking_repository.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        ensure_access(actor, booking.business_id, booking.client_id)

        now = utc_now()
        decision = self.policy.can_cancel(actor.role, booking, now)
        if decision.already_cancelled:
            record_booking_operation("cancel", "already_cancelled")
            raise BookingAlreadyCancelledException(decision.reason or "Booking is already cancelled")
        if not decision.allowed:
            record_booking_operation("cancel", "denied")
            logger.warning("Cancellation of booking %s denied for %s: %s", booking.id, actor.role, decision.reason)
            raise BusinessRuleException(decision.reason or "Booking cannot be cancelled")

        paid = booking.paid
        business_id, client_id, start_at = booking.business_id, booking.client_id, booking.start_at
        if paid:
            changed = await self.booking_repository.cancel_if_active(booking.id, now)
        else:
            changed = await self.booking_repository.delete_if_active(booking.id)
        if not changed:
            record_booking_operation("cancel", "already_cancelled")
            raise BookingAlreadyCancelledException("Booking is already cancelled")

        payment = None
        if paid:
            payment = await self.billing_repository.get_latest_payment_for_booking(booking_id)
            refund = await self.refund_processor.maybe_refund(booking, payment, actor.role, payload.refund_payment)
        else:
            refund = RefundOutcome(performed=False, skipped_reason="not_paid")
        credit_available = (
            payment is not None and refund.error is None and payment.status == PaymentStatusEnum.SUCCEEDED
        )
        if credit_available and payment.reused:
            # A credit spent on this booking becomes available again.
            await self.billing_repository.release_reuse(payment)

        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="booking.cancel",
            entity_type="booking",
            entity_id=str(booking_id),
            payload={
                "paid": paid,
                "deleted": not paid,
                "refund_performed": refund.performed,
                "refund_amount_minor": refund.amount_minor,
                "refund_error": refund.error,
                "payment_id": str(payment.id) if payment is not None else None,
            },
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="booking",
            aggregate_id=str(booking_id),
            event_type="booking.cancelled",
            payload={
                "booking_id": str(booking_id),
                "business_id": str(business_id),
                "client_id": str(client_id),
                "start_at": start_at.isoformat(),
                "cancelled_by": str(actor.role),
                "refund_performed": refund.performed,
                "credit_available": credit_available,
            },
        )
        await self.cache_invalidator.invalidate_business_views(business_id)
        record_booking_operation("cancel", "succeeded")
        logger.info("Booking %s cancelled by %s (refund performed: %s)", booking_id, actor.role, refund.performed)

        return CancellationResult(
            success=True,
            refund_performed=refund.performed,
            refund_error=refund.error,
            message=_cancellation_message(refund),
        )


async def get_booking_service(
    session: AsyncSession = Depends(get_db_session),
    cache_invalidator: CacheInvalidator = Depends(get_cache_invalidator),
    provider: PaymentProviderClient = Depends(get_payment_provider),
) -> BookingService:
    """Dependency provider for booking service."""
    settings = get_settings()
    booking_repository = BookingRepository(session)
    billing_repository = BillingRepository(session)
    return BookingService(
        booking_repository=booking_repository,
        billing_repository=billing_repository,
        audit_repository=AuditRepository(session),
        scheduling_service=SchedulingService(BusinessesRepository(session), booking_repository, settings),
        refund_processor=RefundProcessor(provider, billing_repository),
        cache_invalidator=cache_invalidator,
        settings=settings,
    )
