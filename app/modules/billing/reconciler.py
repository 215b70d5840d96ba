"""Applies payment provider events to payments and bookings exactly once."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from app.core.cache import CacheInvalidator
from app.core.enums import PaymentStatusEnum
from app.core.metrics import record_webhook_event
from app.modules.audit.repository import AuditRepository
from app.modules.billing.models import Payment
from app.modules.billing.provider import PaymentProviderClient
from app.modules.billing.repository import BillingRepository
from app.modules.booking.access import ensure_access
from app.modules.booking.repository import BookingRepository
from app.modules.identity.models import User
from app.shared.exceptions import ConflictException, ForbiddenException, NotFoundException
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)

INTENT_SUCCEEDED = "payment_intent.succeeded"
INTENT_FAILED = "payment_intent.payment_failed"
CHARGE_REFUNDED = "charge.refunded"


@dataclass(frozen=True, slots=True)
class VerifiedWebhookEvent:
    """Provider event whose signature has been checked against the raw body."""

    event_id: str
    event_type: str
    data_object: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    event_id: str
    event_type: str
    outcome: str


class PaymentReconciler:
    """Payment state machine driven by provider events and direct confirmation."""

    def __init__(
        self,
        billing_repository: BillingRepository,
        booking_repository: BookingRepository,
        audit_repository: AuditRepository,
        cache_invalidator: CacheInvalidator,
    ) -> None:
        self.billing_repository = billing_repository
        self.booking_repository = booking_repository
        self.audit_repository = audit_repository
        self.cache_invalidator = cache_invalidator
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            INTENT_SUCCEEDED: self._on_intent_succeeded,
            INTENT_FAILED: self._on_intent_failed,
            CHARGE_REFUNDED: self._on_charge_refunded,
        }

    async def handle_event(self, event: VerifiedWebhookEvent) -> ReconcileResult:
        """Apply one event; replays of an already processed event are no-ops.

        The ledger row is locked for the whole transaction, so concurrent
        deliveries of the same event wait and then observe ``processed``.
        Effects and the ledger update commit together.
        """
        if not isinstance(event, VerifiedWebhookEvent):
            raise ForbiddenException("Webhook event is not authenticated")

        record = await self.billing_repository.claim_webhook_event(event.event_id, event.event_type)
        if record.processed:
            logger.info("Webhook event %s already processed", event.event_id)
            record_webhook_event(event.event_type, "duplicate")
            return ReconcileResult(event.event_id, event.event_type, "duplicate")

        handler = self._handlers.get(event.event_type)
        if handler is None:
            outcome = "ignored"
        else:
            await handler(event.data_object)
            outcome = "processed"

        await self.billing_repository.mark_webhook_processed(record, utc_now())
        record_webhook_event(event.event_type, outcome)
        return ReconcileResult(event.event_id, event.event_type, outcome)

    async def _on_intent_succeeded(self, intent: dict[str, Any]) -> None:
        await self.apply_success(str(intent.get("id", "")), provider_status=intent.get("status"))

    async def _on_intent_failed(self, intent: dict[str, Any]) -> None:
        intent_id = str(intent.get("id", ""))
        last_error = intent.get("last_payment_error") or {}
        failure_reason = last_error.get("message") or "Payment failed"

        payment = await self.billing_repository.get_payment_by_external_id(intent_id)
        if payment is None:
            logger.warning("No payment found for failed intent %s", intent_id)
            return
        if payment.status != PaymentStatusEnum.PENDING:
            logger.info("Ignoring failure for payment %s in status %s", payment.id, payment.status)
            return

        await self.billing_repository.set_payment_status(
            payment,
            PaymentStatusEnum.FAILED,
            utc_now(),
            metadata={"provider_status": intent.get("status"), "failure_reason": failure_reason},
        )
        # The booking stays in its lifecycle state; only its payment status changes.
        if payment.booking_id is not None:
            await self.booking_repository.mark_payment_failed(payment.booking_id)
        await self.audit_repository.create_audit_log(
            actor_id=None,
            action="billing.payment.failed",
            entity_type="payment",
            entity_id=str(payment.id),
            payload={"intent_id": intent_id, "failure_reason": failure_reason},
        )
        await self.cache_invalidator.invalidate_business_views(payment.business_id)

    async def _on_charge_refunded(self, charge: dict[str, Any]) -> None:
        intent_id = charge.get("payment_intent")
        if not intent_id or not charge.get("refunded"):
            return

        payment = await self.billing_repository.get_payment_by_external_id(str(intent_id))
        if payment is None:
            logger.warning("No payment found for refunded charge %s", charge.get("id"))
            return
        if payment.status != PaymentStatusEnum.SUCCEEDED:
            return

        await self.billing_repository.set_payment_status(
            payment,
            PaymentStatusEnum.REFUNDED,
            utc_now(),
            metadata={"refund_source": "webhook", "charge_id": charge.get("id")},
        )
        await self.cache_invalidator.invalidate_business_views(payment.business_id)

    async def apply_success(self, intent_id: str, provider_status: str | None = None) -> Payment | None:
        """Mark the payment succeeded and its booking paid, unless already done."""
        payment = await self.billing_repository.get_payment_by_external_id(intent_id)
        if payment is None:
            logger.warning("No payment found for succeeded intent %s", intent_id)
            return None
        if payment.status == PaymentStatusEnum.REFUNDED:
            return payment

        payment_changed = payment.status != PaymentStatusEnum.SUCCEEDED
        if payment_changed:
            await self.billing_repository.set_payment_status(
                payment,
                PaymentStatusEnum.SUCCEEDED,
                utc_now(),
                metadata={"provider_status": provider_status},
            )
        booking_changed = payment.booking_id is not None and await self.booking_repository.mark_paid_if_unpaid(
            payment.booking_id,
        )
        if not payment_changed and not booking_changed:
            return payment

        if booking_changed:
            await self.audit_repository.create_outbox_event(
                aggregate_type="booking",
                aggregate_id=str(payment.booking_id),
                event_type="booking.payment.succeeded",
                payload={
                    "booking_id": str(payment.booking_id),
                    "payment_id": str(payment.id),
                    "client_id": str(payment.client_id),
                },
            )
        await self.audit_repository.create_audit_log(
            actor_id=None,
            action="billing.payment.succeeded",
            entity_type="payment",
            entity_id=str(payment.id),
            payload={"intent_id": intent_id, "booking_id": str(payment.booking_id) if payment.booking_id else None},
        )
        await self.cache_invalidator.invalidate_business_views(payment.business_id)
        return payment

    async def confirm_from_provider(
        self,
        intent_id: str,
        actor: User,
        provider: PaymentProviderClient,
        booking_id: UUID | None = None,
    ) -> Payment:
        """Direct confirmation path used when the client returns from checkout."""
        payment = await self.billing_repository.get_payment_by_external_id(intent_id)
        if payment is None:
            raise NotFoundException("Payment not found")
        ensure_access(actor, payment.business_id, payment.client_id)

        if booking_id is not None and payment.booking_id != booking_id:
            if payment.booking_id is not None:
                raise ConflictException("Payment belongs to another booking")
            booking = await self.booking_repository.get_booking_by_id(booking_id)
            if booking is None:
                raise NotFoundException("Booking not found")
            if booking.client_id != payment.client_id or booking.business_id != payment.business_id:
                raise ConflictException("Payment does not match booking")
            await self.billing_repository.link_booking(payment, booking.id)

        intent = await provider.retrieve_intent(intent_id)
        if intent.status != "succeeded":
            raise ConflictException(f"Payment is not completed (status: {intent.status})")

        await self.apply_success(intent_id, provider_status=intent.status)
        return payment
