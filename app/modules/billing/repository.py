"""Billing repository layer."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import BookingStatusEnum, PaymentMethodEnum, PaymentStatusEnum
from app.modules.billing.models import Payment, WebhookEventRecord
from app.modules.booking.models import Booking
from app.shared.exceptions import BusinessRuleException

# SUCCEEDED never goes back to FAILED: a late failure event cannot undo a captured payment.
PAYMENT_TRANSITIONS: dict[PaymentStatusEnum, set[PaymentStatusEnum]] = {
    PaymentStatusEnum.PENDING: {PaymentStatusEnum.SUCCEEDED, PaymentStatusEnum.FAILED},
    PaymentStatusEnum.FAILED: {PaymentStatusEnum.SUCCEEDED},
    PaymentStatusEnum.SUCCEEDED: {PaymentStatusEnum.REFUNDED},
    PaymentStatusEnum.REFUNDED: set(),
}


class BillingRepository:
    """DB access methods for billing."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_payment(
        self,
        *,
        business_id: UUID,
        client_id: UUID,
        booking_id: UUID | None,
        amount: Decimal,
        currency: str,
        method: PaymentMethodEnum,
        external_payment_id: str | None,
    ) -> Payment:
        payment = Payment(
            business_id=business_id,
            client_id=client_id,
            booking_id=booking_id,
            amount=amount,
            currency=currency.upper(),
            method=method,
            external_payment_id=external_payment_id,
            status=PaymentStatusEnum.PENDING,
            payment_metadata={},
        )
        self.session.add(payment)
        await self.session.flush()
        return payment

    async def get_payment_by_id(self, payment_id: UUID) -> Payment | None:
        return await self.session.get(Payment, payment_id)

    async def get_payment_by_external_id(self, external_payment_id: str) -> Payment | None:
        """Load and row-lock the payment so concurrent confirmations serialise."""
        stmt = select(Payment).where(Payment.external_payment_id == external_payment_id).with_for_update()
        return await self.session.scalar(stmt)

    async def get_latest_payment_for_booking(self, booking_id: UUID) -> Payment | None:
        stmt = (
            select(Payment)
            .where(Payment.booking_id == booking_id)
            .order_by(Payment.created_at.desc())
            .limit(1)
            .with_for_update()
        )
        return await self.session.scalar(stmt)

    async def find_reusable_payment(self, client_id: UUID, business_id: UUID) -> Payment | None:
        """Most recent succeeded, unreused payment of a cancelled booking of this client."""
        stmt = (
            select(Payment)
            .join(Booking, Booking.id == Payment.booking_id)
            .where(
                Payment.client_id == client_id,
                Payment.business_id == business_id,
                Payment.status == PaymentStatusEnum.SUCCEEDED,
                Payment.reused.is_(False),
                Booking.status == BookingStatusEnum.CANCELLED,
            )
            .order_by(Payment.created_at.desc())
            .limit(1)
        )
        return await self.session.scalar(stmt)

    async def link_booking(self, payment: Payment, booking_id: UUID) -> Payment:
        payment.booking_id = booking_id
        await self.session.flush()
        return payment

    async def mark_reused_if_available(self, payment_id: UUID) -> bool:
        result = await self.session.execute(
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.reused.is_(False),
                Payment.status == PaymentStatusEnum.SUCCEEDED,
            )
            .values(reused=True)
            .execution_options(synchronize_session="fetch"),
        )
        return result.rowcount == 1

    async def release_reuse(self, payment: Payment) -> Payment:
        payment.reused = False
        await self.session.flush()
        return payment

    async def set_payment_status(
        self,
        payment: Payment,
        status: PaymentStatusEnum,
        changed_at: datetime,
        metadata: dict[str, Any] | None = None,
    ) -> Payment:
        if status not in PAYMENT_TRANSITIONS[payment.status]:
            raise BusinessRuleException(f"Invalid payment status transition: {payment.status} -> {status}")

        payment.status = status
        if status == PaymentStatusEnum.SUCCEEDED:
            payment.paid_at = payment.paid_at or changed_at
        elif status == PaymentStatusEnum.REFUNDED:
            payment.refunded_at = changed_at
        if metadata:
            payment.payment_metadata = {**(payment.payment_metadata or {}), **metadata}
        await self.session.flush()
        return payment

    async def claim_webhook_event(self, event_id: str, event_type: str) -> WebhookEventRecord:
        """Create the ledger row on first sight and lock it for this transaction."""
        await self.session.execute(
            insert(WebhookEventRecord)
            .values(event_id=event_id, event_type=event_type, processed=False)
            .on_conflict_do_nothing(index_elements=[WebhookEventRecord.event_id]),
        )
        stmt = select(WebhookEventRecord).where(WebhookEventRecord.event_id == event_id).with_for_update()
        return (await self.session.scalars(stmt)).one()

    async def mark_webhook_processed(self, record: WebhookEventRecord, processed_at: datetime) -> None:
        record.processed = True
        record.processed_at = processed_at
        await self.session.flush()
