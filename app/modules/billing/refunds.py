"""Refund eligibility and amount-capped, idempotent refunds."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.core.enums import PaymentMethodEnum, PaymentStatusEnum, RoleEnum
from app.core.metrics import record_refund_attempt
from app.modules.billing.models import Payment
from app.modules.billing.provider import PaymentProviderClient, ProviderCharge
from app.modules.billing.repository import BillingRepository
from app.modules.booking.models import Booking
from app.shared.exceptions import UpstreamException
from app.shared.utils import to_minor_units, utc_now

logger = logging.getLogger(__name__)

CARD_METHODS = frozenset(
    {
        PaymentMethodEnum.CARD,
        PaymentMethodEnum.APPLEPAY,
        PaymentMethodEnum.GOOGLEPAY,
        PaymentMethodEnum.KLARNA,
    },
)


@dataclass(frozen=True, slots=True)
class RefundOutcome:
    performed: bool
    error: str | None = None
    amount_minor: int | None = None
    skipped_reason: str | None = None


def _pick_charge(charges: list[ProviderCharge]) -> ProviderCharge | None:
    """The captured charge of the intent; declined attempts are listed too."""
    for charge in charges:
        if charge.status == "succeeded" and charge.captured and charge.amount_minor > 0:
            return charge
    return None


class RefundProcessor:
    """Refunds card payments of cancelled bookings.

    Client cancellations refund automatically; staff cancellations only when
    explicitly asked. Non-card payments are left untouched so the client can
    reuse them as credit. The refunded amount never exceeds what is left on
    the provider charge nor the locally recorded amount.
    """

    def __init__(self, provider: PaymentProviderClient, billing_repository: BillingRepository) -> None:
        self.provider = provider
        self.billing_repository = billing_repository

    @staticmethod
    def skip_reason(booking: Booking, payment: Payment | None, actor_role: RoleEnum, refund_requested: bool) -> str | None:
        if not booking.paid or payment is None:
            return "not_paid"
        if booking.payment_method not in CARD_METHODS or payment.method not in CARD_METHODS:
            return "credit_reuse"
        if actor_role != RoleEnum.CLIENT and not refund_requested:
            return "not_requested"
        if payment.status == PaymentStatusEnum.REFUNDED:
            return "already_refunded"
        if payment.status != PaymentStatusEnum.SUCCEEDED:
            return "not_captured"
        return None

    async def maybe_refund(
        self,
        booking: Booking,
        payment: Payment | None,
        actor_role: RoleEnum,
        refund_requested: bool,
    ) -> RefundOutcome:
        reason = self.skip_reason(booking, payment, actor_role, refund_requested)
        if reason is not None:
            logger.info("Refund skipped for booking %s: %s", booking.id, reason)
            return RefundOutcome(performed=False, skipped_reason=reason)

        if not payment.external_payment_id:
            logger.error("Payment %s has no provider reference, cannot refund", payment.id)
            record_refund_attempt("failed")
            return RefundOutcome(performed=False, error="Payment has no provider reference")

        try:
            charges = await self.provider.list_charges(payment.external_payment_id)
            charge = _pick_charge(charges)
            if charge is None:
                record_refund_attempt("failed")
                logger.error("No charge found for payment intent %s", payment.external_payment_id)
                return RefundOutcome(performed=False, error="No charge found for this payment")

            if charge.refunded or charge.refundable_minor == 0:
                # Refunded outside this service; bring the local ledger up to date.
                await self.billing_repository.set_payment_status(
                    payment,
                    PaymentStatusEnum.REFUNDED,
                    utc_now(),
                    metadata={"refund_source": "provider"},
                )
                record_refund_attempt("already_refunded")
                return RefundOutcome(performed=False, skipped_reason="already_refunded")

            amount_minor = min(charge.refundable_minor, to_minor_units(payment.amount))
            refund = await self.provider.create_refund(
                charge.charge_id,
                amount_minor,
                idempotency_key=f"refund-{payment.id}",
            )
        except UpstreamException as exc:
            record_refund_attempt("failed")
            logger.error("Refund failed for booking %s payment %s: %s", booking.id, payment.id, exc.message)
            return RefundOutcome(performed=False, error=exc.message)

        await self.billing_repository.set_payment_status(
            payment,
            PaymentStatusEnum.REFUNDED,
            utc_now(),
            metadata={"refund_id": refund.refund_id, "refund_amount_minor": refund.amount_minor or amount_minor},
        )
        record_refund_attempt("succeeded")
        logger.info("Refunded %s minor units for booking %s", amount_minor, booking.id)
        return RefundOutcome(performed=True, amount_minor=amount_minor)
