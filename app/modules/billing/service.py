"""Billing business logic layer."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CacheInvalidator, get_cache_invalidator
from app.core.config import Settings, get_settings
from app.core.database import get_db_session
from app.core.enums import BusinessStatusEnum, RoleEnum
from app.modules.audit.repository import AuditRepository
from app.modules.billing.models import Payment
from app.modules.billing.provider import PaymentProviderClient, get_payment_provider
from app.modules.billing.reconciler import PaymentReconciler
from app.modules.billing.refunds import CARD_METHODS
from app.modules.billing.repository import BillingRepository
from app.modules.billing.schemas import PaymentConfirmRequest, PaymentIntentCreate, PaymentIntentRead
from app.modules.booking.access import ensure_access
from app.modules.booking.repository import BookingRepository
from app.modules.businesses.models import Court, Service
from app.modules.businesses.repository import BusinessesRepository
from app.modules.identity.models import User
from app.shared.exceptions import ForbiddenException, NotFoundException, ValidationException
from app.shared.utils import ensure_utc, to_minor_units

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def item_price(service: Service | None, court: Court | None, duration_minutes: int | None) -> Decimal:
    """Service price, or the court's hourly rate for the booked minutes."""
    if service is not None:
        return Decimal(service.price).quantize(CENT, rounding=ROUND_HALF_UP)
    minutes = duration_minutes or court.slot_duration_minutes or 60
    return (Decimal(court.price_per_hour) * minutes / 60).quantize(CENT, rounding=ROUND_HALF_UP)


class BillingService:
    """Card payment intents and their confirmation."""

    def __init__(
        self,
        repository: BillingRepository,
        businesses_repository: BusinessesRepository,
        reconciler: PaymentReconciler,
        provider: PaymentProviderClient,
        settings: Settings,
    ) -> None:
        self.repository = repository
        self.businesses_repository = businesses_repository
        self.reconciler = reconciler
        self.provider = provider
        self.settings = settings

    async def _price_for(self, payload: PaymentIntentCreate) -> Decimal:
        service = court = None
        if payload.service_id is not None:
            service = await self.businesses_repository.get_service(payload.business_id, payload.service_id)
            if service is None:
                raise NotFoundException("Service not found")
        else:
            court = await self.businesses_repository.get_court(payload.business_id, payload.court_id)
            if court is None:
                raise NotFoundException("Court not found")
        return item_price(service, court, payload.duration_minutes)

    async def create_payment_intent(self, payload: PaymentIntentCreate, actor: User) -> PaymentIntentRead:
        """Open a provider intent and record a pending payment for the actor."""
        if actor.role != RoleEnum.CLIENT:
            raise ForbiddenException("Only clients can start payments")
        if payload.payment_method not in CARD_METHODS:
            raise ValidationException("Only card payments go through the payment provider")

        business = await self.businesses_repository.get_business_by_id(payload.business_id)
        if business is None:
            raise NotFoundException("Business not found")
        if business.status == BusinessStatusEnum.SUSPENDED:
            raise ForbiddenException("Business is suspended")

        amount = await self._price_for(payload)
        if amount <= 0:
            raise ValidationException("Nothing to pay for this booking")

        item_id = payload.service_id or payload.court_id
        start_key = ensure_utc(payload.start_at).strftime("%Y%m%dT%H%M")
        intent = await self.provider.create_intent(
            amount_minor=to_minor_units(amount),
            currency=self.settings.payment_currency,
            metadata={
                "business_id": str(business.id),
                "item_id": str(item_id),
                "client_id": str(actor.id),
                "payment_method": payload.payment_method.value,
            },
            idempotency_key=f"intent-{business.id}-{item_id}-{start_key}-{actor.id}",
        )

        # The idempotency key may hand back an intent opened by an earlier request.
        payment = await self.repository.get_payment_by_external_id(intent.intent_id)
        if payment is None:
            payment = await self.repository.create_payment(
                business_id=business.id,
                client_id=actor.id,
                booking_id=None,
                amount=amount,
                currency=self.settings.payment_currency,
                method=payload.payment_method,
                external_payment_id=intent.intent_id,
            )
        return PaymentIntentRead(
            payment_id=payment.id,
            payment_intent_id=intent.intent_id,
            client_secret=intent.client_secret,
            amount=payment.amount,
            currency=payment.currency,
            payment_method=payment.method,
        )

    async def confirm_payment(self, payload: PaymentConfirmRequest, actor: User) -> Payment:
        return await self.reconciler.confirm_from_provider(
            payload.payment_intent_id,
            actor,
            self.provider,
            booking_id=payload.booking_id,
        )

    async def get_payment(self, payment_id: UUID, actor: User) -> Payment:
        payment = await self.repository.get_payment_by_id(payment_id)
        if payment is None:
            raise NotFoundException("Payment not found")
        ensure_access(actor, payment.business_id, payment.client_id)
        return payment


def build_payment_reconciler(session: AsyncSession, cache_invalidator: CacheInvalidator) -> PaymentReconciler:
    return PaymentReconciler(
        billing_repository=BillingRepository(session),
        booking_repository=BookingRepository(session),
        audit_repository=AuditRepository(session),
        cache_invalidator=cache_invalidator,
    )


async def get_payment_reconciler(
    session: AsyncSession = Depends(get_db_session),
    cache_invalidator: CacheInvalidator = Depends(get_cache_invalidator),
) -> PaymentReconciler:
    """Dependency provider for the webhook reconciler."""
    return build_payment_reconciler(session, cache_invalidator)


async def get_billing_service(
    session: AsyncSession = Depends(get_db_session),
    cache_invalidator: CacheInvalidator = Depends(get_cache_invalidator),
    provider: PaymentProviderClient = Depends(get_payment_provider),
) -> BillingService:
    """Dependency provider for billing service."""
    return BillingService(
        repository=BillingRepository(session),
        businesses_repository=BusinessesRepository(session),
        reconciler=build_payment_reconciler(session, cache_invalidator),
        provider=provider,
        settings=get_settings(),
    )
