"""Billing API router: payment intents, confirmation and provider webhooks."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Header, Request, status

from app.core.config import get_settings
from app.modules.billing.reconciler import PaymentReconciler
from app.modules.billing.schemas import (
    PaymentConfirmRequest,
    PaymentIntentCreate,
    PaymentIntentRead,
    PaymentRead,
    WebhookAck,
)
from app.modules.billing.service import BillingService, get_billing_service, get_payment_reconciler
from app.modules.billing.webhooks import verify_webhook_signature
from app.modules.identity.service import get_current_user

router = APIRouter(tags=["billing"])


@router.post("/payments/intents", response_model=PaymentIntentRead, status_code=status.HTTP_201_CREATED)
async def create_payment_intent(
    payload: PaymentIntentCreate,
    service: BillingService = Depends(get_billing_service),
    current_user=Depends(get_current_user),
) -> PaymentIntentRead:
    """Open a card payment for an upcoming booking."""
    return await service.create_payment_intent(payload, current_user)


@router.post("/payments/confirm", response_model=PaymentRead)
async def confirm_payment(
    payload: PaymentConfirmRequest,
    service: BillingService = Depends(get_billing_service),
    current_user=Depends(get_current_user),
) -> PaymentRead:
    """Confirm a completed payment intent without waiting for the webhook."""
    payment = await service.confirm_payment(payload, current_user)
    return PaymentRead.model_validate(payment)


@router.get("/payments/{payment_id}", response_model=PaymentRead)
async def get_payment(
    payment_id: UUID,
    service: BillingService = Depends(get_billing_service),
    current_user=Depends(get_current_user),
) -> PaymentRead:
    payment = await service.get_payment(payment_id, current_user)
    return PaymentRead.model_validate(payment)


@router.post("/webhooks/payments", response_model=WebhookAck)
async def receive_payment_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
) -> WebhookAck:
    """Verify the raw body signature, then reconcile the event."""
    payload = await request.body()
    event = verify_webhook_signature(payload, stripe_signature, get_settings().stripe_webhook_secret)
    await reconciler.handle_event(event)
    return WebhookAck()
