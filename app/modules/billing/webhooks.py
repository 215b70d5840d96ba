"""Webhook authentication against the raw request body."""

from __future__ import annotations

import json
import logging

import stripe

from app.core.metrics import record_webhook_event
from app.modules.billing.reconciler import VerifiedWebhookEvent
from app.shared.exceptions import InternalException, WebhookSignatureException

logger = logging.getLogger(__name__)


def verify_webhook_signature(payload: bytes, signature: str | None, secret: str | None) -> VerifiedWebhookEvent:
    """Check the provider signature over ``payload`` exactly as received."""
    if not secret:
        logger.error("Webhook secret is not configured")
        raise InternalException("Webhook secret is not configured")
    if not signature:
        record_webhook_event("unknown", "invalid_signature")
        logger.warning("Webhook rejected: missing signature header")
        raise WebhookSignatureException("Missing webhook signature")

    try:
        stripe.Webhook.construct_event(payload, signature, secret)
    except stripe.SignatureVerificationError as exc:
        record_webhook_event("unknown", "invalid_signature")
        logger.warning("Webhook rejected: signature verification failed")
        raise WebhookSignatureException("Invalid webhook signature") from exc
    except ValueError as exc:
        record_webhook_event("unknown", "invalid_payload")
        logger.warning("Webhook rejected: payload is not valid JSON")
        raise WebhookSignatureException("Invalid webhook payload") from exc

    body = json.loads(payload)
    event_id, event_type = body.get("id"), body.get("type")
    if not event_id or not event_type:
        record_webhook_event("unknown", "invalid_payload")
        raise WebhookSignatureException("Webhook event is missing id or type")

    data_object = (body.get("data") or {}).get("object") or {}
    return VerifiedWebhookEvent(event_id=str(event_id), event_type=str(event_type), data_object=data_object)
