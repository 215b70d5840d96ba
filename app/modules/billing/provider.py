"""Payment provider client used for refunds and direct confirmation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

import stripe

from app.core.config import Settings, get_settings
from app.shared.exceptions import UpstreamException

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ProviderIntent:
    intent_id: str
    status: str
    amount_minor: int
    currency: str
    metadata: dict[str, str]
    client_secret: str | None = None


@dataclass(frozen=True, slots=True)
class ProviderCharge:
    charge_id: str
    amount_minor: int
    amount_refunded_minor: int
    refunded: bool
    status: str = "succeeded"
    captured: bool = True

    @property
    def refundable_minor(self) -> int:
        return max(self.amount_minor - self.amount_refunded_minor, 0)


@dataclass(frozen=True, slots=True)
class ProviderRefund:
    refund_id: str
    amount_minor: int
    status: str


class PaymentProviderClient(Protocol):
    """Subset of the payment provider API this service relies on."""

    async def create_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> ProviderIntent:
        """Open a payment intent the client completes in the browser."""

    async def retrieve_intent(self, intent_id: str) -> ProviderIntent:
        """Fetch a payment intent."""

    async def list_charges(self, intent_id: str) -> list[ProviderCharge]:
        """List charges created for a payment intent."""

    async def create_refund(self, charge_id: str, amount_minor: int, idempotency_key: str) -> ProviderRefund:
        """Refund ``amount_minor`` of a charge."""


class StripePaymentProvider:
    """Stripe implementation; each call is bounded by the configured timeout."""

    def __init__(self, settings: Settings) -> None:
        self.timeout_seconds = settings.payment_provider_timeout_seconds
        self._client: stripe.StripeClient | None = None
        if settings.stripe_secret_key:
            self._client = stripe.StripeClient(
                settings.stripe_secret_key,
                http_client=stripe.RequestsClient(timeout=settings.payment_provider_timeout_seconds),
                max_network_retries=settings.payment_provider_max_network_retries,
            )
        else:
            logger.warning("Stripe secret key not configured; provider calls will fail")

    def _require_client(self) -> stripe.StripeClient:
        if self._client is None:
            raise UpstreamException("Payment provider is not configured")
        return self._client

    async def _call(self, operation: str, func: Callable[[], T]) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func), timeout=self.timeout_seconds)
        except TimeoutError as exc:
            logger.error("Payment provider %s timed out after %ss", operation, self.timeout_seconds)
            raise UpstreamException(f"Payment provider timed out during {operation}") from exc
        except stripe.StripeError as exc:
            logger.error("Payment provider %s failed: %s", operation, exc.user_message or str(exc))
            raise UpstreamException(f"Payment provider error during {operation}: {exc.user_message or exc}") from exc

    async def create_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> ProviderIntent:
        client = self._require_client()
        intent = await self._call(
            "create_intent",
            lambda: client.payment_intents.create(
                params={
                    "amount": amount_minor,
                    "currency": currency.lower(),
                    "capture_method": "automatic",
                    "automatic_payment_methods": {"enabled": True},
                    "metadata": metadata,
                },
                options={"idempotency_key": idempotency_key},
            ),
        )
        return _intent_from_stripe(intent)

    async def retrieve_intent(self, intent_id: str) -> ProviderIntent:
        client = self._require_client()
        intent = await self._call("retrieve_intent", lambda: client.payment_intents.retrieve(intent_id))
        return _intent_from_stripe(intent)

    async def list_charges(self, intent_id: str) -> list[ProviderCharge]:
        client = self._require_client()
        charges = await self._call(
            "list_charges",
            lambda: client.charges.list(params={"payment_intent": intent_id, "limit": 10}),
        )
        return [_charge_from_stripe(charge) for charge in charges.data]

    async def create_refund(self, charge_id: str, amount_minor: int, idempotency_key: str) -> ProviderRefund:
        client = self._require_client()
        refund = await self._call(
            "create_refund",
            lambda: client.refunds.create(
                params={"charge": charge_id, "amount": amount_minor},
                options={"idempotency_key": idempotency_key},
            ),
        )
        return ProviderRefund(refund_id=refund.id, amount_minor=int(refund.amount or 0), status=str(refund.status))


def _intent_from_stripe(intent: Any) -> ProviderIntent:
    return ProviderIntent(
        intent_id=intent.id,
        status=str(intent.status),
        amount_minor=int(intent.amount or 0),
        currency=str(intent.currency or "").upper(),
        metadata=dict(intent.metadata or {}),
        client_secret=intent.client_secret,
    )


def _charge_from_stripe(charge: Any) -> ProviderCharge:
    return ProviderCharge(
        charge_id=charge.id,
        amount_minor=int(charge.amount or 0),
        amount_refunded_minor=int(charge.amount_refunded or 0),
        refunded=bool(charge.refunded),
        status=str(charge.status),
        captured=bool(charge.captured),
    )


def get_payment_provider() -> PaymentProviderClient:
    """Dependency provider for the payment provider client."""
    return StripePaymentProvider(get_settings())
