"""Outbox consumer that turns booking events into client notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from app.core.enums import NotificationStatusEnum
from app.modules.audit.models import OutboxEvent
from app.modules.audit.repository import AuditRepository
from app.modules.notifications.repository import NotificationsRepository
from app.modules.notifications.sender import NotificationSender
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)

CONFIRMATION = "confirmation"
CANCELLATION = "cancellation"


@dataclass(slots=True)
class NotificationMessage:
    user_id: UUID
    booking_id: UUID | None
    kind: str
    title: str
    body: str
    channel: str = "sms"


class NotificationsOutboxWorker:
    """Process outbox events, record notifications and hand them to the sender."""

    def __init__(
        self,
        audit_repository: AuditRepository,
        notifications_repository: NotificationsRepository,
        sender: NotificationSender,
        *,
        batch_size: int = 100,
        max_retries: int = 5,
        base_backoff_seconds: int = 30,
        max_backoff_seconds: int = 300,
        now_provider=utc_now,
    ) -> None:
        self.audit_repository = audit_repository
        self.notifications_repository = notifications_repository
        self.sender = sender
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.now_provider = now_provider

    async def run_once(self) -> dict[str, int]:
        """Run one processing cycle."""
        stats = {"requeued": 0, "processed": 0, "failed": 0, "dispatched": 0}
        stats["requeued"] = await self._requeue_retryable_failed_events()

        events = await self.audit_repository.list_pending_outbox(limit=self.batch_size)
        for event in events:
            try:
                messages = self._build_messages(event)
                for message in messages:
                    await self._dispatch(event, message)
                    stats["dispatched"] += 1

                await self.audit_repository.mark_outbox_processed(event, self.now_provider())
                stats["processed"] += 1
            except Exception as exc:
                logger.exception("Outbox event %s (%s) failed", event.id, event.event_type)
                await self.audit_repository.mark_outbox_failed(event, str(exc))
                stats["failed"] += 1
        return stats

    async def _dispatch(self, event: OutboxEvent, message: NotificationMessage) -> None:
        notification = await self.notifications_repository.create_notification(
            user_id=message.user_id,
            booking_id=message.booking_id,
            event_type=event.event_type,
            channel=message.channel,
            title=message.title,
            body=message.body,
        )
        try:
            if message.kind == CANCELLATION:
                await self.sender.send_cancellation(notification)
            else:
                await self.sender.send_confirmation(notification)
        except Exception as exc:
            await self.notifications_repository.set_status(
                notification,
                NotificationStatusEnum.FAILED,
                None,
                error_message=str(exc),
            )
            raise
        await self.notifications_repository.set_status(
            notification,
            NotificationStatusEnum.SENT,
            self.now_provider(),
        )

    async def _requeue_retryable_failed_events(self) -> int:
        now = self.now_provider()
        failed_events = await self.audit_repository.list_failed_outbox(
            limit=self.batch_size,
            max_retries=self.max_retries,
        )
        requeued = 0
        for event in failed_events:
            if self._is_backoff_elapsed(event, now):
                await self.audit_repository.mark_outbox_pending(event)
                requeued += 1
        return requeued

    def _is_backoff_elapsed(self, event: OutboxEvent, now: datetime) -> bool:
        retries = max(event.retries, 1)
        backoff_seconds = min(
            self.max_backoff_seconds,
            self.base_backoff_seconds * (2 ** (retries - 1)),
        )
        last_attempt_at = event.updated_at or event.occurred_at
        return now >= last_attempt_at + timedelta(seconds=backoff_seconds)

    def _build_messages(self, event: OutboxEvent) -> list[NotificationMessage]:
        payload = event.payload or {}
        event_type = event.event_type

        if event_type == "booking.confirmed":
            client_id = self._required_uuid(payload, "client_id")
            return [
                NotificationMessage(
                    user_id=client_id,
                    booking_id=self._optional_uuid(payload, "booking_id"),
                    kind=CONFIRMATION,
                    title="Booking confirmed",
                    body=f"Your booking on {self._format_start(payload)} has been confirmed.",
                ),
            ]

        if event_type == "booking.cancelled":
            client_id = self._required_uuid(payload, "client_id")
            body = f"Your booking on {self._format_start(payload)} has been cancelled."
            if payload.get("refund_performed"):
                body += " The payment has been refunded."
            elif payload.get("credit_available"):
                body += " The payment stays available for your next booking."
            return [
                NotificationMessage(
                    user_id=client_id,
                    booking_id=self._optional_uuid(payload, "booking_id"),
                    kind=CANCELLATION,
                    title="Booking cancelled",
                    body=body,
                ),
            ]

        if event_type == "booking.payment.succeeded":
            client_id = self._required_uuid(payload, "client_id")
            return [
                NotificationMessage(
                    user_id=client_id,
                    booking_id=self._optional_uuid(payload, "booking_id"),
                    kind=CONFIRMATION,
                    title="Payment received",
                    body="Your payment was received and your booking is paid.",
                ),
            ]

        logger.info("Outbox event type %s has no notification, skipping", event_type)
        return []

    @staticmethod
    def _format_start(payload: dict) -> str:
        value = payload.get("start_at")
        if not value:
            return "the selected date"
        return datetime.fromisoformat(value).strftime("%d.%m.%Y %H:%M")

    @staticmethod
    def _required_uuid(payload: dict, key: str) -> UUID:
        value = payload.get(key)
        if value is None:
            raise ValueError(f"Missing required key: {key}")
        return UUID(str(value))

    @staticmethod
    def _optional_uuid(payload: dict, key: str) -> UUID | None:
        value = payload.get(key)
        if value is None:
            return None
        return UUID(str(value))
