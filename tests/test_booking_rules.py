from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest

import app.modules.booking.service as booking_service_module
from app.core.config import Settings
from app.core.enums import (
    BookingPaymentStatusEnum,
    BookingStatusEnum,
    BusinessStatusEnum,
    PaymentMethodEnum,
    PaymentStatusEnum,
    ResourceKindEnum,
    RoleEnum,
)
from app.modules.billing.provider import ProviderCharge, ProviderRefund
from app.modules.billing.refunds import RefundProcessor
from app.modules.booking.schemas import BookingCancelRequest, BookingCreate
from app.modules.booking.service import BookingService
from app.modules.scheduling.conflicts import ScheduledBooking
from app.modules.scheduling.service import SchedulingService
from app.shared.exceptions import (
    BookingAlreadyCancelledException,
    BusinessRuleException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    UpstreamException,
)

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)
TUESDAY_10 = datetime(2026, 3, 3, 10, 0, tzinfo=UTC)
OPEN_WEEKDAYS = {
    day: {"enabled": True, "slots": [{"start": "09:00", "end": "18:00"}]}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}


@dataclass
class FakeBooking:
    id: UUID
    business_id: UUID
    client_id: UUID
    service_id: UUID | None
    court_id: UUID | None
    resource_kind: ResourceKindEnum
    resource_id: UUID | None
    start_at: datetime
    duration_minutes: int | None
    status: BookingStatusEnum
    paid: bool
    payment_method: PaymentMethodEnum
    payment_status: BookingPaymentStatusEnum
    payment_reused: bool = False
    client_notes: str | None = None
    reminder_sent_at: datetime | None = None
    cancelled_at: datetime | None = None


@dataclass
class FakePayment:
    id: UUID
    business_id: UUID
    client_id: UUID
    booking_id: UUID | None
    amount: Decimal
    method: PaymentMethodEnum
    status: PaymentStatusEnum
    external_payment_id: str | None
    reused: bool = False
    payment_metadata: dict = field(default_factory=dict)


class FakeBusinessesRepository:
    def __init__(self) -> None:
        self.businesses: dict[UUID, SimpleNamespace] = {}
        self.services: dict[UUID, SimpleNamespace] = {}
        self.courts: dict[UUID, SimpleNamespace] = {}
        self.staff: dict[UUID, SimpleNamespace] = {}
        self.holidays: list[SimpleNamespace] = []

    async def get_business_by_id(self, business_id: UUID):
        return self.businesses.get(business_id)

    async def get_service(self, business_id: UUID, service_id: UUID):
        service = self.services.get(service_id)
        return service if service is not None and service.business_id == business_id else None

    async def get_court(self, business_id: UUID, court_id: UUID):
        court = self.courts.get(court_id)
        return court if court is not None and court.business_id == business_id else None

    async def get_staff_member(self, business_id: UUID, user_id: UUID):
        member = self.staff.get(user_id)
        return member if member is not None and member.business_id == business_id else None

    async def list_business_holidays(self, business_id: UUID, first_day: date, last_day: date):
        return [item for item in self.holidays if item.business_id == business_id]

    async def list_employee_holidays(self, business_id: UUID, employee_id: UUID, first_day: date, last_day: date):
        return []


class FakeBookingRepository:
    def __init__(self) -> None:
        self.bookings: dict[UUID, FakeBooking] = {}
        self.consent_forms: dict[UUID, datetime | None] = {}
        self.locks: list[tuple] = []
        self.lose_cancel_race = False

    async def lock_resource_schedule(self, business_id, resource_kind, resource_id) -> None:
        self.locks.append((business_id, resource_kind, resource_id))

    async def list_active_bookings_in_window(
        self,
        business_id: UUID,
        resource_id: UUID | None,
        window_start: datetime,
        window_end: datetime,
        exclude_booking_id: UUID | None = None,
    ) -> list[ScheduledBooking]:
        return [
            ScheduledBooking(item.id, item.start_at, item.duration_minutes, None, 60)
            for item in self.bookings.values()
            if item.business_id == business_id
            and item.resource_id == resource_id
            and item.status != BookingStatusEnum.CANCELLED
            and window_start <= item.start_at <= window_end
            and item.id != exclude_booking_id
        ]

    async def create_booking(self, **values) -> FakeBooking:
        booking = FakeBooking(id=uuid4(), **values)
        self.bookings[booking.id] = booking
        return booking

    async def create_consent_form(self, booking_id: UUID, client_id: UUID) -> None:
        self.consent_forms[booking_id] = None

    async def sign_consent_form(self, booking_id: UUID, signed_at: datetime) -> None:
        self.consent_forms[booking_id] = signed_at

    async def get_booking_by_id(self, booking_id: UUID) -> FakeBooking | None:
        return self.bookings.get(booking_id)

    async def save(self, booking: FakeBooking) -> FakeBooking:
        return booking

    async def refresh(self, booking: FakeBooking) -> FakeBooking:
        return self.bookings[booking.id]

    async def list_bookings(self, *, role, user_id, business_id, status, limit, offset):
        items = [
            item
            for item in self.bookings.values()
            if (role != RoleEnum.CLIENT or item.client_id == user_id)
            and (role not in (RoleEnum.BUSINESS, RoleEnum.EMPLOYEE) or item.business_id == business_id)
            and (status is None or item.status == status)
        ]
        return items[offset : offset + limit], len(items)

    async def cancel_if_active(self, booking_id: UUID, cancelled_at: datetime) -> bool:
        booking = self.bookings.get(booking_id)
        if self.lose_cancel_race or booking is None or booking.status == BookingStatusEnum.CANCELLED:
            return False
        booking.status = BookingStatusEnum.CANCELLED
        booking.cancelled_at = cancelled_at
        return True

    async def delete_if_active(self, booking_id: UUID) -> bool:
        booking = self.bookings.get(booking_id)
        if self.lose_cancel_race or booking is None or booking.status == BookingStatusEnum.CANCELLED:
            return False
        del self.bookings[booking_id]
        self.consent_forms.pop(booking_id, None)
        return True

    async def transition_status(self, booking_id, from_status, to_status) -> bool:
        booking = self.bookings.get(booking_id)
        if booking is None or booking.status != from_status:
            return False
        booking.status = to_status
        return True


class FakeBillingRepository:
    def __init__(self, bookings: dict[UUID, FakeBooking]) -> None:
        self.payments: dict[UUID, FakePayment] = {}
        self.bookings = bookings

    def add(self, payment: FakePayment) -> FakePayment:
        self.payments[payment.id] = payment
        return payment

    async def create_payment(self, *, business_id, client_id, booking_id, amount, currency, method, external_payment_id):
        return self.add(
            FakePayment(
                id=uuid4(),
                business_id=business_id,
                client_id=client_id,
                booking_id=booking_id,
                amount=amount,
                method=method,
                status=PaymentStatusEnum.PENDING,
                external_payment_id=external_payment_id,
            ),
        )

    async def find_reusable_payment(self, client_id: UUID, business_id: UUID) -> FakePayment | None:
        for payment in self.payments.values():
            if (
                payment.client_id == client_id
                and payment.business_id == business_id
                and payment.status == PaymentStatusEnum.SUCCEEDED
                and not payment.reused
                and payment.booking_id in self.bookings
                and self.bookings[payment.booking_id].status == BookingStatusEnum.CANCELLED
            ):
                return payment
        return None

    async def mark_reused_if_available(self, payment_id: UUID) -> bool:
        payment = self.payments[payment_id]
        if payment.reused:
            return False
        payment.reused = True
        return True

    async def release_reuse(self, payment: FakePayment) -> FakePayment:
        payment.reused = False
        return payment

    async def get_payment_by_external_id(self, external_payment_id: str) -> FakePayment | None:
        for payment in self.payments.values():
            if payment.external_payment_id == external_payment_id:
                return payment
        return None

    async def link_booking(self, payment: FakePayment, booking_id: UUID) -> FakePayment:
        payment.booking_id = booking_id
        return payment

    async def get_latest_payment_for_booking(self, booking_id: UUID) -> FakePayment | None:
        for payment in self.payments.values():
            if payment.booking_id == booking_id:
                return payment
        return None

    async def set_payment_status(self, payment, status, changed_at, metadata=None):
        payment.status = status
        payment.payment_metadata.update(metadata or {})
        return payment


class FakeAuditRepository:
    def __init__(self) -> None:
        self.logs: list[dict] = []
        self.events: list[dict] = []

    async def create_audit_log(self, actor_id, action, entity_type, entity_id, payload) -> None:
        self.logs.append({"actor_id": actor_id, "action": action, "entity_id": entity_id, "payload": payload})

    async def create_outbox_event(self, aggregate_type, aggregate_id, event_type, payload) -> None:
        self.events.append({"aggregate_id": aggregate_id, "event_type": event_type, "payload": payload})


class FakeCacheInvalidator:
    def __init__(self) -> None:
        self.invalidated: list[UUID] = []

    async def invalidate_business_views(self, business_id: UUID) -> None:
        self.invalidated.append(business_id)


class FakeProvider:
    def __init__(self, charge_minor: int = 8000, fail_refund: bool = False) -> None:
        self.charge_minor = charge_minor
        self.fail_refund = fail_refund
        self.refund_calls: list[tuple[str, int, str]] = []

    async def list_charges(self, intent_id: str) -> list[ProviderCharge]:
        return [ProviderCharge("ch_1", self.charge_minor, 0, False)]

    async def create_refund(self, charge_id: str, amount_minor: int, idempotency_key: str) -> ProviderRefund:
        if self.fail_refund:
            raise UpstreamException("Payment provider timed out during create_refund")
        self.refund_calls.append((charge_id, amount_minor, idempotency_key))
        return ProviderRefund("re_1", amount_minor, "succeeded")


@dataclass
class World:
    service: BookingService
    businesses: FakeBusinessesRepository
    bookings: FakeBookingRepository
    billing: FakeBillingRepository
    audit: FakeAuditRepository
    cache: FakeCacheInvalidator
    provider: FakeProvider
    business: SimpleNamespace
    salon_service: SimpleNamespace
    owner: SimpleNamespace
    employee_1: SimpleNamespace
    employee_2: SimpleNamespace
    client: SimpleNamespace


def _build_world(*, requires_consent: bool = False, provider: FakeProvider | None = None) -> World:
    settings = Settings(_env_file=None)
    businesses = FakeBusinessesRepository()
    bookings = FakeBookingRepository()
    billing = FakeBillingRepository(bookings.bookings)
    audit = FakeAuditRepository()
    cache = FakeCacheInvalidator()
    provider = provider or FakeProvider()

    business = SimpleNamespace(
        id=uuid4(),
        status=BusinessStatusEnum.ACTIVE,
        working_hours=OPEN_WEEKDAYS,
        default_booking_duration_minutes=60,
        requires_consent=requires_consent,
    )
    businesses.businesses[business.id] = business
    salon_service = SimpleNamespace(id=uuid4(), business_id=business.id, duration_minutes=60, price=Decimal("100.00"))
    businesses.services[salon_service.id] = salon_service

    def _staff(role: RoleEnum) -> SimpleNamespace:
        member = SimpleNamespace(id=uuid4(), role=role, business_id=business.id, working_hours=None)
        businesses.staff[member.id] = member
        return member

    owner = _staff(RoleEnum.BUSINESS)
    employee_1 = _staff(RoleEnum.EMPLOYEE)
    employee_2 = _staff(RoleEnum.EMPLOYEE)
    client = SimpleNamespace(id=uuid4(), role=RoleEnum.CLIENT, business_id=None)

    service = BookingService(
        booking_repository=bookings,
        billing_repository=billing,
        audit_repository=audit,
        scheduling_service=SchedulingService(businesses, bookings, settings),
        refund_processor=RefundProcessor(provider, billing),
        cache_invalidator=cache,
        settings=settings,
    )
    return World(
        service, businesses, bookings, billing, audit, cache, provider,
        business, salon_service, owner, employee_1, employee_2, client,
    )


def _create_payload(world: World, start: datetime = TUESDAY_10, **overrides) -> BookingCreate:
    values = {
        "business_id": world.business.id,
        "service_id": world.salon_service.id,
        "employee_id": world.employee_1.id,
        "start_at": start,
    }
    values.update(overrides)
    return BookingCreate(**values)


def _seed_booking(world: World, **overrides) -> FakeBooking:
    values = {
        "id": uuid4(),
        "business_id": world.business.id,
        "client_id": world.client.id,
        "service_id": world.salon_service.id,
        "court_id": None,
        "resource_kind": ResourceKindEnum.EMPLOYEE,
        "resource_id": world.employee_1.id,
        "start_at": TUESDAY_10,
        "duration_minutes": 60,
        "status": BookingStatusEnum.CONFIRMED,
        "paid": False,
        "payment_method": PaymentMethodEnum.OFFLINE,
        "payment_status": BookingPaymentStatusEnum.PENDING,
    }
    values.update(overrides)
    booking = FakeBooking(**values)
    world.bookings.bookings[booking.id] = booking
    return booking


def _seed_card_payment(world: World, booking: FakeBooking, amount: str = "100.00") -> FakePayment:
    return world.billing.add(
        FakePayment(
            id=uuid4(),
            business_id=booking.business_id,
            client_id=booking.client_id,
            booking_id=booking.id,
            amount=Decimal(amount),
            method=PaymentMethodEnum.CARD,
            status=PaymentStatusEnum.SUCCEEDED,
            external_payment_id="pi_1",
        ),
    )


@pytest.fixture(autouse=True)
def frozen_now(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(booking_service_module, "utc_now", lambda: NOW)


@pytest.mark.asyncio
async def test_overlapping_booking_on_same_employee_is_rejected_but_other_employee_is_free() -> None:
    world = _build_world()
    first = await world.service.create_booking(_create_payload(world), world.client)

    with pytest.raises(ConflictException) as exc:
        await world.service.create_booking(
            _create_payload(world, TUESDAY_10 + timedelta(minutes=30)),
            world.client,
        )
    assert exc.value.details == {"conflicting_booking_ids": [str(first.id)]}

    second = await world.service.create_booking(
        _create_payload(world, TUESDAY_10 + timedelta(minutes=30), employee_id=world.employee_2.id),
        world.client,
    )
    assert second.resource_id == world.employee_2.id
    assert len(world.bookings.locks) == 3


@pytest.mark.asyncio
async def test_created_booking_is_confirmed_and_enqueues_confirmation() -> None:
    world = _build_world()
    booking = await world.service.create_booking(_create_payload(world, client_notes="Window seat"), world.client)

    assert booking.status == BookingStatusEnum.CONFIRMED
    assert booking.client_id == world.client.id
    assert booking.duration_minutes == 60
    assert booking.resource_kind == ResourceKindEnum.EMPLOYEE
    assert not booking.paid
    assert [event["event_type"] for event in world.audit.events] == ["booking.confirmed"]
    assert world.audit.events[0]["payload"]["client_id"] == str(world.client.id)
    assert world.cache.invalidated == [world.business.id]


@pytest.mark.asyncio
async def test_booking_inside_minimum_lead_time_is_rejected() -> None:
    world = _build_world()
    with pytest.raises(BusinessRuleException):
        await world.service.create_booking(_create_payload(world, NOW + timedelta(minutes=90)), world.client)


@pytest.mark.asyncio
async def test_booking_past_closing_time_is_rejected() -> None:
    world = _build_world()
    late = datetime(2026, 3, 3, 17, 30, tzinfo=UTC)
    with pytest.raises(BusinessRuleException):
        await world.service.create_booking(_create_payload(world, late), world.client)


@pytest.mark.asyncio
async def test_booking_longer_than_maximum_duration_is_rejected() -> None:
    world = _build_world()
    with pytest.raises(BusinessRuleException):
        await world.service.create_booking(_create_payload(world, duration_minutes=600), world.client)


@pytest.mark.asyncio
async def test_business_holiday_blocks_booking() -> None:
    world = _build_world()
    world.businesses.holidays.append(
        SimpleNamespace(business_id=world.business.id, start_date=date(2026, 3, 3), end_date=date(2026, 3, 3), reason="Audit"),
    )

    with pytest.raises(ConflictException) as exc:
        await world.service.create_booking(_create_payload(world), world.client)
    assert exc.value.details["reason"] == "Audit"


@pytest.mark.asyncio
async def test_suspended_business_cannot_be_booked() -> None:
    world = _build_world()
    world.business.status = BusinessStatusEnum.SUSPENDED
    with pytest.raises(ForbiddenException):
        await world.service.create_booking(_create_payload(world), world.client)


@pytest.mark.asyncio
async def test_unknown_service_is_not_found() -> None:
    world = _build_world()
    with pytest.raises(NotFoundException):
        await world.service.create_booking(_create_payload(world, service_id=uuid4()), world.client)


@pytest.mark.asyncio
async def test_client_cannot_book_for_another_client_and_cannot_mark_paid() -> None:
    world = _build_world()
    with pytest.raises(ForbiddenException):
        await world.service.create_booking(_create_payload(world, client_id=uuid4()), world.client)

    booking = await world.service.create_booking(_create_payload(world, paid=True), world.client)
    assert not booking.paid
    assert booking.payment_status == BookingPaymentStatusEnum.PENDING


@pytest.mark.asyncio
async def test_owner_books_for_client_and_records_desk_payment() -> None:
    world = _build_world()
    booking = await world.service.create_booking(
        _create_payload(world, client_id=world.client.id, paid=True, payment_method=PaymentMethodEnum.CASH),
        world.owner,
    )

    assert booking.client_id == world.client.id
    assert booking.paid
    assert booking.payment_status == BookingPaymentStatusEnum.PAID
    [payment] = world.billing.payments.values()
    assert payment.booking_id == booking.id
    assert payment.method == PaymentMethodEnum.CASH
    assert payment.amount == Decimal("100.00")
    assert payment.status == PaymentStatusEnum.SUCCEEDED


@pytest.mark.asyncio
async def test_consent_business_starts_pending_and_confirm_moves_to_confirmed() -> None:
    world = _build_world(requires_consent=True)
    booking = await world.service.create_booking(_create_payload(world), world.client)

    assert booking.status == BookingStatusEnum.PENDING_CONSENT
    assert world.bookings.consent_forms == {booking.id: None}
    assert world.audit.events == []

    confirmed = await world.service.confirm_consent(booking.id, world.client)

    assert confirmed.status == BookingStatusEnum.CONFIRMED
    assert world.bookings.consent_forms[booking.id] == NOW
    assert [event["event_type"] for event in world.audit.events] == ["booking.confirmed"]

    with pytest.raises(BusinessRuleException):
        await world.service.confirm_consent(booking.id, world.client)


@pytest.mark.asyncio
async def test_credit_reuse_marks_source_payment_and_books_as_paid() -> None:
    world = _build_world()
    source = _seed_booking(world, status=BookingStatusEnum.CANCELLED, paid=True, payment_method=PaymentMethodEnum.CASH)
    payment = world.billing.add(
        FakePayment(
            id=uuid4(),
            business_id=world.business.id,
            client_id=world.client.id,
            booking_id=source.id,
            amount=Decimal("100.00"),
            method=PaymentMethodEnum.CASH,
            status=PaymentStatusEnum.SUCCEEDED,
            external_payment_id=None,
        ),
    )

    booking = await world.service.create_booking(_create_payload(world, payment_reused=True), world.client)

    assert payment.reused
    assert booking.paid
    assert booking.payment_reused
    assert booking.payment_method == PaymentMethodEnum.CASH
    assert world.audit.logs[-1]["payload"]["reused_payment_id"] == str(payment.id)

    with pytest.raises(BusinessRuleException):
        await world.service.create_booking(
            _create_payload(world, TUESDAY_10 + timedelta(hours=2), payment_reused=True),
            world.client,
        )


@pytest.mark.asyncio
async def test_card_credit_reused_then_cancelled_by_client_is_refunded() -> None:
    world = _build_world()
    source = _seed_booking(world, paid=True, payment_method=PaymentMethodEnum.CARD)
    payment = _seed_card_payment(world, source)

    kept = await world.service.cancel_booking(source.id, BookingCancelRequest(), world.owner)
    assert not kept.refund_performed
    assert world.audit.events[-1]["payload"]["credit_available"] is True

    rebooked = await world.service.create_booking(
        _create_payload(world, TUESDAY_10 + timedelta(hours=2), payment_reused=True),
        world.client,
    )
    assert payment.booking_id == rebooked.id
    assert payment.reused
    assert rebooked.payment_method == PaymentMethodEnum.CARD

    result = await world.service.cancel_booking(rebooked.id, BookingCancelRequest(), world.client)

    assert result.refund_performed
    assert world.provider.refund_calls == [("ch_1", 8000, f"refund-{payment.id}")]
    assert payment.status == PaymentStatusEnum.REFUNDED
    assert world.audit.logs[-1]["payload"]["payment_id"] == str(payment.id)
    assert world.audit.events[-1]["payload"]["credit_available"] is False


@pytest.mark.asyncio
async def test_cash_credit_survives_repeated_rebooking_and_cancellation() -> None:
    world = _build_world()
    first = await world.service.create_booking(
        _create_payload(world, client_id=world.client.id, paid=True, payment_method=PaymentMethodEnum.CASH),
        world.owner,
    )
    [payment] = world.billing.payments.values()
    await world.service.cancel_booking(first.id, BookingCancelRequest(), world.owner)

    second = await world.service.create_booking(
        _create_payload(world, TUESDAY_10 + timedelta(hours=2), payment_reused=True),
        world.client,
    )
    result = await world.service.cancel_booking(second.id, BookingCancelRequest(), world.client)

    assert not result.refund_performed
    assert world.provider.refund_calls == []
    assert world.audit.events[-1]["payload"]["credit_available"] is True
    assert not payment.reused
    assert payment.status == PaymentStatusEnum.SUCCEEDED

    third = await world.service.create_booking(
        _create_payload(world, TUESDAY_10 + timedelta(hours=4), payment_reused=True),
        world.client,
    )
    assert third.paid
    assert payment.booking_id == third.id
    assert payment.reused
    assert len(world.billing.payments) == 1


@pytest.mark.asyncio
async def test_succeeded_intent_attached_at_creation_marks_booking_paid() -> None:
    world = _build_world()
    payment = world.billing.add(
        FakePayment(
            id=uuid4(),
            business_id=world.business.id,
            client_id=world.client.id,
            booking_id=None,
            amount=Decimal("100.00"),
            method=PaymentMethodEnum.CARD,
            status=PaymentStatusEnum.SUCCEEDED,
            external_payment_id="pi_ready",
        ),
    )

    booking = await world.service.create_booking(_create_payload(world, payment_intent_id="pi_ready"), world.client)

    assert payment.booking_id == booking.id
    assert booking.paid
    assert booking.payment_method == PaymentMethodEnum.CARD


@pytest.mark.asyncio
async def test_client_cannot_cancel_inside_window_but_owner_can() -> None:
    world = _build_world()
    booking = _seed_booking(world, start_at=NOW + timedelta(hours=20))

    with pytest.raises(BusinessRuleException):
        await world.service.cancel_booking(booking.id, BookingCancelRequest(), world.client)

    result = await world.service.cancel_booking(booking.id, BookingCancelRequest(), world.owner)
    assert result.success


@pytest.mark.asyncio
async def test_unpaid_booking_is_deleted_on_cancel() -> None:
    world = _build_world()
    booking = _seed_booking(world)
    world.bookings.consent_forms[booking.id] = None

    result = await world.service.cancel_booking(booking.id, BookingCancelRequest(), world.client)

    assert result.success
    assert not result.refund_performed
    assert booking.id not in world.bookings.bookings
    assert booking.id not in world.bookings.consent_forms
    assert world.audit.events[-1]["event_type"] == "booking.cancelled"

    with pytest.raises(NotFoundException):
        await world.service.cancel_booking(booking.id, BookingCancelRequest(), world.client)


@pytest.mark.asyncio
async def test_client_cancel_of_paid_card_booking_refunds_capped_amount_once() -> None:
    world = _build_world(provider=FakeProvider(charge_minor=8000))
    booking = _seed_booking(world, paid=True, payment_method=PaymentMethodEnum.CARD)
    payment = _seed_card_payment(world, booking, amount="100.00")

    result = await world.service.cancel_booking(booking.id, BookingCancelRequest(), world.client)

    assert result.refund_performed
    assert result.refund_error is None
    assert world.provider.refund_calls == [("ch_1", 8000, f"refund-{payment.id}")]
    assert payment.status == PaymentStatusEnum.REFUNDED
    assert booking.status == BookingStatusEnum.CANCELLED

    with pytest.raises(BookingAlreadyCancelledException):
        await world.service.cancel_booking(booking.id, BookingCancelRequest(), world.client)
    assert len(world.provider.refund_calls) == 1
    assert [event["event_type"] for event in world.audit.events] == ["booking.cancelled"]


@pytest.mark.asyncio
async def test_lost_cancel_race_skips_refund_and_notification() -> None:
    world = _build_world()
    booking = _seed_booking(world, paid=True, payment_method=PaymentMethodEnum.CARD)
    _seed_card_payment(world, booking)
    world.bookings.lose_cancel_race = True

    with pytest.raises(BookingAlreadyCancelledException):
        await world.service.cancel_booking(booking.id, BookingCancelRequest(), world.client)

    assert world.provider.refund_calls == []
    assert world.audit.events == []


@pytest.mark.asyncio
async def test_staff_cancel_without_refund_flag_keeps_payment() -> None:
    world = _build_world()
    booking = _seed_booking(world, paid=True, payment_method=PaymentMethodEnum.CARD)
    payment = _seed_card_payment(world, booking)

    result = await world.service.cancel_booking(booking.id, BookingCancelRequest(), world.employee_1)

    assert not result.refund_performed
    assert world.provider.refund_calls == []
    assert payment.status == PaymentStatusEnum.SUCCEEDED

    other = _seed_booking(world, paid=True, payment_method=PaymentMethodEnum.CARD, start_at=TUESDAY_10 + timedelta(hours=3))
    other_payment = _seed_card_payment(world, other)
    other_payment.external_payment_id = "pi_2"
    result = await world.service.cancel_booking(other.id, BookingCancelRequest(refund_payment=True), world.owner)
    assert result.refund_performed


@pytest.mark.asyncio
async def test_cash_payment_is_kept_as_credit() -> None:
    world = _build_world()
    booking = _seed_booking(world, paid=True, payment_method=PaymentMethodEnum.CASH)
    payment = _seed_card_payment(world, booking)
    payment.method = PaymentMethodEnum.CASH
    payment.external_payment_id = None

    result = await world.service.cancel_booking(booking.id, BookingCancelRequest(refund_payment=True), world.owner)

    assert not result.refund_performed
    assert "future booking" in result.message
    assert world.audit.events[-1]["payload"]["credit_available"] is True
    assert payment.status == PaymentStatusEnum.SUCCEEDED
    assert world.provider.refund_calls == []


@pytest.mark.asyncio
async def test_refund_failure_does_not_block_cancellation() -> None:
    world = _build_world(provider=FakeProvider(fail_refund=True))
    booking = _seed_booking(world, paid=True, payment_method=PaymentMethodEnum.CARD)
    payment = _seed_card_payment(world, booking)

    result = await world.service.cancel_booking(booking.id, BookingCancelRequest(), world.client)

    assert result.success
    assert not result.refund_performed
    assert "timed out" in (result.refund_error or "")
    assert booking.status == BookingStatusEnum.CANCELLED
    assert payment.status == PaymentStatusEnum.SUCCEEDED


@pytest.mark.asyncio
async def test_staff_of_other_business_cannot_cancel() -> None:
    world = _build_world()
    booking = _seed_booking(world)
    outsider = SimpleNamespace(id=uuid4(), role=RoleEnum.BUSINESS, business_id=uuid4())

    with pytest.raises(ForbiddenException):
        await world.service.cancel_booking(booking.id, BookingCancelRequest(), outsider)


@pytest.mark.asyncio
async def test_complete_is_reserved_for_staff() -> None:
    world = _build_world()
    booking = _seed_booking(world)

    with pytest.raises(ForbiddenException):
        await world.service.complete_booking(booking.id, world.client)

    completed = await world.service.complete_booking(booking.id, world.employee_1)
    assert completed.status == BookingStatusEnum.COMPLETED


@pytest.mark.asyncio
async def test_list_bookings_is_scoped_to_the_client() -> None:
    world = _build_world()
    own = _seed_booking(world)
    _seed_booking(world, client_id=uuid4(), start_at=TUESDAY_10 + timedelta(hours=2))

    items, total = await world.service.list_bookings(world.client, None, 20, 0)

    assert total == 1
    assert [item.id for item in items] == [own.id]
