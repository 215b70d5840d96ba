"""Core enums used across modules."""

from enum import StrEnum


class RoleEnum(StrEnum):
    """System roles."""

    CLIENT = "client"
    BUSINESS = "business"
    EMPLOYEE = "employee"
    SUPERADMIN = "superadmin"


class BusinessTypeEnum(StrEnum):
    """Business category; some categories require a signed consent form."""

    GENERAL = "general"
    BEAUTY = "beauty"
    DENTISTRY = "dentistry"
    OPHTHALMOLOGY = "ophthalmology"
    PSYCHOLOGY = "psychology"
    THERAPY = "therapy"
    SPORT_OUTDOOR = "sport_outdoor"


class BusinessStatusEnum(StrEnum):
    """Business account status."""

    ACTIVE = "active"
    SUSPENDED = "suspended"


class ResourceKindEnum(StrEnum):
    """Kind of bookable resource attached to a booking."""

    EMPLOYEE = "employee"
    COURT = "court"
    NONE = "none"


class BookingStatusEnum(StrEnum):
    """Booking lifecycle status."""

    PENDING_CONSENT = "pending_consent"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class BookingPaymentStatusEnum(StrEnum):
    """Payment state as seen from the booking."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PaymentMethodEnum(StrEnum):
    """Payment method chosen by the client."""

    CARD = "card"
    APPLEPAY = "applepay"
    GOOGLEPAY = "googlepay"
    KLARNA = "klarna"
    OFFLINE = "offline"
    CASH = "cash"


class PaymentStatusEnum(StrEnum):
    """Payment processing status."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class SlotStatusEnum(StrEnum):
    """Classification of a candidate slot."""

    PAST = "past"
    TOO_SOON = "too_soon"
    BLOCKED = "blocked"
    BOOKED = "booked"
    AVAILABLE = "available"


class NotificationStatusEnum(StrEnum):
    """Notification delivery status."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class OutboxStatusEnum(StrEnum):
    """Outbox event status for integration publishing."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"
