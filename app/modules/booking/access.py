"""Actor access rules for bookings and their payments."""

from __future__ import annotations

from uuid import UUID

from app.core.enums import RoleEnum
from app.modules.identity.models import User
from app.shared.exceptions import ForbiddenException


def can_access(actor: User, business_id: UUID, client_id: UUID) -> bool:
    if actor.role == RoleEnum.SUPERADMIN:
        return True
    if actor.role == RoleEnum.CLIENT:
        return client_id == actor.id
    if actor.role in (RoleEnum.BUSINESS, RoleEnum.EMPLOYEE):
        return actor.business_id is not None and actor.business_id == business_id
    return False


def ensure_access(actor: User, business_id: UUID, client_id: UUID) -> None:
    """Clients reach their own records, staff their business's, superadmins all."""
    if not can_access(actor, business_id, client_id):
        raise ForbiddenException("You cannot manage this booking")
