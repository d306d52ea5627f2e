"""Roles and the capability sets they grant."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from paylink.core.errors import AuthorizationError, ValidationError


class Role(str, Enum):
    ADMIN = "admin"
    MERCHANT = "merchant"
    VIEWER = "viewer"


class Capability(str, Enum):
    CREATE_USER = "create_user"
    DELETE_USER = "delete_user"
    VIEW_ALL_ORDERS = "view_all_orders"
    UPDATE_SETTINGS = "update_settings"
    MANAGE_USERS = "manage_users"
    VERIFY_ORDERS = "verify_orders"
    VIEW_ANALYTICS = "view_analytics"
    CREATE_ORDER = "create_order"
    VIEW_OWN_ORDERS = "view_own_orders"
    MANAGE_OWN_LINKS = "manage_own_links"
    VIEW_ASSIGNED_ORDERS = "view_assigned_orders"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(
        {
            Capability.CREATE_USER,
            Capability.DELETE_USER,
            Capability.VIEW_ALL_ORDERS,
            Capability.UPDATE_SETTINGS,
            Capability.MANAGE_USERS,
            Capability.VERIFY_ORDERS,
            Capability.VIEW_ANALYTICS,
            Capability.CREATE_ORDER,
            Capability.VIEW_OWN_ORDERS,
        }
    ),
    Role.MERCHANT: frozenset(
        {Capability.CREATE_ORDER, Capability.VIEW_OWN_ORDERS, Capability.MANAGE_OWN_LINKS}
    ),
    Role.VIEWER: frozenset({Capability.VIEW_ASSIGNED_ORDERS}),
}


def normalize_role(value: str | None) -> Role:
    """Parse a stored or submitted role value into the closed enumeration."""
    cleaned = str(value or "").strip().lower()
    try:
        return Role(cleaned)
    except ValueError as exc:
        raise ValidationError(f"Unknown role: {value!r}") from exc


@dataclass(frozen=True)
class Identity:
    """Authenticated caller resolved once per request."""

    user_id: str
    session_id: str
    role: Role
    capabilities: frozenset[Capability] = field(default_factory=frozenset)

    @classmethod
    def for_role(cls, user_id: str, session_id: str, role: Role) -> "Identity":
        return cls(user_id=user_id, session_id=session_id, role=role, capabilities=ROLE_CAPABILITIES[role])

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability) -> None:
        if not self.can(capability):
            raise AuthorizationError(f"Access denied. Required permission: {capability.value}")
