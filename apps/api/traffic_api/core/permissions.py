"""Capability registry and the single authorization check.

Every role-based decision goes through requires(); handlers and services
never compare role strings themselves.

Precedence: inactive user > capability grant > deny
"""

from dataclasses import dataclass
from enum import Enum

from traffic_api.db.enums import Role


class Capability(str, Enum):
    """Things a caller may be allowed to do."""
    # Audiences
    VIEW_OWN_AUDIENCES = "view_own_audiences"
    VIEW_ALL_AUDIENCES = "view_all_audiences"
    MANAGE_AUDIENCES = "manage_audiences"  # upload / clear contacts
    # Chat
    VIEW_CHAT = "view_chat"
    REPLY_CHAT = "reply_chat"
    MERGE_CONVERSATIONS = "merge_conversations"


@dataclass(frozen=True)
class CapabilityDef:
    """Capability definition with metadata."""
    key: Capability
    label: str
    roles: frozenset[Role]


_ALL_ROLES = frozenset(Role)
_STAFF = frozenset({Role.ADMIN, Role.TEAM})
_ADMIN_ONLY = frozenset({Role.ADMIN})


# =============================================================================
# Capability Registry
# =============================================================================

CAPABILITY_REGISTRY: dict[Capability, CapabilityDef] = {
    Capability.VIEW_OWN_AUDIENCES: CapabilityDef(
        Capability.VIEW_OWN_AUDIENCES, "View own audiences", _ALL_ROLES
    ),
    Capability.VIEW_ALL_AUDIENCES: CapabilityDef(
        Capability.VIEW_ALL_AUDIENCES, "View every user's audiences", _ADMIN_ONLY
    ),
    Capability.MANAGE_AUDIENCES: CapabilityDef(
        Capability.MANAGE_AUDIENCES, "Upload and clear audience contacts", _ADMIN_ONLY
    ),
    Capability.VIEW_CHAT: CapabilityDef(
        Capability.VIEW_CHAT, "View chat inbox", _ALL_ROLES
    ),
    Capability.REPLY_CHAT: CapabilityDef(
        Capability.REPLY_CHAT, "Reply to chats and leave notes", _ALL_ROLES
    ),
    Capability.MERGE_CONVERSATIONS: CapabilityDef(
        Capability.MERGE_CONVERSATIONS, "Merge duplicate conversations", _ADMIN_ONLY
    ),
}


@dataclass(frozen=True)
class AccessDecision:
    """Result of an authorization check."""
    allowed: bool
    capability: Capability
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


def roles_with(capability: Capability) -> frozenset[Role]:
    """Roles granted a capability."""
    return CAPABILITY_REGISTRY[capability].roles


def requires(session, capability: Capability) -> AccessDecision:
    """
    Decide whether the session may exercise a capability.
    
    Accepts any object with `role` (Role or str) and `is_active` attributes.
    """
    if not getattr(session, "is_active", True):
        return AccessDecision(False, capability, "Account disabled")
    
    role = session.role
    if isinstance(role, str) and not isinstance(role, Role):
        if not Role.has_value(role):
            return AccessDecision(False, capability, f"Unknown role '{role}'")
        role = Role(role)
    
    if role in roles_with(capability):
        return AccessDecision(True, capability)
    return AccessDecision(
        False,
        capability,
        f"Role '{role.value}' not authorized for this action",
    )
