"""RBAC permission matrix and checker.

Platform roles are not a hierarchy: buyers, owners, brokers and valuators
each take part in rooms; only admins manage fee policies and override
settlement status. Permissions are (action, resource_type) tuples in a set
for O(1) lookup.
"""

import uuid

from dealroom.models.enums import UserRole


# ── Actions ───────────────────────────────────────────────────────────────


class Action:
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    SIGN = "sign"
    MANAGE = "manage"


# ── Resource Types ────────────────────────────────────────────────────────


class Resource:
    ROOM = "room"
    OFFER = "offer"
    DOCUMENT = "document"
    SETTLEMENT = "settlement"
    FEE_POLICY = "fee_policy"
    AUDIT_LOG = "audit_log"
    MESSAGE = "message"


# ── Per-role permission sets ──────────────────────────────────────────────

_PARTICIPANT_PERMS: set[tuple[str, str]] = {
    (Action.VIEW, Resource.ROOM),
    (Action.VIEW, Resource.OFFER),
    (Action.CREATE, Resource.OFFER),
    (Action.EDIT, Resource.OFFER),
    (Action.VIEW, Resource.DOCUMENT),
    (Action.CREATE, Resource.DOCUMENT),
    (Action.SIGN, Resource.DOCUMENT),
    (Action.VIEW, Resource.SETTLEMENT),
    (Action.VIEW, Resource.FEE_POLICY),
    (Action.VIEW, Resource.AUDIT_LOG),
    (Action.VIEW, Resource.MESSAGE),
    (Action.CREATE, Resource.MESSAGE),
}

# Owners and brokers open rooms and steer them through the lifecycle
_ORGANIZER_EXTRA: set[tuple[str, str]] = {
    (Action.CREATE, Resource.ROOM),
    (Action.EDIT, Resource.ROOM),
    (Action.CREATE, Resource.SETTLEMENT),
}

_ADMIN_EXTRA: set[tuple[str, str]] = {
    (Action.MANAGE, Resource.SETTLEMENT),
    (Action.CREATE, Resource.FEE_POLICY),
    (Action.MANAGE, Resource.FEE_POLICY),
}

# ── Permission matrix ─────────────────────────────────────────────────────

PERMISSION_MATRIX: dict[UserRole, set[tuple[str, str]]] = {
    UserRole.BUYER: _PARTICIPANT_PERMS | {(Action.CREATE, Resource.ROOM), (Action.EDIT, Resource.ROOM)},
    UserRole.VALUATOR: _PARTICIPANT_PERMS,
    UserRole.OWNER: _PARTICIPANT_PERMS | _ORGANIZER_EXTRA,
    UserRole.BROKER: _PARTICIPANT_PERMS | _ORGANIZER_EXTRA,
    UserRole.ADMIN: _PARTICIPANT_PERMS | _ORGANIZER_EXTRA | _ADMIN_EXTRA,
}


# ── Public API ────────────────────────────────────────────────────────────


def check_permission(
    role: UserRole,
    action: str,
    resource_type: str,
    resource_id: uuid.UUID | None = None,  # reserved for room-level checks
) -> bool:
    """Check if a role has permission for an action on a resource type."""
    perms = PERMISSION_MATRIX.get(role)
    if perms is None:
        return False
    return (action, resource_type) in perms


def get_permissions_for_role(role: UserRole) -> dict[str, list[str]]:
    """Return permissions grouped by resource type (for API responses)."""
    perms = PERMISSION_MATRIX.get(role, set())
    result: dict[str, list[str]] = {}
    for action, resource in sorted(perms):
        result.setdefault(resource, []).append(action)
    return result
