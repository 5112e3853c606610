"""Tenant role model.

Profiles carry one of three roles.  Billing operations (reconciliation,
manual status changes, reading billing state) are restricted to the
privileged roles in :data:`BILLING_ROLES`.
"""

from __future__ import annotations

from enum import IntEnum


class Role(IntEnum):
    """Profile roles ordered by privilege level."""

    EMPLOYEE = 0
    MANAGER = 1
    ADMIN = 2


# Mapping from the stored profile value to the enum member.
_ROLE_LOOKUP: dict[str, Role] = {r.name.lower(): r for r in Role}

BILLING_ROLES: frozenset[Role] = frozenset({Role.MANAGER, Role.ADMIN})


def parse_role(raw: str) -> Role:
    """Convert a stored profile ``role`` string into a :class:`Role`.

    Raises :class:`ValueError` if the string does not map to a known role.
    """
    try:
        return _ROLE_LOOKUP[raw.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown role '{raw}'. Valid roles: {sorted(_ROLE_LOOKUP)}")


def can_manage_billing(role: Role) -> bool:
    return role in BILLING_ROLES
