"""Subscription tier catalog and per-tier resource limits."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class SubscriptionTier(str, Enum):
    """Plan tiers sold through Stripe checkout and the mobile app."""

    PRO_STARTER = "PRO_STARTER"
    PRO_TEAM = "PRO_TEAM"
    PRO_BUSINESS = "PRO_BUSINESS"
    PRO_ENTERPRISE = "PRO_ENTERPRISE"


@dataclass(frozen=True)
class TierLimits:
    """Maximum counts allowed per tenant.  ``None`` means unlimited."""

    users: int
    assets: int | None
    vehicles: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


TIER_LIMITS: dict[SubscriptionTier, TierLimits] = {
    SubscriptionTier.PRO_STARTER: TierLimits(users=1, assets=50, vehicles=5),
    SubscriptionTier.PRO_TEAM: TierLimits(users=10, assets=500, vehicles=15),
    SubscriptionTier.PRO_BUSINESS: TierLimits(users=40, assets=1500, vehicles=40),
    SubscriptionTier.PRO_ENTERPRISE: TierLimits(users=75, assets=1500, vehicles=150),
}

DEFAULT_TIER = SubscriptionTier.PRO_STARTER


def parse_tier(raw: str | None) -> SubscriptionTier | None:
    """Return the tier named by *raw*, or ``None`` if it is not a known tier."""
    if not raw:
        return None
    try:
        return SubscriptionTier(raw)
    except ValueError:
        return None


def effective_tier(raw: str | None) -> SubscriptionTier:
    """Resolve the tier used for limit checks, defaulting unknown values."""
    return parse_tier(raw) or DEFAULT_TIER
