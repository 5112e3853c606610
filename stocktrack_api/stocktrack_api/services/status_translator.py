"""Translate a Stripe subscription into the tenant's billing fields.

Pure functions (unknown tier tags are logged).
:func:`translate_subscription` is total: unknown Stripe statuses pass
through verbatim and a missing status becomes ``unknown``, so the internal
status is never empty.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

from stocktrack_api.services.billing_provider import SubscriptionRecord
from stocktrack_api.tiers import parse_tier

logger = logging.getLogger(__name__)

UNKNOWN_STATUS = "unknown"

_STATUS_MAP: dict[str, str] = {
    "trialing": "trial",
    "active": "active",
    "canceled": "inactive",
    "unpaid": "inactive",
    "past_due": "inactive",
}

# Internal statuses that grant dashboard access.
AUTHORITATIVE_STATUSES: frozenset[str] = frozenset({"active", "trial"})


@dataclass(frozen=True)
class TranslatedSubscription:
    """Tenant billing fields derived from one subscription."""

    subscription_id: str
    subscription_status: str
    stripe_status: str | None
    tier: str | None
    expiry_date: date | None
    trial_end_date: datetime | None
    customer_id: str | None


def map_status(provider_status: str | None) -> str:
    """Map a Stripe lifecycle status to the internal vocabulary."""
    if not provider_status:
        return UNKNOWN_STATUS
    return _STATUS_MAP.get(provider_status, provider_status)


def _from_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def normalize_tier(subscription: SubscriptionRecord, tier_key: str = "tier") -> str | None:
    """Return the subscription's tier tag if it names a catalog tier.

    Unknown tags are dropped (and logged) so a stored tier is always a
    known plan.
    """
    raw = subscription.tag(tier_key)
    tier = parse_tier(raw)
    if tier is None and raw:
        logger.warning("Subscription %s has unknown %s tag %r; tier not updated", subscription.id, tier_key, raw)
    return tier.value if tier is not None else None


def normalize_customer_id(customer: str | dict[str, Any] | None) -> str | None:
    """Return a plain customer id whether Stripe sent an id or an expanded object."""
    if isinstance(customer, str):
        return customer or None
    if isinstance(customer, dict):
        customer_id = customer.get("id")
        return customer_id if isinstance(customer_id, str) and customer_id else None
    return None


def translate_subscription(
    subscription: SubscriptionRecord,
    *,
    tier_key: str = "tier",
) -> TranslatedSubscription:
    """Derive the tenant billing fields from *subscription*."""
    period_end = _from_timestamp(subscription.current_period_end)
    return TranslatedSubscription(
        subscription_id=subscription.id,
        subscription_status=map_status(subscription.status),
        stripe_status=subscription.status,
        tier=normalize_tier(subscription, tier_key),
        expiry_date=period_end.date() if period_end is not None else None,
        trial_end_date=_from_timestamp(subscription.trial_end),
        customer_id=normalize_customer_id(subscription.customer),
    )


def build_merge_fields(translated: TranslatedSubscription, now: datetime) -> dict[str, Any]:
    """Return the columns a reconciliation writes for *translated*.

    Optional values that were not derived are omitted rather than written as
    ``None`` so a previously stored value survives.
    """
    fields: dict[str, Any] = {
        "subscription_status": translated.subscription_status,
        "subscription_type": "stripe",
        "stripe_subscription_id": translated.subscription_id,
        "updated_at": now,
    }
    if translated.tier:
        fields["subscription_tier"] = translated.tier
    if translated.expiry_date is not None:
        fields["subscription_expiry_date"] = translated.expiry_date
    if translated.trial_end_date is not None:
        fields["trial_end_date"] = translated.trial_end_date
    if translated.customer_id:
        fields["stripe_customer_id"] = translated.customer_id
    return fields
