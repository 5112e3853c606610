"""Cached billing state read-out and manual status changes.

Subscriptions bought through the mobile app stores never reach Stripe, so
the app reports them here.  Those writes use the same merge semantics as
reconciliation and mark the subscription type ``app``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from stocktrack_api.errors import NotFound, UpstreamError
from stocktrack_api.services.auth_service import Caller
from stocktrack_api.state.repository import TenantRepository
from stocktrack_api.state.tables import TenantTable
from stocktrack_api.tiers import TIER_LIMITS, effective_tier, parse_tier

logger = logging.getLogger(__name__)

MANUAL_STATUSES: tuple[str, ...] = ("active", "trial", "inactive")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SubscriptionService:
    """Tenant-scoped billing state operations for the caller's company."""

    def __init__(
        self,
        tenants: TenantRepository,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._tenants = tenants
        self._clock = clock

    async def _get_tenant(self, tenant_id: str) -> TenantTable:
        try:
            tenant = await self._tenants.get(tenant_id)
        except SQLAlchemyError as exc:
            logger.error("Tenant lookup failed for %s", tenant_id, exc_info=True)
            raise UpstreamError("Datastore unavailable, please retry") from exc
        if tenant is None:
            raise NotFound("Company not found", company_id=tenant_id)
        return tenant

    async def get_billing_state(self, caller: Caller) -> dict[str, Any]:
        """Return the cached billing columns plus the effective tier's limits."""
        tenant = await self._get_tenant(caller.tenant_id)
        tier = effective_tier(tenant.subscription_tier)
        return {
            "company_id": tenant.id,
            "subscription_status": tenant.subscription_status,
            "subscription_type": tenant.subscription_type,
            "subscription_tier": tenant.subscription_tier,
            "effective_tier": tier.value,
            "limits": TIER_LIMITS[tier].to_dict(),
            "expiry_date": tenant.subscription_expiry_date.isoformat() if tenant.subscription_expiry_date else None,
            "trial_end_date": tenant.trial_end_date.isoformat() if tenant.trial_end_date else None,
            "stripe_subscription_id": tenant.stripe_subscription_id,
            "stripe_customer_id": tenant.stripe_customer_id,
        }

    async def set_status(
        self,
        caller: Caller,
        status: str,
        tier: str | None = None,
    ) -> dict[str, Any]:
        """Record an app-originated subscription status.

        Unknown tiers are ignored rather than rejected, so an older app
        build cannot block a status update.

        Raises
        ------
        ValueError
            If *status* is not one of :data:`MANUAL_STATUSES`.
        """
        if status not in MANUAL_STATUSES:
            raise ValueError(f"subscription_status must be one of: {', '.join(MANUAL_STATUSES)}")

        await self._get_tenant(caller.tenant_id)

        fields: dict[str, Any] = {
            "subscription_status": status,
            "subscription_type": "app",
            "updated_at": self._clock(),
        }
        parsed_tier = parse_tier(tier)
        if parsed_tier is not None:
            fields["subscription_tier"] = parsed_tier.value
        elif tier:
            logger.info("Ignoring unknown tier %r for tenant %s", tier, caller.tenant_id)

        try:
            updated = await self._tenants.merge(caller.tenant_id, fields)
        except SQLAlchemyError as exc:
            logger.error("Tenant merge failed for %s", caller.tenant_id, exc_info=True)
            raise UpstreamError("Datastore unavailable, please retry") from exc
        if not updated:
            raise NotFound("Company not found", company_id=caller.tenant_id)

        logger.info(
            "Tenant %s subscription status set to %s by %s",
            caller.tenant_id,
            status,
            caller.user_id,
        )
        result: dict[str, Any] = {"success": True, "subscription_status": status}
        if "subscription_tier" in fields:
            result["subscription_tier"] = fields["subscription_tier"]
        return result
