"""On-demand reconciliation of a tenant's billing state against Stripe.

Stripe is the system of record; the billing columns on the tenant row are a
cache refreshed here.  A run loads the tenant, locates its subscription,
verifies ownership, translates the Stripe status and merge-writes the
result.  Nothing is written unless every stage succeeds, and a run can be
repeated or run concurrently: the write is a deterministic function of the
remote state, so concurrent runs converge (last write wins).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from stocktrack_api.config import APISettings
from stocktrack_api.errors import (
    MetadataMismatch,
    NoSubscriptionFound,
    NotFound,
    UpstreamError,
)
from stocktrack_api.services.auth_service import Caller
from stocktrack_api.services.billing_provider import BillingProvider, SubscriptionRecord
from stocktrack_api.services.status_translator import (
    AUTHORITATIVE_STATUSES,
    TranslatedSubscription,
    build_merge_fields,
    translate_subscription,
)
from stocktrack_api.services.subscription_locator import (
    FallbackPolicy,
    LookupStrategy,
    SubscriptionLocator,
)
from stocktrack_api.state.repository import TenantRepository
from stocktrack_api.state.tables import TenantTable

logger = logging.getLogger(__name__)

ALREADY_CONSISTENT_MESSAGE = (
    "No Stripe subscription found for your company. Billing is managed elsewhere "
    "and your current subscription status is already up to date."
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of a successful run: either synced or already consistent."""

    synced: bool
    translated: TranslatedSubscription | None = None
    strategy: LookupStrategy | None = None
    message: str | None = None
    current_status: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Render the response body returned to the caller."""
        if not self.synced or self.translated is None:
            return {
                "success": True,
                "synced": False,
                "message": self.message,
                "current_status": self.current_status,
            }
        t = self.translated
        return {
            "success": True,
            "synced": {
                "subscription_status": t.subscription_status,
                "subscription_tier": t.tier,
                "stripe_status": t.stripe_status,
                "trial_end_date": t.trial_end_date.isoformat() if t.trial_end_date else None,
                "expiry_date": t.expiry_date.isoformat() if t.expiry_date else None,
                "subscription_id": t.subscription_id,
                "lookup_strategy": self.strategy.value if self.strategy else None,
            },
        }


def verify_ownership(
    subscription: SubscriptionRecord,
    expected_tenant_id: str,
    *,
    tag_key: str = "company_id",
) -> None:
    """Require the subscription's ownership tag to equal *expected_tenant_id*.

    Comparison is exact string equality.

    Raises
    ------
    MetadataMismatch
        With both the found and the expected tenant ids.
    """
    found = subscription.tag(tag_key)
    if found != expected_tenant_id:
        logger.warning(
            "Subscription %s is tagged %s=%r but caller tenant is %r; refusing to write",
            subscription.id,
            tag_key,
            found,
            expected_tenant_id,
        )
        raise MetadataMismatch(found_tenant_id=found, expected_tenant_id=expected_tenant_id)


class SubscriptionReconciler:
    """Reconcile one tenant's cached billing state with Stripe.

    Parameters
    ----------
    tenants:
        Tenant datastore repository.
    locator:
        Subscription lookup cascade.
    tenant_tag_key, tier_key:
        Subscription metadata keys for the owning tenant and the tier.
    clock:
        Source of the ``updated_at`` timestamp.
    """

    def __init__(
        self,
        tenants: TenantRepository,
        locator: SubscriptionLocator,
        *,
        tenant_tag_key: str = "company_id",
        tier_key: str = "tier",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._tenants = tenants
        self._locator = locator
        self._tenant_tag_key = tenant_tag_key
        self._tier_key = tier_key
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        tenants: TenantRepository,
        provider: BillingProvider,
        settings: APISettings,
        *,
        fallback_policy: FallbackPolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> SubscriptionReconciler:
        return cls(
            tenants,
            SubscriptionLocator.from_settings(provider, settings, fallback_policy),
            tenant_tag_key=settings.stripe_tenant_metadata_key,
            tier_key=settings.stripe_tier_metadata_key,
            clock=clock,
        )

    async def reconcile(self, caller: Caller) -> ReconciliationResult:
        """Run the reconciliation for the caller's tenant.

        Raises
        ------
        NotFound
            The tenant row does not exist.
        NoSubscriptionFound
            Nothing was located and the tenant is not active/trial locally.
        MetadataMismatch
            The located subscription belongs to another tenant.
        UpstreamError
            Stripe or the datastore failed.
        """
        tenant = await self._load_tenant(caller.tenant_id)

        located = self._locator.locate(
            caller.tenant_id,
            cached_subscription_id=tenant.stripe_subscription_id,
            email=caller.email,
        )
        if located is None:
            return self._report_absence(tenant)

        verify_ownership(located.subscription, caller.tenant_id, tag_key=self._tenant_tag_key)

        translated = translate_subscription(located.subscription, tier_key=self._tier_key)
        fields = build_merge_fields(translated, self._clock())
        await self._write(caller.tenant_id, fields)

        logger.info(
            "Tenant %s reconciled via %s: stripe_status=%s status=%s tier=%s",
            caller.tenant_id,
            located.strategy.value,
            translated.stripe_status,
            translated.subscription_status,
            translated.tier,
        )
        return ReconciliationResult(synced=True, translated=translated, strategy=located.strategy)

    async def _load_tenant(self, tenant_id: str) -> TenantTable:
        try:
            tenant = await self._tenants.get(tenant_id)
        except SQLAlchemyError as exc:
            logger.error("Tenant lookup failed for %s", tenant_id, exc_info=True)
            raise UpstreamError("Datastore unavailable, please retry") from exc
        if tenant is None:
            raise NotFound("Company not found", company_id=tenant_id)
        return tenant

    def _report_absence(self, tenant: TenantTable) -> ReconciliationResult:
        current = tenant.subscription_status
        if current in AUTHORITATIVE_STATUSES:
            logger.warning(
                "Tenant %s: no Stripe subscription located but local status is %r; leaving unchanged",
                tenant.id,
                current,
            )
            return ReconciliationResult(
                synced=False,
                message=ALREADY_CONSISTENT_MESSAGE,
                current_status=current,
            )
        raise NoSubscriptionFound(
            "No Stripe subscription found. Please subscribe first.",
            has_subscription=False,
        )

    async def _write(self, tenant_id: str, fields: dict[str, Any]) -> None:
        try:
            updated = await self._tenants.merge(tenant_id, fields)
        except SQLAlchemyError as exc:
            logger.error("Tenant merge failed for %s", tenant_id, exc_info=True)
            raise UpstreamError("Datastore unavailable, please retry") from exc
        if not updated:
            raise NotFound("Company not found", company_id=tenant_id)
