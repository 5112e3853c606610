"""Locate the authoritative Stripe subscription for a tenant.

Stripe offers no query of the form "subscription where metadata.company_id
= X", so the locator works through a cascade of strategies, cheapest first:

A. **direct**: fetch the subscription id cached on the tenant.
B. **customer search**: list customers whose email is the caller's
   billing-contact email (bounded page size).
C. **tagged match**: scan each customer's subscriptions, in provider order,
   for one whose ownership tag equals the tenant id.  First match wins.
D. **fallback**: if nothing is tagged, ask a :class:`FallbackPolicy` to
   pick one of the scanned subscriptions.

A ``None`` result means every strategy came back empty; deciding whether
that is an error is left to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from stocktrack_api.config import APISettings, FallbackPolicyName
from stocktrack_api.services.billing_provider import (
    BillingProvider,
    CustomerRecord,
    SubscriptionRecord,
)

logger = logging.getLogger(__name__)


class LookupStrategy(str, Enum):
    """How a subscription was found."""

    DIRECT = "direct"
    TAGGED_MATCH = "tagged_match"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class LocatedSubscription:
    subscription: SubscriptionRecord
    strategy: LookupStrategy
    policy: str | None = None


@dataclass(frozen=True)
class CustomerSubscriptions:
    """One searched customer and the subscriptions listed for it."""

    customer: CustomerRecord
    subscriptions: list[SubscriptionRecord]


# ---------------------------------------------------------------------------
# Fallback policies
# ---------------------------------------------------------------------------


class FallbackPolicy(Protocol):
    """Chooses a subscription when none carries the tenant's ownership tag.

    Implementations receive every customer scanned by the tagged-match
    strategy, in provider order.  Whatever they return is still checked by
    the ownership validator before anything is written.
    """

    name: str

    def choose(self, scanned: Sequence[CustomerSubscriptions]) -> SubscriptionRecord | None: ...


class LatestOfFirstCustomerPolicy:
    """Pick the most recently created subscription of the first customer.

    Assumes one Stripe customer per email address.  Subscriptions of any
    status are eligible.
    """

    name = FallbackPolicyName.LATEST_OF_FIRST_CUSTOMER.value

    def choose(self, scanned: Sequence[CustomerSubscriptions]) -> SubscriptionRecord | None:
        if not scanned or not scanned[0].subscriptions:
            return None
        # max() keeps the first of equal keys, i.e. provider order breaks ties.
        return max(scanned[0].subscriptions, key=lambda s: s.created or 0)


class NoFallbackPolicy:
    """Never guess: an untagged search result counts as nothing found."""

    name = FallbackPolicyName.NONE.value

    def choose(self, scanned: Sequence[CustomerSubscriptions]) -> SubscriptionRecord | None:
        return None


def fallback_policy_from_settings(settings: APISettings) -> FallbackPolicy:
    """Return the policy object named by ``reconcile_fallback_policy``."""
    if settings.reconcile_fallback_policy == FallbackPolicyName.NONE:
        return NoFallbackPolicy()
    return LatestOfFirstCustomerPolicy()


# ---------------------------------------------------------------------------
# Locator
# ---------------------------------------------------------------------------


class SubscriptionLocator:
    """Run the lookup cascade against a :class:`BillingProvider`.

    Parameters
    ----------
    provider:
        Billing provider client.
    tenant_tag_key:
        Metadata key holding the owning tenant id.
    customer_search_limit, subscription_list_limit:
        Page sizes bounding the search.
    fallback_policy:
        Last-resort selection rule; defaults to
        :class:`LatestOfFirstCustomerPolicy`.
    """

    def __init__(
        self,
        provider: BillingProvider,
        *,
        tenant_tag_key: str = "company_id",
        customer_search_limit: int = 10,
        subscription_list_limit: int = 10,
        fallback_policy: FallbackPolicy | None = None,
    ) -> None:
        self._provider = provider
        self._tenant_tag_key = tenant_tag_key
        self._customer_search_limit = customer_search_limit
        self._subscription_list_limit = subscription_list_limit
        self._fallback_policy = fallback_policy or LatestOfFirstCustomerPolicy()

    @classmethod
    def from_settings(
        cls,
        provider: BillingProvider,
        settings: APISettings,
        fallback_policy: FallbackPolicy | None = None,
    ) -> SubscriptionLocator:
        return cls(
            provider,
            tenant_tag_key=settings.stripe_tenant_metadata_key,
            customer_search_limit=settings.stripe_customer_search_limit,
            subscription_list_limit=settings.stripe_subscription_list_limit,
            fallback_policy=fallback_policy or fallback_policy_from_settings(settings),
        )

    def locate(
        self,
        tenant_id: str,
        *,
        cached_subscription_id: str | None,
        email: str | None,
    ) -> LocatedSubscription | None:
        """Return the subscription to reconcile *tenant_id* against, or ``None``."""
        if cached_subscription_id:
            subscription = self._provider.get_subscription(cached_subscription_id)
            if subscription is not None:
                logger.info(
                    "Tenant %s: cached subscription %s resolved directly",
                    tenant_id,
                    subscription.id,
                )
                return LocatedSubscription(subscription, LookupStrategy.DIRECT)
            logger.info(
                "Tenant %s: cached subscription %s no longer exists; searching by email",
                tenant_id,
                cached_subscription_id,
            )

        if not email:
            logger.info("Tenant %s: no billing-contact email available for search", tenant_id)
            return None

        customers = self._provider.list_customers_by_email(email, self._customer_search_limit)
        if not customers:
            logger.info("Tenant %s: no Stripe customers match the caller email", tenant_id)
            return None

        scanned: list[CustomerSubscriptions] = []
        for customer in customers:
            subscriptions = self._provider.list_subscriptions_for_customer(
                customer.id,
                self._subscription_list_limit,
                status="all",
            )
            for subscription in subscriptions:
                if subscription.tag(self._tenant_tag_key) == tenant_id:
                    logger.info(
                        "Tenant %s: found tagged subscription %s on customer %s",
                        tenant_id,
                        subscription.id,
                        customer.id,
                    )
                    return LocatedSubscription(subscription, LookupStrategy.TAGGED_MATCH)
            scanned.append(CustomerSubscriptions(customer, subscriptions))

        chosen = self._fallback_policy.choose(scanned)
        if chosen is None:
            logger.info(
                "Tenant %s: no tagged subscription among %d customer(s); fallback policy %s chose none",
                tenant_id,
                len(customers),
                self._fallback_policy.name,
            )
            return None

        logger.warning(
            "Tenant %s: no tagged subscription found; fallback policy %s selected %s (tag=%r)",
            tenant_id,
            self._fallback_policy.name,
            chosen.id,
            chosen.tag(self._tenant_tag_key),
        )
        return LocatedSubscription(chosen, LookupStrategy.FALLBACK, policy=self._fallback_policy.name)
