"""Read-only billing provider adapter.

Normalizes Stripe customer and subscription objects into small immutable
records and exposes the three lookups the reconciliation job needs.  Any
Stripe failure other than "no such subscription" is raised as
:class:`~stocktrack_api.errors.UpstreamError`; the adapter never retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import stripe

from stocktrack_api.config import APISettings
from stocktrack_api.errors import UpstreamError

logger = logging.getLogger(__name__)

# One HTTP client per process, rebuilt only when the timeout changes.
_http_client: Any = None
_http_client_timeout: float | None = None


def _as_dict(obj: Any) -> dict[str, Any]:
    """Return a Stripe response as plain nested dicts.

    Recent stripe releases no longer subclass ``dict`` for ``StripeObject``.
    """
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def _shared_http_client(timeout: float) -> Any:
    global _http_client, _http_client_timeout  # noqa: PLW0603
    if _http_client is None or _http_client_timeout != timeout:
        if _http_client is not None:
            _http_client.close()
        _http_client = stripe.new_default_http_client(timeout=timeout)
        _http_client_timeout = timeout
    return _http_client


@dataclass(frozen=True)
class SubscriptionRecord:
    """A Stripe subscription as seen by the reconciliation job.

    ``customer`` is kept as returned by Stripe: either a plain id or an
    expanded customer object.
    """

    id: str
    status: str | None
    customer: str | dict[str, Any] | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    current_period_end: int | None = None
    trial_end: int | None = None
    created: int | None = None

    def tag(self, key: str) -> str | None:
        """Return the metadata value stored under *key*, if any."""
        value = self.metadata.get(key)
        return value if value else None

    @classmethod
    def from_stripe(cls, obj: Any) -> SubscriptionRecord:
        """Build a record from a Stripe ``Subscription`` object or plain dict."""
        obj = _as_dict(obj)
        period_end = obj.get("current_period_end")
        if period_end is None:
            # Newer API versions report the period on each subscription item.
            items = (obj.get("items") or {}).get("data") or []
            if items:
                period_end = items[0].get("current_period_end")

        customer = obj.get("customer")
        if customer is not None and not isinstance(customer, str):
            customer = dict(customer)

        return cls(
            id=obj["id"],
            status=obj.get("status"),
            customer=customer,
            metadata={str(k): str(v) for k, v in (obj.get("metadata") or {}).items()},
            current_period_end=period_end,
            trial_end=obj.get("trial_end"),
            created=obj.get("created"),
        )


@dataclass(frozen=True)
class CustomerRecord:
    """A Stripe customer (billing identity)."""

    id: str
    email: str | None = None

    @classmethod
    def from_stripe(cls, obj: Any) -> CustomerRecord:
        obj = _as_dict(obj)
        return cls(id=obj["id"], email=obj.get("email"))


class BillingProvider(Protocol):
    """The provider operations consumed by the subscription locator."""

    def get_subscription(self, subscription_id: str) -> SubscriptionRecord | None: ...

    def list_customers_by_email(self, email: str, limit: int) -> list[CustomerRecord]: ...

    def list_subscriptions_for_customer(
        self,
        customer_id: str,
        limit: int,
        status: str = "all",
    ) -> list[SubscriptionRecord]: ...


class StripeBillingProvider:
    """:class:`BillingProvider` backed by the Stripe Python library.

    Parameters
    ----------
    settings:
        API settings containing the Stripe secret key and request timeout.
    """

    def __init__(self, settings: APISettings) -> None:
        self._settings = settings

    def _get_stripe(self) -> Any:
        """Configure and return the Stripe module."""
        stripe.api_key = self._settings.stripe_secret_key.get_secret_value()
        stripe.max_network_retries = 0
        client = _shared_http_client(self._settings.stripe_timeout_seconds)
        if stripe.default_http_client is not client:
            stripe.default_http_client = client
        return stripe

    def get_subscription(self, subscription_id: str) -> SubscriptionRecord | None:
        """Fetch a subscription by id.

        Returns ``None`` when Stripe reports that the subscription does not
        exist, so the caller can fall back to a search.
        """
        client = self._get_stripe()
        try:
            obj = client.Subscription.retrieve(subscription_id)
        except stripe.InvalidRequestError as exc:
            if exc.code == "resource_missing" or exc.http_status == 404:
                logger.info("Stripe subscription %s does not exist", subscription_id)
                return None
            raise self._upstream("retrieve subscription", exc) from exc
        except stripe.StripeError as exc:
            raise self._upstream("retrieve subscription", exc) from exc
        return SubscriptionRecord.from_stripe(obj)

    def list_customers_by_email(self, email: str, limit: int) -> list[CustomerRecord]:
        """Return up to *limit* customers whose email equals *email*."""
        client = self._get_stripe()
        try:
            listing = client.Customer.list(email=email, limit=limit)
        except stripe.StripeError as exc:
            raise self._upstream("list customers", exc) from exc
        return [CustomerRecord.from_stripe(c) for c in (_as_dict(listing).get("data") or [])[:limit]]

    def list_subscriptions_for_customer(
        self,
        customer_id: str,
        limit: int,
        status: str = "all",
    ) -> list[SubscriptionRecord]:
        """Return up to *limit* subscriptions of *customer_id*, newest first."""
        client = self._get_stripe()
        try:
            listing = client.Subscription.list(customer=customer_id, status=status, limit=limit)
        except stripe.StripeError as exc:
            raise self._upstream("list subscriptions", exc) from exc
        return [SubscriptionRecord.from_stripe(s) for s in (_as_dict(listing).get("data") or [])[:limit]]

    @staticmethod
    def _upstream(operation: str, exc: Exception) -> UpstreamError:
        logger.error("Stripe %s failed: %s", operation, exc)
        return UpstreamError(f"Billing provider request failed ({operation}), please retry")
