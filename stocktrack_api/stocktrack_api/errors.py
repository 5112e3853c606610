"""Error taxonomy surfaced by the subscription endpoints.

Every failure of a reconciliation run is terminal for that invocation and
is raised as a subclass of :class:`ReconciliationError`.  The application
exception handler renders them as::

    {"error": "<message>", "kind": "<kind>", ...context}

with the class-level ``status_code``.  ``context`` carries whatever an
operator needs to diagnose the failure without server log access (for
example both tenant ids on a metadata mismatch).
"""

from __future__ import annotations

from typing import Any


class ReconciliationError(Exception):
    """Base class for all terminal reconciliation failures."""

    kind: str = "ReconciliationError"
    status_code: int = 500

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON body sent to the caller."""
        payload: dict[str, Any] = {"error": self.message, "kind": self.kind}
        payload.update(self.context)
        return payload


class Unauthenticated(ReconciliationError):
    kind = "Unauthenticated"
    status_code = 401


class Forbidden(ReconciliationError):
    kind = "Forbidden"
    status_code = 403


class NotFound(ReconciliationError):
    """A profile or tenant record is missing from the datastore."""

    kind = "NotFound"
    status_code = 404


class NoSubscriptionFound(ReconciliationError):
    """Every lookup strategy came back empty and the tenant is not active locally."""

    kind = "NoSubscriptionFound"
    status_code = 400


class MetadataMismatch(ReconciliationError):
    """The located subscription is tagged with another tenant's id."""

    kind = "MetadataMismatch"
    status_code = 400

    def __init__(self, found_tenant_id: str | None, expected_tenant_id: str) -> None:
        super().__init__(
            "Subscription metadata mismatch",
            subscription_company_id=found_tenant_id,
            your_company_id=expected_tenant_id,
        )
        self.found_tenant_id = found_tenant_id
        self.expected_tenant_id = expected_tenant_id


class UpstreamError(ReconciliationError):
    """The billing provider or the datastore failed; safe to retry the whole run."""

    kind = "UpstreamError"
    status_code = 502
