"""Shared Pydantic request/response models for the subscription endpoints.

These schemas document the response shapes in the OpenAPI specification.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class SyncedFields(BaseModel):
    """Fields written to the tenant by a successful reconciliation."""

    subscription_status: str
    subscription_tier: str | None = None
    stripe_status: str | None = None
    trial_end_date: str | None = None
    expiry_date: str | None = None
    subscription_id: str
    lookup_strategy: str | None = None


class SyncResponse(BaseModel):
    """Response of ``POST /subscription/sync``.

    ``synced`` is either the written fields or ``false`` when nothing was
    found remotely and the local status already grants access.
    """

    success: Literal[True] = True
    synced: SyncedFields | Literal[False]
    message: str | None = None
    current_status: str | None = None


class TierLimitsResponse(BaseModel):
    users: int
    assets: int | None = None
    vehicles: int


class BillingStateResponse(BaseModel):
    """Response of ``GET /subscription``."""

    company_id: str
    subscription_status: str | None = None
    subscription_type: str | None = None
    subscription_tier: str | None = None
    effective_tier: str
    limits: TierLimitsResponse
    expiry_date: str | None = None
    trial_end_date: str | None = None
    stripe_subscription_id: str | None = None
    stripe_customer_id: str | None = None


class SetStatusRequest(BaseModel):
    """Request body for ``POST /subscription/set-status``."""

    subscription_status: str = Field(..., description="One of active, trial, inactive.")
    subscription_tier: str | None = Field(
        default=None,
        description="Optional plan tier; ignored unless it names a known tier.",
    )


class SetStatusResponse(BaseModel):
    success: Literal[True] = True
    subscription_status: str
    subscription_tier: str | None = None


class ErrorResponse(BaseModel):
    """Error body for every reconciliation failure kind."""

    error: str
    kind: str | None = None
