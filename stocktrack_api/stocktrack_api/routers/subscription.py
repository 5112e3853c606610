"""Subscription endpoints: Stripe reconciliation, billing state, manual status."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter

from stocktrack_api.dependencies import (
    BillingProviderDep,
    CallerDep,
    SettingsDep,
    TenantRepoDep,
)
from stocktrack_api.schemas import (
    BillingStateResponse,
    ErrorResponse,
    SetStatusRequest,
    SetStatusResponse,
    SyncResponse,
)
from stocktrack_api.services.reconciliation_service import SubscriptionReconciler
from stocktrack_api.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscription", tags=["subscription"])

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 502)
}


@router.post(
    "/sync",
    response_model=SyncResponse,
    response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
)
async def sync_subscription(
    caller: CallerDep,
    tenants: TenantRepoDep,
    provider: BillingProviderDep,
    settings: SettingsDep,
) -> dict[str, Any]:
    """Refresh the caller's company billing state from Stripe.

    No request body: the company is taken from the caller's profile.
    """
    reconciler = SubscriptionReconciler.from_settings(tenants, provider, settings)
    result = await reconciler.reconcile(caller)
    return result.to_payload()


@router.get(
    "",
    response_model=BillingStateResponse,
    responses=_ERROR_RESPONSES,
)
async def get_billing_state(
    caller: CallerDep,
    tenants: TenantRepoDep,
) -> dict[str, Any]:
    """Return the company's cached billing state and its tier limits."""
    return await SubscriptionService(tenants).get_billing_state(caller)


@router.post(
    "/set-status",
    response_model=SetStatusResponse,
    response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
)
async def set_subscription_status(
    body: SetStatusRequest,
    caller: CallerDep,
    tenants: TenantRepoDep,
) -> dict[str, Any]:
    """Record a subscription purchased outside Stripe (e.g. in the mobile app)."""
    return await SubscriptionService(tenants).set_status(
        caller,
        body.subscription_status,
        body.subscription_tier,
    )
