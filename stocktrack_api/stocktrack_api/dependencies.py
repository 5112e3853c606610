"""FastAPI dependency injection for settings, sessions, Stripe and the caller."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from stocktrack_api.config import APISettings, load_api_settings
from stocktrack_api.security import TokenVerifier, extract_bearer_token
from stocktrack_api.services.auth_service import AuthorizationGate, Caller
from stocktrack_api.services.billing_provider import BillingProvider, StripeBillingProvider
from stocktrack_api.state.database import get_engine
from stocktrack_api.state.repository import ProfileRepository, TenantRepository

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_settings_cache: APISettings | None = None


def get_settings() -> APISettings:
    """Return the cached :class:`APISettings` singleton."""
    global _settings_cache  # noqa: PLW0603
    if _settings_cache is None:
        _settings_cache = load_api_settings()
    return _settings_cache


SettingsDep = Annotated[APISettings, Depends(get_settings)]

# ---------------------------------------------------------------------------
# Database session
# ---------------------------------------------------------------------------

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_engine(settings: APISettings) -> AsyncEngine:
    """Create and cache the global async engine."""
    global _engine, _session_factory  # noqa: PLW0603
    _engine = get_engine(settings.database_url)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


async def dispose_engine() -> None:
    """Dispose the global engine pool (call during shutdown)."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an ``AsyncSession`` for the duration of one request.

    The session commits on clean exit and rolls back on exception, so a
    failed reconciliation never leaves a partial write behind.
    """
    if _session_factory is None:
        raise RuntimeError(
            "Database engine has not been initialised. Ensure init_engine() is called during application startup."
        )
    session = _session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


SessionDep = Annotated[AsyncSession, Depends(get_db_session)]


def get_tenant_repository(session: SessionDep) -> TenantRepository:
    return TenantRepository(session)


TenantRepoDep = Annotated[TenantRepository, Depends(get_tenant_repository)]

# ---------------------------------------------------------------------------
# Billing provider
# ---------------------------------------------------------------------------


def get_billing_provider(settings: SettingsDep) -> BillingProvider:
    """Return the Stripe-backed billing provider."""
    return StripeBillingProvider(settings)


BillingProviderDep = Annotated[BillingProvider, Depends(get_billing_provider)]

# ---------------------------------------------------------------------------
# Caller identity (bearer token -> profile -> role gate)
# ---------------------------------------------------------------------------


def get_token_verifier(settings: SettingsDep) -> TokenVerifier:
    return TokenVerifier.from_settings(settings)


async def get_billing_caller(
    request: Request,
    session: SessionDep,
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
    authorization: Annotated[str | None, Header()] = None,
) -> Caller:
    """Resolve the request's bearer token to a manager/admin :class:`Caller`."""
    gate = AuthorizationGate(verifier, ProfileRepository(session))
    caller = await gate.authorize(extract_bearer_token(authorization))
    request.state.user_id = caller.user_id
    request.state.tenant_id = caller.tenant_id
    return caller


CallerDep = Annotated[Caller, Depends(get_billing_caller)]
