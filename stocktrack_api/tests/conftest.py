"""Shared fixtures for StockTrack API tests.

Provides identity tokens, an in-memory SQLite datastore seeded with two
companies and their profiles, an in-memory billing provider, and an async
httpx client bound to the app with its dependencies overridden.
"""

from __future__ import annotations

import os
import time
from collections.abc import AsyncGenerator
from typing import Any

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine

# Set the secret BEFORE importing application modules so the module-level
# app is built with a deterministic verifier configuration.
_TEST_JWT_SECRET = "test-secret-key-for-stocktrack-tests"
os.environ.setdefault("STOCKTRACK_JWT_SECRET", _TEST_JWT_SECRET)

from stocktrack_api.config import APISettings
from stocktrack_api.dependencies import get_billing_provider, get_db_session, get_settings
from stocktrack_api.main import create_app
from stocktrack_api.services.billing_provider import CustomerRecord, SubscriptionRecord
from stocktrack_api.state.database import create_tables, get_session
from stocktrack_api.state.sqlite_adapter import get_local_engine
from stocktrack_api.state.tables import ProfileTable, TenantTable

# ---------------------------------------------------------------------------
# Identity tokens
# ---------------------------------------------------------------------------


def make_token(
    sub: str = "user_manager",
    email: str | None = "owner@acme.test",
    expires_in: int = 3600,
    secret: str = _TEST_JWT_SECRET,
) -> str:
    """Sign an identity token the way the identity provider would."""
    now = int(time.time())
    payload: dict[str, Any] = {"sub": sub, "iat": now, "exp": now + expires_in}
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(sub: str = "user_manager", email: str | None = "owner@acme.test") -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub=sub, email=email)}"}


# ---------------------------------------------------------------------------
# Billing provider double
# ---------------------------------------------------------------------------


def make_subscription(
    sub_id: str,
    *,
    status: str | None = "active",
    company_id: str | None = None,
    tier: str | None = None,
    customer: str | dict[str, Any] | None = "cus_1",
    current_period_end: int | None = 1767225600,  # 2026-01-01T00:00:00Z
    trial_end: int | None = None,
    created: int | None = 1700000000,
) -> SubscriptionRecord:
    metadata: dict[str, str] = {}
    if company_id is not None:
        metadata["company_id"] = company_id
    if tier is not None:
        metadata["tier"] = tier
    return SubscriptionRecord(
        id=sub_id,
        status=status,
        customer=customer,
        metadata=metadata,
        current_period_end=current_period_end,
        trial_end=trial_end,
        created=created,
    )


class FakeBillingProvider:
    """In-memory :class:`BillingProvider` that records every call."""

    def __init__(self) -> None:
        self.subscriptions: dict[str, SubscriptionRecord] = {}
        self.customers_by_email: dict[str, list[CustomerRecord]] = {}
        self.subscriptions_by_customer: dict[str, list[SubscriptionRecord]] = {}
        self.calls: list[tuple[str, Any]] = []

    def add_customer(self, customer_id: str, email: str, subscriptions: list[SubscriptionRecord]) -> None:
        self.customers_by_email.setdefault(email, []).append(CustomerRecord(id=customer_id, email=email))
        self.subscriptions_by_customer[customer_id] = list(subscriptions)
        for subscription in subscriptions:
            self.subscriptions[subscription.id] = subscription

    def get_subscription(self, subscription_id: str) -> SubscriptionRecord | None:
        self.calls.append(("get_subscription", subscription_id))
        return self.subscriptions.get(subscription_id)

    def list_customers_by_email(self, email: str, limit: int) -> list[CustomerRecord]:
        self.calls.append(("list_customers_by_email", email))
        return self.customers_by_email.get(email, [])[:limit]

    def list_subscriptions_for_customer(
        self,
        customer_id: str,
        limit: int,
        status: str = "all",
    ) -> list[SubscriptionRecord]:
        self.calls.append(("list_subscriptions_for_customer", customer_id))
        return self.subscriptions_by_customer.get(customer_id, [])[:limit]

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture()
def provider() -> FakeBillingProvider:
    return FakeBillingProvider()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture()
def test_settings() -> APISettings:
    """Return a settings object suitable for testing."""
    return APISettings(
        database_url="sqlite+aiosqlite:///:memory:",
        platform_env="dev",
        cors_origins=["http://localhost:3000"],
        jwt_secret=_TEST_JWT_SECRET,
        stripe_secret_key="sk_test_xxx",
    )


# ---------------------------------------------------------------------------
# Datastore
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine seeded with two companies and their staff.

    ``co_acme`` has a manager, an admin, an employee and a profile with an
    unknown role; ``co_other`` has a single admin.  ``user_orphan`` belongs
    to no company.
    """
    eng = get_local_engine(":memory:")
    await create_tables(eng)
    async with get_session(eng) as session:
        session.add_all(
            [
                TenantTable(id="co_acme", name="Acme Tools", subscription_status="inactive"),
                TenantTable(id="co_other", name="Other Ltd", subscription_status="active"),
                ProfileTable(id="user_manager", company_id="co_acme", email="owner@acme.test", role="manager"),
                ProfileTable(id="user_admin", company_id="co_acme", email="admin@acme.test", role="admin"),
                ProfileTable(id="user_employee", company_id="co_acme", email="staff@acme.test", role="employee"),
                ProfileTable(id="user_odd", company_id="co_acme", email="odd@acme.test", role="owner"),
                ProfileTable(id="user_other", company_id="co_other", email="boss@other.test", role="admin"),
                ProfileTable(id="user_orphan", company_id=None, email="lost@nowhere.test", role="manager"),
            ]
        )
    yield eng
    await eng.dispose()


async def load_tenant(engine: AsyncEngine, tenant_id: str) -> TenantTable | None:
    """Read a tenant row through a fresh session."""
    async with get_session(engine) as session:
        return await session.get(TenantTable, tenant_id)


# ---------------------------------------------------------------------------
# FastAPI app and async client
# ---------------------------------------------------------------------------


@pytest.fixture()
def app(test_settings: APISettings, engine: AsyncEngine, provider: FakeBillingProvider):
    """Create the app with the datastore, settings and provider overridden."""
    application = create_app()

    async def _override_session():
        async with get_session(engine) as session:
            yield session

    application.dependency_overrides[get_db_session] = _override_session
    application.dependency_overrides[get_settings] = lambda: test_settings
    application.dependency_overrides[get_billing_provider] = lambda: provider
    return application


@pytest_asyncio.fixture()
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Yield an async httpx client bound to the test app (no auth header)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
