"""SQLAlchemy 2.0 ORM table definitions for the tenant datastore.

All tables use the ``Mapped`` / ``mapped_column`` declaration style.  The
``Base`` declarative base is exported for table creation and the repository
layer.
"""

from __future__ import annotations

from datetime import UTC, date, datetime

from sqlalchemy import Date, DateTime, Index, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Shared declarative base for all StockTrack tables."""


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


class TenantTable(Base):
    """One customer organization (company) and its cached billing state.

    The billing columns are a cache of the authoritative Stripe subscription.
    They are refreshed on demand by the reconciliation job, which only ever
    merges the columns it recomputes and never clears the others.
    """

    __tablename__ = "companies"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(256), nullable=True)

    # ``active`` | ``trial`` | ``inactive`` or a raw Stripe status passed through.
    subscription_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    # ``stripe`` when written by reconciliation, ``app`` for app-store purchases.
    subscription_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    subscription_tier: Mapped[str | None] = mapped_column(String(32), nullable=True)
    subscription_expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    trial_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(256), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_companies_stripe_subscription", "stripe_subscription_id"),
        Index("ix_companies_stripe_customer", "stripe_customer_id"),
    )


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class ProfileTable(Base):
    """A user's membership of a tenant.

    ``id`` equals the ``sub`` claim of the user's identity token.  ``role``
    is one of ``employee``, ``manager`` or ``admin``.
    """

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    company_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (Index("ix_profiles_company", "company_id"),)
