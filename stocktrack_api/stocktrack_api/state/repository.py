"""Repository classes providing access to the tenant datastore.

Each repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  Writes call ``session.flush()``;
the caller is responsible for committing (the request-scoped session
dependency commits on success and rolls back on error).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stocktrack_api.state.tables import ProfileTable, TenantTable

logger = logging.getLogger(__name__)

# Columns that callers may merge into a tenant row.  Identity and creation
# columns are never writable through ``merge``.
MERGEABLE_TENANT_COLUMNS: frozenset[str] = frozenset(
    {
        "subscription_status",
        "subscription_type",
        "subscription_tier",
        "subscription_expiry_date",
        "trial_end_date",
        "stripe_subscription_id",
        "stripe_customer_id",
        "updated_at",
    }
)


class ProfileRepository:
    """Read access to the ``profiles`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str) -> ProfileTable | None:
        """Fetch a profile by user id.  Returns ``None`` if no row exists."""
        stmt = select(ProfileTable).where(ProfileTable.id == user_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class TenantRepository:
    """Read and merge-write access to the ``companies`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, tenant_id: str) -> TenantTable | None:
        """Fetch a tenant by id.  Returns ``None`` if no row exists."""
        stmt = select(TenantTable).where(TenantTable.id == tenant_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def merge(self, tenant_id: str, fields: Mapping[str, Any]) -> bool:
        """Update only the given columns of a tenant row.

        Columns not named in *fields* are left untouched; a key is never
        written as ``NULL`` unless the caller passes ``None`` explicitly.

        Returns
        -------
        bool
            ``True`` if a row was updated, ``False`` if the tenant does not
            exist.

        Raises
        ------
        ValueError
            If *fields* is empty or names a column outside
            :data:`MERGEABLE_TENANT_COLUMNS`.
        """
        if not fields:
            raise ValueError("merge requires at least one field")
        unknown = set(fields) - MERGEABLE_TENANT_COLUMNS
        if unknown:
            raise ValueError(f"Columns not mergeable on tenant: {sorted(unknown)}")

        stmt = (
            update(TenantTable)
            .where(TenantTable.id == tenant_id)
            .values(**dict(fields))
            .execution_options(synchronize_session="evaluate")
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        updated = result.rowcount > 0
        logger.debug("Merged %d field(s) into tenant %s (updated=%s)", len(fields), tenant_id, updated)
        return updated
