"""Tenant datastore persistence layer (PostgreSQL or SQLite)."""

from stocktrack_api.state.database import create_tables, get_engine, get_session
from stocktrack_api.state.repository import ProfileRepository, TenantRepository

__all__ = [
    "ProfileRepository",
    "TenantRepository",
    "create_tables",
    "get_engine",
    "get_session",
]
