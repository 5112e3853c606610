"""Middleware components for the subscription API."""

from __future__ import annotations

from stocktrack_api.middleware.json_formatter import JSONFormatter
from stocktrack_api.middleware.logging import RequestLoggingMiddleware
from stocktrack_api.middleware.rbac import BILLING_ROLES, Role, can_manage_billing, parse_role

__all__ = [
    "BILLING_ROLES",
    "JSONFormatter",
    "RequestLoggingMiddleware",
    "Role",
    "can_manage_billing",
    "parse_role",
]
