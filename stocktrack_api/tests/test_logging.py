"""Tests for the JSON log formatter and the access-log middleware."""

from __future__ import annotations

import json
import logging
import sys

import pytest
from conftest import auth_headers
from httpx import AsyncClient

from stocktrack_api.middleware.json_formatter import JSONFormatter


def _record(msg: str = "request completed", level: int = logging.INFO, exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="stocktrack_api.access",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestJSONFormatter:
    def test_basic_format(self) -> None:
        data = json.loads(JSONFormatter().format(_record(level=logging.WARNING)))

        assert data["level"] == "WARNING"
        assert data["logger"] == "stocktrack_api.access"
        assert data["message"] == "request completed"
        assert "timestamp" in data
        assert "request" not in data

    def test_request_context_included(self) -> None:
        record = _record()
        record.request = {"method": "POST", "path": "/api/v1/subscription/sync", "company_id": "co_acme"}  # type: ignore[attr-defined]

        data = json.loads(JSONFormatter().format(record))

        assert data["request"]["company_id"] == "co_acme"

    def test_exception_rendered_on_one_line(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            output = JSONFormatter().format(_record(msg="failed", level=logging.ERROR, exc_info=sys.exc_info()))

        assert "\n" not in output
        assert "RuntimeError: boom" in json.loads(output)["exc_info"]


class TestRequestLoggingMiddleware:
    @pytest.mark.asyncio
    async def test_access_record_masks_token_and_names_company(self, client: AsyncClient, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="stocktrack_api.access"):
            resp = await client.get("/api/v1/subscription", headers=auth_headers())

        assert resp.status_code == 200
        records = [r for r in caplog.records if r.name == "stocktrack_api.access"]
        assert len(records) == 1
        payload = records[0].request  # type: ignore[attr-defined]
        assert payload["path"] == "/api/v1/subscription"
        assert payload["status_code"] == 200
        assert payload["company_id"] == "co_acme"
        assert payload["headers"]["authorization"] == "***"
        assert payload["correlation_id"] == resp.headers["X-Correlation-ID"]

    @pytest.mark.asyncio
    async def test_client_errors_logged_as_warning(self, client: AsyncClient, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="stocktrack_api.access"):
            await client.post("/api/v1/subscription/sync")

        records = [r for r in caplog.records if r.name == "stocktrack_api.access"]
        assert records[-1].levelno == logging.WARNING
        assert records[-1].request["company_id"] is None  # type: ignore[attr-defined]
