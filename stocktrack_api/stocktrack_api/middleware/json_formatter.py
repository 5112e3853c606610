"""Single-line JSON log output.

Enabled with ``STOCKTRACK_STRUCTURED_LOGGING=true``; the app then swaps
the root handlers for a ``StreamHandler`` using :class:`JSONFormatter`.

Each line looks like::

    {
        "timestamp": "2026-03-02T09:15:00.120000+00:00",
        "level": "WARNING",
        "logger": "stocktrack_api.services.subscription_locator",
        "message": "Falling back to ...",
        "request": { ... },
        "exc_info": "Traceback ..."
    }
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import UTC, datetime
from typing import Any


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Set by RequestLoggingMiddleware via ``extra={"request": ...}``.
        request_data = getattr(record, "request", None)
        if request_data is not None:
            payload["request"] = request_data

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)
