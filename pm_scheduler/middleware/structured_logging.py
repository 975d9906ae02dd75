# pm_scheduler/middleware/structured_logging.py
from __future__ import annotations

import json
import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .request_id import get_request_id

log = logging.getLogger("pm_scheduler.request")


def _json_log(payload: dict) -> None:
    # one JSON line per request
    log.info(json.dumps(payload, default=str))


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Emits one structured log line per request with:
      request_id, org_slug, user_email, method, path, status_code, latency_ms

    Runs inside RequestIDMiddleware, so the request id ContextVar is already set.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        t0 = time.time()

        # headers only: the principal is resolved later, inside the handler
        org_slug = request.headers.get("X-Org-Slug")
        user_email = request.headers.get("X-User-Email")

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            latency_ms = int((time.time() - t0) * 1000)

            _json_log(
                {
                    "event": "http_request",
                    "request_id": get_request_id(),
                    "method": request.method,
                    "path": request.url.path,
                    "query": str(request.url.query) if request.url.query else "",
                    "status_code": status_code,
                    "latency_ms": latency_ms,
                    "org_slug": org_slug,
                    "user_email": user_email,
                }
            )
