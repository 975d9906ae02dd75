# pm_scheduler/middleware/request_id.py
from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

HEADER = "X-Request-ID"
MAX_LEN = 128


def get_request_id() -> str | None:
    return request_id_ctx.get()


def _incoming_id(request: Request) -> str | None:
    # header lookup is case-insensitive; oversized ids are replaced, not truncated
    rid = (request.headers.get(HEADER) or "").strip()
    if not rid or len(rid) > MAX_LEN:
        return None
    return rid


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id, echoed back in X-Request-ID.

    The id is kept in a ContextVar (read by the JSON log formatter) and on
    request.state for handlers that want it.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = _incoming_id(request) or str(uuid.uuid4())
        request.state.request_id = rid

        token = request_id_ctx.set(rid)
        try:
            resp = await call_next(request)
            resp.headers[HEADER] = rid
            return resp
        finally:
            request_id_ctx.reset(token)
