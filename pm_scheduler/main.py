# pm_scheduler/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .domain.errors import DuplicateAssignment, InvalidTransition, NotFound, SchedulingError, TransactionFailure
from .logging_config import configure_logging

from .middleware.request_id import RequestIDMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.health import router as health_router
from .routers.clients import router as clients_router
from .routers.calendar import router as calendar_router
from .routers.maintenance import router as maintenance_router
from .routers.series import router as series_router
from .routers.work_orders import router as work_orders_router
from .routers.workflow import router as workflow_router
from .routers.audit import router as audit_router

API_PREFIX = "/api"

log = logging.getLogger("pm_scheduler.api")


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


def _error_body(exc: SchedulingError, kind: str, **extra) -> dict:
    return {"detail": exc.message, "error": kind, **extra}


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFound)
    async def _not_found(request: Request, exc: NotFound):
        return JSONResponse(status_code=404, content=_error_body(exc, "not_found"))

    @app.exception_handler(DuplicateAssignment)
    async def _duplicate(request: Request, exc: DuplicateAssignment):
        return JSONResponse(
            status_code=409,
            content=_error_body(exc, "duplicate_assignment", existing_id=exc.existing_id),
        )

    @app.exception_handler(InvalidTransition)
    async def _invalid_transition(request: Request, exc: InvalidTransition):
        return JSONResponse(
            status_code=422,
            content=_error_body(exc, "invalid_transition", from_status=exc.from_status, to_status=exc.to_status),
        )

    @app.exception_handler(TransactionFailure)
    async def _txn_failure(request: Request, exc: TransactionFailure):
        log.warning("transaction failure surfaced to client: %s", exc.message)
        return JSONResponse(
            status_code=503,
            content=_error_body(exc, "transaction_failure", retryable=True),
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(ValueError)
    async def _bad_value(request: Request, exc: ValueError):
        return JSONResponse(status_code=422, content={"detail": str(exc), "error": "invalid_input"})


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="PM Scheduler",
        version=getattr(settings, "engine_version", "dev"),
    )

    # added last = outermost: the request id is set before the request log line is written
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)

    # Core
    app.include_router(health_router, prefix=API_PREFIX)

    # Scheduling engine
    app.include_router(clients_router, prefix=API_PREFIX)
    app.include_router(calendar_router, prefix=API_PREFIX)
    app.include_router(maintenance_router, prefix=API_PREFIX)
    app.include_router(series_router, prefix=API_PREFIX)
    app.include_router(work_orders_router, prefix=API_PREFIX)

    # Audit / workflow
    app.include_router(workflow_router, prefix=API_PREFIX)
    app.include_router(audit_router, prefix=API_PREFIX)

    return app


app = create_app()
