"""FastAPI application factory for statehistory.

Usage::

    from statehistory.api.app import create_app

    app = create_app(coordinator=coordinator, live_state=live_state)

The factory is used by both the production bootstrap (``statehistory.app``)
and the tests.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from statehistory.api.routes import APIError, router
from statehistory.api.schemas import ErrorResponse
from statehistory.history.errors import SnapshotError, UnauthenticatedError
from statehistory.rollback.coordinator import RollbackCoordinator
from statehistory.rollback.live_state import LiveStateRegistry

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def _error(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail).model_dump(),
    )


def create_app(
    coordinator: RollbackCoordinator,
    live_state: LiveStateRegistry | None = None,
) -> FastAPI:
    """Create and configure the statehistory FastAPI application.

    Args:
        coordinator: RollbackCoordinator wrapping the process's HistoryStore.
        live_state:  Restore target for rollbacks requested over HTTP.  A
                     fresh registry bound to *coordinator* is used when omitted.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from statehistory import __version__

    app = FastAPI(
        title="statehistory",
        summary="Change history and rollback API",
        version=__version__,
        description=(
            "Records before/after snapshots of console entities and restores "
            "earlier states, keeping every rollback in the audit trail."
        ),
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )

    app.state.coordinator = coordinator
    app.state.live_state = live_state or LiveStateRegistry(coordinator)

    app.include_router(router, prefix=_API_PREFIX)

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(APIError)
    async def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
        return _error(exc.status_code, exc.error, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Report the first failing field in the error envelope."""
        errors = exc.errors()
        detail = ""
        if errors:
            locs = errors[0].get("loc", ())
            field_name = str(locs[-1]) if locs else ""
            detail = f"{field_name}: {errors[0].get('msg', '')}"
        return _error(400, "INVALID_REQUEST", detail)

    @app.exception_handler(SnapshotError)
    async def snapshot_error_handler(_request: Request, exc: SnapshotError) -> JSONResponse:
        return _error(422, "SNAPSHOT_NOT_SERIALISABLE", str(exc))

    @app.exception_handler(UnauthenticatedError)
    async def unauthenticated_handler(_request: Request, exc: UnauthenticatedError) -> JSONResponse:
        return _error(401, "UNAUTHENTICATED", str(exc))

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return _error(500, "INTERNAL_ERROR", "An unexpected error occurred.")

    return app
