"""Map progress-core errors onto HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from buildtrack.core.errors import NotFound, PartialCascadeFailure, ProgressEngineError

logger = logging.getLogger(__name__)


async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.message})


async def engine_error_handler(request: Request, exc: ProgressEngineError) -> JSONResponse:
    if isinstance(exc, PartialCascadeFailure):
        logger.error(
            "%s %s left a partial cascade (completed: %s, failed at: %s)",
            request.method,
            request.url.path,
            ", ".join(level.value for level in exc.completed_levels),
            exc.failed_level.value,
        )
    else:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": exc.message})


def register_exception_handlers(app: FastAPI) -> None:
    # Starlette resolves handlers along the MRO, so MissingAncestor lands on NotFound first.
    app.add_exception_handler(NotFound, not_found_handler)
    app.add_exception_handler(ProgressEngineError, engine_error_handler)
