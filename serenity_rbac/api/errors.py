"""
Map library errors onto JSON responses.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from serenity_rbac.core.errors import RBACError

logger = structlog.get_logger()


def register_exception_handlers(app: FastAPI) -> None:
    """Install a handler rendering RBACError as ``{"error", "message", "details"}``."""

    @app.exception_handler(RBACError)
    async def rbac_exception_handler(request: Request, exc: RBACError):
        logger.info(
            "Access-control error",
            path=request.url.path,
            error_code=exc.code,
            status_code=exc.status_code,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
