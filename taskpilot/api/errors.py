import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import AppError, StoreError, Unauthenticated

logger = logging.getLogger("taskpilot.errors")


def register_exception_handlers(app: FastAPI) -> None:
    """Attach simple, consistent JSON error handlers."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if isinstance(exc, StoreError):
            logger.error(
                "store failure path=%s cause=%r", request.url.path, exc.__cause__
            )
        content = {
            "error": exc.error,
            "detail": exc.detail,
            "status": exc.status_code,
            "path": request.url.path,
        }
        if exc.details is not None:
            content["details"] = jsonable_encoder(exc.details)
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
        return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "HTTPError",
                "detail": exc.detail if isinstance(exc.detail, str) else "HTTPError",
                "status": exc.status_code,
                "path": request.url.path,
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "error": "ValidationError",
                "detail": "Request validation failed",
                "status": 400,
                "path": request.url.path,
                "details": jsonable_encoder(exc.errors()),
            },
        )
