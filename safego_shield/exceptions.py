"""Custom exceptions and FastAPI exception handlers."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int = 400,
        details: dict | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.error = error
        self.message = message
        self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(message)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Missing or invalid Authorization header"):
        super().__init__("UNAUTHORIZED", message, 401)


class ForbiddenError(AppError):
    def __init__(self, message: str):
        super().__init__("FORBIDDEN", message, 403)


class ServiceUnavailableError(AppError):
    def __init__(self, message: str):
        super().__init__("SERVICE_UNAVAILABLE", message, 503)


class RateLimitedError(AppError):
    """Actor exceeded the category quota for the current window.

    ``headers`` carries the ``X-RateLimit-*`` metadata for the response;
    ``Retry-After`` is always set from ``retry_after``.
    """

    code = "RATE_LIMITED"

    def __init__(
        self,
        message: str,
        category: str,
        retry_after: int,
        headers: dict[str, str] | None = None,
    ):
        self.category = category
        self.retry_after = retry_after
        super().__init__(
            self.code,
            message,
            429,
            {"category": category, "retryAfter": retry_after},
            {**(headers or {}), "Retry-After": str(retry_after)},
        )


class BlockedError(RateLimitedError):
    """Actor is serving a penalty block from an earlier violation."""

    code = "BLOCKED"


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""

    @app.exception_handler(AppError)
    async def _app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
        body: dict = {"error": exc.error, "message": exc.message}
        if exc.details:
            body["details"] = exc.details
        return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)
