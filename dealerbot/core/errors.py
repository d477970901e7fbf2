"""Error taxonomy and exception handling utilities."""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("dealerbot.errors")


class DealerbotError(Exception):
    """Base class for errors raised by the turn pipeline."""


class ClassificationError(DealerbotError):
    """A matcher could not evaluate a message. The classifier skips that matcher and never re-raises."""


class UpstreamError(DealerbotError):
    """A call to an external dependency failed or returned an unusable payload."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CircuitOpenError(UpstreamError):
    """Raised when a circuit rejects a call without a fallback."""

    def __init__(self, name: str, retry_in_seconds: int) -> None:
        super().__init__(f"Circuit {name} OPEN. Retry in {retry_in_seconds}s")
        self.name = name
        self.retry_in_seconds = retry_in_seconds


class StoreError(DealerbotError):
    """The key-value store could not be read or written."""


class ValidationExhausted(DealerbotError):
    """A response still violates policy after its single reformulation attempt."""

    def __init__(self, check: str, candidate: str | None = None) -> None:
        super().__init__(f"reformulation did not repair '{check}'")
        self.check = check
        self.candidate = candidate


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
    """Return a generic JSON error response while logging the exception."""

    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "Something unexpected happened. Please try again later.",
        },
    )
