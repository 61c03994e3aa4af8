# backend/app/errors.py

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from openai import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    AuthenticationError,
    BadRequestError,
    PermissionDeniedError,
    RateLimitError,
)

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """
    Error that should reach the browser as `{"error": message}`.

    Raised by the provider helpers; rendered by `api_error_handler`.
    """

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        content={"error": exc.message},
        status_code=exc.status_code,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Request bodies FastAPI could not parse (invalid JSON, wrong field types)
    get the same `{"error": ...}` shape as every other failure.
    """
    errors = exc.errors()
    message = "Invalid request body"
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        detail = first.get("msg", "")
        message = f"{message}: {field} {detail}" if field else f"{message}: {detail}"
    logger.info("[validation] %s %s → %s", request.method, request.url.path, message)
    return JSONResponse(content={"error": message}, status_code=400)


def openai_error_to_api_error(e: Exception, service: str = "language model") -> ApiError:
    """
    Map an OpenAI SDK exception to a status + user-readable message.
    """
    if isinstance(e, ApiError):
        return e
    if isinstance(e, (AuthenticationError, PermissionDeniedError)):
        return ApiError(502, f"The {service} provider rejected the API key.")
    if isinstance(e, RateLimitError):
        return ApiError(429, f"The {service} provider is rate limiting requests. Please try again shortly.")
    # APITimeoutError subclasses APIConnectionError
    if isinstance(e, APITimeoutError):
        return ApiError(504, f"The {service} provider timed out.")
    if isinstance(e, APIConnectionError):
        return ApiError(502, f"The {service} provider is unreachable.")
    if isinstance(e, BadRequestError):
        return ApiError(400, f"The request was rejected by the {service} provider.")
    if isinstance(e, APIError):
        return ApiError(502, f"The {service} provider returned an error.")

    logger.error("Unexpected error: %r", e)
    return ApiError(500, "An unexpected error occurred.")
