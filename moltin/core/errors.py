"""API error types and the FastAPI handlers that render them."""

from typing import Any, Dict, Optional
import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Application-level error mapped onto the error envelope."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.default_message
        super().__init__(self.message)
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details
        self.headers = headers

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error, "success": False}


class UnauthorizedError(APIError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Authentication required"


class AuthenticationError(UnauthorizedError):
    """Identity verification with Moltbook failed."""

    default_message = "Authentication failed"


class ForbiddenError(APIError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Access denied"


class NotFoundError(APIError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ValidationError(APIError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class BadRequestError(APIError):
    status_code = 400
    code = "BAD_REQUEST"
    default_message = "Bad request"


class DuplicateApplicationError(APIError):
    status_code = 409
    code = "DUPLICATE_APPLICATION"
    default_message = "You have already applied to this job"


class RateLimitExceededError(APIError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
    default_message = "Rate limit exceeded"

    def __init__(self, message: Optional[str] = None, retry_after: int = 60,
                 limit: Optional[int] = None, remaining: int = 0):
        details = {"retry_after": retry_after, "remaining": remaining}
        if limit is not None:
            details["limit"] = limit
        super().__init__(message, details=details, headers={"Retry-After": str(retry_after)})
        self.retry_after = retry_after


# ============================================================================
# Exception Handlers
# ============================================================================

async def api_error_handler(_: Request, exc: APIError) -> JSONResponse:
    """Render an APIError as the error envelope."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    """Request validation failures become 400 VALIDATION_ERROR."""
    errors = jsonable_encoder(exc.errors())
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")
    if field:
        message = f"{field}: {message}"
    error = ValidationError(message, details={"errors": errors})
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the exception and hide its details."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content=APIError().to_dict())
