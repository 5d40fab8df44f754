"""
Moltbook API client.

Verifies agent identity tokens against Moltbook, retrying on rate limits
and network failures with exponential backoff.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional
import logging

import requests

from moltin.core.config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://moltbook.com/api/v1"
DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_RETRIES = 3


# ============================================================================
# Errors
# ============================================================================

class MoltbookErrorCode:
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "TOKEN_INVALID"
    TOKEN_MISSING = "TOKEN_MISSING"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass
class RateLimitInfo:
    retry_after: Optional[int] = None
    limit: Optional[int] = None
    remaining: Optional[int] = None


class MoltbookAPIError(Exception):
    """Error reported by (or while talking to) the Moltbook API."""

    def __init__(
        self,
        message: str,
        code: str = MoltbookErrorCode.UNKNOWN_ERROR,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        is_retryable: bool = False,
        rate_limit_info: Optional[RateLimitInfo] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        self.is_retryable = is_retryable
        self.rate_limit_info = rate_limit_info


class MoltbookTokenExpiredError(MoltbookAPIError):
    def __init__(self, message: str = "The identity token has expired"):
        super().__init__(message, MoltbookErrorCode.TOKEN_EXPIRED)


class MoltbookTokenInvalidError(MoltbookAPIError):
    def __init__(self, message: str = "The identity token is invalid"):
        super().__init__(message, MoltbookErrorCode.TOKEN_INVALID)


class MoltbookRateLimitError(MoltbookAPIError):
    def __init__(self, message: str = "Rate limit exceeded", rate_limit_info: Optional[RateLimitInfo] = None):
        super().__init__(
            message, MoltbookErrorCode.RATE_LIMITED,
            status_code=429, is_retryable=True, rate_limit_info=rate_limit_info
        )


class MoltbookServerError(MoltbookAPIError):
    def __init__(self, message: str = "Moltbook server error", status_code: Optional[int] = None):
        super().__init__(
            message, MoltbookErrorCode.SERVER_ERROR,
            status_code=status_code,
            is_retryable=status_code >= 500 if status_code else True
        )


class MoltbookNetworkError(MoltbookAPIError):
    def __init__(self, message: str = "Network error connecting to Moltbook"):
        super().__init__(message, MoltbookErrorCode.NETWORK_ERROR, is_retryable=True)


class MoltbookTimeoutError(MoltbookAPIError):
    def __init__(self, message: str = "Request to Moltbook timed out"):
        super().__init__(message, MoltbookErrorCode.TIMEOUT, is_retryable=True)


def _header_int(response: requests.Response, name: str) -> Optional[int]:
    value = response.headers.get(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def create_moltbook_error(response: requests.Response, body: Any = None) -> MoltbookAPIError:
    """Map a non-2xx response onto the matching error type."""
    if isinstance(body, dict) and "code" in body and "message" in body:
        code, message, details = body["code"], body["message"], body.get("details")
    else:
        code = MoltbookErrorCode.UNKNOWN_ERROR
        message = response.reason or "An unknown error occurred"
        details = None

    status = response.status_code
    if status in (401, 403):
        if code == MoltbookErrorCode.TOKEN_EXPIRED:
            return MoltbookTokenExpiredError(message)
        return MoltbookTokenInvalidError(message)

    if status == 429:
        info = RateLimitInfo(
            retry_after=_header_int(response, "Retry-After"),
            limit=_header_int(response, "X-RateLimit-Limit"),
            remaining=_header_int(response, "X-RateLimit-Remaining"),
        )
        return MoltbookRateLimitError(message, info)

    if status >= 500:
        return MoltbookServerError(message, status)

    return MoltbookAPIError(message, code, status_code=status, details=details)


# ============================================================================
# Client
# ============================================================================

@dataclass
class VerifyIdentityResult:
    """Outcome of a token verification."""

    success: bool
    valid: bool
    agent: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = field(default=None)

    @classmethod
    def failure(cls, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        error: Dict[str, Any] = {"code": code, "message": message}
        if details:
            error["details"] = details
        return cls(success=False, valid=False, error=error)


class MoltbookClient:
    """Client for the Moltbook identity verification API."""

    def __init__(
        self,
        api_key: Optional[str],
        app_url: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not api_key:
            raise ValueError("Moltbook API key is required")
        if not app_url:
            raise ValueError("App URL is required for audience validation")

        self.api_key = api_key
        self.app_url = app_url
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = session or requests.Session()
        self._sleep = sleep

    def verify_identity_token(self, token: str) -> VerifyIdentityResult:
        """
        Verify an identity token issued by Moltbook.

        Returns a successful result with the agent payload, or a failure
        result carrying {code, message, details}. Never raises for API
        or network errors.
        """
        url = f"{self.base_url}/agents/verify-identity"
        payload = {"token": token, "audience": self.app_url}
        headers = {"Content-Type": "application/json", "X-Moltbook-App-Key": self.api_key}

        last_error: Optional[Exception] = None
        timed_out = False

        for attempt in range(self.max_retries):
            try:
                response = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)

                if response.status_code == 429 and attempt < self.max_retries - 1:
                    retry_after = _header_int(response, "Retry-After")
                    wait = retry_after if retry_after is not None else 2 ** attempt
                    logger.warning(f"Moltbook rate limited, retrying in {wait}s (attempt {attempt + 1})")
                    self._sleep(wait)
                    continue

                data = response.json()

                if not response.ok:
                    error = create_moltbook_error(response, data)
                    logger.info(f"Moltbook verification failed: {error.code} {error.message}")
                    return VerifyIdentityResult.failure(error.code, error.message, error.details)

                return VerifyIdentityResult(
                    success=bool(data.get("success", True)),
                    valid=bool(data.get("valid", False)),
                    agent=data.get("agent"),
                    error=data.get("error"),
                )

            except requests.Timeout as e:
                last_error = e
                timed_out = True
                logger.error(f"Moltbook request timed out after {self.timeout}s")
                break

            except (requests.RequestException, ValueError) as e:
                last_error = e
                logger.warning(f"Moltbook request failed (attempt {attempt + 1}): {e}")
                if attempt < self.max_retries - 1:
                    self._sleep(2 ** attempt)

        if timed_out:
            error: MoltbookAPIError = MoltbookTimeoutError()
        else:
            error = MoltbookNetworkError(str(last_error) if last_error else "Failed to verify identity token")
        return VerifyIdentityResult.failure(error.code, error.message)


def get_moltbook_client() -> MoltbookClient:
    """Build a client from settings. Raises ValueError when unconfigured."""
    settings = get_settings().moltbook
    if not settings.api_key or not settings.app_url:
        raise ValueError("MOLTBOOK_API_KEY and MOLTBOOK_APP_URL must be configured")

    return MoltbookClient(
        api_key=settings.api_key,
        app_url=settings.app_url,
        base_url=settings.api_url or DEFAULT_BASE_URL,
        timeout=settings.timeout,
        max_retries=settings.max_retries,
    )
