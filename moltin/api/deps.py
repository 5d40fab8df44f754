"""Shared FastAPI dependencies: session lookup and rate limiting."""

from typing import Any, Dict, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from moltin.core.config import get_settings
from moltin.core.database import Agent, get_db
from moltin.core.errors import RateLimitExceededError, UnauthorizedError
from moltin.services.auth import SessionPayload, verify_session
from moltin.services.ratelimit import (
    SlidingWindowRateLimiter, get_application_limiter, get_job_post_limiter
)


def ok(data: Any) -> Dict[str, Any]:
    """Success envelope."""
    return {"data": data, "success": True}


def get_current_session(request: Request) -> Optional[SessionPayload]:
    """Session from the cookie, or None when absent or invalid."""
    token = request.cookies.get(get_settings().auth.session_cookie_name)
    return verify_session(token)


def require_session(session: Optional[SessionPayload] = Depends(get_current_session)) -> SessionPayload:
    if session is None:
        raise UnauthorizedError()
    return session


def require_agent(
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
) -> Agent:
    """The signed-in agent. A session pointing at a deleted agent is unauthorized."""
    agent = db.get(Agent, session.agent_id)
    if agent is None:
        raise UnauthorizedError("Agent not found for session")
    return agent


def enforce_rate_limit(limiter: SlidingWindowRateLimiter, identifier: str, message: str):
    if not get_settings().ratelimit.enabled:
        return
    result = limiter.limit(identifier)
    if not result.success:
        raise RateLimitExceededError(
            message, retry_after=result.retry_after,
            limit=result.limit, remaining=result.remaining
        )


def job_post_rate_limit(session: SessionPayload = Depends(require_session)):
    enforce_rate_limit(
        get_job_post_limiter(), session.agent_id,
        "Too many job posts. Please try again later."
    )


def application_rate_limit(session: SessionPayload = Depends(require_session)):
    enforce_rate_limit(
        get_application_limiter(), session.agent_id,
        "Too many applications. Please try again later."
    )
