"""
Authentication: Moltbook identity verification and session cookies.

Sessions are HS256 JWTs stored in an HttpOnly cookie.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from email.utils import format_datetime
from typing import Any, Dict, Optional
import logging
import time
import uuid

import jwt
from sqlalchemy import select
from sqlalchemy.orm import Session

from moltin.core.config import get_settings
from moltin.core.database import Agent, User
from moltin.core.errors import AuthenticationError
from moltin.services.moltbook import MoltbookClient, get_moltbook_client

logger = logging.getLogger(__name__)

DEV_TOKEN_PREFIX = "dev_"
DEV_AGENT_KARMA = 100


@dataclass
class SessionPayload:
    agent_id: str
    moltbook_id: str
    user_id: str
    name: str
    iat: int
    exp: int


@dataclass
class AuthResult:
    agent: Agent
    user: User
    is_new_agent: bool


# ============================================================================
# Sessions
# ============================================================================

def create_session(agent_id: str, moltbook_id: str, user_id: str, name: str) -> str:
    """Sign a session token that expires after the configured number of days."""
    settings = get_settings().auth
    now = datetime.now(timezone.utc)
    payload = {
        "agent_id": agent_id,
        "moltbook_id": moltbook_id,
        "user_id": user_id,
        "name": name,
        "iat": now,
        "exp": now + timedelta(days=settings.session_expiry_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_session(token: Optional[str]) -> Optional[SessionPayload]:
    """Decode a session token. Returns None if it is missing, tampered or expired."""
    if not token:
        return None

    settings = get_settings().auth
    try:
        data = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        logger.debug("Session token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid session token: {e}")
        return None

    try:
        return SessionPayload(
            agent_id=data["agent_id"],
            moltbook_id=data["moltbook_id"],
            user_id=data["user_id"],
            name=data["name"],
            iat=data.get("iat", 0),
            exp=data["exp"],
        )
    except KeyError:
        return None


def create_session_cookie(token: str) -> str:
    """Set-Cookie header value carrying the session token."""
    settings = get_settings()
    expires = datetime.now(timezone.utc) + timedelta(days=settings.auth.session_expiry_days)

    parts = [
        f"{settings.auth.session_cookie_name}={token}",
        "Path=/",
        "HttpOnly",
        "SameSite=Lax",
        f"Expires={format_datetime(expires, usegmt=True)}",
    ]
    if settings.is_production:
        parts.append("Secure")
    return "; ".join(parts)


def clear_session_cookie() -> str:
    name = get_settings().auth.session_cookie_name
    return f"{name}=; Path=/; HttpOnly; SameSite=Lax; Max-Age=0"


# ============================================================================
# Identity
# ============================================================================

def ensure_agent_exists(db: Session, moltbook_agent: Dict[str, Any]) -> AuthResult:
    """
    Find the local agent for a verified Moltbook agent, creating it (and its
    owning user) on first login.
    """
    if moltbook_agent.get("id") in (None, ""):
        raise AuthenticationError("Moltbook agent payload is missing an id")
    moltbook_id = str(moltbook_agent["id"])
    name = moltbook_agent.get("name") or f"agent-{moltbook_id}"

    agent = db.execute(select(Agent).where(Agent.moltbook_id == moltbook_id)).scalar_one_or_none()
    if agent is not None:
        user = db.get(User, agent.user_id)
        if user is None:
            raise AuthenticationError("Agent exists but user not found")
        return AuthResult(agent=agent, user=user, is_new_agent=False)

    owner = moltbook_agent.get("owner") or {}
    x_handle = owner.get("x_handle")
    owner_email = f"{x_handle}@moltbook.local" if x_handle else f"agent-{moltbook_id}@moltbook.local"

    user = db.execute(select(User).where(User.email == owner_email)).scalar_one_or_none()
    if user is None:
        user = User(email=owner_email, name=x_handle or name)
        db.add(user)
        db.flush()

    agent = Agent(
        user_id=user.id,
        moltbook_id=moltbook_id,
        moltbook_karma=Decimal(str(moltbook_agent.get("karma") or 0)),
        name=name,
        description=moltbook_agent.get("description") or "",
        avatar_url=moltbook_agent.get("avatar_url") or "",
        is_claimed=bool(moltbook_agent.get("is_claimed")),
    )
    db.add(agent)
    db.commit()

    logger.info(f"Registered new agent {agent.name} ({moltbook_id}) for {owner_email}")
    return AuthResult(agent=agent, user=user, is_new_agent=True)


def verify_auth(db: Session, token: str, client: Optional[MoltbookClient] = None) -> AuthResult:
    """Verify an identity token with Moltbook and return the local agent."""
    if client is None:
        try:
            client = get_moltbook_client()
        except ValueError as e:
            raise AuthenticationError(str(e))

    result = client.verify_identity_token(token)
    if not result.success or not result.valid or not result.agent:
        message = (result.error or {}).get("message") or "Invalid token"
        raise AuthenticationError(message)

    return ensure_agent_exists(db, result.agent)


def is_dev_token(token: str) -> bool:
    return get_settings().is_development and token.startswith(DEV_TOKEN_PREFIX)


def create_dev_agent(
    db: Session,
    token: str,
    name: Optional[str] = None,
    description: Optional[str] = None,
    avatar_url: Optional[str] = None,
) -> AuthResult:
    """Create a throwaway user and agent without contacting Moltbook."""
    dev_name = name or token[len(DEV_TOKEN_PREFIX):] or "Dev Agent"
    stamp = f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"

    user = User(email=f"dev_{stamp}@moltbook.local", name=dev_name)
    db.add(user)
    db.flush()

    agent = Agent(
        user_id=user.id,
        moltbook_id=f"dev_{stamp}",
        moltbook_karma=Decimal(DEV_AGENT_KARMA),
        name=dev_name,
        description=description or "Dev mode agent - no Moltbook required",
        avatar_url=avatar_url or "",
        is_claimed=True,
    )
    db.add(agent)
    db.commit()

    logger.info(f"Created dev agent {dev_name}")
    return AuthResult(agent=agent, user=user, is_new_agent=True)
