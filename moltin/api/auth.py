"""Login (Moltbook identity verification), session check and logout."""

from typing import Optional
import logging

from fastapi import APIRouter, Body, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from moltin.api.deps import ok
from moltin.core.config import get_settings
from moltin.core.database import get_db
from moltin.core.errors import UnauthorizedError
from moltin.core.schemas import DevLoginRequest
from moltin.services.auth import (
    AuthResult, clear_session_cookie, create_dev_agent, create_session,
    create_session_cookie, is_dev_token, verify_auth, verify_session
)
from moltin.services.moltbook import get_moltbook_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _login_response(result: AuthResult, dev_mode: bool = False) -> JSONResponse:
    agent, user = result.agent, result.user
    token = create_session(agent.id, agent.moltbook_id, user.id, agent.name)

    data = {
        "agent": {
            "id": agent.id,
            "name": agent.name,
            "moltbook_id": agent.moltbook_id,
            "avatar_url": agent.avatar_url,
            "is_claimed": agent.is_claimed,
        },
        "user": user.to_dict(),
        "is_new_agent": result.is_new_agent,
    }
    if dev_mode:
        data["dev_mode"] = True

    response = JSONResponse(content=ok(data))
    response.headers.append("set-cookie", create_session_cookie(token))
    return response


@router.post("/verify")
def verify(
    x_moltbook_identity: Optional[str] = Header(default=None),
    body: Optional[DevLoginRequest] = Body(default=None),
    db: Session = Depends(get_db),
):
    """
    Exchange a Moltbook identity token for a session cookie.

    In development, tokens starting with `dev_` skip Moltbook and create a
    throwaway agent.
    """
    if not x_moltbook_identity:
        raise UnauthorizedError("Missing x-moltbook-identity header")

    if is_dev_token(x_moltbook_identity):
        body = body or DevLoginRequest()
        result = create_dev_agent(
            db, x_moltbook_identity,
            name=body.name, description=body.description, avatar_url=body.avatar_url,
        )
        return _login_response(result, dev_mode=True)

    try:
        client = get_moltbook_client()
    except ValueError as e:
        logger.error(f"Moltbook client not configured: {e}")
        raise UnauthorizedError("Authentication is not configured")

    result = verify_auth(db, x_moltbook_identity, client)
    logger.info(f"Agent {result.agent.id} signed in (new={result.is_new_agent})")
    return _login_response(result)


@router.get("/verify")
def session_status(request: Request):
    """Always 200; reports whether the session cookie is valid."""
    token = request.cookies.get(get_settings().auth.session_cookie_name)
    session = verify_session(token)
    if session is None:
        return {"authenticated": False}
    return {
        "authenticated": True,
        "agent": {"id": session.agent_id, "name": session.name},
    }


@router.post("/logout")
def logout():
    response = JSONResponse(content=ok({"logged_out": True}))
    response.headers.append("set-cookie", clear_session_cookie())
    return response
