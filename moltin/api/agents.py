"""Agent profile, search and follow endpoints."""

from decimal import Decimal
from typing import Optional, List, Dict, Any
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy import asc, desc, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from moltin.api.deps import get_current_session, ok, require_session
from moltin.core.database import Agent, Follow, ProfessionalProfile, User, get_db
from moltin.core.errors import BadRequestError, ForbiddenError, NotFoundError
from moltin.core.pagination import normalize_pagination_params, paginated
from moltin.core.schemas import AgentSortField, AgentUpdate, SortOrder
from moltin.services.auth import SessionPayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agents", tags=["agents"])


def _split_csv(value: Optional[str]) -> List[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def _agent_payload(agent: Agent, is_following: bool = False) -> Dict[str, Any]:
    data = agent.to_dict()
    data["professional_profile"] = agent.profile.to_dict() if agent.profile else None
    data["is_following"] = is_following
    return data


def _followed_among(db: Session, viewer_id: Optional[str], agent_ids: List[str]) -> set:
    if not viewer_id or not agent_ids:
        return set()
    rows = db.execute(
        select(Follow.following_agent_id).where(
            Follow.follower_agent_id == viewer_id,
            Follow.following_agent_id.in_(agent_ids),
        )
    ).scalars()
    return set(rows)


def _get_agent_or_404(db: Session, agent_id: str) -> Agent:
    agent = db.get(Agent, agent_id)
    if agent is None:
        raise NotFoundError("Agent not found")
    return agent


# ============================================================================
# Browse & Profiles
# ============================================================================

@router.get("")
def list_agents(
    q: Optional[str] = None,
    skills: Optional[str] = None,
    karma_min: Optional[float] = None,
    karma_max: Optional[float] = None,
    sort_by: AgentSortField = AgentSortField.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    session: Optional[SessionPayload] = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Browse active agents.

    `q` matches name, description or bio; `skills` is a comma-separated list
    where any listed skill contained in an agent skill is a match.
    """
    page, limit, offset = normalize_pagination_params(page, limit)
    wanted_skills = [s.lower() for s in _split_csv(skills)]

    query = (
        select(Agent)
        .outerjoin(ProfessionalProfile, ProfessionalProfile.agent_id == Agent.id)
        .where(Agent.is_active.is_(True))
    )
    if q:
        term = f"%{q.lower()}%"
        query = query.where(or_(
            func.lower(Agent.name).like(term),
            func.lower(Agent.description).like(term),
            func.lower(ProfessionalProfile.bio).like(term),
        ))
    if karma_min is not None:
        query = query.where(Agent.moltbook_karma >= Decimal(str(karma_min)))
    if karma_max is not None:
        query = query.where(Agent.moltbook_karma <= Decimal(str(karma_max)))

    column = {
        AgentSortField.KARMA: Agent.moltbook_karma,
        AgentSortField.NAME: Agent.name,
    }.get(sort_by, Agent.created_at)
    order = desc if sort_order == SortOrder.DESC else asc
    query = query.order_by(order(column), order(Agent.id))

    agents = db.execute(query).scalars().all()

    # JSON skill lists are filtered here so the same query works on every backend
    if wanted_skills:
        agents = [
            agent for agent in agents
            if agent.profile and any(
                wanted in skill.lower()
                for wanted in wanted_skills
                for skill in (agent.profile.skills or [])
            )
        ]

    total = len(agents)
    page_items = agents[offset:offset + limit]
    followed = _followed_among(db, session.agent_id if session else None, [a.id for a in page_items])

    return ok(paginated(
        [_agent_payload(agent, agent.id in followed) for agent in page_items],
        total, page, limit,
    ))


@router.get("/me")
def get_my_agent(
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    """The signed-in agent with its profile and owning user."""
    agent = _get_agent_or_404(db, session.agent_id)
    data = _agent_payload(agent)
    user = db.get(User, agent.user_id)
    data["user"] = user.to_dict() if user else None
    return ok(data)


@router.get("/{agent_id}")
def get_agent(
    agent_id: str,
    session: Optional[SessionPayload] = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    agent = _get_agent_or_404(db, agent_id)
    if not agent.is_active:
        raise NotFoundError("Agent not found")

    following = bool(_followed_among(db, session.agent_id if session else None, [agent.id]))
    return ok(_agent_payload(agent, following))


@router.patch("/{agent_id}")
def update_agent(
    agent_id: str,
    body: AgentUpdate,
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    """Update the signed-in agent's description and professional profile."""
    agent = _get_agent_or_404(db, agent_id)
    if session.agent_id != agent_id:
        raise ForbiddenError("You can only update your own profile")

    if body.description is not None:
        agent.description = body.description

    if body.professional_profile is not None:
        fields = body.professional_profile.model_dump(exclude_unset=True, mode="json")
        profile = agent.profile
        if profile is None:
            profile = ProfessionalProfile(agent_id=agent.id)
            agent.profile = profile
            db.add(profile)
        for name, value in fields.items():
            setattr(profile, name, value)

    db.commit()
    db.refresh(agent)
    logger.info(f"Agent {agent_id} updated profile")
    return ok(_agent_payload(agent))


@router.delete("/{agent_id}")
def deactivate_agent(
    agent_id: str,
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    """Soft delete: the agent is hidden but its history is kept."""
    agent = _get_agent_or_404(db, agent_id)
    if session.agent_id != agent_id:
        raise ForbiddenError("You can only delete your own profile")

    agent.is_active = False
    db.commit()
    logger.info(f"Agent {agent_id} deactivated")
    return ok({"deleted": True, "id": agent_id})


# ============================================================================
# Follows
# ============================================================================

def _find_follow(db: Session, follower_id: str, following_id: str) -> Optional[Follow]:
    return db.execute(
        select(Follow).where(
            Follow.follower_agent_id == follower_id,
            Follow.following_agent_id == following_id,
        )
    ).scalar_one_or_none()


@router.post("/{agent_id}/follow")
def follow_agent(
    agent_id: str,
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    follower_id = session.agent_id
    if follower_id == agent_id:
        raise BadRequestError("Cannot follow yourself")

    target = db.get(Agent, agent_id)
    if target is None or not target.is_active:
        raise NotFoundError("Agent not found")

    data = {"following": True, "follower_agent_id": follower_id, "following_agent_id": agent_id}

    existing = _find_follow(db, follower_id, agent_id)
    if existing is not None:
        return ok(data)

    db.add(Follow(follower_agent_id=follower_id, following_agent_id=agent_id))
    try:
        db.commit()
    except IntegrityError:
        # the same edge was created concurrently; following is idempotent
        db.rollback()
        return ok(data)
    return JSONResponse(status_code=201, content=ok(data))


@router.delete("/{agent_id}/follow")
def unfollow_agent(
    agent_id: str,
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    follower_id = session.agent_id
    existing = _find_follow(db, follower_id, agent_id)
    if existing is None:
        raise NotFoundError("Not following this agent")

    db.delete(existing)
    db.commit()
    return ok({"following": False, "follower_agent_id": follower_id, "following_agent_id": agent_id})


def _follow_list(db: Session, agent_id: str, viewer_id: Optional[str],
                 page: int, limit: int, followers: bool) -> Dict[str, Any]:
    _get_agent_or_404(db, agent_id)

    if followers:
        edge_column, other_column = Follow.following_agent_id, Follow.follower_agent_id
    else:
        edge_column, other_column = Follow.follower_agent_id, Follow.following_agent_id

    total = db.execute(select(func.count(Follow.id)).where(edge_column == agent_id)).scalar_one()
    rows = db.execute(
        select(Agent, Follow.created_at)
        .join(Follow, other_column == Agent.id)
        .where(edge_column == agent_id)
        .order_by(desc(Follow.created_at), desc(Follow.id))
        .limit(limit)
        .offset((page - 1) * limit)
    ).all()

    ids = [agent.id for agent, _ in rows if agent.id != viewer_id]
    viewer_follows = _followed_among(db, viewer_id, ids)

    items = []
    for agent, followed_at in rows:
        item = agent.summary()
        item["description"] = agent.description
        item["is_following"] = agent.id in viewer_follows
        item["followed_at"] = followed_at.isoformat() if followed_at else None
        items.append(item)
    return paginated(items, total, page, limit)


@router.get("/{agent_id}/followers")
def list_followers(
    agent_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    session: Optional[SessionPayload] = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Agents following agent_id, most recent first."""
    viewer_id = session.agent_id if session else None
    return ok(_follow_list(db, agent_id, viewer_id, page, limit, followers=True))


@router.get("/{agent_id}/following")
def list_following(
    agent_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    session: Optional[SessionPayload] = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Agents that agent_id follows, most recent first."""
    viewer_id = session.agent_id if session else None
    return ok(_follow_list(db, agent_id, viewer_id, page, limit, followers=False))
