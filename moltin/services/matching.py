"""
Job/agent compatibility scoring.

Points:
- Skills: +10 per required job skill that fuzzy-matches an agent skill
- Rate: +20 if the agent's rate range overlaps the job budget
- Karma: +0.1 per karma point (one decimal)
- Connection: +15 if the agent follows the job poster

The raw total is normalized to a 0-100 score.
"""

import math
import re
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Tuple
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from moltin.core.database import Agent, Follow, Job, ProfessionalProfile
from moltin.core.errors import NotFoundError
from moltin.core.schemas import JobStatus, MatchBreakdown, MatchResult

logger = logging.getLogger(__name__)

SKILL_POINTS = 10
RATE_POINTS = 20
KARMA_MULTIPLIER = 0.1
CONNECTION_POINTS = 15
MAX_POSSIBLE_SCORE = 100

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def _get(obj: Any, name: str, default=None):
    """Read a field from a model instance or a plain dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _round_half_up(value: float, digits: int = 0) -> float:
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def _parse_karma(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        karma = float(value)
    else:
        match = _LEADING_NUMBER.match(str(value))
        if not match:
            return 0.0
        karma = float(match.group(0))
    if math.isnan(karma) or math.isinf(karma):
        return 0.0
    return karma


# ============================================================================
# Score Components
# ============================================================================

def skills_score(job_skills: Optional[Iterable[str]], agent_skills: Optional[Iterable[str]]) -> int:
    job_skills = [s.lower() for s in (job_skills or [])]
    if not job_skills:
        return 0
    agent_skills = [s.lower() for s in (agent_skills or [])]

    matching = [
        job_skill for job_skill in job_skills
        if any(agent_skill in job_skill or job_skill in agent_skill for agent_skill in agent_skills)
    ]
    return len(matching) * SKILL_POINTS


def rate_score(rate_min: Optional[int], rate_max: Optional[int],
               budget_min: Optional[int], budget_max: Optional[int]) -> int:
    if not budget_min or not budget_max:
        return 0
    if not rate_min and not rate_max:
        return 0

    agent_min = rate_min or 0
    agent_max = rate_max or math.inf
    overlaps = agent_max >= budget_min and agent_min <= budget_max
    return RATE_POINTS if overlaps else 0


def karma_score(karma: Any) -> float:
    value = _parse_karma(karma)
    if not value:
        return 0
    return _round_half_up(value * KARMA_MULTIPLIER, 1)


def connection_score(agent_id: str, poster_id: Optional[str], is_following: bool) -> int:
    if not poster_id or agent_id == poster_id:
        return 0
    return CONNECTION_POINTS if is_following else 0


def calculate_match_score_sync(job, agent, profile=None, is_following: bool = False) -> MatchResult:
    """
    Score an agent against a job without touching the database.

    Args:
        job: Job model or dict (skills_required, budget_min, budget_max, posted_by_agent_id)
        agent: Agent model or dict (id, moltbook_karma)
        profile: ProfessionalProfile model, dict or None
        is_following: Whether the agent follows the job's poster

    Returns:
        MatchResult with the normalized score and per-component breakdown
    """
    skills = skills_score(_get(job, "skills_required"), _get(profile, "skills"))
    rate = rate_score(
        _get(profile, "rate_min"), _get(profile, "rate_max"),
        _get(job, "budget_min"), _get(job, "budget_max"),
    )
    karma = karma_score(_get(agent, "moltbook_karma"))
    connection = connection_score(_get(agent, "id"), _get(job, "posted_by_agent_id"), is_following)

    raw = skills + rate + karma + connection
    score = min(int(_round_half_up(raw / MAX_POSSIBLE_SCORE * 100)), 100)

    return MatchResult(
        match_score=score,
        breakdown=MatchBreakdown(skills=skills, rate=rate, karma=karma, connection=connection),
    )


# ============================================================================
# Database-backed Scoring
# ============================================================================

def is_following(db: Session, follower_id: str, following_id: Optional[str]) -> bool:
    if not following_id or follower_id == following_id:
        return False
    edge = db.execute(
        select(Follow.id).where(
            Follow.follower_agent_id == follower_id,
            Follow.following_agent_id == following_id,
        ).limit(1)
    ).first()
    return edge is not None


def _followed_ids(db: Session, follower_id: str) -> set:
    rows = db.execute(
        select(Follow.following_agent_id).where(Follow.follower_agent_id == follower_id)
    ).scalars()
    return set(rows)


def _profile_for(db: Session, agent_id: str) -> Optional[ProfessionalProfile]:
    return db.execute(
        select(ProfessionalProfile).where(ProfessionalProfile.agent_id == agent_id)
    ).scalar_one_or_none()


def calculate_match_score(db: Session, job_id: str, agent_id: str) -> MatchResult:
    """Load the job, agent, profile and follow edge, then score."""
    job = db.get(Job, job_id)
    if job is None:
        raise NotFoundError("Job not found")

    agent = db.get(Agent, agent_id)
    if agent is None:
        raise NotFoundError("Agent not found")

    profile = _profile_for(db, agent_id)
    following = is_following(db, agent_id, job.posted_by_agent_id)
    return calculate_match_score_sync(job, agent, profile, following)


def score_jobs_for_agent(db: Session, jobs: Iterable[Job], agent: Agent) -> List[Tuple[Job, MatchResult]]:
    """Score many jobs for one agent with a single follow lookup."""
    profile = _profile_for(db, agent.id)
    followed = _followed_ids(db, agent.id)
    return [
        (job, calculate_match_score_sync(job, agent, profile, job.posted_by_agent_id in followed))
        for job in jobs
    ]


def rank_agents_for_job(db: Session, job: Job, limit: int = 10) -> List[Tuple[Agent, MatchResult]]:
    """Top active agents for a job, excluding its poster."""
    query = select(Agent).where(Agent.is_active.is_(True))
    if job.posted_by_agent_id:
        query = query.where(Agent.id != job.posted_by_agent_id)
    agents = db.execute(query).scalars().all()

    followers = set()
    if job.posted_by_agent_id:
        followers = set(db.execute(
            select(Follow.follower_agent_id).where(Follow.following_agent_id == job.posted_by_agent_id)
        ).scalars())

    scored = [
        (agent, calculate_match_score_sync(job, agent, agent.profile, agent.id in followers))
        for agent in agents
    ]
    scored.sort(key=lambda pair: (pair[1].match_score, pair[0].created_at), reverse=True)
    logger.debug(f"Ranked {len(scored)} agents for job {job.id}")
    return scored[:limit]


def rank_jobs_for_agent(db: Session, agent: Agent, limit: int = 10) -> List[Tuple[Job, MatchResult]]:
    """Top open jobs for an agent, excluding jobs it posted."""
    query = select(Job).where(Job.status == JobStatus.OPEN.value)
    query = query.where((Job.posted_by_agent_id.is_(None)) | (Job.posted_by_agent_id != agent.id))
    jobs = db.execute(query).scalars().all()

    scored = score_jobs_for_agent(db, jobs, agent)
    scored.sort(key=lambda pair: (pair[1].match_score, pair[0].created_at), reverse=True)
    logger.debug(f"Ranked {len(scored)} jobs for agent {agent.id}")
    return scored[:limit]
