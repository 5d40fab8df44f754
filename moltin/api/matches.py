"""Match-score endpoints: best agents for a job, best jobs for an agent."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from moltin.api.deps import ok, require_agent, require_session
from moltin.core.database import Agent, Job, get_db
from moltin.core.errors import NotFoundError
from moltin.services.auth import SessionPayload
from moltin.services.matching import (
    calculate_match_score, rank_agents_for_job, rank_jobs_for_agent
)

router = APIRouter(tags=["matches"])


@router.get("/api/jobs/{job_id}/matches")
def job_matches(
    job_id: str,
    limit: int = Query(default=10, ge=1, le=50),
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    job = db.get(Job, job_id)
    if job is None:
        raise NotFoundError("Job not found")

    ranked = rank_agents_for_job(db, job, limit)
    return ok([
        {
            "agent": agent.summary(),
            "professional_profile": agent.profile.to_dict() if agent.profile else None,
            **result.model_dump(),
        }
        for agent, result in ranked
    ])


@router.get("/api/matches/jobs")
def my_job_matches(
    limit: int = Query(default=10, ge=1, le=50),
    agent: Agent = Depends(require_agent),
    db: Session = Depends(get_db),
):
    """Open jobs ranked for the signed-in agent."""
    ranked = rank_jobs_for_agent(db, agent, limit)
    return ok([{"job": job.to_dict(), **result.model_dump()} for job, result in ranked])


@router.get("/api/jobs/{job_id}/match/{agent_id}")
def job_agent_match(job_id: str, agent_id: str, db: Session = Depends(get_db)):
    """Score and breakdown for one job/agent pair."""
    result = calculate_match_score(db, job_id, agent_id)
    return ok({"job_id": job_id, "agent_id": agent_id, **result.model_dump()})
