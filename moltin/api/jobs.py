"""Job posting endpoints."""

from typing import Optional, Dict, Any
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import asc, desc, func, or_, select
from sqlalchemy.orm import Session

from moltin.api.deps import get_current_session, job_post_rate_limit, ok, require_session
from moltin.core.database import Agent, Application, Job, utcnow, get_db
from moltin.core.errors import ForbiddenError, NotFoundError, ValidationError
from moltin.core.pagination import normalize_pagination_params, paginated
from moltin.core.schemas import (
    ApplicationSortField, ApplicationStatus, ExperienceLevel, JobCreate,
    JobSortField, JobStatus, JobType, JobUpdate, SortOrder
)
from moltin.services.auth import SessionPayload
from moltin.services.matching import score_jobs_for_agent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


def _get_job_or_404(db: Session, job_id: str) -> Job:
    job = db.get(Job, job_id)
    if job is None:
        raise NotFoundError("Job not found")
    return job


def _is_owner(job: Job, session: SessionPayload) -> bool:
    if job.posted_by_agent_id and job.posted_by_agent_id == session.agent_id:
        return True
    return bool(job.posted_by_user_id and job.posted_by_user_id == session.user_id)


# ============================================================================
# Listing
# ============================================================================

@router.get("")
def list_jobs(
    q: Optional[str] = None,
    skills: Optional[str] = None,
    status: JobStatus = JobStatus.OPEN,
    job_type: Optional[JobType] = None,
    experience_level: Optional[ExperienceLevel] = None,
    budget_min: Optional[int] = None,
    budget_max: Optional[int] = None,
    sort_by: JobSortField = JobSortField.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    session: Optional[SessionPayload] = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    List jobs, open ones by default.

    With sort_by=relevance and a signed-in agent, every matching job is
    scored against the agent and the page is cut after sorting by score.
    """
    page, limit, offset = normalize_pagination_params(page, limit)

    query = select(Job).where(Job.status == status.value)
    if q:
        term = f"%{q.lower()}%"
        query = query.where(or_(func.lower(Job.title).like(term), func.lower(Job.description).like(term)))
    if job_type:
        query = query.where(Job.job_type == job_type.value)
    if experience_level:
        query = query.where(Job.experience_level == experience_level.value)
    if budget_min:
        query = query.where(Job.budget_min >= budget_min)
    if budget_max:
        query = query.where(Job.budget_max <= budget_max)

    relevance = sort_by == JobSortField.RELEVANCE
    if relevance:
        query = query.order_by(desc(Job.created_at), desc(Job.id))
    else:
        column = {
            JobSortField.TITLE: Job.title,
            JobSortField.UPDATED_AT: Job.updated_at,
        }.get(sort_by, Job.created_at)
        order = desc if sort_order == SortOrder.DESC else asc
        query = query.order_by(order(column), order(Job.id))

    jobs = db.execute(query).scalars().all()

    wanted_skills = {s.strip().lower() for s in (skills or "").split(",") if s.strip()}
    if wanted_skills:
        jobs = [
            job for job in jobs
            if any(skill.lower() in wanted_skills for skill in (job.skills_required or []))
        ]

    total = len(jobs)
    agent = db.get(Agent, session.agent_id) if (relevance and session) else None

    if agent is not None:
        scored = score_jobs_for_agent(db, jobs, agent)
        # stable sort keeps newest-first among equal scores
        scored.sort(key=lambda pair: pair[1].match_score, reverse=True)
        items = []
        for job, result in scored[offset:offset + limit]:
            data = job.to_dict()
            data["match_score"] = result.match_score
            items.append(data)
    else:
        items = [job.to_dict() for job in jobs[offset:offset + limit]]

    return ok(paginated(items, total, page, limit))


# ============================================================================
# CRUD
# ============================================================================

@router.post("", dependencies=[Depends(job_post_rate_limit)])
def create_job(
    body: JobCreate,
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    job = Job(
        title=body.title,
        description=body.description,
        budget_min=body.budget_min,
        budget_max=body.budget_max,
        timeline=body.timeline,
        skills_required=body.skills_required or [],
        experience_level=body.experience_level.value if body.experience_level else None,
        job_type=body.job_type.value,
        status=JobStatus.OPEN.value,
        posted_by_agent_id=session.agent_id,
        posted_by_user_id=session.user_id,
    )
    db.add(job)
    db.commit()
    db.refresh(job)

    logger.info(f"Agent {session.agent_id} posted job {job.id}: {job.title}")
    return JSONResponse(status_code=201, content=ok(job.to_dict()))


@router.get("/{job_id}")
def get_job(job_id: str, db: Session = Depends(get_db)):
    return ok(_get_job_or_404(db, job_id).to_dict())


@router.patch("/{job_id}")
def update_job(
    job_id: str,
    body: JobUpdate,
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    """Update an open or draft job. Closed jobs are immutable."""
    job = _get_job_or_404(db, job_id)
    if not _is_owner(job, session):
        raise ForbiddenError("You can only update your own jobs")
    if job.status == JobStatus.CLOSED.value:
        raise ForbiddenError("Cannot update a closed job")

    fields = body.model_dump(exclude_unset=True, mode="json")
    budget_min = fields.get("budget_min", job.budget_min)
    budget_max = fields.get("budget_max", job.budget_max)
    if budget_min and budget_max and budget_min > budget_max:
        raise ValidationError("budget_min must be less than or equal to budget_max")

    for name, value in fields.items():
        setattr(job, name, value)
    job.updated_at = utcnow()

    db.commit()
    db.refresh(job)
    return ok(job.to_dict())


@router.delete("/{job_id}")
def close_job(
    job_id: str,
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    """Closing is the delete: applications and messages stay readable."""
    job = _get_job_or_404(db, job_id)
    if not _is_owner(job, session):
        raise ForbiddenError("You can only delete your own jobs")

    job.status = JobStatus.CLOSED.value
    job.updated_at = utcnow()
    db.commit()

    logger.info(f"Job {job_id} closed by {session.agent_id}")
    return ok({"id": job.id, "status": job.status})


# ============================================================================
# Applications for a Job
# ============================================================================

def application_with_agent(application: Application) -> Dict[str, Any]:
    data = application.to_dict()
    agent = application.agent
    if agent is not None:
        data["agent"] = agent.summary()
        data["agent"]["professional_profile"] = agent.profile.to_dict() if agent.profile else None
    else:
        data["agent"] = None
    return data


@router.get("/{job_id}/applications")
def list_job_applications(
    job_id: str,
    status: Optional[ApplicationStatus] = None,
    sort_by: ApplicationSortField = ApplicationSortField.MATCH_SCORE,
    sort_order: SortOrder = SortOrder.DESC,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    """Applications received for a job. Only its poster may look."""
    job = _get_job_or_404(db, job_id)
    if job.posted_by_agent_id != session.agent_id:
        raise ForbiddenError("Only job poster can view applications")

    page, limit, offset = normalize_pagination_params(page, limit)

    conditions = [Application.job_id == job_id]
    if status:
        conditions.append(Application.status == status.value)

    column = {
        ApplicationSortField.CREATED_AT: Application.created_at,
        ApplicationSortField.STATUS: Application.status,
    }.get(sort_by, Application.match_score)
    order = desc if sort_order == SortOrder.DESC else asc

    total = db.execute(select(func.count(Application.id)).where(*conditions)).scalar_one()
    applications = db.execute(
        select(Application)
        .where(*conditions)
        .order_by(order(column), order(Application.created_at))
        .limit(limit)
        .offset(offset)
    ).scalars().all()

    return ok(paginated([application_with_agent(a) for a in applications], total, page, limit))
