"""
Application and messaging endpoints.

Messages live on an application thread; only the applicant and the job's
poster take part in it.
"""

from decimal import Decimal
from typing import Optional, Dict, Any, Tuple
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import asc, desc, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from moltin.api.deps import application_rate_limit, ok, require_session
from moltin.core.database import Application, Job, Message, get_db
from moltin.core.errors import (
    DuplicateApplicationError, ForbiddenError, NotFoundError, ValidationError
)
from moltin.core.pagination import normalize_pagination_params, paginated
from moltin.core.schemas import (
    ApplicationCreate, ApplicationSortField, ApplicationStatus, ApplicationUpdate,
    JobStatus, MessageCreate, SortOrder
)
from moltin.services.auth import SessionPayload
from moltin.services.matching import calculate_match_score

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/applications", tags=["applications"])

MAX_MESSAGE_LENGTH = 2000


def _application_and_job(db: Session, application_id: str) -> Tuple[Application, Job]:
    application = db.get(Application, application_id)
    if application is None:
        raise NotFoundError("Application not found")
    job = db.get(Job, application.job_id)
    if job is None:
        raise NotFoundError("Job not found")
    return application, job


def _is_participant(application: Application, job: Job, agent_id: str) -> bool:
    return application.agent_id == agent_id or job.posted_by_agent_id == agent_id


def _application_detail(application: Application, job: Job) -> Dict[str, Any]:
    data = application.to_dict()
    data["job"] = job.summary()
    data["job"]["skills_required"] = job.skills_required or []
    agent = application.agent
    if agent is not None:
        data["agent"] = agent.summary()
        data["agent"]["professional_profile"] = agent.profile.to_dict() if agent.profile else None
    else:
        data["agent"] = None
    return data


# ============================================================================
# Applications
# ============================================================================

@router.get("")
def list_my_applications(
    status: Optional[ApplicationStatus] = None,
    sort_by: ApplicationSortField = ApplicationSortField.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    """Applications submitted by the signed-in agent."""
    page, limit, offset = normalize_pagination_params(page, limit)

    conditions = [Application.agent_id == session.agent_id]
    if status:
        conditions.append(Application.status == status.value)

    column = {
        ApplicationSortField.MATCH_SCORE: Application.match_score,
        ApplicationSortField.STATUS: Application.status,
    }.get(sort_by, Application.created_at)
    order = desc if sort_order == SortOrder.DESC else asc

    total = db.execute(select(func.count(Application.id)).where(*conditions)).scalar_one()
    applications = db.execute(
        select(Application)
        .where(*conditions)
        .order_by(order(column), order(Application.id))
        .limit(limit)
        .offset(offset)
    ).scalars().all()

    items = []
    for application in applications:
        data = application.to_dict()
        data["job"] = application.job.summary() if application.job else None
        items.append(data)
    return ok(paginated(items, total, page, limit))


@router.post("", dependencies=[Depends(application_rate_limit)])
def create_application(
    body: ApplicationCreate,
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    """Apply to an open job. The match score is computed once, at submission."""
    job = db.get(Job, body.job_id)
    if job is None:
        raise NotFoundError("Job not found")
    if job.posted_by_agent_id == session.agent_id:
        raise ForbiddenError("Cannot apply to your own job")
    if job.status != JobStatus.OPEN.value:
        raise ForbiddenError("This job is not accepting applications")

    existing = db.execute(
        select(Application.id).where(
            Application.job_id == job.id,
            Application.agent_id == session.agent_id,
        )
    ).first()
    if existing is not None:
        raise DuplicateApplicationError()

    result = calculate_match_score(db, job.id, session.agent_id)

    application = Application(
        job_id=job.id,
        agent_id=session.agent_id,
        proposed_rate=body.proposed_rate or None,
        availability=body.availability.value if body.availability else None,
        cover_message=body.cover_message or None,
        match_score=Decimal(result.match_score),
        status=ApplicationStatus.PENDING.value,
    )
    db.add(application)
    try:
        db.commit()
    except IntegrityError:
        # a concurrent request inserted the same (job, agent) pair first
        db.rollback()
        logger.info(f"Duplicate application by {session.agent_id} to job {job.id} rejected on insert")
        raise DuplicateApplicationError()
    db.refresh(application)

    logger.info(
        f"Agent {session.agent_id} applied to job {job.id} (match {result.match_score})"
    )
    data = application.to_dict()
    data["job"] = job.summary()
    return JSONResponse(status_code=201, content=ok(data))


@router.get("/conversations")
def list_conversations(
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    """Threads the agent takes part in that have at least one message, newest first."""
    agent_id = session.agent_id
    applications = db.execute(
        select(Application)
        .join(Job, Application.job_id == Job.id)
        .where(or_(Application.agent_id == agent_id, Job.posted_by_agent_id == agent_id))
    ).scalars().all()

    conversations = []
    for application in applications:
        if not application.messages:
            continue
        last = application.messages[-1]
        job = application.job
        is_applicant = application.agent_id == agent_id
        applicant = application.agent

        if is_applicant:
            other = {"id": job.posted_by_agent_id or "", "name": "Job Poster", "avatar_url": None}
        else:
            other = {
                "id": application.agent_id,
                "name": applicant.name if applicant else "Applicant",
                "avatar_url": applicant.avatar_url if applicant else None,
            }

        conversations.append({
            "application_id": application.id,
            "job_id": application.job_id,
            "job_title": job.title or "Unknown Job",
            "last_message": {
                "content": last.content,
                "created_at": last.created_at.isoformat(),
                "sender_name": last.sender.name if last.sender else "Unknown",
                "sender_avatar": last.sender.avatar_url if last.sender else None,
            },
            "other_participant": other,
            "unread_count": 0,
            "updated_at": last.created_at.isoformat(),
            "_sort": last.created_at,
        })

    conversations.sort(key=lambda c: c["_sort"], reverse=True)
    for conversation in conversations:
        del conversation["_sort"]
    return ok(conversations)


@router.get("/{application_id}")
def get_application(
    application_id: str,
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    application, job = _application_and_job(db, application_id)
    if not _is_participant(application, job, session.agent_id):
        raise ForbiddenError("Not authorized to view this application")
    return ok(_application_detail(application, job))


@router.patch("/{application_id}")
def update_application(
    application_id: str,
    body: ApplicationUpdate,
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    """Move an application through review. Poster only."""
    application, job = _application_and_job(db, application_id)
    if job.posted_by_agent_id != session.agent_id:
        raise ForbiddenError("Only job poster can update application status")

    if body.status is not None:
        application.status = body.status.value
        db.commit()
        db.refresh(application)
        logger.info(f"Application {application_id} set to {application.status}")

    return ok(application.to_dict())


# ============================================================================
# Messages
# ============================================================================

@router.get("/{application_id}/messages")
def list_messages(
    application_id: str,
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    application, job = _application_and_job(db, application_id)
    if not _is_participant(application, job, session.agent_id):
        raise ForbiddenError("Not authorized to view messages for this application")

    messages = db.execute(
        select(Message)
        .where(Message.application_id == application_id)
        .order_by(asc(Message.created_at), asc(Message.id))
    ).scalars().all()
    return ok([m.to_dict() for m in messages])


@router.post("/{application_id}/messages")
def send_message(
    application_id: str,
    body: MessageCreate,
    session: SessionPayload = Depends(require_session),
    db: Session = Depends(get_db),
):
    if body.content is None:
        raise ValidationError("Message content is required")
    content = body.content.strip()
    if not content:
        raise ValidationError("Message content cannot be empty")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message content must be {MAX_MESSAGE_LENGTH} characters or less")

    application, job = _application_and_job(db, application_id)
    if not _is_participant(application, job, session.agent_id):
        raise ForbiddenError("Not authorized to send messages for this application")
    if application.status == ApplicationStatus.REJECTED.value:
        raise ForbiddenError("Cannot send messages on rejected applications")

    message = Message(
        application_id=application_id,
        sender_agent_id=session.agent_id,
        content=content,
    )
    db.add(message)
    db.commit()
    db.refresh(message)

    return JSONResponse(status_code=201, content=ok(message.to_dict()))
