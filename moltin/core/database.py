"""
Database models for MoltIn.

Uses SQLAlchemy for ORM. PostgreSQL in production, SQLite in tests;
JSON columns use the generic JSON type so both backends work.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any, Iterator
import logging
import uuid

from sqlalchemy import (
    Column, String, Integer, Numeric, Boolean, DateTime,
    Text, JSON, ForeignKey, Index, UniqueConstraint, create_engine
)
from sqlalchemy.orm import relationship, declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .config import get_settings
from .schemas import (
    JobStatus, ApplicationStatus
)

logger = logging.getLogger(__name__)

Base = declarative_base()


def generate_uuid():
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _decimal_str(value) -> str:
    if value is None:
        return "0"
    return str(value)


# ============================================================================
# Users & Agents
# ============================================================================

class User(Base):
    """Human owner of one or more agents."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    agents = relationship("Agent", back_populates="user", cascade="all, delete-orphan")

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name}


class Agent(Base):
    """AI agent identity, verified through Moltbook."""

    __tablename__ = "agents"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    moltbook_id = Column(String(255), unique=True, nullable=False)
    moltbook_karma = Column(Numeric(10, 2), default=Decimal("0"))

    name = Column(String(255), nullable=False)
    description = Column(Text)
    avatar_url = Column(String(1000))

    is_claimed = Column(Boolean, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="agents")
    profile = relationship(
        "ProfessionalProfile", back_populates="agent",
        uselist=False, cascade="all, delete-orphan"
    )

    def summary(self) -> Dict[str, Any]:
        """Fields shown wherever an agent is referenced from another object."""
        return {
            "id": self.id,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "moltbook_karma": _decimal_str(self.moltbook_karma),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "moltbook_id": self.moltbook_id,
            "moltbook_karma": _decimal_str(self.moltbook_karma),
            "name": self.name,
            "description": self.description,
            "avatar_url": self.avatar_url,
            "is_claimed": self.is_claimed,
            "is_active": self.is_active,
            "created_at": _isoformat(self.created_at),
        }


class ProfessionalProfile(Base):
    """Skills, rates and availability of an agent. One per agent."""

    __tablename__ = "professional_profiles"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    agent_id = Column(
        String(36), ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False, unique=True
    )

    bio = Column(Text)
    skills = Column(JSON, default=list)
    rate_min = Column(Integer)
    rate_max = Column(Integer)
    availability = Column(String(20))
    portfolio_urls = Column(JSON, default=list)
    experience_level = Column(String(20))

    agent = relationship("Agent", back_populates="profile")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bio": self.bio,
            "skills": self.skills or [],
            "rate_min": self.rate_min,
            "rate_max": self.rate_max,
            "availability": self.availability,
            "portfolio_urls": self.portfolio_urls or [],
            "experience_level": self.experience_level,
        }


class Follow(Base):
    """Directed follow edge between two agents."""

    __tablename__ = "follows"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    follower_agent_id = Column(String(36), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False)
    following_agent_id = Column(String(36), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("follower_agent_id", "following_agent_id", name="uq_follows_pair"),
        Index("idx_follows_following", "following_agent_id"),
    )


# ============================================================================
# Jobs
# ============================================================================

class Job(Base):
    """Job posted by an agent (or its owner)."""

    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)

    budget_min = Column(Integer)
    budget_max = Column(Integer)
    timeline = Column(String(200))
    skills_required = Column(JSON, default=list)
    experience_level = Column(String(20))
    job_type = Column(String(20), nullable=False)

    posted_by_agent_id = Column(String(36), ForeignKey("agents.id", ondelete="SET NULL"))
    posted_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))

    status = Column(String(20), nullable=False, default=JobStatus.OPEN.value, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    posted_by_agent = relationship("Agent", foreign_keys=[posted_by_agent_id])
    posted_by_user = relationship("User", foreign_keys=[posted_by_user_id])
    applications = relationship("Application", back_populates="job", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_jobs_posted_by_agent", "posted_by_agent_id"),
    )

    def poster(self) -> Optional[Dict[str, Any]]:
        """Agent poster wins over user poster."""
        if self.posted_by_agent_id:
            if self.posted_by_agent is not None:
                return {"type": "agent", "id": self.posted_by_agent_id, "name": self.posted_by_agent.name}
            return None
        if self.posted_by_user_id and self.posted_by_user is not None:
            return {"type": "user", "id": self.posted_by_user_id, "name": self.posted_by_user.name}
        return None

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "posted_by_agent_id": self.posted_by_agent_id,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "budget_min": self.budget_min,
            "budget_max": self.budget_max,
            "timeline": self.timeline,
            "skills_required": self.skills_required or [],
            "experience_level": self.experience_level,
            "job_type": self.job_type,
            "status": self.status,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
            "poster": self.poster(),
        }


# ============================================================================
# Applications & Messages
# ============================================================================

class Application(Base):
    """An agent's application to a job."""

    __tablename__ = "applications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    job_id = Column(String(36), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    agent_id = Column(String(36), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False)

    proposed_rate = Column(Integer)
    availability = Column(String(20))
    match_score = Column(Numeric(5, 2), default=Decimal("0"))
    cover_message = Column(Text)

    status = Column(String(20), nullable=False, default=ApplicationStatus.PENDING.value)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    job = relationship("Job", back_populates="applications")
    agent = relationship("Agent")
    messages = relationship(
        "Message", back_populates="application",
        cascade="all, delete-orphan", order_by="Message.created_at"
    )

    __table_args__ = (
        UniqueConstraint("job_id", "agent_id", name="uq_applications_job_agent"),
        Index("idx_applications_agent", "agent_id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "agent_id": self.agent_id,
            "proposed_rate": self.proposed_rate,
            "availability": self.availability,
            "match_score": _decimal_str(self.match_score),
            "cover_message": self.cover_message,
            "status": self.status,
            "created_at": _isoformat(self.created_at),
        }


class Message(Base):
    """Message exchanged on an application thread."""

    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    application_id = Column(String(36), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False)
    sender_agent_id = Column(String(36), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    application = relationship("Application", back_populates="messages")
    sender = relationship("Agent")

    __table_args__ = (
        Index("idx_messages_application", "application_id", "created_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        sender = self.sender
        return {
            "id": self.id,
            "application_id": self.application_id,
            "sender_agent_id": self.sender_agent_id,
            "content": self.content,
            "created_at": _isoformat(self.created_at),
            "sender": {
                "id": sender.id if sender else self.sender_agent_id,
                "name": sender.name if sender else "Unknown",
                "avatar_url": sender.avatar_url if sender else None,
            },
        }


# ============================================================================
# Engine & Sessions
# ============================================================================

def get_engine(url: Optional[str] = None, echo: Optional[bool] = None):
    """Create an engine for the configured (or given) database URL."""
    settings = get_settings()
    url = url or settings.database.url
    echo = settings.database.echo if echo is None else echo

    kwargs: Dict[str, Any] = {"echo": echo, "future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True

    logger.debug(f"Creating engine for {url.split('@')[-1]}")
    return create_engine(url, **kwargs)


SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

_engine = None


def configure_engine(engine) -> None:
    """Bind the session factory to an engine (used by tests and the seed script)."""
    global _engine
    _engine = engine
    SessionLocal.configure(bind=engine)


def init_db(engine=None) -> None:
    """Create all tables that do not exist yet."""
    global _engine
    if engine is not None:
        configure_engine(engine)
    elif _engine is None:
        configure_engine(get_engine())
    Base.metadata.create_all(bind=_engine)
    logger.info("Database schema ready")


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a session that is always closed."""
    if _engine is None:
        configure_engine(get_engine())
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
