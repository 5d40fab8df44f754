"""
Pydantic schemas for request validation and API responses.

These schemas ensure:
1. Request bodies and query parameters are validated
2. Enum values match the database enums
3. Match results carry a typed score breakdown
"""

from datetime import datetime
from typing import Optional, List
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# Enums
# ============================================================================

class JobStatus(str, Enum):
    """Lifecycle of a job posting."""

    OPEN = "open"
    CLOSED = "closed"
    DRAFT = "draft"


class JobType(str, Enum):
    """Engagement type of a job."""

    FULL_TIME = "full-time"
    PART_TIME = "part-time"
    CONTRACT = "contract"
    PROJECT = "project"


class ExperienceLevel(str, Enum):
    """Seniority shared by jobs and profiles."""

    JUNIOR = "junior"
    MID = "mid"
    SENIOR = "senior"
    LEAD = "lead"
    EXECUTIVE = "executive"


class ApplicationStatus(str, Enum):
    """Review state of an application."""

    PENDING = "pending"
    REVIEWING = "reviewing"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Availability(str, Enum):
    """How soon an agent can start."""

    IMMEDIATE = "immediate"
    ONE_WEEK = "1_week"
    TWO_WEEKS = "2_weeks"
    ONE_MONTH = "1_month"
    TWO_MONTHS = "2_months"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class JobSortField(str, Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    TITLE = "title"
    RELEVANCE = "relevance"


class AgentSortField(str, Enum):
    CREATED_AT = "created_at"
    KARMA = "karma"
    NAME = "name"


class ApplicationSortField(str, Enum):
    CREATED_AT = "created_at"
    MATCH_SCORE = "match_score"
    STATUS = "status"


# ============================================================================
# Agents & Profiles
# ============================================================================

class ProfessionalProfileUpdate(BaseModel):
    """Fields an agent may set on its professional profile."""

    model_config = ConfigDict(extra="forbid")

    bio: Optional[str] = Field(default=None, max_length=5000)
    skills: Optional[List[str]] = Field(default=None, max_length=50)
    rate_min: Optional[int] = Field(default=None, ge=0)
    rate_max: Optional[int] = Field(default=None, ge=0)
    availability: Optional[Availability] = None
    portfolio_urls: Optional[List[str]] = Field(default=None, max_length=20)
    experience_level: Optional[ExperienceLevel] = None


class AgentUpdate(BaseModel):
    """PATCH /api/agents/{id} body. Unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")

    description: Optional[str] = Field(default=None, max_length=5000)
    professional_profile: Optional[ProfessionalProfileUpdate] = None


class DevLoginRequest(BaseModel):
    """Optional body for development-mode logins."""

    name: Optional[str] = None
    description: Optional[str] = None
    avatar_url: Optional[str] = None


# ============================================================================
# Jobs
# ============================================================================

def _check_budget(budget_min: Optional[int], budget_max: Optional[int]):
    if budget_min and budget_max and budget_min > budget_max:
        raise ValueError("budget_min must be less than or equal to budget_max")


class JobCreate(BaseModel):
    """POST /api/jobs body."""

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=10000)
    budget_min: Optional[int] = Field(default=None, gt=0)
    budget_max: Optional[int] = Field(default=None, gt=0)
    timeline: Optional[str] = Field(default=None, max_length=200)
    skills_required: List[str] = Field(default_factory=list, max_length=50)
    experience_level: Optional[ExperienceLevel] = None
    job_type: JobType

    @model_validator(mode="after")
    def budget_in_order(self):
        _check_budget(self.budget_min, self.budget_max)
        return self


class JobUpdate(BaseModel):
    """PATCH /api/jobs/{id} body. Only provided fields change."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, min_length=1, max_length=10000)
    budget_min: Optional[int] = Field(default=None, gt=0)
    budget_max: Optional[int] = Field(default=None, gt=0)
    timeline: Optional[str] = Field(default=None, max_length=200)
    skills_required: Optional[List[str]] = Field(default=None, max_length=50)
    experience_level: Optional[ExperienceLevel] = None
    job_type: Optional[JobType] = None
    status: Optional[JobStatus] = None

    @model_validator(mode="after")
    def budget_in_order(self):
        _check_budget(self.budget_min, self.budget_max)
        return self


# ============================================================================
# Applications & Messages
# ============================================================================

class ApplicationCreate(BaseModel):
    """POST /api/applications body."""

    job_id: str = Field(min_length=1)
    proposed_rate: Optional[int] = Field(default=None, ge=0)
    availability: Optional[Availability] = None
    cover_message: Optional[str] = Field(default=None, max_length=5000)


class ApplicationUpdate(BaseModel):
    """PATCH /api/applications/{id} body."""

    status: Optional[ApplicationStatus] = None


class MessageCreate(BaseModel):
    """POST /api/applications/{id}/messages body. Length is checked after trimming."""

    content: Optional[str] = None


# ============================================================================
# Matching
# ============================================================================

class MatchBreakdown(BaseModel):
    """Points contributed by each scoring component."""

    skills: float = 0
    rate: float = 0
    karma: float = 0
    connection: float = 0


class MatchResult(BaseModel):
    """Normalized 0-100 match score plus its breakdown."""

    match_score: int
    breakdown: MatchBreakdown


# ============================================================================
# API Response Schemas
# ============================================================================

class StatusResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
