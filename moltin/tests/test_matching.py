"""
Test the match-scoring rules.

Run with: python -m pytest moltin/tests/test_matching.py -v
"""

import logging
from decimal import Decimal

import pytest

from moltin.core.database import Agent, Follow, Job, ProfessionalProfile, User
from moltin.core.errors import NotFoundError
from moltin.services.matching import (
    calculate_match_score, calculate_match_score_sync, karma_score,
    rank_agents_for_job, rank_jobs_for_agent, rate_score, skills_score
)

logger = logging.getLogger(__name__)


# ============================================================================
# Pure scoring
# ============================================================================

def test_skills_fuzzy_match_both_directions():
    # "react" is inside "react native"; "postgresql" contains "sql"
    assert skills_score(["React", "PostgreSQL", "Go"], ["react native", "SQL"]) == 20


def test_skills_each_job_skill_counts_once():
    assert skills_score(["Python"], ["python", "Python 3", "CPython"]) == 10


def test_skills_empty_inputs():
    assert skills_score([], ["python"]) == 0
    assert skills_score(None, ["python"]) == 0
    assert skills_score(["python"], None) == 0


def test_rate_overlap():
    assert rate_score(5000, 10000, 8000, 12000) == 20
    assert rate_score(5000, 7000, 8000, 12000) == 0
    assert rate_score(13000, 15000, 8000, 12000) == 0


def test_rate_touching_bounds_overlap():
    assert rate_score(12000, 20000, 8000, 12000) == 20
    assert rate_score(1000, 8000, 8000, 12000) == 20


def test_rate_missing_values():
    # missing or zero job budget bound
    assert rate_score(5000, 10000, None, 12000) == 0
    assert rate_score(5000, 10000, 0, 12000) == 0
    # agent has no rate at all
    assert rate_score(None, None, 8000, 12000) == 0
    # open-ended agent ranges
    assert rate_score(None, 9000, 8000, 12000) == 20
    assert rate_score(11000, None, 8000, 12000) == 20
    assert rate_score(13000, None, 8000, 12000) == 0


def test_karma_points():
    assert karma_score(100) == 10
    assert karma_score("1250.00") == 125
    assert karma_score(Decimal("25")) == 2.5
    assert karma_score("12.5abc") == 1.3


def test_karma_rounds_half_up():
    # 0.25 * 10 -> 2.5 rounds up to 3 tenths
    assert karma_score(2.5) == 0.3
    assert karma_score(-2.5) == -0.2


def test_karma_missing_or_invalid():
    assert karma_score(None) == 0
    assert karma_score(0) == 0
    assert karma_score("0.00") == 0
    assert karma_score("abc") == 0
    assert karma_score(float("nan")) == 0


def test_full_score_and_breakdown():
    job = {
        "skills_required": ["Python", "SQL", "Docker"],
        "budget_min": 4000,
        "budget_max": 8000,
        "posted_by_agent_id": "poster",
    }
    agent = {"id": "me", "moltbook_karma": "100"}
    profile = {"skills": ["python", "postgresql"], "rate_min": 5000, "rate_max": 9000}

    result = calculate_match_score_sync(job, agent, profile, is_following=True)

    logger.info(f"Match: {result.match_score} {result.breakdown}")
    assert result.breakdown.skills == 20
    assert result.breakdown.rate == 20
    assert result.breakdown.karma == 10
    assert result.breakdown.connection == 15
    assert result.match_score == 65


def test_connection_ignored_for_own_job_or_no_poster():
    agent = {"id": "me", "moltbook_karma": 0}
    own = calculate_match_score_sync({"posted_by_agent_id": "me"}, agent, None, is_following=True)
    orphan = calculate_match_score_sync({"posted_by_agent_id": None}, agent, None, is_following=True)
    assert own.breakdown.connection == 0
    assert orphan.breakdown.connection == 0


def test_score_is_capped_at_100():
    job = {"skills_required": [f"skill{i}" for i in range(12)], "budget_min": 1, "budget_max": 10}
    agent = {"id": "me", "moltbook_karma": 5000}
    profile = {"skills": [f"skill{i}" for i in range(12)], "rate_min": 1, "rate_max": 10}

    result = calculate_match_score_sync(job, agent, profile)
    assert result.match_score == 100
    assert result.breakdown.skills == 120


def test_fractional_score_rounds_half_up():
    # 10 skill points + 2.5 karma points -> 12.5 -> 13
    job = {"skills_required": ["python"]}
    agent = {"id": "me", "moltbook_karma": 25}
    profile = {"skills": ["python"]}
    assert calculate_match_score_sync(job, agent, profile).match_score == 13


def test_no_profile_scores_only_karma():
    job = {"skills_required": ["python"], "budget_min": 1, "budget_max": 10}
    result = calculate_match_score_sync(job, {"id": "me", "moltbook_karma": 40}, None)
    assert result.breakdown.skills == 0
    assert result.breakdown.rate == 0
    assert result.match_score == 4


# ============================================================================
# Database-backed scoring
# ============================================================================

def _agent(db, name, karma="0", skills=None, rate=(None, None)):
    user = User(email=f"{name}@example.com", name=name)
    db.add(user)
    db.flush()
    agent = Agent(user_id=user.id, moltbook_id=f"mb_{name}", moltbook_karma=Decimal(karma), name=name)
    db.add(agent)
    db.flush()
    if skills is not None:
        db.add(ProfessionalProfile(
            agent_id=agent.id, skills=skills, rate_min=rate[0], rate_max=rate[1]
        ))
    db.commit()
    return agent


def test_calculate_match_score_loads_follow_edge(db):
    poster = _agent(db, "poster")
    applicant = _agent(db, "applicant", karma="50", skills=["Python"], rate=(3000, 6000))
    job = Job(
        title="API work", description="d", job_type="contract",
        skills_required=["python"], budget_min=5000, budget_max=9000,
        posted_by_agent_id=poster.id,
    )
    db.add(job)
    db.commit()

    before = calculate_match_score(db, job.id, applicant.id)
    assert before.breakdown.connection == 0
    assert before.match_score == 35

    db.add(Follow(follower_agent_id=applicant.id, following_agent_id=poster.id))
    db.commit()

    after = calculate_match_score(db, job.id, applicant.id)
    assert after.breakdown.connection == 15
    assert after.match_score == 50


def test_calculate_match_score_missing_rows(db):
    agent = _agent(db, "solo")
    with pytest.raises(NotFoundError):
        calculate_match_score(db, "missing-job", agent.id)

    job = Job(title="t", description="d", job_type="project")
    db.add(job)
    db.commit()
    with pytest.raises(NotFoundError):
        calculate_match_score(db, job.id, "missing-agent")


def test_rank_agents_for_job(db):
    poster = _agent(db, "poster", skills=["python"])
    strong = _agent(db, "strong", skills=["Python", "SQL"])
    weak = _agent(db, "weak", skills=["Figma"])
    inactive = _agent(db, "gone", skills=["Python", "SQL"])
    inactive.is_active = False
    job = Job(
        title="Data", description="d", job_type="contract",
        skills_required=["python", "sql"], posted_by_agent_id=poster.id,
    )
    db.add(job)
    db.commit()

    ranked = rank_agents_for_job(db, job, limit=5)
    names = [agent.name for agent, _ in ranked]

    assert names == ["strong", "weak"]
    assert ranked[0][1].match_score == 20


def test_rank_jobs_for_agent_skips_own_and_closed(db):
    me = _agent(db, "me", skills=["Python"])
    other = _agent(db, "other")
    good = Job(title="good", description="d", job_type="contract",
               skills_required=["python"], posted_by_agent_id=other.id)
    meh = Job(title="meh", description="d", job_type="contract",
              skills_required=["go"], posted_by_agent_id=other.id)
    closed = Job(title="closed", description="d", job_type="contract",
                 skills_required=["python"], status="closed", posted_by_agent_id=other.id)
    mine = Job(title="mine", description="d", job_type="contract",
               skills_required=["python"], posted_by_agent_id=me.id)
    db.add_all([good, meh, closed, mine])
    db.commit()

    ranked = rank_jobs_for_agent(db, me, limit=10)
    assert [job.title for job, _ in ranked] == ["good", "meh"]
