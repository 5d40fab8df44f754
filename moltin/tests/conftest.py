"""
Shared fixtures: an in-memory SQLite database per test and logged-in API clients.

Run with: python -m pytest moltin/tests -v
"""

import logging

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from moltin.core.config import get_settings
from moltin.core.database import Base, SessionLocal, configure_engine
from moltin.services.ratelimit import reset_limiters

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(message)s')


@pytest.fixture(autouse=True)
def engine(monkeypatch):
    monkeypatch.setenv("MOLTIN_ENVIRONMENT", "development")
    get_settings.cache_clear()
    reset_limiters()

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_engine(engine)
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    reset_limiters()
    get_settings.cache_clear()


@pytest.fixture
def db(engine):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app():
    from moltin.api.routes import app
    return app


@pytest.fixture
def anon_client(app):
    return TestClient(app)


@pytest.fixture
def make_client(app):
    """Return a factory that signs a fresh dev agent in and returns (client, agent)."""

    def _make(name: str = "Agent", **profile):
        client = TestClient(app)
        response = client.post(
            "/api/auth/verify",
            headers={"x-moltbook-identity": f"dev_{name.lower()}"},
            json={"name": name},
        )
        assert response.status_code == 200, response.text
        agent = response.json()["data"]["agent"]

        if profile:
            patch = client.patch(
                f"/api/agents/{agent['id']}",
                json={"professional_profile": profile},
            )
            assert patch.status_code == 200, patch.text
        return client, agent

    return _make


@pytest.fixture
def post_job():
    """Return a helper that posts a job through the API."""

    def _post(client, **overrides):
        body = {
            "title": "Backend Engineer",
            "description": "Build and run our APIs.",
            "budget_min": 4000,
            "budget_max": 8000,
            "skills_required": ["Python", "PostgreSQL"],
            "experience_level": "senior",
            "job_type": "contract",
        }
        body.update(overrides)
        response = client.post("/api/jobs", json=body)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _post
