"""
Test login, agent profiles, browsing and follows through the HTTP API.

Run with: python -m pytest moltin/tests/test_agents_api.py -v
"""

import logging
from unittest.mock import patch

from moltin.core.config import get_settings
from moltin.core.database import Follow
from moltin.services.moltbook import VerifyIdentityResult

logger = logging.getLogger(__name__)


# ============================================================================
# Auth
# ============================================================================

def test_health(anon_client):
    response = anon_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Request-Id" in response.headers
    assert response.headers["X-Response-Time"].endswith("ms")


def test_verify_requires_identity_header(anon_client):
    response = anon_client.post("/api/auth/verify")
    assert response.status_code == 401
    assert response.json() == {
        "error": {"code": "UNAUTHORIZED", "message": "Missing x-moltbook-identity header"},
        "success": False,
    }


def test_dev_login_sets_session_cookie(anon_client):
    response = anon_client.post(
        "/api/auth/verify",
        headers={"x-moltbook-identity": "dev_scout"},
        json={"name": "Scout", "description": "Dev scout"},
    )
    body = response.json()

    assert response.status_code == 200
    assert body["success"] is True
    assert body["data"]["dev_mode"] is True
    assert body["data"]["is_new_agent"] is True
    assert body["data"]["agent"]["name"] == "Scout"
    assert "HttpOnly" in response.headers["set-cookie"]

    status = anon_client.get("/api/auth/verify").json()
    assert status == {"authenticated": True, "agent": {"id": body["data"]["agent"]["id"], "name": "Scout"}}


def test_dev_login_without_body_uses_token_suffix(anon_client):
    response = anon_client.post("/api/auth/verify", headers={"x-moltbook-identity": "dev_helper"})
    assert response.status_code == 200
    assert response.json()["data"]["agent"]["name"] == "helper"


def test_live_login_without_configuration(anon_client, monkeypatch):
    monkeypatch.delenv("MOLTBOOK_API_KEY", raising=False)
    monkeypatch.delenv("MOLTBOOK_APP_URL", raising=False)
    get_settings.cache_clear()

    response = anon_client.post("/api/auth/verify", headers={"x-moltbook-identity": "live_token"})
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Authentication is not configured"


def test_live_login_through_moltbook(anon_client):
    agent = {"id": "mb_9", "name": "LiveBot", "karma": 12, "is_claimed": False,
             "owner": {"x_handle": "livehuman"}}

    class Client:
        def verify_identity_token(self, token):
            assert token == "live_token"
            return VerifyIdentityResult(success=True, valid=True, agent=agent)

    with patch("moltin.api.auth.get_moltbook_client", return_value=Client()):
        first = anon_client.post("/api/auth/verify", headers={"x-moltbook-identity": "live_token"})
        second = anon_client.post("/api/auth/verify", headers={"x-moltbook-identity": "live_token"})

    assert first.status_code == 200
    assert first.json()["data"]["is_new_agent"] is True
    assert first.json()["data"]["user"]["email"] == "livehuman@moltbook.local"
    assert "dev_mode" not in first.json()["data"]
    assert second.json()["data"]["is_new_agent"] is False


def test_live_login_rejected_by_moltbook(anon_client):
    class Client:
        def verify_identity_token(self, token):
            return VerifyIdentityResult.failure("TOKEN_EXPIRED", "Token expired")

    with patch("moltin.api.auth.get_moltbook_client", return_value=Client()):
        response = anon_client.post("/api/auth/verify", headers={"x-moltbook-identity": "old"})

    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Token expired"


def test_logout_clears_cookie(make_client):
    client, _ = make_client("Leaver")
    response = client.post("/api/auth/logout")

    assert response.json() == {"data": {"logged_out": True}, "success": True}
    assert "Max-Age=0" in response.headers["set-cookie"]
    assert client.get("/api/auth/verify").json() == {"authenticated": False}


# ============================================================================
# Profiles
# ============================================================================

def test_me_requires_session(anon_client):
    response = anon_client.get("/api/agents/me")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


def test_me_and_profile_update(make_client):
    client, agent = make_client(
        "Builder", bio="Ships APIs", skills=["Python", "FastAPI"],
        rate_min=5000, rate_max=9000, availability="1_week",
    )

    me = client.get("/api/agents/me").json()["data"]
    logger.info(f"Me: {me}")
    assert me["id"] == agent["id"]
    assert me["moltbook_karma"] == "100.00"
    assert me["user"]["name"] == "Builder"
    assert me["professional_profile"]["skills"] == ["Python", "FastAPI"]
    assert me["professional_profile"]["availability"] == "1_week"

    # partial update leaves the other profile fields alone
    response = client.patch(f"/api/agents/{agent['id']}", json={
        "description": "Now with docs",
        "professional_profile": {"rate_max": 12000},
    })
    data = response.json()["data"]
    assert data["description"] == "Now with docs"
    assert data["professional_profile"]["rate_max"] == 12000
    assert data["professional_profile"]["rate_min"] == 5000
    assert data["professional_profile"]["skills"] == ["Python", "FastAPI"]


def test_profile_update_rejects_unknown_fields(make_client):
    client, agent = make_client("Strict")
    response = client.patch(f"/api/agents/{agent['id']}", json={"karma": 9999})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_profile_update_rejects_bad_enum(make_client):
    client, agent = make_client("Strict")
    response = client.patch(
        f"/api/agents/{agent['id']}",
        json={"professional_profile": {"availability": "someday"}},
    )
    assert response.status_code == 400


def test_cannot_update_or_delete_someone_else(make_client):
    alice, _ = make_client("Alice")
    _, bob = make_client("Bob")

    response = alice.patch(f"/api/agents/{bob['id']}", json={"description": "hacked"})
    assert response.status_code == 403
    assert response.json()["error"]["message"] == "You can only update your own profile"

    response = alice.delete(f"/api/agents/{bob['id']}")
    assert response.status_code == 403
    assert response.json()["error"]["message"] == "You can only delete your own profile"


def test_update_missing_agent(make_client):
    client, _ = make_client("Alice")
    response = client.patch("/api/agents/missing", json={"description": "x"})
    assert response.status_code == 404


def test_soft_delete_hides_agent(make_client, anon_client):
    client, agent = make_client("Ghost")

    response = client.delete(f"/api/agents/{agent['id']}")
    assert response.json()["data"] == {"deleted": True, "id": agent["id"]}

    assert anon_client.get(f"/api/agents/{agent['id']}").status_code == 404
    listed = anon_client.get("/api/agents").json()["data"]
    assert agent["id"] not in [a["id"] for a in listed["data"]]


# ============================================================================
# Browse
# ============================================================================

def test_list_agents_filters(make_client, anon_client):
    make_client("Pythonista", bio="Backend services", skills=["Python", "Django"])
    make_client("Designer", bio="Pixel perfect", skills=["Figma"])
    make_client("Plain")

    body = anon_client.get("/api/agents").json()["data"]
    assert body["pagination"]["total"] == 3

    by_skill = anon_client.get("/api/agents", params={"skills": "python, rust"}).json()["data"]
    assert [a["name"] for a in by_skill["data"]] == ["Pythonista"]

    by_bio = anon_client.get("/api/agents", params={"q": "PIXEL"}).json()["data"]
    assert [a["name"] for a in by_bio["data"]] == ["Designer"]

    by_name = anon_client.get("/api/agents", params={"q": "plain"}).json()["data"]
    assert [a["name"] for a in by_name["data"]] == ["Plain"]

    rich = anon_client.get("/api/agents", params={"karma_min": 101}).json()["data"]
    assert rich["pagination"]["total"] == 0


def test_list_agents_sort_and_pagination(make_client, anon_client):
    for name in ("Charlie", "Alpha", "Bravo"):
        make_client(name)

    response = anon_client.get("/api/agents", params={
        "sort_by": "name", "sort_order": "asc", "page": "2", "limit": "2",
    })
    body = response.json()["data"]

    assert [a["name"] for a in body["data"]] == ["Charlie"]
    assert body["pagination"] == {
        "page": 2, "limit": 2, "total": 3, "total_pages": 2, "has_more": False,
    }


def test_list_agents_bad_pagination_falls_back(anon_client):
    body = anon_client.get("/api/agents", params={"page": "zero", "limit": "1000"}).json()["data"]
    assert body["pagination"]["page"] == 1
    assert body["pagination"]["limit"] == 100


# ============================================================================
# Follows
# ============================================================================

def test_follow_lifecycle(make_client, anon_client):
    alice, alice_agent = make_client("Alice")
    _, bob_agent = make_client("Bob")
    bob_url = f"/api/agents/{bob_agent['id']}"

    created = alice.post(f"{bob_url}/follow")
    assert created.status_code == 201
    assert created.json()["data"] == {
        "following": True,
        "follower_agent_id": alice_agent["id"],
        "following_agent_id": bob_agent["id"],
    }

    again = alice.post(f"{bob_url}/follow")
    assert again.status_code == 200

    assert alice.get(bob_url).json()["data"]["is_following"] is True
    assert anon_client.get(bob_url).json()["data"]["is_following"] is False

    followers = anon_client.get(f"{bob_url}/followers").json()["data"]
    assert followers["pagination"]["total"] == 1
    assert followers["data"][0]["id"] == alice_agent["id"]
    assert followers["data"][0]["followed_at"]

    following = anon_client.get(f"/api/agents/{alice_agent['id']}/following").json()["data"]
    assert [a["id"] for a in following["data"]] == [bob_agent["id"]]

    removed = alice.delete(f"{bob_url}/follow")
    assert removed.json()["data"]["following"] is False

    missing = alice.delete(f"{bob_url}/follow")
    assert missing.status_code == 404
    assert missing.json()["error"]["message"] == "Not following this agent"


def test_follow_created_concurrently_is_idempotent(make_client, db, monkeypatch):
    """An edge inserted between the lookup and the commit yields 200, not a 500."""
    from moltin.api import agents

    alice, alice_agent = make_client("Alice")
    _, bob_agent = make_client("Bob")
    real_find = agents._find_follow

    def find_then_race(session, follower_id, following_id):
        found = real_find(session, follower_id, following_id)
        db.add(Follow(follower_agent_id=follower_id, following_agent_id=following_id))
        db.commit()
        return found

    monkeypatch.setattr(agents, "_find_follow", find_then_race)
    response = alice.post(f"/api/agents/{bob_agent['id']}/follow")

    assert response.status_code == 200
    assert response.json()["data"]["following"] is True
    assert db.query(Follow).filter_by(follower_agent_id=alice_agent["id"]).count() == 1


def test_follow_errors(make_client):
    alice, alice_agent = make_client("Alice")

    response = alice.post(f"/api/agents/{alice_agent['id']}/follow")
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Cannot follow yourself"

    assert alice.post("/api/agents/nobody/follow").status_code == 404


def test_follow_requires_session(make_client, anon_client):
    _, bob = make_client("Bob")
    assert anon_client.post(f"/api/agents/{bob['id']}/follow").status_code == 401


def test_follow_list_marks_viewer_follows(make_client):
    alice, alice_agent = make_client("Alice")
    bob, bob_agent = make_client("Bob")
    carol, carol_agent = make_client("Carol")

    bob.post(f"/api/agents/{carol_agent['id']}/follow")
    alice.post(f"/api/agents/{carol_agent['id']}/follow")
    alice.post(f"/api/agents/{bob_agent['id']}/follow")

    items = alice.get(f"/api/agents/{carol_agent['id']}/followers").json()["data"]["data"]
    flags = {item["name"]: item["is_following"] for item in items}
    assert flags == {"Alice": False, "Bob": True}


def test_follow_list_validates_paging(make_client, anon_client):
    _, bob = make_client("Bob")
    response = anon_client.get(f"/api/agents/{bob['id']}/followers", params={"limit": 500})
    assert response.status_code == 400
