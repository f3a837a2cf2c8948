"""
Tests for the /api/facebook endpoints.
"""

import pytest

from adsconnect.models import FacebookConnection
from adsconnect.services.connection_store import ConnectionStore
from adsconnect.utils import MS_PER_DAY, now_ms

OWNER = "user_fb_1"
EXPIRED = (400, {"error": {"code": 190, "type": "OAuthException", "message": "Session has expired"}})

AD_REQUEST = {
    "ad_account_id": "act_111",
    "campaign_name": "Spring Sale",
    "objective": "OUTCOME_TRAFFIC",
    "ad_set_name": "Spring Sale - FR",
    "daily_budget": 2500,
    "targeting": {"countries": ["FR"]},
    "page_id": "page_9",
    "image_url": "https://cdn.example.com/spring.jpg",
    "link_url": "https://shop.example.com/spring",
    "message": "Everything 20% off",
    "headline": "Spring Sale",
}


@pytest.fixture
async def connected(session_factory):
    async with session_factory() as session:
        await ConnectionStore(session).upsert(
            OWNER, "fb_1", "tok_live", "bearer", now_ms() + 30 * MS_PER_DAY, ["ads_read"],
            [{"id": "act_111", "account_id": "111", "name": "Main", "currency": "USD"}],
        )
        await session.commit()


async def _is_active(session_factory) -> bool:
    async with session_factory() as session:
        return await ConnectionStore(session).has_active_connection(OWNER)


@pytest.mark.anyio
async def test_endpoints_require_identity(api):
    assert (await api.get("/api/facebook/connection")).status_code == 401
    assert (await api.post("/api/facebook/ads", json=AD_REQUEST)).status_code == 401


@pytest.mark.anyio
async def test_connection_is_null_when_absent(api, auth_headers):
    response = await api.get("/api/facebook/connection", headers=auth_headers(OWNER))
    assert response.status_code == 200
    assert response.json() is None


@pytest.mark.anyio
async def test_connection_view_hides_token(api, auth_headers, connected):
    response = await api.get("/api/facebook/connection", headers=auth_headers(OWNER))

    body = response.json()
    assert body["fb_user_id"] == "fb_1"
    assert body["is_active"] is True
    assert "access_token" not in body
    assert "tok_live" not in response.text


@pytest.mark.anyio
async def test_status_and_disconnect(api, auth_headers, connected, session_factory):
    headers = auth_headers(OWNER)
    assert (await api.get("/api/facebook/connection/status", headers=headers)).json() == {"connected": True}

    response = await api.post("/api/facebook/disconnect", headers=headers)
    assert response.json() == {"success": True}

    assert (await api.get("/api/facebook/connection/status", headers=headers)).json() == {"connected": False}
    assert (await api.get("/api/facebook/ad-accounts", headers=headers)).json() == []
    assert await _is_active(session_factory) is False


@pytest.mark.anyio
async def test_cached_ad_accounts(api, auth_headers, connected):
    response = await api.get("/api/facebook/ad-accounts", headers=auth_headers(OWNER))
    assert [a["id"] for a in response.json()] == ["act_111"]


@pytest.mark.anyio
async def test_create_ad(api, auth_headers, connected, fake_graph):
    fake_graph.on("POST", "/act_111/campaigns", {"id": "cmp_1"})
    fake_graph.on("POST", "/act_111/adsets", {"id": "set_1"})
    fake_graph.on("POST", "/act_111/adimages", {"hash": "img_hash_1"})
    fake_graph.on("POST", "/act_111/adcreatives", {"id": "cre_1"})
    fake_graph.on("POST", "/act_111/ads", {"id": "ad_1"})

    response = await api.post("/api/facebook/ads", json=AD_REQUEST, headers=auth_headers(OWNER))

    assert response.status_code == 200
    assert response.json() == {
        "campaign_id": "cmp_1", "ad_set_id": "set_1", "image_hash": "img_hash_1",
        "creative_id": "cre_1", "ad_id": "ad_1",
    }
    listed = await api.get("/api/facebook/ads", headers=auth_headers(OWNER))
    assert [a["ad_id"] for a in listed.json()] == ["ad_1"]


@pytest.mark.anyio
async def test_create_ad_failure_is_502_with_step(api, auth_headers, connected, fake_graph):
    fake_graph.on("POST", "/act_111/campaigns", {"id": "cmp_1"})
    fake_graph.on("POST", "/act_111/adsets", (400, {"error": {"code": 100, "message": "Invalid targeting"}}))
    fake_graph.on("DELETE", "/cmp_1", {"success": True})

    response = await api.post("/api/facebook/ads", json=AD_REQUEST, headers=auth_headers(OWNER))

    assert response.status_code == 502
    assert response.json()["detail"] == "Failed to create ad (ad set): Facebook API Error: Invalid targeting (code: 100)"
    assert fake_graph.calls("DELETE", "/cmp_1")

    logs = (await api.get("/api/facebook/action-logs", headers=auth_headers(OWNER))).json()
    assert [(e["action"], e["result"]) for e in logs] == [("create_adset", "failure"), ("create_campaign", "success")]


@pytest.mark.anyio
async def test_create_ad_invalid_body_is_422(api, auth_headers, connected, fake_graph):
    bad = {**AD_REQUEST, "lifetime_budget": 5000}
    response = await api.post("/api/facebook/ads", json=bad, headers=auth_headers(OWNER))
    assert response.status_code == 422
    assert fake_graph.requests == []


@pytest.mark.anyio
async def test_create_ad_without_connection_is_404(api, auth_headers):
    response = await api.post("/api/facebook/ads", json=AD_REQUEST, headers=auth_headers("someone_else"))
    assert response.status_code == 404
    assert response.json()["detail"] == "No active Facebook connection"


@pytest.mark.anyio
async def test_pause_ad(api, auth_headers, connected, fake_graph):
    fake_graph.on("GET", "/ad_9", {"id": "ad_9", "status": "ACTIVE"})
    fake_graph.on("POST", "/ad_9", {"success": True})

    response = await api.post(
        "/api/facebook/ads/ad_9/status",
        json={"status": "PAUSED", "ad_account_id": "act_111", "ad_name": "Spring Ad"},
        headers=auth_headers(OWNER),
    )

    assert response.status_code == 200
    logs = (await api.get("/api/facebook/action-logs", headers=auth_headers(OWNER))).json()
    assert logs[0]["action"] == "pause_ad"
    assert logs[0]["target_name"] == "Spring Ad"


@pytest.mark.anyio
async def test_expired_token_is_401_and_disconnects(api, auth_headers, connected, fake_graph, session_factory):
    fake_graph.on("GET", "/act_111/campaigns", EXPIRED)

    response = await api.get(
        "/api/facebook/campaigns", params={"ad_account_id": "act_111"}, headers=auth_headers(OWNER),
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "EXPIRED_TOKEN"
    assert len(fake_graph.requests) == 1
    assert await _is_active(session_factory) is False


@pytest.mark.anyio
async def test_sync_ad_accounts(api, auth_headers, connected, fake_graph):
    fake_graph.on("GET", "/me/adaccounts", {"data": [
        {"id": "act_222", "account_id": "222", "name": "New", "currency": "EUR"},
    ]})

    response = await api.post("/api/facebook/ad-accounts/sync", headers=auth_headers(OWNER))

    assert response.status_code == 200
    assert [a["id"] for a in response.json()] == ["act_222"]
    cached = await api.get("/api/facebook/ad-accounts", headers=auth_headers(OWNER))
    assert [a["id"] for a in cached.json()] == ["act_222"]


@pytest.mark.anyio
async def test_action_logs_are_scoped_to_caller(api, auth_headers, connected, fake_graph):
    fake_graph.on("GET", "/ad_9", {"status": "PAUSED"})
    fake_graph.on("POST", "/ad_9", {"success": True})
    await api.post(
        "/api/facebook/ads/ad_9/status",
        json={"status": "ACTIVE", "ad_account_id": "act_111"},
        headers=auth_headers(OWNER),
    )

    mine = (await api.get("/api/facebook/action-logs", headers=auth_headers(OWNER))).json()
    theirs = (await api.get("/api/facebook/action-logs", headers=auth_headers("user_other"))).json()
    assert len(mine) == 1
    assert theirs == []


@pytest.mark.anyio
async def test_unreadable_expiry_stays_deactivated_after_404(api, auth_headers, session_factory):
    async with session_factory() as session:
        session.add(FacebookConnection(owner_id=OWNER, fb_user_id="fb_1", access_token="x", expires_at=None))
        await session.commit()

    response = await api.get("/api/facebook/pages", headers=auth_headers(OWNER))

    assert response.status_code == 404
    assert response.json()["detail"] == "No active Facebook connection"
    view = (await api.get("/api/facebook/connection", headers=auth_headers(OWNER))).json()
    assert view["is_active"] is False
