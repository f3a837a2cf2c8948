"""
Tests for the Graph client: auth header, error classification and retries.
"""

import json

import httpx
import pytest

from adsconnect.errors import ExpiredCredential, RemoteApiError, TransportError
from adsconnect.services.graph_client import parse_error_response


def test_parse_error_response_code_190_is_expired():
    err = parse_error_response(400, {"error": {"code": 190, "type": "OAuthException", "message": "expired"}})
    assert isinstance(err, ExpiredCredential)
    assert str(err) == "EXPIRED_TOKEN"


def test_parse_error_response_oauth_type_alone_is_expired():
    err = parse_error_response(400, {"error": {"code": 102, "type": "OAuthException", "message": "session"}})
    assert isinstance(err, ExpiredCredential)


def test_parse_error_response_remote_error_message():
    err = parse_error_response(400, {"error": {"code": 100, "type": "GraphMethodException", "message": "Invalid parameter"}})
    assert isinstance(err, RemoteApiError)
    assert err.code == 100
    assert str(err) == "Facebook API Error: Invalid parameter (code: 100)"


def test_parse_error_response_without_envelope_is_transport():
    err = parse_error_response(502, None, "Bad Gateway")
    assert isinstance(err, TransportError)
    assert "502" in str(err)


@pytest.mark.anyio
async def test_get_sends_bearer_and_params(fake_graph, graph):
    fake_graph.on("GET", "/me", {"id": "fb_1", "name": "Ada"})

    data = await graph.get("/me", "tok-abc", params={"fields": "id,name"})

    assert data == {"id": "fb_1", "name": "Ada"}
    request = fake_graph.requests[0]
    assert request.headers["Authorization"] == "Bearer tok-abc"
    assert request.url.params["fields"] == "id,name"


@pytest.mark.anyio
async def test_post_sends_json_body(fake_graph, graph):
    fake_graph.on("POST", "/act_1/campaigns", {"id": "cmp_1"})

    data = await graph.post("/act_1/campaigns", "tok", {"name": "Spring", "status": "PAUSED"})

    assert data == {"id": "cmp_1"}
    request = fake_graph.requests[0]
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content) == {"name": "Spring", "status": "PAUSED"}


@pytest.mark.anyio
async def test_expired_token_is_not_retried(fake_graph, graph):
    fake_graph.on("GET", "/me", (400, {"error": {"code": 190, "type": "OAuthException", "message": "Session has expired"}}))

    with pytest.raises(ExpiredCredential):
        await graph.get("/me", "stale")

    assert len(fake_graph.requests) == 1
    assert fake_graph.sleeps == []


@pytest.mark.anyio
async def test_remote_error_is_retried_with_backoff(fake_graph, graph):
    fake_graph.on("GET", "/me", (500, {"error": {"code": 2, "message": "Service temporarily unavailable"}}))

    with pytest.raises(RemoteApiError, match="Service temporarily unavailable"):
        await graph.get("/me", "tok")

    assert len(fake_graph.requests) == 3
    assert fake_graph.sleeps == [1.0, 2.0]


@pytest.mark.anyio
async def test_network_error_recovers_on_retry(fake_graph, graph):
    fake_graph.on(
        "GET", "/me",
        httpx.ConnectError("connection reset"),
        {"id": "fb_1"},
    )

    assert await graph.get("/me", "tok") == {"id": "fb_1"}
    assert len(fake_graph.requests) == 2
    assert fake_graph.sleeps == [1.0]


@pytest.mark.anyio
async def test_non_json_error_body_is_transport_error(fake_graph):
    fake_graph.on("GET", "/me", httpx.Response(503, text="<html>down</html>"))
    client = fake_graph.client(max_attempts=1)
    try:
        with pytest.raises(TransportError, match="503"):
            await client.get("/me", "tok")
    finally:
        await client.close()
