import json

import httpx
import pytest

from messengerbot.client import MessengerClient
from messengerbot.markup import Markup


def _client(handler) -> tuple[MessengerClient, httpx.AsyncClient]:
    transport = httpx.MockTransport(handler)
    http_client = httpx.AsyncClient(transport=transport)
    return (
        MessengerClient("EAAtesttoken", api_version="v18.0", client=http_client),
        http_client,
    )


def test_empty_token_rejected() -> None:
    with pytest.raises(ValueError):
        MessengerClient("")


@pytest.mark.anyio
async def test_send_message_posts_to_send_api() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"recipient_id": "u1", "message_id": "mid.1"})

    client, http_client = _client(handler)
    try:
        result = await client.send_message("u1", "hello")
    finally:
        await http_client.aclose()

    assert result == {"recipient_id": "u1", "message_id": "mid.1"}
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/v18.0/me/messages"
    assert request.url.host == "graph.facebook.com"
    assert request.url.params["access_token"] == "EAAtesttoken"
    assert json.loads(request.content) == {
        "recipient": {"id": "u1"},
        "message": {"text": "hello"},
    }


@pytest.mark.anyio
async def test_send_message_renders_markup() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"message_id": "mid.2"})

    client, http_client = _client(handler)
    try:
        await client.send_message("u1", Markup.photo("https://x/cat.png"))
    finally:
        await http_client.aclose()

    assert bodies[0]["message"] == {
        "attachment": {
            "type": "image",
            "payload": {"url": "https://x/cat.png"},
        }
    }


@pytest.mark.anyio
async def test_http_error_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "Invalid OAuth"}})

    client, http_client = _client(handler)
    try:
        assert await client.send_message("u1", "hi") is None
    finally:
        await http_client.aclose()


@pytest.mark.anyio
async def test_network_error_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    client, http_client = _client(handler)
    try:
        assert await client.send_message("u1", "hi") is None
    finally:
        await http_client.aclose()


@pytest.mark.anyio
async def test_non_json_response_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>")

    client, http_client = _client(handler)
    try:
        assert await client.send_message("u1", "hi") is None
    finally:
        await http_client.aclose()


@pytest.mark.anyio
async def test_non_object_response_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[1, 2])

    client, http_client = _client(handler)
    try:
        assert await client.send_message("u1", "hi") is None
    finally:
        await http_client.aclose()


@pytest.mark.anyio
async def test_close_leaves_borrowed_client_open() -> None:
    client, http_client = _client(lambda request: httpx.Response(200, json={}))

    await client.close()

    assert not http_client.is_closed
    await http_client.aclose()
