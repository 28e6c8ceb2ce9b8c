"""
Tests for HttpxTransport against httpx.MockTransport.
"""

from __future__ import annotations

import json

import httpx
import pytest

from errors import TransportError
from transport import FailureKind, HttpxTransport

pytestmark = pytest.mark.asyncio

BASE_URL = "http://mealbot.test"


def make_transport(handler):
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return HttpxTransport(BASE_URL, client=client)


async def test_get_returns_response():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"Users": [], "Reciepts": []})

    transport = make_transport(handler)
    resp = await transport.request("GET", "/api/get-data")
    await transport.aclose()

    assert resp.status == 200
    assert resp.json() == {"Users": [], "Reciepts": []}
    assert seen[0].url == httpx.URL(BASE_URL + "/api/get-data")
    assert seen[0].headers["accept"] == "application/json"


async def test_body_is_sent_as_json():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, text="ok")

    async with make_transport(handler) as transport:
        resp = await transport.request("POST", "/api/echo", {"user": "alice"})

    assert resp.text == "ok"
    assert seen == [{"user": "alice"}]


async def test_post_without_body_sends_nothing():
    seen = []

    def handler(request):
        seen.append(request.content)
        return httpx.Response(200)

    async with make_transport(handler) as transport:
        await transport.request("POST", "/api/edit_meal/a/b/1")

    assert seen == [b""]


async def test_http_error_status():
    async with make_transport(lambda request: httpx.Response(500)) as transport:
        with pytest.raises(TransportError) as exc:
            await transport.request("GET", "/api/get-data")

    assert exc.value.kind is FailureKind.ERROR
    assert exc.value.status == 500


async def test_timeout():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    async with make_transport(handler) as transport:
        with pytest.raises(TransportError) as exc:
            await transport.request("GET", "/api/get-data")

    assert exc.value.kind is FailureKind.TIMEOUT
    assert exc.value.status is None


async def test_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with make_transport(handler) as transport:
        with pytest.raises(TransportError) as exc:
            await transport.request("GET", "/api/get-data")

    assert exc.value.kind is FailureKind.ERROR


async def test_closed_transport_aborts():
    transport = make_transport(lambda request: httpx.Response(200))
    await transport.aclose()

    with pytest.raises(TransportError) as exc:
        await transport.request("GET", "/api/get-data")

    assert exc.value.kind is FailureKind.ABORT
