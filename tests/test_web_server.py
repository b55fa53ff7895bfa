"""Tests for the HTTP transport."""

import asyncio
import json
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest
from aiohttp import test_utils

from docchat.collaborators import HeaderAuthenticator
from docchat.web_server import WebServer

from tests.fakes import QUESTION, SESSION, USER, FakeLLM, Harness

HEADERS = {"X-User-Id": USER.user_id}


@asynccontextmanager
async def serve(harness=None, health_checks=None, **kwargs):
    harness = harness or Harness()
    server = WebServer(harness.orchestrator, HeaderAuthenticator(), health_checks=health_checks, **kwargs)
    client = test_utils.TestClient(test_utils.TestServer(server.app))
    await client.start_server()
    try:
        yield client
    finally:
        await client.close()


def parse_sse(body: str) -> list[dict]:
    frames = [frame for frame in body.split("\n\n") if frame]
    assert all(frame.startswith("data: ") for frame in frames)
    return [json.loads(frame[len("data: ") :]) for frame in frames]


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy(self):
        async with serve(health_checks={"llm": AsyncMock(return_value=True)}) as client:
            resp = await client.get("/health")

            assert resp.status == 200
            assert await resp.json() == {"status": "healthy", "service": "docchat", "checks": {"llm": True}}

    @pytest.mark.asyncio
    async def test_degraded_when_a_check_fails(self):
        checks = {
            "llm": AsyncMock(return_value=True),
            "chroma": AsyncMock(side_effect=ConnectionError("down")),
        }
        async with serve(health_checks=checks) as client:
            data = await (await client.get("/")).json()

            assert data["status"] == "degraded"
            assert data["checks"] == {"llm": True, "chroma": False}


class TestQueryEndpoint:
    """Test status mapping and the event stream."""

    @pytest.mark.asyncio
    async def test_streams_events(self):
        async with serve() as client:
            resp = await client.post("/query", json={"question": QUESTION, "sessionId": SESSION}, headers=HEADERS)

            assert resp.status == 200
            assert resp.headers["Content-Type"].startswith("text/event-stream")
            assert resp.headers["Cache-Control"] == "no-cache"
            events = parse_sse(await resp.text())

        assert [e["type"] for e in events] == ["sources", "chunk", "chunk", "complete"]
        assert events[0]["chunkCount"] == 1
        assert events[-1]["content"] == "Hello world"
        assert events[-1]["cached"] is False

    @pytest.mark.asyncio
    async def test_new_session_is_answered(self):
        async with serve() as client:
            resp = await client.post("/query", json={"question": QUESTION, "sessionId": "new-session"}, headers=HEADERS)

            assert resp.status == 200
            events = parse_sse(await resp.text())

        assert events[-1]["type"] == "complete"

    @pytest.mark.asyncio
    async def test_missing_identity(self):
        async with serve() as client:
            resp = await client.post("/query", json={"question": QUESTION, "sessionId": SESSION})

            assert resp.status == 401
            assert await resp.json() == {"error": "Unauthorized"}

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        async with serve() as client:
            resp = await client.post("/query", data="not json", headers=HEADERS)

            assert resp.status == 400
            assert (await resp.json())["error"] == "Invalid JSON body"

    @pytest.mark.parametrize(
        "body,error",
        [
            ({"sessionId": SESSION}, "Question is required"),
            ({"question": "   ", "sessionId": SESSION}, "Question is required"),
            ({"question": "<p> <br/> </p>", "sessionId": SESSION}, "Question is required"),
            ({"question": QUESTION}, "Session ID is required"),
            ([QUESTION], "Request body must be a JSON object"),
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_body(self, body, error):
        async with serve() as client:
            resp = await client.post("/query", json=body, headers=HEADERS)

            assert resp.status == 400
            assert (await resp.json())["error"] == error

    @pytest.mark.asyncio
    async def test_foreign_session(self):
        async with serve() as client:
            resp = await client.post(
                "/query", json={"question": QUESTION, "sessionId": SESSION}, headers={"X-User-Id": "intruder"}
            )

            assert resp.status == 403
            assert await resp.json() == {"error": "Session not found"}

    @pytest.mark.asyncio
    async def test_rate_limited(self):
        async with serve(Harness(max_requests=1)) as client:
            body = {"question": QUESTION, "sessionId": SESSION}
            first = await client.post("/query", json=body, headers=HEADERS)
            await first.text()

            resp = await client.post("/query", json=body, headers=HEADERS)

            assert resp.status == 429
            assert int(resp.headers["Retry-After"]) >= 1
            data = await resp.json()
            assert "resetTime" in data
            assert data["error"]

    @pytest.mark.asyncio
    async def test_session_store_failure(self):
        harness = Harness()
        harness.conversations.validate_session = AsyncMock(side_effect=ConnectionError("db down"))

        async with serve(harness) as client:
            resp = await client.post("/query", json={"question": QUESTION, "sessionId": SESSION}, headers=HEADERS)

            assert resp.status == 500
            assert await resp.json() == {"error": "Internal server error"}

    @pytest.mark.asyncio
    async def test_question_is_sanitized(self):
        harness = Harness()
        body = {"question": "  <p>What is the <b>vacation</b>\n\n policy?</p>", "sessionId": SESSION}

        async with serve(harness) as client:
            resp = await client.post("/query", json=body, headers=HEADERS)
            await resp.text()
        await harness.post_processor.drain()

        assert harness.turns[0].question == QUESTION

    @pytest.mark.asyncio
    async def test_long_question_is_truncated(self):
        harness = Harness()
        body = {"question": "vacation policy " * 2000, "sessionId": SESSION}

        async with serve(harness, max_question_length=100) as client:
            resp = await client.post("/query", json=body, headers=HEADERS)
            assert resp.status == 200
            await resp.text()
        await harness.post_processor.drain()

        assert len(harness.turns[0].question) == 100


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_client_disconnect_cancels_stream(self):
        harness = Harness(llm=FakeLLM(tokens=[f" t{i}" for i in range(40)], delay=0.05))
        channels = []
        open_stream = harness.orchestrator.open_stream

        def capture(request):
            channel = open_stream(request)
            channels.append(channel)
            return channel

        harness.orchestrator.open_stream = capture

        async with serve(harness) as client:
            resp = await client.post("/query", json={"question": QUESTION, "sessionId": SESSION}, headers=HEADERS)
            first = await resp.content.readline()
            resp.close()

            await asyncio.wait_for(channels[0].wait_closed(), timeout=5)
        await harness.post_processor.drain()

        assert first.startswith(b"data: ")
        assert channels[0].cancelled
        assert "post_process" not in channels[0].states
        assert harness.turns[0].incomplete
