"""
Tests for archgen/server/routes/stream.py and health.py - HTTP surface.

Uses FastAPI's TestClient with the LLM client dependency overridden by the
scripted FakeLLMClient from conftest.

Tests:
- SSE framing of a full session (frames, terminal frame, [DONE])
- Payload errors rejected with 400 before streaming
- Session limit rejected with 429
- Session bookkeeping, release of unconsumed streams, graph and cancel endpoints
- Health and status endpoints
"""

import base64
import gzip
import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from archgen.agents.controller import ConversationController
from archgen.agents.state import ControllerState
from archgen.server.main import create_app
from archgen.server.routes.stream import _start_stream, get_llm_client, get_settings
from archgen.server.session import Session, get_session_manager


ADD_A_B = {"operations": [
    {"name": "add_node", "nodename": "a", "parentId": "root"},
    {"name": "add_node", "nodename": "b", "parentId": "root"},
    {"name": "add_edge", "edgeId": "e1", "sourceId": "a", "targetId": "b", "label": "calls"},
]}


@pytest.fixture
def app(patched_settings_manager):
    """Application with settings pointed at the temp config directory."""
    application = create_app(settings=patched_settings_manager)
    application.dependency_overrides[get_settings] = lambda: patched_settings_manager
    return application


@pytest.fixture
def client_for(app, fake_llm):
    """
    Factory returning a TestClient whose LLM client replays ``scripts``.

    Returns:
        Tuple of (TestClient, FakeLLMClient).
    """
    def _create(scripts):
        llm = fake_llm(scripts)
        app.dependency_overrides[get_llm_client] = lambda: llm
        return TestClient(app), llm

    return _create


def _payload(text="GCP web app"):
    return json.dumps([{"role": "user", "content": text}])


def _parse_sse(body):
    """Split an SSE body into decoded frames plus the raw chunks."""
    chunks = [chunk for chunk in body.split("\n\n") if chunk]
    assert all(chunk.startswith("data: ") for chunk in chunks)
    frames = [json.loads(chunk[len("data: "):]) for chunk in chunks if chunk != "data: [DONE]"]
    return frames, chunks


class TestStreamEndpoint:
    """Tests for POST/GET /api/stream."""

    def test_full_session_framing(self, client_for, stream_events):
        """Test deltas, tool output, done and [DONE] arrive in order."""
        client, llm = client_for([
            stream_events.tool_turn("resp_1", [("call_1", ADD_A_B)]),
            stream_events.final_turn("resp_2"),
        ])

        response = client.post("/api/stream", json={"payload": _payload(), "isCompressed": False})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["x-session-id"]

        frames, chunks = _parse_sse(response.text)
        assert chunks[-1] == "data: [DONE]"
        assert chunks.count("data: [DONE]") == 1
        types = [frame["type"] for frame in frames]
        assert types[-1] == "done"
        assert types.count("done") == 1
        assert "function_call_output" in types
        assert len(llm.requests) == 2

    def test_session_removed_after_stream(self, client_for, stream_events):
        client, _ = client_for([stream_events.final_turn("resp_1")])

        client.post("/api/stream", json={"payload": _payload()})

        assert get_session_manager()._sessions == {}

    @pytest.mark.asyncio
    async def test_unconsumed_body_releases_session(
        self, patched_settings_manager, fake_llm, stream_events
    ):
        """Test the response's background task frees the slot when the body is never read."""
        llm = fake_llm([stream_events.final_turn("resp_1")])
        manager = get_session_manager()

        response = await _start_stream(_payload(), False, None, None, llm, patched_settings_manager)

        assert list(manager._sessions) == [response.headers["x-session-id"]]

        await response.background()

        assert manager._sessions == {}
        assert llm.requests == []

    def test_compressed_payload(self, client_for, stream_events):
        client, llm = client_for([stream_events.final_turn("resp_1")])
        payload = base64.b64encode(gzip.compress(_payload("AWS pipeline").encode("utf-8"))).decode("ascii")

        response = client.post("/api/stream", json={"payload": payload, "isCompressed": True})

        assert response.status_code == 200
        assert llm.requests[0]["input"] == [{"role": "user", "content": "AWS pipeline"}]

    def test_request_overrides(self, client_for, stream_events):
        """Test maxTurns and continuation in the body override settings."""
        client, llm = client_for([
            stream_events.tool_turn("resp_1", [("call_1", ADD_A_B)]),
            stream_events.final_turn("resp_2"),
        ])

        client.post("/api/stream", json={"payload": _payload(), "maxTurns": 1, "continuation": False})

        assert "Current turn: 1/1" in llm.requests[0]["instructions"]
        assert llm.requests[1]["previous_response_id"] is None

    def test_get_stream(self, client_for, stream_events):
        client, llm = client_for([stream_events.final_turn("resp_1")])

        response = client.get("/api/stream", params={"payload": _payload("hello")})

        frames, chunks = _parse_sse(response.text)
        assert frames[-1] == {"type": "done"}
        assert llm.requests[0]["input"] == [{"role": "user", "content": "hello"}]

    def test_error_frame_is_terminal(self, client_for, stream_events):
        """Test a failing batch ends the stream with one error frame, then [DONE]."""
        client, _ = client_for([
            stream_events.tool_turn("resp_1", [("call_1", {"graph": {"id": "root"}})]),
        ])

        response = client.post("/api/stream", json={"payload": _payload()})

        frames, chunks = _parse_sse(response.text)
        assert frames[-1]["type"] == "error"
        assert frames[-1]["kind"] == "decode"
        assert chunks[-1] == "data: [DONE]"
        assert [frame["type"] for frame in frames].count("error") == 1


class TestStreamRejections:
    """Tests for requests rejected before streaming starts."""

    def test_missing_payload(self, client_for):
        client, llm = client_for([])

        response = client.post("/api/stream", json={"isCompressed": False})

        assert response.status_code == 400
        assert response.json() == {"error": "missing payload"}
        assert llm.requests == []

    def test_get_without_payload(self, client_for):
        client, _ = client_for([])

        response = client.get("/api/stream")

        assert response.status_code == 400

    def test_bad_compressed_payload(self, client_for):
        client, _ = client_for([])

        response = client.post("/api/stream", json={"payload": "%%%", "isCompressed": True})

        assert response.status_code == 400
        assert response.json()["error"].startswith("Failed to decompress payload")

    def test_invalid_max_turns(self, client_for):
        client, _ = client_for([])

        response = client.post("/api/stream", json={"payload": _payload(), "maxTurns": 0})

        assert response.status_code == 422

    def test_session_limit(self, client_for, stream_events):
        client, llm = client_for([stream_events.final_turn("resp_1")])
        manager = get_session_manager()
        for index in range(manager.max_sessions):
            busy = MagicMock()
            busy.state = ControllerState.STREAMING_DELTAS
            busy.started = True
            manager._sessions[f"busy-{index}"] = Session(session_id=f"busy-{index}", controller=busy)

        response = client.post("/api/stream", json={"payload": _payload()})

        assert response.status_code == 429
        assert response.json()["error"] == "Too many concurrent sessions"
        assert llm.requests == []


class TestSessionEndpoints:
    """Tests for /api/sessions."""

    def test_cancel_unknown_session(self, client_for):
        client, _ = client_for([])

        response = client.post("/api/sessions/nope/cancel")

        assert response.status_code == 404
        assert response.json() == {"error": "Session not found: nope"}

    def test_cancel_live_session(self, client_for):
        client, _ = client_for([])
        controller = MagicMock()
        controller.cancel.return_value = True
        get_session_manager()._sessions["run-1"] = Session(session_id="run-1", controller=controller)

        response = client.post("/api/sessions/run-1/cancel")

        assert response.status_code == 200
        assert response.json() == {"session_id": "run-1", "cancelled": True}
        controller.cancel.assert_called_once_with()

    def test_list_sessions_empty(self, client_for):
        client, _ = client_for([])

        assert client.get("/api/sessions").json() == []

    def test_list_session_reports_progress(self, client_for, patched_settings_manager, nested_graph):
        """Test a registered session is listed with its controller's counts."""
        client, llm = client_for([])
        controller = ConversationController(
            llm, [{"role": "user", "content": "hi"}], settings=patched_settings_manager, graph=nested_graph
        )
        get_session_manager()._sessions[controller.run_id] = Session(
            session_id=controller.run_id, controller=controller
        )

        [info] = client.get("/api/sessions").json()

        assert info["session_id"] == controller.run_id
        assert info["state"] == "awaiting_model"
        assert info["started"] is False
        assert info["turns"] == 0
        assert info["tool_calls"] == 0
        assert info["node_count"] == 6
        assert info["edge_count"] == 3

    def test_session_graph(self, client_for, patched_settings_manager, scenario_a_graph):
        client, llm = client_for([])
        controller = ConversationController(
            llm, "hi", settings=patched_settings_manager, graph=scenario_a_graph
        )
        get_session_manager()._sessions[controller.run_id] = Session(
            session_id=controller.run_id, controller=controller
        )

        body = client.get(f"/api/sessions/{controller.run_id}/graph").json()

        assert body["id"] == "root"
        assert [child["id"] for child in body["children"]] == ["a", "b"]
        assert body["edges"][0]["sources"] == ["a"]

    def test_session_graph_unknown(self, client_for):
        client, _ = client_for([])

        response = client.get("/api/sessions/nope/graph")

        assert response.status_code == 404


class TestHealthEndpoints:
    """Tests for /api/health and /api/status."""

    def test_health(self, client_for):
        client, _ = client_for([])

        body = client.get("/api/health").json()

        assert body == {
            "status": "healthy",
            "version": "0.3.0",
            "model": "gpt-5",
            "api_key_configured": True,
        }

    def test_health_degraded_without_key(self, client_for, patched_settings_manager):
        patched_settings_manager.set_api_key("openai", "")
        client, _ = client_for([])

        body = client.get("/api/health").json()

        assert body["status"] == "degraded"
        assert body["api_key_configured"] is False

    def test_status(self, client_for):
        client, _ = client_for([])

        body = client.get("/api/status").json()

        assert body["active_sessions"] == 0
        assert body["active_runs"] == 0
        assert body["max_sessions"] == 3
        assert body["sessions"] == []
        assert body["uptime_seconds"] is None

    def test_status_uptime_with_lifespan(self, client_for):
        client, _ = client_for([])

        with client:
            body = client.get("/api/status").json()

        assert body["uptime_seconds"] >= 0

    def test_root(self, client_for):
        client, _ = client_for([])

        assert client.get("/").json()["stream_url"] == "/api/stream"
