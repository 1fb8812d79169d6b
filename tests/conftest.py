"""
Pytest Configuration and Shared Fixtures for ArchGen.

Provides common fixtures for:
- Settings managers backed by a temporary config directory
- Literal graph fixtures
- A scripted fake LLM client that replays recorded Responses-API events
- Global singleton cleanup
"""

import json

import pytest

from archgen.graph.model import Graph
from archgen.graph.operations import AddEdge, AddNode
from archgen.graph.applier import apply_batch


# ============================================================================
# SETTINGS FIXTURES
# ============================================================================

@pytest.fixture
def settings_manager(tmp_path, monkeypatch):
    """
    Real SettingsManager writing to a temporary config directory.

    Returns:
        SettingsManager: Settings with an OpenAI test key configured.
    """
    from archgen.core.settings import SettingsManager

    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    manager = SettingsManager(config_dir=tmp_path / "config")
    manager.set_api_key("openai", "sk-test-key")
    return manager


@pytest.fixture
def patched_settings_manager(settings_manager, monkeypatch):
    """
    Patch the global get_settings_manager to return the temp-dir manager.

    Returns:
        SettingsManager: The patched manager.
    """
    monkeypatch.setattr("archgen.core.settings._settings_manager", settings_manager)
    return settings_manager


# ============================================================================
# GRAPH FIXTURES
# ============================================================================

@pytest.fixture
def empty_graph():
    """Graph holding only the root node."""
    return Graph.empty()


@pytest.fixture
def scenario_a_graph():
    """Two nodes under root joined by edge e1 (a -> b, "calls")."""
    return apply_batch(Graph.empty(), [
        AddNode(nodename="a", parentId="root"),
        AddNode(nodename="b", parentId="root"),
        AddEdge(edgeId="e1", sourceId="a", targetId="b", label="calls"),
    ])


@pytest.fixture
def nested_graph():
    """
    A small nested architecture:

        root
        ├── users
        └── gcp
            ├── api
            │   ├── gw
            │   └── svc
            └── db
    """
    return apply_batch(Graph.empty(), [
        AddNode(nodename="users", parentId="root", data={"label": "Users"}),
        AddNode(nodename="gcp", parentId="root", data={"label": "Google Cloud"}),
        AddNode(nodename="api", parentId="gcp"),
        AddNode(nodename="gw", parentId="api", data={"label": "API Gateway", "icon": "api_gateway"}),
        AddNode(nodename="svc", parentId="api"),
        AddNode(nodename="db", parentId="gcp", data={"icon": "database"}),
        AddEdge(edgeId="e_users_gw", sourceId="users", targetId="gw", label="HTTPS"),
        AddEdge(edgeId="e_gw_svc", sourceId="gw", targetId="svc", label="routes"),
        AddEdge(edgeId="e_svc_db", sourceId="svc", targetId="db", label="queries"),
    ])


# ============================================================================
# LLM FIXTURES
# ============================================================================

class StreamEvents:
    """Builders for recorded Responses-API stream events."""

    @staticmethod
    def created(response_id):
        return {"type": "response.created", "response": {"id": response_id, "status": "in_progress"}}

    @staticmethod
    def text_delta(text):
        return {"type": "response.output_text.delta", "delta": text}

    @staticmethod
    def reasoning_item(item_id="rs_1"):
        return {"type": "reasoning", "id": item_id, "summary": []}

    @staticmethod
    def function_call_item(call_id, arguments, name="batch_update"):
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        return {
            "type": "function_call",
            "id": f"fc_{call_id}",
            "call_id": call_id,
            "name": name,
            "arguments": arguments,
            "status": "completed",
        }

    @staticmethod
    def message_item(text):
        return {
            "type": "message",
            "role": "assistant",
            "content": [{"type": "output_text", "text": text}],
        }

    @staticmethod
    def item_done(item):
        return {"type": "response.output_item.done", "item": item}

    @staticmethod
    def completed(response_id, output=None, usage=None):
        response = {"id": response_id, "model": "gpt-5", "status": "completed", "output": output or []}
        if usage is not None:
            response["usage"] = usage
        return {"type": "response.completed", "response": response}

    @classmethod
    def tool_turn(cls, response_id, calls):
        """
        One response that makes the given tool calls.

        Args:
            response_id: Upstream response id.
            calls: List of (call_id, arguments) tuples.
        """
        items = [cls.function_call_item(call_id, arguments) for call_id, arguments in calls]
        events = [cls.created(response_id)]
        events.extend(cls.item_done(item) for item in items)
        events.append(cls.completed(response_id, [cls.reasoning_item()] + items))
        return events

    @classmethod
    def final_turn(cls, response_id, text="Done."):
        """One response with a plain message and no tool calls."""
        item = cls.message_item(text)
        return [
            cls.created(response_id),
            cls.text_delta(text),
            cls.item_done(item),
            cls.completed(response_id, [cls.reasoning_item(), item]),
        ]


class FakeLLMClient:
    """
    Scripted stand-in for LLMClient.

    Each call to stream_response replays the next script (a list of event
    dicts; an Exception instance in the list is raised at that point) and
    records the request kwargs.
    """

    def __init__(self, scripts):
        self.scripts = list(scripts)
        self.requests = []
        self.closed_streams = 0

    async def stream_response(self, **request):
        self.requests.append(request)
        if not self.scripts:
            raise AssertionError("FakeLLMClient ran out of scripted responses")
        script = self.scripts.pop(0)
        try:
            for event in script:
                if isinstance(event, Exception):
                    raise event
                yield event
        finally:
            self.closed_streams += 1

    def usage_from_response(self, response):
        return None


@pytest.fixture
def stream_events():
    """Event builders for scripting FakeLLMClient."""
    return StreamEvents


@pytest.fixture
def fake_llm():
    """
    Factory fixture for scripted LLM clients.

    Example:
        client = fake_llm([stream_events.final_turn("resp_1")])
    """
    def _create(scripts):
        return FakeLLMClient(scripts)

    return _create


# ============================================================================
# CLEANUP FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def cleanup_global_state():
    """
    Cleanup global singletons after each test.
    """
    yield

    from archgen.server.session import reset_session_manager

    reset_session_manager()
