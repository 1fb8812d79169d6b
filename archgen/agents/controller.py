"""
Conversation Loop Controller for ArchGen.

Drives multi-turn tool calling against the OpenAI Responses API for one
session. The controller owns the session's Graph and Conversation and exposes
its output as an async generator of frames (dicts), so the consumer pulls at
its own pace and closing the generator stops the upstream stream.

State machine:
    awaiting_model -> streaming_deltas -> executing_tools -> streaming_deltas ...
    response.completed with tool calls    -> awaiting_model (next turn)
    response.completed without tool calls -> completed
    decode / validation / transport error -> failed

Usage:
    controller = ConversationController(llm_client, "Build a GCP web app")
    async for frame in controller.run():
        ...
    controller.graph  # final diagram
"""

import asyncio
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional, Union
import logging

from archgen.agents.budget import TurnBudget
from archgen.agents.state import (
    ControllerState,
    TurnRecord,
    create_initial_conversation,
)
from archgen.core.events import done_event, error_event, function_call_output_event
from archgen.core.llm_client import SessionCostTracker, TransportError
from archgen.core.prompts import build_instructions
from archgen.core.settings import SettingsManager, get_settings_manager
from archgen.graph.applier import GraphValidationError
from archgen.graph.model import Graph
from archgen.tools.registry import ToolRegistry, create_default_registry
from archgen.tools.schema import DecodeError

logger = logging.getLogger(__name__)


# Upstream event types the controller reacts to; everything else is only mirrored
EVENT_CREATED = "response.created"
EVENT_ITEM_DONE = "response.output_item.done"
EVENT_COMPLETED = "response.completed"
UPSTREAM_ERROR_EVENTS = ("error", "response.failed")


class ControllerAlreadyStartedError(Exception):
    """Raised when run() is called twice on the same controller."""
    pass


class ConversationController:
    """
    One generation session: conversation, graph and loop state.

    Args:
        llm_client: Object exposing ``stream_response(**request)`` as an async
            iterator of event dicts (LLMClient in production).
        messages: Initial user string or list of input items.
        graph: Starting graph (defaults to an empty one).
        registry: Tool registry (defaults to batch_update only).
        settings: Settings source for defaults.
        model: Model name override.
        continuation: Send only new tool outputs plus previous_response_id.
        max_turns: Soft turn budget.
        run_id: Session id (generated when omitted).
    """

    def __init__(
        self,
        llm_client,
        messages: Union[str, List[Dict[str, Any]]],
        graph: Optional[Graph] = None,
        registry: Optional[ToolRegistry] = None,
        settings: Optional[SettingsManager] = None,
        model: Optional[str] = None,
        continuation: Optional[bool] = None,
        max_turns: Optional[int] = None,
        reasoning_effort: Optional[str] = None,
        reasoning_summary: Optional[str] = None,
        run_id: Optional[str] = None,
    ):
        self.settings = settings or get_settings_manager()
        self.llm_client = llm_client
        self.registry = registry or create_default_registry()

        self.model = model or self.settings.get_model("architecture_agent")
        self.continuation = (
            continuation if continuation is not None
            else bool(self.settings.get_agent_setting("continuation", True))
        )
        self.reasoning_effort = reasoning_effort or self.settings.get_agent_setting("reasoning_effort")
        self.reasoning_summary = reasoning_summary or self.settings.get_agent_setting("reasoning_summary")

        if max_turns is None:
            max_turns = int(self.settings.get_agent_setting("max_turns", 3))
        self.budget = TurnBudget(max_turns=max_turns)

        self.run_id = run_id or str(uuid.uuid4())
        self.conversation = create_initial_conversation(messages)
        self.graph = graph if graph is not None else Graph.empty()
        self.state = ControllerState.AWAITING_MODEL
        self.error: Optional[Dict[str, Any]] = None
        self.cost_tracker = SessionCostTracker()

        self._cancel_event = asyncio.Event()
        self._started = False

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def started(self) -> bool:
        """True once run() has been entered."""
        return self._started

    def cancel(self) -> bool:
        """
        Request cancellation; honoured at the next delta boundary.

        Returns:
            False if the run already finished.
        """
        if self.state.is_terminal:
            return False
        self._cancel_event.set()
        logger.info(f"[{self.run_id}] Cancellation requested")
        return True

    def result(self) -> Dict[str, Any]:
        """Summary of the session for status endpoints and logs."""
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "turns": len(self.conversation.turns),
            "tool_calls": sum(turn.tool_call_count for turn in self.conversation.turns),
            "budget": self.budget.to_dict(),
            "graph": self.graph.summary(),
            "error": self.error,
            "usage": self.cost_tracker.to_dict(),
        }

    async def run(self) -> AsyncIterator[Dict[str, Any]]:
        """
        Run the loop, yielding outbound frames in order.

        Yields:
            Upstream deltas (verbatim), function_call_output frames, and one
            terminal frame (done or error).

        Raises:
            ControllerAlreadyStartedError: If called more than once.
        """
        if self._started:
            raise ControllerAlreadyStartedError(f"Controller {self.run_id} already started")
        self._started = True
        logger.info(f"[{self.run_id}] Session started (model={self.model}, continuation={self.continuation})")

        try:
            while True:
                turn = self.conversation.start_turn()
                self._set_state(ControllerState.AWAITING_MODEL)
                request = self._build_request()
                self.conversation.clear_pending()
                logger.info(f"[{self.run_id}] Turn {turn.number}: requesting model ({len(request['input'])} input items)")

                completed = None
                stream = self.llm_client.stream_response(**request)
                try:
                    self._set_state(ControllerState.STREAMING_DELTAS)
                    async for delta in stream:
                        if self.cancelled:
                            break

                        event_type = delta.get("type")
                        if event_type in UPSTREAM_ERROR_EVENTS:
                            raise self._upstream_error(delta)

                        yield delta

                        if event_type == EVENT_CREATED:
                            turn.response_id = (delta.get("response") or {}).get("id")
                        elif event_type == EVENT_ITEM_DONE:
                            item = delta.get("item") or {}
                            if item.get("type") == "function_call":
                                frame = self._execute_tool_call(item, turn)
                                if frame is not None:
                                    yield frame
                        elif event_type == EVENT_COMPLETED:
                            completed = delta.get("response") or {}
                            break
                finally:
                    await _close_stream(stream)

                if self.cancelled:
                    self._fail("cancelled", "Session cancelled")
                    yield error_event("Session cancelled", kind="cancelled")
                    return

                if completed is None:
                    raise TransportError(
                        "Model stream ended before response.completed",
                        error_type="IncompleteStream",
                        is_connection_error=True,
                    )

                output = completed.get("output") or []
                # Calls only present in the final output (no output_item.done seen)
                for item in output:
                    if item.get("type") == "function_call" and not turn.has_call(item.get("call_id", "")):
                        frame = self._execute_tool_call(item, turn)
                        if frame is not None:
                            yield frame

                self._record_usage(completed)
                self.conversation.carry_forward(output, completed.get("id") or turn.response_id)

                if turn.tool_call_count == 0:
                    self._set_state(ControllerState.COMPLETED)
                    logger.info(
                        f"[{self.run_id}] Completed after {turn.number} turn(s): "
                        f"{len(self.graph.all_node_ids())} nodes, {len(self.graph.edges)} edges"
                    )
                    yield done_event()
                    return

                logger.info(f"[{self.run_id}] Turn {turn.number} made {turn.tool_call_count} tool call(s), continuing")
                self.budget.advance()

        except DecodeError as e:
            self._fail("decode", str(e))
            yield error_event(str(e), kind="decode", debug={"type": "DecodeError", "index": e.index})
        except GraphValidationError as e:
            self._fail("validation", str(e))
            yield error_event(
                str(e),
                kind="validation",
                debug={"type": "GraphValidationError", "operation": e.operation, "index": e.index},
            )
        except TransportError as e:
            self._fail("transport", e.message)
            yield error_event(e.message, kind="transport", debug=e.to_debug())
        finally:
            if not self.state.is_terminal:
                # Generator closed by the consumer (client disconnect)
                self._fail("cancelled", "Session closed by client")

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _set_state(self, state: ControllerState) -> None:
        if state != self.state:
            logger.debug(f"[{self.run_id}] {self.state.value} -> {state.value}")
        self.state = state

    def _fail(self, kind: str, message: str) -> None:
        self.error = {"kind": kind, "message": message}
        self._set_state(ControllerState.FAILED)
        if kind == "cancelled":
            logger.info(f"[{self.run_id}] {message}")
        else:
            logger.error(f"[{self.run_id}] Session failed ({kind}): {message}")

    def _build_request(self) -> Dict[str, Any]:
        continuing = self.continuation and self.conversation.previous_response_id is not None
        return {
            "model": self.model,
            "input": self.conversation.request_input(self.continuation),
            "instructions": build_instructions(self.graph, self.budget),
            "tools": self.registry.get_tool_schemas(),
            "previous_response_id": self.conversation.previous_response_id if continuing else None,
            "reasoning_effort": self.reasoning_effort,
            "reasoning_summary": self.reasoning_summary,
            "parallel_tool_calls": False,
            "tool_choice": "auto",
        }

    def _execute_tool_call(self, item: Dict[str, Any], turn: TurnRecord) -> Optional[Dict[str, Any]]:
        """
        Execute one function call and return its output frame.

        Returns None for a re-delivered call id.

        Raises:
            DecodeError: Unknown tool or malformed arguments.
            GraphValidationError: Batch rejected by the applier.
        """
        call_id = item.get("call_id") or item.get("id") or ""
        if turn.has_call(call_id):
            turn.skipped_duplicates.append(call_id)
            logger.warning(f"[{self.run_id}] Duplicate tool call {call_id} ignored")
            return None

        self._set_state(ControllerState.EXECUTING_TOOLS)
        turn.call_ids.append(call_id)

        execution = self.registry.invoke_tool(
            item.get("name", ""),
            item.get("arguments", ""),
            self.graph,
            call_id=call_id,
        )
        self.graph = execution.graph
        self.conversation.pending_outputs.append(execution.output.to_input_item())

        self._set_state(ControllerState.STREAMING_DELTAS)
        return function_call_output_event(call_id, execution.output.to_output_json())

    def _upstream_error(self, delta: Dict[str, Any]) -> TransportError:
        if delta.get("type") == "response.failed":
            error = (delta.get("response") or {}).get("error") or {}
        else:
            error = delta.get("error") if isinstance(delta.get("error"), dict) else delta
        message = error.get("message") or "Stream error"
        return TransportError(f"OpenAI API Error: {message}", error_type=error.get("code") or "StreamError")

    def _record_usage(self, response: Dict[str, Any]) -> None:
        usage_fn = getattr(self.llm_client, "usage_from_response", None)
        if usage_fn is None:
            return
        usage = usage_fn(response)
        if usage is not None:
            self.cost_tracker.add(usage)


async def _close_stream(stream) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


__all__ = [
    "ConversationController",
    "ControllerAlreadyStartedError",
]
