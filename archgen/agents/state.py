"""
Conversation State for the ArchGen agent loop.

Defines the state owned by one ConversationController:
- ControllerState: the loop's state machine states
- Conversation: persistent input items, continuation token, turn history
- TurnRecord: per-turn bookkeeping (call ids handled, duplicates skipped)
- ToolOutput: structured result of one tool execution

Memory Policy:
- Only tool-call records, tool outputs and plain messages are carried between
  turns; ``reasoning`` items are dropped because they cannot be replayed.
- In continuation mode the request input is only the pending tool outputs, the
  rest is referenced through ``previous_response_id``.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union
import json

from pydantic import BaseModel, Field


# ============================================================================
# CONSTANTS
# ============================================================================

# Output item types that are valid to replay in a later request
PERSISTENT_ITEM_TYPES = ("function_call", "function_call_output", "message")


# ============================================================================
# CONTROLLER STATES
# ============================================================================

class ControllerState(str, Enum):
    """States of the conversation loop."""
    AWAITING_MODEL = "awaiting_model"
    STREAMING_DELTAS = "streaming_deltas"
    EXECUTING_TOOLS = "executing_tools"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ControllerState.COMPLETED, ControllerState.FAILED)


# ============================================================================
# TOOL RESULT MODELS
# ============================================================================

class ToolOutput(BaseModel):
    """
    Structured output from a tool execution.

    Attributes:
        tool_name: Name of the tool that was executed.
        call_id: Upstream function call id this output answers.
        success: Whether the tool executed successfully.
        result: Payload returned to the model (graph summary, message, instruction).
        error: Error message if tool failed (optional).
        timestamp: ISO timestamp of execution.
    """
    tool_name: str = Field(..., description="Name of the tool that was executed")
    call_id: Optional[str] = Field(None, description="Function call id this output answers")
    success: bool = Field(..., description="Whether the tool executed successfully")
    result: Any = Field(..., description="Tool output (structured or string)")
    error: Optional[str] = Field(None, description="Error message if tool failed")
    timestamp: str = Field(..., description="ISO timestamp of execution")

    def to_output_json(self) -> str:
        """Serialize as the ``output`` string of a function_call_output item."""
        if isinstance(self.result, str):
            return self.result
        return json.dumps(self.result)

    def to_input_item(self) -> Dict[str, Any]:
        """Render as a Responses-API ``function_call_output`` input item."""
        return {
            "type": "function_call_output",
            "call_id": self.call_id,
            "output": self.to_output_json(),
        }


# ============================================================================
# CONVERSATION
# ============================================================================

class TurnRecord(BaseModel):
    """
    Bookkeeping for one request/response cycle.

    Attributes:
        number: 1-based turn number.
        response_id: Upstream response id (from response.created).
        call_ids: Function call ids executed this turn, in order.
        skipped_duplicates: Call ids re-delivered and ignored.
    """
    number: int
    response_id: Optional[str] = None
    call_ids: List[str] = Field(default_factory=list)
    skipped_duplicates: List[str] = Field(default_factory=list)

    @property
    def tool_call_count(self) -> int:
        return len(self.call_ids)

    def has_call(self, call_id: str) -> bool:
        return call_id in self.call_ids


class Conversation(BaseModel):
    """
    Ordered conversation for one generation session.

    Attributes:
        items: Persistent input items (messages, function calls, their outputs).
        previous_response_id: Id of the last completed response (continuation).
        turns: History of turns, the last one being the current turn.
        pending_outputs: Tool outputs produced during the current turn that
            have not yet been sent upstream.
    """
    items: List[Dict[str, Any]] = Field(default_factory=list)
    previous_response_id: Optional[str] = None
    turns: List[TurnRecord] = Field(default_factory=list)
    pending_outputs: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def current_turn(self) -> Optional[TurnRecord]:
        return self.turns[-1] if self.turns else None

    def start_turn(self) -> TurnRecord:
        turn = TurnRecord(number=len(self.turns) + 1)
        self.turns.append(turn)
        return turn

    def request_input(self, continuation: bool) -> List[Dict[str, Any]]:
        """
        Input items for the next upstream request.

        Args:
            continuation: When True and a previous response exists, send only
                the pending tool outputs.

        Returns:
            List of input items.
        """
        if continuation and self.previous_response_id:
            return list(self.pending_outputs)
        return list(self.items)

    def carry_forward(self, output_items: List[Dict[str, Any]], response_id: Optional[str]) -> None:
        """
        Fold a completed response into the conversation.

        Persistent output items are appended first, then the tool outputs
        produced for them, so every function_call precedes its output.
        """
        self.items.extend(persistent_items(output_items))
        self.items.extend(self.pending_outputs)
        if response_id:
            self.previous_response_id = response_id

    def clear_pending(self) -> None:
        self.pending_outputs = []


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def persistent_items(output: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Filter response output down to items that may be replayed.

    Args:
        output: ``response.output`` from a completed response.

    Returns:
        Function call records and plain messages; reasoning items removed.

    Example:
        >>> persistent_items([{"type": "reasoning"}, {"type": "message", "role": "assistant"}])
        [{'type': 'message', 'role': 'assistant'}]
    """
    return [item for item in output if item.get("type") in PERSISTENT_ITEM_TYPES]


def create_initial_conversation(messages: Union[str, List[Dict[str, Any]]]) -> Conversation:
    """
    Create the Conversation for a new session.

    Args:
        messages: A single user string, or a list of input items / chat
            messages (``{"role": ..., "content": ...}``).

    Returns:
        Conversation with the caller's messages as its initial items.

    Raises:
        ValueError: If no usable message is given.
    """
    if isinstance(messages, str):
        items = [{"role": "user", "content": messages}]
    else:
        items = []
        for message in messages:
            if not isinstance(message, dict):
                raise ValueError(f"Conversation items must be objects, got {type(message).__name__}")
            if message.get("type") == "reasoning":
                continue
            items.append(dict(message))

    if not items:
        raise ValueError("Conversation needs at least one message")

    return Conversation(items=items)


__all__ = [
    "ControllerState",
    "Conversation",
    "TurnRecord",
    "ToolOutput",
    "PERSISTENT_ITEM_TYPES",
    "persistent_items",
    "create_initial_conversation",
]
