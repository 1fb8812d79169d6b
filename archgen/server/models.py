"""
HTTP Models for ArchGen Server.

Request and response models for the stream endpoint and session control.

Protocol Overview:
- POST /api/stream: StreamRequest body, text/event-stream response
- GET /api/stream?payload=...: same, uncompressed payload in the query
- POST /api/sessions/{session_id}/cancel: CancelResponse
- Errors before streaming starts: ErrorResponse with 400 / 429
"""

import base64
import binascii
import gzip
import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class PayloadError(ValueError):
    """Raised when a stream payload cannot be decoded."""
    pass


# ============================================================================
# REQUESTS
# ============================================================================

class StreamRequest(BaseModel):
    """
    Body of POST /api/stream.

    Attributes:
        payload: JSON conversation (array of input items, or a user string).
            Base64-encoded gzip when isCompressed is true.
        isCompressed: Whether payload is base64 gzip.
        continuation: Override the continuation setting for this session.
        maxTurns: Override the turn budget for this session.
    """

    payload: Optional[str] = Field(None, description="JSON conversation payload")
    isCompressed: bool = Field(default=False, description="Payload is base64-encoded gzip")
    continuation: Optional[bool] = Field(None, description="Use previous_response_id continuation")
    maxTurns: Optional[int] = Field(None, ge=1, le=50, description="Soft turn budget")


def decode_stream_payload(payload: Optional[str], is_compressed: bool = False) -> Union[str, List[Dict[str, Any]]]:
    """
    Decode a stream payload into conversation messages.

    Args:
        payload: Raw payload string.
        is_compressed: Whether payload is base64 gzip.

    Returns:
        A list of input items, or a single user message string.

    Raises:
        PayloadError: Missing, undecodable or malformed payload.
    """
    if not payload:
        raise PayloadError("missing payload")

    text = payload
    if is_compressed:
        try:
            text = gzip.decompress(base64.b64decode(payload, validate=True)).decode("utf-8")
        except (binascii.Error, OSError, EOFError, UnicodeDecodeError) as e:
            raise PayloadError(f"Failed to decompress payload: {e}") from e

    try:
        conversation = json.loads(text)
    except ValueError:
        # A bare, non-JSON string is treated as the user's message
        return text

    if isinstance(conversation, str):
        return conversation
    if isinstance(conversation, dict):
        return [conversation]
    if isinstance(conversation, list) and conversation:
        return conversation
    raise PayloadError("payload must be a non-empty array of messages or a string")


# ============================================================================
# RESPONSES
# ============================================================================

class ErrorResponse(BaseModel):
    """Error body for requests rejected before streaming starts."""

    error: str
    details: Optional[str] = None


class CancelResponse(BaseModel):
    """Response of the cancel endpoint."""

    session_id: str
    cancelled: bool


class SessionInfo(BaseModel):
    """One live session as reported by GET /api/sessions and GET /api/status."""

    session_id: str
    state: str
    started: bool
    turns: int
    tool_calls: int
    node_count: int
    edge_count: int
    created_at: str

    @classmethod
    def from_session(cls, session) -> "SessionInfo":
        """Build from a server Session using its controller's result()."""
        result = session.controller.result()
        return cls(
            session_id=session.session_id,
            state=result["state"],
            started=session.controller.started,
            turns=result["turns"],
            tool_calls=result["tool_calls"],
            node_count=result["graph"]["nodeCount"],
            edge_count=result["graph"]["edgeCount"],
            created_at=session.created_at.isoformat(),
        )


__all__ = [
    "PayloadError",
    "StreamRequest",
    "decode_stream_payload",
    "ErrorResponse",
    "CancelResponse",
    "SessionInfo",
]
