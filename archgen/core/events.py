"""
SSE Streaming Transport for ArchGen.

One ordered outbound channel per session:
- Upstream model deltas are forwarded verbatim, in arrival order
- Synthesized frames (tool results, done, error) are interleaved in the same
  channel
- The channel closes exactly once: one terminal frame (done or error), then the
  literal ``data: [DONE]`` sentinel

Wire format is Server-Sent-Events style ``data: <json>\\n\\n`` frames.
"""

from typing import Any, AsyncIterator, Dict, Optional
from enum import Enum
import json
import logging

logger = logging.getLogger(__name__)


DONE_SENTINEL = "data: [DONE]\n\n"


class ChannelClosedError(Exception):
    """Raised when a frame is sent on a channel that has already closed."""
    pass


# ============================================================================
# FRAME TYPES
# ============================================================================

class FrameType(str, Enum):
    """Types of frames synthesized by the server (upstream deltas keep their own)."""

    FUNCTION_CALL_OUTPUT = "function_call_output"
    DONE = "done"
    ERROR = "error"


TERMINAL_FRAME_TYPES = (FrameType.DONE.value, FrameType.ERROR.value)


def function_call_output_event(call_id: str, output: str) -> Dict[str, Any]:
    """
    Frame carrying one tool result.

    Args:
        call_id: Function call id the result answers.
        output: JSON string returned to the model.
    """
    return {
        "type": FrameType.FUNCTION_CALL_OUTPUT.value,
        "call_id": call_id,
        "output": output,
    }


def done_event() -> Dict[str, Any]:
    return {"type": FrameType.DONE.value}


def error_event(
    message: str,
    kind: str = "internal",
    debug: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Terminal error frame.

    Args:
        message: Human-readable error.
        kind: "decode", "validation", "transport", "cancelled" or "internal".
        debug: Extra diagnostics (error type, connection flag, suggestion).
    """
    frame = {"type": FrameType.ERROR.value, "error": message, "kind": kind}
    if debug:
        frame["debug"] = debug
    return frame


def is_terminal_frame(frame: Dict[str, Any]) -> bool:
    return frame.get("type") in TERMINAL_FRAME_TYPES


def encode_sse(obj: Dict[str, Any]) -> str:
    """
    Encode one frame as an SSE ``data:`` line.

    Example:
        >>> encode_sse({"type": "done"})
        'data: {"type": "done"}\\n\\n'
    """
    return f"data: {json.dumps(obj)}\n\n"


# ============================================================================
# TRANSPORT
# ============================================================================

class StreamTransport:
    """
    Wraps a controller's frame generator into an SSE byte stream.

    Guarantees:
    - Frames are emitted in the order the source yields them
    - Exactly one terminal frame: if the source raises or ends without one,
      an ``error`` frame is synthesized
    - ``[DONE]`` is emitted once, after the terminal frame
    - Closing the stream (client disconnect) closes the source generator

    Example:
        >>> transport = StreamTransport(controller.run())
        >>> async for chunk in transport.stream():
        ...     await response.write(chunk)
    """

    def __init__(self, source: AsyncIterator[Dict[str, Any]]):
        self._source = source
        self.frames_sent = 0
        self.terminal_sent = False
        self.closed = False

    def send(self, frame: Dict[str, Any]) -> str:
        """
        Encode one frame for the channel.

        Raises:
            ChannelClosedError: If the channel is closed or already carried
                its terminal frame.
        """
        if self.closed or self.terminal_sent:
            raise ChannelClosedError(f"Cannot send {frame.get('type')!r} frame on a closed channel")

        chunk = encode_sse(frame)
        self.frames_sent += 1
        if is_terminal_frame(frame):
            self.terminal_sent = True
        return chunk

    def close(self) -> str:
        """Mark the channel closed and return the sentinel."""
        if self.closed:
            raise ChannelClosedError("Channel already closed")
        self.closed = True
        logger.debug(f"Channel closed after {self.frames_sent} frame(s)")
        return DONE_SENTINEL

    async def stream(self) -> AsyncIterator[str]:
        """Yield SSE-encoded chunks until the channel closes."""
        try:
            try:
                async for frame in self._source:
                    yield self.send(frame)
                    if self.terminal_sent:
                        break
            except ChannelClosedError:
                raise
            except Exception as e:
                logger.error(f"Stream source failed: {e}", exc_info=True)
                if not self.terminal_sent:
                    yield self.send(error_event(str(e) or type(e).__name__, kind="internal"))
            else:
                if not self.terminal_sent:
                    logger.warning("Stream source ended without a terminal frame")
                    yield self.send(error_event("Stream ended unexpectedly", kind="internal"))

            yield self.close()
        finally:
            self.closed = True
            await self._close_source()

    async def _close_source(self) -> None:
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()


__all__ = [
    "DONE_SENTINEL",
    "ChannelClosedError",
    "FrameType",
    "TERMINAL_FRAME_TYPES",
    "function_call_output_event",
    "done_event",
    "error_event",
    "is_terminal_frame",
    "encode_sse",
    "StreamTransport",
]
