"""
Stream Endpoints for ArchGen Server.

Starts an agent session and streams its frames as Server-Sent Events.

Endpoints:
- POST /api/stream - body {payload, isCompressed, continuation?, maxTurns?}
- GET /api/stream?payload=... - uncompressed payload in the query string
- GET /api/sessions - live sessions with turn and tool-call counts
- GET /api/sessions/{session_id}/graph - nested diagram of a live session
- POST /api/sessions/{session_id}/cancel - cancel a live session

Each request gets its own ConversationController and Graph. The session id is
returned in the X-Session-Id response header.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from archgen.agents.controller import ConversationController
from archgen.core.events import StreamTransport
from archgen.core.llm_client import LLMClient
from archgen.core.settings import SettingsManager, get_settings_manager
from archgen.server.models import (
    CancelResponse,
    ErrorResponse,
    PayloadError,
    SessionInfo,
    StreamRequest,
    decode_stream_payload,
)
from archgen.server.session import SessionLimitError, get_session_manager

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_settings() -> SettingsManager:
    return get_settings_manager()


def get_llm_client(settings: SettingsManager = Depends(get_settings)) -> LLMClient:
    """One client per request; sessions share nothing."""
    return LLMClient(settings=settings)


# ============================================================================
# HELPERS
# ============================================================================

def _error(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, details=details).model_dump(exclude_none=True),
    )


async def _start_stream(
    payload: Optional[str],
    is_compressed: bool,
    continuation: Optional[bool],
    max_turns: Optional[int],
    llm_client,
    settings: SettingsManager,
):
    """
    Decode the payload, register a session and return the SSE response.

    The session is released by whichever runs first: the body generator's
    ``finally`` or the response's background task. The background task covers
    clients that disconnect before the body is ever iterated.
    """
    try:
        messages = decode_stream_payload(payload, is_compressed)
        controller = ConversationController(
            llm_client,
            messages,
            settings=settings,
            continuation=continuation,
            max_turns=max_turns,
        )
    except (PayloadError, ValueError) as e:
        logger.warning(f"Rejected stream request: {e}")
        return _error(400, str(e))

    manager = get_session_manager()
    try:
        session = await manager.create_session(controller)
    except SessionLimitError as e:
        logger.warning(str(e))
        return _error(429, "Too many concurrent sessions", details=str(e))

    transport = StreamTransport(controller.run())

    async def finish_session():
        if await manager.remove_session(session.session_id) is None:
            return
        result = controller.result()
        logger.info(
            f"Session {session.session_id} finished: state={result['state']}, "
            f"started={controller.started}, turns={result['turns']}, "
            f"tool_calls={result['tool_calls']}, frames={transport.frames_sent}, "
            f"usage={controller.cost_tracker.summary()}"
        )

    async def event_stream():
        try:
            async for chunk in transport.stream():
                yield chunk
        finally:
            await finish_session()

    headers = dict(SSE_HEADERS)
    headers["X-Session-Id"] = session.session_id
    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers=headers,
        background=BackgroundTask(finish_session),
    )


# ============================================================================
# ENDPOINTS
# ============================================================================

@router.post("/stream")
async def stream_post(
    request: StreamRequest,
    llm_client=Depends(get_llm_client),
    settings: SettingsManager = Depends(get_settings),
):
    """
    Start a session from a POST body.

    Example:
        POST /api/stream
        {"payload": "[{\\"role\\": \\"user\\", \\"content\\": \\"GCP web app\\"}]", "isCompressed": false}
    """
    return await _start_stream(
        request.payload,
        request.isCompressed,
        request.continuation,
        request.maxTurns,
        llm_client,
        settings,
    )


@router.get("/stream")
async def stream_get(
    payload: Optional[str] = Query(None, description="JSON conversation payload"),
    llm_client=Depends(get_llm_client),
    settings: SettingsManager = Depends(get_settings),
):
    """Start a session from an uncompressed query-string payload."""
    return await _start_stream(payload, False, None, None, llm_client, settings)


@router.get("/sessions", response_model=List[SessionInfo])
async def list_sessions() -> List[SessionInfo]:
    sessions = await get_session_manager().get_all_sessions()
    return [SessionInfo.from_session(session) for session in sessions.values()]


@router.get("/sessions/{session_id}/graph")
async def session_graph(session_id: str):
    """
    Current diagram of a live session in the nested ``{id, children, edges}``
    layout shape, for clients that render alongside the stream.
    """
    session = await get_session_manager().get_session(session_id)
    if session is None:
        return _error(404, f"Session not found: {session_id}")
    return session.controller.graph.to_nested()


@router.post("/sessions/{session_id}/cancel", response_model=CancelResponse)
async def cancel_session(session_id: str):
    """
    Cancel a live session. The stream ends with a ``cancelled`` error frame.

    Returns:
        CancelResponse, or 404 if the session is unknown.
    """
    manager = get_session_manager()
    if await manager.get_session(session_id) is None:
        return _error(404, f"Session not found: {session_id}")

    cancelled = await manager.cancel_session(session_id)
    return CancelResponse(session_id=session_id, cancelled=cancelled)


__all__ = ["router", "get_llm_client", "get_settings"]
