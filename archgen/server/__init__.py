"""
ArchGen HTTP Server Package.

Provides a FastAPI layer that streams agent sessions to clients as
Server-Sent Events.

Usage:
    # Start server
    python -m archgen.server.main

    # Or programmatically
    from archgen.server.main import run_server
    run_server(host="127.0.0.1", port=8765)
"""

from archgen.server.models import StreamRequest, ErrorResponse, CancelResponse, decode_stream_payload
from archgen.server.session import (
    Session,
    SessionManager,
    SessionLimitError,
    get_session_manager,
)

__all__ = [
    # Models
    "StreamRequest",
    "ErrorResponse",
    "CancelResponse",
    "decode_stream_payload",
    # Session
    "Session",
    "SessionManager",
    "SessionLimitError",
    "get_session_manager",
]
