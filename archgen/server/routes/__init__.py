"""
ArchGen Server Routes Package.

Contains FastAPI route handlers for:
- SSE stream endpoint (/api/stream) and session control (/api/sessions)
- Health check endpoints (/api/health, /api/status)
"""

from archgen.server.routes.stream import router as stream_router
from archgen.server.routes.health import router as health_router

__all__ = ["stream_router", "health_router"]
