"""
ArchGen Server.

FastAPI application that streams architecture-agent sessions to clients as
Server-Sent Events. Host, port and CORS origins default to the ``server``
section of the user settings; command-line flags override them.

Usage:
    python main.py --port 8080
    uvicorn archgen.server.main:app --reload
"""

import argparse
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from archgen import __version__
from archgen.core.settings import SettingsManager, get_settings_manager
from archgen.server.routes.health import router as health_router
from archgen.server.routes.stream import router as stream_router
from archgen.server.session import get_session_manager

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "info") -> None:
    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Record the start time; cancel whatever is still streaming on shutdown."""
    app.state.started_at = datetime.now()
    manager = get_session_manager()
    logger.info(f"ArchGen Server {__version__} started (session limit {manager.max_sessions})")

    yield

    sessions = await manager.get_all_sessions()
    cancelled = 0
    for session_id in sessions:
        if await manager.cancel_session(session_id):
            cancelled += 1
    logger.info(f"ArchGen Server stopped ({cancelled} of {len(sessions)} session(s) cancelled)")


def create_app(settings: Optional[SettingsManager] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Source of the CORS origins (defaults to the global manager).
    """
    settings = settings or get_settings_manager()

    app = FastAPI(
        title="ArchGen Server",
        description="Streams LLM-built architecture diagrams as Server-Sent Events.",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_server_setting("cors_origins", ["*"]),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        # The client reads the session id to call the cancel endpoint.
        expose_headers=["X-Session-Id"],
    )
    app.include_router(health_router, prefix="/api", tags=["health"])
    app.include_router(stream_router, prefix="/api", tags=["stream"])

    @app.get("/", tags=["root"])
    async def root():
        return {
            "name": "ArchGen Server",
            "version": __version__,
            "stream_url": "/api/stream",
            "docs_url": app.docs_url,
        }

    return app


app = create_app()


def run_server(
    host: Optional[str] = None,
    port: Optional[int] = None,
    reload: bool = False,
    log_level: str = "info",
) -> None:
    """Run under uvicorn; unset host/port fall back to the server settings."""
    settings = get_settings_manager()
    host = host or settings.get_server_setting("host", "127.0.0.1")
    port = port or int(settings.get_server_setting("port", 8765))

    configure_logging(log_level)
    logger.info(f"Starting server on {host}:{port}")
    uvicorn.run(
        "archgen.server.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ArchGen SSE server")
    parser.add_argument("--host", help="bind address (default: server.host setting)")
    parser.add_argument("--port", type=int, help="port (default: server.port setting)")
    parser.add_argument("--reload", action="store_true", help="auto-reload on code changes")
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
    )
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    run_server(host=args.host, port=args.port, reload=args.reload, log_level=args.log_level)


if __name__ == "__main__":
    main()
