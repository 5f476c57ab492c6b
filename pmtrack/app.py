"""pmtrack HTTP application.

Exposes the quick-update conversation over HTTP:

    POST   /api/ai-intent                 one conversational turn
    POST   /api/ai/quick-update           same, legacy route
    GET    /api/ai-intent/sessions/{id}   slots collected so far
    DELETE /api/ai-intent/sessions/{id}   forget a conversation
    GET    /health                        liveness probe
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .config import AppConfig
from .core.coordinator import SlotFillingCoordinator, create_coordinator

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Session-Id"


def setup_logging() -> logging.Logger:
    """Configure secure logging with rotation.

    Logs are written to ~/.pmtrack/logs/ with proper permissions.
    Uses INFO level by default; set PMTRACK_DEBUG=1 for DEBUG level.
    """
    # Create log directory in user's home (not world-readable /tmp)
    log_dir = Path.home() / ".pmtrack" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    # Restrict directory permissions to owner only (700)
    log_dir.chmod(0o700)

    log_file = log_dir / "pmtrack.log"

    log_level = logging.DEBUG if os.environ.get("PMTRACK_DEBUG") else logging.INFO

    # 5MB max, keep 3 backups
    handler = RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    if not any(
        isinstance(h, RotatingFileHandler) and Path(h.baseFilename) == log_file
        for h in root_logger.handlers
    ):
        root_logger.addHandler(handler)
    else:
        handler.close()

    return logging.getLogger(__name__)


class IntentRequest(BaseModel):
    """Body of a quick-update turn."""

    prompt: str = ""
    sessionId: Optional[str] = None


def create_app(
    config: AppConfig | None = None,
    coordinator: SlotFillingCoordinator | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Application configuration (loaded from the cwd when omitted)
        coordinator: Prebuilt coordinator, mainly for tests

    Returns:
        Configured FastAPI app
    """
    if coordinator is None:
        config = config or AppConfig.load(Path.cwd())
        coordinator = create_coordinator(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        llm = app.state.coordinator.llm_extractor
        if llm is not None:
            await llm.backend.unload()

    app = FastAPI(title="pmtrack", version=__version__, lifespan=lifespan)
    app.state.coordinator = coordinator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    async def handle_turn(
        request: Request, body: IntentRequest, header_session: Optional[str]
    ) -> JSONResponse:
        session_id = body.sessionId or header_session
        turn = await request.app.state.coordinator.handle(body.prompt, session_id)
        return JSONResponse(
            status_code=turn.status_code,
            content=turn.to_response(),
            headers={SESSION_HEADER: turn.session_id},
        )

    @app.post("/api/ai-intent")
    async def ai_intent(
        request: Request,
        body: IntentRequest,
        x_session_id: Optional[str] = Header(default=None),
    ) -> JSONResponse:
        return await handle_turn(request, body, x_session_id)

    @app.post("/api/ai/quick-update")
    async def quick_update(
        request: Request,
        body: IntentRequest,
        x_session_id: Optional[str] = Header(default=None),
    ) -> JSONResponse:
        return await handle_turn(request, body, x_session_id)

    @app.get("/api/ai-intent/sessions/{session_id}")
    async def get_session(request: Request, session_id: str) -> dict:
        collected = await request.app.state.coordinator.get_session(session_id)
        if collected is None:
            raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
        return {"sessionId": session_id, "collected": collected}

    @app.delete("/api/ai-intent/sessions/{session_id}")
    async def reset_session(request: Request, session_id: str) -> dict:
        removed = await request.app.state.coordinator.reset(session_id)
        return {"success": True, "sessionId": session_id, "reset": removed}

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "version": __version__}

    return app


__all__ = ["create_app", "setup_logging", "IntentRequest", "SESSION_HEADER"]
