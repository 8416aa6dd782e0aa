# app/main.py
# -*- coding: utf-8 -*-
"""
Chat Relay Server — FastAPI application entrypoint
--------------------------------------------------
This file wires everything together:

- Sets up central logging.
- Builds the components ONCE and stores them on `app.state`:
    * SessionStore + ConversationLocks   (the only cross-turn state)
    * AssistantClient                    (dialogue backend)
    * SpeechToTextClient                 (transcription backend)
    * ContinuationOrchestrator + RelayPipeline
    * TelegramClient                     (outbound channel calls)
- Mounts routers:
    * /telegram/webhook (HTTP)      → Telegram Bot API updates
    * /chat             (HTTP)      → one turn, channel-independent
    * /ws/chat          (WebSocket) → dev / console chat (same pipeline)
    * /status/*         (HTTP)      → session store admin views
- Exposes an ASGI `app` object for uvicorn.

Typical run command (dev):

    uvicorn app.main:app --host 0.0.0.0 --port 8000 --reload

"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from app.core.config import Settings, get_settings
from app.core.orchestrator import ContinuationOrchestrator
from app.core.pipeline import RelayPipeline
from app.core.types import AssistantBackend, Transcriber
from app.providers.assistant import AssistantClient
from app.providers.speech_to_text import SpeechToTextClient
from app.providers.telegram import TelegramClient
from app.routers.chat import router as chat_router
from app.routers.status import router as status_router
from app.routers.telegram import router as telegram_router
from app.routers.ws import router as ws_router
from app.runtime_state import CallbackValues, ConversationLocks, SessionStore
from app.utils import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    backend: Optional[AssistantBackend] = None,
    transcriber: Optional[Transcriber] = None,
    telegram: Optional[TelegramClient] = None,
    session_store: Optional[SessionStore] = None,
) -> FastAPI:
    """
    Application factory.

    Collaborators can be passed in (tests use fakes); anything left out is
    built from `settings`.
    """
    settings = settings or get_settings()
    setup_logging(debug=settings.debug)

    store = session_store or SessionStore(
        path=settings.sessions_path,
        ttl_seconds=settings.session_ttl_s,
        max_sessions=settings.max_sessions,
    )
    orchestrator = ContinuationOrchestrator(
        backend or AssistantClient.from_settings(settings),
        store,
        ConversationLocks(),
        max_continuation_calls=settings.max_continuation_calls,
        turn_timeout_s=settings.turn_timeout_s,
    )
    pipeline = RelayPipeline(
        orchestrator,
        transcriber or SpeechToTextClient.from_settings(settings),
    )

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.session_store = store
    app.state.pipeline = pipeline
    app.state.telegram = telegram or TelegramClient.from_settings(settings)
    app.state.callback_values = CallbackValues()

    # ------------------------------------------------------------------
    # Routers (HTTP + WebSocket)
    # ------------------------------------------------------------------
    app.include_router(telegram_router)
    app.include_router(chat_router)
    app.include_router(ws_router)
    app.include_router(status_router)

    # ------------------------------------------------------------------
    # Meta / health endpoints
    # ------------------------------------------------------------------

    @app.get("/", tags=["meta"])
    async def root():
        """Simple root endpoint so you can quickly see the server is alive."""
        return {
            "name": settings.app_name,
            "environment": settings.environment,
            "message": "Chat relay server is running.",
        }

    @app.get("/health", tags=["meta"])
    async def health_check():
        """Lightweight health check for monitoring scripts."""
        return {
            "status": "ok",
            "environment": settings.environment,
            "debug": settings.debug,
            "assistant_configured": bool(settings.assistant_url and settings.assistant_api_key),
            "stt_configured": bool(settings.stt_api_key),
            "telegram_configured": bool(settings.telegram_bot_token),
            "sessions": store.count(),
        }

    logger.info(
        "Chat relay app created (env=%s, max_continuation_calls=%d, session_ttl_s=%s)",
        settings.environment,
        settings.max_continuation_calls,
        settings.session_ttl_s,
    )
    return app


# ASGI app for uvicorn / gunicorn
app = create_app()


if __name__ == "__main__":
    """
    Allow `python3 -m app.main` during development.

    In production you normally use:

        uvicorn app.main:app --host 0.0.0.0 --port 8000
    """
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=_settings.api_host,
        port=_settings.api_port,
        reload=(_settings.environment != "production"),  # auto-reload only in non-prod
    )
