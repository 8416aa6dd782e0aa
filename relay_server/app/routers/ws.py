# app/routers/ws.py
# -*- coding: utf-8 -*-
"""
Chat Relay — WebSocket router
-----------------------------
WebSocket endpoint for:

- /ws/chat
    Persistent console/dev chat using the same pipeline as POST /chat
    (TurnRequest -> RelayPipeline.handle_text -> ChannelReply).

Design goals
------------
- Keep the protocol simple and JSON-based.
- Re-use the existing Pydantic models + pipeline.
- A bad frame or a failed turn produces an error frame; the connection
  stays open so the client can keep talking.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from app.core.errors import TurnError
from app.core.pipeline import RelayPipeline
from app.models.chat_request import TurnRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _send_error(
    websocket: WebSocket,
    code: str,
    message: str,
    details: Any | None = None,
) -> None:
    """Send a structured error frame to the client."""
    payload: Dict[str, Any] = {
        "type": "error",
        "code": code,
        "message": message,
    }
    if details is not None:
        payload["details"] = details
    await websocket.send_json(payload)


# ---------------------------------------------------------------------------
# /ws/chat
# ---------------------------------------------------------------------------


@router.websocket("/ws/chat")
async def websocket_chat(websocket: WebSocket) -> None:
    """
    WebSocket endpoint for relay turns.

    - Accepts TurnRequest-shaped JSON frames from the client.
    - Runs RelayPipeline.handle_text for each frame.
    - Sends back ChannelReply-shaped JSON frames
      ({"type": "reply", "display_text": ..., "selectable_options": [...]}).

    Frames for the same conversation_id are processed in order; the
    orchestrator's per-conversation lock also covers concurrent HTTP turns.
    """
    pipeline: RelayPipeline = websocket.app.state.pipeline
    await websocket.accept()
    logger.info("WebSocket /ws/chat connected")

    try:
        while True:
            raw = await websocket.receive_json()
            logger.debug("WS /ws/chat received: %r", raw)

            try:
                turn_req = TurnRequest.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Invalid TurnRequest over WS: %s", exc)
                await _send_error(
                    websocket,
                    code="invalid_turn_request",
                    message="Payload does not match TurnRequest schema.",
                    details=exc.errors(include_url=False, include_context=False),
                )
                continue

            logger.info(
                "WS /ws/chat frame: conversation_id=%s text=%r",
                turn_req.conversation_id,
                turn_req.text,
            )

            try:
                reply = await pipeline.handle_text(
                    turn_req.conversation_id,
                    turn_req.text,
                    turn_req.turn_variables(),
                )
            except TurnError as exc:
                logger.warning("Turn failed in WS /ws/chat: %s", exc)
                await _send_error(websocket, code=exc.code, message=str(exc))
                continue

            payload = {"type": "reply", **reply.model_dump(mode="json")}
            await websocket.send_json(payload)

    except WebSocketDisconnect:
        logger.info("WebSocket /ws/chat disconnected")
