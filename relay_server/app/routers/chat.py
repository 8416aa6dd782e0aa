# app/routers/chat.py
# -*- coding: utf-8 -*-
"""
Chat Relay — /chat router
-------------------------
Direct HTTP entry point for one turn, independent of any chat channel.

Flow:
  HTTP POST /chat  (TurnRequest JSON)
    -> RelayPipeline.handle_text()
       - loads the conversation context (default context if unknown)
       - injects first_name / variables
       - calls the backend, plus continuation calls while it asks for them
       - persists the final context
       - normalizes the output items
    -> returns ChannelReply JSON (display_text, selectable_options)

Turn errors map to HTTP status codes:
  backend_unavailable / transcription_failed -> 502
  turn_timeout                               -> 504
  continuation_limit_exceeded                -> 500
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.core.errors import TurnError
from app.core.pipeline import RelayPipeline
from app.core.types import ChannelReply
from app.models.chat_request import TurnRequest
from app.routers.deps import get_pipeline

# `tags` is just for docs (Swagger / ReDoc), makes it grouped nicely.
router = APIRouter(tags=["chat"])
logger = logging.getLogger(__name__)


@router.post("/chat", response_model=ChannelReply)
async def chat_endpoint(
    request: TurnRequest,
    pipeline: RelayPipeline = Depends(get_pipeline),
) -> ChannelReply:
    """Run one turn for `request.conversation_id` and return the normalized reply."""
    logger.info(
        "[/chat] conversation_id=%s text=%r",
        request.conversation_id,
        request.text,
    )

    try:
        return await pipeline.handle_text(
            request.conversation_id,
            request.text,
            request.turn_variables(),
        )
    except TurnError as exc:
        logger.warning(
            "[/chat] turn failed conversation_id=%s code=%s: %s",
            request.conversation_id,
            exc.code,
            exc,
        )
        raise HTTPException(
            status_code=exc.http_status,
            detail={"code": exc.code, "message": str(exc)},
        ) from exc
