# app/core/pipeline.py
# -*- coding: utf-8 -*-
"""
Chat Relay — Relay pipeline
---------------------------
High-level entry points the channel bridge and the HTTP/WS routers call for
a single inbound user action:

    text       -> orchestrator.process_turn(text)              -> normalize
    selection  -> orchestrator.process_turn(selected value)    -> normalize
    voice      -> transcriber.transcribe(audio) -> (as text)   -> normalize

IMPORTANT:
- A selection is handled exactly like typed text; the selected option value
  becomes the inbound text.
- A failed transcription aborts the turn before the orchestrator runs, so the
  session store is never touched for it.
- An empty transcription ("no speech") is not an error; it is sent to the
  backend as empty text and the backend decides what to say.
- Errors are TurnError subclasses and propagate to the caller, which owns the
  user-visible message.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from app.core.normalizer import normalize
from app.core.orchestrator import ContinuationOrchestrator
from app.core.types import ChannelReply, Transcriber

logger = logging.getLogger(__name__)


class RelayPipeline:
    def __init__(
        self,
        orchestrator: ContinuationOrchestrator,
        transcriber: Optional[Transcriber] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.transcriber = transcriber

    async def handle_text(
        self,
        conversation_id: str,
        text: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> ChannelReply:
        logger.info("[pipeline] text turn conversation=%s text=%r", conversation_id, text)
        result = await self.orchestrator.process_turn(conversation_id, text, variables)
        reply = normalize(result)
        logger.debug(
            "[pipeline] reply conversation=%s text=%r options=%d",
            conversation_id,
            reply.display_text,
            len(reply.selectable_options),
        )
        return reply

    async def handle_selection(
        self,
        conversation_id: str,
        selected_value: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> ChannelReply:
        return await self.handle_text(conversation_id, selected_value, variables)

    async def handle_voice(
        self,
        conversation_id: str,
        audio: bytes,
        content_type: str = "application/octet-stream",
        variables: Optional[Dict[str, Any]] = None,
    ) -> ChannelReply:
        if self.transcriber is None:
            raise RuntimeError("Voice turn received but no transcriber is configured.")

        text = await self.transcriber.transcribe(audio, content_type)
        if not text:
            logger.info("[pipeline] no speech recognized for conversation=%s", conversation_id)
        return await self.handle_text(conversation_id, text, variables)
