# app/providers/speech_to_text.py
# -*- coding: utf-8 -*-
"""
Chat Relay — Transcription provider (IBM Speech to Text)
--------------------------------------------------------
Turns a voice note into text for the relay pipeline.

Responsibilities:
- POST the raw audio to `/v1/recognize` with the configured model and the
  note's content type (Telegram voice notes are audio/ogg).
- Return the first alternative of the first result, stripped.
- Return "" when nothing was recognized; that is not an error.
- Raise TranscriptionFailed on any transport, HTTP, JSON or shape problem.

No retries and no caching: one call per voice note.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from app.core.config import Settings
from app.core.errors import TranscriptionFailed
from app.utils import log_duration

logger = logging.getLogger(__name__)


def extract_transcript(data: Dict[str, Any]) -> str:
    """First alternative of the first result, or "" when nothing was recognized."""
    try:
        results = data.get("results") or []
        if not results:
            return ""
        alternatives = results[0].get("alternatives") or []
        if not alternatives:
            return ""
        return str(alternatives[0].get("transcript", "")).strip()
    except (AttributeError, IndexError, KeyError, TypeError) as exc:
        raise TranscriptionFailed("Speech to Text response has an unexpected shape.") from exc


class SpeechToTextClient:
    """Single `audio -> text` call. No retry, no caching."""

    def __init__(
        self,
        url: str,
        api_key: Optional[str],
        *,
        model: str = "pt-BR_BroadbandModel",
        timeout_s: float = 30.0,
    ) -> None:
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s

    @classmethod
    def from_settings(cls, settings: Settings) -> "SpeechToTextClient":
        return cls(
            settings.stt_url,
            settings.stt_api_key,
            model=settings.stt_model,
            timeout_s=settings.stt_timeout_s,
        )

    @log_duration("speech_to_text.recognize", logger, logging.DEBUG)
    def _recognize(self, audio: bytes, content_type: str) -> str:
        if not self.api_key:
            raise TranscriptionFailed("Speech to Text API key is missing.")

        try:
            resp = requests.post(
                f"{self.url}/v1/recognize",
                params={"model": self.model},
                auth=("apikey", self.api_key),
                headers={"Content-Type": content_type},
                data=audio,
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise TranscriptionFailed(f"Speech to Text HTTP error: {exc}") from exc

        if resp.status_code != 200:
            text_preview = resp.text[:200].replace("\n", " ")
            raise TranscriptionFailed(f"Speech to Text HTTP {resp.status_code}: {text_preview}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise TranscriptionFailed("Speech to Text returned non-JSON response.") from exc

        if not isinstance(data, dict):
            raise TranscriptionFailed("Speech to Text response is not an object.")

        transcript = extract_transcript(data)
        logger.debug("Transcribed %d bytes -> %r", len(audio), transcript)
        return transcript

    async def transcribe(
        self,
        audio: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        return await asyncio.to_thread(self._recognize, audio, content_type)
