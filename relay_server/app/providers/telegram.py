# app/providers/telegram.py
# -*- coding: utf-8 -*-
"""
Chat Relay — Telegram Bot API provider
--------------------------------------
Thin outbound side of the channel bridge:

- sendMessage with an inline keyboard built from the normalized options
- answerCallbackQuery so the button spinner stops
- getFile + file download to turn a voice note into bytes

Inbound updates arrive through app/routers/telegram.py.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests

from app.core.config import Settings
from app.core.normalizer import to_inline_keyboard
from app.core.types import ReplyOption

logger = logging.getLogger(__name__)


class TelegramError(Exception):
    """Raised when a Bot API call fails."""


class TelegramClient:
    def __init__(
        self,
        token: Optional[str],
        *,
        api_base: str = "https://api.telegram.org",
        timeout_s: float = 10.0,
    ) -> None:
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.timeout_s = timeout_s

    @classmethod
    def from_settings(cls, settings: Settings) -> "TelegramClient":
        return cls(
            settings.telegram_bot_token,
            api_base=settings.telegram_api_base,
            timeout_s=settings.telegram_timeout_s,
        )

    # ------------------------------------------------------------------
    # Low-level
    # ------------------------------------------------------------------

    def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        if not self.token:
            raise TelegramError("Telegram bot token is missing.")

        try:
            resp = requests.post(
                f"{self.api_base}/bot{self.token}/{method}",
                json=payload,
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise TelegramError(f"Telegram {method} HTTP error: {exc}") from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise TelegramError(f"Telegram {method} returned non-JSON response.") from exc

        if not data.get("ok"):
            raise TelegramError(
                f"Telegram {method} failed: {data.get('description', resp.status_code)}"
            )
        return data.get("result")

    def _download(self, url: str) -> bytes:
        try:
            resp = requests.get(url, timeout=self.timeout_s)
        except requests.RequestException as exc:
            raise TelegramError(f"Telegram file download error: {exc}") from exc
        if resp.status_code != 200:
            raise TelegramError(f"Telegram file download HTTP {resp.status_code}")
        return resp.content

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        options: Optional[List[ReplyOption]] = None,
    ) -> None:
        keyboard = to_inline_keyboard(options or [])
        if not text and not keyboard:
            logger.info("Nothing to send to chat %s (empty reply)", chat_id)
            return

        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            # Telegram refuses empty text, even when buttons are attached.
            "text": text or "...",
            "reply_markup": {"inline_keyboard": keyboard},
        }
        await asyncio.to_thread(self._call, "sendMessage", payload)

    async def answer_callback_query(self, callback_query_id: str) -> None:
        await asyncio.to_thread(
            self._call,
            "answerCallbackQuery",
            {"callback_query_id": callback_query_id},
        )

    async def get_file_link(self, file_id: str) -> str:
        result = await asyncio.to_thread(self._call, "getFile", {"file_id": file_id})
        file_path = (result or {}).get("file_path")
        if not file_path:
            raise TelegramError(f"Telegram getFile returned no file_path for {file_id}")
        return f"{self.api_base}/file/bot{self.token}/{file_path}"

    async def download_file(self, file_id: str) -> bytes:
        link = await self.get_file_link(file_id)
        return await asyncio.to_thread(self._download, link)
