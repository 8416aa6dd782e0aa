# app/routers/telegram.py
# -*- coding: utf-8 -*-
"""
Chat Relay — Telegram webhook router (channel bridge)
-----------------------------------------------------
Receives Bot API updates and turns them into relay turns:

- /start               -> welcome text, no backend call
- text message         -> pipeline.handle_text
- inline button press  -> answerCallbackQuery, then pipeline.handle_selection
- voice note           -> getFile + download, then pipeline.handle_voice

Conversation id
~~~~~~~~~~~~~~~
Always the originating chat id: `message.chat.id`, and for button presses
`callback_query.message.chat.id`. The callback query's own id changes on
every press and is never used as a conversation key. If a callback arrives
without its message (very old messages), we fall back to the sender's user
id, which equals the chat id in private chats.

Option values longer than Telegram's 64-byte callback_data are sent as a
short key (app/runtime_state/callbacks.py) and mapped back on the press, so
the backend receives the full value.

The webhook always answers 200 once the update is handled, including when the
turn failed; otherwise Telegram redelivers the update and the turn would run
twice.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from app.core.config import Settings
from app.core.errors import TurnError
from app.core.pipeline import RelayPipeline
from app.core.types import ChannelReply
from app.models.telegram_update import (
    TelegramCallbackQuery,
    TelegramMessage,
    TelegramUpdate,
)
from app.providers.telegram import TelegramClient, TelegramError
from app.routers.deps import (
    get_app_settings,
    get_callback_values,
    get_pipeline,
    get_telegram,
)
from app.runtime_state import CallbackValues

router = APIRouter(prefix="/telegram", tags=["telegram"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _variables(first_name: Optional[str]) -> Dict[str, Any]:
    return {"first_name": first_name} if first_name else {}


def _command(text: str) -> str:
    """First word without the bot mention: "/start@MyBot hi" -> "/start"."""
    words = text.split(maxsplit=1)
    return words[0].split("@", 1)[0] if words else ""


async def _send(
    telegram: TelegramClient,
    chat_id: int,
    reply: ChannelReply,
    callback_values: CallbackValues,
) -> None:
    options = callback_values.encode_options(str(chat_id), reply.selectable_options)
    try:
        await telegram.send_message(chat_id, reply.display_text, options)
    except TelegramError:
        logger.exception("[telegram] failed to send reply to chat_id=%s", chat_id)


async def _reply(
    telegram: TelegramClient,
    chat_id: int,
    turn: Awaitable[ChannelReply],
    settings: Settings,
    callback_values: CallbackValues,
) -> None:
    """Await the turn and send its reply; on a turn error, send the error text."""
    try:
        reply = await turn
    except TurnError as exc:
        logger.warning("[telegram] turn failed chat_id=%s code=%s: %s", chat_id, exc.code, exc)
        reply = ChannelReply(display_text=settings.error_reply_text)

    await _send(telegram, chat_id, reply, callback_values)


async def _handle_message(
    message: TelegramMessage,
    pipeline: RelayPipeline,
    telegram: TelegramClient,
    settings: Settings,
    callback_values: CallbackValues,
) -> None:
    chat_id = message.chat.id
    conversation_id = str(chat_id)
    variables = _variables(message.first_name)
    logger.debug("[telegram] message chat_id=%s", chat_id)

    if message.text is not None and _command(message.text) == "/start":
        welcome = settings.welcome_template.format(first_name=message.first_name or "")
        try:
            await telegram.send_message(chat_id, welcome.strip())
        except TelegramError:
            logger.exception("[telegram] failed to send welcome to chat_id=%s", chat_id)
        return

    if message.text is not None:
        await _reply(
            telegram,
            chat_id,
            pipeline.handle_text(conversation_id, message.text, variables),
            settings,
            callback_values,
        )
        return

    if message.voice is not None:
        try:
            audio = await telegram.download_file(message.voice.file_id)
        except TelegramError:
            logger.exception("[telegram] could not fetch voice note for chat_id=%s", chat_id)
            await _send(
                telegram,
                chat_id,
                ChannelReply(display_text=settings.error_reply_text),
                callback_values,
            )
            return

        await _reply(
            telegram,
            chat_id,
            pipeline.handle_voice(conversation_id, audio, variables=variables),
            settings,
            callback_values,
        )
        return

    logger.info("[telegram] ignoring unsupported message in chat_id=%s", chat_id)


async def _handle_callback(
    query: TelegramCallbackQuery,
    pipeline: RelayPipeline,
    telegram: TelegramClient,
    settings: Settings,
    callback_values: CallbackValues,
) -> None:
    try:
        await telegram.answer_callback_query(query.id)
    except TelegramError:
        logger.warning("[telegram] answerCallbackQuery failed for %s", query.id)

    if query.data is None:
        logger.info("[telegram] callback %s without data ignored", query.id)
        return

    chat_id = query.message.chat.id if query.message is not None else query.from_user.id
    logger.debug("[telegram] callback chat_id=%s data=%r", chat_id, query.data)

    value = callback_values.decode(str(chat_id), query.data)
    if value is None:
        await _send(
            telegram,
            chat_id,
            ChannelReply(display_text=settings.error_reply_text),
            callback_values,
        )
        return

    await _reply(
        telegram,
        chat_id,
        pipeline.handle_selection(
            str(chat_id),
            value,
            _variables(query.from_user.first_name),
        ),
        settings,
        callback_values,
    )


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


@router.post("/webhook")
async def telegram_webhook(
    update: TelegramUpdate,
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
    pipeline: RelayPipeline = Depends(get_pipeline),
    telegram: TelegramClient = Depends(get_telegram),
    settings: Settings = Depends(get_app_settings),
    callback_values: CallbackValues = Depends(get_callback_values),
) -> Dict[str, bool]:
    """Bot API webhook. Register it with setWebhook (and secret_token, if configured)."""
    secret = settings.telegram_webhook_secret
    if secret and x_telegram_bot_api_secret_token != secret:
        logger.warning("[telegram] webhook call with a wrong secret token rejected")
        raise HTTPException(status_code=403, detail="Invalid webhook secret.")

    if update.callback_query is not None:
        await _handle_callback(update.callback_query, pipeline, telegram, settings, callback_values)
    elif update.message is not None:
        await _handle_message(update.message, pipeline, telegram, settings, callback_values)
    else:
        logger.debug("[telegram] update %s has nothing we handle", update.update_id)

    return {"ok": True}
