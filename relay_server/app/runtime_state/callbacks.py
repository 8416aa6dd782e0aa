# app/runtime_state/callbacks.py
# -*- coding: utf-8 -*-
"""
Short keys for option values that do not fit in Telegram's callback_data.

An option value is sent back verbatim as the user's input when its button is
pressed. Values up to 64 UTF-8 bytes travel inside the button itself; longer
ones are replaced by a digest key and remembered here per conversation, so
the callback handler can recover the full value.
"""

from __future__ import annotations

import hashlib
from collections import OrderedDict
from typing import List, Optional

from app.core.normalizer import MAX_CALLBACK_DATA_BYTES
from app.core.types import ReplyOption
from app.utils import get_logger

logger = get_logger("chat_relay.runtime_state.callbacks")

KEY_PREFIX = "opt:"


def _key_for(value: str) -> str:
    return KEY_PREFIX + hashlib.sha256(value.encode("utf-8")).hexdigest()[:32]


class CallbackValues:
    """
    Per-conversation map of `key -> option value` for oversized values.

    Both levels are bounded LRU tables: a conversation keeps its most recent
    `max_per_conversation` long values, and only the `max_conversations`
    most recently used conversations are kept at all.
    """

    def __init__(self, max_per_conversation: int = 64, max_conversations: int = 10_000) -> None:
        self.max_per_conversation = max_per_conversation
        self.max_conversations = max_conversations
        self._tables: "OrderedDict[str, OrderedDict[str, str]]" = OrderedDict()

    def encode(self, conversation_id: str, value: str) -> str:
        """Return the callback_data to put on the button for `value`."""
        if len(value.encode("utf-8")) <= MAX_CALLBACK_DATA_BYTES:
            return value

        key = _key_for(value)
        table = self._tables.get(conversation_id)
        if table is None:
            table = self._tables[conversation_id] = OrderedDict()
        self._tables.move_to_end(conversation_id)
        table[key] = value
        table.move_to_end(key)

        while len(table) > self.max_per_conversation:
            table.popitem(last=False)
        while len(self._tables) > self.max_conversations:
            self._tables.popitem(last=False)
        return key

    def encode_options(self, conversation_id: str, options: List[ReplyOption]) -> List[ReplyOption]:
        return [
            ReplyOption(label=opt.label, value=self.encode(conversation_id, opt.value))
            for opt in options
        ]

    def decode(self, conversation_id: str, data: str) -> Optional[str]:
        """
        Map callback_data back to the option value.

        Returns None for a key we no longer know (evicted, or issued before
        a restart). Anything that is not a key is returned unchanged.
        """
        table = self._tables.get(conversation_id) or {}
        value = table.get(data)
        if value is not None:
            return value
        if data.startswith(KEY_PREFIX) and len(data) == len(KEY_PREFIX) + 32:
            logger.warning("Unknown callback key %s for conversation %s", data, conversation_id)
            return None
        return data

    def count(self) -> int:
        return sum(len(t) for t in self._tables.values())


__all__ = ["CallbackValues", "KEY_PREFIX"]
