# app/runtime_state/locks.py
# -*- coding: utf-8 -*-
"""
Per-conversation mutual exclusion.

Two turns for the same conversation must not interleave their
read-modify-write of the session store. Turns for different conversations
never wait on each other.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from app.utils import get_logger

logger = get_logger("chat_relay.runtime_state.locks")


class _Slot:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class ConversationLocks:
    """
    One asyncio.Lock per conversation id, created on demand.

    A slot is dropped once nobody holds or waits for it, so the table only
    grows with the number of conversations that are active right now.
    """

    def __init__(self) -> None:
        self._slots: Dict[str, _Slot] = {}

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        slot = self._slots.get(conversation_id)
        if slot is None:
            slot = self._slots[conversation_id] = _Slot()
        slot.users += 1
        try:
            if slot.lock.locked():
                logger.debug("Conversation %s busy, waiting for lock", conversation_id)
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._slots[conversation_id]

    def active(self) -> int:
        """Number of conversations currently holding or waiting for a lock."""
        return len(self._slots)
