"""
Runtime state package for the chat relay server.

This package owns the only state that survives between turns: the last
backend context of every conversation, plus the per-conversation locks that
keep two turns of the same chat from overwriting each other.

Typical usage (e.g. in main.py):

    from app.runtime_state import ConversationLocks, SessionStore

    store = SessionStore(ttl_seconds=settings.session_ttl_s)
    locks = ConversationLocks()

    async with locks.hold(conversation_id):
        context = store.get(conversation_id)
        # ... call the backend ...
        store.put(conversation_id, new_context)
"""

from .callbacks import CallbackValues
from .locks import ConversationLocks
from .sessions import (
    RuntimeState,
    SessionEntry,
    SessionStore,
)

__all__ = [
    "CallbackValues",
    "ConversationLocks",
    "RuntimeState",
    "SessionEntry",
    "SessionStore",
]
