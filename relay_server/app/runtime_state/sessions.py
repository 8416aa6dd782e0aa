# app/runtime_state/sessions.py
# -*- coding: utf-8 -*-
"""
Chat Relay — Runtime Session State
----------------------------------

This module implements the session store for the relay server.

Purpose
~~~~~~~
- Keep the last context returned by the dialogue backend for every
  conversation, so the next turn can echo it back.
- Hand out a fresh default context for conversations we have not seen yet
  (or whose entry expired). Reading never creates an entry.

Design notes
~~~~~~~~~~~~
- In memory by default. If `path` is given, the state is also mirrored to a
  JSON file so a restart does not lose every conversation.
- Optional TTL: entries not written for `ttl_seconds` read as absent and are
  dropped by `prune_stale_sessions()`.
- Optional `max_sessions`: the least recently written entries are evicted
  when the cap is exceeded.
- No locking here. Callers serialize read-modify-write per conversation with
  `ConversationLocks`.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from pydantic import BaseModel, Field

from app.core.types import ConversationContext
from app.utils import get_logger, read_json_safely, write_json_atomic


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

logger = get_logger("chat_relay.runtime_state")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class SessionEntry(BaseModel):
    """
    Per-conversation state.

    Attributes
    ----------
    conversation_id:
        Canonical conversation key (the channel chat id).
    context:
        Last context persisted by a completed turn.
    created_at:
        When this entry was first written.
    last_seen:
        Last time a turn persisted into this entry (TTL and eviction key).
    """

    conversation_id: str
    context: ConversationContext = Field(default_factory=ConversationContext)
    created_at: datetime = Field(default_factory=_utcnow)
    last_seen: datetime = Field(default_factory=_utcnow)


class RuntimeState(BaseModel):
    """Top-level container for all sessions (and the on-disk snapshot)."""

    sessions: Dict[str, SessionEntry] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Session store implementation
# ---------------------------------------------------------------------------


class SessionStore:
    """
    Keyed store mapping a conversation id to its last context.

    Parameters
    ----------
    path:
        Optional JSON snapshot file. None keeps everything in memory.
    ttl_seconds:
        Optional per-entry time-to-live. None means entries never expire.
    max_sessions:
        Optional cap on the number of entries.
    clock:
        Returns the current time; tests pass a fake clock.
    """

    def __init__(
        self,
        path: Optional[Union[Path, str]] = None,
        ttl_seconds: Optional[float] = None,
        max_sessions: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.path: Optional[Path] = Path(path) if path is not None else None
        self.ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self._clock = clock

        self.state: RuntimeState = self._load_from_disk()

    # ------------------------------------------------------------------
    # Low-level I/O
    # ------------------------------------------------------------------

    def _load_from_disk(self) -> RuntimeState:
        """
        Load runtime state from the snapshot file, if one is configured.

        If the file is missing or cannot be validated we start empty and
        log; a broken snapshot must not keep the server from starting.
        """
        if self.path is None:
            return RuntimeState()

        if not self.path.exists():
            logger.info(
                "[SessionStore] No existing sessions file at %s, starting empty.",
                self.path,
            )
            return RuntimeState()

        raw: Dict[str, Any] = read_json_safely(
            self.path,
            default={"sessions": {}},
            log_missing=False,
        ) or {"sessions": {}}

        try:
            state = RuntimeState.model_validate(raw)
        except ValueError as exc:
            logger.warning(
                "[SessionStore] Failed to validate sessions from %s: %s; "
                "starting with empty state.",
                self.path,
                exc,
            )
            return RuntimeState()

        logger.info(
            "[SessionStore] Loaded %d sessions from %s",
            len(state.sessions),
            self.path,
        )
        return state

    def _sync(self) -> None:
        """Mirror the in-memory state to disk (no-op without a path)."""
        if self.path is None:
            return
        try:
            write_json_atomic(self.path, self.state.model_dump(mode="json"))
        except OSError as exc:
            logger.error("[SessionStore] Failed to sync sessions to disk: %s", exc)

    def _is_expired(self, entry: SessionEntry, now: datetime) -> bool:
        if self.ttl_seconds is None:
            return False
        return entry.last_seen < now - timedelta(seconds=self.ttl_seconds)

    def _evict_overflow(self) -> None:
        if self.max_sessions is None or len(self.state.sessions) <= self.max_sessions:
            return
        by_age = sorted(self.state.sessions.values(), key=lambda e: e.last_seen)
        for entry in by_age[: len(by_age) - self.max_sessions]:
            logger.info(
                "[SessionStore] Evicting session %s (max_sessions=%d)",
                entry.conversation_id,
                self.max_sessions,
            )
            del self.state.sessions[entry.conversation_id]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, conversation_id: str) -> ConversationContext:
        """
        Return a copy of the stored context for `conversation_id`.

        Unknown or expired ids get a fresh default context. Nothing is
        written, so reading any number of times has no side effect.
        """
        entry = self.state.sessions.get(conversation_id)
        if entry is None or self._is_expired(entry, self._clock()):
            return ConversationContext()
        return entry.context.model_copy(deep=True)

    def put(self, conversation_id: str, context: ConversationContext) -> None:
        """Overwrite the context for `conversation_id` with a copy of `context`."""
        now = self._clock()
        entry = self.state.sessions.get(conversation_id)
        if entry is None or self._is_expired(entry, now):
            logger.info("[SessionStore] Creating new session %s", conversation_id)
            entry = SessionEntry(conversation_id=conversation_id, created_at=now)

        entry.context = context.model_copy(deep=True)
        entry.last_seen = now
        self.state.sessions[conversation_id] = entry

        self._evict_overflow()
        self._sync()

    def get_entry(self, conversation_id: str) -> Optional[SessionEntry]:
        """Return the live SessionEntry (for admin views), or None."""
        entry = self.state.sessions.get(conversation_id)
        if entry is None or self._is_expired(entry, self._clock()):
            return None
        return entry

    def delete_session(self, conversation_id: str) -> bool:
        """Delete a session. Returns True if something was removed."""
        if conversation_id not in self.state.sessions:
            return False
        logger.info("[SessionStore] Deleting session %s", conversation_id)
        del self.state.sessions[conversation_id]
        self._sync()
        return True

    def prune_stale_sessions(self) -> int:
        """
        Remove entries older than the TTL.

        Returns
        -------
        int
            Number of deleted sessions (always 0 without a TTL).
        """
        if self.ttl_seconds is None:
            return 0

        now = self._clock()
        to_delete = [
            cid
            for cid, entry in self.state.sessions.items()
            if self._is_expired(entry, now)
        ]
        for cid in to_delete:
            logger.info(
                "[SessionStore] Pruning stale session %s (last_seen=%s)",
                cid,
                self.state.sessions[cid].last_seen,
            )
            del self.state.sessions[cid]

        if to_delete:
            self._sync()

        return len(to_delete)

    def count(self) -> int:
        """Number of live (non-expired) sessions."""
        now = self._clock()
        return sum(
            1 for entry in self.state.sessions.values()
            if not self._is_expired(entry, now)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return the full runtime state as a plain dict (for debugging / admin)."""
        return self.state.model_dump(mode="json")
