# app/core/orchestrator.py
# -*- coding: utf-8 -*-
"""
Chat Relay — Continuation Orchestrator
--------------------------------------
Runs one user turn against the dialogue backend:

    store.get -> inject variables -> backend.message(text)
              -> while control.skip_user_input: backend.message(None)
              -> store.put (once, at the end) -> TurnResult

Rules:
- The whole turn, continuations included, runs under the conversation's lock.
- The loop is bounded by `max_continuation_calls`. Past the bound the turn
  fails with ContinuationLimitExceeded.
- The session store is written exactly once, after the last call. A failed,
  timed-out or over-limit turn leaves the previous context in place.
- If the caller goes away (cancelled request), the turn still finishes and
  persists before the lock is released.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Dict, Optional, Set

from app.core.errors import ContinuationLimitExceeded, TurnTimedOut
from app.core.types import (
    AssistantBackend,
    Completed,
    LimitExceeded,
    TurnOutcome,
    TurnResult,
)
from app.runtime_state import ConversationLocks, SessionStore
from app.utils import Stopwatch

logger = logging.getLogger(__name__)


class ContinuationOrchestrator:
    """
    Parameters
    ----------
    backend:
        Dialogue backend adapter (see app.providers.assistant).
    store:
        Session store shared by the whole process.
    locks:
        Per-conversation locks guarding `store`.
    max_continuation_calls:
        How many extra calls without user input one turn may make.
    turn_timeout_s:
        Upper bound for one turn once its lock is held. None disables it.
    """

    def __init__(
        self,
        backend: AssistantBackend,
        store: SessionStore,
        locks: Optional[ConversationLocks] = None,
        *,
        max_continuation_calls: int = 8,
        turn_timeout_s: Optional[float] = 30.0,
    ) -> None:
        if max_continuation_calls < 0:
            raise ValueError("max_continuation_calls must be >= 0")
        self.backend = backend
        self.store = store
        self.locks = locks or ConversationLocks()
        self.max_continuation_calls = max_continuation_calls
        self.turn_timeout_s = turn_timeout_s
        self._inflight: Set[asyncio.Task] = set()

    async def process_turn(
        self,
        conversation_id: str,
        inbound_text: Optional[str],
        variables: Optional[Dict[str, Any]] = None,
    ) -> TurnResult:
        """
        Process one inbound turn and return every output item it produced.

        Raises
        ------
        ValueError
            If `inbound_text` is None (only continuation calls go without text).
        BackendUnavailable
            A backend call failed; nothing was persisted.
        ContinuationLimitExceeded
            The backend never stopped asking for continuations.
        TurnTimedOut
            The turn ran past `turn_timeout_s`.
        """
        if inbound_text is None:
            raise ValueError("The first call of a turn needs inbound text.")

        task = asyncio.ensure_future(
            self._serialized_turn(conversation_id, inbound_text, dict(variables or {}))
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

        # Shielded: cancelling the caller must not cut the turn short while it
        # holds the lock and has not persisted yet.
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(
                functools.partial(self._log_orphaned_turn, conversation_id)
            )
            raise

    @staticmethod
    def _log_orphaned_turn(conversation_id: str, task: asyncio.Task) -> None:
        """Retrieve the outcome of a turn whose caller went away."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "[Orchestrator] Turn for %s failed after its caller was cancelled: %r",
                conversation_id,
                exc,
            )
        else:
            logger.info(
                "[Orchestrator] Turn for %s finished after its caller was cancelled",
                conversation_id,
            )

    async def _serialized_turn(
        self,
        conversation_id: str,
        inbound_text: str,
        variables: Dict[str, Any],
    ) -> TurnResult:
        async with self.locks.hold(conversation_id):
            try:
                outcome = await asyncio.wait_for(
                    self._run_continuations(conversation_id, inbound_text, variables),
                    timeout=self.turn_timeout_s,
                )
            except asyncio.TimeoutError as exc:
                logger.warning(
                    "[Orchestrator] Turn for %s timed out after %.1f s",
                    conversation_id,
                    self.turn_timeout_s,
                )
                raise TurnTimedOut(
                    f"Turn for conversation {conversation_id} timed out."
                ) from exc

            if isinstance(outcome, LimitExceeded):
                logger.error(
                    "[Orchestrator] %s: continuation limit hit after %d calls "
                    "(%d items discarded)",
                    conversation_id,
                    outcome.continuation_calls,
                    len(outcome.partial.items),
                )
                raise ContinuationLimitExceeded(conversation_id, outcome.continuation_calls)

            self.store.put(conversation_id, outcome.context)
            logger.info(
                "[Orchestrator] %s: turn completed (continuations=%d, items=%d)",
                conversation_id,
                outcome.continuation_calls,
                len(outcome.result.items),
            )
            return outcome.result

    async def _run_continuations(
        self,
        conversation_id: str,
        inbound_text: str,
        variables: Dict[str, Any],
    ) -> TurnOutcome:
        """Bounded continuation loop. Never touches the store's write side."""
        context = self.store.get(conversation_id)
        context.inject(variables)

        result = TurnResult()
        with Stopwatch(f"turn {conversation_id} initial call", logger, logging.DEBUG):
            reply = await self.backend.message(
                text=inbound_text,
                conversation_id=conversation_id,
                context=context,
            )
        result.extend(reply.output)

        calls = 0
        while reply.context.control.skip_user_input:
            if calls >= self.max_continuation_calls:
                return LimitExceeded(continuation_calls=calls, partial=result)
            calls += 1
            logger.debug(
                "[Orchestrator] %s: skip_user_input -> true, continuation call %d",
                conversation_id,
                calls,
            )
            with Stopwatch(f"turn {conversation_id} continuation {calls}", logger, logging.DEBUG):
                reply = await self.backend.message(
                    text=None,
                    conversation_id=conversation_id,
                    context=reply.context,
                )
            result.extend(reply.output)

        return Completed(context=reply.context, result=result, continuation_calls=calls)
