# app/core/errors.py
# -*- coding: utf-8 -*-
"""
Chat Relay Server — Turn errors
-------------------------------
Every failure that aborts a turn derives from TurnError. None of them is
recovered in place: the turn stops, the session store keeps the context it
had before the turn, and the caller (router / channel bridge) decides what
the user sees.

An unknown conversation id is never an error; the store hands out a default
context instead.
"""

from __future__ import annotations


class TurnError(Exception):
    """Base class for errors that abort a whole turn."""

    code: str = "turn_error"
    http_status: int = 500


class BackendUnavailable(TurnError):
    """The dialogue backend could not be reached or replied with garbage."""

    code = "backend_unavailable"
    http_status = 502


class TranscriptionFailed(TurnError):
    """The speech-to-text backend failed; the turn never reached the backend."""

    code = "transcription_failed"
    http_status = 502


class ContinuationLimitExceeded(TurnError):
    """The backend kept setting skip_user_input past the configured bound."""

    code = "continuation_limit_exceeded"
    http_status = 500

    def __init__(self, conversation_id: str, continuation_calls: int) -> None:
        super().__init__(
            f"Conversation {conversation_id}: backend still requested "
            f"continuation after {continuation_calls} calls."
        )
        self.conversation_id = conversation_id
        self.continuation_calls = continuation_calls


class TurnTimedOut(TurnError):
    """The turn (initial call + continuations) ran past turn_timeout_s."""

    code = "turn_timeout"
    http_status = 504
