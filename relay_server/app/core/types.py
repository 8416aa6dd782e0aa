# app/core/types.py
# -*- coding: utf-8 -*-
"""
Chat Relay Server — Shared types
--------------------------------
Central place for the data shapes that flow through the core:

- ConversationContext : the backend context blob, split into the
                        orchestrator-owned `injection` variables, the
                        read-only `control` flags and an opaque `payload`
- OutputItem          : one reply item (TextItem | OptionsItem | PassthroughItem)
- BackendReply        : result of a single backend `message` call
- TurnResult          : all items produced by one turn, in call order
- ChannelReply        : normalized text + options handed back to the channel
- Completed / LimitExceeded : tagged outcome of the bounded continuation loop
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Protocol, Union

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Context blob
# ---------------------------------------------------------------------------


class ControlFlags(BaseModel):
    """Backend-owned flags the core reads but never writes."""

    skip_user_input: bool = False


class ConversationContext(BaseModel):
    """
    Context echoed between the backend and the session store.

    Attributes
    ----------
    injection:
        Turn-scoped variables owned by the orchestrator (e.g. first_name).
        Values from earlier turns are kept; new values are merged in.
    control:
        Flags reported by the backend. `skip_user_input=True` asks for
        another call without user input.
    payload:
        Everything else the backend returned. Opaque, passed back as-is.
    """

    injection: Dict[str, Any] = Field(default_factory=dict)
    control: ControlFlags = Field(default_factory=ControlFlags)
    payload: Dict[str, Any] = Field(default_factory=dict)

    def inject(self, variables: Optional[Dict[str, Any]]) -> None:
        """Merge `variables` into the injection sub-path."""
        if variables:
            self.injection.update(variables)


# ---------------------------------------------------------------------------
# Output items
# ---------------------------------------------------------------------------


class ReplyOption(BaseModel):
    """One selectable option: what the user sees and what is sent back."""

    label: str
    value: str


class TextItem(BaseModel):
    kind: Literal["text"] = "text"
    value: str


class OptionsItem(BaseModel):
    kind: Literal["options"] = "options"
    values: List[ReplyOption] = Field(default_factory=list)


class PassthroughItem(BaseModel):
    """Any item kind the normalizer does not render (images, pauses, ...)."""

    kind: str
    raw: Dict[str, Any] = Field(default_factory=dict)


OutputItem = Union[TextItem, OptionsItem, PassthroughItem]


class ChannelReply(BaseModel):
    """Normalized reply handed to the channel bridge."""

    display_text: str = ""
    selectable_options: List[ReplyOption] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Backend call / turn results
# ---------------------------------------------------------------------------


@dataclass
class BackendReply:
    """
    Result of a single backend `message` call.

    Attributes
    ----------
    context:
        New context returned by the backend.
    output:
        Output items of this call, in backend order.
    """
    context: ConversationContext
    output: List[OutputItem] = field(default_factory=list)


@dataclass
class TurnResult:
    """Every output item of one turn, initial call first."""
    items: List[OutputItem] = field(default_factory=list)

    def extend(self, items: List[OutputItem]) -> None:
        self.items.extend(items)


@dataclass
class Completed:
    """The backend stopped asking for continuations."""
    context: ConversationContext
    result: TurnResult
    continuation_calls: int


@dataclass
class LimitExceeded:
    """The backend still asked to continue after the allowed number of calls."""
    continuation_calls: int
    partial: TurnResult


TurnOutcome = Union[Completed, LimitExceeded]


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


class AssistantBackend(Protocol):
    async def message(
        self,
        *,
        text: Optional[str],
        conversation_id: str,
        context: ConversationContext,
    ) -> BackendReply: ...


class Transcriber(Protocol):
    async def transcribe(
        self,
        audio: bytes,
        content_type: str = "application/octet-stream",
    ) -> str: ...
