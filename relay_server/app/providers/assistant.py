# app/providers/assistant.py
# -*- coding: utf-8 -*-
"""
Chat Relay — Dialogue backend provider (watsonx Assistant v2)
-------------------------------------------------------------
This module is the ONLY place that knows the assistant's wire format.

Responsibilities:
- Build the stateless `message` request (URL, auth, JSON payload).
- Translate our ConversationContext to the assistant's context and back:
    injection         <-> skills[<skill>].skill_variables
    control.skip_user_input <- global.system.skip_user_input (read-only)
    payload           <-> everything else, untouched
- Translate output.generic[] into TextItem / OptionsItem / PassthroughItem.
- Raise BackendUnavailable on any transport, HTTP or JSON problem.

It is used by app/core/orchestrator.py, once per backend call.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Dict, List, Optional

import requests

from app.core.config import Settings
from app.core.errors import BackendUnavailable
from app.core.types import (
    BackendReply,
    ControlFlags,
    ConversationContext,
    OptionsItem,
    OutputItem,
    PassthroughItem,
    ReplyOption,
    TextItem,
)
from app.utils import Stopwatch

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Wire mapping
# ---------------------------------------------------------------------------


def context_to_wire(context: ConversationContext, skill_name: str) -> Dict[str, Any]:
    """Rebuild the assistant context, putting `injection` back into skill_variables."""
    wire = copy.deepcopy(context.payload)
    skills = wire.setdefault("skills", {})
    skill = skills.setdefault(skill_name, {})
    skill["skill_variables"] = copy.deepcopy(context.injection)
    return wire


def context_from_wire(wire: Dict[str, Any], skill_name: str) -> ConversationContext:
    """Split an assistant context into injection / control / opaque payload."""
    payload = copy.deepcopy(wire) if isinstance(wire, dict) else {}

    injection: Dict[str, Any] = {}
    skill = payload.get("skills", {}).get(skill_name)
    if isinstance(skill, dict):
        variables = skill.pop("skill_variables", None)
        if isinstance(variables, dict):
            injection = variables

    system = payload.get("global", {}).get("system", {})
    skip = isinstance(system, dict) and system.get("skip_user_input") is True

    return ConversationContext(
        injection=injection,
        control=ControlFlags(skip_user_input=skip),
        payload=payload,
    )


def _parse_option(option: Dict[str, Any]) -> ReplyOption:
    label = str(option.get("label", ""))
    value = option.get("value")
    user_input = value.get("input") if isinstance(value, dict) else None
    text = user_input.get("text") if isinstance(user_input, dict) else None
    return ReplyOption(label=label, value=str(text) if text else label)


def parse_generic(generic: List[Dict[str, Any]]) -> List[OutputItem]:
    """Map output.generic[] to OutputItems, keeping the assistant's order."""
    items: List[OutputItem] = []
    for raw in generic:
        if not isinstance(raw, dict):
            continue
        kind = raw.get("response_type")
        if kind == "text":
            items.append(TextItem(value=str(raw.get("text", ""))))
        elif kind == "option":
            options = [_parse_option(o) for o in raw.get("options", []) if isinstance(o, dict)]
            items.append(OptionsItem(values=options))
        else:
            items.append(PassthroughItem(kind=str(kind or "unknown"), raw=raw))
    return items


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class AssistantClient:
    """
    Stateless watsonx Assistant v2 `message` client.

    HTTP is done with `requests` in a worker thread, so every call is an
    await point for the event loop.
    """

    def __init__(
        self,
        url: Optional[str],
        api_key: Optional[str],
        assistant_id: Optional[str],
        *,
        version: str = "2021-11-27",
        timeout_s: float = 15.0,
        max_retries: int = 0,
        skill_name: str = "actions skill",
    ) -> None:
        self.url = url.rstrip("/") if url else None
        self.api_key = api_key
        self.assistant_id = assistant_id
        self.version = version
        self.timeout_s = timeout_s
        self.max_retries = max(0, max_retries)
        self.skill_name = skill_name

    @classmethod
    def from_settings(cls, settings: Settings) -> "AssistantClient":
        return cls(
            settings.assistant_url,
            settings.assistant_api_key,
            settings.assistant_id,
            version=settings.assistant_version,
            timeout_s=settings.assistant_timeout_s,
            max_retries=settings.assistant_max_retries,
            skill_name=settings.assistant_skill_name,
        )

    def _build_payload(
        self,
        text: Optional[str],
        conversation_id: str,
        context: ConversationContext,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "user_id": conversation_id,
            "context": context_to_wire(context, self.skill_name),
        }
        # Continuation calls carry no input at all.
        if text is not None:
            payload["input"] = {"message_type": "text", "text": text}
        return payload

    def _post(self, payload: Dict[str, Any]) -> requests.Response:
        endpoint = f"{self.url}/v2/assistants/{self.assistant_id}/message"
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return requests.post(
                    endpoint,
                    params={"version": self.version},
                    auth=("apikey", self.api_key),
                    json=payload,
                    timeout=self.timeout_s,
                )
            except requests.RequestException as exc:
                if attempt >= attempts:
                    raise BackendUnavailable(f"Assistant HTTP error: {exc}") from exc
                logger.warning(
                    "Assistant call failed (attempt %d/%d): %s", attempt, attempts, exc
                )
        raise BackendUnavailable("Assistant call was never attempted.")

    def _message_sync(
        self,
        text: Optional[str],
        conversation_id: str,
        context: ConversationContext,
    ) -> BackendReply:
        if not (self.url and self.api_key and self.assistant_id):
            raise BackendUnavailable("Assistant URL, API key or assistant id is missing.")

        payload = self._build_payload(text, conversation_id, context)

        with Stopwatch("assistant message", logger, logging.DEBUG):
            resp = self._post(payload)

        if resp.status_code != 200:
            text_preview = resp.text[:200].replace("\n", " ")
            raise BackendUnavailable(f"Assistant HTTP {resp.status_code}: {text_preview}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise BackendUnavailable("Assistant returned non-JSON response.") from exc

        try:
            wire_context = data["context"]
            generic = data.get("output", {}).get("generic", [])
        except (KeyError, TypeError, AttributeError) as exc:
            raise BackendUnavailable("Assistant response JSON missing context/output.") from exc

        if not isinstance(wire_context, dict) or not isinstance(generic, list):
            raise BackendUnavailable("Assistant response has an unexpected shape.")

        try:
            reply = BackendReply(
                context=context_from_wire(wire_context, self.skill_name),
                output=parse_generic(generic),
            )
        except (AttributeError, KeyError, TypeError) as exc:
            raise BackendUnavailable(f"Assistant response is malformed: {exc}") from exc
        logger.debug(
            "assistant user_id=%s skip_user_input=%s output=%r",
            conversation_id,
            reply.context.control.skip_user_input,
            generic,
        )
        return reply

    async def message(
        self,
        *,
        text: Optional[str],
        conversation_id: str,
        context: ConversationContext,
    ) -> BackendReply:
        return await asyncio.to_thread(self._message_sync, text, conversation_id, context)
