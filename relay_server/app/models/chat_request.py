# app/models/chat_request.py
# -*- coding: utf-8 -*-
"""
Chat Relay — TurnRequest model
------------------------------
Request payload for POST /chat and the frames of WS /ws/chat.

These endpoints let any client (tests, the dev console, another channel
adapter) drive a turn directly, without going through Telegram.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, constr


class TurnRequest(BaseModel):
    """
    Canonical request body for /chat.

    Fields
    ------
    conversation_id:
        Stable identifier for the conversation. Reuse it for every turn of
        the same chat; the server keeps the backend context under this key.
    text:
        User utterance, or the value of a selected option.
    first_name:
        Optional display name, injected into the backend context.
    variables:
        Extra turn-scoped variables merged into the injected context.
    """

    conversation_id: constr(min_length=1, strip_whitespace=True) = Field(
        ...,
        description="Stable identifier for this conversation.",
        examples=["123456789"],
    )
    text: str = Field(
        ...,
        description="User utterance or selected option value.",
        examples=["Quero abrir uma conta"],
    )
    first_name: Optional[str] = Field(
        default=None,
        description="User display name, exposed to the backend as first_name.",
        examples=["Ana"],
    )
    variables: Dict[str, Any] = Field(
        default_factory=dict,
        description="Extra variables merged into the injected context.",
    )

    def turn_variables(self) -> Dict[str, Any]:
        merged = dict(self.variables)
        if self.first_name is not None:
            merged["first_name"] = self.first_name
        return merged

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "conversation_id": "123456789",
                    "text": "Olá",
                    "first_name": "Ana",
                },
            ]
        }
    }
