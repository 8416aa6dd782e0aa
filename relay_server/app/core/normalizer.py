# app/core/normalizer.py
# -*- coding: utf-8 -*-
"""
Chat Relay — Reply normalizer
-----------------------------
Turns the ordered output items of a turn into one display string plus the
options the user can pick:

- the LAST text item wins (earlier texts are overwritten, not joined)
- every options item appends its entries, in order
- anything else is skipped
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Union

from app.core.types import (
    ChannelReply,
    OptionsItem,
    OutputItem,
    ReplyOption,
    TextItem,
    TurnResult,
)

# Telegram rejects callback_data longer than 64 bytes.
MAX_CALLBACK_DATA_BYTES = 64


def normalize(turn: Union[TurnResult, Iterable[OutputItem]]) -> ChannelReply:
    items = turn.items if isinstance(turn, TurnResult) else turn

    text = ""
    options: List[ReplyOption] = []
    for item in items:
        if isinstance(item, TextItem):
            text = item.value
        elif isinstance(item, OptionsItem):
            options.extend(item.values)

    return ChannelReply(display_text=text, selectable_options=options)


def _callback_data(value: str) -> str:
    # Long values must be swapped for a key first (runtime_state.callbacks).
    if len(value.encode("utf-8")) > MAX_CALLBACK_DATA_BYTES:
        raise ValueError(f"callback_data over {MAX_CALLBACK_DATA_BYTES} bytes: {value!r}")
    return value


def to_inline_keyboard(options: Iterable[ReplyOption]) -> List[List[Dict[str, str]]]:
    """One button per row; pressing it sends the option value back."""
    return [
        [{"text": opt.label, "callback_data": _callback_data(opt.value)}]
        for opt in options
    ]
