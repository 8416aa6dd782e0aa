import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

from app.core.config import Settings
from app.core.errors import BackendUnavailable, TranscriptionFailed
from app.core.types import (
    BackendReply,
    ControlFlags,
    ConversationContext,
    OptionsItem,
    ReplyOption,
    TextItem,
)
from app.runtime_state import ConversationLocks, SessionStore


Step = Union[Exception, tuple]


def text(value: str) -> TextItem:
    return TextItem(value=value)


def options(*labels: str) -> OptionsItem:
    return OptionsItem(values=[ReplyOption(label=lbl, value=lbl) for lbl in labels])


class ScriptedBackend:
    """
    Dialogue backend double.

    Each step is either an Exception (raised) or a tuple
    `(skip_user_input, [items])`. With `repeat_last=True` the final step is
    replayed forever. The returned context echoes the incoming one, bumps
    payload["calls"] and sets the control flag from the step.
    """

    def __init__(
        self,
        steps: Sequence[Step] = (),
        *,
        delay: float = 0.0,
        repeat_last: bool = False,
    ) -> None:
        self.steps: List[Step] = list(steps)
        self.delay = delay
        self.repeat_last = repeat_last
        self.calls: List[Dict[str, Any]] = []
        self.in_flight: Dict[str, int] = {}
        self.max_in_flight: Dict[str, int] = {}
        self.before_reply: Optional[Callable[[str], Any]] = None

    def _next_step(self) -> Step:
        if not self.steps:
            return (False, [])
        if self.repeat_last and len(self.steps) == 1:
            return self.steps[0]
        return self.steps.pop(0)

    async def message(
        self,
        *,
        text: Optional[str],
        conversation_id: str,
        context: ConversationContext,
    ) -> BackendReply:
        self.calls.append(
            {
                "text": text,
                "conversation_id": conversation_id,
                "context": context.model_copy(deep=True),
            }
        )
        self.in_flight[conversation_id] = self.in_flight.get(conversation_id, 0) + 1
        self.max_in_flight[conversation_id] = max(
            self.max_in_flight.get(conversation_id, 0),
            self.in_flight[conversation_id],
        )
        try:
            if self.before_reply is not None:
                await self.before_reply(conversation_id)
            if self.delay:
                await asyncio.sleep(self.delay)
            step = self._next_step()
            if isinstance(step, Exception):
                raise step
            skip, items = step
            new_context = context.model_copy(deep=True)
            new_context.control = ControlFlags(skip_user_input=skip)
            new_context.payload["calls"] = new_context.payload.get("calls", 0) + 1
            return BackendReply(context=new_context, output=list(items))
        finally:
            self.in_flight[conversation_id] -= 1


class FakeTranscriber:
    def __init__(self, result: Union[str, Exception] = "") -> None:
        self.result = result
        self.calls: List[Dict[str, Any]] = []

    async def transcribe(self, audio: bytes, content_type: str = "application/octet-stream") -> str:
        self.calls.append({"audio": audio, "content_type": content_type})
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class FakeTelegram:
    """Records outbound Bot API calls instead of sending them."""

    def __init__(self, files: Optional[Dict[str, bytes]] = None) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.answered: List[str] = []
        self.files = files or {}

    async def send_message(self, chat_id, text: str, options=None) -> None:
        self.sent.append({"chat_id": chat_id, "text": text, "options": list(options or [])})

    async def answer_callback_query(self, callback_query_id: str) -> None:
        self.answered.append(callback_query_id)

    async def download_file(self, file_id: str) -> bytes:
        return self.files[file_id]


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def locks() -> ConversationLocks:
    return ConversationLocks()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        debug=False,
        telegram_webhook_secret=None,
        max_continuation_calls=3,
        turn_timeout_s=5.0,
    )


@pytest.fixture
def helpers() -> SimpleNamespace:
    """Item builders and doubles, so test modules do not import conftest."""
    return SimpleNamespace(
        text=text,
        options=options,
        ScriptedBackend=ScriptedBackend,
        FakeTranscriber=FakeTranscriber,
        FakeTelegram=FakeTelegram,
        BackendUnavailable=BackendUnavailable,
        TranscriptionFailed=TranscriptionFailed,
    )
