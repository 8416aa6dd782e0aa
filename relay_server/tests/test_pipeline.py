import asyncio

import pytest

from app.core.orchestrator import ContinuationOrchestrator
from app.core.pipeline import RelayPipeline
from app.core.types import ConversationContext


def _pipeline(backend, store, transcriber=None) -> RelayPipeline:
    return RelayPipeline(ContinuationOrchestrator(backend, store), transcriber)


def test_text_turn_returns_normalized_reply(store, helpers) -> None:
    backend = helpers.ScriptedBackend(
        [
            (True, [helpers.text("Um momento...")]),
            (False, [helpers.text("Pronto"), helpers.options("Sim", "Não")]),
        ]
    )
    pipeline = _pipeline(backend, store)

    reply = asyncio.run(pipeline.handle_text("42", "oi", {"first_name": "Ana"}))

    assert reply.display_text == "Pronto"
    assert [o.label for o in reply.selectable_options] == ["Sim", "Não"]


def test_selection_is_handled_like_text(store, helpers) -> None:
    backend = helpers.ScriptedBackend([(False, [helpers.text("ok")])])
    pipeline = _pipeline(backend, store)

    asyncio.run(pipeline.handle_selection("42", "Sim"))

    assert backend.calls[0]["text"] == "Sim"
    assert backend.calls[0]["conversation_id"] == "42"


def test_voice_turn_sends_transcript(store, helpers) -> None:
    backend = helpers.ScriptedBackend([(False, [helpers.text("ouvi")])])
    transcriber = helpers.FakeTranscriber("quero ajuda")
    pipeline = _pipeline(backend, store, transcriber)

    reply = asyncio.run(pipeline.handle_voice("42", b"audio", variables={"first_name": "Ana"}))

    assert transcriber.calls == [{"audio": b"audio", "content_type": "application/octet-stream"}]
    assert backend.calls[0]["text"] == "quero ajuda"
    assert reply.display_text == "ouvi"


def test_no_speech_still_reaches_backend(store, helpers) -> None:
    backend = helpers.ScriptedBackend([(False, [helpers.text("Não entendi")])])
    pipeline = _pipeline(backend, store, helpers.FakeTranscriber(""))

    reply = asyncio.run(pipeline.handle_voice("42", b"silence"))

    assert backend.calls[0]["text"] == ""
    assert reply.display_text == "Não entendi"


def test_transcription_failure_aborts_before_backend(store, helpers) -> None:
    before = ConversationContext(injection={"x": 1})
    store.put("42", before)
    backend = helpers.ScriptedBackend()
    pipeline = _pipeline(backend, store, helpers.FakeTranscriber(helpers.TranscriptionFailed("down")))

    with pytest.raises(helpers.TranscriptionFailed):
        asyncio.run(pipeline.handle_voice("42", b"audio"))

    assert backend.calls == []
    assert store.get("42") == before


def test_voice_without_transcriber_is_rejected(store, helpers) -> None:
    pipeline = _pipeline(helpers.ScriptedBackend(), store)
    with pytest.raises(RuntimeError):
        asyncio.run(pipeline.handle_voice("42", b"audio"))
