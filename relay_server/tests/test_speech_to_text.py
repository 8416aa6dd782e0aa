import asyncio
from typing import Any, Dict

import pytest
import requests

import app.providers.speech_to_text as stt_module
from app.core.errors import TranscriptionFailed
from app.providers.speech_to_text import SpeechToTextClient, extract_transcript


class DummyResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


def _client() -> SpeechToTextClient:
    return SpeechToTextClient("https://stt.example/", "key", model="pt-BR_BroadbandModel")


def test_extract_transcript_first_alternative() -> None:
    data = {
        "results": [
            {"alternatives": [{"transcript": " quero abrir uma conta ", "confidence": 0.9}]},
            {"alternatives": [{"transcript": "ignored"}]},
        ]
    }
    assert extract_transcript(data) == "quero abrir uma conta"


@pytest.mark.parametrize(
    "data",
    [{}, {"results": []}, {"results": [{"alternatives": []}]}, {"results": [{}]}],
)
def test_no_speech_is_empty_string(data: Dict[str, Any]) -> None:
    assert extract_transcript(data) == ""


@pytest.mark.parametrize(
    "data",
    [
        {"results": 5},
        {"results": "abc"},
        {"results": [{"alternatives": {"transcript": "oi"}}]},
        {"results": [{"alternatives": [None]}]},
    ],
)
def test_malformed_results_raise_transcription_failed(data: Dict[str, Any]) -> None:
    with pytest.raises(TranscriptionFailed):
        extract_transcript(data)


def test_transcribe_posts_audio(monkeypatch) -> None:
    captured: Dict[str, Any] = {}

    def fake_post(url, **kwargs):
        captured["url"] = url
        captured.update(kwargs)
        return DummyResponse(payload={"results": [{"alternatives": [{"transcript": "olá"}]}]})

    monkeypatch.setattr(stt_module.requests, "post", fake_post)

    text = asyncio.run(_client().transcribe(b"OggS...", "audio/ogg"))

    assert text == "olá"
    assert captured["url"] == "https://stt.example/v1/recognize"
    assert captured["params"] == {"model": "pt-BR_BroadbandModel"}
    assert captured["headers"] == {"Content-Type": "audio/ogg"}
    assert captured["data"] == b"OggS..."
    assert captured["auth"] == ("apikey", "key")


@pytest.mark.parametrize(
    "outcome",
    [
        requests.ConnectionError("down"),
        DummyResponse(status_code=401, text="unauthorized"),
        DummyResponse(payload=ValueError("not json")),
        DummyResponse(payload=["not", "an", "object"]),
    ],
)
def test_failures_raise_transcription_failed(monkeypatch, outcome) -> None:
    def fake_post(url, **kwargs):
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(stt_module.requests, "post", fake_post)

    with pytest.raises(TranscriptionFailed):
        asyncio.run(_client().transcribe(b"..."))


def test_missing_api_key_raises() -> None:
    client = SpeechToTextClient("https://stt.example", None)
    with pytest.raises(TranscriptionFailed):
        asyncio.run(client.transcribe(b"..."))
