import json

import httpx
import pytest

from micnotes.assets import LocalAssetStore, RecordedAsset
from micnotes.kvstore import MemoryKeyValueStore
from micnotes.pipeline import ProcessingOrchestrator
from micnotes.profiles import ProfileStore
from micnotes.storage import RecordStore
from micnotes.summarizer import Summarizer
from micnotes.transcriber import WhisperAPITranscriber


class FakeOpenAI:
    """Canned responses for the two endpoints, recording every request."""

    def __init__(self, transcript="hello world", total_tokens=200, summary="A short summary."):
        self.requests = []
        self.transcription_response = httpx.Response(200, json={"text": transcript})
        self.completion_response = httpx.Response(
            200,
            json={
                "choices": [{"message": {"role": "assistant", "content": summary}}],
                "usage": {"total_tokens": total_tokens},
            },
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/audio/transcriptions"):
            return self.transcription_response
        if request.url.path.endswith("/chat/completions"):
            return self.completion_response
        return httpx.Response(404, text="unknown endpoint")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def paths(self):
        return [request.url.path for request in self.requests]

    def chat_payload(self):
        chats = [r for r in self.requests if r.url.path.endswith("/chat/completions")]
        return json.loads(chats[-1].content)


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def make_audio(tmp_path):
    def _make(name="clip.m4a", size=1024):
        path = tmp_path / name
        path.write_bytes(b"\x00" * size)
        return RecordedAsset.from_path(path)

    return _make


@pytest.fixture
def make_orchestrator(kv):
    def _make(fake, api_key="sk-test", duration=90.0, profiles=None):
        http_client = fake.client()
        store = RecordStore(kv, LocalAssetStore())
        return ProcessingOrchestrator(
            store=store,
            transcriber=WhisperAPITranscriber(
                api_key,
                http_client=http_client,
                duration_probe=lambda ref: duration,
            ),
            summarizer=Summarizer(api_key, http_client=http_client),
            profiles=profiles or ProfileStore(kv),
        )

    return _make
