"""
Shared fixtures: an in-process fake of the OpenAI endpoints served through
httpx.MockTransport, and app/client builders wired to it.
"""

import json
from collections import defaultdict
from typing import Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient

from linguaroom.config import Settings
from linguaroom.main import create_app

USAGE = {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}


def target_label(system_prompt: str) -> str:
    return system_prompt.split("Translate user text to ", 1)[1].split(". Use the provided", 1)[0]


class FakeOpenAI:
    """Scriptable stand-in for transcription, chat completions and speech."""

    def __init__(self):
        self.transcript = "hello everyone"
        self.refined: str | None = None
        # lowercase substring of the target label -> queued answers
        self.scripted: Dict[str, List[str]] = defaultdict(list)
        self.failures: Dict[str, tuple] = {}
        self.speech_failures: set = set()
        self.calls: List[tuple] = []
        self.transport = httpx.MockTransport(self.handler)

    def calls_to(self, suffix: str) -> List[tuple]:
        return [call for call in self.calls if call[0].endswith(suffix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((path, request))

        for suffix, (status, body) in self.failures.items():
            if path.endswith(suffix):
                return httpx.Response(status, text=body)

        if path.endswith("/audio/transcriptions"):
            return httpx.Response(200, json={"text": self.transcript})

        if path.endswith("/chat/completions"):
            body = json.loads(request.content)
            system = body["messages"][0]["content"]
            user = body["messages"][-1]["content"]
            if system.startswith("You clean ASR"):
                content = self.refined if self.refined is not None else user.split("Transcript:\n", 1)[1]
            else:
                label = target_label(system)
                content = f"[{label}] {user}"
                for key, answers in self.scripted.items():
                    if key in label.lower() and answers:
                        content = answers.pop(0)
                        break
            return httpx.Response(
                200,
                json={"choices": [{"message": {"role": "assistant", "content": content}}], "usage": USAGE},
            )

        if path.endswith("/audio/speech"):
            body = json.loads(request.content)
            if any(marker in body["input"] for marker in self.speech_failures):
                return httpx.Response(500, text="speech backend unavailable")
            return httpx.Response(200, content=b"ID3-fake-mp3")

        return httpx.Response(404, text="unknown endpoint")


def drain(listener) -> List[str]:
    """Pending SSE frames queued for a listener, without waiting."""
    frames = []
    while not listener._queue.empty():
        frames.append(listener._queue.get_nowait())
    return frames


def events(listener) -> List[dict]:
    return [json.loads(frame[len("data: "):]) for frame in drain(listener) if frame.startswith("data: ")]


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        openai_api_key="sk-test",
        openai_api_base_url="https://llm.example/v1/",
        public_dir=tmp_path / "public",
    )


@pytest.fixture
def app(settings, fake_openai):
    return create_app(settings=settings, transport=fake_openai.transport)


@pytest.fixture
def state(app):
    return app.state.session


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)
