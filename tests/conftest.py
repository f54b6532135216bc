"""
Shared pytest fixtures for branchchat tests.

Provides an in-memory persistence adapter, a deterministic clock, a fake
model provider, and a TestClient wired to all three. No test touches the
network or the user's data directory.
"""

from typing import Dict, Iterator, List, Optional, Set

import pytest
from fastapi.testclient import TestClient

from app import create_app
from branchstore import BranchStore, MemoryAdapter
from config import Settings
from providers import BaseProvider, ProviderError, ProviderRouter

START_MS = 1_700_000_000_000


class FakeClock:
    """Epoch-ms clock that advances one second per reading."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        self.now += 1000
        return self.now


class FakeProvider(BaseProvider):
    """Scripted provider that records every context it receives."""

    name = "fake"
    model = "fake-1"

    def __init__(
        self,
        reply: str = "The fluorescent lights hum louder.",
        chunks: Optional[List[str]] = None,
        fail_after: Optional[int] = None,
        error: Optional[ProviderError] = None,
        capabilities: Optional[Set[str]] = None,
    ):
        super().__init__("test-key", retry_delay=0)
        self.reply = reply
        self.chunks = chunks if chunks is not None else ["The carpet ", "is damp."]
        self.fail_after = fail_after
        self.error = error
        self.caps = capabilities if capabilities is not None else {"text", "conversation", "streaming"}
        self.calls: List[List[Dict[str, str]]] = []

    def _complete(self, messages: List[Dict[str, str]]) -> str:
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return self.reply

    def _stream(self, messages: List[Dict[str, str]]) -> Iterator[str]:
        self.calls.append(messages)
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i == self.fail_after:
                raise ProviderError("stream dropped")
            yield chunk

    def get_capabilities(self) -> Set[str]:
        return set(self.caps)

    def generate_image(self, prompt: str, n: int = 1) -> List[str]:
        return [f"https://images.example/{i}.png" for i in range(n)]


@pytest.fixture
def adapter() -> MemoryAdapter:
    return MemoryAdapter()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(adapter, clock) -> BranchStore:
    return BranchStore(adapter, clock=clock)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def settings() -> Settings:
    return Settings(storage="memory", default_provider="fake", fallback_provider="fake")


@pytest.fixture
def client(settings, store, fake_provider) -> TestClient:
    router = ProviderRouter({"fake": lambda: fake_provider}, default="fake")
    return TestClient(create_app(settings=settings, store=store, router=router))
