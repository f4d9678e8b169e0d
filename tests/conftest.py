"""
Persona engine test fixtures
Shared fixtures and a scripted language-model backend.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from persona_engine.core.exceptions import BackendUnavailable
from persona_engine.core.interfaces import CompletionOptions
from persona_engine.core.models import Profile, ProfileData
from persona_engine.storage.in_memory import InMemoryDocumentStore

FIXED_NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeBackend:
    """Backend returning scripted replies, or failing when told to."""

    model = "fake-model"

    def __init__(self, replies: list[str] | None = None, default: str = "Mock-Antwort."):
        self.replies = list(replies or [])
        self.default = default
        self.error: Exception | None = None
        self.calls: list[tuple[list[dict], CompletionOptions]] = []

    async def complete(self, messages: list[dict], options: CompletionOptions) -> str:
        self.calls.append((messages, options))
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return self.default

    def fail_with(self, error: Exception | None = None) -> None:
        self.error = error or BackendUnavailable("backend down")

    @property
    def last_messages(self) -> list[dict]:
        return self.calls[-1][0]

    @property
    def last_options(self) -> CompletionOptions:
        return self.calls[-1][1]


class Clock:
    """Manually advanced time source."""

    def __init__(self, start: datetime = FIXED_NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def backend():
    """Scripted backend with a default reply."""
    return FakeBackend()


@pytest.fixture
def failing_backend():
    """Backend whose every call raises BackendUnavailable."""
    b = FakeBackend()
    b.fail_with()
    return b


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def memory_store_docs():
    """Empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def sample_profile():
    """Sport profile with some known data."""
    return Profile(
        user_id="user-1",
        name="Sport",
        category="Sport",
        profile_data=ProfileData(
            goals=["Marathon laufen"],
            preferences=["Laufen am Morgen"],
            experience="Fortgeschritten",
            frequency="wöchentlich",
        ),
    )


@pytest.fixture
def empty_profile():
    """Profile with no profile data at all."""
    return Profile(user_id="user-1", name="Kochen", category="Kochen")
