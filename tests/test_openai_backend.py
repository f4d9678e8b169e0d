"""Tests for the OpenAI-compatible backend with a stubbed client."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
from openai import APIConnectionError, APITimeoutError

from persona_engine.config import LLMConfig
from persona_engine.core.exceptions import BackendUnavailable
from persona_engine.core.interfaces import CompletionOptions
from persona_engine.llm import OpenAIChatBackend

REQUEST = httpx.Request("POST", "http://localhost:11434/v1/chat/completions")


def _completion(*contents):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=c)) for c in contents]
    )


def _client(result=None, error=None):
    create = AsyncMock(return_value=result, side_effect=error)
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


@pytest.fixture
def config():
    return LLMConfig(model="llama3", base_url="http://localhost:11434/v1")


@pytest.mark.asyncio
async def test_complete_forwards_options(config):
    client = _client(_completion("  Hallo!  "))
    backend = OpenAIChatBackend(config, client=client)

    text = await backend.complete(
        [{"role": "user", "content": "Hi"}], CompletionOptions(max_tokens=300, temperature=0.8)
    )

    assert text == "Hallo!"
    client.chat.completions.create.assert_awaited_once_with(
        model="llama3",
        messages=[{"role": "user", "content": "Hi"}],
        max_tokens=300,
        temperature=0.8,
    )
    assert backend.model == "llama3"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [APITimeoutError(request=REQUEST), APIConnectionError(request=REQUEST)],
)
async def test_api_errors_become_backend_unavailable(config, error):
    backend = OpenAIChatBackend(config, client=_client(error=error))

    with pytest.raises(BackendUnavailable):
        await backend.complete([{"role": "user", "content": "Hi"}], CompletionOptions())


@pytest.mark.asyncio
async def test_empty_choices(config):
    backend = OpenAIChatBackend(config, client=_client(_completion()))

    with pytest.raises(BackendUnavailable):
        await backend.complete([{"role": "user", "content": "Hi"}], CompletionOptions())


@pytest.mark.asyncio
async def test_missing_content(config):
    backend = OpenAIChatBackend(config, client=_client(_completion(None)))

    with pytest.raises(BackendUnavailable):
        await backend.complete([{"role": "user", "content": "Hi"}], CompletionOptions())


@pytest.mark.asyncio
async def test_connection_check_succeeds(config):
    client = _client(_completion("Test erfolgreich!"))
    backend = OpenAIChatBackend(config, client=client)

    check = await backend.test_connection()

    assert check.success is True
    assert check.response == "Test erfolgreich!"
    assert check.error is None
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["max_tokens"] == 50
    assert kwargs["temperature"] == 0.0


@pytest.mark.asyncio
async def test_connection_check_reports_failure(config):
    backend = OpenAIChatBackend(config, client=_client(error=APIConnectionError(request=REQUEST)))

    check = await backend.test_connection()

    assert check.success is False
    assert check.response is None
    assert check.error
