"""OpenAI-compatible chat-completion backend.

Works against api.openai.com and any server exposing the same
``/v1/chat/completions`` API (Ollama, LM Studio, vLLM, ...). Transport
errors, timeouts and error responses are reported as
:class:`BackendUnavailable`; the request timeout is enforced here so the
engine never has to cancel a call itself.
"""

from __future__ import annotations

from loguru import logger
from openai import APIError, AsyncOpenAI

from ..config import LLMConfig
from ..core.exceptions import BackendUnavailable
from ..core.interfaces import CompletionOptions, ConnectionCheck

CONNECTION_TEST_PROMPT = "Hallo! Antworte nur mit 'Test erfolgreich!'"
CONNECTION_TEST_OPTIONS = CompletionOptions(max_tokens=50, temperature=0.0)


class OpenAIChatBackend:
    """LanguageModelBackend implementation on top of ``openai.AsyncOpenAI``."""

    def __init__(
        self,
        config: LLMConfig | None = None,
        client: AsyncOpenAI | None = None,
    ):
        """
        Args:
            config: Base URL, API key, model and timeout
            client: Pre-built client (tests inject a stub here)
        """
        self._config = config or LLMConfig()
        self._client = client or AsyncOpenAI(
            api_key=self._config.api_key or "not-configured",
            base_url=self._config.base_url,
            timeout=self._config.timeout_seconds,
            max_retries=0,
        )
        logger.info(
            f"OpenAIChatBackend initialized: model={self._config.model}, "
            f"base_url={self._config.base_url}"
        )

    @property
    def model(self) -> str:
        return self._config.model

    async def complete(
        self,
        messages: list[dict[str, str]],
        options: CompletionOptions,
    ) -> str:
        try:
            completion = await self._client.chat.completions.create(
                model=self._config.model,
                messages=messages,
                max_tokens=options.max_tokens,
                temperature=options.temperature,
            )
        except APIError as e:
            logger.error(f"Chat completion failed: {e}")
            raise BackendUnavailable(f"chat completion failed: {e}") from e

        if not completion.choices:
            raise BackendUnavailable("chat completion returned no choices")

        content = completion.choices[0].message.content
        if content is None:
            raise BackendUnavailable("chat completion returned no content")
        return content.strip()

    async def test_connection(self) -> ConnectionCheck:
        """Send a tiny prompt and report whether the backend answered.

        Never raises; failures are returned as ``success=False`` with the
        error text.
        """
        try:
            reply = await self.complete(
                [{"role": "user", "content": CONNECTION_TEST_PROMPT}],
                CONNECTION_TEST_OPTIONS,
            )
        except BackendUnavailable as e:
            logger.warning(f"Backend connection test failed: {e}")
            return ConnectionCheck(success=False, error=str(e))

        logger.info(f"Backend connection test succeeded (model={self.model})")
        return ConnectionCheck(success=True, response=reply)
