"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
The client points at the configured ``llm_base_url`` (OpenRouter by
default), so any model exposed through an OpenAI-compatible REST API can
be used for extraction by changing settings alone.
"""

from __future__ import annotations

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider, LLMCompletion
from src.utils.errors import LLMError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER_LABEL = "openrouter"


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API.

    ``HTTP-Referer`` and ``X-Title`` attribution headers are sent only when
    the corresponding settings are non-empty.
    """

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openrouter_api_key
        self._model = settings.llm_model
        self._timeout = settings.llm_timeout

        headers: dict[str, str] = {}
        if settings.llm_app_url:
            headers["HTTP-Referer"] = settings.llm_app_url
        if settings.llm_app_title:
            headers["X-Title"] = settings.llm_app_title

        client_kwargs: dict = {
            "api_key": self._api_key,
            "base_url": settings.llm_base_url,
            "timeout": openai.Timeout(self._timeout, connect=10.0),
            # Retries are owned by the extractor so backoff is observable.
            "max_retries": 0,
        }
        if headers:
            client_kwargs["default_headers"] = headers

        self._client = openai.AsyncOpenAI(**client_kwargs)

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        schema_hint: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 8192,
    ) -> LLMCompletion:
        """Generate a completion via the chat API.

        When *schema_hint* is supplied the request asks for strict JSON
        output (``response_format={"type": "json_object"}``).  The hint
        itself travels inside the user prompt; it only toggles the mode
        here.
        """
        request: dict = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if schema_hint is not None:
            request["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**request)
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"Model endpoint rate limited: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"Model request timed out after {self._timeout:.0f}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIStatusError as exc:
            if exc.status_code == 429:
                raise RateLimitError(
                    message=f"Model endpoint rate limited: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc
            raise LLMError(
                message=f"Model API error ({exc.status_code}): {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"Model API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not response.choices:
            return LLMCompletion(text="", model=self._model)

        choice = response.choices[0]
        content = choice.message.content or ""
        truncated = choice.finish_reason == "length"
        total_tokens = response.usage.total_tokens if response.usage else None

        logger.info(
            "llm_completion",
            model=self._model,
            provider=self.get_provider_name(),
            tokens=total_tokens,
            truncated=truncated,
            chars=len(content),
        )
        return LLMCompletion(
            text=content,
            truncated=truncated,
            model=getattr(response, "model", None) or self._model,
            total_tokens=total_tokens,
        )

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured (doesn't verify it works)."""
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """Try listing models to verify the API key works."""
        if not self.is_available():
            return False
        try:
            await self._client.models.list()
            return True
        except openai.APIError:
            return False

    def get_provider_name(self) -> str:
        return _PROVIDER_LABEL
