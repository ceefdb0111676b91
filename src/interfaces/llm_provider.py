"""Abstract base class for LLM service providers.

Defines the contract for any large-language-model backend used for event
extraction.  The only concrete implementation today targets an
OpenAI-compatible endpoint (OpenRouter), but call-sites depend on this
interface alone so tests can inject a mock.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class LLMCompletion:
    """Text returned by one completion call plus its metadata."""

    text: str
    truncated: bool = False
    model: str = ""
    total_tokens: int | None = None


# Concrete implementations: OpenAILLMProvider
# Located in: src/providers/llm/
class ILLMProvider(ABC):
    """Contract for LLM services used by the event extractor."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        schema_hint: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 8192,
    ) -> LLMCompletion:
        """Generate a completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The user-facing prompt containing the page content.
        schema_hint:
            When given, the provider requests strict JSON output.
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        LLMCompletion
            The response text; ``truncated`` is set when the model stopped
            at the token limit.

        Raises
        ------
        src.utils.errors.RateLimitError
            If the endpoint answered with HTTP 429.
        src.utils.errors.LLMError
            If the API call fails for any other reason.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this LLM provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider has credentials configured."""

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Perform a lightweight API call to confirm credentials are valid."""
