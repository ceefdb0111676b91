"""LLM provider adapters.

One concrete implementation of ILLMProvider (src/interfaces/llm_provider.py):
    - OpenAILLMProvider - any OpenAI-compatible endpoint (OpenRouter by default)
"""

from src.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider"]
