"""LLM initialisation — single place to swap providers.

Supports two providers:

1. **OpenAI-compatible** (default) — OpenAI cloud, or any endpoint that
   speaks ``/v1/chat/completions`` (e.g. a vLLM server hosting a
   reasoning model) when ``LLM_BASE_URL`` is set.
2. **Google Gemini** — set ``LLM_PROVIDER=google`` and ``GOOGLE_API_KEY``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from deepsearch_rag.config import settings
from deepsearch_rag.errors import ConfigurationError

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

logger = logging.getLogger(__name__)


def get_llm(temperature: float | None = None, provider: str | None = None) -> BaseChatModel:
    """Return the configured chat model.

    When ``settings.llm_base_url`` is set the OpenAI client is pointed at
    that endpoint instead of the OpenAI cloud API.  A dummy API key
    (``"EMPTY"``) is used because vLLM does not require authentication.
    """
    provider = provider or settings.llm_provider
    temperature = settings.llm_temperature if temperature is None else temperature

    if provider == "google":
        from langchain_google_genai import ChatGoogleGenerativeAI

        return ChatGoogleGenerativeAI(
            model=settings.llm_model_name,
            temperature=temperature,
            google_api_key=settings.google_api_key or None,
        )
    if provider != "openai":
        raise ConfigurationError(f"Unknown LLM provider: {provider!r}")

    from langchain_openai import ChatOpenAI

    kwargs: dict[str, Any] = {
        "model": settings.llm_model_name,
        "temperature": temperature,
    }

    if settings.llm_base_url:
        logger.info("Using OpenAI-compatible endpoint: %s", settings.llm_base_url)
        kwargs["base_url"] = settings.llm_base_url
        # vLLM doesn't need a real key; LangChain requires a non-empty value.
        kwargs["api_key"] = settings.openai_api_key or "EMPTY"
    else:
        kwargs["api_key"] = settings.openai_api_key

    return ChatOpenAI(**kwargs)
