"""Embedding — text → fixed-dimension vector, polymorphic over provider.

The provider is any LangChain :class:`~langchain_core.embeddings.Embeddings`
implementation; :func:`get_embedding_function` builds the configured one.
Results are validated against the configured dimension ``D`` and are not
cached.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from deepsearch_rag.config import settings
from deepsearch_rag.errors import (
    ConfigurationError,
    DimensionMismatchError,
    InvalidInputError,
    OperationTimeoutError,
    ProviderError,
)

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


def get_embedding_function(provider: str | None = None, model: str | None = None) -> Embeddings:
    """Return the configured LangChain embedding function.

    Provider SDKs are imported lazily so only the selected one needs to be
    installed and importable.
    """
    provider = provider or settings.embedding_provider
    model = model or settings.embedding_model

    if provider == "huggingface":
        from langchain_huggingface import HuggingFaceEmbeddings

        return HuggingFaceEmbeddings(model_name=model)
    if provider == "openai":
        from langchain_openai import OpenAIEmbeddings

        return OpenAIEmbeddings(
            model=model,
            api_key=settings.openai_api_key or None,
            # Only the text-embedding-3 family accepts a target dimension.
            dimensions=settings.embedding_dimension if model.startswith("text-embedding-3") else None,
        )
    if provider == "google":
        from langchain_google_genai import GoogleGenerativeAIEmbeddings

        return GoogleGenerativeAIEmbeddings(model=model, google_api_key=settings.google_api_key or None)
    raise ConfigurationError(f"Unknown embedding provider: {provider!r}")


class Embedder:
    """Validated, timeout-bounded wrapper around an embedding provider.

    Parameters
    ----------
    embeddings:
        LangChain embedding function.  Defaults to
        :func:`get_embedding_function`.
    dimension:
        Expected vector dimension ``D``.
    timeout:
        Per-call timeout in seconds; timeouts are surfaced, not retried.
    """

    def __init__(
        self,
        embeddings: Embeddings | None = None,
        *,
        dimension: int = settings.embedding_dimension,
        timeout: float = settings.embedding_timeout_seconds,
    ) -> None:
        self._embeddings = embeddings if embeddings is not None else get_embedding_function()
        self.dimension = dimension
        self.timeout = timeout

    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Raises
        ------
        InvalidInputError
            *text* is empty or whitespace-only.
        OperationTimeoutError
            The provider did not answer within ``timeout`` seconds.
        ProviderError
            The provider failed or returned a malformed vector.
        """
        if not text or not text.strip():
            raise InvalidInputError("Cannot embed empty text")

        try:
            raw = await asyncio.wait_for(self._embeddings.aembed_query(text), timeout=self.timeout)
        except (asyncio.TimeoutError, TimeoutError) as exc:
            raise OperationTimeoutError(f"Embedding timed out after {self.timeout}s") from exc
        except Exception as exc:
            raise ProviderError(f"Embedding provider failed: {type(exc).__name__}: {exc}") from exc

        return self._validate(raw)

    async def embed_many(self, texts: Sequence[str], *, max_concurrency: int = 1) -> list[list[float]]:
        """Embed *texts* with bounded fan-out, preserving input order.

        The first failure cancels the embeddings still pending before it
        propagates.
        """
        semaphore = asyncio.Semaphore(max(1, max_concurrency))

        async def _one(text: str) -> list[float]:
            async with semaphore:
                return await self.embed(text)

        tasks = [asyncio.create_task(_one(t)) for t in texts]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    def _validate(self, raw: Any) -> list[float]:
        try:
            vector = [float(x) for x in raw]
        except (TypeError, ValueError) as exc:
            raise ProviderError("Embedding provider returned a non-numeric vector") from exc
        if not all(math.isfinite(x) for x in vector):
            raise ProviderError("Embedding provider returned non-finite values")
        if len(vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(vector))
        return vector
