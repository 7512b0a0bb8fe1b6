"""Runtime — one object that owns every collaborator of the RAG core.

:class:`DocSearchRuntime` builds the vector store, embedder, chat model,
index writer, retriever, composer and the compiled QA graph from
:data:`~deepsearch_rag.config.settings`.  Every collaborator can be
injected instead, which is how the tests run without external services.

Usage::

    async with DocSearchRuntime() as runtime:
        await runtime.ingest("doc-1", "user-1", extracted_text)
        answer = await runtime.ask("Who signed the contract?", "user-1")
        print(answer.answer)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from deepsearch_rag.agent.composer import AnswerComposer
from deepsearch_rag.agent.entities import EntityExtractor
from deepsearch_rag.agent.graph import build_graph, create_initial_state
from deepsearch_rag.agent.llm import get_llm
from deepsearch_rag.agent.state import Answer
from deepsearch_rag.config import Settings, settings as default_settings
from deepsearch_rag.errors import ConfigurationError, InvalidInputError
from deepsearch_rag.ingestion.embedder import Embedder, get_embedding_function
from deepsearch_rag.ingestion.pipeline import IngestionPipeline, IngestionReport
from deepsearch_rag.ingestion.writer import IndexWriter
from deepsearch_rag.retrieval.base import VectorStoreBase
from deepsearch_rag.retrieval.models import RetrievalTier
from deepsearch_rag.retrieval.retriever import TieredRetriever
from deepsearch_rag.retry import RetryPolicy

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings
    from langchain_core.language_models import BaseChatModel

logger = logging.getLogger(__name__)


def create_vector_store(config: Settings = default_settings) -> VectorStoreBase:
    """Instantiate (but do not connect) the backend named by ``vector_backend``."""
    if config.vector_backend == "chroma":
        from deepsearch_rag.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore(
            config.chroma_collection,
            dimension=config.embedding_dimension,
            host=config.chroma_host,
            port=config.chroma_port,
        )
    if config.vector_backend == "pinecone":
        from deepsearch_rag.retrieval.pinecone_store import PineconeVectorStore

        return PineconeVectorStore(
            config.pinecone_index_name,
            dimension=config.embedding_dimension,
            api_key=config.pinecone_api_key,
            cloud=config.pinecone_cloud,
            region=config.pinecone_region,
        )
    raise ConfigurationError(f"Unknown vector backend: {config.vector_backend!r}")


class DocSearchRuntime:
    """Ingest, ask and delete over a single vector index.

    Parameters
    ----------
    store:
        Vector-store backend.  Defaults to :func:`create_vector_store`.
    embeddings:
        LangChain embedding function.  Defaults to the configured provider.
    llm:
        LangChain chat model used for answers and entity extraction.
        Defaults to :func:`~deepsearch_rag.agent.llm.get_llm`.
    config:
        Settings object; defaults to the process-wide singleton.
    """

    def __init__(
        self,
        *,
        store: VectorStoreBase | None = None,
        embeddings: Embeddings | None = None,
        llm: BaseChatModel | None = None,
        config: Settings = default_settings,
    ) -> None:
        self.config = config
        self.store = store if store is not None else create_vector_store(config)
        self.llm = llm if llm is not None else get_llm(config.llm_temperature, config.llm_provider)
        if embeddings is None:
            embeddings = get_embedding_function(config.embedding_provider, config.embedding_model)

        self.embedder = Embedder(
            embeddings,
            dimension=config.embedding_dimension,
            timeout=config.embedding_timeout_seconds,
        )
        self.writer = IndexWriter(
            self.store,
            submit_policy=RetryPolicy(
                max_attempts=config.write_max_attempts,
                initial_delay=config.write_backoff_seconds,
            ),
            verify_policy=RetryPolicy(
                max_attempts=config.verify_max_attempts,
                initial_delay=config.verify_backoff_seconds,
            ),
            timeout=config.index_timeout_seconds,
        )
        self.retriever = TieredRetriever(
            self.store,
            allow_unfiltered_fallback=config.allow_unfiltered_fallback,
            timeout=config.index_timeout_seconds,
        )
        self.composer = AnswerComposer(
            self.llm,
            context_char_budget=config.context_char_budget,
            timeout=config.generation_timeout_seconds,
        )
        extractor = None
        if config.extract_entities:
            extractor = EntityExtractor(
                self.llm,
                text_limit=config.entity_text_limit,
                max_items=config.entity_max_items,
                timeout=config.generation_timeout_seconds,
            )
        self.pipeline = IngestionPipeline(
            self.embedder,
            self.writer,
            entity_extractor=extractor,
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            max_concurrency=config.embedding_concurrency,
        )
        self.graph: Any = build_graph(self.embedder, self.retriever, self.composer)
        self._connected = False

    # -- lifecycle ------------------------------------------------------------

    async def __aenter__(self) -> DocSearchRuntime:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def connect(self) -> None:
        """Open the vector-store handle; idempotent."""
        if self._connected:
            return
        await self.store.connect()
        self._connected = True
        logger.info("Connected to %s index %r", type(self.store).__name__, self.store.collection_name)

    async def close(self) -> None:
        if not self._connected:
            return
        await self.store.close()
        self._connected = False

    # -- operations -----------------------------------------------------------

    async def ingest(self, document_id: str, user_id: str, text: str) -> IngestionReport:
        """Chunk, embed and index *text* as *document_id* owned by *user_id*."""
        await self.connect()
        return await self.pipeline.ingest(document_id, user_id, text)

    async def ask(
        self,
        question: str,
        user_id: str,
        document_id: str | None = None,
        top_k: int | None = None,
    ) -> Answer:
        """Answer *question* from *user_id*'s documents.

        Returns the fixed not-found answer (``found=False``) when nothing
        relevant is retrieved; the chat model is not called in that case.
        """
        if not question or not question.strip():
            raise InvalidInputError("Question is required")
        if not user_id or not user_id.strip():
            raise InvalidInputError("user_id is required")
        await self.connect()

        state = create_initial_state(
            question.strip(),
            user_id,
            document_id=document_id,
            top_k=top_k if top_k is not None else self.config.default_top_k,
        )
        result = await self.graph.ainvoke(state)
        return Answer(
            answer=result["answer"],
            found=result["found"],
            matches=result.get("matches", []),
            tier=result.get("tier", RetrievalTier.NONE),
        )

    async def delete_document(self, document_id: str) -> None:
        """Remove every vector of *document_id*.  The caller checks ownership."""
        await self.connect()
        await self.writer.delete_by_document(document_id)

    async def health_check(self) -> bool:
        await self.connect()
        return await self.store.health_check()
