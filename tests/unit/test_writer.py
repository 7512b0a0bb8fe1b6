"""Unit tests for the index writer: submission, verification and deletion."""

from __future__ import annotations

import pytest

from conftest import DIM, FakeVectorStore
from deepsearch_rag.errors import (
    DimensionMismatchError,
    IndexUnavailableError,
    InvalidInputError,
    WriteError,
)
from deepsearch_rag.ingestion.writer import IndexWriter
from deepsearch_rag.retrieval.models import ChunkMetadata, IndexedVector, MetadataFilter, QueryFilter
from deepsearch_rag.retry import RetryPolicy


def _pairs(n: int, prefix: str = "chunk") -> list[tuple[str, list[float]]]:
    return [(f"{prefix} {i}", [float(i + 1)] + [0.0] * (DIM - 1)) for i in range(n)]


@pytest.fixture()
def writer(fake_store: FakeVectorStore, no_wait: RetryPolicy) -> IndexWriter:
    return IndexWriter(fake_store, submit_policy=no_wait, verify_policy=no_wait)


class TestWrite:
    async def test_writes_with_ownership_metadata(self, writer: IndexWriter, fake_store: FakeVectorStore) -> None:
        report = await writer.write(_pairs(3), "doc-1", "user-1")

        assert report.vectors_written == 3
        assert report.chunk_ids == ["doc-1_chunk_0", "doc-1_chunk_1", "doc-1_chunk_2"]
        assert report.verified is True
        assert report.visible_count == 3
        _, meta = fake_store.records["doc-1_chunk_1"]
        assert meta == {"documentId": "doc-1", "userId": "user-1", "chunkIndex": 1, "text": "chunk 1"}

    async def test_single_batch_request(self, writer: IndexWriter, fake_store: FakeVectorStore) -> None:
        await writer.write(_pairs(5), "doc-1", "user-1")
        assert fake_store.upsert_calls == 1

    async def test_rewrite_overwrites_instead_of_duplicating(
        self, writer: IndexWriter, fake_store: FakeVectorStore
    ) -> None:
        await writer.write(_pairs(3), "doc-1", "user-1")
        await writer.write(_pairs(3, prefix="updated"), "doc-1", "user-1")
        assert len(fake_store.records) == 3
        assert fake_store.records["doc-1_chunk_0"][1]["text"] == "updated 0"

    async def test_empty_chunks_is_a_no_op(self, writer: IndexWriter, fake_store: FakeVectorStore) -> None:
        report = await writer.write([], "doc-1", "user-1")
        assert report.vectors_written == 0
        assert fake_store.upsert_calls == 0

    @pytest.mark.parametrize(("document_id", "user_id"), [("", "user-1"), ("doc-1", "")])
    async def test_missing_ids_are_rejected(self, writer: IndexWriter, document_id: str, user_id: str) -> None:
        with pytest.raises(InvalidInputError):
            await writer.write(_pairs(1), document_id, user_id)

    async def test_dimension_mismatch(self, writer: IndexWriter, fake_store: FakeVectorStore) -> None:
        with pytest.raises(DimensionMismatchError):
            await writer.write([("bad", [1.0, 2.0])], "doc-1", "user-1")
        assert fake_store.records == {}


class TestRetry:
    async def test_transient_failures_are_retried(self, writer: IndexWriter, fake_store: FakeVectorStore) -> None:
        fake_store.upsert_errors = [ConnectionError("reset"), TimeoutError("slow")]
        report = await writer.write(_pairs(2), "doc-1", "user-1")
        assert report.submit_attempts == 3
        assert report.vectors_written == 2

    async def test_exhausted_budget_raises_write_error(
        self, writer: IndexWriter, fake_store: FakeVectorStore
    ) -> None:
        fake_store.upsert_errors = [ConnectionError("down")] * 3
        with pytest.raises(WriteError) as info:
            await writer.write(_pairs(2), "doc-1", "user-1")
        assert isinstance(info.value.cause, ConnectionError)
        assert fake_store.upsert_calls == 3
        assert fake_store.records == {}

    async def test_non_transient_failure_is_not_retried(
        self, writer: IndexWriter, fake_store: FakeVectorStore
    ) -> None:
        fake_store.upsert_errors = [ValueError("bad request")]
        with pytest.raises(WriteError):
            await writer.write(_pairs(2), "doc-1", "user-1")
        assert fake_store.upsert_calls == 1


class TestVerify:
    async def test_eventually_visible(self, no_wait: RetryPolicy) -> None:
        store = FakeVectorStore(invisible_counts=2)
        writer = IndexWriter(store, submit_policy=no_wait, verify_policy=no_wait)
        report = await writer.write(_pairs(2), "doc-1", "user-1")
        assert report.verified is True
        assert store.count_calls == 3

    async def test_never_visible_is_a_soft_success(self, no_wait: RetryPolicy) -> None:
        store = FakeVectorStore(invisible_counts=10)
        writer = IndexWriter(store, submit_policy=no_wait, verify_policy=no_wait)
        report = await writer.write(_pairs(2), "doc-1", "user-1")
        assert report.verified is False
        assert report.visible_count == 0
        assert report.vectors_written == 2

    async def test_count_errors_are_inconclusive(self, no_wait: RetryPolicy) -> None:
        store = FakeVectorStore()

        async def _broken(filters: list[MetadataFilter]) -> int:
            raise ConnectionError("stats unavailable")

        store.count = _broken  # type: ignore[method-assign]
        writer = IndexWriter(store, submit_policy=no_wait, verify_policy=no_wait)
        report = await writer.write(_pairs(1), "doc-1", "user-1")
        assert report.verified is False


class TestDelete:
    @pytest.mark.parametrize("filtered", [True, False])
    async def test_removes_every_vector_of_the_document(self, no_wait: RetryPolicy, filtered: bool) -> None:
        store = FakeVectorStore(supports_filtered_delete=filtered)
        writer = IndexWriter(store, submit_policy=no_wait, verify_policy=no_wait)
        await writer.write(_pairs(4), "doc-1", "user-1")
        await writer.write(_pairs(2), "doc-2", "user-1")

        await writer.delete_by_document("doc-1")

        assert sorted(store.records) == ["doc-2_chunk_0", "doc-2_chunk_1"]
        filters = QueryFilter(user_id="user-1", document_id="doc-1").to_filters()
        assert await store.similarity_search([1.0] + [0.0] * (DIM - 1), k=10, filters=filters) == []

    async def test_delete_of_unknown_document_is_a_no_op(self, writer: IndexWriter) -> None:
        await writer.delete_by_document("missing")

    async def test_delete_requires_document_id(self, writer: IndexWriter) -> None:
        with pytest.raises(InvalidInputError):
            await writer.delete_by_document("")

    async def test_backend_failure_is_classified(self, no_wait: RetryPolicy) -> None:
        store = FakeVectorStore(supports_filtered_delete=False)
        store.search_errors = [ConnectionError("down")]
        writer = IndexWriter(store, submit_policy=no_wait, verify_policy=no_wait)
        with pytest.raises(IndexUnavailableError):
            await writer.delete_by_document("doc-1")

    @pytest.mark.parametrize("filtered", [True, False])
    async def test_removes_vectors_of_every_owner(self, no_wait: RetryPolicy, filtered: bool) -> None:
        store = FakeVectorStore(supports_filtered_delete=filtered)
        writer = IndexWriter(store, submit_policy=no_wait, verify_policy=no_wait)
        await writer.write(_pairs(3), "doc-1", "user-1")
        await writer.write(_pairs(1), "doc-2", "user-2")
        await store.upsert(
            [
                IndexedVector(
                    id="doc-1_copy_0",
                    values=[1.0] + [0.0] * (DIM - 1),
                    metadata=ChunkMetadata(document_id="doc-1", user_id="user-2", chunk_index=0, text="shared"),
                )
            ]
        )

        await writer.delete_by_document("doc-1")

        assert sorted(store.records) == ["doc-2_chunk_0"]

    async def test_probe_loop_terminates_on_stale_reads(
        self, no_wait: RetryPolicy, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        class StaleAfterDelete(FakeVectorStore):
            """Acknowledges deletes while probes keep returning the old records."""

            def __init__(self) -> None:
                super().__init__(supports_filtered_delete=False)
                self.deleted_ids: list[str] = []
                self.probe_filters: list[list[MetadataFilter]] = []

            async def probe_ids(self, filters: list[MetadataFilter], *, limit: int) -> list[str]:
                self.probe_filters.append(filters)
                return await super().probe_ids(filters, limit=limit)

            async def delete(self, ids: list[str]) -> None:
                self.deleted_ids.extend(ids)

        monkeypatch.setattr("deepsearch_rag.ingestion.writer.PROBE_PAGE_SIZE", 2)
        store = StaleAfterDelete()
        writer = IndexWriter(store, submit_policy=no_wait, verify_policy=no_wait)
        await writer.write(_pairs(5), "doc-1", "user-1")
        await writer.write(_pairs(2), "doc-2", "user-1")

        await writer.delete_by_document("doc-1")

        assert sorted(store.deleted_ids) == [f"doc-1_chunk_{i}" for i in range(5)]
        assert len(store.probe_filters) == 3
        assert store.probe_filters[-1][-1] == MetadataFilter(field="chunkIndex", operator="nin", value=[0, 1, 2, 3])
