"""
Tests for material_search/vector.py - PineconeVectorStore

Covers:
- Metadata flattening
- Namespaced queries, dimension checks and timeouts with a mocked index
- Batch upsert with availability checks, retries and failed batches
- Index creation and dimension verification with a mocked client
"""

import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from material_search.exceptions import (
    DimensionMismatchError,
    UpsertError,
    VectorSearchTimeoutError,
    VectorStoreError,
)
from material_search.vector import PineconeVectorStore, VectorMatch, flatten_metadata


def make_index(dimension=4):
    index = MagicMock()
    index.describe_index_stats.return_value = {
        "dimension": dimension,
        "total_vector_count": 7,
        "namespaces": {"in_stock": {"vector_count": 3}, "all_fda": {"vector_count": 4}},
    }
    index.query.return_value = {"matches": [
        {"id": "RM000123_benefits", "score": 0.91, "metadata": {"rm_code": "RM000123"}},
        SimpleNamespace(id="RM000301_benefits", score=0.8, metadata=None),
    ]}
    index.upsert.side_effect = lambda vectors, namespace: {"upserted_count": len(vectors)}
    return index


@pytest.fixture
def index():
    return make_index()


@pytest.fixture
def store(index):
    store = PineconeVectorStore(index=index, query_timeout=1.0)
    store.base_delay = 0.0
    yield store
    store.close()


def record(vector_id, availability="in_stock"):
    return {
        "id": vector_id,
        "values": [0.1, 0.2, 0.3, 0.4],
        "metadata": {"rm_code": vector_id, "benefits": ["a", "b"], "availability": availability},
    }


class TestFlattenMetadata:

    def test_lists_are_joined_and_none_dropped(self):
        flat = flatten_metadata({"benefits": ["moisturizing", "plumping"], "supplier": None, "priority": 0.85})

        assert flat == {"benefits": "moisturizing, plumping", "priority": 0.85}

    def test_text_is_truncated(self):
        flat = flatten_metadata({"text": "x" * 50}, max_text_length=10)

        assert flat["text"] == "x" * 10

    def test_other_types_become_strings(self):
        flat = flatten_metadata({"created": SimpleNamespace(year=2024)})

        assert isinstance(flat["created"], str)


class TestQuery:

    @pytest.mark.asyncio
    async def test_query_returns_matches(self, store, index):
        matches = await store.query([0.0, 0.1, 0.2, 0.3], "in_stock", top_k=15)

        assert matches == [
            VectorMatch(id="RM000123_benefits", score=0.91, metadata={"rm_code": "RM000123"}),
            VectorMatch(id="RM000301_benefits", score=0.8, metadata={}),
        ]
        index.query.assert_called_once_with(
            vector=[0.0, 0.1, 0.2, 0.3], top_k=15, namespace="in_stock", include_metadata=True
        )

    @pytest.mark.asyncio
    async def test_query_passes_filter(self, store, index):
        await store.query([0.0] * 4, "all_fda", top_k=5, metadata_filter={"availability": "fda_only"})

        assert index.query.call_args.kwargs["filter"] == {"availability": "fda_only"}

    @pytest.mark.asyncio
    async def test_dimension_mismatch_is_detected_before_querying(self, store, index):
        with pytest.raises(DimensionMismatchError) as exc_info:
            await store.query([0.0] * 3, "in_stock", top_k=5)

        assert exc_info.value.expected == 4
        assert exc_info.value.actual == 3
        index.query.assert_not_called()

    @pytest.mark.asyncio
    async def test_sdk_errors_are_wrapped(self, store, index):
        index.query.side_effect = RuntimeError("503 Service Unavailable")

        with pytest.raises(VectorStoreError, match="in_stock"):
            await store.query([0.0] * 4, "in_stock", top_k=5)

    @pytest.mark.asyncio
    async def test_slow_query_times_out(self, index):
        index.query.side_effect = lambda **kwargs: time.sleep(0.5)
        store = PineconeVectorStore(index=index, query_timeout=0.05)

        with pytest.raises(VectorSearchTimeoutError):
            await store.query([0.0] * 4, "in_stock", top_k=5)
        store.close()

    @pytest.mark.asyncio
    async def test_describe_index_stats(self, store):
        stats = await store.describe_index_stats()

        assert stats == {
            "dimension": 4,
            "total_vector_count": 7,
            "namespaces": {"in_stock": 3, "all_fda": 4},
        }
        assert await store.get_dimension() == 4


class TestUpsert:

    def test_batches_and_flattens(self, store, index):
        summary = store.upsert_records("in_stock", [record(f"RM00000{i}") for i in range(5)], batch_size=2)

        assert summary["total_batches"] == 3
        assert summary["successful_batches"] == 3
        assert summary["upserted_count"] == 5
        first_batch = index.upsert.call_args_list[0].kwargs["vectors"]
        assert first_batch[0]["metadata"]["benefits"] == "a, b"

    def test_availability_must_match_namespace(self, store, index):
        with pytest.raises(UpsertError):
            store.upsert_records("all_fda", [record("RM000001", availability="in_stock")])

        index.upsert.assert_not_called()

    def test_unknown_namespace(self, store):
        with pytest.raises(ValueError):
            store.upsert_records("archive", [record("RM000001")])

    def test_failed_batch_is_skipped_after_retries(self, store, index):
        store.max_retries = 2
        calls = []

        def flaky(vectors, namespace):
            calls.append(vectors[0]["id"])
            if vectors[0]["id"] == "RM000000":
                raise RuntimeError("429 Too Many Requests")
            return {"upserted_count": len(vectors)}

        index.upsert.side_effect = flaky

        summary = store.upsert_records("in_stock", [record(f"RM00000{i}") for i in range(4)], batch_size=2)

        assert summary["failed_batches"] == 1
        assert summary["upserted_count"] == 2
        assert calls.count("RM000000") == 2

    def test_empty_upsert(self, store, index):
        summary = store.upsert_records("in_stock", [])

        assert summary["upserted_count"] == 0
        index.upsert.assert_not_called()

    def test_delete_namespace(self, store, index):
        store.delete_namespace("all_fda")

        index.delete.assert_called_once_with(delete_all=True, namespace="all_fda")


class TestEnsureIndex:

    def make_client(self, names, dimension=768):
        client = MagicMock()
        client.list_indexes.return_value.names.return_value = names
        client.describe_index.return_value = {"dimension": dimension, "status": {"ready": True}}
        return client

    def test_existing_index_with_matching_dimension(self):
        client = self.make_client(["raw-materials-stock"], dimension=768)
        store = PineconeVectorStore(client=client)

        assert store.ensure_index(768) is False
        client.create_index.assert_not_called()
        store.close()

    def test_existing_index_with_other_dimension(self):
        client = self.make_client(["raw-materials-stock"], dimension=1536)
        store = PineconeVectorStore(client=client)

        with pytest.raises(DimensionMismatchError):
            store.ensure_index(768)
        store.close()

    def test_missing_index_is_created(self):
        client = self.make_client([])
        store = PineconeVectorStore(client=client, index_name="materials-test")

        assert store.ensure_index(768) is True
        assert client.create_index.call_args.kwargs["dimension"] == 768
        assert client.create_index.call_args.kwargs["name"] == "materials-test"
        client.Index.assert_called_with("materials-test")
        store.close()

    def test_requires_credentials(self):
        with pytest.raises(VectorStoreError):
            PineconeVectorStore(api_key=None)
