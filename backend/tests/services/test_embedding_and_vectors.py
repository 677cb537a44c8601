# tests/services/test_embedding_and_vectors.py
"""
Tests for EmbeddingService (OpenAI) and PineconeVectorStore

Coverage:
- Single / batch embeddings, input order preserved
- Batch chunking and cache reuse
- OpenAI errors surface as ProviderFailureError
- Pinecone fetch request shape, missing vectors, missing config

Run with: pytest tests/services/test_embedding_and_vectors.py -v
"""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
from openai import OpenAIError

from app.exceptions import ProviderFailureError, ProviderNotConfiguredError
from app.services.embedding_service import EmbeddingService
from app.services.vector_store import PineconeVectorStore, icp_namespace, values_of


# ============================================================================
# FIXTURES
# ============================================================================

def embedding_response(vectors, shuffle=False):
    items = [SimpleNamespace(index=i, embedding=v) for i, v in enumerate(vectors)]
    if shuffle:
        items.reverse()
    return SimpleNamespace(data=items)


@pytest.fixture
def openai_client():
    client = MagicMock()
    client.embeddings.create = AsyncMock()
    return client


# ============================================================================
# TEST: EmbeddingService
# ============================================================================

class TestEmbeddingService:

    @pytest.mark.asyncio
    async def test_single_embedding_is_cached(self, openai_client):
        openai_client.embeddings.create.return_value = embedding_response([[0.1, 0.2]])
        service = EmbeddingService(client=openai_client, model="test-model")

        first = await service.generate_embedding("hello")
        second = await service.generate_embedding("hello")

        assert first == second == [0.1, 0.2]
        openai_client.embeddings.create.assert_awaited_once()
        assert openai_client.embeddings.create.await_args.kwargs["model"] == "test-model"

    @pytest.mark.asyncio
    async def test_batch_preserves_order(self, openai_client):
        openai_client.embeddings.create.return_value = embedding_response(
            [[1.0], [2.0], [3.0]], shuffle=True
        )
        service = EmbeddingService(client=openai_client)

        vectors = await service.generate_batch_embeddings(["a", "b", "c"])

        assert vectors == [[1.0], [2.0], [3.0]]

    @pytest.mark.asyncio
    async def test_batch_chunks_and_skips_cached(self, openai_client):
        openai_client.embeddings.create.side_effect = [
            embedding_response([[1.0]]),
            embedding_response([[2.0], [3.0]]),
            embedding_response([[4.0]]),
        ]
        service = EmbeddingService(client=openai_client, batch_size=2)

        await service.generate_embedding("a")
        vectors = await service.generate_batch_embeddings(["a", "b", "c", "d"])

        assert vectors == [[1.0], [2.0], [3.0], [4.0]]
        inputs = [call.kwargs["input"] for call in openai_client.embeddings.create.await_args_list]
        assert inputs == ["a", ["b", "c"], ["d"]]

    @pytest.mark.asyncio
    async def test_openai_error_wrapped(self, openai_client):
        openai_client.embeddings.create.side_effect = OpenAIError("rate limited")
        service = EmbeddingService(client=openai_client)

        with pytest.raises(ProviderFailureError) as exc_info:
            await service.generate_embedding("hello")

        assert exc_info.value.provider == "openai"


# ============================================================================
# TEST: PineconeVectorStore
# ============================================================================

class TestPineconeVectorStore:

    @pytest.mark.asyncio
    async def test_fetch_vector(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={
                "vectors": {"icp-1": {"id": "icp-1", "values": [0.5, 0.5]}},
                "namespace": "team_t_icps",
            })

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            store = PineconeVectorStore(api_key="pc-key", index_host="https://idx.pinecone.test", client=client)
            record = await store.fetch_vector("team_t_icps", "icp-1")

        assert record == {"id": "icp-1", "values": [0.5, 0.5]}
        assert seen[0].url.path == "/vectors/fetch"
        assert seen[0].url.params["ids"] == "icp-1"
        assert seen[0].url.params["namespace"] == "team_t_icps"
        assert seen[0].headers["Api-Key"] == "pc-key"

    @pytest.mark.asyncio
    async def test_missing_vector(self):
        def handler(request):
            return httpx.Response(200, json={"vectors": {}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            store = PineconeVectorStore(api_key="k", index_host="https://idx.pinecone.test", client=client)
            record = await store.fetch_vector("ns", "icp-1")

        assert record is None
        assert values_of(record) is None

    @pytest.mark.asyncio
    async def test_not_configured(self):
        store = PineconeVectorStore(api_key="", index_host="")

        with pytest.raises(ProviderNotConfiguredError):
            await store.fetch_vector("ns", "icp-1")

    def test_namespace(self):
        assert icp_namespace("abc") == "team_abc_icps"
