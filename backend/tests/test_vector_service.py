"""
Tests for the vector index backends.
"""
import json

import httpx
import pytest

from services.errors import RetrievalError
from services.vector_service import (
    HashEmbeddingEncoder, InMemoryVectorService, OpenAIEmbeddingService, QdrantVectorService,
    cosine_similarity, point_uuid
)


class FixedEmbedder:
    async def embed(self, text):
        return [0.1, 0.2, 0.3]


def qdrant(handler, embedder=None, api_key=None):
    return QdrantVectorService(
        "http://qdrant:6333/", embedder or FixedEmbedder(), api_key=api_key,
        collection="initiatives", vector_size=3, transport=httpx.MockTransport(handler)
    )


class TestHashEmbeddingEncoder:

    def test_deterministic_and_normalised(self):
        encoder = HashEmbeddingEncoder(dimension=16)
        vector = encoder.encode("mobile app redesign")
        assert vector == encoder.encode("mobile app redesign")
        assert sum(x * x for x in vector) == pytest.approx(1.0)

    def test_empty_text_is_zero_vector(self):
        assert HashEmbeddingEncoder(dimension=8).encode("") == [0.0] * 8

    def test_rejects_non_positive_dimension(self):
        with pytest.raises(ValueError):
            HashEmbeddingEncoder(dimension=0)

    def test_cosine_of_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


class TestInMemoryVectorService:

    @pytest.mark.asyncio
    async def test_empty_index_returns_nothing(self):
        assert await InMemoryVectorService().search("anything", 3) == []

    @pytest.mark.asyncio
    async def test_upsert_replaces_existing_point(self):
        index = InMemoryVectorService()
        await index.upsert("init_1", "first text", {"title": "First"})
        await index.upsert("init_1", "second text", {"title": "Second"})

        assert len(index) == 1
        results = await index.search("second text", 5)
        assert results[0][0]["title"] == "Second"
        assert results[0][0]["text"] == "second text"

    @pytest.mark.asyncio
    async def test_exact_text_scores_highest(self):
        index = InMemoryVectorService()
        await index.upsert("a", "customer support chatbot", {"title": "Chatbot"})
        await index.upsert("b", "quarterly finance report", {"title": "Finance"})

        results = await index.search("customer support chatbot", 1)

        assert len(results) == 1
        assert results[0][0]["title"] == "Chatbot"
        assert results[0][1] == pytest.approx(1.0)


class TestOpenAIEmbeddingService:

    @pytest.mark.asyncio
    async def test_returns_embedding(self):
        def handler(request):
            assert request.url == "https://api.openai.com/v1/embeddings"
            assert json.loads(request.content) == {"model": "text-embedding-3-small", "input": "hello"}
            return httpx.Response(200, json={"data": [{"embedding": [0.5, 0.5]}]})

        embedder = OpenAIEmbeddingService("sk-test", transport=httpx.MockTransport(handler))
        assert await embedder.embed("hello") == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_api_error(self):
        embedder = OpenAIEmbeddingService(
            "sk-test", transport=httpx.MockTransport(lambda request: httpx.Response(429, text="slow down"))
        )
        with pytest.raises(RetrievalError):
            await embedder.embed("hello")


class TestQdrantVectorService:

    @pytest.mark.asyncio
    async def test_search_returns_sorted_payloads(self):
        def handler(request):
            assert request.url.path == "/collections/initiatives/points/search"
            body = json.loads(request.content)
            assert body["limit"] == 2
            assert body["vector"] == [0.1, 0.2, 0.3]
            return httpx.Response(200, json={"result": [
                {"id": "1", "score": 0.4, "payload": {"title": "B"}},
                {"id": "2", "score": 0.9, "payload": {"title": "A"}},
                {"id": "3", "score": 0.8, "payload": None},
            ]})

        results = await qdrant(handler).search("query", 2)

        assert results == [({"title": "A"}, 0.9), ({"title": "B"}, 0.4)]

    @pytest.mark.asyncio
    async def test_missing_collection_is_empty_history(self):
        results = await qdrant(lambda request: httpx.Response(404, json={})).search("query", 3)
        assert results == []

    @pytest.mark.asyncio
    async def test_search_server_error(self):
        with pytest.raises(RetrievalError):
            await qdrant(lambda request: httpx.Response(500, text="boom")).search("query", 3)

    @pytest.mark.asyncio
    async def test_search_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        with pytest.raises(RetrievalError):
            await qdrant(handler).search("query", 3)

    @pytest.mark.asyncio
    async def test_upsert_uses_uuid_point_ids(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"status": "ok"})

        await qdrant(handler, api_key="qk").upsert("init_abc", "Build Auth\nOAuth2", {"title": "Build Auth"})

        request = requests[0]
        assert request.method == "PUT"
        assert request.url.params["wait"] == "true"
        assert request.headers["api-key"] == "qk"
        point = json.loads(request.content)["points"][0]
        assert point["id"] == point_uuid("init_abc")
        assert point["payload"] == {"title": "Build Auth", "text": "Build Auth\nOAuth2"}

    @pytest.mark.asyncio
    async def test_upsert_failure(self):
        with pytest.raises(RetrievalError):
            await qdrant(lambda request: httpx.Response(503, text="unavailable")).upsert("x", "t", {})

    @pytest.mark.asyncio
    async def test_ensure_collection_creates_when_missing(self):
        calls = []

        def handler(request):
            calls.append(request.method)
            if request.method == "GET":
                return httpx.Response(404, json={})
            assert json.loads(request.content)["vectors"] == {"size": 3, "distance": "Cosine"}
            return httpx.Response(200, json={"result": True})

        assert await qdrant(handler).ensure_collection() is True
        assert calls == ["GET", "PUT"]

    @pytest.mark.asyncio
    async def test_ensure_collection_existing(self):
        assert await qdrant(lambda request: httpx.Response(200, json={})).ensure_collection() is False

    def test_point_uuid_is_stable(self):
        assert point_uuid("init_1") == point_uuid("init_1")
        assert point_uuid("init_1") != point_uuid("init_2")
