"""
Vector Index Service for SmartSpec
Stores initiative snapshots as embeddings and searches them by similarity.

Backends:
- QdrantVectorService: Qdrant REST API + OpenAI embeddings (production)
- InMemoryVectorService: deterministic hash embeddings (local development, demos)
"""
import hashlib
import logging
import math
import uuid
from typing import Optional, List, Dict, Any, Tuple, Protocol

import httpx

from services.errors import RetrievalError

logger = logging.getLogger(__name__)

# OpenAI text-embedding-3-small dimension
DEFAULT_VECTOR_SIZE = 1536

SearchResult = Tuple[Dict[str, Any], float]


class VectorIndex(Protocol):
    """Similarity-search collaborator consumed by the core"""

    async def search(self, text: str, k: int) -> List[SearchResult]:
        ...

    async def upsert(self, point_id: str, text: str, payload: Dict[str, Any]) -> None:
        ...


def point_uuid(point_id: str) -> str:
    """Qdrant only accepts UUIDs or integers as point ids"""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"smartspec:{point_id}"))


class OpenAIEmbeddingService:
    """Embeds text through the OpenAI embeddings endpoint"""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str = "https://api.openai.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._transport = transport

    async def embed(self, text: str) -> List[float]:
        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/v1/embeddings",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json"
                },
                json={"model": self.model, "input": text}
            )
            if response.status_code != 200:
                raise RetrievalError(f"Embedding API error ({response.status_code}): {response.text}")
            data = response.json()
            return data["data"][0]["embedding"]


class HashEmbeddingEncoder:
    """Deterministic token-hash encoder; no model required"""

    def __init__(self, dimension: int = 64):
        if dimension <= 0:
            raise ValueError("Embedding dimension must be positive.")
        self.dimension = dimension

    async def embed(self, text: str) -> List[float]:
        return self.encode(text)

    def encode(self, text: str) -> List[float]:
        accumulator = [0.0] * self.dimension
        for token in text.lower().split():
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            for index in range(self.dimension):
                byte_value = digest[index % len(digest)]
                accumulator[index] += (byte_value / 255.0) * 2.0 - 1.0

        norm = math.sqrt(sum(component * component for component in accumulator))
        if norm == 0:
            return [0.0] * self.dimension
        return [component / norm for component in accumulator]


def cosine_similarity(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryVectorService:
    """Process-local vector index with cosine similarity"""

    def __init__(self, encoder: Optional[HashEmbeddingEncoder] = None):
        self.encoder = encoder or HashEmbeddingEncoder()
        self._points: Dict[str, Tuple[List[float], Dict[str, Any]]] = {}

    def __len__(self) -> int:
        return len(self._points)

    async def upsert(self, point_id: str, text: str, payload: Dict[str, Any]) -> None:
        vector = await self.encoder.embed(text)
        self._points[point_id] = (vector, {**payload, "text": text})

    async def search(self, text: str, k: int) -> List[SearchResult]:
        if not self._points or k <= 0:
            return []
        query = await self.encoder.embed(text)
        scored = [
            (payload, cosine_similarity(query, vector))
            for vector, payload in self._points.values()
        ]
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:k]


class QdrantVectorService:
    """Qdrant REST client for the initiatives collection"""

    def __init__(
        self,
        url: str,
        embedder,
        api_key: Optional[str] = None,
        collection: str = "initiatives",
        vector_size: int = DEFAULT_VECTOR_SIZE,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url.rstrip('/')
        self.embedder = embedder
        self.api_key = api_key
        self.collection = collection
        self.vector_size = vector_size
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["api-key"] = self.api_key
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.url,
            headers=self._headers(),
            transport=self._transport,
            timeout=self.timeout
        )

    async def ensure_collection(self) -> bool:
        """Create the collection if missing. Returns True when it was created."""
        async with self._client() as client:
            response = await client.get(f"/collections/{self.collection}")
            if response.status_code == 200:
                return False
            if response.status_code != 404:
                raise RetrievalError(f"Qdrant error ({response.status_code}): {response.text}")

            response = await client.put(
                f"/collections/{self.collection}",
                json={
                    "vectors": {"size": self.vector_size, "distance": "Cosine"},
                    "optimizers_config": {"default_segment_number": 2}
                }
            )
            if response.status_code != 200:
                raise RetrievalError(f"Qdrant create collection failed ({response.status_code}): {response.text}")

        logger.info(f"Created Qdrant collection: {self.collection}")
        return True

    async def upsert(self, point_id: str, text: str, payload: Dict[str, Any]) -> None:
        try:
            vector = await self.embedder.embed(text)
            async with self._client() as client:
                response = await client.put(
                    f"/collections/{self.collection}/points",
                    params={"wait": "true"},
                    json={
                        "points": [{
                            "id": point_uuid(point_id),
                            "vector": vector,
                            "payload": {**payload, "text": text}
                        }]
                    }
                )
        except httpx.HTTPError as e:
            raise RetrievalError(f"Qdrant upsert failed: {e}") from e
        if response.status_code != 200:
            raise RetrievalError(f"Qdrant upsert failed ({response.status_code}): {response.text}")

    async def search(self, text: str, k: int) -> List[SearchResult]:
        if k <= 0:
            return []
        try:
            vector = await self.embedder.embed(text)
            async with self._client() as client:
                response = await client.post(
                    f"/collections/{self.collection}/points/search",
                    json={"vector": vector, "limit": k, "with_payload": True}
                )
        except httpx.HTTPError as e:
            raise RetrievalError(f"Qdrant search failed: {e}") from e

        # A collection that was never created simply has no history yet
        if response.status_code == 404:
            return []
        if response.status_code != 200:
            raise RetrievalError(f"Qdrant search failed ({response.status_code}): {response.text}")

        results = []
        for point in response.json().get("result", []):
            if point.get("payload") is None:
                continue
            results.append((point["payload"], float(point.get("score", 0.0))))
        results.sort(key=lambda item: item[1], reverse=True)
        return results[:k]
