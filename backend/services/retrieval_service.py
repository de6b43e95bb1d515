"""
Historical Retriever for SmartSpec
Finds past initiatives similar to a new one and renders them as prompt context.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from services.errors import RetrievalError
from services.vector_service import VectorIndex

logger = logging.getLogger(__name__)


NO_SIMILAR_INITIATIVES = "No similar initiatives found."


@dataclass(frozen=True)
class SimilarInitiative:
    payload: Dict[str, Any]
    score: float


class HistoricalRetriever:
    """Top-K similarity lookup over the initiative index"""

    def __init__(self, index: VectorIndex, timeout: float = 10.0):
        self.index = index
        self.timeout = timeout

    async def find_similar(self, text: str, k: int = 3) -> List[SimilarInitiative]:
        """
        Return at most k matches sorted by descending score.
        An empty index yields []; backend failures and timeouts raise RetrievalError.
        """
        if k <= 0:
            return []

        try:
            results = await asyncio.wait_for(self.index.search(text, k), timeout=self.timeout)
        except RetrievalError:
            raise
        except asyncio.TimeoutError as e:
            raise RetrievalError(f"Similarity search timed out after {self.timeout}s") from e
        except Exception as e:
            raise RetrievalError(f"Similarity search failed: {e}") from e

        matches = [SimilarInitiative(payload=payload, score=float(score)) for payload, score in results]
        matches.sort(key=lambda m: m.score, reverse=True)
        logger.debug(f"Found {len(matches[:k])} similar initiatives")
        return matches[:k]

    @staticmethod
    def format_context(matches: List[SimilarInitiative]) -> str:
        if not matches:
            return NO_SIMILAR_INITIATIVES

        blocks = []
        for match in matches:
            payload = match.payload
            blocks.append(
                f"Title: {payload.get('title') or 'N/A'}\n"
                f"Description: {payload.get('description') or 'N/A'}\n"
                f"Category: {payload.get('category') or 'N/A'}\n"
                f"Priority: {payload.get('priority') or 'N/A'}\n"
                f"Status: {payload.get('status') or 'N/A'}\n"
                f"Similarity Score: {match.score:.2f}"
            )
        return "\n\n".join(blocks)
