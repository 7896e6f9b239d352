"""
Vector Index - project-scoped similarity search over Qdrant.

Every point carries a ``project_id`` payload key; queries are always
filtered to one project. Payload fields used for rendering: title, path,
snippet (falls back to content).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import FieldCondition, Filter, MatchValue

from errors import ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass
class VectorMatch:
    """One ranked match."""

    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class VectorIndex:
    """Async wrapper around a single Qdrant collection."""

    def __init__(self, client: AsyncQdrantClient, collection: str, min_score: float = 0.0):
        self.client = client
        self.collection = collection
        self.min_score = min_score

    @classmethod
    def from_config(cls, config) -> Optional["VectorIndex"]:
        """Build from config, or None when no Qdrant URL is configured."""
        if not config.qdrant_url:
            return None
        client = AsyncQdrantClient(url=config.qdrant_url, api_key=config.qdrant_api_key or None)
        return cls(client, config.qdrant_collection, min_score=config.semantic_min_score)

    async def query(self, vector: List[float], project_id: str, limit: int = 5) -> List[VectorMatch]:
        """Return the top matches for vector within project_id, best first."""
        try:
            response = await self.client.query_points(
                collection_name=self.collection,
                query=vector,
                limit=limit,
                query_filter=Filter(must=[FieldCondition(key="project_id", match=MatchValue(value=project_id))]),
                with_payload=True,
            )
        except Exception as e:
            raise ExternalServiceError("Vector query failed", details=str(e), service="vector_index") from e

        matches = []
        for hit in response.points:
            if hit.score < self.min_score:
                continue
            payload = hit.payload or {}
            metadata = {k: v for k, v in payload.items() if k != "project_id"}
            matches.append(VectorMatch(score=hit.score, metadata=metadata))

        matches.sort(key=lambda m: m.score, reverse=True)
        return matches

    async def aclose(self) -> None:
        await self.client.close()
