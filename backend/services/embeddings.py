"""
Embedding Client - query embeddings from the Voyage API over httpx.

Usage:
    embedder = EmbeddingClient.from_config(runtime_config)
    if embedder:
        vector = await embedder.embed("landing page hero copy")
"""

import logging
from typing import List, Optional

import httpx

from errors import ExternalServiceError

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """Async client for a Voyage-compatible /embeddings endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.voyageai.com/v1",
        model: str = "voyage-3",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    @classmethod
    def from_config(cls, config) -> Optional["EmbeddingClient"]:
        """Build from config, or None when no key is configured."""
        if not config.voyage_api_key:
            return None
        return cls(api_key=config.voyage_api_key, base_url=config.voyage_base_url, model=config.model_embedding)

    async def embed(self, text: str) -> List[float]:
        """Embed a single query string."""
        resp = await self._client.post(
            "/embeddings",
            json={"input": [text], "model": self.model, "input_type": "query"},
        )
        if resp.status_code >= 400:
            raise ExternalServiceError(
                f"Embedding request failed: {resp.status_code}",
                details=resp.text[:300],
                service="embedding",
                status_code=resp.status_code,
            )
        data = resp.json().get("data") or []
        if not data or "embedding" not in data[0]:
            raise ExternalServiceError("Embedding response had no vector", service="embedding")
        return list(data[0]["embedding"])

    async def aclose(self) -> None:
        await self._client.aclose()
