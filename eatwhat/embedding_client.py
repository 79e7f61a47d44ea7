# eatwhat/embedding_client.py
"""Text embeddings via an OpenAI-compatible ``/embeddings`` endpoint"""

import logging
import os
from typing import Optional

import httpx

from eatwhat.errors import EmptyResultError, TransportError
from eatwhat.llm_client import raise_for_status
from eatwhat.models import EMBEDDING_DIMENSION
from eatwhat.redis_client import EmbeddingCache

logger = logging.getLogger(__name__)

PROVIDER_NAME = "embedding"


class EmbeddingClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        api_endpoint: Optional[str] = None,
        model: Optional[str] = None,
        dimension: Optional[int] = EMBEDDING_DIMENSION,
        cache: Optional[EmbeddingCache] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key or os.getenv("SILICONFLOW_API_KEY")
        self.api_endpoint = (api_endpoint or os.getenv("SILICONFLOW_API_ENDPOINT") or "").rstrip("/")
        self.model = (
            model or os.getenv("SILICONFLOW_EMBEDDING_MODEL") or os.getenv("SILICONFLOW_MODEL")
        )
        self.dimension = dimension
        self.cache = cache
        self.timeout = timeout
        self._http_client = http_client

    async def _post(self, payload: dict) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        url = f"{self.api_endpoint}/embeddings"
        try:
            if self._http_client is not None:
                return await self._http_client.post(url, headers=headers, json=payload)
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException:
            raise TransportError(
                "Timeout calling embedding API", provider=PROVIDER_NAME, stage="embedding", status_code=408
            )
        except httpx.RequestError as e:
            raise TransportError(
                f"Connection error to embedding API: {e}",
                provider=PROVIDER_NAME,
                stage="embedding",
                status_code=503,
            )

    async def get_embedding(self, text: str) -> list[float]:
        """Embed one text. Empty text is rejected rather than sent upstream."""
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        if self.cache is not None:
            cached = await self.cache.get(text, self.model)
            if cached is not None:
                logger.debug("Embedding cache hit")
                return cached

        response = await self._post({"input": text, "model": self.model})
        raise_for_status(response, PROVIDER_NAME, "embedding")

        try:
            vector = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise EmptyResultError(
                "Embedding response contained no vector", provider=PROVIDER_NAME, stage="embedding"
            )

        if self.dimension and len(vector) != self.dimension:
            raise TransportError(
                f"Embedding dimension {len(vector)} does not match expected {self.dimension}",
                provider=PROVIDER_NAME,
                stage="embedding",
                status_code=response.status_code,
            )

        if self.cache is not None:
            await self.cache.set(text, vector, self.model)
        return vector
