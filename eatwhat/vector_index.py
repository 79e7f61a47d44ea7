# eatwhat/vector_index.py
"""
Recipe vectors in Qdrant.

One point per recipe, keyed by the recipe's UUID, cosine distance. The index
only owns vectors and a small display payload; recipes themselves stay in the
relational store.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from qdrant_client import AsyncQdrantClient
from qdrant_client.http import models
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from eatwhat.errors import TransportError
from eatwhat.models import EMBEDDING_DIMENSION

logger = logging.getLogger(__name__)

PROVIDER_NAME = "qdrant"


@dataclass
class SearchHit:
    id: str
    score: float
    payload: dict[str, Any] = field(default_factory=dict)


class VectorIndex:
    """
    Thin async wrapper over a Qdrant collection.

    Usage:
        index = VectorIndex()
        await index.initialize()
        await index.upsert(recipe_id, vector, {"name": "..."})
        hits = await index.search(query_vector, limit=10, offset=0)
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        collection_name: Optional[str] = None,
        vector_dimension: int = EMBEDDING_DIMENSION,
        client: Optional[AsyncQdrantClient] = None,
        timeout: int = 30,
    ):
        self.url = url or os.getenv("QDRANT_URL", "http://localhost:6333")
        self.collection_name = collection_name or os.getenv("QDRANT_COLLECTION", "recipes")
        self.vector_dimension = vector_dimension
        self.client = client or AsyncQdrantClient(
            url=self.url,
            api_key=api_key or os.getenv("QDRANT_API_KEY"),
            timeout=timeout,
        )
        self._initialized = False

    def _wrap(self, e: Exception, action: str) -> TransportError:
        status_code = getattr(e, "status_code", None)
        logger.error(f"Qdrant {action} failed on '{self.collection_name}': {e}")
        return TransportError(
            f"Vector index {action} failed: {e}",
            provider=PROVIDER_NAME,
            stage=action,
            status_code=status_code,
        )

    async def initialize(self) -> None:
        """Create the collection if it does not exist yet"""
        if self._initialized:
            return

        try:
            collections = (await self.client.get_collections()).collections
            if not any(c.name == self.collection_name for c in collections):
                await self.client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=models.VectorParams(
                        size=self.vector_dimension,
                        distance=models.Distance.COSINE,
                    ),
                )
                logger.info(f"Collection {self.collection_name} created successfully")
        except (UnexpectedResponse, ResponseHandlingException) as e:
            raise self._wrap(e, "initialize")

        self._initialized = True

    async def upsert(self, recipe_id: str, vector: list[float], payload: dict) -> None:
        try:
            await self.client.upsert(
                collection_name=self.collection_name,
                points=[models.PointStruct(id=recipe_id, vector=vector, payload=payload)],
            )
        except (UnexpectedResponse, ResponseHandlingException) as e:
            raise self._wrap(e, "upsert")
        logger.info(f"Recipe {recipe_id} added/updated in vector database")

    async def search(self, vector: list[float], limit: int, offset: int = 0) -> list[SearchHit]:
        """Nearest neighbours, most similar first"""
        try:
            response = await self.client.query_points(
                collection_name=self.collection_name,
                query=vector,
                limit=limit,
                offset=offset or 0,
                with_payload=True,
            )
        except (UnexpectedResponse, ResponseHandlingException) as e:
            raise self._wrap(e, "search")

        return [
            SearchHit(id=str(point.id), score=point.score, payload=point.payload or {})
            for point in response.points
        ]

    async def delete(self, recipe_id: str) -> None:
        try:
            await self.client.delete(
                collection_name=self.collection_name,
                points_selector=models.PointIdsList(points=[recipe_id]),
            )
        except (UnexpectedResponse, ResponseHandlingException) as e:
            raise self._wrap(e, "delete")
        logger.info(f"Recipe {recipe_id} deleted from vector database")

    async def count(self) -> int:
        try:
            result = await self.client.count(collection_name=self.collection_name, exact=True)
        except (UnexpectedResponse, ResponseHandlingException) as e:
            raise self._wrap(e, "count")
        return result.count

    async def close(self) -> None:
        await self.client.close()
