# eatwhat/runtime.py
"""
Wires the recommendation core to its backing services.

Usage:
    async with recommendation_runtime() as runtime:
        recipe = await runtime.recommendations.get_single_meal_recommendation(request)
        picks = await runtime.vector_recommendations.get_daily_recommendations(user_id=user_id)
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

import httpx

from eatwhat.database import close_db, get_recipe_store
from eatwhat.embedding_client import EmbeddingClient
from eatwhat.image_service import ImageService
from eatwhat.llm_client import LLM_REQUEST_TIMEOUT
from eatwhat.logging_config import configure_logging
from eatwhat.provider_router import ProviderRouter
from eatwhat.recipe_indexer import RecipeIndexer
from eatwhat.recommendation_service import RecommendationService
from eatwhat.redis_client import close_redis, get_embedding_cache
from eatwhat.vector_index import VectorIndex
from eatwhat.vector_recommendation_service import VectorRecommendationService

logger = logging.getLogger(__name__)


@dataclass
class RecommendationRuntime:
    router: ProviderRouter
    recommendations: RecommendationService
    vector_recommendations: VectorRecommendationService
    indexer: RecipeIndexer
    images: ImageService
    vector_index: VectorIndex
    http_client: httpx.AsyncClient


@asynccontextmanager
async def recommendation_runtime(
    vector_index: Optional[VectorIndex] = None, use_embedding_cache: bool = True
):
    """Open pools and clients for the duration of the block, then close them"""
    configure_logging()

    http_client = None
    try:
        store = await get_recipe_store()
        cache = await get_embedding_cache() if use_embedding_cache else None
        http_client = httpx.AsyncClient(timeout=LLM_REQUEST_TIMEOUT)
        vector_index = vector_index or VectorIndex()

        embedding_client = EmbeddingClient(cache=cache, http_client=http_client)
        router = ProviderRouter(store, http_client=http_client)

        runtime = RecommendationRuntime(
            router=router,
            recommendations=RecommendationService(router),
            vector_recommendations=VectorRecommendationService(embedding_client, vector_index, store),
            indexer=RecipeIndexer(embedding_client, vector_index),
            images=ImageService(http_client=http_client),
            vector_index=vector_index,
            http_client=http_client,
        )
        logger.info("Recommendation runtime started")

        yield runtime
    finally:
        logger.info("Shutting down recommendation runtime...")
        if http_client is not None:
            await http_client.aclose()
        if vector_index is not None:
            await vector_index.close()
        if use_embedding_cache:
            await close_redis()
        await close_db()
