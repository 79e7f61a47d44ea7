# eatwhat/vector_recommendation_service.py
"""Recommendations served from the vector index instead of a completion provider"""

import logging
from typing import Optional

from eatwhat.models import DietaryPreferences, RecommendationResult
from eatwhat.query_composer import QueryVectorComposer
from eatwhat.retrieval import RetrievalEngine

logger = logging.getLogger(__name__)

DAILY_TITLE = "Today's picks"
SIMILAR_TITLE = "Similar recipes"


class VectorRecommendationService:
    """
    Daily picks and similar-recipe lookups.

    Query vector priority for daily picks: explicit query text, then the user's
    stored preferences and favorites, then the current season and meal slot.
    """

    def __init__(self, embedding_client, vector_index, store, composer: QueryVectorComposer = None):
        self.vector_index = vector_index
        self.composer = composer or QueryVectorComposer(embedding_client, store)
        self.engine = RetrievalEngine(embedding_client, vector_index, store)

    async def _query_vector(self, user_id: Optional[str], query: Optional[str]) -> list[float]:
        if query and query.strip():
            return await self.composer.for_query(query)
        if user_id:
            return await self.composer.for_user(user_id)
        return await self.composer.for_context()

    async def get_daily_recommendations(
        self,
        user_id: Optional[str] = None,
        query: Optional[str] = None,
        limit: int = 10,
        page: int = 1,
        dietary_preferences: Optional[DietaryPreferences] = None,
    ) -> RecommendationResult:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if page < 1:
            raise ValueError("page must be at least 1")

        await self.vector_index.initialize()

        vector = await self._query_vector(user_id, query)
        offset = (page - 1) * limit
        recipes = await self.engine.retrieve(
            vector, limit=limit, offset=offset, preferences=dietary_preferences
        )

        logger.info(f"VECTOR: Daily picks page {page} returned {len(recipes)} recipes")
        return RecommendationResult(recipes=recipes, title=DAILY_TITLE)

    async def get_similar_recipes(self, recipe_id: str, limit: int = 5) -> RecommendationResult:
        if limit < 1:
            raise ValueError("limit must be at least 1")

        await self.vector_index.initialize()

        recipes = await self.engine.similar(recipe_id, limit=limit)
        logger.info(f"VECTOR: Found {len(recipes)} recipes similar to {recipe_id}")
        return RecommendationResult(recipes=recipes, title=SIMILAR_TITLE)
