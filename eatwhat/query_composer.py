# eatwhat/query_composer.py
"""
Builds the query embedding for vector retrieval.

Three strategies, chosen by the caller:
    for_query   - embed an explicit search text
    for_user    - blend the user's stored preferences with recent favorites
    for_context - describe the current season and meal slot
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Sequence

from eatwhat.models import DietaryPreferences
from eatwhat.recipe_indexer import describe_recipe

logger = logging.getLogger(__name__)

PREFERENCE_WEIGHT = 0.7
FAVORITES_WEIGHT = 0.3
RECENT_FAVORITES_LIMIT = 5

GENERIC_CONTEXT_TEXT = "Delicious, healthy home-style recipes."


def combine_vectors(vectors: Sequence[Sequence[float]], weights: Sequence[float]) -> list[float]:
    """Weighted per-dimension sum: result[d] = sum(w_i * v_i[d])"""
    if not vectors:
        raise ValueError("At least one vector is required")
    if len(vectors) != len(weights):
        raise ValueError(f"Got {len(vectors)} vectors but {len(weights)} weights")

    dimension = len(vectors[0])
    if any(len(vector) != dimension for vector in vectors):
        raise ValueError("All vectors must have the same dimension")

    result = [0.0] * dimension
    for vector, weight in zip(vectors, weights):
        for d in range(dimension):
            result[d] += vector[d] * weight
    return result


def blend_weights(favorite_count: int) -> list[float]:
    """Preference vector first, remaining weight split evenly across favorites"""
    if favorite_count <= 0:
        return [1.0]
    share = FAVORITES_WEIGHT / favorite_count
    return [PREFERENCE_WEIGHT] + [share] * favorite_count


def season_for_month(month: int) -> str:
    if 3 <= month <= 5:
        return "spring"
    if 6 <= month <= 8:
        return "summer"
    if 9 <= month <= 11:
        return "autumn"
    return "winter"


def meal_slot_for_hour(hour: int) -> str:
    if 6 <= hour < 10:
        return "breakfast"
    if 10 <= hour < 14:
        return "lunch"
    if 14 <= hour < 17:
        return "afternoon snack"
    if 17 <= hour < 21:
        return "dinner"
    return "late-night snack"


def describe_context(
    season: Optional[str] = None,
    meal_type: Optional[str] = None,
    holiday: Optional[str] = None,
    time_of_day: Optional[str] = None,
) -> str:
    parts = []
    if season:
        parts.append(f"Recipes suited to {season}, made with seasonal ingredients.")
    if holiday:
        parts.append(f"Traditional or creative recipes for {holiday}.")
    if meal_type:
        parts.append(f"Recipes suited to {meal_type}.")
    if time_of_day:
        parts.append(f"Dishes to enjoy in the {time_of_day}.")
    return " ".join(parts) or GENERIC_CONTEXT_TEXT


def describe_preferences(preferences: DietaryPreferences) -> str:
    clauses = [
        ("Diet types", preferences.diet_type),
        ("Preferred cuisines", preferences.cuisine_type),
        ("Dietary restrictions", preferences.restrictions),
        ("Allergies", preferences.allergies),
    ]
    return " ".join(f"{label}: {', '.join(values)}." for label, values in clauses if values)


class QueryVectorComposer:
    def __init__(self, embedding_client, store, clock: Callable[[], datetime] = datetime.now):
        self.embedding_client = embedding_client
        self.store = store
        self.clock = clock

    async def for_query(self, query: str) -> list[float]:
        return await self.embedding_client.get_embedding(query)

    async def for_context(self, now: Optional[datetime] = None, holiday: Optional[str] = None) -> list[float]:
        now = now or self.clock()
        text = describe_context(
            season=season_for_month(now.month),
            meal_type=meal_slot_for_hour(now.hour),
            holiday=holiday,
        )
        logger.debug(f"Ambient query context: {text}")
        return await self.embedding_client.get_embedding(text)

    async def for_user(self, user_id: str) -> list[float]:
        preferences = await self.store.get_preferences(user_id)
        preference_text = describe_preferences(preferences) if preferences else ""
        if not preference_text:
            logger.info(f"No usable preferences for user {user_id}, using ambient context")
            return await self.for_context()

        preference_vector = await self.embedding_client.get_embedding(preference_text)

        favorite_ids = await self.store.get_recent_favorite_ids(user_id, RECENT_FAVORITES_LIMIT)
        favorites = await self.store.get_recipes_by_ids(favorite_ids) if favorite_ids else []
        if not favorites:
            return preference_vector

        favorite_vectors = []
        for recipe in favorites:
            favorite_vectors.append(await self.embedding_client.get_embedding(describe_recipe(recipe)))

        weights = blend_weights(len(favorite_vectors))
        logger.debug(f"Blending preferences with {len(favorite_vectors)} favorites, weights {weights}")
        return combine_vectors([preference_vector, *favorite_vectors], weights)
