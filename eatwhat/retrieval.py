# eatwhat/retrieval.py
"""
Vector retrieval and ranking.

Search returns ids in similarity order; recipes are then batch-loaded from the
relational store (in no particular order), filtered by the user's hard
constraints, and put back into search order.
"""

import logging
from typing import Optional

from eatwhat.errors import RecipeNotFoundError
from eatwhat.models import DietaryPreferences, Recipe
from eatwhat.recipe_indexer import describe_recipe

logger = logging.getLogger(__name__)


def matches_preferences(recipe: Recipe, preferences: DietaryPreferences) -> bool:
    """
    Tag constraints apply whenever the preference list is non-empty, so an
    untagged recipe never satisfies them. Numeric constraints are skipped
    when the recipe has no value for the field.
    """
    if preferences.diet_type:
        if not set(preferences.diet_type) & set(recipe.diet_type):
            return False

    if preferences.cuisine_type:
        if not any(cuisine in preferences.cuisine_type for cuisine in recipe.cuisine_type):
            return False

    if recipe.calories is not None:
        if preferences.calories_min is not None and recipe.calories < preferences.calories_min:
            return False
        if preferences.calories_max is not None and recipe.calories > preferences.calories_max:
            return False

    if preferences.max_cooking_time is not None and recipe.cooking_time is not None:
        if recipe.cooking_time > preferences.max_cooking_time:
            return False

    return True


def filter_by_preferences(
    recipes: list[Recipe], preferences: Optional[DietaryPreferences]
) -> list[Recipe]:
    if preferences is None:
        return list(recipes)
    return [recipe for recipe in recipes if matches_preferences(recipe, preferences)]


def restore_rank(recipes: list[Recipe], ranked_ids: list[str]) -> list[Recipe]:
    """Reorder recipes to follow ranked_ids; recipes absent from ranked_ids are dropped"""
    by_id = {recipe.id: recipe for recipe in recipes}
    return [by_id[recipe_id] for recipe_id in ranked_ids if recipe_id in by_id]


class RetrievalEngine:
    def __init__(self, embedding_client, vector_index, store):
        self.embedding_client = embedding_client
        self.vector_index = vector_index
        self.store = store

    async def retrieve(
        self,
        vector: list[float],
        limit: int,
        offset: int = 0,
        preferences: Optional[DietaryPreferences] = None,
    ) -> list[Recipe]:
        hits = await self.vector_index.search(vector, limit=limit, offset=offset)
        if not hits:
            return []

        ranked_ids = [hit.id for hit in hits]
        recipes = await self.store.get_recipes_by_ids(ranked_ids)
        if len(recipes) < len(ranked_ids):
            logger.warning(
                f"{len(ranked_ids) - len(recipes)} indexed recipes are missing from the store"
            )

        filtered = filter_by_preferences(recipes, preferences)
        logger.debug(f"Retrieved {len(hits)} hits, {len(filtered)} after preference filter")
        return restore_rank(filtered, ranked_ids)

    async def similar(self, recipe_id: str, limit: int = 5) -> list[Recipe]:
        source = await self.store.get_recipe(recipe_id)
        if source is None:
            raise RecipeNotFoundError(recipe_id)

        vector = await self.embedding_client.get_embedding(describe_recipe(source))
        hits = await self.vector_index.search(vector, limit=limit + 1, offset=0)

        ranked_ids = [hit.id for hit in hits if hit.id != str(recipe_id)][:limit]
        if not ranked_ids:
            return []

        recipes = await self.store.get_recipes_by_ids(ranked_ids)
        return restore_rank(recipes, ranked_ids)
