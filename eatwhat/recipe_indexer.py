# eatwhat/recipe_indexer.py
"""Keeps the vector index in sync with stored recipes"""

import logging
from typing import Iterable

from eatwhat.errors import RecommendationError
from eatwhat.models import Recipe

logger = logging.getLogger(__name__)


def _format_number(value) -> str:
    if value is None:
        return ""
    return str(int(value)) if float(value).is_integer() else str(value)


def _step_text(step) -> str:
    if isinstance(step, dict):
        return str(step.get("description") or step.get("text") or "")
    return str(step)


def describe_recipe(recipe: Recipe) -> str:
    """Text representation of a recipe used for embedding"""
    ingredients = ", ".join(ingredient.name for ingredient in recipe.ingredients)
    steps = " ".join(_step_text(step) for step in recipe.steps)

    lines = [
        f"Name: {recipe.name}",
        f"Ingredients: {ingredients}",
        f"Method: {steps}",
        f"Cuisine: {', '.join(recipe.cuisine_type)}",
        f"Description: {recipe.description or ''}",
        f"Cooking time: {_format_number(recipe.cooking_time)}",
        f"Calories: {_format_number(recipe.calories)}",
        f"Diet: {', '.join(recipe.diet_type)}",
    ]
    return "\n".join(lines)


def index_payload(recipe: Recipe) -> dict:
    return {
        "name": recipe.name,
        "cuisine_type": recipe.cuisine_type,
        "diet_type": recipe.diet_type,
        "calories": recipe.calories,
        "cooking_time": recipe.cooking_time,
    }


class RecipeIndexer:
    def __init__(self, embedding_client, vector_index):
        self.embedding_client = embedding_client
        self.vector_index = vector_index

    async def index_recipe(self, recipe: Recipe) -> None:
        if not recipe.id:
            raise ValueError("Only stored recipes (with an id) can be indexed")

        vector = await self.embedding_client.get_embedding(describe_recipe(recipe))
        await self.vector_index.upsert(recipe.id, vector, index_payload(recipe))

    async def index_recipes(self, recipes: Iterable[Recipe]) -> dict:
        """Index a batch; one failing recipe does not stop the rest"""
        await self.vector_index.initialize()

        indexed, failed = 0, []
        for recipe in recipes:
            try:
                await self.index_recipe(recipe)
                indexed += 1
            except (RecommendationError, ValueError) as e:
                logger.error(f"Failed to index recipe {recipe.id}: {e}")
                failed.append(recipe.id)

        logger.info(f"Indexed {indexed} recipes, {len(failed)} failed")
        return {"indexed": indexed, "failed": failed}

    async def remove_recipe(self, recipe_id: str) -> None:
        await self.vector_index.delete(recipe_id)

    async def vector_status(self) -> dict:
        await self.vector_index.initialize()
        count = await self.vector_index.count()
        return {"status": "connected", "recipe_count": count}
