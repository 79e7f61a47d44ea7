# eatwhat/recipe_parser.py
"""
Turns raw provider output into a validated Recipe.

Text completions are JSON (optionally wrapped in a Markdown code fence).
Workflow completions are structured outputs that may be nested under
``outputs``/``data`` and may carry generated images in several shapes.

Required fields are never defaulted: every missing or mistyped field raises
RecipeParseError naming the field.
"""

import json
import logging
from typing import Any, Optional

from eatwhat.errors import EmptyResultError, RecipeParseError
from eatwhat.json_utils import strip_code_fence
from eatwhat.models import VALID_UNITS, CompletionResult, Ingredient, NutritionFacts, Recipe

logger = logging.getLogger(__name__)

NUTRITION_AXES = ("protein", "fat", "carbs", "fiber")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require_number(source: dict, key: str, field: str) -> float:
    value = source.get(key)
    if value is None:
        raise RecipeParseError(f"Missing required field: {field}", field=field)
    if not _is_number(value):
        raise RecipeParseError(f"Invalid {field}: must be a number, got {value!r}", field=field)
    return value


def _parse_ingredients(raw: Any) -> list[Ingredient]:
    if raw is None:
        raise RecipeParseError("Missing required field: ingredients", field="ingredients")
    if not isinstance(raw, list):
        raise RecipeParseError("Invalid ingredients: must be a list", field="ingredients")

    ingredients = []
    for index, item in enumerate(raw):
        field = f"ingredients[{index}]"
        if not isinstance(item, dict):
            raise RecipeParseError(f"Invalid ingredient format at {field}", field=field)

        name = item.get("name")
        if not name or not isinstance(name, str):
            raise RecipeParseError(f"Missing ingredient name at {field}", field=f"{field}.name")

        amount = item.get("amount")
        if not _is_number(amount):
            raise RecipeParseError(
                f"Invalid amount for ingredient {name}: must be a number", field=f"{field}.amount"
            )

        unit = item.get("unit")
        if unit not in VALID_UNITS:
            raise RecipeParseError(
                f"Invalid unit for ingredient {name}: {unit!r} is not a valid unit",
                field=f"{field}.unit",
            )

        ingredients.append(Ingredient(name=name, amount=amount, unit=unit))
    return ingredients


def _parse_steps(raw: Any) -> list:
    if not raw:
        raise RecipeParseError("Missing required field: steps", field="steps")
    if not isinstance(raw, list):
        raise RecipeParseError("Invalid steps: must be a list", field="steps")
    return raw


def _nutrition_source(raw: dict) -> Optional[dict]:
    source = raw.get("nutritionFacts")
    # Some models emit a one-element list
    if isinstance(source, list):
        source = source[0] if source else None
    return source if isinstance(source, dict) else None


def _parse_nutrition(source: Optional[dict], calories: float) -> NutritionFacts:
    if source is None:
        raise RecipeParseError("Missing required field: nutritionFacts", field="nutritionFacts")

    values = {
        axis: _require_number(source, axis, f"nutritionFacts.{axis}") for axis in NUTRITION_AXES
    }
    return NutritionFacts(calories=calories, **values)


def _tags(raw: dict, key: str) -> list[str]:
    value = raw.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise RecipeParseError(f"Invalid {key}: must be a list", field=key)
    return value


def build_recipe(raw: Any, calories: Optional[float] = None) -> Recipe:
    """Validate a decoded recipe object and build the canonical Recipe"""
    if not isinstance(raw, dict):
        raise RecipeParseError("Recipe must be a JSON object", field="recipe")

    name = raw.get("name")
    if not name or not isinstance(name, str):
        raise RecipeParseError("Missing required field: name", field="name")

    ingredients = _parse_ingredients(raw.get("ingredients"))
    steps = _parse_steps(raw.get("steps"))

    if calories is None:
        calories = _require_number(raw, "calories", "calories")
    cooking_time = _require_number(raw, "cookingTime", "cookingTime")
    nutrition = _parse_nutrition(_nutrition_source(raw), calories)

    return Recipe(
        name=name,
        description=raw.get("description"),
        ingredients=ingredients,
        steps=steps,
        calories=calories,
        cooking_time=cooking_time,
        nutrition_facts=nutrition,
        cuisine_type=_tags(raw, "cuisineType"),
        diet_type=_tags(raw, "dietType"),
        img=raw.get("img"),
    )


def parse_recipe_text(content: str) -> Recipe:
    """Parse a JSON text completion"""
    if not content or not content.strip():
        raise EmptyResultError("Provider returned empty text", stage="parse")

    cleaned = strip_code_fence(content)
    try:
        raw = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.debug(f"Unparseable recipe text: {cleaned[:500]}")
        raise RecipeParseError(f"Failed to parse recipe: invalid JSON ({e})", field="json")

    return build_recipe(raw)


def unwrap_outputs(outputs: dict) -> dict:
    """Peel ``outputs`` / ``data`` envelopes until the recipe object is reached"""
    current = outputs
    while isinstance(current, dict) and "name" not in current:
        if isinstance(current.get("outputs"), dict):
            current = current["outputs"]
        elif isinstance(current.get("data"), dict):
            current = current["data"]
        else:
            break
    return current


def extract_image_urls(outputs: dict) -> list[str]:
    """Generated image URLs from ``files``, ``json[].images`` and ``json[].data``"""
    urls = []

    for file in outputs.get("files") or []:
        if not isinstance(file, dict):
            continue
        url = file.get("url") if isinstance(file.get("url"), str) else file.get("remote_url")
        if isinstance(url, str):
            urls.append(url)

    for item in outputs.get("json") or []:
        if not isinstance(item, dict):
            continue
        for key in ("images", "data"):
            for entry in item.get(key) or []:
                if isinstance(entry, dict) and isinstance(entry.get("url"), str):
                    urls.append(entry["url"])

    return urls


def parse_workflow_outputs(outputs: dict) -> Recipe:
    """Parse structured workflow outputs"""
    if not isinstance(outputs, dict) or not outputs:
        raise EmptyResultError("Workflow produced no outputs", stage="parse")

    raw = unwrap_outputs(outputs)

    # Workflows may report calories only inside nutritionFacts
    calories = raw.get("calories")
    if calories is None:
        source = _nutrition_source(raw)
        if source is not None:
            calories = _require_number(source, "calories", "calories")
    elif not _is_number(calories):
        raise RecipeParseError(f"Invalid calories: must be a number, got {calories!r}", field="calories")

    recipe = build_recipe(raw, calories=calories)

    image_urls = extract_image_urls(raw)
    if image_urls:
        if not recipe.img:
            recipe.img = image_urls[0]
        recipe.image_url = image_urls[0]
        recipe.generated_images = image_urls
    if isinstance(raw.get("files"), list):
        recipe.files = raw["files"]

    return recipe


def parse_completion(result: CompletionResult) -> Recipe:
    """Parse whichever shape a provider returned"""
    if result.outputs:
        return parse_workflow_outputs(result.outputs)
    if result.text and result.text.strip():
        return parse_recipe_text(result.text)
    raise EmptyResultError("Provider produced no parseable output", stage="parse")
