import json

import pytest

from conftest import recipe_json
from eatwhat.errors import EmptyResultError, RecipeParseError
from eatwhat.models import VALID_UNITS, CompletionResult
from eatwhat.recipe_parser import (
    extract_image_urls,
    parse_completion,
    parse_recipe_text,
    parse_workflow_outputs,
)


@pytest.mark.unit
def test_parses_fenced_json():
    content = "```json\n" + json.dumps(recipe_json(name="Mapo tofu")) + "\n```"

    recipe = parse_recipe_text(content)

    assert recipe.name == "Mapo tofu"
    assert recipe.calories == 420
    assert recipe.cooking_time == 25
    assert recipe.nutrition_facts.fat == 12.5
    assert recipe.nutrition_facts.calories == 420
    assert [i.unit for i in recipe.ingredients] == ["g", "stalk"]
    assert recipe.cuisine_type == ["sichuan"]


@pytest.mark.unit
@pytest.mark.parametrize("unit", VALID_UNITS)
def test_every_valid_unit_is_accepted(unit):
    raw = recipe_json(ingredients=[{"name": "rice", "amount": 1, "unit": unit}])

    assert parse_recipe_text(json.dumps(raw)).ingredients[0].unit == unit


@pytest.mark.unit
@pytest.mark.parametrize(
    "ingredient,field",
    [
        ({"name": "rice", "amount": "1/2", "unit": "cup"}, "ingredients[0].amount"),
        ({"name": "rice", "amount": True, "unit": "cup"}, "ingredients[0].amount"),
        ({"name": "rice", "amount": 1, "unit": "handful"}, "ingredients[0].unit"),
        ({"name": "rice", "amount": 1, "unit": ""}, "ingredients[0].unit"),
        ({"amount": 1, "unit": "cup"}, "ingredients[0].name"),
    ],
)
def test_invalid_ingredient_names_the_field(ingredient, field):
    raw = recipe_json(ingredients=[ingredient])

    with pytest.raises(RecipeParseError) as exc_info:
        parse_recipe_text(json.dumps(raw))

    assert exc_info.value.field == field


@pytest.mark.unit
@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"name": ""}, "name"),
        ({"steps": []}, "steps"),
        ({"calories": "400 kcal"}, "calories"),
        ({"cookingTime": None}, "cookingTime"),
        ({"nutritionFacts": None}, "nutritionFacts"),
        ({"nutritionFacts": {"protein": 1, "fat": 1, "carbs": "lots", "fiber": 1}}, "nutritionFacts.carbs"),
    ],
)
def test_required_fields_are_never_defaulted(overrides, field):
    with pytest.raises(RecipeParseError) as exc_info:
        parse_recipe_text(json.dumps(recipe_json(**overrides)))

    assert exc_info.value.field == field


@pytest.mark.unit
def test_nutrition_list_uses_first_element():
    raw = recipe_json(nutritionFacts=[{"protein": 5, "fat": 6, "carbs": 7, "fiber": 8}, {}])

    recipe = parse_recipe_text(json.dumps(raw))

    assert recipe.nutrition_facts.protein == 5


@pytest.mark.unit
def test_invalid_json_is_parse_error():
    with pytest.raises(RecipeParseError) as exc_info:
        parse_recipe_text("```json\n{\"name\": \n```")

    assert exc_info.value.field == "json"


@pytest.mark.unit
def test_workflow_outputs_nested_under_data_outputs():
    raw = recipe_json(name="Steamed fish")
    del raw["calories"]
    raw["nutritionFacts"]["calories"] = 310

    recipe = parse_workflow_outputs({"data": {"outputs": raw}})

    assert recipe.name == "Steamed fish"
    assert recipe.calories == 310


@pytest.mark.unit
def test_workflow_image_urls_from_all_shapes():
    outputs = recipe_json(
        files=[{"url": "https://img.test/a.png"}, {"remote_url": "https://img.test/b.png"}],
        json=[
            {"images": [{"url": "https://img.test/c.png"}]},
            {"data": [{"url": "https://img.test/d.png"}]},
        ],
    )

    urls = extract_image_urls(outputs)
    recipe = parse_workflow_outputs({"outputs": outputs})

    assert urls == [
        "https://img.test/a.png",
        "https://img.test/b.png",
        "https://img.test/c.png",
        "https://img.test/d.png",
    ]
    assert recipe.img == "https://img.test/a.png"
    assert recipe.image_url == "https://img.test/a.png"
    assert recipe.generated_images == urls
    assert len(recipe.files) == 2


@pytest.mark.unit
def test_explicit_img_wins_over_generated_images():
    outputs = recipe_json(img="https://cdn.test/cover.jpg", files=[{"url": "https://img.test/a.png"}])

    recipe = parse_workflow_outputs(outputs)

    assert recipe.img == "https://cdn.test/cover.jpg"
    assert recipe.image_url == "https://img.test/a.png"


@pytest.mark.unit
def test_parse_completion_prefers_outputs_then_text():
    outputs_recipe = parse_completion(CompletionResult(outputs=recipe_json(name="From outputs")))
    text_recipe = parse_completion(CompletionResult(text=json.dumps(recipe_json(name="From text"))))

    assert outputs_recipe.name == "From outputs"
    assert text_recipe.name == "From text"

    with pytest.raises(EmptyResultError):
        parse_completion(CompletionResult(text="   "))
