import pytest

from conftest import make_recipe
from eatwhat.errors import RecipeNotFoundError
from eatwhat.models import DietaryPreferences
from eatwhat.recipe_indexer import describe_recipe
from eatwhat.retrieval import RetrievalEngine, filter_by_preferences, matches_preferences


@pytest.fixture
def engine(embedder, vector_index, store) -> RetrievalEngine:
    return RetrievalEngine(embedder, vector_index, store)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_filter_preserves_search_order(engine, store, vector_index):
    a = store.add_recipe(make_recipe(calories=300))
    b = store.add_recipe(make_recipe(calories=900))
    c = store.add_recipe(make_recipe(calories=400))
    vector_index.ranking = [a.id, b.id, c.id]

    recipes = await engine.retrieve([1.0] * 8, limit=3, preferences=DietaryPreferences(calories_max=500))

    assert [r.id for r in recipes] == [a.id, c.id]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unfiltered_results_follow_search_rank(engine, store, vector_index):
    ids = [store.add_recipe(make_recipe()).id for _ in range(5)]
    vector_index.ranking = list(reversed(ids))

    recipes = await engine.retrieve([1.0] * 8, limit=5)

    assert [r.id for r in recipes] == list(reversed(ids))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retrieve_passes_limit_and_offset(engine, vector_index):
    assert await engine.retrieve([1.0] * 8, limit=10, offset=20) == []
    assert vector_index.searches == [{"limit": 10, "offset": 20}]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_ids_missing_from_store_are_skipped(engine, store, vector_index):
    kept = store.add_recipe(make_recipe())
    vector_index.ranking = ["00000000-0000-0000-0000-000000000000", kept.id]

    recipes = await engine.retrieve([1.0] * 8, limit=2)

    assert [r.id for r in recipes] == [kept.id]


@pytest.mark.unit
@pytest.mark.parametrize("limit", [1, 2, 5])
@pytest.mark.asyncio
async def test_similar_never_returns_source(engine, store, embedder, vector_index, limit):
    recipes = [store.add_recipe(make_recipe()) for _ in range(6)]
    for recipe in recipes:
        await vector_index.upsert(recipe.id, await embedder.get_embedding(describe_recipe(recipe)), {})
    source = recipes[0]

    similar = await engine.similar(source.id, limit=limit)

    assert source.id not in [r.id for r in similar]
    assert len(similar) == limit
    assert vector_index.searches[-1]["limit"] == limit + 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_similar_truncates_when_source_not_in_hits(engine, store, vector_index):
    source = store.add_recipe(make_recipe())
    others = [store.add_recipe(make_recipe()) for _ in range(3)]
    vector_index.ranking = [r.id for r in others]

    similar = await engine.similar(source.id, limit=2)

    assert [r.id for r in similar] == [others[0].id, others[1].id]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_similar_unknown_recipe(engine):
    with pytest.raises(RecipeNotFoundError) as exc_info:
        await engine.similar("missing-id")

    assert exc_info.value.recipe_id == "missing-id"


@pytest.mark.unit
def test_diet_type_requires_intersection():
    preferences = DietaryPreferences(diet_type=["vegan", "keto"])

    assert matches_preferences(make_recipe(diet_type=["keto", "high-protein"]), preferences)
    assert not matches_preferences(make_recipe(diet_type=["balanced"]), preferences)


@pytest.mark.unit
def test_cuisine_type_membership():
    preferences = DietaryPreferences(cuisine_type=["cantonese", "hunan"])

    assert matches_preferences(make_recipe(cuisine_type="hunan"), preferences)
    assert not matches_preferences(make_recipe(cuisine_type="sichuan"), preferences)


@pytest.mark.unit
def test_numeric_constraints_skip_missing_recipe_fields():
    preferences = DietaryPreferences(calories_min=100, calories_max=200, max_cooking_time=10)
    bare = make_recipe(calories=None, cooking_time=None)

    assert matches_preferences(bare, preferences)


@pytest.mark.unit
def test_untagged_recipe_fails_tag_constraints():
    untagged = make_recipe(diet_type=[], cuisine_type=None)

    assert not matches_preferences(untagged, DietaryPreferences(diet_type=["vegan"]))
    assert not matches_preferences(untagged, DietaryPreferences(cuisine_type=["hunan"]))
    assert matches_preferences(untagged, DietaryPreferences())


@pytest.mark.unit
def test_calorie_bounds_and_cooking_time_ceiling():
    preferences = DietaryPreferences(calories_min=300, calories_max=600, max_cooking_time=30)
    recipes = [
        make_recipe(calories=250, cooking_time=10),
        make_recipe(calories=300, cooking_time=30),
        make_recipe(calories=600, cooking_time=31),
        make_recipe(calories=601, cooking_time=5),
    ]

    kept = filter_by_preferences(recipes, preferences)

    assert kept == [recipes[1]]
    assert filter_by_preferences(recipes, None) == recipes
