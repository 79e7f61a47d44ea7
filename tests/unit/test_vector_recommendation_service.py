from datetime import datetime

import pytest

from conftest import make_recipe
from eatwhat.models import DietaryPreferences
from eatwhat.query_composer import QueryVectorComposer
from eatwhat.vector_recommendation_service import VectorRecommendationService


@pytest.fixture
def service(embedder, vector_index, store) -> VectorRecommendationService:
    composer = QueryVectorComposer(embedder, store, clock=lambda: datetime(2024, 7, 1, 18, 30))
    return VectorRecommendationService(embedder, vector_index, store, composer=composer)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_daily_picks_for_explicit_query(service, store, embedder, vector_index):
    recipes = [store.add_recipe(make_recipe()) for _ in range(3)]
    vector_index.ranking = [r.id for r in recipes]

    result = await service.get_daily_recommendations(query="spicy noodles")

    assert result.title == "Today's picks"
    assert [r.id for r in result.recipes] == [r.id for r in recipes]
    assert embedder.calls == ["spicy noodles"]
    assert vector_index.initialized == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_daily_picks_without_user_use_ambient_context(service, embedder):
    await service.get_daily_recommendations()

    assert "summer" in embedder.calls[0]
    assert "dinner" in embedder.calls[0]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_daily_picks_personalized_for_user(service, store, embedder, test_user_id):
    store.preferences[test_user_id] = DietaryPreferences(diet_type=["vegetarian"])

    await service.get_daily_recommendations(user_id=test_user_id)

    assert embedder.calls == ["Diet types: vegetarian."]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pagination_maps_to_offset(service, vector_index):
    await service.get_daily_recommendations(query="soup", limit=4, page=3)

    assert vector_index.searches == [{"limit": 4, "offset": 8}]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_daily_picks_apply_dietary_filter(service, store, vector_index):
    quick = store.add_recipe(make_recipe(cooking_time=15))
    slow = store.add_recipe(make_recipe(cooking_time=90))
    vector_index.ranking = [slow.id, quick.id]

    result = await service.get_daily_recommendations(
        query="anything", dietary_preferences=DietaryPreferences(max_cooking_time=30)
    )

    assert [r.id for r in result.recipes] == [quick.id]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invalid_page_is_rejected(service):
    with pytest.raises(ValueError):
        await service.get_daily_recommendations(page=0)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_similar_recipes_title(service, store, vector_index):
    source = store.add_recipe(make_recipe())
    other = store.add_recipe(make_recipe())
    vector_index.ranking = [source.id, other.id]

    result = await service.get_similar_recipes(source.id, limit=5)

    assert result.title == "Similar recipes"
    assert [r.id for r in result.recipes] == [other.id]
