# eatwhat/recommendation_service.py
"""
Generative recommendations: prompt -> provider -> parsed recipe.

Every call walks the same stages (RecommendationStage). Daily plans are three
sequential single-meal passes; weekly plans are seven sequential daily passes.
Within a day the names of recipes already generated are added to the next
prompt's exclusion list.
"""

import logging
from enum import Enum
from typing import Optional

from eatwhat.dify_client import build_workflow_inputs
from eatwhat.errors import EmptyResultError, RecommendationError
from eatwhat.llm_client import ChunkCallback, CompletionProvider, ProviderProtocol, emit_chunk
from eatwhat.models import (
    DAILY_MEAL_TYPES,
    CompletionRequest,
    CompletionResult,
    DietaryPreferences,
    MealType,
    ProviderKind,
    Recipe,
    RecommendationRequest,
)
from eatwhat.provider_router import ProviderRouter
from eatwhat.recipe_parser import parse_completion

logger = logging.getLogger(__name__)

DAYS_PER_WEEK = 7


class RecommendationStage(str, Enum):
    PROMPT_BUILT = "prompt_built"
    PROVIDER_DISPATCHED = "provider_dispatched"
    POLLING = "polling"
    STREAMING = "streaming"
    COMPLETED = "completed"
    PARSED = "parsed"
    RESULT = "result"


def _format_number(value: Optional[float]) -> str:
    if value is None:
        return ""
    return str(int(value)) if float(value).is_integer() else str(value)


def build_prompt(
    preferences: DietaryPreferences,
    meal_type: Optional[MealType] = None,
    exclude_recipes: Optional[list[str]] = None,
) -> str:
    """User prompt listing the preferences a generated recipe must respect"""
    lines = [
        "Recommend a recipe based on the following user preferences:",
        f"- Diet types: {', '.join(preferences.diet_type)}",
        f"- Preferred cuisines: {', '.join(preferences.cuisine_type)}",
        f"- Allergies: {', '.join(preferences.allergies)}",
        f"- Dietary restrictions: {', '.join(preferences.restrictions)}",
    ]

    if preferences.calories_min is not None or preferences.calories_max is not None:
        lines.append(
            f"- Calorie range: {_format_number(preferences.calories_min)}"
            f"-{_format_number(preferences.calories_max)} kcal"
        )
    if preferences.max_cooking_time is not None:
        lines.append(f"- Max cooking time: {_format_number(preferences.max_cooking_time)} minutes")
    if meal_type:
        lines.append(f"- Meal type: {MealType(meal_type).value}")
    if exclude_recipes:
        lines.append(f"- Do not recommend these dishes: {', '.join(exclude_recipes)}")

    return "\n".join(lines)


class _Call:
    """Stage tracking for one recommendation call"""

    def __init__(self, provider: str):
        self.provider = provider
        self.stage: Optional[RecommendationStage] = None

    def advance(self, stage: RecommendationStage) -> None:
        previous = self.stage.value if self.stage else "start"
        logger.debug(f"RECOMMENDATION: [{self.provider}] {previous} -> {stage.value}")
        self.stage = stage

    def wrap(self, error: RecommendationError) -> RecommendationError:
        return error.with_context(provider=self.provider, stage=self.stage.value if self.stage else None)


class RecommendationService:
    """
    Entry points for generated recommendations.

    Usage:
        service = RecommendationService(ProviderRouter(store))
        recipe = await service.get_single_meal_recommendation(request)
        plan = await service.get_daily_plan_recommendation(request)
    """

    def __init__(self, router: ProviderRouter):
        self.router = router

    def _completion_request(
        self, provider: CompletionProvider, request: RecommendationRequest
    ) -> CompletionRequest:
        if provider.protocol == ProviderProtocol.WORKFLOW:
            return CompletionRequest(
                user_id=request.user_id,
                workflow_inputs=build_workflow_inputs(
                    request.preferences, request.meal_type, request.exclude_recipes
                ),
            )
        return CompletionRequest(
            prompt=build_prompt(request.preferences, request.meal_type, request.exclude_recipes),
            user_id=request.user_id,
        )

    async def get_recommendation(
        self, request: RecommendationRequest, provider_kind: Optional[ProviderKind] = None
    ) -> Recipe:
        kind = ProviderKind(provider_kind or request.provider)
        call = _Call(kind.value)

        try:
            provider = await self.router.resolve(kind, request.user_id)
            completion_request = self._completion_request(provider, request)
            call.advance(RecommendationStage.PROMPT_BUILT)

            call.advance(RecommendationStage.PROVIDER_DISPATCHED)
            if provider.protocol == ProviderProtocol.POLLING:
                call.advance(RecommendationStage.POLLING)
            result = await provider.complete(completion_request)
            call.advance(RecommendationStage.COMPLETED)

            recipe = parse_completion(result)
            call.advance(RecommendationStage.PARSED)
        except RecommendationError as e:
            raise call.wrap(e)

        call.advance(RecommendationStage.RESULT)
        logger.info(f"RECOMMENDATION: Generated '{recipe.name}' via {kind.value}")
        return recipe

    async def get_single_meal_recommendation(
        self, request: RecommendationRequest, provider_kind: Optional[ProviderKind] = None
    ) -> Recipe:
        return await self.get_recommendation(request, provider_kind)

    def _meal_request(
        self, request: RecommendationRequest, meal_type: MealType, excluded: list[str]
    ) -> RecommendationRequest:
        return request.model_copy(
            update={"meal_type": meal_type, "exclude_recipes": [*request.exclude_recipes, *excluded]}
        )

    async def get_daily_plan_recommendation(
        self, request: RecommendationRequest, provider_kind: Optional[ProviderKind] = None
    ) -> list[Recipe]:
        """Breakfast, lunch and dinner, generated one after another"""
        meals: list[Recipe] = []
        for meal_type in DAILY_MEAL_TYPES:
            meal_request = self._meal_request(request, meal_type, [m.name for m in meals])
            meals.append(await self.get_recommendation(meal_request, provider_kind))
        return meals

    async def get_weekly_plan_recommendation(
        self, request: RecommendationRequest, provider_kind: Optional[ProviderKind] = None
    ) -> list[list[Recipe]]:
        weekly_plan = []
        for day in range(DAYS_PER_WEEK):
            logger.info(f"RECOMMENDATION: Weekly plan day {day + 1}/{DAYS_PER_WEEK}")
            weekly_plan.append(await self.get_daily_plan_recommendation(request, provider_kind))
        return weekly_plan

    async def get_streaming_recommendation(
        self,
        request: RecommendationRequest,
        on_chunk: ChunkCallback,
        provider_kind: Optional[ProviderKind] = None,
    ) -> Recipe:
        """
        Stream raw chunks to on_chunk while generating, then parse the result.

        Token providers are parsed from the accumulated text. Workflow
        providers are parsed from the last chunk carrying outputs; a stream
        without one fails with EmptyResultError.
        """
        kind = ProviderKind(provider_kind or request.provider)
        call = _Call(kind.value)
        chunk_count = 0

        async def forward(chunk: str) -> None:
            nonlocal chunk_count
            chunk_count += 1
            logger.debug(f"RECOMMENDATION: chunk #{chunk_count}: {chunk[:80]}")
            await emit_chunk(on_chunk, chunk)

        try:
            provider = await self.router.resolve(kind, request.user_id)
            completion_request = self._completion_request(provider, request)
            call.advance(RecommendationStage.PROMPT_BUILT)

            call.advance(RecommendationStage.PROVIDER_DISPATCHED)
            call.advance(RecommendationStage.STREAMING)
            result = await provider.complete_streaming(completion_request, forward)
            call.advance(RecommendationStage.COMPLETED)

            if provider.protocol == ProviderProtocol.WORKFLOW:
                if not result.outputs:
                    raise EmptyResultError(result.error or "Workflow stream did not produce parseable outputs")
                result = CompletionResult(outputs=result.outputs)
            elif result.is_empty:
                raise EmptyResultError(f"Stream ended after {chunk_count} chunks with no content")

            recipe = parse_completion(result)
            call.advance(RecommendationStage.PARSED)
        except RecommendationError as e:
            raise call.wrap(e)

        call.advance(RecommendationStage.RESULT)
        logger.info(f"RECOMMENDATION: Streamed '{recipe.name}' via {kind.value} ({chunk_count} chunks)")
        return recipe

    async def get_streaming_single_meal_recommendation(
        self,
        request: RecommendationRequest,
        on_chunk: ChunkCallback,
        provider_kind: Optional[ProviderKind] = None,
    ) -> Recipe:
        return await self.get_streaming_recommendation(request, on_chunk, provider_kind)

    async def get_streaming_daily_plan_recommendation(
        self,
        request: RecommendationRequest,
        on_chunk: ChunkCallback,
        provider_kind: Optional[ProviderKind] = None,
    ) -> list[Recipe]:
        meals: list[Recipe] = []
        for meal_type in DAILY_MEAL_TYPES:
            meal_request = self._meal_request(request, meal_type, [m.name for m in meals])
            meals.append(await self.get_streaming_recommendation(meal_request, on_chunk, provider_kind))
        return meals
