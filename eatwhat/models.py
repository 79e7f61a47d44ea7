# eatwhat/models.py
import os
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator

EMBEDDING_DIMENSION = 1536

# Closed measurement-unit vocabulary for generated ingredients
VALID_UNITS = (
    "g",
    "kg",
    "ml",
    "l",
    "piece",
    "scoop",
    "cup",
    "slice",
    "stalk",
    "chunk",
    "grain",
    "pack",
    "bag",
    "bottle",
    "box",
    "strip",
    "clove",
    "tsp",
    "tbsp",
)


class ProviderKind(str, Enum):
    COZE = "coze"
    DEEPSEEK = "deepseek"
    SILICONFLOW = "siliconflow"
    ARK = "ark"
    DIFY = "dify"
    CUSTOM = "custom"


class MealType(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"


DAILY_MEAL_TYPES = (MealType.BREAKFAST, MealType.LUNCH, MealType.DINNER)


# Recipe models
class Ingredient(BaseModel):
    name: str
    amount: float
    unit: str


class NutritionFacts(BaseModel):
    calories: Optional[float] = None
    protein: float
    fat: float
    carbs: float
    fiber: float


class Recipe(BaseModel):
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    ingredients: list[Ingredient] = Field(default_factory=list)
    steps: list[Union[str, dict]] = Field(default_factory=list)
    calories: Optional[float] = None
    cooking_time: Optional[float] = Field(None, alias="cookingTime")
    nutrition_facts: Optional[NutritionFacts] = Field(None, alias="nutritionFacts")
    cuisine_type: list[str] = Field(default_factory=list, alias="cuisineType")
    diet_type: list[str] = Field(default_factory=list, alias="dietType")
    img: Optional[str] = None
    views: int = 0
    # Workflow providers may attach generated media
    image_url: Optional[str] = Field(None, alias="imageUrl")
    generated_images: list[str] = Field(default_factory=list, alias="generatedImages")
    files: list[Any] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    @field_validator("cuisine_type", "diet_type", mode="before")
    @classmethod
    def coerce_tags(cls, v):
        # recipes.cuisine_type is a single text column
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v else []
        return v

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if v is not None else None

    @field_validator("views", mode="before")
    @classmethod
    def null_views_to_zero(cls, v):
        # recipes.views is nullable
        return 0 if v is None else v


class DietaryPreferences(BaseModel):
    diet_type: list[str] = Field(default_factory=list, alias="dietType")
    cuisine_type: list[str] = Field(default_factory=list, alias="cuisineType")
    allergies: list[str] = Field(default_factory=list)
    restrictions: list[str] = Field(default_factory=list)
    calories_min: Optional[float] = Field(None, alias="caloriesMin")
    calories_max: Optional[float] = Field(None, alias="caloriesMax")
    max_cooking_time: Optional[float] = Field(None, alias="maxCookingTime")

    class Config:
        populate_by_name = True

    @field_validator("diet_type", "cuisine_type", "allergies", "restrictions", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or []


# Provider configuration models
class UserSettings(BaseModel):
    user_id: str
    llm_service: str
    model_name: Optional[str] = None
    is_paid: Optional[bool] = True
    api_key: Optional[str] = None
    api_endpoint: Optional[str] = None

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, v):
        return str(v)


# Environment prefix per managed provider
_ENV_PREFIXES = {
    ProviderKind.COZE: "COZE",
    ProviderKind.DEEPSEEK: "DEEPSEEK",
    ProviderKind.SILICONFLOW: "SILICONFLOW",
    ProviderKind.ARK: "ARK",
    ProviderKind.DIFY: "DIFY",
}


class ProviderConfig(BaseModel):
    kind: ProviderKind
    api_key: Optional[str] = None
    api_endpoint: Optional[str] = None
    model: Optional[str] = None
    bot_id: Optional[str] = None

    @classmethod
    def from_env(cls, kind: ProviderKind) -> "ProviderConfig":
        """Build a managed provider's config from environment variables"""
        if kind == ProviderKind.CUSTOM:
            raise ValueError("Custom providers are configured per user, not from the environment")

        prefix = _ENV_PREFIXES[kind]
        endpoint = os.getenv(f"{prefix}_API_ENDPOINT")
        if kind == ProviderKind.COZE and not endpoint:
            endpoint = "https://api.coze.cn/v1"

        return cls(
            kind=kind,
            api_key=os.getenv(f"{prefix}_API_KEY"),
            api_endpoint=endpoint,
            model=os.getenv(f"{prefix}_MODEL"),
            bot_id=os.getenv("COZE_BOT_ID") if kind == ProviderKind.COZE else None,
        )

    @classmethod
    def from_user_settings(cls, settings: UserSettings) -> "ProviderConfig":
        return cls(
            kind=ProviderKind.CUSTOM,
            api_key=settings.api_key,
            api_endpoint=settings.api_endpoint,
            model=settings.model_name,
        )


# Completion models
class CompletionRequest(BaseModel):
    prompt: str = ""
    user_id: Optional[str] = None
    # Workflow providers consume structured inputs instead of a prompt
    workflow_inputs: dict[str, Any] = Field(default_factory=dict)


class CompletionResult(BaseModel):
    text: Optional[str] = None
    outputs: Optional[dict[str, Any]] = None
    # Upstream failure message when a stream ended without a result
    error: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.text and self.text.strip()) and not self.outputs


# Recommendation request/response models
class RecommendationRequest(BaseModel):
    preferences: DietaryPreferences = Field(default_factory=DietaryPreferences)
    meal_type: Optional[MealType] = Field(None, alias="mealType")
    exclude_recipes: list[str] = Field(default_factory=list, alias="excludeRecipes")
    provider: ProviderKind = ProviderKind.COZE
    user_id: Optional[str] = Field(None, alias="userId")

    class Config:
        populate_by_name = True


class RecommendationResult(BaseModel):
    recipes: list[Recipe]
    title: str
