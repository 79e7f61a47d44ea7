# eatwhat/errors.py
"""
Exception taxonomy for the recommendation core.

Every error carries optional provider and stage context so the caller can tell
which backend and which step of a recommendation call failed.
"""

from typing import Optional


class RecommendationError(Exception):
    """Base exception for recommendation and retrieval errors"""

    def __init__(self, message: str, provider: str = None, stage: str = None):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.stage = stage

    def with_context(self, provider: Optional[str] = None, stage: Optional[str] = None):
        """Attach provider/stage context without replacing values already set"""
        if provider and not self.provider:
            self.provider = provider
        if stage and not self.stage:
            self.stage = stage
        return self

    def __str__(self) -> str:
        context = [part for part in (self.provider, self.stage) if part]
        if context:
            return f"[{'/'.join(context)}] {self.message}"
        return self.message


class ConfigurationError(RecommendationError):
    """Provider settings are missing or invalid. Not retried."""


class TransportError(RecommendationError):
    """Non-2xx response or network failure talking to an upstream API"""

    def __init__(
        self,
        message: str,
        provider: str = None,
        stage: str = None,
        status_code: int = None,
        body: str = None,
    ):
        super().__init__(message, provider=provider, stage=stage)
        self.status_code = status_code
        self.body = body


class CompletionTimeoutError(RecommendationError, TimeoutError):
    """Polling exceeded its attempt ceiling"""

    def __init__(self, message: str, provider: str = None, stage: str = None, attempts: int = 0):
        super().__init__(message, provider=provider, stage=stage)
        self.attempts = attempts


class RecipeParseError(RecommendationError):
    """Provider output could not be turned into a valid recipe"""

    def __init__(self, message: str, field: str = None, provider: str = None, stage: str = "parse"):
        super().__init__(message, provider=provider, stage=stage)
        self.field = field


class EmptyResultError(RecommendationError):
    """A provider call finished without any usable output"""


class RecipeNotFoundError(RecommendationError):
    """A referenced recipe does not exist in the data store"""

    def __init__(self, recipe_id: str):
        super().__init__(f"Recipe not found: {recipe_id}", stage="retrieval")
        self.recipe_id = recipe_id
