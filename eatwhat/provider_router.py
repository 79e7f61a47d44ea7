# eatwhat/provider_router.py
"""
Resolves a ProviderKind (plus user id for custom providers) to a provider.

Managed providers are built once from the environment. Custom providers are
built from each user's stored settings and memoized per user in a bounded LRU
with a TTL, so concurrent requests for different users never share a handle.
"""

import asyncio
import logging
import time
import weakref
from collections import OrderedDict
from typing import Callable, Optional

import httpx

from eatwhat.coze_client import CozeProvider
from eatwhat.dify_client import DifyWorkflowProvider
from eatwhat.errors import ConfigurationError
from eatwhat.llm_client import CompletionProvider, OpenAICompatibleProvider
from eatwhat.models import ProviderConfig, ProviderKind

logger = logging.getLogger(__name__)

CUSTOM_PROVIDER_CACHE_SIZE = 256
CUSTOM_PROVIDER_TTL_SECONDS = 15 * 60

PROVIDER_CLASSES: dict[ProviderKind, type[CompletionProvider]] = {
    ProviderKind.COZE: CozeProvider,
    ProviderKind.DEEPSEEK: OpenAICompatibleProvider,
    ProviderKind.SILICONFLOW: OpenAICompatibleProvider,
    ProviderKind.ARK: OpenAICompatibleProvider,
    ProviderKind.DIFY: DifyWorkflowProvider,
    ProviderKind.CUSTOM: OpenAICompatibleProvider,
}


def build_provider(
    config: ProviderConfig, http_client: Optional[httpx.AsyncClient] = None
) -> CompletionProvider:
    provider = PROVIDER_CLASSES[config.kind](config, http_client=http_client)
    provider.validate_config()
    return provider


class CustomProviderCache:
    """Size-capped LRU of custom providers keyed by user id, entries expire after ttl seconds"""

    def __init__(
        self,
        max_size: int = CUSTOM_PROVIDER_CACHE_SIZE,
        ttl: float = CUSTOM_PROVIDER_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, CompletionProvider]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, user_id: str) -> Optional[CompletionProvider]:
        entry = self._entries.get(user_id)
        if entry is None:
            return None

        stored_at, provider = entry
        if self._clock() - stored_at > self.ttl:
            del self._entries[user_id]
            return None

        self._entries.move_to_end(user_id)
        return provider

    def put(self, user_id: str, provider: CompletionProvider) -> None:
        self._entries[user_id] = (self._clock(), provider)
        self._entries.move_to_end(user_id)
        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"PROVIDER_ROUTER: Evicted custom provider for user {evicted}")

    def invalidate(self, user_id: str) -> None:
        self._entries.pop(user_id, None)


class ProviderRouter:
    def __init__(
        self,
        store,
        http_client: Optional[httpx.AsyncClient] = None,
        managed_configs: Optional[dict[ProviderKind, ProviderConfig]] = None,
        cache: Optional[CustomProviderCache] = None,
    ):
        self.store = store
        self.http_client = http_client
        self._managed_configs = managed_configs or {}
        self._managed: dict[ProviderKind, CompletionProvider] = {}
        self._custom_cache = cache or CustomProviderCache()
        # One lock per user id, released with the last resolve holding it
        self._user_locks = weakref.WeakValueDictionary()

    def _managed_provider(self, kind: ProviderKind) -> CompletionProvider:
        provider = self._managed.get(kind)
        if provider is None:
            config = self._managed_configs.get(kind) or ProviderConfig.from_env(kind)
            provider = build_provider(config, self.http_client)
            self._managed[kind] = provider
        return provider

    async def _load_custom_provider(self, user_id: str) -> CompletionProvider:
        settings = await self.store.get_user_settings(user_id, include_credentials=True)
        if settings is None:
            raise ConfigurationError(
                f"No provider settings found for user {user_id}",
                provider=ProviderKind.CUSTOM.value,
                stage="configuration",
            )

        if settings.llm_service != ProviderKind.CUSTOM.value:
            raise ConfigurationError(
                f"User {user_id} is configured for '{settings.llm_service}', not a custom provider",
                provider=ProviderKind.CUSTOM.value,
                stage="configuration",
            )

        missing = [
            field
            for field in ("api_key", "api_endpoint", "model_name")
            if not getattr(settings, field)
        ]
        if missing:
            raise ConfigurationError(
                f"Custom provider for user {user_id} is missing: {', '.join(missing)}",
                provider=ProviderKind.CUSTOM.value,
                stage="configuration",
            )

        return build_provider(ProviderConfig.from_user_settings(settings), self.http_client)

    async def resolve(self, kind: ProviderKind, user_id: Optional[str] = None) -> CompletionProvider:
        kind = ProviderKind(kind)
        if kind != ProviderKind.CUSTOM:
            return self._managed_provider(kind)

        if not user_id:
            raise ConfigurationError(
                "Custom provider requires a user id",
                provider=ProviderKind.CUSTOM.value,
                stage="configuration",
            )

        provider = self._custom_cache.get(user_id)
        if provider is not None:
            return provider

        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock

        async with lock:
            provider = self._custom_cache.get(user_id)
            if provider is None:
                provider = await self._load_custom_provider(user_id)
                self._custom_cache.put(user_id, provider)
                logger.info(f"PROVIDER_ROUTER: Loaded custom provider for user {user_id}")
        return provider

    def invalidate(self, user_id: str) -> None:
        """Forget a user's custom provider, e.g. after their settings change"""
        self._custom_cache.invalidate(user_id)
