# eatwhat/llm_client.py
"""
Completion provider abstraction for recipe generation.

Every backend implements the same two operations, a blocking completion and a
streaming completion, and returns a CompletionResult. Provider kinds form a
closed set (ProviderKind); protocol differences stay inside each provider.

This module holds the shared HTTP plumbing and the OpenAI-compatible provider
used by deepseek, siliconflow, ark and per-user custom endpoints.
"""

import inspect
import json
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

import httpx

from eatwhat.errors import ConfigurationError, EmptyResultError, TransportError
from eatwhat.models import (
    VALID_UNITS,
    CompletionRequest,
    CompletionResult,
    ProviderConfig,
    ProviderKind,
)
from eatwhat.sse import SSEDecoder, SSEFraming

logger = logging.getLogger(__name__)

LLM_REQUEST_TIMEOUT = float(os.getenv("LLM_REQUEST_TIMEOUT", "60"))

ChunkCallback = Callable[[str], Union[None, Awaitable[None]]]

RECIPE_SYSTEM_PROMPT = f"""# Role
You are a recipe recommendation expert. You generate recipes that match the
user's preferences. Recommendations must be nutritious, practical and respect
the user's dietary needs.

## Output
Reply with a single recipe in exactly this JSON format:
```json
{{
  "name": "dish name",
  "ingredients": [
    {{"name": "ingredient name", "amount": 1, "unit": "unit"}}
  ],
  "calories": 0,
  "cookingTime": 0,
  "nutritionFacts": {{"protein": 0, "fat": 0, "carbs": 0, "fiber": 0}},
  "steps": ["step 1", "step 2"],
  "cuisineType": ["cuisine"],
  "dietType": ["diet type"]
}}
```
- Every numeric value is a plain number. No fractions (write 0.5, not 1/2) and no units inside numbers.
- "unit" must be one of: {", ".join(VALID_UNITS)}. Never leave it empty.
- Output valid JSON wrapped in ```json and ``` with no extra explanation.

## Constraints
- Only discuss recipes; refuse unrelated topics.
- Follow the format above exactly.
- Respect the user's dietary needs and preferences."""


class ProviderProtocol(str, Enum):
    POLLING = "polling"
    SSE = "sse"
    WORKFLOW = "workflow"


async def emit_chunk(on_chunk: ChunkCallback, chunk: str) -> None:
    """Deliver a chunk to a sync or async callback"""
    result = on_chunk(chunk)
    if inspect.isawaitable(result):
        await result


def _error_message(response: httpx.Response) -> str:
    """Best-effort upstream error message from a JSON or text body"""
    try:
        data = response.json()
    except (ValueError, UnicodeDecodeError):
        return response.text or response.reason_phrase

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        return error or data.get("msg") or data.get("message") or response.text
    return response.text


def raise_for_status(response: httpx.Response, provider: str, stage: str) -> None:
    """Raise TransportError for any non-2xx response. Body must already be read."""
    if response.is_success:
        return

    message = _error_message(response)
    raise TransportError(
        f"{provider} API error {response.status_code}: {message}",
        provider=provider,
        stage=stage,
        status_code=response.status_code,
        body=response.text,
    )


class CompletionProvider(ABC):
    """One completion backend: blocking and streaming calls over a single protocol"""

    protocol: ProviderProtocol = ProviderProtocol.SSE
    required_settings: tuple[str, ...] = ("api_key", "api_endpoint")

    def __init__(
        self,
        config: ProviderConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = LLM_REQUEST_TIMEOUT,
    ):
        self.config = config
        self.timeout = timeout
        self._http_client = http_client

    @property
    def name(self) -> str:
        return self.config.kind.value

    @property
    def endpoint(self) -> str:
        return (self.config.api_endpoint or "").rstrip("/")

    def validate_config(self) -> None:
        missing = [field for field in self.required_settings if not getattr(self.config, field)]
        if missing:
            raise ConfigurationError(
                f"Provider '{self.name}' is missing settings: {', '.join(missing)}",
                provider=self.name,
                stage="configuration",
            )

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    @asynccontextmanager
    async def _client(self):
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    async def _request_json(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        stage: str,
        payload: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict:
        try:
            response = await client.request(
                method, url, headers=self._headers(), json=payload, params=params
            )
        except httpx.TimeoutException:
            raise TransportError(
                f"Timeout calling {self.name} API", provider=self.name, stage=stage, status_code=408
            )
        except httpx.RequestError as e:
            raise TransportError(
                f"Connection error to {self.name} API: {e}",
                provider=self.name,
                stage=stage,
                status_code=503,
            )

        raise_for_status(response, self.name, stage)

        try:
            return response.json()
        except ValueError:
            raise TransportError(
                f"{self.name} API returned a non-JSON body",
                provider=self.name,
                stage=stage,
                status_code=response.status_code,
                body=response.text,
            )

    async def _stream_records(
        self,
        client: httpx.AsyncClient,
        url: str,
        payload: dict,
        framing: SSEFraming,
        stage: str,
    ) -> AsyncIterator[str]:
        """Yield SSE record payloads; closing the generator closes the response"""
        decoder = SSEDecoder(framing)
        try:
            async with client.stream("POST", url, headers=self._headers(), json=payload) as response:
                if not response.is_success:
                    await response.aread()
                    raise_for_status(response, self.name, stage)

                async for raw in response.aiter_bytes():
                    for record in decoder.feed(raw):
                        yield record
                    if decoder.done:
                        break

                for record in decoder.flush():
                    yield record

        except httpx.TimeoutException:
            raise TransportError(
                f"Timeout streaming from {self.name} API",
                provider=self.name,
                stage=stage,
                status_code=408,
            )
        except httpx.RequestError as e:
            raise TransportError(
                f"Connection error streaming from {self.name} API: {e}",
                provider=self.name,
                stage=stage,
                status_code=503,
            )
        finally:
            decoder.reset()

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Blocking completion"""

    @abstractmethod
    async def complete_streaming(
        self, request: CompletionRequest, on_chunk: ChunkCallback
    ) -> CompletionResult:
        """Streaming completion; chunks are delivered live and the full result returned"""


def delta_content(payload: str, provider: str) -> Optional[str]:
    """
    Text of one token-stream record (``choices[0].delta.content``).

    Malformed records are logged and skipped so the stream keeps flowing.
    """
    try:
        data = json.loads(payload)
        return data["choices"][0]["delta"].get("content") if data.get("choices") else None
    except (json.JSONDecodeError, KeyError, IndexError, TypeError, AttributeError) as e:
        logger.warning(f"{provider.upper()}: Dropping malformed stream chunk ({e}): {payload[:200]}")
        return None


class OpenAICompatibleProvider(CompletionProvider):
    """Chat-completions API with SSE token streaming"""

    protocol = ProviderProtocol.SSE
    required_settings = ("api_key", "api_endpoint", "model")

    def _payload(self, prompt: str, stream: bool) -> dict:
        return {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": RECIPE_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "stream": stream,
        }

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        logger.info(f"LLM_CLIENT: {self.name}/{self.config.model} blocking completion")

        async with self._client() as client:
            result = await self._request_json(
                client,
                "POST",
                f"{self.endpoint}/chat/completions",
                stage="completion",
                payload=self._payload(request.prompt, stream=False),
            )

        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None

        if not content:
            raise EmptyResultError("No content in response", provider=self.name, stage="completion")

        return CompletionResult(text=content)

    async def complete_streaming(
        self, request: CompletionRequest, on_chunk: ChunkCallback
    ) -> CompletionResult:
        logger.info(f"LLM_CLIENT: {self.name}/{self.config.model} streaming completion")
        parts = []

        async with self._client() as client:
            records = self._stream_records(
                client,
                f"{self.endpoint}/chat/completions",
                self._payload(request.prompt, stream=True),
                SSEFraming.LINES,
                stage="streaming",
            )
            async with aclosing(records):
                async for record in records:
                    content = delta_content(record, self.name)
                    if content:
                        parts.append(content)
                        await emit_chunk(on_chunk, content)

        logger.debug(f"LLM_CLIENT: {self.name} stream finished with {len(parts)} chunks")
        return CompletionResult(text="".join(parts))
