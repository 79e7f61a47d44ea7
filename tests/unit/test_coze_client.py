import json

import httpx
import pytest

from eatwhat.coze_client import CozeProvider
from eatwhat.errors import CompletionTimeoutError, EmptyResultError, TransportError
from eatwhat.models import CompletionRequest, ProviderConfig, ProviderKind

ENDPOINT = "https://coze.test/v1"


def coze_provider(handler, **kwargs) -> CozeProvider:
    config = ProviderConfig(
        kind=ProviderKind.COZE, api_key="key", api_endpoint=ENDPOINT, bot_id="bot"
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("polling_interval", 0)
    return CozeProvider(config, http_client=client, **kwargs)


def chat_created():
    return httpx.Response(
        200, json={"code": 0, "data": {"id": "chat-1", "conversation_id": "conv-1"}}
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_polls_until_completed_and_uses_first_answer():
    statuses = iter(["created", "in_progress", "completed"])
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        if request.url.path.endswith("/chat") and request.method == "POST":
            body = json.loads(request.content)
            assert body["stream"] is False
            assert body["bot_id"] == "bot"
            assert request.headers["Authorization"] == "Bearer key"
            return chat_created()
        if request.url.path.endswith("/chat/retrieve"):
            assert request.url.params["chat_id"] == "chat-1"
            return httpx.Response(200, json={"code": 0, "data": {"status": next(statuses)}})
        if request.url.path.endswith("/chat/message/list"):
            return httpx.Response(
                200,
                json={
                    "code": 0,
                    "data": [
                        {"type": "function_call", "content": "tool"},
                        {"type": "answer", "content": "first"},
                        {"type": "answer", "content": "second"},
                    ],
                },
            )
        raise AssertionError(f"Unexpected request {request.url}")

    provider = coze_provider(handler)
    result = await provider.complete(CompletionRequest(prompt="dinner please"))

    assert result.text == "first"
    assert seen.count("/v1/chat/retrieve") == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_polling_ceiling_raises_timeout():
    polls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal polls
        if request.url.path.endswith("/chat/retrieve"):
            polls += 1
            return httpx.Response(200, json={"code": 0, "data": {"status": "in_progress"}})
        return chat_created()

    provider = coze_provider(handler, max_polling_attempts=3)

    with pytest.raises(CompletionTimeoutError) as exc_info:
        await provider.complete(CompletionRequest(prompt="x"))

    assert polls == 3
    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value, TimeoutError)
    assert exc_info.value.stage == "polling"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_chat_surfaces_last_error():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/chat/retrieve"):
            return httpx.Response(
                200,
                json={"code": 0, "data": {"status": "failed", "last_error": {"msg": "quota exceeded"}}},
            )
        return chat_created()

    provider = coze_provider(handler)

    with pytest.raises(EmptyResultError, match="quota exceeded"):
        await provider.complete(CompletionRequest(prompt="x"))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_nonzero_api_code_is_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": 4100, "msg": "invalid token"})

    provider = coze_provider(handler)

    with pytest.raises(TransportError, match="invalid token"):
        await provider.complete(CompletionRequest(prompt="x"))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_http_error_carries_status_and_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"msg": "unauthorized"})

    provider = coze_provider(handler)

    with pytest.raises(TransportError) as exc_info:
        await provider.complete(CompletionRequest(prompt="x"))

    assert exc_info.value.status_code == 401
    assert "unauthorized" in exc_info.value.body


@pytest.mark.unit
@pytest.mark.asyncio
async def test_streaming_delivers_delta_content():
    body = (
        'data: {"choices": [{"delta": {"content": "{\\"name\\""}}]}\n'
        'data: {"choices": [{"delta": {"content": ": \\"Tofu\\"}"}}]}\n'
        "data: [DONE]\n"
    )

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        assert payload["stream"] is True
        assert payload["auto_save_history"] is False
        return httpx.Response(200, content=body.encode("utf-8"))

    chunks = []
    provider = coze_provider(handler)
    result = await provider.complete_streaming(CompletionRequest(prompt="x"), chunks.append)

    assert chunks == ['{"name"', ': "Tofu"}']
    assert result.text == '{"name": "Tofu"}'
