# eatwhat/coze_client.py
"""
Coze bot provider: conversation create + status polling.

A blocking completion opens a chat, polls its status until it finishes, then
reads the answer from the chat's message list. When several ``answer`` messages
are returned, the first one in list order is authoritative.
"""

import asyncio
import logging
from contextlib import aclosing
from typing import Optional

import httpx

from eatwhat.errors import CompletionTimeoutError, EmptyResultError, TransportError
from eatwhat.llm_client import (
    ChunkCallback,
    CompletionProvider,
    ProviderProtocol,
    delta_content,
    emit_chunk,
)
from eatwhat.models import CompletionRequest, CompletionResult
from eatwhat.sse import SSEFraming

logger = logging.getLogger(__name__)

POLLING_INTERVAL = 1.0  # seconds
MAX_POLLING_ATTEMPTS = 300  # 5 minute ceiling
DEFAULT_COZE_USER = "recommendation-user"

TERMINAL_STATUSES = ("completed", "failed")
ANSWER_MESSAGE_TYPE = "answer"


class CozeProvider(CompletionProvider):
    protocol = ProviderProtocol.POLLING
    required_settings = ("api_key", "api_endpoint", "bot_id")

    def __init__(
        self,
        config,
        http_client: Optional[httpx.AsyncClient] = None,
        polling_interval: float = POLLING_INTERVAL,
        max_polling_attempts: int = MAX_POLLING_ATTEMPTS,
        **kwargs,
    ):
        super().__init__(config, http_client=http_client, **kwargs)
        self.polling_interval = polling_interval
        self.max_polling_attempts = max_polling_attempts

    def _check_code(self, data: dict, stage: str) -> dict:
        """Coze reports API failures in the body with HTTP 200"""
        if data.get("code", 0) != 0:
            raise TransportError(
                f"Coze API error {data.get('code')}: {data.get('msg')}",
                provider=self.name,
                stage=stage,
            )
        return data

    def _chat_body(self, prompt: str, user_id: Optional[str], stream: bool, **options) -> dict:
        body = {
            "bot_id": self.config.bot_id,
            "user_id": user_id or DEFAULT_COZE_USER,
            "additional_messages": [{"role": "user", "content": prompt, "content_type": "text"}],
            "stream": stream,
            "auto_save_history": True,
        }
        body.update(options)
        return body

    async def create_chat(
        self, client: httpx.AsyncClient, prompt: str, user_id: Optional[str] = None
    ) -> dict:
        """Open a chat; returns the chat object with ``id`` and ``conversation_id``"""
        data = await self._request_json(
            client,
            "POST",
            f"{self.endpoint}/chat",
            stage="create_chat",
            payload=self._chat_body(prompt, user_id, stream=False),
        )
        chat = self._check_code(data, "create_chat").get("data") or {}
        if not chat.get("id") or not chat.get("conversation_id"):
            raise TransportError(
                "Coze chat response is missing chat/conversation ids",
                provider=self.name,
                stage="create_chat",
            )

        logger.info(f"COZE: Chat {chat['id']} created in conversation {chat['conversation_id']}")
        return chat

    async def get_chat_status(
        self, client: httpx.AsyncClient, conversation_id: str, chat_id: str
    ) -> dict:
        data = await self._request_json(
            client,
            "GET",
            f"{self.endpoint}/chat/retrieve",
            stage="polling",
            params={"conversation_id": conversation_id, "chat_id": chat_id},
        )
        return self._check_code(data, "polling").get("data") or {}

    async def wait_for_completion(
        self, client: httpx.AsyncClient, conversation_id: str, chat_id: str
    ) -> dict:
        """Poll until the chat reaches a terminal status or the attempt ceiling"""
        for attempt in range(1, self.max_polling_attempts + 1):
            chat = await self.get_chat_status(client, conversation_id, chat_id)
            status = chat.get("status")
            logger.debug(f"COZE: Poll #{attempt} for chat {chat_id} - status: {status}")

            if status in TERMINAL_STATUSES:
                return chat

            await asyncio.sleep(self.polling_interval)

        raise CompletionTimeoutError(
            f"Conversation polling timeout after {self.max_polling_attempts} attempts",
            provider=self.name,
            stage="polling",
            attempts=self.max_polling_attempts,
        )

    async def get_messages(
        self,
        client: httpx.AsyncClient,
        conversation_id: str,
        chat_id: str,
        message_type: Optional[str] = None,
    ) -> list[dict]:
        """Messages of a chat in the order the API returns them"""
        data = await self._request_json(
            client,
            "GET",
            f"{self.endpoint}/chat/message/list",
            stage="messages",
            params={"conversation_id": conversation_id, "chat_id": chat_id},
        )
        messages = self._check_code(data, "messages").get("data") or []

        if message_type:
            messages = [msg for msg in messages if msg.get("type") == message_type]
        return messages

    async def get_answer_message(
        self, client: httpx.AsyncClient, conversation_id: str, chat_id: str
    ) -> Optional[dict]:
        messages = await self.get_messages(client, conversation_id, chat_id, ANSWER_MESSAGE_TYPE)
        return messages[0] if messages else None

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        async with self._client() as client:
            chat = await self.create_chat(client, request.prompt, request.user_id)
            conversation_id, chat_id = chat["conversation_id"], chat["id"]

            status = await self.wait_for_completion(client, conversation_id, chat_id)
            if status.get("status") == "failed":
                last_error = status.get("last_error") or {}
                raise EmptyResultError(
                    f"Coze chat failed: {last_error.get('msg') or 'unknown error'}",
                    provider=self.name,
                    stage="polling",
                )

            answer = await self.get_answer_message(client, conversation_id, chat_id)

        if not answer or not answer.get("content"):
            raise EmptyResultError(
                "No answer message found in response", provider=self.name, stage="messages"
            )
        return CompletionResult(text=answer["content"])

    async def complete_streaming(
        self, request: CompletionRequest, on_chunk: ChunkCallback
    ) -> CompletionResult:
        logger.info("COZE: Streaming chat")
        body = self._chat_body(
            request.prompt, request.user_id, stream=True, auto_save_history=False
        )
        parts = []

        async with self._client() as client:
            records = self._stream_records(
                client, f"{self.endpoint}/chat", body, SSEFraming.LINES, stage="streaming"
            )
            async with aclosing(records):
                async for record in records:
                    content = delta_content(record, self.name)
                    if content:
                        parts.append(content)
                        await emit_chunk(on_chunk, content)

        return CompletionResult(text="".join(parts))
