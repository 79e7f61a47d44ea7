# eatwhat/dify_client.py
"""
Dify workflow provider.

Workflows take structured inputs instead of a prompt and return structured
outputs. Blocking runs must carry outputs (top level or under ``data``); an
HTTP 200 without outputs is a failure. Streaming runs forward every raw event
payload to the caller and keep the last payload carrying outputs.
"""

import logging
from contextlib import aclosing
from typing import Any, Optional

from eatwhat.errors import EmptyResultError
from eatwhat.json_utils import load_json_object
from eatwhat.llm_client import ChunkCallback, CompletionProvider, ProviderProtocol, emit_chunk
from eatwhat.models import CompletionRequest, CompletionResult, DietaryPreferences, MealType
from eatwhat.sse import SSEFraming

logger = logging.getLogger(__name__)

DEFAULT_DIFY_USER = "recommendation-user"


def build_workflow_inputs(
    preferences: DietaryPreferences,
    meal_type: Optional[MealType] = None,
    exclude_recipes: Optional[list[str]] = None,
) -> dict[str, Any]:
    """Workflow inputs are CSV strings and stringified numbers"""
    inputs = {
        "dietTypeCsv": ",".join(preferences.diet_type),
        "cuisineTypeCsv": ",".join(preferences.cuisine_type),
        "allergiesCsv": ",".join(preferences.allergies),
        "restrictionsCsv": ",".join(preferences.restrictions),
        "excludeRecipesCsv": ",".join(exclude_recipes or []),
    }

    numeric = {
        "caloriesMin": preferences.calories_min,
        "caloriesMax": preferences.calories_max,
        "maxCookingTime": preferences.max_cooking_time,
    }
    for key, value in numeric.items():
        if value is not None:
            inputs[key] = str(int(value)) if float(value).is_integer() else str(value)

    if meal_type:
        inputs["mealType"] = meal_type.value
    return inputs


def extract_outputs(response: dict) -> Optional[dict]:
    """Outputs from a workflow response, top level or nested under ``data``"""
    outputs = response.get("outputs")
    if outputs is None and isinstance(response.get("data"), dict):
        outputs = response["data"].get("outputs")
    return outputs


def extract_error(response: dict) -> Optional[str]:
    error = response.get("error")
    if not error and isinstance(response.get("data"), dict):
        error = response["data"].get("error")
    return error


def stream_outputs_candidate(payload: str) -> Optional[dict]:
    """Outputs/data object carried by one streamed event, if any"""
    event = load_json_object(payload)
    if event is None:
        return None

    data = event.get("data")
    if isinstance(data, dict):
        # Finished events of failed runs carry "outputs": null
        if data.get("status") == "failed" or ("outputs" in data and data["outputs"] is None):
            return None

    candidate = event.get("outputs") or data
    return candidate if isinstance(candidate, dict) else None


def stream_failure(payload: str) -> Optional[str]:
    """Error message of a failed workflow or an ``error`` event, if the payload is one"""
    event = load_json_object(payload)
    if event is None:
        return None

    if event.get("event") == "error":
        return event.get("message") or "Dify workflow stream reported an error"

    data = event.get("data")
    if isinstance(data, dict) and data.get("status") == "failed":
        return data.get("error") or "Dify workflow failed"
    return None


class DifyWorkflowProvider(CompletionProvider):
    protocol = ProviderProtocol.WORKFLOW

    def _run_body(self, request: CompletionRequest, response_mode: str) -> dict:
        return {
            "inputs": request.workflow_inputs,
            "response_mode": response_mode,
            "user": request.user_id or DEFAULT_DIFY_USER,
        }

    async def run_workflow_blocking(self, request: CompletionRequest) -> dict:
        logger.info(f"DIFY: Running workflow (blocking) with inputs {request.workflow_inputs}")

        async with self._client() as client:
            return await self._request_json(
                client,
                "POST",
                f"{self.endpoint}/workflows/run",
                stage="workflow",
                payload=self._run_body(request, "blocking"),
            )

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        response = await self.run_workflow_blocking(request)

        outputs = extract_outputs(response)
        if outputs is None:
            raise EmptyResultError(
                extract_error(response) or "Dify workflow returned no outputs",
                provider=self.name,
                stage="workflow",
            )

        logger.debug(f"DIFY: Workflow outputs keys: {list(outputs.keys())}")
        return CompletionResult(outputs=outputs)

    async def complete_streaming(
        self, request: CompletionRequest, on_chunk: ChunkCallback
    ) -> CompletionResult:
        logger.info("DIFY: Running workflow (streaming)")
        last_outputs = None
        failure = None

        async with self._client() as client:
            records = self._stream_records(
                client,
                f"{self.endpoint}/workflows/run",
                self._run_body(request, "streaming"),
                SSEFraming.EVENTS,
                stage="streaming",
            )
            async with aclosing(records):
                async for record in records:
                    # Raw payloads go to the caller untouched
                    await emit_chunk(on_chunk, record)

                    error = stream_failure(record)
                    if error:
                        # A failed run has no outputs, whatever the earlier nodes emitted
                        failure = error
                        last_outputs = None
                        continue

                    candidate = stream_outputs_candidate(record)
                    if candidate is not None:
                        last_outputs = candidate

        if failure:
            logger.warning(f"DIFY: Workflow stream failed: {failure}")
            return CompletionResult(error=failure)
        if last_outputs is None:
            logger.warning("DIFY: Workflow stream ended without an outputs payload")
        return CompletionResult(outputs=last_outputs)
