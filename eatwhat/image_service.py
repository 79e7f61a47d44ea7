# eatwhat/image_service.py
"""Recipe cover images via an OpenAI-compatible ``/images/generations`` endpoint"""

import logging
import os
import random
from typing import Optional

import httpx

from eatwhat.errors import EmptyResultError, TransportError
from eatwhat.llm_client import raise_for_status

logger = logging.getLogger(__name__)

PROVIDER_NAME = "image"
DEFAULT_IMAGE_SIZE = "512x512"
GUIDANCE_SCALE = 7


def build_image_prompt(recipe_name: str, description: Optional[str] = None) -> str:
    prompt = f"A delicious looking dish of {recipe_name}."
    if description:
        prompt += f" {description.rstrip('.')}."
    return prompt + " Food photography style, professional lighting, high resolution, appetizing presentation"


class ImageService:
    def __init__(
        self,
        api_key: Optional[str] = None,
        api_endpoint: Optional[str] = None,
        model: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        self.api_key = api_key or os.getenv("SILICONFLOW_API_KEY")
        self.api_endpoint = (api_endpoint or os.getenv("SILICONFLOW_API_ENDPOINT") or "").rstrip("/")
        self.model = model or os.getenv("SILICONFLOW_PICTURE_MODEL")
        self.timeout = timeout
        self._http_client = http_client

    async def _post(self, payload: dict) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        url = f"{self.api_endpoint}/images/generations"
        try:
            if self._http_client is not None:
                return await self._http_client.post(url, headers=headers, json=payload)
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException:
            raise TransportError(
                "Timeout calling image API", provider=PROVIDER_NAME, stage="image", status_code=408
            )
        except httpx.RequestError as e:
            raise TransportError(
                f"Connection error to image API: {e}",
                provider=PROVIDER_NAME,
                stage="image",
                status_code=503,
            )

    async def generate_recipe_image(
        self,
        recipe_name: str,
        description: Optional[str] = None,
        image_size: str = DEFAULT_IMAGE_SIZE,
        seed: Optional[int] = None,
    ) -> str:
        """Generate one image for a recipe and return its URL"""
        payload = {
            "model": self.model,
            "prompt": build_image_prompt(recipe_name, description),
            "seed": seed if seed is not None else random.randint(0, 9999999999),
            "image_size": image_size,
            "batch_size": 1,
            "guidance_scale": GUIDANCE_SCALE,
        }

        logger.info(f"IMAGE: Generating image for '{recipe_name}' ({image_size})")
        response = await self._post(payload)
        raise_for_status(response, PROVIDER_NAME, "image")

        try:
            url = response.json()["data"][0]["url"]
        except (ValueError, KeyError, IndexError, TypeError):
            url = None

        if not url:
            raise EmptyResultError("Image response contained no URL", provider=PROVIDER_NAME, stage="image")

        logger.info(f"IMAGE: Generated image for '{recipe_name}'")
        return url
