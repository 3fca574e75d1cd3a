"""
Leonardo.ai image generation.

Leonardo is asynchronous: POST /generations returns a generationId which is
polled until COMPLETE or FAILED. The router still sees one awaitable call.
"""

import asyncio
import logging
from typing import List, Tuple

from app.config import settings
from app.core.errors import ProviderError
from app.integrations import http_client as http_module
from app.integrations.providers.base import ImageProvider
from app.schemas.generation import GeneratedImage, GenerationRequest, Quality

logger = logging.getLogger(__name__)

BASE_URL = "https://cloud.leonardo.ai/api/rest/v1"

SIZE_PRESETS = {
    "square": (768, 768),
    "square_hd": (1024, 1024),
    "portrait": (768, 1024),
    "portrait_4_3": (768, 1024),
    "portrait_16_9": (576, 1024),
    "landscape": (1024, 768),
    "landscape_4_3": (1024, 768),
    "landscape_16_9": (1024, 576),
}


def _headers() -> dict:
    if not settings.leonardo_api_key:
        raise ProviderError("leonardo", "LEONARDO_API_KEY is not configured")
    return {
        "Authorization": f"Bearer {settings.leonardo_api_key}",
        "Accept": "application/json",
    }


def dimensions_for(image_size: str) -> Tuple[int, int]:
    """Map a fal-style size name (or "WxH") onto explicit Leonardo dimensions."""
    if image_size in SIZE_PRESETS:
        return SIZE_PRESETS[image_size]
    if "x" in image_size:
        w, _, h = image_size.partition("x")
        if w.isdigit() and h.isdigit():
            return int(w), int(h)
    return SIZE_PRESETS["square"]


class LeonardoProvider(ImageProvider):
    name = "leonardo"
    models = {
        "leonardo-phoenix": "b24e16ff-06e3-43eb-8d33-4416c2d75876",
        "photoreal": "ac614f96-1082-45bf-be9d-757f2d31c174",
        "dreamshaper-v7": "ac614f96-1082-45bf-be9d-757f2d31c174",
        "leonardo-diffusion-xl": "1e60896f-3c26-4296-8ecc-53e2afecc132",
    }
    prices = {
        "leonardo-phoenix": 0.02,
        "photoreal": 0.03,
        "dreamshaper-v7": 0.01,
        "leonardo-diffusion-xl": 0.015,
    }
    quality_models = {
        Quality.BASIC: "dreamshaper-v7",
        Quality.STANDARD: "leonardo-phoenix",
        Quality.PREMIUM: "photoreal",
    }
    default_model = "leonardo-phoenix"

    async def generate(self, request: GenerationRequest, model: str) -> List[GeneratedImage]:
        model_id = self.models.get(model)
        if not model_id:
            raise ProviderError(self.name, f"unsupported model: {model}")

        opts = request.options
        width, height = dimensions_for(opts.image_size)
        body = {
            "prompt": request.prompt,
            "modelId": model_id,
            "num_images": opts.num_images,
            "width": width,
            "height": height,
            "num_inference_steps": opts.num_inference_steps or 30,
            # Leonardo rejects fractional guidance
            "guidance_scale": int(round(opts.guidance_scale or 7)),
            "public": False,
            "negative_prompt": opts.negative_prompt or "bad quality, blurry, distorted",
        }
        if opts.seed is not None:
            body["seed"] = opts.seed

        data = await http_module.request_json(
            self.name, "POST", f"{BASE_URL}/generations", headers=_headers(), json_body=body
        )
        generation_id = (data.get("sdGenerationJob") or {}).get("generationId")
        if not generation_id:
            raise ProviderError(self.name, f"no generationId in response: {data}")

        urls = await self._wait_for(generation_id)
        return [
            GeneratedImage(url=url, width=width, height=height, provider=self.name)
            for url in urls
        ]

    async def _wait_for(self, generation_id: str) -> List[str]:
        for _ in range(settings.leonardo_poll_max_attempts):
            data = await http_module.request_json(
                self.name, "GET", f"{BASE_URL}/generations/{generation_id}", headers=_headers()
            )
            job = data.get("generations_by_pk") or {}
            status = job.get("status")

            if status == "COMPLETE":
                urls = [img["url"] for img in job.get("generated_images") or []]
                if not urls:
                    raise ProviderError(self.name, "generation completed without images")
                return urls
            if status == "FAILED":
                raise ProviderError(self.name, f"generation {generation_id} failed")

            await asyncio.sleep(settings.leonardo_poll_interval_sec)

        raise ProviderError(self.name, f"generation {generation_id} timed out while polling")

    async def probe(self) -> None:
        await http_module.request_json(self.name, "GET", f"{BASE_URL}/me", headers=_headers())
