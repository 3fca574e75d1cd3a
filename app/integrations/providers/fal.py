"""
fal.ai adapters: FLUX image generation (synchronous run endpoint) and LoRA
fast-training (queue endpoint with webhook).
"""

import logging
from typing import List

from app.config import settings
from app.core.errors import ProviderError
from app.integrations import http_client as http_module
from app.integrations.providers.base import ExternalJobHandle, ImageProvider, Trainer
from app.schemas.generation import GeneratedImage, GenerationRequest, Quality

logger = logging.getLogger(__name__)

RUN_URL = "https://fal.run"
QUEUE_URL = "https://queue.fal.run"
TRAINING_ENDPOINT = "fal-ai/flux-lora-fast-training"


def _headers() -> dict:
    if not settings.fal_key:
        raise ProviderError("fal", "FAL_KEY is not configured")
    return {"Authorization": f"Key {settings.fal_key}"}


class FalProvider(ImageProvider):
    name = "fal"
    models = {
        "flux-pro-ultra": "fal-ai/flux-pro/v1.1-ultra",
        "flux-pro": "fal-ai/flux-pro",
        "flux-dev": "fal-ai/flux/dev",
        "flux-lora": "fal-ai/flux-lora",
    }
    prices = {
        "flux-pro-ultra": 0.06,
        "flux-pro": 0.05,
        "flux-dev": 0.025,
        "flux-lora": 0.035,
    }
    quality_models = {
        Quality.BASIC: "flux-dev",
        Quality.STANDARD: "flux-pro",
        Quality.PREMIUM: "flux-pro-ultra",
    }
    default_model = "flux-dev"

    def select_model(self, requirements):
        # A LoRA path only makes sense on the LoRA endpoint
        if requirements and "lora" in requirements.features:
            return "flux-lora"
        return super().select_model(requirements)

    async def generate(self, request: GenerationRequest, model: str) -> List[GeneratedImage]:
        endpoint = self.models.get(model)
        if not endpoint:
            raise ProviderError(self.name, f"unsupported model: {model}")

        opts = request.options
        body = {
            "prompt": request.prompt,
            "num_images": opts.num_images,
            "image_size": opts.image_size,
            "guidance_scale": opts.guidance_scale or 3.5,
            "num_inference_steps": opts.num_inference_steps or 28,
            "enable_safety_checker": True,
        }
        if opts.seed is not None:
            body["seed"] = opts.seed
        if opts.lora_path and model == "flux-lora":
            body["loras"] = [{"path": opts.lora_path, "scale": opts.lora_scale or 1.0}]

        data = await http_module.request_json(
            self.name, "POST", f"{RUN_URL}/{endpoint}", headers=_headers(), json_body=body
        )
        images = data.get("images") or []
        if not images:
            raise ProviderError(self.name, "response contained no images")

        return [
            GeneratedImage(
                url=img["url"],
                width=img.get("width") or 1024,
                height=img.get("height") or 1024,
                provider=self.name,
            )
            for img in images
        ]

    async def probe(self) -> None:
        # fal.ai exposes no cheap status endpoint; a configured key and a
        # resolvable default model are the liveness signal.
        _headers()
        if self.default_model not in self.models:
            raise ProviderError(self.name, "default model missing from model table")


class FalTrainer(Trainer):
    name = "fal"
    webhook_path = "/api/llm/tune-webhook-fal"
    estimated_cost = 2.0

    async def train(self, images, trigger_word, webhook_url, subject="person", title="") -> ExternalJobHandle:
        body = {
            "images_data_url": images,
            "trigger_word": trigger_word,
            "is_style": False,
            "is_subject": True,
            "steps": 1000,
            "learning_rate": 0.0004,
            "batch_size": 1,
            "resolution": 512,
        }
        data = await http_module.request_json(
            self.name,
            "POST",
            f"{QUEUE_URL}/{TRAINING_ENDPOINT}",
            headers=_headers(),
            json_body=body,
            params={"fal_webhook": webhook_url},
        )
        request_id = data.get("request_id")
        if not request_id:
            raise ProviderError(self.name, f"queue submit returned no request_id: {data}")

        logger.info(f"[FAL] Training queued: {request_id}")
        return ExternalJobHandle(id=request_id, provider="fal-ai", raw=data)
