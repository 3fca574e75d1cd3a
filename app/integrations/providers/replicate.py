import logging

from app.config import settings
from app.core.errors import ProviderError
from app.integrations import http_client as http_module
from app.integrations.providers.base import ExternalJobHandle, Trainer

logger = logging.getLogger(__name__)

BASE_URL = "https://api.replicate.com/v1"


class ReplicateTrainer(Trainer):
    """LoRA training on Replicate. The trainer takes a single ZIP archive of the selfies."""

    name = "replicate"
    webhook_path = "/api/llm/tune-webhook-replicate"
    accepts_archive = True
    estimated_cost = 2.0

    async def train(self, images, trigger_word, webhook_url, subject="person", title="") -> ExternalJobHandle:
        if not settings.replicate_api_token:
            raise ProviderError(self.name, "REPLICATE_API_TOKEN is not configured")
        if not settings.replicate_training_version or not settings.replicate_destination:
            raise ProviderError(self.name, "training version or destination is not configured")
        if len(images) != 1:
            raise ProviderError(self.name, f"expected one ZIP archive URL, got {len(images)} images")

        url = (
            f"{BASE_URL}/models/{settings.replicate_training_model}"
            f"/versions/{settings.replicate_training_version}/trainings"
        )
        body = {
            "destination": settings.replicate_destination,
            "input": {
                "input_images": images[0],
                "trigger_word": trigger_word,
                "steps": 1000,
                "learning_rate": 0.0004,
                "batch_size": 1,
                "resolution": "1024",
                "autocaption": True,
            },
            "webhook": webhook_url,
            "webhook_events_filter": ["completed"],
        }
        data = await http_module.request_json(
            self.name,
            "POST",
            url,
            headers={"Authorization": f"Bearer {settings.replicate_api_token}"},
            json_body=body,
        )
        if "id" not in data:
            raise ProviderError(self.name, f"training response has no id: {data}")

        logger.info(f"[REPLICATE] Training created: {data['id']}")
        return ExternalJobHandle(
            id=data["id"], provider="replicate", status=data.get("status", "starting"), raw=data
        )
