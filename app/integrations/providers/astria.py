import logging

from app.config import settings
from app.core.errors import ProviderError
from app.integrations import http_client as http_module
from app.integrations.providers.base import ExternalJobHandle, Trainer

logger = logging.getLogger(__name__)

BASE_URL = "https://api.astria.ai"


class AstriaTrainer(Trainer):
    name = "astria"
    webhook_path = "/api/llm/tune-webhook"
    estimated_cost = 1.5

    async def train(self, images, trigger_word, webhook_url, subject="person", title="") -> ExternalJobHandle:
        if not settings.astria_api_key:
            raise ProviderError(self.name, "ASTRIA_API_KEY is not configured")

        body = {
            "tune": {
                "title": title,
                "branch": "flux1",
                "token": trigger_word,
                "model_type": "lora",
                "name": subject,
                "image_urls": images,
                "callback": webhook_url,
            }
        }
        data = await http_module.request_json(
            self.name,
            "POST",
            f"{BASE_URL}/tunes",
            headers={"Authorization": f"Bearer {settings.astria_api_key}"},
            json_body=body,
        )
        if "id" not in data:
            raise ProviderError(self.name, f"tune response has no id: {data}")

        logger.info(f"[ASTRIA] Tune created: {data['id']}")
        return ExternalJobHandle(id=str(data["id"]), provider="astria", raw=data)
