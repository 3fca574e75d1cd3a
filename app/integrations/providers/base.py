"""
Provider adapter contracts.

ImageProvider: synchronous (request/response) image generation used by the
generation router. Trainer: the one-shot "start model training" call used by
the tune claim guard.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from app.schemas.generation import (
    GeneratedImage,
    GenerationRequest,
    GenerationRequirements,
    Quality,
)


@dataclass
class ExternalJobHandle:
    """What a provider hands back when a training job is accepted."""
    id: str
    provider: str
    status: str = "training"
    raw: dict = field(default_factory=dict)


class ImageProvider(ABC):
    name: str
    # local model id → remote endpoint / model id
    models: Dict[str, str]
    # local model id → USD per image
    prices: Dict[str, float]
    quality_models: Dict[Quality, str]
    default_model: str

    def select_model(self, requirements: Optional[GenerationRequirements]) -> str:
        if not requirements:
            return self.default_model
        return self.quality_models.get(requirements.quality, self.default_model)

    def estimate_cost(self, model: str, num_images: int) -> float:
        return round(self.prices.get(model, 0.0) * num_images, 4)

    @abstractmethod
    async def generate(self, request: GenerationRequest, model: str) -> List[GeneratedImage]:
        """Run one generation; raise ProviderError on any upstream failure."""

    @abstractmethod
    async def probe(self) -> None:
        """Cheapest call that proves the provider is reachable; raise on failure."""


class Trainer(ABC):
    name: str
    # Path of the completion webhook this provider should call back.
    webhook_path: str
    # True when the provider wants one archive URL instead of individual selfies
    accepts_archive: bool = False
    # Rough USD cost of one training run, for the financial event log
    estimated_cost: float = 0.0

    @abstractmethod
    async def train(
        self,
        images: List[str],
        trigger_word: str,
        webhook_url: str,
        subject: str = "person",
        title: str = "",
    ) -> ExternalJobHandle:
        """Start a training job. Raises ProviderError when the provider refuses it."""
