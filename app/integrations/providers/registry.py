from typing import Dict

from app.core.errors import ValidationError
from app.integrations.providers.astria import AstriaTrainer
from app.integrations.providers.base import ImageProvider, Trainer
from app.integrations.providers.fal import FalProvider, FalTrainer
from app.integrations.providers.leonardo import LeonardoProvider
from app.integrations.providers.replicate import ReplicateTrainer

TRAINERS = {
    "fal": FalTrainer,
    "astria": AstriaTrainer,
    "replicate": ReplicateTrainer,
}


def build_image_providers() -> Dict[str, ImageProvider]:
    providers = [FalProvider(), LeonardoProvider()]
    return {p.name: p for p in providers}


def get_trainer(name: str) -> Trainer:
    trainer_cls = TRAINERS.get(name)
    if not trainer_cls:
        raise ValidationError(f"Unknown training provider: {name}")
    return trainer_cls()
