from app.schemas.generation import (
    GenerateBody,
    GeneratedImage,
    GenerationMetadata,
    GenerationRequest,
    GenerationRequirements,
    GenerationResult,
    ImageOptions,
)
from app.schemas.health import HealthAction
from app.schemas.tunes import TuneResponse

__all__ = [
    "GenerateBody",
    "GeneratedImage",
    "GenerationMetadata",
    "GenerationRequest",
    "GenerationRequirements",
    "GenerationResult",
    "ImageOptions",
    "HealthAction",
    "TuneResponse",
]
