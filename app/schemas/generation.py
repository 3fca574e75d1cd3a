from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Quality(str, Enum):
    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"


class Speed(str, Enum):
    FAST = "fast"
    STANDARD = "standard"
    SLOW = "slow"


class Budget(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class GenerationRequirements(BaseModel):
    quality: Quality = Quality.STANDARD
    speed: Speed = Speed.STANDARD
    budget: Budget = Budget.MEDIUM
    features: List[str] = Field(default_factory=list)  # e.g. ["lora", "upscaling", "video"]


class ImageOptions(BaseModel):
    num_images: int = Field(1, ge=1, le=8)
    image_size: str = "square_hd"  # square | square_hd | portrait | landscape
    seed: Optional[int] = None
    guidance_scale: Optional[float] = None
    num_inference_steps: Optional[int] = None
    negative_prompt: Optional[str] = None
    lora_path: Optional[str] = None
    lora_scale: Optional[float] = None


class GenerationRequest(BaseModel):
    """Transient value object; lives only for the duration of a router call."""
    prompt: str
    provider: Optional[str] = None
    requirements: Optional[GenerationRequirements] = None
    options: ImageOptions = Field(default_factory=ImageOptions)


class GeneratedImage(BaseModel):
    url: str
    width: int
    height: int
    provider: str


class GenerationMetadata(BaseModel):
    provider: str
    model: str
    processing_time_ms: float
    cost: float
    fallback_used: bool = False
    from_cache: bool = False


class GenerationResult(BaseModel):
    images: List[GeneratedImage]
    metadata: GenerationMetadata


class GenerateBody(BaseModel):
    """POST /api/ai/generate body. `prompt` is checked by the route so a missing one is a 400."""
    model_config = ConfigDict(populate_by_name=True)

    prompt: Optional[str] = None
    provider: Optional[str] = None
    requirements: Optional[GenerationRequirements] = None
    options: ImageOptions = Field(default_factory=ImageOptions)
    use_cache: bool = Field(True, alias="useCache")
