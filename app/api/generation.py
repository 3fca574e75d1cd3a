"""
Image generation routes: unified generate endpoint and the generation cache.
"""

import logging
import time

from fastapi import APIRouter, Depends, HTTPException

from app.config import settings
from app.core.auth import get_current_user
from app.core.dependencies import get_generation_router
from app.schemas.generation import (
    Budget,
    GenerateBody,
    GenerationRequest,
    GenerationResult,
    Quality,
    Speed,
)
from app.services import generation_cache
from app.services.finance_service import FinanceCategory, log_transaction
from app.services.generation_router import GenerationRouter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Generation"])


def _cache_key(gen_request: GenerationRequest, gen_router: GenerationRouter, user_id: str) -> str:
    # The model is only known up front when the caller pins a provider
    if gen_request.provider and gen_request.provider in gen_router.providers:
        provider = gen_router.providers[gen_request.provider]
        model_id = f"{provider.name}:{provider.select_model(gen_request.requirements)}"
    else:
        model_id = "auto"
    parameters = {
        "options": gen_request.options.model_dump(mode="json"),
        "requirements": (
            gen_request.requirements.model_dump(mode="json") if gen_request.requirements else None
        ),
    }
    return generation_cache.make_key(gen_request.prompt, model_id, parameters, user_id)


def _response(result: GenerationResult, total_ms: float) -> dict:
    metadata = result.metadata.model_dump(mode="json")
    metadata["total_processing_time_ms"] = round(total_ms, 2)
    return {
        "success": True,
        "result": {"images": [img.model_dump(mode="json") for img in result.images]},
        "metadata": metadata,
    }


@router.post("/api/ai/generate")
async def generate(
    body: GenerateBody,
    user: dict = Depends(get_current_user),
    gen_router: GenerationRouter = Depends(get_generation_router),
):
    """Generate images through the best available provider, with cache and fallback."""
    if not body.prompt or not body.prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt is required")

    start = time.perf_counter()
    gen_request = GenerationRequest(
        prompt=body.prompt,
        provider=body.provider,
        requirements=body.requirements,
        options=body.options,
    )

    use_cache = body.use_cache and settings.ai_cache_enabled
    key = None
    if use_cache:
        key = _cache_key(gen_request, gen_router, user["uid"])
        cached = generation_cache.get(key)
        if cached:
            return _response(cached, (time.perf_counter() - start) * 1000)

    result = await gen_router.generate(gen_request)

    if use_cache:
        generation_cache.put(key, result, {"cost": result.metadata.cost, "provider": result.metadata.provider})

    log_transaction(
        FinanceCategory.GENERATION,
        -result.metadata.cost,
        user_id=user["uid"],
        provider=result.metadata.provider,
        model=result.metadata.model,
        images=len(result.images),
        fallback_used=result.metadata.fallback_used,
    )

    total_ms = (time.perf_counter() - start) * 1000
    logger.info(
        f"[GENERATE] User: {user['uid']} | {result.metadata.provider}/{result.metadata.model} "
        f"| {len(result.images)} image(s) | {total_ms:.0f}ms"
    )
    return _response(result, total_ms)


@router.get("/api/ai/generate")
async def generation_info(gen_router: GenerationRouter = Depends(get_generation_router)):
    """Capabilities of the configured providers and current system health."""
    return {
        "capabilities": gen_router.capabilities(),
        "supported_requirements": {
            "quality": [q.value for q in Quality],
            "speed": [s.value for s in Speed],
            "budget": [b.value for b in Budget],
        },
        "cache_enabled": settings.ai_cache_enabled,
        "health": gen_router.get_system_health(),
    }


@router.get("/api/ai/cache")
async def cache_stats():
    return generation_cache.get_stats()


@router.delete("/api/ai/cache")
async def clear_cache(user: dict = Depends(get_current_user)):
    removed = generation_cache.clear()
    logger.info(f"[CACHE] Cleared by {user['uid']}")
    return {"success": True, "removed": removed}
