"""
Unified image generation router.

Picks a provider for each request (explicit hint, else a table-driven score
over the caller's quality/speed/budget/features requirements), skips providers
the health monitor reports offline, runs the call under a timeout and falls
back once: to `AI_FALLBACK_PROVIDER` when set, otherwise to the best-ranked
available provider other than the one that just failed.

Pipeline:
    1. validate prompt / hint
    2. rank candidates, drop offline ones
    3. attempt primary choice → record outcome in the monitor
    4. on failure, attempt the fallback once → record outcome
    5. both failed → GenerationFailed(last error)
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Tuple

from app.core.errors import GenerationFailed, ProviderError, ValidationError
from app.integrations.providers.base import ImageProvider
from app.schemas.generation import (
    Budget,
    GeneratedImage,
    GenerationMetadata,
    GenerationRequest,
    GenerationRequirements,
    GenerationResult,
    Quality,
    Speed,
)
from app.services.health_monitor import ProviderHealthMonitor

logger = logging.getLogger(__name__)

# Static fitness of each provider per requirement value (higher is better).
PROVIDER_PROFILES: Dict[str, dict] = {
    "fal": {
        "quality": {Quality.BASIC: 2, Quality.STANDARD: 3, Quality.PREMIUM: 3},
        "budget": {Budget.LOW: 1, Budget.MEDIUM: 2, Budget.HIGH: 3},
        "speed": {Speed.FAST: 3, Speed.STANDARD: 2, Speed.SLOW: 1},
        "features": {"lora", "upscaling"},
    },
    "leonardo": {
        "quality": {Quality.BASIC: 3, Quality.STANDARD: 2, Quality.PREMIUM: 2},
        "budget": {Budget.LOW: 3, Budget.MEDIUM: 2, Budget.HIGH: 1},
        "speed": {Speed.FAST: 1, Speed.STANDARD: 2, Speed.SLOW: 2},
        "features": {"video", "try-on"},
    },
}

FEATURE_MATCH_BONUS = 2.0
FEATURE_MISSING_PENALTY = 5.0
FASTEST_BONUS = 2.0


def rank_providers(
    requirements: Optional[GenerationRequirements],
    candidates: List[str],
    latencies: Optional[Dict[str, Optional[float]]] = None,
    primary: Optional[str] = None,
) -> List[Tuple[str, float]]:
    """
    Score candidates against the requirements and return (name, score) pairs,
    best first. Ties go to the primary provider, then alphabetical order.
    Providers with no profile score zero on every axis.
    """
    reqs = requirements or GenerationRequirements()
    latencies = latencies or {}
    scores: Dict[str, float] = {}

    for name in candidates:
        profile = PROVIDER_PROFILES.get(name, {})
        score = 0.0
        score += profile.get("quality", {}).get(reqs.quality, 0)
        score += profile.get("budget", {}).get(reqs.budget, 0)
        score += profile.get("speed", {}).get(reqs.speed, 0)

        supported = profile.get("features", set())
        for feature in reqs.features:
            if feature in supported:
                score += FEATURE_MATCH_BONUS
            else:
                score -= FEATURE_MISSING_PENALTY
        scores[name] = score

    if reqs.speed == Speed.FAST:
        observed = {n: lat for n, lat in latencies.items() if n in scores and lat is not None}
        if observed:
            fastest = min(observed, key=observed.get)
            scores[fastest] += FASTEST_BONUS

    return sorted(scores.items(), key=lambda kv: (-kv[1], kv[0] != primary, kv[0]))


class GenerationRouter:
    def __init__(
        self,
        providers: Dict[str, ImageProvider],
        monitor: ProviderHealthMonitor,
        primary: str,
        fallback_enabled: bool = True,
        fallback_provider: Optional[str] = None,
        timeout_sec: float = 120.0,
    ):
        if primary not in providers:
            raise ValueError(f"Primary provider '{primary}' is not registered")
        self.providers = providers
        self.monitor = monitor
        self.primary = primary
        self.fallback_enabled = fallback_enabled
        # None: pick the fallback per request from the ranking
        self.fallback_provider = fallback_provider
        self.timeout_sec = timeout_sec

    def _ranked(self, request: GenerationRequest, names: List[str]) -> List[Tuple[str, float]]:
        latencies = {n: self.monitor.average_latency(n) for n in names}
        return rank_providers(request.requirements, names, latencies, self.primary)

    def select_provider(self, request: GenerationRequest) -> str:
        if request.provider:
            if request.provider not in self.providers:
                raise ValidationError(f"Unknown provider: {request.provider}")
            return request.provider

        for name, score in self._ranked(request, list(self.providers)):
            if self.monitor.is_available(name):
                logger.info(f"[ROUTER] Selected {name} (score={score})")
                return name

        logger.warning(f"[ROUTER] No provider available; attempting primary {self.primary} anyway")
        return self.primary

    def select_fallback(self, chosen: str, request: GenerationRequest) -> Optional[str]:
        """Provider to retry on after `chosen` failed, or None when there is none to try."""
        if not self.fallback_enabled:
            return None
        if self.fallback_provider and self.fallback_provider != chosen:
            candidates = [self.fallback_provider]
        else:
            others = [n for n in self.providers if n != chosen]
            candidates = [name for name, _ in self._ranked(request, others)]

        for name in candidates:
            if name in self.providers and self.monitor.is_available(name):
                return name
        return None

    async def _attempt(
        self, name: str, request: GenerationRequest
    ) -> Tuple[List[GeneratedImage], str, float]:
        provider = self.providers[name]
        model = provider.select_model(request.requirements)
        start = time.perf_counter()
        try:
            images = await asyncio.wait_for(
                provider.generate(request, model), timeout=self.timeout_sec
            )
        except asyncio.TimeoutError:
            latency = (time.perf_counter() - start) * 1000
            self.monitor.record_outcome(name, False, latency, "timeout")
            raise ProviderError(name, f"timed out after {self.timeout_sec}s")
        except ProviderError as e:
            latency = (time.perf_counter() - start) * 1000
            self.monitor.record_outcome(name, False, latency, e.message)
            raise
        except Exception as e:
            latency = (time.perf_counter() - start) * 1000
            self.monitor.record_outcome(name, False, latency, str(e))
            raise ProviderError(name, f"unexpected error: {e}") from e

        latency = (time.perf_counter() - start) * 1000
        self.monitor.record_outcome(name, True, latency)
        return images, model, latency

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        if not request.prompt or not request.prompt.strip():
            raise ValidationError("Prompt is required")

        chosen = self.select_provider(request)
        start = time.perf_counter()
        used = chosen
        fallback_used = False

        try:
            images, model, _ = await self._attempt(chosen, request)
        except ProviderError as first_error:
            logger.warning(f"[ROUTER] {chosen} failed: {first_error.message}")
            fallback = self.select_fallback(chosen, request)
            if not fallback:
                raise GenerationFailed(first_error.message)

            logger.info(f"[ROUTER] Falling back to {fallback}")
            try:
                images, model, _ = await self._attempt(fallback, request)
            except ProviderError as second_error:
                logger.error(f"[ROUTER] Fallback {fallback} failed: {second_error.message}")
                raise GenerationFailed(second_error.message)
            used = fallback
            fallback_used = True

        elapsed = (time.perf_counter() - start) * 1000
        provider = self.providers[used]
        metadata = GenerationMetadata(
            provider=used,
            model=model,
            processing_time_ms=round(elapsed, 2),
            cost=provider.estimate_cost(model, len(images)),
            fallback_used=fallback_used,
        )
        logger.info(f"[ROUTER] Generated {len(images)} image(s) via {used}/{model} in {elapsed:.0f}ms")
        return GenerationResult(images=images, metadata=metadata)

    def get_system_health(self) -> dict:
        return self.monitor.get_system_health()

    def capabilities(self) -> dict:
        return {
            "primary": self.primary,
            "fallback_enabled": self.fallback_enabled,
            "fallback_provider": self.fallback_provider,
            "timeout_sec": self.timeout_sec,
            "providers": {
                name: {
                    "models": list(p.models),
                    "quality_models": {q.value: m for q, m in p.quality_models.items()},
                    "features": sorted(PROVIDER_PROFILES.get(name, {}).get("features", [])),
                    "status": self.monitor.get_status(name).value,
                }
                for name, p in self.providers.items()
            },
        }
