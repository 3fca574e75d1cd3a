"""
Generation result cache: Redis (preferred) → Local Memory (fallback).

Entries are keyed by a SHA-256 fingerprint of the request, so two identical
requests from the same user return the same stored images. Two concurrent
misses for the same key both call the provider; there is no request
coalescing.

The Redis client is accessed at call-time via the integration module so that
it picks up the instance initialized during the FastAPI lifespan.
"""

import hashlib
import json
import logging
import time
from typing import Optional

from app.config import settings
from app.integrations import redis_client as redis_module
from app.schemas.generation import GenerationResult

logger = logging.getLogger(__name__)

# key -> (payload, expires_at)
local_cache: dict = {}

stats = {"hits": 0, "misses": 0, "writes": 0}


def make_key(prompt: str, model_id: str, parameters: dict, user_id: Optional[str]) -> str:
    """Stable fingerprint of one generation request."""
    canonical = json.dumps(
        {
            "prompt": prompt,
            "model_id": model_id,
            "parameters": parameters,
            "user_id": user_id,
        },
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _redis_key(key: str) -> str:
    return f"{settings.generation_cache_prefix}:{key}"


def _hit(payload: dict, source: str, key: str) -> GenerationResult:
    stats["hits"] += 1
    logger.info(f"[CACHE] {source} HIT for key: {key[:16]}")
    result = GenerationResult.model_validate(payload["result"])
    result.metadata.from_cache = True
    return result


def get(key: str) -> Optional[GenerationResult]:
    """Return the stored result flagged `from_cache`, or None on a miss or expiry."""
    rc = redis_module.client
    if rc:
        try:
            data = rc.get(_redis_key(key))
        except Exception as e:
            logger.warning(f"Redis get failed: {e}")
            data = None
        if data:
            return _hit(json.loads(data), "Redis", key)
        stats["misses"] += 1
        logger.info(f"[CACHE] Redis MISS for key: {key[:16]}")
        return None

    entry = local_cache.get(key)
    if entry:
        payload, expires_at = entry
        if time.time() < expires_at:
            return _hit(payload, "Local Memory", key)
        logger.info(f"[CACHE] Local Memory EXPIRED for key: {key[:16]}")
        del local_cache[key]

    stats["misses"] += 1
    logger.info(f"[CACHE] Local Memory MISS for key: {key[:16]}")
    return None


def put(key: str, result: GenerationResult, cost_metadata: Optional[dict] = None,
        ttl_sec: Optional[int] = None) -> None:
    """Store a result for `ttl_sec` (default: configured TTL)."""
    ttl = ttl_sec or settings.generation_cache_ttl_sec
    payload = {
        "result": result.model_dump(mode="json"),
        "cost": cost_metadata or {},
        "stored_at": time.time(),
    }

    rc = redis_module.client
    if rc:
        try:
            rc.set(_redis_key(key), json.dumps(payload), ex=ttl)
        except Exception as e:
            logger.warning(f"Redis set failed: {e}")
            return
    else:
        local_cache[key] = (payload, time.time() + ttl)

    stats["writes"] += 1


def get_stats() -> dict:
    lookups = stats["hits"] + stats["misses"]
    return {
        **stats,
        "hit_rate": round(stats["hits"] / lookups, 3) if lookups else 0.0,
        "backend": "redis" if redis_module.client else "memory",
        "local_entries": len(local_cache),
        "ttl_sec": settings.generation_cache_ttl_sec,
    }


def clear() -> int:
    """Drop every cached generation. Returns the number of entries removed."""
    removed = len(local_cache)
    local_cache.clear()

    rc = redis_module.client
    if rc:
        try:
            keys = rc.keys(f"{settings.generation_cache_prefix}:*")
            if keys:
                rc.delete(*keys)
            removed += len(keys)
        except Exception as e:
            logger.warning(f"Redis clear failed: {e}")

    for k in stats:
        stats[k] = 0
    logger.info(f"[CACHE] Cleared {removed} entries")
    return removed
