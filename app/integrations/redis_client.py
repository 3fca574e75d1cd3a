"""
Upstash Redis integration backing the generation cache.

`client` starts as None. Call `initialize()` inside the FastAPI lifespan.
Consumers reference `redis_client.client` at call time rather than importing
the variable directly, so a missing Redis simply means the in-process cache
is used instead.
"""

import logging
import os

from upstash_redis import Redis

logger = logging.getLogger(__name__)

# Set by initialize(). None when credentials are absent or init fails.
client = None  # Redis | None


def initialize() -> None:
    global client

    url = os.getenv("UPSTASH_REDIS_REST_URL") or os.getenv("UPSTASH_REDIS_HOST")
    token = os.getenv("UPSTASH_REDIS_REST_TOKEN") or os.getenv("UPSTASH_REDIS_PASSWORD")

    if not (url and token):
        logger.warning("[STARTUP] Redis credentials not found. Generation cache stays in memory.")
        return

    try:
        client = Redis(url=url, token=token)
        logger.info("[STARTUP] Upstash Redis client initialized")
    except Exception as e:
        logger.error(f"[STARTUP] Failed to initialize Upstash Redis client: {e}")
