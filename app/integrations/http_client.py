"""
Shared aiohttp ClientSession for every outbound provider call (fal.ai,
Leonardo, Astria, Replicate, Resend).

Usage:
    async with http_client.request_session() as sess:
        async with sess.post(url, json=payload, headers=headers) as response:
            ...

The context manager yields the shared session when available, otherwise
creates and closes a temporary one (tests, scripts, pre-init calls).
"""

import logging
from contextlib import asynccontextmanager

import aiohttp

from app.config import settings
from app.core.errors import ProviderError

logger = logging.getLogger(__name__)

session: aiohttp.ClientSession | None = None


def _new_session() -> aiohttp.ClientSession:
    return aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=settings.http_timeout_sec)
    )


async def initialize() -> None:
    global session
    session = _new_session()
    logger.info("[STARTUP] Shared HTTP session initialized")


async def close() -> None:
    global session
    if session and not session.closed:
        await session.close()
        session = None
        logger.info("[SHUTDOWN] Shared HTTP session closed")


@asynccontextmanager
async def request_session():
    """Yield the shared session, or a temporary one that is closed afterwards."""
    if session and not session.closed:
        yield session
    else:
        tmp = _new_session()
        try:
            yield tmp
        finally:
            await tmp.close()


async def request_json(
    provider: str,
    method: str,
    url: str,
    *,
    headers: dict | None = None,
    json_body: dict | None = None,
    params: dict | None = None,
) -> dict:
    """
    Issue one JSON request and return the decoded body.

    Transport errors and non-2xx responses become ProviderError so callers
    (router, trainers, health probes) see a single failure type.
    """
    try:
        async with request_session() as sess:
            async with sess.request(
                method, url, headers=headers, json=json_body, params=params
            ) as response:
                if response.status >= 300:
                    text = await response.text()
                    raise ProviderError(
                        provider, f"HTTP {response.status}: {text[:300]}", status=response.status
                    )
                return await response.json(content_type=None)
    except aiohttp.ClientError as e:
        raise ProviderError(provider, f"connection error: {e}")
