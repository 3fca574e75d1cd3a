"""
System routes: liveness probe and crawler policy.
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from app.config import settings

router = APIRouter(tags=["System"])


@router.get("/health")
async def health():
    """Process liveness only; provider health lives under /api/ai/provider-health."""
    return {"status": "healthy", "environment": settings.app_env}


@router.get("/robots.txt", response_class=PlainTextResponse)
def robots():
    # API only: nothing here should be indexed
    return "User-agent: *\nDisallow: /"
