"""
Request-scoped accessors for the services built during the FastAPI lifespan.
"""

from fastapi import HTTPException, Request

from app.services.generation_router import GenerationRouter
from app.services.health_monitor import ProviderHealthMonitor


def get_generation_router(request: Request) -> GenerationRouter:
    router = getattr(request.app.state, "generation_router", None)
    if router is None:
        raise HTTPException(status_code=503, detail="Generation service unavailable.")
    return router


def get_health_monitor(request: Request) -> ProviderHealthMonitor:
    monitor = getattr(request.app.state, "health_monitor", None)
    if monitor is None:
        raise HTTPException(status_code=503, detail="Health monitor unavailable.")
    return monitor
