"""
Provider health routes: read metrics and history, trigger checks, control monitoring.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth import get_current_user
from app.core.dependencies import get_health_monitor
from app.schemas.health import HealthAction
from app.services.health_monitor import ProviderHealthMonitor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/api/ai/provider-health")
async def provider_health(
    provider: Optional[str] = Query(None),
    history: bool = Query(False),
    monitor: ProviderHealthMonitor = Depends(get_health_monitor),
):
    if provider:
        body = {"provider": provider, "metrics": monitor.get_metrics(provider)}
        if history:
            body["history"] = monitor.get_history(provider)
        return body

    body = {
        "system": monitor.get_system_health(),
        "summary": monitor.get_health_summary(),
    }
    if history:
        body["history"] = {name: monitor.get_history(name) for name in monitor.providers}
    return body


@router.post("/api/ai/provider-health")
async def provider_health_action(
    action: HealthAction,
    user: dict = Depends(get_current_user),
    monitor: ProviderHealthMonitor = Depends(get_health_monitor),
):
    logger.info(f"[HEALTH] Action '{action.action}' (provider={action.provider}) by {user['uid']}")

    if action.action == "force-check":
        results = await monitor.force_check(action.provider)
        return {"success": True, "results": results}

    if action.action == "reset-metrics":
        monitor.reset_metrics(action.provider)
        return {"success": True, "message": "Metrics reset"}

    if action.action == "start-monitoring":
        started = monitor.start_monitoring()
        return {
            "success": True,
            "message": "Monitoring started" if started else "Monitoring already running",
        }

    if action.action == "stop-monitoring":
        stopped = await monitor.stop_monitoring()
        return {
            "success": True,
            "message": "Monitoring stopped" if stopped else "Monitoring was not running",
        }

    raise HTTPException(status_code=400, detail=f"Unknown action: {action.action}")
