"""
Webhook routes: training-completion callbacks (fal.ai, Astria, Replicate) and Polar payment events.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Query, Request

from app.config import settings
from app.core.signatures import verify_polar_signature, verify_shared_secret
from app.services import payments_service, users_service
from app.services.training_webhook_service import apply_training_event

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])


async def _training_webhook(
    provider: str,
    request: Request,
    user_id: Optional[str],
    webhook_secret: Optional[str],
) -> dict:
    """
    Auth: providers cannot send custom headers, so the shared secret and user id
    travel in the callback URL registered when the tune was created, e.g.:
        https://www.cvphoto.app/api/llm/tune-webhook-fal?webhook_secret=<APP_WEBHOOK_SECRET>&user_id=<uid>
    """
    if not webhook_secret:
        raise HTTPException(status_code=400, detail="Malformed URL, no webhook_secret detected!")
    if not verify_shared_secret(webhook_secret, settings.app_webhook_secret):
        logger.warning(f"[WEBHOOK] {provider} secret mismatch; rejecting request.")
        raise HTTPException(status_code=401, detail="Unauthorized!")
    if not user_id:
        raise HTTPException(status_code=400, detail="Malformed URL, no user_id detected!")

    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    if users_service.get_user(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")

    message = apply_training_event(provider, user_id, payload)
    return {"message": message}


@router.post("/api/llm/tune-webhook-fal")
async def fal_tune_webhook(
    request: Request,
    user_id: Optional[str] = Query(None),
    webhook_secret: Optional[str] = Query(None),
):
    return await _training_webhook("fal", request, user_id, webhook_secret)


@router.post("/api/llm/tune-webhook")
async def astria_tune_webhook(
    request: Request,
    user_id: Optional[str] = Query(None),
    webhook_secret: Optional[str] = Query(None),
):
    return await _training_webhook("astria", request, user_id, webhook_secret)


@router.post("/api/llm/tune-webhook-replicate")
async def replicate_tune_webhook(
    request: Request,
    user_id: Optional[str] = Query(None),
    webhook_secret: Optional[str] = Query(None),
):
    return await _training_webhook("replicate", request, user_id, webhook_secret)


@router.post("/api/webhooks/polar")
async def polar_webhook(
    request: Request,
    polar_signature: Optional[str] = Header(None, alias="polar-signature"),
):
    """Verifies and processes Polar order / subscription / checkout events."""
    if not settings.polar_webhook_secret:
        return {"status": "ignored", "reason": "No secret set"}

    payload_bytes = await request.body()
    if not verify_polar_signature(payload_bytes, polar_signature, settings.polar_webhook_secret):
        logger.warning("[POLAR] Invalid webhook signature; rejecting request.")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        event = json.loads(payload_bytes)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    logger.info(f"[POLAR] Received {event.get('type')}")
    return await payments_service.handle_event(event)
