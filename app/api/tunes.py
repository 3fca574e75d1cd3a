"""
Tune creation route: starts the caller's one model-training job.
"""

import logging

from fastapi import APIRouter, Depends

from app.core.auth import get_current_user
from app.schemas.tunes import TuneResponse
from app.services.tune_service import create_tune

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Tunes"])


@router.post("/api/llm/tune", response_model=TuneResponse)
async def start_tune(user: dict = Depends(get_current_user)):
    """
    Idempotent: a second call for a user whose tune is claimed, running or
    finished returns started=False with the reason instead of an error.
    """
    attempt = await create_tune(user["uid"])
    return TuneResponse(
        started=attempt.started,
        reason=attempt.reason,
        api_status=attempt.api_status,
    )
