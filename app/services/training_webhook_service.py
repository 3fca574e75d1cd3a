"""
Training-completion callbacks from fal.ai, Astria and Replicate.

Each callback is appended to the user's `tuneHistory`; terminal payloads move
`tuneStatus` to "completed" or "failed". For fal.ai and Replicate the trained
LoRA weights URL is merged into `apiStatus`.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from firebase_admin import firestore

from app.core.errors import NotFoundError
from app.services import users_service

logger = logging.getLogger(__name__)

COMPLETED = "completed"
FAILED = "failed"


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def interpret_fal(payload: dict) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """Returns (terminal status or None, lora url, error)."""
    status = str(payload.get("status", "")).lower()
    if status in ("completed", "ok"):
        result = _as_dict(payload.get("result")) or _as_dict(payload.get("payload"))
        lora_url = _as_dict(result.get("diffusers_lora_file")).get("url")
        return COMPLETED, lora_url, None
    if status in ("failed", "error"):
        return FAILED, None, payload.get("error") or "training failed"
    return None, None, None


def interpret_astria(payload: dict) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    # Astria only calls back once the tune has finished training
    tune = _as_dict(payload.get("tune")) or payload
    if tune.get("error") or tune.get("failed_at"):
        return FAILED, None, str(tune.get("error") or "training failed")
    return COMPLETED, None, None


def interpret_replicate(payload: dict) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    status = str(payload.get("status", "")).lower()
    if status == "succeeded":
        lora_url = _as_dict(payload.get("output")).get("weights")
        return COMPLETED, lora_url, None
    if status in ("failed", "canceled"):
        return FAILED, None, payload.get("error") or f"training {status}"
    return None, None, None


INTERPRETERS = {
    "fal": interpret_fal,
    "astria": interpret_astria,
    "replicate": interpret_replicate,
}


def apply_training_event(provider: str, user_id: str, payload: dict) -> str:
    """
    Fold one callback into the user document. Returns the status message for
    the HTTP response. Raises NotFoundError when the user does not exist.
    """
    db = users_service._get_db()
    ref = users_service.user_ref(user_id)
    terminal, lora_url, error = INTERPRETERS[provider](payload)
    received_at = datetime.now(timezone.utc).isoformat()

    entry = {
        "provider": provider,
        "received_at": received_at,
        "status": terminal or str(payload.get("status", "in_progress")),
    }
    if error:
        entry["error"] = str(error)

    transaction = db.transaction()

    @firestore.transactional
    def apply_in_transaction(transaction, ref):
        snapshot = ref.get(transaction=transaction)
        if not snapshot.exists:
            raise NotFoundError("User not found")
        data = snapshot.to_dict()

        fields = {"tuneHistory": list(data.get("tuneHistory") or []) + [entry]}
        if terminal == COMPLETED:
            api_status = dict(data.get("apiStatus") or {})
            api_status.update({"status": COMPLETED, "completed_at": received_at})
            if lora_url:
                api_status["lora_url"] = lora_url
            fields["apiStatus"] = api_status
            fields["tuneStatus"] = COMPLETED
        elif terminal == FAILED:
            fields["tuneStatus"] = FAILED
        transaction.update(ref, fields)

    apply_in_transaction(transaction, ref)

    if terminal == COMPLETED:
        logger.info(f"[WEBHOOK] {provider} training completed for {user_id}")
        return "Training completed"
    if terminal == FAILED:
        logger.warning(f"[WEBHOOK] {provider} training failed for {user_id}: {error}")
        return "Training failed"
    logger.info(f"[WEBHOOK] {provider} training update for {user_id}: {entry['status']}")
    return f"Training status: {entry['status']}"
