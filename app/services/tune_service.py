"""
One-time tune (model training) creation, guarded against duplicate submission.

A tune costs real money at the provider, so a user may start at most one.
The guard walks the user document through:

    NOT_STARTED (tuneStatus null, apiStatus absent)
        → CLAIMED     (tuneStatus "ongoing", tuneClaimId = our token)
        → API_CALLED  (apiStatus written once, submissionDate stamped)
        → COMPLETED / FAILED   (training webhook)

The claim is a single Firestore transaction, so exactly one of several
concurrent callers moves the document to CLAIMED; the others see the
conflict and abort quietly. A failed provider call releases the claim so the
user can retry.

The Firebase `db` client is accessed at call-time via the integration module
so it picks up the instance initialized during the FastAPI lifespan.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

from firebase_admin import firestore

from app.config import settings
from app.core.errors import NotFoundError, StateConflictError
from app.integrations.providers.base import ExternalJobHandle, Trainer
from app.integrations.providers.registry import get_trainer
from app.services import users_service
from app.services.finance_service import FinanceCategory, log_transaction

logger = logging.getLogger(__name__)


@dataclass
class TuneAttempt:
    started: bool
    reason: str
    api_status: Optional[dict] = None


def _parse_date(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"[TUNE] Unparseable submissionDate: {value!r}")
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def check_preconditions(user: dict) -> Optional[str]:
    """Return the abort reason for a user that must not start a tune, else None."""
    if user.get("apiStatus"):
        return "already_submitted"

    tune_status = user.get("tuneStatus")
    if tune_status in ("ongoing", "completed"):
        return f"tune_{tune_status}"
    if user.get("workStatus") != "ongoing":
        return "work_not_ongoing"

    if settings.is_production:
        submitted = _parse_date(user.get("submissionDate"))
        window = timedelta(hours=settings.tune_resubmit_window_hours)
        if submitted and datetime.now(timezone.utc) - submitted < window:
            return "recently_submitted"

    missing = users_service.missing_profile_fields(user)
    if missing:
        return f"incomplete_profile: {', '.join(missing)}"

    selfies = users_service.selfies_of(user)
    if len(selfies) < settings.required_photo_count:
        return f"insufficient_selfies: {len(selfies)}/{settings.required_photo_count}"

    if not user.get("styles"):
        return "no_styles"

    return None


def claim_tune(user_id: str) -> str:
    """
    Atomically move the user from NOT_STARTED to CLAIMED.
    Returns the claim token. Raises StateConflictError if someone else got there first.
    """
    db = users_service._get_db()
    ref = users_service.user_ref(user_id)
    token = uuid.uuid4().hex
    transaction = db.transaction()

    @firestore.transactional
    def claim_in_transaction(transaction, ref):
        snapshot = ref.get(transaction=transaction)
        if not snapshot.exists:
            raise NotFoundError(f"User {user_id} not found")
        data = snapshot.to_dict()
        if data.get("apiStatus") or data.get("tuneStatus") is not None:
            raise StateConflictError(
                f"tune already claimed (tuneStatus={data.get('tuneStatus')})"
            )
        transaction.update(ref, {
            "tuneStatus": "ongoing",
            "tuneClaimId": token,
            "tuneClaimedAt": datetime.now(timezone.utc),
        })

    claim_in_transaction(transaction, ref)
    return token


def release_claim(user_id: str, token: str) -> bool:
    """
    Undo our claim. The tuneStatus reset only happens while no apiStatus exists;
    a claim owned by another token is left alone. Returns True if anything changed.
    """
    db = users_service._get_db()
    ref = users_service.user_ref(user_id)
    transaction = db.transaction()

    @firestore.transactional
    def release_in_transaction(transaction, ref):
        snapshot = ref.get(transaction=transaction)
        if not snapshot.exists:
            return False
        data = snapshot.to_dict()
        if data.get("tuneClaimId") != token:
            return False
        fields = {"tuneClaimId": None}
        if not data.get("apiStatus"):
            fields["tuneStatus"] = None
        transaction.update(ref, fields)
        return True

    released = release_in_transaction(transaction, ref)
    if released:
        logger.info(f"[TUNE] Claim released for user {user_id}")
    return released


def persist_api_status(user_id: str, token: str, api_status: dict) -> bool:
    """Record the accepted provider job, provided the claim is still ours and nothing was written before."""
    db = users_service._get_db()
    ref = users_service.user_ref(user_id)
    transaction = db.transaction()

    @firestore.transactional
    def persist_in_transaction(transaction, ref):
        snapshot = ref.get(transaction=transaction)
        data = snapshot.to_dict() if snapshot.exists else {}
        if data.get("tuneClaimId") != token or data.get("apiStatus"):
            return False
        transaction.update(ref, {
            "apiStatus": api_status,
            "tuneStatus": "ongoing",
            "submissionDate": datetime.now(timezone.utc),
        })
        return True

    return persist_in_transaction(transaction, ref)


def _webhook_url(trainer: Trainer, user_id: str) -> str:
    query = urlencode({"webhook_secret": settings.app_webhook_secret, "user_id": user_id})
    return f"{settings.callback_domain}{trainer.webhook_path}?{query}"


def _api_status(handle: ExternalJobHandle) -> dict:
    return {
        "id": handle.id,
        "provider": handle.provider,
        "status": handle.status,
        "trigger_word": settings.tune_trigger_word,
        "submitted_at": datetime.now(timezone.utc).isoformat(),
        "response": handle.raw,
    }


async def create_tune(user_id: str, trainer: Optional[Trainer] = None) -> TuneAttempt:
    """
    Start the user's one training job, or return why it was not started.

    Aborts come back as TuneAttempt(started=False); only a missing user
    (NotFoundError) or a failed provider call (re-raised after the claim is
    released) escape as exceptions.
    """
    trainer = trainer or get_trainer(settings.tune_provider)

    user = users_service.get_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")

    reason = check_preconditions(user)
    if reason:
        logger.info(f"[TUNE] Not starting tune for {user_id}: {reason}")
        return TuneAttempt(started=False, reason=reason)

    try:
        token = claim_tune(user_id)
    except StateConflictError as e:
        logger.info(f"[TUNE] Claim lost for {user_id}: {e.message}")
        return TuneAttempt(started=False, reason="claim_conflict")

    # Last look before spending money at the provider
    latest = users_service.get_user(user_id) or {}
    if latest.get("apiStatus") or latest.get("tuneClaimId") != token:
        logger.warning(f"[TUNE] State changed under claim for {user_id}; aborting")
        release_claim(user_id, token)
        return TuneAttempt(started=False, reason="state_changed")

    photos = user.get("userPhotos") or {}
    if trainer.accepts_archive and photos.get("userZip"):
        images = [photos["userZip"]]
    else:
        images = users_service.selfies_of(user)

    try:
        handle = await trainer.train(
            images,
            settings.tune_trigger_word,
            _webhook_url(trainer, user_id),
            subject=user.get("gender") or "person",
            title=user_id,
        )
    except Exception as e:
        logger.error(f"[TUNE] {trainer.name} training call failed for {user_id}: {e}")
        release_claim(user_id, token)
        raise

    api_status = _api_status(handle)
    if not persist_api_status(user_id, token, api_status):
        # The provider accepted the job but the document moved on; needs manual reconciliation.
        logger.error(
            f"[TUNE] Job {handle.id} ({handle.provider}) started for {user_id} "
            f"but the claim was no longer held; apiStatus not written"
        )
        return TuneAttempt(started=True, reason="claim_lost_after_call", api_status=api_status)

    log_transaction(
        FinanceCategory.TRAINING,
        -trainer.estimated_cost,
        user_id=user_id,
        provider=handle.provider,
        job_id=handle.id,
    )
    logger.info(f"[TUNE] Training started for {user_id} via {trainer.name}: {handle.id}")
    return TuneAttempt(started=True, reason="started", api_status=api_status)
