"""
Money ledger: one `financial_events` document per provider spend or payment.

    GENERATION  image generation spend (negative)
    TRAINING    LoRA training spend (negative)
    POLAR       customer payment (positive)

`user_id` and `provider` are top-level fields so the admin views can filter on
them; anything else goes under `details`.

Writes are fire-and-forget: inside a running event loop the Firestore write
runs in a worker thread and the response does not wait for it. Pending tasks
are held in `_pending` until done. Without a loop (scripts, sync tests) the
write happens inline.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Set

from app.integrations import firebase as firebase_module

logger = logging.getLogger(__name__)


class FinanceCategory(str, Enum):
    GENERATION = "GENERATION"
    TRAINING = "TRAINING"
    POLAR = "POLAR"


_pending: Set[asyncio.Task] = set()


def build_event(
    category: FinanceCategory,
    amount: float,
    user_id: Optional[str],
    provider: Optional[str],
    details: dict,
) -> dict:
    return {
        "timestamp": datetime.now(timezone.utc),
        "type": "INCOME" if amount >= 0 else "EXPENSE",
        "category": category.value,
        "amount": round(float(amount), 4),
        "user_id": user_id,
        "provider": provider,
        "details": details,
    }


def _write(event: dict) -> None:
    db = firebase_module.db
    if not db:
        logger.warning(f"[FINANCE] Firebase not initialized; dropping {event['category']} event.")
        return
    try:
        db.collection(firebase_module.FINANCIAL_EVENTS).add(event)
    except Exception as e:
        # The request that caused the event may already have been answered
        logger.error(f"[FINANCE] Failed to write {event['category']} event for {event['user_id']}: {e}")
        return
    logger.info(f"[FINANCE] {event['category']} ${event['amount']:.4f} ({event['type']}) user={event['user_id']}")


def log_transaction(
    category,
    amount: float,
    *,
    user_id: Optional[str] = None,
    provider: Optional[str] = None,
    **details,
) -> dict:
    """
    Record one money movement and return the event that is being written.
    Raises ValueError for a category outside FinanceCategory.
    """
    event = build_event(FinanceCategory(category), amount, user_id, provider, details)
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        _write(event)
        return event

    task = loop.create_task(asyncio.to_thread(_write, event))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return event
