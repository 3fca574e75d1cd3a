"""
Firebase integration: Firestore for user / order state, Firebase Auth for
caller identity.

`db` starts as None. Call `initialize()` inside the FastAPI lifespan
context manager before handling any requests.
"""

import json
import logging
import os

import firebase_admin
from firebase_admin import credentials, firestore

logger = logging.getLogger(__name__)

USERS = "userTable"
ORDERS = "orders"
FINANCIAL_EVENTS = "financial_events"

# Module-level reference. Set by initialize(); consuming modules read it at
# call time via `from app.integrations import firebase; firebase.db`.
db = None  # firestore.Client | None


def _credentials():
    service_account_json = os.getenv("FIREBASE_SERVICE_ACCOUNT")
    if not service_account_json:
        return None
    try:
        return credentials.Certificate(json.loads(service_account_json))
    except (ValueError, TypeError) as e:
        logger.error(f"[STARTUP] FIREBASE_SERVICE_ACCOUNT is not a valid service account: {e}")
        return None


def initialize() -> None:
    """Initialize the Admin SDK (service account or ADC) and bind `db`."""
    global db

    if not firebase_admin._apps:
        cred = _credentials()
        if cred:
            firebase_admin.initialize_app(cred)
        else:
            # Application Default Credentials (GOOGLE_APPLICATION_CREDENTIALS, GCE metadata)
            firebase_admin.initialize_app()

    db = firestore.client()
    logger.info("[STARTUP] Firebase initialized")
