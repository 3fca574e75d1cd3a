"""
User document access (`userTable/{user_id}`).

The Firebase `db` client is accessed at call-time via the integration module
so it picks up the instance initialized during the FastAPI lifespan.
"""

import logging
from typing import Optional

from fastapi import HTTPException

from app.integrations import firebase as firebase_module

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "age", "bodyType", "height", "ethnicity", "gender", "eyeColor")


def _get_db():
    db = firebase_module.db
    if not db:
        raise HTTPException(status_code=503, detail="Database service unavailable.")
    return db


def user_ref(user_id: str):
    return _get_db().collection(firebase_module.USERS).document(user_id)


def get_user(user_id: str) -> Optional[dict]:
    """Return the user document as a dict, or None when it does not exist."""
    doc = user_ref(user_id).get()
    if not doc.exists:
        return None
    return doc.to_dict()


def update_user(user_id: str, fields: dict) -> None:
    user_ref(user_id).update(fields)


def missing_profile_fields(user: dict) -> list:
    return [f for f in PROFILE_FIELDS if not user.get(f)]


def selfies_of(user: dict) -> list:
    photos = user.get("userPhotos") or {}
    return list(photos.get("userSelfies") or [])
