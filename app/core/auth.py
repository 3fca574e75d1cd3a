"""
Caller authentication: Firebase Auth ID tokens in `Authorization: Bearer <token>`.
"""

import logging
from typing import Optional

from fastapi import Header
from firebase_admin import auth as firebase_auth

from app.core.errors import AuthError

logger = logging.getLogger(__name__)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(authorization: Optional[str] = Header(None)) -> dict:
    """FastAPI dependency. Returns {"uid", "email"} or raises AuthError (401)."""
    token = _bearer_token(authorization)
    if not token:
        raise AuthError("Authentication required")

    try:
        decoded = firebase_auth.verify_id_token(token)
    except (ValueError, firebase_auth.InvalidIdTokenError, firebase_auth.ExpiredIdTokenError,
            firebase_auth.RevokedIdTokenError, firebase_auth.CertificateFetchError) as e:
        logger.warning(f"[AUTH] Rejected ID token: {type(e).__name__}")
        raise AuthError("Invalid or expired token")

    return {"uid": decoded["uid"], "email": decoded.get("email")}
