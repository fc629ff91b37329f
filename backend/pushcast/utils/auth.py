"""Caller identity - verifies identity-provider bearer tokens."""
import asyncio
import logging
from typing import Optional

import firebase_admin
from firebase_admin import auth as fb_auth
from firebase_admin import credentials as fb_credentials
from fastapi import Header, HTTPException

from ..config import settings

logger = logging.getLogger(__name__)

# Owner id used when auth_required is switched off for local development
LOCAL_OWNER_ID = "local-dev"


def init_firebase() -> bool:
    """Initialize the Firebase Admin app once, if credentials are configured.
    
    Returns True when an app is available afterwards.
    """
    if firebase_admin._apps:
        return True
    
    if not settings.firebase_credentials:
        logger.warning("FIREBASE_CREDENTIALS not set - identity verification and FCM are unavailable")
        return False
    
    try:
        cred = fb_credentials.Certificate(settings.firebase_credentials)
        options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None
        firebase_admin.initialize_app(cred, options)
        logger.info("Firebase Admin initialized")
        return True
    except (ValueError, OSError) as e:
        logger.error(f"Failed to initialize Firebase Admin: {e}")
        return False


def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


async def get_current_owner(authorization: Optional[str] = Header(None)) -> str:
    """Resolve the calling dashboard user's id from an ID token.
    
    Raises 401 when the token is missing or does not verify.
    """
    if not settings.auth_required:
        return LOCAL_OWNER_ID
    
    token = _extract_bearer(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized: No token provided")
    
    if not firebase_admin._apps:
        logger.error("Identity check requested but Firebase Admin is not initialized")
        raise HTTPException(status_code=401, detail="Unauthorized: Invalid token")
    
    try:
        decoded = await asyncio.to_thread(fb_auth.verify_id_token, token)
    except (ValueError, fb_auth.InvalidIdTokenError, fb_auth.ExpiredIdTokenError,
            fb_auth.RevokedIdTokenError, fb_auth.CertificateFetchError) as e:
        logger.warning(f"Rejected ID token: {e}")
        raise HTTPException(status_code=401, detail="Unauthorized: Invalid token")
    
    uid = decoded.get("uid")
    if not uid:
        raise HTTPException(status_code=401, detail="Unauthorized: Invalid token")
    return uid
