"""
Session routes
Exchanges Firebase ID tokens for HTTP-only session cookies
"""

import logging
from fastapi import APIRouter, Request, HTTPException, Response
from pydantic import BaseModel
from telehealth.auth.middleware import get_current_user
from telehealth.config import settings
from telehealth.services.firebase_auth_service import firebase_auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


# ==================== MODELS ====================

class SessionLogin(BaseModel):
    """ID token from the Firebase client SDK (the user id in dev mode)"""
    id_token: str


# ==================== SESSION ====================

@router.post("/session")
async def create_session(credentials: SessionLogin, response: Response):
    """Verify the ID token and set the session cookie"""
    user = await firebase_auth_service.resolve_user(credentials.id_token)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid ID token")

    session_cookie = await firebase_auth_service.create_session_cookie(credentials.id_token)
    if not session_cookie:
        raise HTTPException(status_code=401, detail="Could not create session")

    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session_cookie,
        max_age=settings.SESSION_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=settings.IS_PRODUCTION
    )
    logger.info("Session created for %s (%s)", user["id"], user["role"])

    return {"success": True, "user": user}


@router.get("/session")
async def get_session(request: Request):
    """Check if user is authenticated"""
    user = await get_current_user(request)

    if not user:
        return {"authenticated": False}

    return {"authenticated": True, "user": user}


@router.post("/logout")
async def logout(request: Request, response: Response):
    """Clear the session cookie and revoke the user's sessions"""
    user = await get_current_user(request)
    if user:
        await firebase_auth_service.revoke_sessions(user["id"])

    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        httponly=True,
        samesite="lax",
        secure=settings.IS_PRODUCTION
    )
    return {"success": True, "message": "Logged out successfully"}
