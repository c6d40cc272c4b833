from fastapi import Request, HTTPException, status
from typing import Optional
from telehealth.config import settings
from telehealth.services.firebase_auth_service import firebase_auth_service


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    return None


async def get_current_user(request: Request) -> Optional[dict]:
    """Get current authenticated user from the bearer token or session cookie"""
    token = _bearer_token(request)
    if token:
        return await firebase_auth_service.resolve_user(token)

    session_cookie = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if session_cookie:
        return await firebase_auth_service.resolve_user(session_cookie, is_session_cookie=True)

    return None


async def authenticate_token(token: Optional[str], is_session_cookie: bool = False) -> Optional[dict]:
    """Authenticate a raw token or session cookie (WebSocket handshake)"""
    if not token:
        return None
    return await firebase_auth_service.resolve_user(token, is_session_cookie=is_session_cookie)


async def require_auth(request: Request) -> dict:
    """Dependency that requires any authentication"""
    user = await get_current_user(request)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def require_doctor_auth(request: Request) -> dict:
    """Dependency that requires doctor (or admin) authentication"""
    user = await require_auth(request)

    if user["role"] not in ("doctor", "admin"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authenticated as a doctor"
        )

    return user


async def require_admin(request: Request) -> dict:
    """Dependency that requires an admin account"""
    user = await require_auth(request)

    if user["role"] != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return user
