import logging
from datetime import timedelta
from firebase_admin import auth
from typing import Optional, Dict, Any

from telehealth.config import settings
from .base_store import get_store

logger = logging.getLogger(__name__)

ROLES = ("patient", "doctor", "pharmacy", "admin")


class FirebaseAuthService:
    """Service for Firebase Authentication operations"""

    @property
    def dev_mode(self) -> bool:
        return settings.AUTH_MODE.lower() == "dev"

    async def verify_id_token(self, id_token: str) -> Optional[Dict[str, Any]]:
        """
        Verify Firebase ID token from client

        Returns:
            Decoded claims if valid, None if invalid
        """
        try:
            return auth.verify_id_token(id_token)
        except Exception as e:
            logger.warning("Rejected ID token: %s", e)
            return None

    async def verify_session_cookie(self, session_cookie: str) -> Optional[Dict[str, Any]]:
        """Verify a session cookie minted by create_session_cookie"""
        try:
            return auth.verify_session_cookie(session_cookie, check_revoked=True)
        except Exception as e:
            logger.warning("Rejected session cookie: %s", e)
            return None

    async def create_session_cookie(self, id_token: str) -> Optional[str]:
        """
        Exchange an ID token for a session cookie

        In dev mode the "token" is the user id and is used as the cookie value.
        """
        if self.dev_mode:
            return id_token
        try:
            return auth.create_session_cookie(
                id_token, expires_in=timedelta(seconds=settings.SESSION_MAX_AGE)
            )
        except Exception as e:
            logger.warning("Could not create session cookie: %s", e)
            return None

    async def revoke_sessions(self, uid: str) -> bool:
        """Revoke refresh tokens so existing session cookies stop verifying"""
        if self.dev_mode:
            return True
        try:
            auth.revoke_refresh_tokens(uid)
            return True
        except Exception as e:
            logger.error("Error revoking sessions for %s: %s", uid, e)
            return False

    async def resolve_user(self, credential: str, is_session_cookie: bool = False) -> Optional[Dict[str, Any]]:
        """
        Turn a bearer token or session cookie into the current user

        Returns:
            Dict with id, role, email and name, or None if the credential is invalid
        """
        if not credential:
            return None

        if self.dev_mode:
            uid, claims = credential, {}
        else:
            if is_session_cookie:
                claims = await self.verify_session_cookie(credential)
            else:
                claims = await self.verify_id_token(credential)
            if not claims:
                return None
            uid = claims["uid"]

        user = await get_store().get_user(uid) or {}
        profile = user.get("profile") or {}
        role = user.get("role") or claims.get("role") or "patient"
        if role not in ROLES:
            role = "patient"

        return {
            "id": uid,
            "role": role,
            "email": user.get("email") or claims.get("email"),
            "name": user.get("name") or claims.get("name"),
            "gender": profile.get("gender") or user.get("gender"),
            "age": profile.get("age") or user.get("age"),
            "city": profile.get("city") or user.get("city"),
        }


# Singleton instance
firebase_auth_service = FirebaseAuthService()
