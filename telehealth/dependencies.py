"""
FastAPI dependency injection functions
These are reusable dependencies that can be injected into route handlers
"""
from fastapi import Depends
from typing import Annotated
from telehealth.auth.middleware import require_auth, require_doctor_auth, require_admin
from telehealth.config import settings
from telehealth.services.rate_limiter import rate_limiter


async def chat_rate_limit(user: dict = Depends(require_auth)) -> dict:
    """
    Authenticated user, limited to CHAT_RATE_LIMIT messages per window

    Usage:
        @router.post("/message")
        async def send(user: ChatUser):
            ...

    Raises:
        RateLimitExceededError: 429 with retry_after
    """
    await rate_limiter.hit("chat", user["id"], settings.CHAT_RATE_LIMIT, settings.CHAT_RATE_WINDOW)
    return user


async def symptom_rate_limit(user: dict = Depends(require_auth)) -> dict:
    """Authenticated user, limited to SYMPTOM_RATE_LIMIT analyses per window"""
    await rate_limiter.hit("symptoms", user["id"], settings.SYMPTOM_RATE_LIMIT, settings.SYMPTOM_RATE_WINDOW)
    return user


async def chatbot_rate_limit(user: dict = Depends(require_auth)) -> dict:
    """Shared limit for the remaining chatbot routes"""
    await rate_limiter.hit("chatbot", user["id"], settings.CHAT_RATE_LIMIT, settings.CHAT_RATE_WINDOW)
    return user


# Type aliases for cleaner route signatures
CurrentUser = Annotated[dict, Depends(require_auth)]
CurrentDoctor = Annotated[dict, Depends(require_doctor_auth)]
AdminUser = Annotated[dict, Depends(require_admin)]
ChatUser = Annotated[dict, Depends(chat_rate_limit)]
SymptomUser = Annotated[dict, Depends(symptom_rate_limit)]
ChatbotUser = Annotated[dict, Depends(chatbot_rate_limit)]
