"""
Document store contract shared by the Firestore and in-memory backends.

Backends implement the generic primitives; the collection-specific helpers
used across services live here so both backends behave the same.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional, Dict, Any, List, Tuple

from telehealth.config import settings

logger = logging.getLogger(__name__)

# Collections
USERS = "users"
DOCTORS = "doctors"
NOTIFICATIONS = "notifications"
NOTIFICATION_PREFERENCES = "notification_preferences"
CHAT_MESSAGES = "chat_messages"
PROFILE_CHANGE_LOGS = "profile_change_logs"
CHAT_FEEDBACK = "chat_feedback"

# (field, op, value); op is one of ==, !=, in, >=, <=, >, <, array_contains
Filter = Tuple[str, str, Any]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def newest_first(docs: List[Dict[str, Any]], field: str) -> List[Dict[str, Any]]:
    """
    Sort query results by a timestamp field, newest first

    Equality filters on one field combined with order_by on another need a
    composite Firestore index, so per-user listings sort here instead.
    """
    return sorted(docs, key=lambda d: d.get(field) or EPOCH, reverse=True)


class BaseStore(ABC):
    """Async document store"""

    @abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def set_document(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = True) -> bool:
        ...

    @abstractmethod
    async def add_document(self, collection: str, data: Dict[str, Any]) -> Optional[str]:
        ...

    @abstractmethod
    async def update_document(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> bool:
        """Update fields of an existing document. Returns False if it does not exist."""

    @abstractmethod
    async def delete_document(self, collection: str, doc_id: str) -> bool:
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Optional[List[Filter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def count(self, collection: str, filters: Optional[List[Filter]] = None) -> int:
        """Number of documents matching the filters"""

    # ==================== USER OPERATIONS ====================

    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Get user account"""
        return await self.get_document(USERS, user_id)

    async def save_user(self, user_id: str, user_data: Dict[str, Any]) -> bool:
        """Save or update user account"""
        user_data["updated_at"] = utcnow()
        return await self.set_document(USERS, user_id, user_data, merge=True)

    # ==================== DOCTOR OPERATIONS ====================

    async def get_doctor(self, doctor_id: str) -> Optional[Dict[str, Any]]:
        """Get doctor profile"""
        return await self.get_document(DOCTORS, doctor_id)

    async def save_doctor(self, doctor_id: str, doctor_data: Dict[str, Any]) -> bool:
        """Save or update doctor profile"""
        doctor_data["updated_at"] = utcnow()
        return await self.set_document(DOCTORS, doctor_id, doctor_data, merge=True)

    async def find_doctors(
        self,
        specialty: Optional[str] = None,
        verified_only: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Find doctors accepting patients, optionally with an exact specialization"""
        filters: List[Filter] = [("accepting_patients", "==", True)]
        if verified_only:
            filters.append(("verified", "==", True))
        if specialty:
            filters.append(("specializations", "array_contains", specialty))
        return await self.query(DOCTORS, filters, limit=limit)


@lru_cache()
def get_store() -> BaseStore:
    """Return the configured storage backend (cached)"""
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "memory":
        from .memory_store import MemoryStore
        logger.info("Using in-memory document store")
        return MemoryStore()
    if backend == "firestore":
        from .firebase_service import firebase_service
        return firebase_service
    raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")
