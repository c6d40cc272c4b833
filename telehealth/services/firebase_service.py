import os
import logging
import firebase_admin
from firebase_admin import credentials, firestore
from typing import Optional, Dict, Any, List
from google.cloud.firestore_v1 import FieldFilter

from telehealth.config import settings
from .base_store import BaseStore, Filter

logger = logging.getLogger(__name__)


class FirebaseService(BaseStore):
    """Service layer for Firebase Firestore operations"""

    _instance = None
    _db = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def db(self):
        """Firestore client, initialized on first use (only once)"""
        if self._db is None:
            if not firebase_admin._apps:
                cred_path = settings.GOOGLE_APPLICATION_CREDENTIALS
                options = {"projectId": settings.FIREBASE_PROJECT_ID} if settings.FIREBASE_PROJECT_ID else None
                try:
                    if cred_path and os.path.exists(cred_path):
                        logger.info("Firebase init: using service account file %s", cred_path)
                        cred = credentials.Certificate(cred_path)
                    else:
                        logger.info("Firebase init: using application default credentials")
                        cred = credentials.ApplicationDefault()
                    firebase_admin.initialize_app(cred, options)
                except Exception as e:
                    logger.error("Failed to initialize Firebase: %s", e)
                    raise

            # Named databases need the id passed explicitly
            type(self)._db = firestore.client(database_id=settings.FIREBASE_DATABASE_ID)
            logger.info(
                "Connected to Firestore project %s, database %s",
                self._db.project, settings.FIREBASE_DATABASE_ID,
            )
        return self._db

    # ==================== DOCUMENT OPERATIONS ====================

    async def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            doc = self.db.collection(collection).document(doc_id).get()
            if doc.exists:
                data = doc.to_dict()
                data["id"] = doc.id
                return data
            return None
        except Exception as e:
            logger.error("Error getting %s/%s: %s", collection, doc_id, e)
            return None

    async def set_document(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = True) -> bool:
        try:
            payload = {k: v for k, v in data.items() if k != "id"}
            self.db.collection(collection).document(doc_id).set(payload, merge=merge)
            return True
        except Exception as e:
            logger.error("Error saving %s/%s: %s", collection, doc_id, e)
            return False

    async def add_document(self, collection: str, data: Dict[str, Any]) -> Optional[str]:
        """Save a new document, return its generated ID"""
        try:
            doc_ref = self.db.collection(collection).document()
            doc_ref.set(data)
            return doc_ref.id
        except Exception as e:
            logger.error("Error adding to %s: %s", collection, e)
            return None

    async def update_document(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> bool:
        try:
            doc_ref = self.db.collection(collection).document(doc_id)
            if not doc_ref.get().exists:
                return False
            doc_ref.update(updates)
            return True
        except Exception as e:
            logger.error("Error updating %s/%s: %s", collection, doc_id, e)
            return False

    async def delete_document(self, collection: str, doc_id: str) -> bool:
        try:
            self.db.collection(collection).document(doc_id).delete()
            return True
        except Exception as e:
            logger.error("Error deleting %s/%s: %s", collection, doc_id, e)
            return False

    async def query(
        self,
        collection: str,
        filters: Optional[List[Filter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        try:
            query = self._filtered(collection, filters)
            if order_by:
                direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
                query = query.order_by(order_by, direction=direction)

            if limit:
                query = query.limit(limit)

            results = []
            for doc in query.stream():
                data = doc.to_dict()
                data["id"] = doc.id
                results.append(data)
            return results
        except Exception as e:
            logger.error("Error querying %s: %s", collection, e)
            return []

    async def count(self, collection: str, filters: Optional[List[Filter]] = None) -> int:
        """Server-side count aggregation, no documents are read"""
        try:
            results = self._filtered(collection, filters).count(alias="total").get()
            return int(results[0][0].value)
        except Exception as e:
            logger.error("Error counting %s: %s", collection, e)
            return 0

    def _filtered(self, collection: str, filters: Optional[List[Filter]]):
        query = self.db.collection(collection)
        for field, op, value in filters or []:
            query = query.where(filter=FieldFilter(field, op, value))
        return query


# Singleton instance
firebase_service = FirebaseService()
