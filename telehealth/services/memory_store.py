"""In-process document store used for local development and tests."""
import copy
import operator
from typing import Optional, Dict, Any, List
from uuid import uuid4

from .base_store import BaseStore, Filter


def _array_contains(field_value: Any, value: Any) -> bool:
    return isinstance(field_value, list) and value in field_value


def _in(field_value: Any, values: Any) -> bool:
    return field_value in values


def _not_in(field_value: Any, values: Any) -> bool:
    return field_value not in values


OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "in": _in,
    "not-in": _not_in,
    "array_contains": _array_contains,
}


class MemoryStore(BaseStore):
    """Dict-backed store with the same query semantics as the Firestore backend"""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def clear(self) -> None:
        self._collections.clear()

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    @staticmethod
    def _with_id(doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        result = copy.deepcopy(data)
        result["id"] = doc_id
        return result

    async def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        data = self._collection(collection).get(doc_id)
        if data is None:
            return None
        return self._with_id(doc_id, data)

    async def set_document(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = True) -> bool:
        docs = self._collection(collection)
        payload = {k: copy.deepcopy(v) for k, v in data.items() if k != "id"}
        if merge and doc_id in docs:
            docs[doc_id].update(payload)
        else:
            docs[doc_id] = payload
        return True

    async def add_document(self, collection: str, data: Dict[str, Any]) -> Optional[str]:
        doc_id = uuid4().hex
        await self.set_document(collection, doc_id, data, merge=False)
        return doc_id

    async def update_document(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> bool:
        docs = self._collection(collection)
        if doc_id not in docs:
            return False
        docs[doc_id].update(copy.deepcopy(updates))
        return True

    async def delete_document(self, collection: str, doc_id: str) -> bool:
        self._collection(collection).pop(doc_id, None)
        return True

    async def query(
        self,
        collection: str,
        filters: Optional[List[Filter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        results = []
        for doc_id, data in self._collection(collection).items():
            if all(self._matches(data, f) for f in filters or []):
                results.append(self._with_id(doc_id, data))

        if order_by:
            # Firestore drops documents missing the order field
            results = [r for r in results if r.get(order_by) is not None]
            results.sort(key=lambda r: r[order_by], reverse=descending)

        if limit:
            results = results[:limit]
        return results

    async def count(self, collection: str, filters: Optional[List[Filter]] = None) -> int:
        return sum(
            1 for data in self._collection(collection).values()
            if all(self._matches(data, f) for f in filters or [])
        )

    @staticmethod
    def _matches(data: Dict[str, Any], flt: Filter) -> bool:
        field, op, value = flt
        if field not in data:
            return False
        try:
            return OPERATORS[op](data[field], value)
        except TypeError:
            # Mismatched types never match, same as Firestore
            return False
