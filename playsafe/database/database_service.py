"""
Firestore access layer.

Every method is async and returns a tuple whose first element is a success
flag, mirroring how callers branch on ``success, data, error``. The Admin SDK
is synchronous; calls are short document reads/writes so they run inline.
"""

from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple
import logging
import uuid

from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from ..core.firebase_init import require_firebase
from .collections import COLLECTION_SCHEMAS

logger = logging.getLogger(__name__)

# Outcomes of run_guarded_update besides success
GUARD_NOT_FOUND = "not_found"
GUARD_CONFLICT = "conflict"


class SideWrite(NamedTuple):
    """A write committed in the same transaction as a guarded update.

    op is one of ``create``, ``update`` or ``update_where``. ``update_where``
    updates every document of ``collection`` matching ``filters``.
    """
    op: str
    collection: str
    document_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    filters: Optional[List[Tuple[str, str, Any]]] = None


def get_field(document: Dict[str, Any], path: str) -> Any:
    """Read a dotted field path (``reportedBy.uid``) from a plain dict."""
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


class DatabaseService:
    def __init__(self):
        self._client = None

    @property
    def db(self):
        if self._client is None:
            require_firebase()
            self._client = firestore.client()
        return self._client

    def _validate(self, collection: str, data: Dict[str, Any]) -> Optional[str]:
        schema = COLLECTION_SCHEMAS.get(collection)
        if not schema:
            return None
        missing = [field for field in schema['required'] if data.get(field) in (None, "")]
        if missing:
            return f"Missing required fields for {collection}: {', '.join(missing)}"
        return None

    def _query(self, collection: str, filters: Optional[List[Tuple]] = None, limit: Optional[int] = None):
        query = self.db.collection(collection)
        for field, op, value in filters or []:
            query = query.where(filter=FieldFilter(field, op, value))
        if limit:
            query = query.limit(limit)
        return query

    @staticmethod
    def _to_dict(snapshot) -> Dict[str, Any]:
        data = snapshot.to_dict() or {}
        data.setdefault("id", snapshot.id)
        data["_doc_id"] = snapshot.id
        return data

    async def create_document(self, collection: str, data: Dict[str, Any],
                              document_id: Optional[str] = None,
                              validate: bool = True) -> Tuple[bool, Optional[str], Optional[str]]:
        try:
            if validate:
                error = self._validate(collection, data)
                if error:
                    return False, None, error
            doc_id = document_id or str(uuid.uuid4())
            self.db.collection(collection).document(doc_id).set(data)
            return True, doc_id, None
        except Exception as e:
            logger.error(f"[DB] create {collection} failed: {e}")
            return False, None, str(e)

    async def get_document(self, collection: str, document_id: str) -> Tuple[bool, Optional[Dict[str, Any]], Optional[str]]:
        try:
            snapshot = self.db.collection(collection).document(document_id).get()
            if not snapshot.exists:
                return False, None, f"Document {document_id} not found in {collection}"
            return True, self._to_dict(snapshot), None
        except Exception as e:
            logger.error(f"[DB] get {collection}/{document_id} failed: {e}")
            return False, None, str(e)

    async def update_document(self, collection: str, document_id: str, data: Dict[str, Any],
                              validate: bool = True) -> Tuple[bool, Optional[str]]:
        try:
            self.db.collection(collection).document(document_id).update(data)
            return True, None
        except Exception as e:
            logger.error(f"[DB] update {collection}/{document_id} failed: {e}")
            return False, str(e)

    async def delete_document(self, collection: str, document_id: str) -> Tuple[bool, Optional[str]]:
        try:
            self.db.collection(collection).document(document_id).delete()
            return True, None
        except Exception as e:
            logger.error(f"[DB] delete {collection}/{document_id} failed: {e}")
            return False, str(e)

    async def query_documents(self, collection: str, filters: Optional[List[Tuple]] = None,
                              limit: Optional[int] = None) -> Tuple[bool, List[Dict[str, Any]], Optional[str]]:
        try:
            docs = [self._to_dict(doc) for doc in self._query(collection, filters, limit).stream()]
            return True, docs, None
        except Exception as e:
            logger.error(f"[DB] query {collection} {filters} failed: {e}")
            return False, [], str(e)

    async def get_all_documents(self, collection: str) -> Tuple[bool, List[Dict[str, Any]], Optional[str]]:
        return await self.query_documents(collection)

    async def delete_collection(self, collection: str) -> Tuple[bool, int, Optional[str]]:
        try:
            deleted = 0
            for doc in self.db.collection(collection).stream():
                doc.reference.delete()
                deleted += 1
            return True, deleted, None
        except Exception as e:
            logger.error(f"[DB] clearing {collection} failed: {e}")
            return False, 0, str(e)

    async def run_guarded_update(self, collection: str, document_id: str,
                                 expected: Dict[str, Any], updates: Dict[str, Any],
                                 side_writes: Optional[List[SideWrite]] = None
                                 ) -> Tuple[bool, Optional[Dict[str, Any]], Optional[str]]:
        """
        Compare-and-swap ``updates`` onto one document and commit ``side_writes``
        in the same Firestore transaction.

        ``expected`` maps field paths to the values they must hold at commit
        time. Returns ``(True, merged_document, None)`` on success, otherwise
        ``(False, current_document, GUARD_NOT_FOUND | GUARD_CONFLICT | message)``.
        """
        side_writes = side_writes or []
        try:
            transaction = self.db.transaction()
            ref = self.db.collection(collection).document(document_id)

            @firestore.transactional
            def apply(txn):
                snapshot = ref.get(transaction=txn)
                if not snapshot.exists:
                    return False, None, GUARD_NOT_FOUND
                current = self._to_dict(snapshot)
                for field, value in expected.items():
                    if get_field(current, field) != value:
                        return False, current, GUARD_CONFLICT

                # All transactional reads happen before the first write
                resolved = []
                for write in side_writes:
                    if write.op == "update_where":
                        matches = self._query(write.collection, write.filters).stream(transaction=txn)
                        resolved.extend(("update", doc.reference, write.data) for doc in matches)
                    elif write.op == "create":
                        doc_ref = self.db.collection(write.collection).document(
                            write.document_id or str(uuid.uuid4())
                        )
                        resolved.append(("create", doc_ref, write.data))
                    elif write.op == "update":
                        doc_ref = self.db.collection(write.collection).document(write.document_id)
                        resolved.append(("update", doc_ref, write.data))
                    else:
                        raise ValueError(f"Unknown side write op: {write.op}")

                txn.update(ref, updates)
                for op, doc_ref, data in resolved:
                    if op == "create":
                        txn.set(doc_ref, data)
                    else:
                        txn.update(doc_ref, data)

                merged = dict(current)
                merged.update(updates)
                return True, merged, None

            return apply(transaction)
        except Exception as e:
            logger.error(f"[DB] guarded update {collection}/{document_id} failed: {e}", exc_info=True)
            return False, None, str(e)

    def watch_query(self, collection: str, filters: Optional[List[Tuple]],
                    callback: Callable[[List[Dict[str, Any]]], None]) -> Callable[[], None]:
        """
        Subscribe to a live query. ``callback`` receives the full result set on
        every change, on a Firestore SDK thread. Returns the unsubscribe function.
        """
        def on_snapshot(snapshots, changes, read_time):
            callback([self._to_dict(doc) for doc in snapshots])

        watch = self._query(collection, filters).on_snapshot(on_snapshot)
        return watch.unsubscribe


database_service = DatabaseService()
