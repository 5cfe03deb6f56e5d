import asyncio
import base64
import copy
import io
import uuid
from datetime import datetime, timezone

import pytest
from PIL import Image

from playsafe.database.database_service import GUARD_CONFLICT, GUARD_NOT_FOUND, get_field
from playsafe.models.user import UserProfile, UserRole


class FakeDB:
    """
    In-memory stand-in for DatabaseService with the same tuple contract.

    Reads yield to the event loop once so concurrently scheduled service
    calls interleave the way they would against Firestore; the guarded
    update itself never yields, like a committed transaction.
    """

    def __init__(self):
        self.collections = {}

    def docs(self, collection):
        return [self._with_id(doc_id, data) for doc_id, data in self.collections.get(collection, {}).items()]

    def raw(self, collection, document_id):
        return self.collections.get(collection, {}).get(document_id)

    @staticmethod
    def _with_id(doc_id, data):
        doc = copy.deepcopy(data)
        doc.setdefault("id", doc_id)
        doc["_doc_id"] = doc_id
        return doc

    @staticmethod
    def _matches(doc, filters):
        for field, op, value in filters or []:
            actual = get_field(doc, field)
            if op == "==" and actual != value:
                return False
            if op == "in" and actual not in value:
                return False
        return True

    async def create_document(self, collection, data, document_id=None, validate=True):
        doc_id = document_id or str(uuid.uuid4())
        self.collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        return True, doc_id, None

    async def get_document(self, collection, document_id):
        await asyncio.sleep(0)
        data = self.raw(collection, document_id)
        if data is None:
            return False, None, f"Document {document_id} not found in {collection}"
        return True, self._with_id(document_id, data), None

    async def update_document(self, collection, document_id, data, validate=True):
        docs = self.collections.get(collection, {})
        if document_id not in docs:
            return False, "not found"
        docs[document_id].update(copy.deepcopy(data))
        return True, None

    async def delete_document(self, collection, document_id):
        self.collections.get(collection, {}).pop(document_id, None)
        return True, None

    async def query_documents(self, collection, filters=None, limit=None):
        await asyncio.sleep(0)
        docs = [d for d in self.docs(collection) if self._matches(d, filters)]
        return True, docs[:limit] if limit else docs, None

    async def get_all_documents(self, collection):
        return await self.query_documents(collection)

    async def delete_collection(self, collection):
        deleted = len(self.collections.get(collection, {}))
        self.collections[collection] = {}
        return True, deleted, None

    async def run_guarded_update(self, collection, document_id, expected, updates, side_writes=None):
        data = self.raw(collection, document_id)
        if data is None:
            return False, None, GUARD_NOT_FOUND
        current = self._with_id(document_id, data)
        for field, value in expected.items():
            if get_field(current, field) != value:
                return False, current, GUARD_CONFLICT

        for write in side_writes or []:
            target = self.collections.setdefault(write.collection, {})
            if write.op == "create":
                target[write.document_id or str(uuid.uuid4())] = copy.deepcopy(write.data)
            elif write.op == "update":
                target[write.document_id].update(copy.deepcopy(write.data))
            elif write.op == "update_where":
                for doc_id, doc in target.items():
                    if self._matches(doc, write.filters):
                        doc.update(copy.deepcopy(write.data))
        data.update(copy.deepcopy(updates))
        return True, self._with_id(document_id, data), None


@pytest.fixture
def fake_db(monkeypatch):
    from playsafe.services.identity_service import identity_service
    from playsafe.services.issue_service import issue_service
    from playsafe.services.live_query_service import live_query_service
    from playsafe.services.notification_service import notification_service
    from playsafe.services.playground_service import playground_service

    db = FakeDB()
    for service in (identity_service, issue_service, live_query_service,
                    notification_service, playground_service):
        monkeypatch.setattr(service, "db", db)
    return db


def add_profile(db, uid, email, role, first="Test", last="User"):
    db.collections.setdefault("users", {})[uid] = {
        "uid": uid,
        "email": email,
        "firstName": first,
        "lastName": last,
        "role": role.value,
        "createdAt": datetime(2025, 1, 1, tzinfo=timezone.utc),
    }
    return UserProfile(uid=uid, email=email, firstName=first, lastName=last, role=role)


@pytest.fixture
def citizen(fake_db):
    return add_profile(fake_db, "citizen-1", "citizen@example.com", UserRole.CITIZEN, "Priya", "Raman")


@pytest.fixture
def admin(fake_db):
    return add_profile(fake_db, "admin-1", "admin@example.com", UserRole.ADMIN, "Arun", "Kumar")


@pytest.fixture
def staff(fake_db):
    return add_profile(fake_db, "staff-1", "m@x.com", UserRole.MAINTENANCE, "Meena", "S")


@pytest.fixture
def other_staff(fake_db):
    return add_profile(fake_db, "staff-2", "n@x.com", UserRole.MAINTENANCE, "Naveen", "R")


def make_photo(size=(1600, 1200), color=(200, 40, 40), fmt="PNG", as_data_url=True):
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    if as_data_url:
        return f"data:image/{fmt.lower()};base64,{encoded}"
    return encoded
