import asyncio
import json
from datetime import datetime, timezone

import pytest

from playsafe.services.live_query_service import (
    ConnectionManager, LiveQueryService, LiveScopeError, scope_filters,
)

ADMIN = {"uid": "a1", "email": "admin@example.com", "role": "admin"}
CITIZEN = {"uid": "c1", "email": "citizen@example.com", "role": "citizen"}
STAFF = {"uid": "s1", "email": "m@x.com", "role": "maintenance"}


def test_scope_filters_by_role():
    assert scope_filters(ADMIN, "all") is None
    assert scope_filters(CITIZEN, "reported") == [("reportedBy.uid", "==", "c1")]
    assert scope_filters(STAFF, "assigned") == [("assignedTo", "==", "m@x.com")]


@pytest.mark.parametrize("user,scope", [
    (CITIZEN, "all"),
    (STAFF, "all"),
    (CITIZEN, "assigned"),
    (ADMIN, "everything"),
])
def test_scope_filters_refuse_other_scopes(user, scope):
    with pytest.raises(LiveScopeError):
        scope_filters(user, scope)


class FakeSocket:
    def __init__(self):
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        self.sent.append(json.loads(text))


class WatchingDB:
    def __init__(self):
        self.callback = None
        self.filters = None
        self.unsubscribed = 0

    def watch_query(self, collection, filters, callback):
        self.filters = filters
        self.callback = callback

        def unsubscribe():
            self.unsubscribed += 1
        return unsubscribe


@pytest.mark.asyncio
async def test_disconnect_closes_watches():
    manager = ConnectionManager()
    socket = FakeSocket()
    await manager.connect(socket, "c1", "citizen")
    assert socket.accepted
    assert manager.get_connection_count() == 1

    closed = []
    manager.add_watch(socket, lambda: closed.append("first"))
    manager.add_watch(socket, lambda: closed.append("second"))
    manager.disconnect(socket)

    assert closed == ["first", "second"]
    assert manager.get_connection_count() == 0
    assert "c1" not in manager.active_connections


@pytest.mark.asyncio
async def test_snapshots_are_pushed_newest_first():
    manager = ConnectionManager()
    service = LiveQueryService(manager)
    service.db = WatchingDB()
    socket = FakeSocket()
    await manager.connect(socket, "c1", "citizen")

    service.watch_issues(socket, CITIZEN, "reported")
    assert service.db.filters == [("reportedBy.uid", "==", "c1")]

    docs = [
        {"id": "old", "description": "a", "createdAt": datetime(2025, 1, 1, tzinfo=timezone.utc)},
        {"id": "new", "description": "b", "createdAt": datetime(2025, 6, 1, tzinfo=timezone.utc)},
    ]
    # Firestore delivers snapshots on its own thread
    await asyncio.to_thread(service.db.callback, docs)
    for _ in range(50):
        if socket.sent:
            break
        await asyncio.sleep(0.01)

    assert socket.sent[0]["type"] == "issues"
    assert socket.sent[0]["scope"] == "reported"
    assert [i["id"] for i in socket.sent[0]["issues"]] == ["new", "old"]

    manager.disconnect(socket)
    assert service.db.unsubscribed == 1
