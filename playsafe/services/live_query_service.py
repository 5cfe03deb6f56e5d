from fastapi import WebSocket
from typing import Any, Callable, Dict, List, Optional, Set
from datetime import datetime, timezone
from uuid import uuid4
import asyncio
import json
import logging

from ..database.database_service import database_service
from ..database.collections import COLLECTIONS
from ..models.database_models import Issue
from ..models.user import UserRole

logger = logging.getLogger(__name__)

LIVE_SCOPES = ("all", "reported", "assigned")


class LiveScopeError(ValueError):
    pass


def sort_newest_first(issues: List[Issue]) -> List[Issue]:
    """Issue queries are unordered server-side; order by createdAt descending here."""
    oldest = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(issues, key=lambda i: i.createdAt or oldest, reverse=True)


def scope_filters(user: dict, scope: str) -> Optional[List[tuple]]:
    """Firestore filters for a live issue scope, checked against the caller's role."""
    role = user.get("role")
    if scope == "all":
        if role != UserRole.ADMIN.value:
            raise LiveScopeError("Only administrators can watch all issues")
        return None
    if scope == "reported":
        return [("reportedBy.uid", "==", user["uid"])]
    if scope == "assigned":
        if role != UserRole.MAINTENANCE.value:
            raise LiveScopeError("Only maintenance staff have assigned issues")
        return [("assignedTo", "==", user["email"])]
    raise LiveScopeError(f"Unknown scope '{scope}', expected one of {', '.join(LIVE_SCOPES)}")


class ConnectionManager:
    """WebSocket connections by user id, each with the live watches it owns."""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        self.connection_metadata: Dict[WebSocket, Dict[str, Any]] = {}
        self.watches: Dict[WebSocket, List[Callable[[], None]]] = {}

    async def connect(self, websocket: WebSocket, user_id: str, user_role: str):
        await websocket.accept()
        self.active_connections.setdefault(user_id, set()).add(websocket)
        self.connection_metadata[websocket] = {
            "user_id": user_id,
            "user_role": user_role,
            "connected_at": datetime.now(timezone.utc),
            "connection_id": str(uuid4()),
        }
        logger.info(f"[Live] WebSocket connected: user_id={user_id}, role={user_role}")

    def add_watch(self, websocket: WebSocket, unsubscribe: Callable[[], None]):
        self.watches.setdefault(websocket, []).append(unsubscribe)

    def disconnect(self, websocket: WebSocket):
        for unsubscribe in self.watches.pop(websocket, []):
            try:
                unsubscribe()
            except Exception as e:
                logger.error(f"[Live] Error closing watch: {str(e)}")

        metadata = self.connection_metadata.pop(websocket, None)
        if metadata:
            user_id = metadata["user_id"]
            connections = self.active_connections.get(user_id)
            if connections is not None:
                connections.discard(websocket)
                if not connections:
                    del self.active_connections[user_id]
            logger.info(f"[Live] WebSocket disconnected: user_id={user_id}")

    async def send_json(self, websocket: WebSocket, message: Dict[str, Any]) -> bool:
        try:
            await websocket.send_text(json.dumps(message, default=str))
            return True
        except Exception as e:
            logger.error(f"[Live] Send failed, dropping connection: {str(e)}")
            self.disconnect(websocket)
            return False

    async def send_personal_message(self, user_id: str, message: Dict[str, Any]):
        for websocket in list(self.active_connections.get(user_id, ())):
            await self.send_json(websocket, message)

    def get_connection_count(self) -> int:
        return sum(len(connections) for connections in self.active_connections.values())


connection_manager = ConnectionManager()


class LiveQueryService:
    def __init__(self, manager: ConnectionManager = connection_manager):
        self.db = database_service
        self.manager = manager

    def watch_issues(self, websocket: WebSocket, user: dict, scope: str) -> Callable[[], None]:
        """
        Open a Firestore watch for ``scope`` and push every snapshot to
        ``websocket``, newest issue first. Must be called on the event loop.
        """
        filters = scope_filters(user, scope)
        loop = asyncio.get_running_loop()

        def on_change(docs: List[Dict[str, Any]]):
            # Runs on a Firestore SDK thread
            issues = sort_newest_first([Issue(**doc) for doc in docs])
            payload = {
                "type": "issues",
                "scope": scope,
                "issues": [issue.model_dump(mode="json") for issue in issues],
            }
            asyncio.run_coroutine_threadsafe(self.manager.send_json(websocket, payload), loop)

        unsubscribe = self.db.watch_query(COLLECTIONS['issues'], filters, on_change)
        self.manager.add_watch(websocket, unsubscribe)
        logger.info(f"[Live] Watching {scope} issues for {user.get('uid')}")
        return unsubscribe


live_query_service = LiveQueryService()
