from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from typing import Optional
import logging
import json
from datetime import datetime

from ..auth.session import decode_session_token
from ..core.config import settings
from ..services.live_query_service import connection_manager, live_query_service, LiveScopeError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["websocket"])


def authenticate_websocket(websocket: WebSocket, token: Optional[str]) -> Optional[dict]:
    """Session claims from the ``token`` query parameter or the session cookie"""
    claims = decode_session_token(token or websocket.cookies.get(settings.SESSION_COOKIE_NAME))
    if not claims:
        return None
    return {"uid": claims.get("uid"), "email": claims.get("email"), "role": claims.get("role")}


@router.websocket("/issues")
async def websocket_issues(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="Session token"),
    scope: str = Query("reported", description="all | reported | assigned"),
):
    """Live issue list for the caller's scope; a fresh snapshot is pushed on every change"""
    user = authenticate_websocket(websocket, token)
    if not user:
        await websocket.close(code=1008, reason="Authentication failed")
        return

    await connection_manager.connect(websocket, user["uid"], user["role"])
    try:
        try:
            live_query_service.watch_issues(websocket, user, scope)
        except LiveScopeError as e:
            await connection_manager.send_json(websocket, {"type": "error", "message": str(e)})
            await websocket.close(code=1008, reason=str(e))
            return

        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await connection_manager.send_json(websocket, {"type": "error", "message": "Invalid JSON format"})
                continue
            if not isinstance(message, dict):
                await connection_manager.send_json(websocket, {"type": "error", "message": "Expected a JSON object"})
                continue
            if message.get("type") == "ping":
                await connection_manager.send_json(websocket, {
                    "type": "pong",
                    "timestamp": datetime.now().isoformat(),
                })
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"[Live] WebSocket error: {str(e)}")
    finally:
        connection_manager.disconnect(websocket)
