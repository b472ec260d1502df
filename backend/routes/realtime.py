"""
Real Estate CRM - Real-time notifications websocket

WS /api/ws/notifications?token=<session token>
Server -> client: {"type": "notification", "data": {...}}
                  {"type": "user-status-changed", "data": {...}}
Client -> server: {"type": "ping"}  ->  {"type": "pong"}
"""

import logging
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from routes.auth import get_session_store
from services.realtime import connection_manager

router = APIRouter(tags=["Realtime"])
logger = logging.getLogger("realtime")


def get_connection_manager():
    return connection_manager


@router.websocket("/ws/notifications")
async def notifications_socket(
    websocket: WebSocket,
    token: str = "",
    sessions=Depends(get_session_store),
    manager=Depends(get_connection_manager)
):
    user = await sessions.get_user_for_token(token) if token else None
    if not user:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    session_id = await manager.connect(websocket, user["id"], user.get("company_id"))

    try:
        while True:
            message = await websocket.receive_json()
            if isinstance(message, dict) and message.get("type") == "ping":
                manager.presence.update_last_seen(user["id"])
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    except ValueError as e:
        logger.warning(f"Invalid websocket message from user {user['id']}: {str(e)}")
    finally:
        await manager.disconnect(session_id)
