"""
Real Estate CRM - Real-time transport (WebSocket sessions)

Holds the live WebSocket of every session and feeds the PresenceTracker on
connect / disconnect. Pushes resolve the target session through the tracker,
so only the user's most recent session receives notifications.
No store-and-forward: pushing to an offline user is a no-op.
"""

import logging
from typing import Dict, Optional

from fastapi.encoders import jsonable_encoder

from config import generate_token, now_iso
from services.presence import PresenceTracker, presence_tracker

logger = logging.getLogger("realtime")


def status_event(user_id: str, status: str) -> dict:
    return {
        "type": "user-status-changed",
        "data": {"user_id": user_id, "status": status, "last_seen": now_iso()},
    }


class ConnectionManager:

    def __init__(self, presence: PresenceTracker):
        self.presence = presence
        self._connections: Dict[str, dict] = {}

    async def connect(self, websocket, user_id: str, company_id: str = None) -> str:
        """Register an accepted websocket; returns its session id"""
        session_id = generate_token()
        self._connections[session_id] = {
            "websocket": websocket,
            "user_id": user_id,
            "company_id": company_id,
        }
        self.presence.set_online(user_id, session_id, company_id)

        # company members and the user themselves see the status change
        await self.broadcast_to_company(company_id, status_event(user_id, "online"))
        return session_id

    async def disconnect(self, session_id: str):
        conn = self._connections.pop(session_id, None)
        user_id = self.presence.set_offline(session_id)

        if conn and user_id:
            await self.broadcast_to_company(
                conn["company_id"],
                status_event(user_id, "offline"),
                exclude_session_id=session_id
            )

    async def push_to_user(self, user_id: str, payload: dict) -> bool:
        """
        Send `payload` to the user's current session.
        Returns False (no-op) when the user is offline. Send errors propagate.
        """
        session_id = self.presence.get_session_id(user_id)
        if not session_id:
            return False

        conn = self._connections.get(session_id)
        if not conn:
            return False

        await conn["websocket"].send_json(jsonable_encoder(payload))
        return True

    async def broadcast_to_company(
        self,
        company_id: Optional[str],
        payload: dict,
        exclude_session_id: str = None
    ) -> int:
        if not company_id:
            return 0

        sent = 0
        for session_id, conn in list(self._connections.items()):
            if session_id == exclude_session_id or conn["company_id"] != company_id:
                continue
            try:
                await conn["websocket"].send_json(jsonable_encoder(payload))
                sent += 1
            except Exception as e:
                logger.warning(f"Broadcast to session {session_id} failed: {str(e)}")
        return sent

    def session_count(self) -> int:
        return len(self._connections)


# Global instance
connection_manager = ConnectionManager(presence_tracker)
