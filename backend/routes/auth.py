"""
Real Estate CRM - Auth dependencies
Bearer token -> session -> user, shared by the HTTP routes and the websocket.
"""

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from services.stores import session_store

security = HTTPBearer(auto_error=False)


def get_session_store():
    return session_store


# ==================== HELPERS ====================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    sessions=Depends(get_session_store)
):
    """Current user from the bearer token."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user = await sessions.get_user_for_token(credentials.credentials)
    if not user:
        raise HTTPException(status_code=401, detail="Session expired")

    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Account disabled")

    return user


async def require_admin(user: dict = Depends(get_current_user)):
    """Admin access."""
    if user.get("role") not in ("admin", "super_admin"):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
