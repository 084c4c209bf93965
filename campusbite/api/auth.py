"""Sign-in endpoints and session dependencies.

Identity is verified by the hosted auth provider before the client gets
here; these endpoints only bind a known account to a server-side session
(which owns the user's cart).
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel

from campusbite.api.errors import to_http_exception
from campusbite.core.config import settings
from campusbite.core.dependencies import get_catalog_persistence, get_session_registry
from campusbite.core.errors import PersistenceError
from campusbite.services.persistence.catalog import CatalogPersistenceService
from campusbite.services.session.registry import SessionRegistry, UserSession

router = APIRouter()
logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_token"


class LoginRequest(BaseModel):
    """Login request model."""
    user_id: str


class SessionInfo(BaseModel):
    """Session information response."""
    authenticated: bool
    user_id: Optional[str] = None
    role: Optional[str] = None
    expires_at: Optional[str] = None


def get_session_token(request: Request) -> Optional[str]:
    """Extract session token from cookie."""
    return request.cookies.get(SESSION_COOKIE)


async def require_session(
    request: Request,
    registry: SessionRegistry = Depends(get_session_registry),
) -> UserSession:
    """Dependency to require a signed-in user."""
    session = registry.get(get_session_token(request))
    if session is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return session


async def require_vendor(session: UserSession = Depends(require_session)) -> UserSession:
    """Dependency to require a signed-in vendor."""
    if not session.is_vendor:
        raise HTTPException(status_code=403, detail="Vendor account required")
    return session


@router.post("/api/auth/login")
async def login(
    login_req: LoginRequest,
    response: Response,
    registry: SessionRegistry = Depends(get_session_registry),
    catalog: CatalogPersistenceService = Depends(get_catalog_persistence),
):
    """Login endpoint."""
    try:
        user = await catalog.get_user(login_req.user_id)
    except PersistenceError as e:
        raise to_http_exception(e)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown account")

    session = await registry.open(user.id, user.role)

    # Set HTTP-only cookie
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session.token,
        httponly=True,
        max_age=settings.session_ttl_hours * 3600,
        samesite="lax",
    )

    return {
        "success": True,
        "message": "Login successful",
        "user_id": session.user_id,
        "role": session.role,
        "expires_at": session.expires_at.isoformat(),
    }


@router.post("/api/auth/logout")
async def logout(
    request: Request,
    response: Response,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Logout endpoint. Clears the user's cart."""
    await registry.close(get_session_token(request))

    # Clear cookie
    response.delete_cookie(SESSION_COOKIE)

    return {"success": True, "message": "Logged out"}


@router.get("/api/auth/session")
async def get_session_info(
    request: Request,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionInfo:
    """Get current session information."""
    session = registry.get(get_session_token(request))

    if session is not None:
        return SessionInfo(
            authenticated=True,
            user_id=session.user_id,
            role=session.role,
            expires_at=session.expires_at.isoformat(),
        )

    return SessionInfo(authenticated=False)
