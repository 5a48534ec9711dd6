"""Admin authentication for the payment desk, kitchen and serving boards."""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel

from orderflow.core.config import settings

router = APIRouter()
logger = logging.getLogger(__name__)

SESSION_COOKIE = "admin_session"

# token -> {"authenticated", "created_at", "expires_at"}; staff log in again after a restart
_sessions: dict[str, dict] = {}


class LoginRequest(BaseModel):
    password: str


class SessionInfo(BaseModel):
    """Session state of the calling browser."""
    authenticated: bool
    expires_at: Optional[str] = None


def create_session_token() -> str:
    return secrets.token_urlsafe(32)


def create_session(response: Response) -> str:
    """Open an admin session and attach its cookie to the response."""
    ttl = timedelta(hours=settings.session_ttl_hours)
    now = datetime.now(timezone.utc)
    token = create_session_token()
    _sessions[token] = {"authenticated": True, "created_at": now, "expires_at": now + ttl}

    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        max_age=int(ttl.total_seconds()),
        samesite="lax",
    )
    return token


def get_session_token(request: Request) -> Optional[str]:
    return request.cookies.get(SESSION_COOKIE)


def verify_session(session_token: Optional[str]) -> bool:
    """True for a known, unexpired session. Expired sessions are discarded."""
    session = _sessions.get(session_token) if session_token else None
    if session is None:
        return False

    if datetime.now(timezone.utc) > session["expires_at"]:
        _sessions.pop(session_token, None)
        return False

    return bool(session.get("authenticated"))


async def require_auth(request: Request) -> bool:
    """Router dependency guarding every staff endpoint."""
    if not verify_session(get_session_token(request)):
        logger.info(f"[AUTH] Rejected {request.method} {request.url.path} - no valid session")
        raise HTTPException(status_code=401, detail="Authentication required")
    return True


@router.post("/api/admin/auth")
async def login(login_req: LoginRequest, request: Request, response: Response):
    """Check the admin password and open a session."""
    client = request.client.host if request.client else "unknown"
    if not secrets.compare_digest(login_req.password.encode(), settings.admin_password.encode()):
        logger.warning(f"[AUTH] Failed admin login - Client: {client}")
        raise HTTPException(status_code=401, detail="Invalid password")

    token = create_session(response)
    logger.info(f"[AUTH] Admin session opened - Client: {client}, active sessions: {len(_sessions)}")
    return {
        "authenticated": True,
        "message": "Login successful",
        "expires_at": _sessions[token]["expires_at"].isoformat(),
    }


@router.post("/api/admin/logout")
async def logout(request: Request, response: Response):
    """Close the caller's session and clear its cookie."""
    token = get_session_token(request)
    if token:
        _sessions.pop(token, None)
    response.delete_cookie(SESSION_COOKIE)
    return {"success": True, "message": "Logged out"}


@router.get("/api/admin/session")
async def get_session_info(request: Request) -> SessionInfo:
    """Lets the boards check whether they still need to log in."""
    token = get_session_token(request)
    if not verify_session(token):
        return SessionInfo(authenticated=False)
    return SessionInfo(authenticated=True, expires_at=_sessions[token]["expires_at"].isoformat())
