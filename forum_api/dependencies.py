from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from forum_api.config import Settings
from forum_api.database import get_db
from forum_api.models.user import User
from forum_api.repositories.session_store import SessionStore
from forum_api.services.session_manager import SessionManager
from forum_api.services.session_errors import (
    AuthError, MissingCredential, Expired,
    InactiveOrMissingUser, TransientFailure,
)
from forum_api.utils.cookies import ACCESS_COOKIE
from forum_api.utils.exceptions import (
    AppException,
    UnauthorizedException,
    TokenExpiredException,
    RefreshTokenInvalidException,
    AccountInactiveException,
    ServiceUnavailableException,
)

# Bearer token extractor
bearer_scheme = HTTPBearer(auto_error=False)


# ─── Settings & Manager ───────────────────────────────────────────────────────
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_manager(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> SessionManager:
    """One manager per request, bound to that request's DB session."""
    return SessionManager(SessionStore(db), settings)


# ─── Error Mapping ────────────────────────────────────────────────────────────
def to_http_error(exc: AuthError, refreshing: bool = False) -> AppException:
    """
    Translate a session manager failure into the HTTP exception for it.
    `refreshing` selects the rotation endpoint's wording for invalid tokens.
    """
    if isinstance(exc, MissingCredential):
        if refreshing:
            return RefreshTokenInvalidException("Refresh token required")
        return UnauthorizedException("Please log in to access this resource")
    if isinstance(exc, Expired):
        return TokenExpiredException()
    if isinstance(exc, InactiveOrMissingUser):
        return AccountInactiveException()
    if isinstance(exc, TransientFailure):
        return ServiceUnavailableException()
    if refreshing:
        return RefreshTokenInvalidException()
    return UnauthorizedException("Authentication failed")


# ─── Get Current User ─────────────────────────────────────────────────────────
def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    manager: SessionManager = Depends(get_session_manager),
) -> User:
    """
    Authenticate the request and return the freshly loaded User.
    The accessToken cookie wins over an Authorization: Bearer header.
    """
    token = request.cookies.get(ACCESS_COOKIE)
    if not token and credentials:
        token = credentials.credentials

    try:
        return manager.authenticate(token)
    except AuthError as exc:
        raise to_http_error(exc)

