from fastapi import APIRouter, Body, Depends, Request, Response, status

from forum_api.config import Settings
from forum_api.dependencies import (
    get_current_user, get_session_manager, get_settings, to_http_error,
)
from forum_api.models.user import User
from forum_api.schemas.auth import (
    SignupRequest, LoginRequest, RefreshTokenRequest, SessionResponse, UserOut,
)
from forum_api.schemas.common import ErrorResponse, SuccessResponse, success_response
from forum_api.services.auth_service import auth_service, serialize_user
from forum_api.services.session_errors import AuthError
from forum_api.services.session_manager import SessionManager
from forum_api.utils.cookies import REFRESH_COOKIE, set_auth_cookies, clear_auth_cookies

router = APIRouter(
    prefix="/auth",
    responses={
        401: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)


def _refresh_token_from(request: Request, data: RefreshTokenRequest | None) -> str | None:
    token = request.cookies.get(REFRESH_COOKIE)
    if not token and data is not None and isinstance(data.refreshToken, str):
        token = data.refreshToken
    return token


# ─── POST /auth/signup ────────────────────────────────────────────────────────
@router.post(
    "/signup",
    status_code=status.HTTP_201_CREATED,
    summary="Create an account and start a session",
    response_model=SuccessResponse[SessionResponse],
)
def signup(
    data: SignupRequest,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
):
    """
    Register a new user.
    - userName and email must both be unused.
    - Sets accessToken and refreshToken cookies.
    """
    try:
        result, tokens = auth_service.signup(manager, data)
    except AuthError as exc:
        raise to_http_error(exc)
    set_auth_cookies(response, settings, tokens.access_token, tokens.refresh_token)
    return success_response("Signup successful", result)


# ─── POST /auth/login ─────────────────────────────────────────────────────────
@router.post(
    "/login",
    status_code=status.HTTP_200_OK,
    summary="Login and receive access + refresh tokens",
    response_model=SuccessResponse[SessionResponse],
)
def login(
    data: LoginRequest,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
):
    """
    Authenticate by userName and password.
    Unknown user, inactive user and wrong password all answer 401 "Invalid credentials".
    """
    try:
        result, tokens = auth_service.login(manager, data)
    except AuthError as exc:
        raise to_http_error(exc)
    set_auth_cookies(response, settings, tokens.access_token, tokens.refresh_token)
    return success_response("Login successful", result)


# ─── POST /auth/logout ────────────────────────────────────────────────────────
@router.post(
    "/logout",
    status_code=status.HTTP_200_OK,
    summary="Revoke refresh token (logout)",
    response_model=SuccessResponse,
)
def logout(
    request: Request,
    response: Response,
    data: RefreshTokenRequest | None = Body(default=None),
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
):
    """
    Always succeeds for missing, unknown or already revoked tokens.
    The refresh cookie is scoped to /auth/refresh, so browsers that don't
    send it here can pass the token in the body instead.
    """
    try:
        auth_service.logout(manager, _refresh_token_from(request, data))
    except AuthError as exc:
        raise to_http_error(exc)
    clear_auth_cookies(response, settings)
    return success_response("Logged out successfully", None)


# ─── POST /auth/refresh ───────────────────────────────────────────────────────
@router.post(
    "/refresh",
    status_code=status.HTTP_200_OK,
    summary="Rotate the refresh token and get a new access token",
    response_model=SuccessResponse[SessionResponse],
)
def refresh_token(
    request: Request,
    response: Response,
    data: RefreshTokenRequest | None = Body(default=None),
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
):
    try:
        result, tokens = auth_service.refresh(manager, _refresh_token_from(request, data))
    except AuthError as exc:
        raise to_http_error(exc, refreshing=True)
    set_auth_cookies(response, settings, tokens.access_token, tokens.refresh_token)
    return success_response("Token refreshed", result)


# ─── GET /auth/me ─────────────────────────────────────────────────────────────
@router.get(
    "/me",
    status_code=status.HTTP_200_OK,
    summary="Get current authenticated user profile",
    response_model=SuccessResponse[UserOut],
)
def get_me(current_user: User = Depends(get_current_user)):
    return success_response("User profile retrieved", serialize_user(current_user))
