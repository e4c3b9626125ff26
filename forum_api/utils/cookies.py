from fastapi import Response

from forum_api.config import Settings

ACCESS_COOKIE  = "accessToken"
REFRESH_COOKIE = "refreshToken"


def _cookie_flags(settings: Settings) -> dict:
    return {
        "httponly": True,
        "secure":   settings.is_production,
        "samesite": "strict" if settings.is_production else "lax",
    }


def set_auth_cookies(response: Response, settings: Settings, access_token: str, refresh_token: str) -> None:
    """
    Access cookie goes to every path; the refresh cookie is scoped to the
    rotation endpoint so it never reaches any other handler.
    """
    flags = _cookie_flags(settings)
    response.set_cookie(
        key=ACCESS_COOKIE,
        value=access_token,
        max_age=int(settings.access_token_lifetime.total_seconds()),
        path="/",
        **flags,
    )
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=refresh_token,
        max_age=int(settings.refresh_token_lifetime.total_seconds()),
        path=settings.refresh_cookie_path,
        **flags,
    )


def clear_auth_cookies(response: Response, settings: Settings) -> None:
    # Same path and flags as set_auth_cookies, or browsers keep the old cookie
    flags = _cookie_flags(settings)
    response.delete_cookie(ACCESS_COOKIE, path="/", **flags)
    response.delete_cookie(REFRESH_COOKIE, path=settings.refresh_cookie_path, **flags)
