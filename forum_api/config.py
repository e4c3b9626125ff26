import re
from datetime import timedelta
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings

TIMESPAN_RE = re.compile(r"^(\d+)([smhd])$")
DEFAULT_TIMESPAN = timedelta(minutes=15)

_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
}


def parse_timespan(value: str) -> timedelta:
    """
    Convert a duration string such as "15m" or "7d" into a timedelta.
    Anything that does not match <digits><s|m|h|d> falls back to 15 minutes.
    """
    match = TIMESPAN_RE.match(value.strip()) if value else None
    if not match:
        return DEFAULT_TIMESPAN
    amount, unit = match.groups()
    return timedelta(**{_UNITS[unit]: int(amount)})


class Settings(BaseSettings):
    # ─── Application ───────────────────────────────────────────────────────────
    APP_NAME: str = "Forum API"
    APP_ENV:  str = "development"
    APP_DEBUG: bool = True
    APP_HOST:  str = "0.0.0.0"
    APP_PORT:  int = 3001
    API_PREFIX: str = "/api/v1"

    # ─── Database ──────────────────────────────────────────────────────────────
    DATABASE_URL:          str
    DATABASE_POOL_SIZE:    int  = 10
    DATABASE_MAX_OVERFLOW: int  = 20
    DATABASE_POOL_TIMEOUT: int  = 30
    DATABASE_ECHO:         bool = False

    # ─── JWT ───────────────────────────────────────────────────────────────────
    SECRET_KEY:                 str
    ALGORITHM:                  str = "HS256"
    JWT_EXPIRES_IN:             str = "15m"
    REFRESH_TOKEN_EXPIRES_IN:   str = "7d"
    REFRESH_TOKEN_MAX_ATTEMPTS: int = Field(3, ge=1)

    # ─── Passwords ─────────────────────────────────────────────────────────────
    BCRYPT_ROUNDS: int = 12

    # ─── CORS ──────────────────────────────────────────────────────────────────
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    def get_cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def access_token_lifetime(self) -> timedelta:
        return parse_timespan(self.JWT_EXPIRES_IN)

    @property
    def refresh_token_lifetime(self) -> timedelta:
        return parse_timespan(self.REFRESH_TOKEN_EXPIRES_IN)

    @property
    def refresh_cookie_path(self) -> str:
        """The refresh cookie is only ever sent to the rotation endpoint."""
        return f"{self.API_PREFIX}/auth/refresh"

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    model_config = {"env_file": ".env", "case_sensitive": True, "extra": "ignore"}


settings = Settings()
