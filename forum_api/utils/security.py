import secrets
import string
from datetime import datetime, timedelta

from jose import JWTError, ExpiredSignatureError, jwt
from passlib.context import CryptContext

from forum_api.config import settings
from forum_api.services.session_errors import Expired, InvalidCredential

ACCESS_TOKEN_TYPE  = "access"
REFRESH_TOKEN_TYPE = "refresh"

NONCE_ALPHABET = string.digits + string.ascii_lowercase
NONCE_LENGTH   = 13

# ─── Password Hashing ─────────────────────────────────────────────────────────
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password using bcrypt."""
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain-text password against a bcrypt hash."""
    return pwd_context.verify(plain_password, hashed_password)


# ─── Nonces ───────────────────────────────────────────────────────────────────
def generate_nonce(length: int = NONCE_LENGTH) -> str:
    """Random base-36 string that keeps refresh tokens minted in the same tick distinct."""
    return "".join(secrets.choice(NONCE_ALPHABET) for _ in range(length))


# ─── JWT ──────────────────────────────────────────────────────────────────────
def create_access_token(
    user_id: int,
    secret: str,
    algorithm: str,
    lifetime: timedelta,
    now: datetime,
) -> str:
    """
    Create a short-lived JWT access token.
    Payload: userId, type, iat, exp
    """
    payload = {
        "userId": user_id,
        "type":   ACCESS_TOKEN_TYPE,
        "iat":    now,
        "exp":    now + lifetime,
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def create_refresh_token(
    user_id: int,
    secret: str,
    algorithm: str,
    lifetime: timedelta,
    now: datetime,
    nonce: str,
) -> tuple[str, datetime]:
    """
    Create a long-lived JWT refresh token.
    Payload: userId, timestamp (ms), random nonce, type, iat, exp
    Returns (token_string, expiry_datetime).
    """
    expire = now + lifetime
    payload = {
        "userId":    user_id,
        "timestamp": int(now.timestamp() * 1000),
        "random":    nonce,
        "type":      REFRESH_TOKEN_TYPE,
        "iat":       now,
        "exp":       expire,
    }
    return jwt.encode(payload, secret, algorithm=algorithm), expire


def _user_id_from(payload: dict) -> int:
    user_id = payload.get("userId")
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        raise InvalidCredential("Invalid token payload")
    return user_id


def verify_access_token(token: str, secret: str, algorithm: str) -> int:
    """
    Decode and validate a JWT access token, returning the embedded user id.
    Raises Expired past its lifetime, InvalidCredential for anything else.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except ExpiredSignatureError:
        raise Expired()
    except JWTError:
        raise InvalidCredential("Invalid or malformed token")
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise InvalidCredential("Invalid token type")
    return _user_id_from(payload)


def verify_refresh_token(token: str, secret: str, algorithm: str) -> int:
    """
    Decode and validate a JWT refresh token, returning the embedded user id.
    Expiry is reported as InvalidCredential like every other refresh failure.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError:
        raise InvalidCredential("Invalid refresh token")
    if payload.get("type") != REFRESH_TOKEN_TYPE:
        raise InvalidCredential("Invalid token type")
    return _user_id_from(payload)
