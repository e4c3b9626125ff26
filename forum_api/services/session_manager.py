import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from forum_api.config import Settings
from forum_api.models import User
from forum_api.repositories.session_store import SessionStore, StorageUnavailable, WriteOutcome
from forum_api.services.session_errors import (
    MissingCredential, InvalidCredential, InactiveOrMissingUser, TransientFailure,
)
from forum_api.utils.security import (
    create_access_token, create_refresh_token,
    verify_access_token, verify_refresh_token,
    generate_nonce,
)

logger = logging.getLogger(__name__)

# Value the client-side logout flow writes into the access cookie
LOGGED_OUT_SENTINEL = "loggedout"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionTokens:
    access_token:       str
    refresh_token:      str
    refresh_expires_at: datetime


@dataclass(frozen=True)
class RotatedSession:
    tokens: SessionTokens
    user:   User


class SessionManager:
    """
    Mints, validates, rotates and revokes access/refresh credentials.

    Every decision re-reads the store; nothing is cached between calls.
    `clock` and `nonce_factory` exist so tests can pin time and force
    refresh token collisions.
    """

    def __init__(
        self,
        store: SessionStore,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
        nonce_factory: Callable[[], str] = generate_nonce,
    ):
        self.store = store
        self.settings = settings
        self.clock = clock
        self.nonce_factory = nonce_factory

    # ─── Minting ──────────────────────────────────────────────────────────────
    def _mint_access(self, user_id: int, now: datetime) -> str:
        return create_access_token(
            user_id,
            self.settings.SECRET_KEY,
            self.settings.ALGORITHM,
            self.settings.access_token_lifetime,
            now,
        )

    def _mint_refresh(self, user_id: int, now: datetime) -> tuple[str, datetime]:
        return create_refresh_token(
            user_id,
            self.settings.SECRET_KEY,
            self.settings.ALGORITHM,
            self.settings.refresh_token_lifetime,
            now,
            self.nonce_factory(),
        )

    # ─── Issue ────────────────────────────────────────────────────────────────
    def issue_session(self, user_id: int) -> SessionTokens:
        """
        Mint an access/refresh pair and persist a session record for the
        refresh token. Anything the caller staged on the same DB session
        (lastLogin, audit rows) commits with it.
        """
        now = self.clock()
        access_token = self._mint_access(user_id, now)
        refresh_token, expires_at = self._mint_refresh(user_id, now)
        try:
            self.store.create_session_record(user_id, refresh_token, expires_at)
        except StorageUnavailable:
            raise TransientFailure()
        return SessionTokens(access_token, refresh_token, expires_at)

    # ─── Authenticate ─────────────────────────────────────────────────────────
    def authenticate(self, access_token: str | None) -> User:
        """
        Validate an access token and return the freshly read, active user.

        Raises MissingCredential, InvalidCredential, Expired,
        InactiveOrMissingUser or TransientFailure. Never refreshes anything;
        on Expired the client is expected to call the rotation endpoint.
        """
        if not access_token or access_token == LOGGED_OUT_SENTINEL:
            raise MissingCredential()

        user_id = verify_access_token(access_token, self.settings.SECRET_KEY, self.settings.ALGORITHM)

        try:
            user = self.store.find_user_by_id(user_id)
        except StorageUnavailable:
            raise TransientFailure()
        if not user or not user.isActive:
            raise InactiveOrMissingUser()
        return user

    # ─── Rotate ───────────────────────────────────────────────────────────────
    def rotate_session(self, refresh_token: str | None) -> RotatedSession:
        """
        Exchange a usable refresh token for a new access/refresh pair.

        The old record is revoked and the new one created in a single
        transaction. A clash on the new token string is retried with a fresh
        nonce up to REFRESH_TOKEN_MAX_ATTEMPTS times, then TransientFailure.
        Forged, expired, revoked and unknown tokens all give InvalidCredential.
        """
        if not refresh_token:
            raise MissingCredential()

        user_id = verify_refresh_token(refresh_token, self.settings.SECRET_KEY, self.settings.ALGORITHM)

        try:
            record = self.store.find_active_session_record(refresh_token, user_id, self.clock())
            if not record:
                raise InvalidCredential("Invalid refresh token")
            old_id = record.id

            user = self.store.find_user_by_id(user_id)
        except StorageUnavailable:
            raise TransientFailure()
        if not user or not user.isActive:
            raise InactiveOrMissingUser()

        max_attempts = self.settings.REFRESH_TOKEN_MAX_ATTEMPTS
        for attempt in range(1, max_attempts + 1):
            now = self.clock()
            new_refresh, expires_at = self._mint_refresh(user_id, now)

            self.store.add_audit(user_id, "REFRESH", "RefreshToken", old_id, "Session rotated")
            outcome, _ = self.store.revoke_and_create(old_id, user_id, new_refresh, expires_at, now)

            if outcome is WriteOutcome.OK:
                access_token = self._mint_access(user_id, now)
                return RotatedSession(SessionTokens(access_token, new_refresh, expires_at), user)
            if outcome is WriteOutcome.STALE_RECORD:
                # A concurrent rotation already consumed this record
                raise InvalidCredential("Invalid refresh token")
            if outcome is WriteOutcome.STORAGE_ERROR:
                raise TransientFailure()

            logger.warning(f"Token collision detected, retrying ({attempt}/{max_attempts})...")

        logger.error(f"Failed to generate unique refresh token for user {user_id} after {max_attempts} attempts")
        raise TransientFailure("Failed to generate unique token")

    # ─── Revoke ───────────────────────────────────────────────────────────────
    def revoke_session(self, refresh_token: str | None) -> None:
        """
        Revoke the session record behind a refresh token, if there is one.
        Missing, malformed, unknown and already-revoked tokens are all a no-op.
        """
        if not refresh_token:
            return
        try:
            self.store.revoke_by_token(refresh_token, self.clock(), audit_action="LOGOUT")
        except StorageUnavailable:
            raise TransientFailure()
