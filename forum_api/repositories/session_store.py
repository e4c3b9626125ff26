import enum
import logging
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from forum_api.models import AuditLog, RefreshToken, User

logger = logging.getLogger(__name__)


class StorageUnavailable(Exception):
    """The database could not complete a read or write."""


class WriteOutcome(enum.Enum):
    OK                  = "ok"
    UNIQUENESS_CONFLICT = "uniqueness_conflict"   # new token string already stored
    STALE_RECORD        = "stale_record"          # old record was revoked by someone else
    STORAGE_ERROR       = "storage_error"


# SQLite names the column, Postgres names the constraint
TOKEN_UNIQUE_MARKERS = ("refresh_tokens.token", "refresh_tokens_token_key")


def _is_token_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return any(marker in message for marker in TOKEN_UNIQUE_MARKERS)


class SessionStore:
    """
    Database collaborator for the session manager.

    Wraps one SQLAlchemy session. Reads never cache; writes either commit as a
    whole or roll back as a whole.
    """

    def __init__(self, db: Session):
        self.db = db

    def _fail(self, exc: SQLAlchemyError, operation: str) -> StorageUnavailable:
        self.db.rollback()
        logger.error(f"Storage failure during {operation}: {exc.__class__.__name__}")
        return StorageUnavailable(operation)

    # ─── Users ────────────────────────────────────────────────────────────────
    def find_user_by_login_or_email(self, login: str, email: str | None = None) -> User | None:
        try:
            q = self.db.query(User)
            if email is None:
                return q.filter(User.userName == login).first()
            return q.filter(or_(User.userName == login, User.email == email)).first()
        except SQLAlchemyError as exc:
            raise self._fail(exc, "find_user_by_login_or_email")

    def find_user_by_id(self, user_id: int) -> User | None:
        try:
            # populate_existing: never trust an identity-map copy from earlier in the request
            return self.db.query(User).populate_existing().filter(User.id == user_id).first()
        except SQLAlchemyError as exc:
            raise self._fail(exc, "find_user_by_id")

    def create_user(self, user_name: str, email: str, password_hash: str) -> User:
        """Flushes the new user so it has an id; the caller's next commit persists it."""
        user = User(userName=user_name, email=email, password=password_hash, isActive=True)
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError:
            # Lost a signup race on userName/email; surfaces as 409
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            raise self._fail(exc, "create_user")
        return user

    def touch_last_login(self, user: User, now: datetime) -> None:
        """Staged only; committed together with the session record."""
        user.lastLogin = now

    def add_audit(
        self,
        user_id: int | None,
        action: str,
        entity_type: str,
        entity_id: int | None = None,
        description: str | None = None,
    ) -> None:
        # Do NOT commit here; the caller's transaction commits everything atomically
        self.db.add(AuditLog(
            userId=user_id,
            action=action,
            entityType=entity_type,
            entityId=entity_id,
            description=description,
        ))

    # ─── Session records ──────────────────────────────────────────────────────
    def create_session_record(self, user_id: int, token: str, expires_at: datetime) -> RefreshToken:
        """Insert a session record and commit it with anything else staged."""
        record = RefreshToken(token=token, userId=user_id, expiresAt=expires_at)
        self.db.add(record)
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail(exc, "create_session_record")
        return record

    def find_active_session_record(self, token: str, user_id: int, now: datetime) -> RefreshToken | None:
        try:
            return self.db.query(RefreshToken).filter(
                RefreshToken.token == token,
                RefreshToken.userId == user_id,
                RefreshToken.revokedAt.is_(None),
                RefreshToken.expiresAt > now,
            ).first()
        except SQLAlchemyError as exc:
            raise self._fail(exc, "find_active_session_record")

    def revoke_session_record(self, record_id: int, now: datetime) -> bool:
        """Mark one record revoked. Returns False if it was already revoked."""
        try:
            updated = self.db.query(RefreshToken).filter(
                RefreshToken.id == record_id,
                RefreshToken.revokedAt.is_(None),
            ).update({"revokedAt": now}, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail(exc, "revoke_session_record")
        return updated > 0

    def _unrevoked_by_token(self, token: str) -> list[tuple[int, int]]:
        return self.db.query(RefreshToken.id, RefreshToken.userId).filter(
            RefreshToken.token == token,
            RefreshToken.revokedAt.is_(None),
        ).all()

    def revoke_by_token(self, token: str, now: datetime, audit_action: str | None = None) -> int:
        """
        Revoke every unrevoked record carrying this token string and commit.

        Each revoke is conditional on revokedAt still being NULL, so a record
        a concurrent rotation already consumed keeps its revokedAt and gets no
        audit row. With audit_action set, one audit row per record actually
        revoked goes into the same transaction. Returns that count.
        """
        revoked = 0
        try:
            for record_id, user_id in self._unrevoked_by_token(token):
                updated = self.db.query(RefreshToken).filter(
                    RefreshToken.id == record_id,
                    RefreshToken.revokedAt.is_(None),
                ).update({"revokedAt": now}, synchronize_session=False)
                if not updated:
                    continue
                revoked += 1
                if audit_action:
                    self.add_audit(user_id, audit_action, "RefreshToken", record_id)
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail(exc, "revoke_by_token")
        return revoked

    def revoke_and_create(
        self,
        old_id: int,
        user_id: int,
        token: str,
        expires_at: datetime,
        now: datetime,
    ) -> tuple[WriteOutcome, RefreshToken | None]:
        """
        Revoke the old record and insert its replacement in one transaction.

        The revoke is conditional on the old record still being unrevoked, so of
        two concurrent rotations of the same record only one can get past it.
        Any failure rolls back both writes.
        """
        try:
            revoked = self.db.query(RefreshToken).filter(
                RefreshToken.id == old_id,
                RefreshToken.revokedAt.is_(None),
            ).update({"revokedAt": now}, synchronize_session=False)
            if revoked == 0:
                self.db.rollback()
                return WriteOutcome.STALE_RECORD, None

            record = RefreshToken(token=token, userId=user_id, expiresAt=expires_at)
            self.db.add(record)
            self.db.commit()
            return WriteOutcome.OK, record
        except IntegrityError as exc:
            self.db.rollback()
            if _is_token_conflict(exc):
                return WriteOutcome.UNIQUENESS_CONFLICT, None
            logger.error(f"Integrity failure during revoke_and_create: {exc.orig.__class__.__name__}")
            return WriteOutcome.STORAGE_ERROR, None
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Storage failure during revoke_and_create: {exc.__class__.__name__}")
            return WriteOutcome.STORAGE_ERROR, None
