from sqlalchemy.exc import IntegrityError

from forum_api.models.user import User
from forum_api.repositories.session_store import StorageUnavailable
from forum_api.schemas.auth import LoginRequest, SignupRequest
from forum_api.services.session_errors import TransientFailure
from forum_api.services.session_manager import SessionManager, SessionTokens
from forum_api.utils.security import verify_password, hash_password, pwd_context
from forum_api.utils.exceptions import DuplicateEntryException, InvalidCredentialsException


def serialize_user(u: User) -> dict:
    return {
        "id":        u.id,
        "userName":  u.userName,
        "email":     u.email,
        "isActive":  u.isActive,
        "createdAt": u.createdAt.isoformat() if u.createdAt else None,
        "lastLogin": u.lastLogin.isoformat() if u.lastLogin else None,
    }


def _session_payload(user: User, tokens: SessionTokens) -> dict:
    return {
        "user":         serialize_user(user),
        "accessToken":  tokens.access_token,
        "refreshToken": tokens.refresh_token,
        "tokenType":    "Bearer",
    }


class AuthService:

    # ─── Signup ───────────────────────────────────────────────────────────────
    def signup(self, manager: SessionManager, data: SignupRequest) -> tuple[dict, SessionTokens]:
        store = manager.store
        try:
            existing = store.find_user_by_login_or_email(data.userName, str(data.email))
            if existing:
                raise DuplicateEntryException("User with this userName or email already exists")
            user = store.create_user(data.userName, str(data.email), hash_password(data.password))
        except IntegrityError:
            raise DuplicateEntryException("User with this userName or email already exists")
        except StorageUnavailable:
            raise TransientFailure()

        store.add_audit(user.id, "SIGNUP", "User", user.id, f"New user registered: {user.userName}")
        tokens = manager.issue_session(user.id)
        return _session_payload(user, tokens), tokens

    # ─── Login ────────────────────────────────────────────────────────────────
    def login(self, manager: SessionManager, data: LoginRequest) -> tuple[dict, SessionTokens]:
        """
        Unknown login, inactive account and wrong password all produce the
        same InvalidCredentialsException.
        """
        store = manager.store
        try:
            user = store.find_user_by_login_or_email(data.userName)
        except StorageUnavailable:
            raise TransientFailure()

        if not user or not user.isActive:
            # Burn a hash check anyway so response time doesn't reveal the account
            pwd_context.dummy_verify()
            raise InvalidCredentialsException()

        if not verify_password(data.password, user.password):
            raise InvalidCredentialsException()

        store.touch_last_login(user, manager.clock())
        store.add_audit(user.id, "LOGIN", "User", user.id, f"{user.userName} logged in")
        tokens = manager.issue_session(user.id)
        return _session_payload(user, tokens), tokens

    # ─── Refresh ──────────────────────────────────────────────────────────────
    def refresh(self, manager: SessionManager, refresh_token: str | None) -> tuple[dict, SessionTokens]:
        rotated = manager.rotate_session(refresh_token)
        return _session_payload(rotated.user, rotated.tokens), rotated.tokens

    # ─── Logout ───────────────────────────────────────────────────────────────
    def logout(self, manager: SessionManager, refresh_token: str | None) -> None:
        manager.revoke_session(refresh_token)


auth_service = AuthService()
