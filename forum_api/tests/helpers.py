from datetime import datetime, timezone

from forum_api.config import Settings
from forum_api.database import Database
from forum_api.models import User
from forum_api.repositories.session_store import SessionStore
from forum_api.services.session_manager import SessionManager
from forum_api.utils.security import hash_password

TEST_SECRET = "test-secret-key"


def make_settings(**overrides) -> Settings:
    values = {"DATABASE_URL": "sqlite://", "SECRET_KEY": TEST_SECRET, "APP_ENV": "development"}
    values.update(overrides)
    return Settings(**values)


def make_database(url: str = "sqlite://") -> Database:
    database = Database(url)
    database.create_all()
    return database


def make_user(db, user_name: str = "alice", password: str = "secret123", active: bool = True) -> User:
    user = User(
        userName=user_name,
        email=f"{user_name}@example.com",
        password=hash_password(password),
        isActive=active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_manager(db, settings: Settings | None = None, **kwargs) -> SessionManager:
    return SessionManager(SessionStore(db), settings or make_settings(), **kwargs)


def fixed_clock(moment: datetime | None = None):
    moment = moment or datetime.now(timezone.utc).replace(microsecond=0)
    return lambda: moment
