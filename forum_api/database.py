import logging

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session
from sqlalchemy.pool import QueuePool, StaticPool

from forum_api.config import Settings

logger = logging.getLogger(__name__)


# ─── Base Model ────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.
    All models in forum_api/models/ should inherit from this class.
    """
    pass


# ─── Database Handle ───────────────────────────────────────────────────────────
class Database:
    """
    Owns the engine and session factory for one application instance.

    Created by create_app() at process start, attached to app.state and
    disposed at shutdown. Nothing else in the package holds an engine.
    """

    def __init__(self, url: str, **engine_kwargs):
        if url.startswith("sqlite"):
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
            if url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every checkout sees an empty DB
                engine_kwargs.setdefault("poolclass", StaticPool)
        self.engine = create_engine(url, **engine_kwargs)
        self.session_factory = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,      # Avoid DetachedInstanceError after commit
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        if settings.DATABASE_URL.startswith("sqlite"):
            return cls(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
        return cls(
            settings.DATABASE_URL,
            poolclass=QueuePool,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_timeout=settings.DATABASE_POOL_TIMEOUT,
            pool_pre_ping=True,          # Detect stale connections before using them
            echo=settings.DATABASE_ECHO,
        )

    def session(self) -> Session:
        return self.session_factory()

    def create_all(self) -> None:
        """Create every table on Base.metadata. Used by tests and local SQLite setups."""
        import forum_api.models  # noqa: F401  registers models on Base.metadata
        Base.metadata.create_all(self.engine)

    def check_connection(self) -> bool:
        """Verify database is reachable. Used at startup."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            return False

    def dispose(self) -> None:
        self.engine.dispose()


# ─── Dependency Injection ──────────────────────────────────────────────────────
def get_db(request: Request):
    """
    FastAPI dependency that provides a database session per request.
    The session comes from the Database handle attached to the running app
    and is closed after the request completes.

    Usage:
        @router.get("/items")
        def get_items(db: Session = Depends(get_db)):
            ...
    """
    database: Database = request.app.state.database
    db = database.session()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
