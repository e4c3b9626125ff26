import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from forum_api.config import Settings, settings as default_settings
from forum_api.database import Database
from forum_api.middleware.error_handler import register_exception_handlers

from forum_api.api.v1 import auth

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    """
    Build the application. The Database handle is created here (or passed in
    by tests), stored on app.state and disposed when the app shuts down.
    """
    settings = settings or default_settings
    logging.basicConfig(
        level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Forum backend: accounts and session management",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    app.state.database = database or Database.from_settings(settings)

    # ─── CORS ─────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # ─── Exception Handlers ───────────────────────────────────────────────────
    register_exception_handlers(app)

    # ─── Routers ──────────────────────────────────────────────────────────────
    app.include_router(auth.router, prefix=settings.API_PREFIX, tags=["Auth"])

    # ─── Lifecycle ────────────────────────────────────────────────────────────
    @app.on_event("startup")
    def on_startup():
        ok = app.state.database.check_connection()
        logger.info("Database connected" if ok else "Database connection FAILED")

    @app.on_event("shutdown")
    def on_shutdown():
        logger.info("Shutting down: disposing database engine")
        app.state.database.dispose()

    # ─── Health ───────────────────────────────────────────────────────────────
    @app.get(f"{settings.API_PREFIX}/health", tags=["Health"])
    def health():
        return {"status": "ok", "app": settings.APP_NAME, "version": "1.0.0"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("forum_api.main:app", host=default_settings.APP_HOST, port=default_settings.APP_PORT,
                reload=default_settings.is_development)
